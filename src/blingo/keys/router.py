"""API key management router — requires a signed-in caller session."""

from fastapi import APIRouter, Depends, HTTPException

from blingo.common.exceptions import ApiKeyNotFoundError, BlingoError, StoreError, http_status_for
from blingo.common.security import CallerIdentity, require_user
from blingo.keys.generator import default_key_name, generate_api_key
from blingo.keys.schemas import (
    ApiKeyCreate,
    ApiKeyEnvelope,
    ApiKeyListEnvelope,
    ApiKeyResponse,
    ApiKeyUpdate,
    ApiKeyUsageResponse,
    MessageResponse,
)
from blingo.keys.store import KeyStore, UserSnapshot

router = APIRouter(prefix="/api-keys", tags=["api-keys"])


def _get_store() -> KeyStore:
    from blingo.deps import get_key_store
    return get_key_store()


def _get_authenticator():
    from blingo.deps import get_authenticator
    return get_authenticator()


def _raise_http(error: BlingoError):
    if isinstance(error, StoreError):
        raise HTTPException(status_code=500, detail="Internal server error")
    raise HTTPException(status_code=http_status_for(error), detail=error.message)


async def _resolve_user(store: KeyStore, caller: CallerIdentity) -> UserSnapshot:
    try:
        return await store.get_or_create_user(caller.email, caller.name, caller.image)
    except BlingoError as e:
        _raise_http(e)


@router.get("", response_model=ApiKeyListEnvelope)
async def list_api_keys(caller: CallerIdentity = Depends(require_user)):
    store = _get_store()
    user = await _resolve_user(store, caller)
    try:
        keys = await store.list_by_owner(user.id)
    except BlingoError as e:
        _raise_http(e)
    return ApiKeyListEnvelope(data=[ApiKeyResponse.model_validate(k) for k in keys])


@router.post("", response_model=ApiKeyEnvelope, status_code=201)
async def create_api_key(body: ApiKeyCreate, caller: CallerIdentity = Depends(require_user)):
    store = _get_store()
    user = await _resolve_user(store, caller)
    name = body.name.strip() if body.name and body.name.strip() else default_key_name()
    try:
        record = await store.create(user.id, name, generate_api_key(_key_prefix()))
    except BlingoError as e:
        _raise_http(e)
    return ApiKeyEnvelope(data=ApiKeyResponse.model_validate(record))


@router.get("/{key_id}", response_model=ApiKeyEnvelope)
async def get_api_key(key_id: str, caller: CallerIdentity = Depends(require_user)):
    store = _get_store()
    user = await _resolve_user(store, caller)
    try:
        record = await store.get_for_owner(key_id, user.id)
    except BlingoError as e:
        _raise_http(e)
    if record is None:
        _raise_http(ApiKeyNotFoundError())
    return ApiKeyEnvelope(data=ApiKeyResponse.model_validate(record))


@router.put("/{key_id}", response_model=ApiKeyEnvelope)
async def rename_api_key(
    key_id: str, body: ApiKeyUpdate, caller: CallerIdentity = Depends(require_user)
):
    if not body.name or not body.name.strip():
        raise HTTPException(status_code=400, detail="Name is required")
    store = _get_store()
    user = await _resolve_user(store, caller)
    try:
        record = await store.rename(key_id, user.id, body.name.strip())
    except BlingoError as e:
        _raise_http(e)
    if record is None:
        _raise_http(ApiKeyNotFoundError())
    return ApiKeyEnvelope(data=ApiKeyResponse.model_validate(record))


@router.delete("/{key_id}", response_model=MessageResponse)
async def delete_api_key(key_id: str, caller: CallerIdentity = Depends(require_user)):
    store = _get_store()
    user = await _resolve_user(store, caller)
    try:
        deleted = await store.delete(key_id, user.id)
    except BlingoError as e:
        _raise_http(e)
    if not deleted:
        _raise_http(ApiKeyNotFoundError())
    return MessageResponse(message="API key deleted successfully")


@router.get("/{key_id}/usage", response_model=ApiKeyUsageResponse)
async def get_api_key_usage(key_id: str, caller: CallerIdentity = Depends(require_user)):
    store = _get_store()
    user = await _resolve_user(store, caller)
    try:
        record = await store.get_for_owner(key_id, user.id)
    except BlingoError as e:
        _raise_http(e)
    if record is None:
        _raise_http(ApiKeyNotFoundError())

    authenticator = _get_authenticator()
    stats = await authenticator.usage_stats(key_id)
    if stats is None:
        # Display-only read: fall back to the numbers we already hold.
        limit = authenticator.limit
        return ApiKeyUsageResponse(
            usage=record.usage,
            limit=limit,
            remaining=max(0, limit - record.usage),
            percent_used=round(record.usage / limit * 100) if limit else 100,
        )
    return ApiKeyUsageResponse(
        usage=stats.usage,
        limit=stats.limit,
        remaining=stats.remaining,
        percent_used=stats.percent_used,
    )


def _key_prefix() -> str:
    from blingo.common.config import get_settings
    return get_settings().key_prefix
