"""Summarize endpoint router — public, authenticated by API key."""

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, Response

from blingo.common.exceptions import BlingoError, RateLimitExceededError, http_status_for
from blingo.common.security import extract_api_key

router = APIRouter()

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization, x-api-key",
}


def _get_pipeline():
    from blingo.deps import get_summarize_pipeline
    return get_summarize_pipeline()


def _json(data: dict, status_code: int = 200) -> JSONResponse:
    return JSONResponse(data, status_code=status_code, headers=CORS_HEADERS)


def _error_response(error: BlingoError) -> JSONResponse:
    body = {"error": error.message}
    if isinstance(error, RateLimitExceededError):
        body["usage"] = error.usage
        body["limit"] = error.limit
    return _json(body, http_status_for(error))


@router.options("/summarize-endpoint")
async def summarize_preflight():
    return Response(status_code=200, headers=CORS_HEADERS)


@router.get("/summarize-endpoint")
async def summarize_status(request: Request):
    pipeline = _get_pipeline()
    try:
        payload = await pipeline.status(extract_api_key(request.headers))
    except BlingoError as e:
        return _error_response(e)
    return _json(payload)


@router.post("/summarize-endpoint")
async def summarize(request: Request):
    pipeline = _get_pipeline()
    api_key = extract_api_key(request.headers)
    raw_body = await request.body()
    try:
        payload = await pipeline.run(api_key, raw_body)
    except BlingoError as e:
        return _error_response(e)
    return _json(payload)
