"""Pydantic schemas for API key endpoints."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class ApiKeyCreate(BaseModel):
    name: Optional[str] = None


class ApiKeyUpdate(BaseModel):
    name: Optional[str] = None


class ApiKeyResponse(BaseModel):
    id: str
    name: str
    key: str
    usage: int
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class ApiKeyEnvelope(BaseModel):
    data: ApiKeyResponse


class ApiKeyListEnvelope(BaseModel):
    data: list[ApiKeyResponse]


class ApiKeyUsageResponse(BaseModel):
    usage: int
    limit: int
    remaining: int
    percent_used: int


class MessageResponse(BaseModel):
    message: str
