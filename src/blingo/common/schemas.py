"""Shared Pydantic schemas for Blingo."""

from pydantic import BaseModel


class HealthResponse(BaseModel):
    status: str = "ok"
    version: str = "0.1.0"
    service: str = "blingo"


class ErrorResponse(BaseModel):
    error: str
