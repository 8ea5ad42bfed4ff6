"""Pydantic schemas for the /key endpoints."""

from __future__ import annotations

from pydantic import BaseModel, Field


class CreateKeyRequest(BaseModel):
    """Body of ``POST /key``. Omitted names are generated."""

    name: str | None = Field(
        default=None,
        description="Read-write name (alphanumerics, '_', '-', '.').",
    )
    name_readonly: str | None = Field(
        default=None,
        description="Read-only alias for the same value.",
    )
    value: str | None = Field(
        default=None,
        description="Initial value; defaults to an empty string.",
    )


class CreateKeyResponse(BaseModel):
    name: str = Field(..., description="Read-write name of the new key.")
    name_readonly: str = Field(..., description="Read-only name of the new key.")
    success: bool = True


class GetKeyResponse(BaseModel):
    value: str
    success: bool = True


class UpdateKeyRequest(BaseModel):
    """Body of ``PATCH /key``. Only the read-write name is accepted."""

    name: str
    value: str


class SuccessResponse(BaseModel):
    success: bool = True


class ErrorResponse(BaseModel):
    error: str
    success: bool = False
