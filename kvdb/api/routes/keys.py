from fastapi import APIRouter, Depends, Query, Request

from kvdb.schemas.keys import (
    CreateKeyRequest,
    CreateKeyResponse,
    ErrorResponse,
    GetKeyResponse,
    SuccessResponse,
    UpdateKeyRequest,
)
from kvdb.services.key_service import KeyService

router = APIRouter(tags=["Keys"])

_ERRORS = {
    400: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    429: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
}


def get_key_service(request: Request) -> KeyService:
    return request.app.state.key_service


@router.post("/key", response_model=CreateKeyResponse, responses=_ERRORS)
async def create_key(
    payload: CreateKeyRequest,
    service: KeyService = Depends(get_key_service),
) -> CreateKeyResponse:
    """Create a key with a read-write and a read-only name.

    Names that are not supplied are generated.
    """
    names = await service.create(
        name=payload.name,
        name_readonly=payload.name_readonly,
        value=payload.value,
    )
    return CreateKeyResponse(name=names.name, name_readonly=names.name_readonly)


@router.get("/key", response_model=GetKeyResponse, responses=_ERRORS)
async def get_key(
    name: str = Query(..., description="Read-write or read-only name"),
    service: KeyService = Depends(get_key_service),
) -> GetKeyResponse:
    """Read a value by either of its names."""
    value = await service.read(name)
    return GetKeyResponse(value=value)


@router.patch("/key", response_model=SuccessResponse, responses=_ERRORS)
async def update_key(
    payload: UpdateKeyRequest,
    service: KeyService = Depends(get_key_service),
) -> SuccessResponse:
    """Replace a value. Read-only names are reported as not found."""
    await service.update(payload.name, payload.value)
    return SuccessResponse()


@router.delete("/key", response_model=SuccessResponse, responses=_ERRORS)
async def delete_key(
    name: str = Query(..., description="Read-write name"),
    service: KeyService = Depends(get_key_service),
) -> SuccessResponse:
    """Delete a key. Read-only names are reported as not found."""
    await service.delete(name)
    return SuccessResponse()
