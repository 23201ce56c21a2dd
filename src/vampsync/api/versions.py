"""Data version API.

Learn: GET /versions is what every client polls (every 30s, plus on
each push). It must be cheap and must never be cached by anything
between server and client — NoStoreMiddleware stamps the headers.

POST /versions/{key}/bump is the hook for mutators that live outside
this process (the CRUD routes, import scripts). In-process mutators call
VersionService.bump() directly.
"""

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from vampsync.api.deps import get_version_service
from vampsync.auth.dependencies import SessionIdentity, require_session
from vampsync.errors import StorageUnavailableError
from vampsync.services.version_service import VersionService

router = APIRouter(prefix="/versions")


class BumpRead(BaseModel):
    key: str
    version: int


@router.get("", response_model=dict[str, int])
async def get_versions(
    service: VersionService = Depends(get_version_service),
):
    """Current version of every entity group, as a flat object."""
    try:
        return await service.snapshot()
    except StorageUnavailableError as e:
        raise HTTPException(status_code=503, detail=e.message)


@router.post("/{key}/bump", response_model=BumpRead)
async def bump_version(
    key: str,
    service: VersionService = Depends(get_version_service),
    identity: SessionIdentity = Depends(require_session),
):
    """Record that entity group `key` changed and notify connected clients."""
    try:
        server_key, version = await service.bump(key)
    except StorageUnavailableError as e:
        raise HTTPException(status_code=503, detail=e.message)
    return BumpRead(key=server_key, version=version)
