"""Notification API — operator-initiated pushes.

Learn: Two kinds of broadcast that don't go through a version bump:
- system-message: free text shown by clients (maintenance notices)
- refresh-required: tells clients to drop cached data for one entity
  group, or for everything with entity="all"
"""

from typing import Literal, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field, model_validator

from vampsync.api.deps import get_version_service
from vampsync.auth.dependencies import SessionIdentity, require_session
from vampsync.services.version_service import VersionService
from vampsync.sync.registry import ALL_ENTITIES

router = APIRouter(prefix="/notifications")


class NotificationCreate(BaseModel):
    type: Literal["system-message", "refresh-required"]
    message: Optional[str] = Field(None, max_length=2000)
    entity: Optional[str] = None

    @model_validator(mode="after")
    def check_payload(self):
        if self.type == "system-message" and not self.message:
            raise ValueError("system-message requires 'message'")
        return self


class NotificationRead(BaseModel):
    type: str
    entity: Optional[str] = None
    message: Optional[str] = None
    timestamp: int


@router.post("", response_model=NotificationRead, status_code=202)
async def send_notification(
    body: NotificationCreate,
    service: VersionService = Depends(get_version_service),
    identity: SessionIdentity = Depends(require_session),
):
    """Broadcast a system message or a refresh request to every client."""
    if body.type == "system-message":
        sent = await service.system_message(body.message)
    else:
        sent = await service.request_refresh(body.entity or ALL_ENTITIES)
    return NotificationRead(
        type=sent.type.value,
        entity=sent.entity,
        message=sent.message,
        timestamp=sent.timestamp,
    )
