"""Shared route dependencies."""

from fastapi import Request

from vampsync.services.version_service import VersionService


def get_version_service(request: Request) -> VersionService:
    """The VersionService built in the app lifespan."""
    return request.app.state.version_service
