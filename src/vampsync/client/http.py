"""VersionClient — fetches the authoritative snapshot over HTTP.

Learn: GET /api/versions is requested with no-store headers on our side
too; the server stamps the same on its response. Anything that is not a
flat {str: non-negative int} object is a fetch failure, never a partial
snapshot.
"""

from typing import Optional

import httpx
from pydantic import NonNegativeInt, TypeAdapter, ValidationError

from vampsync.errors import VersionFetchError

NO_CACHE_HEADERS = {
    "Cache-Control": "no-store, no-cache",
    "Pragma": "no-cache",
}

_snapshot_adapter = TypeAdapter(dict[str, NonNegativeInt])


class VersionClient:
    """Thin httpx wrapper around the versions endpoint."""

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            headers=headers,
        )

    async def fetch_snapshot(self) -> dict[str, int]:
        """GET /api/versions. Raises VersionFetchError on any failure."""
        try:
            resp = await self._client.get("/api/versions", headers=NO_CACHE_HEADERS)
            resp.raise_for_status()
            return _snapshot_adapter.validate_json(resp.content)
        except httpx.HTTPStatusError as e:
            raise VersionFetchError(
                f"Version fetch returned {e.response.status_code}",
                details={"status": e.response.status_code},
            ) from e
        except httpx.HTTPError as e:
            raise VersionFetchError(f"Version fetch failed: {e}") from e
        except ValidationError as e:
            raise VersionFetchError(
                "Version snapshot is malformed",
                details={"errors": e.error_count()},
            ) from e

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
