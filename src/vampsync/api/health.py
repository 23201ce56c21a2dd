"""Health check endpoint.

Learn: Reports whether the version store and the broadcaster are
reachable. A degraded broadcaster still leaves polling working.
"""

from fastapi import APIRouter, Request

from vampsync import __version__

router = APIRouter()


@router.get("/health")
async def health_check(request: Request):
    """Check server health and dependency connectivity."""
    checks = {"server": "ok", "version": __version__}
    state = request.app.state

    try:
        await state.version_store.ping()
        checks["version_store"] = "ok"
    except Exception as e:
        checks["version_store"] = f"error: {e}"

    try:
        await state.broadcaster.ping()
        checks["broadcaster"] = "ok"
    except Exception as e:
        checks["broadcaster"] = f"error: {e}"

    status = "healthy" if all(
        v == "ok" for k, v in checks.items() if k != "version"
    ) else "degraded"

    return {"status": status, **checks}
