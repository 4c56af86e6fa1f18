"""Read-only REST API exposing the launcher's coordination state."""

import logging

from fastapi import APIRouter, HTTPException

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")

# Injected by main.py at startup
_coordinator = None


def init_routes(coordinator) -> None:
    """Inject the coordinator into the routes module."""
    global _coordinator
    _coordinator = coordinator


def _require_coordinator():
    if _coordinator is None:
        raise HTTPException(status_code=503, detail="Launcher not running")
    return _coordinator


@router.get("/status")
async def get_status():
    """Return the session state, joined host and local advertisements."""
    return _require_coordinator().status()


@router.get("/peers")
async def list_peers():
    """Return known launchers in election order."""
    coordinator = _require_coordinator()
    best = coordinator.registry.best_candidate()
    return {
        "peers": [p.model_dump(mode="json") for p in coordinator.registry.peers()],
        "best_candidate": best.name if best else None,
        "foreign_count": coordinator.registry.foreign_count(),
    }
