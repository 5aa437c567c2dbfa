from typing import Any, Dict

from fastapi import APIRouter

from ..config import settings
from ..core.chains import CHAIN_METADATA

router = APIRouter()


@router.get("/healthz")
async def health_check() -> Dict[str, Any]:
    """Liveness plus which optional upstreams are configured"""

    return {
        "status": "healthy",
        "relay": settings.relay_base_url,
        "providers": {
            "alchemy": "configured" if settings.has_alchemy_key else "public_rpc",
            "routescan": "configured" if settings.has_routescan_key else "unauthenticated",
        },
        "chains": sorted(CHAIN_METADATA),
    }
