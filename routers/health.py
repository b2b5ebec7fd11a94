from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Query

from models.health import Health


router = APIRouter(tags=["Health"])


def make_health(echo: Optional[str]) -> Health:
    return Health(
        status=200,
        status_message="OK",
        timestamp=datetime.now(timezone.utc).isoformat(),
        echo=echo,
    )


@router.get("/", response_model=Health, name="get_health")
def get_health(echo: Optional[str] = Query(None, description="Optional echo string")):
    return make_health(echo)
