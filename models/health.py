from __future__ import annotations
from typing import Optional

from pydantic import BaseModel, Field


class Health(BaseModel):
    status: int = Field(..., description="HTTP-style status of the service")
    status_message: str = Field(..., description="Human readable status")
    timestamp: str = Field(..., description="UTC time the check ran")
    echo: Optional[str] = Field(None, description="Echo of the optional query parameter")
