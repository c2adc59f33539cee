from __future__ import annotations

from typing import Optional

from pydantic import BaseModel


class HealthStatus(BaseModel):
    status: str
    version: str
    toolkit_version: Optional[str] = None


class ErrorDetail(BaseModel):
    error: str
