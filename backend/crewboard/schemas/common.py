"""Shared response schemas."""

from __future__ import annotations

from pydantic import Field
from sqlmodel import SQLModel


class OkResponse(SQLModel):
    ok: bool = True


class HealthStatusResponse(SQLModel):
    """Standard payload for service liveness/readiness checks."""

    ok: bool = Field(
        description="Indicates whether the probe check succeeded.",
        examples=[True],
    )


class ErrorResponse(SQLModel):
    """Error body produced by the API's exception handlers."""

    detail: str | dict[str, object] | list[object]
    request_id: str | None = None
