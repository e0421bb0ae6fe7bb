"""RPC API schemas."""

from __future__ import annotations

from typing import Any

from pydantic import Field

from codeshelf.models.project import CamelModel


class RPCRequest(CamelModel):
    """A single named method call."""

    method: str
    params: dict[str, Any] = Field(default_factory=dict)
    request_id: str | None = None
