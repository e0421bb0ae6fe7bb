"""RPC endpoint exposing the named catalog methods."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from codeshelf.api.deps import get_dispatcher
from codeshelf.api.schemas.rpc import RPCRequest
from codeshelf.rpc.dispatcher import RPCDispatcher

router = APIRouter(prefix="/api/v1/rpc", tags=["rpc"])


@router.post("")
async def call_method(
    request: RPCRequest, dispatcher: RPCDispatcher = Depends(get_dispatcher)
) -> dict[str, Any]:
    response = await dispatcher.dispatch(
        request.method, request.params, request_id=request.request_id
    )
    return response.to_envelope()


@router.get("/methods")
async def list_methods(dispatcher: RPCDispatcher = Depends(get_dispatcher)) -> dict[str, list[str]]:
    return {"methods": dispatcher.methods}
