from __future__ import annotations

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from nodewatch.api.dependencies import get_db_session, get_rpc_client
from nodewatch.rpc.schemas import JsonRpcErrorResponse, JsonRpcRequest
from nodewatch.services.capture import CAPTURE_METHOD
from nodewatch.services.rpc_client import RpcClient

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(
    session: AsyncSession = Depends(get_db_session),
    client: RpcClient = Depends(get_rpc_client),
) -> JSONResponse:
    await session.execute(select(1))
    response = await client.send(JsonRpcRequest(method=CAPTURE_METHOD, id="health-check"))
    if isinstance(response, JsonRpcErrorResponse):
        return JSONResponse(
            {"status": "down", "error": response.error.model_dump()},
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        )
    return JSONResponse({"status": "ok"})
