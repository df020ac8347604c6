from __future__ import annotations

import json

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from nodewatch.api.dependencies import get_rpc_client
from nodewatch.rpc.schemas import ErrorCode, JsonRpcRequest, dump_response, error_response
from nodewatch.services.rpc_client import RpcClient

router = APIRouter(tags=["rpc"])


@router.post("/rpc")
async def proxy_rpc(request: Request, client: RpcClient = Depends(get_rpc_client)) -> JSONResponse:
    try:
        body = json.loads(await request.body())
    except ValueError:
        payload = error_response(ErrorCode.PARSE_ERROR, "Invalid JSON in request body")
        return JSONResponse(dump_response(payload), status_code=status.HTTP_400_BAD_REQUEST)

    try:
        rpc_request = JsonRpcRequest.model_validate(body)
    except ValidationError as exc:
        raw_id = body.get("id") if isinstance(body, dict) else None
        payload = error_response(
            ErrorCode.INVALID_REQUEST,
            "Invalid JSON-RPC request structure",
            id=raw_id if isinstance(raw_id, (str, int)) and not isinstance(raw_id, bool) else None,
            data=exc.errors(include_url=False, include_context=False),
        )
        return JSONResponse(dump_response(payload), status_code=status.HTTP_400_BAD_REQUEST)

    response = await client.send(rpc_request)
    return JSONResponse(dump_response(response))


@router.get("/endpoints")
async def list_endpoints(client: RpcClient = Depends(get_rpc_client)) -> dict:
    return client.endpoints_info()
