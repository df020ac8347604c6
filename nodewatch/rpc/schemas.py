from __future__ import annotations

from typing import Any, Literal, Union

from pydantic import BaseModel, Field

RequestId = Union[str, int, None]


class ErrorCode:
    PARSE_ERROR = -32700
    INVALID_REQUEST = -32600
    METHOD_NOT_FOUND = -32601
    INVALID_PARAMS = -32602
    INTERNAL_ERROR = -32603
    SERVER_ERROR = -32000


class JsonRpcRequest(BaseModel):
    jsonrpc: Literal["2.0"] = "2.0"
    method: str = Field(..., min_length=1)
    params: list[Any] = Field(default_factory=list)
    id: RequestId = None


class JsonRpcError(BaseModel):
    code: int
    message: str
    data: Any = None


class JsonRpcSuccessResponse(BaseModel):
    jsonrpc: Literal["2.0"]
    result: Any
    id: RequestId


class JsonRpcErrorResponse(BaseModel):
    jsonrpc: Literal["2.0"] = "2.0"
    error: JsonRpcError
    id: RequestId


JsonRpcResponse = Union[JsonRpcSuccessResponse, JsonRpcErrorResponse]


def parse_response(data: Any) -> JsonRpcResponse:
    """Validate an upstream payload as a JSON-RPC 2.0 response.

    Raises ``pydantic.ValidationError`` when the payload is neither a success
    nor an error response.
    """
    if isinstance(data, dict) and "error" in data:
        return JsonRpcErrorResponse.model_validate(data)
    return JsonRpcSuccessResponse.model_validate(data)


def error_response(code: int, message: str, *, id: RequestId = None, data: Any = None) -> JsonRpcErrorResponse:
    return JsonRpcErrorResponse(error=JsonRpcError(code=code, message=message, data=data), id=id)


def dump_response(response: JsonRpcResponse) -> dict[str, Any]:
    payload = response.model_dump()
    if isinstance(response, JsonRpcErrorResponse) and response.error.data is None:
        payload["error"].pop("data", None)
    return payload


class Pod(BaseModel):
    # Numeric fields are plain JSON numbers; fractions are truncated when stored.
    address: str
    is_public: bool | None
    last_seen_timestamp: float
    pubkey: str | None
    rpc_port: int | None
    storage_committed: float | None
    storage_usage_percent: float | None
    storage_used: float | None
    uptime: float | None
    version: str


class PodsResult(BaseModel):
    # get-pods omits total_count; get-pods-with-stats includes it.
    pods: list[Pod]
    total_count: int | None = None
