from __future__ import annotations

import asyncio
import enum
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Sequence

import httpx
from pydantic import ValidationError

from nodewatch.core.config import Settings
from nodewatch.rpc.schemas import (
    ErrorCode,
    JsonRpcErrorResponse,
    JsonRpcRequest,
    JsonRpcResponse,
    error_response,
    parse_response,
)

logger = logging.getLogger(__name__)

# Preferred method first, then compatible baseline methods.
METHOD_FALLBACKS: dict[str, tuple[str, ...]] = {
    "get-pods-with-stats": ("get-pods-with-stats", "get-pods"),
}


class AttemptKind(str, enum.Enum):
    HTTP = "http"
    TRANSPORT = "transport"
    TIMEOUT = "timeout"
    STRUCTURE = "structure"
    CANCELLED = "cancelled"


class OutcomeKind(str, enum.Enum):
    SUCCESS = "success"
    UPSTREAM_ERROR = "upstream_error"
    EXHAUSTED = "exhausted"
    CANCELLED = "cancelled"
    INVALID_REQUEST = "invalid_request"


class CancelPolicy(str, enum.Enum):
    ABORT = "abort"
    NEXT = "next"


@dataclass(frozen=True)
class AttemptError:
    endpoint: str
    method: str
    error: str
    kind: AttemptKind

    def as_dict(self) -> dict[str, str]:
        return {"endpoint": self.endpoint, "method": self.method, "error": self.error}


@dataclass(frozen=True)
class RpcCallResult:
    response: JsonRpcResponse
    outcome: OutcomeKind
    errors: list[AttemptError] = field(default_factory=list)
    endpoint: str | None = None
    method: str | None = None


class _AttemptFailed(Exception):
    def __init__(self, error: str, kind: AttemptKind) -> None:
        super().__init__(error)
        self.error = error
        self.kind = kind


class _AttemptCancelled(Exception):
    pass


class RpcClient:
    """JSON-RPC client with endpoint failover and method fallback.

    Attempts run strictly in order: endpoints in priority order, and for each
    endpoint the preferred method before its fallbacks. The first structurally valid
    response wins, including upstream error payloads. Transport and structural
    faults never escape; when every attempt fails a synthesized internal-error
    response is returned instead.
    """

    def __init__(
        self,
        endpoints: Sequence[str],
        *,
        timeout_ms: int = 8000,
        max_error_details: int = 10,
        user_agent: str = "nodewatch/1.0",
        client_factory: Callable[[], httpx.AsyncClient] | None = None,
    ) -> None:
        if not endpoints:
            raise ValueError("at least one RPC endpoint is required")
        self._endpoints = tuple(endpoints)
        self._timeout_ms = timeout_ms
        self._max_error_details = max_error_details
        self._user_agent = user_agent
        self._client_factory = client_factory or (lambda: httpx.AsyncClient())

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        client_factory: Callable[[], httpx.AsyncClient] | None = None,
    ) -> "RpcClient":
        return cls(
            settings.rpc_endpoints,
            timeout_ms=settings.rpc_timeout_ms,
            max_error_details=settings.rpc_max_error_details,
            user_agent=settings.rpc_user_agent,
            client_factory=client_factory,
        )

    @property
    def endpoints(self) -> tuple[str, ...]:
        return self._endpoints

    def endpoints_info(self) -> dict[str, Any]:
        return {
            "primary": self._endpoints[0],
            "fallbacks": list(self._endpoints[1:]),
            "total": len(self._endpoints),
        }

    @staticmethod
    def methods_to_try(method: str) -> tuple[str, ...]:
        return METHOD_FALLBACKS.get(method, (method,))

    async def send(self, request: JsonRpcRequest | Mapping[str, Any]) -> JsonRpcResponse:
        result = await self.call(request)
        return result.response

    async def call(
        self,
        request: JsonRpcRequest | Mapping[str, Any],
        *,
        cancel: asyncio.Event | None = None,
        on_cancel: CancelPolicy = CancelPolicy.ABORT,
    ) -> RpcCallResult:
        """Run the attempt loop and report the response with every recorded failure.

        ``cancel`` interrupts the attempt in flight when set. With
        ``CancelPolicy.ABORT`` the loop stops and a "Request cancelled" error
        response is returned; with ``CancelPolicy.NEXT`` the attempt is
        recorded as cancelled, the event is cleared and the loop moves on.
        """
        if not isinstance(request, JsonRpcRequest):
            try:
                request = JsonRpcRequest.model_validate(request)
            except ValidationError as exc:
                logger.error("invalid json-rpc request", extra={"errors": exc.errors()})
                raw_id = request.get("id") if isinstance(request, Mapping) else None
                return RpcCallResult(
                    response=error_response(
                        ErrorCode.INVALID_REQUEST,
                        "Invalid JSON-RPC request structure",
                        id=raw_id if isinstance(raw_id, (str, int)) and not isinstance(raw_id, bool) else None,
                        data=exc.errors(include_url=False, include_context=False),
                    ),
                    outcome=OutcomeKind.INVALID_REQUEST,
                )

        logger.info("rpc request", extra={"method": request.method, "request_id": request.id})
        errors: list[AttemptError] = []
        methods = self.methods_to_try(request.method)

        async with self._client_factory() as client:
            for endpoint in self._endpoints:
                for method in methods:
                    payload = request.model_copy(update={"method": method}).model_dump()
                    try:
                        response = await self._attempt(client, endpoint, payload, cancel)
                    except _AttemptFailed as exc:
                        errors.append(AttemptError(endpoint, method, exc.error, exc.kind))
                        continue
                    except _AttemptCancelled:
                        errors.append(AttemptError(endpoint, method, "Cancelled", AttemptKind.CANCELLED))
                        if on_cancel is CancelPolicy.NEXT:
                            cancel.clear()
                            continue
                        logger.warning(
                            "rpc request cancelled",
                            extra={"method": method, "endpoint": endpoint, "attempts": len(errors)},
                        )
                        return RpcCallResult(
                            response=self._failure_response("Request cancelled", errors, request.id),
                            outcome=OutcomeKind.CANCELLED,
                            errors=errors,
                        )

                    outcome = (
                        OutcomeKind.UPSTREAM_ERROR
                        if isinstance(response, JsonRpcErrorResponse)
                        else OutcomeKind.SUCCESS
                    )
                    logger.info(
                        "rpc response",
                        extra={"endpoint": endpoint, "method": method, "outcome": outcome.value},
                    )
                    return RpcCallResult(
                        response=response,
                        outcome=outcome,
                        errors=errors,
                        endpoint=endpoint,
                        method=method,
                    )

        logger.error(
            "all rpc endpoints failed",
            extra={"attempts": len(errors), "methods": list(methods)},
        )
        return RpcCallResult(
            response=self._failure_response("All endpoints failed", errors, request.id),
            outcome=OutcomeKind.EXHAUSTED,
            errors=errors,
        )

    async def _attempt(
        self,
        client: httpx.AsyncClient,
        endpoint: str,
        payload: dict[str, Any],
        cancel: asyncio.Event | None,
    ) -> JsonRpcResponse:
        if cancel is None:
            return await self._post(client, endpoint, payload)

        task = asyncio.ensure_future(self._post(client, endpoint, payload))
        waiter = asyncio.ensure_future(cancel.wait())
        try:
            done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            waiter.cancel()

        if task in done:
            return task.result()

        task.cancel()
        try:
            await task
        except (asyncio.CancelledError, Exception):
            # outcome of the abandoned attempt is discarded
            pass
        raise _AttemptCancelled()

    async def _post(
        self,
        client: httpx.AsyncClient,
        endpoint: str,
        payload: dict[str, Any],
    ) -> JsonRpcResponse:
        timeout_seconds = self._timeout_ms / 1000
        method = payload["method"]
        try:
            response = await asyncio.wait_for(
                client.post(
                    endpoint,
                    json=payload,
                    headers={"User-Agent": self._user_agent},
                    timeout=timeout_seconds,
                ),
                timeout=timeout_seconds,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException):
            logger.warning("rpc attempt timed out", extra={"endpoint": endpoint, "method": method})
            raise _AttemptFailed(f"Timeout ({self._timeout_ms}ms)", AttemptKind.TIMEOUT)
        except httpx.HTTPError as exc:
            logger.warning(
                "rpc attempt transport error",
                extra={"endpoint": endpoint, "method": method, "error": _normalize_error(exc)},
            )
            raise _AttemptFailed(_normalize_error(exc), AttemptKind.TRANSPORT)

        if not 200 <= response.status_code < 300:
            logger.warning(
                "rpc attempt http error",
                extra={"endpoint": endpoint, "method": method, "status": response.status_code, "body": response.text[:100]},
            )
            raise _AttemptFailed(f"HTTP {response.status_code}", AttemptKind.HTTP)

        try:
            return parse_response(response.json())
        except ValueError as exc:
            # covers json.JSONDecodeError and pydantic.ValidationError
            logger.warning(
                "rpc response failed structural validation",
                extra={"endpoint": endpoint, "method": method, "error": str(exc)[:200]},
            )
            raise _AttemptFailed("Invalid response structure", AttemptKind.STRUCTURE)

    def _failure_response(
        self,
        message: str,
        errors: list[AttemptError],
        request_id: Any,
    ) -> JsonRpcErrorResponse:
        recent = errors[-self._max_error_details:]
        return error_response(
            ErrorCode.INTERNAL_ERROR,
            message,
            id=request_id,
            data=[e.as_dict() for e in recent],
        )


def _normalize_error(exc: Exception) -> str:
    if isinstance(exc, httpx.ConnectError):
        return "connect_error"
    if isinstance(exc, httpx.HTTPError):
        return exc.__class__.__name__.lower()
    return str(exc)
