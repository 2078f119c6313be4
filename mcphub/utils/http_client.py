from __future__ import annotations

import asyncio
import functools
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Tuple

import httpx

from .errors import ErrorCategory, MCPError, marketplace_error, runtime_error, server_error
from .http import extract_http_error, parse_json_body

logger = logging.getLogger("mcphub.http")

QUICK_TIMEOUT_MS = 1000
TOOL_TIMEOUT_MS = 30000
RESOURCE_TIMEOUT_MS = 30000

JSON_HEADERS = {"Content-Type": "application/json", "Accept": "application/json"}

Outcome = Tuple[Any, Optional[MCPError]]
ResponseCallback = Callable[[Any, Optional[MCPError]], None]


@dataclass
class RequestContext:
    method: str
    path: str
    body: Optional[Dict[str, Any]] = None
    query: Optional[Dict[str, Any]] = None
    timeout_ms: int = QUICK_TIMEOUT_MS
    skip_ready_check: bool = False
    error_category: ErrorCategory = ErrorCategory.SERVER
    record_errors: bool = True

    def describe(self, base_url: str) -> Dict[str, Any]:
        info: Dict[str, Any] = {
            "method": self.method,
            "url": base_url + self.path,
            "timeout_ms": self.timeout_ms,
        }
        if self.query:
            info["query"] = dict(self.query)
        return info


class HubHttpClient:
    """
    Request gateway to the hub's ``/api/`` endpoints.

    Every call returns an ``asyncio.Task`` resolving to ``(result, error)``;
    exactly one of the two is set and the task itself never raises. When a
    callback is supplied it is attached to the task and invoked exactly once.
    Classified failures are pushed into the state store.
    """

    def __init__(
        self,
        port: int,
        *,
        host: str = "localhost",
        state=None,
        ready_check: Optional[Callable[[], bool]] = None,
        timeout_ms: int = QUICK_TIMEOUT_MS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.port = port
        self.base_url = f"http://{host}:{port}/api/"
        self.timeout_ms = timeout_ms
        self.state = state
        self._ready_check = ready_check or (lambda: True)
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=JSON_HEADERS,
            timeout=httpx.Timeout(timeout_ms / 1000),
            follow_redirects=False,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    def request(
        self,
        method: str,
        path: str,
        *,
        body: Optional[Dict[str, Any]] = None,
        query: Optional[Dict[str, Any]] = None,
        timeout_ms: Optional[int] = None,
        skip_ready_check: bool = False,
        callback: Optional[ResponseCallback] = None,
        error_category: ErrorCategory = ErrorCategory.SERVER,
        record_errors: bool = True,
    ) -> "asyncio.Task[Outcome]":
        ctx = RequestContext(
            method=method.upper(),
            path=path.lstrip("/"),
            body=body,
            query={k: v for k, v in (query or {}).items() if v is not None} or None,
            timeout_ms=timeout_ms if timeout_ms is not None else self.timeout_ms,
            skip_ready_check=skip_ready_check,
            error_category=ErrorCategory(error_category),
            record_errors=record_errors,
        )
        # the gate is evaluated when the request is issued, not when the task first runs
        gated = not self._may_send(ctx)
        task = asyncio.get_running_loop().create_task(self._execute(ctx, gated))
        if callback is not None:
            task.add_done_callback(functools.partial(self._deliver, callback, ctx))
        return task

    async def fetch(self, method: str, path: str, **kwargs: Any) -> Any:
        """Like :meth:`request` but returns the result or raises the error."""
        if kwargs.get("callback") is not None:
            raise TypeError("fetch() does not take a callback")
        result, err = await self.request(method, path, **kwargs)
        if err is not None:
            raise err
        return result

    async def get(self, path: str, **kwargs: Any) -> Outcome:
        return await self.request("GET", path, **kwargs)

    async def post(self, path: str, **kwargs: Any) -> Outcome:
        return await self.request("POST", path, **kwargs)

    def _deliver(self, callback: ResponseCallback, ctx: RequestContext, task: "asyncio.Task[Outcome]") -> None:
        result: Any = None
        if task.cancelled():
            err = runtime_error("OPERATION_FAILED", "Request cancelled", ctx.describe(self.base_url))
        elif task.exception() is not None:
            exc = task.exception()
            err = runtime_error(
                "OPERATION_FAILED",
                f"Request failed: {exc.__class__.__name__}",
                {**ctx.describe(self.base_url), "error": str(exc)},
            )
        else:
            result, err = task.result()
        try:
            callback(result, err)
        except Exception:
            logger.exception("Callback for %s %s failed", ctx.method, ctx.path)

    def _may_send(self, ctx: RequestContext) -> bool:
        if ctx.path == "health":
            return True
        if ctx.skip_ready_check:
            logger.debug("skip_ready_check ignored for %s %s", ctx.method, ctx.path)
        return self._ready_check()

    async def _execute(self, ctx: RequestContext, gated: bool = False) -> Outcome:
        if gated:
            err = server_error(
                "INVALID_STATE",
                "MCP Hub not ready",
                {**ctx.describe(self.base_url), "hint": "Wait for the hub to be ready before making requests"},
            )
            return None, self._record(err, ctx)

        try:
            result = await self._send(ctx)
        except MCPError as err:
            return None, self._record(err, ctx)
        except Exception as exc:
            # e.g. a closed pool or a body that cannot be encoded
            err = runtime_error(
                "OPERATION_FAILED",
                f"Request failed: {exc.__class__.__name__}",
                {**ctx.describe(self.base_url), "error": str(exc)},
            )
            return None, self._record(err, ctx)
        return result, None

    async def _send(self, ctx: RequestContext) -> Any:
        context = ctx.describe(self.base_url)
        timeout = ctx.timeout_ms / 1000
        logger.debug("%s %s timeout=%sms", ctx.method, context["url"], ctx.timeout_ms)

        kwargs: Dict[str, Any] = {"timeout": httpx.Timeout(timeout)}
        if ctx.body is not None:
            kwargs["json"] = ctx.body
        if ctx.query:
            kwargs["params"] = ctx.query

        try:
            response = await asyncio.wait_for(
                self._client.request(ctx.method, ctx.path, **kwargs),
                timeout=timeout,
            )
        except httpx.ConnectError as exc:
            raise server_error(
                "CONNECTION",
                "Connection refused - Server not running",
                {**context, "error": str(exc)},
            ) from exc
        except (httpx.TimeoutException, asyncio.TimeoutError) as exc:
            raise server_error("TIMEOUT", "Request timed out", context) from exc
        except httpx.TransportError as exc:
            raise server_error(
                "CURL_ERROR",
                f"Request failed: {exc.__class__.__name__}",
                {**context, "error": str(exc)},
            ) from exc
        except httpx.HTTPError as exc:
            raise server_error("CURL_ERROR", f"Request failed: {exc}", context) from exc

        if not response.is_success:
            raise extract_http_error(response, context)
        return parse_json_body(response, context)

    def _record(self, err: MCPError, ctx: RequestContext) -> MCPError:
        if ctx.error_category == ErrorCategory.MARKETPLACE and err.category != ErrorCategory.MARKETPLACE:
            err = marketplace_error(
                "FETCH_ERROR",
                err.message,
                {**err.details, "cause": f"{err.category.value}.{err.code}"},
            )
        if not ctx.record_errors:
            logger.debug("%s %s: %s", ctx.method, ctx.path, err.summary)
        elif self.state is not None:
            self.state.add_error(err)
        else:
            logger.warning("%s", err.summary)
        return err


__all__ = [
    "HubHttpClient",
    "RequestContext",
    "QUICK_TIMEOUT_MS",
    "TOOL_TIMEOUT_MS",
    "RESOURCE_TIMEOUT_MS",
]
