"""Composable per-call instrumentation for RPC handlers.

The Dispatch Harness wraps every registered handler with
``instrument_rpc_handler``. Concerns receive one start event and one
completion event per call; logging is always on and tracing is added when
OpenTelemetry is configured.
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass
from functools import wraps
from time import perf_counter
from typing import Any, Callable, Protocol, Sequence

import grpc
from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

from . import fields
from .config import get_logger
from .context import log_context

_LOGGER = get_logger(__name__)


@dataclass(frozen=True)
class RpcInvocation:
    """Metadata describing one inbound RPC call."""

    call_id: str
    service_name: str
    full_method: str


@dataclass(frozen=True)
class RpcCompletion:
    """Outcome of one RPC call as seen by the outermost wrapper."""

    invocation: RpcInvocation
    status_code: str
    duration_ms: float
    detail: str = ""


class RpcCallConcern(Protocol):
    """Hook contract for one RPC instrumentation concern."""

    def on_invocation(self, invocation: RpcInvocation) -> None:
        """Handle the call-start event."""

    def on_completion(self, completion: RpcCompletion) -> None:
        """Handle the call-end event."""


class RpcLoggingConcern:
    """Emit structured start/end log lines for each call."""

    def __init__(self, *, logger: Any = None) -> None:
        self._logger = logger or _LOGGER

    def on_invocation(self, invocation: RpcInvocation) -> None:
        self._logger.debug(
            "rpc call started", extra={fields.EVENT: fields.RPC_CALL_STARTED_EVENT}
        )

    def on_completion(self, completion: RpcCompletion) -> None:
        extra = {
            fields.EVENT: fields.RPC_CALL_COMPLETED_EVENT,
            fields.STATUS_CODE: completion.status_code,
            fields.DURATION_MS: round(completion.duration_ms, 3),
        }
        if completion.status_code == grpc.StatusCode.OK.name:
            self._logger.info("rpc call completed", extra=extra)
        else:
            self._logger.warning(
                "rpc call failed: %s", completion.detail or completion.status_code,
                extra=extra,
            )


class RpcTracingConcern:
    """Open one OpenTelemetry span per call and close it with the final status."""

    def __init__(self, *, tracer_name: str) -> None:
        self._tracer = trace.get_tracer(tracer_name)
        self._open: dict[str, Any] = {}

    def on_invocation(self, invocation: RpcInvocation) -> None:
        span = self._tracer.start_span(
            invocation.full_method,
            attributes={
                "rpc.system": "grpc",
                "rpc.service": invocation.service_name,
                "turnstile.call_id": invocation.call_id,
            },
        )
        self._open[invocation.call_id] = span

    def on_completion(self, completion: RpcCompletion) -> None:
        span = self._open.pop(completion.invocation.call_id, None)
        if span is None:
            return
        span.set_attribute("rpc.grpc.status_code", completion.status_code)
        if completion.status_code != grpc.StatusCode.OK.name:
            span.set_status(Status(StatusCode.ERROR, completion.detail))
        span.end()


def new_call_id() -> str:
    """Return a short random identifier correlating one call's log lines."""
    return secrets.token_hex(8)


def instrument_rpc_handler(
    handler: Callable[[Any, Any], Any],
    *,
    service_name: str,
    full_method: str,
    concerns: Sequence[RpcCallConcern],
) -> Callable[[Any, Any], Any]:
    """Wrap one ``(request, context)`` handler with call instrumentation.

    Aborts raised through ``context.abort`` keep the status the handler chose.
    Any other exception is logged with its traceback and surfaced as
    ``INTERNAL`` so clients never see Python error text.
    """

    @wraps(handler)
    def _instrumented(request: Any, context: Any) -> Any:
        invocation = RpcInvocation(
            call_id=new_call_id(), service_name=service_name, full_method=full_method
        )
        with log_context(
            {
                fields.CALL_ID: invocation.call_id,
                fields.RPC_SERVICE: service_name,
                fields.RPC_METHOD: full_method,
            }
        ):
            _emit(concerns, "on_invocation", invocation)
            started = perf_counter()
            status, detail = grpc.StatusCode.OK.name, ""
            try:
                return handler(request, context)
            except Exception as exc:
                code = _aborted_code(context)
                if code is not None:
                    status, detail = code.name, _aborted_details(context)
                    raise
                status, detail = grpc.StatusCode.INTERNAL.name, "internal error"
                _LOGGER.exception("unhandled exception in %s", full_method)
                context.abort(grpc.StatusCode.INTERNAL, "internal error")
                raise exc
            finally:
                _emit(
                    concerns,
                    "on_completion",
                    RpcCompletion(
                        invocation=invocation,
                        status_code=status,
                        duration_ms=(perf_counter() - started) * 1000.0,
                        detail=detail,
                    ),
                )

    return _instrumented


def _aborted_code(context: Any) -> grpc.StatusCode | None:
    """Return the status code already set on ``context`` by an abort, if any."""
    code_getter = getattr(context, "code", None)
    if not callable(code_getter):
        return None
    code = code_getter()
    if code is None or code == grpc.StatusCode.OK:
        return None
    return code


def _aborted_details(context: Any) -> str:
    details_getter = getattr(context, "details", None)
    if not callable(details_getter):
        return ""
    details = details_getter()
    if isinstance(details, bytes):
        return details.decode("utf-8", errors="replace")
    return str(details or "")


def _emit(concerns: Sequence[RpcCallConcern], hook: str, event: object) -> None:
    """Run one hook on every concern; a failing concern never fails the call."""
    for concern in concerns:
        try:
            getattr(concern, hook)(event)
        except Exception:
            _LOGGER.warning(
                "rpc instrumentation concern failed",
                exc_info=True,
                extra={fields.EVENT: hook, "concern": type(concern).__name__},
            )
