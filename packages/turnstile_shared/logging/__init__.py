"""Public logging API for Turnstile.

Wraps Python's ``logging`` module with stdout defaults, ``contextvars``-based
structured context and per-call RPC instrumentation.
"""

from . import fields
from .config import configure_logging, get_logger
from .context import bind_context, clear_context, get_context, log_context
from .rpc_calls import (
    RpcCallConcern,
    RpcCompletion,
    RpcInvocation,
    RpcLoggingConcern,
    RpcTracingConcern,
    instrument_rpc_handler,
)

__all__ = [
    "bind_context",
    "fields",
    "clear_context",
    "configure_logging",
    "get_context",
    "get_logger",
    "instrument_rpc_handler",
    "log_context",
    "RpcCallConcern",
    "RpcCompletion",
    "RpcInvocation",
    "RpcLoggingConcern",
    "RpcTracingConcern",
]
