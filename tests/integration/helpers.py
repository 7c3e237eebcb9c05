"""Shared helpers for integration tests."""

from __future__ import annotations

from typing import Any

import grpc


def call_unary(
    port: int, method: str, payload: bytes = b"", *, credential: str | None = None
) -> Any:
    """Invoke one raw-bytes unary method on ``127.0.0.1:port``."""
    metadata = ()
    if credential is not None:
        metadata = (("service-authorization", f"Bearer {credential}"),)
    with grpc.insecure_channel(f"127.0.0.1:{port}") as channel:
        stub = channel.unary_unary(method)
        return stub(payload, metadata=metadata, timeout=5.0)
