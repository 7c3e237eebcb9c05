"""Dispatch harness: register handler maps with a gRPC server.

Services are registered as plain ``{method_name: handler}`` maps. Unless a
service opts out, its handlers are composed with the per-endpoint policy for
the service's own name before the generic gRPC handler is built. Every
handler, protected or not, is wrapped with per-call instrumentation.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from concurrent import futures
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import grpc

from packages.turnstile_shared.config import CoreGrpcSettings
from packages.turnstile_shared.logging import (
    RpcCallConcern,
    RpcLoggingConcern,
    fields,
    get_logger,
    instrument_rpc_handler,
)
from services.action.rpc_auth import Handler, MiddlewareComposer, PerEndpointPolicy

_LOGGER = get_logger(__name__)


class HarnessState(str, Enum):
    """Lifecycle states; ``STOPPED`` and ``FORCE_SHUTDOWN`` are terminal."""

    CREATED = "created"
    STARTED = "started"
    STOPPED = "stopped"
    FORCE_SHUTDOWN = "force_shutdown"


_TERMINAL_STATES = frozenset({HarnessState.STOPPED, HarnessState.FORCE_SHUTDOWN})


class HarnessStateError(RuntimeError):
    """Raised when an operation is not valid in the harness's current state."""


class HarnessStartError(RuntimeError):
    """Raised when the server cannot bind its configured address."""


@dataclass(frozen=True, slots=True)
class MethodCodec:
    """Request/response (de)serializers for one method; ``None`` passes bytes through."""

    request_deserializer: Callable[[bytes], Any] | None = None
    response_serializer: Callable[[Any], bytes] | None = None


@dataclass(frozen=True, slots=True)
class ServiceDefinition:
    """One service to register: a name, its handlers and registration options."""

    service_name: str
    handlers: Mapping[str, Handler]
    package: str | None = None
    apply_auth: bool = True
    codecs: Mapping[str, MethodCodec] = field(default_factory=dict)

    @property
    def qualified_name(self) -> str:
        """Return the gRPC service name, ``package.Service`` when a package is set."""
        if self.package:
            return f"{self.package}.{self.service_name}"
        return self.service_name


ServerFactory = Callable[[CoreGrpcSettings], Any]


def default_server_factory(settings: CoreGrpcSettings) -> grpc.Server:
    """Build a synchronous gRPC server backed by a thread pool."""
    return grpc.server(futures.ThreadPoolExecutor(max_workers=settings.max_workers))


def load_server_credentials(settings: CoreGrpcSettings) -> grpc.ServerCredentials | None:
    """Return TLS credentials from configured PEM files, or ``None`` when unreadable.

    Client certificates are required when a CA bundle is configured.
    """
    try:
        private_key = settings.tls_key_path.read_bytes()
        certificate_chain = settings.tls_cert_path.read_bytes()
        root_certificates = (
            settings.tls_ca_path.read_bytes() if settings.tls_ca_path is not None else None
        )
    except OSError as exc:
        _LOGGER.warning(
            "tls material unreadable; falling back to insecure port: %s",
            exc,
            extra={
                "tls_cert_path": str(settings.tls_cert_path),
                "tls_key_path": str(settings.tls_key_path),
            },
        )
        return None
    return grpc.ssl_server_credentials(
        private_key_certificate_chain_pairs=[(private_key, certificate_chain)],
        root_certificates=root_certificates,
        require_client_auth=root_certificates is not None,
    )


class DispatchHarness:
    """Own one gRPC server and the services registered on it.

    Lifecycle: ``CREATED`` (services may be added) → ``STARTED`` →
    ``STOPPED`` or ``FORCE_SHUTDOWN``. The registered-service list is only
    written while ``CREATED``.
    """

    def __init__(
        self,
        settings: CoreGrpcSettings,
        composer: MiddlewareComposer,
        *,
        strict_policy_loading: bool = False,
        server_factory: ServerFactory = default_server_factory,
        concerns: Sequence[RpcCallConcern] | None = None,
    ) -> None:
        self._settings = settings
        self._composer = composer
        self._strict_policy_loading = strict_policy_loading
        self._server_factory = server_factory
        self._concerns = tuple(concerns) if concerns is not None else (RpcLoggingConcern(),)
        self._services: list[ServiceDefinition] = []
        self._protected: dict[str, bool] = {}
        self._server: Any = None
        self._bound_port: int | None = None
        self._state = HarnessState.CREATED

    @property
    def state(self) -> HarnessState:
        return self._state

    @property
    def bound_port(self) -> int | None:
        """Port returned by the bind call; useful when configured with port 0."""
        return self._bound_port

    @property
    def registered_services(self) -> tuple[str, ...]:
        return tuple(service.qualified_name for service in self._services)

    def add_service(self, service: ServiceDefinition) -> None:
        """Compose authorization for ``service`` and queue it for registration."""
        self._require_state(HarnessState.CREATED, operation="add_service")
        if service.qualified_name in self._protected:
            raise ValueError(f"service already registered: {service.qualified_name}")

        handlers = dict(service.handlers)
        protected = False
        if service.apply_auth:
            try:
                handlers = self._composer.compose(
                    service.handlers, PerEndpointPolicy(service_name=service.service_name)
                )
                protected = True
            except Exception:
                if self._strict_policy_loading:
                    _LOGGER.error(
                        "authorization policy load failed; refusing registration",
                        exc_info=True,
                        extra={fields.RPC_SERVICE: service.qualified_name},
                    )
                    raise
                _LOGGER.warning(
                    "authorization policy load failed; registering service unprotected",
                    exc_info=True,
                    extra={fields.RPC_SERVICE: service.qualified_name},
                )

        self._services.append(
            ServiceDefinition(
                service_name=service.service_name,
                handlers=handlers,
                package=service.package,
                apply_auth=service.apply_auth,
                codecs=service.codecs,
            )
        )
        self._protected[service.qualified_name] = protected
        _LOGGER.info(
            "service registered",
            extra={
                fields.RPC_SERVICE: service.qualified_name,
                "methods": sorted(handlers),
                "authorization_applied": protected,
            },
        )

    def start(self) -> Any:
        """Build the server, bind the configured address and start serving."""
        self._require_state(HarnessState.CREATED, operation="start")
        server = self._server_factory(self._settings)
        server.add_generic_rpc_handlers(
            tuple(self._generic_handler(service) for service in self._services)
        )

        address = self._settings.bind_address
        credentials = load_server_credentials(self._settings) if self._settings.use_tls else None
        if credentials is not None:
            port = server.add_secure_port(address, credentials)
        else:
            port = server.add_insecure_port(address)
        if port == 0:
            raise HarnessStartError(f"failed to bind gRPC server on {address}")

        server.start()
        self._server = server
        self._bound_port = port
        self._state = HarnessState.STARTED
        _LOGGER.info(
            "grpc server started",
            extra={
                "bind_address": address,
                "bound_port": port,
                "secure": credentials is not None,
                "registered_services": list(self.registered_services),
                "unprotected_services": sorted(
                    name for name, protected in self._protected.items() if not protected
                ),
            },
        )
        return server

    def wait_for_termination(self, timeout: float | None = None) -> bool:
        """Block until the server stops; ``True`` when it terminated."""
        self._require_state(HarnessState.STARTED, operation="wait_for_termination")
        return bool(self._server.wait_for_termination(timeout=timeout))

    def stop(self, grace_seconds: float | None = None) -> None:
        """Stop accepting calls and let in-flight calls finish within the grace period."""
        self._require_state(HarnessState.STARTED, operation="stop")
        grace = self._settings.shutdown_grace_seconds if grace_seconds is None else grace_seconds
        _LOGGER.info("grpc server stopping", extra={"grace_seconds": grace})
        stopped = self._server.stop(grace)
        if stopped is not None:
            stopped.wait()
        # force_shutdown may have run while waiting.
        if self._state is HarnessState.STARTED:
            self._state = HarnessState.STOPPED
        _LOGGER.info("grpc server stopped", extra={"state": self._state.value})

    def force_shutdown(self) -> None:
        """Abort in-flight calls and stop immediately."""
        self._require_state(HarnessState.STARTED, operation="force_shutdown")
        self._state = HarnessState.FORCE_SHUTDOWN
        self._server.stop(None)
        _LOGGER.warning("grpc server force shutdown")

    def _require_state(self, expected: HarnessState, *, operation: str) -> None:
        if self._state is expected:
            return
        if self._state in _TERMINAL_STATES:
            raise HarnessStateError(f"{operation} is not valid after {self._state.value}")
        raise HarnessStateError(
            f"{operation} requires state {expected.value}, harness is {self._state.value}"
        )

    def _generic_handler(self, service: ServiceDefinition) -> grpc.GenericRpcHandler:
        method_handlers = {}
        for method_name, handler in service.handlers.items():
            codec = service.codecs.get(method_name, MethodCodec())
            method_handlers[method_name] = grpc.unary_unary_rpc_method_handler(
                instrument_rpc_handler(
                    handler,
                    service_name=service.qualified_name,
                    full_method=f"/{service.qualified_name}/{method_name}",
                    concerns=self._concerns,
                ),
                request_deserializer=codec.request_deserializer,
                response_serializer=codec.response_serializer,
            )
        return grpc.method_handlers_generic_handler(service.qualified_name, method_handlers)
