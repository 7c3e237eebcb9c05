"""Key provisioning CLI for Turnstile implemented with Typer."""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Callable

import typer

from packages.turnstile_shared.config import load_settings
from packages.turnstile_shared.errors import exception_to_error
from services.action.rpc_auth import (
    CallerNotFoundError,
    IssuedCredential,
    RpcAuthComponents,
    build_rpc_auth,
)
from services.state.access_authority import (
    AccessAuthorityRuntime,
    CredentialSummary,
    StoreError,
    utc_now,
)

SUCCESS_EXIT_CODE = 0
DOMAIN_ERROR_EXIT_CODE = 3
STORE_ERROR_EXIT_CODE = 4


@dataclass(frozen=True)
class CliConfig:
    """Global CLI options shared by every command."""

    config_path: Path | None
    as_json: bool


@dataclass(frozen=True)
class CommandRuntime:
    """Authorization components plus the callable that releases them."""

    components: RpcAuthComponents
    dispose: Callable[[], None]


def open_runtime(cfg: CliConfig) -> CommandRuntime:
    """Build SQL-backed authorization components for one command."""
    settings = load_settings(config_path=cfg.config_path)
    runtime = AccessAuthorityRuntime.from_settings(settings)
    components = build_rpc_auth(settings=settings, repository=runtime.repository())

    def _dispose() -> None:
        components.close()
        runtime.dispose()

    return CommandRuntime(components=components, dispose=_dispose)


def _serialize(value: Any) -> Any:
    """Convert result objects to JSON-serializable structures."""
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, (list, tuple)):
        return [_serialize(item) for item in value]
    if isinstance(value, dict):
        return {str(key): _serialize(item) for key, item in value.items()}
    if hasattr(value, "model_dump"):
        return _serialize(value.model_dump(mode="python"))
    return str(value)


def _emit_output(result: Any, as_json: bool, render: Callable[[Any], str]) -> None:
    if as_json:
        typer.echo(json.dumps(_serialize(result), sort_keys=True, separators=(",", ":")))
        return
    typer.echo(render(result))


def _emit_error(exc: Exception, as_json: bool) -> None:
    """Render mapped errors to stderr with their normalized error code."""
    detail = exception_to_error(exc)
    if as_json:
        typer.echo(
            json.dumps({"error": str(exc), "detail": detail.as_document()}, sort_keys=True),
            err=True,
        )
        return
    typer.echo(f"error: {exc} [{detail.code}]", err=True)


def _run_command(
    cfg: CliConfig,
    invoke: Callable[[RpcAuthComponents], Any],
    render: Callable[[Any], str],
) -> None:
    """Execute one key-management call and map outputs/errors to exit codes."""
    runtime = open_runtime(cfg)
    try:
        result = invoke(runtime.components)
    except (CallerNotFoundError, ValueError) as exc:
        _emit_error(exc, cfg.as_json)
        raise typer.Exit(code=DOMAIN_ERROR_EXIT_CODE) from exc
    except StoreError as exc:
        _emit_error(exc, cfg.as_json)
        raise typer.Exit(code=STORE_ERROR_EXIT_CODE) from exc
    finally:
        runtime.dispose()

    _emit_output(result, cfg.as_json, render)
    raise typer.Exit(code=SUCCESS_EXIT_CODE)


def _require_config(ctx: typer.Context) -> CliConfig:
    """Return required CLI config from Typer context."""
    config = ctx.obj
    if not isinstance(config, CliConfig):
        raise RuntimeError("CLI configuration not initialized")
    return config


def _render_issued(issued: IssuedCredential, metadata_key: str) -> str:
    return "\n".join(
        [
            f"credential id: {issued.credential_id}",
            f"expires at:    {issued.expires_at.isoformat()}",
            f"secret:        {issued.secret_value}",
            "",
            "Send it as gRPC metadata:",
            f"  {metadata_key}: Bearer {issued.secret_value}",
            "",
            "The secret is not stored in a readable form and will not be shown again.",
        ]
    )


def _render_summaries(items: tuple[CredentialSummary, ...]) -> str:
    if not items:
        return "no credentials"
    lines = []
    for item in items:
        if item.revoked:
            status = "revoked"
        elif item.expires_at <= utc_now():
            status = "expired"
        else:
            status = "active"
        last_used = item.last_used_at.isoformat() if item.last_used_at else "never"
        lines.append(
            f"{item.id}  {item.fingerprint}...  {status:<7}  "
            f"expires {item.expires_at.isoformat()}  last used {last_used}"
        )
    return "\n".join(lines)


def _render_summary(item: CredentialSummary) -> str:
    return f"{item.id} now expires {item.expires_at.isoformat()}"


app = typer.Typer(no_args_is_help=True, help="Turnstile credential provisioning")


@app.callback()
def main(
    ctx: typer.Context,
    config: Path | None = typer.Option(
        None,
        envvar="TURNSTILE_CONFIG_FILE",
        help="Path to turnstile.yaml",
    ),
    as_json: bool = typer.Option(False, "--json", help="Emit JSON output"),
) -> None:
    """Store global options for all commands."""
    ctx.obj = CliConfig(config_path=config, as_json=as_json)


@app.command("issue")
def issue_command(
    ctx: typer.Context,
    caller: str = typer.Option(..., help="Caller (service) name that owns the key"),
    days: int | None = typer.Option(None, min=1, help="Validity in days"),
) -> None:
    """Issue a rotating API key and print it once."""
    cfg = _require_config(ctx)
    metadata_keys: list[str] = []

    def _issue(components: RpcAuthComponents) -> IssuedCredential:
        metadata_keys.append(components.settings.metadata_key)
        return components.keys.issue(caller, validity_days=days)

    _run_command(cfg, _issue, lambda issued: _render_issued(issued, metadata_keys[0]))


@app.command("revoke")
def revoke_command(
    ctx: typer.Context, secret: str = typer.Argument(..., help="API key to revoke")
) -> None:
    """Revoke an API key; revoking twice is not an error."""
    cfg = _require_config(ctx)
    _run_command(
        cfg,
        lambda components: components.keys.revoke(secret),
        lambda outcome: outcome.value.replace("_", " "),
    )


@app.command("list")
def list_command(
    ctx: typer.Context,
    caller: str = typer.Option(..., help="Caller (service) name"),
) -> None:
    """List a caller's keys by fingerprint."""
    cfg = _require_config(ctx)
    _run_command(
        cfg,
        lambda components: components.keys.list_credentials(caller),
        _render_summaries,
    )


@app.command("extend")
def extend_command(
    ctx: typer.Context,
    credential_id: str = typer.Argument(..., help="Credential id from `list`"),
    days: int = typer.Option(..., min=1, help="New validity in days from now"),
) -> None:
    """Move a key's expiry to ``days`` from now."""
    cfg = _require_config(ctx)

    def _extend(components: RpcAuthComponents) -> CredentialSummary:
        summary = components.keys.reset_expiry(
            credential_id, utc_now() + timedelta(days=days)
        )
        if summary is None:
            raise ValueError(f"credential not found: {credential_id}")
        return summary

    _run_command(cfg, _extend, _render_summary)


@app.command("token")
def token_command(
    ctx: typer.Context,
    caller: str = typer.Option(..., help="Caller (service) name used as subject"),
    minutes: int = typer.Option(60, min=1, help="Token lifetime in minutes"),
) -> None:
    """Sign a short-lived legacy token for testing."""
    cfg = _require_config(ctx)
    _run_command(
        cfg,
        lambda components: components.keys.sign_token(caller, timedelta(minutes=minutes)),
        str,
    )


if __name__ == "__main__":
    app()
