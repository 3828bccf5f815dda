"""Command line interface for Sitehook."""

from __future__ import annotations

import json
import logging
import pathlib
from typing import Optional

import httpx
import typer
import yaml
from dotenv import load_dotenv

from sitehook import get_version
from sitehook.config import Config, MissingSettingError, load_config
from sitehook.core import (
    CommandRunner,
    ConcurrencyPolicy,
    ProcessSupervisor,
    RebuildOrchestrator,
)
from sitehook.logging import configure_logging
from sitehook.server import create_app, serve as serve_app
from sitehook.ui import render_run

_WILDCARD_HOSTS = {"0.0.0.0", "::", ""}


def _load_environment(env_file: Optional[pathlib.Path]) -> None:
    """Load environment variables from .env files."""

    if env_file is not None:
        load_dotenv(dotenv_path=env_file, override=True)
    else:
        load_dotenv(override=False)


def _prepare_logging(
    config: Config,
    override_path: Optional[pathlib.Path],
    override_level: Optional[str],
    mirror_to_console: bool,
) -> tuple[logging.Logger, pathlib.Path]:
    """Configure logging based on configuration and overrides."""

    configured_path = override_path or config.logging.path
    configured_level = (override_level or config.logging.level).upper()
    logger = configure_logging(
        log_path=configured_path,
        level=configured_level,
        mirror_to_console=mirror_to_console,
    )
    file_handler = next((h for h in logger.handlers if hasattr(h, "baseFilename")), None)
    if file_handler is not None:
        return logger, pathlib.Path(file_handler.baseFilename)
    fallback_path = (
        pathlib.Path(configured_path) if configured_path else pathlib.Path.cwd() / "sitehook.log"
    )
    return logger, fallback_path


def build_orchestrator(config: Config, logger: logging.Logger) -> RebuildOrchestrator:
    """Wire the supervisor, command runner and orchestrator from configuration."""

    site = config.site
    if site.repository is None:
        raise MissingSettingError(["site.repository"])
    repository = site.repository.expanduser()
    if not repository.is_absolute():
        repository = pathlib.Path.cwd() / repository

    server_log = site.server_log
    if server_log is not None and not server_log.is_absolute():
        server_log = pathlib.Path.cwd() / server_log

    supervisor = ProcessSupervisor(
        command=site.serve_command,
        logger=logger,
        log_path=server_log,
        stop_timeout_seconds=site.stop_timeout_seconds,
    )
    return RebuildOrchestrator(
        repository=repository,
        supervisor=supervisor,
        runner=CommandRunner(logger=logger),
        logger=logger,
        pull_command=site.pull_command,
        generate_command=site.generate_command,
        output_subdir=site.output_subdir,
        concurrency=ConcurrencyPolicy(config.service.concurrency),
    )


def _listener_url(config: Config, path: str) -> str:
    service = config.service
    if not service.listen_ip or service.listen_port is None:
        raise typer.BadParameter(
            "Listener address is not configured; pass --url or set "
            "GIT_WEBHOOK_SERVICE_LISTEN_IP and GIT_WEBHOOK_SERVICE_LISTEN_PORT.",
            param_hint="--url",
        )
    host = "127.0.0.1" if service.listen_ip in _WILDCARD_HOSTS else service.listen_ip
    if ":" in host:
        host = f"[{host}]"
    return f"http://{host}:{service.listen_port}{path}"


app = typer.Typer(
    name="sitehook",
    help="Rebuild and re-serve a static site when a git webhook arrives.",
    no_args_is_help=True,
    add_completion=False,
)

config_app = typer.Typer(help="Configuration utilities.", no_args_is_help=True)
app.add_typer(config_app, name="config")


def _version_callback(value: bool) -> None:
    """Print the package version and exit when requested."""

    if value:
        typer.echo(get_version())
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    config: Optional[pathlib.Path] = typer.Option(
        None,
        "--config",
        metavar="PATH",
        help="Path to YAML configuration file (used exclusively).",
    ),
    env_file: Optional[pathlib.Path] = typer.Option(
        None,
        "--env-file",
        metavar="PATH",
        help="Load environment variables from .env-style file before execution.",
    ),
    log_level: Optional[str] = typer.Option(
        None,
        "--log-level",
        metavar="LEVEL",
        help="Override the configured log level (debug, info, warn, error).",
    ),
    log_path: Optional[pathlib.Path] = typer.Option(
        None,
        "--log-path",
        metavar="PATH",
        help="Override the base directory or file for log output.",
    ),
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show Sitehook version and exit.",
    ),
) -> None:
    """CLI root; loads environment, configuration and logging."""

    ctx.ensure_object(dict)

    _load_environment(env_file)

    try:
        config_obj = load_config(config)
    except (FileNotFoundError, ValueError) as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=2) from exc

    logger, log_file = _prepare_logging(
        config_obj,
        log_path,
        log_level,
        mirror_to_console=ctx.invoked_subcommand == "serve",
    )

    ctx.obj.update(
        {
            "config": config_obj,
            "config_path": config,
            "log_file": log_file,
            "logger": logger,
        }
    )


@app.command()
def serve(
    ctx: typer.Context,
    host: Optional[str] = typer.Option(None, "--host", help="Override the listen address."),
    port: Optional[int] = typer.Option(
        None, "--port", min=1, max=65535, help="Override the listen port."
    ),
) -> None:
    """Start the site server and listen for webhooks until interrupted."""

    config: Config = ctx.obj["config"]
    logger: logging.Logger = ctx.obj["logger"]

    if host is not None:
        config.service.listen_ip = host
    if port is not None:
        config.service.listen_port = port

    try:
        config.require_service()
    except MissingSettingError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=2) from exc

    orchestrator = build_orchestrator(config, logger)
    if not orchestrator.repository.is_dir():
        typer.echo(f"Repository path {orchestrator.repository} is not a directory.", err=True)
        raise typer.Exit(code=2)

    application = create_app(
        orchestrator,
        logger,
        trigger_path=config.service.trigger_path,
        exit_on_failure=config.service.exit_on_failure,
    )
    logger.info(
        "Listening for incoming HTTP POST requests on %s:%s%s (log=%s)",
        config.service.listen_ip,
        config.service.listen_port,
        config.service.trigger_path,
        ctx.obj["log_file"],
    )
    serve_app(application, config.service.listen_ip, config.service.listen_port)


@app.command()
def trigger(
    ctx: typer.Context,
    url: Optional[str] = typer.Option(
        None, "--url", metavar="URL", help="Trigger endpoint (default: derived from config)."
    ),
    timeout: float = typer.Option(10.0, "--timeout", min=0.1, help="Request timeout in seconds."),
) -> None:
    """Ask a running listener to rebuild the site."""

    config: Config = ctx.obj["config"]
    logger: logging.Logger = ctx.obj["logger"]
    target = url or _listener_url(config, config.service.trigger_path)

    try:
        response = httpx.post(target, content=b"", timeout=timeout)
    except httpx.HTTPError as exc:
        logger.error("Trigger request to %s failed: %s", target, exc)
        typer.echo(f"Unable to reach {target}: {exc}", err=True)
        raise typer.Exit(code=1) from exc

    if response.is_error:
        typer.echo(f"Listener answered {response.status_code}: {response.text}", err=True)
        raise typer.Exit(code=1)

    logger.info("Triggered rebuild via %s (status %s).", target, response.status_code)
    typer.echo(f"Rebuild accepted by {target}.")


@app.command()
def status(
    ctx: typer.Context,
    url: Optional[str] = typer.Option(
        None, "--url", metavar="URL", help="Health endpoint (default: derived from config)."
    ),
    as_json: bool = typer.Option(False, "--json", help="Print the raw health document."),
    timeout: float = typer.Option(10.0, "--timeout", min=0.1, help="Request timeout in seconds."),
) -> None:
    """Show the listener health and the outcome of the last rebuild."""

    config: Config = ctx.obj["config"]
    target = url or _listener_url(config, "/health")

    try:
        response = httpx.get(target, timeout=timeout)
        response.raise_for_status()
        health = response.json()
    except (httpx.HTTPError, ValueError) as exc:
        typer.echo(f"Unable to read health from {target}: {exc}", err=True)
        raise typer.Exit(code=1) from exc

    if as_json:
        typer.echo(json.dumps(health, indent=2))
    else:
        render_run(health)

    if health.get("status") != "ok":
        raise typer.Exit(code=1)


@config_app.command("show")
def config_show(
    ctx: typer.Context,
    format: str = typer.Option(
        "yaml",
        "--format",
        help="Output format (yaml or json).",
    ),
    paths: bool = typer.Option(
        False,
        "--paths",
        help="List the configuration inputs that were loaded.",
    ),
) -> None:
    """Show the effective configuration for this invocation."""

    config: Config = ctx.obj["config"]

    normalized_format = format.strip().lower()
    if normalized_format not in {"yaml", "json"}:
        raise typer.BadParameter("Format must be 'yaml' or 'json'.", param_hint="--format")

    if paths:
        typer.echo("Loaded configuration from:", err=True)
        for entry in config.loaded_from or ("(built-in defaults)",):
            typer.echo(f"- {entry}", err=True)

    data = config.model.model_dump(mode="json")
    if normalized_format == "json":
        typer.echo(json.dumps(data, indent=2))
    else:
        typer.echo(yaml.safe_dump(data, sort_keys=False))
