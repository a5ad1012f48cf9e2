"""
Command line interface for layerconf.

Inspect merged configuration, encrypt configuration files and follow hot
reloads from a shell.
"""

import asyncio
import json
import logging
import sys
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional

import typer
import yaml

from .core.exceptions import ConfigError
from .infrastructure.config.crypto import ConfigCrypto
from .infrastructure.config.manager import Config
from .infrastructure.config.models import DEFAULT_ENCRYPTED_SUFFIX, LoadOptions, LoggingConfig
from .infrastructure.logging.setup import setup_logging

cli = typer.Typer(
    name="layerconf",
    help="Layered configuration loader with includes, encryption and hot reload"
)

logger = logging.getLogger(__name__)

AES_KEY_ENV = "LAYERCONF_AES_KEY"


def _parse_assignments(assignments: List[str]) -> Dict[str, Any]:
    """Parse ``key=value`` pairs, reading values as YAML scalars."""
    flags: Dict[str, Any] = {}
    for item in assignments:
        key, sep, raw = item.partition("=")
        if not sep or not key:
            raise typer.BadParameter(f"expected KEY=VALUE, got {item!r}", param_hint="--set")
        try:
            flags[key] = yaml.safe_load(raw) if raw else ""
        except yaml.YAMLError:
            flags[key] = raw
    return flags


def _dump(value: Any, output_format: str) -> str:
    if output_format == "json":
        return json.dumps(value, indent=2, sort_keys=True, default=str)
    if isinstance(value, (dict, list)):
        return yaml.safe_dump(value, default_flow_style=False, sort_keys=True).rstrip("\n")
    return "" if value is None else str(value)


def _options(
    include: bool,
    aes_key: Optional[str],
    suffix: str,
    **kwargs: Any
) -> LoadOptions:
    return LoadOptions(
        enable_include=include,
        aes_key=aes_key.encode("utf-8") if aes_key else None,
        encrypted_suffix=suffix,
        **kwargs
    )


@cli.command()
def show(
    config_file: Path = typer.Argument(..., help="Entry configuration file"),
    include: bool = typer.Option(
        False, "--include/--no-include", help="Follow include keys"
    ),
    aes_key: Optional[str] = typer.Option(
        None, "--aes-key", envvar=AES_KEY_ENV, help="AES key for encrypted files"
    ),
    suffix: str = typer.Option(
        DEFAULT_ENCRYPTED_SUFFIX, "--suffix", help="Suffix marking encrypted files"
    ),
    assignments: List[str] = typer.Option(
        [], "--set", "-s", help="Override a setting, KEY=VALUE"
    ),
    key: Optional[str] = typer.Option(
        None, "--key", "-k", help="Print only this dotted key"
    ),
    output_format: str = typer.Option(
        "yaml", "--format", "-f", help="Output format (yaml/json)"
    ),
    log_level: str = typer.Option(
        "WARNING", "--log-level", help="Logging level"
    )
) -> None:
    """Print the merged configuration."""
    setup_logging(LoggingConfig(level=log_level.upper()))

    cfg = Config()
    try:
        chain = cfg.load_from_file(config_file, _options(include, aes_key, suffix))
    except ConfigError as e:
        typer.echo(f"Error loading configuration: {e}", err=True)
        sys.exit(1)

    cfg.bind_flags(_parse_assignments(assignments))
    logger.info(f"Merged files: {chain}")

    value = cfg.get(key) if key else cfg.all_settings()
    typer.echo(_dump(value, output_format))


@cli.command()
def encrypt(
    input_file: Path = typer.Argument(..., help="Plaintext configuration file"),
    output: Optional[Path] = typer.Option(
        None, "--output", "-o", help="Encrypted file, defaults to INPUT + suffix"
    ),
    aes_key: str = typer.Option(
        ..., "--aes-key", envvar=AES_KEY_ENV, help="AES key, 16, 24 or 32 bytes"
    ),
    suffix: str = typer.Option(
        DEFAULT_ENCRYPTED_SUFFIX, "--suffix", help="Suffix for the default output name"
    )
) -> None:
    """Encrypt a configuration file."""
    try:
        crypto = ConfigCrypto(aes_key.encode("utf-8"))
        written = crypto.encrypt_file(input_file, output, suffix)
    except ConfigError as e:
        typer.echo(f"Error encrypting configuration: {e}", err=True)
        sys.exit(1)

    typer.echo(f"Encrypted configuration saved to {written}")


@cli.command()
def watch(
    config_file: Path = typer.Argument(..., help="Entry configuration file"),
    include: bool = typer.Option(
        False, "--include/--no-include", help="Follow include keys"
    ),
    aes_key: Optional[str] = typer.Option(
        None, "--aes-key", envvar=AES_KEY_ENV, help="AES key for encrypted files"
    ),
    suffix: str = typer.Option(
        DEFAULT_ENCRYPTED_SUFFIX, "--suffix", help="Suffix marking encrypted files"
    ),
    key: Optional[str] = typer.Option(
        None, "--key", "-k", help="Print only this dotted key after each reload"
    ),
    log_level: str = typer.Option(
        "INFO", "--log-level", help="Logging level"
    )
) -> None:
    """Load a configuration and print it again after every change."""
    setup_logging(LoggingConfig(level=log_level.upper()))

    cfg = Config()
    stop = threading.Event()

    def on_change(event: Any) -> None:
        typer.echo(f"# reloaded after change to {event.src_path}")
        typer.echo(_dump(cfg.get(key) if key else cfg.all_settings(), "yaml"))

    options = _options(
        include, aes_key, suffix,
        watch_modify=True, watch_callback=on_change, watch_cancel=stop
    )
    try:
        cfg.load_from_file(config_file, options)
    except ConfigError as e:
        typer.echo(f"Error loading configuration: {e}", err=True)
        sys.exit(1)

    typer.echo(_dump(cfg.get(key) if key else cfg.all_settings(), "yaml"))
    try:
        while not stop.wait(1.0):
            pass
    except KeyboardInterrupt:
        logger.info("Watch interrupted by user")
    finally:
        stop.set()


@cli.command()
def remote(
    url: str = typer.Argument(..., help="Config server url"),
    app: str = typer.Argument(..., help="Application name"),
    profile: str = typer.Argument(..., help="Profile"),
    label: str = typer.Argument(..., help="Label (branch)"),
    raw_key: Optional[str] = typer.Option(
        None, "--raw-key", help="Load the YAML document stored under this key"
    ),
    output_format: str = typer.Option(
        "yaml", "--format", "-f", help="Output format (yaml/json)"
    ),
    log_level: str = typer.Option(
        "WARNING", "--log-level", help="Logging level"
    )
) -> None:
    """Print configuration fetched from a Spring Cloud Config server."""
    setup_logging(LoggingConfig(level=log_level.upper()))

    cfg = Config()
    try:
        if raw_key:
            asyncio.run(cfg.load_from_config_server_with_raw_yaml(url, app, profile, label, raw_key))
        else:
            asyncio.run(cfg.load_from_config_server(url, app, profile, label))
    except ConfigError as e:
        typer.echo(f"Error loading remote configuration: {e}", err=True)
        sys.exit(1)

    typer.echo(_dump(cfg.all_settings(), output_format))


def main() -> None:
    """Main entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
