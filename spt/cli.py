# spt/cli.py
"""Typer CLI entrypoint for the sysPass permissions tool."""

from pathlib import Path
from typing import Annotated, List, Optional
from uuid import uuid4

import typer
from pydantic import TypeAdapter
from pydantic_core import PydanticSerializationError

from . import automation
from .checkpoint import FileCheckpointStore
from .config import CONFIG_FILE, AppConfig, load_config
from .errors import ConfigError, SptError
from .logger import JobLogger
from .manifest import load_manifest
from .models import AccountFilter, AccountSnapshot
from .workflows import DiscoveryWorkflow, ProvisioningWorkflow

VERSION = "0.4.0"
EXIT_CODE_ERROR = 1

app = typer.Typer(help="Permissions Tool for sysPass", rich_markup_mode=None, no_args_is_help=True)

ConfigOption = Annotated[Path, typer.Option("--config", help="settings file")]
ResumeOption = Annotated[bool, typer.Option("--resume", help="resume process from last saved progress")]


def _fail(message: str):
    typer.echo(message, err=True)
    raise typer.Exit(code=EXIT_CODE_ERROR)


def _load_config(path: Path) -> AppConfig:
    try:
        return load_config(path)
    except ConfigError as exc:
        _fail(f"couldn't load config: {exc}")


def _job_logger(config: AppConfig, command: str) -> JobLogger:
    return JobLogger(f"{command}-{uuid4()}", storage=config.logging.directory, level=config.logging.level)


def _version_callback(value: bool):
    if value:
        typer.echo(VERSION)
        raise typer.Exit()


@app.callback()
def cli_callback(
    version: Annotated[
        bool, typer.Option("--version", callback=_version_callback, is_eager=True, help="show version")
    ] = False,
) -> None:
    """Set permissions for sysPass accounts or find accounts without any."""


@app.command("get-empty")
def get_empty_command(
    resume: ResumeOption = False,
    category: Annotated[Optional[str], typer.Option("--category", help="category name equals")] = None,
    client: Annotated[Optional[str], typer.Option("--client", help="client name equals")] = None,
    login_prefix: Annotated[Optional[str], typer.Option("--login-prefix", help="login starts with")] = None,
    name_prefix: Annotated[Optional[str], typer.Option("--name-prefix", help="account name starts with")] = None,
    config: ConfigOption = Path(CONFIG_FILE),
) -> None:
    """Get accounts with empty permissions, printed as JSON."""
    cfg = _load_config(config)
    logger = _job_logger(cfg, "get-empty")
    account_filter = AccountFilter(
        category_name=category, client_name=client,
        login_prefix=login_prefix, name_prefix=name_prefix,
    )
    store = FileCheckpointStore(cfg.progress_cache.directory)

    try:
        with automation.open_browser(cfg, logger) as ui:
            result = DiscoveryWorkflow(ui, store, cfg, logger, account_filter=account_filter, resume=resume).run()
    except SptError as exc:
        logger.error("get-empty", f"{exc}")
        _fail(f"error: {exc}")

    try:
        payload = TypeAdapter(List[AccountSnapshot]).dump_json(result.results).decode("utf-8")
    except PydanticSerializationError as exc:
        logger.error("get-empty", f"couldn't serialize accounts: {exc}")
        _fail(f"error: {exc}")
    typer.echo(payload)

    if not result.outcome.succeeded:
        _fail("error: process has been interrupted due error")


@app.command("set")
def set_command(
    xml_file: Annotated[Path, typer.Option("--xml-file", help="xml file with accounts")] = Path("import.xml"),
    resume: ResumeOption = False,
    config: ConfigOption = Path(CONFIG_FILE),
) -> None:
    """Set permissions for accounts from the xml manifest."""
    if not xml_file.is_file():
        _fail(f"xml file wasn't found '{xml_file}'")

    cfg = _load_config(config)
    logger = _job_logger(cfg, "set")

    try:
        manifest = load_manifest(xml_file, logger)
        with automation.open_browser(cfg, logger) as ui:
            store = FileCheckpointStore(cfg.progress_cache.directory)
            result = ProvisioningWorkflow(ui, store, cfg, logger, manifest, resume=resume).run()
    except SptError as exc:
        logger.error("set", f"{exc}")
        _fail(f"error: {exc}")

    if not result.outcome.succeeded:
        _fail("error: process has been interrupted due error")
    typer.echo("complete")


def main():
    app()


if __name__ == "__main__":
    main()
