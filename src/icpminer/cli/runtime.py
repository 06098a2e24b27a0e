"""
Shared command bootstrap: config, logging, database engine.
"""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console

from icpminer.core.config import AppConfig, ConfigError, load_app_config

err_console = Console(stderr=True)


def bootstrap(config_path: Path | None = None, *, with_logging: bool = True) -> AppConfig:
    """Load app config, configure logging and bind the database engine.

    Exits with status 1 on an invalid config file.
    """
    from icpminer.core.logging import setup_logging
    from icpminer.persistence.db import get_engine

    try:
        config = load_app_config(config_path)
    except ConfigError as e:
        err_console.print(f"[red]Invalid configuration:[/red] {e}")
        raise typer.Exit(1)

    if with_logging:
        setup_logging(
            level=config.logging.level,
            log_file=config.logging.file,
            json_format=config.logging.json_format,
            rich_console=config.logging.rich_console,
        )

    get_engine(config.database.url, echo=config.database.echo, pool_size=config.database.pool_size)
    return config
