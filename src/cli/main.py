"""CLI entry point for memkeep."""

import sys
from pathlib import Path

import click

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from cli.commands import memory
from cli.config import load_config_model
from cli.logging_config import setup_logging


@click.group()
@click.version_option(version="0.1.0")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
def cli(verbose: bool):
    """memkeep - per-user memory retention for chat assistants."""
    try:
        log_cfg = load_config_model().logging
        level, json_mode = log_cfg.level, log_cfg.json_output
    except ValueError:
        level, json_mode = "INFO", False
    setup_logging(json_mode=json_mode, level="DEBUG" if verbose else level)


cli.add_command(memory)


if __name__ == "__main__":
    cli()
