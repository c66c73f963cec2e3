"""Shared CLI utilities."""

import sys
from pathlib import Path
from typing import Optional

import structlog
from rich.console import Console

console = Console()
logger = structlog.get_logger()


def get_components(config_path: Optional[Path] = None) -> dict:
    """Initialize the memory components from config."""
    from cli.config import load_config_model
    from memory import FactStore, MemoryCleaner, MemoryLoader, MemoryPipeline, TierPolicy

    try:
        config_model = load_config_model(config_path)
    except ValueError as e:
        console.print(f"[red]Config error:[/] {e}")
        sys.exit(1)

    policy = TierPolicy.from_config(config_model.memory)
    store = FactStore(
        config_model.store.db_path,
        policy=policy,
        timeout=config_model.store.timeout_seconds,
        max_write_attempts=config_model.store.max_write_attempts,
    )
    cleaner = MemoryCleaner(store, policy)

    return {
        "config_model": config_model,
        "policy": policy,
        "store": store,
        "cleaner": cleaner,
        "loader": MemoryLoader(store),
        "pipeline": MemoryPipeline(store, cleaner),
    }
