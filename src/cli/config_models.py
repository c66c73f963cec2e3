"""Pydantic configuration models for memkeep."""

from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from agent.context import ContextBudget


class TierLimitConfig(BaseModel):
    """Capacity and max age for one retention tier."""

    max_facts: int = Field(gt=0)
    max_age_days: Optional[int] = Field(default=None, gt=0)  # None = never expires


class MemoryConfig(BaseModel):
    """Retention policy."""

    core: TierLimitConfig = Field(default_factory=lambda: TierLimitConfig(max_facts=8))
    important: TierLimitConfig = Field(
        default_factory=lambda: TierLimitConfig(max_facts=12, max_age_days=90)
    )
    context: TierLimitConfig = Field(
        default_factory=lambda: TierLimitConfig(max_facts=6, max_age_days=30)
    )
    max_total_tokens: int = Field(default=500, gt=0)
    dedup_threshold: float = 0.8
    min_confidence: float = 0.6

    @field_validator("dedup_threshold", "min_confidence")
    @classmethod
    def validate_unit_interval(cls, v: float) -> float:
        if not 0.0 <= v <= 1.0:
            raise ValueError(f"Must be between 0 and 1, got {v}")
        return v

    @model_validator(mode="after")
    def core_never_expires(self):
        if self.core.max_age_days is not None:
            raise ValueError("core tier cannot have max_age_days; core facts never expire")
        return self


class AgentConfig(BaseModel):
    """Agent context budget and tool result recall."""

    budget: ContextBudget = Field(default_factory=ContextBudget)
    recall_ttl_minutes: float = Field(default=30, gt=0)
    sweep_interval_minutes: float = Field(default=5, gt=0)


class StoreConfig(BaseModel):
    """Fact store location and I/O limits."""

    db_path: Path = Path("~/.memkeep/memory.db")
    timeout_seconds: float = Field(default=10.0, gt=0)
    max_write_attempts: int = Field(default=5, ge=1)

    @model_validator(mode="after")
    def expand_paths(self):
        """Expand ~ in db_path."""
        self.db_path = self.db_path.expanduser()
        return self


VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    json_output: bool = Field(default=False, alias="json")

    model_config = {"populate_by_name": True}

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        v_upper = v.upper()
        if v_upper not in VALID_LOG_LEVELS:
            raise ValueError(f"Invalid log level: {v}. Must be one of {VALID_LOG_LEVELS}")
        return v_upper


class MemkeepConfig(BaseModel):
    """Main configuration model."""

    memory: MemoryConfig = Field(default_factory=MemoryConfig)
    agent: AgentConfig = Field(default_factory=AgentConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def from_dict(cls, data: dict) -> "MemkeepConfig":
        """Create config from dict, accepting string paths."""
        store = data.get("store")
        if isinstance(store, dict) and isinstance(store.get("db_path"), str):
            store["db_path"] = Path(store["db_path"])
        return cls.model_validate(data)

    def to_dict(self) -> dict:
        return self.model_dump(mode="python")
