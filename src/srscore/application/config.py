from datetime import timedelta, tzinfo
from pathlib import Path
from typing import Any, Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from srscore.domain import constants as c

CONFIG_FILES = [
    Path.home() / ".config/srscore/config.toml",
    Path.home() / ".srscore.toml",
]


class SchedulerSettings(BaseModel):
    """
    Tunable constants of the scheduling algorithm.

    The defaults mirror domain.constants; every value can be overridden from
    the config file or from SRSCORE_SCHEDULER__* environment variables.
    """

    # Learning ladder, shared by Learning and Relearning
    learning_steps_minutes: list[float] = Field(
        default_factory=lambda: list(c.LEARNING_STEPS_MINUTES)
    )
    graduating_interval_days: float = c.GRADUATING_INTERVAL_DAYS
    easy_interval_days: float = c.EASY_INTERVAL_DAYS
    relearning_interval_days: float = c.RELEARNING_INTERVAL_DAYS
    relearning_easy_interval_days: float = c.RELEARNING_EASY_INTERVAL_DAYS

    # Ease
    default_ease: float = c.DEFAULT_EASE
    min_ease: float = c.MIN_EASE
    max_ease: float | None = None
    again_penalty: float = c.EASE_PENALTY_AGAIN
    hard_penalty: float = c.EASE_PENALTY_HARD
    easy_ease_bonus: float = c.EASE_BONUS_EASY

    # Review intervals
    hard_factor: float = c.HARD_FACTOR
    easy_bonus: float = c.EASY_BONUS
    max_interval_days: int = c.MAX_INTERVAL_DAYS
    fuzz_factor: float = c.FUZZ_FACTOR
    fuzz_seed: int | None = None

    # Selection
    daily_new_limit: int | None = None  # User-wide cap on top of per-deck caps

    @field_validator("learning_steps_minutes")
    @classmethod
    def validate_ladder(cls, v: list[float]) -> list[float]:
        if not v:
            raise ValueError("learning ladder must have at least one step")
        if any(step <= 0 for step in v):
            raise ValueError("learning steps must be positive")
        return v

    @field_validator(
        "graduating_interval_days",
        "easy_interval_days",
        "relearning_interval_days",
        "relearning_easy_interval_days",
        "hard_factor",
        "easy_bonus",
    )
    @classmethod
    def validate_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("must be positive")
        return v

    @field_validator("again_penalty", "hard_penalty", "easy_ease_bonus")
    @classmethod
    def validate_non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError("must not be negative")
        return v

    @field_validator("fuzz_factor")
    @classmethod
    def validate_fuzz(cls, v: float) -> float:
        if not 0 <= v < 1:
            raise ValueError("fuzz_factor must be in [0, 1)")
        return v

    @field_validator("max_interval_days")
    @classmethod
    def validate_max_interval(cls, v: int) -> int:
        if v < 1:
            raise ValueError("max_interval_days must be at least 1")
        return v

    @field_validator("daily_new_limit")
    @classmethod
    def validate_daily_new_limit(cls, v: int | None) -> int | None:
        if v is not None and v < 0:
            raise ValueError("daily_new_limit must not be negative")
        return v

    @model_validator(mode="after")
    def validate_ease_bounds(self) -> "SchedulerSettings":
        if self.min_ease <= 0:
            raise ValueError("min_ease must be positive")
        if self.default_ease < self.min_ease:
            raise ValueError("default_ease must be >= min_ease")
        if self.max_ease is not None and self.max_ease < self.default_ease:
            raise ValueError("max_ease must be >= default_ease")
        return self

    @property
    def ladder(self) -> tuple[timedelta, ...]:
        """The learning ladder as durations."""
        return tuple(timedelta(minutes=m) for m in self.learning_steps_minutes)


class AppConfig(BaseSettings):
    """
    Configuration model for srscore.
    Supports loading from:
    1. Environment variables (SRSCORE_*)
    2. Config file (~/.config/srscore/config.toml)
    3. Manual overrides (CLI)
    """

    model_config = SettingsConfigDict(
        env_prefix="SRSCORE_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    # Storage
    backend: Literal["memory", "sqlite"] = "sqlite"
    database_path: Path = Field(
        default_factory=lambda: Path.home() / ".local/share/srscore/srscore.db"
    )

    # Learner
    user_id: str = "local"
    timezone: str = "UTC"

    # Queries
    default_queue_limit: int = c.DEFAULT_QUEUE_LIMIT
    history_days: int = c.DEFAULT_HISTORY_DAYS

    scheduler: SchedulerSettings = Field(default_factory=SchedulerSettings)

    verbose: int = 1

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        from pydantic_settings import TomlConfigSettingsSource

        # Find the first existing file
        toml_file = None
        for f in CONFIG_FILES:
            if f.exists():
                toml_file = f
                break

        # Earlier sources win: CLI overrides, then env, then the file
        if toml_file:
            return (
                init_settings,
                env_settings,
                TomlConfigSettingsSource(settings_cls, toml_file=toml_file),
            )
        return (init_settings, env_settings)

    @field_validator("database_path", mode="before")
    @classmethod
    def resolve_database_path(cls, v: Any) -> Path:
        return Path(v).expanduser()

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"unknown timezone: {v}") from e
        return v

    @field_validator("default_queue_limit", "history_days")
    @classmethod
    def validate_positive_count(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("must be positive")
        return v

    @property
    def tz(self) -> tzinfo:
        return ZoneInfo(self.timezone)


def resolve_config(cli_overrides: dict[str, Any] | None = None) -> AppConfig:
    """
    Multi-layered configuration resolution.
    1. Defaults in AppConfig
    2. ~/.config/srscore/config.toml (if exists)
    3. Environment variables (SRSCORE_*)
    4. cli_overrides (passed from Typer)
    """
    # Typer passes None for options the user did not set
    overrides = {k: v for k, v in (cli_overrides or {}).items() if v is not None}
    return AppConfig(**overrides)
