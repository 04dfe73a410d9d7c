"""Runtime settings, read from the environment (prefix LAND_VERIFIER_)."""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .matching import COMPARED_FIELDS

DEFAULT_DATE_FORMATS = ["%d/%m/%Y", "%d-%m-%Y", "%Y-%m-%d", "%d.%m.%Y"]


class Settings(BaseSettings):
    """Verification engine settings."""

    database_url: str = "sqlite:///data/verification.db"
    log_level: str = "INFO"

    # Scoring
    pass_threshold: float = 70.0
    field_weights: dict[str, float] = Field(default_factory=dict)  # Empty = equal weights

    # Date-of-birth comparison: False keeps the legacy textual comparison
    strict_date_equality: bool = False
    date_formats: list[str] = Field(default_factory=lambda: list(DEFAULT_DATE_FORMATS))

    # JSON file of demo records for the CLI
    reference_data_path: Optional[str] = None

    model_config = SettingsConfigDict(
        env_prefix="LAND_VERIFIER_",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("field_weights")
    @classmethod
    def _known_fields_only(cls, value: dict[str, float]) -> dict[str, float]:
        unknown = sorted(set(value) - set(COMPARED_FIELDS))
        if unknown:
            raise ValueError(f"Unknown fields in field_weights: {', '.join(unknown)}")
        negative = sorted(name for name, weight in value.items() if weight < 0)
        if negative:
            raise ValueError(f"Negative weights for: {', '.join(negative)}")
        return value

    @field_validator("pass_threshold")
    @classmethod
    def _percentage(cls, value: float) -> float:
        if not 0.0 <= value <= 100.0:
            raise ValueError("pass_threshold must be between 0 and 100")
        return value


@lru_cache
def get_settings() -> Settings:
    return Settings()
