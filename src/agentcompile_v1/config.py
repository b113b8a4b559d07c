from __future__ import annotations

from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .utils import read_json

DEFAULT_PROMOTABLE_TOOLS = ["Read", "Write", "Bash", "Glob", "Grep", "Edit", "WebFetch"]


class DeterminismPolicy(BaseModel):
    min_sample_size: int = Field(default=3, ge=1)
    deterministic_threshold: float = Field(default=0.95, ge=0.0, le=1.0)
    semi_deterministic_threshold: float = Field(default=0.7, ge=0.0, le=1.0)

    @model_validator(mode="after")
    def _check_order(self) -> "DeterminismPolicy":
        if self.semi_deterministic_threshold > self.deterministic_threshold:
            raise ValueError("semi_deterministic_threshold exceeds deterministic_threshold")
        return self


class DetectorPolicy(BaseModel):
    min_determinism: float = Field(default=0.95, ge=0.0, le=1.0)
    min_confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    chars_per_token: int = Field(default=4, gt=0)
    promotable_tools: List[str] = Field(default_factory=lambda: list(DEFAULT_PROMOTABLE_TOOLS))
    determinism_weight: float = Field(default=0.35, ge=0.0)
    frequency_weight: float = Field(default=0.35, ge=0.0)
    token_weight: float = Field(default=0.30, ge=0.0)
    frequency_saturation: int = Field(default=100, gt=0)
    token_saturation: int = Field(default=500, gt=0)

    @model_validator(mode="after")
    def _check_weights(self) -> "DetectorPolicy":
        if self.determinism_weight + self.frequency_weight + self.token_weight <= 0:
            raise ValueError("composite weights must not all be zero")
        return self


class GatekeeperPolicy(BaseModel):
    min_determinism: float = Field(default=0.95, ge=0.0, le=1.0)
    min_confidence: float = Field(default=0.85, ge=0.0, le=1.0)
    min_observations: int = Field(default=5, ge=0)
    min_f1: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    min_accuracy: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    min_mcc: Optional[float] = Field(default=None, ge=0.0, le=1.0)


class DriftPolicy(BaseModel):
    enabled: bool = True
    sensitivity: int = Field(default=3, ge=1)


class RetentionPolicy(BaseModel):
    max_entries: int = Field(default=100, ge=1)
    max_age_days: int = Field(default=30, ge=1)


class RateLimitPolicy(BaseModel):
    max_per_session: int = Field(default=10, ge=1)
    max_per_hour: int = Field(default=60, ge=1)


class TieringPolicy(BaseModel):
    min_score: float = Field(default=0.3, ge=0.0, le=1.0)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="AGENTCOMPILE_", env_nested_delimiter="__")

    store_root: Optional[str] = None
    top_n: int = Field(default=5, ge=1)
    determinism: DeterminismPolicy = Field(default_factory=DeterminismPolicy)
    detector: DetectorPolicy = Field(default_factory=DetectorPolicy)
    gatekeeper: GatekeeperPolicy = Field(default_factory=GatekeeperPolicy)
    drift: DriftPolicy = Field(default_factory=DriftPolicy)
    retention: RetentionPolicy = Field(default_factory=RetentionPolicy)
    rate_limit: RateLimitPolicy = Field(default_factory=RateLimitPolicy)
    tiering: TieringPolicy = Field(default_factory=TieringPolicy)


def load_settings(config: Optional[Path]) -> Settings:
    if config is None:
        return Settings()
    data = read_json(config)
    if not isinstance(data, dict):
        raise ValueError(f"config must be a JSON object: {config}")
    return Settings(**data)
