"""Canonical shape of a digital-maturity report.

Reports come from a generative model, so validation is lenient where
the intent is clear (scores as strings or floats, a single step given
as a string) and strict where the structure matters: all seven
dimensions must be present.
"""

from __future__ import annotations

import math
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from diagnostic.settings import DIMENSION_KEYS, level_for_score


class Dimension(BaseModel):
    model_config = ConfigDict(extra="ignore")

    score: int
    level: str = ""
    analysis: str = ""
    recommendation: str = ""

    @field_validator("score", mode="before")
    @classmethod
    def _clamp_score(cls, value: Any) -> int:
        score = float(value)
        if not math.isfinite(score):
            raise ValueError(f"score must be a finite number, got {value!r}")
        return max(1, min(5, round(score)))

    @model_validator(mode="after")
    def _fill_level(self) -> Dimension:
        if not self.level.strip():
            self.level = level_for_score(self.score)
        return self


class Dimensions(BaseModel):
    model_config = ConfigDict(extra="ignore")

    strategy: Dimension
    culture: Dimension
    processes: Dimension
    data: Dimension
    analytics: Dimension
    technology: Dimension
    governance: Dimension

    def scores(self) -> dict[str, int]:
        return {key: getattr(self, key).score for key in DIMENSION_KEYS}


class RoadmapItem(BaseModel):
    model_config = ConfigDict(extra="ignore")

    title: str
    impact: str = ""
    description: str = ""
    objective: str = ""
    steps: list[str] = Field(default_factory=list)

    @field_validator("steps", mode="before")
    @classmethod
    def _coerce_steps(cls, value: Any) -> list[str]:
        if value is None:
            return []
        if isinstance(value, str):
            return [value]
        return [str(step) for step in value]


class Roadmap(BaseModel):
    model_config = ConfigDict(extra="ignore")

    short_term: list[RoadmapItem] = Field(default_factory=list)
    medium_term: list[RoadmapItem] = Field(default_factory=list)
    long_term: list[RoadmapItem] = Field(default_factory=list)

    @field_validator("short_term", "medium_term", "long_term", mode="before")
    @classmethod
    def _none_is_empty(cls, value: Any) -> Any:
        return [] if value is None else value


class Report(BaseModel):
    model_config = ConfigDict(extra="ignore")

    overall_score: float | None = None
    strongest_area: str = ""
    main_opportunity: str = ""
    executive_summary: str = ""
    dimensions: Dimensions
    roadmap: Roadmap = Field(default_factory=Roadmap)

    @field_validator("overall_score", mode="before")
    @classmethod
    def _drop_non_finite(cls, value: Any) -> Any:
        # Recomputed from the dimensions below.
        if isinstance(value, float) and not math.isfinite(value):
            return None
        return value

    @model_validator(mode="after")
    def _derive_summary_fields(self) -> Report:
        scores = self.dimensions.scores()
        if self.overall_score is None:
            self.overall_score = sum(scores.values()) / len(scores)
        self.overall_score = round(max(0.0, min(5.0, float(self.overall_score))), 1)
        if not self.strongest_area.strip():
            self.strongest_area = max(DIMENSION_KEYS, key=lambda k: scores[k])
        if not self.main_opportunity.strip():
            self.main_opportunity = min(DIMENSION_KEYS, key=lambda k: scores[k])
        return self
