"""Pydantic models describing the commentary JSON returned by analysis providers."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from wealth_model import AnalysisResult, Insight


class InsightModel(BaseModel):
    model_config = ConfigDict(extra="ignore")

    title: str
    body: str
    type: Literal["celebrate", "warning", "opportunity"]

    @field_validator("type", mode="before")
    @classmethod
    def _normalize_type(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower()
        return value


class AnalysisPayloadModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    headline: str
    insights: list[InsightModel]
    one_move: str = Field(alias="oneMove")

    def to_result(self) -> AnalysisResult:
        return AnalysisResult(
            headline=self.headline,
            insights=tuple(
                Insight(title=item.title, body=item.body, type=item.type) for item in self.insights
            ),
            one_move=self.one_move,
        )
