from __future__ import annotations

from typing import Annotated, Any, Literal

from pydantic import Field

from kasama_ai.core.contracts.common import (
    Choice,
    InputModel,
    Minutes,
    OutputModel,
    Priority,
    Probability,
)

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")


class InsightContext(InputModel):
    relationship_status: Annotated[
        Literal["single", "dating", "committed", "married", "complicated"], Choice
    ] | None = None
    current_challenges: list[str] = Field(default_factory=list)
    recent_events: list[str] = Field(default_factory=list)
    energy_level: Annotated[Literal["low", "medium", "high"], Choice] = "medium"
    available_minutes: int = Field(default=15, ge=0, le=24 * 60)


class DailyInsightInput(InputModel):
    user_profile: dict[str, Any] = Field(default_factory=dict)
    recent_activity: list[dict[str, Any]] = Field(default_factory=list)
    current_goals: list[str] = Field(default_factory=list)
    day_of_week: Annotated[Literal[WEEKDAYS], Choice] | None = None
    insight_context: InsightContext | None = None


class GuidanceInput(InputModel):
    situation: str = Field(min_length=1)
    user_profile: dict[str, Any] = Field(default_factory=dict)
    insight_context: InsightContext | None = None


class WeeklyThemeInput(InputModel):
    current_goals: list[str] = Field(default_factory=list)
    recent_themes: list[str] = Field(default_factory=list)


InsightType = Annotated[Literal["guidance", "reflection", "celebration", "challenge", "tip"], Choice]


class DailyInsight(OutputModel):
    id: str
    type: InsightType
    title: str
    message: str
    priority: Priority
    category: str
    personalized_elements: list[str] = Field(default_factory=list)
    applicability: Probability


class DailyRecommendation(OutputModel):
    id: str
    title: str
    description: str
    estimated_time: Minutes
    priority: Priority


class DailyInsightOutput(OutputModel):
    insight: DailyInsight
    recommendations: list[DailyRecommendation] = Field(min_length=1)
    motivational_message: str
    focus_area: str
    confidence_level: Probability


class ResourceRecommendation(OutputModel):
    title: str
    type: Annotated[Literal["article", "video", "practice", "reflection"], Choice]
    estimated_time: Minutes
    relevance_score: Probability


class PersonalizedGuidance(OutputModel):
    insight: DailyInsight
    application_suggestions: list[str] = Field(min_length=1)
    contextual_tips: list[str] = Field(default_factory=list)
    follow_up_questions: list[str] = Field(default_factory=list)
    resource_recommendations: list[ResourceRecommendation] = Field(default_factory=list)


class WeeklyTheme(OutputModel):
    theme: str
    description: str
    daily_focus: list[str] = Field(min_length=1)
    practices: list[str] = Field(min_length=1)
    reflection_prompts: list[str] = Field(default_factory=list)
    expected_outcomes: list[str] = Field(default_factory=list)
