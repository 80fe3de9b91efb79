from __future__ import annotations

from typing import Annotated, Any, Literal

from pydantic import Field

from kasama_ai.core.contracts.common import (
    Choice,
    Count,
    InputModel,
    Minutes,
    OutputModel,
    Percent,
    Priority,
    Probability,
    Rating,
    Score,
)


class ActivityRecord(InputModel):
    practice_id: str
    completed_at: str  # ISO date or datetime
    completed: bool = True
    rating: float | None = Field(default=None, ge=1, le=5)
    duration_minutes: int = Field(default=0, ge=0)
    category: str | None = None


class ProgressAnalysisInput(InputModel):
    timeframe: Annotated[Literal["week", "month", "quarter"], Choice] = "week"
    activities: list[ActivityRecord] = Field(default_factory=list)
    goals: list[str] = Field(default_factory=list)
    focus_areas: list[str] = Field(default_factory=list)


class StreakInput(InputModel):
    activities: list[ActivityRecord] = Field(default_factory=list)
    as_of: str | None = None  # ISO date; defaults to the latest activity date


class ProgressSnapshot(InputModel):
    period: str
    completion_rate: float = Field(ge=0, le=1)
    average_rating: float | None = Field(default=None, ge=1, le=5)
    session_minutes: int = Field(default=0, ge=0)


class TrendForecastInput(InputModel):
    history: list[ProgressSnapshot] = Field(min_length=1)
    goals: list[str] = Field(default_factory=list)


EngagementLevel = Annotated[Literal["low", "medium", "high"], Choice]


class ProgressMetrics(OutputModel):
    current_streak: Count
    longest_streak: Count
    completion_rate: Probability
    average_rating: Rating
    total_session_minutes: Count
    improvement_rate: Percent
    consistency_score: Probability
    engagement_level: EngagementLevel


class ProgressPattern(OutputModel):
    type: Annotated[Literal["consistency", "improvement", "decline", "plateau", "engagement"], Choice]
    description: str
    confidence: Probability
    impact: Annotated[Literal["positive", "neutral", "negative"], Choice]


class Achievement(OutputModel):
    id: str
    title: str
    description: str
    category: str
    earned_at: str | None = None


class ProgressInsight(OutputModel):
    title: str
    description: str
    priority: Priority
    actionable: bool = True


class ProgressRecommendation(OutputModel):
    title: str
    description: str
    priority: Priority
    estimated_time: Minutes


class ProgressAnalysis(OutputModel):
    overall_progress: ProgressMetrics
    patterns: list[ProgressPattern] = Field(default_factory=list)
    achievements: list[Achievement] = Field(default_factory=list)
    insights: list[ProgressInsight] = Field(min_length=1)
    recommendations: list[ProgressRecommendation] = Field(min_length=1)
    next_milestones: list[str] = Field(default_factory=list)


class StreakPrediction(OutputModel):
    likely_to_continue: bool
    risk_factors: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(min_length=1)


class StreakAnalysis(OutputModel):
    current_streak: Count
    longest_streak: Count
    streak_quality: Annotated[Literal["excellent", "good", "moderate", "needs_improvement"], Choice]
    prediction: StreakPrediction


class WeekPrediction(OutputModel):
    expected_progress: Score
    confidence_level: Probability
    key_factors: list[str] = Field(default_factory=list)


class MonthOutlook(OutputModel):
    projected_milestones: list[str] = Field(default_factory=list)
    potential_challenges: list[str] = Field(default_factory=list)
    success_probability: Probability


class TrendForecast(OutputModel):
    next_week: WeekPrediction
    next_month: MonthOutlook
    recommended_actions: list[str] = Field(min_length=1)


def activity_summary(activities: list[ActivityRecord]) -> dict[str, Any]:
    """Small aggregate used in prompts so raw activity lists stay short."""
    done = [a for a in activities if a.completed]
    ratings = [a.rating for a in done if a.rating is not None]
    return {
        "total": len(activities),
        "completed": len(done),
        "average_rating": round(sum(ratings) / len(ratings), 2) if ratings else None,
        "minutes": sum(a.duration_minutes for a in done),
    }
