from __future__ import annotations

from typing import Annotated, Any, Literal

from pydantic import Field

from kasama_ai.core.contracts.common import (
    Choice,
    Difficulty,
    InputModel,
    Minutes,
    OutputModel,
    Percent,
    Priority,
    Probability,
    Score,
)


class AssessmentAnswer(InputModel):
    question_id: str
    question: str | None = None
    answer: Any
    category: str | None = None


class AssessmentData(InputModel):
    assessment_id: str | None = None
    assessment_type: str = "relationship_skills"
    answers: list[AssessmentAnswer] = Field(min_length=1)
    completed_at: str | None = None
    score: float | None = None


class AssessmentAnalysisInput(InputModel):
    assessment: AssessmentData
    user_profile: dict[str, Any] = Field(default_factory=dict)
    previous_assessments: list[AssessmentData] = Field(default_factory=list)


class QuickScoreInput(InputModel):
    answers: list[AssessmentAnswer] = Field(min_length=1)
    assessment_type: str = "relationship_skills"


class AssessmentComparisonInput(InputModel):
    current: AssessmentData
    previous: list[AssessmentData] = Field(min_length=1)


class AssessmentInsight(OutputModel):
    type: Annotated[Literal["pattern", "strength", "opportunity", "warning"], Choice]
    title: str
    description: str
    priority: Priority
    category: str
    evidence: list[str] = Field(default_factory=list)


class ActionRecommendation(OutputModel):
    id: str
    title: str
    description: str
    category: str
    priority: Priority
    estimated_time: Minutes  # minutes
    difficulty: Difficulty
    action_items: list[str] = Field(default_factory=list)


class AssessmentAnalysis(OutputModel):
    score: Score
    insights: list[AssessmentInsight] = Field(min_length=1)
    recommendations: list[ActionRecommendation] = Field(min_length=1)
    strengths: list[str] = Field(default_factory=list)
    growth_areas: list[str] = Field(default_factory=list)
    confidence_level: Probability


class AssessmentScoring(OutputModel):
    overall_score: Score
    category_scores: dict[str, Score] = Field(default_factory=dict)
    confidence_level: Probability
    percentile_rank: Score
    improvement_potential: Score


class TrendAnalysis(OutputModel):
    direction: Annotated[Literal["improving", "stable", "declining"], Choice]
    rate: Percent  # score points per assessment
    key_changes: list[str] = Field(default_factory=list)


class AssessmentComparison(OutputModel):
    progress_insights: list[AssessmentInsight] = Field(min_length=1)
    trend_analysis: TrendAnalysis
    recommendations: list[ActionRecommendation] = Field(min_length=1)


class InputValidationReport(OutputModel):
    is_valid: bool
    completeness: Probability
    missing_fields: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
