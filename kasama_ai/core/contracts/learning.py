from __future__ import annotations

from typing import Annotated, Any, Literal

from pydantic import Field

from kasama_ai.core.contracts.common import (
    Choice,
    Difficulty,
    InputModel,
    Minutes,
    OutputModel,
    Probability,
    Weeks,
)


class LearningPathInput(InputModel):
    user_profile: dict[str, Any] = Field(default_factory=dict)
    goals: list[str] = Field(default_factory=list)
    skill_level: Difficulty = "beginner"
    focus_areas: list[str] = Field(default_factory=list)
    minutes_per_session: int = Field(default=15, gt=0, le=240)
    preferred_style: Annotated[Literal["structured", "flexible", "exploratory"], Choice] = "structured"


class LearningPathAdaptationInput(InputModel):
    current_path: dict[str, Any]
    completed_practice_ids: list[str] = Field(default_factory=list)
    struggles: list[str] = Field(default_factory=list)
    feedback: str | None = None


class DailyPracticeInput(InputModel):
    available_minutes: int = Field(default=15, gt=0, le=240)
    focus_areas: list[str] = Field(default_factory=list)
    skill_level: Difficulty = "beginner"
    completed_practice_ids: list[str] = Field(default_factory=list)


class PracticeStep(OutputModel):
    step: int
    instruction: str
    tips: list[str] = Field(default_factory=list)


class Practice(OutputModel):
    id: str
    title: str
    description: str
    category: str
    difficulty: Difficulty
    estimated_time_minutes: Minutes
    instructions: list[PracticeStep] = Field(min_length=1)
    tags: list[str] = Field(default_factory=list)


class Milestone(OutputModel):
    id: str
    title: str
    description: str
    completed: bool = False


class LearningModule(OutputModel):
    id: str
    title: str
    description: str
    order: int
    estimated_time_minutes: Minutes
    practices: list[Practice] = Field(default_factory=list)
    milestones: list[Milestone] = Field(default_factory=list)


class LearningPath(OutputModel):
    path_id: str
    name: str
    description: str
    difficulty: Difficulty
    estimated_duration_weeks: Weeks
    modules: list[LearningModule] = Field(min_length=1)
    prerequisites: list[str] = Field(default_factory=list)
    learning_objectives: list[str] = Field(min_length=1)
    personalization_score: Probability


class CurriculumUpdate(OutputModel):
    added_modules: list[LearningModule] = Field(default_factory=list)
    modified_modules: list[LearningModule] = Field(default_factory=list)
    removed_module_ids: list[str] = Field(default_factory=list)
    reason_for_changes: str
    expected_outcomes: list[str] = Field(min_length=1)


class DailyPracticePlan(OutputModel):
    primary_practice: Practice
    optional_practices: list[Practice] = Field(default_factory=list)
    total_minutes: Minutes
    motivational_message: str
