from __future__ import annotations

from typing import Annotated, Any, Literal

from pydantic import Field

from kasama_ai.core.contracts.common import (
    Choice,
    Difficulty,
    InputModel,
    OutputModel,
    Probability,
)

Situation = Annotated[
    Literal["argument", "misunderstanding", "hurt_feelings", "boundary_setting", "difficult_conversation"],
    Choice,
]


class CommunicationContext(InputModel):
    urgency: Annotated[Literal["immediate", "soon", "when_ready"], Choice] = "when_ready"
    emotional_state: Annotated[Literal["calm", "stressed", "angry", "sad", "confused"], Choice] = "calm"
    previous_attempts: int = Field(default=0, ge=0)
    preferred_approach: Annotated[Literal["direct", "gentle", "collaborative", "assertive"], Choice] = "collaborative"
    cultural_considerations: list[str] = Field(default_factory=list)


class ConflictResolutionInput(InputModel):
    conflict_description: str = Field(min_length=1)
    relationship_type: Annotated[Literal["romantic", "family", "friend", "work", "other"], Choice] = "romantic"
    parties_involved: list[str] = Field(default_factory=list)
    desired_outcome: str | None = None
    communication_context: CommunicationContext | None = None


class StyleAssessmentInput(InputModel):
    self_description: str | None = None
    recent_conversations: list[str] = Field(default_factory=list)
    challenges: list[str] = Field(default_factory=list)
    user_profile: dict[str, Any] = Field(default_factory=dict)


class DialogueInput(InputModel):
    scenario: str = Field(min_length=1)
    goals: list[str] = Field(default_factory=list)
    other_person: str | None = None


class ResolutionStrategy(OutputModel):
    name: str
    description: str
    steps: list[str] = Field(min_length=1)
    timeframe: str
    success_rate: Probability
    prerequisites: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


class CommunicationTechnique(OutputModel):
    name: str
    description: str
    example: str
    when_to_use: str
    difficulty: Difficulty
    effectiveness: Probability


class ScriptSuggestion(OutputModel):
    situation: str
    opening: str
    key_phrases: list[str] = Field(default_factory=list)
    phrases_to_avoid: list[str] = Field(default_factory=list)
    tone: str


class AlternativeApproach(OutputModel):
    name: str
    description: str
    when_to_use: str
    pros: list[str] = Field(default_factory=list)
    cons: list[str] = Field(default_factory=list)


class ConflictResolutionAdvice(OutputModel):
    strategy: ResolutionStrategy
    techniques: list[CommunicationTechnique] = Field(min_length=1)
    script_suggestions: list[ScriptSuggestion] = Field(min_length=1)
    alternative_approaches: list[AlternativeApproach] = Field(default_factory=list)
    follow_up_actions: list[str] = Field(default_factory=list)
    success_predictors: list[str] = Field(default_factory=list)


class CommunicationAssessment(OutputModel):
    strength_areas: list[str] = Field(min_length=1)
    improvement_areas: list[str] = Field(min_length=1)
    recommended_techniques: list[str] = Field(default_factory=list)
    personalized_tips: list[str] = Field(default_factory=list)
    practice_exercises: list[str] = Field(default_factory=list)
    confidence_builders: list[str] = Field(default_factory=list)


class LikelyResponse(OutputModel):
    response: str
    how_to_handle: str
    follow_up_options: list[str] = Field(default_factory=list)


class DialogueCoaching(OutputModel):
    scenario: str
    your_lines: list[ScriptSuggestion] = Field(min_length=1)
    likely_responses: list[LikelyResponse] = Field(default_factory=list)
    recovery_strategies: list[str] = Field(default_factory=list)
    success_indicators: list[str] = Field(default_factory=list)


class QuickTips(OutputModel):
    situation: Situation
    tips: list[str] = Field(min_length=1)
