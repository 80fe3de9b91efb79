"""Assessment analyst: scores relationship-skill assessments and explains them."""
from __future__ import annotations

from typing import Any

from kasama_ai.agent.pipeline import AgentOperation
from kasama_ai.agent.prompts import context_section, render, respond_with
from kasama_ai.core.contracts.assessment import (
    AssessmentAnalysis,
    AssessmentAnalysisInput,
    AssessmentAnswer,
    AssessmentComparison,
    AssessmentComparisonInput,
    AssessmentData,
    AssessmentScoring,
    InputValidationReport,
    QuickScoreInput,
)
from kasama_ai.core.contracts.requests import AgentType

SYSTEM_PROMPT = (
    "You are an expert relationship assessment analyst. You read questionnaire answers, "
    "identify attachment and communication patterns, and give supportive, specific, "
    "non-judgmental feedback. Always answer with valid JSON."
)

CATEGORIES = ("communication", "emotional_intelligence", "attachment_security", "conflict_resolution", "self_awareness")
POSITIVE_WORDS = ("yes", "often", "usually", "agree", "always")


def basic_score(answers: list[AssessmentAnswer]) -> float:
    """Heuristic 30-95 score used when no model is available."""
    if not answers:
        return 50.0
    score = 50.0
    if len(answers) > 10:
        score += 15
    if len(answers) > 20:
        score += 10
    positive = 0
    for a in answers:
        value = a.answer
        if value is True:
            positive += 1
        elif isinstance(value, str) and any(w in value.lower() for w in POSITIVE_WORDS):
            positive += 1
    score += positive / len(answers) * 30
    return round(max(30.0, min(95.0, score)), 1)


def _category_scores(answers: list[AssessmentAnswer]) -> dict[str, float]:
    grouped: dict[str, list[AssessmentAnswer]] = {}
    for a in answers:
        if a.category:
            grouped.setdefault(a.category, []).append(a)
    if not grouped:
        overall = basic_score(answers)
        return {c: overall for c in CATEGORIES}
    return {c: basic_score(items) for c, items in sorted(grouped.items())}


def _answers_for_prompt(answers: list[AssessmentAnswer]) -> list[dict[str, Any]]:
    return [a.model_dump(exclude_none=True) for a in answers]


INSIGHT_SHAPE = {
    "type": "pattern|strength|opportunity|warning",
    "title": "<insight title>",
    "description": "<detailed description>",
    "priority": "low|medium|high",
    "category": "<category>",
    "evidence": ["<supporting evidence>"],
}

RECOMMENDATION_SHAPE = {
    "id": "<unique id>",
    "title": "<recommendation title>",
    "description": "<detailed description>",
    "category": "<category>",
    "priority": "low|medium|high",
    "estimated_time": "<minutes>",
    "difficulty": "beginner|intermediate|advanced",
    "action_items": ["<specific action>"],
}


def build_analysis_prompt(data: AssessmentAnalysisInput, context: dict | None) -> str:
    previous = [p.model_dump(exclude_none=True) for p in data.previous_assessments[-3:]]
    return (
        "Analyze the following assessment responses and provide comprehensive insights.\n\n"
        f"Assessment type: {data.assessment.assessment_type}\n\n"
        f"User responses:\n{render(_answers_for_prompt(data.assessment.answers))}\n\n"
        f"Previous assessments (most recent last):\n{render(previous) if previous else 'None'}\n"
        f"\nUser profile:\n{render(data.user_profile) if data.user_profile else 'Not provided'}\n"
        f"{context_section(context)}"
        "\nFocus on relationship patterns and attachment style, communication strengths and challenges, "
        "and specific actions. Be encouraging and honest about growth areas."
        + respond_with(
            {
                "score": "<overall score 0-100>",
                "insights": [INSIGHT_SHAPE],
                "recommendations": [RECOMMENDATION_SHAPE],
                "strengths": ["<strength>"],
                "growth_areas": ["<growth area>"],
                "confidence_level": "<0-1>",
            }
        )
    )


def build_scoring_prompt(data: QuickScoreInput, context: dict | None) -> str:
    return (
        "Score these assessment responses quickly.\n\n"
        f"Assessment type: {data.assessment_type}\n"
        f"Responses:\n{render(_answers_for_prompt(data.answers))}\n"
        f"{context_section(context)}"
        "\nBase scores on evidence-based relationship research."
        + respond_with(
            {
                "overall_score": "<0-100>",
                "category_scores": {c: "<0-100>" for c in CATEGORIES},
                "confidence_level": "<0-1>",
                "percentile_rank": "<0-100>",
                "improvement_potential": "<0-100>",
            }
        )
    )


def build_comparison_prompt(data: AssessmentComparisonInput, context: dict | None) -> str:
    history = [_summary(a) for a in data.previous[-5:]]
    return (
        "Compare the current assessment with previous ones and describe the user's progress.\n\n"
        f"Current assessment:\n{render(_summary(data.current))}\n\n"
        f"Previous assessments (oldest first):\n{render(history)}\n"
        f"{context_section(context)}"
        "\nHighlight real changes, name the trend direction and suggest how to build on it."
        + respond_with(
            {
                "progress_insights": [INSIGHT_SHAPE],
                "trend_analysis": {
                    "direction": "improving|stable|declining",
                    "rate": "<score points per assessment, -100 to 100>",
                    "key_changes": ["<change>"],
                },
                "recommendations": [RECOMMENDATION_SHAPE],
            }
        )
    )


def _summary(a: AssessmentData) -> dict[str, Any]:
    return {
        "assessment_type": a.assessment_type,
        "completed_at": a.completed_at,
        "score": a.score if a.score is not None else basic_score(a.answers),
        "answers": len(a.answers),
    }


def fallback_analysis(data: AssessmentAnalysisInput, context: dict | None) -> dict:
    return {
        "score": basic_score(data.assessment.answers),
        "insights": [
            {
                "type": "strength",
                "title": "Commitment to Growth",
                "description": "Taking this assessment shows your commitment to personal and relationship development.",
                "priority": "medium",
                "category": "self_awareness",
                "evidence": ["Completed comprehensive assessment"],
            },
            {
                "type": "opportunity",
                "title": "Continued Learning",
                "description": "Every assessment is an opportunity to learn more about yourself and grow.",
                "priority": "medium",
                "category": "general",
                "evidence": ["Active participation in self-assessment"],
            },
        ],
        "recommendations": [
            {
                "id": "fallback-1",
                "title": "Daily Reflection Practice",
                "description": "Spend 5-10 minutes each day reflecting on your interactions and feelings.",
                "category": "self_awareness",
                "priority": "high",
                "estimated_time": 10,
                "difficulty": "beginner",
                "action_items": [
                    "Set aside 10 minutes each evening for reflection",
                    'Ask yourself: "What went well today in my relationships?"',
                    "Identify one thing you could improve tomorrow",
                ],
            }
        ],
        "strengths": ["Self-awareness", "Motivation to improve"],
        "growth_areas": ["Skill development", "Consistent practice"],
        "confidence_level": 0.6,
    }


def fallback_score(data: QuickScoreInput, context: dict | None) -> dict:
    overall = basic_score(data.answers)
    return {
        "overall_score": overall,
        "category_scores": _category_scores(data.answers),
        "confidence_level": 0.6,
        "percentile_rank": max(25.0, min(75.0, overall)),
        "improvement_potential": max(70.0, 100.0 - overall),
    }


def fallback_comparison(data: AssessmentComparisonInput, context: dict | None) -> dict:
    current = _summary(data.current)["score"]
    previous = _summary(data.previous[-1])["score"]
    delta = round(current - previous, 1)
    if delta > 2:
        direction = "improving"
    elif delta < -2:
        direction = "declining"
    else:
        direction = "stable"
    return {
        "progress_insights": [
            {
                "type": "pattern",
                "title": "Consistent Engagement",
                "description": "You're consistently engaging with your personal development, which is a positive indicator.",
                "priority": "medium",
                "category": "progress",
                "evidence": [f"{len(data.previous) + 1} assessments completed"],
            }
        ],
        "trend_analysis": {
            "direction": direction,
            "rate": delta,
            "key_changes": ["Maintained engagement", "Continued self-reflection"],
        },
        "recommendations": [
            {
                "id": "comparison-fallback-1",
                "title": "Build on Consistency",
                "description": "Your consistent approach to self-assessment is commendable. Focus on applying insights.",
                "category": "application",
                "priority": "medium",
                "estimated_time": 20,
                "difficulty": "intermediate",
                "action_items": [
                    "Apply one insight from your assessment each week",
                    "Track your progress in a journal",
                ],
            }
        ],
    }


def validate_assessment_input(data: AssessmentAnalysisInput) -> InputValidationReport:
    """Completeness check run before analysis; never calls a provider."""
    answers = data.assessment.answers
    missing: list[str] = []
    warnings: list[str] = []
    blank = [a.question_id for a in answers if a.answer is None or (isinstance(a.answer, str) and not a.answer.strip())]
    if blank:
        missing.extend(f"answers.{qid}" for qid in blank)
    if len(answers) < 5:
        warnings.append("Fewer than 5 answers; analysis confidence will be low")
    if not data.user_profile:
        warnings.append("No user profile supplied; recommendations will be generic")
    ids = [a.question_id for a in answers]
    if len(set(ids)) != len(ids):
        warnings.append("Duplicate question ids")
    completeness = (len(answers) - len(blank)) / len(answers) if answers else 0.0
    return InputValidationReport(
        is_valid=not blank and len(answers) >= 1,
        completeness=completeness,
        missing_fields=missing,
        warnings=warnings,
    )


OPERATIONS = [
    AgentOperation(
        agent_type=AgentType.ASSESSMENT_ANALYST,
        name="analyze_assessment",
        input_model=AssessmentAnalysisInput,
        output_model=AssessmentAnalysis,
        build_prompt=build_analysis_prompt,
        fallback=fallback_analysis,
    ),
    AgentOperation(
        agent_type=AgentType.ASSESSMENT_ANALYST,
        name="quick_score",
        input_model=QuickScoreInput,
        output_model=AssessmentScoring,
        build_prompt=build_scoring_prompt,
        fallback=fallback_score,
    ),
    AgentOperation(
        agent_type=AgentType.ASSESSMENT_ANALYST,
        name="compare_assessments",
        input_model=AssessmentComparisonInput,
        output_model=AssessmentComparison,
        build_prompt=build_comparison_prompt,
        fallback=fallback_comparison,
    ),
]

