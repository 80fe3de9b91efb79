"""Learning coach: builds and adapts practice curricula."""
from __future__ import annotations

from kasama_ai.agent.pipeline import AgentOperation
from kasama_ai.agent.prompts import bullet_list, context_section, render, respond_with
from kasama_ai.core.contracts.learning import (
    CurriculumUpdate,
    DailyPracticeInput,
    DailyPracticePlan,
    LearningPath,
    LearningPathAdaptationInput,
    LearningPathInput,
)
from kasama_ai.core.contracts.requests import AgentType

SYSTEM_PROMPT = (
    "You are a relationship skills learning coach. You design progressive, practical curricula "
    "of short practices that fit the learner's level, time and style. Always answer with valid JSON."
)

PRACTICE_SHAPE = {
    "id": "<practice id>",
    "title": "<title>",
    "description": "<what the practice builds>",
    "category": "<skill category>",
    "difficulty": "beginner|intermediate|advanced",
    "estimated_time_minutes": "<minutes>",
    "instructions": [{"step": 1, "instruction": "<instruction>", "tips": ["<tip>"]}],
    "tags": ["<tag>"],
}

MODULE_SHAPE = {
    "id": "<module id>",
    "title": "<title>",
    "description": "<description>",
    "order": 1,
    "estimated_time_minutes": "<minutes>",
    "practices": [PRACTICE_SHAPE],
    "milestones": [{"id": "<id>", "title": "<title>", "description": "<description>", "completed": False}],
}


def build_path_prompt(data: LearningPathInput, context: dict | None) -> str:
    return (
        "Create a personalized relationship-skills learning path.\n\n"
        f"Skill level: {data.skill_level}\n"
        f"Preferred style: {data.preferred_style}\n"
        f"Minutes per session: {data.minutes_per_session}\n"
        f"Goals:\n{bullet_list(data.goals)}\n"
        f"Focus areas:\n{bullet_list(data.focus_areas)}\n"
        f"User profile:\n{render(data.user_profile) if data.user_profile else 'Not provided'}\n"
        f"{context_section(context)}"
        "\nOrder modules from foundational to advanced and keep every practice within the session length."
        + respond_with(
            {
                "path_id": "<id>",
                "name": "<path name>",
                "description": "<description>",
                "difficulty": "beginner|intermediate|advanced",
                "estimated_duration_weeks": "<1-52>",
                "modules": [MODULE_SHAPE],
                "prerequisites": ["<prerequisite>"],
                "learning_objectives": ["<objective>"],
                "personalization_score": "<0-1>",
            }
        )
    )


def build_adaptation_prompt(data: LearningPathAdaptationInput, context: dict | None) -> str:
    return (
        "Adapt the learner's current path based on their progress.\n\n"
        f"Current path:\n{render(data.current_path)}\n\n"
        f"Completed practices:\n{bullet_list(data.completed_practice_ids)}\n"
        f"Struggles:\n{bullet_list(data.struggles)}\n"
        f"Learner feedback: {data.feedback or 'none'}\n"
        f"{context_section(context)}"
        "\nOnly change what the progress justifies; explain why."
        + respond_with(
            {
                "added_modules": [MODULE_SHAPE],
                "modified_modules": [MODULE_SHAPE],
                "removed_module_ids": ["<module id>"],
                "reason_for_changes": "<explanation>",
                "expected_outcomes": ["<outcome>"],
            }
        )
    )


def build_daily_prompt(data: DailyPracticeInput, context: dict | None) -> str:
    return (
        "Pick today's practice for the learner.\n\n"
        f"Available minutes: {data.available_minutes}\n"
        f"Skill level: {data.skill_level}\n"
        f"Focus areas:\n{bullet_list(data.focus_areas)}\n"
        f"Already completed:\n{bullet_list(data.completed_practice_ids)}\n"
        f"{context_section(context)}"
        "\nThe primary practice plus optional practices must fit in the available minutes."
        + respond_with(
            {
                "primary_practice": PRACTICE_SHAPE,
                "optional_practices": [PRACTICE_SHAPE],
                "total_minutes": "<minutes>",
                "motivational_message": "<one sentence>",
            }
        )
    )


def default_practice(time_limit: int | None = None) -> dict:
    return {
        "id": "practice-default",
        "title": "Daily Check-In Practice",
        "description": "A simple practice to build self-awareness and reflection skills",
        "category": "self_awareness",
        "difficulty": "beginner",
        "estimated_time_minutes": min(time_limit, 15) if time_limit else 10,
        "instructions": [
            {"step": 1, "instruction": "Find a quiet moment in your day", "tips": ["Morning or evening works well"]},
            {
                "step": 2,
                "instruction": "Ask yourself: How am I feeling right now?",
                "tips": ["Be honest with yourself", "Name specific emotions"],
            },
            {
                "step": 3,
                "instruction": "Reflect on one interaction from today",
                "tips": ["Choose something meaningful", "Consider what went well"],
            },
        ],
        "tags": ["reflection", "daily", "awareness"],
    }


def default_modules() -> list[dict]:
    return [
        {
            "id": "module-1",
            "title": "Active Listening Fundamentals",
            "description": "Learn to truly hear and understand others",
            "order": 1,
            "estimated_time_minutes": 120,
            "practices": [default_practice()],
            "milestones": [
                {
                    "id": "milestone-1",
                    "title": "First Week Complete",
                    "description": "Completed first module and practice",
                    "completed": False,
                }
            ],
        },
        {
            "id": "module-2",
            "title": "Emotional Awareness",
            "description": "Understand and express emotions effectively",
            "order": 2,
            "estimated_time_minutes": 90,
            "practices": [],
            "milestones": [],
        },
    ]


def fallback_path(data: LearningPathInput, context: dict | None) -> dict:
    return {
        "path_id": "fallback-foundations",
        "name": "Relationship Foundations Path",
        "description": "A gentle introduction to the core skills behind healthy, connected relationships.",
        "difficulty": data.skill_level,
        "estimated_duration_weeks": 4,
        "modules": default_modules(),
        "prerequisites": [],
        "learning_objectives": [
            "Develop active listening skills",
            "Practice expressing needs clearly",
            "Develop empathy and understanding",
            "Build conflict resolution skills",
        ],
        "personalization_score": 0.6,
    }


def fallback_adaptation(data: LearningPathAdaptationInput, context: dict | None) -> dict:
    return {
        "added_modules": [],
        "modified_modules": [],
        "removed_module_ids": [],
        "reason_for_changes": "Your current path is still a good fit; keep building consistency before changing it.",
        "expected_outcomes": ["Steadier practice habit", "Deeper understanding of current skills"],
    }


def fallback_daily(data: DailyPracticeInput, context: dict | None) -> dict:
    practice = default_practice(data.available_minutes)
    return {
        "primary_practice": practice,
        "optional_practices": [],
        "total_minutes": practice["estimated_time_minutes"],
        "motivational_message": "A few mindful minutes today is an investment in every relationship you have.",
    }


OPERATIONS = [
    AgentOperation(
        agent_type=AgentType.LEARNING_COACH,
        name="generate_learning_path",
        input_model=LearningPathInput,
        output_model=LearningPath,
        build_prompt=build_path_prompt,
        fallback=fallback_path,
    ),
    AgentOperation(
        agent_type=AgentType.LEARNING_COACH,
        name="adapt_learning_path",
        input_model=LearningPathAdaptationInput,
        output_model=CurriculumUpdate,
        build_prompt=build_adaptation_prompt,
        fallback=fallback_adaptation,
    ),
    AgentOperation(
        agent_type=AgentType.LEARNING_COACH,
        name="daily_practices",
        input_model=DailyPracticeInput,
        output_model=DailyPracticePlan,
        build_prompt=build_daily_prompt,
        fallback=fallback_daily,
    ),
]
