"""Insight generator: daily insights, situational guidance and weekly themes."""
from __future__ import annotations

from datetime import date

from kasama_ai.agent.pipeline import AgentOperation
from kasama_ai.agent.prompts import bullet_list, context_section, render, respond_with
from kasama_ai.core.contracts.insight import (
    WEEKDAYS,
    DailyInsightInput,
    DailyInsightOutput,
    GuidanceInput,
    PersonalizedGuidance,
    WeeklyTheme,
    WeeklyThemeInput,
)
from kasama_ai.core.contracts.requests import AgentType

SYSTEM_PROMPT = (
    "You are a warm, insightful relationship coach who writes short daily insights. Your guidance is "
    "practical, personal and encouraging, and you never lecture. Always answer with valid JSON."
)

DAILY_WISDOM = {
    "monday": (
        "New Week, New Opportunities",
        "This week brings fresh chances to practice the relationship skills you've been developing.",
        "Fresh starts",
    ),
    "tuesday": (
        "Mindful Connections",
        "Today, try to be fully present in at least one conversation you have.",
        "Presence",
    ),
    "wednesday": (
        "Mid-Week Reflection",
        "Take a moment to notice how your relationship awareness has grown this week.",
        "Self-reflection",
    ),
    "thursday": (
        "Gratitude Practice",
        "Consider expressing appreciation to someone who has positively impacted your life.",
        "Gratitude",
    ),
    "friday": (
        "Week Review",
        "Reflect on the relationship moments from this week. What went well?",
        "Review and celebration",
    ),
    "saturday": (
        "Connection Time",
        "Weekends are perfect for deeper conversations and quality time with loved ones.",
        "Quality time",
    ),
    "sunday": (
        "Preparation and Rest",
        "Rest is essential for healthy relationships. Take care of yourself today.",
        "Self-care",
    ),
}

WEEKLY_THEMES = [
    {
        "theme": "Building Emotional Awareness",
        "description": "This week focuses on developing deeper emotional intelligence and self-awareness in relationships.",
        "daily_focus": [
            "Monday: Recognizing your emotions",
            "Tuesday: Understanding others' emotions",
            "Wednesday: Expressing feelings clearly",
            "Thursday: Managing difficult emotions",
            "Friday: Celebrating emotional growth",
            "Saturday: Practicing empathy",
            "Sunday: Emotional reflection and planning",
        ],
    },
    {
        "theme": "Strengthening Communication",
        "description": "Focus on enhancing your communication skills for deeper, more meaningful connections.",
        "daily_focus": [
            "Monday: Active listening practice",
            "Tuesday: Clear self-expression",
            "Wednesday: Nonverbal communication awareness",
            "Thursday: Difficult conversation skills",
            "Friday: Positive communication habits",
            "Saturday: Quality conversation time",
            "Sunday: Communication reflection",
        ],
    },
]

INSIGHT_SHAPE = {
    "id": "<id>",
    "type": "guidance|reflection|celebration|challenge|tip",
    "title": "<title>",
    "message": "<2-3 sentences>",
    "priority": "low|medium|high",
    "category": "<category>",
    "personalized_elements": ["<what was personalized>"],
    "applicability": "<0-1>",
}


def weekday(data: DailyInsightInput) -> str:
    return data.day_of_week or WEEKDAYS[date.today().weekday()]


def default_recommendation() -> dict:
    return {
        "id": "daily-check-in",
        "title": "Daily Connection Check-In",
        "description": "Take a moment to reflect on your relationships and how you showed up today.",
        "estimated_time": 5,
        "priority": "medium",
    }


def build_daily_prompt(data: DailyInsightInput, context: dict | None) -> str:
    situation = data.insight_context.model_dump(exclude_none=True) if data.insight_context else {}
    return (
        f"Write today's relationship insight for the user. Today is {weekday(data).capitalize()}.\n\n"
        f"User profile:\n{render(data.user_profile) if data.user_profile else 'Not provided'}\n"
        f"Recent activity:\n{render(data.recent_activity[-10:]) if data.recent_activity else 'None'}\n"
        f"Current goals:\n{bullet_list(data.current_goals)}\n"
        f"Situation:\n{render(situation) if situation else 'Not provided'}\n"
        f"{context_section(context)}"
        "\nKeep recommendations doable within the user's available time."
        + respond_with(
            {
                "insight": INSIGHT_SHAPE,
                "recommendations": [
                    {
                        "id": "<id>",
                        "title": "<title>",
                        "description": "<description>",
                        "estimated_time": "<minutes>",
                        "priority": "low|medium|high",
                    }
                ],
                "motivational_message": "<one sentence>",
                "focus_area": "<focus area>",
                "confidence_level": "<0-1>",
            }
        )
    )


def build_guidance_prompt(data: GuidanceInput, context: dict | None) -> str:
    situation = data.insight_context.model_dump(exclude_none=True) if data.insight_context else {}
    return (
        "Give personalized guidance for the situation the user describes.\n\n"
        f"Situation: {data.situation}\n"
        f"User profile:\n{render(data.user_profile) if data.user_profile else 'Not provided'}\n"
        f"Circumstances:\n{render(situation) if situation else 'Not provided'}\n"
        f"{context_section(context)}"
        + respond_with(
            {
                "insight": INSIGHT_SHAPE,
                "application_suggestions": ["<suggestion>"],
                "contextual_tips": ["<tip>"],
                "follow_up_questions": ["<question>"],
                "resource_recommendations": [
                    {
                        "title": "<title>",
                        "type": "article|video|practice|reflection",
                        "estimated_time": "<minutes>",
                        "relevance_score": "<0-1>",
                    }
                ],
            }
        )
    )


def build_theme_prompt(data: WeeklyThemeInput, context: dict | None) -> str:
    return (
        "Propose a theme for the user's coming week of relationship practice.\n\n"
        f"Current goals:\n{bullet_list(data.current_goals)}\n"
        f"Recent themes (avoid repeating):\n{bullet_list(data.recent_themes)}\n"
        f"{context_section(context)}"
        + respond_with(
            {
                "theme": "<theme>",
                "description": "<description>",
                "daily_focus": ["Monday: <focus>", "...", "Sunday: <focus>"],
                "practices": ["<practice>"],
                "reflection_prompts": ["<prompt>"],
                "expected_outcomes": ["<outcome>"],
            }
        )
    )


def fallback_daily(data: DailyInsightInput, context: dict | None) -> dict:
    day = weekday(data)
    title, message, focus = DAILY_WISDOM[day]
    return {
        "insight": {
            "id": f"daily-{day}",
            "type": "guidance",
            "title": title,
            "message": message,
            "priority": "medium",
            "category": "daily_wisdom",
            "personalized_elements": ["Based on day of week", "General relationship guidance"],
            "applicability": 0.7,
        },
        "recommendations": [default_recommendation()],
        "motivational_message": "Every small step in your relationship development journey matters!",
        "focus_area": focus,
        "confidence_level": 0.7,
    }


def fallback_guidance(data: GuidanceInput, context: dict | None) -> dict:
    return {
        "insight": {
            "id": "guidance-fallback",
            "type": "guidance",
            "title": "Navigating Your Situation",
            "message": "Every challenging situation is an opportunity to practice and strengthen your relationship skills.",
            "priority": "high",
            "category": "situational",
            "personalized_elements": ["Situation-specific guidance"],
            "applicability": 0.8,
        },
        "application_suggestions": [
            "Take a moment to breathe and center yourself",
            "Consider the perspective of others involved",
            "Apply one relationship skill you've been practicing",
        ],
        "contextual_tips": [
            "Trust your instincts while remaining open to growth",
            "Remember that imperfect action is better than perfect inaction",
            "This situation is temporary and can lead to greater understanding",
        ],
        "follow_up_questions": [
            "What would your best self do in this situation?",
            "How can you show care for both yourself and others?",
            "What might you learn from this experience?",
        ],
        "resource_recommendations": [
            {"title": "Deep Breathing Exercise", "type": "practice", "estimated_time": 3, "relevance_score": 0.9},
            {"title": "Perspective-Taking Practice", "type": "reflection", "estimated_time": 10, "relevance_score": 0.8},
        ],
    }


def fallback_theme(data: WeeklyThemeInput, context: dict | None) -> dict:
    candidates = [t for t in WEEKLY_THEMES if t["theme"] not in data.recent_themes] or WEEKLY_THEMES
    chosen = candidates[len(data.current_goals) % len(candidates)]
    return {
        **chosen,
        "practices": [
            "Daily 5-minute emotional check-in",
            "Practice one communication skill daily",
            "Evening reflection on relationship interactions",
        ],
        "reflection_prompts": [
            "How did I connect with others today?",
            "What emotions did I notice in myself and others?",
            "How can I improve my relationships tomorrow?",
        ],
        "expected_outcomes": [
            "Increased self-awareness",
            "Better communication skills",
            "Stronger relationship connections",
        ],
    }


OPERATIONS = [
    AgentOperation(
        agent_type=AgentType.INSIGHT_GENERATOR,
        name="daily_insight",
        input_model=DailyInsightInput,
        output_model=DailyInsightOutput,
        build_prompt=build_daily_prompt,
        fallback=fallback_daily,
    ),
    AgentOperation(
        agent_type=AgentType.INSIGHT_GENERATOR,
        name="personalized_guidance",
        input_model=GuidanceInput,
        output_model=PersonalizedGuidance,
        build_prompt=build_guidance_prompt,
        fallback=fallback_guidance,
    ),
    AgentOperation(
        agent_type=AgentType.INSIGHT_GENERATOR,
        name="weekly_theme",
        input_model=WeeklyThemeInput,
        output_model=WeeklyTheme,
        build_prompt=build_theme_prompt,
        fallback=fallback_theme,
    ),
]
