"""Progress tracker: streaks, completion patterns and short-range forecasts."""
from __future__ import annotations

from datetime import date, timedelta

from kasama_ai.agent.pipeline import AgentOperation
from kasama_ai.agent.prompts import bullet_list, context_section, render, respond_with
from kasama_ai.core.contracts.progress import (
    ActivityRecord,
    ProgressAnalysis,
    ProgressAnalysisInput,
    StreakAnalysis,
    StreakInput,
    TrendForecast,
    TrendForecastInput,
    activity_summary,
)
from kasama_ai.core.contracts.requests import AgentType

SYSTEM_PROMPT = (
    "You are a progress tracking specialist for relationship skill building. You read practice "
    "activity, spot patterns in consistency and engagement, and give motivating, realistic feedback. "
    "Always answer with valid JSON."
)


def _day(value: str) -> date | None:
    try:
        return date.fromisoformat(value[:10])
    except (TypeError, ValueError):
        return None


def practice_days(activities: list[ActivityRecord]) -> list[date]:
    days = {_day(a.completed_at) for a in activities if a.completed}
    return sorted(d for d in days if d is not None)


def streaks(activities: list[ActivityRecord], as_of: str | None = None) -> tuple[int, int]:
    """(current, longest) runs of consecutive practice days."""
    days = practice_days(activities)
    if not days:
        return 0, 0
    longest = run = 1
    for prev, cur in zip(days, days[1:]):
        run = run + 1 if cur - prev == timedelta(days=1) else 1
        longest = max(longest, run)

    reference = _day(as_of) if as_of else days[-1]
    if reference is None:
        reference = days[-1]
    present = set(days)
    # a streak survives until the end of the day after the last practice
    cursor = reference if reference in present else reference - timedelta(days=1)
    current = 0
    while cursor in present:
        current += 1
        cursor -= timedelta(days=1)
    return current, longest


def completion_rate(activities: list[ActivityRecord]) -> float:
    if not activities:
        return 0.0
    return sum(1 for a in activities if a.completed) / len(activities)


def average_rating(activities: list[ActivityRecord]) -> float:
    ratings = [a.rating for a in activities if a.completed and a.rating is not None]
    return round(sum(ratings) / len(ratings), 2) if ratings else 3.0


def streak_quality(current: int, longest: int) -> str:
    if current >= 14:
        return "excellent"
    if current >= 7:
        return "good"
    if current >= 3 or longest >= 7:
        return "moderate"
    return "needs_improvement"


def build_analysis_prompt(data: ProgressAnalysisInput, context: dict | None) -> str:
    current, longest = streaks(data.activities)
    return (
        f"Analyze the user's relationship-skill practice over the last {data.timeframe}.\n\n"
        f"Activity summary:\n{render(activity_summary(data.activities))}\n"
        f"Current streak: {current} days, longest streak: {longest} days\n"
        f"Recent activities:\n{render([a.model_dump(exclude_none=True) for a in data.activities[-20:]])}\n"
        f"Goals:\n{bullet_list(data.goals)}\n"
        f"Focus areas:\n{bullet_list(data.focus_areas)}\n"
        f"{context_section(context)}"
        "\nCelebrate real achievements, name patterns with a confidence, and keep recommendations small."
        + respond_with(
            {
                "overall_progress": {
                    "current_streak": current,
                    "longest_streak": longest,
                    "completion_rate": "<0-1>",
                    "average_rating": "<1-5>",
                    "total_session_minutes": "<minutes>",
                    "improvement_rate": "<-100 to 100>",
                    "consistency_score": "<0-1>",
                    "engagement_level": "low|medium|high",
                },
                "patterns": [
                    {
                        "type": "consistency|improvement|decline|plateau|engagement",
                        "description": "<description>",
                        "confidence": "<0-1>",
                        "impact": "positive|neutral|negative",
                    }
                ],
                "achievements": [{"id": "<id>", "title": "<title>", "description": "<description>", "category": "<category>"}],
                "insights": [{"title": "<title>", "description": "<description>", "priority": "low|medium|high"}],
                "recommendations": [
                    {"title": "<title>", "description": "<description>", "priority": "low|medium|high", "estimated_time": "<minutes>"}
                ],
                "next_milestones": ["<milestone>"],
            }
        )
    )


def build_streak_prompt(data: StreakInput, context: dict | None) -> str:
    current, longest = streaks(data.activities, data.as_of)
    days = [d.isoformat() for d in practice_days(data.activities)[-30:]]
    return (
        "Assess the user's practice streak and how likely it is to continue.\n\n"
        f"Current streak: {current} days\nLongest streak: {longest} days\n"
        f"Practice days (last 30):\n{render(days)}\n"
        f"{context_section(context)}"
        + respond_with(
            {
                "current_streak": current,
                "longest_streak": longest,
                "streak_quality": "excellent|good|moderate|needs_improvement",
                "prediction": {
                    "likely_to_continue": "<true|false>",
                    "risk_factors": ["<risk>"],
                    "recommendations": ["<recommendation>"],
                },
            }
        )
    )


def build_forecast_prompt(data: TrendForecastInput, context: dict | None) -> str:
    return (
        "Forecast the user's progress for the next week and month from their history.\n\n"
        f"History (oldest first):\n{render([s.model_dump(exclude_none=True) for s in data.history[-12:]])}\n"
        f"Goals:\n{bullet_list(data.goals)}\n"
        f"{context_section(context)}"
        "\nBe realistic; a short history means lower confidence."
        + respond_with(
            {
                "next_week": {"expected_progress": "<0-100>", "confidence_level": "<0-1>", "key_factors": ["<factor>"]},
                "next_month": {
                    "projected_milestones": ["<milestone>"],
                    "potential_challenges": ["<challenge>"],
                    "success_probability": "<0-1>",
                },
                "recommended_actions": ["<action>"],
            }
        )
    )


def fallback_analysis(data: ProgressAnalysisInput, context: dict | None) -> dict:
    current, longest = streaks(data.activities)
    rate = completion_rate(data.activities)
    minutes = sum(a.duration_minutes for a in data.activities if a.completed)
    engagement = "high" if rate >= 0.8 else "medium" if rate >= 0.5 else "low"
    return {
        "overall_progress": {
            "current_streak": current,
            "longest_streak": longest,
            "completion_rate": rate,
            "average_rating": average_rating(data.activities),
            "total_session_minutes": minutes,
            "improvement_rate": 0,
            "consistency_score": rate,
            "engagement_level": engagement,
        },
        "patterns": [],
        "achievements": [],
        "insights": [
            {
                "title": "Keep Building Momentum",
                "description": "Every practice session counts toward lasting relationship skills.",
                "priority": "medium",
                "actionable": True,
            }
        ],
        "recommendations": [
            {
                "title": "Maintain Consistency",
                "description": "Try to practice at the same time each day to build a lasting habit.",
                "priority": "high",
                "estimated_time": 10,
            }
        ],
        "next_milestones": ["Complete 7 days in a row" if current < 7 else "Reach a 14-day streak"],
    }


def fallback_streaks(data: StreakInput, context: dict | None) -> dict:
    current, longest = streaks(data.activities, data.as_of)
    quality = streak_quality(current, longest)
    risks = []
    if current == 0:
        risks.append("No practice on the most recent day")
    elif current < 3:
        risks.append("Streak is still new")
    return {
        "current_streak": current,
        "longest_streak": longest,
        "streak_quality": quality,
        "prediction": {
            "likely_to_continue": current >= 3,
            "risk_factors": risks,
            "recommendations": ["Set a daily reminder", "Start with shorter practices on busy days"],
        },
    }


def fallback_forecast(data: TrendForecastInput, context: dict | None) -> dict:
    latest = data.history[-1]
    rates = [s.completion_rate for s in data.history]
    slope = (rates[-1] - rates[0]) / (len(rates) - 1) if len(rates) > 1 else 0.0
    expected = max(0.0, min(1.0, latest.completion_rate + slope))
    confidence = min(0.8, 0.3 + 0.1 * len(data.history))
    challenges = ["Declining completion rate"] if slope < 0 else []
    return {
        "next_week": {
            "expected_progress": round(expected * 100, 1),
            "confidence_level": confidence,
            "key_factors": ["Recent completion rate", "Practice consistency"],
        },
        "next_month": {
            "projected_milestones": ["Steady weekly practice habit"],
            "potential_challenges": challenges,
            "success_probability": round(expected, 2),
        },
        "recommended_actions": ["Keep sessions short and regular", "Review progress at the end of each week"],
    }


OPERATIONS = [
    AgentOperation(
        agent_type=AgentType.PROGRESS_TRACKER,
        name="analyze_progress",
        input_model=ProgressAnalysisInput,
        output_model=ProgressAnalysis,
        build_prompt=build_analysis_prompt,
        fallback=fallback_analysis,
    ),
    AgentOperation(
        agent_type=AgentType.PROGRESS_TRACKER,
        name="analyze_streaks",
        input_model=StreakInput,
        output_model=StreakAnalysis,
        build_prompt=build_streak_prompt,
        fallback=fallback_streaks,
    ),
    AgentOperation(
        agent_type=AgentType.PROGRESS_TRACKER,
        name="forecast_trend",
        input_model=TrendForecastInput,
        output_model=TrendForecast,
        build_prompt=build_forecast_prompt,
        fallback=fallback_forecast,
    ),
]
