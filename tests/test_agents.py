import asyncio
import json

import pytest

from kasama_ai.agent import progress
from kasama_ai.agent.assessment import basic_score
from kasama_ai.agent.registry import OPERATIONS
from kasama_ai.core.contracts.assessment import AssessmentAnswer
from kasama_ai.core.contracts.progress import ActivityRecord
from kasama_ai.core.exceptions import NotFoundError, ProviderError, ValidationError

ASSESSMENT_INPUT = {
    "assessment": {
        "assessmentType": "relationship_skills",
        "answers": [
            {"questionId": "q1", "answer": "Often", "category": "communication"},
            {"questionId": "q2", "answer": "rarely", "category": "conflict_resolution"},
            {"questionId": "q3", "answer": True, "category": "self_awareness"},
        ],
    },
    "userProfile": {"relationshipStatus": "partnered"},
}

ANALYSIS = {
    "score": 82,
    "insights": [
        {
            "type": "Strength",
            "title": "Attentive listener",
            "description": "You notice how your partner feels.",
            "priority": "HIGH",
            "category": "communication",
            "evidence": ["q1"],
        }
    ],
    "recommendations": [
        {
            "id": "r1",
            "title": "Pause before replying",
            "description": "Take one breath before you answer in tense moments.",
            "category": "conflict_resolution",
            "priority": "medium",
            "estimatedTime": "15",
            "difficulty": "Beginner",
            "actionItems": ["Notice the urge to interrupt"],
        }
    ],
    "strengths": ["listening"],
    "growth_areas": ["conflict"],
    "confidence_level": 0.85,
}


def reply(data: dict) -> str:
    return json.dumps(data)


async def analyze(orchestrator, payload=None, user_id="u1"):
    return await orchestrator.handlers.run(
        "assessment_analyst", "analyze_assessment", payload or ASSESSMENT_INPUT, user_id=user_id
    )


@pytest.mark.asyncio
async def test_live_output_is_validated_and_normalized(orchestrator, primary):
    primary.script("assessment_analyst", reply(ANALYSIS))

    result = await analyze(orchestrator)

    assert result.fallback_used is False
    assert result.cache_hit is False
    assert result.provider == "primary"
    assert result.output["score"] == 82
    assert result.output["insights"][0]["type"] == "strength"
    assert result.output["insights"][0]["priority"] == "high"
    assert result.output["recommendations"][0]["estimated_time"] == 15
    assert result.output["recommendations"][0]["difficulty"] == "beginner"


@pytest.mark.asyncio
async def test_fenced_json_with_surrounding_text_is_accepted(orchestrator, primary):
    primary.script("assessment_analyst", "Here is the analysis:\n```json\n" + reply(ANALYSIS) + "\n```")

    result = await analyze(orchestrator)

    assert result.fallback_used is False
    assert result.output["strengths"] == ["listening"]


@pytest.mark.asyncio
async def test_out_of_range_numbers_are_clamped(orchestrator, primary):
    primary.script("assessment_analyst", reply({**ANALYSIS, "score": 140, "confidence_level": 1.7}))

    result = await analyze(orchestrator)

    assert result.output["score"] == 100
    assert result.output["confidence_level"] == 1.0


@pytest.mark.asyncio
async def test_non_json_reply_falls_back_and_is_not_cached(orchestrator, primary):
    primary.script("assessment_analyst", "I'm sorry, I can't help with that.")

    first = await analyze(orchestrator)
    second = await analyze(orchestrator)

    assert first.fallback_used is True
    assert first.error_code == "MALFORMED_OUTPUT"
    answers = [AssessmentAnswer.model_validate(a) for a in ASSESSMENT_INPUT["assessment"]["answers"]]
    assert first.output["score"] == basic_score(answers)
    assert second.cache_hit is False
    assert len(primary.calls) == 2


@pytest.mark.asyncio
async def test_schema_violation_falls_back(orchestrator, primary):
    primary.script("assessment_analyst", reply({"score": 70, "insights": []}))

    result = await analyze(orchestrator)

    assert result.fallback_used is True
    assert result.output["insights"][0]["title"] == "Commitment to Growth"


@pytest.mark.asyncio
async def test_every_provider_failing_yields_fallback_after_retries(orchestrator, primary, secondary, sleeps):
    overloaded = ProviderError("model overloaded", code="MODEL_OVERLOADED", retryable=True)
    primary.script("*", overloaded)
    secondary.script("*", overloaded)

    result = await analyze(orchestrator)

    assert result.fallback_used is True
    assert result.error_code == "MODEL_OVERLOADED"
    assert len(primary.calls) == 2
    assert len(secondary.calls) == 2
    assert sleeps == [1.0, 1.0]
    assert orchestrator.stats()["errors"]["by_code"]["MODEL_OVERLOADED"] >= 1


def slow_providers(*backends):
    for backend in backends:
        backend.config.timeout_seconds = 0.02
        backend.config.max_attempts = 1
        backend.delay_seconds = 0.2


@pytest.mark.asyncio
async def test_slow_providers_time_out_into_a_usable_analysis(orchestrator, primary, secondary):
    primary.script("*", reply(ANALYSIS))
    slow_providers(primary, secondary)

    result = await analyze(orchestrator)

    assert result.fallback_used is True
    assert result.error_code == "TIMEOUT"
    assert 0 <= result.output["score"] <= 100
    assert result.output["insights"]
    assert result.output["recommendations"]
    assert len(primary.calls) == 1
    assert len(secondary.calls) == 1


ANSWERS = ASSESSMENT_INPUT["assessment"]["answers"]

# smallest valid input per operation; anything not listed accepts {}
MINIMAL_INPUTS = {
    ("assessment_analyst", "analyze_assessment"): ASSESSMENT_INPUT,
    ("assessment_analyst", "quick_score"): {"answers": ANSWERS},
    ("assessment_analyst", "compare_assessments"): {
        "current": {"answers": ANSWERS},
        "previous": [{"answers": ANSWERS[:1]}],
    },
    ("learning_coach", "adapt_learning_path"): {"currentPath": {"pathId": "p1", "name": "Listening Basics"}},
    ("progress_tracker", "forecast_trend"): {"history": [{"period": "w1", "completionRate": 0.4}]},
    ("insight_generator", "personalized_guidance"): {"situation": "We keep missing each other's texts."},
    ("communication_advisor", "resolve_conflict"): {"conflictDescription": "We argue about chores."},
    ("communication_advisor", "coach_dialogue"): {"scenario": "Asking for more time together."},
}


def break_providers(failure, primary, secondary):
    if failure == "timeout":
        slow_providers(primary, secondary)
        return "TIMEOUT"
    if failure == "malformed":
        primary.script("*", "Sure! Here is some advice without any JSON.")
        return "MALFORMED_OUTPUT"
    unavailable = ProviderError("service unavailable", code="PROVIDER_UNAVAILABLE", retryable=False)
    primary.script("*", unavailable)
    secondary.script("*", unavailable)
    return "PROVIDER_UNAVAILABLE"


@pytest.mark.asyncio
@pytest.mark.parametrize("failure", ["timeout", "malformed", "unavailable"])
@pytest.mark.parametrize("key", sorted(OPERATIONS), ids=lambda k: ".".join(k))
async def test_every_operation_answers_from_its_fallback(orchestrator, primary, secondary, key, failure):
    code = break_providers(failure, primary, secondary)
    op = OPERATIONS[key]

    result = await orchestrator.handlers.run(*key, MINIMAL_INPUTS.get(key, {}))

    assert result.fallback_used is True
    assert result.error_code == code
    op.output_model.model_validate(result.output)


def test_operation_table_covers_every_agent():
    assert len(OPERATIONS) == 15
    assert set(MINIMAL_INPUTS) <= set(OPERATIONS)


@pytest.mark.asyncio
async def test_failover_to_secondary_provider(orchestrator, primary, secondary):
    primary.script("*", ProviderError("bad key", code="AUTHENTICATION_FAILED", retryable=False))
    secondary.script("assessment_analyst", reply(ANALYSIS))

    result = await analyze(orchestrator)

    assert result.fallback_used is False
    assert result.provider == "secondary"


@pytest.mark.asyncio
async def test_repeat_request_is_served_from_cache(orchestrator, primary):
    primary.script("assessment_analyst", reply(ANALYSIS))

    first = await analyze(orchestrator)
    second = await analyze(orchestrator, user_id="someone-else")

    assert first.cache_hit is False
    assert second.cache_hit is True
    assert second.output == first.output
    assert second.request_id != first.request_id
    assert len(primary.calls) == 1


@pytest.mark.asyncio
async def test_cache_entry_expires_with_agent_ttl(orchestrator, primary, clock):
    primary.script("assessment_analyst", reply(ANALYSIS))
    ttl = orchestrator.config.get_agent("assessment_analyst").cache_ttl_seconds

    await analyze(orchestrator)
    clock.advance(ttl + 1)
    again = await analyze(orchestrator)

    assert again.cache_hit is False
    assert len(primary.calls) == 2


@pytest.mark.asyncio
async def test_recent_interactions_are_passed_as_history(orchestrator, primary):
    primary.script("assessment_analyst", reply(ANALYSIS))
    other = json.loads(json.dumps(ASSESSMENT_INPUT))
    other["assessment"]["answers"][0]["answer"] = "sometimes"

    await analyze(orchestrator)
    await analyze(orchestrator, payload=other)

    assert primary.calls[0].history == []
    assert len(primary.calls[1].history) == 1
    assert orchestrator.history.recent("u1", "assessment_analyst.analyze_assessment")


@pytest.mark.asyncio
async def test_concurrent_identical_requests_share_one_provider_call(orchestrator, primary):
    primary.script("assessment_analyst", reply(ANALYSIS))
    primary.delay_seconds = 0.05

    first, second = await asyncio.gather(analyze(orchestrator), analyze(orchestrator))

    assert len(primary.calls) == 1
    assert first.output == second.output
    assert orchestrator.handlers.stats()["assessment_analyst"]["shared"] == 1


@pytest.mark.asyncio
async def test_waiting_request_calls_provider_itself_when_the_first_caller_is_cancelled(orchestrator, primary):
    primary.script("assessment_analyst", reply(ANALYSIS))
    primary.delay_seconds = 0.05

    first = asyncio.create_task(analyze(orchestrator))
    await asyncio.sleep(0.01)
    waiting = asyncio.create_task(analyze(orchestrator, user_id="u2"))
    await asyncio.sleep(0.01)
    first.cancel()
    result = await waiting

    with pytest.raises(asyncio.CancelledError):
        await first
    assert result.fallback_used is False
    assert result.output["score"] == 82
    assert len(primary.calls) == 2


@pytest.mark.asyncio
async def test_invalid_input_is_rejected_before_any_provider_call(orchestrator, primary):
    with pytest.raises(ValidationError):
        await analyze(orchestrator, payload={"assessment": {"answers": []}})
    assert primary.calls == []


@pytest.mark.asyncio
async def test_unknown_agent_or_operation_is_not_found(orchestrator):
    with pytest.raises(NotFoundError):
        await orchestrator.handlers.run("astrologer", None, {})
    with pytest.raises(NotFoundError):
        await orchestrator.handlers.run("assessment_analyst", "horoscope", {})


@pytest.mark.asyncio
async def test_quick_score_fallback_scores_each_category(orchestrator, providers_down):
    result = await orchestrator.handlers.run(
        "assessment_analyst", "quick_score", {"answers": ASSESSMENT_INPUT["assessment"]["answers"]}
    )
    assert result.fallback_used is True
    assert set(result.output["category_scores"]) == {"communication", "conflict_resolution", "self_awareness"}


@pytest.mark.asyncio
async def test_learning_path_fallback_matches_skill_level(orchestrator, providers_down):
    result = await orchestrator.handlers.run(
        "learning_coach", "generate_learning_path", {"skillLevel": "Intermediate", "goals": ["listen better"]}
    )
    assert result.fallback_used is True
    assert result.output["name"] == "Relationship Foundations Path"
    assert result.output["difficulty"] == "intermediate"
    assert len(result.output["modules"]) == 2


@pytest.mark.asyncio
async def test_daily_practice_fallback_respects_available_time(orchestrator, providers_down):
    result = await orchestrator.handlers.run("learning_coach", "daily_practices", {"availableMinutes": 5})
    assert result.output["total_minutes"] <= 5


@pytest.mark.asyncio
async def test_streak_fallback_counts_consecutive_days(orchestrator, providers_down):
    activities = [
        {"practiceId": "p1", "completedAt": "2024-03-01T08:00:00Z"},
        {"practiceId": "p2", "completedAt": "2024-03-02T08:00:00Z"},
        {"practiceId": "p3", "completedAt": "2024-03-03T21:30:00Z"},
    ]
    result = await orchestrator.handlers.run(
        "progress_tracker", "analyze_streaks", {"activities": activities, "asOf": "2024-03-04"}
    )
    assert result.output["current_streak"] == 3
    assert result.output["longest_streak"] == 3
    assert result.output["streak_quality"] == "moderate"
    assert result.output["prediction"]["likely_to_continue"] is True


def test_streaks_break_on_missed_day():
    activities = [
        ActivityRecord(practice_id="a", completed_at="2024-03-01"),
        ActivityRecord(practice_id="b", completed_at="2024-03-02"),
        ActivityRecord(practice_id="c", completed_at="2024-03-05"),
        ActivityRecord(practice_id="d", completed_at="2024-03-06", completed=False),
    ]
    assert progress.streaks(activities, "2024-03-05") == (1, 2)
    assert progress.streaks(activities, "2024-03-08") == (0, 2)
    assert progress.streaks([]) == (0, 0)


@pytest.mark.asyncio
async def test_forecast_fallback_extrapolates_completion_rate(orchestrator, providers_down):
    history = [
        {"period": "w1", "completionRate": 0.5},
        {"period": "w2", "completionRate": 0.6},
        {"period": "w3", "completionRate": 0.7},
    ]
    result = await orchestrator.handlers.run("progress_tracker", "forecast_trend", {"history": history})
    assert result.output["next_week"]["expected_progress"] == pytest.approx(80.0)
    assert result.output["next_week"]["confidence_level"] == pytest.approx(0.6)


@pytest.mark.asyncio
async def test_daily_insight_fallback_uses_day_of_week(orchestrator, providers_down):
    result = await orchestrator.handlers.run("insight_generator", "daily_insight", {"dayOfWeek": "Friday"})
    assert result.output["insight"]["id"] == "daily-friday"
    assert result.output["recommendations"]


@pytest.mark.asyncio
async def test_weekly_theme_fallback_skips_recent_themes(orchestrator, providers_down):
    result = await orchestrator.handlers.run(
        "insight_generator", "weekly_theme", {"recentThemes": ["Building Emotional Awareness"]}
    )
    assert result.output["theme"] == "Strengthening Communication"
    assert len(result.output["daily_focus"]) == 7


@pytest.mark.asyncio
async def test_conflict_fallback_offers_a_strategy(orchestrator, providers_down):
    result = await orchestrator.handlers.run(
        "communication_advisor",
        "resolve_conflict",
        {"conflictDescription": "We argue about chores every weekend."},
    )
    assert result.output["strategy"]["name"] == "Calm Communication Approach"
    assert result.output["techniques"][0]["name"] == "I-Statements"


def test_quick_tips_normalize_situation(orchestrator):
    tips = orchestrator.handlers.quick_tips("Hurt Feelings")
    assert tips.situation == "hurt_feelings"
    assert len(tips.tips) == 4
    with pytest.raises(NotFoundError):
        orchestrator.handlers.quick_tips("jealousy")


def test_assessment_input_check_reports_gaps(orchestrator):
    report = orchestrator.handlers.validate_assessment_input(
        {"assessment": {"answers": [{"questionId": "q1", "answer": ""}, {"questionId": "q2", "answer": "yes"}]}}
    )
    assert report.is_valid is False
    assert report.missing_fields == ["answers.q1"]
    assert report.completeness == 0.5
    assert any("profile" in w for w in report.warnings)

    with pytest.raises(ValidationError):
        orchestrator.handlers.validate_assessment_input({"assessment": {}})
