import pydantic
import pytest

from kasama_ai.core.contracts.learning import LearningPath
from kasama_ai.core.contracts.progress import ProgressMetrics

METRICS = {
    "currentStreak": 3,
    "longestStreak": 5,
    "completionRate": 0.8,
    "averageRating": 4.2,
    "totalSessionMinutes": 90,
    "improvementRate": 12,
    "consistencyScore": 0.7,
    "engagementLevel": "High",
}

PATH = {
    "pathId": "p1",
    "name": "Listening Basics",
    "description": "Two weeks of listening practice.",
    "difficulty": "beginner",
    "estimatedDurationWeeks": 4,
    "modules": [
        {"id": "m1", "title": "Pause", "description": "Notice the urge to reply.", "order": 1, "estimatedTimeMinutes": 20}
    ],
    "learningObjectives": ["Reflect before replying"],
    "personalizationScore": 0.6,
}


def test_metrics_are_clamped_into_range():
    metrics = ProgressMetrics.model_validate(
        {**METRICS, "averageRating": 9, "completionRate": "140%", "improvementRate": -400}
    )

    assert metrics.average_rating == 5.0
    assert metrics.completion_rate == 1.0
    assert metrics.improvement_rate == -100.0
    assert metrics.engagement_level == "high"


@pytest.mark.parametrize("field", ["averageRating", "completionRate", "currentStreak"])
def test_boolean_metric_is_rejected(field):
    with pytest.raises(pydantic.ValidationError):
        ProgressMetrics.model_validate({**METRICS, field: False})


def test_path_duration_is_clamped_to_a_year():
    path = LearningPath.model_validate({**PATH, "estimatedDurationWeeks": 0})
    assert path.estimated_duration_weeks == 1
    path = LearningPath.model_validate({**PATH, "estimatedDurationWeeks": "80"})
    assert path.estimated_duration_weeks == 52


@pytest.mark.parametrize("value", [False, True])
def test_boolean_path_duration_is_rejected(value):
    with pytest.raises(pydantic.ValidationError):
        LearningPath.model_validate({**PATH, "estimatedDurationWeeks": value})


def test_nan_is_rejected():
    with pytest.raises(pydantic.ValidationError):
        LearningPath.model_validate({**PATH, "personalizationScore": float("nan")})
