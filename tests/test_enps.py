import pytest

from happypulse.services import enps


def test_weekly_pulse_example():
    result = enps.compute([10, 9, 9, 8, 8, 7, 6, 4, 3, 9])
    assert result["promoters"] == 4
    assert result["passives"] == 3
    assert result["detractors"] == 3
    assert result["score"] == 10
    assert result["category"] == "Good"


def test_empty_is_no_data():
    result = enps.compute([])
    assert result["score"] == 0
    assert result["category"] == "No Data"
    assert result["total_responses"] == 0


@pytest.mark.parametrize(
    "scores, expected",
    [
        ([10, 10], 100),
        ([0, 0, 0], -100),
        ([7, 8], 0),
        # 1/8 promoters - 0 detractors = 12.5 -> 13 (halves round up)
        ([9, 7, 7, 7, 7, 7, 7, 7], 13),
        # 0 - 1/8 = -12.5 -> -12
        ([6, 7, 7, 7, 7, 7, 7, 7], -12),
    ],
)
def test_rounding(scores, expected):
    assert enps.compute(scores)["score"] == expected


@pytest.mark.parametrize(
    "score, category",
    [(50, "Excellent"), (49, "Good"), (10, "Good"), (9, "Acceptable"), (-10, "Acceptable"), (-11, "Poor")],
)
def test_categories(score, category):
    assert enps.category_for(score) == category


def test_question_detection_and_coercion():
    questions = [
        {"id": "q1", "type": "scale", "category": "Recommendation"},
        {"id": "q2", "type": "scale", "category": "workload"},
        {"id": "q3", "type": "text", "category": "enps"},
        {"id": 4, "type": "scale", "category": "loyalty"},
    ]
    assert enps.enps_question_ids(questions) == ["q1", "4"]
    assert enps.coerce_score(9) == 9
    assert enps.coerce_score(9.0) == 9
    assert enps.coerce_score("7") == 7
    assert enps.coerce_score(9.5) is None
    assert enps.coerce_score(True) is None
    assert enps.coerce_score(11) is None
    assert enps.coerce_score("-1") is None
