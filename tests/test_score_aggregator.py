from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient

from feedback360.main import app
from feedback360.services import score_aggregator as agg
from tests.helpers import (
    create_assignment,
    create_completed_submission,
    create_edge,
    create_survey,
    create_tenant,
    person,
)


def test_question_score_positions():
    assert agg.question_score(0, 3) == 0
    assert agg.question_score(1, 3) == 50
    assert agg.question_score(2, 3) == 100
    assert agg.question_score(0, 1) == 100
    assert agg.question_score(None, 3) is None


def test_extract_rating_questions_shapes():
    schema = {
        "pages": [
            {
                "questions": [
                    {"type": "rating", "name": "a", "config": {"ratingMin": 1, "ratingMax": 3}},
                    {"type": "text", "name": "ignored"},
                ],
                "elements": [{"type": "rating", "name": "b", "ratingOptions": [{"text": "Low"}, {"text": "High"}]}],
            }
        ]
    }
    questions = agg.extract_rating_questions(schema)
    assert [(q.id, q.options) for q in questions] == [("a", ("1", "2", "3")), ("b", ("Low", "High"))]

    root = {"elements": [{"type": "rating", "name": "c"}]}
    assert agg.extract_rating_questions(root)[0].options == ("1", "2", "3", "4", "5")

    assert agg.extract_rating_questions(None) == []


def test_score_summary_ignores_unanswered_and_unknown_answers():
    questions = [
        agg.RatingQuestion("q1", "One", ("1", "2", "3")),
        agg.RatingQuestion("q2", "Two", ("1", "2", "3")),
        agg.RatingQuestion("q3", "Three", ("1", "2", "3")),
    ]
    summary = agg.score_summary({"q1": 3.0, "q2": "banana"}, questions)
    assert summary.total_questions == 3
    assert summary.answered_questions == 1
    assert summary.overall_score == 100
    assert summary.question_scores[0].selected_option == "3"
    assert summary.question_scores[1].score is None

    empty = agg.score_summary(None, questions)
    assert empty.overall_score == 0
    assert empty.answered_questions == 0


def test_score_summary_averages_answered_questions_only():
    options = ("1", "2", "3", "4", "5")
    questions = [agg.RatingQuestion(f"q{i}", f"Q{i}", options) for i in range(1, 5)]
    summary = agg.score_summary({"q1": "1", "q2": "3", "q3": "5"}, questions)
    assert summary.total_questions == 4
    assert summary.answered_questions == 3
    assert [q.score for q in summary.question_scores] == [0, 50, 100, None]
    assert summary.overall_score == pytest.approx(50.0)


@pytest.mark.parametrize(
    "difference, expected",
    [(0.1, agg.ABOVE_PAR), (-0.1, agg.BELOW_PAR), (0.0, agg.AT_PAR), (None, None)],
)
def test_classify_performance(difference, expected):
    assert agg.classify_performance(difference) == expected


@pytest.fixture()
def cohort(db_session):
    """
    Subject A: self "Great", evaluators "Poor", "Good", "Great" (0/50/100).
    Subject B: one evaluator "Great".
    """
    tenant = create_tenant(db_session)
    survey = create_survey(db_session, tenant)
    self_survey = create_survey(db_session, tenant, "Self", is_self_evaluation=True)
    _, subject_a, self_a = person(db_session, tenant, "A", "Ann", "Able")
    _, subject_b, _ = person(db_session, tenant, "B", "Ben", "Baker")

    start = datetime(2026, 1, 1, 9, 0)
    for i, (code, answer) in enumerate([("E1", "Poor"), ("E2", "Good"), ("E3", "Great")]):
        _, _, ev = person(db_session, tenant, code, f"Eval{i}")
        a = create_assignment(db_session, create_edge(db_session, subject_a, ev, "Peer"), survey)
        create_completed_submission(db_session, a, {"q1": answer}, start + timedelta(minutes=i))
        if code == "E3":
            b = create_assignment(db_session, create_edge(db_session, subject_b, ev, "Peer"), survey)
            create_completed_submission(db_session, b, {"q1": "Great"}, start + timedelta(minutes=10))

    # Self answer to the same survey, scored but kept out of evaluator averages
    self_edge = create_edge(db_session, subject_a, self_a, "Self")
    self_assignment = create_assignment(db_session, self_edge, survey)
    create_completed_submission(db_session, self_assignment, {"q1": "Great"}, start + timedelta(minutes=20))

    return tenant, survey, self_survey, subject_a, subject_b


def test_self_vs_evaluator(db_session, cohort):
    tenant, survey, _, subject_a, _ = cohort
    c = agg.self_vs_evaluator_comparison(db_session, tenant.id, subject_a.id, survey.id)
    assert c.evaluator_count == 3
    assert c.evaluator_average_score == pytest.approx(50.0)
    assert c.self_score == 100
    assert c.score_difference == pytest.approx(50.0)
    assert c.percentage_difference == pytest.approx(100.0)
    assert c.question_comparisons[0].evaluator_response_count == 3


def test_self_vs_evaluator_without_evaluators(db_session, cohort):
    tenant, _, self_survey, subject_a, _ = cohort
    c = agg.self_vs_evaluator_comparison(db_session, tenant.id, subject_a.id, self_survey.id)
    assert c.has_self_data is False
    assert c.has_evaluator_data is False
    assert c.evaluator_average_score is None
    assert c.score_difference is None
    assert c.evaluator_count == 0


def test_organization_comparison(db_session, cohort):
    tenant, survey, _, subject_a, subject_b = cohort
    c = agg.organization_comparison(db_session, tenant.id, subject_a.id, survey.id)
    assert c.total_subjects_in_org == 2
    assert c.subject_overall_score == pytest.approx(50.0)
    assert c.organization_average_score == pytest.approx(75.0)
    assert c.performance_level == agg.BELOW_PAR
    [q1] = c.question_comparisons
    assert q1.question_id == "q1"
    assert q1.subject_score == pytest.approx(50.0)
    assert q1.organization_average_score == pytest.approx(75.0)
    assert q1.score_difference == pytest.approx(-25.0)
    assert q1.subject_count == 2

    c = agg.organization_comparison(db_session, tenant.id, subject_b.id, survey.id)
    assert c.performance_level == agg.ABOVE_PAR


def test_single_subject_is_at_par(db_session):
    tenant = create_tenant(db_session)
    survey = create_survey(db_session, tenant)
    _, subject, _ = person(db_session, tenant, "S")
    _, _, ev = person(db_session, tenant, "E")
    a = create_assignment(db_session, create_edge(db_session, subject, ev), survey)
    create_completed_submission(db_session, a, {"q1": "Good"})

    c = agg.organization_comparison(db_session, tenant.id, subject.id, survey.id)
    assert c.score_difference == 0
    assert c.performance_level == agg.AT_PAR


def test_report_endpoints_round_to_one_decimal(db_session):
    tenant = create_tenant(db_session)
    schema = {"elements": [{"type": "rating", "name": "q1", "ratingOptions": ["1", "2", "3", "4"]}]}
    survey = create_survey(db_session, tenant, schema=schema)
    _, subject, _ = person(db_session, tenant, "S", "Sue", "Smith")
    _, _, ev = person(db_session, tenant, "E")
    a = create_assignment(db_session, create_edge(db_session, subject, ev), survey)
    create_completed_submission(db_session, a, {"q1": "2"})

    client = TestClient(app)
    base = f"/acme/reporting/subjects/{subject.id}"
    r = client.get(f"{base}/summary", params={"survey_id": str(survey.id)})
    assert r.status_code == 200, r.text
    assert r.json()[0]["summary"]["overall_score"] == 33.3

    r = client.get(f"{base}/comprehensive", params={"survey_id": str(survey.id)})
    body = r.json()
    assert body["subject_name"] == "Sue Smith"
    assert body["self_vs_evaluator"]["evaluator_average_score"] == 33.3
    assert body["organization"]["performance_level"] == agg.AT_PAR
    assert body["organization"]["question_comparisons"][0]["subject_score"] == 33.3

    r = client.get(f"{base}/self-vs-evaluator", params={"survey_id": str(survey.id)})
    assert r.json()["has_self_data"] is False
    r = client.get(f"{base}/organization", params={"survey_id": str(survey.id)})
    assert r.json()["total_subjects_in_org"] == 1


def test_report_for_foreign_subject_is_404(db_session):
    create_tenant(db_session)
    other = create_tenant(db_session, slug="other")
    survey = create_survey(db_session, other)
    _, subject, _ = person(db_session, other, "S")

    client = TestClient(app)
    r = client.get(f"/acme/reporting/subjects/{subject.id}/summary", params={"survey_id": str(survey.id)})
    assert r.status_code == 404


def test_submission_without_answers_is_left_out_of_averages(db_session):
    tenant = create_tenant(db_session)
    survey = create_survey(db_session, tenant)
    _, subject, _ = person(db_session, tenant, "S")
    _, _, rated = person(db_session, tenant, "E1")
    _, _, blank = person(db_session, tenant, "E2")
    a = create_assignment(db_session, create_edge(db_session, subject, rated), survey)
    create_completed_submission(db_session, a, {"q1": "Great"})
    b = create_assignment(db_session, create_edge(db_session, subject, blank), survey)
    create_completed_submission(db_session, b, {})

    c = agg.self_vs_evaluator_comparison(db_session, tenant.id, subject.id, survey.id)
    assert c.evaluator_average_score == pytest.approx(100.0)
    assert c.evaluator_count == 1

    org = agg.organization_comparison(db_session, tenant.id, subject.id, survey.id)
    assert org.subject_overall_score == pytest.approx(100.0)
    assert org.organization_average_score == pytest.approx(100.0)


def test_self_only_subject_counts_in_org_size(db_session):
    tenant = create_tenant(db_session)
    survey = create_survey(db_session, tenant)
    _, subject_a, _ = person(db_session, tenant, "A")
    _, subject_b, self_b = person(db_session, tenant, "B")
    _, _, peer = person(db_session, tenant, "P")
    a = create_assignment(db_session, create_edge(db_session, subject_a, peer, "Peer"), survey)
    create_completed_submission(db_session, a, {"q1": "Good"})
    b = create_assignment(db_session, create_edge(db_session, subject_b, self_b, "Self"), survey)
    create_completed_submission(db_session, b, {"q1": "Great"})

    c = agg.organization_comparison(db_session, tenant.id, subject_a.id, survey.id)
    assert c.total_subjects_in_org == 2
    assert c.organization_average_score == pytest.approx(50.0)

    c = agg.organization_comparison(db_session, tenant.id, subject_b.id, survey.id)
    assert c.subject_overall_score is None
    assert c.performance_level is None
    assert c.question_comparisons == []
