"""
Score aggregation over completed submissions.

Every rating answer is normalized to 0..100 by its position among the
question's options. Scores are never stored; each report recomputes them from
``SurveySubmission.response_data`` at full float precision. Rounding happens
in the response schemas only. A completed submission with no answered rating
question is left out of every average.

Reports read committed rows without locking. A submission completing while a
report is being built may or may not be included in it.
"""
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy.orm import Session, aliased

from feedback360.core.results import ServiceError, ServiceException
from feedback360.models.evaluator import Evaluator
from feedback360.models.subject import Subject
from feedback360.models.subject_evaluator import SubjectEvaluator
from feedback360.models.subject_evaluator_survey import SubjectEvaluatorSurvey
from feedback360.models.survey import Survey
from feedback360.models.survey_submission import COMPLETED, SurveySubmission
from feedback360.services.relationship_graph import is_self_label

logger = logging.getLogger(__name__)

ABOVE_PAR = "AbovePar"
BELOW_PAR = "BelowPar"
AT_PAR = "AtPar"

DEFAULT_RATING_MIN = 1
DEFAULT_RATING_MAX = 5
DEFAULT_RATING_STEP = 1


@dataclass(frozen=True)
class RatingQuestion:
    id: str
    title: str
    options: tuple[str, ...]


def _number(*candidates, default):
    for value in candidates:
        if value is None or isinstance(value, bool):
            continue
        try:
            return float(value)
        except (TypeError, ValueError):
            continue
    return default


def _format_option(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)


def _rating_options(element: dict[str, Any]) -> tuple[str, ...]:
    config = element.get("config") if isinstance(element.get("config"), dict) else {}

    explicit = config.get("ratingOptions") or element.get("ratingOptions")
    if isinstance(explicit, list) and explicit:
        options = []
        for opt in explicit:
            if isinstance(opt, dict):
                options.append(str(opt.get("text", opt.get("value", ""))))
            else:
                options.append(str(opt))
        return tuple(options)

    low = _number(config.get("ratingMin"), config.get("rateMin"), element.get("ratingMin"), element.get("rateMin"),
                  default=DEFAULT_RATING_MIN)
    high = _number(config.get("ratingMax"), config.get("rateMax"), element.get("ratingMax"), element.get("rateMax"),
                   default=DEFAULT_RATING_MAX)
    step = _number(config.get("ratingStep"), config.get("rateStep"), element.get("ratingStep"),
                   element.get("rateStep"), default=DEFAULT_RATING_STEP)
    if step <= 0 or high < low:
        return ()

    options = []
    value = low
    while value <= high + 1e-9:
        options.append(_format_option(value))
        value += step
    return tuple(options)


def _elements(schema: dict[str, Any]) -> list[dict[str, Any]]:
    elements: list[dict[str, Any]] = []
    for page in schema.get("pages") or []:
        if not isinstance(page, dict):
            continue
        elements.extend(page.get("questions") or [])
        elements.extend(page.get("elements") or [])
    if not elements:
        elements.extend(schema.get("elements") or [])
    return [e for e in elements if isinstance(e, dict)]


def extract_rating_questions(schema: dict[str, Any] | None) -> list[RatingQuestion]:
    """Rating questions from ``pages[].questions``, ``pages[].elements`` or root ``elements``."""
    if not isinstance(schema, dict):
        return []

    questions = []
    for element in _elements(schema):
        if element.get("type") != "rating":
            continue
        qid = element.get("name") or element.get("id")
        if not qid:
            continue
        questions.append(
            RatingQuestion(
                id=str(qid),
                title=str(element.get("title") or qid),
                options=_rating_options(element),
            )
        )
    return questions


def question_score(position: int | None, total_options: int) -> float | None:
    """0..100 for an answered question, ``None`` when unanswered."""
    if position is None or total_options <= 0:
        return None
    if total_options == 1:
        return 100.0
    return position / (total_options - 1) * 100


@dataclass
class QuestionScore:
    question_id: str
    question_title: str
    selected_option: str | None
    selected_position: int | None
    total_options: int
    score: float | None


@dataclass
class ScoreSummary:
    overall_score: float
    total_questions: int
    answered_questions: int
    question_scores: list[QuestionScore] = field(default_factory=list)


def _answer_position(answer: Any, options: tuple[str, ...]) -> tuple[str | None, int | None]:
    if answer is None or isinstance(answer, (list, dict)):
        return None, None
    if isinstance(answer, float) and answer.is_integer():
        answer = int(answer)
    text = str(answer).strip()
    if text in options:
        return text, options.index(text)
    return None, None


def score_summary(answers: dict[str, Any] | None, questions: list[RatingQuestion]) -> ScoreSummary:
    answers = answers or {}
    scores = []
    for q in questions:
        selected, position = _answer_position(answers.get(q.id), q.options)
        scores.append(
            QuestionScore(
                question_id=q.id,
                question_title=q.title,
                selected_option=selected,
                selected_position=position,
                total_options=len(q.options),
                score=question_score(position, len(q.options)),
            )
        )

    answered = [s.score for s in scores if s.score is not None]
    return ScoreSummary(
        overall_score=sum(answered) / len(answered) if answered else 0.0,
        total_questions=len(questions),
        answered_questions=len(answered),
        question_scores=scores,
    )


def _mean(values: list[float]) -> float | None:
    return sum(values) / len(values) if values else None


def _percentage(difference: float | None, base: float | None) -> float | None:
    if difference is None or base is None:
        return None
    if base == 0:
        return 0.0
    return difference / base * 100


def classify_performance(score_difference: float | None) -> str | None:
    if score_difference is None:
        return None
    if score_difference > 0:
        return ABOVE_PAR
    if score_difference < 0:
        return BELOW_PAR
    return AT_PAR


@dataclass
class SubmissionScore:
    submission_id: uuid.UUID
    subject_id: uuid.UUID
    evaluator_id: uuid.UUID
    evaluator_name: str
    relationship: str | None
    is_self: bool
    summary: ScoreSummary


@dataclass
class QuestionComparison:
    question_id: str
    question_title: str
    self_score: float | None
    evaluator_average_score: float | None
    score_difference: float | None
    evaluator_response_count: int


@dataclass
class SelfVsEvaluatorComparison:
    subject_id: uuid.UUID
    survey_id: uuid.UUID
    self_score: float | None
    evaluator_average_score: float | None
    score_difference: float | None
    percentage_difference: float | None
    evaluator_count: int
    has_self_data: bool
    has_evaluator_data: bool
    question_comparisons: list[QuestionComparison] = field(default_factory=list)


@dataclass
class OrganizationQuestionComparison:
    question_id: str
    question_title: str
    subject_score: float
    organization_average_score: float
    score_difference: float
    subject_count: int


@dataclass
class OrganizationComparison:
    subject_id: uuid.UUID
    survey_id: uuid.UUID
    subject_overall_score: float | None
    organization_average_score: float | None
    score_difference: float | None
    percentage_difference: float | None
    performance_level: str | None
    total_subjects_in_org: int
    question_comparisons: list[OrganizationQuestionComparison] = field(default_factory=list)


@dataclass
class ComprehensiveReport:
    subject_id: uuid.UUID
    survey_id: uuid.UUID
    survey_title: str
    subject_name: str
    submissions: list[SubmissionScore]
    self_vs_evaluator: SelfVsEvaluatorComparison
    organization: OrganizationComparison


def _load_subject_and_survey(
    db: Session, tenant_id: uuid.UUID, subject_id: uuid.UUID, survey_id: uuid.UUID
) -> tuple[Subject, Survey]:
    subject = db.get(Subject, subject_id)
    if not subject or subject.tenant_id != tenant_id:
        raise ServiceException(ServiceError.not_found("Subject not found"))
    survey = db.get(Survey, survey_id)
    if not survey or survey.tenant_id != tenant_id:
        raise ServiceException(ServiceError.not_found("Survey not found"))
    return subject, survey


def _score_completed_submissions(
    db: Session,
    tenant_id: uuid.UUID,
    survey: Survey,
    *,
    subject_id: uuid.UUID | None = None,
) -> list[SubmissionScore]:
    """
    One query, one summary per Completed submission for ``survey``.

    Historical submissions count even if their edge or assignment has since
    been deactivated.
    """
    questions = extract_rating_questions(survey.schema)
    SubjectRow = aliased(Subject)
    EvaluatorRow = aliased(Evaluator)

    query = (
        db.query(SurveySubmission, SubjectEvaluator.label, SubjectRow.employee_id, EvaluatorRow)
        .join(SubjectEvaluatorSurvey, SubjectEvaluatorSurvey.id == SurveySubmission.assignment_id)
        .join(SubjectEvaluator, SubjectEvaluator.id == SubjectEvaluatorSurvey.subject_evaluator_id)
        .join(SubjectRow, SubjectRow.id == SurveySubmission.subject_id)
        .join(EvaluatorRow, EvaluatorRow.id == SurveySubmission.evaluator_id)
        .filter(
            SurveySubmission.tenant_id == tenant_id,
            SurveySubmission.survey_id == survey.id,
            SurveySubmission.status == COMPLETED,
        )
    )
    if subject_id is not None:
        query = query.filter(SurveySubmission.subject_id == subject_id)

    scored = []
    for submission, label, subject_employee_id, evaluator in query.order_by(SurveySubmission.completed_at.asc()):
        scored.append(
            SubmissionScore(
                submission_id=submission.id,
                subject_id=submission.subject_id,
                evaluator_id=evaluator.id,
                evaluator_name=evaluator.employee.full_name,
                relationship=label,
                is_self=evaluator.employee_id == subject_employee_id or is_self_label(label),
                summary=score_summary(submission.response_data, questions),
            )
        )
    return scored


def _answered(rows: list[SubmissionScore]) -> list[SubmissionScore]:
    # A completed submission with no answered rating question has no score to average
    return [s for s in rows if s.summary.answered_questions > 0]


def _question_averages(rows: list[SubmissionScore]) -> dict[str, float]:
    values: dict[str, list[float]] = {}
    for s in rows:
        for q in s.summary.question_scores:
            if q.score is not None:
                values.setdefault(q.question_id, []).append(q.score)
    return {qid: sum(v) / len(v) for qid, v in values.items()}


def _question_titles(scored: list[SubmissionScore]) -> list[tuple[str, str]]:
    if not scored:
        return []
    return [(q.question_id, q.question_title) for q in scored[0].summary.question_scores]


def _self_vs_evaluator(
    subject_id: uuid.UUID, survey_id: uuid.UUID, scored: list[SubmissionScore]
) -> SelfVsEvaluatorComparison:
    own = _answered([s for s in scored if s.subject_id == subject_id])
    self_rows = [s for s in own if s.is_self]
    evaluator_rows = [s for s in own if not s.is_self]

    self_score = _mean([s.summary.overall_score for s in self_rows])
    evaluator_average = _mean([s.summary.overall_score for s in evaluator_rows])
    difference = self_score - evaluator_average if self_score is not None and evaluator_average is not None else None

    question_comparisons = []
    for question_id, title in _question_titles(own):
        self_values = [
            q.score for s in self_rows for q in s.summary.question_scores
            if q.question_id == question_id and q.score is not None
        ]
        evaluator_values = [
            q.score for s in evaluator_rows for q in s.summary.question_scores
            if q.question_id == question_id and q.score is not None
        ]
        q_self = _mean(self_values)
        q_eval = _mean(evaluator_values)
        question_comparisons.append(
            QuestionComparison(
                question_id=question_id,
                question_title=title,
                self_score=q_self,
                evaluator_average_score=q_eval,
                score_difference=q_self - q_eval if q_self is not None and q_eval is not None else None,
                evaluator_response_count=len(evaluator_values),
            )
        )

    return SelfVsEvaluatorComparison(
        subject_id=subject_id,
        survey_id=survey_id,
        self_score=self_score,
        evaluator_average_score=evaluator_average,
        score_difference=difference,
        percentage_difference=_percentage(difference, evaluator_average),
        evaluator_count=len(evaluator_rows),
        has_self_data=bool(self_rows),
        has_evaluator_data=bool(evaluator_rows),
        question_comparisons=question_comparisons,
    )


def _organization(
    subject_id: uuid.UUID, survey_id: uuid.UUID, scored: list[SubmissionScore]
) -> OrganizationComparison:
    """
    Cohort: every subject with an answered evaluator (non-self) submission,
    the compared subject included. ``total_subjects_in_org`` counts every
    subject with any completed submission, self-only ones too.
    """
    per_subject: dict[uuid.UUID, list[SubmissionScore]] = {}
    for s in _answered(scored):
        if not s.is_self:
            per_subject.setdefault(s.subject_id, []).append(s)

    subject_averages = {sid: _mean([r.summary.overall_score for r in rows]) for sid, rows in per_subject.items()}
    question_averages = {sid: _question_averages(rows) for sid, rows in per_subject.items()}

    subject_score = subject_averages.get(subject_id)
    org_average = _mean(list(subject_averages.values()))
    difference = subject_score - org_average if subject_score is not None and org_average is not None else None

    own_questions = question_averages.get(subject_id, {})
    question_comparisons = []
    for question_id, title in _question_titles(scored):
        cohort = [averages[question_id] for averages in question_averages.values() if question_id in averages]
        subject_q = own_questions.get(question_id)
        if subject_q is None or not cohort:
            continue
        org_q = sum(cohort) / len(cohort)
        question_comparisons.append(
            OrganizationQuestionComparison(
                question_id=question_id,
                question_title=title,
                subject_score=subject_q,
                organization_average_score=org_q,
                score_difference=subject_q - org_q,
                subject_count=len(cohort),
            )
        )

    return OrganizationComparison(
        subject_id=subject_id,
        survey_id=survey_id,
        subject_overall_score=subject_score,
        organization_average_score=org_average,
        score_difference=difference,
        percentage_difference=_percentage(difference, org_average),
        performance_level=classify_performance(difference),
        total_subjects_in_org=len({s.subject_id for s in scored}),
        question_comparisons=question_comparisons,
    )


def subject_submission_scores(
    db: Session, tenant_id: uuid.UUID, subject_id: uuid.UUID, survey_id: uuid.UUID
) -> list[SubmissionScore]:
    _, survey = _load_subject_and_survey(db, tenant_id, subject_id, survey_id)
    return _score_completed_submissions(db, tenant_id, survey, subject_id=subject_id)


def self_vs_evaluator_comparison(
    db: Session, tenant_id: uuid.UUID, subject_id: uuid.UUID, survey_id: uuid.UUID
) -> SelfVsEvaluatorComparison:
    _, survey = _load_subject_and_survey(db, tenant_id, subject_id, survey_id)
    scored = _score_completed_submissions(db, tenant_id, survey, subject_id=subject_id)
    return _self_vs_evaluator(subject_id, survey_id, scored)


def organization_comparison(
    db: Session, tenant_id: uuid.UUID, subject_id: uuid.UUID, survey_id: uuid.UUID
) -> OrganizationComparison:
    _, survey = _load_subject_and_survey(db, tenant_id, subject_id, survey_id)
    scored = _score_completed_submissions(db, tenant_id, survey)
    return _organization(subject_id, survey_id, scored)


def comprehensive_report(
    db: Session, tenant_id: uuid.UUID, subject_id: uuid.UUID, survey_id: uuid.UUID
) -> ComprehensiveReport:
    """Both comparisons from a single pass over the survey's completed submissions."""
    subject, survey = _load_subject_and_survey(db, tenant_id, subject_id, survey_id)
    scored = _score_completed_submissions(db, tenant_id, survey)

    report = ComprehensiveReport(
        subject_id=subject_id,
        survey_id=survey_id,
        survey_title=survey.title,
        subject_name=subject.employee.full_name,
        submissions=[s for s in scored if s.subject_id == subject_id],
        self_vs_evaluator=_self_vs_evaluator(subject_id, survey_id, scored),
        organization=_organization(subject_id, survey_id, scored),
    )
    logger.info(
        "Comprehensive report for subject %s survey %s: %d submissions, %d evaluators",
        subject_id,
        survey_id,
        len(report.submissions),
        report.self_vs_evaluator.evaluator_count,
    )
    return report
