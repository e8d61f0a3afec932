from typing import Annotated
from pydantic import AfterValidator, BaseModel


def _round1(value: float | None) -> float | None:
    return None if value is None else round(value, 1)


# Scores are kept at full precision internally and rounded here only
Score = Annotated[float | None, AfterValidator(_round1)]


class QuestionScoreOut(BaseModel):
    question_id: str
    question_title: str
    selected_option: str | None
    selected_position: int | None
    total_options: int
    score: Score


class ScoreSummaryOut(BaseModel):
    overall_score: Score
    total_questions: int
    answered_questions: int
    question_scores: list[QuestionScoreOut]


class SubmissionScoreOut(BaseModel):
    submission_id: str
    evaluator_id: str
    evaluator_name: str
    relationship: str | None
    is_self: bool
    summary: ScoreSummaryOut


class QuestionComparisonOut(BaseModel):
    question_id: str
    question_title: str
    self_score: Score
    evaluator_average_score: Score
    score_difference: Score
    evaluator_response_count: int


class SelfVsEvaluatorOut(BaseModel):
    subject_id: str
    survey_id: str
    self_score: Score
    evaluator_average_score: Score
    score_difference: Score
    percentage_difference: Score
    evaluator_count: int
    has_self_data: bool
    has_evaluator_data: bool
    question_comparisons: list[QuestionComparisonOut]


class OrganizationQuestionComparisonOut(BaseModel):
    question_id: str
    question_title: str
    subject_score: Score
    organization_average_score: Score
    score_difference: Score
    subject_count: int


class OrganizationComparisonOut(BaseModel):
    subject_id: str
    survey_id: str
    subject_overall_score: Score
    organization_average_score: Score
    score_difference: Score
    percentage_difference: Score
    performance_level: str | None  # AbovePar | BelowPar | AtPar
    total_subjects_in_org: int
    question_comparisons: list[OrganizationQuestionComparisonOut]


class ComprehensiveReportOut(BaseModel):
    subject_id: str
    survey_id: str
    survey_title: str
    subject_name: str
    submissions: list[SubmissionScoreOut]
    self_vs_evaluator: SelfVsEvaluatorOut
    organization: OrganizationComparisonOut
