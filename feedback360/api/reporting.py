import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from feedback360.core.tenancy import get_current_tenant
from feedback360.db.session import get_db
from feedback360.models.tenant import Tenant
from feedback360.schemas.reporting import (
    ComprehensiveReportOut,
    OrganizationComparisonOut,
    OrganizationQuestionComparisonOut,
    QuestionComparisonOut,
    QuestionScoreOut,
    ScoreSummaryOut,
    SelfVsEvaluatorOut,
    SubmissionScoreOut,
)
from feedback360.services import score_aggregator as agg

router = APIRouter(prefix="/{tenant_slug}/reporting/subjects/{subject_id}", tags=["reporting"])


def summary_to_out(s: agg.ScoreSummary) -> ScoreSummaryOut:
    return ScoreSummaryOut(
        overall_score=s.overall_score,
        total_questions=s.total_questions,
        answered_questions=s.answered_questions,
        question_scores=[
            QuestionScoreOut(
                question_id=q.question_id,
                question_title=q.question_title,
                selected_option=q.selected_option,
                selected_position=q.selected_position,
                total_options=q.total_options,
                score=q.score,
            )
            for q in s.question_scores
        ],
    )


def submission_score_to_out(s: agg.SubmissionScore) -> SubmissionScoreOut:
    return SubmissionScoreOut(
        submission_id=str(s.submission_id),
        evaluator_id=str(s.evaluator_id),
        evaluator_name=s.evaluator_name,
        relationship=s.relationship,
        is_self=s.is_self,
        summary=summary_to_out(s.summary),
    )


def self_vs_evaluator_to_out(c: agg.SelfVsEvaluatorComparison) -> SelfVsEvaluatorOut:
    return SelfVsEvaluatorOut(
        subject_id=str(c.subject_id),
        survey_id=str(c.survey_id),
        self_score=c.self_score,
        evaluator_average_score=c.evaluator_average_score,
        score_difference=c.score_difference,
        percentage_difference=c.percentage_difference,
        evaluator_count=c.evaluator_count,
        has_self_data=c.has_self_data,
        has_evaluator_data=c.has_evaluator_data,
        question_comparisons=[
            QuestionComparisonOut(
                question_id=q.question_id,
                question_title=q.question_title,
                self_score=q.self_score,
                evaluator_average_score=q.evaluator_average_score,
                score_difference=q.score_difference,
                evaluator_response_count=q.evaluator_response_count,
            )
            for q in c.question_comparisons
        ],
    )


def organization_to_out(c: agg.OrganizationComparison) -> OrganizationComparisonOut:
    return OrganizationComparisonOut(
        subject_id=str(c.subject_id),
        survey_id=str(c.survey_id),
        subject_overall_score=c.subject_overall_score,
        organization_average_score=c.organization_average_score,
        score_difference=c.score_difference,
        percentage_difference=c.percentage_difference,
        performance_level=c.performance_level,
        total_subjects_in_org=c.total_subjects_in_org,
        question_comparisons=[
            OrganizationQuestionComparisonOut(
                question_id=q.question_id,
                question_title=q.question_title,
                subject_score=q.subject_score,
                organization_average_score=q.organization_average_score,
                score_difference=q.score_difference,
                subject_count=q.subject_count,
            )
            for q in c.question_comparisons
        ],
    )


@router.get("/summary", response_model=list[SubmissionScoreOut])
def subject_summary(
    subject_id: uuid.UUID,
    survey_id: uuid.UUID = Query(..., description="Survey to score"),
    db: Session = Depends(get_db),
    tenant: Tenant = Depends(get_current_tenant),
):
    """Score summary of each completed submission about this subject."""
    return [
        submission_score_to_out(s)
        for s in agg.subject_submission_scores(db, tenant.id, subject_id, survey_id)
    ]


@router.get("/self-vs-evaluator", response_model=SelfVsEvaluatorOut)
def self_vs_evaluator(
    subject_id: uuid.UUID,
    survey_id: uuid.UUID = Query(...),
    db: Session = Depends(get_db),
    tenant: Tenant = Depends(get_current_tenant),
):
    return self_vs_evaluator_to_out(agg.self_vs_evaluator_comparison(db, tenant.id, subject_id, survey_id))


@router.get("/organization", response_model=OrganizationComparisonOut)
def organization(
    subject_id: uuid.UUID,
    survey_id: uuid.UUID = Query(...),
    db: Session = Depends(get_db),
    tenant: Tenant = Depends(get_current_tenant),
):
    return organization_to_out(agg.organization_comparison(db, tenant.id, subject_id, survey_id))


@router.get("/comprehensive", response_model=ComprehensiveReportOut)
def comprehensive(
    subject_id: uuid.UUID,
    survey_id: uuid.UUID = Query(...),
    db: Session = Depends(get_db),
    tenant: Tenant = Depends(get_current_tenant),
):
    report = agg.comprehensive_report(db, tenant.id, subject_id, survey_id)
    return ComprehensiveReportOut(
        subject_id=str(report.subject_id),
        survey_id=str(report.survey_id),
        survey_title=report.survey_title,
        subject_name=report.subject_name,
        submissions=[submission_score_to_out(s) for s in report.submissions],
        self_vs_evaluator=self_vs_evaluator_to_out(report.self_vs_evaluator),
        organization=organization_to_out(report.organization),
    )
