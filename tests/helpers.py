from datetime import datetime, timedelta

from sqlalchemy.orm import Session

from feedback360.models.employee import Employee
from feedback360.models.evaluator import Evaluator
from feedback360.models.subject import Subject
from feedback360.models.subject_evaluator import SubjectEvaluator
from feedback360.models.subject_evaluator_survey import SubjectEvaluatorSurvey
from feedback360.models.survey import Survey
from feedback360.models.survey_submission import COMPLETED, SurveySubmission
from feedback360.models.tenant import Tenant

# Three options: positions 0, 1, 2 score 0, 50, 100
RATING_SCHEMA = {
    "pages": [
        {
            "name": "page1",
            "elements": [
                {
                    "type": "rating",
                    "name": "q1",
                    "title": "Communicates clearly",
                    "config": {"ratingOptions": ["Poor", "Good", "Great"]},
                },
                {"type": "comment", "name": "notes", "title": "Anything else?"},
            ],
        }
    ]
}


def create_tenant(db: Session, slug: str = "acme", name: str = "Acme Corp", is_active: bool = True) -> Tenant:
    t = Tenant(slug=slug, name=name, is_active=is_active)
    db.add(t)
    db.commit()
    return t


def create_employee(
    db: Session,
    tenant: Tenant,
    code: str,
    first_name: str = "Test",
    last_name: str = "User",
    designation: str | None = None,
    is_active: bool = True,
) -> Employee:
    e = Employee(
        tenant_id=tenant.id,
        employee_code=code,
        first_name=first_name,
        last_name=last_name,
        email=f"{code.lower()}@{tenant.slug}.test",
        designation=designation,
        is_active=is_active,
    )
    db.add(e)
    db.commit()
    return e


def create_subject(db: Session, employee: Employee, is_active: bool = True) -> Subject:
    s = Subject(tenant_id=employee.tenant_id, employee_id=employee.id, is_active=is_active)
    db.add(s)
    db.commit()
    db.refresh(s)
    return s


def create_evaluator(db: Session, employee: Employee, is_active: bool = True) -> Evaluator:
    ev = Evaluator(tenant_id=employee.tenant_id, employee_id=employee.id, is_active=is_active)
    db.add(ev)
    db.commit()
    db.refresh(ev)
    return ev


def create_edge(
    db: Session, subject: Subject, evaluator: Evaluator, label: str | None = "Peer", is_active: bool = True
) -> SubjectEvaluator:
    edge = SubjectEvaluator(
        tenant_id=subject.tenant_id,
        subject_id=subject.id,
        evaluator_id=evaluator.id,
        label=label,
        is_active=is_active,
    )
    db.add(edge)
    db.commit()
    db.refresh(edge)
    return edge


def create_survey(
    db: Session,
    tenant: Tenant,
    title: str = "360 Feedback",
    schema: dict | None = None,
    is_self_evaluation: bool = False,
) -> Survey:
    s = Survey(
        tenant_id=tenant.id,
        title=title,
        schema=schema if schema is not None else RATING_SCHEMA,
        is_self_evaluation=is_self_evaluation,
        is_active=True,
    )
    db.add(s)
    db.commit()
    return s


def create_assignment(db: Session, edge: SubjectEvaluator, survey: Survey) -> SubjectEvaluatorSurvey:
    a = SubjectEvaluatorSurvey(
        tenant_id=edge.tenant_id,
        subject_evaluator_id=edge.id,
        survey_id=survey.id,
        is_active=True,
    )
    db.add(a)
    db.commit()
    db.refresh(a)
    return a


def create_completed_submission(
    db: Session, assignment: SubjectEvaluatorSurvey, answers: dict, completed_at: datetime | None = None
) -> SurveySubmission:
    completed_at = completed_at or datetime.utcnow()
    edge = assignment.subject_evaluator
    s = SurveySubmission(
        tenant_id=assignment.tenant_id,
        assignment_id=assignment.id,
        evaluator_id=edge.evaluator_id,
        subject_id=edge.subject_id,
        survey_id=assignment.survey_id,
        response_data=answers,
        status=COMPLETED,
        started_at=completed_at - timedelta(minutes=5),
        completed_at=completed_at,
    )
    db.add(s)
    db.commit()
    return s


def person(db: Session, tenant: Tenant, code: str, first_name: str = "Test", last_name: str = "User"):
    """Employee plus both role wrappers."""
    e = create_employee(db, tenant, code, first_name, last_name)
    return e, create_subject(db, e), create_evaluator(db, e)
