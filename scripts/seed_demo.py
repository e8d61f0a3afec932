from sqlalchemy.orm import Session

from feedback360.core.config import settings
from feedback360.db.session import SessionLocal
from feedback360.models.employee import Employee
from feedback360.models.survey import Survey
from feedback360.models.tenant import Tenant
from feedback360.services import assignment_resolver, identity, relationship_graph
from feedback360.services.emailing_list_cache import EmailingListCache

RATING_SCHEMA = {
    "pages": [
        {
            "name": "page1",
            "elements": [
                {
                    "type": "rating",
                    "name": "communication",
                    "title": "Communicates clearly",
                    "ratingOptions": ["1", "2", "3", "4", "5"],
                },
                {
                    "type": "rating",
                    "name": "ownership",
                    "title": "Takes ownership",
                    "rateMin": 1,
                    "rateMax": 5,
                },
            ],
        }
    ]
}


def get_or_create_tenant(db: Session, slug: str, name: str) -> Tenant:
    t = db.query(Tenant).filter(Tenant.slug == slug).one_or_none()
    if t:
        return t
    t = Tenant(slug=slug, name=name, is_active=True)
    db.add(t)
    db.flush()
    return t


def get_or_create_employee(db: Session, tenant: Tenant, code: str, first_name: str, last_name: str) -> Employee:
    existing = identity.resolve_employee(db, tenant.id, code)
    if existing.is_ok:
        return existing.value
    return identity.create_employee(
        db,
        tenant.id,
        identity.EmployeeInput(
            employee_code=code,
            first_name=first_name,
            last_name=last_name,
            email=f"{first_name.lower()}.{last_name.lower()}@demo.test",
        ),
    ).unwrap()


def get_or_create_survey(db: Session, tenant: Tenant, title: str, is_self: bool) -> Survey:
    s = db.query(Survey).filter(Survey.tenant_id == tenant.id, Survey.title == title).one_or_none()
    if s:
        return s
    s = Survey(tenant_id=tenant.id, title=title, schema=RATING_SCHEMA, is_self_evaluation=is_self, is_active=True)
    db.add(s)
    db.flush()
    return s


def main():
    db = SessionLocal()
    cache = EmailingListCache.from_settings(settings)
    try:
        tenant = get_or_create_tenant(db, "demo", "Demo Company")

        alice = get_or_create_employee(db, tenant, "E100", "Alice", "Manager")
        bob = get_or_create_employee(db, tenant, "E200", "Bob", "Peer")
        carol = get_or_create_employee(db, tenant, "E300", "Carol", "Subject")

        subject = identity.get_or_create_subject(db, carol)
        evaluators = [identity.get_or_create_evaluator(db, e) for e in (alice, bob, carol)]
        db.flush()

        relationship_graph.assign(db, tenant.id, subject.id, [evaluators[0].id], "Manager", cache=cache)
        relationship_graph.assign(db, tenant.id, subject.id, [evaluators[1].id], "Peer", cache=cache)
        relationship_graph.assign(db, tenant.id, subject.id, [evaluators[2].id], "Self", cache=cache)

        feedback = get_or_create_survey(db, tenant, "Demo 360 Feedback", is_self=False)
        self_review = get_or_create_survey(db, tenant, "Demo Self Review", is_self=True)

        edges = relationship_graph.list_for_subject(db, tenant.id, subject.id)
        assignment_resolver.assign_survey_to_relationships(
            db, tenant.id, feedback.id, [e.id for e in edges if not e.is_self], cache=cache, notify=False
        )
        assignment_resolver.assign_survey_to_relationships(
            db, tenant.id, self_review.id, [e.id for e in edges if e.is_self], cache=cache, notify=False
        )
        db.commit()

        print("\n=== Demo Seed Complete ===")
        print(f"Tenant slug: {tenant.slug}  (all routes are prefixed with /{tenant.slug})")
        print(f"Subject:     {carol.full_name} subject_id={subject.id}")
        for edge in edges:
            print(f"  {edge.label:<8} evaluator={edge.evaluator.employee.full_name} relationship_id={edge.id}")
        print(f"Surveys:     feedback={feedback.id} self={self_review.id}")

        print("\nNext actions:")
        print(f"  1) GET  /{tenant.slug}/emailing-list")
        print(f"  2) POST /{tenant.slug}/assignments/{{assignment_id}}/submit")
        print(f"  3) GET  /{tenant.slug}/reporting/subjects/{subject.id}/comprehensive?survey_id={feedback.id}")
        print()
    finally:
        db.close()


if __name__ == "__main__":
    main()
