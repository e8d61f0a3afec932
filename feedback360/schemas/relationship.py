import uuid
from pydantic import BaseModel, Field


class AssignEvaluatorsRequest(BaseModel):
    evaluator_ids: list[uuid.UUID] = Field(min_length=1, max_length=500)
    relationship: str | None = Field(default=None, description="Free-form label, e.g. Manager, Peer, Self")


class AssignSubjectsRequest(BaseModel):
    subject_ids: list[uuid.UUID] = Field(min_length=1, max_length=500)
    relationship: str | None = None


class RelationshipLabelUpdate(BaseModel):
    relationship: str | None = None


class RelationshipOut(BaseModel):
    id: str
    subject_id: str
    subject_name: str
    subject_employee_code: str
    evaluator_id: str
    evaluator_name: str
    evaluator_employee_code: str
    relationship: str | None
    is_self: bool
    is_active: bool


class EdgeOutcomeOut(BaseModel):
    target_id: str
    success: bool
    action: str | None = None  # created | reactivated | updated | unchanged
    error: str | None = None
    relationship: RelationshipOut | None = None


class SurveyRefOut(BaseModel):
    id: str
    title: str
    is_self_evaluation: bool


class RelationshipWithSurveysOut(RelationshipOut):
    surveys: list[SurveyRefOut]


class RoleWrapperCreate(BaseModel):
    employee_code: str = Field(min_length=1, max_length=50)


class RoleWrapperOut(BaseModel):
    """A Subject or Evaluator: the employee in that role"""
    id: str
    employee_id: str
    employee_code: str
    full_name: str
    email: str
    is_active: bool
