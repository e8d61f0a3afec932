import uuid
from typing import Any
from pydantic import BaseModel, Field

from feedback360.schemas.bulk import BulkEnvelope
from feedback360.schemas.relationship import RelationshipOut


class SurveyCreate(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=1000)
    schema_: dict[str, Any] = Field(default_factory=dict, alias="schema")
    is_self_evaluation: bool = False

    model_config = {"populate_by_name": True}


class SurveyOut(BaseModel):
    id: str
    title: str
    description: str | None
    is_self_evaluation: bool
    is_active: bool
    assignment_count: int
    schema_: dict[str, Any] = Field(serialization_alias="schema")


class RelationshipIdsRequest(BaseModel):
    relationship_ids: list[uuid.UUID] = Field(min_length=1, max_length=1000)


class AssignedRelationshipOut(RelationshipOut):
    assignment_id: str


class AssignmentOut(BaseModel):
    id: str
    subject_evaluator_id: str
    survey_id: str
    is_active: bool


class SurveyAssignEnvelope(BulkEnvelope[AssignmentOut]):
    assigned_count: int
    skipped_count: int


class SurveyUnassignEnvelope(BulkEnvelope[str]):
    unassigned_count: int


class CsvRowIn(BaseModel):
    evaluator_code: str | None = None
    subject_code: str | None = None
    relationship: str | None = None


class CsvAssignRequest(BaseModel):
    rows: list[CsvRowIn] = Field(min_length=1, max_length=5000)


class CsvRowOutcomeOut(BaseModel):
    row_number: int
    evaluator_code: str
    subject_code: str
    relationship: str | None
    success: bool
    message: str | None
    relationship_id: str | None
    assignment_id: str | None


class CsvImportEnvelope(BulkEnvelope[CsvRowOutcomeOut]):
    import_job_id: str
    relationships_processed: int
    assignments_created: int
