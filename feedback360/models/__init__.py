from feedback360.models.audit_event import AuditEvent
from feedback360.models.employee import Employee
from feedback360.models.evaluator import Evaluator
from feedback360.models.import_job import ImportJob
from feedback360.models.subject import Subject
from feedback360.models.subject_evaluator import SubjectEvaluator
from feedback360.models.subject_evaluator_survey import SubjectEvaluatorSurvey
from feedback360.models.survey import Survey
from feedback360.models.survey_submission import SurveySubmission
from feedback360.models.tenant import Tenant

__all__ = [ "AuditEvent", "Employee", "Evaluator", "ImportJob", "Subject",
           "SubjectEvaluator", "SubjectEvaluatorSurvey", "Survey",
           "SurveySubmission", "Tenant" ]
