"""
Outbound notifications for survey assignments and reminders.

Transport is a collaborator: anything implementing ``NotificationDispatcher``
is installed on ``app.state.notification_dispatcher`` and injected with
``Depends(get_dispatcher)``. The default only logs.
"""
import logging
from dataclasses import dataclass, field
from typing import Protocol

from fastapi import Request

logger = logging.getLogger(__name__)


@dataclass
class EvaluatorNotice:
    evaluator_email: str
    evaluator_name: str
    survey_id: str
    survey_title: str
    subject_names: list[str] = field(default_factory=list)


class NotificationDispatcher(Protocol):
    def send_assignment_notice(self, notice: EvaluatorNotice) -> None: ...

    def send_reminder(self, notice: EvaluatorNotice) -> None: ...


class LoggingDispatcher:
    def send_assignment_notice(self, notice: EvaluatorNotice) -> None:
        logger.info(
            "Assignment notice to %s for survey %s (%d subjects)",
            notice.evaluator_email,
            notice.survey_id,
            len(notice.subject_names),
        )

    def send_reminder(self, notice: EvaluatorNotice) -> None:
        logger.info(
            "Reminder to %s for survey %s (%d subjects)",
            notice.evaluator_email,
            notice.survey_id,
            len(notice.subject_names),
        )


def get_dispatcher(request: Request) -> NotificationDispatcher:
    """FastAPI dependency: the dispatcher installed on ``app.state``."""
    return request.app.state.notification_dispatcher


def dispatch(
    dispatcher: NotificationDispatcher | None, kind: str, notices: list[EvaluatorNotice]
) -> list[EvaluatorNotice]:
    """
    Send ``notices`` through ``dispatcher`` and return the ones that went out.

    ``None`` falls back to logging only. A failing send is logged and skipped;
    it never fails the caller's mutation.
    """
    if dispatcher is None:
        dispatcher = LoggingDispatcher()
    sent: list[EvaluatorNotice] = []
    for notice in notices:
        try:
            if kind == "reminder":
                dispatcher.send_reminder(notice)
            else:
                dispatcher.send_assignment_notice(notice)
        except Exception:
            logger.exception("Failed to send %s to %s", kind, notice.evaluator_email)
            continue
        sent.append(notice)
    return sent
