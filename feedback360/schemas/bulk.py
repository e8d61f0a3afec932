from typing import Generic, TypeVar
from pydantic import BaseModel

T = TypeVar("T")

SUCCESS = "success"
PARTIAL_SUCCESS = "partial_success"
FAILURE = "failure"


def envelope_status(success_count: int, failure_count: int) -> str:
    if failure_count == 0:
        return SUCCESS
    if success_count == 0:
        return FAILURE
    return PARTIAL_SUCCESS


class BulkEnvelope(BaseModel, Generic[T]):
    """Partial-success envelope returned by every batch mutation"""
    success_count: int
    failure_count: int
    errors: list[str]
    items: list[T]
    status: str  # success | partial_success | failure
