"""
Optimistic concurrency for survey submissions.

Clients echo the ETag of the submission they last read as ``If-Match``. The
header is optional: without it the write goes through, and the ORM version
counter still rejects two writers racing on the same row.
"""
from __future__ import annotations

from fastapi import HTTPException, Response, status

ETAG_HEADER = "ETag"


def version_from_header(value: str | None) -> int | None:
    """
    Accepts ``3``, ``"3"`` and weak ``W/"3"``. ``None`` means no precondition.
    """
    if value is None:
        return None

    token = value.strip()
    if token.startswith("W/"):
        token = token[2:]
    token = token.strip('"')

    if not token.isdigit() or int(token) < 1:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="If-Match must be a positive submission version",
        )
    return int(token)


def require_version(*, current: int | None, expected: int | None) -> None:
    # Nothing stored yet, or no precondition given
    if current is None or expected is None:
        return
    if current != expected:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "message": "Submission changed since it was read",
                "current_version": current,
                "if_match": expected,
            },
        )


def set_etag(response: Response, version: int) -> None:
    response.headers[ETAG_HEADER] = f'"{version}"'
