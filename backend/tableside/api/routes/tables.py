"""Table routes used by the customer ordering page."""

from typing import Optional

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from tableside.api.routes.errors import http_error
from tableside.core.exceptions import TablesideError
from tableside.core.rate_limit import limiter
from tableside.db.session import get_db
from tableside.schemas.table_session import TableReleaseRequest, TableReleaseResponse
from tableside.services.table_session_service import TableSessionService

router = APIRouter()


@router.post("/{table_id}/release", response_model=TableReleaseResponse)
@limiter.limit("30/minute")
def release_table(
    request: Request,
    table_id: int,
    data: Optional[TableReleaseRequest] = None,
    db: Session = Depends(get_db),
):
    """Customer leaves: cancel their session and mark the table available."""
    session_id = data.session_id if data else None
    try:
        return TableSessionService(db).release_table(table_id, session_id=session_id)
    except TablesideError as e:
        raise http_error(e)
