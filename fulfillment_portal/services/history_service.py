from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.orm import Session

from fulfillment_portal.models import AuthEvent, DocumentHistory, DocumentType


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def log_auth_event(
    db: Session,
    *,
    attempted_username: str,
    success: bool,
    ip: str | None,
    user_agent: str | None,
    principal_id: int | None = None,
    failure_reason: str | None = None,
) -> None:
    db.add(
        AuthEvent(
            attempted_username=attempted_username,
            success=success,
            failure_reason=failure_reason,
            principal_id=principal_id,
            ip=ip,
            user_agent=user_agent,
        )
    )


def log_history(
    db: Session,
    *,
    document_type: DocumentType,
    document_id: int,
    event: str,
    actor: str,
    from_status: str | None = None,
    to_status: str | None = None,
    metadata: dict | None = None,
) -> DocumentHistory:
    entry = DocumentHistory(
        document_type=document_type,
        document_id=document_id,
        event=event,
        actor=actor,
        from_status=from_status,
        to_status=to_status,
        meta=metadata or {},
        created_at=_now(),
    )
    db.add(entry)
    return entry


def list_history(db: Session, *, document_type: DocumentType, document_id: int) -> list[dict]:
    rows = db.execute(
        select(DocumentHistory)
        .where(
            DocumentHistory.document_type == document_type,
            DocumentHistory.document_id == document_id,
        )
        .order_by(DocumentHistory.id.asc())
    ).scalars().all()
    return [
        {
            'event': row.event,
            'actor': row.actor,
            'from_status': row.from_status,
            'to_status': row.to_status,
            'metadata': row.meta,
            'at': row.created_at,
        }
        for row in rows
    ]
