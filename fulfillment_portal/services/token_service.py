from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from fulfillment_portal.config import settings
from fulfillment_portal.models import AccessToken, Capability, DocumentType
from fulfillment_portal.services.errors import TokenExpired, TokenNotFound

logger = logging.getLogger(__name__)

MIN_TOKEN_BYTES = 16

# Each capability acts on exactly one document type.
CAPABILITY_DOCUMENT_TYPES: dict[Capability, DocumentType] = {
    Capability.VIEW_PRICE_LIST: DocumentType.PRICE_LIST,
    Capability.EDIT_ORDER_SHEET: DocumentType.ORDER_SHEET,
    Capability.SUBMIT_PURCHASE_ORDER: DocumentType.PURCHASE_ORDER,
    Capability.SUBMIT_DISPATCH: DocumentType.SHIPMENT,
}

# Only price-list views are time boxed; other links stay open until the document moves on.
EXPIRING_CAPABILITIES = {Capability.VIEW_PRICE_LIST}

LINK_PATHS: dict[Capability, str] = {
    Capability.VIEW_PRICE_LIST: 'price-view',
    Capability.EDIT_ORDER_SHEET: 'order',
    Capability.SUBMIT_PURCHASE_ORDER: 'purchase-order',
    Capability.SUBMIT_DISPATCH: 'dispatch',
}


@dataclass(frozen=True)
class ResolvedToken:
    token: str
    document_type: DocumentType
    document_id: int
    capability: Capability


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def _mask(token: str) -> str:
    return f'{token[:6]}...'


def _new_token_id() -> str:
    return secrets.token_urlsafe(max(settings.token_bytes, MIN_TOKEN_BYTES))


def issue_token(
    db: Session,
    *,
    document_type: DocumentType,
    document_id: int,
    capability: Capability,
    expires_at: datetime | None = None,
) -> AccessToken:
    expected_type = CAPABILITY_DOCUMENT_TYPES[capability]
    if document_type != expected_type:
        raise ValueError(f'{capability.value} tokens can only be bound to {expected_type.value}')
    if capability not in EXPIRING_CAPABILITIES:
        expires_at = None

    token = AccessToken(
        id=_new_token_id(),
        document_type=document_type,
        document_id=document_id,
        capability=capability,
        expires_at=expires_at,
        created_at=_now(),
    )
    db.add(token)
    db.flush()
    logger.info(
        'issued %s token %s for %s #%s', capability.value, _mask(token.id), document_type.value, document_id
    )
    return token


def resolve_token(
    db: Session,
    *,
    token: str | None,
    capability: Capability,
    document_id: int | None = None,
) -> ResolvedToken:
    """Resolve a bearer token for one capability.

    A token bound to another capability, or to a document other than ``document_id`` when one is
    given, is reported exactly like a token that never existed.
    """
    if not token:
        raise TokenNotFound()
    row = db.get(AccessToken, token)
    if row is None or row.capability != capability:
        raise TokenNotFound()
    if document_id is not None and row.document_id != document_id:
        raise TokenNotFound()
    if row.capability in EXPIRING_CAPABILITIES and row.expires_at is not None and row.expires_at <= _now():
        raise TokenExpired()
    return ResolvedToken(
        token=row.id,
        document_type=row.document_type,
        document_id=row.document_id,
        capability=row.capability,
    )


def list_document_tokens(db: Session, *, document_type: DocumentType, document_id: int) -> list[AccessToken]:
    return db.execute(
        select(AccessToken)
        .where(AccessToken.document_type == document_type, AccessToken.document_id == document_id)
        .order_by(AccessToken.created_at.asc())
    ).scalars().all()


def revoke_document_tokens(db: Session, *, document_type: DocumentType, document_id: int) -> int:
    result = db.execute(
        delete(AccessToken).where(
            AccessToken.document_type == document_type,
            AccessToken.document_id == document_id,
        )
    )
    return result.rowcount or 0


def build_deep_link(capability: Capability, token: str) -> str:
    return f'{settings.public_origin_normalized}/{LINK_PATHS[capability]}/{token}'
