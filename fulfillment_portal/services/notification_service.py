from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.orm import Session

from fulfillment_portal.models import Capability, DocumentType
from fulfillment_portal.services.history_service import log_history
from fulfillment_portal.services.token_service import build_deep_link

logger = logging.getLogger(__name__)

MESSAGE_TEMPLATES: dict[Capability, str] = {
    Capability.VIEW_PRICE_LIST: '{recipient}, a new price list "{title}" is ready: {link}',
    Capability.EDIT_ORDER_SHEET: '{recipient}, please fill in your order "{title}" before the cut-off: {link}',
    Capability.SUBMIT_PURCHASE_ORDER: '{recipient}, purchase order "{title}" is waiting for your confirmation: {link}',
    Capability.SUBMIT_DISPATCH: '{recipient}, please register the vehicle and driver for "{title}": {link}',
}


@dataclass(frozen=True)
class LinkNotification:
    recipient: str
    link: str
    message: str
    status: str = 'STUB_SENT'

    def as_dict(self) -> dict:
        return {'recipient': self.recipient, 'link': self.link, 'message': self.message, 'status': self.status}


def send_link_stub(
    db: Session,
    *,
    actor: str,
    document_type: DocumentType,
    document_id: int,
    capability: Capability,
    token: str,
    recipient: str,
    title: str,
) -> LinkNotification:
    link = build_deep_link(capability, token)
    message = MESSAGE_TEMPLATES[capability].format(recipient=recipient or 'Customer', title=title, link=link)
    log_history(
        db,
        document_type=document_type,
        document_id=document_id,
        event='LINK_SENT',
        actor=actor,
        metadata={'capability': capability.value, 'recipient': recipient, 'path': link.rsplit('/', 2)[-2]},
    )
    logger.info('queued %s link for %s #%s to %s', capability.value, document_type.value, document_id, recipient)
    return LinkNotification(recipient=recipient, link=link, message=message)
