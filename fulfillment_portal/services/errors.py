from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class WorkflowErrorCode(str, Enum):
    NOT_FOUND = 'not_found'
    ILLEGAL_TRANSITION = 'illegal_transition'
    PRECONDITION_NOT_MET = 'precondition_not_met'
    INVALID = 'invalid'
    TOKEN_NOT_FOUND = 'token_not_found'
    TOKEN_EXPIRED = 'token_expired'


class WarningCode(str, Enum):
    OVER_ALLOCATION = 'over_allocation'
    DATA_QUALITY = 'data_quality'


class WorkflowError(ValueError):
    code = WorkflowErrorCode.INVALID


class DocumentNotFound(WorkflowError):
    code = WorkflowErrorCode.NOT_FOUND


class IllegalTransition(WorkflowError):
    code = WorkflowErrorCode.ILLEGAL_TRANSITION

    def __init__(self, document_type: str, status: str, event: str) -> None:
        super().__init__(f'{event} is not allowed for {document_type} in status {status}')
        self.document_type = document_type
        self.status = status
        self.event = event


class PreconditionNotMet(WorkflowError):
    code = WorkflowErrorCode.PRECONDITION_NOT_MET

    def __init__(self, condition: str) -> None:
        super().__init__(condition)
        self.condition = condition


# Same message for every token failure so callers cannot probe which documents exist.
TOKEN_DENIED_MESSAGE = 'Link is invalid or has expired'


class TokenAccessDenied(PermissionError):
    code = WorkflowErrorCode.TOKEN_NOT_FOUND

    def __init__(self) -> None:
        super().__init__(TOKEN_DENIED_MESSAGE)


class TokenNotFound(TokenAccessDenied):
    code = WorkflowErrorCode.TOKEN_NOT_FOUND


class TokenExpired(TokenAccessDenied):
    code = WorkflowErrorCode.TOKEN_EXPIRED


@dataclass(frozen=True)
class WorkflowWarning:
    code: WarningCode
    message: str
    context: dict = field(default_factory=dict)

    def as_dict(self) -> dict:
        return {'code': self.code.value, 'message': self.message, 'context': self.context}
