"""Typed models for card automation requests and audit records."""

from __future__ import annotations

import math
from datetime import datetime, timezone
from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class AttemptAction(str, Enum):
    ADD_CARD = "add_card"
    UPDATE_CARD = "update_card"
    LOGIN = "login"


class AttemptStatus(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"


class CipherBundle(BaseModel):
    """Ciphertext and the IV it was produced with, both hex encoded."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    ciphertext: str = Field(min_length=1)
    iv: str = Field(min_length=1)


class EncryptedPayment(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    card_number: CipherBundle
    cvv: CipherBundle
    # Expiry stays plaintext.
    expiry_month: str
    expiry_year: str


class ErrorDetail(BaseModel):
    code: str
    message: str
    stage: Optional[str] = None
    trace: List[str] = Field(default_factory=list)
    captured_at: datetime = Field(default_factory=utc_now)


class SuccessOutcome(BaseModel):
    status: ClassVar[AttemptStatus] = AttemptStatus.SUCCESS

    encrypted_payload: EncryptedPayment
    diagnostic_capture_path: Optional[str] = None
    duration_ms: int = Field(ge=0)


class FailureOutcome(BaseModel):
    status: ClassVar[AttemptStatus] = AttemptStatus.FAILED

    error_message: str
    error_detail: ErrorDetail
    diagnostic_capture_path: Optional[str] = None
    duration_ms: int = Field(ge=0)


Outcome = Union[SuccessOutcome, FailureOutcome]


class AttemptRecord(BaseModel):
    record_id: str
    subject_id: str
    action: AttemptAction
    status: AttemptStatus = AttemptStatus.PENDING
    card_last_four: Optional[str] = None
    card_holder_name: Optional[str] = None
    encrypted_payload: Optional[EncryptedPayment] = None
    error_message: Optional[str] = None
    error_detail: Optional[ErrorDetail] = None
    diagnostic_capture_path: Optional[str] = None
    duration_ms: Optional[int] = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: Optional[datetime] = None

    @model_validator(mode="after")
    def _check_terminal_invariants(self) -> "AttemptRecord":
        if self.status is AttemptStatus.PENDING:
            if self.encrypted_payload is not None or self.error_message is not None:
                raise ValueError("pending records carry neither payload nor error")
        elif self.status is AttemptStatus.SUCCESS:
            if self.error_message is not None:
                raise ValueError("successful records must not carry an error")
        elif self.status is AttemptStatus.FAILED:
            if self.encrypted_payload is not None:
                raise ValueError("failed records must not carry a payload")
            if not self.error_message:
                raise ValueError("failed records require an error message")
        return self

    @property
    def is_terminal(self) -> bool:
        return self.status is not AttemptStatus.PENDING

    def redacted(self) -> "AttemptRecord":
        return self.model_copy(update={"encrypted_payload": None})

    def public_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", exclude={"encrypted_payload"})


class RecordPage(BaseModel):
    data: List[AttemptRecord]
    total: int
    page: int
    page_size: int
    total_pages: int

    @classmethod
    def build(cls, data: List[AttemptRecord], *, total: int, page: int, page_size: int) -> "RecordPage":
        return cls(
            data=data,
            total=total,
            page=page,
            page_size=page_size,
            total_pages=math.ceil(total / page_size) if page_size else 0,
        )


class AddCardRequest(BaseModel):
    """Input for one card automation attempt."""

    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    subject_id: str = Field(min_length=1)
    card_number: str = Field(pattern=r"^\d{13,19}$")
    card_holder: str = Field(min_length=1)
    expiry_month: str = Field(pattern=r"^(0[1-9]|1[0-2])$")
    expiry_year: str = Field(pattern=r"^\d{4}$")
    cvv: str = Field(pattern=r"^\d{3,4}$")
    postal_code: str = Field(min_length=5, max_length=10)
    action: AttemptAction = AttemptAction.ADD_CARD

    @field_validator("card_number", mode="before")
    @classmethod
    def _strip_separators(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.replace(" ", "").replace("-", "")
        return value

    @field_validator("action")
    @classmethod
    def _card_actions_only(cls, value: AttemptAction) -> AttemptAction:
        if value is AttemptAction.LOGIN:
            raise ValueError("action must be add_card or update_card")
        return value

    @property
    def card_last_four(self) -> str:
        return self.card_number[-4:]

    @property
    def expiry_year_short(self) -> str:
        return self.expiry_year[-2:]

    def __repr__(self) -> str:
        return (
            f"AddCardRequest(subject_id={self.subject_id!r}, card=****{self.card_last_four}, "
            f"action={self.action.value!r})"
        )

    __str__ = __repr__
