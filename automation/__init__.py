"""Billing-card automation: workflow, audit records and payment-field encryption."""

from .errors import (
    AutomationError,
    DecryptionError,
    ElementNotFound,
    EncryptionMisconfigured,
    IdentityNotFound,
    NavigationTimeout,
    RecordStateError,
    UnknownAutomationFailure,
)

__all__ = [
    "AutomationError",
    "DecryptionError",
    "ElementNotFound",
    "EncryptionMisconfigured",
    "IdentityNotFound",
    "NavigationTimeout",
    "RecordStateError",
    "UnknownAutomationFailure",
]
