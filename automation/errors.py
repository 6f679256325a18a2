"""Error taxonomy shared by the driver and the card workflow."""

from __future__ import annotations

from typing import Any, Dict, Optional, Sequence


class AutomationError(Exception):
    code = "AUTOMATION_ERROR"

    def __init__(self, message: str, *, code: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.details = details or {}

    def as_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class ElementNotFound(AutomationError):
    """No candidate of a selector chain resolved within the wait timeout."""

    code = "ELEMENT_NOT_FOUND"

    def __init__(self, selectors: Sequence[str], timeout_ms: int):
        self.selectors = tuple(selectors)
        self.timeout_ms = timeout_ms
        super().__init__(
            f"Element not found within {timeout_ms}ms: {' | '.join(self.selectors)}",
            details={"selectors": list(self.selectors), "timeout_ms": timeout_ms},
        )


class NavigationTimeout(AutomationError):
    code = "NAVIGATION_TIMEOUT"

    def __init__(self, url: str, timeout_ms: int):
        self.url = url
        self.timeout_ms = timeout_ms
        super().__init__(
            f"Navigation did not settle within {timeout_ms}ms: {url}",
            details={"url": url, "timeout_ms": timeout_ms},
        )


class EncryptionMisconfigured(AutomationError):
    """The cipher key is absent or malformed."""

    code = "ENCRYPTION_MISCONFIGURED"


class DecryptionError(AutomationError):
    code = "DECRYPTION_ERROR"


class IdentityNotFound(AutomationError):
    code = "IDENTITY_NOT_FOUND"

    def __init__(self, subject_id: str):
        self.subject_id = subject_id
        super().__init__(f"Identity {subject_id} not found", details={"subject_id": subject_id})


class UnknownAutomationFailure(AutomationError):
    """Wraps any browser fault outside the named categories."""

    code = "UNKNOWN_AUTOMATION_FAILURE"


class RecordStateError(AutomationError):
    code = "RECORD_STATE_ERROR"


def error_code(exc: BaseException) -> str:
    if isinstance(exc, AutomationError):
        return exc.code
    return UnknownAutomationFailure.code
