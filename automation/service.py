"""Billing-card automation service.

``CardAutomationService.add_card`` runs one attempt end to end: it resolves the
owning identity, opens an audit record, drives a dedicated browser session
through a fixed sequence of stages, and finalises the record exactly once as
``success`` (with encrypted payment fields) or ``failed`` (with the original
error, a trace and a best-effort screenshot).  Stages are not resumable; only
the individual driver calls inside a stage are retried.
"""

from __future__ import annotations

import asyncio
import logging
import time
import traceback
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Awaitable, Callable, List, Optional, Protocol

from driver.artifacts import ArtifactSink
from driver.config import RunConfig
from driver.frames import discover_payment_frame
from driver.primitives import DriverPrimitives
from driver.retry import RetryPolicy, Sleep
from driver.session import BrowserSession
from driver.structured_logging import AttemptEventLog, prepare_log_paths
from driver.surface import Surface

from . import selectors
from .cipher import Cipher
from .errors import IdentityNotFound, error_code
from .identity import Identity, IdentityResolver
from .models import AddCardRequest, AttemptRecord, ErrorDetail, FailureOutcome, RecordPage, SuccessOutcome, utc_now
from .store import AuditStore

log = logging.getLogger(__name__)

CANCELLED_CODE = "CANCELLED"


class Stage(str, Enum):
    OPEN_SESSION = "open-session"
    NAVIGATE_TO_ENTRY = "navigate-to-entry"
    OPEN_SIGN_IN = "open-sign-in"
    AWAIT_CREDENTIALS_FORM = "await-credentials-form"
    SUBMIT_CREDENTIALS = "submit-credentials"
    AWAIT_POST_LOGIN_NAVIGATION = "await-post-login-navigation"
    NAVIGATE_TO_ACCOUNT = "navigate-to-account"
    NAVIGATE_TO_BILLING = "navigate-to-billing"
    OPEN_CARD_FORM = "open-card-form"
    AWAIT_CARD_FORM_READY = "await-card-form-ready"
    DISCOVER_EMBEDDED_FRAME = "discover-embedded-frame"
    FILL_CARD_NUMBER = "fill-card-number"
    FILL_CARDHOLDER_NAME = "fill-cardholder-name"
    FILL_EXPIRY = "fill-expiry"
    FILL_CVV = "fill-cvv"
    FILL_POSTAL_CODE = "fill-postal-code"
    CAPTURE_PRE_SUBMIT = "diagnostic-capture-pre-submit"
    SUBMIT_CARD = "submit-card"
    CAPTURE_POST_SUBMIT = "diagnostic-capture-post-submit"
    ENCRYPT_AND_PERSIST = "encrypt-and-persist-success"


class Session(Protocol):
    async def new_page(self) -> Surface: ...

    def pages(self) -> List[Surface]: ...

    async def close(self) -> None: ...


SessionFactory = Callable[[RunConfig], Awaitable[Session]]


@dataclass
class _Attempt:
    record_id: str
    started: float
    events: Optional[AttemptEventLog] = None
    driver: Optional[DriverPrimitives] = None
    stage: Optional[Stage] = None
    session: Optional[Session] = None
    capture_path: Optional[Path] = None
    stages: List[Stage] = field(default_factory=list)


class CardAutomationService:
    def __init__(
        self,
        config: RunConfig,
        store: AuditStore,
        identities: IdentityResolver,
        cipher: Cipher,
        artifacts: ArtifactSink,
        *,
        session_factory: Optional[SessionFactory] = None,
        sleep: Sleep = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config
        self.store = store
        self.identities = identities
        self.cipher = cipher
        self.artifacts = artifacts
        self._session_factory = session_factory or BrowserSession.launch
        self._sleep = sleep
        self._clock = clock

    async def add_card(self, request: AddCardRequest) -> AttemptRecord:
        identity = self.identities.resolve(request.subject_id)
        if identity is None:
            log.warning("Identity %s not found; no browser session opened", request.subject_id)
            raise IdentityNotFound(request.subject_id)

        attempt = self._begin(request)
        log.info("[%s] Starting card automation for subject %s", attempt.record_id[:8], request.subject_id)
        try:
            self._prepare(attempt)
            return await self._run_stages(attempt, request, identity)
        except asyncio.CancelledError:
            self._finalize_failure(
                attempt,
                message=f"Attempt cancelled during {self._stage_name(attempt)}",
                code=CANCELLED_CODE,
                trace=[],
            )
            raise
        except Exception as exc:
            log.error(
                "[%s] Card automation failed at %s: %s",
                attempt.record_id[:8],
                self._stage_name(attempt),
                exc,
                exc_info=True,
            )
            await self._capture_failure(attempt)
            self._finalize_failure(
                attempt,
                message=str(exc) or type(exc).__name__,
                code=error_code(exc),
                trace=traceback.format_exception(exc),
            )
            raise
        finally:
            if attempt.session is not None:
                await attempt.session.close()
            if attempt.events is not None:
                attempt.events.close()

    def list_records(self, subject_id: str, page: int = 1, page_size: int = 10) -> RecordPage:
        return self.store.list_records(subject_id, page=page, page_size=page_size)

    def _begin(self, request: AddCardRequest) -> _Attempt:
        started = self._clock()
        record_id = self.store.create_pending_record(
            request.subject_id,
            request.action,
            request.card_last_four,
            request.card_holder,
        )
        return _Attempt(record_id=record_id, started=started)

    def _prepare(self, a: _Attempt) -> None:
        a.events = AttemptEventLog(a.record_id, prepare_log_paths(a.record_id, self.config.log_root))
        retry = RetryPolicy(self.config.max_retries, sleep=self._sleep, observer=a.events.retry)
        a.driver = DriverPrimitives(
            retry,
            self.artifacts,
            wait_timeout_ms=self.config.wait_timeout_ms,
            navigation_timeout_ms=self.config.navigation_timeout_ms,
        )

    async def _run_stages(self, a: _Attempt, request: AddCardRequest, identity: Identity) -> AttemptRecord:
        d = a.driver
        delays = self.config.delays

        self._enter(a, Stage.OPEN_SESSION)
        a.session = await self._session_factory(self.config)
        page = await a.session.new_page()

        self._enter(a, Stage.NAVIGATE_TO_ENTRY)
        await d.navigate(page, self.config.base_url + selectors.SIGN_IN_PATH)
        await self._settle(delays.after_entry)
        entry_path = await d.capture_diagnostic(page, "entry_page")
        a.events.capture("entry_page", entry_path)

        self._enter(a, Stage.OPEN_SIGN_IN)
        await d.click_element(page, selectors.SIGN_IN_LINK)
        await self._settle(delays.after_sign_in_click)

        self._enter(a, Stage.AWAIT_CREDENTIALS_FORM)
        await d.await_element(page, selectors.EMAIL_INPUT)

        self._enter(a, Stage.SUBMIT_CREDENTIALS)
        await d.type_into(page, selectors.EMAIL_INPUT, identity.email)
        await self._settle(delays.after_field)
        await d.type_into(page, selectors.PASSWORD_INPUT, identity.credential_secret)
        await self._settle(delays.after_field)
        login_url = page.url
        await d.click_element(page, selectors.LOGIN_BUTTON)

        self._enter(a, Stage.AWAIT_POST_LOGIN_NAVIGATION)
        landed = await d.await_navigation(page, login_url)
        await self._settle(delays.after_login)
        log.info("[%s] Login successful, landed on %s", a.record_id[:8], landed)

        self._enter(a, Stage.NAVIGATE_TO_ACCOUNT)
        await d.click_element(page, selectors.ACCOUNT_LINK)
        await self._settle(delays.after_account)

        self._enter(a, Stage.NAVIGATE_TO_BILLING)
        await d.click_element(page, selectors.BILLING_LINK)
        await self._settle(delays.after_billing)

        self._enter(a, Stage.OPEN_CARD_FORM)
        await d.click_element(page, selectors.OPEN_CARD_FORM)
        await self._settle(delays.after_card_form_open)

        self._enter(a, Stage.AWAIT_CARD_FORM_READY)
        await d.await_element(page, selectors.CARD_FORM_READY)

        self._enter(a, Stage.DISCOVER_EMBEDDED_FRAME)
        card_surface = discover_payment_frame(
            page,
            url_markers=self.config.frame_url_markers,
            name_markers=self.config.frame_name_markers,
        )
        a.events.log_event("frame", target=card_surface.kind, name=card_surface.name, url=card_surface.url)

        self._enter(a, Stage.FILL_CARD_NUMBER)
        await d.type_into(
            card_surface,
            selectors.CARD_NUMBER,
            request.card_number,
            delay_ms=selectors.CARD_NUMBER_TYPING_DELAY_MS,
        )
        await self._settle(delays.after_field)

        self._enter(a, Stage.FILL_CARDHOLDER_NAME)
        await d.type_into(page, selectors.CARD_HOLDER, request.card_holder)
        await self._settle(delays.after_field)

        self._enter(a, Stage.FILL_EXPIRY)
        await d.type_into(card_surface, selectors.EXPIRY_MONTH, request.expiry_month)
        await d.type_into(card_surface, selectors.EXPIRY_YEAR, request.expiry_year_short)
        await self._settle(delays.after_field)

        self._enter(a, Stage.FILL_CVV)
        await d.type_into(card_surface, selectors.CVV, request.cvv)
        await self._settle(delays.after_field)

        self._enter(a, Stage.FILL_POSTAL_CODE)
        await d.type_into(page, selectors.POSTAL_CODE, request.postal_code)
        await self._settle(delays.after_field)

        self._enter(a, Stage.CAPTURE_PRE_SUBMIT)
        a.capture_path = await d.capture_diagnostic(page, "card_form_filled")
        a.events.capture("card_form_filled", a.capture_path)

        self._enter(a, Stage.SUBMIT_CARD)
        await d.click_element(page, selectors.SAVE_CARD)
        await self._settle(delays.after_submit)

        self._enter(a, Stage.CAPTURE_POST_SUBMIT)
        result_path = await d.capture_diagnostic(page, "card_submission_result")
        a.events.capture("card_submission_result", result_path)

        self._enter(a, Stage.ENCRYPT_AND_PERSIST)
        payload = self.cipher.encrypt_payment_fields(
            card_number=request.card_number,
            cvv=request.cvv,
            expiry_month=request.expiry_month,
            expiry_year=request.expiry_year,
        )
        duration = self._elapsed_ms(a)
        record = self.store.finalize_record(
            a.record_id,
            SuccessOutcome(
                encrypted_payload=payload,
                diagnostic_capture_path=str(a.capture_path),
                duration_ms=duration,
            ),
        )
        a.events.log_event("outcome", status=record.status.value, duration_ms=duration)
        log.info("[%s] Card automation completed successfully in %dms", a.record_id[:8], duration)
        return record

    def _enter(self, a: _Attempt, stage: Stage) -> None:
        a.stage = stage
        a.stages.append(stage)
        if a.events is not None:
            a.events.stage(stage.value)
        log.info("[%s] Stage %s", a.record_id[:8], stage.value)

    async def _settle(self, delay_ms: int) -> None:
        if delay_ms > 0:
            await self._sleep(delay_ms / 1000)

    async def _capture_failure(self, a: _Attempt) -> None:
        if a.session is None or a.driver is None:
            return
        try:
            pages = a.session.pages()
            if not pages:
                log.warning("[%s] No open page available for an error screenshot", a.record_id[:8])
                return
            a.capture_path = await a.driver.capture_diagnostic(pages[0], "error_screenshot", max_retries=1)
            if a.events is not None:
                a.events.capture("error_screenshot", a.capture_path)
        except Exception as capture_exc:
            log.warning("[%s] Error screenshot failed: %s", a.record_id[:8], capture_exc)

    def _finalize_failure(self, a: _Attempt, *, message: str, code: str, trace: List[str]) -> None:
        duration = self._elapsed_ms(a)
        outcome = FailureOutcome(
            error_message=message,
            error_detail=ErrorDetail(
                code=code,
                message=message,
                stage=self._stage_name(a),
                trace=trace,
                captured_at=utc_now(),
            ),
            diagnostic_capture_path=str(a.capture_path) if a.capture_path else None,
            duration_ms=duration,
        )
        try:
            self.store.finalize_record(a.record_id, outcome)
            if a.events is not None:
                a.events.log_event("outcome", status=outcome.status.value, code=code, duration_ms=duration)
        except Exception as store_exc:
            log.error("[%s] Could not persist failure record: %s", a.record_id[:8], store_exc)

    def _elapsed_ms(self, a: _Attempt) -> int:
        return max(0, int((self._clock() - a.started) * 1000))

    @staticmethod
    def _stage_name(a: _Attempt) -> str:
        return a.stage.value if a.stage else "startup"
