"""Scan screens as small state machines.

Each workflow moves through

    Idle → Loading → Success | Error

and can be re-entered from either terminal state. A submission while
Loading is dropped, not queued. Barcodes of the wrong type are only
logged; the server decides whether they are acceptable.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable

from trackflow.mobile.client import ApiError, TrackFlowClient, UserData
from trackflow.utils.barcode_format import CodeType, identify_code_type

logger = logging.getLogger(__name__)

NO_USER = "User data not available. Please log in again."
NO_CARD = "NFC card data not available. Please tap your card on the reader."
NO_BATCH = "Batch ID not available. Please try again."


# ── States ───────────────────────────────────────────────────

class ScanState:
    pass


@dataclass(frozen=True)
class Idle(ScanState):
    pass


@dataclass(frozen=True)
class Loading(ScanState):
    pass


@dataclass(frozen=True)
class Success(ScanState):
    data: dict
    already_added: bool = False
    warning: str | None = None
    message: str | None = None

    @property
    def batch_assembly(self) -> dict:
        return self.data


@dataclass(frozen=True)
class Error(ScanState):
    message: str


IDLE = Idle()
LOADING = Loading()


# ── Session ──────────────────────────────────────────────────

@dataclass
class ScanSession:
    """Who is scanning, with which card, into which batch."""
    user: UserData | None = None
    batch_id: str | None = None
    batch: dict | None = field(default=None, repr=False)

    @property
    def user_id(self) -> str | None:
        return self.user.user_id if self.user else None

    @property
    def card_id(self) -> str | None:
        return self.user.card_id if self.user else None

    async def tap_card(self, client: TrackFlowClient, card_id: str) -> UserData:
        self.user = await client.validate_nfc(card_id)
        logger.info("Operator %s signed in with card %s", self.user.full_name, card_id)
        return self.user

    def clear(self) -> None:
        self.user = None
        self.batch_id = None
        self.batch = None


# ── Workflows ────────────────────────────────────────────────

Listener = Callable[[ScanState], None]


class _Workflow:
    def __init__(self, client: TrackFlowClient, session: ScanSession):
        self.client = client
        self.session = session
        self._state: ScanState = IDLE
        self._listeners: list[Listener] = []

    @property
    def state(self) -> ScanState:
        return self._state

    @property
    def busy(self) -> bool:
        return isinstance(self._state, Loading)

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        self._listeners.remove(listener)

    def _set_state(self, state: ScanState) -> ScanState:
        self._state = state
        for listener in list(self._listeners):
            listener(state)
        return state

    def reset(self) -> ScanState:
        return self._set_state(IDLE)

    def _check_type(self, barcode: str, expected: CodeType) -> None:
        code_type = identify_code_type(barcode)
        if code_type != expected:
            logger.warning(
                "Expected %s barcode, got %s (%s); submitting anyway",
                expected.value, code_type.value, barcode,
            )

    async def _call(self, operation) -> ScanState:
        try:
            return await operation()
        except ApiError as exc:
            return self._set_state(Error(exc.message or "Unknown error"))
        except Exception as exc:
            logger.exception("Unexpected error while processing scan")
            return self._set_state(Error(f"An unexpected error occurred: {exc}"))


class ScanAssemblyWorkflow(_Workflow):
    """Scan assembly barcodes into the session's batch."""

    async def submit(self, barcode: str) -> ScanState:
        if self.busy:
            logger.debug("Already processing a barcode, ignoring %s", barcode)
            return self._state

        if not self.session.user_id:
            return self._set_state(Error(NO_USER))
        if not self.session.card_id:
            return self._set_state(Error(NO_CARD))
        if not self.session.batch_id:
            return self._set_state(Error(NO_BATCH))

        self._set_state(LOADING)
        clean = barcode.strip()
        self._check_type(clean, CodeType.ASSEMBLY)

        async def _add() -> ScanState:
            result = await self.client.add_assembly_to_batch(
                self.session.batch_id, clean, self.session.user_id, self.session.card_id,
            )
            data = result.data or {}
            already_added = bool(data.get("already_added"))
            name = data.get("assembly_name", clean)
            message = (
                f"Assembly was already in this batch: {name}" if already_added
                else f"Assembly {name} added to batch successfully"
            )
            if result.warning:
                logger.warning("Partial success adding %s: %s", name, result.warning)
            return self._set_state(Success(
                data=data,
                already_added=already_added,
                warning=result.warning,
                message=message,
            ))

        return await self._call(_add)


class BatchScanWorkflow(_Workflow):
    """Scan a batch barcode to pick the batch assemblies are loaded into."""

    async def validate(self, barcode: str) -> ScanState:
        if self.busy:
            logger.debug("Already validating a batch, ignoring %s", barcode)
            return self._state

        if not self.session.user_id:
            return self._set_state(Error(NO_USER))

        self._set_state(LOADING)
        clean = barcode.strip()
        self._check_type(clean, CodeType.BATCH)

        async def _validate() -> ScanState:
            batch = await self.client.validate_batch(clean, self.session.user_id)
            self.session.batch_id = batch["id"]
            self.session.batch = batch
            return self._set_state(Success(
                data=batch,
                message=f"Batch {batch.get('batch_number', clean)} selected",
            ))

        return await self._call(_validate)
