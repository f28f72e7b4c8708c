import asyncio
import logging
from enum import Enum
from typing import Callable, List, Optional, Tuple

from flightdesk.config import settings

logger = logging.getLogger(__name__)


class PaymentStage(str, Enum):
    PROCESSING = "processing"
    SUCCESS = "success"
    ERROR = "error"
    CANCELLED = "cancelled"


class TimerGroup:
    """
    Owns every timer a component schedules on the running event loop.
    cancel_all() must be called on teardown, otherwise callbacks fire
    against a discarded session.
    """

    def __init__(self):
        self._handles = set()

    def schedule(self, delay: float, callback: Callable, *args) -> asyncio.TimerHandle:
        loop = asyncio.get_running_loop()
        handle = None

        def fire():
            self._handles.discard(handle)
            callback(*args)

        handle = loop.call_later(delay, fire)
        self._handles.add(handle)
        return handle

    def cancel_all(self):
        for handle in self._handles:
            handle.cancel()
        self._handles.clear()

    @property
    def pending(self) -> int:
        return len(self._handles)


class PaymentSimulator:
    """
    Timed stand-in for a payment gateway.

    activate() starts at processing/0% and walks the progress checkpoints;
    reaching 100% moves to success, and after the display delay on_success
    fires exactly once. cancel() stops everything and guarantees on_success
    never fires for that run. The error stage is only reachable through
    fail(), which nothing in the simulation calls.
    """

    def __init__(
        self,
        amount: float = 0.0,
        on_success: Optional[Callable[[], None]] = None,
        on_error: Optional[Callable[[str], None]] = None,
        on_cancel: Optional[Callable[[], None]] = None,
        checkpoints: Optional[List[Tuple[float, int]]] = None,
        success_delay: Optional[float] = None,
    ):
        self.amount = amount
        self.on_success = on_success
        self.on_error = on_error
        self.on_cancel = on_cancel
        self.checkpoints = sorted(checkpoints or settings.PAYMENT_CHECKPOINTS)
        self.success_delay = settings.PAYMENT_SUCCESS_DELAY if success_delay is None else success_delay
        self.stage = PaymentStage.PROCESSING
        self.progress = 0
        self.error: Optional[str] = None
        self.active = False
        self._signalled = False
        self._timers = TimerGroup()
        self._outcome: Optional[asyncio.Future] = None

    @property
    def pending_timers(self) -> int:
        return self._timers.pending

    def activate(self):
        self._timers.cancel_all()
        # a restart supersedes whoever was waiting on the previous run
        self._resolve(PaymentStage.CANCELLED)
        self.stage = PaymentStage.PROCESSING
        self.progress = 0
        self.error = None
        self.active = True
        self._signalled = False
        logger.info(f"Processing payment of {self.amount:.2f}")
        for delay, progress in self.checkpoints:
            self._timers.schedule(delay, self._advance, progress)

    def _advance(self, progress: int):
        if self.stage is not PaymentStage.PROCESSING:
            return
        self.progress = progress
        if progress >= 100:
            self.stage = PaymentStage.SUCCESS
            logger.info(f"Payment of {self.amount:.2f} successful")
            self._timers.schedule(self.success_delay, self._signal_success)

    def _signal_success(self):
        if self._signalled:
            return
        self._signalled = True
        self.active = False
        self._resolve(PaymentStage.SUCCESS)
        if self.on_success:
            self.on_success()

    def fail(self, reason: str = "Payment could not be processed"):
        if self.stage is not PaymentStage.PROCESSING:
            return
        self._timers.cancel_all()
        self.stage = PaymentStage.ERROR
        self.error = reason
        self.active = False
        self._signalled = True
        logger.error(f"Payment of {self.amount:.2f} failed: {reason}")
        self._resolve(PaymentStage.ERROR)
        if self.on_error:
            self.on_error(reason)

    def cancel(self):
        self._timers.cancel_all()
        if not self.active:
            return
        self.active = False
        if self._signalled or self.stage is PaymentStage.ERROR:
            return
        self.stage = PaymentStage.CANCELLED
        logger.info(f"Payment of {self.amount:.2f} cancelled at {self.progress}%")
        self._resolve(PaymentStage.CANCELLED)
        if self.on_cancel:
            self.on_cancel()

    def _resolve(self, stage: PaymentStage):
        if self._outcome is not None and not self._outcome.done():
            self._outcome.set_result(stage)
        self._outcome = None

    async def process(self) -> PaymentStage:
        """Activate and wait for the run to end in success, error or cancelled."""
        outcome = asyncio.get_running_loop().create_future()
        self.activate()
        self._outcome = outcome
        try:
            return await outcome
        except asyncio.CancelledError:
            self.cancel()
            raise
