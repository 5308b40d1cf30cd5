"""
Scan observation controller.

Polls a status source for one scan until the scan reaches COMPLETED or
FAILED, keeping the last good snapshot visible when a poll fails.

States:
    INITIALIZING -> POLLING -> TERMINAL
    INITIALIZING | POLLING -> TORN_DOWN (stop)

Runs on a single asyncio event loop. The recurring schedule is one
cancellable timer handle; at most one fetch is in flight per controller.
"""
import asyncio
import enum
from typing import Any, Callable, List, Mapping, Optional, Protocol

from pydantic import ValidationError

from app.features.scan.schemas.scan import ScanObservation
from app.platform.config import settings
from app.platform.logger import get_logger

logger = get_logger(__name__)


class ControllerState(str, enum.Enum):
    INITIALIZING = "INITIALIZING"
    POLLING = "POLLING"
    TERMINAL = "TERMINAL"
    TORN_DOWN = "TORN_DOWN"


class StatusFetcher(Protocol):
    async def get_status(self, scan_id: str) -> Mapping[str, Any]:
        ...


ChangeListener = Callable[["ScanObservationController"], None]


def describe_error(exc: BaseException) -> str:
    message = str(exc).strip()
    return message or exc.__class__.__name__


class ScanObservationController:
    """
    Watches a single scan.

    Fetch failures never propagate to the caller; they are recorded in
    `last_fetch_error` and the next scheduled poll retries.
    """

    def __init__(
        self,
        fetcher: StatusFetcher,
        on_change: Optional[ChangeListener] = None,
    ):
        self._fetcher = fetcher
        self._listeners: List[ChangeListener] = [on_change] if on_change else []

        self._state = ControllerState.INITIALIZING
        self._scan_id: Optional[str] = None
        self._interval: float = settings.SCAN_POLL_INTERVAL_MS / 1000

        self._observation: Optional[ScanObservation] = None
        self._last_fetch_error: Optional[str] = None

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._timer: Optional[asyncio.TimerHandle] = None
        self._inflight: Optional[asyncio.Task] = None
        self._settled = asyncio.Event()

        self._fetch_count = 0

    # ------------------------------------------------------------------
    # Observable state
    # ------------------------------------------------------------------

    @property
    def state(self) -> ControllerState:
        return self._state

    @property
    def scan_id(self) -> Optional[str]:
        return self._scan_id

    @property
    def observation(self) -> Optional[ScanObservation]:
        """Last successful snapshot, or None if no fetch has succeeded yet."""
        return self._observation

    @property
    def last_fetch_error(self) -> Optional[str]:
        return self._last_fetch_error

    @property
    def poll_interval_ms(self) -> int:
        return int(self._interval * 1000)

    @property
    def next_poll_in(self) -> Optional[float]:
        """Seconds until the next scheduled poll, None if nothing is scheduled."""
        if self._timer is None or self._loop is None:
            return None
        return max(0.0, self._timer.when() - self._loop.time())

    @property
    def fetch_count(self) -> int:
        """Fetches started so far, including failed and discarded ones."""
        return self._fetch_count

    @property
    def is_fetching(self) -> bool:
        return self._inflight is not None and not self._inflight.done()

    def add_listener(self, listener: ChangeListener) -> None:
        self._listeners.append(listener)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self, scan_id: str, poll_interval_ms: Optional[int] = None) -> ControllerState:
        """
        Begin polling `scan_id`.

        Fetches once right away, then every `poll_interval_ms` until the scan
        is terminal or stop() is called. Returns the state after the first
        fetch.
        """
        if self._state is not ControllerState.INITIALIZING:
            raise RuntimeError(f"Controller already started (state={self._state.value})")
        if not scan_id:
            raise ValueError("scan_id is required")

        interval_ms = settings.SCAN_POLL_INTERVAL_MS if poll_interval_ms is None else poll_interval_ms
        if interval_ms <= 0:
            raise ValueError(f"poll_interval_ms must be positive, got {interval_ms}")

        self._scan_id = scan_id
        self._interval = interval_ms / 1000
        self._loop = asyncio.get_running_loop()
        self._state = ControllerState.POLLING

        logger.info(f"[{scan_id}] Observation started (interval={interval_ms}ms)")

        self._schedule_next()
        self._inflight = self._loop.create_task(self._fetch_cycle())
        await asyncio.shield(self._inflight)
        return self._state

    async def refetch(self) -> bool:
        """
        Fetch now, outside the regular schedule.

        Does not move the next scheduled poll. If a fetch is already running
        this waits for it instead of starting another one. Returns False
        without fetching once the controller is terminal or torn down.
        """
        if self._state is not ControllerState.POLLING:
            return False

        if not self.is_fetching:
            self._inflight = self._loop.create_task(self._fetch_cycle())
        await asyncio.shield(self._inflight)
        return True

    def stop(self) -> None:
        """
        Cancel future polls and tear down.

        No-op when already torn down or after the scan reached a terminal
        status (there is nothing left to cancel).
        """
        if self._state in (ControllerState.TORN_DOWN, ControllerState.TERMINAL):
            return

        self._cancel_timer()
        previous = self._state
        self._state = ControllerState.TORN_DOWN
        self._settled.set()

        logger.info(f"[{self._scan_id}] Observation stopped (was {previous.value})")

    async def aclose(self) -> None:
        """stop(), then let an in-flight fetch finish (its result is discarded)."""
        self.stop()
        if self._inflight is not None:
            await asyncio.gather(self._inflight, return_exceptions=True)

    async def wait(self, timeout: Optional[float] = None) -> ControllerState:
        """Block until TERMINAL or TORN_DOWN. Raises asyncio.TimeoutError on timeout."""
        await asyncio.wait_for(self._settled.wait(), timeout)
        return self._state

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def _schedule_next(self) -> None:
        if self._state is ControllerState.POLLING:
            self._timer = self._loop.call_later(self._interval, self._on_tick)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_tick(self) -> None:
        self._timer = None
        if self._state is not ControllerState.POLLING:
            return

        if self.is_fetching:
            logger.debug(f"[{self._scan_id}] Previous fetch still running, skipping tick")
        else:
            self._inflight = self._loop.create_task(self._fetch_cycle())

        self._schedule_next()

    async def _fetch_cycle(self) -> None:
        scan_id = self._scan_id
        self._fetch_count += 1

        try:
            payload = await self._fetcher.get_status(scan_id)
            observation = ScanObservation.model_validate(payload)
            if observation.scan_id != scan_id:
                raise ValueError(f"status payload is for scan {observation.scan_id}")
        except asyncio.CancelledError:
            raise
        except ValidationError as e:
            self._record_failure(f"Malformed status payload: {e.error_count()} invalid field(s)")
            return
        except Exception as e:
            self._record_failure(describe_error(e))
            return

        if self._state is not ControllerState.POLLING:
            logger.debug(f"[{scan_id}] Discarding status that arrived after {self._state.value}")
            return

        self._observation = observation
        self._last_fetch_error = None

        if observation.is_terminal:
            self._cancel_timer()
            self._state = ControllerState.TERMINAL
            self._settled.set()
            logger.info(f"[{scan_id}] Scan reached {observation.status.value}, polling finished")

        self._notify()

    def _record_failure(self, message: str) -> None:
        if self._state is not ControllerState.POLLING:
            return

        # Previous snapshot stays visible
        self._last_fetch_error = message
        logger.warning(f"[{self._scan_id}] Status fetch failed: {message}")
        self._notify()

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception:
                logger.exception(f"[{self._scan_id}] Observation listener failed")
