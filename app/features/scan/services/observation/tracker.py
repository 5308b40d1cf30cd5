import asyncio
from typing import Dict, List, Optional

from app.features.scan.services.observation.controller import (
    ChangeListener,
    ControllerState,
    ScanObservationController,
    StatusFetcher,
)
from app.platform.logger import get_logger

logger = get_logger(__name__)


class ScanTracker:
    """
    One ScanObservationController per tracked scan.

    Controllers share the status source but no state; stopping or failing
    one never affects another.
    """

    def __init__(
        self,
        fetcher: StatusFetcher,
        poll_interval_ms: Optional[int] = None,
        on_change: Optional[ChangeListener] = None,
    ):
        self._fetcher = fetcher
        self._poll_interval_ms = poll_interval_ms
        self._on_change = on_change
        self._controllers: Dict[str, ScanObservationController] = {}

    def __contains__(self, scan_id: str) -> bool:
        return scan_id in self._controllers

    def __len__(self) -> int:
        return len(self._controllers)

    def get(self, scan_id: str) -> Optional[ScanObservationController]:
        return self._controllers.get(scan_id)

    @property
    def active(self) -> List[str]:
        """Scan ids still being polled."""
        return [
            scan_id for scan_id, controller in self._controllers.items()
            if controller.state is ControllerState.POLLING
        ]

    async def track(self, scan_id: str) -> ScanObservationController:
        """Start watching `scan_id`. Tracking the same scan twice returns the existing controller."""
        existing = self._controllers.get(scan_id)
        if existing is not None:
            return existing

        controller = ScanObservationController(self._fetcher, on_change=self._on_change)
        self._controllers[scan_id] = controller
        try:
            await controller.start(scan_id, self._poll_interval_ms)
        except Exception:
            # Never started, so it would never settle
            self._controllers.pop(scan_id, None)
            raise
        return controller

    async def track_many(self, scan_ids: List[str]) -> List[ScanObservationController]:
        return list(await asyncio.gather(*(self.track(scan_id) for scan_id in scan_ids)))

    def untrack(self, scan_id: str) -> None:
        controller = self._controllers.pop(scan_id, None)
        if controller is not None:
            controller.stop()

    async def wait_all(self, timeout: Optional[float] = None) -> Dict[str, ControllerState]:
        """Wait until every tracked scan is terminal or stopped."""
        controllers = list(self._controllers.values())
        await asyncio.wait_for(
            asyncio.gather(*(controller.wait() for controller in controllers)),
            timeout,
        )
        return {scan_id: controller.state for scan_id, controller in self._controllers.items()}

    async def aclose(self) -> None:
        controllers = list(self._controllers.values())
        self._controllers.clear()
        await asyncio.gather(*(controller.aclose() for controller in controllers))
        logger.info(f"Stopped tracking {len(controllers)} scan(s)")
