"""Re-arms capture automatically once the controller settles back to Idle."""

from __future__ import annotations

import logging
import threading
from typing import Optional

from interfaces import Scheduler, TimerHandle
from models import ControllerState
from recording_controller import RecordingController

logger = logging.getLogger(__name__)

DEFAULT_REARM_DELAY_S = 1.0
DEFAULT_ARM_DELAY_S = 0.5


class AutoRecordScheduler:
    """Keeps at most one pending start; a newer arm replaces an older one."""

    def __init__(
        self,
        controller: RecordingController,
        scheduler: Scheduler,
        enabled: bool = True,
        rearm_delay_s: float = DEFAULT_REARM_DELAY_S,
        arm_delay_s: float = DEFAULT_ARM_DELAY_S,
    ) -> None:
        self._controller = controller
        self._scheduler = scheduler
        self._enabled = enabled
        self._rearm_delay_s = rearm_delay_s
        self._arm_delay_s = arm_delay_s
        self._lock = threading.Lock()
        self._pending: Optional[TimerHandle] = None
        self._generation = 0
        controller.add_state_listener(self.on_state_change)

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def pending(self) -> bool:
        return self._pending is not None and self._pending.active

    def set_enabled(self, enabled: bool) -> None:
        with self._lock:
            if enabled == self._enabled:
                return
            self._enabled = enabled
        logger.info("auto-record %s", "enabled" if enabled else "disabled")
        if not enabled:
            self.cancel()
            if self._controller.state == ControllerState.RECORDING:
                self._controller.stop_recording()
        elif self._controller.is_idle:
            self._arm(self._arm_delay_s)

    def toggle(self) -> bool:
        self.set_enabled(not self._enabled)
        return self._enabled

    def on_state_change(self, from_state: ControllerState, to_state: ControllerState) -> None:
        if to_state != ControllerState.IDLE or self._controller.closed:
            self.cancel()
            return
        if self._enabled and self._controller.is_idle:
            self._arm(self._rearm_delay_s)

    def cancel(self) -> None:
        with self._lock:
            self._generation += 1
            pending, self._pending = self._pending, None
        if pending is not None:
            pending.cancel()

    def _arm(self, delay_s: float) -> None:
        with self._lock:
            self._generation += 1
            generation = self._generation
            previous, self._pending = self._pending, None
            if previous is not None:
                previous.cancel()
            self._pending = self._scheduler.call_later(delay_s, lambda: self._fire(generation))
        logger.debug("auto-record armed", extra={"delay_s": delay_s})

    def _fire(self, generation: int) -> None:
        with self._lock:
            if generation != self._generation:
                return
            self._pending = None
            enabled = self._enabled
        if not enabled or self._controller.closed or not self._controller.is_idle:
            logger.debug("auto-record start dropped")
            return
        self._controller.start_recording()
