"""ops/kill_switch.py

Graceful stop for the miner loop.

Stop requests come from:
- SIGINT / SIGTERM
- a stop flag file (optional, checked at every tick boundary)
- code (StopSwitch.request_stop)

A stop never interrupts a submission in flight: the scheduler and the
workers only look at the switch between cycles.

Usage:
    switch = StopSwitch(flag_path="/tmp/eidos_miner.stop")
    switch.install_signal_handlers()
    ...
    if switch.should_stop():
        break
"""

from __future__ import annotations

import logging
import os
import signal
import threading
from typing import Optional

logger = logging.getLogger(__name__)


def is_stop_flag_active(flag_path: str) -> bool:
    """Check if the stop flag file exists."""
    if not flag_path:
        return False
    try:
        return os.path.exists(flag_path)
    except (OSError, PermissionError):
        logger.warning(f"kill_switch: Failed to check flag at {flag_path}, defaulting to inactive")
        return False


def get_stop_reason(flag_path: str) -> Optional[str]:
    """Read the stop reason from the flag file.

    Returns:
        Reason string if the file exists, None otherwise.
    """
    if not flag_path or not os.path.exists(flag_path):
        return None

    try:
        with open(flag_path, "r") as f:
            content = f.read().strip()
            return content if content else "Stop flag present"
    except (OSError, PermissionError):
        return "Stop flag present (reason unreadable)"


def create_stop_flag(flag_path: str, reason: str = "Manual stop") -> None:
    """Create the stop flag file (for testing/automation)."""
    parent = os.path.dirname(flag_path)
    if parent:
        os.makedirs(parent, exist_ok=True)

    with open(flag_path, "w") as f:
        f.write(reason)


def clear_stop_flag(flag_path: str) -> bool:
    """Remove the stop flag file.

    Returns:
        True if a flag was removed.
    """
    try:
        if os.path.exists(flag_path):
            os.remove(flag_path)
            return True
    except (OSError, PermissionError):
        logger.warning(f"kill_switch: Failed to remove flag at {flag_path}")
    return False


class StopSwitch:
    """Thread-safe stop request shared by the scheduler and the workers."""

    def __init__(self, flag_path: str = ""):
        self.flag_path = flag_path
        self._event = threading.Event()
        self.reason: Optional[str] = None

    @property
    def event(self) -> threading.Event:
        return self._event

    def request_stop(self, reason: str = "Stop requested") -> None:
        if not self._event.is_set():
            self.reason = reason
            logger.warning(f"kill_switch: {reason}, stopping after the current cycle")
        self._event.set()

    def should_stop(self) -> bool:
        """Check for a stop request (event or flag file)."""
        if self._event.is_set():
            return True
        if is_stop_flag_active(self.flag_path):
            self.request_stop(get_stop_reason(self.flag_path) or "Stop flag present")
            return True
        return False

    def install_signal_handlers(self) -> None:
        """Route SIGINT/SIGTERM to request_stop (main thread only)."""
        def _handler(signum, frame):
            self.request_stop(f"Received signal {signal.Signals(signum).name}")

        signal.signal(signal.SIGINT, _handler)
        signal.signal(signal.SIGTERM, _handler)
