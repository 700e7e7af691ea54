"""Cancellable sleeps shared by the polling services."""

import threading
import time
from typing import Optional

from clusterup.errors import StartupCancelled


def ensure_not_cancelled(cancel_event: Optional[threading.Event], activity: str = "startup"):
    if cancel_event is not None and cancel_event.is_set():
        raise StartupCancelled(f"{activity} cancelled")


def pause(seconds: float, cancel_event: Optional[threading.Event] = None, activity: str = "startup"):
    """Sleeps for `seconds`, returning early with StartupCancelled when the event is set."""
    if cancel_event is None:
        if seconds > 0:
            time.sleep(seconds)
        return

    if cancel_event.wait(max(0.0, seconds)):
        raise StartupCancelled(f"{activity} cancelled")
