# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/clusterboot/utils/clock.py

from __future__ import annotations

import threading
import time
from typing import Optional


class Clock:
    """
    Monotonic time plus cancellable waiting.

    ``wait`` returns True when *cancel* was set before the delay elapsed.
    Tests substitute a fake that advances virtual time instead of sleeping.
    """

    def now(self) -> float:
        return time.monotonic()

    def wait(self, seconds: float, cancel: Optional[threading.Event] = None) -> bool:
        if seconds <= 0:
            return bool(cancel and cancel.is_set())
        if cancel is None:
            time.sleep(seconds)
            return False
        return cancel.wait(seconds)
