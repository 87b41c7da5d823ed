# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/clusterboot/observers/dispatcher.py
from __future__ import annotations
import logging
import threading
from typing import List
from .events import BaseEvent

log = logging.getLogger("clusterboot")


class EventBus:
    def __init__(self, observers: List = None):
        self._observers = observers or []
        self._lock = threading.Lock()

    def emit(self, event: BaseEvent) -> None:
        # nodes in the same wave emit from worker threads
        with self._lock:
            for ob in self._observers:
                try:
                    ob.notify(event)
                except Exception:
                    # observers must not break a bootstrap run
                    log.debug("observer %r failed on %s", ob, type(event).__name__, exc_info=True)
