# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations
from typing import Protocol
from .events import BaseEvent


class Observer(Protocol):
    """
    Receives every planner and bootstrap event of a run.

    Nodes of one wave report from worker threads; the EventBus serializes
    delivery, so notify never runs concurrently for the same observer.
    Exceptions raised here are logged and dropped.
    """

    def notify(self, event: BaseEvent) -> None: ...
