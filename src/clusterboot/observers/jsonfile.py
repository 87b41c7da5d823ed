# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/clusterboot/observers/jsonfile.py

from __future__ import annotations

import json
from pathlib import Path
from typing import IO, Optional

from .events import BaseEvent
from .interface import Observer

_ENVELOPE = ("ts", "run_id", "cluster")


class JsonFileObserver(Observer):
    """
    Appends one JSON object per event to the run's event log:

        {"ts": ..., "run_id": ..., "cluster": ..., "event": "NodeFailed",
         "node": "db2", "state": "awaiting_health", "kind": ..., "error": ...}

    Node events carry the node name as ``node``. The file is opened on the
    first event and kept open for the run; every line is flushed so a
    crashed run still leaves a readable log.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._fh: Optional[IO[str]] = None

    def record(self, event: BaseEvent) -> dict:
        data = event.dict()
        out = {k: data.pop(k) for k in _ENVELOPE}
        out["event"] = event.__class__.__name__
        if "name" in data:
            out["node"] = data.pop("name")
        out.update(data)
        return out

    def notify(self, event: BaseEvent) -> None:
        if self._fh is None:
            self._fh = self.path.open("a", encoding="utf-8")
        self._fh.write(json.dumps(self.record(event)) + "\n")
        self._fh.flush()

    def close(self) -> None:
        if self._fh is not None:
            self._fh.close()
            self._fh = None

    def __enter__(self) -> "JsonFileObserver":
        return self

    def __exit__(self, *exc) -> None:
        self.close()
