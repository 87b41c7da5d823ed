# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

#src/clusterboot/logging/log.py

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from pathlib import Path

# transport chatter from these only goes to the file in --debug runs
_NOISY = ("paramiko", "urllib3")


def event_log_path(log_path: Path) -> Path:
    """JSON-lines event stream kept next to the run log."""
    return log_path.with_suffix(".jsonl")


def init_logging(
    *,
    base_dir: Path | None = None,
    name: str = "clusterboot",
    cluster: str | None = None,
    verbose: bool = False,
    console_level: int = logging.INFO,
) -> tuple[logging.Logger, str, Path]:
    """
    One log file per bootstrap run, named after the cluster and run id.

    The file always gets the DEBUG trace (node transitions, every probe
    poll and join round); the console only gets *console_level* unless
    *verbose*. Returns the run id so events of the same run carry it.
    """
    run_id = str(uuid.uuid4())

    base_dir = Path(base_dir) if base_dir else Path.home() / ".clusterboot" / "logs"
    base_dir.mkdir(parents=True, exist_ok=True)

    ts = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
    stem = f"{cluster}-{ts}" if cluster else ts
    log_path = base_dir / f"{name}-{stem}-{run_id}.log"

    logger = logging.getLogger(name)
    logger.setLevel(logging.DEBUG)
    for h in list(logger.handlers):
        h.close()
    logger.handlers.clear()
    logger.propagate = False

    fmt = logging.Formatter(
        "%(asctime)s | %(levelname)-7s | %(threadName)-10s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    trace = logging.FileHandler(log_path)
    trace.setLevel(logging.DEBUG)
    trace.setFormatter(fmt)

    console = logging.StreamHandler()
    console.setLevel(logging.DEBUG if verbose else console_level)
    console.setFormatter(fmt)

    logger.addHandler(trace)
    logger.addHandler(console)

    for lib in _NOISY:
        logging.getLogger(lib).setLevel(logging.DEBUG if verbose else logging.WARNING)

    logger.info("=== bootstrap run %s started (cluster=%s) ===", run_id, cluster or "-")
    logger.debug("trace log: %s", log_path)
    logger.debug("event log: %s", event_log_path(log_path))
    return logger, run_id, log_path
