import json
import logging

from clusterboot.logging.log import event_log_path, init_logging
from clusterboot.observers.dispatcher import EventBus
from clusterboot.observers.events import NodeFailed, NodeHealthy, RunCancelled, new_ctx, stamp
from clusterboot.observers.jsonfile import JsonFileObserver
from clusterboot.observers.logger import LoggerObserver

from fakes import Capture


class Broken:
    def notify(self, ev):
        raise RuntimeError("observer bug")


def test_broken_observer_does_not_stop_the_others():
    cap = Capture()
    ctx = new_ctx(cluster="orders")
    EventBus([Broken(), cap]).emit(NodeHealthy(name="db1", attempts=1, duration_ms=10, **stamp(ctx)))
    assert cap.kinds() == ["NodeHealthy"]
    assert cap.events[0].run_id == ctx["run_id"]


def test_json_file_observer_writes_one_line_per_event(tmp_path):
    path = tmp_path / "run" / "events.jsonl"
    ctx = new_ctx(cluster="orders", run_id="r-1")
    with JsonFileObserver(path) as ob:
        ob.notify(NodeHealthy(name="db1", attempts=2, duration_ms=5, **stamp(ctx)))
        ob.notify(NodeFailed(name="db2", state="awaiting_health", kind="ProbeTimeoutError", error="late", **stamp(ctx)))
        # flushed per event, readable while the run is still going
        assert len(path.read_text().splitlines()) == 2
        ob.notify(RunCancelled(**stamp(ctx)))

    lines = [json.loads(l) for l in path.read_text().splitlines()]
    assert [l["event"] for l in lines] == ["NodeHealthy", "NodeFailed", "RunCancelled"]
    assert [l.get("node") for l in lines] == ["db1", "db2", None]
    assert "name" not in lines[0]
    assert lines[1]["run_id"] == "r-1"
    assert lines[1]["kind"] == "ProbeTimeoutError"


def test_logger_observer_levels(caplog):
    logger = logging.getLogger("observer_test")
    ob = LoggerObserver(logger)
    ctx = new_ctx(cluster="orders")
    with caplog.at_level(logging.INFO, logger="observer_test"):
        ob.notify(NodeHealthy(name="db1", attempts=1, duration_ms=1, **stamp(ctx)))
        ob.notify(NodeFailed(name="db1", state="starting", kind="LaunchError", error="boom", **stamp(ctx)))
    levels = [r.levelno for r in caplog.records]
    assert levels == [logging.INFO, logging.WARNING]
    assert "NodeFailed" in caplog.records[1].getMessage()


def test_init_logging_writes_run_log(tmp_path):
    logger, run_id, log_path = init_logging(base_dir=tmp_path, name="clusterboot-test", cluster="orders")
    logger.debug("debug detail")
    for h in logger.handlers:
        h.flush()
    text = log_path.read_text()
    assert log_path.name.startswith("clusterboot-test-orders-")
    assert run_id in log_path.name
    assert f"bootstrap run {run_id} started (cluster=orders)" in text
    assert event_log_path(log_path).suffix == ".jsonl"
    assert "debug detail" in text
    for h in list(logger.handlers):
        h.close()
    logger.handlers.clear()
