"""Unit tests for the in-process reading sources and result sinks."""

import json
import logging
import time

import pytest

from packages.datatypes import PositionEstimate, Reading, SinkWriteError, SourceReadError
from packages.pipeline import (
    EstimateFeed,
    FanOutResultSink,
    FileReadingSource,
    JSONLinesResultSink,
    LoggingResultSink,
    QueueReadingSource,
    parse_reading_line,
)

from conftest import RecordingSink


def estimate(sequence, x=0.5, y=0.5):
    return PositionEstimate(x, y, 100.0 + sequence, 1.0, ("a", "b"), sequence=sequence)


def wait_for(predicate, timeout=2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


class TestQueueReadingSource:

    def test_push_only_while_running(self):
        source = QueueReadingSource()

        assert not source.push(Reading("a", 1.0, 0.0))
        source.start()
        assert source.push(Reading("a", 1.0, 0.0))
        source.stop()
        assert not source.push(Reading("a", 2.0, 0.0))

        assert [r.value for r in source.pull()] == [1.0]  # Still drainable after stop
        assert source.pull() == []


class TestFileReadingSource:

    def write_lines(self, path, lines):
        path.write_text("\n".join(lines) + "\n", encoding="utf-8")

    def test_replays_file_and_skips_malformed_lines(self, tmp_path):
        path = tmp_path / "readings.jsonl"
        self.write_lines(path, [
            json.dumps({"receiver_id": "a", "value": -60.5, "timestamp": 1.0}),
            "not json",
            json.dumps({"receiver_id": "b"}),
            "",
            json.dumps({"receiver_id": "b", "value": -70, "timestamp": 2.0}),
        ])
        source = FileReadingSource(path)

        source.start()
        assert wait_for(lambda: source.finished)
        source.stop()

        readings = source.pull()
        assert readings == [Reading("a", -60.5, 1.0), Reading("b", -70.0, 2.0)]
        assert source.malformed_lines == 2

    def test_missing_file(self, tmp_path):
        source = FileReadingSource(tmp_path / "missing.jsonl")

        with pytest.raises(SourceReadError):
            source.start()

    def test_stop_interrupts_slow_replay(self, tmp_path):
        path = tmp_path / "readings.jsonl"
        self.write_lines(path, [
            json.dumps({"receiver_id": "a", "value": float(i), "timestamp": float(i)})
            for i in range(100)
        ])
        source = FileReadingSource(path, interval_seconds=0.5)

        source.start()
        assert wait_for(lambda: len(source.buffer) >= 1)
        source.stop()

        assert not source.finished
        assert len(source.pull()) < 100

    def test_parse_reading_line(self):
        reading = parse_reading_line('{"receiver_id": 7, "value": "1.5", "timestamp": 3}')

        assert reading == Reading("7", 1.5, 3.0)


class TestJSONLinesResultSink:

    def test_writes_one_object_per_line(self, tmp_path):
        path = tmp_path / "out.jsonl"
        sink = JSONLinesResultSink(path)

        sink.start()
        sink.write(estimate(1))
        sink.write(estimate(2, x=1.0))
        sink.stop()

        records = [json.loads(line) for line in path.read_text().splitlines()]
        assert [r["sequence"] for r in records] == [1, 2]
        assert records[1]["x"] == 1.0
        assert records[0]["receivers"] == ["a", "b"]

    def test_write_before_start_fails(self, tmp_path):
        with pytest.raises(SinkWriteError):
            JSONLinesResultSink(tmp_path / "out.jsonl").write(estimate(1))


class TestEstimateFeed:

    def test_history_and_subscribers(self):
        feed = EstimateFeed(max_history=2)
        received = []
        feed.subscribe(received.append)

        for sequence in (1, 2, 3):
            feed.write(estimate(sequence))

        assert [e.sequence for e in received] == [1, 2, 3]
        assert [e.sequence for e in feed.history()] == [2, 3]
        assert feed.latest().sequence == 3

        feed.unsubscribe(received.append)
        feed.write(estimate(4))
        assert len(received) == 3

    def test_failing_subscriber_isolated(self, caplog):
        feed = EstimateFeed()
        received = []

        def broken(_):
            raise RuntimeError("display gone")

        feed.subscribe(broken)
        feed.subscribe(received.append)

        with caplog.at_level(logging.ERROR):
            feed.write(estimate(1))

        assert len(received) == 1
        assert any("subscriber_failed" in r.getMessage() for r in caplog.records)

    def test_empty_feed(self):
        assert EstimateFeed().latest() is None


class TestFanOutResultSink:

    def test_every_sink_receives_despite_failure(self):
        failing = RecordingSink([OSError("gone")])
        healthy = RecordingSink()
        sink = FanOutResultSink([failing, healthy])

        with pytest.raises(SinkWriteError):
            sink.write(estimate(1))

        assert [e.sequence for e in healthy.estimates] == [1]

    def test_failed_start_stops_started_sinks(self):
        first, second = RecordingSink(), RecordingSink()
        second.fail_on_start = OSError("no broker")
        sink = FanOutResultSink([first, second])

        with pytest.raises(OSError):
            sink.start()

        assert not first.started


class TestLoggingResultSink:

    def test_logs_position_event(self, caplog):
        sink = LoggingResultSink()

        with caplog.at_level(logging.INFO):
            sink.write(estimate(5, x=2.0, y=1.5))

        record = json.loads(caplog.records[-1].getMessage())
        assert record["event"] == "position_updated"
        assert (record["x"], record["y"], record["sequence"]) == (2.0, 1.5, 5)
