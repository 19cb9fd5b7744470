"""End-to-end tests: context wiring and the bring-up script in replay mode."""

import json
import math

import pytest

import Server_bring_up
from packages.datatypes import InvalidStateTransitionError, Reading
from packages.localization_server import build_context
from packages.pipeline import EstimateFeed, ProcessorConfig, QueueReadingSource
from packages.receivers import FixtureMapSource

TARGET = (2.0, 1.5)


def corner_readings(timestamp=1.0):
    room = FixtureMapSource().load_room_map()
    return [
        Reading(r.receiver_id, r.calibration.rssi_at(math.hypot(TARGET[0] - r.x, TARGET[1] - r.y)), timestamp)
        for r in room.receivers
    ]


@pytest.fixture
def context():
    source = QueueReadingSource()
    feed = EstimateFeed()
    return build_context(
        FixtureMapSource(),
        source,
        feed,
        processor_config=ProcessorConfig(poll_interval_seconds=0.01),
        granularity=0.5
    )


class TestBuildContext:

    def test_wiring(self, context):
        assert context.room_map.title == "Lab"
        assert len(context.receivers) == 4
        assert len(context.grid) == 13 * 9
        assert context.processor.grid is context.grid
        assert context.controller.receivers is context.receivers

    def test_buffered_readings_produce_estimate(self, context):
        source = context.controller.source
        feed = context.controller.sink
        for reading in corner_readings():
            source.buffer.add(reading)

        context.start()
        context.stop()

        estimates = feed.history()
        assert len(estimates) == 1
        assert (estimates[0].x, estimates[0].y) == TARGET
        assert estimates[0].receivers == ("rx-0", "rx-1", "rx-2", "rx-3")

    def test_set_granularity_only_while_stopped(self, context):
        context.start()
        try:
            with pytest.raises(InvalidStateTransitionError):
                context.set_granularity(0.25)
        finally:
            context.stop()

        context.set_granularity(0.25)
        assert len(context.grid) == 25 * 17


class TestServerBringUp:

    def test_replay_writes_estimates(self, tmp_path):
        replay = tmp_path / "readings.jsonl"
        replay.write_text("\n".join(
            json.dumps({"receiver_id": r.receiver_id, "value": r.value, "timestamp": r.timestamp})
            for r in corner_readings()
        ) + "\n")
        output = tmp_path / "estimates.jsonl"

        exit_code = Server_bring_up.main([
            "--replay", str(replay), "--output", str(output), "--granularity", "0.5"
        ])

        assert exit_code == 0
        records = [json.loads(line) for line in output.read_text().splitlines()]
        # Replay may split the readings over several batches; each is used once
        assert sum(len(r["receivers"]) for r in records) == 4
        for record in records:
            if len(record["receivers"]) == 4:
                assert (record["x"], record["y"]) == TARGET

    def test_parse_args_defaults(self):
        args = Server_bring_up.parse_args([])

        assert args.broker == "localhost"
        assert args.port == 1883
        assert args.granularity is None
        assert not args.publish
