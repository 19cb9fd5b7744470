"""
Server bring-up script that coordinates reading ingestion, grid localization
and result publishing.
"""

import argparse
import json
import logging
import threading
import time

from packages.localization_algos.probability.algorithm import AlgorithmConfig
from packages.localization_server.context import build_context
from packages.pipeline.processor import ProcessorConfig
from packages.pipeline.sinks import EstimateFeed, FanOutResultSink, JSONLinesResultSink, LoggingResultSink
from packages.pipeline.sources import FileReadingSource
from packages.position_mqtt_sink.config import PublisherConfig
from packages.position_mqtt_sink.sink import MQTTResultSink
from packages.readings_mqtt_source.config import MQTTConfig
from packages.readings_mqtt_source.source import MQTTReadingSource
from packages.receivers.map_sources import FixtureMapSource, JSONFileMapSource

# Setup JSON logging
logging.basicConfig(
    format='{"timestamp": "%(asctime)s", "level": "%(levelname)s", "message": %(message)s}',
    level=logging.INFO
)
logger = logging.getLogger(__name__)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description='RSSI Room Localization Server')
    parser.add_argument('--broker', type=str, default='localhost',
                      help='MQTT broker IP address')
    parser.add_argument('--port', type=int, default=1883,
                      help='MQTT broker port')
    parser.add_argument('--room-file', type=str, default=None,
                      help='JSON room map with receivers (built-in demo room if omitted)')
    parser.add_argument('--replay', type=str, default=None,
                      help='Replay readings from a JSON-lines file instead of MQTT')
    parser.add_argument('--granularity', type=float, default=None,
                      help='Grid spacing in meters (overrides the room map)')
    parser.add_argument('--sigma', type=float, default=1.0,
                      help='Distance residual std deviation in meters')
    parser.add_argument('--poll-interval', type=float, default=0.05,
                      help='Processor wait after an empty pull (s)')
    parser.add_argument('--max-failures', type=int, default=5,
                      help='Consecutive source/sink failures before the pipeline stops')
    parser.add_argument('--publish', action='store_true',
                      help='Publish estimates to <base>/position')
    parser.add_argument('--output', type=str, default=None,
                      help='Append estimates to a JSON-lines file')
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)

    map_source = JSONFileMapSource(args.room_file) if args.room_file else FixtureMapSource()

    if args.replay:
        source = FileReadingSource(args.replay)
    else:
        source = MQTTReadingSource(MQTTConfig(broker=args.broker, port=args.port))

    feed = EstimateFeed()
    sinks = [LoggingResultSink(), feed]
    if args.output:
        sinks.append(JSONLinesResultSink(args.output))
    if args.publish:
        sinks.append(MQTTResultSink(PublisherConfig(broker=args.broker, port=args.port)))

    failed = threading.Event()

    def on_fatal(reason: str):
        logger.error(json.dumps({
            "event": "server_halted",
            "reason": reason
        }))
        failed.set()

    context = build_context(
        map_source=map_source,
        source=source,
        sink=FanOutResultSink(sinks),
        algorithm_config=AlgorithmConfig(sigma_m=args.sigma),
        processor_config=ProcessorConfig(
            poll_interval_seconds=args.poll_interval,
            max_consecutive_failures=args.max_failures
        ),
        granularity=args.granularity,
        on_fatal=on_fatal
    )

    logger.info(json.dumps({
        "event": "server_config",
        "broker": args.broker,
        "port": args.port,
        "room": context.room_map.title,
        "replay": args.replay
    }))

    context.start()
    try:
        # Keep main thread alive
        while not failed.is_set():
            if args.replay and source.finished and len(source.buffer) == 0:
                break
            latest = feed.latest()
            if latest is not None:
                print(f"Current position: ({latest.x:.2f}, {latest.y:.2f})")
            time.sleep(1)
    except KeyboardInterrupt:
        pass
    finally:
        if context.controller.running:
            context.stop()

    return 1 if failed.is_set() else 0


if __name__ == "__main__":
    raise SystemExit(main())
