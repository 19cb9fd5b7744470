"""
Streaming pipeline: reading source -> processor -> result sink.
"""

from .interfaces import ReadingSource, ResultSink
from .sources import QueueReadingSource, FileReadingSource, parse_reading_line
from .sinks import LoggingResultSink, JSONLinesResultSink, EstimateFeed, FanOutResultSink
from .processor import Processor, ProcessorConfig
from .controller import PipelineController, PipelineState

__all__ = [
    'ReadingSource',
    'ResultSink',
    'QueueReadingSource',
    'FileReadingSource',
    'parse_reading_line',
    'LoggingResultSink',
    'JSONLinesResultSink',
    'EstimateFeed',
    'FanOutResultSink',
    'Processor',
    'ProcessorConfig',
    'PipelineController',
    'PipelineState'
]
