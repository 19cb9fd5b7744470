"""
Reading buffering and aggregation.
"""

from .reading_buffer import ReadingBuffer, BufferMetrics

__all__ = ['ReadingBuffer', 'BufferMetrics']
