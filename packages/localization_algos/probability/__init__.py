"""
Grid based probability localization.
"""

from .algorithm import AlgorithmConfig, PositionLocalizationAlgorithm, ProbabilityBasedAlgorithm

__all__ = ['AlgorithmConfig', 'PositionLocalizationAlgorithm', 'ProbabilityBasedAlgorithm']
