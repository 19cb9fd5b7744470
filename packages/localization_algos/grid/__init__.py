"""
Room grid generation.
"""

from .grid_model import GridModel, generate, validate

__all__ = ['GridModel', 'generate', 'validate']
