"""
Application wiring for the localization server.
"""

from .context import LocalizationContext, build_context

__all__ = ['LocalizationContext', 'build_context']
