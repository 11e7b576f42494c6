"""Completion provider implementations."""

from .base import BaseCompletionProvider, CompletionProviderConfig
from .openrouter import OpenRouterProvider

__all__ = [
    "BaseCompletionProvider",
    "CompletionProviderConfig",
    "OpenRouterProvider",
]
