"""
Provider SDK for funnel-lab.

Wraps OpenAI-compatible chat-completion endpoints.
"""

from .openai_client import ProviderClient, ProviderResponse

__all__ = ["ProviderClient", "ProviderResponse"]
