"""
Funnel Lab: ad / landing page coherence analysis backed by LLM providers.
"""

__version__ = "1.0.0"
