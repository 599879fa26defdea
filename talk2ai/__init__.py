"""talk2ai: voice chat backend and client for Groq-hosted models."""

__version__ = "0.1.0"
