"""
SDK for Transcribomatic.

Outbound client for the OpenAI API.
"""

from .openai_client import RealtimeOpenAI, SessionToken

__all__ = ["RealtimeOpenAI", "SessionToken"]
