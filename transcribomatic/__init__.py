"""
Transcribomatic.

Token-authenticated proxy to the OpenAI API with per-user weekly spend
limits.
"""

__version__ = "0.1.0"
