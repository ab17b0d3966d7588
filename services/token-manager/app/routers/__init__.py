"""
API routers for the token manager.
"""

from . import auth, credits, health, sessions, tokens

__all__ = ["auth", "credits", "health", "sessions", "tokens"]
