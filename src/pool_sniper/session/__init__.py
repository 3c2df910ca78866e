"""
Session Layer - Schedule window and position bookkeeping.
"""

from .manager import SessionManager

__all__ = ["SessionManager"]
