"""
HTTP layer for judgeloop.

Flask application exposing submission creation, the execution service
callback and result polling.
"""

from .server import create_app

__all__ = ["create_app"]
