"""
ethgate Gateway

HTTP and WebSocket front ends (FastAPI) for the proxy pipeline.
"""

from .main import create_app

__all__ = ["create_app"]
