"""
asgi.py -- ASGI entry point for dogrun-auth.

Keeps the server command independent of the package layout.

Run with:  uvicorn asgi:app --reload
"""

from api.main import app

__all__ = ["app"]
