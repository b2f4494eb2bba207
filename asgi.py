"""
asgi.py -- ASGI entry point for OpsMind Auth.

api/main.py assembles the application; this module only re-exports it so
process managers have a stable, top-level import path.

Run with:  uvicorn asgi:app --reload
           python main.py serve
"""

from api.main import app

__all__ = ["app"]
