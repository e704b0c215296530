"""
Almanac HTTP API - FastAPI routes over the orchestrator.
"""

from almanac.api.app import create_app

__all__ = ["create_app"]
