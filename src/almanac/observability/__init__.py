"""
Observability - Logging setup.
"""

from almanac.observability.logging import configure_logging

__all__ = ["configure_logging"]
