"""
Almanac Store - SQLite persistence for configs, reports, audit entries and sources.
"""

from almanac.store.audit import AuditLedger
from almanac.store.configs import DEFAULT_CONFIGS, ConfigStore
from almanac.store.database import Database
from almanac.store.reports import ReportStore
from almanac.store.sources import SourceStore

__all__ = [
    "AuditLedger",
    "ConfigStore",
    "DEFAULT_CONFIGS",
    "Database",
    "ReportStore",
    "SourceStore",
]
