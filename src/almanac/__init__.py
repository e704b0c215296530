"""
Almanac - Scheduled AI deep-research jobs with an audit ledger and source trust scoring.
"""

__version__ = "0.1.0"
