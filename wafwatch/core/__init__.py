"""
WAF Watch - Core Module
Configuration and persistence repositories
"""

from wafwatch.core.config import ChunkFailurePolicy, Settings, get_settings, settings
from wafwatch.core.repositories import BlacklistRepository, GroupRepository

__all__ = [
    "ChunkFailurePolicy",
    "Settings",
    "get_settings",
    "settings",
    "BlacklistRepository",
    "GroupRepository",
]
