"""
Repository Layer Package.

Data-access abstractions over Supabase (cloud) and SQLite (local cache).

Usage:
    from sessionkeeper.repositories.profile_repository import ProfileRepository
"""

from sessionkeeper.repositories.base_repository import BaseRepository
from sessionkeeper.repositories.profile_repository import ProfileRepository

__all__ = [
    "BaseRepository",
    "ProfileRepository",
]
