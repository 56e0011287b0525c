"""Persistent store implementations."""

from .memory import InMemoryDescriptionStore, InMemoryFlagStore
from .supabase import SupabaseDescriptionStore, SupabaseFlagStore

__all__ = [
    "InMemoryDescriptionStore",
    "InMemoryFlagStore",
    "SupabaseDescriptionStore",
    "SupabaseFlagStore",
]
