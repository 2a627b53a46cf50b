"""Local and remote store adapters consumed by the sync engine."""

from .local import JsonFileStore, LocalStore
from .remote import SupabaseRemoteStore

__all__ = ["JsonFileStore", "LocalStore", "SupabaseRemoteStore"]
