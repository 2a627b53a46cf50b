"""HTTP client and async bridging shared by the remote adapters."""

from .async_utils import run_sync
from .client import SupabaseClient

__all__ = ["SupabaseClient", "run_sync"]
