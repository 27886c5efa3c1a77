"""Remote store clients for paytrack."""

from .mock_remote import MockRemoteStore
from .protocols import RemoteStoreProtocol, SessionProtocol, StaticSession
from .supabase_client import SupabaseRemoteStore
from .wire import format_timestamp, from_wire, parse_timestamp, to_wire

__all__ = [
    "MockRemoteStore",
    "RemoteStoreProtocol",
    "SessionProtocol",
    "StaticSession",
    "SupabaseRemoteStore",
    "format_timestamp",
    "from_wire",
    "parse_timestamp",
    "to_wire",
]
