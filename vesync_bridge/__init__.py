"""
VeSync cloud bridge: polls the VeSync cloud for the account devices,
mirrors their state in a hierarchical state tree and translates local
writes into device commands.
"""

from .adapter import VesyncAdapter
from .config import CONFIG_SCHEMA, validate_config
from .helpers.statetree import MemoryStateTree, StateTreeStore
from .session import SessionManager, SessionState

__all__ = (
    "CONFIG_SCHEMA",
    "MemoryStateTree",
    "SessionManager",
    "SessionState",
    "StateTreeStore",
    "VesyncAdapter",
    "validate_config",
)
