"""State layer.

Owns the persisted record of processed entries: loading with corruption
recovery, atomic saving, and the dedup policy that reads it.
"""

from packwatch.state.policy import needs_generation
from packwatch.state.store import ServerState, WatchState, load_state, save_state

__all__ = ["ServerState", "WatchState", "load_state", "needs_generation", "save_state"]
