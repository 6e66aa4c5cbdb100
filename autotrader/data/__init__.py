"""Bar persistence and DataFrame conversion."""

from autotrader.data.frames import bars_to_frame, frame_to_bars
from autotrader.data.store import BarStore, MemoryBarStore, SqliteBarStore

__all__ = ["BarStore", "MemoryBarStore", "SqliteBarStore", "bars_to_frame", "frame_to_bars"]
