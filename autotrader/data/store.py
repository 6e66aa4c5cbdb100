"""
Append-only bar history, one store per (symbol, timeframe).

insert_bar looks the timestamp up before writing, so repeated or concurrent
inserts of the same bar leave exactly one row.
"""

from __future__ import annotations
import bisect
import logging
import sqlite3
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from autotrader.core.types import Bar

logger = logging.getLogger("autotrader.data.store")


class BarStore(ABC):
    """Bar cache/history feeding the indicators. Never the source of truth for positions."""

    @abstractmethod
    def find_bar_by_timestamp(self, ts: datetime) -> Optional[Bar]:
        pass

    @abstractmethod
    def insert_bar(self, bar: Bar) -> bool:
        """Store bar unless its timestamp already exists. Returns True when written."""
        pass

    @abstractmethod
    def query_bars(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        ascending: bool = True,
        limit: Optional[int] = None,
    ) -> List[Bar]:
        """Bars with start <= time <= end. With a limit, the newest `limit` bars in the requested order."""
        pass

    def save_bars(self, bars: Iterable[Bar]) -> int:
        """Insert each bar if absent; returns how many were new."""
        return sum(1 for b in bars if self.insert_bar(b))


class MemoryBarStore(BarStore):
    """Dict-backed store with a sorted time index, for tests and replays. All access goes through one lock."""

    def __init__(self, bars: Iterable[Bar] = ()):
        self._bars: Dict[datetime, Bar] = {}
        self._times: List[datetime] = []
        self._lock = threading.Lock()
        self.save_bars(bars)

    def find_bar_by_timestamp(self, ts):
        with self._lock:
            return self._bars.get(ts)

    def insert_bar(self, bar):
        with self._lock:
            if bar.time in self._bars:
                return False
            self._bars[bar.time] = bar
            bisect.insort(self._times, bar.time)
            return True

    def query_bars(self, start=None, end=None, ascending=True, limit=None):
        with self._lock:
            lo = bisect.bisect_left(self._times, start) if start is not None else 0
            hi = bisect.bisect_right(self._times, end) if end is not None else len(self._times)
            if limit:
                lo = max(lo, hi - limit)
            bars = [self._bars[t] for t in self._times[lo:hi]]
        return bars if ascending else bars[::-1]

    def __len__(self) -> int:
        with self._lock:
            return len(self._bars)


def _epoch(ts: datetime) -> int:
    """UTC epoch seconds; naive datetimes are taken as UTC."""
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return int(ts.timestamp())


class SqliteBarStore(BarStore):
    """
    SQLite-backed bar history. Timestamps are stored as UTC epoch seconds and
    read back as timezone-aware UTC datetimes.
    """

    def __init__(self, db_path: str, symbol: str, timeframe: str):
        self.db_path = str(db_path)
        self.symbol = symbol
        self.timeframe = timeframe
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _init_db(self):
        with sqlite3.connect(self.db_path) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS bars (
                    symbol TEXT NOT NULL,
                    timeframe TEXT NOT NULL,
                    timestamp INTEGER NOT NULL,
                    open REAL NOT NULL,
                    high REAL NOT NULL,
                    low REAL NOT NULL,
                    close REAL NOT NULL,
                    volume REAL NOT NULL,
                    PRIMARY KEY (symbol, timeframe, timestamp)
                )
            """)
            conn.commit()

    @staticmethod
    def _row_to_bar(row) -> Bar:
        ts, o, h, l, c, v = row
        return Bar(datetime.fromtimestamp(ts, tz=timezone.utc), o, h, l, c, v)

    def find_bar_by_timestamp(self, ts):
        with sqlite3.connect(self.db_path) as conn:
            row = conn.execute("""
                SELECT timestamp, open, high, low, close, volume FROM bars
                WHERE symbol = ? AND timeframe = ? AND timestamp = ?
            """, (self.symbol, self.timeframe, _epoch(ts))).fetchone()
        return self._row_to_bar(row) if row else None

    def insert_bar(self, bar):
        ts = _epoch(bar.time)
        conn = sqlite3.connect(self.db_path, timeout=30, isolation_level=None)
        try:
            # write lock taken before the lookup so two writers cannot both see "absent"
            conn.execute("BEGIN IMMEDIATE")
            exists = conn.execute(
                "SELECT 1 FROM bars WHERE symbol = ? AND timeframe = ? AND timestamp = ?",
                (self.symbol, self.timeframe, ts),
            ).fetchone()
            if exists:
                conn.execute("COMMIT")
                logger.debug("Bar %s %s %s already stored, skipping", self.symbol, self.timeframe, bar.time)
                return False
            conn.execute("""
                INSERT INTO bars (symbol, timeframe, timestamp, open, high, low, close, volume)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """, (self.symbol, self.timeframe, ts, bar.open, bar.high, bar.low, bar.close, bar.volume))
            conn.execute("COMMIT")
            return True
        except sqlite3.Error:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            raise
        finally:
            conn.close()

    def query_bars(self, start=None, end=None, ascending=True, limit=None):
        sql = ("SELECT timestamp, open, high, low, close, volume FROM bars "
               "WHERE symbol = ? AND timeframe = ?")
        params: list = [self.symbol, self.timeframe]
        if start is not None:
            sql += " AND timestamp >= ?"
            params.append(_epoch(start))
        if end is not None:
            sql += " AND timestamp <= ?"
            params.append(_epoch(end))
        sql += " ORDER BY timestamp DESC"
        if limit:
            sql += " LIMIT ?"
            params.append(int(limit))
        with sqlite3.connect(self.db_path) as conn:
            rows = conn.execute(sql, params).fetchall()
        bars = [self._row_to_bar(r) for r in rows]
        return bars[::-1] if ascending else bars
