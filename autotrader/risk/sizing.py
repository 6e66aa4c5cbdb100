"""
Progressive position sizing. All policies share on_win / on_lose / current_volume.
current_volume stays within [base_volume, max_volume] (max_volume 0 = no cap).
"""

from __future__ import annotations
from abc import ABC, abstractmethod

from autotrader.core.errors import ConfigurationError


class SizingPolicy(ABC):
    """Volume calculator fed by realized trade outcomes."""

    name = "base"

    def __init__(self, base_volume: float, max_volume: float = 0.0):
        if base_volume <= 0:
            raise ValueError("base_volume must be positive")
        if max_volume and max_volume < base_volume:
            raise ValueError("max_volume must be >= base_volume")
        self.base_volume = base_volume
        self.max_volume = max_volume
        self._volume = base_volume

    def current_volume(self) -> float:
        return self._volume

    @property
    def multiple(self) -> float:
        """current_volume / base_volume; used to scale TP/SL distances."""
        return self._volume / self.base_volume

    def _set(self, volume: float) -> None:
        volume = max(self.base_volume, volume)
        if self.max_volume:
            volume = min(self.max_volume, volume)
        self._volume = round(volume, 8)

    def reset(self) -> None:
        self._volume = self.base_volume

    @abstractmethod
    def on_win(self) -> None:
        pass

    @abstractmethod
    def on_lose(self) -> None:
        pass


class FlatSizing(SizingPolicy):
    name = "flat"

    def on_win(self) -> None:
        pass

    def on_lose(self) -> None:
        pass


class MartingaleSizing(SizingPolicy):
    """Double after a loss (capped), back to base after a win."""

    name = "martingale"

    def on_win(self) -> None:
        self.reset()

    def on_lose(self) -> None:
        self._set(self._volume * 2)


class DAlembertSizing(SizingPolicy):
    """
    One base unit up after a loss, one unit down after a win, floored at base.
    With max_volume set, a loss near the cap adds only what is left below it.
    """

    name = "dalembert"

    def on_win(self) -> None:
        self._set(self._volume - self.base_volume)

    def on_lose(self) -> None:
        self._set(self._volume + self.base_volume)


_POLICIES = {cls.name: cls for cls in (FlatSizing, MartingaleSizing, DAlembertSizing)}


def build_sizing_policy(name: str, base_volume: float, max_volume: float = 0.0) -> SizingPolicy:
    try:
        cls = _POLICIES[name]
    except KeyError:
        raise ConfigurationError(f"unknown sizing policy {name!r}; choose from {sorted(_POLICIES)}")
    return cls(base_volume, max_volume)
