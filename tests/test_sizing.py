"""Unit tests for risk.sizing."""

import pytest

from autotrader.core.errors import ConfigurationError
from autotrader.risk.sizing import (
    DAlembertSizing,
    FlatSizing,
    MartingaleSizing,
    build_sizing_policy,
)


def test_flat_never_changes():
    p = FlatSizing(0.01)
    p.on_lose()
    p.on_lose()
    p.on_win()
    assert p.current_volume() == 0.01


def test_martingale_doubles_and_resets():
    p = MartingaleSizing(0.01)
    p.on_lose()
    assert p.current_volume() == pytest.approx(0.02)
    p.on_lose()
    assert p.current_volume() == pytest.approx(0.04)
    assert p.multiple == pytest.approx(4.0)
    p.on_win()
    assert p.current_volume() == pytest.approx(0.01)


def test_martingale_capped():
    p = MartingaleSizing(0.01, max_volume=0.05)
    for _ in range(10):
        p.on_lose()
        assert 0.01 <= p.current_volume() <= 0.05
    assert p.current_volume() == pytest.approx(0.05)


def test_dalembert_steps_by_base():
    p = DAlembertSizing(0.01)
    p.on_lose()
    p.on_lose()
    assert p.current_volume() == pytest.approx(0.03)
    p.on_win()
    assert p.current_volume() == pytest.approx(0.02)
    p.on_win()
    p.on_win()
    assert p.current_volume() == pytest.approx(0.01)


def test_dalembert_capped():
    p = DAlembertSizing(1.0, max_volume=2.5)
    p.on_lose()
    assert p.current_volume() == pytest.approx(2.0)
    p.on_lose()
    assert p.current_volume() == pytest.approx(2.5)
    for _ in range(5):
        p.on_lose()
    assert p.current_volume() == pytest.approx(2.5)
    p.on_win()
    assert p.current_volume() == pytest.approx(1.5)


def test_invalid_volumes():
    with pytest.raises(ValueError):
        FlatSizing(0.0)
    with pytest.raises(ValueError):
        MartingaleSizing(1.0, max_volume=0.5)


def test_build_sizing_policy():
    assert isinstance(build_sizing_policy("martingale", 0.01), MartingaleSizing)
    assert isinstance(build_sizing_policy("dalembert", 0.01), DAlembertSizing)
    with pytest.raises(ConfigurationError):
        build_sizing_policy("kelly", 0.01)
