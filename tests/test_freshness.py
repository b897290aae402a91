"""Freshness gate: boundary is stale, never-updated is stale, timestamps only move forward."""

from __future__ import annotations

import pytest

from gala_pricing.core.errors import StalePriceError
from gala_pricing.pricing.freshness import FreshnessGate
from tests.fakes import FakeClock

GALA = "GALA|Unit|none|none"
GUSDC = "GUSDC|Unit|none|none"


class TestFreshnessGate:
    def test_fresh_until_threshold_then_stale(self):
        clock = FakeClock()
        gate = FreshnessGate(30, clock=clock)
        gate.mark_updated(GALA, clock())

        clock.advance(29)
        assert gate.is_fresh(GALA) is True
        assert gate.time_since_last_update(GALA) == 29

        clock.advance(1)
        assert gate.is_fresh(GALA) is False

    def test_boundary_rejects_trade(self):
        clock = FakeClock()
        gate = FreshnessGate(30, clock=clock)
        gate.mark_updated(GALA, clock())
        gate.mark_updated(GUSDC, clock())
        clock.advance(30)

        with pytest.raises(StalePriceError) as exc_info:
            gate.require_fresh([GALA, GUSDC])
        assert exc_info.value.asset_ids == [GALA, GUSDC]

    def test_never_updated_is_stale(self):
        gate = FreshnessGate(30, clock=FakeClock())
        assert gate.is_fresh(GALA) is False
        assert gate.time_since_last_update(GALA) is None
        assert gate.last_updated(GALA) is None

    def test_stale_assets_lists_only_failing(self):
        clock = FakeClock()
        gate = FreshnessGate(30, clock=clock)
        gate.mark_updated(GALA, clock())
        assert gate.stale_assets([GALA, GUSDC]) == [GUSDC]
        gate.require_fresh([GALA])

    def test_mark_updated_never_moves_backwards(self):
        clock = FakeClock()
        gate = FreshnessGate(30, clock=clock)
        gate.mark_updated(GALA, clock())
        gate.mark_updated(GALA, clock() - 100)
        assert gate.last_updated(GALA) == clock()
