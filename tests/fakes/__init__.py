"""Fake price sources, DEX client, swap submitter and clock for tests (no live network)."""

from .sources import (
    FakeClock,
    FakeDexClient,
    FakePriceSource,
    FakePriceSourceAlwaysFail,
    FakePriceSourceFailNThenSucceed,
    FakeSwapSubmitter,
    SlowPriceSource,
)

__all__ = [
    "FakeClock",
    "FakeDexClient",
    "FakePriceSource",
    "FakePriceSourceAlwaysFail",
    "FakePriceSourceFailNThenSucceed",
    "FakeSwapSubmitter",
    "SlowPriceSource",
]
