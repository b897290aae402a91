"""
Tests for the off-chain price sources and the GalaSwap HTTP client.

HTTP is mocked via unittest.mock.patch on each module's ``requests.get``;
no live network.
"""
from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest
import requests

from gala_pricing.core.errors import RateLimitedError, SourceUnavailableError
from gala_pricing.providers.assets import GALA, GUSDC, AssetCatalog
from gala_pricing.providers.base import SourceConfig, SourceErrorKind
from gala_pricing.providers.dex.client import GSwapHttpClient
from gala_pricing.providers.market.coingecko import CoinGeckoSource
from gala_pricing.providers.market.coinmarketcap import CoinMarketCapSource
from gala_pricing.providers.ratelimit import SlidingWindowRateLimiter
from gala_pricing.providers.resilience import CircuitBreakerRegistry, CircuitState, RetryConfig
from tests.fakes import FakeClock

FILM = "FILM|Unit|none|none"
ETIME = "ETIME|Unit|none|none"
GMUSIC = "GMUSIC|Unit|none|none"


def _mock_response(json_data, status_code=200):
    resp = MagicMock()
    resp.status_code = status_code
    resp.json.return_value = json_data
    if status_code >= 400 and status_code != 429:
        resp.raise_for_status.side_effect = requests.HTTPError(f"HTTP {status_code}")
    return resp


def _shared(clock, quota=50, retries=1, threshold=5):
    return {
        "catalog": AssetCatalog.default(),
        "rate_limiter": SlidingWindowRateLimiter({"coingecko": quota, "coinmarketcap": quota}, clock=clock),
        "breakers": CircuitBreakerRegistry(
            failure_threshold=threshold,
            retry_config=RetryConfig(max_retries=retries),
            clock=clock,
            sleep=lambda s: None,
        ),
        "clock": clock,
    }


# ---------------------------------------------------------------------------
# CoinGecko
# ---------------------------------------------------------------------------


class TestCoinGeckoSource:
    @patch("gala_pricing.providers.market.coingecko.requests.get")
    def test_maps_ids_back_to_asset_ids(self, mock_get):
        mock_get.return_value = _mock_response({"gala": {"usd": 0.0185}, "gala-film": {"usd": 0.42}})
        clock = FakeClock()
        source = CoinGeckoSource(SourceConfig("coingecko"), **_shared(clock))

        result = source.fetch_prices({GALA, FILM})

        assert result.ok
        assert result.prices[GALA].price_usd == 0.0185
        assert result.prices[FILM].price_usd == 0.42
        assert result.prices[GALA].source_id == "coingecko"
        assert result.fetched_at == clock()
        params = mock_get.call_args.kwargs["params"]
        assert params["ids"] == "gala,gala-film"
        assert params["vs_currencies"] == "usd"

    @patch("gala_pricing.providers.market.coingecko.requests.get")
    def test_unsupported_and_null_prices_are_absent(self, mock_get):
        mock_get.return_value = _mock_response({"gala": {"usd": None}, "gala-music": {}})
        source = CoinGeckoSource(SourceConfig("coingecko"), **_shared(FakeClock()))

        result = source.fetch_prices({GALA, GMUSIC, ETIME})

        assert result.ok
        assert result.prices == {}

    @patch("gala_pricing.providers.market.coingecko.requests.get")
    def test_no_mappable_assets_skips_http(self, mock_get):
        source = CoinGeckoSource(SourceConfig("coingecko"), **_shared(FakeClock()))
        result = source.fetch_prices({ETIME})
        assert result.ok
        assert result.prices == {}
        mock_get.assert_not_called()

    @patch("gala_pricing.providers.market.coingecko.requests.get")
    def test_unmappable_assets_do_not_spend_quota(self, mock_get):
        mock_get.return_value = _mock_response({"gala": {"usd": 0.02}})
        shared = _shared(FakeClock(), quota=2)
        source = CoinGeckoSource(SourceConfig("coingecko"), **shared)

        source.fetch_prices({ETIME})
        source.fetch_prices({ETIME})
        assert shared["rate_limiter"].remaining("coingecko") == 2

        result = source.fetch_prices({GALA, ETIME})
        assert result.ok
        assert set(result.prices) == {GALA}
        assert mock_get.call_count == 1
        assert shared["rate_limiter"].remaining("coingecko") == 1

    @patch("gala_pricing.providers.market.coingecko.requests.get")
    def test_http_429_is_rate_limited_and_not_retried(self, mock_get):
        mock_get.return_value = _mock_response({}, status_code=429)
        source = CoinGeckoSource(SourceConfig("coingecko"), **_shared(FakeClock(), retries=3))

        result = source.fetch_prices({GALA})

        assert result.error.kind is SourceErrorKind.RATE_LIMITED
        assert mock_get.call_count == 1

    @patch("gala_pricing.providers.market.coingecko.requests.get")
    def test_http_error_is_unavailable_after_retries(self, mock_get):
        mock_get.return_value = _mock_response({}, status_code=500)
        shared = _shared(FakeClock(), retries=3)
        source = CoinGeckoSource(SourceConfig("coingecko"), **shared)

        result = source.fetch_prices({GALA})

        assert result.error.kind is SourceErrorKind.UNAVAILABLE
        assert mock_get.call_count == 3
        assert shared["breakers"].breaker("coingecko").consecutive_failures == 1

    @patch("gala_pricing.providers.market.coingecko.requests.get")
    def test_network_error_is_unavailable(self, mock_get):
        mock_get.side_effect = requests.ConnectionError("connection refused")
        source = CoinGeckoSource(SourceConfig("coingecko"), **_shared(FakeClock()))
        result = source.fetch_prices({GALA})
        assert result.error.kind is SourceErrorKind.UNAVAILABLE
        assert "connection refused" in result.error.message

    @patch("gala_pricing.providers.market.coingecko.requests.get")
    def test_rate_limiter_denial_skips_http(self, mock_get):
        mock_get.return_value = _mock_response({"gala": {"usd": 0.02}})
        source = CoinGeckoSource(SourceConfig("coingecko"), **_shared(FakeClock(), quota=1))

        assert source.fetch_prices({GALA}).ok
        denied = source.fetch_prices({GALA})

        assert denied.error.kind is SourceErrorKind.RATE_LIMITED
        assert mock_get.call_count == 1

    @patch("gala_pricing.providers.market.coingecko.requests.get")
    def test_open_circuit_skips_http(self, mock_get):
        mock_get.side_effect = requests.ConnectionError("down")
        shared = _shared(FakeClock(), threshold=2)
        source = CoinGeckoSource(SourceConfig("coingecko"), **shared)

        source.fetch_prices({GALA})
        source.fetch_prices({GALA})
        assert shared["breakers"].state("coingecko") is CircuitState.OPEN

        result = source.fetch_prices({GALA})
        assert result.error.kind is SourceErrorKind.CIRCUIT_OPEN
        assert mock_get.call_count == 2

    @patch("gala_pricing.providers.market.coingecko.requests.get")
    def test_disabled_source(self, mock_get):
        source = CoinGeckoSource(SourceConfig("coingecko", enabled=False), **_shared(FakeClock()))
        result = source.fetch_prices({GALA})
        assert result.error.kind is SourceErrorKind.DISABLED
        mock_get.assert_not_called()


# ---------------------------------------------------------------------------
# CoinMarketCap
# ---------------------------------------------------------------------------


class TestCoinMarketCapSource:
    def test_disabled_without_api_key(self):
        source = CoinMarketCapSource(SourceConfig("coinmarketcap"), api_key=None, **_shared(FakeClock()))
        assert source.enabled is False
        assert source.has_api_key is False
        assert source.fetch_prices({GALA}).error.kind is SourceErrorKind.DISABLED

    @patch("gala_pricing.providers.market.coinmarketcap.requests.get")
    def test_parses_v1_payload_and_sends_key(self, mock_get):
        mock_get.return_value = _mock_response(
            {
                "data": {
                    "GALA": {"quote": {"USD": {"price": 0.0182}}},
                    "USDC": {"quote": {"USD": {"price": 0.9999}}},
                }
            }
        )
        source = CoinMarketCapSource(SourceConfig("coinmarketcap"), api_key="k-123", **_shared(FakeClock()))

        result = source.fetch_prices({GALA, GUSDC})

        assert result.prices[GALA].price_usd == 0.0182
        assert result.prices[GUSDC].price_usd == 0.9999
        kwargs = mock_get.call_args.kwargs
        assert kwargs["headers"]["X-CMC_PRO_API_KEY"] == "k-123"
        assert kwargs["params"]["symbol"] == "GALA,USDC"

    @patch("gala_pricing.providers.market.coinmarketcap.requests.get")
    def test_parses_v2_list_payload(self, mock_get):
        mock_get.return_value = _mock_response({"data": {"GALA": [{"quote": {"USD": {"price": 0.019}}}]}})
        source = CoinMarketCapSource(SourceConfig("coinmarketcap"), api_key="k", **_shared(FakeClock()))
        assert source.fetch_prices({GALA}).prices[GALA].price_usd == 0.019

    @patch("gala_pricing.providers.market.coinmarketcap.requests.get")
    def test_missing_data_is_unavailable(self, mock_get):
        mock_get.return_value = _mock_response({"status": {"error_code": 1002}})
        source = CoinMarketCapSource(SourceConfig("coinmarketcap"), api_key="k", **_shared(FakeClock()))
        assert source.fetch_prices({GALA}).error.kind is SourceErrorKind.UNAVAILABLE


# ---------------------------------------------------------------------------
# GalaSwap HTTP client
# ---------------------------------------------------------------------------


class TestGSwapHttpClient:
    @patch("gala_pricing.providers.dex.client.requests.get")
    def test_quote_exact_input(self, mock_get):
        mock_get.return_value = _mock_response(
            {"status": 200, "data": {"outTokenAmount": "0.0184", "priceImpact": "0.002", "currentFee": 3000}}
        )
        client = GSwapHttpClient("https://gateway.example/", http_timeout_s=2.0)

        quote = client.quote_exact_input(GALA, GUSDC, 1)

        assert quote.out_amount == 0.0184
        assert quote.price_impact == 0.002
        assert quote.fee_tier == 3000
        args, kwargs = mock_get.call_args
        assert args[0] == "https://gateway.example/v1/trade/quote"
        assert kwargs["params"] == {"tokenIn": GALA, "tokenOut": GUSDC, "amountIn": "1"}
        assert kwargs["timeout"] == 2.0

    @patch("gala_pricing.providers.dex.client.requests.get")
    def test_quote_without_output_is_unavailable(self, mock_get):
        mock_get.return_value = _mock_response({"data": {"outTokenAmount": None}})
        with pytest.raises(SourceUnavailableError):
            GSwapHttpClient("https://gateway.example").quote_exact_input(GALA, GUSDC, 1)

    @patch("gala_pricing.providers.dex.client.requests.get")
    def test_quote_429(self, mock_get):
        mock_get.return_value = _mock_response({}, status_code=429)
        with pytest.raises(RateLimitedError):
            GSwapHttpClient("https://gateway.example").quote_exact_input(GALA, GUSDC, 1)

    @patch("gala_pricing.providers.dex.client.requests.get")
    def test_user_assets(self, mock_get):
        mock_get.return_value = _mock_response(
            {
                "data": {
                    "tokens": [
                        {"symbol": "GALA", "quantity": "1500.5", "decimals": 8, "verify": True, "name": "Gala"},
                        {"symbol": "GUSDC", "quantity": "20", "decimals": 6, "verify": True},
                        {"quantity": "1"},
                    ]
                }
            }
        )
        assets = GSwapHttpClient("https://gateway.example").get_user_assets("eth|abc")

        assert [a.symbol for a in assets] == ["GALA", "GUSDC"]
        assert assets[0].quantity == 1500.5
        assert assets[0].decimals == 8
        assert assets[0].verified is True
        assert mock_get.call_args.kwargs["params"]["address"] == "eth|abc"
