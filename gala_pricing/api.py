"""
REST API over the pricing service using FastAPI.

The service is resolved through the ``get_service`` dependency so tests can
swap in one built from fakes via ``app.dependency_overrides``.
Package errors map to HTTP statuses in one place (exception handlers below).
"""
from __future__ import annotations

import logging
from functools import lru_cache
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from ._version import __version__
from .core.errors import (
    CircuitOpenError,
    GalaPricingError,
    InvalidRequestError,
    RateLimitedError,
    StalePriceError,
    TradingDisabledError,
)
from .service import PricingService, build_service
from .timeutils import utc_now_iso
from .trading.executor import SwapRequest

logger = logging.getLogger(__name__)

app = FastAPI(title="GalaChain Pricing API", version=__version__)


@lru_cache(maxsize=1)
def get_service() -> PricingService:
    return build_service()


class TokensBody(BaseModel):
    tokens: List[str]


class QuoteBody(BaseModel):
    tokenIn: str
    tokenOut: str
    amountIn: Any = None


class SwapBody(BaseModel):
    tokenIn: str
    tokenOut: str
    amountIn: float
    minAmountOut: Optional[float] = None
    walletAddress: Optional[str] = None


def _error(status: int, exc: Exception, **extra: Any) -> JSONResponse:
    return JSONResponse(
        status_code=status,
        content={"success": False, "error": str(exc), "timestamp": utc_now_iso(), **extra},
    )


@app.exception_handler(InvalidRequestError)
async def _invalid_request(request: Request, exc: InvalidRequestError) -> JSONResponse:
    return _error(400, exc)


@app.exception_handler(TradingDisabledError)
async def _trading_disabled(request: Request, exc: TradingDisabledError) -> JSONResponse:
    return _error(403, exc)


@app.exception_handler(StalePriceError)
async def _stale_price(request: Request, exc: StalePriceError) -> JSONResponse:
    logger.warning("Rejected %s: %s", request.url.path, exc)
    return _error(409, exc, stale=exc.asset_ids)


@app.exception_handler(RateLimitedError)
async def _rate_limited(request: Request, exc: RateLimitedError) -> JSONResponse:
    return _error(429, exc)


@app.exception_handler(CircuitOpenError)
async def _circuit_open(request: Request, exc: CircuitOpenError) -> JSONResponse:
    return _error(503, exc, dependency=exc.dependency_id, retryAfter_s=exc.retry_after_s)


@app.exception_handler(GalaPricingError)
async def _dependency_failed(request: Request, exc: GalaPricingError) -> JSONResponse:
    logger.error("%s failed: %s", request.url.path, exc)
    return _error(502, exc)


@app.get("/api/health")
def health(service: PricingService = Depends(get_service)) -> Dict[str, Any]:
    return service.status()


@app.get("/api/prices")
def prices(assets: Optional[str] = None, service: PricingService = Depends(get_service)) -> Dict[str, Any]:
    wanted = [a.strip() for a in assets.split(",") if a.strip()] if assets else None
    return {"success": True, "data": service.get_reconciled_prices(wanted), "timestamp": utc_now_iso()}


@app.post("/api/prices")
def prices_for_tokens(body: TokensBody, service: PricingService = Depends(get_service)) -> Dict[str, Any]:
    if not body.tokens:
        raise HTTPException(400, detail="tokens must be a non-empty list")
    found = service.get_reconciled_prices(body.tokens)
    return {"success": True, "data": [found.get(t) for t in body.tokens], "timestamp": utc_now_iso()}


@app.get("/api/prices/comprehensive")
def prices_comprehensive(
    assets: Optional[str] = None, service: PricingService = Depends(get_service)
) -> Dict[str, Any]:
    wanted = [a.strip() for a in assets.split(",") if a.strip()] if assets else None
    return {"success": True, "data": service.aggregator.comprehensive(wanted)}


@app.post("/api/tradeable")
def tradeable(body: TokensBody, service: PricingService = Depends(get_service)) -> Dict[str, Any]:
    ok = service.is_tradeable(body.tokens)
    stale = service.stale_assets(body.tokens)
    return {"tradeable": ok and not stale, "stale": stale}


@app.post("/api/quote")
def quote(body: QuoteBody, service: PricingService = Depends(get_service)) -> Dict[str, Any]:
    q = service.quotes.get_quote(body.tokenIn, body.tokenOut, body.amountIn)
    return {"success": True, "data": q.to_dict(), "timestamp": utc_now_iso()}


@app.get("/api/balance")
def balance(address: Optional[str] = None, service: PricingService = Depends(get_service)) -> Dict[str, Any]:
    if not address:
        raise InvalidRequestError("Wallet address required")
    return {"success": True, "data": service.balances.as_payload(address), "timestamp": utc_now_iso()}


@app.post("/api/swap")
def swap(body: SwapBody, service: PricingService = Depends(get_service)) -> Dict[str, Any]:
    receipt = service.execute_swap(
        SwapRequest(
            asset_in=body.tokenIn,
            asset_out=body.tokenOut,
            amount_in=body.amountIn,
            min_amount_out=body.minAmountOut,
            wallet_address=body.walletAddress,
        )
    )
    return {"success": True, "data": receipt.to_dict(), "timestamp": utc_now_iso()}


@app.post("/api/cache/flush")
def cache_flush(service: PricingService = Depends(get_service)) -> Dict[str, Any]:
    return {"success": True, "flushed": service.flush_caches()}
