import logging
from functools import lru_cache
from typing import Any, Dict, List, Optional

from eth_utils import is_address
from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from ..core.chains import NATIVE_PLACEHOLDER, is_supported_chain
from ..core.models import QuoteParams, SelectionEntry, Token
from ..core.quote.aggregator import QuoteAggregator
from ..core.quote.parsing import quote_to_dict
from ..core.recovery.errors import RelayApiError, RelayTimeoutError, get_friendly_error_message
from ..services.chain_data import ChainDataClient
from ..services.holdings import HoldingsService
from ..services.pricing import PricingClient

router = APIRouter(prefix="/tools")
_logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_chain_data() -> ChainDataClient:
    return ChainDataClient()


@lru_cache(maxsize=1)
def get_pricing() -> PricingClient:
    return PricingClient()


def get_holdings_service(
    chain_data: ChainDataClient = Depends(get_chain_data),
    pricing: PricingClient = Depends(get_pricing),
) -> HoldingsService:
    return HoldingsService(chain_data, pricing)


def get_aggregator(
    chain_data: ChainDataClient = Depends(get_chain_data),
    pricing: PricingClient = Depends(get_pricing),
) -> QuoteAggregator:
    return QuoteAggregator(pricing, chain_data)


def _require_chain(chain_id: int) -> None:
    if not is_supported_chain(chain_id):
        raise HTTPException(status_code=400, detail=f"Unsupported chain '{chain_id}'")


def _require_address(address: str, label: str = "address") -> None:
    if not is_address(address):
        raise HTTPException(status_code=400, detail=f"Invalid {label} format")


def _relay_http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, RelayTimeoutError):
        return HTTPException(status_code=504, detail=exc.message)
    if isinstance(exc, RelayApiError):
        status = exc.status_code if exc.status_code and exc.status_code < 500 else 502
        detail: Dict[str, Any] = {"message": get_friendly_error_message(exc), "errorCode": exc.error_code}
        if exc.request_id:
            detail["requestId"] = exc.request_id
        return HTTPException(status_code=status, detail=detail)
    return HTTPException(status_code=502, detail=get_friendly_error_message(exc))


class RouteToken(BaseModel):
    address: str
    symbol: str = ""
    decimals: int = Field(18, ge=0, le=255)


class RoutesRequest(BaseModel):
    user: str = Field(..., description="Wallet the routes are checked for")
    originChainId: int
    destinationChainId: int
    destinationCurrency: str = Field(NATIVE_PLACEHOLDER, description="Output token address")
    tokens: List[RouteToken] = Field(..., min_length=1)


class QuoteOrigin(BaseModel):
    currency: str = Field(..., description="Input token address")
    amount: str = Field(..., description="Amount in smallest units")
    symbol: Optional[str] = None
    decimals: int = 18


class BatchQuoteRequest(BaseModel):
    user: str = Field(..., description="EOA initiating the bridge")
    originChainId: int
    destinationChainId: int
    destinationCurrency: str
    origins: List[QuoteOrigin] = Field(..., min_length=1)
    slippageTolerance: Optional[int] = Field(default=None, ge=0, description="Slippage in bps; omit for auto")
    excludedSwapSources: List[str] = Field(default_factory=list)
    includedSwapSources: List[str] = Field(default_factory=list)
    useFallbacks: bool = False
    useExternalLiquidity: bool = False
    usePermit: bool = False
    explicitDeposit: bool = True

    def to_params(self) -> QuoteParams:
        return QuoteParams(
            slippage_bps=self.slippageTolerance,
            excluded_swap_sources=list(self.excludedSwapSources),
            included_swap_sources=list(self.includedSwapSources),
            use_fallbacks=self.useFallbacks,
            use_external_liquidity=self.useExternalLiquidity,
            use_permit=self.usePermit,
            explicit_deposit=self.explicitDeposit,
        )

    def to_entries(self) -> List[SelectionEntry]:
        entries = []
        for origin in self.origins:
            try:
                amount = int(origin.amount)
            except ValueError:
                raise HTTPException(status_code=400, detail=f"Invalid amount for {origin.currency}")
            token = Token(
                chain_id=self.originChainId,
                address=origin.currency,
                symbol=origin.symbol or "",
                decimals=origin.decimals,
                balance=amount,
            )
            entries.append(SelectionEntry(token=token, amount=amount, amount_input=origin.amount))
        return entries


@router.get("/holdings")
async def get_holdings(
    address: str = Query(..., description="Wallet address"),
    chainId: int = Query(8453, description="Chain to scan"),
    service: HoldingsService = Depends(get_holdings_service),
) -> Dict[str, Any]:
    """Verified, priced ERC-20 holdings"""

    _require_chain(chainId)
    _require_address(address, "wallet address")
    try:
        tokens = await service.fetch_holdings(address, chainId)
    except Exception as exc:
        _logger.warning("Holdings lookup failed for %s: %s", address, exc)
        raise HTTPException(status_code=502, detail="Failed to load token balances")

    return {
        "success": True,
        "tokens": [token.to_dict() for token in tokens],
        "totalUsd": round(sum(token.value_usd for token in tokens), 2),
    }


@router.post("/routes")
async def check_routes(
    request: RoutesRequest,
    pricing: PricingClient = Depends(get_pricing),
) -> Dict[str, Any]:
    _require_chain(request.originChainId)
    _require_chain(request.destinationChainId)
    _require_address(request.user, "wallet address")

    tokens = [
        Token(chain_id=request.originChainId, address=t.address, symbol=t.symbol, decimals=t.decimals)
        for t in request.tokens
    ]
    checked = await pricing.check_routes(
        request.originChainId,
        request.destinationChainId,
        tokens,
        request.user,
        request.destinationCurrency,
    )
    return {
        "success": True,
        "routes": [{"address": t.address, "symbol": t.symbol, "routeAvailable": t.route_available} for t in checked],
    }


@router.post("/quote")
async def batch_quote(
    request: BatchQuoteRequest,
    aggregator: QuoteAggregator = Depends(get_aggregator),
) -> Dict[str, Any]:
    """Quote a multi-token batch; policy rejections come back with success=false"""

    _require_chain(request.originChainId)
    _require_chain(request.destinationChainId)
    _require_address(request.user, "wallet address")

    try:
        outcome = await aggregator.quote(
            request.user,
            request.to_entries(),
            request.originChainId,
            request.destinationChainId,
            request.destinationCurrency,
            request.to_params(),
        )
    except HTTPException:
        raise
    except Exception as exc:
        _logger.warning("Batch quote failed: %s", exc)
        raise _relay_http_error(exc)

    return {
        "success": outcome.error is None,
        "quote": quote_to_dict(outcome.quote) if outcome.quote is not None else None,
        "singleMode": outcome.single_mode,
        "warning": outcome.warning,
        "error": outcome.error,
        "excluded": [origin.label for origin in outcome.excluded_origins],
    }


@router.get("/token")
async def get_token(
    address: str = Query(..., description="Token contract address"),
    chainId: int = Query(..., description="Chain the token lives on"),
    chain_data: ChainDataClient = Depends(get_chain_data),
    pricing: PricingClient = Depends(get_pricing),
) -> Dict[str, Any]:
    """Token metadata plus its transfer-fee flag"""

    _require_chain(chainId)
    _require_address(address, "token address")
    try:
        token = await pricing.token_metadata(chainId, address)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except Exception as exc:
        raise _relay_http_error(exc)

    try:
        transfer_fee = await chain_data.detect_transfer_fee(chainId, token.address)
    except Exception as exc:
        _logger.debug("Transfer-fee check failed for %s: %s", token.address, exc)
        transfer_fee = None

    return {"success": True, "token": token.to_dict(), "transferFee": transfer_fee}


@router.get("/status")
async def get_status(
    endpoint: str = Query(..., description="Check endpoint or Relay request id"),
    pricing: PricingClient = Depends(get_pricing),
) -> Dict[str, Any]:
    """One settlement status snapshot"""

    try:
        response = await pricing.status(endpoint)
    except Exception as exc:
        raise HTTPException(status_code=502, detail=f"Failed to fetch status: {exc}")
    if response.status_code != 200:
        raise HTTPException(status_code=response.status_code, detail=response.text or "Status unavailable")
    return {"success": True, "status": response.json()}
