"""
Bridge session orchestration.

``BridgeSession`` holds one user's batch-bridge state (holdings, selection,
output token, routing parameters, current quote) and wires the services
together: holdings discovery, route checks, quoting, execution and the retry
cascade. Every operation leaves a user-facing ``StatusMessage`` behind, and
short notices go to ``toast``.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence

from ..config import settings
from ..logging_config import bind_session_context, clear_session_context
from ..services.chain_data import ChainDataClient
from ..services.holdings import HoldingsService
from ..services.pricing import PricingClient
from .chains import COMMON_TOKENS, DEFAULT_DEST_CHAIN_ID, DEFAULT_SOURCE_CHAIN_ID, chain_name
from .execution.engine import ExecutionEngine, ExecutionResult, ProgressCallback
from .execution.wallet import WalletClient
from .models import Origin, Quote, QuoteParams, SelectionEntry, StatusMessage, Token, WalletMode
from .quote.aggregator import QuoteAggregator
from .recovery.cascade import CascadeAction, CascadeContext, CascadeDecision, RetryCascade
from .recovery.errors import get_friendly_error_message
from .registry import TokenRegistry, full_selection, update_selection
from .units import format_usd

logger = logging.getLogger(__name__)

TRANSFER_FEE_BLOCK_REASON = "Transfer-fee tokens aren't supported"


class BridgeSession:
    def __init__(
        self,
        owner: Optional[str],
        *,
        chain_data: Optional[ChainDataClient] = None,
        pricing: Optional[PricingClient] = None,
        holdings_service: Optional[HoldingsService] = None,
        aggregator: Optional[QuoteAggregator] = None,
        cascade: Optional[RetryCascade] = None,
        registry: Optional[TokenRegistry] = None,
        source_chain_id: int = DEFAULT_SOURCE_CHAIN_ID,
        dest_chain_id: int = DEFAULT_DEST_CHAIN_ID,
        max_batch_tokens: Optional[int] = None,
    ):
        self.owner = owner
        self.chain_data = chain_data or ChainDataClient()
        self.pricing = pricing or PricingClient()
        self.holdings_service = holdings_service or HoldingsService(self.chain_data, self.pricing)
        self.aggregator = aggregator or QuoteAggregator(self.pricing, self.chain_data)
        self.cascade = cascade or RetryCascade()
        self.registry = registry or TokenRegistry()
        self.source_chain_id = int(source_chain_id)
        self.dest_chain_id = int(dest_chain_id)
        self.max_batch_tokens = max_batch_tokens or settings.max_batch_tokens

        self.wallet: Optional[WalletClient] = None
        self.wallet_mode = WalletMode()
        self.selections: Dict[str, SelectionEntry] = {}
        self.output_token: Optional[Token] = None
        self.params = QuoteParams()
        self.quote: Optional[Quote] = None
        self.status = StatusMessage()
        self.toast: Optional[str] = None

        self.is_loading_holdings = False
        self.is_checking_routes = False
        self.is_loading_quote = False
        self.is_bridging = False

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _bind(self) -> None:
        bind_session_context(self.owner, self.source_chain_id, self.dest_chain_id)

    def close(self) -> None:
        clear_session_context()

    def _set_status(self, type_: str, message: str) -> None:
        self.status = StatusMessage(type=type_, message=message)

    def _show_toast(self, message: str) -> None:
        self.toast = message

    @property
    def holdings(self) -> List[Token]:
        return self.registry.holdings

    @property
    def selected_entries(self) -> List[SelectionEntry]:
        return list(self.selections.values())

    def output_options(self) -> List[Token]:
        """Common tokens on the destination chain followed by custom ones."""
        common = [
            Token(chain_id=self.dest_chain_id, address=t["address"], symbol=t["symbol"],
                  name=t["name"], decimals=t["decimals"])
            for t in COMMON_TOKENS.get(self.dest_chain_id, [])
        ]
        return self.registry.apply_blocklist(common + self.registry.custom_outputs)

    def _reset_quote_state(self) -> None:
        self.selections = {}
        self.quote = None

    async def _transfer_fee_reason(self, token: Token, chain_id: int) -> Optional[str]:
        if not token.address:
            return None
        try:
            is_fee = await self.chain_data.detect_transfer_fee(chain_id, token.address)
        except Exception as exc:
            logger.debug("Transfer-fee check failed for %s: %s", token.address, exc)
            return None
        return TRANSFER_FEE_BLOCK_REASON if is_fee else None

    def block_tokens(self, tokens: Sequence[Token], reason: Optional[str] = None) -> None:
        """Block ``tokens`` for good and drop them from the selection."""
        keys = self.registry.block(tokens, reason)
        for key in keys:
            self.selections.pop(key, None)

    def prune_selection(self, origins: Sequence[Origin]) -> None:
        removed = {origin.currency.lower() for origin in origins}
        self.selections = {
            key: entry for key, entry in self.selections.items()
            if entry.token.address.lower() not in removed
        }

    # ------------------------------------------------------------------
    # Wallet
    # ------------------------------------------------------------------

    async def connect(self, wallet: WalletClient) -> WalletMode:
        """Attach ``wallet`` and negotiate deposit mode and atomic batching."""
        self._bind()
        self.wallet = wallet
        self.owner = self.owner or wallet.account
        try:
            self.wallet_mode = await self.chain_data.resolve_wallet_mode(self.source_chain_id, self.owner, wallet)
        except Exception as exc:
            logger.warning("Wallet mode negotiation failed, keeping defaults: %s", exc)
            self.wallet_mode = WalletMode()
        self.params.explicit_deposit = self.wallet_mode.explicit_deposit
        return self.wallet_mode

    # ------------------------------------------------------------------
    # Holdings and routes
    # ------------------------------------------------------------------

    async def load_holdings(self) -> List[Token]:
        if not self.owner or self.is_loading_holdings:
            return self.holdings

        self._bind()
        self.is_loading_holdings = True
        self._set_status("", "Loading token balances...")
        try:
            tokens = await self.holdings_service.fetch_holdings(self.owner, self.source_chain_id)
            if not tokens:
                self.registry.clear_holdings()
                self._set_status("", "No verified tokens found with USD value")
                return []

            tokens = sorted(
                (t.with_updates(route_available=None) for t in tokens),
                key=lambda t: t.value_usd,
                reverse=True,
            )
            to_check = [t for t in tokens if not self.registry.is_blocked(self.source_chain_id, t.address)]
            fee_flags = await self.chain_data.probe_transfer_fee(
                self.source_chain_id, [t.address for t in to_check]
            )
            fee_tokens = [t for t in to_check if fee_flags.get(t.address.lower())]
            if fee_tokens:
                self.registry.block(fee_tokens, TRANSFER_FEE_BLOCK_REASON, chain_id=self.source_chain_id)

            holdings = self.registry.replace_holdings(tokens)
            self._reset_quote_state()
            self.output_token = None
            self.params.reset_routing()

            total = sum(t.value_usd for t in tokens)
            blocked = sum(1 for t in holdings if t.blocked_reason == TRANSFER_FEE_BLOCK_REASON)
            suffix = f" • {blocked} transfer-fee tokens blocked" if blocked else ""
            self._set_status(
                "success",
                f"Found {len(tokens)} tokens worth {format_usd(total)}. "
                f"Select output token to check routes.{suffix}",
            )
            return holdings
        except Exception as exc:
            logger.warning("Holdings load failed for %s: %s", self.owner, exc)
            self._set_status("error", "Failed to load token balances")
            self.registry.clear_holdings()
            return []
        finally:
            self.is_loading_holdings = False

    async def check_routes(self) -> List[Token]:
        holdings = self.holdings
        if not self.owner or not holdings or self.output_token is None:
            return holdings

        self._bind()
        self.is_checking_routes = True
        self._set_status("", f"Checking routes to {self.output_token.symbol}...")
        try:
            checked = await self.pricing.check_routes(
                self.source_chain_id,
                self.dest_chain_id,
                holdings,
                self.owner,
                self.output_token.address,
            )
            checked = self.registry.apply_blocklist(checked)
            checked.sort(key=lambda t: (not t.route_available, -t.value_usd))
            holdings = self.registry.replace_holdings(checked)
            self._reset_quote_state()

            routeable = [t for t in holdings if t.route_available]
            total = sum(t.value_usd for t in routeable)
            message = (
                f"Found {len(routeable)} tokens bridgeable to {self.output_token.symbol} ({format_usd(total)})"
            )
            unavailable = len(checked) - len(routeable)
            if unavailable > 0:
                message += f" • {unavailable} unavailable"
            self._set_status("success", message)
            return holdings
        except Exception as exc:
            logger.warning("Route check failed: %s", exc)
            self._set_status("error", "Failed to check routes")
            return self.holdings
        finally:
            self.is_checking_routes = False

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    async def toggle_token(self, token: Token) -> bool:
        """Select or deselect ``token``; returns False when the toggle was refused."""
        if self.is_bridging:
            return False

        reason = self.registry.blocked_reason(token.chain_id or self.source_chain_id, token.address)
        if reason:
            self._show_toast(reason)
            return False

        fee_reason = await self._transfer_fee_reason(token, self.source_chain_id)
        if fee_reason:
            self.block_tokens([token], fee_reason)
            self._show_toast(fee_reason)
            return False

        if token.key in self.selections:
            del self.selections[token.key]
        else:
            if len(self.selections) >= self.max_batch_tokens:
                self._show_toast(f"Maximum {self.max_batch_tokens} tokens per batch")
                return False
            self.selections[token.key] = full_selection(token)
        self.quote = None
        return True

    def update_amount(self, key: str, text: str) -> Optional[SelectionEntry]:
        entry = self.selections.get(key)
        if entry is None:
            return None
        self.selections[key] = update_selection(entry, text)
        self.quote = None
        return self.selections[key]

    def set_max_amount(self, key: str) -> Optional[SelectionEntry]:
        entry = self.selections.get(key)
        if entry is None:
            return None
        self.selections[key] = full_selection(entry.token)
        self.quote = None
        return self.selections[key]

    def set_slippage(self, slippage_bps: Optional[int]) -> None:
        self.params.slippage_bps = slippage_bps
        self.quote = None

    # ------------------------------------------------------------------
    # Output token and chains
    # ------------------------------------------------------------------

    async def select_output_token(self, token: Token) -> bool:
        reason = self.registry.blocked_reason(self.dest_chain_id, token.address)
        if reason:
            self._show_toast(reason)
            return False

        fee_reason = await self._transfer_fee_reason(token, self.dest_chain_id)
        if fee_reason:
            self.registry.block([token], fee_reason, chain_id=self.dest_chain_id)
            self._show_toast(fee_reason)
            return False

        self.output_token = token
        self.quote = None
        self.params.reset_routing()
        self.registry.reset_route_flags()

        if self.holdings and not self.is_bridging:
            await self.check_routes()
        return True

    async def add_custom_output_token(self, address: str) -> Optional[Token]:
        if not address or not address.strip():
            return None
        try:
            token = await self.pricing.token_metadata(self.dest_chain_id, address.strip())
        except Exception as exc:
            self._show_toast(str(exc) or "Failed to add token")
            return None

        fee_reason = await self._transfer_fee_reason(token, self.dest_chain_id)
        if fee_reason:
            self.registry.block([token], fee_reason, chain_id=self.dest_chain_id)

        self.registry.add_custom_output(token)
        if not fee_reason:
            await self.select_output_token(token)
        self._show_toast(fee_reason or f"Added {token.symbol}")
        return token

    async def add_source_token(self, address: str) -> Optional[Token]:
        if not address or not address.strip():
            return None
        if not self.owner:
            self._show_toast("Connect wallet first")
            return None

        self._bind()
        try:
            metadata = await self.pricing.token_metadata(self.source_chain_id, address.strip())
            balances = await self.chain_data.get_balances(self.source_chain_id, self.owner, [metadata.address])
            balance = balances.get(metadata.address.lower()) or 0
            if balance == 0:
                self._show_toast(f"No {metadata.symbol} balance on {chain_name(self.source_chain_id)}")
                return None

            token = await self.pricing.apply_price(
                metadata.with_updates(
                    chain_id=self.source_chain_id,
                    balance=balance,
                    price=0.0,
                    value_usd=0.0,
                    verified=True,
                    route_available=None,
                )
            )
            fee_reason = await self._transfer_fee_reason(token, self.source_chain_id)
            if fee_reason:
                self.registry.block([token], fee_reason, chain_id=self.source_chain_id)
            blocked = fee_reason or self.registry.blocked_reason(self.source_chain_id, token.address)

            self.registry.add_holding(token)

            if self.output_token is not None and not blocked:
                check = await self.pricing.check_route(
                    self.source_chain_id,
                    self.dest_chain_id,
                    token.address,
                    self.owner,
                    token.decimals,
                    self.output_token.address,
                )
                held = self.registry.find(self.source_chain_id, token.address)
                if held is not None and not held.blocked_reason:
                    self.registry.update_holding(held.with_updates(route_available=check.available))

            self._show_toast(blocked or f"Added {token.symbol}")
            return self.registry.find(self.source_chain_id, token.address)
        except Exception as exc:
            self._show_toast(str(exc) or "Failed to add token")
            return None

    def swap_chains(self) -> None:
        """Swap source and destination and drop the old source chain's holdings; call ``load_holdings`` next."""
        if self.is_bridging:
            return
        self.source_chain_id, self.dest_chain_id = self.dest_chain_id, self.source_chain_id
        self.registry.clear_holdings()
        self.output_token = None
        self.registry.clear_custom_outputs()
        self._reset_quote_state()
        self.params.reset_routing()
        self._bind()

    # ------------------------------------------------------------------
    # Quote
    # ------------------------------------------------------------------

    async def fetch_quote(
        self,
        *,
        entries: Optional[Sequence[SelectionEntry]] = None,
        params: Optional[QuoteParams] = None,
        status_message: Optional[str] = "Getting best route...",
    ) -> Optional[Quote]:
        raw_entries = list(entries) if entries is not None else self.selected_entries
        if not raw_entries or self.output_token is None or not self.owner:
            return None

        self._bind()
        active = (params or self.params).copy(explicit_deposit=self.wallet_mode.explicit_deposit)
        self.quote = None
        self.is_loading_quote = True
        if status_message:
            self._set_status("", status_message)

        try:
            selected = [
                entry for entry in raw_entries
                if entry.amount > 0
                and not self.registry.is_blocked(entry.token.chain_id or self.source_chain_id, entry.token.address)
            ]
            if not selected:
                self._show_toast("Enter an amount greater than 0")
                self._set_status("", "")
                return None

            outcome = await self.aggregator.quote(
                self.owner,
                selected,
                self.source_chain_id,
                self.dest_chain_id,
                self.output_token.address,
                active,
            )

            if outcome.excluded_origins:
                self.prune_selection(outcome.excluded_origins)
            if outcome.warning:
                self._set_status("warning", outcome.warning)
            if outcome.error:
                self._set_status("error", outcome.error)
                return None
            if not outcome.warning:
                self._set_status("success", "Quote ready")

            self.quote = outcome.quote
            return self.quote
        except Exception as exc:
            logger.warning("Quote failed: %s", exc)
            self._set_status("error", get_friendly_error_message(exc))
            self.quote = None
            return None
        finally:
            self.is_loading_quote = False

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def execute(
        self,
        wallet: Optional[WalletClient] = None,
        progress: Optional[ProgressCallback] = None,
    ) -> Optional[ExecutionResult]:
        """Execute the current quote; failures go through the retry cascade."""
        wallet = wallet or self.wallet
        quote = self.quote
        if quote is None or not self.owner or wallet is None:
            return None

        self._bind()
        self.is_bridging = True
        reset = True
        try:
            engine = ExecutionEngine(
                wallet,
                self.pricing,
                source_chain_id=self.source_chain_id,
                supports_atomic_batch=self.wallet_mode.supports_atomic_batch,
                progress=progress,
            )
            result = await engine.execute(quote)
            self.status = result.status
            if result.poll_results and result.success:
                # the selection stays for the success summary; the steps are spent
                reset = False
                self.quote = None
            return result
        except Exception as exc:
            logger.info("Execution failed: %s", exc)
            decision = self.cascade.decide(
                CascadeContext(
                    error=exc,
                    owner=self.owner,
                    entries=self.selected_entries,
                    params=self.params,
                    quote=quote,
                    source_chain_id=self.source_chain_id,
                    dest_chain_id=self.dest_chain_id,
                )
            )
            reset = decision.reset
            await self.apply_decision(decision)
            return None
        finally:
            self.is_bridging = False
            if reset:
                self._reset_quote_state()

    async def apply_decision(self, decision: CascadeDecision) -> None:
        if decision.block_tokens:
            self.block_tokens(decision.block_tokens, decision.block_reason)
        self.status = decision.status

        if decision.action == CascadeAction.TERMINATE and decision.clear_quote:
            self.quote = None
        if decision.action != CascadeAction.REQUOTE:
            return

        if decision.params is not None:
            self.params = decision.params
        requoted = await self.fetch_quote(
            entries=decision.entries,
            status_message=decision.requote_status_message,
        )
        if requoted is None and decision.requote_failure_message:
            self._set_status("error", decision.requote_failure_message)

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        return {
            "owner": self.owner,
            "sourceChainId": self.source_chain_id,
            "destChainId": self.dest_chain_id,
            "holdings": [t.to_dict() for t in self.holdings],
            "selections": [
                {"token": e.token.to_dict(), "amount": str(e.amount), "amountInput": e.amount_input}
                for e in self.selections.values()
            ],
            "outputToken": self.output_token.to_dict() if self.output_token else None,
            "blocked": self.registry.blocked,
            "status": {"type": self.status.type, "message": self.status.message},
            "toast": self.toast,
        }
