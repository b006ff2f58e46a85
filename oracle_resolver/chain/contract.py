"""
Client for the OracleMarkets contract.

Pipeline-agnostic: reads markets, lists MarketEnded logs and submits
``resolveMarket`` transactions. Web3 calls are blocking, so each one runs in
the default executor and only suspends the calling task.

Contract surface used:
  getMarket(uint256)                       -- market struct, reverts if unallocated
  marketCount()                            -- highest allocated id (optional)
  resolveMarket(uint256, uint8, bytes32)   -- Ended -> Resolved
  event MarketEnded(uint256 indexed marketId, uint256 timestamp)
"""

from __future__ import annotations

import asyncio
import functools
import logging
from typing import Any, Callable, Optional

from eth_account import Account
from web3 import Web3
from web3.exceptions import ContractLogicError

from .abi import has_function, load_abi
from .models import Market, MarketEndedEvent
from ..errors import ChainReadError, ChainWriteError, MarketNotFoundError
from ..utils import with_retries

logger = logging.getLogger(__name__)

DEFAULT_RPC = "https://evm.rpc-testnet-donut-node1.push.org"
DEFAULT_EXPLORER = "https://donut.push.network"
REQUEST_TIMEOUT = 30.0
RECEIPT_TIMEOUT = 120.0

_MISSING_MARKER = "does not exist"


class OracleMarketsClient:
    """Async facade over a synchronous web3 contract handle."""

    def __init__(
        self,
        contract_address: str,
        rpc_url: str = DEFAULT_RPC,
        *,
        private_key: Optional[str] = None,
        chain_id: Optional[int] = None,
        abi: Optional[list[dict[str, Any]]] = None,
        request_timeout: float = REQUEST_TIMEOUT,
        retry_attempts: int = 3,
        retry_backoff: float = 1.0,
        explorer_url: Optional[str] = DEFAULT_EXPLORER,
        w3: Optional[Web3] = None,
    ):
        self.w3 = w3 or Web3(
            Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": request_timeout})
        )
        self.abi = abi or load_abi()
        self.address = Web3.to_checksum_address(contract_address)
        self.contract = self.w3.eth.contract(address=self.address, abi=self.abi)
        self.account = Account.from_key(private_key) if private_key else None
        self.chain_id = chain_id
        self.request_timeout = request_timeout
        self.retry_attempts = retry_attempts
        self.retry_backoff = retry_backoff
        self.explorer_base = explorer_url
        # Serialises nonce allocation for this signer
        self._tx_lock = asyncio.Lock()

    @classmethod
    def from_config(cls, config: dict) -> "OracleMarketsClient":
        chain_cfg = config.get("chain", {})
        retry_cfg = config.get("retry", {})
        return cls(
            contract_address=chain_cfg["contract_address"],
            rpc_url=chain_cfg.get("rpc_url", DEFAULT_RPC),
            private_key=chain_cfg.get("private_key"),
            chain_id=chain_cfg.get("chain_id"),
            abi=load_abi(chain_cfg.get("abi_path")),
            request_timeout=chain_cfg.get("request_timeout", REQUEST_TIMEOUT),
            retry_attempts=retry_cfg.get("attempts", 3),
            retry_backoff=retry_cfg.get("backoff", 1.0),
            explorer_url=chain_cfg.get("explorer_url", DEFAULT_EXPLORER),
        )

    # ── Plumbing ─────────────────────────────────────────────────────

    @staticmethod
    async def _run(fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, functools.partial(fn, *args, **kwargs))

    async def _call_view(self, call: Callable[[], Any], label: str) -> Any:
        """Run a read with timeout + retries; reverts are final."""

        async def _attempt() -> Any:
            try:
                return await self._run(call)
            except ContractLogicError as e:
                raise ChainReadError(f"{label} reverted: {e}") from e

        try:
            return await with_retries(
                _attempt,
                attempts=self.retry_attempts,
                timeout=self.request_timeout,
                backoff=self.retry_backoff,
                fatal=(ChainReadError,),
                label=label,
            )
        except ChainReadError:
            raise
        except Exception as e:
            raise ChainReadError(f"{label} failed: {e}") from e

    # ── Reads ────────────────────────────────────────────────────────

    async def get_market(self, market_id: int) -> Market:
        """
        Read a market by id.

        Raises:
            MarketNotFoundError: the id is not allocated on the contract
            ChainReadError: any other read failure
        """
        label = f"getMarket({market_id})"
        try:
            raw = await self._call_view(
                self.contract.functions.getMarket(market_id).call, label
            )
        except ChainReadError as e:
            if _MISSING_MARKER in str(e).lower():
                raise MarketNotFoundError(market_id) from e
            raise

        try:
            return Market.from_tuple(raw)
        except ValueError as e:
            raise ChainReadError(f"{label} returned malformed data: {e}") from e

    async def market_count(self) -> Optional[int]:
        """Return ``marketCount()``, or None if the contract has no such accessor."""
        if not has_function(self.abi, "marketCount"):
            return None
        try:
            count = await self._call_view(
                self.contract.functions.marketCount().call, "marketCount()"
            )
        except ChainReadError as e:
            logger.warning("marketCount() unavailable: %s", e)
            return None
        return int(count)

    async def block_number(self) -> int:
        return int(await self._call_view(lambda: self.w3.eth.block_number, "eth_blockNumber"))

    async def get_market_ended_events(
        self, from_block: int, to_block: int
    ) -> list[MarketEndedEvent]:
        """Decode MarketEnded logs in ``[from_block, to_block]``."""
        logs = await self._call_view(
            lambda: self.contract.events.MarketEnded.get_logs(
                from_block=from_block, to_block=to_block
            ),
            f"MarketEnded logs {from_block}-{to_block}",
        )
        events: list[MarketEndedEvent] = []
        for log in logs:
            args = log["args"]
            tx_hash = log.get("transactionHash")
            events.append(
                MarketEndedEvent(
                    market_id=int(args["marketId"]),
                    timestamp=int(args.get("timestamp", 0)),
                    block_number=int(log.get("blockNumber", 0)),
                    tx_hash=Web3.to_hex(tx_hash) if tx_hash else None,
                )
            )
        return events

    # ── Writes ───────────────────────────────────────────────────────

    async def resolve_market(
        self, market_id: int, outcome_code: int, evidence_hash: str
    ) -> str:
        """
        Sign and broadcast ``resolveMarket``. Returns the tx hash.

        Not retried; an unconfirmed market stays eligible for the next trigger.
        Each RPC is bounded by the provider's request timeout.
        """
        if self.account is None:
            raise ChainWriteError("No signing key configured (PRIVATE_KEY)")
        account = self.account

        def _send() -> Any:
            call = self.contract.functions.resolveMarket(
                market_id, outcome_code, Web3.to_bytes(hexstr=evidence_hash)
            )
            params: dict[str, Any] = {
                "from": account.address,
                "nonce": self.w3.eth.get_transaction_count(account.address, "pending"),
            }
            if self.chain_id:
                params["chainId"] = self.chain_id
            tx = call.build_transaction(params)
            signed = account.sign_transaction(tx)
            return self.w3.eth.send_raw_transaction(signed.raw_transaction)

        async with self._tx_lock:
            try:
                tx_hash = await self._run(_send)
            except Exception as e:
                raise ChainWriteError(
                    f"resolveMarket({market_id}) submission failed: {e}"
                ) from e
        return Web3.to_hex(tx_hash)

    async def wait_for_receipt(self, tx_hash: str, timeout: float = RECEIPT_TIMEOUT) -> int:
        """Wait for inclusion; return the block number. Reverts raise ChainWriteError."""
        try:
            receipt = await self._run(
                self.w3.eth.wait_for_transaction_receipt, tx_hash, timeout=timeout
            )
        except Exception as e:
            raise ChainWriteError(f"Transaction {tx_hash} not confirmed: {e}") from e

        if receipt.get("status") != 1:
            raise ChainWriteError(f"Transaction {tx_hash} reverted")
        return int(receipt["blockNumber"])

    def explorer_url(self, tx_hash: str) -> Optional[str]:
        if not self.explorer_base:
            return None
        return f"{self.explorer_base.rstrip('/')}/tx/{tx_hash}"
