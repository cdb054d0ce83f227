"""
Flash-loan execution client.

Handles:
- Pre-flight checks against the contract and the bot wallet
- ``requestFlashLoan`` calldata encoding
- Transaction signing (eth_account) and submission
- Receipt monitoring and outcome classification

The client never calls owner-only contract methods; the bot wallet only needs
the executor role.
"""

from collections import deque
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Deque, Dict, Optional, Set

from eth_abi import encode
from eth_account import Account
from eth_account.signers.local import LocalAccount
from web3 import Web3

from flash_arbitrage.exceptions import ConfigurationError, NetworkError
from flash_arbitrage.utils import (
    BPS_DENOMINATOR,
    get_logger,
    is_valid_private_key,
    normalize_private_key,
    to_base_units,
)

from .abi import FLASH_ARB_ABI, REQUEST_FLASH_LOAN_SIGNATURE
from .types import ArbitrageOpportunity

logger = get_logger(__name__)

# Hash reported for attempts that never reached the network
ZERO_TX_HASH = "0x" + "0" * 64

WEI_PER_ETH = Decimal(10) ** 18
WEI_PER_GWEI = Decimal(10) ** 9

# Opportunity ids remembered for the duplicate gate
EXECUTED_ID_HISTORY = 10_000

REQUEST_FLASH_LOAN_SELECTOR = Web3.keccak(text=REQUEST_FLASH_LOAN_SIGNATURE)[:4]


@dataclass(frozen=True)
class ExecutionSettings:
    """
    Configuration for flash-loan execution.

    Attributes:
        max_gas_price_gwei: Gas ceiling re-checked just before submission
        gas_buffer_pct: Headroom added to the gas estimate
        slippage_buffer_bps: Slippage allowance folded into minAmountOut
        flash_loan_premium_bps: Flash-loan premium owed on repayment
        min_gas_reserve_eth: Bot wallet must hold at least this much ETH
        chain_id: Chain the transactions are signed for
    """

    max_gas_price_gwei: Decimal = Decimal("0.1")
    gas_buffer_pct: int = 30
    slippage_buffer_bps: int = 50
    flash_loan_premium_bps: int = 5
    min_gas_reserve_eth: Decimal = Decimal("0.001")
    chain_id: int = 8453

    @property
    def max_gas_price_wei(self) -> int:
        return int(self.max_gas_price_gwei * WEI_PER_GWEI)

    @property
    def min_gas_reserve_wei(self) -> int:
        return int(self.min_gas_reserve_eth * WEI_PER_ETH)


@dataclass
class PreflightReport:
    """
    Outcome of the read-only checks run before submission.

    Attributes:
        passed: All gates passed
        gate: Name of the first failing gate
        reason: Human-readable rejection reason
        gas_price: Gas price observed (wei)
        gas_estimate: Gas units estimated for requestFlashLoan
        amount: Flash-loan amount in base units
        min_amount_out: Minimum repayment-covering output
        calldata: Encoded requestFlashLoan call
    """

    passed: bool
    gate: Optional[str] = None
    reason: Optional[str] = None
    gas_price: Optional[int] = None
    gas_estimate: Optional[int] = None
    amount: int = 0
    min_amount_out: int = 0
    calldata: bytes = b""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "passed": self.passed,
            "gate": self.gate,
            "reason": self.reason,
            "gas_price": self.gas_price,
            "gas_estimate": self.gas_estimate,
            "amount": self.amount,
            "min_amount_out": self.min_amount_out,
        }


@dataclass
class ExecutionResult:
    """
    Result of an execution attempt.

    Attributes:
        success: Confirmed on chain and not reverted
        tx_hash: Transaction hash (ZERO_TX_HASH if never submitted)
        gas_used: Gas consumed (when a receipt was obtained)
        error: Failure reason
        kind: success, preflight, submission, reverted or unconfirmed
        gate: Failing pre-flight gate
        opportunity_id: Opportunity this result belongs to
    """

    success: bool
    tx_hash: str = ZERO_TX_HASH
    gas_used: Optional[int] = None
    error: Optional[str] = None
    kind: str = "success"
    gate: Optional[str] = None
    opportunity_id: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "tx_hash": self.tx_hash,
            "gas_used": self.gas_used,
            "error": self.error,
            "kind": self.kind,
            "gate": self.gate,
            "opportunity_id": self.opportunity_id,
        }


def compute_min_amount_out(amount: int, premium_bps: int, slippage_bps: int) -> int:
    """amount + amount * (premium + slippage) / 10000, in base units."""
    return amount + amount * (premium_bps + slippage_bps) // int(BPS_DENOMINATOR)


def encode_request_flash_loan(
    asset: str, amount: int, target_token: str, pool_fee: int, min_amount_out: int
) -> bytes:
    """
    Calldata for ``requestFlashLoan(asset, amount, params)``.

    ``params`` is ``abi.encode(address targetToken, uint24 poolFee, uint256
    minAmountOut)``, decoded by the contract's flash-loan callback.
    """
    params = encode(
        ["address", "uint24", "uint256"],
        [Web3.to_checksum_address(target_token), pool_fee, min_amount_out],
    )
    args = encode(
        ["address", "uint256", "bytes"],
        [Web3.to_checksum_address(asset), amount, params],
    )
    return REQUEST_FLASH_LOAN_SELECTOR + args


class ExecutionClient:
    """
    Submits flash-loan arbitrage transactions from the bot wallet.

    Args:
        chain: ChainClient-compatible RPC boundary
        runtime_config: Source of the contract address
        settings: Execution settings
        private_key: Bot signing key (hex, optional 0x prefix); None disables
        events: Optional EventSink
        metrics: Optional FlashArbMetrics
        executed_id_history: How many submitted opportunity ids to remember

    Raises:
        ConfigurationError: The private key is malformed
    """

    def __init__(
        self,
        chain,
        runtime_config,
        settings: Optional[ExecutionSettings] = None,
        private_key: Optional[str] = None,
        events=None,
        metrics=None,
        executed_id_history: int = EXECUTED_ID_HISTORY,
    ):
        self.chain = chain
        self.runtime_config = runtime_config
        self.settings = settings or ExecutionSettings()
        self.events = events
        self.metrics = metrics

        self.account: Optional[LocalAccount] = None
        if private_key:
            if not is_valid_private_key(private_key):
                raise ConfigurationError("Malformed bot private key")
            try:
                self.account = Account.from_key(normalize_private_key(private_key))
            except ValueError as e:
                raise ConfigurationError(f"Failed to load private key: {e}") from e
            logger.info(f"Loaded bot wallet: {self.account.address}")
            runtime_config.set_bot_wallet_address(self.account.address)

        self._executed_ids: Set[str] = set()
        self._executed_order: Deque[str] = deque()
        self._executed_id_history = executed_id_history

        # Execution statistics
        self.executions_attempted = 0
        self.executions_successful = 0
        self.preflight_rejections = 0
        self.reverts = 0
        self.total_gas_used = 0

    @property
    def bot_address(self) -> Optional[str]:
        return self.account.address if self.account else None

    def _mark_executed(self, opportunity_id: str) -> None:
        if len(self._executed_order) >= self._executed_id_history:
            self._executed_ids.discard(self._executed_order.popleft())
        self._executed_order.append(opportunity_id)
        self._executed_ids.add(opportunity_id)

    # === READ METHODS ===

    def _require_signer(self) -> LocalAccount:
        if self.account is None:
            raise ConfigurationError("Bot wallet not configured (BOT_PRIVATE_KEY missing)")
        return self.account

    def _require_contract(self) -> str:
        address = self.runtime_config.contract_address
        if address is None:
            raise ConfigurationError("Contract address not configured")
        return address

    async def is_paused(self) -> bool:
        return bool(
            await self.chain.read_contract(self._require_contract(), FLASH_ARB_ABI, "paused")
        )

    async def is_bot_authorized(self) -> bool:
        if self.account is None:
            return False
        return bool(
            await self.chain.read_contract(
                self._require_contract(), FLASH_ARB_ABI, "isExecutor", self.account.address
            )
        )

    async def get_owner(self) -> str:
        return await self.chain.read_contract(self._require_contract(), FLASH_ARB_ABI, "OWNER")

    async def get_contract_balance(self, token: str) -> int:
        return int(
            await self.chain.read_contract(
                self._require_contract(),
                FLASH_ARB_ABI,
                "getBalance",
                Web3.to_checksum_address(token),
            )
        )

    async def wallet_status(self) -> Dict[str, Any]:
        """Bot wallet address, balance and gas price against the ceiling."""
        gas_price = await self.chain.get_gas_price()
        status = {
            "configured": self.account is not None,
            "address": self.bot_address,
            "balance_eth": None,
            "has_gas_reserve": False,
            "gas_price_gwei": float(Decimal(gas_price) / WEI_PER_GWEI),
            "max_gas_price_gwei": float(self.settings.max_gas_price_gwei),
            "gas_acceptable": gas_price <= self.settings.max_gas_price_wei,
        }
        if self.account is not None:
            balance = await self.chain.get_balance(self.account.address)
            status["balance_eth"] = float(Decimal(balance) / WEI_PER_ETH)
            status["has_gas_reserve"] = balance >= self.settings.min_gas_reserve_wei
        return status

    async def contract_status(self) -> Dict[str, Any]:
        """Contract address, pause flag and executor authorization."""
        address = self.runtime_config.contract_address
        if address is None:
            return {"configured": False, "address": None}
        paused = await self.is_paused()
        authorized = await self.is_bot_authorized()
        owner = await self.get_owner()
        return {
            "configured": True,
            "address": address,
            "paused": paused,
            "bot_authorized": authorized,
            "owner": owner,
        }

    # === PRE-FLIGHT ===

    async def preflight(self, opportunity: ArbitrageOpportunity) -> PreflightReport:
        """
        Run every read-only gate for an opportunity.

        Has no side effects; calling it twice gives the same answer for the
        same chain state.
        """
        s = self.settings

        if opportunity.id in self._executed_ids:
            return self._reject("duplicate", f"Opportunity {opportunity.id} already executed")

        if self.account is None:
            return self._reject("signer", "Bot wallet not configured (BOT_PRIVATE_KEY missing)")

        contract = self.runtime_config.contract_address
        if contract is None:
            return self._reject("contract", "Contract address not configured")

        try:
            if await self.is_paused():
                return self._reject("paused", "Contract is paused")
        except NetworkError as e:
            return self._reject("paused", f"Could not read pause state: {e}")

        try:
            if not await self.is_bot_authorized():
                return self._reject("executor", "Bot wallet is not an authorized executor")
        except NetworkError as e:
            return self._reject("executor", f"Could not read executor role: {e}")

        try:
            gas_price = await self.chain.get_gas_price()
        except NetworkError as e:
            return self._reject("gas_price", f"Could not read gas price: {e}")
        if gas_price > s.max_gas_price_wei:
            gwei = Decimal(gas_price) / WEI_PER_GWEI
            return self._reject(
                "gas_price",
                f"Gas price {gwei:.4f} gwei exceeds maximum {s.max_gas_price_gwei} gwei",
                gas_price=gas_price,
            )

        try:
            balance = await self.chain.get_balance(self.account.address)
        except NetworkError as e:
            return self._reject("balance", f"Could not read bot balance: {e}")
        if balance < s.min_gas_reserve_wei:
            return self._reject(
                "balance", "Bot wallet has insufficient ETH for gas", gas_price=gas_price
            )

        amount = to_base_units(opportunity.notional, opportunity.base.decimals)
        min_amount_out = compute_min_amount_out(
            amount, s.flash_loan_premium_bps, s.slippage_buffer_bps
        )
        calldata = encode_request_flash_loan(
            opportunity.base.address,
            amount,
            opportunity.quote.address,
            opportunity.buy_fee_tier,
            min_amount_out,
        )

        try:
            gas_estimate = await self.chain.estimate_gas(
                {
                    "from": self.account.address,
                    "to": contract,
                    "data": Web3.to_hex(calldata),
                    "value": 0,
                }
            )
        except NetworkError as e:
            # A revert during estimation means the trade would not pay back
            return self._reject(
                "estimate",
                f"Gas estimation failed (arbitrage may not be profitable): {e}",
                gas_price=gas_price,
            )

        return PreflightReport(
            passed=True,
            gas_price=gas_price,
            gas_estimate=int(gas_estimate),
            amount=amount,
            min_amount_out=min_amount_out,
            calldata=calldata,
        )

    @staticmethod
    def _reject(gate: str, reason: str, gas_price: Optional[int] = None) -> PreflightReport:
        return PreflightReport(passed=False, gate=gate, reason=reason, gas_price=gas_price)

    # === EXECUTION ===

    async def execute(self, opportunity: ArbitrageOpportunity) -> ExecutionResult:
        """
        Pre-flight, sign, submit and confirm one flash-loan arbitrage.

        Never raises for chain-side problems; every outcome is classified in
        the returned ExecutionResult.

        Raises:
            ConfigurationError: No signing key or no contract address, so
                live execution cannot be attempted at all
        """
        self._require_signer()
        self._require_contract()

        self.executions_attempted += 1
        report = await self.preflight(opportunity)

        if not report.passed:
            self.preflight_rejections += 1
            logger.warning(f"Pre-flight rejected {opportunity.id} at {report.gate}: {report.reason}")
            if self.metrics:
                self.metrics.record_preflight_rejection(report.gate)
                self.metrics.record_execution("preflight")
            self._emit(f"Pre-flight failed: {report.reason}", "warning")
            return ExecutionResult(
                success=False,
                error=report.reason,
                kind="preflight",
                gate=report.gate,
                opportunity_id=opportunity.id,
            )

        # From here on the opportunity may reach the chain
        self._mark_executed(opportunity.id)

        gas_limit = report.gas_estimate * (100 + self.settings.gas_buffer_pct) // 100
        self._emit(
            f"EXECUTING: {opportunity.notional:.6f} {opportunity.base.symbol} flash loan "
            f"on {opportunity.pair_label}",
            "warning",
            "high",
        )

        try:
            nonce = await self.chain.get_transaction_count(self.account.address)
            tx = {
                "from": self.account.address,
                "to": self.runtime_config.contract_address,
                "data": Web3.to_hex(report.calldata),
                "value": 0,
                "gas": gas_limit,
                "gasPrice": report.gas_price,
                "nonce": nonce,
                "chainId": self.settings.chain_id,
            }
            signed = self.account.sign_transaction(tx)
            tx_hash = await self.chain.send_raw_transaction(signed.raw_transaction)
        except NetworkError as e:
            logger.error(f"Submission failed for {opportunity.id}: {e}")
            return self._finish(
                ExecutionResult(
                    success=False,
                    error=f"Submission failed: {e}",
                    kind="submission",
                    opportunity_id=opportunity.id,
                )
            )

        logger.info(f"Submitted {tx_hash} (gas limit {gas_limit}), waiting for receipt...")

        try:
            receipt = await self.chain.wait_for_receipt(tx_hash)
        except NetworkError as e:
            logger.error(f"Receipt lookup failed for {tx_hash}: {e}")
            receipt = None

        if receipt is None:
            return self._finish(
                ExecutionResult(
                    success=False,
                    tx_hash=tx_hash,
                    error="Transaction not confirmed within timeout",
                    kind="unconfirmed",
                    opportunity_id=opportunity.id,
                )
            )

        gas_used = receipt["gasUsed"]
        self.total_gas_used += gas_used

        if receipt["status"] == 0:
            self.reverts += 1
            return self._finish(
                ExecutionResult(
                    success=False,
                    tx_hash=tx_hash,
                    gas_used=gas_used,
                    error="Transaction reverted - arbitrage not profitable",
                    kind="reverted",
                    opportunity_id=opportunity.id,
                )
            )

        self.executions_successful += 1
        return self._finish(
            ExecutionResult(
                success=True,
                tx_hash=tx_hash,
                gas_used=gas_used,
                kind="success",
                opportunity_id=opportunity.id,
                details={"block_number": receipt["blockNumber"]},
            )
        )

    def _finish(self, result: ExecutionResult) -> ExecutionResult:
        if self.metrics:
            self.metrics.record_execution(result.kind)

        if result.success:
            logger.info(f"Execution succeeded: {result.tx_hash} (gas {result.gas_used})")
            self._emit(f"Flash loan executed: {result.tx_hash}", "success", "high")
        elif result.kind == "reverted":
            logger.warning(f"Transaction reverted: {result.tx_hash}")
            self._emit(f"Transaction reverted: {result.tx_hash}", "error", "high")
        else:
            logger.error(f"Execution failed ({result.kind}): {result.error}")
            self._emit(f"Execution failed: {result.error}", "error", "high")
        return result

    def _emit(self, text: str, severity: str = "info", priority: str = "normal"):
        if self.events is not None:
            self.events.emit(text, severity=severity, priority=priority, source="executor")

    def get_stats(self) -> Dict:
        """Get execution statistics."""
        success_rate = (
            self.executions_successful / self.executions_attempted * 100
            if self.executions_attempted > 0
            else 0.0
        )

        return {
            "executions_attempted": self.executions_attempted,
            "executions_successful": self.executions_successful,
            "preflight_rejections": self.preflight_rejections,
            "reverts": self.reverts,
            "success_rate_pct": success_rate,
            "total_gas_used": self.total_gas_used,
            "bot_wallet": self.bot_address,
        }
