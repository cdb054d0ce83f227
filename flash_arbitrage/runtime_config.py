"""
Process-wide runtime configuration.

Holds the settings an operator may change while the process runs: the
live/dry-run switch, the deployed contract address and the bot wallet
address. Live and dry-run are one switch so the two modes are mutually
exclusive for every strategy. Setters are guarded by a lock because the
control API and the strategy loops read and write concurrently.
"""

import threading
from dataclasses import dataclass
from typing import Optional

from web3 import Web3

from .exceptions import ConfigurationError
from .utils import get_logger, is_valid_address

logger = get_logger(__name__)


@dataclass(frozen=True)
class RuntimeSnapshot:
    """Read-only copy of the runtime configuration."""

    live_mode: bool
    contract_address: Optional[str]
    bot_wallet_address: Optional[str]

    @property
    def dry_run(self) -> bool:
        return not self.live_mode

    def to_dict(self) -> dict:
        return {
            "live_mode": self.live_mode,
            "dry_run": self.dry_run,
            "contract_address": self.contract_address,
            "contract_configured": self.contract_address is not None,
            "bot_wallet_address": self.bot_wallet_address,
            "bot_wallet_configured": self.bot_wallet_address is not None,
        }


class RuntimeConfig:
    """
    Mutable live/dry-run switch and contract address.

    Args:
        live_mode: Start in live mode (default is dry run)
        contract_address: Deployed contract, if known
        bot_wallet_address: Address derived from the bot signing key
    """

    def __init__(
        self,
        live_mode: bool = False,
        contract_address: Optional[str] = None,
        bot_wallet_address: Optional[str] = None,
    ):
        self._lock = threading.Lock()
        self._live_mode = False
        self._contract_address: Optional[str] = None
        self._bot_wallet_address: Optional[str] = None

        if contract_address:
            self.set_contract_address(contract_address)
        if bot_wallet_address:
            self.set_bot_wallet_address(bot_wallet_address)
        if live_mode:
            self.set_live_mode(True)

    @property
    def live_mode(self) -> bool:
        with self._lock:
            return self._live_mode

    @property
    def dry_run(self) -> bool:
        return not self.live_mode

    @property
    def contract_address(self) -> Optional[str]:
        with self._lock:
            return self._contract_address

    @property
    def bot_wallet_address(self) -> Optional[str]:
        with self._lock:
            return self._bot_wallet_address

    def is_contract_configured(self) -> bool:
        return self.contract_address is not None

    def live_mode_blocker(self) -> Optional[str]:
        """Reason live mode cannot be enabled right now, or None."""
        with self._lock:
            return self._live_mode_blocker()

    def _live_mode_blocker(self) -> Optional[str]:
        if self._bot_wallet_address is None:
            return "Bot wallet not configured (BOT_PRIVATE_KEY missing)"
        if self._contract_address is None:
            return "Contract not configured. Deploy contract first."
        return None

    def set_live_mode(self, enabled: bool) -> None:
        """
        Switch between live trading and dry run.

        Raises:
            ConfigurationError: Live mode requested without a bot wallet
                or contract address
        """
        with self._lock:
            if enabled:
                blocker = self._live_mode_blocker()
                if blocker:
                    raise ConfigurationError(f"Cannot go live: {blocker}")
            self._live_mode = bool(enabled)
        logger.warning(
            f"Live mode: {'ENABLED' if enabled else 'DISABLED (dry run)'}"
        )

    def set_contract_address(self, address: str) -> None:
        """
        Set the contract address (0x followed by 40 hex characters).

        Raises:
            ConfigurationError: Address is malformed
        """
        if not is_valid_address(address):
            raise ConfigurationError(
                "Invalid contract address format", details={"address": address}
            )
        checksummed = Web3.to_checksum_address(address)
        with self._lock:
            self._contract_address = checksummed
        logger.info(f"Contract address set: {checksummed}")

    def set_bot_wallet_address(self, address: str) -> None:
        if not is_valid_address(address):
            raise ConfigurationError(
                "Invalid bot wallet address format", details={"address": address}
            )
        with self._lock:
            self._bot_wallet_address = Web3.to_checksum_address(address)

    def snapshot(self) -> RuntimeSnapshot:
        with self._lock:
            return RuntimeSnapshot(
                live_mode=self._live_mode,
                contract_address=self._contract_address,
                bot_wallet_address=self._bot_wallet_address,
            )
