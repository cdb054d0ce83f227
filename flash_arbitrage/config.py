"""
Configuration loading and normalization for the flash-loan arbitrage controller.

A YAML file describes the network, tokens, scan groups and thresholds; it is
validated with Pydantic models and then normalized into frozen dataclasses.
Secrets and deployment-specific values come from the environment (populated
from ``.env`` by the CLI):

- ``BOT_PRIVATE_KEY``: bot wallet signing key
- ``FLASH_ARB_CONTRACT_ADDRESS``: deployed contract
- ``BASE_RPC_URL``: overrides ``rpc_url``
- ``DRY_RUN``: the literal ``false`` starts in live mode (needs both of the above)
"""

import os
from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, List, Literal, Mapping, Optional, Tuple, Union

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError
from web3 import Web3

from dex.executor import ExecutionSettings
from dex.scanner import ScannerSettings
from dex.types import PoolRef, ScanGroup, TokenInfo

from .exceptions import ConfigurationError, ValidationError
from .utils import is_valid_address, is_valid_private_key

# ============================================================================
# Schema
# ============================================================================


def _check_address(value: str) -> str:
    if not is_valid_address(value):
        raise ValueError(f"invalid address: {value}")
    return Web3.to_checksum_address(value)


class TokenModel(BaseModel):
    address: str
    decimals: int = Field(ge=0, le=36)

    @field_validator("address")
    @classmethod
    def checksum_address(cls, value: str) -> str:
        return _check_address(value)


class PoolModel(BaseModel):
    address: str
    kind: Literal["v2", "v3"]
    dex: str
    fee_bps: int = Field(default=30, ge=0, le=10000)

    @field_validator("address")
    @classmethod
    def checksum_address(cls, value: str) -> str:
        return _check_address(value)


class ScanGroupModel(BaseModel):
    base: str
    quote: str
    pools: List[PoolModel] = Field(min_length=1)

    @model_validator(mode="after")
    def distinct_tokens(self):
        if self.base == self.quote:
            raise ValueError(f"scan group base and quote are both {self.base}")
        return self


class ReferenceModel(BaseModel):
    group: str
    pool: str

    @field_validator("pool")
    @classmethod
    def checksum_address(cls, value: str) -> str:
        return _check_address(value)


class ScannerModel(BaseModel):
    min_profit_usd: Decimal = Field(default=Decimal("5"), ge=0)
    min_spread_bps: Decimal = Field(default=Decimal("5"), ge=0)
    max_flash_loan_usd: Decimal = Field(default=Decimal("10000"), gt=0)
    max_gas_price_gwei: Decimal = Field(default=Decimal("0.1"), gt=0)
    max_impact_pct: Decimal = Field(default=Decimal("1"), gt=0, le=100)
    flash_loan_premium_bps: Decimal = Field(default=Decimal("5"), ge=0)
    opportunity_epsilon_bps: Decimal = Field(default=Decimal("5"), gt=0)
    exceptional_spread_bps: Decimal = Field(default=Decimal("50"), gt=0)
    exceptional_size_multiplier: Decimal = Field(default=Decimal("2"), ge=1)
    currency_tokens: List[str] = Field(default_factory=lambda: ["USDC", "USDbC", "DAI"])


class ExecutionModel(BaseModel):
    gas_buffer_pct: int = Field(default=30, ge=0, le=500)
    slippage_buffer_bps: int = Field(default=50, ge=0, le=10000)
    min_gas_reserve_eth: Decimal = Field(default=Decimal("0.001"), ge=0)


class StrategyModel(BaseModel):
    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    allocated_usd: Decimal = Field(default=Decimal("0"), ge=0)
    interval_sec: float = Field(default=10.0, gt=0)
    max_consecutive_failures: int = Field(default=10, ge=1)
    simulated_capture: Decimal = Field(default=Decimal("0.7"), ge=0, le=1)


class FlashArbConfigModel(BaseModel):
    rpc_url: str
    chain_id: int = 8453
    rpc_timeout_sec: float = Field(default=10.0, gt=0)
    receipt_timeout_sec: float = Field(default=120.0, gt=0)
    tokens: Dict[str, TokenModel] = Field(min_length=1)
    scan_groups: List[ScanGroupModel] = Field(min_length=1)
    reference: ReferenceModel
    scanner: ScannerModel = Field(default_factory=ScannerModel)
    execution: ExecutionModel = Field(default_factory=ExecutionModel)
    strategies: List[StrategyModel] = Field(default_factory=list)

    @field_validator("rpc_url")
    @classmethod
    def rpc_scheme(cls, value: str) -> str:
        if not value.startswith(("http://", "https://")):
            raise ValueError(f"rpc_url must be http(s): {value}")
        return value

    @model_validator(mode="after")
    def cross_references(self):
        for group in self.scan_groups:
            for symbol in (group.base, group.quote):
                if symbol not in self.tokens:
                    raise ValueError(f"scan group token '{symbol}' not in tokens")

        labels = {f"{g.base}/{g.quote}": g for g in self.scan_groups}
        ref_group = labels.get(self.reference.group)
        if ref_group is None:
            raise ValueError(f"reference group '{self.reference.group}' not in scan_groups")
        if self.reference.pool not in {p.address for p in ref_group.pools}:
            raise ValueError(f"reference pool not in group {self.reference.group}")

        ids = [s.id for s in self.strategies]
        if len(ids) != len(set(ids)):
            raise ValueError("strategy ids must be unique")
        return self


# ============================================================================
# Normalized configuration
# ============================================================================


@dataclass(frozen=True)
class StrategyConfig:
    """Normalized per-strategy configuration."""

    id: str
    name: str
    allocated_usd: Decimal = Decimal("0")
    interval_sec: float = 10.0
    max_consecutive_failures: int = 10
    simulated_capture: Decimal = Decimal("0.7")


DEFAULT_STRATEGY = StrategyConfig(id="flash-loan-arb", name="Flash Loan Arbitrage")


@dataclass(frozen=True)
class FlashArbConfig:
    """Immutable application configuration."""

    rpc_url: str
    chain_id: int
    rpc_timeout_sec: float
    receipt_timeout_sec: float
    tokens: Dict[str, TokenInfo]
    scan_groups: Tuple[ScanGroup, ...]
    reference_group: ScanGroup
    reference_pool: PoolRef
    flash_loan_premium_bps: Decimal
    opportunity_epsilon_bps: Decimal
    scanner: ScannerSettings
    execution: ExecutionSettings
    strategies: Tuple[StrategyConfig, ...]
    live_mode: bool = False
    contract_address: Optional[str] = None
    private_key: Optional[str] = field(default=None, repr=False)

    def strategy(self, strategy_id: str) -> StrategyConfig:
        for strategy in self.strategies:
            if strategy.id == strategy_id:
                return strategy
        raise ConfigurationError(f"Strategy '{strategy_id}' not configured")


def load_yaml_config(config_path: Union[str, Path]) -> Dict[str, Any]:
    """Load and parse YAML configuration file."""
    config_path = Path(config_path)

    if not config_path.exists():
        raise ConfigurationError(f"Configuration file not found: {config_path}")

    try:
        with open(config_path, "r") as f:
            config_dict = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {config_path}: {e}") from e

    if config_dict is None:
        raise ConfigurationError(f"Empty configuration file: {config_path}")
    if not isinstance(config_dict, dict):
        raise ConfigurationError("Config file must contain a YAML dictionary")
    return config_dict


def _build_groups(model: FlashArbConfigModel, tokens: Dict[str, TokenInfo]) -> Tuple[ScanGroup, ...]:
    groups = []
    for g in model.scan_groups:
        base, quote = tokens[g.base], tokens[g.quote]
        groups.append(
            ScanGroup(
                base=base,
                quote=quote,
                pools=tuple(
                    PoolRef(address=p.address, kind=p.kind, dex=p.dex, fee_bps=p.fee_bps)
                    for p in g.pools
                ),
                decimal_adjustment=Decimal(10) ** (base.decimals - quote.decimals),
            )
        )
    return tuple(groups)


def build_config(
    config_dict: Dict[str, Any], env: Optional[Mapping[str, str]] = None
) -> FlashArbConfig:
    """
    Validate a raw configuration dict and merge environment overrides.

    Args:
        config_dict: Parsed YAML
        env: Environment mapping (defaults to ``os.environ``)

    Raises:
        ValidationError: Schema validation failed
        ConfigurationError: An environment value is malformed, or live mode
            is requested without a signing key and contract address
    """
    env = os.environ if env is None else env

    raw = dict(config_dict)
    if env.get("BASE_RPC_URL"):
        raw["rpc_url"] = env["BASE_RPC_URL"]

    try:
        model = FlashArbConfigModel.model_validate(raw)
    except PydanticValidationError as e:
        raise ValidationError(f"Configuration validation failed: {e}") from e

    private_key = env.get("BOT_PRIVATE_KEY") or None
    if private_key is not None and not is_valid_private_key(private_key):
        raise ConfigurationError("BOT_PRIVATE_KEY is malformed")

    contract_address = env.get("FLASH_ARB_CONTRACT_ADDRESS") or None
    if contract_address is not None:
        if not is_valid_address(contract_address):
            raise ConfigurationError(
                "FLASH_ARB_CONTRACT_ADDRESS is malformed",
                details={"address": contract_address},
            )
        contract_address = Web3.to_checksum_address(contract_address)

    live_mode = env.get("DRY_RUN") == "false"
    if live_mode:
        missing = [
            name
            for name, value in (
                ("BOT_PRIVATE_KEY", private_key),
                ("FLASH_ARB_CONTRACT_ADDRESS", contract_address),
            )
            if value is None
        ]
        if missing:
            raise ConfigurationError(
                f"DRY_RUN=false requires {' and '.join(missing)}",
                details={"missing": missing},
            )

    tokens = {
        symbol: TokenInfo(symbol=symbol, address=t.address, decimals=t.decimals)
        for symbol, t in model.tokens.items()
    }
    groups = _build_groups(model, tokens)
    reference_group = next(g for g in groups if g.label == model.reference.group)
    reference_pool = next(
        p for p in reference_group.pools if p.address == model.reference.pool
    )

    sc = model.scanner
    scanner = ScannerSettings(
        min_profit_usd=sc.min_profit_usd,
        min_spread_bps=sc.min_spread_bps,
        max_flash_loan_usd=sc.max_flash_loan_usd,
        max_gas_price_gwei=sc.max_gas_price_gwei,
        max_impact_pct=sc.max_impact_pct,
        exceptional_spread_bps=sc.exceptional_spread_bps,
        exceptional_size_multiplier=sc.exceptional_size_multiplier,
        currency_tokens=tuple(sc.currency_tokens),
    )
    execution = ExecutionSettings(
        max_gas_price_gwei=sc.max_gas_price_gwei,
        gas_buffer_pct=model.execution.gas_buffer_pct,
        slippage_buffer_bps=model.execution.slippage_buffer_bps,
        flash_loan_premium_bps=int(sc.flash_loan_premium_bps),
        min_gas_reserve_eth=model.execution.min_gas_reserve_eth,
        chain_id=model.chain_id,
    )

    strategies = tuple(
        StrategyConfig(
            id=s.id,
            name=s.name,
            allocated_usd=s.allocated_usd,
            interval_sec=s.interval_sec,
            max_consecutive_failures=s.max_consecutive_failures,
            simulated_capture=s.simulated_capture,
        )
        for s in model.strategies
    ) or (DEFAULT_STRATEGY,)

    return FlashArbConfig(
        rpc_url=model.rpc_url,
        chain_id=model.chain_id,
        rpc_timeout_sec=model.rpc_timeout_sec,
        receipt_timeout_sec=model.receipt_timeout_sec,
        tokens=tokens,
        scan_groups=groups,
        reference_group=reference_group,
        reference_pool=reference_pool,
        flash_loan_premium_bps=sc.flash_loan_premium_bps,
        opportunity_epsilon_bps=sc.opportunity_epsilon_bps,
        scanner=scanner,
        execution=execution,
        strategies=strategies,
        live_mode=live_mode,
        contract_address=contract_address,
        private_key=private_key,
    )


def load_config(
    config_path: Union[str, Path], env: Optional[Mapping[str, str]] = None
) -> FlashArbConfig:
    """
    Load, validate and normalize a configuration file.

    Args:
        config_path: Path to the YAML configuration file
        env: Environment mapping (defaults to ``os.environ``)

    Returns:
        Frozen FlashArbConfig

    Raises:
        ConfigurationError: File missing, unparsable or invalid
    """
    return build_config(load_yaml_config(config_path), env)
