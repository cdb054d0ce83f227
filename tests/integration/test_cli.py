"""
Integration tests for the run_flash_arb command line entry point.
"""

import json
from unittest.mock import Mock

import pytest
import yaml
from prometheus_client import CollectorRegistry

import run_flash_arb
from conftest import BOT_KEY, CONTRACT, POOL_A, POOL_B, USDC, WETH, FakeChain, v2_reserves
from flash_arbitrage.app import build_application


@pytest.fixture
def config_file(config_dict, tmp_path):
    path = tmp_path / "flash.yaml"
    path.write_text(yaml.safe_dump(config_dict))
    return path


@pytest.fixture
def offline(monkeypatch):
    """Wire the CLI to the in-memory chain and leave global logging alone."""
    chain = FakeChain()
    chain.add_v2_pool(POOL_A, WETH, USDC, *v2_reserves(3000, 1000))
    chain.add_v2_pool(POOL_B, WETH, USDC, *v2_reserves(3030, 1000))

    for name in ("BOT_PRIVATE_KEY", "FLASH_ARB_CONTRACT_ADDRESS", "BASE_RPC_URL", "DRY_RUN"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(run_flash_arb, "load_dotenv", Mock())
    monkeypatch.setattr(run_flash_arb.logging_config, "setup", Mock())
    monkeypatch.setattr(
        run_flash_arb,
        "build_application",
        lambda config: build_application(config, chain=chain, registry=CollectorRegistry()),
    )
    return chain


def _state_from_output(output: str) -> dict:
    # First JSON document printed is the strategy state
    decoder = json.JSONDecoder()
    state, _ = decoder.raw_decode(output.strip())
    return state


class TestArguments:
    def test_config_required(self):
        with pytest.raises(SystemExit):
            run_flash_arb.parse_args([])

    def test_live_and_dry_run_are_exclusive(self):
        with pytest.raises(SystemExit):
            run_flash_arb.parse_args(["--config", "x.yaml", "--live", "--dry-run"])

    def test_defaults(self):
        args = run_flash_arb.parse_args(["--config", "x.yaml"])
        assert args.port == 8000
        assert args.once is False
        assert args.serve is False
        assert args.strategy is None


class TestMain:
    @pytest.mark.asyncio
    async def test_once_dry_run(self, config_file, offline, capsys):
        code = await run_flash_arb.main(["--config", str(config_file), "--once"])

        assert code == 0
        state = _state_from_output(capsys.readouterr().out)
        assert state["id"] == "flash-loan-arb"
        assert state["dry_run"] is True
        assert state["pnl"] > 0
        assert offline.sent == []

    @pytest.mark.asyncio
    async def test_live_flag_switches_mode(self, config_file, offline, capsys, monkeypatch):
        monkeypatch.setenv("BOT_PRIVATE_KEY", BOT_KEY)
        monkeypatch.setenv("FLASH_ARB_CONTRACT_ADDRESS", CONTRACT)

        code = await run_flash_arb.main(["--config", str(config_file), "--once", "--live"])

        assert code == 0
        state = _state_from_output(capsys.readouterr().out)
        assert state["dry_run"] is False
        # Bot wallet lacks the executor role: rejected at pre-flight
        assert state["consecutive_failures"] == 1
        assert offline.sent == []

    @pytest.mark.asyncio
    async def test_live_flag_without_wallet_or_contract(self, config_file, offline):
        code = await run_flash_arb.main(["--config", str(config_file), "--once", "--live"])

        assert code == 1
        assert offline.sent == []

    @pytest.mark.asyncio
    async def test_live_environment_without_contract(self, config_file, offline, monkeypatch):
        monkeypatch.setenv("DRY_RUN", "false")
        monkeypatch.setenv("BOT_PRIVATE_KEY", BOT_KEY)

        code = await run_flash_arb.main(["--config", str(config_file), "--once"])

        assert code == 1

    @pytest.mark.asyncio
    async def test_missing_config_file(self, tmp_path, offline):
        code = await run_flash_arb.main(["--config", str(tmp_path / "missing.yaml")])
        assert code == 1

    @pytest.mark.asyncio
    async def test_unknown_strategy(self, config_file, offline):
        code = await run_flash_arb.main(["--config", str(config_file), "--strategy", "nope"])
        assert code == 1
