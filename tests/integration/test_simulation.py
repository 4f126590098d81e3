"""End-to-end runs of the scripted lifecycle and the CLI."""
from __future__ import annotations

import sys
from pathlib import Path

import pytest

from flt.cli import main
from flt.models import Burned, Initialized, Minted, Rebalanced
from flt.services.deployment import Deployment
from flt.services.simulation import describe, run_scenario

WETH = 10**18
USDC = 10**6


class TestRunScenario:
    def test_full_lifecycle(self, deployment: Deployment) -> None:
        events = run_scenario(deployment, 10 * WETH, 100 * USDC)

        assert [type(e) for e in events] == [Initialized, Minted, Burned, Rebalanced]
        rebalance = events[-1]
        assert rebalance.leverage_ratio_after < rebalance.leverage_ratio_before

    def test_describe(self, deployment: Deployment) -> None:
        run_scenario(deployment, 10 * WETH, 100 * USDC)
        views = describe(deployment)
        assert set(views) == {
            "total_shares",
            "total_collateral",
            "total_debt",
            "collateral_per_share",
            "debt_per_share",
            "price",
            "leverage_ratio",
        }
        assert views["total_shares"] == pytest.approx(21.0)


class TestCli:
    def test_status(
        self,
        sample_yaml_path: Path,
        monkeypatch: pytest.MonkeyPatch,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        monkeypatch.setattr(sys, "argv", ["flt", "--config", str(sample_yaml_path), "status"])
        main()
        out = capsys.readouterr().out
        assert "leverage_ratio" in out
        assert "2.000000" in out

    def test_prices(
        self,
        sample_yaml_path: Path,
        monkeypatch: pytest.MonkeyPatch,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        monkeypatch.setattr(sys, "argv", ["flt", "--config", str(sample_yaml_path), "prices"])
        main()
        assert "1 WETH = 400.0000 USDC" in capsys.readouterr().out

    def test_no_command_exits(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(sys, "argv", ["flt"])
        with pytest.raises(SystemExit) as exc_info:
            main()
        assert exc_info.value.code == 1

    def test_engine_error_exits_with_code_2(
        self, sample_yaml_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(
            sys, "argv", ["flt", "--config", str(sample_yaml_path), "status", "--nav", "0"]
        )
        with pytest.raises(SystemExit) as exc_info:
            main()
        assert exc_info.value.code == 2
