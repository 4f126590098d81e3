"""Integration tests for initialize, mint and burn against simulated venues."""
from __future__ import annotations

import pytest

from flt.config import AppConfig, AssetConfig, PriceOracleConfig, TokenConfig
from flt.engine import ONE_SHARE
from flt.engine.ledger import SHARE_DECIMALS
from flt.errors import (
    AlreadyInitialized,
    AmountInTooLow,
    AmountOutTooHigh,
    AmountOutTooLow,
    EmptyPosition,
    InsolventPosition,
    InvalidFlashSwapAmount,
    InvalidFlashSwapType,
    LendingMarketError,
    SlippageTooHigh,
    Unauthorized,
    Uninitialized,
)
from flt.models import Burned, Initialized, MaxSharesUpdated, Minted, Operation, OperationKind
from flt.services.deployment import Deployment, deploy
from flt.services.simulation import mint_cost_via_debt, open_position
from flt.units import WAD, bps, to_wad
from flt.venues import FlashSwapPair, MarketCode

WETH = 10**18
USDC = 10**6


def _state(dep: Deployment) -> tuple:
    """Everything an aborted operation must leave untouched."""
    engine = dep.engine
    return (
        engine.position,
        dep.pair.snapshot(),
        dep.market.snapshot(),
        dep.share.snapshot(),
        dep.collateral.snapshot(),
        dep.debt.snapshot(),
        len(engine.events),
    )


def _assert_totals_consistent(dep: Deployment) -> None:
    engine = dep.engine
    pos = engine.position
    assert engine.shares_to_underlying(pos.total_shares) == (pos.total_collateral, pos.total_debt)
    assert dep.market.balance_of_underlying(engine.address) == pos.total_collateral
    assert dep.market.borrow_balance_current(engine.address) == pos.total_debt
    assert dep.share.total_supply == pos.total_shares


def _fund(dep: Deployment, account: str, symbol: str, amount: int) -> None:
    dep.faucet(account, symbol, amount)
    dep.transfer_in(account, symbol, amount)


class TestInitialize:
    def test_opens_at_target_with_requested_nav(self, deployment: Deployment) -> None:
        open_position(deployment, WETH, USDC)
        engine = deployment.engine

        assert engine.position.initialized
        assert engine.position.total_collateral == WETH
        assert engine.position.total_debt == 200 * USDC
        assert engine.position.total_shares == 200 * ONE_SHARE
        assert engine.price() == USDC
        assert engine.leverage_ratio() == 2 * WAD
        assert deployment.share.balance_of(engine.owner) == 200 * ONE_SHARE
        assert isinstance(engine.events[-1], Initialized)
        _assert_totals_consistent(deployment)

    def test_share_token_uses_ledger_decimals(self, deployment: Deployment) -> None:
        assert deployment.share.decimals == SHARE_DECIMALS
        assert deployment.engine.position.max_shares == 1_000_000 * ONE_SHARE

    def test_excess_prefund_is_refunded(self, deployment: Deployment) -> None:
        engine = deployment.engine
        repay = deployment.pair.quote_amount_in("USDC", "WETH", 10 * WETH)
        _fund(deployment, engine.owner, "USDC", repay - 2_000 * USDC + 7 * USDC)

        engine.initialize(engine.owner, 10 * WETH, 2_000 * USDC, 20 * ONE_SHARE, recipient="vault")

        assert deployment.debt.balance_of(engine.owner) == 7 * USDC
        assert deployment.debt.balance_of(engine.address) == 0
        assert deployment.share.balance_of("vault") == 20 * ONE_SHARE
        assert engine.events[-1].refund_amount == 7 * USDC

    def test_second_initialize_always_fails(self, opened: Deployment) -> None:
        engine = opened.engine
        before = _state(opened)
        with pytest.raises(AlreadyInitialized):
            engine.initialize("mallory", 0, 0, 0)
        with pytest.raises(AlreadyInitialized):
            engine.initialize(engine.owner, WETH, 200 * USDC, ONE_SHARE)
        assert _state(opened) == before

    def test_only_owner(self, deployment: Deployment) -> None:
        with pytest.raises(Unauthorized):
            deployment.engine.initialize("mallory", WETH, 200 * USDC, ONE_SHARE)
        assert not deployment.engine.position.initialized

    def test_zero_amounts_rejected(self, deployment: Deployment) -> None:
        engine = deployment.engine
        with pytest.raises(AmountInTooLow):
            engine.initialize(engine.owner, 0, 200 * USDC, ONE_SHARE)
        with pytest.raises(AmountInTooLow):
            engine.initialize(engine.owner, WETH, 200 * USDC, 0)

    def test_underfunded_rolls_back(self, deployment: Deployment) -> None:
        engine = deployment.engine
        before = _state(deployment)

        with pytest.raises(AmountInTooLow):
            engine.initialize(engine.owner, 10 * WETH, 2_000 * USDC, 20 * ONE_SHARE)

        assert _state(deployment) == before
        assert not engine.position.initialized
        # entering the markets was undone as well
        assert deployment.market.borrow(engine.address, 1) == MarketCode.MARKET_NOT_ENTERED

    def test_views_require_initialization(self, deployment: Deployment) -> None:
        engine = deployment.engine
        with pytest.raises(Uninitialized):
            engine.price()
        with pytest.raises(Uninitialized):
            engine.shares_to_underlying(ONE_SHARE)
        with pytest.raises(Uninitialized):
            engine.mint_via_debt(ONE_SHARE, "alice")
        with pytest.raises(Uninitialized):
            engine.burn_via_debt("alice")


class TestMint:
    def test_mint_via_debt(self, opened: Deployment) -> None:
        engine = opened.engine
        per_share = (engine.collateral_per_share(), engine.debt_per_share())
        price = engine.price()
        cost = mint_cost_via_debt(opened, ONE_SHARE)
        _fund(opened, "alice", "USDC", cost + 5 * USDC)

        engine.mint_via_debt(ONE_SHARE, "alice", refund_recipient="bob")

        event = engine.events[-1]
        assert isinstance(event, Minted)
        assert event.shares == ONE_SHARE
        assert event.refund_amount == 5 * USDC
        assert opened.share.balance_of("alice") == ONE_SHARE
        assert opened.debt.balance_of("bob") == 5 * USDC
        assert opened.debt.balance_of("treasury") == event.fee_amount > 0
        assert opened.debt.balance_of(engine.address) == 0
        assert engine.position.total_shares == 21 * ONE_SHARE
        assert engine.position.total_collateral == 105 * WETH // 10
        assert engine.position.total_debt == 2_100 * USDC
        assert (engine.collateral_per_share(), engine.debt_per_share()) == per_share
        assert engine.price() == pytest.approx(price, abs=1)
        _assert_totals_consistent(opened)

    def test_mint_via_collateral(self, opened: Deployment) -> None:
        engine = opened.engine
        collateral_amount, debt_amount = engine.ledger.mint_requirements(ONE_SHARE)
        flash_amount = opened.pair.quote_amount_out("USDC", "WETH", debt_amount)
        used = collateral_amount - flash_amount
        fee = bps(used, engine.position.fee_rate_bps)
        _fund(opened, "alice", "WETH", used + fee)

        engine.mint_via_collateral(ONE_SHARE, "alice")

        assert opened.share.balance_of("alice") == ONE_SHARE
        assert opened.collateral.balance_of("treasury") == fee
        assert opened.collateral.balance_of(engine.address) == 0
        assert engine.events[-1].token_in == "WETH"
        assert engine.position.total_shares == 21 * ONE_SHARE
        _assert_totals_consistent(opened)

    def test_insufficient_funding_rolls_back(self, opened: Deployment) -> None:
        engine = opened.engine
        cost = mint_cost_via_debt(opened, ONE_SHARE)
        _fund(opened, "alice", "USDC", cost - 1)
        before = _state(opened)

        with pytest.raises(AmountInTooLow):
            engine.mint_via_debt(ONE_SHARE, "alice")

        assert _state(opened) == before
        # pre-funded tokens stay with the engine after a failed call
        assert opened.debt.balance_of(engine.address) == cost - 1

    def test_zero_shares_rejected(self, opened: Deployment) -> None:
        with pytest.raises(AmountOutTooLow):
            opened.engine.mint_via_debt(0, "alice")

    def test_max_shares_bound(self, opened: Deployment) -> None:
        engine = opened.engine
        engine.set_max_shares(engine.owner, 21 * ONE_SHARE)
        assert engine.events[-1] == MaxSharesUpdated(
            previous=1_000_000 * ONE_SHARE, current=21 * ONE_SHARE
        )
        _fund(opened, "alice", "USDC", 2 * mint_cost_via_debt(opened, ONE_SHARE))

        with pytest.raises(AmountOutTooHigh):
            engine.mint_via_debt(ONE_SHARE + 1, "alice")
        engine.mint_via_debt(ONE_SHARE, "alice")

        assert engine.position.total_shares == engine.position.max_shares

    def test_set_max_shares_only_owner(self, opened: Deployment) -> None:
        with pytest.raises(Unauthorized):
            opened.engine.set_max_shares("mallory", 1)

    @pytest.mark.parametrize("max_shares", [-1, 0, 20 * ONE_SHARE - 1])
    def test_set_max_shares_below_supply_rejected(self, opened: Deployment, max_shares: int) -> None:
        engine = opened.engine
        before = _state(opened)

        with pytest.raises(AmountOutTooLow):
            engine.set_max_shares(engine.owner, max_shares)

        assert _state(opened) == before

    def test_set_max_shares_to_supply(self, opened: Deployment) -> None:
        engine = opened.engine
        engine.set_max_shares(engine.owner, 20 * ONE_SHARE)
        assert engine.position.max_shares == 20 * ONE_SHARE

    def test_mint_rounding_favors_holders(self, deployment: Deployment, open_at) -> None:
        # neither total divides evenly by three shares
        open_at(deployment, 10 * WETH + 1, 2_000 * USDC, 3 * ONE_SHARE)
        engine = deployment.engine
        before = engine.position
        _fund(deployment, "alice", "USDC", mint_cost_via_debt(deployment, ONE_SHARE))

        engine.mint_via_debt(ONE_SHARE, "alice")

        after = engine.position
        assert after.total_collateral == 10 * WETH + 1 + 3_333_333_333_333_333_334
        assert after.total_collateral * before.total_shares >= before.total_collateral * after.total_shares
        assert after.total_debt * before.total_shares <= before.total_debt * after.total_shares
        _assert_totals_consistent(deployment)

    def test_lending_market_failure_surfaces_code(self, opened: Deployment) -> None:
        engine = opened.engine
        opened.market.collateral_factor = to_wad(0.4)
        _fund(opened, "alice", "USDC", mint_cost_via_debt(opened, ONE_SHARE))
        before = _state(opened)

        with pytest.raises(LendingMarketError) as exc_info:
            engine.mint_via_debt(ONE_SHARE, "alice")

        assert exc_info.value.code == MarketCode.INSUFFICIENT_LIQUIDITY
        assert exc_info.value.action == "borrow"
        assert _state(opened) == before

    def test_reentrant_call_rejected(self, opened: Deployment, monkeypatch: pytest.MonkeyPatch) -> None:
        engine = opened.engine
        _fund(opened, "alice", "USDC", mint_cost_via_debt(opened, ONE_SHARE))
        monkeypatch.setitem(
            engine._handlers,
            OperationKind.MINT,
            lambda op: engine.mint_via_debt(ONE_SHARE, "mallory"),
        )
        before = _state(opened)

        with pytest.raises(Unauthorized):
            engine.mint_via_debt(ONE_SHARE, "alice")

        assert _state(opened) == before


class TestBurn:
    def test_burn_via_debt(self, opened: Deployment) -> None:
        engine = opened.engine
        per_share = (engine.collateral_per_share(), engine.debt_per_share())
        opened.share.transfer(engine.owner, engine.address, 2 * ONE_SHARE)
        expected_gross = opened.pair.quote_amount_out("WETH", "USDC", WETH) - 200 * USDC

        engine.burn_via_debt("alice")

        event = engine.events[-1]
        assert isinstance(event, Burned)
        assert event.shares == 2 * ONE_SHARE
        assert event.amount_out + event.fee_amount == expected_gross
        assert opened.debt.balance_of("alice") == event.amount_out
        assert opened.debt.balance_of("treasury") == event.fee_amount
        assert opened.share.balance_of(engine.address) == 0
        assert engine.position.total_shares == 18 * ONE_SHARE
        assert engine.position.total_collateral == 9 * WETH
        assert engine.position.total_debt == 1_800 * USDC
        assert (engine.collateral_per_share(), engine.debt_per_share()) == per_share
        _assert_totals_consistent(opened)

    def test_burn_via_collateral(self, opened: Deployment) -> None:
        engine = opened.engine
        opened.share.transfer(engine.owner, engine.address, 2 * ONE_SHARE)
        repay = opened.pair.quote_amount_in("WETH", "USDC", 200 * USDC)

        engine.burn_via_collateral("alice")

        event = engine.events[-1]
        assert event.token_out == "WETH"
        assert event.amount_out + event.fee_amount == WETH - repay
        assert opened.collateral.balance_of("alice") == event.amount_out
        assert opened.collateral.balance_of(engine.address) == 0
        _assert_totals_consistent(opened)

    def test_min_amount_out_enforced(self, opened: Deployment) -> None:
        engine = opened.engine
        opened.share.transfer(engine.owner, engine.address, 2 * ONE_SHARE)
        before = _state(opened)

        with pytest.raises(SlippageTooHigh):
            engine.burn_via_debt("alice", min_amount_out=1_000 * USDC)

        assert _state(opened) == before
        assert opened.share.balance_of(engine.address) == 2 * ONE_SHARE

    def test_nothing_escrowed(self, opened: Deployment) -> None:
        with pytest.raises(AmountInTooLow):
            opened.engine.burn_via_debt("alice")

    def test_full_exit(self, opened: Deployment) -> None:
        engine = opened.engine
        opened.share.transfer(engine.owner, engine.address, 20 * ONE_SHARE)

        engine.burn_via_debt("alice")

        pos = engine.position
        assert (pos.total_collateral, pos.total_debt, pos.total_shares) == (0, 0, 0)
        assert opened.market.balance_of_underlying(engine.address) == 0
        assert opened.market.borrow_balance_current(engine.address) == 0
        assert opened.share.total_supply == 0
        assert opened.debt.balance_of("alice") == engine.events[-1].amount_out > 0

    def test_views_after_full_exit_raise(self, opened: Deployment) -> None:
        engine = opened.engine
        opened.share.transfer(engine.owner, engine.address, 20 * ONE_SHARE)
        engine.burn_via_collateral("alice")

        with pytest.raises(EmptyPosition):
            engine.price()
        with pytest.raises(EmptyPosition):
            engine.leverage_ratio()
        with pytest.raises(EmptyPosition):
            engine.shares_to_underlying(ONE_SHARE)
        _fund(opened, "bob", "USDC", 1_000 * USDC)
        with pytest.raises(EmptyPosition):
            engine.mint_via_debt(ONE_SHARE, "bob")


class TestFlashSwapCallback:
    def test_unknown_gateway(self, opened: Deployment) -> None:
        engine = opened.engine
        rogue = FlashSwapPair(opened.collateral, opened.debt, address="rogue")
        with pytest.raises(Unauthorized):
            engine.on_swap_callback(rogue, engine.address, WETH, 0, b"{}")

    def test_foreign_initiator(self, opened: Deployment) -> None:
        data = Operation(kind=OperationKind.MINT, borrow_amount=WETH).encode()
        with pytest.raises(Unauthorized):
            opened.engine.on_swap_callback(opened.pair, "mallory", WETH, 0, data)

    def test_malformed_payload(self, opened: Deployment) -> None:
        engine = opened.engine
        with pytest.raises(InvalidFlashSwapType):
            engine.on_swap_callback(opened.pair, engine.address, WETH, 0, b"junk")

    def test_rebalance_payload_rejected(self, opened: Deployment) -> None:
        engine = opened.engine
        data = Operation(kind=OperationKind.LEVERAGE_DOWN).encode()
        with pytest.raises(InvalidFlashSwapType):
            engine.on_swap_callback(opened.pair, engine.address, 0, 0, data)

    def test_amount_mismatch(self, opened: Deployment) -> None:
        engine = opened.engine
        data = Operation(kind=OperationKind.MINT, borrow_amount=5).encode()
        with pytest.raises(InvalidFlashSwapAmount) as exc_info:
            engine.on_swap_callback(opened.pair, engine.address, 4, 0, data)
        assert (exc_info.value.expected, exc_info.value.received) == (5, 4)

    def test_no_operation_in_flight(self, opened: Deployment) -> None:
        engine = opened.engine
        data = Operation(kind=OperationKind.MINT, borrow_amount=5).encode()
        with pytest.raises(Unauthorized):
            engine.on_swap_callback(opened.pair, engine.address, 5, 0, data)

    def test_third_party_flash_swap_reverts(self, opened: Deployment) -> None:
        engine = opened.engine
        before = _state(opened)
        data = Operation(kind=OperationKind.MINT, borrow_amount=WETH).encode()

        with pytest.raises(Unauthorized):
            opened.pair.swap("mallory", WETH, 0, engine, data)

        assert _state(opened) == before
        assert opened.collateral.balance_of(engine.address) == 0


class TestSolvency:
    def test_insolvent_position_is_reported(self, opened: Deployment) -> None:
        # WETH falls to 150 USDC: 10 WETH no longer cover 2000 USDC of debt
        opened.oracle.set_price("USDC", WAD // 150)
        with pytest.raises(InsolventPosition):
            opened.engine.leverage_ratio()
        with pytest.raises(InsolventPosition):
            opened.engine.price()


class TestEighteenDecimalDebt:
    @pytest.fixture()
    def dep(self, sample_app_config: AppConfig, open_at) -> Deployment:
        config = AppConfig(
            token=TokenConfig(
                collateral=AssetConfig("WETH", 18), debt=AssetConfig("USDC", 18)
            ),
            leverage=sample_app_config.leverage,
            market=sample_app_config.market,
            pair=sample_app_config.pair,
            price_oracle=PriceOracleConfig(
                provider="static", eth_symbol="WETH", static={"WETH": 2.5, "USDC": 1.0}
            ),
        )
        dep = deploy(config)
        open_at(dep, 100 * 10**18, 150 * 10**18, 100 * ONE_SHARE)
        return dep

    def test_shares_to_underlying(self, dep: Deployment) -> None:
        assert dep.engine.shares_to_underlying(5 * ONE_SHARE) == (5 * 10**18, 75 * 10**17)

    def test_underfunded_mint_leaves_position_unchanged(self, dep: Deployment) -> None:
        before = dep.engine.position
        _fund(dep, "alice", "USDC", 10**18)

        with pytest.raises(AmountInTooLow):
            dep.engine.mint_via_debt(5 * ONE_SHARE, "alice")

        assert dep.engine.position == before
