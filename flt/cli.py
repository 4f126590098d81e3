"""Command-line interface for the leveraged position engine."""
from __future__ import annotations

import argparse
import asyncio
import sys

from .config import AppConfig, load_config
from .errors import LeverageError
from .logging_setup import configure_logging
from .oracles import OracleAdapter
from .services.deployment import build_oracle, deploy, load_prices
from .services.simulation import describe, open_position, run_scenario
from .units import to_units


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse CLI parser."""
    parser = argparse.ArgumentParser(
        prog="flt",
        description="Leveraged position engine over a flash-swap pair and a lending market",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to config.yaml (default: config.yaml in project root)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )

    sub = parser.add_subparsers(dest="command")

    sub.add_parser("prices", help="Show oracle prices from the configured provider")

    for name, help_text in (
        ("status", "Open a simulated position and print its ledger views"),
        ("simulate", "Open, mint, burn and rebalance a simulated position"),
    ):
        cmd = sub.add_parser(name, help=help_text)
        cmd.add_argument(
            "--collateral",
            type=float,
            default=1.0,
            help="Initial collateral in whole tokens (default: 1.0)",
        )
        cmd.add_argument(
            "--nav",
            type=float,
            default=100.0,
            help="Initial share price in debt tokens (default: 100.0)",
        )

    return parser


def _print_prices(config: AppConfig, oracle: OracleAdapter) -> None:
    collateral = config.token.collateral.symbol
    debt = config.token.debt.symbol
    unit = 10**config.token.debt.decimals
    print(f"1 {collateral} = {oracle.price_of(collateral, debt) / unit:,.4f} {debt}")
    for symbol in sorted({collateral, debt, config.price_oracle.eth_symbol}):
        print(f"{symbol}: {oracle.price(symbol) / 10**18:.8f} ETH")


def _print_views(views: dict[str, float]) -> None:
    for name, value in views.items():
        print(f"{name:>22}: {value:,.6f}")


async def _run(args: argparse.Namespace) -> None:
    """Execute the selected command."""
    configure_logging(args.log_level)
    config = load_config(args.config)
    oracle = build_oracle(config)
    await load_prices(oracle, config)

    if args.command == "prices":
        _print_prices(config, oracle)
        return

    deployment = deploy(config, oracle)
    collateral_amount = to_units(args.collateral, deployment.collateral.decimals)
    nav = to_units(args.nav, deployment.debt.decimals)

    if args.command == "status":
        open_position(deployment, collateral_amount, nav)
    elif args.command == "simulate":
        for event in run_scenario(deployment, collateral_amount, nav):
            print(event)
    else:
        build_parser().print_help()
        sys.exit(1)

    _print_views(describe(deployment))


def main() -> None:
    """Entry point."""
    parser = build_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    try:
        asyncio.run(_run(args))
    except LeverageError as e:
        print(f"Operation failed: {e}", file=sys.stderr)
        sys.exit(2)
