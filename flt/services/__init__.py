"""Service modules"""
from .deployment import Deployment, build_oracle, build_position, deploy, load_prices
from .simulation import describe, mint_cost_via_debt, open_position, run_scenario

__all__ = [
    "Deployment",
    "build_oracle",
    "build_position",
    "deploy",
    "describe",
    "load_prices",
    "mint_cost_via_debt",
    "open_position",
    "run_scenario",
]
