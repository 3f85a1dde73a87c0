"""
CLI entry point for offline what-if runs of the leveraged loop vault.

Deposits into a vault wired to the in-memory venues, optionally accrues
interest, shocks the collateral price or drains the swap pool, then withdraws.
The report also carries the exit price-impact curve and, on request, the
projected leverage over an LTV x loop-count grid.

Usage:
    python run_simulation.py --deposit 10 --loops 5 --ltv-bps 7000 --withdraw 3
    python run_simulation.py --deposit 10 --shock-bps -1500 --withdraw 2 --json
    python run_simulation.py --deposit 10 --years 0.5 --grid
"""

import argparse
import json
import logging
import time

import numpy as np
from dataclasses import replace
from pathlib import Path

from dotenv import load_dotenv

load_dotenv(Path(__file__).parent / ".env")

from config.params import BPS, MAX_LOOP_COUNT, MAX_UINT256, QUOTE_UNIT, RESERVE, WAD, load_params
from models.conversion import ConversionEngine
from models.errors import StrategyError
from models.position_model import leverage_grid, project_loops
from models.strategy_params import StrategyParameterStore
from models.vault import LeveragedVault
from src.venues import build_sandbox

DEPOSITOR = "depositor"
IMPACT_SIZES = (1, 10, 100, 1_000, 10_000)


def _hf(health_factor: int) -> float | None:
    return None if health_factor == MAX_UINT256 else health_factor / WAD


def run_scenario(deposit: float, loops: int | None = None, ltv_bps: int | None = None,
                 slippage_bps: int | None = None, withdraw: float = 0.0,
                 shock_bps: int = 0, drain_swap: bool = False, years: float = 0.0,
                 grid: bool = False, env_file: str | Path | None = None) -> dict:
    """
    Run one deposit (and optional withdraw) against a fresh sandbox.

    Amounts are in whole base-asset tokens. Strategy overrides are applied on
    top of load_params(); a rejected withdraw is reported, not raised.
    `years` of debt interest accrue before any shock or withdraw.
    """
    params = load_params(env_file)
    config = params["strategy"]
    config = replace(
        config,
        loop_count=config.loop_count if loops is None else loops,
        target_ltv_bps=config.target_ltv_bps if ltv_bps is None else ltv_bps,
        slippage_tolerance_bps=(config.slippage_tolerance_bps if slippage_bps is None
                                else slippage_bps),
    )
    store = StrategyParameterStore(config)

    box = build_sandbox()
    ctx = box.context
    vault = LeveragedVault(ctx, store, conversion=ConversionEngine(params["conversion"]),
                           unwind_params=params["unwind"], fees=params["fees"])
    unit = ctx.base_asset.unit

    amount = int(deposit * unit)
    box.fund(DEPOSITOR, amount)
    shares = vault.deposit(amount, DEPOSITOR)
    loop = vault.last_loop
    projection = project_loops(deposit, config.target_ltv_bps, config.loop_count,
                               RESERVE.liquidation_threshold_bps)

    report = {
        "deposit": deposit,
        "shares": shares,
        "config": {
            "target_ltv_bps": config.target_ltv_bps,
            "loop_count": config.loop_count,
            "slippage_tolerance_bps": config.slippage_tolerance_bps,
            "min_health_factor": config.min_health_factor / WAD,
        },
        "loop": {
            "iterations": loop.iterations_completed,
            "stop_reason": loop.stop_reason,
            "supplied": loop.total_supplied / unit,
            "borrowed": loop.total_borrowed / ctx.borrow_asset.unit,
            "realized_leverage": loop.realized_leverage,
            "health_factor": _hf(loop.health_factor),
        },
        "projection": {
            "leverage": projection.leverage,
            "collateral": projection.collateral,
            "health_factor": projection.health_factor,
            "debt": projection.debt,
        },
    }

    if grid:
        ltvs = np.arange(5_000, config.max_ltv_bps, 500)
        loop_counts = np.arange(1, MAX_LOOP_COUNT + 1)
        report["leverage_grid"] = {
            "target_ltv_bps": ltvs.tolist(),
            "loop_counts": loop_counts.tolist(),
            "leverage": np.round(leverage_grid(ltvs / BPS, loop_counts), 4).tolist(),
        }

    sizes = [n * unit for n in IMPACT_SIZES]
    impact = box.swap.price_impact(ctx.base_asset, ctx.borrow_asset, sizes)
    report["exit_impact"] = {
        "sizes": list(IMPACT_SIZES),
        "impact_bps": np.round(impact * BPS, 2).tolist(),
    }

    if years > 0:
        accrued = box.lending.accrue_interest(years)
        report["interest"] = {
            "years": years,
            "accrued": accrued.get(ctx.borrow_asset, 0) / ctx.borrow_asset.unit,
        }

    if shock_bps:
        box.oracle.shock(ctx.base_asset, shock_bps)
    if drain_swap:
        box.drain_swap(ctx.borrow_asset)

    if withdraw > 0:
        before = box.tokens.balance_of(ctx.base_asset, DEPOSITOR)
        try:
            burned = vault.withdraw(int(withdraw * unit), DEPOSITOR, DEPOSITOR)
            unwind = vault.last_unwind
            report["withdraw"] = {
                "requested": withdraw,
                "paid": (box.tokens.balance_of(ctx.base_asset, DEPOSITOR) - before) / unit,
                "shares_burned": burned,
                "unwind_path": None if unwind is None else ("full" if unwind.full else "partial"),
                "unwind_rounds": 0 if unwind is None else unwind.iterations,
            }
        except StrategyError as exc:
            report["withdraw"] = {
                "requested": withdraw,
                "error": type(exc).__name__,
                "message": str(exc),
            }

    metrics = vault.get_position_metrics()
    report["position"] = {
        "collateral_usd": metrics.collateral / QUOTE_UNIT,
        "debt_usd": metrics.debt / QUOTE_UNIT,
        "health_factor": _hf(metrics.health_factor),
        "net_value": vault.total_assets() / unit,
        "remaining_shares": vault.balance_of(DEPOSITOR),
    }
    return report


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Leveraged loop vault what-if simulation",
    )
    parser.add_argument("--deposit", type=float, default=10.0,
                        help="Deposit in whole base-asset tokens")
    parser.add_argument("--loops", type=int, default=None,
                        help="Loop count override (1-10)")
    parser.add_argument("--ltv-bps", type=int, default=None,
                        help="Target LTV override in basis points")
    parser.add_argument("--slippage-bps", type=int, default=None,
                        help="Swap slippage tolerance override in basis points")
    parser.add_argument("--withdraw", type=float, default=0.0,
                        help="Withdraw this many base-asset tokens after the deposit")
    parser.add_argument("--shock-bps", type=int, default=0,
                        help="Collateral price move before withdrawing (e.g. -1500)")
    parser.add_argument("--years", type=float, default=0.0,
                        help="Accrue this many years of debt interest before withdrawing")
    parser.add_argument("--grid", action="store_true",
                        help="Include the projected LTV x loop-count leverage grid")
    parser.add_argument("--drain-swap", action="store_true",
                        help="Remove all borrowed-asset liquidity from the swap pool")
    parser.add_argument("--env-file", type=str, default=None,
                        help="Read LOOP_* overrides from this file instead of .env")
    parser.add_argument("--json", action="store_true",
                        help="Print the report as JSON")
    parser.add_argument("--verbose", action="store_true",
                        help="Log per-iteration detail")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING,
                        format="%(levelname)s %(name)s: %(message)s")

    start = time.time()
    report = run_scenario(
        deposit=args.deposit, loops=args.loops, ltv_bps=args.ltv_bps,
        slippage_bps=args.slippage_bps, withdraw=args.withdraw,
        shock_bps=args.shock_bps, drain_swap=args.drain_swap, years=args.years,
        grid=args.grid, env_file=args.env_file,
    )
    elapsed = time.time() - start

    if args.json:
        print(json.dumps(report, indent=2))
        return

    cfg = report["config"]
    print("=" * 70)
    print("  Leveraged Loop Vault Simulation")
    print("=" * 70)
    print(f"  Deposit: {report['deposit']} | Loops: {cfg['loop_count']}"
          f" | Target LTV: {cfg['target_ltv_bps'] / 100:.1f}%"
          f" | Min HF: {cfg['min_health_factor']:.2f}")
    print("=" * 70)
    print()

    loop = report["loop"]
    proj = report["projection"]
    print("LEVERAGE LOOP")
    print("-" * 40)
    print(f"  Iterations:           {loop['iterations']} ({loop['stop_reason']})")
    print(f"  Supplied:             {loop['supplied']:.4f}")
    print(f"  Borrowed:             {loop['borrowed']:.4f}")
    print(f"  Leverage:             {loop['realized_leverage']:.4f}x"
          f"  (projected {proj['leverage']:.4f}x)")
    print(f"  Health factor:        {loop['health_factor']:.4f}"
          f"  (projected {proj['health_factor']:.4f})")
    print()

    if "interest" in report:
        print("INTEREST")
        print("-" * 40)
        print(f"  Accrued over {report['interest']['years']:g} years: "
              f"{report['interest']['accrued']:.4f}")
        print()

    if "withdraw" in report:
        wd = report["withdraw"]
        print("WITHDRAW")
        print("-" * 40)
        if "error" in wd:
            print(f"  Requested:            {wd['requested']}")
            print(f"  Rejected:             {wd['error']}: {wd['message']}")
        else:
            print(f"  Paid:                 {wd['paid']:.4f} of {wd['requested']}")
            print(f"  Unwind:               {wd['unwind_path']} in {wd['unwind_rounds']} rounds")
        print()

    print("EXIT PRICE IMPACT")
    print("-" * 40)
    for size, bps in zip(report["exit_impact"]["sizes"], report["exit_impact"]["impact_bps"]):
        print(f"  {size:>10,}:           {bps:.2f} bps")
    print()

    if "leverage_grid" in report:
        lg = report["leverage_grid"]
        print("LEVERAGE GRID (rows: target LTV, columns: loops)")
        print("-" * 40)
        print("  LTV    " + "".join(f"{n:>7}" for n in lg["loop_counts"]))
        for ltv, row in zip(lg["target_ltv_bps"], lg["leverage"]):
            print(f"  {ltv / 100:>4.0f}%  " + "".join(f"{v:>7.2f}" for v in row))
        print()

    pos = report["position"]
    hf = pos["health_factor"]
    print("POSITION")
    print("-" * 40)
    print(f"  Collateral:           ${pos['collateral_usd']:,.2f}")
    print(f"  Debt:                 ${pos['debt_usd']:,.2f}")
    print(f"  Health factor:        {'n/a (no debt)' if hf is None else f'{hf:.4f}'}")
    print(f"  Net value:            {pos['net_value']:.4f}")
    print()

    print(f"Completed in {elapsed:.2f}s")


if __name__ == "__main__":
    main()
