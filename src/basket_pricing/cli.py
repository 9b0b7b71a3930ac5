"""
Command-line entry point.

Usage:
    python -m basket_pricing data/basket.dat                 # price on one process
    python -m basket_pricing data/basket.dat --workers 4     # master + 3 workers
    python -m basket_pricing data/basket.dat --delta --hedge # deltas and hedging P&L
    python -m basket_pricing data/basket.dat --precision 0.01
"""

import argparse
import logging
import sys
from typing import Optional

from basket_pricing.config.settings import SETTINGS
from basket_pricing.distributed.cluster import launch_cluster
from basket_pricing.distributed.coordinator import PricingReport, run_rank
from basket_pricing.errors import PricingError

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="basket-pricing",
        description="Distributed Monte Carlo pricing of basket options",
    )
    parser.add_argument("params", help="Parameter file ('key <type>: value' lines)")
    parser.add_argument(
        "--workers",
        type=int,
        default=SETTINGS.cluster.world_size,
        help=f"Processes, master included (default: {SETTINGS.cluster.world_size})",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=SETTINGS.monte_carlo.seed,
        help=f"Root seed (default: {SETTINGS.monte_carlo.seed})",
    )
    parser.add_argument("--samples", type=int, default=None, help="Trials (default: 'sample number')")
    parser.add_argument("--delta", action="store_true", help="Also compute deltas at t = 0")
    parser.add_argument("--hedge", action="store_true", help="Simulate delta hedging on a market path")
    parser.add_argument(
        "--precision",
        type=float,
        default=None,
        help="Add rounds until the 95%% half-width is below this value",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: WARNING)",
    )
    return parser


def format_report(report: PricingReport) -> str:
    """Render a pricing report as plain text."""
    estimate = report.estimate
    low, high = estimate.confidence_interval
    lines = [
        "=" * 60,
        "BASKET OPTION PRICE",
        "=" * 60,
        f"  Processes:      {report.world_size}",
        f"  Trials:         {estimate.trial_count:,}",
        f"  Price:          {estimate.price:.6f}",
        f"  95% half-width: {estimate.confidence_half_width:.6f}",
        f"  95% interval:   [{low:.6f}, {high:.6f}]",
    ]
    if report.delta is not None:
        lines.append("")
        lines.append("  Deltas:")
        for asset, (delta, half_width) in enumerate(
            zip(report.delta.delta, report.delta.confidence_half_width)
        ):
            lines.append(f"    asset {asset:<4} {delta: .6f} ± {half_width:.6f}")
    if report.hedge is not None:
        hedge = report.hedge
        lines.append("")
        lines.append(f"  Hedging dates:  {len(hedge.times) - 1}")
        lines.append(f"  Final payoff:   {hedge.payoff:.6f}")
        lines.append(f"  Hedge P&L:      {hedge.pnl:+.6f} ({hedge.relative_pnl:+.2%} of price)")
    return "\n".join(lines)


def main(argv: Optional[list[str]] = None) -> int:
    """Parse arguments, run the cluster and print the master's report."""
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s rank 0 %(levelname)s %(name)s: %(message)s",
    )

    try:
        report = launch_cluster(
            args.workers,
            run_rank,
            args.params,
            args.seed,
            args.samples,
            args.delta,
            args.hedge,
            args.precision,
        )
    except PricingError as exc:
        logger.error(f"Pricing failed: {exc}")
        print(f"error: {exc}", file=sys.stderr)
        return 1

    print(format_report(report))
    return 0
