#!/usr/bin/env python3
"""
Walk-forward backtest of the statistical and ML predictors over a CSV of draws.

Every target draw is predicted from earlier draws only; the evaluations are
stored in the tracker database under the given scope and the report shows
win rates per method and the best-performing feature weights.

Usage:
    python scripts/run_backtest.py data/ssq_history.csv --window 100 --max-targets 50
"""
import json
import os
import sys

from loguru import logger


def ensure_project_root_on_path() -> None:
    """Ensure repository root is on sys.path when running from subdirs."""
    repo_root = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
    if repo_root not in sys.path:
        sys.path.insert(0, repo_root)


def main() -> int:
    import argparse

    parser = argparse.ArgumentParser(description="Backtest SSQ predictors against history")
    parser.add_argument("csv_path", help="CSV file with the draw history")
    parser.add_argument("--window", type=int, default=None,
                        help="Draws analysed before each target (default: all earlier draws)")
    parser.add_argument("--warmup", type=int, default=None,
                        help="Index of the first target draw (default: analysis.min_periods)")
    parser.add_argument("--max-targets", type=int, default=None, help="Only replay the most recent N targets")
    parser.add_argument("--scope", default="backtest", help="Tracker scope for the stored evaluations")
    parser.add_argument("--seed", type=int, default=None, help="Seed for reproducible sampling")
    parser.add_argument("--db", default=None, help="Tracker database path (default: config paths.database_file)")
    parser.add_argument("--config", default=None, help="Path to an alternative config.ini")
    args = parser.parse_args()

    try:
        ensure_project_root_on_path()

        import numpy as np

        from ssq_engine.backtester import Backtester
        from ssq_engine.config import load_config
        from ssq_engine.exceptions import EngineError
        from ssq_engine.loader import load_draws_from_csv
        from ssq_engine.winning_tracker import WinningTracker
    except ImportError as e:
        raise SystemExit(f"Failed to import project modules. Run from the repo root. Error: {e}")

    try:
        config = load_config(args.config)
        loaded = load_draws_from_csv(args.csv_path)
        logger.info(f"Backtesting over {len(loaded.records)} draws ({loaded.skipped} skipped)")

        backtester = Backtester(
            loaded.records,
            tracker=WinningTracker(args.db),
            config=config,
            rng=np.random.default_rng(args.seed),
            scope=args.scope,
        )
        report = backtester.run(window=args.window, warmup=args.warmup, max_targets=args.max_targets)

        print(json.dumps(report.to_dict(), indent=2))
        return 0

    except KeyboardInterrupt:
        logger.warning("Backtest interrupted by user")
        return 130
    except EngineError as e:
        logger.error(f"Backtest failed: {e.message} ({e.context})")
        return 1
    except (OSError, ValueError) as e:
        logger.exception(f"Backtest failed: {e}")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
