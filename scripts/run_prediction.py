#!/usr/bin/env python3
"""
Generate the ensemble prediction for the next undrawn period from a CSV of draws.

The CSV needs the columns period, date (or draw_date), r1..r6 (or red_balls)
and blue (or blue_ball). Invalid rows are skipped and counted.

Usage:
    python scripts/run_prediction.py data/ssq_history.csv --periods 100
    python scripts/run_prediction.py data/ssq_history.csv --no-ai --seed 7 --output prediction.json
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


def build_parser():
    import argparse

    parser = argparse.ArgumentParser(description="Generate SSQ predictions for the next period")
    parser.add_argument("csv_path", help="CSV file with the draw history")
    parser.add_argument("--periods", type=int, default=None,
                        help="Analysis window in draws (default: config analysis.default_periods)")
    parser.add_argument("--no-ai", action="store_true", help="Skip the external reasoning predictor")
    parser.add_argument("--seed", type=int, default=None, help="Seed for reproducible sampling")
    parser.add_argument("--weights", default=None,
                        help='ML feature weights as JSON, e.g. \'{"frequency": 0.4, "hot": 0.3}\'')
    parser.add_argument("--no-tracker", action="store_true",
                        help="Do not read or store weight profiles in the tracker database")
    parser.add_argument("--db", default=None, help="Tracker database path (default: config paths.database_file)")
    parser.add_argument("--config", default=None, help="Path to an alternative config.ini")
    parser.add_argument("--output", default=None, help="Write the JSON result to this file instead of stdout")
    return parser


def main() -> int:
    args = build_parser().parse_args()

    try:
        ensure_project_root_on_path()

        import numpy as np

        from ssq_engine.config import load_config
        from ssq_engine.exceptions import EngineError
        from ssq_engine.loader import InMemoryDrawHistory, load_draws_from_csv
        from ssq_engine.models import FeatureWeights
        from ssq_engine.prediction_engine import PredictionEngine
        from ssq_engine.reasoning_service import create_reasoning_service
        from ssq_engine.recommendations import (
            generate_ml_recommendations,
            generate_statistical_recommendations,
        )
        from ssq_engine.winning_tracker import WinningTracker
    except ImportError as e:
        raise SystemExit(f"Failed to import project modules. Run from the repo root. Error: {e}")

    try:
        config = load_config(args.config)
        loaded = load_draws_from_csv(args.csv_path)
        if loaded.skipped:
            logger.warning(f"{loaded.skipped} invalid rows skipped while reading {args.csv_path}")

        feature_weights = FeatureWeights.from_dict(json.loads(args.weights)) if args.weights else None
        tracker = None if args.no_tracker else WinningTracker(args.db)
        reasoning_service = None if args.no_ai else create_reasoning_service(config)

        engine = PredictionEngine(
            InMemoryDrawHistory(loaded.records),
            tracker=tracker,
            reasoning_service=reasoning_service,
            config=config,
            rng=np.random.default_rng(args.seed),
        )
        result = engine.predict(periods=args.periods, feature_weights=feature_weights,
                                include_ai=not args.no_ai)

        output = result.to_dict()
        output['recommendations'] = (
            generate_statistical_recommendations(result.analysis)
            + generate_ml_recommendations(result.analysis, result.ml.feature_importance)
        )
        if result.ai is not None:
            output['aiAnalysis'] = result.ai.analysis

        text = json.dumps(output, indent=2, ensure_ascii=False)
        if args.output:
            with open(args.output, "w", encoding="utf-8") as f:
                f.write(text)
            logger.info(f"Prediction for period {result.period} written to {args.output}")
        else:
            print(text)
        return 0

    except KeyboardInterrupt:
        logger.warning("Prediction interrupted by user")
        return 130
    except EngineError as e:
        logger.error(f"Prediction failed: {e.message} ({e.context})")
        return 1
    except (OSError, ValueError) as e:
        logger.exception(f"Prediction failed: {e}")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
