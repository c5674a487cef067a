#!/usr/bin/env python3
"""
Compute optimal (1+lambda) parameter tables.

Discrete strengths (default) are stored as compressed tables and reused on
the next run; continuous rates (--continuous) are recomputed every time.

Usage:
    python scripts/compute_tables.py --n 500 --lambda 1
    python scripts/compute_tables.py --n 100 --lambda 8 --continuous shift --picture out/sbm.png
"""
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

import numpy as np

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from computation import ContinuousRateEngine, DiscreteStrengthEngine, SummaryListener, CompositeListener
from config.settings_loader import get_output_config, get_setting, load_settings
from core.exceptions import OplError, is_fatal
from core.structured_log import jlog
from distribution import get_distribution
from persistence import StoringListener, TableStore
from picture import build_relative_optimality_picture


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="Compute optimal mutation parameters of the (1+lambda) EA")
    ap.add_argument("--n", type=int, required=True, help="Bit string length")
    ap.add_argument("--lambda", dest="lam", type=int, default=1, help="Offspring per generation")
    ap.add_argument("--precision", choices=["auto", "standard", "arbitrary"], default="auto")
    ap.add_argument("--continuous", choices=["standard", "shift"], default=None,
                    help="Optimize a continuous mutation rate with this bit mutation model")
    ap.add_argument("--out-dir", type=str, default=get_output_config()["directory"])
    ap.add_argument("--recompute", action="store_true", help="Ignore stored tables")
    ap.add_argument("--no-save", action="store_true", help="Do not store computed tables")
    ap.add_argument("--picture", type=str, default=None, help="Write a relative optimality PNG here")
    ap.add_argument("--log-level", type=str, default=get_setting("logging.level", "INFO"))
    return ap


def _report_failure(error: OplError) -> int:
    level = "CRITICAL" if is_fatal(error) else "ERROR"
    jlog("computation_failed", level=level, **error.to_dict())
    print(f"Error: {error}", file=sys.stderr)
    return 1


def main(argv: Optional[List[str]] = None) -> int:
    try:
        load_settings()
    except OplError as e:
        return _report_failure(e)
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        if args.continuous:
            result = ContinuousRateEngine(args.n, args.lam, get_distribution(args.continuous)).build()
            ordinate = list(np.linspace(0.0, 1.0, 101))
        else:
            store = TableStore(args.out_dir)
            if store.exists(args.n, args.lam) and not args.recompute:
                result = store.load(args.n, args.lam)
                jlog("tables_loaded", n=args.n, lam=args.lam, path=str(store.path_for(args.n, args.lam)))
            else:
                summary = SummaryListener()
                listeners = [summary] if args.no_save else [summary, StoringListener(store)]
                result = DiscreteStrengthEngine(
                    args.n, args.lam, precision=args.precision, listener=CompositeListener(*listeners)
                ).build()
                if not args.no_save:
                    jlog("tables_saved", n=args.n, lam=args.lam, path=str(store.path_for(args.n, args.lam)))
            ordinate = list(range(1, args.n + 1))
    except OplError as e:
        return _report_failure(e)

    info = result.summary()
    jlog("tables_computed", **info)
    print(f"n={args.n} lambda={args.lam}: expected optimal time {result.expected_running_time:.6f}")
    if "expected_drift_optimal_time" in info:
        print(f"n={args.n} lambda={args.lam}: expected drift-optimal time {info['expected_drift_optimal_time']:.6f}")

    if args.picture:
        build_relative_optimality_picture(result, ordinate, 1, args.n, Path(args.picture))
        jlog("picture_written", path=args.picture, n=args.n, lam=args.lam)
    return 0


if __name__ == "__main__":
    sys.exit(main())
