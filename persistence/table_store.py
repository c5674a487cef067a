"""
Compressed table storage for discrete-strength results.

One gzip stream per (n, lambda): a single header line followed by a CSV of
the per-strength tables. Floats are written with the shortest round-trip
representation and read back with ``float_precision="round_trip"``, so a
reloaded result answers every query bit-for-bit like the fresh one.

Usage:
    store = TableStore("tables")
    path = store.save(result)
    again = store.load(500, 1)
"""
from __future__ import annotations

import gzip
import logging
import re
import zlib
from pathlib import Path
from typing import Optional, Tuple, Union

import numpy as np
import pandas as pd

from config.settings_loader import get_output_config
from core.exceptions import TableFormatError, TableMismatchError
from computation.results import DiscreteStrengthResult

logger = logging.getLogger(__name__)

FORMAT_VERSION = 1
HEADER_PATTERN = re.compile(
    r"^# opl-tables v(?P<version>\d+) n=(?P<n>\d+) lambda=(?P<lam>\d+) precision=(?P<precision>\w+)$"
)
COLUMNS = ["distance", "strength", "optimal_time", "drift", "drift_optimal_time"]


def result_to_frame(result: DiscreteStrengthResult) -> pd.DataFrame:
    """Long-format frame with one row per (distance, strength) cell."""
    size = result.problem_size + 1
    distance, strength = np.meshgrid(np.arange(size), np.arange(size), indexing="ij")
    return pd.DataFrame({
        "distance": distance.ravel(),
        "strength": strength.ravel(),
        "optimal_time": result.optimal_by_strength.ravel(),
        "drift": result.drift_by_strength.ravel(),
        "drift_optimal_time": result.drift_maximizing_by_strength.ravel(),
    })


def frame_to_result(frame: pd.DataFrame, n: int, lam: int, precision: str) -> DiscreteStrengthResult:
    missing = [c for c in COLUMNS if c not in frame.columns]
    if missing:
        raise TableFormatError("table stream lacks columns", {"missing": missing})
    size = n + 1
    if len(frame) != size * size:
        raise TableFormatError("table stream has wrong row count", {"expected": size * size, "actual": len(frame)})
    frame = frame.sort_values(["distance", "strength"], kind="stable")
    expected_index = np.repeat(np.arange(size), size)
    if not np.array_equal(frame["distance"].to_numpy(), expected_index):
        raise TableFormatError("table stream has missing or duplicate cells", {"n": n})

    def table(column: str) -> np.ndarray:
        return frame[column].to_numpy(dtype=np.float64).reshape(size, size)

    return DiscreteStrengthResult.from_strength_tables(
        n, lam,
        optimal_by_strength=table("optimal_time"),
        drift_by_strength=table("drift"),
        drift_maximizing_by_strength=table("drift_optimal_time"),
        precision=precision,
    )


def _parse_header(line: str) -> Tuple[int, int, str]:
    match = HEADER_PATTERN.match(line.strip())
    if match is None:
        raise TableFormatError("missing or malformed table header", {"header": line.strip()[:80]})
    if int(match["version"]) != FORMAT_VERSION:
        raise TableFormatError("unsupported table format version", {"version": match["version"]})
    return int(match["n"]), int(match["lam"]), match["precision"]


def save_path(result: DiscreteStrengthResult, path: Union[str, Path]) -> Path:
    """Write ``result`` to ``path`` as a gzip-compressed stream."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    frame = result_to_frame(result)
    with gzip.open(path, "wt", encoding="utf-8", newline="") as stream:
        stream.write(
            f"# opl-tables v{FORMAT_VERSION} n={result.problem_size} "
            f"lambda={result.population_size} precision={result.precision}\n"
        )
        frame.to_csv(stream, index=False)
    logger.info(f"Saved tables for n={result.problem_size}, lambda={result.population_size} to {path}")
    return path


def load_path(path: Union[str, Path]) -> DiscreteStrengthResult:
    """Read a stream written by :func:`save_path`."""
    path = Path(path)
    try:
        with gzip.open(path, "rt", encoding="utf-8") as stream:
            n, lam, precision = _parse_header(stream.readline())
            frame = pd.read_csv(stream, float_precision="round_trip")
    except (OSError, EOFError, zlib.error, UnicodeDecodeError, pd.errors.ParserError, pd.errors.EmptyDataError) as e:
        raise TableFormatError("cannot read table stream", {"path": str(path)}, cause=e) from e
    return frame_to_result(frame, n, lam, precision)


class TableStore:
    """Directory of table streams keyed by (n, lambda)."""

    def __init__(self, directory: Union[str, Path, None] = None, pattern: Optional[str] = None):
        config = get_output_config()
        self.directory = Path(directory if directory is not None else config["directory"])
        self.pattern = pattern if pattern is not None else config["file_pattern"]

    def path_for(self, n: int, lam: int) -> Path:
        return self.directory / self.pattern.format(n=n, lam=lam)

    def exists(self, n: int, lam: int) -> bool:
        return self.path_for(n, lam).exists()

    def save(self, result: DiscreteStrengthResult) -> Path:
        return save_path(result, self.path_for(result.problem_size, result.population_size))

    def load(self, n: int, lam: int) -> DiscreteStrengthResult:
        path = self.path_for(n, lam)
        result = load_path(path)
        if (result.problem_size, result.population_size) != (n, lam):
            raise TableMismatchError(
                "stored tables belong to another instance",
                {
                    "path": str(path),
                    "requested": (n, lam),
                    "stored": (result.problem_size, result.population_size),
                },
            )
        return result
