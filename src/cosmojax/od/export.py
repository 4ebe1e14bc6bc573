"""Tabular export of filter output.

Estimates and residuals are flattened with their ``header()`` and
``to_record()`` methods into Polars DataFrames, one row per entry.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from pathlib import Path

import polars as pl

from cosmojax.od.estimate import Estimate
from cosmojax.od.residual import Residual

logger = logging.getLogger(__name__)


def _to_dataframe(entries: Sequence[Estimate] | Sequence[Residual]) -> pl.DataFrame:
    if len(entries) == 0:
        return pl.DataFrame()

    columns = entries[0].header()
    rows: dict[str, list] = {col: [] for col in columns}
    for entry in entries:
        if entry.header() != columns:
            raise ValueError(f"entry @ {entry.epoch} has columns {entry.header()}, expected {columns}")
        for col, value in zip(columns, entry.to_record()):
            rows[col].append(value)

    epoch_col = columns[0]
    epoch_dtype = pl.Utf8 if isinstance(rows[epoch_col][0], str) else pl.Float64
    return pl.DataFrame(
        {
            epoch_col: pl.Series(rows[epoch_col], dtype=epoch_dtype),
            **{col: pl.Series(rows[col], dtype=pl.Float64) for col in columns[1:]},
        }
    )


def estimates_to_dataframe(estimates: Sequence[Estimate]) -> pl.DataFrame:
    """Convert estimates into a DataFrame.

    Args:
        estimates: Estimates sharing the same size and display formats.

    Returns:
        DataFrame with the epoch column, one ``state_i`` column per
        deviation element and one column per covariance diagonal element.

    Raises:
        ValueError: If the estimates do not share the same columns.
    """
    return _to_dataframe(estimates)


def residuals_to_dataframe(residuals: Sequence[Residual]) -> pl.DataFrame:
    """Convert residuals into a DataFrame with ``prefit_i`` and ``postfit_i`` columns."""
    return _to_dataframe(residuals)


def write_csv(frame: pl.DataFrame, path: str | Path) -> Path:
    """Write *frame* as CSV, creating parent directories as needed."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    frame.write_csv(path)
    logger.info("Wrote %d rows to %s", len(frame), path)
    return path
