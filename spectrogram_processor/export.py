"""
Diagnostic CSV export of spectrogram columns.

Layout: header ``Time(s),CompensatedTime(s),FreqBand0..FreqBand{N-1}``,
then one row per column. Times use 4 decimals, band values 6 decimals.
"""

import csv
import logging
from pathlib import Path
from typing import Callable, Optional, Sequence, Union

import numpy as np

from .stream import StreamingSpectrogram

logger = logging.getLogger(__name__)

TimeFunction = Callable[[int], float]


def csv_header(band_count: int) -> list:
    return ["Time(s)", "CompensatedTime(s)"] + [f"FreqBand{i}" for i in range(band_count)]


def export_csv(
    path: Union[str, Path],
    columns: Sequence,
    time_per_column: float,
    compensated_time: Optional[TimeFunction] = None,
) -> Path:
    """
    Write columns to a CSV file.

    Args:
        path: Destination file (parent directories are created)
        columns: Sequence of equal-length band columns, oldest first
        time_per_column: Seconds between consecutive columns
        compensated_time: Maps a column index to its compensated time;
            defaults to the uncompensated time

    Returns:
        Path of the written file
    """
    file_path = Path(path)
    file_path.parent.mkdir(parents=True, exist_ok=True)

    values = np.asarray(columns, dtype=np.float64)
    band_count = values.shape[1] if values.ndim == 2 else 0
    with open(file_path, "w", newline="") as f:
        writer = csv.writer(f, lineterminator="\n")
        writer.writerow(csv_header(band_count))
        for index, column in enumerate(values):
            time_s = index * time_per_column
            compensated = compensated_time(index) if compensated_time is not None else time_s
            writer.writerow(
                [f"{time_s:.4f}", f"{compensated:.4f}"] + [f"{float(v):.6f}" for v in column]
            )

    logger.info(
        f"Exported {len(values)} columns to {file_path}",
        extra={"column_count": len(values)},
    )
    return file_path


def export_session_csv(session: StreamingSpectrogram, path: Union[str, Path]) -> Path:
    """Export a streaming session's retained columns with compensated times."""
    return export_csv(
        path,
        session.columns(),
        session.config.time_per_column,
        compensated_time=session.compensated_time,
    )
