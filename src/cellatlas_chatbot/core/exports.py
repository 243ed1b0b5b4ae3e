from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Optional

import pandas as pd

from cellatlas_chatbot.config import EXPORTS_DIR
from cellatlas_chatbot.core.plot_state import (
    BarPayload,
    MatrixPayload,
    PlotState,
    SequencesPayload,
    TablePayload,
)

logger = logging.getLogger(__name__)


class ExportError(Exception):
    """Raised when the current plot state cannot be exported."""


def _slug(*parts: Optional[str]) -> str:
    text = "_".join(p for p in parts if p)
    return re.sub(r"[^A-Za-z0-9_.-]+", "_", text).strip("_") or "export"


def _target(directory: Optional[Path], filename: str) -> Path:
    out_dir = Path(directory) if directory is not None else EXPORTS_DIR
    out_dir.mkdir(parents=True, exist_ok=True)
    return out_dir / filename


def export_fasta(plot_state: PlotState, directory: Optional[Path] = None) -> Path:
    """Write feature sequences as FASTA, one record per feature."""
    payload = plot_state.payload
    if not isinstance(payload, SequencesPayload):
        raise ExportError(f"No sequences to export for plotType={plot_state.plot_type}")

    path = _target(directory, f"{_slug(plot_state.organism, 'sequences')}.fasta")
    lines = []
    for feature, seq in zip(payload.features, payload.sequences):
        lines.append(f">{feature}")
        lines.append(seq)
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    logger.info("Exported %s sequences to %s", len(payload.features), path)
    return path


def export_table(plot_state: PlotState, directory: Optional[Path] = None) -> Path:
    """Write the cell type x organ detection table as CSV."""
    payload = plot_state.payload
    if not isinstance(payload, TablePayload):
        raise ExportError(f"No table to export for plotType={plot_state.plot_type}")

    df = pd.DataFrame(payload.detected, index=payload.celltypes, columns=payload.organs)
    df.index.name = "celltype"
    path = _target(directory, f"{_slug(plot_state.organism, 'celltypexorgan')}.csv")
    df.to_csv(path)
    logger.info("Exported %s x %s table to %s", df.shape[0], df.shape[1], path)
    return path


def matrix_frame(payload: MatrixPayload) -> pd.DataFrame:
    """
    Features x cell types frame. With fractions present the columns get a
    second level: ('average' | 'fraction_detected', celltype).
    """
    avg = pd.DataFrame(payload.average, index=payload.yaxis, columns=payload.xaxis)
    if payload.fractions is None:
        df = avg
    else:
        frac = pd.DataFrame(payload.fractions, index=payload.yaxis, columns=payload.xaxis)
        df = pd.concat({"average": avg, "fraction_detected": frac}, axis=1)
    df.index.name = "feature"
    return df


def bar_frame(payload: BarPayload) -> pd.DataFrame:
    return pd.DataFrame(
        {
            "celltype": payload.celltypes,
            "organ": payload.organs,
            "average": payload.average,
        }
    )


def export_csv(plot_state: PlotState, directory: Optional[Path] = None) -> Path:
    """Write the values behind a heatmap, bubble heatmap or bar chart as CSV."""
    payload = plot_state.payload
    if isinstance(payload, MatrixPayload):
        df = matrix_frame(payload)
        name = _slug(plot_state.organism, plot_state.organ, payload.kind.value)
        index = True
    elif isinstance(payload, BarPayload):
        df = bar_frame(payload)
        name = _slug(plot_state.organism, plot_state.features.to_param(), "highest_measurement")
        index = False
    else:
        raise ExportError(f"No values to export for plotType={plot_state.plot_type}")

    path = _target(directory, f"{name}.csv")
    df.to_csv(path, index=index)
    logger.info("Exported %s rows to %s", len(df), path)
    return path
