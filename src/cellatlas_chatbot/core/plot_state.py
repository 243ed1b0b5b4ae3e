from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Union

from cellatlas_chatbot.config import DEFAULT_VALUE_UNIT
from cellatlas_chatbot.core.features import FeatureList


class PlotStateError(Exception):
    """Raised when a payload's axes and value matrices do not line up."""


class PlotType(str, Enum):
    HEATMAP = "heatmap"
    BUBBLE_HEATMAP = "bubbleHeatmap"
    BAR_CHART = "barChart"
    TABLE = "table"
    SHOW_ORGANISMS = "showOrganisms"
    FEATURE_SEQUENCES = "featureSequences"


class MatrixKind(str, Enum):
    AVERAGE = "average"
    FRACTION_DETECTED = "fraction_detected"


Matrix = List[List[float]]


def _as_matrix(values: Any, n_rows: int, n_cols: int, name: str) -> Matrix:
    if not isinstance(values, (list, tuple)) or len(values) != n_rows:
        got = len(values) if isinstance(values, (list, tuple)) else type(values).__name__
        raise PlotStateError(f"'{name}' must have {n_rows} rows, got {got}")
    out: Matrix = []
    for i, row in enumerate(values):
        if not isinstance(row, (list, tuple)) or len(row) != n_cols:
            got = len(row) if isinstance(row, (list, tuple)) else type(row).__name__
            raise PlotStateError(f"'{name}' row {i} must have {n_cols} columns, got {got}")
        try:
            out.append([float(v) for v in row])
        except (TypeError, ValueError) as exc:
            raise PlotStateError(f"'{name}' row {i} contains non-numeric values") from exc
    return out


def _as_vector(values: Any, n: int, name: str) -> List[float]:
    if not isinstance(values, (list, tuple)) or len(values) != n:
        got = len(values) if isinstance(values, (list, tuple)) else type(values).__name__
        raise PlotStateError(f"'{name}' must have {n} values, got {got}")
    try:
        return [float(v) for v in values]
    except (TypeError, ValueError) as exc:
        raise PlotStateError(f"'{name}' contains non-numeric values") from exc


# ---------------------------------------------------------------------------
# Payload variants
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class MatrixPayload:
    """
    Cell types (xaxis) x features (yaxis) measurement matrix.

    average[i][j] is the value of yaxis[i] in xaxis[j]. For the
    fraction_detected kind, fractions has exactly the same shape; for the
    average kind it is None.
    """
    kind: MatrixKind
    xaxis: List[str]
    yaxis: List[str]
    average: Matrix
    fractions: Optional[Matrix] = None
    value_unit: str = DEFAULT_VALUE_UNIT

    def __post_init__(self) -> None:
        kind = MatrixKind(self.kind)
        object.__setattr__(self, "kind", kind)
        object.__setattr__(self, "xaxis", [str(x) for x in self.xaxis])
        object.__setattr__(self, "yaxis", [str(y) for y in self.yaxis])
        n_rows, n_cols = len(self.yaxis), len(self.xaxis)
        object.__setattr__(self, "average", _as_matrix(self.average, n_rows, n_cols, "average"))

        if kind is MatrixKind.FRACTION_DETECTED:
            if self.fractions is None:
                raise PlotStateError("fraction_detected payload requires 'fractions'")
            object.__setattr__(self, "fractions", _as_matrix(self.fractions, n_rows, n_cols, "fractions"))
        elif self.fractions is not None:
            raise PlotStateError("average payload must not carry 'fractions'")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": "matrix",
            "xaxis": list(self.xaxis),
            "yaxis": list(self.yaxis),
            "average": [list(r) for r in self.average],
            "fractions": [list(r) for r in self.fractions] if self.fractions is not None else None,
            "valueUnit": self.value_unit,
        }


@dataclass(frozen=True)
class BarPayload:
    """Top-N (cell type, organ) pairs for one feature."""
    celltypes: List[str]
    organs: List[str]
    average: List[float]
    value_unit: str = DEFAULT_VALUE_UNIT
    celltypes_organ: List[str] = field(init=False)

    def __post_init__(self) -> None:
        celltypes = [str(c) for c in self.celltypes]
        organs = [str(o) for o in self.organs]
        if len(celltypes) != len(organs):
            raise PlotStateError(f"celltypes ({len(celltypes)}) and organs ({len(organs)}) differ in length")
        object.__setattr__(self, "celltypes", celltypes)
        object.__setattr__(self, "organs", organs)
        object.__setattr__(self, "average", _as_vector(self.average, len(celltypes), "average"))
        object.__setattr__(self, "celltypes_organ", [f"{c} ({o})" for c, o in zip(celltypes, organs)])

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": "bar",
            "celltypesOrgan": list(self.celltypes_organ),
            "celltypes": list(self.celltypes),
            "organs": list(self.organs),
            "average": list(self.average),
            "valueUnit": self.value_unit,
        }


@dataclass(frozen=True)
class TablePayload:
    """Cell type x organ detection table; detected[i][j] is celltypes[i] in organs[j]."""
    organs: List[str]
    celltypes: List[str]
    detected: List[List[bool]]

    def __post_init__(self) -> None:
        organs = [str(o) for o in self.organs]
        celltypes = [str(c) for c in self.celltypes]
        object.__setattr__(self, "organs", organs)
        object.__setattr__(self, "celltypes", celltypes)
        matrix = _as_matrix(self.detected, len(celltypes), len(organs), "detected")
        object.__setattr__(self, "detected", [[bool(v) for v in row] for row in matrix])

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": "table",
            "organs": list(self.organs),
            "celltypes": list(self.celltypes),
            "detected": [list(r) for r in self.detected],
        }


@dataclass(frozen=True)
class SequencesPayload:
    features: List[str]
    sequences: List[str]
    sequence_type: str = "protein"

    def __post_init__(self) -> None:
        if len(self.features) != len(self.sequences):
            raise PlotStateError(
                f"features ({len(self.features)}) and sequences ({len(self.sequences)}) differ in length"
            )
        object.__setattr__(self, "features", [str(f) for f in self.features])
        object.__setattr__(self, "sequences", [str(s) for s in self.sequences])

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.sequence_type,
            "features": list(self.features),
            "sequences": list(self.sequences),
        }


@dataclass(frozen=True)
class OrganismsPayload:
    def to_dict(self) -> Dict[str, Any]:
        return {}


Payload = Union[MatrixPayload, BarPayload, TablePayload, SequencesPayload, OrganismsPayload]


# ---------------------------------------------------------------------------
# Plot state
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PlotState:
    """
    Renderer-agnostic snapshot of what is currently displayed.

    Instances are never mutated; incremental edits (add/remove) build a new
    PlotState from the previous one.
    """
    intent: str
    plot_type: PlotType
    organism: str
    organ: Optional[str]
    features: FeatureList
    payload: Payload

    @property
    def matrix(self) -> Optional[MatrixPayload]:
        return self.payload if isinstance(self.payload, MatrixPayload) else None

    @property
    def xaxis(self) -> Optional[List[str]]:
        m = self.matrix
        return list(m.xaxis) if m is not None else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "intent": self.intent,
            "plotType": PlotType(self.plot_type).value,
            "organism": self.organism,
            "organ": self.organ,
            "features": self.features.to_param(),
            "data": self.payload.to_dict(),
        }

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "PlotState":
        """
        Read a renderer-contract dict back into a PlotState.

        Matrix data is tagged by the presence of a non-null 'fractions' field.
        """
        data: Mapping[str, Any] = raw.get("data") or {}

        raw_type = raw.get("plotType")
        if raw_type is None and data.get("xaxis") is not None:
            raw_type = PlotType.BUBBLE_HEATMAP if data.get("fractions") is not None else PlotType.HEATMAP
        try:
            plot_type = PlotType(raw_type)
        except ValueError as exc:
            raise PlotStateError(f"Unknown plotType: {raw_type!r}") from exc

        payload: Payload

        if plot_type in (PlotType.HEATMAP, PlotType.BUBBLE_HEATMAP):
            fractions = data.get("fractions")
            payload = MatrixPayload(
                kind=MatrixKind.FRACTION_DETECTED if fractions is not None else MatrixKind.AVERAGE,
                xaxis=list(data.get("xaxis") or []),
                yaxis=list(data.get("yaxis") or []),
                average=data.get("average") or [],
                fractions=fractions,
                value_unit=data.get("valueUnit") or DEFAULT_VALUE_UNIT,
            )
        elif plot_type is PlotType.BAR_CHART:
            payload = BarPayload(
                celltypes=list(data.get("celltypes") or raw.get("celltypes") or []),
                organs=list(data.get("organs") or raw.get("organs") or []),
                average=data.get("average") or [],
                value_unit=data.get("valueUnit") or DEFAULT_VALUE_UNIT,
            )
        elif plot_type is PlotType.TABLE:
            # older states carried the table at the top level
            src = data if data.get("detected") is not None else raw
            payload = TablePayload(
                organs=list(src.get("organs") or []),
                celltypes=list(src.get("celltypes") or []),
                detected=src.get("detected") or [],
            )
        elif plot_type is PlotType.FEATURE_SEQUENCES:
            payload = SequencesPayload(
                features=list(data.get("features") or []),
                sequences=list(data.get("sequences") or []),
                sequence_type=data.get("type") or "protein",
            )
        else:
            payload = OrganismsPayload()

        return cls(
            intent=str(raw.get("intent") or ""),
            plot_type=plot_type,
            organism=str(raw.get("organism") or ""),
            organ=raw.get("organ") or None,
            features=FeatureList.parse(raw.get("features")),
            payload=payload,
        )


def coerce_plot_state(value: Union[PlotState, Mapping[str, Any], None]) -> Optional[PlotState]:
    """Accept either a PlotState or its dict form (or None)."""
    if value is None or isinstance(value, PlotState):
        return value
    if not value:
        return None
    return PlotState.from_dict(value)


def matrix_plot_type(kind: MatrixKind) -> PlotType:
    return PlotType.BUBBLE_HEATMAP if MatrixKind(kind) is MatrixKind.FRACTION_DETECTED else PlotType.HEATMAP
