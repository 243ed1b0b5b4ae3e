import pytest

from cellatlas_chatbot.core.features import FeatureList
from cellatlas_chatbot.core.plot_state import (
    BarPayload,
    MatrixKind,
    MatrixPayload,
    OrganismsPayload,
    PlotState,
    PlotStateError,
    PlotType,
    TablePayload,
    coerce_plot_state,
)
from tests.fakes import make_matrix_state


class TestMatrixPayload:
    def test_average_shape_must_match_axes(self):
        with pytest.raises(PlotStateError):
            MatrixPayload(kind=MatrixKind.AVERAGE, xaxis=["a", "b"], yaxis=["G1"], average=[[1.0]])

    def test_fractions_must_match_average(self):
        with pytest.raises(PlotStateError):
            MatrixPayload(
                kind=MatrixKind.FRACTION_DETECTED,
                xaxis=["a", "b"],
                yaxis=["G1"],
                average=[[1.0, 2.0]],
                fractions=[[0.1]],
            )

    def test_kind_and_fractions_agree(self):
        with pytest.raises(PlotStateError):
            MatrixPayload(kind="fraction_detected", xaxis=["a"], yaxis=["G1"], average=[[1.0]])
        with pytest.raises(PlotStateError):
            MatrixPayload(kind="average", xaxis=["a"], yaxis=["G1"], average=[[1.0]], fractions=[[0.2]])

    def test_values_are_coerced_to_float(self):
        p = MatrixPayload(kind="average", xaxis=["a", "b"], yaxis=["G1"], average=[[1, "2.5"]])
        assert p.kind is MatrixKind.AVERAGE
        assert p.average == [[1.0, 2.5]]


def test_bar_payload_labels():
    p = BarPayload(celltypes=["T cell", "B cell"], organs=["lung", "spleen"], average=[3, 2])
    assert p.celltypes_organ == ["T cell (lung)", "B cell (spleen)"]
    with pytest.raises(PlotStateError):
        BarPayload(celltypes=["T cell"], organs=["lung", "gut"], average=[1])


def test_table_payload_booleans():
    p = TablePayload(organs=["lung", "liver"], celltypes=["T cell"], detected=[[1, 0]])
    assert p.detected == [[True, False]]


class TestRendererContract:
    def test_to_dict_shape(self):
        d = make_matrix_state("GeneA,GeneB").to_dict()

        assert d["plotType"] == "heatmap"
        assert d["features"] == "GeneA,GeneB"
        assert d["organism"] == "h_sapiens"
        assert d["organ"] == "lung"
        assert d["data"]["yaxis"] == ["GeneA", "GeneB"]
        assert d["data"]["fractions"] is None
        assert "valueUnit" in d["data"]

    @pytest.mark.parametrize("fractions, kind", [(True, MatrixKind.FRACTION_DETECTED), (False, MatrixKind.AVERAGE)])
    def test_from_dict_tags_matrix_by_fractions(self, fractions, kind):
        state = PlotState.from_dict(make_matrix_state("GeneA", fractions=fractions).to_dict())
        assert state.matrix.kind is kind

    def test_from_dict_infers_plot_type_for_matrix_data(self):
        raw = make_matrix_state("GeneA", fractions=True).to_dict()
        del raw["plotType"]
        assert PlotState.from_dict(raw).plot_type is PlotType.BUBBLE_HEATMAP

    def test_from_dict_reads_top_level_table(self):
        raw = {
            "plotType": "table",
            "organism": "h_sapiens",
            "organs": ["lung"],
            "celltypes": ["T cell", "B cell"],
            "detected": [[1], [0]],
        }
        state = PlotState.from_dict(raw)
        assert state.payload.celltypes == ["T cell", "B cell"]
        assert state.organ is None

    def test_unknown_plot_type(self):
        with pytest.raises(PlotStateError):
            PlotState.from_dict({"plotType": "pieChart"})


def test_coerce_plot_state():
    state = PlotState(
        intent="organisms",
        plot_type=PlotType.SHOW_ORGANISMS,
        organism="",
        organ=None,
        features=FeatureList(),
        payload=OrganismsPayload(),
    )
    assert coerce_plot_state(state) is state
    assert coerce_plot_state(None) is None
    assert coerce_plot_state({}) is None
    assert coerce_plot_state(state.to_dict()).plot_type is PlotType.SHOW_ORGANISMS
