from __future__ import annotations

import asyncio
import traceback
from typing import Any, Dict, List

import pandas as pd
import streamlit as st

from cellatlas_chatbot.config import APP_NAME, APP_VERSION, configure_logging
from cellatlas_chatbot.conversation.orchestrator import handle_turn
from cellatlas_chatbot.core.api_client import AtlasApiError, get_client
from cellatlas_chatbot.core.exports import bar_frame, matrix_frame
from cellatlas_chatbot.core.plot_state import (
    BarPayload,
    MatrixPayload,
    PlotState,
    SequencesPayload,
    TablePayload,
)
from cellatlas_chatbot.core.resolver import PlotStateResolver
from cellatlas_chatbot.core.store import PlotStateStore

DEFAULT_ORGANISM = "h_sapiens"
DEFAULT_ORGAN = "lung"

EXAMPLE_INTENTS = [
    "average.geneExpression",
    "fraction_detected.geneExpression",
    "markers.geneExpression",
    "highest_measurement.geneExpression",
    "similar_features.geneExpression",
    "add.features",
    "remove.features",
    "celltypexorgan.geneExpression",
    "organisms.geneExpression",
    "sequences.geneExpression",
    "download",
    "plot.log",
    "greetings.hello",
    "greetings.bye",
    "link.atlasapprox",
]


def _session() -> Dict[str, Any]:
    if "store" not in st.session_state:
        st.session_state["store"] = PlotStateStore()
    if "resolver" not in st.session_state:
        st.session_state["resolver"] = PlotStateResolver(get_client())
    if "history" not in st.session_state:
        st.session_state["history"] = []
    return st.session_state


def _render_history(history: List[Dict[str, str]]) -> None:
    for entry in history:
        with st.chat_message(entry["role"]):
            st.write(entry["text"])


def _render_plot_state(plot_state: PlotState) -> None:
    st.write(
        f"plotType={plot_state.plot_type.value}  organism={plot_state.organism or '-'}  "
        f"organ={plot_state.organ or '-'}  features={plot_state.features.to_param() or '-'}"
    )
    payload = plot_state.payload
    if isinstance(payload, MatrixPayload):
        st.dataframe(matrix_frame(payload), use_container_width=True)
        st.caption(f"Values in {payload.value_unit}")
    elif isinstance(payload, BarPayload):
        df = bar_frame(payload)
        df.insert(0, "label", payload.celltypes_organ)
        st.dataframe(df, use_container_width=True)
    elif isinstance(payload, TablePayload):
        df = pd.DataFrame(payload.detected, index=payload.celltypes, columns=payload.organs)
        st.dataframe(df, use_container_width=True)
    elif isinstance(payload, SequencesPayload):
        st.dataframe(
            pd.DataFrame({"feature": payload.features, "sequence": payload.sequences}),
            use_container_width=True,
        )
    else:
        st.info("Organism listing view.")

    with st.expander("Plot state (renderer contract)", expanded=False):
        st.json(plot_state.to_dict())


def _render_chat_area() -> None:
    state = _session()
    st.subheader("Chat")
    _render_history(state["history"])

    with st.form("turn_form", clear_on_submit=False):
        col1, col2 = st.columns(2)
        with col1:
            intent = st.selectbox("Classified intent", options=EXAMPLE_INTENTS, index=0)
            custom_intent = st.text_input("...or any other intent (overrides the list):", value="")
            features = st.text_input("Features (comma-separated):", value="INS,GCG")
        with col2:
            organism = st.text_input("Organism:", value=DEFAULT_ORGANISM)
            organ = st.text_input("Organ:", value=DEFAULT_ORGAN)
            celltype = st.text_input("Cell type (markers):", value="")
            number = st.number_input("Top N", min_value=1, max_value=50, value=10)
        submitted = st.form_submit_button("Send")

    if not submitted:
        return

    chosen = custom_intent.strip() or intent
    params = {
        "organism": organism,
        "organ": organ,
        "celltype": celltype,
        "features": features,
        "number": int(number),
    }
    state["history"].append({"role": "user", "text": f"{chosen} {params}"})

    try:
        with st.spinner("Resolving..."):
            turn = asyncio.run(handle_turn(chosen, params, state["store"], state["resolver"]))
    except Exception:
        st.error("Unexpected error while handling the message.")
        st.text_area("Traceback", value=traceback.format_exc(), height=220)
        return

    if turn.reset:
        state["history"] = []
        st.rerun()

    state["history"].append({"role": "assistant", "text": turn.message})
    with st.chat_message("assistant"):
        st.write(turn.message)
    if turn.download_path is not None:
        st.download_button(
            "Save file",
            data=turn.download_path.read_bytes(),
            file_name=turn.download_path.name,
        )


def _render_current_plot() -> None:
    store: PlotStateStore = _session()["store"]
    st.subheader("Current plot state")
    if store.current is None:
        st.write("Nothing plotted yet.")
        return
    _render_plot_state(store.current)


def _render_backend_status() -> None:
    with st.expander("Backend status (developer view)", expanded=False):
        if st.button("List cell types for the default organ"):
            try:
                with st.spinner("Querying AtlasApprox..."):
                    resp = get_client().celltypes(DEFAULT_ORGANISM, DEFAULT_ORGAN)
                st.success("AtlasApprox query succeeded.")
                st.write(f"{len(resp['celltypes'])} cell types in {DEFAULT_ORGAN} ({DEFAULT_ORGANISM})")
            except AtlasApiError as exc:
                st.error(f"AtlasApprox query failed: {exc}")


def run_app() -> None:
    configure_logging()
    st.set_page_config(page_title=APP_NAME, page_icon="🧬", layout="wide")
    st.title(APP_NAME)
    st.caption(f"Prototype version {APP_VERSION}")

    _render_chat_area()
    _render_current_plot()
    _render_backend_status()
