from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional, Union

from cellatlas_chatbot.conversation.answers import build_answer
from cellatlas_chatbot.core.exports import export_csv, export_fasta, export_table
from cellatlas_chatbot.core.plot_state import PlotState, PlotStateError, PlotType, coerce_plot_state

logger = logging.getLogger(__name__)

ExportFn = Callable[[PlotState], Path]

# plot type -> export routine
EXPORTERS: Dict[PlotType, ExportFn] = {
    PlotType.FEATURE_SEQUENCES: export_fasta,
    PlotType.TABLE: export_table,
    PlotType.HEATMAP: export_csv,
    PlotType.BUBBLE_HEATMAP: export_csv,
    PlotType.BAR_CHART: export_csv,
}

FAREWELL_SUB_INTENTS = frozenset({"bye"})


@dataclass(frozen=True)
class NoApiReply:
    """
    Reply for an intent that needs no remote call.

    Two terminal effects only: reply, or reply + full reset (reset_everything).
    has_data asks the caller to redisplay the existing plot data.
    """
    message: str
    reset_everything: bool = False
    has_data: bool = False
    params: Optional[Mapping[str, Any]] = None
    data: Optional[Dict[str, Any]] = None
    download_path: Optional[Path] = None


def _download(intent: str, plot_state: Optional[PlotState]) -> NoApiReply:
    path: Optional[Path] = None
    exporter = EXPORTERS.get(PlotType(plot_state.plot_type)) if plot_state is not None else None

    if exporter is not None:
        try:
            path = exporter(plot_state)
        except Exception:
            logger.exception("Export failed for plotType=%s", plot_state.plot_type)
            path = None
    else:
        logger.info("No export routine for the current view.")

    download_available = path is not None
    return NoApiReply(
        message=build_answer(intent, plot_state, success=download_available),
        download_path=path,
    )


def handle_no_api_intent(
    main_intent: str,
    sub_intent: str,
    intent: str,
    plot_state: Union[PlotState, Mapping[str, Any], None],
    params: Optional[Mapping[str, Any]] = None,
) -> NoApiReply:
    """Handle download / plot / greetings / link. Never raises."""
    try:
        plot_state = coerce_plot_state(plot_state)
    except PlotStateError as exc:
        logger.warning("Ignoring malformed plot state: %s", exc)
        plot_state = None

    if main_intent == "download":
        return _download(intent, plot_state)

    if main_intent == "plot":
        return NoApiReply(
            message=build_answer(intent, plot_state),
            has_data=plot_state is not None,
            params=params,
            data=plot_state.payload.to_dict() if plot_state is not None else None,
        )

    if main_intent == "greetings":
        if sub_intent in FAREWELL_SUB_INTENTS:
            return NoApiReply(message="", reset_everything=True)
        return NoApiReply(message=build_answer(intent, plot_state))

    if main_intent == "link":
        return NoApiReply(message=build_answer(intent, plot_state))

    logger.warning("Unhandled no-API intent %r", intent)
    return NoApiReply(message="Unhandled intent")
