from __future__ import annotations

from typing import Optional

from cellatlas_chatbot.config import ATLAS_LINK_URL
from cellatlas_chatbot.conversation.intents import split_intent
from cellatlas_chatbot.core.plot_state import PlotState, PlotType


def _features_text(plot_state: PlotState) -> str:
    features = plot_state.features.to_list()
    if not features:
        return "the requested features"
    if len(features) <= 5:
        return ", ".join(features)
    return f"{', '.join(features[:5])} and {len(features) - 5} more"


def _where(plot_state: PlotState) -> str:
    organism = plot_state.organism or "the selected organism"
    if plot_state.organ:
        return f"the {plot_state.organ} of {organism}"
    return organism


def build_answer(intent: str, plot_state: Optional[PlotState], *, success: Optional[bool] = None) -> str:
    """
    Human-readable reply for a turn.

    `success` is only meaningful for side-effecting intents (download).
    """
    general, _ = split_intent(intent)

    if general == "download":
        if success:
            return "Your download has started."
        return "Sorry, there is nothing I can download for the current view."

    if general == "greetings":
        return "Hi! Ask me about gene expression, cell types, or organs in the atlas."

    if general == "link":
        return f"You can browse the full atlas at {ATLAS_LINK_URL}"

    if general == "plot":
        if plot_state is None:
            return "There is no plot to show yet."
        return "Here is the updated plot."

    if plot_state is None:
        return "Sorry, I could not find data for that request."

    plot_type = PlotType(plot_state.plot_type)
    if plot_type is PlotType.SHOW_ORGANISMS:
        return "Here are the organisms available in the atlas."
    if plot_type is PlotType.TABLE:
        return f"Here is which cell types are found in which organs of {_where(plot_state)}."
    if plot_type is PlotType.BAR_CHART:
        return f"These are the cell types with the highest expression of {_features_text(plot_state)} in {_where(plot_state)}."
    if plot_type is PlotType.FEATURE_SEQUENCES:
        return f"Here are the sequences of {_features_text(plot_state)} in {_where(plot_state)}."

    if general == "markers":
        return f"These are the top markers in {_where(plot_state)}: {_features_text(plot_state)}."
    if general == "similar_features":
        return f"These features are similar to {plot_state.features[0]} in {_where(plot_state)}."
    if general in ("add", "remove"):
        return f"Updated the plot, now showing {_features_text(plot_state)} in {_where(plot_state)}."
    if plot_type is PlotType.BUBBLE_HEATMAP:
        return f"Here is the fraction of cells expressing {_features_text(plot_state)} in {_where(plot_state)}."
    return f"Here is the average expression of {_features_text(plot_state)} in {_where(plot_state)}."


def build_no_change_answer(intent: str) -> str:
    general, _ = split_intent(intent)
    if general == "add":
        return "Those features are already shown."
    if general == "remove":
        return "None of those features are in the current plot."
    return "The current plot already shows that."


def build_failure_answer(intent: str) -> str:
    general, _ = split_intent(intent)
    if general in ("add", "remove"):
        return "Sorry, I could not update the current plot."
    return "Sorry, I could not get data for that request. The previous plot is still shown."
