from __future__ import annotations

import logging
from typing import Optional

from cellatlas_chatbot.core.plot_state import PlotState

logger = logging.getLogger(__name__)


class PlotStateStore:
    """
    The single conversational plot-state slot.

    Each resolution takes a turn number from begin_turn() and hands it back
    to publish(). A result from a turn that has since been superseded by a
    newer begin_turn() (or a reset) is discarded, so a slow earlier query
    can never overwrite the answer to a later one.
    """

    def __init__(self, initial: Optional[PlotState] = None) -> None:
        self._current = initial
        self._turn = 0
        self._published_turn = 0

    @property
    def current(self) -> Optional[PlotState]:
        return self._current

    @property
    def published_turn(self) -> int:
        return self._published_turn

    def begin_turn(self) -> int:
        self._turn += 1
        return self._turn

    def publish(self, turn: int, state: PlotState) -> bool:
        if turn < self._turn:
            logger.info("Discarding plot state from stale turn %s (latest is %s).", turn, self._turn)
            return False
        self._current = state
        self._published_turn = turn
        logger.debug("Published plot state for turn %s: %s", turn, state.plot_type)
        return True

    def reset(self) -> None:
        # Bumping the turn makes any in-flight resolution stale.
        self._turn += 1
        self._current = None
        logger.info("Plot state reset.")
