from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Optional

from cellatlas_chatbot.conversation.answers import build_answer, build_failure_answer, build_no_change_answer
from cellatlas_chatbot.conversation.intents import NO_API_INTENTS, split_intent
from cellatlas_chatbot.conversation.no_api import handle_no_api_intent
from cellatlas_chatbot.core.plot_state import PlotState
from cellatlas_chatbot.core.resolver import PlotStateResolver, Updated
from cellatlas_chatbot.core.store import PlotStateStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChatTurn:
    message: str
    plot_state: Optional[PlotState]
    updated: bool = False
    reset: bool = False
    redisplay: bool = False
    download_path: Optional[Path] = None


async def handle_turn(
    intent: str,
    params: Optional[Mapping[str, Any]],
    store: PlotStateStore,
    resolver: PlotStateResolver,
) -> ChatTurn:
    """
    Handle one classified user message.

    No-API intents go to handle_no_api_intent; everything else is resolved
    and, on success, published to the store.
    """
    main_intent, sub_intent = split_intent(intent)

    if main_intent in NO_API_INTENTS:
        reply = handle_no_api_intent(main_intent, sub_intent, intent, store.current, params)
        if reply.reset_everything:
            store.reset()
        return ChatTurn(
            message=reply.message,
            plot_state=store.current,
            reset=reply.reset_everything,
            redisplay=reply.has_data,
            download_path=reply.download_path,
        )

    outcome = await resolver.resolve_and_publish(intent, params, store)
    if isinstance(outcome, Updated):
        return ChatTurn(
            message=build_answer(intent, outcome.plot_state),
            plot_state=store.current,
            updated=True,
        )

    logger.info("Turn %r left the plot unchanged: %s", intent, outcome.reason)
    message = build_failure_answer(intent) if outcome.failed else build_no_change_answer(intent)
    return ChatTurn(message=message, plot_state=store.current)
