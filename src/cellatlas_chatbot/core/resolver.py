from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Union

from cellatlas_chatbot.config import (
    DEFAULT_VALUE_UNIT,
    HIGHEST_MEASUREMENT_TOP_N,
    MARKERS_TOP_N,
    SIMILAR_FEATURES_METHOD,
    SIMILAR_FEATURES_TOP_N,
)
from cellatlas_chatbot.conversation.intents import RequestParams, split_intent
from cellatlas_chatbot.core.api_client import (
    AtlasApiError,
    AtlasApproxClient,
    as_float_list,
    as_str_list,
    get_client,
)
from cellatlas_chatbot.core.features import FeatureList
from cellatlas_chatbot.core.plot_state import (
    BarPayload,
    MatrixKind,
    MatrixPayload,
    OrganismsPayload,
    PlotState,
    PlotStateError,
    PlotType,
    SequencesPayload,
    TablePayload,
    coerce_plot_state,
    matrix_plot_type,
)
from cellatlas_chatbot.core.store import PlotStateStore

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Outcomes
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Updated:
    plot_state: PlotState


@dataclass(frozen=True)
class Unchanged:
    reason: str
    # False when the request was understood but asks for what is already shown
    failed: bool = True


ResolveOutcome = Union[Updated, Unchanged]


class ResolveAborted(Exception):
    """A branch has nothing to publish (missing input, no prior plot, ...)."""


class NothingToChange(ResolveAborted):
    """The requested edit would leave the plot exactly as it is."""


@dataclass(frozen=True)
class _Turn:
    intent: str
    organism: str
    organ: Optional[str]
    params: RequestParams


# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------

class PlotStateResolver:
    """
    Turn a classified intent + parameters into a new plot state.

    The resolver holds no conversational state: the prior plot state is
    passed in on every call. Remote calls within one intent run
    concurrently and are joined before anything is returned; if any of
    them fails the whole intent resolves to Unchanged.
    """

    def __init__(
        self,
        client: Optional[AtlasApproxClient] = None,
        *,
        top_n: int = HIGHEST_MEASUREMENT_TOP_N,
        markers_number: int = MARKERS_TOP_N,
        similar_number: int = SIMILAR_FEATURES_TOP_N,
        similar_method: str = SIMILAR_FEATURES_METHOD,
    ) -> None:
        self.client = client if client is not None else get_client()
        self.top_n = int(top_n)
        self.markers_number = int(markers_number)
        self.similar_number = int(similar_number)
        self.similar_method = similar_method

        self._branches: Dict[str, Callable[[_Turn, Optional[PlotState]], Awaitable[PlotState]]] = {
            "average": self._average_intent,
            "fraction_detected": self._fraction_intent,
            "markers": self._markers_intent,
            "highest_measurement": self._highest_measurement_intent,
            "similar_features": self._similar_features_intent,
            "add": self._add_features,
            "remove": self._remove_features,
            "celltypexorgan": self._celltypexorgan_intent,
            "organisms": self._organisms_intent,
            "sequences": self._sequences_intent,
        }

    async def resolve(
        self,
        intent: str,
        params: Optional[Mapping[str, Any]],
        prior: Union[PlotState, Mapping[str, Any], None] = None,
    ) -> ResolveOutcome:
        general, _ = split_intent(intent)
        branch = self._branches.get(general)
        if branch is None:
            logger.warning("Unrecognized intent %r; plot state left unchanged.", intent)
            return Unchanged(f"unrecognized intent: {intent!r}")

        try:
            prior_state = coerce_plot_state(prior)
        except PlotStateError as exc:
            logger.warning("Ignoring malformed prior plot state: %s", exc)
            prior_state = None

        req = RequestParams.from_mapping(params)
        turn = _Turn(
            intent=intent,
            organism=req.organism or (prior_state.organism if prior_state else "") or "",
            organ=req.organ or (prior_state.organ if prior_state else None),
            params=req,
        )
        logger.info("Resolving intent=%s organism=%s organ=%s features=%s", intent, turn.organism, turn.organ, req.features)

        try:
            state = await branch(turn, prior_state)
        except NothingToChange as exc:
            logger.info("Intent %s changes nothing: %s", intent, exc)
            return Unchanged(str(exc), failed=False)
        except ResolveAborted as exc:
            logger.info("Intent %s has nothing to publish: %s", intent, exc)
            return Unchanged(str(exc))
        except (AtlasApiError, PlotStateError) as exc:
            logger.warning("Intent %s failed; plot state left unchanged: %s", intent, exc)
            return Unchanged(str(exc))

        logger.info("Intent %s resolved to plotType=%s", intent, state.plot_type.value)
        return Updated(state)

    async def resolve_and_publish(
        self,
        intent: str,
        params: Optional[Mapping[str, Any]],
        store: PlotStateStore,
    ) -> ResolveOutcome:
        turn = store.begin_turn()
        outcome = await self.resolve(intent, params, store.current)
        if isinstance(outcome, Updated) and not store.publish(turn, outcome.plot_state):
            return Unchanged("superseded by a newer turn")
        return outcome

    # ------------------------------------------------------------------
    # Remote call helpers
    # ------------------------------------------------------------------

    async def _gather(self, *calls: Callable[[], Dict[str, Any]]):
        """Run blocking client calls concurrently; raise the first failure once all have settled."""
        results = await asyncio.gather(*(asyncio.to_thread(c) for c in calls), return_exceptions=True)
        for r in results:
            if isinstance(r, BaseException):
                raise r
        return results

    async def _matrix_state(
        self,
        turn: _Turn,
        kind: MatrixKind,
        features: FeatureList,
        xaxis: Optional[list] = None,
    ) -> PlotState:
        if not features:
            raise ResolveAborted("no features to measure")

        organism, organ = turn.organism, turn.organ
        param = features.to_param()

        calls = [lambda: self.client.average(organism, organ, param)]
        if kind is MatrixKind.FRACTION_DETECTED:
            calls.append(lambda: self.client.fraction_detected(organism, organ, param))
        if xaxis is None:
            calls.append(lambda: self.client.celltypes(organism, organ))

        results = await self._gather(*calls)
        average_resp = results[0]
        fractions = results[1]["fraction_detected"] if kind is MatrixKind.FRACTION_DETECTED else None
        if xaxis is None:
            xaxis = as_str_list(results[-1]["celltypes"], "celltypes")

        payload = MatrixPayload(
            kind=kind,
            xaxis=xaxis,
            yaxis=features.to_list(),
            average=average_resp["average"],
            fractions=fractions,
            value_unit=average_resp.get("unit") or DEFAULT_VALUE_UNIT,
        )
        return PlotState(
            intent=turn.intent,
            plot_type=matrix_plot_type(kind),
            organism=organism,
            organ=organ,
            features=features,
            payload=payload,
        )

    # ------------------------------------------------------------------
    # Base intents
    # ------------------------------------------------------------------

    async def _average_intent(self, turn: _Turn, prior: Optional[PlotState]) -> PlotState:
        return await self._matrix_state(turn, MatrixKind.AVERAGE, turn.params.features)

    async def _fraction_intent(self, turn: _Turn, prior: Optional[PlotState]) -> PlotState:
        return await self._matrix_state(turn, MatrixKind.FRACTION_DETECTED, turn.params.features)

    async def _markers_intent(self, turn: _Turn, prior: Optional[PlotState]) -> PlotState:
        celltype = turn.params.celltype
        if not celltype:
            raise ResolveAborted("markers need a cell type")
        number = turn.params.number or self.markers_number

        (resp,) = await self._gather(lambda: self.client.markers(turn.organism, turn.organ, celltype, number))
        markers = FeatureList.parse(as_str_list(resp["markers"], "markers"))
        return await self._matrix_state(turn, MatrixKind.FRACTION_DETECTED, markers)

    async def _highest_measurement_intent(self, turn: _Turn, prior: Optional[PlotState]) -> PlotState:
        feature = turn.params.feature
        if not feature:
            raise ResolveAborted("highest measurement needs a feature")
        number = turn.params.number or self.top_n

        (resp,) = await self._gather(lambda: self.client.highest_measurement(turn.organism, feature, number))
        payload = BarPayload(
            celltypes=as_str_list(resp["celltypes"], "celltypes")[:number],
            organs=as_str_list(resp["organs"], "organs")[:number],
            average=as_float_list(resp["average"], "average")[:number],
            value_unit=resp.get("unit") or DEFAULT_VALUE_UNIT,
        )
        return PlotState(
            intent=turn.intent,
            plot_type=PlotType.BAR_CHART,
            organism=turn.organism,
            organ=None,
            features=FeatureList([feature]),
            payload=payload,
        )

    async def _similar_features_intent(self, turn: _Turn, prior: Optional[PlotState]) -> PlotState:
        feature = turn.params.feature
        if not feature:
            raise ResolveAborted("similar features need a query feature")

        similar = turn.params.similar_features
        if similar is None:
            number = turn.params.number or self.similar_number
            method = turn.params.method or self.similar_method
            (resp,) = await self._gather(
                lambda: self.client.similar_features(turn.organism, turn.organ, feature, number, method)
            )
            similar = as_str_list(resp["similar_features"], "similar_features")

        features = FeatureList.parse(similar).prepend(feature)
        return await self._matrix_state(turn, MatrixKind.FRACTION_DETECTED, features)

    async def _celltypexorgan_intent(self, turn: _Turn, prior: Optional[PlotState]) -> PlotState:
        (resp,) = await self._gather(lambda: self.client.celltypexorgan(turn.organism))
        payload = TablePayload(
            organs=as_str_list(resp["organs"], "organs"),
            celltypes=as_str_list(resp["celltypes"], "celltypes"),
            detected=resp["detected"],
        )
        return PlotState(
            intent=turn.intent,
            plot_type=PlotType.TABLE,
            organism=turn.organism,
            organ=None,
            features=FeatureList(),
            payload=payload,
        )

    async def _organisms_intent(self, turn: _Turn, prior: Optional[PlotState]) -> PlotState:
        return PlotState(
            intent=turn.intent,
            plot_type=PlotType.SHOW_ORGANISMS,
            organism=turn.organism,
            organ=None,
            features=FeatureList(),
            payload=OrganismsPayload(),
        )

    async def _sequences_intent(self, turn: _Turn, prior: Optional[PlotState]) -> PlotState:
        features = turn.params.features
        if not features:
            raise ResolveAborted("sequences need at least one feature")

        (resp,) = await self._gather(lambda: self.client.sequences(turn.organism, features.to_param()))
        payload = SequencesPayload(
            features=as_str_list(resp["features"], "features"),
            sequences=as_str_list(resp["sequences"], "sequences"),
            sequence_type=resp.get("type") or "protein",
        )
        return PlotState(
            intent=turn.intent,
            plot_type=PlotType.FEATURE_SEQUENCES,
            organism=turn.organism,
            organ=None,
            features=FeatureList.parse(payload.features),
            payload=payload,
        )

    # ------------------------------------------------------------------
    # Incremental intents
    # ------------------------------------------------------------------

    async def _add_features(self, turn: _Turn, prior: Optional[PlotState]) -> PlotState:
        return await self._edit_features(turn, prior, add=True)

    async def _remove_features(self, turn: _Turn, prior: Optional[PlotState]) -> PlotState:
        return await self._edit_features(turn, prior, add=False)

    async def _edit_features(self, turn: _Turn, prior: Optional[PlotState], add: bool) -> PlotState:
        if prior is None or prior.matrix is None:
            raise ResolveAborted("no heatmap to edit")

        delta = turn.params.features
        if not delta:
            raise ResolveAborted("no features named")

        resulting = prior.features.union(delta) if add else prior.features.difference(delta)
        if not resulting:
            raise ResolveAborted("removing these features would leave nothing to plot")
        if resulting == prior.features:
            raise NothingToChange("feature set unchanged")

        # organism, organ and the cell-type axis always come from the prior plot
        carried = replace(turn, organism=prior.organism, organ=prior.organ)
        matrix = prior.matrix
        if matrix.kind is MatrixKind.FRACTION_DETECTED:
            return await self._matrix_state(carried, MatrixKind.FRACTION_DETECTED, resulting, xaxis=matrix.xaxis)
        if matrix.kind is MatrixKind.AVERAGE:
            return await self._matrix_state(carried, MatrixKind.AVERAGE, resulting, xaxis=matrix.xaxis)
        raise ResolveAborted(f"unsupported matrix kind {matrix.kind!r}")
