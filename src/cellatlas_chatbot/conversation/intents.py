from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional, Tuple

from cellatlas_chatbot.core.features import FeatureList

# Intents answered without any remote call
NO_API_INTENTS = frozenset({"download", "plot", "greetings", "link"})


def split_intent(intent: str) -> Tuple[str, str]:
    """
    Split a classified intent "<general>.<sub>" into its two parts.

    'average.heatmap' -> ('average', 'heatmap'); 'organisms' -> ('organisms', '')
    """
    text = (intent or "").strip()
    general, _, sub = text.partition(".")
    return general, sub


def is_no_api_intent(intent: str) -> bool:
    return split_intent(intent)[0] in NO_API_INTENTS


def _clean(value: Any) -> Optional[str]:
    if value is None:
        return None
    s = str(value).strip()
    return s or None


def _as_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        n = int(value)
    except (TypeError, ValueError):
        return None
    return n if n > 0 else None


@dataclass(frozen=True)
class RequestParams:
    """
    Parameters extracted by the classifier, normalized.

    Single-feature intents send 'feature', multi-feature ones 'features';
    both land in `features`.
    """
    organism: Optional[str] = None
    organ: Optional[str] = None
    celltype: Optional[str] = None
    features: FeatureList = field(default_factory=FeatureList)
    number: Optional[int] = None
    method: Optional[str] = None
    similar_features: Optional[List[str]] = None

    @classmethod
    def from_mapping(cls, params: Optional[Mapping[str, Any]]) -> "RequestParams":
        if isinstance(params, RequestParams):
            return params
        params = params or {}
        raw_features = params.get("features")
        if raw_features is None or raw_features == "":
            raw_features = params.get("feature")

        similar = params.get("similar_features")
        return cls(
            organism=_clean(params.get("organism")),
            organ=_clean(params.get("organ")),
            celltype=_clean(params.get("celltype")),
            features=FeatureList.parse(raw_features),
            number=_as_int(params.get("number")),
            method=_clean(params.get("method")),
            similar_features=FeatureList.parse(similar).to_list() if similar is not None else None,
        )

    @property
    def feature(self) -> Optional[str]:
        """First named feature, for single-feature intents."""
        return self.features[0] if self.features else None
