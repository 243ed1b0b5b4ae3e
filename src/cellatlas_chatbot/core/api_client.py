from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from cellatlas_chatbot.config import (
    ATLASAPPROX_API_URL,
    ATLASAPPROX_API_VERSION,
    ATLASAPPROX_TIMEOUT_SECONDS,
)

logger = logging.getLogger(__name__)

FeaturesArg = Union[str, Iterable[str]]


class AtlasApiError(Exception):
    """Raised when AtlasApprox calls fail or return unexpected shapes."""


def _build_retry_session() -> requests.Session:
    """
    Build a requests Session with conservative retries.
    The AtlasApprox API is occasionally slow on cold starts.
    """
    session = requests.Session()

    retry = Retry(
        total=3,
        connect=3,
        read=3,
        status=3,
        backoff_factor=0.5,
        status_forcelist=(429, 500, 502, 503, 504),
        allowed_methods=frozenset({"GET"}),
        raise_on_status=False,
    )

    adapter = HTTPAdapter(max_retries=retry, pool_connections=10, pool_maxsize=10)
    session.mount("https://", adapter)
    session.mount("http://", adapter)

    return session


def _features_param(features: FeaturesArg) -> str:
    # The API expects one comma-joined string
    if isinstance(features, str):
        return features
    return ",".join(str(f) for f in features)


class AtlasApproxClient:
    """
    Thin synchronous client over the AtlasApprox REST API.

    Every method returns the decoded JSON object after checking that the keys
    the caller relies on are present and non-empty. Any failure (transport,
    HTTP status, non-JSON body, missing or empty data) raises AtlasApiError.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        version: Optional[str] = None,
        timeout_seconds: Optional[int] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = (base_url or ATLASAPPROX_API_URL).rstrip("/")
        self.version = (version or ATLASAPPROX_API_VERSION).strip("/")
        self.timeout_seconds = int(timeout_seconds or ATLASAPPROX_TIMEOUT_SECONDS)
        # built eagerly: endpoint calls run concurrently in worker threads
        self.session = session if session is not None else _build_retry_session()

    def endpoint_url(self, endpoint: str) -> str:
        return f"{self.base_url}/{self.version}/{endpoint}"

    def _get(
        self,
        endpoint: str,
        params: Dict[str, Any],
        required: Sequence[str] = (),
    ) -> Dict[str, Any]:
        query = {k: v for k, v in params.items() if v is not None and v != ""}
        url = self.endpoint_url(endpoint)
        logger.info("AtlasApprox GET %s params=%s", endpoint, query)

        try:
            resp = self.session.get(url, params=query, timeout=self.timeout_seconds)
        except requests.RequestException as exc:
            raise AtlasApiError(f"HTTP error while calling {endpoint}: {exc}") from exc

        if resp.status_code >= 400:
            preview = (resp.text or "")[:200]
            raise AtlasApiError(f"{endpoint} returned status {resp.status_code}. Preview: {preview}")

        try:
            data = resp.json()
        except ValueError as exc:
            preview = (resp.text or "")[:200]
            raise AtlasApiError(f"Non-JSON response from {endpoint} (status={resp.status_code}). Preview: {preview}") from exc

        if not isinstance(data, dict):
            raise AtlasApiError(f"Unexpected {endpoint} response type: {type(data)}")

        for key in required:
            value = data.get(key)
            if value is None:
                raise AtlasApiError(f"{endpoint} response is missing '{key}'. Keys present: {sorted(data)}")
            if isinstance(value, list) and not value:
                raise AtlasApiError(f"{endpoint} returned no {key} for params={query}")

        return data

    # ------------------------------------------------------------------
    # Endpoints
    # ------------------------------------------------------------------

    def celltypes(self, organism: str, organ: str) -> Dict[str, Any]:
        return self._get("celltypes", {"organism": organism, "organ": organ}, required=("celltypes",))

    def average(self, organism: str, organ: str, features: FeaturesArg) -> Dict[str, Any]:
        return self._get(
            "average",
            {"organism": organism, "organ": organ, "features": _features_param(features)},
            required=("average",),
        )

    def fraction_detected(self, organism: str, organ: str, features: FeaturesArg) -> Dict[str, Any]:
        return self._get(
            "fraction_detected",
            {"organism": organism, "organ": organ, "features": _features_param(features)},
            required=("fraction_detected",),
        )

    def markers(self, organism: str, organ: str, celltype: str, number: int = 10) -> Dict[str, Any]:
        return self._get(
            "markers",
            {"organism": organism, "organ": organ, "celltype": celltype, "number": int(number)},
            required=("markers",),
        )

    def highest_measurement(self, organism: str, feature: str, number: int = 10) -> Dict[str, Any]:
        return self._get(
            "highest_measurement",
            {"organism": organism, "feature": feature, "number": int(number)},
            required=("celltypes", "organs", "average"),
        )

    def celltypexorgan(self, organism: str) -> Dict[str, Any]:
        return self._get(
            "celltypexorgan",
            {"organism": organism},
            required=("celltypes", "organs", "detected"),
        )

    def similar_features(
        self,
        organism: str,
        organ: str,
        feature: str,
        number: int = 10,
        method: str = "correlation",
    ) -> Dict[str, Any]:
        return self._get(
            "similar_features",
            {"organism": organism, "organ": organ, "feature": feature, "number": int(number), "method": method},
            required=("similar_features",),
        )

    def sequences(self, organism: str, features: FeaturesArg) -> Dict[str, Any]:
        return self._get(
            "sequences",
            {"organism": organism, "features": _features_param(features)},
            required=("features", "sequences"),
        )


_CLIENT: Optional[AtlasApproxClient] = None


def get_client() -> AtlasApproxClient:
    global _CLIENT
    if _CLIENT is None:
        _CLIENT = AtlasApproxClient()
    return _CLIENT


def as_str_list(values: Any, what: str) -> List[str]:
    """Coerce an API list field to a list of strings."""
    if not isinstance(values, list):
        raise AtlasApiError(f"Expected a list for '{what}', got {type(values).__name__}")
    return [str(v) for v in values]


def as_float_list(values: Any, what: str) -> List[float]:
    """Coerce an API list field to a list of floats."""
    if not isinstance(values, list):
        raise AtlasApiError(f"Expected a list for '{what}', got {type(values).__name__}")
    try:
        return [float(v) for v in values]
    except (TypeError, ValueError) as exc:
        raise AtlasApiError(f"'{what}' contains non-numeric values") from exc
