"""Vector store backed by a ChromaDB server over its HTTP API."""

from __future__ import annotations

import os
import posixpath
import struct
import threading
from contextlib import suppress
from typing import Any, Iterable, Mapping, Optional, Sequence
from urllib.parse import SplitResult, urlsplit, urlunsplit

import requests

from orch.vectorstore import Filter, Item, Match, VectorStore, register

_DEFAULT_BASE_URL = "http://localhost:8000"
_DEFAULT_COLLECTION = "default"
_COLLECTIONS_PATH = "/api/v1/collections"
_QUERY_INCLUDE = ("distances", "metadatas", "ids")


def _float32(value: float) -> float:
    return struct.unpack("<f", struct.pack("<f", value))[0]


def _parse_base_url(base_url: str) -> SplitResult:
    try:
        parsed = urlsplit(base_url)
        parsed.port  # noqa: B018 - forces validation of the port part
    except ValueError as exc:
        raise ValueError(f"chromadb: invalid base_url: {exc}") from exc
    return parsed


class ChromaStore(VectorStore):
    """Stores items in ChromaDB collections, one per namespace unless a single one is set.

    Collections are looked up by name and created on first use when
    ``create_if_missing`` is true; their ids are cached for the store's lifetime.
    """

    def __init__(
        self,
        base_url: str = _DEFAULT_BASE_URL,
        collection: str = "",
        create_if_missing: bool = True,
        session: Optional[requests.Session] = None,
    ) -> None:
        self._base = _parse_base_url(base_url)
        self.base_url = base_url
        self.collection = collection
        self.create_if_missing = create_if_missing
        self._session = session or requests.Session()
        self._lock = threading.RLock()
        self._ids: dict[str, str] = {}

    def upsert(self, items: Iterable[Item]) -> None:
        """Add items to the collection of their namespace, creating it if allowed."""
        groups: dict[str, list[Item]] = {}
        for item in items:
            groups.setdefault(self._collection_name(item.namespace), []).append(item)
        for name, batch in groups.items():
            collection_id = self._ensure_collection(name)
            payload = {
                "ids": [item.id for item in batch],
                "embeddings": [list(item.vector) for item in batch],
                "metadatas": [dict(item.metadata) if item.metadata else {} for item in batch],
            }
            self._post(f"{_COLLECTIONS_PATH}/{collection_id}/add", payload)

    def query(self, query: Sequence[float], k: int, filter: Optional[Filter] = None) -> list[Match]:
        """Return the nearest items; the score is the negated distance, so higher is closer."""
        criteria = filter or Filter()
        collection_id = self._ensure_collection(self._collection_name(criteria.namespace))
        payload: dict[str, Any] = {
            "query_embeddings": [list(query)],
            "n_results": k,
        }
        if criteria.equals:
            payload["where"] = dict(criteria.equals)
        payload["include"] = list(_QUERY_INCLUDE)
        response = self._post(f"{_COLLECTIONS_PATH}/{collection_id}/query", payload) or {}

        all_ids = response.get("ids") or []
        if not all_ids:
            return []
        ids = all_ids[0] or []
        all_distances = response.get("distances") or []
        distances = (all_distances[0] or []) if all_distances else []
        all_metadatas = response.get("metadatas") or []
        metadatas = (all_metadatas[0] or []) if all_metadatas else []

        matches = []
        for index, item_id in enumerate(ids):
            metadata = metadatas[index] if index < len(metadatas) else None
            score = -_float32(float(distances[index])) if index < len(distances) else 0.0
            matches.append(
                Match(
                    Item(id=item_id, namespace=criteria.namespace, metadata=metadata),
                    score,
                )
            )
        return matches

    def _collection_name(self, namespace: str) -> str:
        if self.collection:
            return self.collection
        return namespace or _DEFAULT_COLLECTION

    def _ensure_collection(self, name: str) -> str:
        with self._lock:
            cached = self._ids.get(name)
        if cached is not None:
            return cached

        listing = self._get(_COLLECTIONS_PATH, {"name": name})
        collections = listing if isinstance(listing, list) else (listing or {}).get("collections") or []
        for entry in collections:
            if entry.get("name") == name:
                return self._remember(name, entry.get("id", ""))

        if not self.create_if_missing:
            raise RuntimeError(f'chromadb: collection "{name}" not found')
        created = self._post(_COLLECTIONS_PATH, {"name": name}) or {}
        return self._remember(name, created.get("id", ""))

    def _remember(self, name: str, collection_id: str) -> str:
        with self._lock:
            self._ids[name] = collection_id
        return collection_id

    def _endpoint(self, path: str) -> str:
        joined = posixpath.normpath(posixpath.join(self._base.path or "/", path.lstrip("/")))
        return urlunsplit(
            (self._base.scheme, self._base.netloc, joined, self._base.query, "")
        )

    @staticmethod
    def _check(response: requests.Response, method: str, path: str) -> Any:
        try:
            if response.status_code >= 300:
                raise RuntimeError(
                    f"chromadb: {method} {path} => {response.status_code} {response.reason}"
                )
            return response.json() if response.content else None
        finally:
            response.close()

    def _get(self, path: str, params: Mapping[str, str]) -> Any:
        response = self._session.get(self._endpoint(path), params=dict(params))
        return self._check(response, "GET", path)

    def _post(self, path: str, body: Any) -> Any:
        response = self._session.post(
            self._endpoint(path),
            json=body,
            headers={"content-type": "application/json"},
        )
        return self._check(response, "POST", path)


def factory(cfg: Optional[Mapping[str, Any]] = None) -> ChromaStore:
    """Build a store from ``base_url``, ``collection`` and ``create_if_missing`` settings.

    The base URL falls back to ``ORCH_CHROMADB_URL`` and then to a local server.
    """
    cfg = cfg or {}
    base_url = os.environ.get("ORCH_CHROMADB_URL", "")
    configured = cfg.get("base_url")
    if isinstance(configured, str) and configured:
        base_url = configured
    if not base_url:
        base_url = _DEFAULT_BASE_URL

    collection = cfg.get("collection")
    create = cfg.get("create_if_missing")
    return ChromaStore(
        base_url=base_url,
        collection=collection if isinstance(collection, str) else "",
        create_if_missing=create if isinstance(create, bool) else True,
    )


with suppress(ValueError):
    register("chromadb", factory)