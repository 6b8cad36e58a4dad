"""
Meilisearch publisher — keeps the ``orders`` index in step with order metadata.

Talks to the Meilisearch REST API directly.  Document writes are PUTs keyed by
``orderNumber``, so creating and updating are the same call.  Failures are
logged and reported as ``False``; they never undo the metadata file already
written to disk.
"""

import logging
from typing import Iterable

import httpx

from orderindex import config
from orderindex.models import OrderMeta

logger = logging.getLogger(__name__)

PRIMARY_KEY = "orderNumber"

INDEX_SETTINGS = {
    "searchable-attributes": [
        "keywords", "productName", "options.value", "orderNumber", "orderComments",
    ],
    "filterable-attributes": [
        "isCustom", "needsReview", "keywords", "options.key", "options.value",
    ],
    "sortable-attributes": ["lastIndexedUtc", "orderDate"],
    "ranking-rules": ["words", "typo", "proximity", "attribute", "sort", "exactness"],
}


class SearchIndexPublisher:
    def __init__(
        self,
        url: str | None = None,
        api_key: str | None = None,
        index_uid: str | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self.url = (url or config.MEILISEARCH_URL).rstrip("/")
        self.index_uid = index_uid or config.MEILISEARCH_INDEX
        key = config.MEILISEARCH_MASTER_KEY if api_key is None else api_key
        headers = {"Authorization": f"Bearer {key}"} if key else {}
        self._client = client or httpx.AsyncClient(timeout=30.0, headers=headers)

    async def aclose(self) -> None:
        await self._client.aclose()

    def _index_url(self, suffix: str = "") -> str:
        return f"{self.url}/indexes/{self.index_uid}{suffix}"

    async def initialize(self) -> bool:
        """
        Ensure the index exists and (re)apply its settings.

        Safe to call on every start.  Returns False (after logging) if
        Meilisearch is unreachable; the worker starts regardless.
        """
        try:
            resp = await self._client.get(self._index_url())
            if resp.status_code == 404:
                resp = await self._client.post(
                    f"{self.url}/indexes",
                    json={"uid": self.index_uid, "primaryKey": PRIMARY_KEY},
                )
            resp.raise_for_status()

            for setting, value in INDEX_SETTINGS.items():
                resp = await self._client.put(self._index_url(f"/settings/{setting}"), json=value)
                resp.raise_for_status()
        except httpx.HTTPError as e:
            logger.error("Failed to initialize Meilisearch index %s: %s", self.index_uid, e)
            return False

        logger.info("Meilisearch index %s initialized.", self.index_uid)
        return True

    async def upsert_orders(self, orders: Iterable[OrderMeta]) -> bool:
        docs = [o.to_document() for o in orders]
        if not docs:
            return True
        try:
            resp = await self._client.put(
                self._index_url("/documents"),
                params={"primaryKey": PRIMARY_KEY},
                json=docs,
            )
            resp.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(
                "Failed to upsert %d order(s) [%s]: %s",
                len(docs), ", ".join(d[PRIMARY_KEY] for d in docs), e,
            )
            return False

        logger.info("Upserted %d order(s) to Meilisearch.", len(docs))
        return True

    async def upsert_order(self, order: OrderMeta) -> bool:
        return await self.upsert_orders([order])

    async def check(self) -> bool:
        """Return True if Meilisearch answers its health endpoint."""
        try:
            resp = await self._client.get(f"{self.url}/health")
            resp.raise_for_status()
            return resp.json().get("status") == "available"
        except (httpx.HTTPError, ValueError):
            return False
