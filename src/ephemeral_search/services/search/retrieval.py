from __future__ import annotations

from typing import Any, Dict, List

import httpx

from src.ephemeral_search.domain.errors import RetrievalFailure, SearchServiceError
from src.ephemeral_search.domain.sessions import RetrievalHit
from .client import SearchClient
from .definitions import (
    CONTENT_FIELD,
    PARENT_FIELD,
    RETRIEVABLE_FIELDS,
    SOURCE_URL_FIELD,
    TITLE_FIELD,
    VECTOR_FIELD,
)


def _to_hit(doc: Dict[str, Any]) -> RetrievalHit:
    return RetrievalHit(
        score=float(doc.get("@search.score") or 0.0),
        title=doc.get(TITLE_FIELD),
        text=doc.get(CONTENT_FIELD) or "",
        source_url=doc.get(SOURCE_URL_FIELD),
        parent_document_id=doc.get(PARENT_FIELD),
    )


class RetrievalClient:
    def __init__(self, search: SearchClient) -> None:
        self._search = search

    async def top_k(self, index_name: str, question: str, k: int) -> List[RetrievalHit]:
        """Pure vector query (server-side text vectorization) against a session index.

        Returns at most `k` hits, best first. An index without chunks yields [].
        """
        q = question.strip()
        if not q or k < 1:
            return []

        body = {
            "count": True,
            "top": k,
            "select": ",".join(RETRIEVABLE_FIELDS),
            "vectorQueries": [
                {"kind": "text", "fields": VECTOR_FIELD, "text": q, "k": k},
            ],
        }
        try:
            data = await self._search.search_documents(index_name, body)
        except SearchServiceError as e:
            raise RetrievalFailure(index_name, e.message) from e
        except httpx.HTTPError as e:
            raise RetrievalFailure(index_name, str(e)) from e

        hits = [_to_hit(doc) for doc in data.get("value") or []]
        hits.sort(key=lambda h: h.score, reverse=True)
        return hits[:k]
