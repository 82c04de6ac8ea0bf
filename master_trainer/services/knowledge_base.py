# master_trainer/services/knowledge_base.py
"""
Knowledge base maintenance: DashScope text embeddings and a DashVector
collection holding product/persona documents for retrieval.

Both clients are thin async wrappers over httpx. Failures raise
KnowledgeBaseError with a message that includes the HTTP status and body.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence

import httpx

from master_trainer.config.settings import settings

logger = logging.getLogger(__name__)


class KnowledgeBaseError(Exception):
    pass


def _raise_for_status(resp: httpx.Response, service: str) -> Any:
    try:
        body = resp.json()
    except ValueError:
        body = resp.text
    if resp.status_code >= 400:
        raise KnowledgeBaseError(f"{service} API error: {resp.status_code} - {body}")
    return body


class DashScopeEmbeddings:

    def __init__(
        self,
        api_key: Optional[str] = None,
        url: Optional[str] = None,
        model: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key or settings.dashscope_api_key
        self.url = url or settings.dashscope_embedding_url
        self.model = model or settings.dashscope_embedding_model
        self.timeout = timeout
        self._transport = transport

    async def embed(self, texts: Sequence[str]) -> List[List[float]]:
        """One embedding vector per input text, in input order."""
        if not self.api_key:
            raise KnowledgeBaseError("DASHSCOPE_API_KEY is not set")
        payload = {"model": self.model, "input": {"texts": list(texts)}}
        headers = {"Authorization": f"Bearer {self.api_key}"}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.post(self.url, json=payload, headers=headers)
        except httpx.HTTPError as exc:
            raise KnowledgeBaseError(f"Network error while calling DashScope: {exc}") from exc

        body = _raise_for_status(resp, "DashScope")
        try:
            embeddings = body["output"]["embeddings"]
            vectors = [item["embedding"] for item in embeddings]
        except (KeyError, TypeError) as exc:
            raise KnowledgeBaseError(f"Unexpected response format from DashScope: {body}") from exc
        if len(vectors) != len(texts):
            raise KnowledgeBaseError(
                f"DashScope returned {len(vectors)} embeddings for {len(texts)} texts"
            )
        return vectors


class DashVectorClient:

    def __init__(
        self,
        api_key: Optional[str] = None,
        endpoint: Optional[str] = None,
        collection: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key or settings.dashvector_api_key
        endpoint = endpoint or settings.dashvector_endpoint
        self.endpoint = endpoint.rstrip("/") if endpoint else None
        self.collection = collection or settings.dashvector_collection
        self.timeout = timeout
        self._transport = transport

    def _check_config(self) -> None:
        if not (self.api_key and self.endpoint):
            raise KnowledgeBaseError("DASHVECTOR_API_KEY and DASHVECTOR_ENDPOINT must be set")

    async def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        self._check_config()
        url = f"{self.endpoint}{path}"
        headers = {"dashvector-auth-token": self.api_key}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.post(url, json=payload, headers=headers)
        except httpx.HTTPError as exc:
            raise KnowledgeBaseError(f"Network error while calling DashVector: {exc}") from exc

        body = _raise_for_status(resp, "DashVector")
        if not isinstance(body, dict):
            raise KnowledgeBaseError(f"Unexpected response format from DashVector: {body}")
        if body.get("code", 0) != 0:
            raise KnowledgeBaseError(
                f"DashVector error {body.get('code')}: {body.get('message') or 'unknown error'}"
            )
        return body

    async def create_collection(
        self, dimension: Optional[int] = None, metric: Optional[str] = None
    ) -> Dict[str, Any]:
        payload = {
            "name": self.collection,
            "dimension": dimension or settings.dashvector_dimension,
            "metric": metric or settings.dashvector_metric,
            "fields_schema": {"text": "STRING"},
        }
        logger.info("Creating DashVector collection %s", self.collection)
        return await self._post("/v1/collections", payload)

    async def insert_docs(self, docs: Sequence[Dict[str, Any]]) -> Dict[str, Any]:
        """docs: [{"id", "vector", "text"}]; the text is stored as a field."""
        payload = {
            "docs": [
                {"id": d["id"], "vector": list(d["vector"]), "fields": {"text": d.get("text", "")}}
                for d in docs
            ]
        }
        return await self._post(f"/v1/collections/{self.collection}/docs", payload)

    async def query(self, vector: Sequence[float], topk: int = 3) -> List[Dict[str, Any]]:
        """Nearest documents as [{"id", "score", "text"}], best first."""
        payload = {"vector": list(vector), "topk": topk, "include_vector": False}
        body = await self._post(f"/v1/collections/{self.collection}/query", payload)
        return [
            {
                "id": doc.get("id"),
                "score": doc.get("score"),
                "text": (doc.get("fields") or {}).get("text", ""),
            }
            for doc in body.get("output") or []
        ]
