# retriever.py - similarity search over the knowledge base
import logging

from errors import RetrievalFailure

logger = logging.getLogger(__name__)


class PineconeRetriever:
    """Embeds the query with OpenAI and returns matching passages from Pinecone."""

    def __init__(self, client, index, embedding_model="text-embedding-3-small",
                 top_k=5, namespace="", text_key="text", timeout=None):
        self.client = client
        self.index = index
        self.embedding_model = embedding_model
        self.top_k = top_k
        self.namespace = namespace
        self.text_key = text_key
        self.timeout = timeout

    def retrieve(self, query, k=None):
        """Ranked passage texts for ``query``, best match first; [] if nothing matched."""
        k = self.top_k if k is None else k
        if k <= 0:
            return []
        try:
            embed_resp = self.client.embeddings.create(model=self.embedding_model, input=query)
            q_embed = embed_resp.data[0].embedding
        except Exception as exc:
            raise RetrievalFailure("OpenAI embedding request failed") from exc

        query_kwargs = {"vector": q_embed, "top_k": k, "include_metadata": True}
        if self.namespace:
            query_kwargs["namespace"] = self.namespace
        if self.timeout:
            query_kwargs["_request_timeout"] = self.timeout
        try:
            results = self.index.query(**query_kwargs)
        except Exception as exc:
            raise RetrievalFailure("Pinecone query failed") from exc

        passages = [p for p in (self._passage(m) for m in self._matches(results)) if p]
        logger.debug("Retrieved %d passages for query", len(passages))
        return passages[:k]

    @staticmethod
    def _matches(results):
        # results may be dict-like or object depending on client version
        if hasattr(results, "matches"):
            return results.matches or []
        if isinstance(results, dict):
            return results.get("matches") or []
        return []

    def _passage(self, match):
        metadata = getattr(match, "metadata", None) or (match.get("metadata") if isinstance(match, dict) else None) or {}
        return metadata.get(self.text_key) or metadata.get("text") or metadata.get("content") or ""
