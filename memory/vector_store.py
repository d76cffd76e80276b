"""
Vector store using Pinecone for semantic memory search.
Each companion key gets its own namespace so memories never leak between
(persona, user, model) triples.
"""

from typing import List, Dict, Any, Optional

from pinecone import Pinecone, ServerlessSpec
from pinecone.exceptions import PineconeException
from openai import OpenAI, OpenAIError
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
)

from core import get_logger, VectorStoreException, EmbeddingError, VectorStoreConnectionError
from schemas import CompanionKey

logger = get_logger(__name__)


class VectorStore:
    """
    Pinecone vector store for semantic memory search.

    Features:
    - Automatic retry with exponential backoff
    - Key-isolated namespaces
    - OpenAI embeddings
    """

    def __init__(
        self,
        pinecone_api_key: str,
        openai_api_key: str,
        index_name: str = "companion-memories",
        embedding_model: str = "text-embedding-3-small",
        dimension: int = 1536,
    ):
        """Initialize Pinecone client and index with error handling."""
        if not pinecone_api_key or not openai_api_key:
            raise VectorStoreConnectionError("Pinecone or OpenAI API key not configured")

        try:
            self.pc = Pinecone(api_key=pinecone_api_key)
            self.openai_client = OpenAI(api_key=openai_api_key)

            self.index_name = index_name
            self.dimension = dimension  # text-embedding-3-small dimension
            self.embedding_model = embedding_model

            self._ensure_index_exists()
            self.index = self.pc.Index(self.index_name)

            logger.info("Vector store initialized", index=self.index_name)

        except PineconeException as e:
            logger.error("Failed to initialize Pinecone", error=str(e))
            raise VectorStoreConnectionError(str(e))
        except OpenAIError as e:
            logger.error("Failed to initialize OpenAI client", error=str(e))
            raise VectorStoreConnectionError(str(e))

    def _ensure_index_exists(self) -> None:
        """Create Pinecone index if it doesn't exist."""
        existing_indexes = [index.name for index in self.pc.list_indexes()]

        if self.index_name not in existing_indexes:
            logger.info("Creating Pinecone index", index=self.index_name)
            self.pc.create_index(
                name=self.index_name,
                dimension=self.dimension,
                metric="cosine",
                spec=ServerlessSpec(cloud="aws", region="us-east-1"),
            )

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type(OpenAIError),
        reraise=True,
    )
    def _embed(self, text: str) -> List[float]:
        response = self.openai_client.embeddings.create(model=self.embedding_model, input=text)
        return response.data[0].embedding

    def _get_embedding(self, text: str) -> List[float]:
        """
        Generate embedding for text using OpenAI with retry logic.

        Raises:
            EmbeddingError: If embedding generation fails after retries
        """
        # ~2000 tokens
        max_chars = 8000
        if len(text) > max_chars:
            logger.debug("Truncated text for embedding", original_length=len(text))
            text = text[:max_chars]

        try:
            return self._embed(text)
        except OpenAIError as e:
            logger.error("Failed to generate embedding", error=str(e), text_length=len(text))
            raise EmbeddingError(text_length=len(text), details=str(e))

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type(PineconeException),
        reraise=True,
    )
    def _upsert(self, namespace: str, vectors: List[tuple]) -> None:
        self.index.upsert(vectors=vectors, namespace=namespace)

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type(PineconeException),
        reraise=True,
    )
    def _query(self, namespace: str, vector: List[float], k: int):
        return self.index.query(vector=vector, top_k=k, namespace=namespace, include_metadata=True)

    def add_memory(
        self,
        key: CompanionKey,
        memory_id: str,
        text: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> str:
        """
        Index one memory record under the key's namespace.

        Args:
            key: Companion key owning the memory
            memory_id: ID of the stored memory record
            text: Text to store and embed
            metadata: Additional metadata

        Returns:
            ID of the stored vector
        """
        meta = dict(metadata or {})
        meta["persona_id"] = key.persona_id
        meta["user_id"] = key.user_id
        meta["text"] = text[:1000]  # Truncated copy for retrieval

        embedding = self._get_embedding(text)

        try:
            self._upsert(key.namespace, [(memory_id, embedding, meta)])
        except PineconeException as e:
            logger.error("Failed to add memory", namespace=key.namespace, error=str(e))
            raise VectorStoreException(f"Failed to add memory: {e}")

        logger.debug("Indexed memory", namespace=key.namespace, memory_id=memory_id, text_length=len(text))
        return memory_id

    def search_memories(self, key: CompanionKey, query: str, k: int = 3) -> List[Dict[str, Any]]:
        """
        Search for relevant memories using semantic similarity.

        Returns:
            List of dicts with keys: id, text, score
        """
        query_embedding = self._get_embedding(query)

        try:
            results = self._query(key.namespace, query_embedding, k)
        except PineconeException as e:
            logger.error("Failed to search memories", namespace=key.namespace, error=str(e))
            raise VectorStoreException(f"Failed to search memories: {e}")

        memories = [
            {
                "id": match.id,
                "text": (match.metadata or {}).get("text", ""),
                "score": match.score,
            }
            for match in results.matches
        ]
        logger.debug("Found memories", namespace=key.namespace, count=len(memories))
        return memories
