"""
Vector store for code chunks.

Chunks go into one Qdrant collection, cosine distance.

Payload:
  - chunk_id: str (<path>#chunk<n>)
  - source: str (absolute file path)
  - chunk_index: int
  - document: str (chunk text)
  - indexed_at: str (ISO timestamp)

Connection: QDRANT_URL (+ QDRANT_API_KEY) for a server, otherwise local
on-disk storage at QDRANT_PATH (~/.headless-indexer/qdrant by default).
A path of ":memory:" keeps the collection in-process.
"""

import hashlib
import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

from qdrant_client import QdrantClient
from qdrant_client.models import (
    Distance,
    FieldCondition,
    Filter,
    MatchValue,
    PayloadSchemaType,
    PointStruct,
    VectorParams,
)

logger = logging.getLogger(__name__)

DEFAULT_COLLECTION = "codebase_index"
MEMORY_LOCATION = ":memory:"


class VectorStore:
    """
    Vector store

    Owns the Qdrant connection (lazy) and the chunk CRUD.
    """

    def __init__(
        self,
        collection_name: str = DEFAULT_COLLECTION,
        url: Optional[str] = None,
        api_key: Optional[str] = None,
        path: Optional[str] = None,
        client: Optional[QdrantClient] = None,
    ):
        self.collection_name = collection_name
        self.url = url
        self.api_key = api_key
        self.path = path
        self._client = client

    @classmethod
    def from_settings(cls, settings) -> "VectorStore":
        return cls(
            collection_name=settings.collection_name,
            url=settings.qdrant_url,
            api_key=settings.qdrant_api_key,
            path=settings.qdrant_path,
        )

    @property
    def client(self) -> QdrantClient:
        if self._client is None:
            self._client = self._create_client()
        return self._client

    def _create_client(self) -> QdrantClient:
        if self.url:
            client = QdrantClient(url=self.url, api_key=self.api_key, timeout=60)
            logger.info(f"Connected to Qdrant: {self.url}")
        elif self.path and self.path != MEMORY_LOCATION:
            Path(self.path).expanduser().mkdir(parents=True, exist_ok=True)
            client = QdrantClient(path=str(Path(self.path).expanduser()))
            logger.info(f"Using local Qdrant storage: {self.path}")
        else:
            client = QdrantClient(location=MEMORY_LOCATION)
            logger.info("Using in-memory Qdrant collection")
        return client

    def exists(self) -> bool:
        collections = self.client.get_collections().collections
        return any(c.name == self.collection_name for c in collections)

    def init_collection(self, vector_dim: int) -> dict:
        """
        Create the collection if missing.

        Returns:
            {"ok": bool, "created": bool, "error": str or None}
        """
        try:
            if self.exists():
                return {"ok": True, "created": False, "error": None}

            self.client.create_collection(
                collection_name=self.collection_name,
                vectors_config=VectorParams(size=vector_dim, distance=Distance.COSINE),
            )
            self._create_indexes()

            logger.info(f"Created collection: {self.collection_name} ({vector_dim} dims)")
            return {"ok": True, "created": True, "error": None}

        except Exception as e:
            logger.error(f"Failed to init collection: {e}")
            return {"ok": False, "created": False, "error": str(e)}

    def _create_indexes(self):
        try:
            self.client.create_payload_index(
                collection_name=self.collection_name,
                field_name="source",
                field_schema=PayloadSchemaType.KEYWORD,
            )
        except Exception as e:
            # local mode has no payload indexes
            logger.debug(f"Skipping payload index: {e}")

    def upsert(
        self,
        ids: list[str],
        vectors: list[list[float]],
        documents: list[str],
        metadata: list[dict],
    ) -> dict:
        """
        Insert or replace chunks; all four lists are parallel.

        Returns:
            {"ok": bool, "upserted": int, "error": str or None}
        """
        if not (len(ids) == len(vectors) == len(documents) == len(metadata)):
            return {"ok": False, "upserted": 0, "error": "ids, vectors, documents and metadata differ in length"}

        indexed_at = datetime.now().isoformat()
        points = []
        for chunk_id, vector, document, meta in zip(ids, vectors, documents, metadata):
            payload = dict(meta)
            payload["chunk_id"] = chunk_id
            payload["document"] = document
            payload["indexed_at"] = indexed_at
            points.append(PointStruct(id=self._chunk_id_to_int(chunk_id), vector=vector, payload=payload))

        try:
            self.client.upsert(collection_name=self.collection_name, points=points)
        except Exception as e:
            logger.error(f"Failed to upsert {len(points)} chunks: {e}")
            return {"ok": False, "upserted": 0, "error": str(e)}
        return {"ok": True, "upserted": len(points), "error": None}

    def query(self, vector: list[float], k: int = 5) -> dict:
        """
        Nearest chunks, best first.

        Returns:
            {
                "ok": bool,
                "results": [{"id", "score", "document", "metadata"}, ...],
                "error": str or None
            }
        """
        try:
            points = self.client.query_points(
                collection_name=self.collection_name,
                query=vector,
                limit=k,
                with_payload=True,
            ).points
        except Exception as e:
            logger.error(f"Search failed: {e}")
            return {"ok": False, "results": [], "error": str(e)}

        results = []
        for point in points:
            payload = point.payload or {}
            results.append({
                "id": payload.get("chunk_id", str(point.id)),
                "score": round(point.score, 4),
                "document": payload.get("document", ""),
                "metadata": {
                    "source": payload.get("source", ""),
                    "chunk_index": payload.get("chunk_index", 0),
                },
            })
        return {"ok": True, "results": results, "error": None}

    def delete_by_source(self, source: str) -> dict:
        """Drop every chunk of one file."""
        try:
            self.client.delete(
                collection_name=self.collection_name,
                points_selector=Filter(
                    must=[FieldCondition(key="source", match=MatchValue(value=source))]
                ),
            )
            return {"ok": True, "error": None}
        except Exception as e:
            logger.error(f"Delete failed for {source}: {e}")
            return {"ok": False, "error": str(e)}

    def count(self) -> int:
        if not self.exists():
            return 0
        return self.client.count(collection_name=self.collection_name, exact=True).count

    def close(self):
        """Release the client; local storage stays locked until then."""
        if self._client is not None:
            self._client.close()
            self._client = None

    def _chunk_id_to_int(self, chunk_id: str) -> int:
        """Qdrant point IDs must be ints or UUIDs."""
        hash_hex = hashlib.sha256(chunk_id.encode()).hexdigest()[:16]
        return int(hash_hex, 16)
