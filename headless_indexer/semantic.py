"""
Semantic indexer - chunk source files, embed them, store them in Qdrant.

Responsibilities:
1. Index one file or a whole directory (fixed line windows)
2. Run directory indexing in the background
3. Natural-language search over stored chunks
"""

import logging
import threading
from typing import Optional

from tqdm import tqdm

from .config import IndexerSettings
from .discovery import iter_source_files, normalize_path
from .errors import StoreError
from .store.embedding import EmbeddingProvider
from .store.vector import VectorStore

logger = logging.getLogger(__name__)


class SemanticIndexer:
    """
    Semantic indexer

    Chunk ids are "<path>#chunk<n>"; re-indexing a file replaces its chunks.
    """

    def __init__(
        self,
        provider: EmbeddingProvider,
        store: VectorStore,
        settings: Optional[IndexerSettings] = None,
    ):
        self.provider = provider
        self.store = store
        self.settings = settings or IndexerSettings()
        self.chunk_lines = self.settings.chunk_lines
        self.batch_size = self.settings.embed_batch_size

        self._collection_ready = False
        self._background: Optional[threading.Thread] = None
        self.last_summary: Optional[dict] = None

    def chunk_text(self, text: str) -> list[str]:
        lines = text.split("\n")
        return [
            "\n".join(lines[i:i + self.chunk_lines])
            for i in range(0, len(lines), self.chunk_lines)
        ]

    def _ensure_collection(self, vector_dim: int):
        if self._collection_ready:
            return
        result = self.store.init_collection(vector_dim)
        if not result["ok"]:
            raise StoreError(f"Failed to init collection: {result['error']}")
        self._collection_ready = True

    def index_file(self, path: str) -> dict:
        """
        Index one file, replacing whatever was stored for it.

        Returns:
            {"path", "chunks", "indexed", "failed_batches"}

        Raises:
            OSError: file cannot be read
        """
        path = normalize_path(path)
        with open(path, encoding="utf-8", errors="replace") as f:
            text = f.read()

        # blank windows keep their index but are not embedded
        chunks = [(i, chunk) for i, chunk in enumerate(self.chunk_text(text)) if chunk.strip()]

        try:
            if self._collection_ready or self.store.exists():
                self.store.delete_by_source(path)
        except Exception as e:
            logger.warning(f"Could not clear old chunks of {path}: {e}")

        indexed = 0
        failed_batches = 0
        for start in range(0, len(chunks), self.batch_size):
            batch = chunks[start:start + self.batch_size]
            documents = [chunk for _, chunk in batch]
            try:
                vectors = self.provider.embed_batch(documents)
                self._ensure_collection(len(vectors[0]))
                result = self.store.upsert(
                    ids=[f"{path}#chunk{i}" for i, _ in batch],
                    vectors=vectors,
                    documents=documents,
                    metadata=[{"source": path, "chunk_index": i} for i, _ in batch],
                )
                if not result["ok"]:
                    raise StoreError(result["error"])
                indexed += result["upserted"]
            except Exception as e:
                failed_batches += 1
                logger.error(f"Failed to index chunk batch in {path}: {e}")

        logger.debug(f"Indexed {path} ({indexed}/{len(chunks)} chunks)")
        return {
            "path": path,
            "chunks": len(chunks),
            "indexed": indexed,
            "failed_batches": failed_batches,
        }

    def index_directory(self, directory: str, show_progress: bool = False) -> dict:
        """
        Index every source file under directory.

        Returns:
            {"directory", "files", "chunks", "indexed", "failed_batches", "failed_files"}
        """
        directory = normalize_path(directory)
        files = sorted(iter_source_files(
            directory,
            self.settings.source_extensions,
            ignored_dirs=self.settings.ignored_dirs,
        ))

        summary = {
            "directory": directory,
            "files": 0,
            "chunks": 0,
            "indexed": 0,
            "failed_batches": 0,
            "failed_files": [],
        }
        for path in tqdm(files, desc="Indexing", disable=not show_progress):
            try:
                result = self.index_file(path)
            except OSError as e:
                logger.warning(f"Skipping unreadable file {path}: {e}")
                summary["failed_files"].append(path)
                continue
            summary["files"] += 1
            summary["chunks"] += result["chunks"]
            summary["indexed"] += result["indexed"]
            summary["failed_batches"] += result["failed_batches"]

        logger.info(
            f"Indexed {summary['files']} files under {directory} "
            f"({summary['indexed']} chunks, {summary['failed_batches']} failed batches)"
        )
        self.last_summary = summary
        return summary

    @property
    def is_indexing(self) -> bool:
        return self._background is not None and self._background.is_alive()

    def start_background_index(self, directory: str) -> threading.Thread:
        """Index directory on a daemon thread; the caller does not wait."""

        def run():
            try:
                self.index_directory(directory)
            except Exception as e:
                logger.error(f"Background indexing error: {e}")

        thread = threading.Thread(target=run, name="semantic-index", daemon=True)
        self._background = thread
        thread.start()
        logger.info(f"Started background indexing of {directory}")
        return thread

    def close(self):
        self.store.close()

    def search(self, query: str, limit: int = 5) -> list[dict]:
        """
        Returns:
            [{"id", "score", "document", "metadata": {"source", "chunk_index"}}, ...]
        """
        if not self.store.exists():
            return []
        vector = self.provider.embed(query)
        result = self.store.query(vector, limit)
        if not result["ok"]:
            raise StoreError(result["error"])
        return result["results"]
