"""
Process-wide embedding model shared by ingestion and retrieval.
"""

import threading
from typing import Optional

from langchain_community.embeddings.fastembed import FastEmbedEmbeddings
from langchain_core.embeddings import Embeddings

from docassist.settings import settings
from docassist.utils.logging_config import logger


def _check_dimensions(model: Embeddings, expected: int) -> None:
    # chunks.embedding is a fixed-width vector column.
    width = len(model.embed_query("dimension probe"))
    if width != expected:
        raise ValueError(
            f"Embedding model {settings.EMBEDDING_MODEL} produces {width}-dimensional "
            f"vectors but EMBEDDING_DIMENSIONS is {expected}"
        )


class EmbeddingService:
    _model: Optional[Embeddings] = None
    _lock = threading.Lock()

    @classmethod
    def get_model(cls) -> Embeddings:
        """
        Load the FastEmbed model on first use and hand the same instance to
        every caller afterwards. Loading weights is slow and memory heavy, so
        concurrent first calls wait on the lock instead of loading twice.
        """
        if cls._model is not None:
            return cls._model
        with cls._lock:
            if cls._model is None:
                logger.info(f"Loading embedding model {settings.EMBEDDING_MODEL}")
                try:
                    model = FastEmbedEmbeddings(model_name=settings.EMBEDDING_MODEL)
                    _check_dimensions(model, settings.EMBEDDING_DIMENSIONS)
                except (RuntimeError, ValueError, OSError) as e:
                    logger.error(f"Failed to load embedding model: {e}")
                    raise
                cls._model = model
                logger.info("Embedding model ready")
        return cls._model


def get_embedding_model() -> Embeddings:
    return EmbeddingService.get_model()
