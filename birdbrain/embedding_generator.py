"""
Embedding provider for bookmarked posts.

Uses a local SentenceTransformer model (default all-MiniLM-L6-v2, 384 dims).
The model loads on first use; encoding runs in a worker thread so the event
loop stays responsive. Vectors are L2-normalized so dot product equals cosine
similarity.

A model that cannot be loaded raises EmbeddingError; errors raised while
encoding propagate unchanged to the caller.
"""

import asyncio
import logging
import threading
from typing import List, Optional

import numpy as np
import torch
from sentence_transformers import SentenceTransformer

from birdbrain.config_schema import EmbeddingConfig
from birdbrain.exceptions import EmbeddingError, wrap_exception

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "sentence-transformers/all-MiniLM-L6-v2"


def detect_device() -> str:
    """Pick the best available torch device."""
    if torch.cuda.is_available():
        logger.info("Using CUDA GPU acceleration")
        return "cuda"
    if torch.backends.mps.is_available():
        logger.info("Using Apple Silicon MPS acceleration")
        return "mps"
    logger.info("Using CPU (no GPU acceleration)")
    return "cpu"


class EmbeddingProvider:
    """Lazily-loaded SentenceTransformer wrapper with an async interface."""

    def __init__(
        self,
        model: str = DEFAULT_MODEL,
        batch_size: int = 32,
        device: Optional[str] = None,
    ):
        if batch_size <= 0:
            raise ValueError(f"batch_size must be positive, got {batch_size}")

        self.model_name = model
        self.batch_size = batch_size
        self.device = device
        self._model: Optional[SentenceTransformer] = None
        self._dimensions: Optional[int] = None
        self._load_lock = threading.Lock()

    @classmethod
    def from_config(cls, config: EmbeddingConfig) -> "EmbeddingProvider":
        return cls(model=config.model, batch_size=config.batch_size, device=config.device)

    @property
    def is_loaded(self) -> bool:
        return self._model is not None

    def _get_model(self) -> SentenceTransformer:
        with self._load_lock:
            if self._model is None:
                device = self.device or detect_device()
                logger.info(f"Loading embedding model: {self.model_name} on {device}")
                try:
                    self._model = SentenceTransformer(self.model_name, device=device)
                except (OSError, ValueError) as e:
                    raise wrap_exception(
                        e, EmbeddingError, f"Failed to load embedding model {self.model_name}"
                    ) from e
                self._dimensions = self._model.get_sentence_embedding_dimension()
                logger.info(f"Embedding model loaded: {self.model_name} ({self._dimensions}D)")
            return self._model

    @property
    def dimensions(self) -> int:
        """Vector dimension of the model (loads the model if needed)."""
        if self._dimensions is None:
            self._get_model()
        return self._dimensions

    def _encode(self, texts: List[str]) -> np.ndarray:
        model = self._get_model()
        embeddings = model.encode(
            texts,
            batch_size=self.batch_size,
            show_progress_bar=False,
            convert_to_numpy=True,
            normalize_embeddings=True,
        )
        return np.asarray(embeddings, dtype=np.float32)

    def embed_batch_sync(self, texts: List[str]) -> List[List[float]]:
        if not texts:
            return []
        return self._encode(list(texts)).tolist()

    async def embed(self, text: str) -> List[float]:
        """Embed one text."""
        vectors = await asyncio.to_thread(self.embed_batch_sync, [text])
        return vectors[0]

    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        """Embed many texts, preserving order. An empty list never loads the model."""
        if not texts:
            return []
        logger.debug(f"Embedding batch of {len(texts)} texts")
        return await asyncio.to_thread(self.embed_batch_sync, texts)
