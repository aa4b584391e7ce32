from __future__ import annotations

import hashlib
import logging
import math
import re
from dataclasses import dataclass

logger = logging.getLogger(__name__)

_TOKEN = re.compile(r"[\w\-]+", re.UNICODE)


class Embedder:
    dim: int

    def embed(self, texts: list[str]) -> list[list[float]]:
        raise NotImplementedError

    def embed_one(self, text: str) -> list[float]:
        return self.embed([text])[0]


@dataclass
class StubEmbedder(Embedder):
    """Hashed bag-of-words vectors.

    Deterministic across processes; texts sharing words land near each other.
    """

    dim: int = 384

    def _bucket(self, token: str) -> tuple[int, float]:
        h = hashlib.blake2b(token.encode("utf-8"), digest_size=8).digest()
        n = int.from_bytes(h, "big")
        return n % self.dim, (1.0 if (n >> 63) & 1 else -1.0)

    def embed(self, texts: list[str]) -> list[list[float]]:
        out: list[list[float]] = []
        for text in texts:
            v = [0.0] * self.dim
            for token in _TOKEN.findall(text.lower()):
                idx, sign = self._bucket(token)
                v[idx] += sign
            norm = math.sqrt(sum(x * x for x in v))
            out.append([x / norm for x in v] if norm else v)
        return out


class SentenceTransformersEmbedder(Embedder):
    def __init__(self, model_name: str):
        from sentence_transformers import SentenceTransformer

        self._model = SentenceTransformer(model_name)
        self.dim = int(self._model.get_sentence_embedding_dimension() or 384)

    def embed(self, texts: list[str]) -> list[list[float]]:
        return [v.tolist() for v in self._model.encode(texts, normalize_embeddings=True)]


def build_embedder(*, st_model: str | None, dim: int) -> Embedder:
    """sentence-transformers when a model is named and loadable, the stub otherwise."""
    if not st_model:
        return StubEmbedder(dim=dim)
    try:
        return SentenceTransformersEmbedder(st_model)
    except (ImportError, OSError) as e:
        logger.warning("Embedding model %s unavailable, falling back to hashed vectors: %s", st_model, e)
        return StubEmbedder(dim=dim)
