"""Deterministic embeddings for stored content.

Similarity search is served elsewhere; the store only needs a stable vector
per embedded row so that whatever index sits on top can be rebuilt from the
database alone.
"""

from __future__ import annotations

import hashlib
import math
import re
from array import array
from dataclasses import dataclass
from typing import Iterable

_TOKEN_RE = re.compile(r"\w+")
_DIM_SUFFIX_RE = re.compile(r"-(\d+)$")
DEFAULT_DIM = 384


@dataclass(slots=True)
class EmbeddingBatch:
    vectors: list[list[float]]
    model: str
    dim: int


class EmbeddingModel:
    """Hashed bag-of-words embedding model with deterministic output.

    The dimension is taken from a trailing ``-<n>`` in the model name
    (``hashed-256``), defaulting to 384.
    """

    _instances: dict[str, "EmbeddingModel"] = {}

    def __init__(self, model_name: str, dim: int | None = None) -> None:
        self.model_name = model_name
        if dim is None:
            match = _DIM_SUFFIX_RE.search(model_name)
            dim = int(match.group(1)) if match else DEFAULT_DIM
        if dim <= 0:
            raise ValueError("Embedding dimension must be positive")
        self._dim = dim

    @classmethod
    def get(cls, model_name: str) -> "EmbeddingModel":
        key = model_name or "hashed"
        if key not in cls._instances:
            cls._instances[key] = EmbeddingModel(model_name=key)
        return cls._instances[key]

    @property
    def dim(self) -> int:
        return self._dim

    def encode(self, texts: Iterable[str]) -> EmbeddingBatch:
        vectors: list[list[float]] = []
        for text in texts:
            vector = [0.0] * self._dim
            for token in _tokenize(text):
                vector[_hash_token(token, self._dim)] += 1.0
            _normalize(vector)
            vectors.append(vector)
        return EmbeddingBatch(vectors=vectors, model=self.model_name, dim=self._dim)

    @staticmethod
    def as_bytes(vector: list[float]) -> bytes:
        return array("f", vector).tobytes()

    @staticmethod
    def from_bytes(payload: bytes) -> list[float]:
        floats = array("f")
        floats.frombytes(payload)
        return list(floats)


def _tokenize(text: str) -> list[str]:
    return _TOKEN_RE.findall(text.lower())


def _hash_token(token: str, dim: int) -> int:
    digest = hashlib.blake2b(token.encode("utf-8"), digest_size=8).digest()
    return int.from_bytes(digest, "big") % dim


def _normalize(vector: list[float]) -> None:
    norm = math.sqrt(sum(value * value for value in vector))
    if norm == 0:
        return
    inv = 1.0 / norm
    for idx, value in enumerate(vector):
        vector[idx] = value * inv


__all__ = ["EmbeddingModel", "EmbeddingBatch"]
