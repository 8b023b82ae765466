"""
Standard embedding type for nexusrag.

EmbeddingVector is the only vector format passed between components.
"""

from dataclasses import dataclass
from typing import List, Optional, Sequence, Union

import numpy as np

from nexusrag.core.exceptions import DimensionMismatchError
from nexusrag.core.logging import logger


@dataclass
class EmbeddingVector:
    """Normalized dense vector.

    Internally a 1-D float64 NumPy array of unit length, so cosine
    similarity is a dot product.

    Attributes:
        _data: Normalized NumPy array (float64)
    """

    _data: np.ndarray

    def __init__(
        self, data: Union[np.ndarray, Sequence[float]], dimension: Optional[int] = None
    ):
        """
        Args:
            data: Vector as NumPy array or sequence of floats
            dimension: Expected size; checked when given

        Raises:
            DimensionMismatchError: Wrong shape or size
        """
        array = np.asarray(data, dtype=np.float64)

        if array.ndim != 1 or array.shape[0] == 0:
            raise DimensionMismatchError(
                f"Embedding must be a non-empty 1-D vector, got shape {array.shape}",
                context={"shape": list(array.shape)},
            )
        if dimension is not None and array.shape[0] != dimension:
            raise DimensionMismatchError(
                f"Embedding must have {dimension} dimensions, has {array.shape[0]}",
                context={"expected": dimension, "actual": int(array.shape[0])},
            )
        if not np.all(np.isfinite(array)):
            raise DimensionMismatchError("Embedding contains NaN or infinite components")

        self._data = array
        self._normalize()

    def _normalize(self) -> None:
        """L2 normalization. A zero vector becomes the unit vector on axis 0."""
        norm = np.linalg.norm(self._data)
        if norm > 0:
            self._data = self._data / norm
        else:
            logger.warning("Normalizing zero vector, using default unit vector")
            self._data = np.zeros(self._data.shape[0], dtype=np.float64)
            self._data[0] = 1.0

    @property
    def numpy(self) -> np.ndarray:
        return self._data

    @property
    def list(self) -> List[float]:
        return self._data.tolist()

    @property
    def dimension(self) -> int:
        return int(self._data.shape[0])

    def to_bytes(self) -> bytes:
        """Little-endian float64 bytes for SQLite BLOB columns."""
        return self._data.astype("<f8").tobytes()

    @classmethod
    def from_bytes(cls, blob: bytes, dimension: Optional[int] = None) -> "EmbeddingVector":
        return cls(np.frombuffer(blob, dtype="<f8"), dimension=dimension)

    def cosine_similarity(self, other: "EmbeddingVector") -> float:
        """Dot product of two unit vectors, in [-1, 1]."""
        if other.dimension != self.dimension:
            raise DimensionMismatchError(
                f"Cannot compare vectors of size {self.dimension} and {other.dimension}"
            )
        return float(np.clip(np.dot(self._data, other._data), -1.0, 1.0))

    def cosine_distance(self, other: "EmbeddingVector") -> float:
        """1 - cosine similarity, in [0, 2]."""
        return 1.0 - self.cosine_similarity(other)
