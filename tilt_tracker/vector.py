"""
Vector3
Immutable 3-axis value used for raw samples, bias and noise
"""

import math
from dataclasses import dataclass
from typing import Iterable

import numpy as np


@dataclass(frozen=True)
class Vector3:
    """Three real components (x, y, z) with value equality."""

    x: float = 0.0
    y: float = 0.0
    z: float = 0.0

    @classmethod
    def zero(cls) -> 'Vector3':
        return cls(0.0, 0.0, 0.0)

    @classmethod
    def from_iterable(cls, values: Iterable[float]) -> 'Vector3':
        """
        Build a vector from any 3-element iterable (tuple, list, numpy row).

        Raises:
            ValueError: if the iterable does not hold exactly 3 values.
        """
        components = [float(v) for v in values]
        if len(components) != 3:
            raise ValueError(f"Vector3 needs 3 components, got {len(components)}")
        return cls(*components)

    def __add__(self, other: 'Vector3') -> 'Vector3':
        return Vector3(self.x + other.x, self.y + other.y, self.z + other.z)

    def __sub__(self, other: 'Vector3') -> 'Vector3':
        return Vector3(self.x - other.x, self.y - other.y, self.z - other.z)

    def __neg__(self) -> 'Vector3':
        return Vector3(-self.x, -self.y, -self.z)

    def __mul__(self, scalar: float) -> 'Vector3':
        return Vector3(self.x * scalar, self.y * scalar, self.z * scalar)

    __rmul__ = __mul__

    def __iter__(self):
        yield self.x
        yield self.y
        yield self.z

    def magnitude(self) -> float:
        return math.hypot(math.hypot(self.x, self.y), self.z)

    def is_finite(self) -> bool:
        return all(math.isfinite(c) for c in self)

    def as_array(self) -> np.ndarray:
        return np.array([self.x, self.y, self.z], dtype=float)

    def format(self) -> str:
        """Render as ``[x, y, z]`` with 4 decimals for status displays."""
        return f"[{self.x:.4f}, {self.y:.4f}, {self.z:.4f}]"
