"""
Per-tile preprocessing transforms.

Transforms operate on (height, width, channels) arrays and are pure: they
never modify their input and keep no state, so one pipeline can be shared
by all worker threads.
"""

from abc import ABC, abstractmethod
from typing import List, Sequence

import numpy as np

from ..config.segmentation_config import TransformSpec
from ..errors import InvalidConfiguration


class Transform(ABC):
    """A numeric transform applied to a tile buffer."""

    @abstractmethod
    def apply(self, buffer: np.ndarray) -> np.ndarray:
        """Return the transformed buffer."""

    def __call__(self, buffer: np.ndarray) -> np.ndarray:
        return self.apply(buffer)


class EnsureType(Transform):
    """Cast to a numeric type."""

    def __init__(self, dtype="float32"):
        try:
            self.dtype = np.dtype(dtype)
        except TypeError as e:
            raise InvalidConfiguration(f"Unknown dtype '{dtype}'") from e

    def apply(self, buffer: np.ndarray) -> np.ndarray:
        return buffer.astype(self.dtype, copy=True)

    def __repr__(self) -> str:
        return f"EnsureType({self.dtype.name})"


class Divide(Transform):
    """Divide by a constant (e.g. 255 for 8-bit images)."""

    def __init__(self, value: float):
        if value == 0:
            raise InvalidConfiguration("divide value must be non-zero")
        self.value = float(value)

    def apply(self, buffer: np.ndarray) -> np.ndarray:
        return buffer / self.value

    def __repr__(self) -> str:
        return f"Divide({self.value})"


class PercentileNormalize(Transform):
    """
    Rescale so that the low and high percentiles map to 0 and 1.

    Args:
        low: Lower percentile (0-100)
        high: Upper percentile (0-100)
        per_channel: Compute percentiles for each channel separately
        eps: Floor for the percentile range, avoiding division by zero on flat tiles
        clip: Clip the result to [0, 1]
    """

    def __init__(
        self,
        low: float = 1.0,
        high: float = 99.0,
        per_channel: bool = True,
        eps: float = 1e-6,
        clip: bool = True,
    ):
        if not (0.0 <= low < high <= 100.0):
            raise InvalidConfiguration(
                f"percentiles must satisfy 0 <= low < high <= 100, got {low}, {high}"
            )
        if eps <= 0:
            raise InvalidConfiguration(f"eps must be > 0, got {eps}")
        self.low = low
        self.high = high
        self.per_channel = per_channel
        self.eps = eps
        self.clip = clip

    def apply(self, buffer: np.ndarray) -> np.ndarray:
        data = buffer.astype(np.float32, copy=False)
        axis = (0, 1) if self.per_channel and data.ndim == 3 else None

        lo, hi = np.percentile(data, [self.low, self.high], axis=axis, keepdims=axis is not None)
        scale = np.maximum(hi - lo, self.eps)

        result = (data - lo) / scale
        if self.clip:
            result = np.clip(result, 0.0, 1.0)
        return result.astype(np.float32, copy=False)

    def __repr__(self) -> str:
        return f"PercentileNormalize({self.low}, {self.high}, per_channel={self.per_channel})"


class Sequential(Transform):
    """Apply transforms in order."""

    def __init__(self, *transforms: Transform):
        self.transforms: List[Transform] = list(transforms)

    def apply(self, buffer: np.ndarray) -> np.ndarray:
        for transform in self.transforms:
            buffer = transform.apply(buffer)
        return buffer

    def __len__(self) -> int:
        return len(self.transforms)

    def __repr__(self) -> str:
        return f"Sequential({', '.join(repr(t) for t in self.transforms)})"


def sequential(*transforms: Transform) -> Sequential:
    """Compose transforms."""
    return Sequential(*transforms)


def build_transform(spec: TransformSpec) -> Transform:
    """Create a transform from its specification."""
    try:
        if spec.name == "ensure_type":
            return EnsureType(**spec.params)
        if spec.name == "percentile":
            return PercentileNormalize(**spec.params)
        if spec.name == "divide":
            return Divide(**spec.params)
    except TypeError as e:
        raise InvalidConfiguration(f"Invalid parameters for '{spec.name}': {e}") from e
    raise InvalidConfiguration(f"Unknown transform '{spec.name}'")


def build_pipeline(specs: Sequence[TransformSpec]) -> Sequential:
    """Create a preprocessing pipeline from transform specifications."""
    return Sequential(*(build_transform(spec) for spec in specs))
