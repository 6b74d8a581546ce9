"""
Prediction for a single tile.

Pipeline per tile: channel selection -> preprocessing -> fit to the model
input size -> predictor (from the pool) -> undo the fit on the output.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

import cv2
import numpy as np

from ..config.segmentation_config import ChannelLayout
from ..errors import ShapeMismatch, TilePredictionError
from ..tiling.models import Tile
from .predictor_pool import PredictorPool
from .preprocessing import Transform

logger = logging.getLogger(__name__)

NONE = "none"
PAD = "pad"
RESIZE = "resize"


@dataclass(frozen=True)
class InputTransform:
    """
    How a tile buffer was fitted to the model input, so it can be undone.

    Attributes:
        mode: "none", "pad" (zeros added bottom/right) or "resize"
        original_shape: (height, width) before fitting
        target_shape: (height, width) handed to the model
    """
    mode: str
    original_shape: Tuple[int, int]
    target_shape: Tuple[int, int]

    @classmethod
    def fit(
        cls,
        shape: Tuple[int, int],
        input_size: Optional[Tuple[int, int]],
        pad_to_input_size: bool = True,
    ) -> "InputTransform":
        """
        Choose how to fit a (height, width) buffer to the model input.

        Args:
            shape: (height, width) of the tile buffer
            input_size: (width, height) the model requires, or None for any size
            pad_to_input_size: Prefer zero padding when the tile fits inside the input

        Returns:
            InputTransform
        """
        h, w = shape
        if input_size is None:
            return cls(NONE, (h, w), (h, w))

        in_w, in_h = input_size
        if (h, w) == (in_h, in_w):
            return cls(NONE, (h, w), (h, w))
        if pad_to_input_size and h <= in_h and w <= in_w:
            return cls(PAD, (h, w), (in_h, in_w))
        return cls(RESIZE, (h, w), (in_h, in_w))

    def apply(self, buffer: np.ndarray) -> np.ndarray:
        """Fit an (H, W, C) buffer to the target shape."""
        if self.mode == NONE:
            return buffer

        h, w = self.original_shape
        th, tw = self.target_shape
        if self.mode == PAD:
            pad = [(0, th - h), (0, tw - w)] + [(0, 0)] * (buffer.ndim - 2)
            return np.pad(buffer, pad, mode="constant")

        resized = cv2.resize(buffer, (tw, th), interpolation=cv2.INTER_LINEAR)
        if resized.ndim == 2 and buffer.ndim == 3:
            resized = resized[:, :, np.newaxis]
        return resized

    def invert(self, output: np.ndarray) -> np.ndarray:
        """
        Map a (C, H, W) output at the target shape back to the original shape.

        Resized outputs use nearest-neighbour sampling so label values survive.
        """
        if self.mode == NONE:
            return output

        h, w = self.original_shape
        if self.mode == PAD:
            return output[:, :h, :w]

        th, tw = self.target_shape
        rows = np.minimum((np.arange(h) + 0.5) * th / h, th - 1).astype(np.intp)
        cols = np.minimum((np.arange(w) + 0.5) * tw / w, tw - 1).astype(np.intp)
        return output[:, rows[:, np.newaxis], cols[np.newaxis, :]]


def to_model_layout(buffer: np.ndarray, layout: ChannelLayout) -> np.ndarray:
    """Convert an (H, W, C) buffer to the layout the model expects."""
    if layout == ChannelLayout.CHW:
        return np.ascontiguousarray(buffer.transpose(2, 0, 1))
    return buffer


def from_model_layout(output: np.ndarray, layout: ChannelLayout) -> np.ndarray:
    """Normalize a model output to (C, H, W)."""
    output = np.asarray(output)
    if output.ndim == 4 and output.shape[0] == 1:
        output = output[0]
    if output.ndim == 2:
        return output[np.newaxis]
    if output.ndim != 3:
        raise ShapeMismatch(f"Expected a 2D or 3D model output, got shape {output.shape}")
    if layout == ChannelLayout.HWC:
        return output.transpose(2, 0, 1)
    return output


class TilePredictionProcessor:
    """
    Runs the model on one tile.

    Example:
        >>> processor = TilePredictionProcessor(pool, preprocessing, input_size=(256, 256))
        >>> output = processor.process(tile, pixels)  # (C, tile.height, tile.width)
    """

    def __init__(
        self,
        pool: PredictorPool,
        preprocessing: Optional[Transform] = None,
        input_size: Optional[Tuple[int, int]] = None,
        pad_to_input_size: bool = True,
        layout: ChannelLayout = ChannelLayout.CHW,
        output_layout: ChannelLayout = ChannelLayout.CHW,
        channels: Optional[Sequence[int]] = None,
        timeout: Optional[float] = None,
    ):
        """
        Initialize the processor.

        Args:
            pool: Pool the predictor handles come from
            preprocessing: Transform applied to the (H, W, C) tile buffer
            input_size: (width, height) the model requires, or None for any size
            pad_to_input_size: Pad small tiles instead of resizing them
            layout: Layout of the buffer handed to the predictor
            output_layout: Layout of the buffer the predictor returns
            channels: Input channels to keep (None = all)
            timeout: Seconds to wait for a predictor (None = pool default)
        """
        self.pool = pool
        self.preprocessing = preprocessing
        self.input_size = input_size
        self.pad_to_input_size = pad_to_input_size
        self.layout = ChannelLayout(layout)
        self.output_layout = ChannelLayout(output_layout)
        self.channels = list(channels) if channels is not None else None
        self.timeout = timeout

    def select_channels(self, pixels: np.ndarray) -> np.ndarray:
        """Return an (H, W, C) buffer restricted to the configured channels."""
        if pixels.ndim == 2:
            pixels = pixels[:, :, np.newaxis]
        if self.channels is None:
            return pixels
        if max(self.channels) >= pixels.shape[2]:
            raise ShapeMismatch(
                f"Channel {max(self.channels)} requested but image has {pixels.shape[2]}"
            )
        return pixels[:, :, self.channels]

    def process(self, tile: Tile, pixels: np.ndarray) -> np.ndarray:
        """
        Predict one tile.

        Args:
            tile: Tile being processed
            pixels: (H, W) or (H, W, C) pixels covering ``tile.bounds``

        Returns:
            Output (C, H, W) aligned with ``tile.bounds``

        Raises:
            ShapeMismatch: If pixels or model output have an unexpected shape
            TilePredictionError: If the predictor fails
            ResourceExhausted: If no predictor becomes available
        """
        try:
            buffer = self.select_channels(pixels)
            if buffer.shape[:2] != (tile.height, tile.width):
                raise ShapeMismatch(
                    f"Pixels {buffer.shape[:2]} do not match tile size "
                    f"{(tile.height, tile.width)}"
                )

            if self.preprocessing is not None:
                buffer = self.preprocessing.apply(buffer)

            fit = InputTransform.fit(buffer.shape[:2], self.input_size, self.pad_to_input_size)
            if fit.mode != NONE:
                logger.debug(
                    f"{tile.id}: {fit.mode} {fit.original_shape} -> {fit.target_shape}"
                )
            model_input = to_model_layout(fit.apply(buffer), self.layout)

            with self.pool.predictor(self.timeout) as handle:
                try:
                    raw = handle.predict(model_input)
                except Exception as e:
                    raise TilePredictionError(
                        f"Prediction failed: {e}", tile.id, tile.bounds
                    ) from e

            output = from_model_layout(raw, self.output_layout)
            if output.shape[1:] != fit.target_shape:
                raise ShapeMismatch(
                    f"Model output {output.shape[1:]} does not match input {fit.target_shape}"
                )
            return fit.invert(output)

        except ShapeMismatch as e:
            if e.tile_id is None:
                raise ShapeMismatch(str(e), tile.id, tile.bounds) from e
            raise
