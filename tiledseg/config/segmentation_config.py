"""
Configuration for tiled instance segmentation.

Loaded from code, dictionaries or YAML files. All validation happens at
construction time so that an invalid configuration is rejected before any
model is loaded or any tile is read.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Any, List, Optional

from ..errors import InvalidConfiguration


class Device(str, Enum):
    """Compute device a predictor is bound to."""
    CPU = "cpu"
    GPU = "gpu"
    CUDA = "cuda"
    MPS = "mps"


class ChannelLayout(str, Enum):
    """Memory layout of a multi-channel tile buffer."""
    CHW = "CHW"
    HWC = "HWC"


CONVERTERS = ("labels", "threshold")
TRANSFORMS = ("ensure_type", "percentile", "divide")


@dataclass
class TransformSpec:
    """
    One preprocessing step.

    Attributes:
        name: Transform name (ensure_type, percentile, divide)
        params: Keyword arguments passed to the transform
    """
    name: str
    params: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if self.name not in TRANSFORMS:
            raise InvalidConfiguration(
                f"Unknown transform '{self.name}', expected one of {TRANSFORMS}"
            )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {"name": self.name, "params": dict(self.params)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TransformSpec":
        """Create from dictionary."""
        if "name" not in data:
            raise InvalidConfiguration(f"Transform spec is missing 'name': {data}")
        return cls(name=data["name"], params=dict(data.get("params", {})))


def default_preprocessing() -> List[TransformSpec]:
    """Float conversion followed by 1-99 percentile normalization."""
    return [
        TransformSpec("ensure_type", {"dtype": "float32"}),
        TransformSpec("percentile", {"low": 1.0, "high": 99.0, "eps": 1e-6}),
    ]


@dataclass
class SegmentationConfig:
    """
    Configuration for a segmentation run.

    Attributes:
        tile_width: Tile width at processing resolution, including padding
        tile_height: Tile height at processing resolution, including padding
        padding: Context added to each side of the tile interior
        downsample: Downsample factor, or None to derive it from pixel size
        target_pixel_size: Pixel size (microns) the model was trained at
        device: Device predictors are bound to
        num_threads: Worker threads processing tiles
        num_predictors: Predictor handles in the pool
        merge_threshold: Minimum shared-boundary overlap to fuse instances (0-1)
        pad_to_input_size: Pad tiles up to the model's fixed input size
        channel_layout: Layout of the buffer handed to the predictor
        output_layout: Layout of the buffer returned by the predictor
        channels: Input channel indices to use (None = all)
        output_channels: Output channels that become objects (None = all)
        converter: Output conversion strategy (labels, threshold)
        probability_threshold: Foreground threshold for the threshold converter
        min_object_area: Merged objects smaller than this (pixels) are dropped
        make_measurements: Attach measurements to the final instances
        predictor_timeout: Seconds to wait for a free predictor (None = forever)
        preprocessing: Ordered preprocessing transforms
    """
    tile_width: int = 512
    tile_height: int = 512
    padding: int = 16
    downsample: Optional[float] = None
    target_pixel_size: float = 0.5
    device: Device = Device.CPU
    num_threads: int = 1
    num_predictors: int = 1
    merge_threshold: float = 0.25
    pad_to_input_size: bool = True
    channel_layout: ChannelLayout = ChannelLayout.CHW
    output_layout: ChannelLayout = ChannelLayout.CHW
    channels: Optional[List[int]] = None
    output_channels: Optional[List[int]] = None
    converter: str = "labels"
    probability_threshold: float = 0.5
    min_object_area: int = 0
    make_measurements: bool = False
    predictor_timeout: Optional[float] = None
    preprocessing: List[TransformSpec] = field(default_factory=default_preprocessing)

    def __post_init__(self):
        """Validate configuration."""
        self._coerce()
        self._validate()

    def _coerce(self):
        """Accept plain strings and dicts where enums and specs are expected."""
        try:
            self.device = Device(self.device)
            self.channel_layout = ChannelLayout(self.channel_layout)
            self.output_layout = ChannelLayout(self.output_layout)
        except ValueError as e:
            raise InvalidConfiguration(str(e)) from e
        self.preprocessing = [
            spec if isinstance(spec, TransformSpec) else TransformSpec.from_dict(spec)
            for spec in self.preprocessing
        ]

    def _validate(self):
        if self.padding < 0:
            raise InvalidConfiguration(f"padding must be >= 0, got {self.padding}")
        if self.tile_width - 2 * self.padding <= 0 or self.tile_height - 2 * self.padding <= 0:
            raise InvalidConfiguration(
                f"tile size ({self.tile_width}x{self.tile_height}) must be greater "
                f"than 2 x padding ({self.padding})"
            )
        if self.downsample is not None and self.downsample <= 0:
            raise InvalidConfiguration(f"downsample must be > 0, got {self.downsample}")
        if self.target_pixel_size <= 0:
            raise InvalidConfiguration(
                f"target_pixel_size must be > 0, got {self.target_pixel_size}"
            )
        if self.num_threads < 1:
            raise InvalidConfiguration(f"num_threads must be >= 1, got {self.num_threads}")
        if self.num_predictors < 1:
            raise InvalidConfiguration(
                f"num_predictors must be >= 1, got {self.num_predictors}"
            )
        if not (0.0 <= self.merge_threshold <= 1.0):
            raise InvalidConfiguration(
                f"merge_threshold must be between 0.0 and 1.0, got {self.merge_threshold}"
            )
        if self.converter not in CONVERTERS:
            raise InvalidConfiguration(
                f"converter must be one of {CONVERTERS}, got '{self.converter}'"
            )
        if not (0.0 <= self.probability_threshold <= 1.0):
            raise InvalidConfiguration(
                f"probability_threshold must be between 0.0 and 1.0, "
                f"got {self.probability_threshold}"
            )
        if self.min_object_area < 0:
            raise InvalidConfiguration(
                f"min_object_area must be >= 0, got {self.min_object_area}"
            )
        if self.predictor_timeout is not None and self.predictor_timeout <= 0:
            raise InvalidConfiguration(
                f"predictor_timeout must be > 0, got {self.predictor_timeout}"
            )
        for name in ("channels", "output_channels"):
            value = getattr(self, name)
            if value is None:
                continue
            if len(value) == 0:
                raise InvalidConfiguration(f"{name} must not be empty")
            if any(c < 0 for c in value):
                raise InvalidConfiguration(f"{name} must be non-negative, got {value}")

    @property
    def interior_width(self) -> int:
        """Tile width without padding."""
        return self.tile_width - 2 * self.padding

    @property
    def interior_height(self) -> int:
        """Tile height without padding."""
        return self.tile_height - 2 * self.padding

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "tile_width": self.tile_width,
            "tile_height": self.tile_height,
            "padding": self.padding,
            "downsample": self.downsample,
            "target_pixel_size": self.target_pixel_size,
            "device": self.device.value,
            "num_threads": self.num_threads,
            "num_predictors": self.num_predictors,
            "merge_threshold": self.merge_threshold,
            "pad_to_input_size": self.pad_to_input_size,
            "channel_layout": self.channel_layout.value,
            "output_layout": self.output_layout.value,
            "channels": self.channels,
            "output_channels": self.output_channels,
            "converter": self.converter,
            "probability_threshold": self.probability_threshold,
            "min_object_area": self.min_object_area,
            "make_measurements": self.make_measurements,
            "predictor_timeout": self.predictor_timeout,
            "preprocessing": [spec.to_dict() for spec in self.preprocessing],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SegmentationConfig":
        """Create from dictionary (e.g., from YAML config)."""
        known = set(cls.__dataclass_fields__)
        unknown = set(data) - known
        if unknown:
            raise InvalidConfiguration(f"Unknown configuration keys: {sorted(unknown)}")

        kwargs = dict(data)
        if "preprocessing" in kwargs:
            kwargs["preprocessing"] = [
                TransformSpec.from_dict(spec) for spec in kwargs["preprocessing"] or []
            ]
        return cls(**kwargs)

    @classmethod
    def from_yaml(cls, yaml_path: str) -> "SegmentationConfig":
        """Load configuration from YAML file."""
        import yaml

        with open(yaml_path, "r") as f:
            data = yaml.safe_load(f) or {}

        return cls.from_dict(data.get("segmentation", data))

    @classmethod
    def default(cls) -> "SegmentationConfig":
        """Create default configuration."""
        return cls()
