"""
Model metadata and loading.

The neural-network runtime is not part of this package. A model is reached
through a ModelLoader that turns a path and a device into a factory of
predictor handles:

    factory = loader.load(model_path, device)
    handle = factory.new_predictor()
    output = handle.predict(tile_array)

Handles are stateful and not thread-safe; PredictorPool hands each one to a
single caller at a time.
"""

import importlib
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

from ..config.segmentation_config import Device
from ..errors import InvalidConfiguration, MalformedModelError, ModelLoadError, ModelNotFoundError

logger = logging.getLogger(__name__)

METADATA_FILENAMES = ("model.yaml", "rdf.yaml")


@dataclass
class ModelInfo:
    """
    Metadata describing a model's input and output contract.

    Attributes:
        name: Model name
        input_width: Fixed input width, or None if any width is accepted
        input_height: Fixed input height, or None if any height is accepted
        num_channels: Number of input channels, or None if any number is accepted
        pixel_size: Pixel size (microns) the model was trained at
        output_names: Names of the output channels (e.g. nuclei, cells)
    """
    name: str = "model"
    input_width: Optional[int] = None
    input_height: Optional[int] = None
    num_channels: Optional[int] = None
    pixel_size: Optional[float] = None
    output_names: List[str] = field(default_factory=list)

    @property
    def has_fixed_input(self) -> bool:
        return self.input_width is not None and self.input_height is not None

    def check_channels(self, n_channels: int) -> None:
        """Raise InvalidConfiguration if the model cannot take ``n_channels`` inputs."""
        if self.num_channels is not None and self.num_channels != n_channels:
            raise InvalidConfiguration(
                f"Model '{self.name}' expects {self.num_channels} channels "
                f"but {n_channels} were selected"
            )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "name": self.name,
            "input_width": self.input_width,
            "input_height": self.input_height,
            "num_channels": self.num_channels,
            "pixel_size": self.pixel_size,
            "output_names": list(self.output_names),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ModelInfo":
        """Create from dictionary."""
        return cls(
            name=data.get("name", "model"),
            input_width=data.get("input_width"),
            input_height=data.get("input_height"),
            num_channels=data.get("num_channels"),
            pixel_size=data.get("pixel_size"),
            output_names=list(data.get("output_names", [])),
        )

    @classmethod
    def from_yaml(cls, yaml_path: Union[str, Path]) -> "ModelInfo":
        """Load metadata from a YAML file."""
        import yaml

        try:
            with open(yaml_path, "r") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise MalformedModelError(f"Invalid model metadata in {yaml_path}: {e}") from e

        return cls.from_dict(data.get("model", data))

    @classmethod
    def for_model_path(cls, model_path: Union[str, Path]) -> "ModelInfo":
        """
        Find and load metadata for a model.

        Looks for model.yaml / rdf.yaml inside a model directory, or a YAML
        file with the same stem next to a model file. Falls back to defaults
        named after the model.
        """
        path = Path(model_path)
        if path.is_dir():
            candidates = [path / name for name in METADATA_FILENAMES]
        else:
            candidates = [path.with_suffix(".yaml")] + [
                path.parent / name for name in METADATA_FILENAMES
            ]

        for candidate in candidates:
            if candidate.is_file():
                logger.debug(f"Reading model metadata from {candidate}")
                return cls.from_yaml(candidate)

        return cls(name=path.stem)


class ModelLoader(ABC):
    """Loads a model and returns a factory of predictor handles."""

    @abstractmethod
    def load(self, model_path: Path, device: Device) -> Any:
        """
        Load a model.

        Args:
            model_path: Path to the model artifact
            device: Device predictors will run on

        Returns:
            Object with ``new_predictor()`` and optionally ``close()``
        """


class CallableLoader(ModelLoader):
    """Adapts a plain function ``fn(model_path, device) -> factory``."""

    def __init__(self, fn: Callable[[Path, Device], Any]):
        self.fn = fn

    def load(self, model_path: Path, device: Device) -> Any:
        return self.fn(model_path, device)


def import_loader(reference: str) -> ModelLoader:
    """
    Resolve a loader from a "package.module:attribute" reference.

    The attribute may be a ModelLoader instance, a ModelLoader subclass
    (instantiated without arguments) or a plain function.
    """
    module_name, _, attr = reference.partition(":")
    if not module_name or not attr:
        raise InvalidConfiguration(
            f"Loader reference must look like 'module:attribute', got '{reference}'"
        )

    try:
        module = importlib.import_module(module_name)
        target = getattr(module, attr)
    except (ImportError, AttributeError) as e:
        raise ModelLoadError(f"Cannot import model loader '{reference}': {e}") from e

    if isinstance(target, ModelLoader):
        return target
    if isinstance(target, type) and issubclass(target, ModelLoader):
        return target()
    if callable(target):
        return CallableLoader(target)
    raise ModelLoadError(f"'{reference}' is not a model loader")


def load_model(
    model_path: Union[str, Path],
    device: Union[Device, str],
    loader: Union[ModelLoader, Callable[[Path, Device], Any]],
) -> Any:
    """
    Load a model through a loader, mapping failures onto ModelLoadError.

    Raises:
        ModelNotFoundError: If the path does not exist
        MalformedModelError: If the loader fails on an existing path
    """
    path = Path(model_path)
    device = Device(device)

    if not path.exists():
        raise ModelNotFoundError(f"Model not found: {path}")

    if not isinstance(loader, ModelLoader):
        loader = CallableLoader(loader)

    logger.info(f"Loading model {path} on {device.value}")
    try:
        factory = loader.load(path, device)
    except ModelLoadError:
        raise
    except Exception as e:
        raise MalformedModelError(f"Unable to load model {path}: {e}") from e

    if factory is None or not hasattr(factory, "new_predictor"):
        raise MalformedModelError(f"Loader returned no predictor factory for {path}")
    return factory
