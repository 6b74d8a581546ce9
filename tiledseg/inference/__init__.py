"""
Model access and per-tile inference.
"""

from .model import CallableLoader, ModelInfo, ModelLoader, import_loader, load_model
from .predictor_pool import PredictorPool
from .preprocessing import (
    Divide,
    EnsureType,
    PercentileNormalize,
    Sequential,
    Transform,
    build_pipeline,
    sequential,
)
from .prediction import InputTransform, TilePredictionProcessor

__all__ = [
    # Model
    "CallableLoader",
    "ModelInfo",
    "ModelLoader",
    "import_loader",
    "load_model",
    # Pool
    "PredictorPool",
    # Preprocessing
    "Divide",
    "EnsureType",
    "PercentileNormalize",
    "Sequential",
    "Transform",
    "build_pipeline",
    "sequential",
    # Prediction
    "InputTransform",
    "TilePredictionProcessor",
]
