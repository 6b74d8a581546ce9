"""
FastAPI server for tiled segmentation.

Provides REST endpoints for inspecting tile grids and segmenting uploaded
images with a model configured through environment variables:

    TILEDSEG_MODEL_PATH    path to the model
    TILEDSEG_MODEL_LOADER  loader as 'module:callable'
    TILEDSEG_CONFIG        optional YAML configuration file
    TILEDSEG_CORS_ORIGINS  comma-separated allowed origins (default: *)

Run with: uvicorn tiledseg.server:app
"""

import logging
import os
from typing import List, Optional

import cv2
import numpy as np
from fastapi import FastAPI, File, HTTPException, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from . import __version__
from .config.segmentation_config import SegmentationConfig
from .errors import InvalidConfiguration, ModelLoadError, TiledSegError
from .inference.model import import_loader
from .pipeline import SegmentationTask
from .sources import ArraySource
from .tiling.tiler import Tiler

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Tiled Segmentation API",
    description="Tiled instance segmentation of large microscopy images",
    version=__version__,
)

# Allow browser clients on other origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=os.environ.get("TILEDSEG_CORS_ORIGINS", "*").split(","),
    allow_methods=["*"],
    allow_headers=["*"],
)


class HealthResponse(BaseModel):
    """Health check response"""
    status: str
    version: str
    model_configured: bool


class TileGridRequest(BaseModel):
    """Request body for computing a tile grid"""
    width: int
    height: int
    tile_width: int = 512
    tile_height: int = 512
    padding: int = 16


class TileGridResponse(BaseModel):
    """Tile grid for a region"""
    tile_count: int
    tiles: List[dict]


def load_server_config() -> SegmentationConfig:
    """Configuration from TILEDSEG_CONFIG, or the defaults."""
    path = os.environ.get("TILEDSEG_CONFIG")
    if path:
        return SegmentationConfig.from_yaml(path)
    return SegmentationConfig()


def model_settings():
    """(model path, loader reference) from the environment, or (None, None)."""
    return os.environ.get("TILEDSEG_MODEL_PATH"), os.environ.get("TILEDSEG_MODEL_LOADER")


@app.get("/health", response_model=HealthResponse)
def health_check():
    """Health check endpoint"""
    path, loader = model_settings()
    return HealthResponse(
        status="healthy",
        version=__version__,
        model_configured=bool(path and loader),
    )


@app.get("/segment/config")
def get_config():
    """Get the active segmentation configuration"""
    try:
        return load_server_config().to_dict()
    except InvalidConfiguration as e:
        raise HTTPException(status_code=500, detail=str(e))


@app.post("/tiles", response_model=TileGridResponse)
def compute_tile_grid(request: TileGridRequest):
    """Compute the tiles covering a region of the given size."""
    try:
        tiler = Tiler(
            tile_width=request.tile_width,
            tile_height=request.tile_height,
            padding=request.padding,
        )
        tiles = tiler.compute_tiles(request.width, request.height)
    except InvalidConfiguration as e:
        raise HTTPException(status_code=400, detail=str(e))

    return TileGridResponse(tile_count=len(tiles), tiles=[t.to_dict() for t in tiles])


@app.post("/segment/upload")
def segment_upload(
    file: UploadFile = File(...),
    pixel_size: Optional[float] = None,
    make_measurements: bool = False,
):
    """
    Segment an uploaded image file.

    Accepts any format OpenCV can decode (PNG, TIFF, JPEG).
    """
    path, loader = model_settings()
    if not (path and loader):
        raise HTTPException(status_code=503, detail="No model configured")

    logger.info(f"Received file upload: {file.filename}")
    contents = file.file.read()
    image = cv2.imdecode(np.frombuffer(contents, np.uint8), cv2.IMREAD_UNCHANGED)
    if image is None:
        raise HTTPException(status_code=400, detail="Failed to decode uploaded image")

    logger.info(f"Image decoded: {image.shape[1]}x{image.shape[0]}")

    try:
        config = load_server_config()
        if make_measurements:
            config.make_measurements = True
        task = SegmentationTask(config=config, model_path=path, loader=import_loader(loader))
        objects = task.run(ArraySource(image, pixel_size=pixel_size))
    except InvalidConfiguration as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ModelLoadError as e:
        logger.error(f"Model error: {e}")
        raise HTTPException(status_code=503, detail=str(e))
    except TiledSegError as e:
        logger.error(f"Segmentation error: {e}")
        raise HTTPException(status_code=500, detail=str(e))

    logger.info(f"Segmentation complete: {len(objects)} objects")
    return {
        "image_dimensions": {"width": image.shape[1], "height": image.shape[0]},
        "object_count": len(objects),
        "objects": [obj.to_dict() for obj in objects],
    }


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(level=logging.INFO)
    uvicorn.run(app, host="0.0.0.0", port=8000)
