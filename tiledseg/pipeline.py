"""
Segmentation task orchestration.

Drives one run over a region: compute tiles, predict and convert every tile
on a worker pool, then merge all tile results after a barrier.

Example:
    >>> task = SegmentationTask(config, model_factory=factory)
    >>> objects = task.run(ArraySource(image, pixel_size=0.25))
"""

import logging
import threading
from concurrent.futures import Executor, Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from .config.segmentation_config import SegmentationConfig
from .conversion.converters import OutputConverter, get_converter
from .errors import InvalidConfiguration, SegmentationCancelled, TiledSegError, TilePredictionError
from .inference.model import ModelInfo, ModelLoader, load_model
from .inference.prediction import TilePredictionProcessor
from .inference.predictor_pool import PredictorPool
from .inference.preprocessing import build_pipeline
from .measurements import make_measurements
from .sources import ImageSource, ObjectSink, read_processing_rect
from .tiling.merging import merge_instances
from .tiling.models import ObjectInstance, Region, Tile, TileResult
from .tiling.tiler import Tiler, downsample_for_pixel_size

logger = logging.getLogger(__name__)


@dataclass
class ProcessingProgress:
    """Progress information for a segmentation run."""
    total_tiles: int
    completed_tiles: int
    current_tile: Optional[str] = None
    status: str = "pending"  # pending, processing, merging, complete, error, cancelled
    error_message: Optional[str] = None

    @property
    def progress_percent(self) -> float:
        """Get completion percentage."""
        if self.total_tiles == 0:
            return 100.0
        return (self.completed_tiles / self.total_tiles) * 100

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "total_tiles": self.total_tiles,
            "completed_tiles": self.completed_tiles,
            "current_tile": self.current_tile,
            "status": self.status,
            "progress_percent": self.progress_percent,
            "error_message": self.error_message,
        }


class SegmentationTask:
    """
    Runs tiled segmentation over a region of an image.

    The model is given either as an already loaded factory of predictor
    handles, or as a path plus a loader; in the second case the model is
    loaded at the start of each run and closed at its end.
    """

    def __init__(
        self,
        config: Optional[SegmentationConfig] = None,
        model_factory: Any = None,
        model_path: Optional[Union[str, Path]] = None,
        loader: Optional[Union[ModelLoader, Callable]] = None,
        model_info: Optional[ModelInfo] = None,
        progress_callback: Optional[Callable[[ProcessingProgress], None]] = None,
    ):
        """
        Initialize the task.

        Args:
            config: Segmentation configuration
            model_factory: Loaded model with ``new_predictor()``
            model_path: Model to load with ``loader`` instead of ``model_factory``
            loader: ModelLoader or function used with ``model_path``
            model_info: Model metadata; read next to ``model_path`` when omitted
            progress_callback: Optional callback for progress updates
        """
        if (model_factory is None) == (model_path is None):
            raise InvalidConfiguration("Provide exactly one of model_factory or model_path")
        if model_path is not None and loader is None:
            raise InvalidConfiguration("A loader is required with model_path")

        self.config = config or SegmentationConfig()
        self.model_factory = model_factory
        self.model_path = model_path
        self.loader = loader
        if model_info is None:
            model_info = ModelInfo.for_model_path(model_path) if model_path else ModelInfo()
        self.model_info = model_info
        self.progress_callback = progress_callback
        self._progress = ProcessingProgress(total_tiles=0, completed_tiles=0)
        self._progress_lock = threading.Lock()

    @property
    def progress(self) -> ProcessingProgress:
        """Get current processing progress."""
        return self._progress

    def resolve_downsample(self, source: ImageSource) -> float:
        """Downsample from the config, or from the image and model pixel sizes."""
        if self.config.downsample is not None:
            return self.config.downsample

        target = self.model_info.pixel_size or self.config.target_pixel_size
        if source.pixel_size is None:
            logger.warning("Image has no pixel calibration, processing at full resolution")
            return 1.0
        return downsample_for_pixel_size(source.pixel_size, target)

    def create_region(
        self,
        source: ImageSource,
        area: Optional[Tuple[int, int, int, int]] = None,
    ) -> Region:
        """Region for a selected (x, y, width, height) area, or the whole image."""
        downsample = self.resolve_downsample(source)
        if area is None:
            return Region(0, 0, source.width, source.height, downsample)

        x, y, w, h = area
        x1, y1 = max(0, x), max(0, y)
        x2, y2 = min(source.width, x + w), min(source.height, y + h)
        if x2 <= x1 or y2 <= y1:
            raise InvalidConfiguration(f"Selected area {area} lies outside the image")
        return Region(x1, y1, x2 - x1, y2 - y1, downsample)

    def _check_channels(self, source: ImageSource) -> None:
        channels = self.config.channels
        if channels is not None and max(channels) >= source.n_channels:
            raise InvalidConfiguration(
                f"Channel {max(channels)} selected but image has {source.n_channels}"
            )
        n_selected = len(channels) if channels is not None else source.n_channels
        self.model_info.check_channels(n_selected)

        outputs = self.model_info.output_names
        requested = self.config.output_channels
        if outputs and requested is not None and max(requested) >= len(outputs):
            raise InvalidConfiguration(
                f"Output channel {max(requested)} selected but model "
                f"'{self.model_info.name}' has {len(outputs)} outputs"
            )

    def _min_interior(self) -> int:
        """Smallest tile interior accepted for the model."""
        if not self.model_info.has_fixed_input:
            return 1
        # A nominal tile must cover at least a quarter of a fixed model input
        smallest_input = min(self.model_info.input_width, self.model_info.input_height)
        return max(1, smallest_input // 4 - 2 * self.config.padding)

    def _open_pool(self) -> PredictorPool:
        if self.model_factory is not None:
            factory, owned = self.model_factory, False
        else:
            factory = load_model(self.model_path, self.config.device, self.loader)
            owned = True
        return PredictorPool(
            factory,
            size=self.config.num_predictors,
            timeout=self.config.predictor_timeout,
            close_factory=owned,
        )

    def _process_tile(
        self,
        tile: Tile,
        source: ImageSource,
        region: Region,
        processor: TilePredictionProcessor,
        converter: OutputConverter,
        stop: threading.Event,
        cancel_event: Optional[threading.Event],
    ) -> Optional[TileResult]:
        """One unit of work. Returns None if the run was stopped before it started."""
        if stop.is_set() or (cancel_event is not None and cancel_event.is_set()):
            return None

        try:
            pixels = read_processing_rect(source, region, tile.bounds)
            output = processor.process(tile, pixels)
            interior = output[(slice(None),) + tile.interior_slices()]
            instances = converter.convert(interior, tile, region, self.config.output_channels)
        except TiledSegError:
            raise
        except Exception as e:
            raise TilePredictionError(f"Tile processing failed: {e}", tile.id, tile.bounds) from e

        return TileResult(tile=tile, instances=instances)

    def run(
        self,
        source: ImageSource,
        area: Optional[Tuple[int, int, int, int]] = None,
        executor: Optional[Executor] = None,
        cancel_event: Optional[threading.Event] = None,
        sink: Optional[ObjectSink] = None,
    ) -> List[ObjectInstance]:
        """
        Segment an area of an image.

        Args:
            source: Image to segment
            area: (x, y, width, height) in full-resolution pixels (None = whole image)
            executor: Executor to run tiles on (default: own pool of num_threads)
            cancel_event: Set to cancel; running tiles finish, no new tiles start
            sink: Receives the final objects on success only

        Returns:
            Merged object instances

        Raises:
            InvalidConfiguration: Before any work if the settings cannot be satisfied
            ModelLoadError: If the model cannot be loaded
            TilePredictionError: If any tile fails; the run is aborted
            ResourceExhausted: If no predictor becomes available in time
            SegmentationCancelled: If cancel_event was set
        """
        config = self.config
        try:
            self._check_channels(source)
            region = self.create_region(source, area)
            tiler = Tiler(config=config, min_interior=self._min_interior())
            tiles = tiler.compute_tiles(region.processing_width, region.processing_height)
            preprocessing = build_pipeline(config.preprocessing)
            converter = get_converter(
                config.converter, probability_threshold=config.probability_threshold
            )
        except TiledSegError as e:
            self._update_progress(0, 0, "error", error=str(e))
            logger.error(f"Segmentation not started: {e}")
            raise

        input_size = (
            (self.model_info.input_width, self.model_info.input_height)
            if self.model_info.has_fixed_input else None
        )

        logger.info(
            f"Segmenting region {region.to_dict()} with {len(tiles)} tiles, "
            f"{config.num_threads} thread(s), {config.num_predictors} predictor(s)"
        )
        self._update_progress(len(tiles), 0, "processing")

        try:
            with self._open_pool() as pool:
                processor = TilePredictionProcessor(
                    pool,
                    preprocessing=preprocessing,
                    input_size=input_size,
                    pad_to_input_size=config.pad_to_input_size,
                    layout=config.channel_layout,
                    output_layout=config.output_layout,
                    channels=config.channels,
                )
                if executor is None:
                    with ThreadPoolExecutor(max_workers=config.num_threads) as own_executor:
                        results = self._dispatch(
                            own_executor, tiles, source, region, processor, converter,
                            cancel_event,
                        )
                else:
                    results = self._dispatch(
                        executor, tiles, source, region, processor, converter, cancel_event,
                    )
        except SegmentationCancelled:
            self._update_progress(len(tiles), self._progress.completed_tiles, "cancelled")
            logger.info("Segmentation cancelled, results discarded")
            raise
        except Exception as e:
            self._update_progress(
                len(tiles), self._progress.completed_tiles, "error", error=str(e)
            )
            logger.error(f"Segmentation failed: {e}")
            raise

        self._update_progress(len(tiles), len(tiles), "merging")
        objects = merge_instances(results, config.merge_threshold)
        objects = filter_small_objects(objects, config.min_object_area)

        if config.make_measurements:
            make_measurements(objects, source, region)

        if sink is not None:
            sink.add_objects(objects)

        self._update_progress(len(tiles), len(tiles), "complete")
        logger.info(f"Segmentation complete: {len(objects)} objects")
        return objects

    def _dispatch(
        self,
        executor: Executor,
        tiles: List[Tile],
        source: ImageSource,
        region: Region,
        processor: TilePredictionProcessor,
        converter: OutputConverter,
        cancel_event: Optional[threading.Event],
    ) -> List[TileResult]:
        """Run all tiles and wait for them; raise the first failure after in-flight tiles finish."""
        stop = threading.Event()
        future_to_tile: Dict[Future, Tile] = {
            executor.submit(
                self._process_tile, tile, source, region, processor, converter,
                stop, cancel_event,
            ): tile
            for tile in tiles
        }

        results: List[TileResult] = []
        first_error: Optional[BaseException] = None
        completed = 0

        for future in as_completed(future_to_tile):
            if future.cancelled():
                continue
            tile = future_to_tile[future]
            try:
                result = future.result()
            except Exception as e:
                if first_error is None:
                    first_error = e
                    logger.error(f"Aborting run, {tile.id} failed: {e}")
                    stop.set()
                    for other in future_to_tile:
                        other.cancel()
                continue

            if result is not None:
                results.append(result)
                completed += 1
                self._update_progress(len(tiles), completed, "processing", tile.id)

        if first_error is not None:
            raise first_error
        if cancel_event is not None and cancel_event.is_set():
            raise SegmentationCancelled(
                f"Cancelled after {completed} of {len(tiles)} tiles"
            )
        return results

    def _update_progress(
        self,
        total: int,
        completed: int,
        status: str,
        current_tile: Optional[str] = None,
        error: Optional[str] = None,
    ):
        """Update progress and notify callback."""
        with self._progress_lock:
            self._progress = ProcessingProgress(
                total_tiles=total,
                completed_tiles=completed,
                current_tile=current_tile,
                status=status,
                error_message=error,
            )
            progress = self._progress

        if self.progress_callback:
            self.progress_callback(progress)


def filter_small_objects(objects: List[ObjectInstance], min_area: int) -> List[ObjectInstance]:
    """Drop merged objects with fewer than ``min_area`` processing pixels."""
    if min_area <= 0:
        return objects
    kept = [obj for obj in objects if obj.area >= min_area]
    if len(kept) < len(objects):
        logger.debug(f"Dropped {len(objects) - len(kept)} objects below {min_area} pixels")
    return kept


def run_segmentation(
    source: ImageSource,
    config: Optional[SegmentationConfig] = None,
    model_factory: Any = None,
    model_path: Optional[Union[str, Path]] = None,
    loader: Optional[Union[ModelLoader, Callable]] = None,
    model_info: Optional[ModelInfo] = None,
    area: Optional[Tuple[int, int, int, int]] = None,
    cancel_event: Optional[threading.Event] = None,
    sink: Optional[ObjectSink] = None,
    progress_callback: Optional[Callable[[ProcessingProgress], None]] = None,
) -> List[ObjectInstance]:
    """Create a SegmentationTask and run it once."""
    task = SegmentationTask(
        config=config,
        model_factory=model_factory,
        model_path=model_path,
        loader=loader,
        model_info=model_info,
        progress_callback=progress_callback,
    )
    return task.run(source, area=area, cancel_event=cancel_event, sink=sink)
