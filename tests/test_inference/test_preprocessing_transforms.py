"""Tests for preprocessing transforms."""

import numpy as np
import pytest

from tiledseg.config.segmentation_config import TransformSpec, default_preprocessing
from tiledseg.errors import InvalidConfiguration
from tiledseg.inference.preprocessing import (
    Divide,
    EnsureType,
    PercentileNormalize,
    Sequential,
    build_pipeline,
    build_transform,
)


class TestEnsureType:
    """Tests for EnsureType."""

    def test_cast(self):
        """Test values are cast to the requested type."""
        result = EnsureType("float32")(np.array([[1, 2]], dtype=np.uint8))
        assert result.dtype == np.float32

    def test_input_untouched(self):
        """Test the input buffer is not modified or returned."""
        data = np.ones((2, 2, 1), dtype=np.float32)
        result = EnsureType("float32").apply(data)
        result[0, 0, 0] = 5
        assert data[0, 0, 0] == 1

    def test_unknown_dtype(self):
        """Test an unknown type name raises error."""
        with pytest.raises(InvalidConfiguration):
            EnsureType("not_a_type")


class TestPercentileNormalize:
    """Tests for PercentileNormalize."""

    def test_range(self):
        """Test the output lies in [0, 1]."""
        rng = np.random.default_rng(0)
        data = rng.integers(0, 4096, size=(32, 32, 2)).astype(np.float32)
        result = PercentileNormalize(1, 99)(data)
        assert result.min() >= 0.0
        assert result.max() <= 1.0
        assert result.dtype == np.float32

    def test_flat_tile(self):
        """Test a constant tile does not divide by zero."""
        data = np.full((8, 8, 1), 7.0, dtype=np.float32)
        result = PercentileNormalize()(data)
        assert np.all(np.isfinite(result))
        assert np.all(result == 0.0)

    def test_per_channel(self):
        """Test channels with different ranges are scaled independently."""
        data = np.zeros((10, 10, 2), dtype=np.float32)
        data[:, :, 0] = np.arange(100).reshape(10, 10)
        data[:, :, 1] = np.arange(100).reshape(10, 10) * 100
        result = PercentileNormalize(0, 100, per_channel=True)(data)
        np.testing.assert_allclose(result[:, :, 0], result[:, :, 1], atol=1e-6)

    def test_joint_channels(self):
        """Test per_channel=False uses one range for all channels."""
        data = np.zeros((10, 10, 2), dtype=np.float32)
        data[:, :, 1] = 10.0
        data[0, 0, 1] = 0.0
        result = PercentileNormalize(0, 100, per_channel=False)(data)
        assert result[:, :, 0].max() == 0.0
        assert result[5, 5, 1] == pytest.approx(1.0)

    def test_no_clip(self):
        """Test values beyond the percentiles are kept when clip=False."""
        data = np.arange(100, dtype=np.float32).reshape(10, 10, 1)
        result = PercentileNormalize(10, 90, clip=False)(data)
        assert result.min() < 0.0
        assert result.max() > 1.0

    def test_invalid_percentiles(self):
        """Test low >= high raises error."""
        with pytest.raises(InvalidConfiguration):
            PercentileNormalize(99, 1)


class TestPipeline:
    """Tests for building preprocessing pipelines."""

    def test_default_pipeline(self):
        """Test the default pipeline is float conversion then percentile."""
        pipeline = build_pipeline(default_preprocessing())
        assert len(pipeline) == 2
        assert isinstance(pipeline.transforms[0], EnsureType)
        assert isinstance(pipeline.transforms[1], PercentileNormalize)

        result = pipeline(np.arange(64, dtype=np.uint16).reshape(8, 8, 1))
        assert result.dtype == np.float32

    def test_order(self):
        """Test transforms run in order."""
        pipeline = Sequential(EnsureType("float32"), Divide(2))
        assert pipeline(np.array([4], dtype=np.uint8))[0] == 2.0

    def test_divide_by_zero(self):
        """Test a zero divisor raises error."""
        with pytest.raises(InvalidConfiguration):
            Divide(0)

    def test_bad_parameters(self):
        """Test unexpected parameters raise InvalidConfiguration."""
        with pytest.raises(InvalidConfiguration):
            build_transform(TransformSpec("divide", {"amount": 3}))
