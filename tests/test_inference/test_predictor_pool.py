"""Tests for PredictorPool."""

import threading
import time

import numpy as np
import pytest

from tiledseg.errors import InvalidConfiguration, ModelLoadError, ResourceExhausted
from tiledseg.inference.predictor_pool import PredictorPool
from tests.fixtures.fake_models import FakeModel


class TestPoolCreation:
    """Tests for pool construction and shutdown."""

    def test_handles_created(self):
        """Test one handle is created per pool slot."""
        model = FakeModel()
        pool = PredictorPool(model, size=3)
        assert len(model.predictors) == 3
        assert pool.outstanding == 0
        pool.close()

    def test_invalid_size(self):
        """Test a pool needs at least one handle."""
        with pytest.raises(InvalidConfiguration):
            PredictorPool(FakeModel(), size=0)

    def test_creation_failure(self):
        """Test a failing handle creation closes what was created."""
        model = FakeModel(fail_on_create=1)
        with pytest.raises(ModelLoadError, match="out of device memory"):
            PredictorPool(model, size=2)
        assert model.predictors[0].closed
        assert model.closed

    def test_close_releases_everything(self):
        """Test close() closes handles and the factory."""
        model = FakeModel()
        with PredictorPool(model, size=2) as pool:
            pass
        assert pool.closed
        assert all(p.closed for p in model.predictors)
        assert model.closed

    def test_close_keeps_factory(self):
        """Test close_factory=False leaves the factory open."""
        model = FakeModel()
        PredictorPool(model, size=1, close_factory=False).close()
        assert model.predictors[0].closed
        assert not model.closed

    def test_close_twice(self):
        """Test close() is idempotent."""
        pool = PredictorPool(FakeModel())
        pool.close()
        pool.close()
        assert pool.closed


class TestAcquireRelease:
    """Tests for handing out handles."""

    def test_scoped_acquire(self):
        """Test a handle is outstanding only inside the block."""
        with PredictorPool(FakeModel(), size=1) as pool:
            with pool.predictor() as handle:
                assert handle is not None
                assert pool.outstanding == 1
            assert pool.outstanding == 0

    def test_released_on_exception(self):
        """Test a handle is returned when the block raises."""
        with PredictorPool(FakeModel(), size=1) as pool:
            with pytest.raises(RuntimeError):
                with pool.predictor():
                    raise RuntimeError("boom")
            assert pool.outstanding == 0
            with pool.predictor(timeout=0.1):
                pass

    def test_timeout(self):
        """Test acquire raises ResourceExhausted when no handle frees up."""
        with PredictorPool(FakeModel(), size=1) as pool:
            with pool.predictor():
                with pytest.raises(ResourceExhausted):
                    pool.acquire(timeout=0.05)
            assert pool.outstanding == 0

    def test_default_timeout(self):
        """Test the pool default timeout applies to acquire()."""
        with PredictorPool(FakeModel(), size=1, timeout=0.05) as pool:
            handle = pool.acquire()
            with pytest.raises(ResourceExhausted):
                pool.acquire()
            pool.release(handle)

    def test_acquire_after_close(self):
        """Test a closed pool hands out nothing."""
        pool = PredictorPool(FakeModel())
        pool.close()
        with pytest.raises(ResourceExhausted, match="closed"):
            pool.acquire(timeout=0.01)

    def test_handle_exclusive(self):
        """Test concurrent callers never share a handle."""
        model = FakeModel(delay=0.005)
        errors = []

        with PredictorPool(model, size=2) as pool:
            def worker():
                for _ in range(5):
                    with pool.predictor() as handle:
                        try:
                            handle.predict(np.zeros((1, 4, 4), dtype=np.float32))
                        except AssertionError as e:
                            errors.append(e)

            threads = [threading.Thread(target=worker) for _ in range(6)]
            for t in threads:
                t.start()
            for t in threads:
                t.join()

        assert errors == []
        assert model.max_active <= 2
        assert model.calls == 30

    def test_blocked_caller_wakes_on_release(self):
        """Test a waiting caller gets the handle once it is released."""
        with PredictorPool(FakeModel(), size=1) as pool:
            handle = pool.acquire()
            got = []

            def waiter():
                with pool.predictor(timeout=2.0) as h:
                    got.append(h)

            thread = threading.Thread(target=waiter)
            thread.start()
            time.sleep(0.05)
            assert got == []
            pool.release(handle)
            thread.join()

            assert got == [handle]
