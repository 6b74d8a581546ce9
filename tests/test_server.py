"""Tests for the segmentation REST API."""

import cv2
import pytest
from fastapi.testclient import TestClient

from tiledseg.server import app
from tests.fixtures.fake_models import add_rectangle, create_blank


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def png_bytes():
    image = create_blank((64, 64))
    add_rectangle(image, 20, 20, 10, 10)
    ok, encoded = cv2.imencode(".png", image)
    assert ok
    return encoded.tobytes()


@pytest.fixture
def configured_model(tmp_path, monkeypatch):
    path = tmp_path / "model.pt"
    path.write_bytes(b"weights")
    monkeypatch.setenv("TILEDSEG_MODEL_PATH", str(path))
    monkeypatch.setenv("TILEDSEG_MODEL_LOADER", "tests.fixtures.fake_models:fake_loader")
    monkeypatch.delenv("TILEDSEG_CONFIG", raising=False)
    return path


class TestHealth:
    """Tests for the health endpoint."""

    def test_health_without_model(self, client, monkeypatch):
        """Test health reports a missing model configuration."""
        monkeypatch.delenv("TILEDSEG_MODEL_PATH", raising=False)
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert response.json()["model_configured"] is False

    def test_health_with_model(self, client, configured_model):
        """Test health reports a configured model."""
        assert client.get("/health").json()["model_configured"] is True


class TestTilesEndpoint:
    """Tests for the tile grid endpoint."""

    def test_tile_grid(self, client):
        """Test the tile grid for a region."""
        response = client.post("/tiles", json={"width": 1024, "height": 1024})
        assert response.status_code == 200
        data = response.json()
        assert data["tile_count"] == 9
        assert data["tiles"][0]["interior"] == [0, 0, 480, 480]

    def test_invalid_tiles(self, client):
        """Test impossible tile settings give 400."""
        response = client.post(
            "/tiles", json={"width": 100, "height": 100, "tile_width": 8, "padding": 4}
        )
        assert response.status_code == 400


class TestConfigEndpoint:
    """Tests for the configuration endpoint."""

    def test_default_config(self, client, monkeypatch):
        """Test the defaults are returned without a config file."""
        monkeypatch.delenv("TILEDSEG_CONFIG", raising=False)
        data = client.get("/segment/config").json()
        assert data["tile_width"] == 512
        assert data["merge_threshold"] == 0.25

    def test_config_file(self, client, tmp_path, monkeypatch):
        """Test TILEDSEG_CONFIG is loaded."""
        path = tmp_path / "config.yaml"
        path.write_text("num_predictors: 3\n")
        monkeypatch.setenv("TILEDSEG_CONFIG", str(path))
        assert client.get("/segment/config").json()["num_predictors"] == 3


class TestSegmentUpload:
    """Tests for the upload endpoint."""

    def test_segment(self, client, configured_model, png_bytes):
        """Test an uploaded image is segmented."""
        response = client.post(
            "/segment/upload",
            files={"file": ("cells.png", png_bytes, "image/png")},
        )
        assert response.status_code == 200
        data = response.json()
        assert data["image_dimensions"] == {"width": 64, "height": 64}
        assert data["object_count"] == 1
        assert data["objects"][0]["bbox"] == [20, 20, 30, 30]

    def test_no_model(self, client, monkeypatch, png_bytes):
        """Test uploads are refused without a configured model."""
        monkeypatch.delenv("TILEDSEG_MODEL_PATH", raising=False)
        monkeypatch.delenv("TILEDSEG_MODEL_LOADER", raising=False)
        response = client.post(
            "/segment/upload", files={"file": ("cells.png", png_bytes, "image/png")}
        )
        assert response.status_code == 503

    def test_undecodable(self, client, configured_model):
        """Test a file that is not an image gives 400."""
        response = client.post(
            "/segment/upload", files={"file": ("notes.txt", b"not an image", "text/plain")}
        )
        assert response.status_code == 400

    def test_missing_model_file(self, client, configured_model, png_bytes):
        """Test a model path that disappeared gives 503."""
        configured_model.unlink()
        response = client.post(
            "/segment/upload", files={"file": ("cells.png", png_bytes, "image/png")}
        )
        assert response.status_code == 503
