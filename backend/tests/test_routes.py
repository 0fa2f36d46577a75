import logging
import random

import pytest
from fastapi.testclient import TestClient

from brand_studio.api.routes import get_orchestrator
from brand_studio.main import app
from brand_studio.services.orchestrator import BrandOrchestrator

from conftest import image_urls, jpeg_bytes


@pytest.fixture
def client(session, provider, store, cfg, transport):
    orchestrator = BrandOrchestrator(session, provider, store, cfg, rng=random.Random(3), transport=transport)
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    yield TestClient(app)
    app.dependency_overrides.clear()


def _register(client, count=5):
    files = [("files", (f"{idx}.jpg", jpeg_bytes(), "image/jpeg")) for idx in range(count)]
    return client.post("/api/brands", data={"name": "Coffee Co", "user_id": "u1"}, files=files)


def test_health(client):
    assert client.get("/").json()["ok"] is True


def test_register_train_generate_flow(client, provider):
    registered = _register(client)
    assert registered.status_code == 200
    brand_id = registered.json()["brand_id"]

    trained = client.post("/api/ai/train", json={"brand_id": brand_id, "image_urls": image_urls(5)})
    assert trained.status_code == 200
    body = trained.json()
    assert body["status"] == "starting"
    assert body["packaged_images"] == 5

    pending = client.post("/api/ai/generate", json={"brand_id": brand_id, "prompt": "a latte cup"})
    assert pending.status_code == 202
    assert pending.json()["status"] == "pending"

    provider.set_remote(body["training_id"], "succeeded", "v7")
    done = client.post("/api/ai/generate", json={"brand_id": brand_id, "prompt": "a latte cup", "seed": 12345})
    assert done.status_code == 200
    assert done.json()["seed"] == 12345
    assert done.json()["aspect_ratio"] == "1:1"

    status = client.get(f"/api/brands/{brand_id}/training").json()
    assert (status["status"], status["version"]) == ("succeeded", "v7")

    images = client.get(f"/api/brands/{brand_id}/images").json()
    assert [img["id"] for img in images] == [done.json()["image_id"]]
    assert client.delete(f"/api/images/{images[0]['id']}").json() == {"success": True}


def test_register_with_too_few_images_is_rejected(client):
    assert _register(client, count=2).status_code == 400


def test_failed_training_returns_conflict(client, provider):
    brand_id = _register(client).json()["brand_id"]
    training_id = client.post("/api/ai/train", json={"brand_id": brand_id, "image_urls": image_urls(5)}).json()["training_id"]
    provider.set_remote(training_id, "failed")

    resp = client.post("/api/ai/generate", json={"brand_id": brand_id, "prompt": "a latte cup"})
    assert resp.status_code == 409


def test_unknown_brand_is_not_found(client):
    assert client.post("/api/ai/generate", json={"brand_id": 999, "prompt": "x"}).status_code == 404
    assert client.get("/api/brands/999").status_code == 404


def test_rename_keeps_trigger_word(client):
    registered = _register(client).json()
    renamed = client.put(f"/api/brands/{registered['brand_id']}", json={"name": "Coffee Company"}).json()
    assert renamed["name"] == "Coffee Company"
    assert renamed["trigger_word"] == registered["trigger_word"]


def _trained_brand(client, provider):
    brand_id = _register(client).json()["brand_id"]
    training_id = client.post("/api/ai/train", json={"brand_id": brand_id, "image_urls": image_urls(5)}).json()["training_id"]
    provider.set_remote(training_id, "succeeded", "v7")
    return brand_id


def test_out_of_range_seed_is_unprocessable(client, provider):
    brand_id = _trained_brand(client, provider)
    resp = client.post("/api/ai/generate", json={"brand_id": brand_id, "prompt": "a latte cup", "seed": 2**32})
    assert resp.status_code == 422
    assert provider.inference_calls == []


def test_launch_failure_is_logged(client, provider, caplog):
    provider.trainer_version = ""
    brand_id = _register(client).json()["brand_id"]
    with caplog.at_level(logging.ERROR, logger="brand_studio.api.routes"):
        resp = client.post("/api/ai/train", json={"brand_id": brand_id, "image_urls": image_urls(5)})
    assert resp.status_code == 502
    [record] = [r for r in caplog.records if r.name == "brand_studio.api.routes"]
    assert "LaunchError" in record.getMessage()
    assert record.exc_info is not None


def test_unexpected_error_is_logged_with_traceback(client, provider, caplog):
    brand_id = _trained_brand(client, provider)

    def explode(model_ref, inputs):
        raise KeyError("output")

    provider.run_inference = explode
    quiet_client = TestClient(app, raise_server_exceptions=False)
    with caplog.at_level(logging.ERROR, logger="brand_studio.main"):
        resp = quiet_client.post("/api/ai/generate", json={"brand_id": brand_id, "prompt": "a latte cup"})
    assert resp.status_code == 500
    [record] = [r for r in caplog.records if r.name == "brand_studio.main"]
    assert "/api/ai/generate" in record.getMessage()
    assert record.exc_info is not None
