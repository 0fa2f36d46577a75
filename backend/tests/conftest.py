from io import BytesIO

import httpx
import pytest
from PIL import Image
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from brand_studio.core.settings import Settings
from brand_studio.models import entities  # noqa: F401
from brand_studio.services.artifact_store import LocalArtifactStore
from brand_studio.services.errors import ModelExistsError
from brand_studio.services.training_provider import RemoteJob, TrainingProvider

IMAGE_HOST = "https://img.test"
OUTPUT_URL = "https://delivery.test/out/0.jpg"


def jpeg_bytes(color: str = "red") -> bytes:
    buf = BytesIO()
    Image.new("RGB", (8, 8), color).save(buf, format="JPEG")
    return buf.getvalue()


class FakeProvider(TrainingProvider):
    def __init__(self):
        self.models: set[str] = set()
        self.create_calls = 0
        self.trainer_version = "trainer-v1"
        self.trainings: list[dict] = []
        self.jobs: dict[str, RemoteJob] = {}
        self.get_job_calls = 0
        self.inference_calls: list[tuple[str, dict]] = []
        self.outputs = [OUTPUT_URL]

    def create_model(self, owner, name, *, visibility, hardware):
        self.create_calls += 1
        ref = f"{owner}/{name}"
        if ref in self.models:
            raise ModelExistsError(ref)
        self.models.add(ref)

    def latest_trainer_version(self, owner, name):
        return self.trainer_version

    def start_training(self, owner, name, version, *, destination, inputs):
        job_id = f"job-{len(self.trainings) + 1}"
        self.trainings.append({"trainer": f"{owner}/{name}:{version}", "destination": destination, "inputs": inputs})
        self.jobs[job_id] = RemoteJob(id=job_id, status="starting", destination=destination)
        return job_id

    def get_job(self, job_id):
        self.get_job_calls += 1
        return self.jobs[job_id]

    def set_remote(self, job_id, status, version=""):
        self.jobs[job_id] = RemoteJob(id=job_id, status=status, version=version, destination=self.jobs[job_id].destination)

    def run_inference(self, model_ref, inputs):
        self.inference_calls.append((model_ref, inputs))
        return list(self.outputs)


def image_handler(request: httpx.Request) -> httpx.Response:
    url = str(request.url)
    if "/missing/" in url:
        return httpx.Response(404)
    if url.startswith(IMAGE_HOST) or url == OUTPUT_URL:
        return httpx.Response(200, content=jpeg_bytes(), headers={"content-type": "image/jpeg"})
    return httpx.Response(500)


def image_urls(ok: int, missing: int = 0) -> list[str]:
    urls = [f"{IMAGE_HOST}/ok/{idx}.jpg" for idx in range(ok)]
    urls += [f"{IMAGE_HOST}/missing/{idx}.jpg" for idx in range(missing)]
    return urls


@pytest.fixture
def session():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    SQLModel.metadata.create_all(engine)
    with Session(engine) as session:
        yield session


@pytest.fixture
def cfg(tmp_path):
    return Settings(_env_file=None, storage_dir=str(tmp_path / "storage"), replicate_owner="tester")


@pytest.fixture
def store(cfg):
    return LocalArtifactStore(cfg.storage_dir, "http://studio.test")


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def transport():
    return httpx.MockTransport(image_handler)
