from __future__ import annotations

import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from io import BytesIO
from typing import Any, Optional

import httpx
from PIL import Image, ImageDraw

from brand_studio.core.settings import settings
from brand_studio.services.artifact_store import ArtifactStore
from brand_studio.services.errors import ModelExistsError, ProviderError

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = ("succeeded", "failed")

# Remote vocabulary -> TrainingJob.status
_STATUS_MAP = {"processing": "training", "canceled": "failed", "cancelled": "failed"}


def normalize_status(status: str) -> str:
    return _STATUS_MAP.get(status, status)


@dataclass
class RemoteJob:
    id: str
    status: str
    version: str = ""
    destination: str = ""
    error: str = ""

    @property
    def terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


class TrainingProvider(ABC):
    """Narrow view of a hosted fine-tuning service."""

    default_owner: Optional[str] = None

    @abstractmethod
    def create_model(self, owner: str, name: str, *, visibility: str, hardware: str) -> None:
        """Raise ModelExistsError when ``owner/name`` is already taken."""
        raise NotImplementedError

    @abstractmethod
    def latest_trainer_version(self, owner: str, name: str) -> str:
        """Return the current version id of a trainer, or an empty string."""
        raise NotImplementedError

    @abstractmethod
    def start_training(
        self, owner: str, name: str, version: str, *, destination: str, inputs: dict[str, Any]
    ) -> str:
        raise NotImplementedError

    @abstractmethod
    def get_job(self, job_id: str) -> RemoteJob:
        raise NotImplementedError

    @abstractmethod
    def run_inference(self, model_ref: str, inputs: dict[str, Any]) -> list[str]:
        raise NotImplementedError


def split_version(raw: str) -> tuple[str, str]:
    """Split ``owner/name:version`` into (``owner/name``, ``version``); bare ids have no model part."""
    if ":" in raw:
        model, _, version = raw.rpartition(":")
        return model, version
    return "", raw


class ReplicateProvider(TrainingProvider):
    def __init__(self, api_token: str):
        if not api_token:
            raise RuntimeError("replicate_api_token is not configured")
        import replicate

        self.client = replicate.Client(api_token=api_token)

    def create_model(self, owner: str, name: str, *, visibility: str, hardware: str) -> None:
        from replicate.exceptions import ReplicateError, ReplicateException

        try:
            self.client.models.create(owner, name, visibility=visibility, hardware=hardware)
        except ReplicateError as exc:
            if exc.status == 409 or "already exists" in str(exc).lower():
                raise ModelExistsError(f"{owner}/{name} already exists") from exc
            raise ProviderError(f"Model creation failed: {exc}") from exc
        except (ReplicateException, httpx.HTTPError) as exc:
            raise ProviderError(f"Model creation failed: {exc}") from exc

    def latest_trainer_version(self, owner: str, name: str) -> str:
        model = self._call(self.client.models.get, f"{owner}/{name}")
        latest = getattr(model, "latest_version", None)
        return latest.id if latest is not None else ""

    def start_training(
        self, owner: str, name: str, version: str, *, destination: str, inputs: dict[str, Any]
    ) -> str:
        training = self._call(
            self.client.trainings.create,
            version=f"{owner}/{name}:{version}",
            input=inputs,
            destination=destination,
        )
        return training.id

    def get_job(self, job_id: str) -> RemoteJob:
        training = self._call(self.client.trainings.get, job_id)
        output = training.output if isinstance(training.output, dict) else {}
        model_part, version = split_version(output.get("version") or "")
        destination = getattr(training, "destination", None) or getattr(training, "model", None) or model_part
        return RemoteJob(
            id=training.id,
            status=normalize_status(training.status),
            version=version,
            destination=destination or "",
            error=str(training.error or ""),
        )

    def run_inference(self, model_ref: str, inputs: dict[str, Any]) -> list[str]:
        output = self._call(self.client.run, model_ref, input=inputs)
        items = output if isinstance(output, (list, tuple)) else [output]
        return [getattr(item, "url", None) or str(item) for item in items if item]

    @staticmethod
    def _call(func, *args, **kwargs):
        from replicate.exceptions import ReplicateException

        try:
            return func(*args, **kwargs)
        except (ReplicateException, httpx.HTTPError) as exc:
            raise ProviderError(str(exc)) from exc


class MockProvider(TrainingProvider):
    """Offline provider: jobs finish on the first status check, images are placeholders."""

    default_owner = "local"

    def __init__(self, store: ArtifactStore, bucket: str = "mock-outputs"):
        self.store = store
        self.bucket = bucket
        self.models: set[str] = set()
        self.jobs: dict[str, RemoteJob] = {}

    def create_model(self, owner: str, name: str, *, visibility: str, hardware: str) -> None:
        ref = f"{owner}/{name}"
        if ref in self.models:
            raise ModelExistsError(f"{ref} already exists")
        self.models.add(ref)

    def latest_trainer_version(self, owner: str, name: str) -> str:
        return "mock-trainer"

    def start_training(
        self, owner: str, name: str, version: str, *, destination: str, inputs: dict[str, Any]
    ) -> str:
        job_id = uuid.uuid4().hex
        self.jobs[job_id] = RemoteJob(id=job_id, status="starting", destination=destination)
        return job_id

    def get_job(self, job_id: str) -> RemoteJob:
        job = self.jobs.get(job_id)
        if job is None:
            raise ProviderError(f"Unknown training {job_id}")
        if not job.terminal:
            job.status = "succeeded"
            job.version = job_id[:12]
        return job

    def run_inference(self, model_ref: str, inputs: dict[str, Any]) -> list[str]:
        width, height = _dimensions(inputs.get("aspect_ratio", "1:1"))
        img = Image.new("RGB", (width, height), "white")
        draw = ImageDraw.Draw(img)
        draw.text((20, 20), f"Mock image\n{model_ref}\nseed={inputs.get('seed')}\n{inputs.get('prompt', '')[:120]}", fill="black")
        buf = BytesIO()
        img.save(buf, format="PNG")
        path = f"{uuid.uuid4().hex}.png"
        self.store.upload(self.bucket, path, buf.getvalue(), "image/png")
        return [self.store.public_url(self.bucket, path)]


def _dimensions(aspect_ratio: str, base: int = 512) -> tuple[int, int]:
    w, _, h = aspect_ratio.partition(":")
    try:
        ratio = int(w) / int(h)
    except (ValueError, ZeroDivisionError):
        return base, base
    if ratio >= 1:
        return base, max(1, int(base / ratio))
    return max(1, int(base * ratio)), base


def get_provider(name: str, store: ArtifactStore) -> TrainingProvider:
    if name == "replicate":
        return ReplicateProvider(settings.replicate_api_token)
    return MockProvider(store)
