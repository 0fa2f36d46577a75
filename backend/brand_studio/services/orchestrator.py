"""Brand registration, training launch and image generation.

Training state lives with the remote provider; the local TrainingJob row is a
cache that is reconciled lazily whenever an image is requested.
"""
from __future__ import annotations

import logging
import random
import re
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Any, Optional, Sequence

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, col, select

from brand_studio.core.settings import Settings, settings
from brand_studio.models.entities import Brand, GeneratedImage, TrainingAsset, TrainingJob
from brand_studio.services.artifact_store import ArtifactStore
from brand_studio.services.errors import (
    InvalidRequestError,
    NotFoundError,
    StorageError,
    StudioError,
    TrainingFailedError,
)
from brand_studio.services.inference import InferenceRunner, resolve_aspect_ratio, resolve_seed
from brand_studio.services.jobs import current_training_job
from brand_studio.services.launcher import LaunchResult, TrainingLauncher
from brand_studio.services.packager import AssetPackager
from brand_studio.services.persister import ResultPersister
from brand_studio.services.provisioner import ModelProvisioner
from brand_studio.services.synchronizer import StatusSynchronizer
from brand_studio.services.training_provider import TrainingProvider
from brand_studio.utils.trigger_word import build_trigger_word

logger = logging.getLogger(__name__)

_UNSAFE_FILENAME = re.compile(r"[^A-Za-z0-9._-]+")


@dataclass
class UploadedImage:
    filename: str
    content: bytes
    content_type: str = "application/octet-stream"


@dataclass
class GenerationOutcome:
    status: str
    remote_status: str = ""
    image: Optional[GeneratedImage] = None

    @property
    def pending(self) -> bool:
        return self.status == "pending"

    @property
    def message(self) -> str:
        if self.pending:
            return f"The model is still training (status: {self.remote_status}). Try again later."
        return ""


class BrandOrchestrator:
    def __init__(
        self,
        session: Session,
        provider: TrainingProvider,
        store: ArtifactStore,
        cfg: Settings = settings,
        *,
        rng: random.Random | None = None,
        transport=None,
    ):
        self.session = session
        self.provider = provider
        self.store = store
        self.cfg = cfg
        self.rng = rng
        self.provisioner = ModelProvisioner(
            provider,
            cfg.replicate_owner or provider.default_owner or "",
            visibility=cfg.container_visibility,
            hardware=cfg.container_hardware,
        )
        self.launcher = TrainingLauncher(
            session,
            provider,
            store,
            AssetPackager(timeout=cfg.http_timeout_s, transport=transport),
            self.provisioner,
            cfg,
        )
        self.synchronizer = StatusSynchronizer(session, provider)
        self.runner = InferenceRunner(provider, cfg, rng)
        self.persister = ResultPersister(
            session, store, cfg.generated_bucket, timeout=cfg.http_timeout_s, transport=transport
        )

    # ── Brands ────────────────────────────────────────────────────────────────
    def register_brand(self, name: str, user_id: str, images: Sequence[UploadedImage]) -> Brand:
        name = (name or "").strip()
        if not name:
            raise InvalidRequestError("Brand name is required")
        images = [img for img in images if img.content]
        if len(images) < self.cfg.min_training_images:
            raise InvalidRequestError(
                f"At least {self.cfg.min_training_images} images are required, got {len(images)}"
            )

        brand = self._insert_brand(name, user_id)

        stored: list[str] = []
        try:
            for idx, img in enumerate(images):
                path = f"{brand.id}/{idx}_{_safe_filename(img.filename, idx)}"
                self.store.upload(self.cfg.assets_bucket, path, img.content, img.content_type)
                stored.append(path)
                self.session.add(TrainingAsset(brand_id=brand.id, storage_path=path, file_name=img.filename or path))
        except StorageError:
            self.session.rollback()
            self._delete_objects(self.cfg.assets_bucket, stored)
            raise

        self.session.commit()
        self.session.refresh(brand)
        logger.info(f"Registered brand {brand.id} ({brand.name}) with {len(images)} images as {brand.trigger_word}")
        return brand

    def list_brands(self, user_id: Optional[str] = None) -> list[tuple[Brand, Optional[TrainingJob]]]:
        stmt = select(Brand).order_by(col(Brand.created_at).desc())
        if user_id:
            stmt = stmt.where(Brand.user_id == user_id)
        return [(brand, current_training_job(self.session, brand)) for brand in self.session.exec(stmt).all()]

    def get_brand(self, brand_id: int) -> Brand:
        brand = self.session.get(Brand, brand_id)
        if brand is None:
            raise NotFoundError(f"Brand {brand_id} not found")
        return brand

    def rename_brand(self, brand_id: int, name: str) -> Brand:
        name = (name or "").strip()
        if not name:
            raise InvalidRequestError("Brand name is required")
        brand = self.get_brand(brand_id)
        brand.name = name
        self.session.add(brand)
        self.session.commit()
        self.session.refresh(brand)
        return brand

    def delete_brand(self, brand_id: int) -> None:
        brand = self.get_brand(brand_id)
        images = self.session.exec(select(GeneratedImage).where(GeneratedImage.brand_id == brand_id)).all()
        assets = self.session.exec(select(TrainingAsset).where(TrainingAsset.brand_id == brand_id)).all()
        jobs = self.session.exec(select(TrainingJob).where(TrainingJob.brand_id == brand_id)).all()

        self._delete_objects(self.cfg.generated_bucket, [img.storage_path for img in images])
        self._delete_objects(self.cfg.assets_bucket, [asset.storage_path for asset in assets])
        for row in [*images, *assets, *jobs]:
            self.session.delete(row)
        self.session.flush()
        self.session.delete(brand)
        self.session.commit()
        logger.info(f"Deleted brand {brand_id}")

    def asset_urls(self, brand: Brand) -> list[str]:
        assets = self.session.exec(
            select(TrainingAsset).where(TrainingAsset.brand_id == brand.id).order_by(col(TrainingAsset.id))
        ).all()
        return [self.store.public_url(self.cfg.assets_bucket, asset.storage_path) for asset in assets]

    # ── Training ──────────────────────────────────────────────────────────────
    def launch_training(
        self,
        brand_id: Optional[int],
        image_urls: Optional[Sequence[str]] = None,
        trigger_word: Optional[str] = None,
    ) -> LaunchResult:
        if brand_id is None:
            raise InvalidRequestError("brand_id is required")
        brand = self.get_brand(brand_id)
        if trigger_word and trigger_word != brand.trigger_word:
            raise InvalidRequestError(f"Trigger word does not belong to brand {brand_id}")
        urls = list(image_urls or []) or self.asset_urls(brand)
        if not urls:
            raise InvalidRequestError(f"Brand {brand_id} has no training images")
        return self.launcher.launch(brand, urls)

    def training_status(self, brand_id: int) -> TrainingJob:
        job = current_training_job(self.session, self.get_brand(brand_id))
        if job is None:
            raise NotFoundError(f"Brand {brand_id} has not been trained yet")
        return job

    # ── Generation ────────────────────────────────────────────────────────────
    def generate_image(
        self,
        brand_id: Optional[int],
        prompt: Optional[str],
        aspect_ratio: Optional[str] = None,
        seed: Any = None,
        user_id: Optional[str] = None,
    ) -> GenerationOutcome:
        if brand_id is None:
            raise InvalidRequestError("brand_id is required")
        if not prompt or not prompt.strip():
            raise InvalidRequestError("prompt is required")
        # Reject bad input before the status sync writes anything.
        ratio = resolve_aspect_ratio(aspect_ratio, self.cfg.default_aspect_ratio)
        resolved_seed = resolve_seed(seed, self.rng)

        brand = self.get_brand(brand_id)
        job = current_training_job(self.session, brand)
        if job is None:
            raise NotFoundError(f"Brand {brand_id} has no trained model")

        job = self.synchronizer.synchronize(job)
        if job.status == "failed":
            raise TrainingFailedError(f"Training {job.remote_id} failed; launch a new training run")
        if job.status != "succeeded":
            return GenerationOutcome(status="pending", remote_status=job.status)

        result = self.runner.run(job, brand.trigger_word, prompt, aspect_ratio=ratio, seed=resolved_seed)
        image = self.persister.persist(brand, user_id or brand.user_id, result)
        return GenerationOutcome(status="succeeded", remote_status=job.status, image=image)

    # ── Library ───────────────────────────────────────────────────────────────
    def list_images(self, brand_id: int) -> list[GeneratedImage]:
        self.get_brand(brand_id)
        stmt = (
            select(GeneratedImage)
            .where(GeneratedImage.brand_id == brand_id)
            .order_by(col(GeneratedImage.created_at).desc(), col(GeneratedImage.id).desc())
        )
        return list(self.session.exec(stmt).all())

    def delete_image(self, image_id: int) -> None:
        image = self.session.get(GeneratedImage, image_id)
        if image is None:
            raise NotFoundError(f"Image {image_id} not found")
        self._delete_objects(self.cfg.generated_bucket, [image.storage_path])
        self.session.delete(image)
        self.session.commit()

    def _delete_objects(self, bucket: str, paths: Sequence[str]) -> None:
        for path in paths:
            try:
                self.store.delete(bucket, path)
            except StorageError as exc:
                logger.error(f"Could not delete {bucket}/{path}: {exc}")

    def _insert_brand(self, name: str, user_id: str, attempts: int = 3) -> Brand:
        for _ in range(attempts):
            brand = Brand(name=name, trigger_word=self._unique_trigger_word(), user_id=user_id)
            self.session.add(brand)
            try:
                self.session.flush()
            except IntegrityError:
                # Another registration claimed the same trigger word first.
                self.session.rollback()
                logger.warning(f"Trigger word {brand.trigger_word} was taken concurrently, retrying")
                continue
            return brand
        raise StudioError("Could not allocate a unique trigger word")

    def _unique_trigger_word(self, attempts: int = 5) -> str:
        for _ in range(attempts):
            word = build_trigger_word(self.cfg.trigger_prefix, self.rng)
            if self.session.exec(select(Brand).where(Brand.trigger_word == word)).first() is None:
                return word
        raise StudioError("Could not allocate a unique trigger word")


def _safe_filename(filename: Optional[str], idx: int) -> str:
    name = _UNSAFE_FILENAME.sub("_", PurePosixPath(filename or "").name).strip("._")
    return name or f"image_{idx}.jpg"
