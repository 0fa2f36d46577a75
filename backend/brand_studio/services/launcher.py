from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Sequence

from sqlmodel import Session

from brand_studio.core.settings import Settings, settings
from brand_studio.models.entities import Brand, TrainingJob
from brand_studio.services.artifact_store import ArtifactStore
from brand_studio.services.errors import LaunchError, ProviderError, StorageError
from brand_studio.services.jobs import create_training_job
from brand_studio.services.packager import AssetPackager
from brand_studio.services.provisioner import ModelProvisioner
from brand_studio.services.training_provider import TrainingProvider

logger = logging.getLogger(__name__)


@dataclass
class LaunchResult:
    job: TrainingJob
    archive_url: str
    packaged_images: int


class TrainingLauncher:
    def __init__(
        self,
        session: Session,
        provider: TrainingProvider,
        store: ArtifactStore,
        packager: AssetPackager,
        provisioner: ModelProvisioner,
        cfg: Settings = settings,
        clock: Callable[[], float] = time.time,
    ):
        self.session = session
        self.provider = provider
        self.store = store
        self.packager = packager
        self.provisioner = provisioner
        self.cfg = cfg
        self.clock = clock

    def resolve_trainer_version(self) -> str:
        trainer = f"{self.cfg.trainer_owner}/{self.cfg.trainer_name}"
        try:
            version = self.provider.latest_trainer_version(self.cfg.trainer_owner, self.cfg.trainer_name)
        except ProviderError as exc:
            raise LaunchError(f"Could not look up trainer {trainer}: {exc}") from exc
        if not version:
            raise LaunchError(f"Trainer {trainer} has no published version")
        return version

    def launch(self, brand: Brand, image_urls: Sequence[str]) -> LaunchResult:
        if not self.provisioner.owner:
            raise LaunchError("replicate_owner is not configured")
        version = self.resolve_trainer_version()

        archive = self.packager.package(image_urls)
        if not archive.entries:
            raise LaunchError(f"None of the {len(image_urls)} training images could be fetched")
        if len(archive.entries) < self.cfg.min_training_images:
            logger.warning(
                f"Brand {brand.id}: only {len(archive.entries)} of {len(image_urls)} images packaged "
                f"(recommended minimum {self.cfg.min_training_images})"
            )

        archive_path = f"{brand.id}/training_data_{int(self.clock() * 1000)}.zip"
        try:
            self.store.upload(self.cfg.assets_bucket, archive_path, archive.data, "application/zip")
        except StorageError as exc:
            raise LaunchError(f"Could not upload training archive: {exc}") from exc
        archive_url = self.store.public_url(self.cfg.assets_bucket, archive_path)

        destination = self.provisioner.provision(brand.name)
        inputs = {
            "input_images": archive_url,
            "trigger_word": brand.trigger_word,
            "steps": self.cfg.train_steps,
            "lora_rank": self.cfg.lora_rank,
            "optimizer": self.cfg.optimizer,
            "learning_rate": self.cfg.learning_rate,
        }
        try:
            remote_id = self.provider.start_training(
                self.cfg.trainer_owner, self.cfg.trainer_name, version, destination=destination, inputs=inputs
            )
        except ProviderError as exc:
            raise LaunchError(f"Could not start training for {destination}: {exc}") from exc

        job = create_training_job(self.session, brand, remote_id=remote_id, destination=destination)
        logger.info(f"Started training {remote_id} for brand {brand.id} -> {destination}")
        return LaunchResult(job=job, archive_url=archive_url, packaged_images=len(archive.entries))
