from __future__ import annotations

import logging

from sqlmodel import Session

from brand_studio.models.entities import TrainingJob
from brand_studio.services.errors import GenerationError, ProviderError
from brand_studio.services.jobs import record_remote_status
from brand_studio.services.training_provider import TrainingProvider

logger = logging.getLogger(__name__)


class StatusSynchronizer:
    """Pull the provider's view of a training job into the local row, on demand."""

    def __init__(self, session: Session, provider: TrainingProvider):
        self.session = session
        self.provider = provider

    def synchronize(self, job: TrainingJob) -> TrainingJob:
        if job.status == "succeeded" and job.version:
            return job

        try:
            remote = self.provider.get_job(job.remote_id)
        except ProviderError as exc:
            raise GenerationError(f"Could not fetch training {job.remote_id}: {exc}") from exc

        if remote.status == "succeeded" and not remote.version:
            raise GenerationError(f"Training {job.remote_id} succeeded without a model version")

        if remote.status != job.status or (remote.version and remote.version != job.version):
            previous = job.status
            job = record_remote_status(
                self.session, job, status=remote.status, version=remote.version, destination=remote.destination
            )
            logger.info(f"Training {job.remote_id}: {previous} -> {job.status}")
        return job
