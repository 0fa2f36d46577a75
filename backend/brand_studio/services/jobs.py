from __future__ import annotations

from typing import Optional

from sqlalchemy import update
from sqlmodel import Session, col, select

from brand_studio.models.entities import Brand, TrainingJob, utcnow
from brand_studio.services.training_provider import TERMINAL_STATUSES


def create_training_job(session: Session, brand: Brand, *, remote_id: str, destination: str) -> TrainingJob:
    job = TrainingJob(brand_id=brand.id, remote_id=remote_id, destination=destination, status="starting", version="")
    session.add(job)
    session.commit()
    session.refresh(job)
    brand.current_job_id = job.id
    session.add(brand)
    session.commit()
    session.refresh(job)
    return job


def current_training_job(session: Session, brand: Brand) -> Optional[TrainingJob]:
    if brand.current_job_id is not None:
        job = session.get(TrainingJob, brand.current_job_id)
        if job is not None:
            return job
    stmt = (
        select(TrainingJob)
        .where(TrainingJob.brand_id == brand.id)
        .order_by(col(TrainingJob.created_at).desc(), col(TrainingJob.id).desc())
        .limit(1)
    )
    return session.exec(stmt).first()


def record_remote_status(
    session: Session, job: TrainingJob, *, status: str, version: str = "", destination: str = ""
) -> TrainingJob:
    """Write a remote status unless the row already reached a terminal state."""
    values: dict = {"status": status, "updated_at": utcnow()}
    if version:
        values["version"] = version
    if destination and not job.destination:
        values["destination"] = destination
    stmt = (
        update(TrainingJob)
        .where(col(TrainingJob.id) == job.id)
        .where(col(TrainingJob.status).not_in(TERMINAL_STATUSES))
        .values(**values)
    )
    session.execute(stmt)
    session.commit()
    session.refresh(job)
    return job
