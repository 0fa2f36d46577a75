from __future__ import annotations

import logging
from functools import lru_cache
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Response, UploadFile
from sqlmodel import Session

from brand_studio.core.settings import settings
from brand_studio.db.session import get_session
from brand_studio.models.entities import Brand, GeneratedImage, TrainingJob
from brand_studio.schemas.contracts import (
    BrandResponse,
    GeneratedImageResponse,
    GenerateRequest,
    GenerateResponse,
    RegisterBrandResponse,
    RenameBrandRequest,
    TrainingStatusResponse,
    TrainRequest,
    TrainResponse,
)
from brand_studio.services.artifact_store import ArtifactStore, LocalArtifactStore
from brand_studio.services.errors import StudioError
from brand_studio.services.orchestrator import BrandOrchestrator, UploadedImage
from brand_studio.services.training_provider import TrainingProvider, get_provider

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["api"])


@lru_cache
def get_artifact_store() -> ArtifactStore:
    return LocalArtifactStore(settings.storage_dir, settings.public_base_url)


@lru_cache
def get_training_provider() -> TrainingProvider:
    return get_provider(settings.training_provider, get_artifact_store())


def get_orchestrator(session: Session = Depends(get_session)) -> BrandOrchestrator:
    return BrandOrchestrator(session, get_training_provider(), get_artifact_store())


def _http_error(exc: StudioError) -> HTTPException:
    if exc.status_code >= 500:
        logger.error(f"{type(exc).__name__}: {exc}", exc_info=exc)
    else:
        logger.info(f"Rejected request ({exc.status_code}): {exc}")
    return HTTPException(status_code=exc.status_code, detail=str(exc))


def _brand_response(brand: Brand, job: Optional[TrainingJob] = None) -> BrandResponse:
    return BrandResponse(
        id=brand.id,
        name=brand.name,
        trigger_word=brand.trigger_word,
        user_id=brand.user_id,
        created_at=brand.created_at,
        training_status=job.status if job else None,
    )


def _image_response(image: GeneratedImage) -> GeneratedImageResponse:
    return GeneratedImageResponse.model_validate(image, from_attributes=True)


@router.post("/brands", response_model=RegisterBrandResponse)
def register_brand(
    name: str = Form(...),
    user_id: str = Form("local"),
    files: List[UploadFile] = File(...),
    orchestrator: BrandOrchestrator = Depends(get_orchestrator),
):
    images = [
        UploadedImage(filename=f.filename or "", content=f.file.read(), content_type=f.content_type or "image/jpeg")
        for f in files
    ]
    try:
        brand = orchestrator.register_brand(name, user_id, images)
    except StudioError as exc:
        raise _http_error(exc) from exc
    return RegisterBrandResponse(brand_id=brand.id, trigger_word=brand.trigger_word)


@router.get("/brands", response_model=List[BrandResponse])
def list_brands(user_id: Optional[str] = None, orchestrator: BrandOrchestrator = Depends(get_orchestrator)):
    return [_brand_response(brand, job) for brand, job in orchestrator.list_brands(user_id)]


@router.get("/brands/{brand_id}", response_model=BrandResponse)
def get_brand(brand_id: int, orchestrator: BrandOrchestrator = Depends(get_orchestrator)):
    try:
        brand = orchestrator.get_brand(brand_id)
    except StudioError as exc:
        raise _http_error(exc) from exc
    return _brand_response(brand)


@router.put("/brands/{brand_id}", response_model=BrandResponse)
def rename_brand(
    brand_id: int, req: RenameBrandRequest, orchestrator: BrandOrchestrator = Depends(get_orchestrator)
):
    try:
        brand = orchestrator.rename_brand(brand_id, req.name)
    except StudioError as exc:
        raise _http_error(exc) from exc
    return _brand_response(brand)


@router.delete("/brands/{brand_id}")
def delete_brand(brand_id: int, orchestrator: BrandOrchestrator = Depends(get_orchestrator)):
    try:
        orchestrator.delete_brand(brand_id)
    except StudioError as exc:
        raise _http_error(exc) from exc
    return {"success": True}


@router.post("/ai/train", response_model=TrainResponse)
def train(req: TrainRequest, orchestrator: BrandOrchestrator = Depends(get_orchestrator)):
    try:
        result = orchestrator.launch_training(req.brand_id, req.image_urls, req.trigger_word)
    except StudioError as exc:
        raise _http_error(exc) from exc
    return TrainResponse(
        training_id=result.job.remote_id,
        job_id=result.job.id,
        destination=result.job.destination,
        status=result.job.status,
        packaged_images=result.packaged_images,
    )


@router.get("/brands/{brand_id}/training", response_model=TrainingStatusResponse)
def training_status(brand_id: int, orchestrator: BrandOrchestrator = Depends(get_orchestrator)):
    try:
        job = orchestrator.training_status(brand_id)
    except StudioError as exc:
        raise _http_error(exc) from exc
    return TrainingStatusResponse(
        job_id=job.id,
        brand_id=job.brand_id,
        training_id=job.remote_id,
        status=job.status,
        version=job.version,
        destination=job.destination,
        created_at=job.created_at,
        updated_at=job.updated_at,
    )


@router.post("/ai/generate", response_model=GenerateResponse)
def generate(req: GenerateRequest, response: Response, orchestrator: BrandOrchestrator = Depends(get_orchestrator)):
    try:
        outcome = orchestrator.generate_image(req.brand_id, req.prompt, req.aspect_ratio, req.seed, req.user_id)
    except StudioError as exc:
        raise _http_error(exc) from exc
    if outcome.pending:
        response.status_code = 202
        return GenerateResponse(status="pending", remote_status=outcome.remote_status, message=outcome.message)
    image = outcome.image
    return GenerateResponse(
        status="succeeded",
        image_url=image.image_url,
        image_id=image.id,
        seed=image.seed,
        prompt=image.prompt,
        aspect_ratio=image.aspect_ratio,
        remote_status=outcome.remote_status,
    )


@router.get("/brands/{brand_id}/images", response_model=List[GeneratedImageResponse])
def list_images(brand_id: int, orchestrator: BrandOrchestrator = Depends(get_orchestrator)):
    try:
        images = orchestrator.list_images(brand_id)
    except StudioError as exc:
        raise _http_error(exc) from exc
    return [_image_response(image) for image in images]


@router.delete("/images/{image_id}")
def delete_image(image_id: int, orchestrator: BrandOrchestrator = Depends(get_orchestrator)):
    try:
        orchestrator.delete_image(image_id)
    except StudioError as exc:
        raise _http_error(exc) from exc
    return {"success": True}
