from __future__ import annotations

import logging
import time
from typing import Callable, Optional

import httpx
from sqlmodel import Session

from brand_studio.models.entities import Brand, GeneratedImage
from brand_studio.services.artifact_store import ArtifactStore
from brand_studio.services.errors import GenerationError, StorageError
from brand_studio.services.inference import InferenceResult
from brand_studio.services.packager import extension_for

logger = logging.getLogger(__name__)

CONTENT_TYPES = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "webp": "image/webp",
}


class ResultPersister:
    def __init__(
        self,
        session: Session,
        store: ArtifactStore,
        bucket: str,
        *,
        timeout: float = 30,
        transport: Optional[httpx.BaseTransport] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.session = session
        self.store = store
        self.bucket = bucket
        self.timeout = timeout
        self.transport = transport
        self.clock = clock

    def persist(self, brand: Brand, user_id: str, result: InferenceResult) -> GeneratedImage:
        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport, follow_redirects=True) as client:
                resp = client.get(result.output_url)
                resp.raise_for_status()
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise GenerationError(f"Could not download generated image: {exc}") from exc

        ext = extension_for(result.output_url)
        path = f"{brand.id}/{int(self.clock() * 1000)}.{ext}"
        try:
            self.store.upload(self.bucket, path, resp.content, CONTENT_TYPES.get(ext, "application/octet-stream"))
        except StorageError as exc:
            raise GenerationError(f"Could not store generated image: {exc}") from exc

        image = GeneratedImage(
            brand_id=brand.id,
            user_id=user_id,
            image_url=self.store.public_url(self.bucket, path),
            storage_path=path,
            prompt=result.prompt,
            aspect_ratio=result.aspect_ratio,
            seed=result.seed,
        )
        self.session.add(image)
        self.session.commit()
        self.session.refresh(image)
        logger.info(f"Saved generated image {image.id} at {self.bucket}/{path}")
        return image
