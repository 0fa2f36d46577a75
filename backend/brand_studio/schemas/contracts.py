from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class RegisterBrandResponse(BaseModel):
    brand_id: int
    trigger_word: str


class BrandResponse(BaseModel):
    id: int
    name: str
    trigger_word: str
    user_id: str
    created_at: datetime
    training_status: Optional[str] = None


class RenameBrandRequest(BaseModel):
    name: str


class TrainRequest(BaseModel):
    brand_id: int
    image_urls: List[str] = Field(default_factory=list)
    trigger_word: Optional[str] = None


class TrainResponse(BaseModel):
    success: bool = True
    training_id: str
    job_id: int
    destination: str
    status: str
    packaged_images: int


class TrainingStatusResponse(BaseModel):
    job_id: int
    brand_id: int
    training_id: str
    status: str
    version: str
    destination: str
    created_at: datetime
    updated_at: datetime


class GenerateRequest(BaseModel):
    brand_id: int
    prompt: str
    aspect_ratio: Optional[str] = None
    seed: Optional[int] = Field(None, ge=0, le=4294967295)
    user_id: Optional[str] = None


class GenerateResponse(BaseModel):
    status: str
    image_url: Optional[str] = None
    image_id: Optional[int] = None
    seed: Optional[int] = None
    prompt: Optional[str] = None
    aspect_ratio: Optional[str] = None
    remote_status: Optional[str] = None
    message: str = ""


class GeneratedImageResponse(BaseModel):
    id: int
    brand_id: int
    user_id: str
    image_url: str
    prompt: str
    aspect_ratio: str
    seed: int
    created_at: datetime
