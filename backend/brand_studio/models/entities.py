from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import BigInteger, Column
from sqlmodel import Field, SQLModel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Brand(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    trigger_word: str = Field(index=True, unique=True)
    user_id: str = Field(index=True)
    current_job_id: Optional[int] = Field(default=None)
    created_at: datetime = Field(default_factory=utcnow)


class TrainingAsset(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    brand_id: int = Field(foreign_key="brand.id", index=True)
    storage_path: str
    file_name: str
    created_at: datetime = Field(default_factory=utcnow)


class TrainingJob(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    brand_id: int = Field(foreign_key="brand.id", index=True)
    remote_id: str = Field(index=True)
    destination: str = ""
    status: str = "starting"
    version: str = ""
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class GeneratedImage(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    brand_id: int = Field(foreign_key="brand.id", index=True)
    user_id: str = Field(index=True)
    image_url: str
    storage_path: str
    prompt: str
    aspect_ratio: str
    seed: int = Field(sa_column=Column(BigInteger, nullable=False))
    created_at: datetime = Field(default_factory=utcnow)
