"""Blob storage configuration."""

from pathlib import Path

from pydantic import BaseModel


class StorageConfig(BaseModel, frozen=True):
    """Local blob storage settings."""

    path: Path
    public_base_url: str
