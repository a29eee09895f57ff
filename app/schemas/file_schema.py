"""File upload and transcription schemas."""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class StoredBlob(BaseModel):
    """Result of storing bytes in blob storage."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True
    )

    url: str
    pathname: str
    content_type: str
    size: int


class TranscriptionResponse(BaseModel):
    """Speech-to-text result."""

    text: str
