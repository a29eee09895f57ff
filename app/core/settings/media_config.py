"""Image generation and transcription configuration."""

from pydantic import BaseModel


class MediaConfig(BaseModel, frozen=True):
    """OpenAI media model settings."""

    image_model: str
    image_size: str
    transcription_model: str
