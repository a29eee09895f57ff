"""Speech-to-text via the OpenAI audio API."""

import structlog
from openai import AsyncOpenAI

logger = structlog.get_logger()

MIN_AUDIO_BYTES = 100
DEFAULT_AUDIO_FILENAME = "recording.m4a"
DEFAULT_AUDIO_TYPE = "audio/m4a"


class TranscriptionService:
    """Transcribe recorded audio to text."""

    def __init__(self, client: AsyncOpenAI, model: str) -> None:
        self._client = client
        self._model = model

    async def transcribe(
        self,
        audio: bytes,
        filename: str | None = None,
        content_type: str | None = None,
    ) -> str:
        """Return the transcript of an audio recording."""
        result = await self._client.audio.transcriptions.create(
            file=(
                filename or DEFAULT_AUDIO_FILENAME,
                audio,
                content_type or DEFAULT_AUDIO_TYPE,
            ),
            model=self._model,
        )
        logger.info("Audio transcribed", size=len(audio), chars=len(result.text))
        return result.text
