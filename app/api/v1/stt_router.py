"""Speech-to-text API router."""

from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, File, UploadFile, status
from fastapi.responses import JSONResponse
from openai import OpenAIError

from app.dependencies import get_transcription_service, require_principal
from app.schemas.auth_schema import Principal
from app.schemas.file_schema import TranscriptionResponse
from app.services.transcription_service import MIN_AUDIO_BYTES, TranscriptionService

logger = structlog.get_logger()

router = APIRouter(prefix="/api/stt", tags=["speech"])

TranscriptionServiceDep = Annotated[
    TranscriptionService, Depends(get_transcription_service)
]


@router.post("", response_model=None)
async def transcribe(
    service: TranscriptionServiceDep,
    principal: Principal = Depends(require_principal),
    file: UploadFile | None = File(default=None),
) -> TranscriptionResponse | JSONResponse:
    """Transcribe a recorded audio clip."""
    if file is None:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "No audio file provided"},
        )

    audio = await file.read()
    if len(audio) < MIN_AUDIO_BYTES:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "Audio file is empty or too small"},
        )

    try:
        text = await service.transcribe(audio, file.filename, file.content_type)
    except OpenAIError as exc:
        logger.exception("Transcription failed", user_id=principal.id)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Failed to transcribe audio", "details": str(exc)},
        )
    return TranscriptionResponse(text=text)
