"""Per-turn resources shared by the chat tools."""

from dataclasses import dataclass

import httpx
from langchain_core.language_models import BaseChatModel
from openai import AsyncOpenAI

from app.core.database import SessionFactory
from app.services.storage_service import BlobStorage
from app.services.ui_stream import UIMessageStreamWriter


@dataclass(frozen=True)
class ToolContext:
    """What a tool may touch while a turn is streaming.

    Tools open their own database sessions; the request session is closed
    by the time the model calls them.
    """

    writer: UIMessageStreamWriter
    session_factory: SessionFactory
    http_client: httpx.AsyncClient
    llm: BaseChatModel
    blob_storage: BlobStorage
    openai_client: AsyncOpenAI
