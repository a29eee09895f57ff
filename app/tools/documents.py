"""Artifact document tools: ``createDocument`` and ``updateDocument``.

Generated content is streamed to the client as transient ``data-*`` frames
while it is produced, then saved as a new document version.
"""

import uuid
from typing import Any, Literal

import structlog
from langchain_core.language_models import BaseChatModel
from langchain_core.messages import HumanMessage, SystemMessage
from langchain_core.tools import BaseTool, ToolException, tool

from app.repositories.document_repo import DocumentRepository
from app.services.message_normalizer import content_text
from app.services.prompts import DOCUMENT_PROMPTS, UPDATE_DOCUMENT_PROMPT
from app.services.ui_stream import UIMessageStreamWriter
from app.tools.context import ToolContext

logger = structlog.get_logger()

DocumentKind = Literal["text", "code", "sheet"]

DELTA_FRAMES: dict[str, str] = {
    "text": "textDelta",
    "code": "codeDelta",
    "sheet": "sheetDelta",
}


async def stream_document_content(
    llm: BaseChatModel,
    writer: UIMessageStreamWriter,
    kind: str,
    system: str,
    prompt: str,
) -> str:
    """Generate document content, relaying it as it is produced.

    Text documents stream deltas; code and sheet documents stream the whole
    content so far, which is what their editors render.
    """
    frame_name = DELTA_FRAMES.get(kind, "textDelta")
    content = ""
    messages = [SystemMessage(content=system), HumanMessage(content=prompt)]
    async for chunk in llm.astream(messages):
        delta = content_text(chunk.content)
        if not delta:
            continue
        content += delta
        writer.write_data(frame_name, delta if kind == "text" else content)
    return content


def build_document_tools(context: ToolContext, user_id: str | None) -> list[BaseTool]:
    """Create the ``createDocument`` and ``updateDocument`` tools."""

    def require_user() -> str:
        if user_id is None:
            raise ToolException("Documents require a signed-in user")
        return user_id

    @tool("createDocument")
    async def create_document(title: str, kind: DocumentKind) -> dict[str, Any]:
        """Create a document for writing or content creation activities.
        Generates the contents based on the title and kind.

        Args:
            title: Title of the document.
            kind: One of "text", "code" or "sheet".
        """
        owner = require_user()
        document_id = str(uuid.uuid4())
        writer = context.writer

        writer.write_data("kind", kind)
        writer.write_data("id", document_id)
        writer.write_data("title", title)
        writer.write_data("clear", None)

        content = await stream_document_content(
            context.llm, writer, kind, DOCUMENT_PROMPTS[kind], title
        )

        async with context.session_factory() as session:
            await DocumentRepository(session).save_document(
                document_id=document_id,
                title=title,
                kind=kind,
                content=content,
                user_id=owner,
            )
            await session.commit()

        writer.write_data("finish", None)
        logger.info("Document created", document_id=document_id, kind=kind)
        return {
            "id": document_id,
            "title": title,
            "kind": kind,
            "content": "A document was created and is now visible to the user.",
        }

    @tool("updateDocument")
    async def update_document(id: str, description: str) -> dict[str, Any]:  # noqa: A002
        """Update a document with the given description.

        Args:
            id: The ID of the document to update.
            description: The description of changes that need to be made.
        """
        owner = require_user()
        async with context.session_factory() as session:
            document = await DocumentRepository(session).get_document_by_id(id)
        if document is None:
            return {"error": "Document not found"}

        writer = context.writer
        writer.write_data("clear", None)

        content = await stream_document_content(
            context.llm,
            writer,
            document.kind,
            UPDATE_DOCUMENT_PROMPT.format(
                kind=document.kind, content=document.content or ""
            ),
            description,
        )

        async with context.session_factory() as session:
            await DocumentRepository(session).save_document(
                document_id=document.id,
                title=document.title,
                kind=document.kind,
                content=content,
                user_id=owner,
            )
            await session.commit()

        writer.write_data("finish", None)
        logger.info("Document updated", document_id=document.id)
        return {
            "id": document.id,
            "title": document.title,
            "kind": document.kind,
            "content": "The document has been updated successfully.",
        }

    return [create_document, update_document]
