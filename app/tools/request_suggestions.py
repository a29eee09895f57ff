"""Writing suggestions for an artifact document."""

from typing import Any

import structlog
from langchain_core.messages import HumanMessage, SystemMessage
from langchain_core.tools import BaseTool, ToolException, tool
from pydantic import BaseModel, Field

from app.repositories.document_repo import DocumentRepository, NewSuggestion
from app.services.prompts import SUGGESTIONS_PROMPT
from app.tools.context import ToolContext

logger = structlog.get_logger()


class SuggestionItem(BaseModel):
    original_sentence: str = Field(description="The original sentence")
    suggested_sentence: str = Field(description="The suggested sentence")
    description: str = Field(description="The description of the suggestion")


class SuggestionList(BaseModel):
    suggestions: list[SuggestionItem] = Field(max_length=5)


def build_request_suggestions_tool(context: ToolContext, user_id: str | None) -> BaseTool:
    """Create the ``requestSuggestions`` tool."""

    @tool("requestSuggestions")
    async def request_suggestions(document_id: str) -> dict[str, Any]:
        """Request suggestions for a document.

        Args:
            document_id: The ID of the document to request edits for.
        """
        if user_id is None:
            raise ToolException("Suggestions require a signed-in user")

        async with context.session_factory() as session:
            document = await DocumentRepository(session).get_document_by_id(document_id)
        if document is None or not document.content:
            return {"error": "Document not found"}

        structured = context.llm.with_structured_output(SuggestionList)
        result = await structured.ainvoke(
            [
                SystemMessage(content=SUGGESTIONS_PROMPT),
                HumanMessage(content=document.content),
            ]
        )
        items = result.suggestions if isinstance(result, SuggestionList) else []

        async with context.session_factory() as session:
            records = await DocumentRepository(session).save_suggestions(
                document,
                [
                    NewSuggestion(
                        original_text=item.original_sentence,
                        suggested_text=item.suggested_sentence,
                        description=item.description,
                    )
                    for item in items
                ],
                user_id=user_id,
            )
            await session.commit()

        for record in records:
            context.writer.write_data(
                "suggestion",
                {
                    "id": record.id,
                    "documentId": document.id,
                    "originalText": record.original_text,
                    "suggestedText": record.suggested_text,
                    "description": record.description,
                    "isResolved": False,
                },
            )

        logger.info("Suggestions added", document_id=document.id, count=len(records))
        return {
            "id": document.id,
            "title": document.title,
            "kind": document.kind,
            "message": "Suggestions have been added to the document",
        }

    return request_suggestions
