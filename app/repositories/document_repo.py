"""Document and suggestion repository."""

from dataclasses import dataclass
from datetime import UTC, datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.document import Document, Suggestion


@dataclass(frozen=True)
class NewSuggestion:
    """Suggestion to be attached to a document version."""

    original_text: str
    suggested_text: str
    description: str | None = None


class DocumentRepository:
    """Encapsulates versioned document queries."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def save_document(
        self,
        document_id: str,
        title: str,
        kind: str,
        content: str,
        user_id: str,
    ) -> Document:
        """Insert a new version of a document."""
        document = Document(
            id=document_id,
            created_at=datetime.now(UTC),
            title=title,
            kind=kind,
            content=content,
            user_id=user_id,
        )
        self._session.add(document)
        await self._session.flush()
        return document

    async def get_documents_by_id(self, document_id: str) -> list[Document]:
        """All versions of a document, oldest first."""
        result = await self._session.execute(
            select(Document)
            .where(Document.id == document_id)
            .order_by(Document.created_at.asc())
        )
        return list(result.scalars().all())

    async def get_document_by_id(self, document_id: str) -> Document | None:
        """Latest version of a document."""
        result = await self._session.execute(
            select(Document)
            .where(Document.id == document_id)
            .order_by(Document.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def save_suggestions(
        self,
        document: Document,
        suggestions: list[NewSuggestion],
        user_id: str,
    ) -> list[Suggestion]:
        """Attach suggestions to a document version."""
        records = [
            Suggestion(
                document_id=document.id,
                document_created_at=document.created_at,
                original_text=item.original_text,
                suggested_text=item.suggested_text,
                description=item.description,
                is_resolved=False,
                user_id=user_id,
                created_at=datetime.now(UTC),
            )
            for item in suggestions
        ]
        self._session.add_all(records)
        await self._session.flush()
        return records

    async def get_suggestions_by_document_id(self, document_id: str) -> list[Suggestion]:
        """Suggestions recorded for any version of a document."""
        result = await self._session.execute(
            select(Suggestion)
            .where(Suggestion.document_id == document_id)
            .order_by(Suggestion.created_at.asc())
        )
        return list(result.scalars().all())
