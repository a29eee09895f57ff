"""Detached background task for generating chat titles."""

import asyncio

import structlog
from langchain_core.language_models import BaseChatModel

from app.core.database import SessionFactory
from app.repositories.chat_repo import ChatRepository
from app.services.title_service import TitleService

logger = structlog.get_logger()

# Strong references keep scheduled tasks alive until they finish.
_pending_tasks: set[asyncio.Task[str | None]] = set()


async def generate_chat_title(
    chat_id: str,
    message: str,
    llm: BaseChatModel,
    session_factory: SessionFactory,
) -> str | None:
    """Generate and persist a chat title in an independent DB session.

    Returns the title, or None when generation or persistence failed.
    """
    try:
        title = await TitleService(llm).generate_title(message)

        async with session_factory() as session:
            repo = ChatRepository(session)
            await repo.update_chat_title_by_id(chat_id, title)
            await session.commit()

        logger.info("Chat title generated", chat_id=chat_id, title=title)
        return title
    except Exception:
        logger.exception("Failed to generate chat title", chat_id=chat_id)
        return None


def schedule_title_generation(
    chat_id: str,
    message: str,
    llm: BaseChatModel,
    session_factory: SessionFactory,
) -> asyncio.Task[str | None]:
    """Start title generation without awaiting it.

    The task completes even if the stream that started it is gone.
    """
    task = asyncio.create_task(
        generate_chat_title(chat_id, message, llm, session_factory),
        name=f"chat-title-{chat_id}",
    )
    _pending_tasks.add(task)
    task.add_done_callback(_pending_tasks.discard)
    return task
