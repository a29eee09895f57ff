"""Service for generating chat titles via LLM."""

import re

from langchain_core.language_models import BaseChatModel

from app.services.message_normalizer import content_text

MAX_TITLE_LENGTH = 80
DEFAULT_TITLE = "New chat"

TITLE_PROMPT = (
    "Generate a short title based on the first message a user begins a "
    "conversation with. The title must be at most 80 characters long, must be "
    "a summary of the user's message, and must not use quotes or colons. "
    "Output only the title.\n\n"
    "Message:\n{message}"
)

_FORBIDDEN_CHARS = re.compile(r"[\"'`:“”‘’]")


class TitleService:
    """Generates concise chat titles from user messages."""

    def __init__(self, llm: BaseChatModel) -> None:
        self._llm = llm

    async def generate_title(self, message: str) -> str:
        """Summarise a user message into a title of at most 80 characters."""
        response = await self._llm.ainvoke(TITLE_PROMPT.format(message=message))
        title = _FORBIDDEN_CHARS.sub("", content_text(response.content))
        title = " ".join(title.split())[:MAX_TITLE_LENGTH].strip()
        return title or DEFAULT_TITLE
