"""Image generation tool."""

import base64
import time
from typing import Any

import structlog
from langchain_core.tools import BaseTool, ToolException, tool

from app.core.config import settings
from app.tools.context import ToolContext

logger = structlog.get_logger()


def build_generate_image_tool(context: ToolContext) -> BaseTool:
    """Create the ``generateImage`` tool.

    The image URL is announced to the client as a transient ``data-image``
    frame; it never becomes part of the stored transcript.
    """

    @tool("generateImage")
    async def generate_image(prompt: str) -> dict[str, Any]:
        """Generate, create, or make an image, picture, photo, or illustration
        based on a text description. Use this tool whenever the user asks to
        create, generate, draw, make, or produce any kind of visual image.

        Args:
            prompt: A detailed description of the image to generate: subject,
                style, colors, composition and mood.
        """
        result = await context.openai_client.images.generate(
            model=settings.media.image_model,
            prompt=prompt,
            n=1,
            size=settings.media.image_size,  # type: ignore[arg-type]
            response_format="b64_json",
        )
        if not result.data or not result.data[0].b64_json:
            raise ToolException("The image service returned no image")

        image_bytes = base64.b64decode(result.data[0].b64_json)
        blob = await context.blob_storage.put(
            f"generated-{int(time.time() * 1000)}.png", image_bytes, "image/png"
        )
        logger.info("Image generated", url=blob.url)

        context.writer.write_data("image", blob.url)
        return {
            "success": True,
            "imageUrl": blob.url,
            "message": "Image generated successfully",
        }

    return generate_image
