"""File upload configuration."""

from pydantic import BaseModel


class FileUploadConfig(BaseModel, frozen=True):
    """File upload settings."""

    max_file_size_mb: int
    allowed_content_types: str

    @property
    def allowed_content_types_list(self) -> list[str]:
        """Get allowed content types as a list."""
        return [
            value.strip().lower()
            for value in self.allowed_content_types.split(",")
            if value.strip()
        ]

    @property
    def max_file_size_bytes(self) -> int:
        """Get maximum file size in bytes."""
        return self.max_file_size_mb * 1024 * 1024
