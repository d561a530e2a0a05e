"""Exception hierarchy for vault-publish."""

from __future__ import annotations


class PublishError(Exception):
    """Base class for every error raised by :mod:`vault_publish`."""


class ConfigError(PublishError):
    """Invalid publish settings (raised at validation time, never mid-run)."""


class UnsupportedSanitizationRule(PublishError):
    """A sanitization rule names no known built-in and carries no usable regex."""

    def __init__(self, name: str, reason: str = "not implemented") -> None:
        self.name = name
        self.reason = reason
        super().__init__(f"Sanitization rule '{name}' is unsupported: {reason}")


class UploadError(PublishError):
    """The publishing endpoint rejected a request."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class ChunkUploadError(UploadError):
    """A chunk could not be delivered after every retry attempt."""

    def __init__(self, upload_id: str, chunk_index: int, total_chunks: int, attempts: int, cause: str) -> None:
        self.upload_id = upload_id
        self.chunk_index = chunk_index
        self.total_chunks = total_chunks
        self.attempts = attempts
        super().__init__(
            f"Failed to upload chunk {chunk_index}/{total_chunks} for {upload_id} "
            f"after {attempts} attempts: {cause}"
        )
