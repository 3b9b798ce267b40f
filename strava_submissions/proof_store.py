"""Local directory store for submitted proof images."""

from __future__ import annotations

import logging
import mimetypes
from os import PathLike
from pathlib import Path, PurePath

from .config import PROOF_PUBLIC_BASE_URL, PROOF_STORAGE_DIR
from .errors import PersistenceError
from .utils import sanitize_for_filename

LOGGER = logging.getLogger(__name__)

DEFAULT_PROOF_EXTENSION = ".jpg"
_ALLOWED_EXTENSIONS = {".jpg", ".jpeg", ".png", ".gif", ".webp", ".heic", ".pdf"}


def proof_extension(filename: str | None, content_type: str | None = None) -> str:
    suffix = PurePath(filename or "").suffix.lower()
    if suffix in _ALLOWED_EXTENSIONS:
        return suffix
    guessed = mimetypes.guess_extension(content_type or "") or ""
    if guessed.lower() in _ALLOWED_EXTENSIONS:
        return guessed.lower()
    return DEFAULT_PROOF_EXTENSION


def proof_filename(
    email: str, submission_id: str, original_name: str | None, content_type: str | None = None
) -> str:
    """``proof-<email-slug>-<submission-id><ext>``."""

    ext = proof_extension(original_name, content_type)
    return f"proof-{sanitize_for_filename(email)}-{submission_id}{ext}"


class LocalProofStore:
    """Write proof blobs below ``directory`` and hand back their public URL."""

    def __init__(
        self,
        directory: str | Path | PathLike[str] = PROOF_STORAGE_DIR,
        public_base_url: str = PROOF_PUBLIC_BASE_URL,
    ) -> None:
        self.directory = Path(directory)
        self.public_base_url = public_base_url.rstrip("/")

    def path_for(self, filename: str) -> Path:
        name = PurePath(filename).name
        if not name or name in {".", ".."}:
            raise PersistenceError("Invalid proof filename", code="proof_upload_failed")
        return self.directory / name

    def store(self, content: bytes, filename: str, content_type: str | None = None) -> str:
        target = self.path_for(filename)
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            target.write_bytes(content)
        except OSError as exc:
            LOGGER.error("Failed to store proof %s: %s", target, exc)
            raise PersistenceError(
                "Failed to upload proof image",
                code="proof_upload_failed",
                status=503,
                details={"filename": target.name},
            ) from exc
        LOGGER.info(
            "Stored proof %s (%d bytes, %s)", target.name, len(content), content_type or "?"
        )
        return f"{self.public_base_url}/{target.name}"


__all__ = ["LocalProofStore", "proof_extension", "proof_filename"]
