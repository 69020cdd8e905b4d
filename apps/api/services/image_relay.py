"""Forward poster images to the image host and keep the returned URL."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from config import settings
from services.providers import BaseImageHost, ProviderError

logger = logging.getLogger(__name__)


_UNSAFE_CHARS = re.compile(r"[^a-z0-9]", re.IGNORECASE)
_ALLOWED_SUFFIXES = {".jpg", ".jpeg", ".png", ".webp", ".gif", ".avif"}


@dataclass(frozen=True)
class RelayResult:
    url: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return bool(self.url) and not self.error


def sanitize_title(title: Optional[str]) -> str:
    """Replace every non-alphanumeric character with an underscore."""
    return _UNSAFE_CHARS.sub("_", (title or "").strip()) or "untitled"


def poster_file_name(title: Optional[str], entry_id: str, original_name: Optional[str] = None) -> str:
    suffix = Path(original_name or "").suffix.lower()
    if suffix not in _ALLOWED_SUFFIXES:
        suffix = ".jpg"
    return f"{sanitize_title(title)}-{entry_id}{suffix}"


async def relay_image(
    host: BaseImageHost,
    data: bytes,
    *,
    title: Optional[str],
    entry_id: str,
    original_name: Optional[str] = None,
    content_type: Optional[str] = None,
) -> RelayResult:
    """Upload ``data`` to the image host.

    Provider failures are reported in the result rather than raised so callers
    can keep whatever database writes already succeeded.
    """
    file_name = poster_file_name(title, entry_id, original_name)
    try:
        hosted = await host.upload(
            data,
            file_name=file_name,
            content_type=content_type,
            folder=settings.IMAGEKIT_FOLDER or None,
        )
    except ProviderError as exc:
        logger.warning("Poster relay failed for entry %s (%s): %s", entry_id, file_name, exc)
        return RelayResult(error=exc.message)
    logger.info("poster_relayed entry=%s file=%s url=%s", entry_id, file_name, hosted.url)
    return RelayResult(url=hosted.url)
