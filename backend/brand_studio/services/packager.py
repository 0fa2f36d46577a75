from __future__ import annotations

import asyncio
import logging
import zipfile
from dataclasses import dataclass, field
from io import BytesIO
from pathlib import PurePosixPath
from typing import Optional, Sequence
from urllib.parse import urlparse

import httpx

logger = logging.getLogger(__name__)

DEFAULT_EXTENSION = "jpg"


@dataclass
class PackagedArchive:
    data: bytes
    entries: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)


def extension_for(url: str) -> str:
    suffix = PurePosixPath(urlparse(url).path).suffix.lstrip(".").lower()
    if suffix and suffix.isalnum() and len(suffix) <= 5:
        return suffix
    return DEFAULT_EXTENSION


class AssetPackager:
    """Fetch training images in parallel and zip whatever arrived."""

    def __init__(self, timeout: float = 30, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.timeout = timeout
        self.transport = transport

    def package(self, urls: Sequence[str]) -> PackagedArchive:
        # Called from sync request handlers, which run outside the event loop.
        return asyncio.run(self.package_async(urls))

    async def package_async(self, urls: Sequence[str]) -> PackagedArchive:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport, follow_redirects=True) as client:
            fetched = await asyncio.gather(*(self._fetch(client, idx, url) for idx, url in enumerate(urls)))

        archive = PackagedArchive(data=b"")
        buf = BytesIO()
        with zipfile.ZipFile(buf, "w", zipfile.ZIP_DEFLATED) as zf:
            for idx, url, content in fetched:
                if content is None:
                    archive.skipped.append(url)
                    continue
                name = f"{idx}.{extension_for(url)}"
                zf.writestr(name, content)
                archive.entries.append(name)
        archive.data = buf.getvalue()
        logger.info(f"Packaged {len(archive.entries)}/{len(urls)} training images")
        return archive

    async def _fetch(self, client: httpx.AsyncClient, idx: int, url: str) -> tuple[int, str, Optional[bytes]]:
        try:
            resp = await client.get(url)
            resp.raise_for_status()
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            logger.warning(f"Skipping training image #{idx} ({url}): {exc}")
            return idx, url, None
        return idx, url, resp.content
