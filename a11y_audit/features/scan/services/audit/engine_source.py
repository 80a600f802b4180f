import asyncio
import logging
from pathlib import Path
from typing import Optional

import httpx

from a11y_audit.platform.config import settings
from a11y_audit.platform.exceptions import EngineInjectionError

logger = logging.getLogger(__name__)


class AxeSourceLoader:
    """
    Loads the axe-core script once per process.

    A local file (AXE_SCRIPT_PATH) wins over the download URL so air-gapped
    deployments can vendor the engine.
    """

    def __init__(self, script_path: Optional[str] = None, script_url: Optional[str] = None):
        self.script_path = script_path if script_path is not None else settings.AXE_SCRIPT_PATH
        self.script_url = script_url or settings.AXE_SCRIPT_URL
        self._source: Optional[str] = None
        self._lock = asyncio.Lock()

    async def load(self) -> str:
        if self._source is not None:
            return self._source

        async with self._lock:
            if self._source is None:
                source = await (self._read_file() if self.script_path else self._download())
                if "axe" not in source:
                    raise EngineInjectionError("Loaded rule engine source does not define axe")
                self._source = source
                logger.info(f"Loaded axe-core source ({len(source)} bytes)")
        return self._source

    async def _read_file(self) -> str:
        path = Path(self.script_path)
        return await asyncio.to_thread(path.read_text, encoding="utf-8")

    async def _download(self) -> str:
        logger.info(f"Downloading axe-core from {self.script_url}")
        async with httpx.AsyncClient(
            timeout=settings.AXE_DOWNLOAD_TIMEOUT_SECONDS, follow_redirects=True
        ) as client:
            response = await client.get(self.script_url)
            response.raise_for_status()
            return response.text


axe_source = AxeSourceLoader()
