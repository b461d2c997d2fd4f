"""
Audio download from the vendor's file link.

One GET with a longer timeout than the API calls (audio files can be
large); no retries. The source format hint comes from the link's file
extension.
"""
from __future__ import annotations

from typing import Dict

import httpx

from tts_proxy.core.config import UpstreamConfig
from tts_proxy.core.errors import DownloadError
from tts_proxy.core.logging import debug, get_logger, verbose
from tts_proxy.tts.models import AudioAsset
from tts_proxy.utils.audio import infer_source_format, size_kb

_LOG = get_logger("tts-proxy.fetcher")


class AudioFetcher:
    def __init__(self, config: UpstreamConfig, http: httpx.AsyncClient):
        self.config = config
        self._http = http

    def _headers(self) -> Dict[str, str]:
        return {
            "accept": "*/*",
            # compressed transfer would hand us a different byte stream
            "accept-encoding": "identity;q=1, *;q=0",
            "user-agent": self.config.vendor.user_agent,
        }

    async def fetch(self, url: str) -> AudioAsset:
        """
        Download an audio file.

        Raises:
            DownloadError: Non-2xx status or transport failure.
        """
        debug(_LOG, "download_start", url=url)
        try:
            response = await self._http.get(url, headers=self._headers(), timeout=self.config.download_timeout_s)
        except httpx.HTTPError as exc:
            raise DownloadError(f"Failed to download audio file: {exc!r}", url) from exc

        if not response.is_success:
            raise DownloadError(
                f"Failed to download audio file: HTTP {response.status_code}",
                url,
                status=response.status_code,
            )

        asset = AudioAsset(data=response.content, source_format=infer_source_format(url))
        verbose(_LOG, "download_ok", size_kb=size_kb(asset.data), source_format=asset.source_format or "-")
        return asset
