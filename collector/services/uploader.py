"""
collector/services/uploader.py

Posts a drained batch of samples to the remote collector.
Every call resolves to exactly one success/failure result; nothing is
retried here. Retrying is the coordinator's job via later report ticks.
"""

from typing import Optional

import httpx
import structlog

from collector.errors import TransportError
from collector.schemas import Sample
from config import settings

logger = structlog.get_logger(__name__)


class NetworkUploader:
    """Serializes a batch to its wire field-maps and POSTs it as JSON."""

    def __init__(
        self,
        url: str = settings.collector_url,
        timeout: float = settings.upload_timeout_s,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.url = url
        self.timeout = timeout
        self._transport = transport

    async def _post(self, body: list[dict]) -> None:
        async with httpx.AsyncClient(
            timeout=self.timeout, transport=self._transport
        ) as client:
            response = await client.post(self.url, json=body)
        if not response.is_success:
            raise TransportError(
                f"collector responded {response.status_code}",
                status_code=response.status_code,
            )

    async def upload(self, batch: list[Sample]) -> bool:
        """Send one batch; True on a 2xx response, False on any failure."""
        body = [sample.to_wire() for sample in batch]
        try:
            await self._post(body)
        except httpx.TimeoutException:
            logger.warning(
                "upload_timeout",
                url=self.url,
                batch_size=len(batch),
            )
            return False
        except TransportError as exc:
            logger.error(
                "upload_http_error",
                url=self.url,
                status=exc.status_code,
                batch_size=len(batch),
            )
            return False
        except Exception as exc:
            logger.error(
                "upload_unexpected_error",
                url=self.url,
                error=str(exc),
                batch_size=len(batch),
            )
            return False

        logger.info("upload_succeeded", url=self.url, batch_size=len(batch))
        return True
