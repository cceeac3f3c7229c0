"""
Sync Transport
==============

One HTTP round trip to the end-time endpoint over aiohttp, bounded by a hard
timeout. The request runs as its own task so it can be cancelled either by
the timeout or by abort(); the two surface as different errors.
"""

import asyncio
import logging
from typing import Optional

import aiohttp

from .config import WEAK_NETWORK_TIMEOUT
from .errors import SyncAbortedError, SyncHTTPError, SyncNetworkError, SyncTimeoutError
from .sync_protocol import ErrorResponse, SyncRequest, SyncResponse

logger = logging.getLogger(__name__)


class SyncTransport:
    """HTTP client for the sync endpoint.

    Args:
        url:     Full endpoint URL.
        timeout: Hard per-request timeout (seconds).
        session: Optional shared aiohttp session; one is created lazily otherwise.
    """

    def __init__(
        self,
        url: str,
        timeout: float = WEAK_NETWORK_TIMEOUT,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.url = url
        self.timeout = timeout
        self._session = session
        self._owns_session = session is None
        self._inflight: Optional[asyncio.Task] = None
        self._aborted = False

    @property
    def busy(self) -> bool:
        return self._inflight is not None and not self._inflight.done()

    async def fetch_sync(self, send_time: int) -> SyncResponse:
        """POST ``{t: send_time}`` and return the decoded response.

        Raises:
            SyncTimeoutError: no answer within ``timeout``.
            SyncAbortedError: abort() was called while in flight.
            SyncHTTPError:    non-2xx status.
            SyncNetworkError: connection failure or unreadable body.
        """
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True

        self._aborted = False
        self._inflight = asyncio.ensure_future(self._request(send_time))
        try:
            return await asyncio.wait_for(self._inflight, timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.debug(f"Sync request timed out after {self.timeout}s")
            raise SyncTimeoutError(f"timeout after {self.timeout}s") from None
        except asyncio.CancelledError:
            if self._aborted:
                raise SyncAbortedError("Sync request aborted") from None
            raise
        finally:
            self._inflight = None

    def abort(self) -> bool:
        """Cancel the in-flight request, if any.

        Returns:
            True if a request was cancelled.
        """
        if not self.busy:
            return False
        self._aborted = True
        self._inflight.cancel()
        return True

    async def _request(self, send_time: int) -> SyncResponse:
        body = SyncRequest(t=send_time).encode()
        try:
            async with self._session.post(self.url, json=body) as resp:
                try:
                    payload = await resp.json(content_type=None)
                except ValueError:
                    payload = None

                if not 200 <= resp.status < 300:
                    err = ErrorResponse.decode(payload)
                    raise SyncHTTPError(resp.status, err.err if err else None)
                if payload is None:
                    raise SyncNetworkError("Unreadable sync response")
        except aiohttp.ClientError as e:
            raise SyncNetworkError(f"{type(e).__name__}: {e}") from e

        try:
            response = SyncResponse.decode(payload)
        except ValueError as e:
            raise SyncNetworkError(str(e)) from e
        logger.debug(f"Sync response: {response}")
        return response

    async def close(self):
        self.abort()
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()
        self._session = None
