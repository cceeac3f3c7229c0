"""
End-Time Endpoint
=================

Reference server for the sync endpoint, on aiohttp.web. It answers as fast
as possible with the server clock and the deadline:

    POST /api/end-time   { t }  →  200 { s, e, t }
                                →  504 { err: "server_timeout" }  (body read too slow)
                                →  500 { err }

Usage:
    python -m countdown_sync.server [--host 127.0.0.1] [--port 3000] [--end-time MS]
"""

import argparse
import asyncio
import logging
import sys
from typing import Callable, Optional

from aiohttp import web

from .sync_protocol import ErrorResponse, SyncResponse, current_time_ms

logger = logging.getLogger(__name__)

ONE_DAY_MS = 1000 * 60 * 60 * 24
SERVER_TIMEOUT = 1.5  # seconds


class EndTimeServer:
    """Serves one countdown deadline.

    Args:
        end_time: Deadline in ms; defaults to start-up time + 24 h.
        path:     Route of the sync endpoint.
        clock:    Server clock in ms.
    """

    def __init__(
        self,
        end_time: Optional[int] = None,
        path: str = "/api/end-time",
        clock: Callable[[], int] = current_time_ms,
    ):
        self._clock = clock
        self.end_time = end_time if end_time is not None else clock() + ONE_DAY_MS
        self.path = path
        self.requests = 0

    def create_app(self) -> web.Application:
        app = web.Application()
        app.router.add_post(self.path, self._handle_end_time)
        return app

    async def _handle_end_time(self, request: web.Request) -> web.Response:
        self.requests += 1
        try:
            body = await asyncio.wait_for(self._read_body(request), timeout=SERVER_TIMEOUT)
        except asyncio.TimeoutError:
            logger.warning("Request body read timed out")
            return web.json_response(ErrorResponse("server_timeout").encode(), status=504)

        try:
            client_send_time = body.get("t") or self._clock()
            response = SyncResponse(
                server_now=self._clock(),
                server_end_time=self.end_time,
                echoed_send_time=client_send_time,
            )
            return web.json_response(response.encode())
        except Exception as e:
            logger.error(f"End-time handler failed: {e}")
            return web.json_response(ErrorResponse(str(e) or "err").encode(), status=500)

    @staticmethod
    async def _read_body(request: web.Request) -> dict:
        """JSON body, or {} when it is missing or malformed."""
        try:
            body = await request.json()
        except ValueError:
            return {}
        return body if isinstance(body, dict) else {}


def parse_args():
    parser = argparse.ArgumentParser(description="Countdown end-time server")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", "-p", type=int, default=3000)
    parser.add_argument("--end-time", "-e", type=int, default=None, help="Deadline (ms since epoch)")
    parser.add_argument("--verbose", "-v", action="store_true")
    return parser.parse_args()


def main():
    args = parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )
    server = EndTimeServer(end_time=args.end_time)
    logger.info(f"Deadline: {server.end_time}")
    web.run_app(server.create_app(), host=args.host, port=args.port)


if __name__ == "__main__":
    main()
