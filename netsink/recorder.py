"""
Response recorder for the HTTP file server
"""

import logging
from typing import Optional

from aiohttp import web
from multidict import CIMultiDict

logger = logging.getLogger(__name__)

# Statuses that never carry a body, whatever Content-Length says
BODYLESS_STATUSES = (204, 304)


class ResponseRecorder:
    """
    Wraps a web.StreamResponse and records what was sent through it.

    Handlers write through the recorder instead of the response itself. The
    status defaults to 200 and is fixed once the headers go out (first write
    wins); size counts body bytes handed to write()/write_eof(), or the
    declared body length of a response sent through send_response().
    """

    def __init__(self, response: Optional[web.StreamResponse] = None):
        self.response = response if response is not None else web.StreamResponse()
        self.size = 0

    @property
    def status(self) -> int:
        return self.response.status

    @property
    def headers(self) -> CIMultiDict:
        return self.response.headers

    @property
    def prepared(self) -> bool:
        return self.response.prepared

    def set_status(self, status: int, reason: Optional[str] = None) -> None:
        if self.response.prepared:
            logger.debug(f"Ignoring status {status}: headers already sent with {self.response.status}")
            return
        self.response.set_status(status, reason)

    async def prepare(self, request: web.BaseRequest) -> None:
        await self.response.prepare(request)

    async def write(self, data: bytes) -> None:
        if not self.response.prepared:
            raise RuntimeError("Response headers have not been sent")
        await self.response.write(data)
        self.size += len(data)

    async def write_eof(self, data: bytes = b"") -> None:
        await self.response.write_eof(data)
        self.size += len(data)

    async def send(
        self,
        request: web.BaseRequest,
        status: int,
        body: bytes = b"",
        content_type: str = "text/plain; charset=utf-8",
    ) -> web.StreamResponse:
        """
        Send a complete small response in one go.

        Args:
            request: The request being answered
            status: HTTP status code
            body: Response body (skipped for HEAD requests)
            content_type: Value for the Content-Type header

        Returns:
            The underlying response, ready to be returned from a handler
        """
        self.set_status(status)
        self.headers["Content-Type"] = content_type
        self.response.content_length = len(body)
        await self.prepare(request)
        if body and request.method != "HEAD":
            await self.write(body)
        await self.write_eof()
        return self.response

    async def send_response(self, request: web.BaseRequest, response: web.StreamResponse) -> web.StreamResponse:
        """
        Send a response that writes its own body, such as web.FileResponse.

        The recorder adopts the response, so the status is whatever it settled
        on while preparing (200, 206, 304, 416...). The size is the body length
        it declared, or 0 when no body goes out.
        """
        self.response = response
        await response.prepare(request)
        await response.write_eof()
        if request.method != "HEAD" and response.status not in BODYLESS_STATUSES:
            self.size += response.content_length or 0
        return response
