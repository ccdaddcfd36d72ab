import asyncio
import logging
import urllib.parse
from typing import Dict, Optional

from .errors import AuthTimeoutError, ListenerError

logger = logging.getLogger(__name__)

SUCCESS_PAGE = (
    "<html><head><title>spotycli</title></head><body>"
    "<h1>Authentication received</h1>"
    "<p>You can close this window and return to spotycli.</p>"
    "</body></html>"
)
FAILURE_PAGE = (
    "<html><head><title>spotycli</title></head><body>"
    "<h1>Authentication failed</h1>"
    "<p>{reason}. You can close this window.</p>"
    "</body></html>"
)

_STATUS_TEXT = {200: "OK", 400: "Bad Request", 404: "Not Found"}


class CallbackListener:
    """One-shot HTTP listener for the OAuth redirect.

    Requests for other paths (browsers ask for /favicon.ico) get a 404 and the
    listener keeps waiting. The first GET on the redirect path is answered,
    its query parameters become the result, and the server stops accepting.
    """

    def __init__(self, redirect_uri: str, *, read_timeout: float = 10.0):
        parsed = urllib.parse.urlsplit(str(redirect_uri or "").strip())
        if parsed.scheme != "http" or not parsed.hostname:
            raise ListenerError(f"Redirect URI must be a local http:// URL, got {redirect_uri!r}")

        self.host = parsed.hostname
        self.port = parsed.port if parsed.port is not None else 80
        self.path = parsed.path or "/"
        self.read_timeout = read_timeout

        self._server: Optional[asyncio.AbstractServer] = None
        self._result: Optional[asyncio.Future] = None

    @property
    def running(self) -> bool:
        return self._server is not None and self._server.is_serving()

    async def start(self) -> None:
        self._result = asyncio.get_running_loop().create_future()
        try:
            self._server = await asyncio.start_server(self._handle, self.host, self.port)
        except OSError as e:
            raise ListenerError(f"Could not listen on {self.host}:{self.port}: {e}") from e

        if self.port == 0:
            self.port = self._server.sockets[0].getsockname()[1]
        logger.info("OAuth callback listener on http://%s:%s%s", self.host, self.port, self.path)

    async def wait(self, timeout: float) -> Dict[str, str]:
        """Return the callback's query parameters, or raise AuthTimeoutError."""

        if self._result is None:
            raise ListenerError("Callback listener was not started")
        try:
            return await asyncio.wait_for(asyncio.shield(self._result), timeout)
        except asyncio.TimeoutError as e:
            raise AuthTimeoutError(f"No OAuth callback received within {int(timeout)}s") from e

    async def close(self) -> None:
        if self._server is None:
            return
        self._server.close()
        await self._server.wait_closed()
        self._server = None
        if self._result is not None and not self._result.done():
            self._result.cancel()

    async def _handle(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        try:
            request_line = await asyncio.wait_for(reader.readline(), self.read_timeout)
            # Headers are not needed; read up to the blank line.
            while True:
                line = await asyncio.wait_for(reader.readline(), self.read_timeout)
                if line in (b"\r\n", b"\n", b""):
                    break

            parts = request_line.decode("latin-1").split()
            if len(parts) < 2:
                await self._respond(writer, 400, FAILURE_PAGE.format(reason="Malformed request"))
                return

            method, target = parts[0], parts[1]
            parsed = urllib.parse.urlsplit(target)
            if method != "GET" or parsed.path != self.path or self._result is None or self._result.done():
                await self._respond(writer, 404, FAILURE_PAGE.format(reason="Not found"))
                return

            params = {k: v[0] for k, v in urllib.parse.parse_qs(parsed.query).items() if v}
            if params.get("error"):
                page = FAILURE_PAGE.format(reason=f"Spotify returned: {params['error']}")
            elif not params.get("code"):
                page = FAILURE_PAGE.format(reason="Missing authorization code")
            else:
                page = SUCCESS_PAGE
            await self._respond(writer, 200, page)

            self._result.set_result(params)
            # Exactly one callback is accepted.
            if self._server is not None:
                self._server.close()
        except (OSError, asyncio.TimeoutError, UnicodeDecodeError) as e:
            logger.debug("Dropped callback connection: %s", e)
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except OSError:
                pass

    @staticmethod
    async def _respond(writer: asyncio.StreamWriter, status: int, body: str) -> None:
        payload = body.encode("utf-8")
        head = (
            f"HTTP/1.1 {status} {_STATUS_TEXT.get(status, '')}\r\n"
            "Content-Type: text/html; charset=utf-8\r\n"
            f"Content-Length: {len(payload)}\r\n"
            "Connection: close\r\n\r\n"
        )
        writer.write(head.encode("latin-1") + payload)
        await writer.drain()
