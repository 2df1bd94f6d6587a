"""Static asset serving with conditional GET support."""

import logging
import stat
from email.utils import formatdate, parsedate_to_datetime
from pathlib import Path
from typing import BinaryIO, Iterator, Optional

from asset_server.bootstrap.config import (
    CACHE_CONTROL,
    SECURITY_HEADERS,
    STATIC_METHODS,
)
from asset_server.domain.http_types import (
    HttpRequest,
    HttpResponse,
    StreamFailure,
    should_close,
)
from asset_server.domain.mime import guess_mime
from asset_server.domain.request_context import RequestContext, get_logger
from asset_server.domain.response_builders import internal_error_response
from asset_server.domain.sandbox import (
    PathNotFound,
    TraversalRejected,
    resolve_request_path,
)

FILE_LOGGER = get_logger("handlers.static")
CHUNK_SIZE = 65536


class FileStream:
    """Iterate an already opened file in fixed-size chunks.

    The handle is owned by the stream: it is released when iteration ends,
    fails, or ``close()`` is called, whichever comes first.
    """

    def __init__(
        self, file_handle: BinaryIO, filepath: Path, chunk_size: int = CHUNK_SIZE
    ) -> None:
        self._file_handle = file_handle
        self._filepath = filepath
        self._chunk_size = chunk_size

    def __iter__(self) -> Iterator[bytes]:
        try:
            while True:
                try:
                    chunk = self._file_handle.read(self._chunk_size)
                except OSError as exc:
                    raise StreamFailure(self._filepath.as_posix()) from exc
                if not chunk:
                    return
                yield chunk
        finally:
            self.close()

    @property
    def closed(self) -> bool:
        return self._file_handle.closed

    def close(self) -> None:
        self._file_handle.close()


def _not_modified_since(headers: dict[str, str], mtime: float) -> bool:
    """Return True when If-Modified-Since is at or after the file mtime."""
    if_modified_since = headers.get("if-modified-since")
    if not if_modified_since:
        return False
    try:
        since = parsedate_to_datetime(if_modified_since).timestamp()
    except (TypeError, ValueError, OverflowError, IndexError):
        return False
    return mtime <= since


def _cache_headers(mtime: float) -> dict[str, str]:
    return {
        "Last-Modified": formatdate(mtime, usegmt=True),
        "Cache-Control": CACHE_CONTROL,
        **SECURITY_HEADERS,
    }


def serve_static(
    request: HttpRequest,
    root_directory: str,
    request_context: Optional[RequestContext] = None,
) -> Optional[HttpResponse]:
    """Answer a GET or HEAD for a file under the root, or return None.

    None means the request was not handled and the router should fall
    through; rejected paths and missing files are reported that way so a
    traversal attempt looks exactly like a missing file.
    """
    if request.method not in STATIC_METHODS:
        return None

    try:
        filepath = resolve_request_path(root_directory, request.target)
    except TraversalRejected:
        FILE_LOGGER.debug(
            "Path outside root rejected",
            extra={"event": "traversal_rejected", "path": request.target},
        )
        return None
    except PathNotFound:
        return None

    try:
        file_stat = filepath.stat()
    except OSError:
        return None
    if not stat.S_ISREG(file_stat.st_mode):
        return None

    if request_context is not None:
        request_context.resolved_file_path = filepath

    close_connection = should_close(request)
    if _not_modified_since(request.headers, file_stat.st_mtime):
        FILE_LOGGER.debug(
            "Asset not modified",
            extra={"event": "not_modified", "path": filepath.as_posix()},
        )
        return HttpResponse(
            304,
            "Not Modified",
            _cache_headers(file_stat.st_mtime),
            b"",
            close_connection,
        )

    headers = {
        "Content-Type": guess_mime(filepath.suffix),
        "Content-Length": str(file_stat.st_size),
        **_cache_headers(file_stat.st_mtime),
    }
    if request.method == "HEAD":
        return HttpResponse(200, "OK", headers, b"", close_connection)

    try:
        file_handle = open(filepath, "rb")  # pylint: disable=consider-using-with
    except OSError as error:
        FILE_LOGGER.error(
            "Failed to open asset",
            extra={
                "event": "file_open_failed",
                "path": filepath.as_posix(),
                "error_type": type(error).__name__,
            },
        )
        return internal_error_response(request)

    if FILE_LOGGER.logger.isEnabledFor(logging.DEBUG):
        FILE_LOGGER.debug(
            "Streaming asset",
            extra={
                "event": "file_streaming_started",
                "path": filepath.as_posix(),
                "bytes_out": file_stat.st_size,
            },
        )
    return HttpResponse(
        200,
        "OK",
        headers,
        b"",
        close_connection,
        body_iter=FileStream(file_handle, filepath),
    )
