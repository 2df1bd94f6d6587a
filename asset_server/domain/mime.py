"""Extension to content-type lookup for served assets."""

DEFAULT_CONTENT_TYPE = "application/octet-stream"

MIME_TYPES = {
    "html": "text/html; charset=utf-8",
    "css": "text/css; charset=utf-8",
    "js": "application/javascript; charset=utf-8",
    "mjs": "application/javascript; charset=utf-8",
    "json": "application/json; charset=utf-8",
    "svg": "image/svg+xml",
    "png": "image/png",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "gif": "image/gif",
    "webp": "image/webp",
    "ico": "image/x-icon",
    "txt": "text/plain; charset=utf-8",
}


def guess_mime(extension: str) -> str:
    """Map a file extension (with or without the dot) to a content type."""
    return MIME_TYPES.get(extension.lstrip(".").lower(), DEFAULT_CONTENT_TYPE)
