"""Filesystem sandbox utilities for safe path resolution."""

import os
import posixpath
import urllib.parse
from pathlib import Path

INDEX_DOCUMENT = "index.html"


class PathNotFound(Exception):
    """Raised when a request path does not map to a servable location."""


class TraversalRejected(PathNotFound):
    """Raised when a request path escapes the configured root directory."""


def _strip_target(request_path: str) -> str:
    return request_path.split("?", 1)[0].split("#", 1)[0]


def _ensure_inside(root: Path, candidate: Path) -> Path:
    """Resolve ``candidate`` and require it to sit strictly below ``root``."""
    try:
        resolved = candidate.resolve()
    except (OSError, RuntimeError) as exc:
        raise PathNotFound from exc
    relative = os.path.relpath(resolved, root)
    if (
        not relative
        or relative == os.curdir
        or relative.split(os.sep, 1)[0] == os.pardir
        or os.path.isabs(relative)
    ):
        raise TraversalRejected
    return resolved


def resolve_request_path(root_directory: str, request_path: str) -> Path:
    """Map a raw request path to an absolute file path inside the root.

    The query string and fragment are dropped, the remainder is
    percent-decoded and normalized, ``/`` maps to the index document and a
    directory maps to the index document inside it. Containment is checked
    again after every rewrite.
    """
    decoded = urllib.parse.unquote(_strip_target(request_path))
    if "\x00" in decoded:
        raise TraversalRejected
    if decoded == "/":
        decoded = f"/{INDEX_DOCUMENT}"

    root = Path(root_directory).resolve()
    normalized = posixpath.normpath(decoded)
    target = _ensure_inside(root, root / normalized.lstrip("/"))

    try:
        is_directory = target.is_dir()
    except OSError as exc:
        raise PathNotFound from exc
    if is_directory:
        target = _ensure_inside(root, target / INDEX_DOCUMENT)
    return target
