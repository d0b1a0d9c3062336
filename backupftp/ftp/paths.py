"""Remote path handling for backupftp.

All remote paths travel through the library as absolute URLs of the form
``ftp://host[:port]/dir/name``: no duplicate slashes, no trailing slash.
"""

import re
from typing import List, Optional, Tuple


SCHEME = "ftp://"
DEFAULT_PORT = 21

_SLASH_RUN = re.compile(r"/{2,}")
# After collapsing slashes "ftp://" has become "ftp:/"
_SCHEME_PREFIX = re.compile(r"^ftp:/*", re.IGNORECASE)
_URL_SCHEME = re.compile(r"^\s*([A-Za-z][A-Za-z0-9+.-]*)://")


def url_scheme(url: str) -> Optional[str]:
    """Lower-cased scheme of ``url`` (``"ftp"`` for ``ftp://host``), or None."""
    match = _URL_SCHEME.match(url or "")
    return match.group(1).lower() if match else None


def normalize_path(endpoint: str, path: str = "") -> str:
    """
    Build the canonical absolute URL for a path.

    Args:
        endpoint: Session endpoint, with or without ``ftp://``
        path: Absolute URL, path relative to the endpoint, or empty

    Returns:
        Normalized URL such as ``ftp://host/dir/file``

    Raises:
        ValueError: If the endpoint or path carries a scheme other than ftp
    """
    path = (path or "").strip()
    if "://" in path:
        url = path
    else:
        url = f"{(endpoint or '').strip()}/{path}"

    scheme = url_scheme(url)
    if scheme not in (None, "ftp"):
        raise ValueError(f"Unsupported URL scheme '{scheme}' in '{url}', only ftp:// is accepted")

    url = _SLASH_RUN.sub("/", url)
    if url.endswith("/"):
        url = url[:-1]

    url = _SCHEME_PREFIX.sub("", url)
    return SCHEME + url.lstrip("/")


def _split_url(url: str) -> Tuple[str, str]:
    """Split a normalized URL into (authority, path-without-leading-slash)."""
    rest = url[len(SCHEME):] if url.startswith(SCHEME) else url
    authority, _, path = rest.partition("/")
    return authority, path


def join_path(parent: str, name: str) -> str:
    """Join a parent URL and an entry name with exactly one slash."""
    return f"{parent.rstrip('/')}/{name.strip()}"


def parent_path(url: str) -> str:
    """Parent URL of a normalized URL; a host root is its own parent."""
    authority, path = _split_url(url)
    if not path:
        return SCHEME + authority
    head, _, _ = path.rpartition("/")
    return join_path(SCHEME + authority, head) if head else SCHEME + authority


def base_name(url: str) -> str:
    """Last path segment of a normalized URL ("" for a host root)."""
    _, path = _split_url(url)
    return path.rpartition("/")[2]


def server_path(url: str) -> str:
    """Path component sent to the server in FTP commands."""
    _, path = _split_url(url)
    return "/" + path


def path_segments(url: str) -> List[str]:
    """Non-empty path segments of a normalized URL."""
    return [segment for segment in server_path(url).split("/") if segment]


def path_depth(url: str, root: str) -> int:
    """Number of segments ``url`` lies below the traversal root ``root``."""
    return len(path_segments(url)) - len(path_segments(root))


def split_endpoint(url: str) -> Tuple[str, int]:
    """
    Extract host and port from a normalized URL.

    Args:
        url: Normalized URL

    Returns:
        Tuple of (host, port); port defaults to 21
    """
    authority, _ = _split_url(url)
    host, sep, port = authority.rpartition(":")
    if sep and port.isdigit():
        return host, int(port)
    return authority, DEFAULT_PORT
