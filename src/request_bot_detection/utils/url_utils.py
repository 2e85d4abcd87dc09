"""
URL utility functions.

Helpers for splitting logged request URLs into the path used for route
lookups and the raw query string analyzed for anomalies.
"""

from typing import Optional
from urllib.parse import urlsplit


def normalize_route_path(path: Optional[str]) -> str:
    """
    Normalize a route path for whitelist lookups.

    Strips surrounding whitespace and leading/trailing separators.

    Examples:
        >>> normalize_route_path("/blog/my-post/")
        'blog/my-post'
        >>> normalize_route_path("/")
        ''
    """
    if not path:
        return ""
    return path.strip().strip("/")


def split_request_url(url: str) -> tuple[str, str]:
    """
    Split a logged URL into (path, query string).

    Accepts absolute URLs ("https://example.com/a?b=1"), scheme-less
    host URLs ("example.com/a?b=1") and bare paths ("/a?b=1").

    Raises:
        ValueError: If the URL cannot be parsed (e.g. an invalid IPv6 host)

    Examples:
        >>> split_request_url("https://example.com/projects?page=2")
        ('/projects', 'page=2')
        >>> split_request_url("/search?q=python")
        ('/search', 'q=python')
    """
    if url is None:
        raise ValueError("URL is None")

    url = url.strip()
    if not url:
        return "", ""

    # Host-only URLs without a scheme parse as a path; give them one so the
    # host does not end up in the route path.
    if "://" not in url and not url.startswith(("/", "?")):
        url = "https://" + url

    parsed = urlsplit(url)
    # Accessing the port validates the netloc and raises ValueError if bad
    _ = parsed.port

    return parsed.path, parsed.query
