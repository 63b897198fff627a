"""
URL helpers: resolving references found in pages and headers, and turning
absolute URLs into links that come back through the proxy.
"""

import re
from urllib.parse import quote, urlsplit

from .errors import InputError

# Already absolute, or never worth sending through the proxy
NON_REWRITABLE_RE = re.compile(r"^(https?://|data:|blob:|mailto:|javascript:|#)", re.IGNORECASE)

# References the proxy leaves alone inside markup
PASSTHROUGH_RE = re.compile(r"^(data:|blob:|mailto:|javascript:|#)", re.IGNORECASE)

HTTP_SCHEME_RE = re.compile(r"^https?://", re.IGNORECASE)


def _split_reference(reference: str):
    """Split a reference into (path, query, fragment); query/fragment are None when absent."""
    fragment = None
    if "#" in reference:
        reference, fragment = reference.split("#", 1)
    query = None
    if "?" in reference:
        reference, query = reference.split("?", 1)
    return reference, query, fragment


def _normalize_path(path: str) -> str:
    segments = []
    raw_segments = path.split("/")
    for segment in raw_segments:
        if segment in ("", "."):
            continue
        if segment == "..":
            if segments:
                segments.pop()
        else:
            segments.append(segment)

    normalized = "/" + "/".join(segments)
    # "dir/", "dir/." and "dir/.." all name a directory
    if segments and raw_segments[-1] in ("", ".", ".."):
        normalized += "/"
    return normalized


def resolve_url(reference: str, base: str) -> str:
    """
    Resolve ``reference`` against the absolute ``base`` URL.

    Absolute http(s) URLs and non-rewritable references (data:, blob:,
    mailto:, javascript:, #fragment) come back unchanged, as does anything
    when ``base`` has no scheme or host.
    """
    reference = reference.strip()
    if NON_REWRITABLE_RE.match(reference):
        return reference

    try:
        base_parts = urlsplit(base)
    except ValueError:
        return reference
    if not base_parts.scheme or not base_parts.hostname:
        return reference

    if reference.startswith("//"):
        return base_parts.scheme + ":" + reference

    path, query, fragment = _split_reference(reference)
    base_path = base_parts.path or "/"

    if not reference:
        working_path = "/"
    elif path.startswith("/"):
        working_path = path
    elif not path:
        # "?page=2" keeps the document, "#..." was handled above
        working_path = base_path
    else:
        working_path = base_path[: base_path.rfind("/") + 1] + path

    # netloc without user-info, port kept as written
    origin = base_parts.scheme + "://" + base_parts.netloc.rpartition("@")[2]

    resolved = origin + _normalize_path(working_path)
    if query is not None:
        resolved += "?" + query
    if fragment is not None:
        resolved += "#" + fragment
    return resolved


def proxy_for(url: str, script_path: str) -> str:
    """Build ``<script_path>?url=<url>`` so the link re-enters the proxy."""
    return f"{script_path}?url={quote(url, safe='')}"


def proxied_link(reference: str, base: str, script_path: str) -> str:
    """Rewrite one reference from a page; data:/mailto:/#... stay as they are."""
    if PASSTHROUGH_RE.match(reference.strip()):
        return reference
    return proxy_for(resolve_url(reference, base), script_path)


def normalize_target(raw_url: str) -> str:
    """Turn the ``url`` query parameter into an absolute http(s) URL or raise InputError."""
    target = raw_url.strip()
    if not HTTP_SCHEME_RE.match(target):
        target = "http://" + target

    try:
        host = urlsplit(target).hostname
    except ValueError:
        host = None
    if not host:
        raise InputError("Invalid URL provided.")
    return target
