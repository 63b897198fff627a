"""
Response header pipeline: decide per upstream header whether it is forwarded,
dropped, or rewritten (Location), and put the declared Content-Type last.
"""

import enum
import re
from typing import Iterable, List, Optional, Tuple, Union

from .urls import proxy_for, resolve_url

# Headers that pin the page to the upstream origin or describe a body
# framing that no longer holds once the body is buffered and rewritten.
BLOCKED_HEADERS = frozenset([
    "content-security-policy",
    "x-frame-options",
    "strict-transport-security",
    "content-length",
    "transfer-encoding",
    "content-encoding",
])

# A WSGI application must not set these (PEP 3333)
HOP_BY_HOP_HEADERS = frozenset([
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailer",
    "upgrade",
])

STATUS_LINE_RE = re.compile(r"^HTTP/", re.IGNORECASE)
LINE_BREAK_RE = re.compile(r"\r\n|\n|\r")


class HeaderDecision(enum.Enum):
    FORWARD = "forward"
    DROP = "drop"
    REWRITE = "rewrite"


def parse_header_block(raw: str) -> List[Tuple[str, str]]:
    """
    Split a raw header block (as written on the wire, or as cURL-style
    clients return it) into (name, value) pairs, skipping status lines.
    """
    pairs = []
    for line in LINE_BREAK_RE.split(raw.strip()):
        if not line.strip() or STATUS_LINE_RE.match(line):
            continue
        name, _, value = line.partition(":")
        pairs.append((name.strip(), value.strip()))
    return pairs


def classify_header(name: str) -> HeaderDecision:
    key = name.strip().lower()
    if not key or key in BLOCKED_HEADERS or key in HOP_BY_HOP_HEADERS:
        return HeaderDecision.DROP
    if key == "location":
        return HeaderDecision.REWRITE
    return HeaderDecision.FORWARD


def process_headers(
    headers: Union[str, Iterable[Tuple[str, str]]],
    effective_url: str,
    script_path: str,
    content_type: Optional[str] = None,
) -> List[Tuple[str, str]]:
    """
    Return the headers to send to the client, in upstream order.

    Duplicates are kept except for Location, which is resolved against
    ``effective_url``, routed through the proxy, and emitted once (the last
    one wins). When ``content_type`` is given it replaces any upstream
    Content-Type and goes last. ``headers`` is either (name, value) pairs or
    a raw header block.
    """
    pairs = parse_header_block(headers) if isinstance(headers, str) else headers
    forwarded = []
    for name, value in pairs:
        decision = classify_header(name)
        if decision is HeaderDecision.DROP:
            continue
        if decision is HeaderDecision.REWRITE:
            location = proxy_for(resolve_url(value.strip(), effective_url), script_path)
            forwarded = [pair for pair in forwarded if pair[0].lower() != "location"]
            forwarded.append(("Location", location))
            continue
        if content_type and name.strip().lower() == "content-type":
            continue
        forwarded.append((name.strip(), value.strip()))

    if content_type:
        forwarded.append(("Content-Type", content_type))
    return forwarded
