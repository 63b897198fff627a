"""
Upstream fetch: one GET with redirects followed, bounded by a connect timeout
and a total-time ceiling. Returns the final response's header pairs in the
order they were received, duplicates (Set-Cookie, ...) included.
"""

import logging
import re
import socket
import threading
import time
from dataclasses import dataclass, field
from typing import List, Optional, Tuple
from urllib.parse import urlsplit

import requests

from . import config
from .errors import UpstreamError

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024

FOLDED_LINE_RE = re.compile(r"\r?\n[ \t]*")


@dataclass
class FetchResult:
    status: int
    url: str
    headers: List[Tuple[str, str]] = field(default_factory=list)
    body: bytes = b""
    content_type: Optional[str] = None


def host_header(url: str) -> str:
    """host[:port] of ``url``, without user-info."""
    return urlsplit(url).netloc.rpartition("@")[2]


class UpstreamSession(requests.Session):
    """Session whose explicit Host header follows redirects to other hosts."""

    def rebuild_auth(self, prepared_request, response):
        super().rebuild_auth(prepared_request, response)
        if "Host" in prepared_request.headers:
            prepared_request.headers["Host"] = host_header(prepared_request.url)


class BodyWatchdog:
    """
    Shuts the upstream socket down once the time budget is spent, so a read
    blocked on a trickling server returns instead of waiting out every
    per-read timeout.
    """

    def __init__(self, resp, seconds):
        self.resp = resp
        self.expired = threading.Event()
        self.timer = None
        if seconds <= 0:
            self.expired.set()
        else:
            self.timer = threading.Timer(seconds, self.expire)
            self.timer.daemon = True
            self.timer.start()

    def expire(self):
        self.expired.set()
        connection = getattr(self.resp.raw, "connection", None)
        sock = getattr(connection, "sock", None)
        if sock is None:
            return
        try:
            sock.shutdown(socket.SHUT_RDWR)
        except OSError as e:
            # The reader finished and closed it first
            logger.debug("Upstream socket already closed: %s", e)

    def cancel(self):
        if self.timer is not None:
            self.timer.cancel()


def _timed_out(total_timeout):
    return UpstreamError(f"Operation timed out after {total_timeout:g} seconds")


def build_request_headers(client_headers, forwarded_names, user_agent):
    headers = {}
    for name in forwarded_names:
        value = client_headers.get(name)
        if value:
            headers[name] = value
    headers.setdefault("User-Agent", user_agent)
    return headers


def response_headers(resp):
    """Header pairs of ``resp`` as received: order and duplicates kept, folded lines joined."""
    original = getattr(resp.raw, "_original_response", None)
    if original is not None:
        items = original.msg.items()
    else:
        items = resp.raw.headers.items()
    return [(name, FOLDED_LINE_RE.sub(" ", value).strip()) for name, value in items]


def declared_content_type(pairs):
    """The last Content-Type the upstream sent, or None."""
    values = [value for name, value in pairs if name.lower() == "content-type"]
    return values[-1] if values else None


def _read_body(resp, watchdog, total_timeout):
    chunks = []
    for chunk in resp.iter_content(CHUNK_SIZE):
        if watchdog.expired.is_set():
            raise _timed_out(total_timeout)
        chunks.append(chunk)
    if watchdog.expired.is_set():
        # shutdown() reads as EOF on bodies without a length
        raise _timed_out(total_timeout)
    return b"".join(chunks)


def fetch(url, client_headers, *, connect_timeout, total_timeout, verify_tls, user_agent,
          forwarded_names=config.FORWARDED_REQUEST_HEADERS):
    """
    GET ``url`` and return a FetchResult.

    ``client_headers`` is any mapping of the inbound request's headers; only
    ``forwarded_names`` are copied, and Host is set to the target host.
    Transport failures, and a transfer running past ``total_timeout``, raise
    UpstreamError with the underlying cause.
    """
    if total_timeout <= 0:
        raise _timed_out(total_timeout)

    headers = build_request_headers(client_headers, forwarded_names, user_agent)
    headers["Host"] = host_header(url)

    started = time.monotonic()
    watchdog = None
    try:
        with UpstreamSession() as session:
            resp = session.get(
                url,
                headers=headers,
                allow_redirects=True,
                stream=True,
                verify=verify_tls,
                timeout=(connect_timeout, total_timeout),
            )
            watchdog = BodyWatchdog(resp, total_timeout - (time.monotonic() - started))
            try:
                body = _read_body(resp, watchdog, total_timeout)
            finally:
                watchdog.cancel()
                resp.close()
    except requests.exceptions.RequestException as e:
        if watchdog is not None and watchdog.expired.is_set():
            logger.warning("Upstream fetch for %s ran past %gs", url, total_timeout)
            raise _timed_out(total_timeout) from e
        logger.warning("Upstream fetch failed for %s: %s", url, e)
        raise UpstreamError(f"Failed to fetch the upstream URL: {e}") from e

    pairs = response_headers(resp)
    return FetchResult(
        status=resp.status_code,
        url=resp.url,
        headers=pairs,
        body=body,
        content_type=declared_content_type(pairs),
    )
