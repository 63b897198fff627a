"""Errors that end a proxied request before any upstream body is sent."""

from werkzeug.exceptions import BadGateway, BadRequest, GatewayTimeout


class ProxyError(Exception):
    """Base class; ``description`` is sent to the client as plain text."""


class InputError(ProxyError, BadRequest):
    """The ``url`` parameter is missing a usable host."""


class UpstreamError(ProxyError, BadGateway):
    """The upstream fetch failed at the transport level (DNS, connect, TLS, timeout)."""


class DeadlineExceeded(ProxyError, GatewayTimeout):
    """The request ran past its wall-clock budget."""
