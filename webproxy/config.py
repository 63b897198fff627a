"""
Proxy settings. Every value can be overridden with a ``PROXY_*`` environment
variable; ``flask_app`` loads the uppercase names into ``app.config``.
"""

import os


def _env_bool(name, default):
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


# Seconds allowed to establish the upstream connection
CONNECT_TIMEOUT = float(os.getenv("PROXY_CONNECT_TIMEOUT", "20"))

# Ceiling for the whole upstream transfer (seconds)
TOTAL_TIMEOUT = float(os.getenv("PROXY_TOTAL_TIMEOUT", "60"))

# Wall-clock budget for fetch + parse + rewrite of one request (seconds)
REQUEST_DEADLINE = float(os.getenv("PROXY_REQUEST_DEADLINE", "120"))

# Certificate checks toward upstream targets. Off so self-signed and
# misconfigured sites still load; turn on for anything public facing.
VERIFY_TLS = _env_bool("PROXY_VERIFY_TLS", False)

# Sent upstream when the client does not provide its own User-Agent
USER_AGENT = os.getenv(
    "PROXY_USER_AGENT",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36",
)

# Client request headers copied onto the upstream request
FORWARDED_REQUEST_HEADERS = ("User-Agent", "Accept", "Accept-Language", "DNT")

HOST = os.getenv("PROXY_HOST", "0.0.0.0")
PORT = int(os.getenv("PROXY_PORT", "8080"))

LOG_LEVEL = os.getenv("PROXY_LOG_LEVEL", "INFO")
