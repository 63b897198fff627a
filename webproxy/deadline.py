import logging
import time

from .errors import DeadlineExceeded

logger = logging.getLogger(__name__)


class Deadline:
    """Wall-clock budget for one proxied request."""

    def __init__(self, seconds):
        self.seconds = seconds
        self.started = time.monotonic()

    def remaining(self):
        return self.seconds - (time.monotonic() - self.started)

    def check(self, stage):
        if self.remaining() < 0:
            elapsed = time.monotonic() - self.started
            logger.warning("Request deadline of %gs exceeded during %s (%.1fs)", self.seconds, stage, elapsed)
            raise DeadlineExceeded(f"Request took longer than {self.seconds:g} seconds ({stage}).")
