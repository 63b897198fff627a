"""
Body rewriting. HTML is parsed with BeautifulSoup and every URL-bearing
attribute, srcset, <style> block and style attribute is pointed back at the
proxy; standalone CSS gets the same url(...) pass; anything else is passed
through byte for byte.
"""

import codecs
import logging
import re
from dataclasses import dataclass, field, replace
from typing import Optional

from bs4 import BeautifulSoup, ParserRejectedMarkup
from werkzeug.http import parse_options_header

from .deadline import Deadline
from .urls import proxied_link, resolve_url

logger = logging.getLogger(__name__)

# tag -> attributes holding a single URL
REWRITE_MAP = {
    "a": ("href",),
    "area": ("href",),
    "link": ("href",),
    "img": ("src", "longdesc"),
    "script": ("src",),
    "iframe": ("src",),
    "form": ("action",),
    "video": ("poster",),
    "audio": ("src",),
    "source": ("src",),
}

SRCSET_TAGS = ["img", "source"]

CSS_URL_RE = re.compile(r"url\(([^)]+)\)", re.IGNORECASE)
CSS_URL_STRIP = " \t\r\n'\""


@dataclass(frozen=True)
class RewriteContext:
    """Base URL and proxy path used for every reference in one response."""

    base_url: str
    script_path: str
    deadline: Optional[Deadline] = field(default=None, compare=False)

    def check(self):
        if self.deadline is not None:
            self.deadline.check("rewrite")

    def link(self, reference):
        return proxied_link(reference, self.base_url, self.script_path)

    def with_base(self, href):
        return replace(self, base_url=resolve_url(href, self.base_url))

    def rewrite_css_url(self, match):
        self.check()
        url = match.group(1).strip(CSS_URL_STRIP)
        return f'url("{self.link(url)}")'

    def rewrite_css(self, text):
        return CSS_URL_RE.sub(self.rewrite_css_url, text)

    def rewrite_srcset(self, srcset):
        candidates = []
        for candidate in srcset.split(","):
            parts = candidate.strip().split(None, 1)
            if not parts:
                continue
            self.check()
            descriptor = parts[1] if len(parts) > 1 else ""
            candidates.append(f"{self.link(parts[0])} {descriptor}".rstrip())
        return ", ".join(candidates)


def parse_content_type(content_type):
    """Return (primary type, charset or None) for a Content-Type value."""
    mimetype, options = parse_options_header(content_type or "")
    return mimetype.strip().lower(), options.get("charset")


def rewrite_html(body, context, charset=None):
    soup = BeautifulSoup(body, "html.parser", from_encoding=charset)
    context.check()

    base = soup.find("base", href=True)
    if base is not None:
        context = context.with_base(base["href"])
        logger.debug("Using <base href> %s", context.base_url)
    # Proxied links are root-relative; a leftover base would send them upstream
    for element in soup.find_all("base", href=True):
        del element["href"]

    for tag, attrs in REWRITE_MAP.items():
        for element in soup.find_all(tag):
            context.check()
            for attr in attrs:
                if element.has_attr(attr):
                    element[attr] = context.link(element[attr])

    for element in soup.find_all(SRCSET_TAGS, srcset=True):
        context.check()
        element["srcset"] = context.rewrite_srcset(element["srcset"])

    for style in soup.find_all("style"):
        if style.string:
            style.string.replace_with(context.rewrite_css(style.string))

    for element in soup.find_all(style=True):
        context.check()
        element["style"] = context.rewrite_css(element["style"])

    return soup.encode(soup.original_encoding or "utf-8")


def _codec(charset):
    if charset:
        try:
            return codecs.lookup(charset).name
        except LookupError:
            logger.debug("Unknown charset %r, falling back to utf-8", charset)
    return "utf-8"


def rewrite_css(body, context, charset=None):
    encoding = _codec(charset)
    text = body.decode(encoding, errors="replace")
    return context.rewrite_css(text).encode(encoding, errors="replace")


def rewrite_body(body, content_type, base_url, script_path, deadline=None):
    """
    Rewrite ``body`` according to its primary content type.

    ``base_url`` is the effective URL of the upstream response; an HTML
    document's own <base href> overrides it for that document only. A
    ``deadline`` is checked as elements are rewritten; DeadlineExceeded
    propagates.
    """
    primary, charset = parse_content_type(content_type)
    context = RewriteContext(base_url=base_url, script_path=script_path, deadline=deadline)

    if primary == "text/html":
        try:
            return rewrite_html(body, context, charset)
        except ParserRejectedMarkup as e:
            logger.warning("Parser rejected markup from %s, sending it as is: %s", base_url, e)
            return body
        except RecursionError:
            logger.warning("Markup from %s nested too deeply to rewrite, sending it as is", base_url)
            return body
    if primary == "text/css":
        return rewrite_css(body, context, charset)
    return body
