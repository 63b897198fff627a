from unittest.mock import Mock

import pytest
from bs4 import BeautifulSoup

from webproxy.deadline import Deadline
from webproxy.errors import DeadlineExceeded
from webproxy.rewriter import RewriteContext, parse_content_type, rewrite_body, rewrite_css

PAGE_URL = "http://site.test/dir/page.html"


def proxied(url):
    return RewriteContext(base_url=PAGE_URL, script_path="/proxy").link(url)


def rewrite_page(html, content_type="text/html; charset=utf-8"):
    out = rewrite_body(html.encode("utf-8"), content_type, PAGE_URL, "/proxy")
    return BeautifulSoup(out, "html.parser")


def test_img_src_resolved_against_effective_url():
    soup = rewrite_page('<img src="pic.png">')
    assert soup.img["src"] == "/proxy?url=http%3A%2F%2Fsite.test%2Fdir%2Fpic.png"


def test_base_href_changes_resolution():
    soup = rewrite_page('<html><head><base href="/v2/"></head><body><a href="x">x</a></body></html>')
    assert soup.a["href"] == "/proxy?url=http%3A%2F%2Fsite.test%2Fv2%2Fx"
    assert not soup.base.has_attr("href")


def test_attribute_map():
    html = (
        '<a href="/a">a</a>'
        '<map><area href="area.html"></map>'
        '<link rel="stylesheet" href="s.css">'
        '<img src="i.png" longdesc="desc.html">'
        '<script src="app.js"></script>'
        '<iframe src="frame.html"></iframe>'
        '<form action="submit"></form>'
        '<video poster="poster.jpg"></video>'
        '<audio src="sound.mp3"></audio>'
        '<picture><source src="clip.webm"></picture>'
    )
    soup = rewrite_page(html)
    assert soup.a["href"] == proxied("http://site.test/a")
    assert soup.area["href"] == proxied("http://site.test/dir/area.html")
    assert soup.link["href"] == proxied("http://site.test/dir/s.css")
    assert soup.img["src"] == proxied("http://site.test/dir/i.png")
    assert soup.img["longdesc"] == proxied("http://site.test/dir/desc.html")
    assert soup.script["src"] == proxied("http://site.test/dir/app.js")
    assert soup.iframe["src"] == proxied("http://site.test/dir/frame.html")
    assert soup.form["action"] == proxied("http://site.test/dir/submit")
    assert soup.video["poster"] == proxied("http://site.test/dir/poster.jpg")
    assert soup.audio["src"] == proxied("http://site.test/dir/sound.mp3")
    assert soup.source["src"] == proxied("http://site.test/dir/clip.webm")


def test_absolute_links_are_proxied_and_passthrough_kept():
    soup = rewrite_page(
        '<a id="abs" href="https://other.test/p">o</a>'
        '<a id="frag" href="#top">t</a>'
        '<img src="data:image/gif;base64,R0lGOD">'
    )
    assert soup.find(id="abs")["href"] == "/proxy?url=https%3A%2F%2Fother.test%2Fp"
    assert soup.find(id="frag")["href"] == "#top"
    assert soup.img["src"] == "data:image/gif;base64,R0lGOD"


def test_srcset_candidates_rewritten():
    soup = rewrite_page('<img srcset="small.png 1x, /big.png 2x, plain.png">')
    assert soup.img["srcset"] == ", ".join([
        proxied("http://site.test/dir/small.png") + " 1x",
        proxied("http://site.test/big.png") + " 2x",
        proxied("http://site.test/dir/plain.png"),
    ])


def test_style_block_and_attribute():
    soup = rewrite_page(
        "<style>body { background: url('bg.png') } p > a { color: red }</style>"
        '<div style="background-image: url( /tile.gif )"></div>'
    )
    css = soup.style.string
    assert 'url("%s")' % proxied("http://site.test/dir/bg.png") in css
    assert "p > a { color: red }" in css
    assert soup.div["style"] == 'background-image: url("%s")' % proxied("http://site.test/tile.gif")


def test_malformed_markup_does_not_fail():
    soup = rewrite_page('<div><a href="x.html">unclosed <b>bold</div></p></span><img src="y.png"')
    assert soup.a["href"] == proxied("http://site.test/dir/x.html")


def test_empty_html_body():
    assert rewrite_body(b"", "text/html", PAGE_URL, "/proxy") == b""


def test_html_keeps_declared_charset():
    body = '<p>café</p><a href="x">x</a>'.encode("iso-8859-1")
    out = rewrite_body(body, "text/html; charset=iso-8859-1", PAGE_URL, "/proxy")
    assert "café".encode("iso-8859-1") in out


def test_css_body_rewrites_only_urls():
    css = b"body{background:url(/img/a.png)}\n.x{color:#fff}"
    out = rewrite_body(css, "text/css", PAGE_URL, "/proxy")
    assert out == (
        b'body{background:url("/proxy?url=http%3A%2F%2Fsite.test%2Fimg%2Fa.png")}\n.x{color:#fff}'
    )


def test_css_ignores_base_override():
    context = RewriteContext(base_url="http://site.test/css/main.css", script_path="/p")
    out = rewrite_css(b"a{background:URL(\"../i.png\")}", context)
    assert out == b'a{background:url("/p?url=http%3A%2F%2Fsite.test%2Fi.png")}'


def test_css_with_unknown_charset_falls_back_to_utf8():
    out = rewrite_body(b"a{b:url(c.png)}", "text/css; charset=no-such-codec", PAGE_URL, "/proxy")
    assert out == b'a{b:url("/proxy?url=http%3A%2F%2Fsite.test%2Fdir%2Fc.png")}'


def test_other_content_types_pass_through():
    png = b"\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDR\xff\xfe url(a.png)"
    assert rewrite_body(png, "image/png", PAGE_URL, "/proxy") is png
    assert rewrite_body(png, None, PAGE_URL, "/proxy") is png


def test_parse_content_type():
    assert parse_content_type("Text/HTML; charset=UTF-8") == ("text/html", "UTF-8")
    assert parse_content_type(None) == ("", None)


def test_markup_rejected_by_parser_is_sent_unchanged():
    for body in (b"<![ foo", b"<p>hi</p><![ foo"):
        assert rewrite_body(body, "text/html", PAGE_URL, "/proxy") == body


def test_rewrite_stops_when_deadline_passes():
    deadline = Mock()
    deadline.check.side_effect = [None, None, DeadlineExceeded("Request took longer than 1 seconds (rewrite).")]
    html = "".join('<a href="p%d.html">%d</a>' % (i, i) for i in range(50)).encode()
    with pytest.raises(DeadlineExceeded):
        rewrite_body(html, "text/html", PAGE_URL, "/proxy", deadline)
    # one check after parsing, then one per element until the budget ran out
    assert deadline.check.call_count == 3


def test_css_rewrite_checks_deadline():
    with pytest.raises(DeadlineExceeded):
        rewrite_body(b"a{b:url(c.png)}", "text/css", PAGE_URL, "/proxy", Deadline(-1))


def test_rewrite_within_deadline():
    out = rewrite_body(b'<img src="pic.png">', "text/html", PAGE_URL, "/proxy", Deadline(60))
    assert b"site.test%2Fdir%2Fpic.png" in out
