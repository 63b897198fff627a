import logging

from flask import Flask, Response, redirect, render_template_string, request, url_for

from .deadline import Deadline
from .errors import ProxyError
from .fetcher import fetch
from .headers import process_headers
from .logging_setup import configure_logging
from .rewriter import rewrite_body
from .urls import normalize_target

app = Flask(__name__)
app.config.from_object("webproxy.config")

logger = logging.getLogger(__name__)
configure_logging(app.config["LOG_LEVEL"])

FORM_TEMPLATE = '''
<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>Web Proxy</title>
    <style>
        body { font-family: -apple-system, "Segoe UI", Roboto, Helvetica, Arial, sans-serif;
               display: flex; justify-content: center; align-items: center;
               height: 100vh; margin: 0; background-color: #f0f2f5; }
        .container { text-align: center; background: #fff; padding: 2.5rem; border-radius: 1rem;
                     box-shadow: 0 10px 30px rgba(0,0,0,0.1); width: 90%; max-width: 600px; }
        .proxy-form { display: flex; border: 1px solid #ddd; border-radius: 0.5rem; overflow: hidden; }
        .proxy-input { flex-grow: 1; border: none; padding: 0.9rem 1rem; font-size: 1rem; outline: none; }
        .proxy-button { border: none; background: #007bff; color: white; padding: 0 1.8rem; cursor: pointer; }
    </style>
</head>
<body>
    <div class="container">
        <h1>Web Proxy</h1>
        <form action="{{ action }}" method="get" class="proxy-form">
            <input type="text" name="url" class="proxy-input" placeholder="https://example.com" required autofocus>
            <button type="submit" class="proxy-button">Go</button>
        </form>
    </div>
</body>
</html>
'''


class ProxyResponse(Response):
    # Content-Type comes from upstream or not at all
    default_mimetype = None


@app.errorhandler(ProxyError)
def proxy_error(e):
    return Response(e.description, status=e.code, mimetype="text/plain")


def run_proxy(raw_url):
    deadline = Deadline(app.config["REQUEST_DEADLINE"])
    target = normalize_target(raw_url)
    # Links point back at whichever route served this request
    script_path = request.script_root + request.path

    logger.info("Proxying %s", target)
    deadline.check("validation")
    result = fetch(
        target,
        request.headers,
        connect_timeout=app.config["CONNECT_TIMEOUT"],
        total_timeout=min(app.config["TOTAL_TIMEOUT"], deadline.remaining()),
        verify_tls=app.config["VERIFY_TLS"],
        user_agent=app.config["USER_AGENT"],
        forwarded_names=app.config["FORWARDED_REQUEST_HEADERS"],
    )
    deadline.check("fetch")

    headers = process_headers(result.headers, result.url, script_path, result.content_type)
    body = rewrite_body(result.body, result.content_type, result.url, script_path, deadline)
    deadline.check("rewrite")

    return ProxyResponse(body, status=result.status, headers=headers)


@app.route('/')
def index():
    raw_url = request.args.get('url', '').strip()
    if raw_url:
        return run_proxy(raw_url)
    return render_template_string(FORM_TEMPLATE, action=request.script_root + request.path)


@app.route('/proxy')
def proxy():
    raw_url = request.args.get('url', '').strip()
    if not raw_url:
        return redirect(url_for('index'))
    return run_proxy(raw_url)


def run():
    if not app.config["VERIFY_TLS"]:
        logger.warning("TLS certificate verification toward upstream sites is disabled (PROXY_VERIFY_TLS)")
    app.run(host=app.config["HOST"], port=app.config["PORT"], threaded=True)


if __name__ == '__main__':
    run()
