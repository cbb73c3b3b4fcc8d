"""Wraps a compiled block into a standalone Playwright program.

The program connects to a remote browser over CDP, runs the block inside a
failure boundary, records a trace with one JPEG screenshot per step and,
optionally, collects the Sentry envelopes the page posts to a local
spotlight listener. Structured results are printed to stdout between
sentinel markers so any "run a program, capture stdout" service can carry them.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Optional

from jinja2 import BaseLoader, Environment, StrictUndefined

from .codegen import render_literal
from .compiler import CompiledBlock

LOGGER = logging.getLogger("script_compiler.assembler")

TRACE_START = "__TRACE_START__"
TRACE_END = "__TRACE_END__"
SPOTLIGHT_START = "__SPOTLIGHT_START__"
SPOTLIGHT_END = "__SPOTLIGHT_END__"

DEFAULT_SENTRY_BUNDLE_URL = "https://browser.sentry-cdn.com/10.33.0/bundle.tracing.min.js"
DEFAULT_SPOTLIGHT_BUNDLE_URL = "https://browser.sentry-cdn.com/10.33.0/spotlight.min.js"

PROGRAM_TEMPLATE = r'''"""Generated action script runner. Do not edit."""
import base64
import gzip
import json
import sys
import threading
import time
from collections import deque
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

from playwright.sync_api import sync_playwright

CDP_ENDPOINT = {{ cdp_endpoint }}
SPOTLIGHT_ENABLED = {{ telemetry }}
SPOTLIGHT_HOST = "127.0.0.1"
SPOTLIGHT_PORT = {{ spotlight_port }}
SPOTLIGHT_URL = "http://localhost:%d/stream" % SPOTLIGHT_PORT
SPOTLIGHT_BUFFER_SIZE = {{ buffer_size }}
SENTRY_BUNDLE_URL = {{ sentry_bundle_url }}
SPOTLIGHT_BUNDLE_URL = {{ spotlight_bundle_url }}
SCREENSHOT_QUALITY = {{ screenshot_quality }}

TRACE_START = {{ trace_start }}
TRACE_END = {{ trace_end }}
SPOTLIGHT_START = {{ spotlight_start }}
SPOTLIGHT_END = {{ spotlight_end }}

SENTRY_INIT_SCRIPT = """
(sidecarUrl) => {
    Sentry.init({
        dsn: "",
        sendDefaultPii: true,
        spotlight: sidecarUrl,
        enableLogs: true,
        integrations: [
            Sentry.browserTracingIntegration(),
            Sentry.spotlightBrowserIntegration({ sidecarUrl: sidecarUrl }),
        ],
        tracesSampleRate: 1.0,
    });
}
"""

envelopes = deque(maxlen=SPOTLIGHT_BUFFER_SIZE)
trace = {}


def now_ms():
    return int(time.time() * 1000)


def log_error(message):
    print(message, file=sys.stderr, flush=True)


def reset_trace():
    trace.clear()
    trace.update({
        "startTime": now_ms(),
        "endTime": 0,
        "duration": 0,
        "success": False,
        "error": None,
        "steps": [],
    })


class SpotlightHandler(BaseHTTPRequestHandler):
    def _send_cors_headers(self):
        self.send_header("Access-Control-Allow-Origin", "*")
        self.send_header("Access-Control-Allow-Methods", "POST, OPTIONS")
        self.send_header("Access-Control-Allow-Headers", "*")
        self.send_header("Access-Control-Allow-Private-Network", "true")

    def do_OPTIONS(self):
        self.send_response(204)
        self._send_cors_headers()
        self.end_headers()

    def do_POST(self):
        length = int(self.headers.get("Content-Length") or 0)
        body = self.rfile.read(length) if length > 0 else b""
        if self.headers.get("Content-Encoding", "").lower() == "gzip":
            try:
                body = gzip.decompress(body)
            except OSError as exc:
                log_error("Spotlight: unreadable gzip envelope: %s" % exc)
        envelopes.append({
            "timestamp": now_ms(),
            "headers": dict(self.headers.items()),
            "body": body.decode("utf-8", errors="replace"),
        })
        self.send_response(200)
        self._send_cors_headers()
        self.end_headers()

    def log_message(self, format, *args):
        # keep per-request logs off stderr
        return


def start_receiver():
    try:
        server = ThreadingHTTPServer((SPOTLIGHT_HOST, SPOTLIGHT_PORT), SpotlightHandler)
    except OSError as exc:
        log_error("Spotlight: listener unavailable on port %d: %s" % (SPOTLIGHT_PORT, exc))
        return None
    server.daemon_threads = True
    threading.Thread(target=server.serve_forever, daemon=True).start()
    return server


def add_spotlight(page):
    if not SPOTLIGHT_ENABLED:
        return
    try:
        page.add_script_tag(url=SENTRY_BUNDLE_URL)
        page.add_script_tag(url=SPOTLIGHT_BUNDLE_URL)
        page.evaluate(SENTRY_INIT_SCRIPT, SPOTLIGHT_URL)
    except Exception as exc:
        log_error("Spotlight: injection failed on %s: %s" % (page.url, exc))


def capture_step(page, index, action, details):
    try:
        screenshot = page.screenshot(type="jpeg", quality=SCREENSHOT_QUALITY)
    except Exception as exc:
        log_error("Failed to capture step %d (%s): %s" % (index, action, exc))
        return
    trace["steps"].append({
        "index": index,
        "action": action,
        "details": details,
        "timestamp": now_ms(),
        "screenshot": base64.b64encode(screenshot).decode("ascii"),
        "url": page.url,
    })


def parse_envelope(body):
    lines = body.split("\n")
    header = json.loads(lines[0]) if lines and lines[0].strip() else {}
    items = []
    position = 1
    while position < len(lines):
        line = lines[position]
        position += 1
        if not line.strip():
            continue
        item_header = json.loads(line)
        raw_payload = lines[position] if position < len(lines) else ""
        position += 1
        try:
            payload = json.loads(raw_payload)
        except ValueError:
            payload = raw_payload
        items.append({"header": item_header, "payload": payload})
    return {"header": header, "items": items}


def to_spotlight_event(entry):
    try:
        envelope = parse_envelope(entry["body"])
    except ValueError as exc:
        log_error("Spotlight: dropping malformed envelope: %s" % exc)
        return None
    types = []
    for item in envelope["items"]:
        item_header = item["header"] if isinstance(item["header"], dict) else {}
        item_type = item_header.get("type") or "unknown"
        if item_type == "event":
            item_type = "error"
        if item_type not in types:
            types.append(item_type)
    event = {
        "type": ",".join(types) or "unknown",
        "timestamp": entry["timestamp"],
        "data": envelope,
        "headers": entry["headers"],
    }
    header = envelope["header"] if isinstance(envelope["header"], dict) else {}
    if header.get("event_id"):
        event["envelopeId"] = header["event_id"]
    return event


def drain_spotlight():
    events = []
    while envelopes:
        event = to_spotlight_event(envelopes.popleft())
        if event is not None:
            events.append(event)
    return events


def emit(start, payload, end):
    # no "_" survives, so a sentinel cannot occur inside the payload
    text = json.dumps(payload).replace("_", "\\u005f")
    print(start + text + end, flush=True)


def forward_console(message):
    print(message.text, flush=True)


def finish_trace():
    if not trace["endTime"]:
        trace["endTime"] = max(now_ms(), trace["startTime"])
        trace["duration"] = trace["endTime"] - trace["startTime"]


def record_failure(exc, page=None):
    trace["success"] = False
    trace["error"] = str(exc)
    if page is None:
        return
    try:
        capture_step(page, len(trace["steps"]), "error", str(exc))
    except Exception as capture_exc:
        log_error("Failed to capture error step: %s" % capture_exc)


def run_actions(page):
    try:
        {{ body | indent(8) }}
        trace["success"] = True
    except Exception as exc:
        record_failure(exc, page)
    finally:
        finish_trace()


def open_page(browser):
    context = browser.contexts[0] if browser.contexts else browser.new_context()
    page = context.pages[0] if context.pages else context.new_page()
    page.on("console", forward_console)
    return page


def run_session(playwright):
    browser = None
    try:
        browser = playwright.chromium.connect_over_cdp(CDP_ENDPOINT)
        page = open_page(browser)
    except Exception as exc:
        log_error("Browser setup failed: %s" % exc)
        record_failure(exc)
    else:
        run_actions(page)
    finally:
        if browser is not None:
            try:
                browser.close()
            except Exception as exc:
                log_error("Failed to close browser connection: %s" % exc)


def main():
    reset_trace()
    receiver = start_receiver() if SPOTLIGHT_ENABLED else None
    try:
        with sync_playwright() as playwright:
            run_session(playwright)
    except Exception as exc:
        log_error("Playwright failed: %s" % exc)
        record_failure(exc)
    finally:
        finish_trace()
        emit(TRACE_START, trace, TRACE_END)
        if SPOTLIGHT_ENABLED:
            emit(SPOTLIGHT_START, drain_spotlight(), SPOTLIGHT_END)
        if receiver is not None:
            receiver.shutdown()
            receiver.server_close()


if __name__ == "__main__":
    main()
'''

_ENVIRONMENT = Environment(
    loader=BaseLoader(),
    autoescape=False,
    keep_trailing_newline=True,
    undefined=StrictUndefined,
)
_TEMPLATE = _ENVIRONMENT.from_string(PROGRAM_TEMPLATE)


@dataclass
# pylint: disable=too-few-public-methods
class AssemblerOptions:
    """Knobs baked into the generated program."""

    spotlight_port: int = 8969
    buffer_size: int = 1000
    screenshot_quality: int = 60
    sentry_bundle_url: str = DEFAULT_SENTRY_BUNDLE_URL
    spotlight_bundle_url: str = DEFAULT_SPOTLIGHT_BUNDLE_URL

    def validate(self) -> None:
        if not 0 < self.spotlight_port < 65536:
            raise ValueError(f"spotlight_port out of range: {self.spotlight_port}")
        if self.buffer_size <= 0:
            raise ValueError("buffer_size must be positive")
        if not 0 <= self.screenshot_quality <= 100:
            raise ValueError("screenshot_quality must be between 0 and 100")

    @classmethod
    def from_env(cls) -> "AssemblerOptions":
        port = os.getenv("MOMOS_SPOTLIGHT_PORT")
        quality = os.getenv("MOMOS_SCREENSHOT_QUALITY")
        return cls(
            spotlight_port=int(port) if port else cls.spotlight_port,
            screenshot_quality=int(quality) if quality else cls.screenshot_quality,
            sentry_bundle_url=os.getenv("MOMOS_SENTRY_BUNDLE_URL") or DEFAULT_SENTRY_BUNDLE_URL,
            spotlight_bundle_url=os.getenv("MOMOS_SPOTLIGHT_BUNDLE_URL") or DEFAULT_SPOTLIGHT_BUNDLE_URL,
        )


def assemble(
    block: CompiledBlock,
    connection_target: str,
    *,
    telemetry: bool = True,
    options: Optional[AssemblerOptions] = None,
) -> str:
    """Render the full program source for ``block``.

    Args:
        block: Output of :func:`compile_script`.
        connection_target: CDP websocket URL of the remote browser.
        telemetry: Start the spotlight listener and print its payload.
        options: Listener, buffer and screenshot settings.
    """
    if not connection_target:
        raise ValueError("connection_target must not be empty")
    options = options or AssemblerOptions()
    options.validate()

    body = block.text if not block.is_empty() else "pass"
    program = _TEMPLATE.render(
        cdp_endpoint=render_literal(connection_target),
        telemetry=render_literal(bool(telemetry)),
        spotlight_port=render_literal(int(options.spotlight_port)),
        buffer_size=render_literal(int(options.buffer_size)),
        screenshot_quality=render_literal(int(options.screenshot_quality)),
        sentry_bundle_url=render_literal(options.sentry_bundle_url),
        spotlight_bundle_url=render_literal(options.spotlight_bundle_url),
        trace_start=render_literal(TRACE_START),
        trace_end=render_literal(TRACE_END),
        spotlight_start=render_literal(SPOTLIGHT_START),
        spotlight_end=render_literal(SPOTLIGHT_END),
        body=body,
    )
    LOGGER.debug("Assembled program with %d statements (telemetry=%s)", len(block.statements), telemetry)
    return program
