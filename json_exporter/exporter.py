#!/usr/bin/env python3
"""
JSON -> Prometheus metrics exporter.

Fetches the configured JSON URLs whenever /metrics is scraped (at most once
per --interval) and exposes every numeric/boolean field as a gauge:

  json_nodes_0_jvm_mem_heap_used_bytes{cluster="prod"} 1.2e+09

Field paths are joined with "_". Labels can be static (--labels/--values),
taken once at startup from JSON field values (--valuelabel), or cut out of
the field path on every scrape (--pathlabel).
"""

from __future__ import annotations

import logging
import sys
import time
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Optional, Sequence, Tuple
from urllib.parse import urlsplit

import requests
from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, generate_latest

from . import __version__
from .config import ConfigError, ExporterConfig, parse_args
from .filters import NameFilter
from .labels import LabelSet, PathLabels, extract_value_labels
from .scraper import JsonFetcher, JsonScraper
from .sink import MetricSink
from .walker import TreeWalker

log = logging.getLogger("json_exporter")

LANDING_PAGE = """<html>
<head><title>JSON Exporter</title></head>
<body>
<h1>JSON Exporter</h1>
<p><a href="{path}">Metrics</a></p>
</body>
</html>
"""


def build_scraper(config: ExporterConfig, session: Optional[requests.Session] = None) -> JsonScraper:
    """Wire up the scraper, harvesting value labels from the URLs once."""
    fetcher = JsonFetcher(session=session, timeout=config.timeout, verify=not config.insecure)

    labels = LabelSet([n for n, _ in config.static_labels], [v for _, v in config.static_labels])
    found = extract_value_labels(fetcher.documents(config.urls), config.value_labels)
    labels.extend(found.labels)
    if found.labels:
        log.info("Value labels: %s", ", ".join(f"{n}={v!r}" for n, v in found.labels))

    sink = MetricSink(config.namespace)
    walker = TreeWalker(
        sink,
        labels=labels,
        path_labels=PathLabels(config.path_labels),
        name_filter=NameFilter(config.blacklist, config.whitelist),
        lowercase=config.lowercase,
        jmx=config.jmx,
        skip_paths=frozenset(found.paths) if config.valuelabel_consume else frozenset(),
    )
    return JsonScraper(config.urls, sink, walker, fetcher=fetcher, interval=config.interval)


def build_registry(scraper: JsonScraper) -> CollectorRegistry:
    registry = CollectorRegistry()
    registry.register(scraper)
    return registry


class ExporterServer(ThreadingHTTPServer):
    daemon_threads = True

    def __init__(self, address: Tuple[str, int], registry: CollectorRegistry, metrics_path: str = "/metrics") -> None:
        super().__init__(address, Handler)
        self.registry = registry
        self.metrics_path = metrics_path


class Handler(BaseHTTPRequestHandler):
    server: ExporterServer

    def do_GET(self) -> None:  # noqa: N802
        path = urlsplit(self.path).path

        if path == self.server.metrics_path:
            start = time.time()
            body = generate_latest(self.server.registry)
            self._reply(200, CONTENT_TYPE_LATEST, body, {"X-Exporter-Gen-Secs": f"{time.time() - start:.4f}"})
            return

        if path == "/":
            page = LANDING_PAGE.format(path=self.server.metrics_path)
            self._reply(200, "text/html; charset=utf-8", page.encode("utf-8"))
            return

        if path == "/health":
            self._reply(200, "text/plain; charset=utf-8", b"ok\n")
            return

        self._reply(404, "text/plain; charset=utf-8", b"not found\n")

    def _reply(self, status: int, content_type: str, body: bytes, headers: Optional[dict] = None) -> None:
        self.send_response(status)
        self.send_header("Content-Type", content_type)
        for key, value in (headers or {}).items():
            self.send_header(key, value)
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, fmt: str, *args: object) -> None:
        # keep logs quiet
        return


def setup_logging(debug: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(asctime)s [exporter] %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def main(argv: Optional[Sequence[str]] = None) -> int:
    try:
        config = parse_args(argv)
    except ConfigError as e:
        raise SystemExit(f"[exporter] configuration error: {e}")

    setup_logging(config.debug)
    log.info("json_exporter %s", __version__)
    log.info("Got the following URL list: %s", " ".join(config.urls))

    scraper = build_scraper(config)
    httpd = ExporterServer(config.listen_host_port, build_registry(scraper), config.metrics_path)
    host, port = config.listen_host_port
    log.info("Listening on http://%s:%d%s", host, port, config.metrics_path)
    try:
        httpd.serve_forever()
    except KeyboardInterrupt:
        return 130
    finally:
        httpd.server_close()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
