from __future__ import annotations

import logging
import threading
import time
from enum import Enum
from typing import Any, Callable, Iterator, List, Optional, Sequence

import requests
from prometheus_client.core import GaugeMetricFamily
from prometheus_client.registry import Collector

from .sink import MetricSink
from .walker import TreeWalker

log = logging.getLogger(__name__)


class ScrapeState(Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    PARSING = "parsing"
    WALKING = "walking"


class FetchError(Exception):
    pass


class DocumentError(ValueError):
    pass


class JsonFetcher:
    """GETs JSON documents with a bounded timeout; no retries."""

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        timeout: float = 5.0,
        verify: bool = True,
    ) -> None:
        self.session = session if session is not None else requests.Session()
        self.timeout = timeout
        self.verify = verify

    def fetch(self, url: str) -> requests.Response:
        try:
            resp = self.session.get(
                url,
                headers={"Accept": "application/json"},
                timeout=self.timeout,
                verify=self.verify,
            )
            resp.raise_for_status()
        except requests.RequestException as e:
            raise FetchError(f"Error while querying JSON endpoint {url}: {e}") from e
        return resp

    @staticmethod
    def parse(url: str, resp: requests.Response) -> Any:
        try:
            document = resp.json()
        except (ValueError, RecursionError) as e:
            raise DocumentError(f"Failed to parse JSON from {url}: {e}") from e
        if not isinstance(document, (dict, list)):
            raise DocumentError(f"JSON from {url} is neither an object nor an array")
        return document

    def documents(self, urls: Sequence[str]) -> Iterator[Any]:
        """Yield the parsed documents of `urls` in order, skipping the ones that fail."""
        for url in urls:
            try:
                yield self.parse(url, self.fetch(url))
            except (FetchError, DocumentError) as e:
                log.warning("%s", e)


class JsonScraper(Collector):
    """
    prometheus_client collector that refreshes the JSON on scrape.

    A refresh only happens when a scrape arrives and `interval` seconds have
    passed since the previous one; otherwise the last values are reported
    again. One lock covers a whole refresh and report, so concurrent scrapes
    run one after another.
    """

    def __init__(
        self,
        urls: Sequence[str],
        sink: MetricSink,
        walker: TreeWalker,
        fetcher: Optional[JsonFetcher] = None,
        interval: float = 0.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.urls = list(urls)
        self.sink = sink
        self.walker = walker
        self.fetcher = fetcher if fetcher is not None else JsonFetcher()
        self.interval = interval
        self.state = ScrapeState.IDLE
        self.up = 0.0
        self.last_duration = 0.0
        self._clock = clock
        self._next_refresh = clock()
        self._lock = threading.Lock()

    def collect(self) -> List[GaugeMetricFamily]:
        with self._lock:
            now = self._clock()
            if now >= self._next_refresh:
                self.refresh()
                self._next_refresh = self._clock() + self.interval
            else:
                log.debug("Next refresh in %.1fs, reporting cached values", self._next_refresh - now)
            return [self._up_family(), *self.sink.collect()]

    def describe(self) -> List[GaugeMetricFamily]:
        # Series only appear once the JSON is fetched.
        return []

    def refresh(self) -> None:
        """Fetch and walk every URL once. Callers must hold the lock."""
        start = time.perf_counter()
        ok = True
        self.sink.begin_cycle()
        try:
            for url in self.urls:
                ok = self._scrape_url(url) and ok
        finally:
            self.state = ScrapeState.IDLE
            self.sink.end_cycle()
        self.up = 1.0 if ok else 0.0
        self.last_duration = time.perf_counter() - start
        log.debug("Refreshed %d urls in %.3fs, %d metrics", len(self.urls), self.last_duration, len(self.sink))

    def _scrape_url(self, url: str) -> bool:
        self.state = ScrapeState.FETCHING
        try:
            resp = self.fetcher.fetch(url)
        except FetchError as e:
            log.warning("%s", e)
            return False

        self.state = ScrapeState.PARSING
        try:
            document = self.fetcher.parse(url, resp)
        except DocumentError as e:
            log.warning("%s", e)
            return True

        self.state = ScrapeState.WALKING
        try:
            self.walker.walk(document)
        except RecursionError:
            log.warning("JSON from %s is nested too deeply, metrics from it are incomplete", url)
        return True

    def _up_family(self) -> GaugeMetricFamily:
        return GaugeMetricFamily(
            self.sink.full_name("up"),
            "Was the last JSON query of every URL successful?",
            value=self.up,
        )
