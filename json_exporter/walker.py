from __future__ import annotations

import json
import logging
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional

from .filters import NameFilter
from .labels import LabelSet, PathLabels
from .naming import jmx_name, metric_name
from .sink import MetricSink

log = logging.getLogger(__name__)


class JsonKind(Enum):
    NULL = "null"
    BOOL = "bool"
    NUMBER = "number"
    STRING = "string"
    OBJECT = "object"
    ARRAY = "array"
    UNKNOWN = "unknown"


def kind_of(value: Any) -> JsonKind:
    # bool first: it is a subclass of int.
    if value is None:
        return JsonKind.NULL
    if isinstance(value, bool):
        return JsonKind.BOOL
    if isinstance(value, (int, float)):
        return JsonKind.NUMBER
    if isinstance(value, str):
        return JsonKind.STRING
    if isinstance(value, dict):
        return JsonKind.OBJECT
    if isinstance(value, list):
        return JsonKind.ARRAY
    return JsonKind.UNKNOWN


def _join(prefix: str, segment: str) -> str:
    return f"{prefix}_{segment}" if prefix else segment


class TreeWalker:
    """
    Turns a parsed JSON document into gauge observations on a MetricSink.

    Every numeric or boolean leaf becomes one observation named after its
    path, e.g. {"a": {"b": 5}, "d": [1, 2]} -> a_b=5, d_0=1, d_1=2.
    Strings are ignored unless they hold an embedded JSON object, which is
    walked as if it were nested in place.
    """

    def __init__(
        self,
        sink: MetricSink,
        labels: Optional[LabelSet] = None,
        path_labels: Optional[PathLabels] = None,
        name_filter: Optional[NameFilter] = None,
        lowercase: bool = True,
        jmx: bool = False,
        skip_paths: FrozenSet[str] = frozenset(),
    ) -> None:
        self.sink = sink
        self.labels = labels if labels is not None else LabelSet()
        self.path_labels = path_labels if path_labels is not None else PathLabels()
        self.name_filter = name_filter if name_filter is not None else NameFilter()
        self.lowercase = lowercase
        self.jmx = jmx
        self.skip_paths = skip_paths

    def walk(self, document: Any, prefix: str = "") -> None:
        kind = kind_of(document)
        if kind is JsonKind.OBJECT:
            self._walk_object(prefix, prefix, document)
        elif kind is JsonKind.ARRAY:
            self._walk_array(prefix, prefix, document)
        else:
            log.debug("Top-level JSON value is a %s, nothing to walk", kind.value)

    def _walk_object(self, prefix: str, raw: str, obj: Dict[str, Any]) -> None:
        if self.jmx:
            name = obj.get("name")
            if isinstance(name, str):
                prefix = jmx_name(name)
        for key, value in obj.items():
            self._visit(_join(prefix, str(key)), _join(raw, str(key)), value)

    def _walk_array(self, prefix: str, raw: str, items: List[Any]) -> None:
        for idx, value in enumerate(items):
            self._visit(_join(prefix, str(idx)), _join(raw, str(idx)), value)

    def _visit(self, path: str, raw: str, value: Any) -> None:
        # `raw` is the path as written in the document, before any path label
        # or jmx renaming; value labels are matched against it.
        with self.labels.scope():
            name = path
            if self.path_labels:
                name, matched = self.path_labels.apply(path)
                self.labels.extend(matched)

            kind = kind_of(value)
            if kind is JsonKind.NUMBER:
                if raw not in self.skip_paths:
                    self._emit_number(name, value)
            elif kind is JsonKind.BOOL:
                if raw not in self.skip_paths:
                    self._emit(name, 1.0 if value else 0.0)
            elif kind is JsonKind.STRING:
                self._visit_string(name, raw, value)
            elif kind is JsonKind.OBJECT:
                self._walk_object(name, raw, value)
            elif kind is JsonKind.ARRAY:
                self._walk_array(name, raw, value)
            elif kind is JsonKind.NULL:
                log.debug("%s is null", name)
            else:
                log.debug("%s is of a type I don't know how to handle: %s", name, type(value).__name__)

    def _visit_string(self, name: str, raw: str, value: str) -> None:
        if len(value) <= 2 or value[0] != "{":
            return
        try:
            embedded = json.loads(value)
        except ValueError:
            log.warning("Failed to parse json from string in %s", name)
            return
        if isinstance(embedded, dict):
            log.debug("Extracting json values from the string in %s", name)
            self._walk_object(name, raw, embedded)

    def _emit_number(self, path: str, value: Any) -> None:
        try:
            number = float(value)
        except OverflowError:
            log.warning("%s does not fit in a float, skipping it", path)
            return
        self._emit(path, number)

    def _emit(self, path: str, value: float) -> None:
        name = metric_name(path, self.lowercase)
        if not self.name_filter.allow(name):
            log.debug("%s filtered out", name)
            return
        labels = self.labels.pairs()
        log.debug("%s => %s %s", name, value, labels)
        self.sink.observe(name, value, labels)
