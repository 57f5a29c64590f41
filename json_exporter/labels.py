from __future__ import annotations

import logging
import math
import re
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, Set, Tuple

log = logging.getLogger(__name__)

LabelPairs = Tuple[Tuple[str, str], ...]


class LabelSet:
    """
    Ordered (names, values) label stack shared by the tree walker.

    Static and value labels sit at the bottom and never move. Path labels are
    pushed while a subtree is being walked and dropped again by `scope()`.
    """

    def __init__(self, names: Sequence[str] = (), values: Sequence[str] = ()) -> None:
        if len(names) != len(values):
            raise ValueError(f"got {len(names)} label names but {len(values)} values")
        self._names: List[str] = list(names)
        self._values: List[str] = list(values)

    def __len__(self) -> int:
        return len(self._names)

    def push(self, name: str, value: str) -> None:
        self._names.append(name)
        self._values.append(value)

    def extend(self, pairs: Iterable[Tuple[str, str]]) -> None:
        for name, value in pairs:
            self.push(name, value)

    def truncate(self, depth: int) -> None:
        del self._names[depth:]
        del self._values[depth:]

    @contextmanager
    def scope(self) -> Iterator["LabelSet"]:
        depth = len(self._names)
        try:
            yield self
        finally:
            self.truncate(depth)

    def pairs(self) -> LabelPairs:
        # A name pushed twice keeps its innermost value.
        return tuple(dict(zip(self._names, self._values)).items())

    @property
    def names(self) -> List[str]:
        return list(self._names)

    @property
    def values(self) -> List[str]:
        return list(self._values)


def format_label_value(value: Any) -> Optional[str]:
    """
    Stringify a JSON scalar for use as a label value.

      "abc" -> "abc", 5 -> "5", 1234.5 -> "1.2345E+03", True -> "true"

    Returns None for anything that is not a scalar.
    """
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return _format_exponent(value)
    if isinstance(value, str):
        return value
    return None


def _format_exponent(value: float) -> str:
    if math.isnan(value) or math.isinf(value):
        return repr(value).upper()
    # Shortest mantissa that still round-trips.
    for digits in range(17):
        text = f"{value:.{digits}E}"
        if float(text) == value:
            return text
    return f"{value:.17E}"


@dataclass
class ValueLabels:
    labels: List[Tuple[str, str]] = field(default_factory=list)
    paths: Set[str] = field(default_factory=set)


def extract_value_labels(documents: Iterable[Any], patterns: Dict[str, re.Pattern[str]]) -> ValueLabels:
    """
    Harvest label values from JSON fields whose walked path matches a regex.

    Each label fires at most once: the first matching field, in URL order,
    wins. A match on an object, array or null consumes the label without a
    value and its subtree is not searched. Iteration over `documents` stops
    as soon as every label has fired, so no further URLs get fetched. Labels
    that never match are dropped.
    """
    pending = dict(patterns)
    found = ValueLabels()
    if not pending:
        return found

    for document in documents:
        if isinstance(document, dict):
            _harvest("", document, pending, found)
        if not pending:
            break

    for label in pending:
        log.info("Value label %s did not match any field, dropping it", label)
    return found


def _harvest(prefix: str, obj: Dict[str, Any], pending: Dict[str, re.Pattern[str]], found: ValueLabels) -> None:
    for key, value in obj.items():
        if not pending:
            return
        path = f"{prefix}_{key}" if prefix else str(key)
        label = _first_match(path, pending)
        if label is not None:
            # A match consumes the label even when the field is not a scalar.
            del pending[label]
            text = format_label_value(value)
            if text is None:
                log.info("Value label %s matched %s, which is not a scalar, dropping it", label, path)
                continue
            log.debug("Value label %s matched %s => %r", label, path, text)
            found.labels.append((label, text))
            found.paths.add(path)
        elif isinstance(value, dict):
            _harvest(path, value, pending, found)


def _first_match(path: str, patterns: Dict[str, re.Pattern[str]]) -> Optional[str]:
    for label, pattern in patterns.items():
        if pattern.search(path):
            return label
    return None


class PathLabels:
    """
    Labels cut out of the metric path itself.

    With `{"index": re.compile(r"indices_([^_]+)_")}` the path
    `indices_logs_docs_count` becomes `docs_count` with index="logs": the
    whole match is removed, the first group becomes the label value.
    """

    def __init__(self, patterns: Optional[Dict[str, re.Pattern[str]]] = None) -> None:
        self.patterns: Dict[str, re.Pattern[str]] = dict(patterns or {})

    def __bool__(self) -> bool:
        return bool(self.patterns)

    def apply(self, path: str) -> Tuple[str, List[Tuple[str, str]]]:
        """Return the path with matched segments stripped and the labels they yield."""
        matched: List[Tuple[str, str]] = []
        for label, pattern in self.patterns.items():
            m = pattern.search(path)
            if m is None:
                continue
            path = path.replace(m.group(0), "") if m.group(0) else path
            if not path:
                path = label
            matched.append((label, m.group(1) or ""))
        return path, matched
