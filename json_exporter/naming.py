from __future__ import annotations

import re

_ILLEGAL_METRIC_CHARS = re.compile(r"[^a-zA-Z0-9_:]")
_ILLEGAL_LABEL_CHARS = re.compile(r"[^a-zA-Z0-9_]")

# Characters of a JMX bean "name" that must not end up in a metric path.
_JMX_CHARS = str.maketrans({c: "_" for c in " ,:-=."})


def _legalize(name: str, pattern: re.Pattern[str], lowercase: bool) -> str:
    if lowercase:
        name = name.lower()
    name = pattern.sub("_", name)
    if name[:1].isdigit():
        name = "_" + name
    return name


def metric_name(name: str, lowercase: bool = False) -> str:
    """
    Turn a walked path into a legal Prometheus metric name.

      metric_name("jvm.heap-used")  -> "jvm_heap_used"
      metric_name("0_count")        -> "_0_count"
    """
    return _legalize(name, _ILLEGAL_METRIC_CHARS, lowercase)


def label_name(name: str, lowercase: bool = False) -> str:
    return _legalize(name, _ILLEGAL_LABEL_CHARS, lowercase)


def jmx_name(name: str) -> str:
    return name.translate(_JMX_CHARS)
