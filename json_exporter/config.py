from __future__ import annotations

import argparse
import os
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Pattern, Sequence, Tuple

from . import __version__
from .naming import label_name, metric_name

ENV_PREFIX = "JSON_EXPORTER_"

_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ms|s|m|h)")
_DURATION_UNITS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}


class ConfigError(ValueError):
    """Invalid startup configuration. Fatal: the exporter never starts serving."""


@dataclass
class ExporterConfig:
    urls: List[str]
    listen_address: str = ":9109"
    metrics_path: str = "/metrics"
    namespace: str = "json"
    static_labels: List[Tuple[str, str]] = field(default_factory=list)
    timeout: float = 5.0
    interval: float = 0.0
    debug: bool = False
    lowercase: bool = True
    jmx: bool = False
    insecure: bool = False
    blacklist: Optional[Pattern[str]] = None
    whitelist: Optional[Pattern[str]] = None
    value_labels: Dict[str, Pattern[str]] = field(default_factory=dict)
    path_labels: Dict[str, Pattern[str]] = field(default_factory=dict)
    valuelabel_consume: bool = False

    @property
    def listen_host_port(self) -> Tuple[str, int]:
        return parse_listen_address(self.listen_address)


def parse_listen_address(address: str) -> Tuple[str, int]:
    """":9109" -> ("0.0.0.0", 9109), "127.0.0.1:8080" -> ("127.0.0.1", 8080)"""
    host, _, port = address.rpartition(":")
    try:
        return host or "0.0.0.0", int(port)
    except ValueError:
        raise ConfigError(f"Invalid listen address: {address!r}") from None


def _env(name: str, default: str = "") -> str:
    return os.getenv(ENV_PREFIX + name, default)


def _env_flag(name: str, default: bool = False) -> bool:
    raw = os.getenv(ENV_PREFIX + name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def parse_duration(text: str) -> float:
    """
    Parse a duration into seconds.

      "5s" -> 5.0, "250ms" -> 0.25, "1m30s" -> 90.0, "2" -> 2.0
    """
    text = text.strip()
    try:
        return float(text)
    except ValueError:
        pass
    pos = 0
    total = 0.0
    for m in _DURATION_PART.finditer(text):
        if m.start() != pos:
            break
        total += float(m.group(1)) * _DURATION_UNITS[m.group(2)]
        pos = m.end()
    if pos == 0 or pos != len(text):
        raise ConfigError(f"Invalid duration: {text!r}")
    return total


def compile_regex(pattern: str, what: str) -> Pattern[str]:
    try:
        return re.compile(pattern)
    except re.error as e:
        raise ConfigError(f"Invalid {what} regex {pattern!r}: {e}") from None


def parse_regex_map(spec: str, what: str = "label") -> Dict[str, Pattern[str]]:
    """
    Parse `label1:regex1[/label2:regex2[/...]]` into {label: compiled regex}.

    Only the first ':' separates a pair, so regexes may contain colons.
    Pairs with an empty label or regex are ignored.
    """
    regexes: Dict[str, Pattern[str]] = {}
    for pair in spec.split("/"):
        name, sep, pattern = pair.partition(":")
        if not sep or not name or not pattern:
            continue
        regexes[name] = compile_regex(pattern, f"{what} {name!r}")
    return regexes


def _split_list(raw: str) -> List[str]:
    return [item.strip() for item in raw.split(",")] if raw else []


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="json-exporter",
        description="Export numeric values of JSON documents as Prometheus gauges.",
    )
    ap.add_argument("urls", nargs="*", metavar="URL", help="JSON endpoints to scrape (env: JSON_EXPORTER_URLS, space separated)")
    ap.add_argument("--version", action="version", version=f"json_exporter {__version__}")
    ap.add_argument("--listen-address", default=_env("LISTEN_ADDRESS", ":9109"), help="Address to listen on for the metrics endpoint")
    ap.add_argument("--metrics-path", default=_env("METRICS_PATH", "/metrics"), help="Path under which to expose metrics")
    ap.add_argument("--namespace", default=_env("NAMESPACE", "json"), help="Prefix of every exported metric")
    ap.add_argument("--labels", default=_env("LABELS"), help="Static label names (comma separated)")
    ap.add_argument("--values", default=_env("VALUES"), help="Static label values (comma separated)")
    ap.add_argument("--timeout", default=_env("TIMEOUT", "5s"), help="Timeout of each JSON fetch, e.g. 5s")
    ap.add_argument("--interval", default=_env("INTERVAL", "0s"), help="Minimum time between two refreshes of the JSON, e.g. 1m")
    ap.add_argument("--debug", action="store_true", default=_env_flag("DEBUG"), help="Log debug information")
    ap.add_argument(
        "--lowercase",
        action=argparse.BooleanOptionalAction,
        default=_env_flag("LOWERCASE", True),
        help="Lowercase metric and label names",
    )
    ap.add_argument("--jmx", action="store_true", default=_env_flag("JMX"), help="Use the 'name' attribute of objects as their path")
    ap.add_argument("--insecure", action="store_true", default=_env_flag("INSECURE"), help="Accept untrusted https certificates")
    ap.add_argument("--blacklist", default=_env("BLACKLIST"), help="Regex of metric names to drop")
    ap.add_argument("--whitelist", default=_env("WHITELIST"), help="Regex of metric names to keep")
    ap.add_argument(
        "--valuelabel",
        default=_env("VALUELABEL"),
        help="Labels taken from JSON field values, format: <label1>:<regex1>[/<label2>:<regex2>[/...]]",
    )
    ap.add_argument(
        "--pathlabel",
        default=_env("PATHLABEL"),
        help="Labels cut out of the metric path, regex needs one group, format: <label1>:<regex1>[/...]",
    )
    ap.add_argument(
        "--valuelabel-consume",
        action="store_true",
        default=_env_flag("VALUELABEL_CONSUME"),
        help="Do not also export fields that were used as value labels",
    )
    return ap


def parse_args(argv: Optional[Sequence[str]] = None) -> ExporterConfig:
    args = build_parser().parse_args(argv)

    urls = list(args.urls) or _env("URLS").split()
    if not urls:
        raise ConfigError("Got no URLs, usage: json-exporter [options] <URL1>[ <URL2>[ ..<URLn>]]")

    names = _split_list(args.labels)
    values = _split_list(args.values)
    if len(names) != len(values):
        raise ConfigError(f"Labels amount ({len(names)}) does not match values amount ({len(values)})")
    static_labels = [(label_name(n, args.lowercase), v) for n, v in zip(names, values)]

    value_labels = {
        label_name(n, args.lowercase): r for n, r in parse_regex_map(args.valuelabel, "value label").items()
    }
    path_labels = {
        label_name(n, args.lowercase): r for n, r in parse_regex_map(args.pathlabel, "path label").items()
    }
    for name, pattern in path_labels.items():
        if pattern.groups < 1:
            raise ConfigError(f"Path label {name!r} regex {pattern.pattern!r} needs a capturing group")

    seen: Dict[str, str] = {}
    for kind, label_names in (
        ("static", [n for n, _ in static_labels]),
        ("value", list(value_labels)),
        ("path", list(path_labels)),
    ):
        for name in label_names:
            if name in seen:
                raise ConfigError(f"Label {name!r} is defined as both {seen[name]} and {kind} label")
            seen[name] = kind

    timeout = parse_duration(args.timeout)
    if timeout <= 0:
        raise ConfigError("--timeout must be > 0")
    interval = parse_duration(args.interval)
    if interval < 0:
        raise ConfigError("--interval must be >= 0")
    parse_listen_address(args.listen_address)

    config = ExporterConfig(
        urls=urls,
        listen_address=args.listen_address,
        metrics_path=args.metrics_path if args.metrics_path.startswith("/") else "/" + args.metrics_path,
        namespace=metric_name(args.namespace) if args.namespace else "",
        static_labels=static_labels,
        timeout=timeout,
        interval=interval,
        debug=args.debug,
        lowercase=args.lowercase,
        jmx=args.jmx,
        insecure=args.insecure,
        blacklist=compile_regex(args.blacklist, "blacklist") if args.blacklist else None,
        whitelist=compile_regex(args.whitelist, "whitelist") if args.whitelist else None,
        value_labels=value_labels,
        path_labels=path_labels,
        valuelabel_consume=args.valuelabel_consume,
    )
    return config
