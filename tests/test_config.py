import pytest

from json_exporter.config import ConfigError, parse_args, parse_duration, parse_regex_map

URL = "http://search:9200/_stats"


def test_defaults():
    config = parse_args([URL])
    assert config.urls == [URL]
    assert config.listen_host_port == ("0.0.0.0", 9109)
    assert config.metrics_path == "/metrics"
    assert config.namespace == "json"
    assert config.timeout == 5.0
    assert config.interval == 0.0
    assert config.lowercase is True
    assert config.blacklist is None and config.whitelist is None
    assert config.static_labels == []


def test_full_command_line():
    config = parse_args(
        [
            "--listen-address", "127.0.0.1:8080",
            "--metrics-path", "stats",
            "--namespace", "es",
            "--labels", "env,dc",
            "--values", "prod,eu-1",
            "--timeout", "250ms",
            "--interval", "1m30s",
            "--no-lowercase",
            "--jmx",
            "--insecure",
            "--blacklist", "^d_",
            "--whitelist", "heap",
            "--valuelabel", "cluster:^cluster_name$/version:^version_number$",
            "--pathlabel", "index:indices_([^_]+)_",
            URL,
            "http://search:9200/_nodes",
        ]
    )
    assert config.urls == [URL, "http://search:9200/_nodes"]
    assert config.listen_host_port == ("127.0.0.1", 8080)
    assert config.metrics_path == "/stats"
    assert config.namespace == "es"
    assert config.static_labels == [("env", "prod"), ("dc", "eu-1")]
    assert config.timeout == 0.25
    assert config.interval == 90.0
    assert config.lowercase is False
    assert config.jmx and config.insecure
    assert config.blacklist.pattern == "^d_"
    assert config.whitelist.pattern == "heap"
    assert sorted(config.value_labels) == ["cluster", "version"]
    assert config.path_labels["index"].pattern == "indices_([^_]+)_"


def test_environment_fallback(monkeypatch):
    monkeypatch.setenv("JSON_EXPORTER_URLS", "http://a/ http://b/")
    monkeypatch.setenv("JSON_EXPORTER_NAMESPACE", "svc")
    monkeypatch.setenv("JSON_EXPORTER_DEBUG", "true")
    config = parse_args([])
    assert config.urls == ["http://a/", "http://b/"]
    assert config.namespace == "svc"
    assert config.debug is True


def test_no_urls_is_fatal(monkeypatch):
    monkeypatch.delenv("JSON_EXPORTER_URLS", raising=False)
    with pytest.raises(ConfigError, match="no URLs"):
        parse_args([])


def test_label_value_count_mismatch_is_fatal():
    with pytest.raises(ConfigError, match="does not match"):
        parse_args(["--labels", "env,dc", "--values", "prod", URL])


@pytest.mark.parametrize("flag", ["--blacklist", "--whitelist"])
def test_invalid_filter_regex_is_fatal(flag):
    with pytest.raises(ConfigError, match="Invalid"):
        parse_args([flag, "(", URL])


def test_path_label_needs_capturing_group():
    with pytest.raises(ConfigError, match="capturing group"):
        parse_args(["--pathlabel", "index:indices_[^_]+", URL])


def test_duplicate_label_names_are_fatal():
    with pytest.raises(ConfigError, match="both"):
        parse_args(["--labels", "cluster", "--values", "x", "--valuelabel", "cluster:^name$", URL])


def test_lowercase_applies_to_label_names():
    config = parse_args(["--labels", "Env", "--values", "Prod", URL])
    assert config.static_labels == [("env", "Prod")]


def test_bad_listen_address_is_fatal():
    with pytest.raises(ConfigError, match="listen address"):
        parse_args(["--listen-address", "localhost", URL])


def test_regex_map_grammar():
    regexes = parse_regex_map("a:^x:y$/broken/:nolabel/b:")
    assert list(regexes) == ["a"]
    assert regexes["a"].pattern == "^x:y$"


def test_regex_map_invalid_regex():
    with pytest.raises(ConfigError):
        parse_regex_map("a:(")


@pytest.mark.parametrize(
    "text,seconds",
    [("5s", 5.0), ("250ms", 0.25), ("1m", 60.0), ("1h", 3600.0), ("1m30s", 90.0), ("2", 2.0), ("0.5", 0.5)],
)
def test_parse_duration(text, seconds):
    assert parse_duration(text) == seconds


@pytest.mark.parametrize("text", ["", "5x", "s", "5s junk"])
def test_parse_duration_rejects_garbage(text):
    with pytest.raises(ConfigError):
        parse_duration(text)
