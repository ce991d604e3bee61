"""
Tests for the command line entry point
"""

import pytest
from pydantic import ValidationError

from app import apply_overrides, build_parser, build_server, main
from config.settings import get_settings
from dumbometrics import FileSnapshotStore, MetricsRegistry, Snapshot


@pytest.fixture
def cache_dir(monkeypatch, tmp_path):
    monkeypatch.setenv("DUMBOMETRICS_CACHE_DIRECTORY", str(tmp_path))
    return tmp_path


@pytest.fixture
def seeded(cache_dir):
    registry = MetricsRegistry(FileSnapshotStore(cache_dir), namespace="dumbometrics")
    family = registry.register_counter("logins_total", "Logins", ["provider"])
    registry.increment(family, ["github"], 3)
    return registry


def test_render_prints_exposition(seeded, capsys):
    assert main(["--render"]) == 0

    out = capsys.readouterr().out
    assert out == seeded.render()
    assert 'dumbometrics_logins_total{provider="github"} 3\n' in out


def test_namespace_override_keeps_stored_families(seeded, capsys):
    assert main(["--render", "--namespace", "Other"]) == 0

    # Families keep the namespace they were registered under
    assert "dumbometrics_logins_total" in capsys.readouterr().out


def test_flush_clears_store(seeded, cache_dir, capsys):
    assert main(["--flush"]) == 0

    assert FileSnapshotStore(cache_dir).load() == Snapshot()
    assert capsys.readouterr().out == ""


def test_corrupt_store_exits_with_error(cache_dir, capsys):
    (cache_dir / "metrics.json").write_text("garbage", encoding="utf-8")

    assert main(["--render"]) == 1
    assert capsys.readouterr().out == ""


def test_render_and_flush_are_exclusive():
    with pytest.raises(SystemExit):
        build_parser().parse_args(["--render", "--flush"])


def test_overrides_take_precedence_over_environment(monkeypatch):
    monkeypatch.setenv("DUMBOMETRICS_METRICS_PORT", "9100")
    settings = get_settings()
    args = build_parser().parse_args(["--host", "127.0.0.1", "--port", "9200"])

    apply_overrides(settings, args)

    assert settings.server.ip == "127.0.0.1"
    assert settings.server.port == 9200


@pytest.mark.parametrize("port", ["0", "70000"])
def test_out_of_range_port_override_rejected(port):
    settings = get_settings()
    args = build_parser().parse_args(["--port", port])

    with pytest.raises(ValidationError):
        apply_overrides(settings, args)
    assert settings.server.port == 9090


def test_invalid_override_exits_with_usage_error(capsys):
    with pytest.raises(SystemExit) as excinfo:
        main(["--render", "--port", "70000"])

    assert excinfo.value.code == 2
    assert "invalid option value" in capsys.readouterr().err


def test_blank_namespace_override_falls_back_to_default(memory_store):
    settings = get_settings()
    args = build_parser().parse_args(["--namespace", ""])

    apply_overrides(settings, args)
    registry = MetricsRegistry(memory_store, namespace=settings.registry.namespace)

    assert settings.registry.namespace == "dumbometrics"
    assert registry.register_gauge("up").full_name == "dumbometrics_up"


def test_namespace_override_is_normalized():
    settings = get_settings()

    apply_overrides(settings, build_parser().parse_args(["--namespace", "Shop"]))
    assert settings.registry.namespace == "shop"

    with pytest.raises(ValidationError):
        apply_overrides(settings, build_parser().parse_args(["--namespace", "my-shop"]))


def test_build_server_without_examples(registry):
    server = build_server(get_settings(), registry)

    assert server.examples is None
    assert server.address == ("0.0.0.0", 9090)


def test_build_server_with_examples(monkeypatch, registry):
    monkeypatch.setenv("DUMBOMETRICS_EXAMPLES_ENABLED", "1")
    monkeypatch.setenv("DUMBOMETRICS_EXAMPLES_DELAY_SECONDS", "0")

    server = build_server(get_settings(), registry)

    assert set(server.examples.routes) == {
        "/example/metrics",
        "/example/flush",
        "/example/delay",
    }
    assert server.examples.delay_seconds == 0
