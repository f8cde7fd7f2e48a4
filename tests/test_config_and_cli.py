from __future__ import annotations

import json
from pathlib import Path

import pytest
import yaml
from pydantic import ValidationError

from conftest import encode_png, solid_frame
from videogateway import cli
from videogateway.config import RuntimeConfig, load_runtime_config

REPO_CONFIG = Path(__file__).resolve().parents[1] / "config" / "gateway.yml"


def write_config(tmp_path: Path, mapping_path: Path, **overrides) -> Path:
    raw = {
        "mapping": {"file": str(mapping_path)},
        "rack": {"url": "http://rack:9090", "capability_url": "http://rack:9090/capability"},
        "health": {"settle_seconds": 0.5, "lease_groups": ["VID"]},
        "general": {"logs_root": str(tmp_path / "logs"), "build_version_env": "GATEWAY_TEST_BUILD"},
    }
    raw.update(overrides)
    path = tmp_path / "gateway.yml"
    path.write_text(yaml.safe_dump(raw), encoding="utf-8")
    return path


def test_defaults():
    runtime = RuntimeConfig()
    assert runtime.server.port == 8080
    assert runtime.health.lease_groups == ["VID", "MTR"]
    assert runtime.health.settle_seconds == 5.0
    assert runtime.registry.rebuild_on_mapping_change is False


def test_repo_config_loads():
    runtime = load_runtime_config(REPO_CONFIG)
    assert runtime.mapping.file == "config/slot-mappings.json"
    assert runtime.health.max_concurrent_probes == 16


def test_load_runtime_config(tmp_path, mapping_path):
    runtime = load_runtime_config(write_config(tmp_path, mapping_path))
    assert runtime.rack.url == "http://rack:9090"
    assert runtime.health.lease_groups == ["VID"]
    assert runtime.health.settle_seconds == 0.5


def test_missing_config_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_runtime_config(tmp_path / "absent.yml")


def test_invalid_values_rejected(tmp_path, mapping_path):
    path = write_config(tmp_path, mapping_path, server={"port": 70000})
    with pytest.raises(ValidationError):
        load_runtime_config(path)


def test_build_version(monkeypatch):
    runtime = RuntimeConfig()
    monkeypatch.delenv("BUILD_VERSION", raising=False)
    assert runtime.general.build_version() == "development"
    monkeypatch.setenv("BUILD_VERSION", "3.1.0")
    assert runtime.general.build_version() == "3.1.0"


def test_build_version_from_env_file(tmp_path, mapping_path, monkeypatch):
    monkeypatch.setenv("GATEWAY_TEST_BUILD", "unset")
    monkeypatch.delenv("GATEWAY_TEST_BUILD")
    config_path = write_config(tmp_path, mapping_path)
    (tmp_path / "gateway.env").write_text("GATEWAY_TEST_BUILD=9.9.9\n", encoding="utf-8")
    args = cli.build_parser().parse_args(["--config", str(config_path), "health"])
    gateway = cli._gateway(args)
    assert gateway.health.build_version == "9.9.9"


def test_build_gateway_wires_rebuild_listener(tmp_path, mapping_path):
    runtime = load_runtime_config(
        write_config(tmp_path, mapping_path, registry={"rebuild_on_mapping_change": True})
    )
    gateway = cli.build_gateway(runtime)
    assert gateway.health.lease_groups == ["VID"]
    assert gateway.health.classifier.settle_seconds == 0.5
    document = gateway.store.load()
    document.rack_host = "rack02.example.net"
    gateway.store.path.write_text(document.to_json(), encoding="utf-8")
    gateway.store.update_mapping("30", "1:2")
    assert gateway.registry.get(1).rack_host == "rack02.example.net"


def run_cli(argv, capsys) -> str:
    args = cli.build_parser().parse_args(argv)
    args.func(args)
    return capsys.readouterr().out.strip()


def test_cli_url_and_mappings(tmp_path, mapping_path, capsys):
    config = str(write_config(tmp_path, mapping_path))
    assert run_cli(["--config", config, "url", "7", "--snapshot", "--no-ssl"], capsys).endswith("Channel=2")
    assert run_cli(["--config", config, "url", "1", "--rtsp"], capsys) == (
        "rtsp://rack01.example.net:5511/axis-media/media.amp?camera=1&fps=15"
    )
    run_cli(["--config", config, "mappings", "set", "40", "1:8"], capsys)
    assert run_cli(["--config", config, "mappings", "get", "40"], capsys) == "1:8"
    run_cli(["--config", config, "mappings", "remove", "40"], capsys)
    shown = json.loads(run_cli(["--config", config, "mappings", "show"], capsys))
    assert shown["slots"]["40"] == "N/A"


def test_cli_classify(tmp_path, capsys):
    first = tmp_path / "first.png"
    first.write_bytes(encode_png(solid_frame((0, 0, 0))))
    second = tmp_path / "second.png"
    second.write_bytes(encode_png(solid_frame((40, 40, 40))))
    assert run_cli(["classify", str(first)], capsys) == "Black"
    assert run_cli(["classify", str(first), str(second)], capsys) == "Normal"
