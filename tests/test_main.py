"""
Brief: Tests for the hostkeys command-line entry point.

Inputs:
  - None

Outputs:
  - None
"""

from __future__ import annotations

import json
from typing import Any, Dict

import paramiko
import pytest

from hostkeys import main as main_mod
from hostkeys.errors import HostConnectError, ScanTimeout
from hostkeys.fingerprint import render_authorized_key_line, render_fingerprint
from hostkeys.main import parse_duration, parse_format, parse_host, parse_output
from hostkeys.pool import HostKeyScan


@pytest.fixture(scope="module")
def ecdsa_key():
    return paramiko.ECDSAKey.generate()


@pytest.fixture
def fake_scan(monkeypatch, ecdsa_key):
    """
    Brief: Replace scan_host and init_logging inside hostkeys.main.

    Inputs:
      - monkeypatch: pytest fixture
      - ecdsa_key: key returned for every scan

    Outputs:
      - dict: ``calls`` (scan_host kwargs), ``logging`` (init_logging cfgs)
        and ``result`` (settable HostKeyScan overrides).
    """
    state: Dict[str, Any] = {"calls": [], "logging": [], "error": None, "version": None}

    def _scan_host(host, **kwargs):
        state["calls"].append(dict(kwargs, host=host))
        scan = HostKeyScan(host=host, port=kwargs["port"])
        if state["error"] is not None:
            scan.error = state["error"]
            return scan
        scan.keys = {"ecdsa-sha2-nistp256": ecdsa_key}
        if kwargs.get("banner"):
            scan.version = state["version"] or "SSH-2.0-Fake"
        return scan

    monkeypatch.setattr(main_mod, "scan_host", _scan_host)
    monkeypatch.setattr(main_mod, "init_logging", lambda cfg: state["logging"].append(cfg))
    return state


def test_console_authorized_keys_output(fake_scan, ecdsa_key, capsys):
    rc = main_mod.main(["server.example"])
    out = capsys.readouterr().out.splitlines()

    assert rc == 0
    assert out == [render_authorized_key_line(ecdsa_key)]
    call = fake_scan["calls"][0]
    assert call["host"] == "server.example"
    assert call["port"] == 22
    assert call["concurrency"] == 4
    assert call["timeout"] == 60.0
    assert call["overall_timeout"] is None
    assert call["banner"] is False


def test_console_banner_line(fake_scan, capsys):
    fake_scan["version"] = "SSH-2.0-OpenSSH_9.6"
    rc = main_mod.main(["--banner", "server.example:2200"])
    out = capsys.readouterr().out.splitlines()
    assert rc == 0
    assert out[0] == "# server.example:2200 SSH-2.0-OpenSSH_9.6"
    assert fake_scan["calls"][0]["port"] == 2200


def test_json_output(fake_scan, ecdsa_key, capsys):
    """
    Brief: JSON mode emits Host, Version and PublicKeys.

    Inputs:
      - fake_scan: patched scan_host

    Outputs:
      - None: Asserts the JSON document
    """
    rc = main_mod.main(["-o", "json", "--banner", "-f", "fingerprint-sha256", "10.0.0.1"])
    doc = json.loads(capsys.readouterr().out)

    assert rc == 0
    assert doc == {
        "Host": "10.0.0.1",
        "Version": "SSH-2.0-Fake",
        "PublicKeys": [render_fingerprint("sha256", "base64", ecdsa_key)],
    }


def test_json_output_without_banner_has_no_version(fake_scan, capsys):
    rc = main_mod.main(["-o", "json", "10.0.0.1"])
    doc = json.loads(capsys.readouterr().out)
    assert rc == 0
    assert "Version" not in doc
    assert len(doc["PublicKeys"]) == 1


def test_fingerprint_formats_and_encoding(fake_scan, ecdsa_key, capsys):
    main_mod.main(["-f", "md5", "h"])
    main_mod.main(["-f", "fingerprint-sha1", "-e", "base32", "h"])
    out = capsys.readouterr().out.splitlines()
    assert out == [
        render_fingerprint("md5", "hex", ecdsa_key),
        render_fingerprint("sha1", "base32", ecdsa_key),
    ]


def test_plain_fingerprint_is_sha1_hex(fake_scan, ecdsa_key, capsys):
    rc = main_mod.main(["-f", "fingerprint", "h"])
    out = capsys.readouterr().out.splitlines()
    assert rc == 0
    assert out == [render_fingerprint("sha1", "hex", ecdsa_key)]
    assert out[0].count(":") == 19


def test_unknown_output_mode_falls_back_to_console(fake_scan, ecdsa_key, capsys):
    rc = main_mod.main(["-o", "xml", "h"])
    out = capsys.readouterr().out.splitlines()
    assert rc == 0
    assert out == [render_authorized_key_line(ecdsa_key)]


def test_sshfp_format(fake_scan, capsys):
    rc = main_mod.main(["-f", "sshfp", "host.example"])
    out = capsys.readouterr().out.splitlines()
    assert rc == 0
    assert [line.split()[:5] for line in out] == [
        ["host.example", "IN", "SSHFP", "3", "1"],
        ["host.example", "IN", "SSHFP", "3", "2"],
    ]


def test_options_are_passed_to_scan(fake_scan):
    rc = main_mod.main(
        [
            "-t",
            "1m30s",
            "--overall-timeout",
            "2m",
            "-c",
            "8",
            "-a",
            "ssh-ed25519, ssh-rsa,",
            "[::1]:2022",
        ]
    )
    call = fake_scan["calls"][0]
    assert rc == 0
    assert call["host"] == "::1"
    assert call["port"] == 2022
    assert call["timeout"] == 90.0
    assert call["overall_timeout"] == 120.0
    assert call["concurrency"] == 8
    assert call["algorithms"] == ["ssh-ed25519", "ssh-rsa"]


def test_scan_failure_console(fake_scan, capsys):
    fake_scan["error"] = HostConnectError("cannot connect to h:22: refused")
    rc = main_mod.main(["h"])
    captured = capsys.readouterr()
    assert rc == 1
    assert captured.out == ""
    assert "refused" in captured.err


def test_scan_failure_json(fake_scan, capsys):
    fake_scan["error"] = ScanTimeout("host key scan of h:22 timed out after 1s")
    rc = main_mod.main(["-o", "json", "h"])
    doc = json.loads(capsys.readouterr().out)
    assert rc == 1
    assert doc == {"Host": "h", "Error": "host key scan of h:22 timed out after 1s"}


def test_invalid_host_fails_without_scanning(fake_scan, capsys):
    rc = main_mod.main(["bad host!"])
    assert rc == 1
    assert fake_scan["calls"] == []
    assert "not a valid hostname" in capsys.readouterr().err


def test_invalid_duration_fails_without_scanning(fake_scan, capsys):
    rc = main_mod.main(["-o", "json", "-t", "soon", "h"])
    doc = json.loads(capsys.readouterr().out)
    assert rc == 1
    assert fake_scan["calls"] == []
    assert "invalid duration" in doc["Error"]


def test_config_file_and_vars(fake_scan, tmp_path):
    """
    Brief: Config-file scan settings and -v variables reach scan_host.

    Inputs:
      - tmp_path: directory for the YAML config

    Outputs:
      - None: Asserts merged settings and logging config
    """
    cfg = tmp_path / "hostkeys.yaml"
    cfg.write_text(
        "vars:\n"
        "  PORT: 22\n"
        "scan:\n"
        "  port: $PORT\n"
        "  concurrency: 2\n"
        "  timeout_seconds: 5\n"
        "  banner: true\n"
        "  algorithms: [ssh-ed25519]\n"
        "logging:\n"
        "  level: info\n"
    )
    rc = main_mod.main(["--config", str(cfg), "-v", "PORT=2022", "--log-level", "debug", "h"])
    call = fake_scan["calls"][0]

    assert rc == 0
    assert call["port"] == 2022
    assert call["concurrency"] == 2
    assert call["timeout"] == 5.0
    assert call["banner"] is True
    assert call["algorithms"] == ["ssh-ed25519"]
    assert fake_scan["logging"][-1]["level"] == "debug"


def test_invalid_config_is_reported(fake_scan, tmp_path, capsys):
    cfg = tmp_path / "bad.yaml"
    cfg.write_text("scan:\n  port: 0\n")
    rc = main_mod.main(["--config", str(cfg), "h"])
    assert rc == 1
    assert fake_scan["calls"] == []
    assert "Invalid configuration" in capsys.readouterr().err


@pytest.mark.parametrize(
    "text,seconds",
    [
        ("60s", 60.0),
        ("1m30s", 90.0),
        ("500ms", 0.5),
        ("1h", 3600.0),
        ("2.5", 2.5),
        (" 10 ", 10.0),
    ],
)
def test_parse_duration_valid(text, seconds):
    assert parse_duration(text) == pytest.approx(seconds)


@pytest.mark.parametrize("text", ["", "0s", "-5s", "abc", "10x", "1m 30s", "inf", "nan"])
def test_parse_duration_invalid(text):
    with pytest.raises(ValueError):
        parse_duration(text)


@pytest.mark.parametrize(
    "text,expected",
    [
        ("example.org", ("example.org", 22)),
        ("example.org:2222", ("example.org", 2222)),
        ("192.0.2.1", ("192.0.2.1", 22)),
        ("[2001:db8::1]:2200", ("2001:db8::1", 2200)),
        ("[2001:db8::1]", ("2001:db8::1", 22)),
        ("2001:db8::1", ("2001:db8::1", 22)),
        ("host_with_underscore.local.", ("host_with_underscore.local.", 22)),
    ],
)
def test_parse_host_valid(text, expected):
    assert parse_host(text) == expected


@pytest.mark.parametrize(
    "text",
    ["", "bad host", "example.org:0", "example.org:99999", "example.org:ssh", "[::1", "-lead.example"],
)
def test_parse_host_invalid(text):
    with pytest.raises(ValueError):
        parse_host(text)


def test_parse_format_aliases():
    assert parse_format("fingerprint") == "sha1"
    assert parse_format("fingerprint-sha256") == "sha256"
    assert parse_format("FINGERPRINT-LEGACY") == "md5"
    assert parse_format("rfc4716") == "authorized_keys"
    assert parse_format("sshfp") == "sshfp"
    assert parse_format("whatever") == "authorized_keys"


def test_parse_host_uses_default_port():
    assert parse_host("example.org", default_port=2022) == ("example.org", 2022)


@pytest.mark.parametrize(
    "value,expected",
    [("json", "json"), (" JSON ", "json"), ("console", "console"), ("xml", "console"), ("", "console")],
)
def test_parse_output(value, expected):
    assert parse_output(value) == expected
