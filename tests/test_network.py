import socket
from datetime import timedelta

import psutil
import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

from opscheck.core.models import ProbeKind, Severity
from opscheck.core.rules import default_rules, evaluate
from opscheck.probes import invoke_probe, network

from .conftest import NOW, make_spec

RULES = default_rules()


def self_signed(days_left):
    key = ec.generate_private_key(ec.SECP256R1())
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "opscheck.test")])
    return (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(NOW - timedelta(days=1))
        .not_valid_after(NOW + timedelta(days=days_left))
        .sign(key, hashes.SHA256())
    )


def severity_of(result):
    return evaluate(result, RULES[result.kind]).severity


@pytest.fixture
def listener():
    srv = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    srv.bind(("127.0.0.1", 0))
    srv.listen(1)
    yield srv.getsockname()[1]
    srv.close()


def closed_port():
    s = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    s.bind(("127.0.0.1", 0))
    port = s.getsockname()[1]
    s.close()
    return port


def test_tcp_port_reachable(ctx, listener):
    r = invoke_probe(make_spec("db", ProbeKind.TCP_PORT, f"127.0.0.1:{listener}"), ctx)
    assert r.raw_value == "reachable"
    assert r.detail == {"host": "127.0.0.1", "port": listener}
    assert severity_of(r) is Severity.OK


def test_tcp_port_unreachable_is_critical(ctx):
    r = invoke_probe(make_spec("db", ProbeKind.TCP_PORT, f"127.0.0.1:{closed_port()}", timeout=2), ctx)
    assert r.success is True
    assert r.raw_value == "unreachable"
    assert r.detail["error"]
    assert severity_of(r) is Severity.CRITICAL


def test_tcp_port_host_and_port_parameters(ctx, listener):
    spec = make_spec("db", ProbeKind.TCP_PORT, parameters={"host": "127.0.0.1", "port": listener})
    assert invoke_probe(spec, ctx).raw_value == "reachable"


@pytest.mark.parametrize("target,msg", [("db.local", "port required"), ("db.local:http", "invalid port"), (":5432", "host required")])
def test_tcp_port_bad_target(ctx, target, msg):
    r = invoke_probe(make_spec("db", ProbeKind.TCP_PORT, target), ctx)
    assert r.success is False
    assert msg in r.error_detail


def test_dns_resolution(ctx, monkeypatch):
    def fake_getaddrinfo(host, port, proto=0):
        return [(socket.AF_INET, socket.SOCK_STREAM, 6, "", ("10.0.0.5", 0))] * 2

    monkeypatch.setattr(network.socket, "getaddrinfo", fake_getaddrinfo)
    r = invoke_probe(make_spec("dns", ProbeKind.DNS_RESOLUTION, "db.internal"), ctx)
    assert r.raw_value == "resolved"
    assert r.detail["addresses"] == ["10.0.0.5"]
    assert severity_of(r) is Severity.OK


def test_dns_failure_is_critical(ctx, monkeypatch):
    def fail(host, port, proto=0):
        raise socket.gaierror(socket.EAI_NONAME, "Name or service not known")

    monkeypatch.setattr(network.socket, "getaddrinfo", fail)
    r = invoke_probe(make_spec("dns", ProbeKind.DNS_RESOLUTION, "nope.invalid"), ctx)
    assert r.raw_value == "unresolved"
    assert "not known" in r.detail["error"]
    assert severity_of(r) is Severity.CRITICAL


@pytest.mark.parametrize("days,expected", [(90, Severity.OK), (20, Severity.WARN), (3, Severity.CRITICAL)])
def test_certificate_file_expiry(ctx, tmp_path, days, expected):
    pem = tmp_path / "site.pem"
    pem.write_bytes(self_signed(days).public_bytes(serialization.Encoding.PEM))
    r = invoke_probe(make_spec("cert", ProbeKind.CERTIFICATE_EXPIRY, str(pem)), ctx)
    assert r.raw_value == pytest.approx(days, abs=0.1)
    assert r.detail["subject"] == "CN=opscheck.test"
    assert severity_of(r) is expected


def test_certificate_der_file(ctx, tmp_path):
    der = tmp_path / "site.crt"
    der.write_bytes(self_signed(45).public_bytes(serialization.Encoding.DER))
    assert invoke_probe(make_spec("cert", ProbeKind.CERTIFICATE_EXPIRY, str(der)), ctx).raw_value == pytest.approx(45, abs=0.1)


def test_certificate_expired_is_negative(ctx, tmp_path):
    pem = tmp_path / "old.pem"
    cert = self_signed(-2)
    pem.write_bytes(cert.public_bytes(serialization.Encoding.PEM))
    r = invoke_probe(make_spec("cert", ProbeKind.CERTIFICATE_EXPIRY, str(pem)), ctx)
    assert r.raw_value < 0
    assert severity_of(r) is Severity.CRITICAL


def test_certificate_from_server(ctx, monkeypatch):
    seen = {}

    def fake_fetch(host, port, timeout):
        seen.update(host=host, port=port, timeout=timeout)
        return self_signed(60)

    monkeypatch.setattr(network, "fetch_certificate", fake_fetch)
    r = invoke_probe(make_spec("cert", ProbeKind.CERTIFICATE_EXPIRY, "example.org", timeout=5), ctx)
    assert r.detail["source"] == "example.org:443"
    assert seen["timeout"] < 5
    assert severity_of(r) is Severity.OK


def test_certificate_server_unreachable(ctx, monkeypatch):
    def refuse(host, port, timeout):
        raise ConnectionRefusedError(111, "Connection refused")

    monkeypatch.setattr(network, "fetch_certificate", refuse)
    r = invoke_probe(make_spec("cert", ProbeKind.CERTIFICATE_EXPIRY, "example.org:8443"), ctx)
    assert r.success is False
    assert "cannot fetch certificate from example.org:8443" in r.error_detail


def test_certificate_bad_file(ctx, tmp_path):
    junk = tmp_path / "junk.pem"
    junk.write_text("-----BEGIN CERTIFICATE-----\nnot base64\n-----END CERTIFICATE-----\n")
    assert "not a certificate" in invoke_probe(make_spec("c", ProbeKind.CERTIFICATE_EXPIRY, str(junk)), ctx).error_detail
    missing = invoke_probe(make_spec("c", ProbeKind.CERTIFICATE_EXPIRY, str(tmp_path / "gone.pem")), ctx)
    assert "certificate file not found" in missing.error_detail


def test_uptime_days(ctx, monkeypatch):
    monkeypatch.setattr(psutil, "boot_time", lambda: (NOW - timedelta(days=120)).timestamp())
    r = invoke_probe(make_spec("uptime", ProbeKind.UPTIME_DAYS), ctx)
    assert r.raw_value == pytest.approx(120.0)
    assert severity_of(r) is Severity.WARN


def test_recent_boot_is_ok(ctx, monkeypatch):
    monkeypatch.setattr(psutil, "boot_time", lambda: (NOW - timedelta(hours=6)).timestamp())
    r = invoke_probe(make_spec("uptime", ProbeKind.UPTIME_DAYS), ctx)
    assert r.raw_value == pytest.approx(0.25)
    assert severity_of(r) is Severity.OK
