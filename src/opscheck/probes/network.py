from __future__ import annotations

import socket
import ssl
from pathlib import Path
from typing import Optional

from cryptography import x509

from opscheck.core.errors import ProbeExecutionError
from opscheck.core.models import ProbeKind, ProbeSpec

from .base import Measurement, ProbeContext, param, register


def split_endpoint(spec: ProbeSpec, default_port: Optional[int] = None) -> tuple[str, int]:
    """Read ``host:port`` from the target, or ``host``/``port`` parameters."""
    host = str(param(spec, "host", "") or "")
    port = param(spec, "port", default_port)
    target = spec.target.strip()
    if target:
        if target.startswith("[") and "]:" in target:
            host, _, rest = target[1:].partition("]:")
            port = rest
        elif target.count(":") == 1:
            host, _, port = target.partition(":")
        else:
            host = target.strip("[]")
    if not host:
        raise ProbeExecutionError("host required")
    if port in (None, ""):
        raise ProbeExecutionError(f"port required for {host}")
    try:
        port = int(port)
    except (TypeError, ValueError):
        raise ProbeExecutionError(f"invalid port: {port!r}") from None
    if not 0 < port < 65536:
        raise ProbeExecutionError(f"invalid port: {port}")
    return host, port


@register(ProbeKind.TCP_PORT)
def tcp_port(spec: ProbeSpec, ctx: ProbeContext) -> Measurement:
    host, port = split_endpoint(spec)
    detail = {"host": host, "port": port}
    try:
        with socket.create_connection((host, port), timeout=ctx.budget(spec)):
            pass
    except OSError as e:
        detail["error"] = str(e) or type(e).__name__
        return Measurement("unreachable", detail)
    return Measurement("reachable", detail)


@register(ProbeKind.DNS_RESOLUTION)
def dns_resolution(spec: ProbeSpec, ctx: ProbeContext) -> Measurement:
    name = spec.target.strip()
    if not name:
        raise ProbeExecutionError("host name required")
    try:
        infos = socket.getaddrinfo(name, None, proto=socket.IPPROTO_TCP)
    except socket.gaierror as e:
        return Measurement("unresolved", {"host": name, "error": e.strerror or str(e)})
    addresses = sorted({info[4][0] for info in infos})
    return Measurement("resolved", {"host": name, "addresses": addresses})


def fetch_certificate(host: str, port: int, timeout: float) -> x509.Certificate:
    """Return the certificate a TLS server presents, without verifying it."""
    context = ssl.create_default_context()
    context.check_hostname = False
    context.verify_mode = ssl.CERT_NONE
    with socket.create_connection((host, port), timeout=timeout) as sock:
        with context.wrap_socket(sock, server_hostname=host) as tls:
            der = tls.getpeercert(binary_form=True)
    if not der:
        raise ProbeExecutionError(f"{host}:{port} presented no certificate")
    return x509.load_der_x509_certificate(der)


def load_certificate_file(path: Path) -> x509.Certificate:
    try:
        data = path.read_bytes()
    except OSError as e:
        raise ProbeExecutionError(f"cannot read {path}: {e.strerror or e}") from None
    try:
        if b"-----BEGIN" in data:
            return x509.load_pem_x509_certificate(data)
        return x509.load_der_x509_certificate(data)
    except ValueError as e:
        raise ProbeExecutionError(f"not a certificate: {path}: {e}") from None


@register(ProbeKind.CERTIFICATE_EXPIRY)
def certificate_expiry(spec: ProbeSpec, ctx: ProbeContext) -> Measurement:
    """Days until the certificate in a PEM/DER file or served at ``host:port`` expires."""
    target = spec.target.strip()
    if not target and not param(spec, "host"):
        raise ProbeExecutionError("certificate file or host:port required")
    path = Path(target)
    if target and path.is_file():
        cert = load_certificate_file(path)
        source = str(path)
    else:
        if "/" in target:
            raise ProbeExecutionError(f"certificate file not found: {target}")
        host, port = split_endpoint(spec, default_port=443)
        try:
            cert = fetch_certificate(host, port, ctx.budget(spec))
        except OSError as e:
            raise ProbeExecutionError(f"cannot fetch certificate from {host}:{port}: {e}") from None
        source = f"{host}:{port}"

    expires = cert.not_valid_after_utc
    days = (expires - ctx.clock()).total_seconds() / 86400.0
    return Measurement(
        round(days, 1),
        {"source": source, "subject": cert.subject.rfc4514_string(), "not_after": expires.isoformat()},
    )
