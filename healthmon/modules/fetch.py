"""HTTP(S) fetch check: status code, latency, keywords and TLS expiry."""

from __future__ import annotations

import re
import socket
import ssl
import time
from datetime import datetime, timezone
from urllib.parse import urlparse

import httpx

from ..core.thresholds import from_metrics


def config(ctx):
    return ctx.Schema({
        "url": {"type": str, "required": True},
        "method": {"type": str, "default": "GET", "enum": ["GET", "HEAD", "POST"]},
        "expected_status": {"type": int, "default": 200},
        "timeout_ms": {"type": int, "default": 10_000, "min": 1},
        "warn_time_ms": {"type": int, "default": 3_000},
        "crit_time_ms": {"type": int, "default": 10_000},
        "check_ssl": {"type": bool, "default": True, "help": "Check certificate expiry for https URLs"},
        "warn_ssl_days": {"type": int, "default": 14},
        "crit_ssl_days": {"type": int, "default": 3},
        "keyword": {"type": str, "required": False, "help": "Regex the body must match"},
        "keyword_negative": {"type": str, "required": False, "help": "Regex the body must not match"},
    })


def certificate_days_left(hostname: str, port: int = 443, timeout_ms: int = 10_000) -> int:
    """Days until the TLS certificate served at hostname:port expires."""
    ctx = ssl.create_default_context()
    with socket.create_connection((hostname, port), timeout=timeout_ms / 1000) as sock:
        with ctx.wrap_socket(sock, server_hostname=hostname) as ssock:
            cert = ssock.getpeercert()
    if not cert:
        raise ssl.SSLError("No certificate returned")
    expiry = datetime.strptime(cert["notAfter"], "%b %d %H:%M:%S %Y %Z").replace(tzinfo=timezone.utc)
    return (expiry - datetime.now(timezone.utc)).days


def run(ctx):
    options = ctx.options
    url = options["url"]

    t0 = time.perf_counter()
    try:
        with httpx.Client(timeout=options["timeout_ms"] / 1000, follow_redirects=True) as client:
            resp = client.request(options["method"], url)
    except httpx.TimeoutException:
        return {"status": "CRIT", "message": f"Timed out after {options['timeout_ms']}ms fetching {url}"}
    except httpx.HTTPError as e:
        return {"status": "CRIT", "message": f"Connection error fetching {url}: {e}"}
    latency = round((time.perf_counter() - t0) * 1000, 1)

    metrics = [{
        "id": "responseTime",
        "unit": "timeMs",
        "value": latency,
        "warnValue": f">={options['warn_time_ms']}",
        "critValue": f">={options['crit_time_ms']}",
        "description": "Response time for web fetch",
    }]
    notes = [f"{resp.status_code} in {latency}ms"]
    failures = []

    if resp.status_code != options["expected_status"]:
        failures.append(f"expected {options['expected_status']}, got {resp.status_code}")
    if options.get("keyword") and not re.search(options["keyword"], resp.text):
        failures.append("keyword not found")
    if options.get("keyword_negative") and re.search(options["keyword_negative"], resp.text):
        failures.append("negative keyword found")

    parsed = urlparse(url)
    if options["check_ssl"] and parsed.scheme == "https":
        try:
            days_left = certificate_days_left(parsed.hostname or "", parsed.port or 443, options["timeout_ms"])
        except (OSError, ValueError) as e:
            failures.append(f"TLS error: {e}")
        else:
            metrics.append({
                "id": "sslDaysLeft",
                "value": days_left,
                "warnValue": f"<{options['warn_ssl_days']}",
                "critValue": f"<{options['crit_ssl_days']}",
                "description": "Days until the TLS certificate expires",
            })
            notes.append(f"certificate expires in {days_left} days")

    response = from_metrics(metrics, summary=", ".join(notes))
    if failures:
        response.update(status="CRIT", message=", ".join(failures + notes))
    return response
