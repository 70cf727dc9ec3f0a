"""TCP port probes, one response per port."""

from __future__ import annotations

import socket
import time


def config(ctx):
    return ctx.Schema({
        "host": {"type": str, "default": "localhost"},
        "ports": {"type": list, "required": True, "help": "CSV or list of ports to probe"},
        "timeout_ms": {"type": int, "default": 3_000, "min": 1},
        "fail_status": {"type": str, "default": "CRIT", "enum": ["WARN", "CRIT", "ERROR"]},
        "timeout_status": {"type": str, "default": "WARN", "enum": ["WARN", "CRIT", "ERROR"]},
    })


def init(ctx):
    ports = []
    for raw in ctx.options["ports"]:
        port = int(raw)
        if not 0 < port < 65536:
            raise ValueError(f"Invalid port {raw!r}")
        ports.append(port)
    if not ports:
        raise ValueError("No ports specified to scan")
    ctx.state["ports"] = sorted(set(ports))


def probe(host: str, port: int, timeout_ms: int) -> float:
    """Connect to host:port and return the connect time in ms."""
    t0 = time.perf_counter()
    sock = socket.create_connection((host, port), timeout=timeout_ms / 1000)
    sock.close()
    return round((time.perf_counter() - t0) * 1000, 1)


def run(ctx):
    options = ctx.options
    host = options["host"]

    responses = []
    for port in ctx.state["ports"]:
        try:
            latency = probe(host, port, options["timeout_ms"])
        except socket.timeout:
            responses.append({
                "id": str(port),
                "status": options["timeout_status"],
                "message": f"{host}:{port} timed out after {options['timeout_ms']}ms",
            })
        except OSError as e:
            responses.append({
                "id": str(port),
                "status": options["fail_status"],
                "message": f"{host}:{port} connect failed: {e}",
            })
        else:
            responses.append({
                "id": str(port),
                "status": "PASS",
                "message": f"{host}:{port} open",
                "metric": {"id": "connectTime", "unit": "timeMs", "value": latency},
            })
    return responses
