"""Tests for the built-in check modules (OS and network seams mocked)."""

from __future__ import annotations

import socket
import subprocess
from collections import namedtuple
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import httpx
import pytest

from healthmon.core.response import normalize
from healthmon.core.status import Status
from healthmon.errors import AvailabilityError
from healthmon.modules import bandwidth, diskspace, dummy, fetch, load, memory, ping, ports
from healthmon.modules import glob as glob_module

GB = 1024 ** 3
Usage = namedtuple("Usage", "total used free")


# ── dummy ────────────────────────────────────────────────────────────────────


class TestDummy:
    def test_defaults(self, make_ctx) -> None:
        assert dummy.run(make_ctx(dummy)) == {"status": "PASS", "message": "Test message"}

    def test_times(self, make_ctx) -> None:
        out = dummy.run(make_ctx(dummy, status="CRIT", times=2))
        assert out == [{"status": "CRIT", "message": "Test message"}] * 2


# ── diskspace ────────────────────────────────────────────────────────────────


class TestDiskspace:
    @patch("healthmon.modules.diskspace.shutil.disk_usage")
    def test_plenty_of_space(self, mock_usage, make_ctx) -> None:
        mock_usage.return_value = Usage(total=100 * GB, used=40 * GB, free=60 * GB)
        out = diskspace.run(make_ctx(diskspace, path="/"))

        assert out["status"] == "PASS"
        assert "60.0% free for / mount point" in out["message"]
        response = normalize(out, "diskspace")
        assert response.metrics[0].id == "diskspace.spaceUsed"

    @patch("healthmon.modules.diskspace.shutil.disk_usage")
    def test_low_space_warns(self, mock_usage, make_ctx) -> None:
        mock_usage.return_value = Usage(total=100 * GB, used=85 * GB, free=15 * GB)
        out = diskspace.run(make_ctx(diskspace, path="/data", mount_alias="data"))
        assert out["status"] == "WARN"
        assert out["message"].startswith("Only 15.0GB ~ 15.0% disk remaining")
        assert "for data mount point" in out["message"]

    @patch("healthmon.modules.diskspace.shutil.disk_usage")
    def test_critical(self, mock_usage, make_ctx) -> None:
        mock_usage.return_value = Usage(total=100 * GB, used=95 * GB, free=5 * GB)
        out = diskspace.run(make_ctx(diskspace, path="/", warn_percent=30, crit_percent=10))
        assert out["status"] == "CRIT"
        assert out["metric"]["warnValue"] == ">=70%"
        assert out["metric"]["critValue"] == ">=90%"

    def test_not_available_on_windows(self, make_ctx) -> None:
        with patch("healthmon.modules.diskspace.sys.platform", "win32"):
            with pytest.raises(AvailabilityError):
                diskspace.is_available(make_ctx(diskspace, path="C:\\"))


# ── memory ───────────────────────────────────────────────────────────────────


KB = 1024
VirtualMemory = namedtuple("VirtualMemory", "total available")
SwapMemory = namedtuple("SwapMemory", "total free")


class TestMemory:
    @patch("healthmon.modules.memory.psutil.swap_memory", return_value=SwapMemory(1000 * KB, 50 * KB))
    @patch("healthmon.modules.memory.psutil.virtual_memory", return_value=VirtualMemory(1000 * KB, 400 * KB))
    def test_swap_critical(self, _vm, _swap, make_ctx) -> None:
        out = memory.run(make_ctx(memory))

        assert out["status"] == "CRIT"
        assert [m["id"] for m in out["metrics"]] == ["memory", "swap"]
        assert out["metrics"][0]["warnValue"] is None
        assert "swap is at or above critical value 90%" in out["message"]
        assert out["message"].startswith("Memory: 600.0KB / 1000.0KB ~ 60%")

        response = normalize(out, "memory")
        assert [m.id for m in response.metrics] == ["memory.memory", "memory.swap"]

    @patch("healthmon.modules.memory.psutil.swap_memory", return_value=SwapMemory(0, 0))
    @patch("healthmon.modules.memory.psutil.virtual_memory", return_value=VirtualMemory(1000 * KB, 900 * KB))
    def test_no_swap_configured(self, _vm, _swap, make_ctx) -> None:
        out = memory.run(make_ctx(memory))
        assert out["status"] == "PASS"
        assert [m["id"] for m in out["metrics"]] == ["memory"]

    @patch("healthmon.modules.memory.psutil.swap_memory", return_value=SwapMemory(1000 * KB, 0))
    @patch("healthmon.modules.memory.psutil.virtual_memory", return_value=VirtualMemory(1000 * KB, 100 * KB))
    def test_memory_thresholds(self, _vm, _swap, make_ctx) -> None:
        out = memory.run(make_ctx(memory, swap=False, memory_warn_percent=80, memory_crit_percent=95))
        assert out["status"] == "WARN"
        assert [m["id"] for m in out["metrics"]] == ["memory"]
        assert "memory is at or above warning value 80%" in out["message"]


# ── load ─────────────────────────────────────────────────────────────────────


class TestLoad:
    @patch("healthmon.modules.load.os.getloadavg", return_value=(3.0, 1.0, 0.5))
    def test_warn_threshold(self, _mock, make_ctx) -> None:
        out = load.run(make_ctx(load, proc1_warn=2, proc1_crit=4))
        assert out["status"] == "WARN"
        assert out["message"] == "System load: 3.00 1.00 0.50 - proc1 is at or above warning value 2"
        assert [m["id"] for m in out["metrics"]] == ["proc1", "proc5", "proc15", "cpus"]

    @patch("healthmon.modules.load.os.getloadavg", return_value=(0.1, 0.2, 0.3))
    def test_no_thresholds(self, _mock, make_ctx) -> None:
        out = load.run(make_ctx(load))
        assert out["status"] == "PASS"
        assert out["message"] == "System load: 0.10 0.20 0.30"


# ── bandwidth ────────────────────────────────────────────────────────────────


NetIO = namedtuple("NetIO", "bytes_sent bytes_recv")


def _nics(rx: int, tx: int, lo: int = 1) -> dict[str, NetIO]:
    return {"lo": NetIO(lo, lo), "eth0": NetIO(bytes_sent=tx, bytes_recv=rx)}


class TestBandwidth:
    @patch("healthmon.modules.bandwidth.psutil.net_io_counters")
    def test_deltas_between_runs(self, mock_counters, cache, make_ctx) -> None:
        mock_counters.return_value = _nics(rx=5000, tx=2000)
        engine = SimpleNamespace(cache=cache)

        ctx = make_ctx(bandwidth, engine=engine, plugin_id="bandwidth")
        bandwidth.init(ctx)
        assert ctx.state["interfaces"] == ["eth0"]
        mock_counters.assert_called_with(pernic=True)

        first = bandwidth.run(ctx)
        assert first[0]["message"] == "eth0: collecting baseline"

        mock_counters.return_value = _nics(rx=7048, tx=3024)
        second = bandwidth.run(ctx)

        assert second[0]["id"] == "eth0"
        assert {m["id"]: m["value"] for m in second[0]["metrics"]} == {"rx": 2048, "tx": 1024}
        responses = normalize(second, "bandwidth")
        assert responses[0].metrics[0].id == "bandwidth.eth0.rx"

    @patch("healthmon.modules.bandwidth.psutil.net_io_counters")
    def test_include_loopback(self, mock_counters, cache, make_ctx) -> None:
        mock_counters.return_value = _nics(rx=1, tx=1)
        ctx = make_ctx(bandwidth, engine=SimpleNamespace(cache=cache), include_loopback=True)
        bandwidth.init(ctx)
        assert ctx.state["interfaces"] == ["lo", "eth0"]

    @patch("healthmon.modules.bandwidth.psutil.net_io_counters")
    def test_interface_disappears(self, mock_counters, cache, make_ctx) -> None:
        mock_counters.return_value = _nics(rx=1, tx=1)
        ctx = make_ctx(bandwidth, engine=SimpleNamespace(cache=cache))
        bandwidth.init(ctx)
        mock_counters.return_value = {"lo": NetIO(1, 1)}
        out = bandwidth.run(ctx)
        assert out == [{"id": "eth0", "status": "WARN", "message": "Interface eth0 disappeared"}]

    @patch("healthmon.modules.bandwidth.psutil.net_io_counters")
    def test_no_matching_interface(self, mock_counters, cache, make_ctx) -> None:
        mock_counters.return_value = _nics(rx=1, tx=1)
        ctx = make_ctx(bandwidth, engine=SimpleNamespace(cache=cache), interfaces="^wlan")
        with pytest.raises(ValueError):
            bandwidth.init(ctx)


# ── fetch ────────────────────────────────────────────────────────────────────


def _mock_client(mock_client_cls, status_code=200, text="OK", error=None):
    client = mock_client_cls.return_value.__enter__.return_value
    if error is not None:
        client.request.side_effect = error
    else:
        client.request.return_value = MagicMock(status_code=status_code, text=text)
    return client


class TestFetch:
    @patch("healthmon.modules.fetch.httpx.Client")
    def test_success(self, mock_client_cls, make_ctx) -> None:
        client = _mock_client(mock_client_cls)
        out = fetch.run(make_ctx(fetch, url="http://localhost/health"))

        client.request.assert_called_once_with("GET", "http://localhost/health")
        assert out["status"] == "PASS"
        assert out["message"].startswith("200 in ")
        assert out["metrics"][0]["id"] == "responseTime"

    @patch("healthmon.modules.fetch.httpx.Client")
    def test_unexpected_status(self, mock_client_cls, make_ctx) -> None:
        _mock_client(mock_client_cls, status_code=503)
        out = fetch.run(make_ctx(fetch, url="http://localhost/health"))
        assert out["status"] == "CRIT"
        assert "expected 200, got 503" in out["message"]

    @patch("healthmon.modules.fetch.httpx.Client")
    def test_keywords(self, mock_client_cls, make_ctx) -> None:
        _mock_client(mock_client_cls, text="status: degraded")
        out = fetch.run(make_ctx(fetch, url="http://x", keyword="healthy", keyword_negative="degraded"))
        assert out["status"] == "CRIT"
        assert "keyword not found" in out["message"]
        assert "negative keyword found" in out["message"]

    @patch("healthmon.modules.fetch.httpx.Client")
    def test_timeout(self, mock_client_cls, make_ctx) -> None:
        _mock_client(mock_client_cls, error=httpx.ReadTimeout("slow"))
        out = fetch.run(make_ctx(fetch, url="http://x", timeout_ms=500))
        assert out == {"status": "CRIT", "message": "Timed out after 500ms fetching http://x"}

    @patch("healthmon.modules.fetch.httpx.Client")
    def test_connection_error(self, mock_client_cls, make_ctx) -> None:
        _mock_client(mock_client_cls, error=httpx.ConnectError("refused"))
        out = fetch.run(make_ctx(fetch, url="http://x"))
        assert out["status"] == "CRIT"
        assert "Connection error" in out["message"]

    @patch("healthmon.modules.fetch.certificate_days_left", return_value=2)
    @patch("healthmon.modules.fetch.httpx.Client")
    def test_certificate_expiring(self, mock_client_cls, mock_days, make_ctx) -> None:
        _mock_client(mock_client_cls)
        out = fetch.run(make_ctx(fetch, url="https://example.com"))

        mock_days.assert_called_once_with("example.com", 443, 10_000)
        assert out["status"] == "CRIT"
        assert out["metrics"][1]["id"] == "sslDaysLeft"
        assert "sslDaysLeft is below critical value 3" in out["message"]

    @patch("healthmon.modules.fetch.certificate_days_left")
    @patch("healthmon.modules.fetch.httpx.Client")
    def test_certificate_skipped(self, mock_client_cls, mock_days, make_ctx) -> None:
        _mock_client(mock_client_cls)
        fetch.run(make_ctx(fetch, url="https://example.com", check_ssl=False))
        mock_days.assert_not_called()


# ── ports ────────────────────────────────────────────────────────────────────


class TestPorts:
    def test_init_parses_ports(self, make_ctx) -> None:
        ctx = make_ctx(ports, ports="443, 22,443")
        ports.init(ctx)
        assert ctx.state["ports"] == [22, 443]

    def test_init_rejects_bad_port(self, make_ctx) -> None:
        with pytest.raises(ValueError):
            ports.init(make_ctx(ports, ports="70000"))

    @patch("healthmon.modules.ports.socket.create_connection")
    def test_port_outcomes(self, mock_connect, make_ctx) -> None:
        mock_connect.side_effect = [MagicMock(), ConnectionRefusedError("refused"), socket.timeout("slow")]
        ctx = make_ctx(ports, host="db", ports="22,80,443")
        ports.init(ctx)
        out = ports.run(ctx)

        assert [r["id"] for r in out] == ["22", "80", "443"]
        assert [r["status"] for r in out] == ["PASS", "CRIT", "WARN"]
        assert out[0]["metric"]["id"] == "connectTime"

        responses = normalize(out, "ports")
        assert [r.id for r in responses] == ["ports.22", "ports.80", "ports.443"]
        assert max(r.status.rank for r in responses) == Status.CRIT.rank


# ── ping ─────────────────────────────────────────────────────────────────────


PING_OUTPUT = """\
PING 10.0.0.1 (10.0.0.1) 56(84) bytes of data.
64 bytes from 10.0.0.1: icmp_seq=1 ttl=57 time=20.0 ms
64 bytes from 10.0.0.1: icmp_seq=2 ttl=57 time=140 ms
64 bytes from 10.0.0.1: icmp_seq=3 ttl=57 time=30.0 ms

--- 10.0.0.1 ping statistics ---
3 packets transmitted, 3 received, 0% packet loss, time 2003ms
"""


def _completed(stdout: str, returncode: int = 0) -> MagicMock:
    result = MagicMock()
    result.returncode = returncode
    result.stdout = stdout
    result.stderr = ""
    return result


class TestPing:
    def test_parse_replies(self) -> None:
        assert ping.parse_replies(PING_OUTPUT) == [20.0, 140.0, 30.0]
        assert ping.parse_replies("Reply from 10.0.0.1: bytes=32 time<1ms TTL=57") == [1.0]

    @patch("healthmon.modules.ping.subprocess.run")
    def test_average_within_limits(self, mock_run, make_ctx) -> None:
        mock_run.return_value = _completed(PING_OUTPUT)
        out = ping.run(make_ctx(ping, host="10.0.0.1", repeat=3))

        assert mock_run.call_args.args[0] == ping.ping_command("10.0.0.1", 3)
        assert out["status"] == "PASS"
        assert out["message"] == "Ping average to 10.0.0.1 AVG=63.333 (MIN=20 / MAX=140)"
        metric = out["metrics"][0]
        assert (metric["id"], metric["unit"], metric["value"]) == ("avgResponseTime", "timeMs", 63.333)

    @patch("healthmon.modules.ping.subprocess.run")
    def test_slow_average_warns(self, mock_run, make_ctx) -> None:
        mock_run.return_value = _completed(PING_OUTPUT)
        out = ping.run(make_ctx(ping, host="10.0.0.1", host_alias="gateway", warn_timeout=50))
        assert out["status"] == "WARN"
        assert out["message"].startswith("Ping average to gateway")
        assert out["message"].endswith("avgResponseTime is above warning value 50")

    @patch("healthmon.modules.ping.subprocess.run")
    def test_host_down(self, mock_run, make_ctx) -> None:
        mock_run.return_value = _completed("100% packet loss", returncode=1)
        out = ping.run(make_ctx(ping, host="10.0.0.9"))
        assert out == {"status": "CRIT", "message": "Server 10.0.0.9 is down or non-responsive"}

    @patch("healthmon.modules.ping.subprocess.run")
    def test_timeout(self, mock_run, make_ctx) -> None:
        mock_run.side_effect = subprocess.TimeoutExpired(cmd="ping", timeout=1)
        out = ping.run(make_ctx(ping))
        assert out["status"] == "CRIT"
        assert "timed out" in out["message"]

    @patch("healthmon.modules.ping.shutil.which", return_value=None)
    def test_missing_binary(self, _mock, make_ctx) -> None:
        with pytest.raises(AvailabilityError):
            ping.is_available(make_ctx(ping))


# ── glob ─────────────────────────────────────────────────────────────────────


class TestGlob:
    def test_matches_across_patterns(self, tmp_path, make_ctx) -> None:
        for name in ("a.log", "b.log", "c.txt"):
            (tmp_path / name).write_text("x")
        ctx = make_ctx(glob_module, glob=[str(tmp_path / "*.log"), str(tmp_path / "a.*")])
        glob_module.init(ctx)
        out = glob_module.run(ctx)

        assert out["status"] == "PASS"
        assert out["message"] == "Found 2 matches"
        assert out["metrics"][0]["value"] == 2
        response = normalize(out, "glob")
        assert response.metrics[0].id == "glob.fileCount"

    def test_too_few_matches(self, tmp_path, make_ctx) -> None:
        (tmp_path / "only.log").write_text("x")
        pattern = str(tmp_path / "*.log")
        out = glob_module.run(make_ctx(glob_module, glob=pattern, warn_number=3, crit_number=1))
        assert out["status"] == "WARN"
        assert out["message"] == "Found 1 matches - fileCount is below warning value 3"

        out = glob_module.run(make_ctx(glob_module, glob=str(tmp_path / "*.csv")))
        assert out["status"] == "CRIT"

    def test_requires_pattern(self, make_ctx) -> None:
        with pytest.raises(ValueError):
            glob_module.init(make_ctx(glob_module, glob=""))
