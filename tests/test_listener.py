"""Tests for the UDP syslog listener."""

import json
import socket
import threading
import time

import pytest

from syslog_shipper.config import ListenerConfig
from syslog_shipper.listener import SyslogListener
from syslog_shipper.metrics import PipelineMetrics
from syslog_shipper.pipeline_queue import PipelineQueue


def _make_listener(**overrides):
    """Start a listener on an OS-assigned port. Returns (listener, thread, messages, shutdown)."""
    defaults = {"host": "127.0.0.1", "port": 0, "receiver_identity": "test-listener"}
    defaults.update(overrides)
    config = ListenerConfig(**defaults)
    shutdown = threading.Event()
    messages = PipelineQueue("messages")
    listener = SyslogListener(config, messages, shutdown, PipelineMetrics())
    listener.bind()

    thread = threading.Thread(target=listener.run, daemon=True)
    thread.start()
    return listener, thread, messages, shutdown


def _send_udp(host, port, data: bytes):
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        sock.sendto(data, (host, port))
    finally:
        sock.close()


def _wait_for(messages: PipelineQueue, count: int, timeout: float = 2.0) -> list:
    items = []
    deadline = time.monotonic() + timeout
    while len(items) < count and time.monotonic() < deadline:
        items.extend(messages.drain())
        time.sleep(0.02)
    return items


@pytest.fixture
def running_listener():
    listener, thread, messages, shutdown = _make_listener()
    yield listener, messages
    shutdown.set()
    thread.join(timeout=5)
    listener.close()


class TestReceive:
    def test_receives_single_message(self, running_listener):
        listener, messages = running_listener
        host, port = listener.server_address
        _send_udp(host, port, b"<13>Jan  1 00:00:00 host app: hello\n")
        assert _wait_for(messages, 1) == ["<13>Jan  1 00:00:00 host app: hello"]

    def test_preserves_arrival_order(self, running_listener):
        listener, messages = running_listener
        host, port = listener.server_address
        for i in range(10):
            _send_udp(host, port, f"msg-{i}".encode())
            time.sleep(0.01)
        assert _wait_for(messages, 10) == [f"msg-{i}" for i in range(10)]

    def test_garbage_does_not_stop_reception(self, running_listener):
        listener, messages = running_listener
        host, port = listener.server_address
        _send_udp(host, port, b"\xff\xfe\xfa\x80 truncated")
        _send_udp(host, port, b"well formed")
        assert _wait_for(messages, 1) == ["well formed"]
        assert listener._metrics.get("receive_errors") == 1

    def test_oversized_datagram_truncated(self):
        listener, thread, messages, shutdown = _make_listener(buffer_size=16)
        try:
            host, port = listener.server_address
            _send_udp(host, port, b"a" * 1000)
            _send_udp(host, port, b"short")
            items = _wait_for(messages, 2)
            assert items == ["a" * 16, "short"]
        finally:
            shutdown.set()
            thread.join(timeout=5)
            listener.close()

    def test_json_records(self):
        listener, thread, messages, shutdown = _make_listener(record_format="json")
        try:
            host, port = listener.server_address
            _send_udp(host, port, b"  structured  ")
            items = _wait_for(messages, 1)
            data = json.loads(items[0])
            assert data["payload"] == "structured"
            assert data["receiver_identity"] == "test-listener"
            assert data["received_bytes"] == 14
            assert data["source"]["address"] == "127.0.0.1"
            assert data["source"]["family"] == "AF_INET"
        finally:
            shutdown.set()
            thread.join(timeout=5)
            listener.close()

    def test_shutdown_stops_listener(self):
        listener, thread, messages, shutdown = _make_listener()
        shutdown.set()
        thread.join(timeout=5)
        listener.close()
        assert not thread.is_alive()


class TestHandleDatagram:
    def _listener(self, **overrides):
        config = ListenerConfig(**overrides)
        messages = PipelineQueue("messages")
        return SyslogListener(config, messages, threading.Event()), messages

    def test_trims_whitespace(self):
        listener, messages = self._listener()
        assert listener.handle_datagram(b"\t payload \r\n", ("10.1.1.1", 514)) is True
        assert messages.drain() == ["payload"]

    def test_skips_empty_payload(self):
        listener, messages = self._listener()
        assert listener.handle_datagram(b"   \n", ("10.1.1.1", 514)) is False
        assert messages.drain() == []

    def test_invalid_utf8(self):
        listener, messages = self._listener()
        assert listener.handle_datagram(b"\xc3\x28", ("10.1.1.1", 514)) is False
        assert messages.drain() == []

    def test_ipv6_source_family(self):
        listener, messages = self._listener(record_format="json")
        listener.handle_datagram(b"v6", ("::1", 5140, 0, 0))
        data = json.loads(messages.drain()[0])
        assert data["source"] == {"address": "::1", "family": "AF_INET6", "port": 5140}

    def test_ipv4_mapped_source_reported_as_ipv4(self):
        listener, messages = self._listener(record_format="json")
        listener.handle_datagram(b"mapped", ("::ffff:192.0.2.10", 5140, 0, 0))
        data = json.loads(messages.drain()[0])
        assert data["source"] == {"address": "192.0.2.10", "family": "AF_INET", "port": 5140}

    def test_full_queue_counts_drop(self):
        config = ListenerConfig()
        messages = PipelineQueue("messages", maxsize=1)
        metrics = PipelineMetrics()
        listener = SyslogListener(config, messages, threading.Event(), metrics)
        assert listener.handle_datagram(b"one", ("10.1.1.1", 514)) is True
        assert listener.handle_datagram(b"two", ("10.1.1.1", 514)) is False
        assert metrics.get("records_dropped") == 1


class TestBind:
    def test_port_in_use_raises(self):
        blocker = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        blocker.bind(("127.0.0.1", 0))
        try:
            port = blocker.getsockname()[1]
            listener = SyslogListener(
                ListenerConfig(host="127.0.0.1", port=port), PipelineQueue("m"), threading.Event(),
            )
            with pytest.raises(OSError):
                listener.bind()
        finally:
            blocker.close()


class TestDualStack:
    def test_ipv4_sender_on_ipv6_listener(self):
        try:
            listener, thread, messages, shutdown = _make_listener(host="::", record_format="json")
        except OSError:
            pytest.skip("IPv6 dual-stack sockets unavailable")
        try:
            port = listener.server_address[1]
            _send_udp("127.0.0.1", port, b"from v4")
            items = _wait_for(messages, 1)
            data = json.loads(items[0])
            assert data["payload"] == "from v4"
            assert data["source"]["address"] == "127.0.0.1"
            assert data["source"]["family"] == "AF_INET"
        finally:
            shutdown.set()
            thread.join(timeout=5)
            listener.close()


class FlakySocket:
    """Raises OSError on the first receive, then yields one datagram, then times out."""

    def __init__(self, shutdown: threading.Event):
        self._shutdown = shutdown
        self._calls = 0

    def recvfrom(self, bufsize):
        self._calls += 1
        if self._calls == 1:
            raise OSError("network is unreachable")
        if self._calls == 2:
            return b"after error", ("10.0.0.1", 5000)
        self._shutdown.set()
        raise socket.timeout()

    def close(self):
        pass


class TestTransientSocketError:
    def test_loop_continues_after_oserror(self):
        shutdown = threading.Event()
        messages = PipelineQueue("messages")
        metrics = PipelineMetrics()
        listener = SyslogListener(ListenerConfig(), messages, shutdown, metrics)
        listener._sock = FlakySocket(shutdown)

        listener.run()

        assert messages.drain() == ["after error"]
        assert metrics.get("receive_errors") == 1
        assert metrics.get("datagrams_received") == 1
