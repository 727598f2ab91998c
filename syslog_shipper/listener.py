"""UDP syslog listener — turns datagrams into queued batch-file lines."""

import ipaddress
import logging
import socket
import threading

from syslog_shipper.config import ListenerConfig
from syslog_shipper.formatter import format_record
from syslog_shipper.metrics import PipelineMetrics
from syslog_shipper.models import RawRecord, RecordFormat, SourceAddress
from syslog_shipper.pipeline_queue import PipelineQueue

logger = logging.getLogger(__name__)


class SyslogListener:
    """Receives one syslog record per datagram and puts its serialized line on *messages*."""

    def __init__(self, config: ListenerConfig, messages: PipelineQueue,
                 shutdown_event: threading.Event, metrics: PipelineMetrics | None = None):
        self._config = config
        self._messages = messages
        self._shutdown = shutdown_event
        self._metrics = metrics or PipelineMetrics()
        self._format = RecordFormat(config.record_format)
        self._sock = None
        self.server_address = None

    def bind(self):
        """Open and bind the socket. Raises OSError if the port cannot be acquired."""
        family, _, _, _, sockaddr = socket.getaddrinfo(
            self._config.host, self._config.port, type=socket.SOCK_DGRAM,
        )[0]
        sock = socket.socket(family, socket.SOCK_DGRAM)
        try:
            if family == socket.AF_INET6:
                sock.setsockopt(socket.IPPROTO_IPV6, socket.IPV6_V6ONLY, 0)
            sock.settimeout(1.0)
            sock.bind(sockaddr)
        except OSError:
            sock.close()
            raise

        self._sock = sock
        self.server_address = sock.getsockname()
        logger.info(
            "Listening for syslog datagrams on %s:%d as %r",
            self.server_address[0], self.server_address[1], self._config.receiver_identity,
        )

    def run(self):
        """Receive loop. Returns only once the shutdown event is set."""
        if self._sock is None:
            self.bind()

        while not self._shutdown.is_set():
            try:
                data, addr = self._sock.recvfrom(self._config.buffer_size)
            except socket.timeout:
                continue
            except OSError as exc:
                if self._shutdown.is_set():
                    break
                self._metrics.increment("receive_errors")
                logger.error("Error receiving syslog datagram: %s", exc)
                continue

            self._metrics.increment("datagrams_received")
            try:
                self.handle_datagram(data, addr)
            except Exception:
                self._metrics.increment("receive_errors")
                logger.exception("Error transforming syslog datagram from %s", addr)

    def handle_datagram(self, data: bytes, addr) -> bool:
        """Decode and enqueue one datagram. Returns True if a record was queued."""
        try:
            payload = data.decode("utf-8").strip()
        except UnicodeDecodeError as exc:
            self._metrics.increment("receive_errors")
            logger.warning("Invalid datagram from %s: %s", addr, exc)
            return False

        if not payload:
            logger.debug("Skipping empty datagram from %s", addr)
            return False

        record = RawRecord(
            payload=payload,
            source=self._source_address(addr),
            receiver_identity=self._config.receiver_identity,
            received_bytes=len(data),
        )

        if self._messages.put(format_record(record, self._format)):
            self._metrics.increment("records_queued")
            return True
        self._metrics.increment("records_dropped")
        return False

    @staticmethod
    def _source_address(addr) -> SourceAddress:
        """Describe the sender; IPv4-mapped IPv6 senders are reported as IPv4."""
        host = addr[0].split("%", 1)[0]
        try:
            ip = ipaddress.ip_address(host)
        except ValueError:
            return SourceAddress(address=addr[0], family=socket.AF_INET.name, port=addr[1])

        if ip.version == 6 and ip.ipv4_mapped is not None:
            return SourceAddress(address=str(ip.ipv4_mapped), family=socket.AF_INET.name, port=addr[1])
        family = socket.AF_INET6 if ip.version == 6 else socket.AF_INET
        return SourceAddress(address=addr[0], family=family.name, port=addr[1])

    def close(self):
        if self._sock:
            self._sock.close()
            self._sock = None
