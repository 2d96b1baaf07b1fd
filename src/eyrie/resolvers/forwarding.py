from __future__ import annotations

import logging
import threading
import time
from collections import deque
from typing import Callable, Deque, Dict, Optional, Tuple

from dnslib import RCODE, DNSRecord

from eyrie.errors import ResolverConfigError
from eyrie.registry import aliases
from eyrie.transports.tcp import tcp_query
from eyrie.transports.udp import udp_query

from .base import BaseResolver
from .health import HealthMonitor

logger = logging.getLogger(__name__)

DEFAULT_PORT = 53
DEFAULT_TIMEOUT = 2
DEFAULT_VALIDATION_QUERY = "google.com"
DEFAULT_VALIDATION_INTERVAL = 5


@aliases("forwarding", "forwarder", "forward")
class ForwardingResolver(BaseResolver):
    """Brief: Relay queries to one upstream server behind a circuit breaker.

    Inputs (name/value configuration):
      - server: Upstream host (required).
      - port: Upstream port, 1-65535 (default 53).
      - timeout: Seconds to wait for a reply (default 2).
      - tcp: Use TCP instead of UDP (default false).
      - maxerrors: Errors tolerated inside the error window.
      - errorWindowsSize: Error window in seconds. Failover detection is
        enabled only when both maxerrors and errorWindowsSize are set.
      - validationQuery: Name probed while offline (default "google.com").
      - validationInterval: Seconds between probes while offline (default 5).

    Invalid values are logged and the previous value kept. snake_case
    spellings (max_errors, error_window_size, validation_query,
    validation_interval) are accepted as well.

    Outputs:
      - Resolver instance; call setup() before generate_reply().

    Example:
        >>> r = ForwardingResolver(name="up", server="192.0.2.53", maxerrors="3", errorWindowsSize="10")
        >>> r.setup()
        >>> r.online
        True
    """

    def __init__(self, name: Optional[str] = None, **config: object) -> None:
        super().__init__(name=name, **config)
        self.server: Optional[str] = None
        self.port: int = DEFAULT_PORT
        self.tcp: bool = False
        self.timeout: Optional[int] = None
        self.max_errors: Optional[int] = None
        self.error_window: Optional[int] = None
        self.validation_query: str = DEFAULT_VALIDATION_QUERY
        self.validation_interval: int = DEFAULT_VALIDATION_INTERVAL

        # Set while online; read without locking on the query path.
        self._online = threading.Event()
        self._online.set()
        self._errors: Optional[Deque[float]] = None
        self._lock = threading.Lock()
        self._clock: Callable[[], float] = time.monotonic

        setters: Dict[str, Callable[[object], None]] = {
            "server": self.set_server,
            "port": self.set_port,
            "timeout": self.set_timeout,
            "tcp": self.set_tcp,
            "maxerrors": self.set_max_errors,
            "errorwindowssize": self.set_error_window,
            "errorwindowsize": self.set_error_window,
            "validationquery": self.set_validation_query,
            "validationinterval": self.set_validation_interval,
        }
        for key, value in config.items():
            setter = setters.get(str(key).replace("_", "").lower())
            if setter is None:
                logger.warning("Unknown setting %r for resolver %s ignored", key, self.name)
                continue
            setter(value)

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------
    def set_server(self, value: object) -> None:
        text = str(value).strip() if value is not None else ""
        self.server = text or None

    def set_port(self, value: object) -> None:
        port = self._parse_int("port", value, self.port, minimum=1, maximum=65535)
        self.port = port if port is not None else DEFAULT_PORT

    def set_timeout(self, value: object) -> None:
        """The reply timeout in seconds; None restores the default."""
        self.timeout = self._parse_int("timeout", value, self.timeout)

    def set_tcp(self, value: object) -> None:
        self.tcp = self._parse_bool(value)

    def set_max_errors(self, value: object) -> None:
        self.max_errors = self._parse_int("maxerrors", value, self.max_errors)

    def set_error_window(self, value: object) -> None:
        self.error_window = self._parse_int("errorWindowsSize", value, self.error_window)

    def set_validation_query(self, value: object) -> None:
        text = str(value).strip() if value is not None else ""
        if text:
            self.validation_query = text
        else:
            logger.warning("Empty validation query for resolver %s ignored", self.name)

    def set_validation_interval(self, value: object) -> None:
        interval = self._parse_int(
            "validationInterval", value, self.validation_interval
        )
        if interval is not None:
            self.validation_interval = interval

    def setup(self) -> None:
        if not self.server:
            raise ResolverConfigError(f"No server set for resolver {self.name}")

        if self.max_errors is not None and self.error_window is not None:
            logger.info(
                "Resolver %s has maxerrors and errorWindowsSize set, enabling failover detection",
                self.name,
            )
            self._errors = deque()

    # ------------------------------------------------------------------
    # Health state
    # ------------------------------------------------------------------
    @property
    def online(self) -> bool:
        return self._online.is_set()

    @property
    def failover_enabled(self) -> bool:
        return self._errors is not None

    def mark_online(self) -> None:
        """Flip back to online; called by the health monitor after a positive probe."""
        self._online.set()

    def _start_monitor(self) -> None:
        HealthMonitor(self).start()

    def process_error(self) -> bool:
        """
        Brief: Record one forwarding failure and trip the breaker when needed.

        Inputs:
          - None (uses the current clock reading).

        Outputs:
          - bool: True when this call moved the resolver offline and started
            the health monitor.

        Behaviour:
          - The timestamp is appended to the error queue. Once the queue holds
            more than maxerrors entries the oldest one is dropped and the
            oldest surviving entry is compared against the window: if it is
            newer than now - errorWindowsSize and the resolver is online, the
            resolver goes offline and one monitor thread is started.
          - The check only looks at the oldest surviving timestamp, so it is
            an approximation of a sliding-window rate, not an exact count.
        """
        if self._errors is None:
            return False

        with self._lock:
            now = self._clock()
            self._errors.append(now)

            if len(self._errors) <= self.max_errors:
                return False

            self._errors.popleft()
            oldest = self._errors[0]
            if not self._online.is_set() or oldest <= now - self.error_window:
                return False

            logger.warning(
                "Marking resolver %s as offline after receiving %d errors in %.1f seconds",
                self.name,
                self.max_errors,
                now - oldest,
            )
            self._online.clear()
            self._start_monitor()
            return True

    # ------------------------------------------------------------------
    # Query path
    # ------------------------------------------------------------------
    def send(self, query: DNSRecord) -> DNSRecord:
        """Brief: Exchange *query* with the upstream and parse the reply.

        Inputs:
          - query: DNS query message.

        Outputs:
          - Parsed reply. A truncated UDP reply is retried once over TCP.

        Raises:
          - UDPError, TCPError or DNSError on transport or decoding failure.
        """
        wire = query.pack()
        timeout_ms = int((self.timeout or DEFAULT_TIMEOUT) * 1000)
        if self.tcp:
            data = tcp_query(
                self.server,
                self.port,
                wire,
                connect_timeout_ms=timeout_ms,
                read_timeout_ms=timeout_ms,
            )
            return DNSRecord.parse(data)

        response = DNSRecord.parse(
            udp_query(self.server, self.port, wire, timeout_ms=timeout_ms)
        )
        if response.header.tc:
            logger.debug(
                "Truncated UDP response from %s:%d; retrying over TCP", self.server, self.port
            )
            data = tcp_query(
                self.server,
                self.port,
                wire,
                connect_timeout_ms=timeout_ms,
                read_timeout_ms=timeout_ms,
            )
            response = DNSRecord.parse(data)
        return response

    @staticmethod
    def is_usable(response: DNSRecord) -> bool:
        """Brief: Decide whether an upstream reply should be returned to the client.

        Inputs:
          - response: Parsed upstream reply.

        Outputs:
          - bool: False for a missing rcode, NXDOMAIN, SERVFAIL, or NOERROR with
            empty answer and authority sections; True otherwise.
        """
        rcode = getattr(getattr(response, "header", None), "rcode", None)
        if rcode is None or rcode in (RCODE.NXDOMAIN, RCODE.SERVFAIL):
            return False
        if rcode == RCODE.NOERROR and not response.rr and not response.auth:
            return False
        return True

    def generate_reply(self, query: DNSRecord) -> Optional[DNSRecord]:
        question = self.describe_question(query)

        if not self._online.is_set():
            logger.debug("Resolver %s is offline skipping query %s", self.name, question)
            return None

        try:
            logger.debug(
                "Resolver %s forwarding query %s to server %s:%d",
                self.name,
                question,
                self.server,
                self.port,
            )
            response = self.send(query)
        except Exception as exc:
            logger.warning(
                "Error %s in resolver %s while forwarding query %s", exc, self.name, question
            )
            self.process_error()
            return None

        logger.debug(
            "Resolver %s got response %s with %d answer, %d authoritative and %d additional records",
            self.name,
            RCODE.get(response.header.rcode, response.header.rcode),
            len(response.rr),
            len(response.auth),
            len(response.ar),
        )

        if not self.is_usable(response):
            return None
        return response

    def validate(self) -> Tuple[bool, str]:
        """Brief: Send the validation query through the live transport settings.

        Inputs:
          - None.

        Outputs:
          - (ok, rcode_name): ok is True for NOERROR with a non-empty answer.

        Raises:
          - Transport and decoding errors, which the monitor treats as down.
        """
        response = self.send(DNSRecord.question(self.validation_query, "A"))
        rcode = response.header.rcode
        return (
            rcode == RCODE.NOERROR and bool(response.rr),
            str(RCODE.get(rcode, rcode)),
        )
