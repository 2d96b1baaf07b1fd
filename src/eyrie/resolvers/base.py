from __future__ import annotations

import logging
from typing import ClassVar, Optional, Sequence

from dnslib import QTYPE, DNSRecord

logger = logging.getLogger(__name__)

_TRUE_STRINGS = {"1", "true", "yes", "on"}


class BaseResolver:
    """Brief: Base class for all resolvers in the resolution chain.

    Resolvers answer a parsed query with a complete reply, or return None so
    the chain can try the next resolver.

    Inputs:
      - name: Optional human-friendly identifier used in logs. When omitted,
        the first alias or the class name is used.
      - **config: Resolver configuration as name/value pairs.

    Outputs:
      - Initialized resolver. setup() must be called before generate_reply().

    Example use:
        >>> from eyrie.resolvers.base import BaseResolver
        >>> class Nothing(BaseResolver):
        ...     def generate_reply(self, query):
        ...         return None
        >>> r = Nothing(name="nothing")
        >>> r.name
        'nothing'
    """

    aliases: ClassVar[Sequence[str]] = ()

    def __init__(self, name: Optional[str] = None, **config: object) -> None:
        if name is not None:
            self.name = str(name)
        elif self.aliases:
            self.name = str(self.aliases[0])
        else:
            self.name = self.__class__.__name__
        self.config = config
        logger.debug("loading resolver %s (%s)", self.name, type(self).__name__)

    def setup(self) -> None:
        """Brief: One-time initialization; raise ResolverConfigError to refuse starting.

        Inputs:
          - None (uses self.config).

        Outputs:
          - None. The base implementation is a no-op.
        """
        return None

    def generate_reply(self, query: DNSRecord) -> Optional[DNSRecord]:
        """Brief: Answer *query* or return None to let the next resolver try.

        Inputs:
          - query: Parsed DNS query carrying at least the question section.

        Outputs:
          - Complete reply message, or None.
        """
        raise NotImplementedError

    def shutdown(self) -> None:
        return None

    @staticmethod
    def describe_question(query: DNSRecord) -> str:
        """Return "name TYPE" for the first question of *query*, for log lines."""
        try:
            q = query.q
            return f"{q.qname} {BaseResolver.qtype_name(q.qtype)}"
        except Exception:  # pragma: no cover - defensive: malformed query object
            return "<no question>"

    @staticmethod
    def qtype_name(qtype: int) -> str:
        return str(QTYPE.get(qtype, str(qtype))).upper()

    # ------------------------------------------------------------------
    # Lenient name/value parsing: invalid values are logged and ignored.
    # ------------------------------------------------------------------
    def _parse_int(
        self,
        key: str,
        value: object,
        current: Optional[int],
        *,
        minimum: int = 1,
        maximum: Optional[int] = None,
    ) -> Optional[int]:
        """Brief: Parse an integer setting, keeping *current* on invalid input.

        Inputs:
          - key: Setting name used in the warning.
          - value: Raw configuration value (None clears to None).
          - current: Value retained when *value* is invalid.
          - minimum/maximum: Inclusive bounds.

        Outputs:
          - Parsed int, None when value is None, or *current* on invalid input.

        Example:
            >>> r = BaseResolver()
            >>> r._parse_int("port", "5353", 53, maximum=65535)
            5353
            >>> r._parse_int("port", "70000", 53, maximum=65535)
            53
        """
        if value is None:
            return None
        try:
            parsed = int(str(value).strip())
        except (TypeError, ValueError):
            parsed = None
        if parsed is None or parsed < minimum or (maximum is not None and parsed > maximum):
            logger.warning(
                "Invalid %s %r specified for resolver %s (keeping %s)",
                key,
                value,
                self.name,
                current,
            )
            return current
        return parsed

    @staticmethod
    def _parse_bool(value: object) -> bool:
        if isinstance(value, bool):
            return value
        return str(value).strip().lower() in _TRUE_STRINGS
