"""Exception hierarchy shared across Eyrie components.

Inputs:
  - None

Outputs:
  - Exception classes raised by configuration loading, zone handling and
    persistence layers. Transport-level errors live next to their transports
    (UDPError, TCPError, AXFRError).
"""

from __future__ import annotations


class EyrieError(Exception):
    """Base class for all Eyrie errors."""


class ConfigError(EyrieError):
    """Brief: Raised when the YAML configuration file is invalid.

    Inputs:
      - message: Human readable description including the offending path.

    Outputs:
      - Exception instance; fatal at startup.
    """


class ResolverConfigError(ConfigError):
    """Raised when a resolver cannot start, e.g. a missing upstream server."""


class ZoneStoreConfigError(ConfigError):
    """Raised when a zone store driver cannot be imported or configured."""


class StoreError(EyrieError):
    """Brief: Persistence failure while reading or writing zone data.

    Inputs:
      - message: Description of the failed operation.

    Outputs:
      - Exception instance. The original driver exception is chained via
        ``__cause__``.
    """


class ZoneDataError(EyrieError):
    """Raised when zone content is malformed or records fall outside the apex."""


class ZoneTransferError(EyrieError):
    """Raised when a primary server cannot be checked or transferred from."""
