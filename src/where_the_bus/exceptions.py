"""Exception taxonomy for where-the-bus.

``FetchError`` and ``DecodeError`` are transient and never leave the
position cache; they are turned into provenance tags. ``ConfigError`` is
raised once at startup and is meant to stop the process.
"""

from enum import Enum


class WhereTheBusError(Exception):
    """Base exception for all where-the-bus errors."""


class FetchErrorKind(str, Enum):
    TIMEOUT = "timeout"
    UNREACHABLE = "unreachable"
    UPSTREAM_STATUS = "upstream_status"


class FetchError(WhereTheBusError):
    """The upstream feed could not be retrieved."""

    def __init__(
        self,
        kind: FetchErrorKind,
        message: str = "",
        *,
        status_code: int | None = None,
        url: str = "",
    ):
        self.kind = kind
        self.status_code = status_code
        self.url = url
        super().__init__(message or kind.value)

    @classmethod
    def timeout(cls, url: str = "") -> "FetchError":
        return cls(FetchErrorKind.TIMEOUT, f"timed out fetching {url}", url=url)

    @classmethod
    def unreachable(cls, url: str = "", reason: str = "") -> "FetchError":
        msg = f"could not reach {url}"
        if reason:
            msg = f"{msg}: {reason}"
        return cls(FetchErrorKind.UNREACHABLE, msg, url=url)

    @classmethod
    def upstream_status(cls, code: int, url: str = "") -> "FetchError":
        return cls(
            FetchErrorKind.UPSTREAM_STATUS,
            f"{url} returned HTTP {code}",
            status_code=code,
            url=url,
        )


class DecodeErrorKind(str, Enum):
    MALFORMED = "malformed"
    SCHEMA_VIOLATION = "schema_violation"


class DecodeError(WhereTheBusError):
    """A feed payload could not be decoded at the envelope level."""

    def __init__(self, kind: DecodeErrorKind, message: str = ""):
        self.kind = kind
        super().__init__(message or kind.value)


class ConfigError(WhereTheBusError):
    """A required configuration parameter is missing or invalid."""

    def __init__(self, parameter: str, message: str = ""):
        self.parameter = parameter
        super().__init__(message or f"missing required parameter {parameter}")
