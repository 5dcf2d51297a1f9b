"""Authentication log line parsing.

This module turns raw text lines into normalized LoginEvent objects.
A line is accepted when it starts with an ISO-8601 or syslog timestamp,
contains a failure or success marker, and ends with a source identity
(IPv4, IPv6 or hostname).
"""

import ipaddress
import logging
import re
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Iterator, Optional

from auth_sentry.config import DEFAULT_FAILURE_MARKERS, DEFAULT_SUCCESS_MARKERS, DetectorConfig
from auth_sentry.errors import ParseError, ParseErrorKind
from auth_sentry.schema import LoginEvent, Outcome

logger = logging.getLogger(__name__)


ISO_TIMESTAMP_RE = re.compile(
    r"^\[?(?P<ts>\d{4}-\d{2}-\d{2}[T ]\d{2}:\d{2}:\d{2}(?:[.,]\d+)?(?:Z|[+-]\d{2}:?\d{2})?)\]?(?=\s|$)"
)

# "Jan 30 10:15:23" as written by syslog, no year
SYSLOG_TIMESTAMP_RE = re.compile(
    r"^\[?(?P<ts>[A-Z][a-z]{2}\s+\d{1,2}\s+\d{2}:\d{2}:\d{2})\]?(?=\s|$)"
)

HOSTNAME_LABEL_RE = re.compile(r"^[A-Za-z0-9](?:[A-Za-z0-9-]{0,61}[A-Za-z0-9])?$")

IDENTITY_STRIP_CHARS = "[]()<>,;\"'"

# sshd appends "port 22 ssh2" after the source address
SSHD_TRAILER_RE = re.compile(r"\s+port\s+\d+(?:\s+ssh\d?)?\s*$", re.IGNORECASE)


class LineParser:
    """Parse authentication log lines into LoginEvents.

    Args:
        max_line_length: Lines longer than this many UTF-8 bytes are
            rejected outright.
        failure_markers: Substrings marking a failed login (checked first).
        success_markers: Substrings marking a successful login.
        identity_pattern: Regex searched in the text after the marker whose
            "identity" group (or first group) holds the identity. When
            unset the last whitespace-delimited field is used, ignoring
            an sshd "port N ssh2" trailer.
        default_year: Year applied to syslog timestamps, which carry none.
            Defaults to the current UTC year.
    """

    def __init__(
        self,
        max_line_length: int = 8192,
        failure_markers: Iterable[str] = DEFAULT_FAILURE_MARKERS,
        success_markers: Iterable[str] = DEFAULT_SUCCESS_MARKERS,
        identity_pattern: Optional[str] = None,
        default_year: Optional[int] = None,
    ) -> None:
        self.max_line_length = max_line_length
        self.failure_markers = tuple(failure_markers)
        self.success_markers = tuple(success_markers)
        self.identity_re = re.compile(identity_pattern) if identity_pattern else None
        # Failure markers first; searched on the original text so match
        # offsets stay valid whatever case mapping does to its length
        self._marker_res = [
            (re.compile(re.escape(marker), re.IGNORECASE), outcome)
            for markers, outcome in (
                (self.failure_markers, Outcome.FAILED),
                (self.success_markers, Outcome.SUCCEEDED),
            )
            for marker in markers
        ]
        self.default_year = default_year or datetime.now(timezone.utc).year

    @classmethod
    def from_config(cls, config: DetectorConfig, default_year: Optional[int] = None) -> "LineParser":
        return cls(
            max_line_length=config.max_line_length,
            failure_markers=config.failure_markers,
            success_markers=config.success_markers,
            identity_pattern=config.identity_pattern,
            default_year=default_year,
        )

    def parse(self, line: str) -> LoginEvent:
        """Parse one log line.

        Args:
            line: Raw log line, with or without its trailing newline.

        Returns:
            The parsed LoginEvent.

        Raises:
            ParseError: If the line is too long or lacks a timestamp,
                an outcome marker or a valid identity.
        """
        size = len(line.encode("utf-8", errors="replace"))
        if size > self.max_line_length:
            raise ParseError(
                ParseErrorKind.TOO_LONG,
                line[:80],
                f"{size} > {self.max_line_length} bytes",
            )

        raw = line.rstrip("\r\n")
        text = raw.strip()

        timestamp, rest = self._parse_timestamp(text)
        outcome, after_marker = self._find_outcome(text, rest)
        identity = self._parse_identity(text, after_marker)

        return LoginEvent(
            timestamp=timestamp,
            source_identity=identity,
            outcome=outcome,
            raw=raw,
        )

    def _parse_timestamp(self, text: str) -> tuple[datetime, str]:
        match = ISO_TIMESTAMP_RE.match(text)
        if match:
            ts_str = match.group("ts").replace(",", ".")
            if ts_str.endswith("Z"):
                ts_str = ts_str[:-1] + "+00:00"
            try:
                ts = datetime.fromisoformat(ts_str)
            except ValueError as e:
                raise ParseError(ParseErrorKind.NO_TIMESTAMP, text, str(e)) from e
            return _to_naive_utc(ts), text[match.end():]

        match = SYSLOG_TIMESTAMP_RE.match(text)
        if match:
            ts_str = " ".join(match.group("ts").split())
            try:
                ts = datetime.strptime(f"{self.default_year} {ts_str}", "%Y %b %d %H:%M:%S")
            except ValueError as e:
                raise ParseError(ParseErrorKind.NO_TIMESTAMP, text, str(e)) from e
            return ts, text[match.end():]

        raise ParseError(ParseErrorKind.NO_TIMESTAMP, text)

    def _find_outcome(self, text: str, rest: str) -> tuple[Outcome, str]:
        for marker_re, outcome in self._marker_res:
            match = marker_re.search(rest)
            if match:
                return outcome, rest[match.end():]
        raise ParseError(ParseErrorKind.NO_OUTCOME_MARKER, text)

    def _parse_identity(self, text: str, after_marker: str) -> str:
        if self.identity_re is not None:
            match = self.identity_re.search(after_marker)
            if not match:
                raise ParseError(ParseErrorKind.INVALID_IDENTITY, text, "identity pattern did not match")
            if "identity" in self.identity_re.groupindex:
                fields = [match.group("identity") or ""]
            else:
                fields = [match.group(1) or ""]
        else:
            fields = SSHD_TRAILER_RE.sub("", after_marker).split()
        if not fields or not fields[-1]:
            raise ParseError(ParseErrorKind.INVALID_IDENTITY, text, "no identity after marker")

        token = fields[-1].strip(IDENTITY_STRIP_CHARS)
        # "ip=10.0.0.1" / "src:10.0.0.1"
        if "=" in token:
            token = token.rsplit("=", 1)[1]
        if not is_valid_identity(token):
            # A trailing dot ends the sentence unless it belongs to an FQDN
            token = token.rstrip(".")
        if not is_valid_identity(token):
            raise ParseError(ParseErrorKind.INVALID_IDENTITY, text, repr(fields[-1]))
        return token


def is_valid_identity(token: str) -> bool:
    """Return True if token is an IPv4/IPv6 address or an RFC 1123 hostname."""
    if not token:
        return False
    try:
        ipaddress.ip_address(token)
        return True
    except ValueError:
        pass

    hostname = token[:-1] if token.endswith(".") else token
    if not hostname or len(hostname) > 253:
        return False
    labels = hostname.split(".")
    if not all(HOSTNAME_LABEL_RE.match(label) for label in labels):
        return False
    # Dotted numbers that failed IP parsing are malformed addresses, not hosts
    if all(label.isdigit() for label in labels):
        return False
    return True


def format_event(
    event: LoginEvent,
    failure_marker: str = DEFAULT_FAILURE_MARKERS[0],
    success_marker: str = DEFAULT_SUCCESS_MARKERS[0],
) -> str:
    """Serialize the structured fields of an event as a log line.

    The result parses back to the same timestamp, identity and outcome.
    """
    marker = failure_marker if event.failed else success_marker
    return f"{event.timestamp.isoformat(sep=' ')} {marker} from {event.source_identity}"


def iter_events(lines: Iterable[str], parser: Optional[LineParser] = None) -> Iterator[LoginEvent]:
    """Parse a stream of lines, logging and skipping malformed ones.

    Args:
        lines: Any iterable of raw log lines.
        parser: LineParser to use (defaults to a default-configured one).

    Yields:
        LoginEvent for every line that parses.
    """
    parser = parser or LineParser()
    skipped = 0

    for line_num, line in enumerate(lines, start=1):
        if not line.strip():
            continue
        try:
            yield parser.parse(line)
        except ParseError as e:
            skipped += 1
            logger.warning(f"Skipping line {line_num}: {e}")

    if skipped:
        logger.info(f"Skipped {skipped} malformed lines")


def read_lines(path: Path | str) -> Iterator[str]:
    """Return an iterator over lines of a log file, or stdin when path is "-".

    Raises:
        FileNotFoundError: If the file doesn't exist.
    """
    if str(path) == "-":
        return (line.rstrip("\n") for line in sys.stdin)

    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Log file not found: {path}")
    return _read_file(path)


def _read_file(path: Path) -> Iterator[str]:
    with open(path, "r", encoding="utf-8", errors="replace") as f:
        for line in f:
            yield line.rstrip("\n")


def _to_naive_utc(ts: datetime) -> datetime:
    if ts.tzinfo is None:
        return ts
    return ts.astimezone(timezone.utc).replace(tzinfo=None)
