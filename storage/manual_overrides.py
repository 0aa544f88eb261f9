"""
Manual-Override Store.

Responsibilities:
- Keep a human-editable record of operator-confirmed pairings.
- Key every entry by survey content (cohort, timestamp, email, name) rather
  than database ids, so entries resolve again after the database is rebuilt
  from the source spreadsheets.

Non-Responsibilities:
- No pairing inserts; the matching engine replays entries.
- No locking; callers serialize writers.

Invariant:
Lines this store did not write for the current save are rewritten byte for
byte, including comments and lines it cannot parse.

File format (UTF-8, one entry per line)::

    before_cohort|before_ts|before_email|before_name=after_cohort|after_ts|after_email|after_name|notes|created_by|created_at
"""

import os
import re
import tempfile
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from surveylink.errors import ParseWarning, StorageError
from surveylink.logger import get_logger

logger = get_logger()

SEPARATOR = "|"
KEY_VALUE_SEPARATOR = "="
HEADER = "# Manual matches - composite key format for database rebuild recovery\n"

# Order matters: unescaping walks this table in reverse.
_ESCAPES = [
    ("|", "{{PIPE}}"),
    ("=", "{{EQ}}"),
    ("\n", "{{NL}}"),
    ("\r", "{{CR}}"),
]

_TIMESTAMP_FORMATS = (
    "%Y-%m-%dT%H:%M:%S.%f",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%dT%H:%M",
)

# Zero-padded fields only; strptime alone would also take 2024-1-5T9:3
_ISO_LOCAL_RE = re.compile(r"\d{4}-\d{2}-\d{2}T\d{2}:\d{2}(:\d{2}(\.\d{1,6})?)?")

KEY_FIELDS = 4
VALUE_FIELDS = 7


def escape_field(value: Optional[str]) -> str:
    if value is None:
        return ""
    for raw, token in _ESCAPES:
        value = value.replace(raw, token)
    return value


def unescape_field(value: str) -> str:
    for raw, token in reversed(_ESCAPES):
        value = value.replace(token, raw)
    return value


def format_timestamp(ts: Optional[datetime]) -> str:
    if ts is None:
        return ""
    return ts.replace(tzinfo=None).isoformat()


def parse_timestamp(text: str) -> Optional[datetime]:
    """Strict ISO-8601 local date-time. Empty text means no timestamp."""
    if not text or not text.strip():
        return None
    if not _ISO_LOCAL_RE.fullmatch(text):
        raise ParseWarning(f"Not an ISO-8601 local date-time: {text!r}")
    for fmt in _TIMESTAMP_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    raise ParseWarning(f"Not an ISO-8601 local date-time: {text!r}")


def key_for(cohort: Optional[str], timestamp: Optional[datetime],
            normalized_email: Optional[str], name: Optional[str]) -> str:
    """Content key for the BEFORE side of a pairing."""
    return SEPARATOR.join([
        escape_field(cohort),
        format_timestamp(timestamp),
        escape_field(normalized_email),
        escape_field(name),
    ])


def canonical_key(raw_key: str) -> str:
    """
    Rewrite a key as ``key_for`` would produce it, so a hand-written
    ``2024-01-10T09:30`` matches a stored ``2024-01-10T09:30:00``. Keys that
    do not parse are returned unchanged.
    """
    parts = raw_key.split(SEPARATOR)
    if len(parts) < KEY_FIELDS:
        return raw_key
    try:
        timestamp = parse_timestamp(parts[1])
    except ParseWarning:
        return raw_key
    return key_for(unescape_field(parts[0]), timestamp, unescape_field(parts[2]), unescape_field(parts[3]))


@dataclass(frozen=True)
class ManualOverrideEntry:
    before_cohort: str
    before_timestamp: Optional[datetime]
    before_email: str
    before_name: str
    after_cohort: str
    after_timestamp: Optional[datetime]
    after_email: str
    after_name: str
    notes: str
    created_by: str
    created_at: Optional[datetime]

    @property
    def key(self) -> str:
        return key_for(self.before_cohort, self.before_timestamp, self.before_email, self.before_name)

    def to_value(self) -> str:
        return SEPARATOR.join([
            escape_field(self.after_cohort),
            format_timestamp(self.after_timestamp),
            escape_field(self.after_email),
            escape_field(self.after_name),
            escape_field(self.notes),
            escape_field(self.created_by),
            format_timestamp(self.created_at),
        ])

    def to_line(self) -> str:
        return f"{self.key}{KEY_VALUE_SEPARATOR}{self.to_value()}\n"

    @classmethod
    def from_property(cls, key: str, value: str) -> "ManualOverrideEntry":
        """
        Parse one key/value pair.

        Raises:
            ParseWarning: if the key has fewer than 4 segments, the value fewer
                than 7, or a timestamp is malformed.
        """
        key_parts = key.split(SEPARATOR)
        value_parts = value.split(SEPARATOR)
        if len(key_parts) < KEY_FIELDS:
            raise ParseWarning(f"Key has {len(key_parts)} fields, expected {KEY_FIELDS}")
        if len(value_parts) < VALUE_FIELDS:
            raise ParseWarning(f"Value has {len(value_parts)} fields, expected {VALUE_FIELDS}")

        return cls(
            before_cohort=unescape_field(key_parts[0]),
            before_timestamp=parse_timestamp(key_parts[1]),
            before_email=unescape_field(key_parts[2]),
            before_name=unescape_field(key_parts[3]),
            after_cohort=unescape_field(value_parts[0]),
            after_timestamp=parse_timestamp(value_parts[1]),
            after_email=unescape_field(value_parts[2]),
            after_name=unescape_field(value_parts[3]),
            notes=unescape_field(value_parts[4]),
            created_by=unescape_field(value_parts[5]),
            created_at=parse_timestamp(value_parts[6]),
        )


def _split_line(line: str) -> Optional[Tuple[str, str]]:
    """Return (key, value) for a data line, None for blanks and comments."""
    text = line.rstrip("\r\n")
    stripped = text.lstrip()
    if not stripped or stripped.startswith("#") or stripped.startswith("!"):
        return None
    if KEY_VALUE_SEPARATOR not in text:
        raise ParseWarning("Line has no key=value separator")
    key, value = text.split(KEY_VALUE_SEPARATOR, 1)
    return key.lstrip(), value.rstrip()


class ManualOverrideStore:
    """File-backed store of manual pairings, keyed by survey content."""

    def __init__(self, path: Path):
        self.path = Path(path)

    key_for = staticmethod(key_for)

    def save(self, before, before_ts: Optional[datetime], after, after_ts: Optional[datetime],
             notes: Optional[str], created_by: Optional[str]) -> ManualOverrideEntry:
        """
        Record a manual pairing between two respondents.

        ``before`` and ``after`` need ``cohort``, ``normalized_email`` and
        ``display_name`` attributes. The file is read, the entry for this key
        is replaced (or appended) and the whole file is atomically rewritten.
        """
        entry = ManualOverrideEntry(
            before_cohort=before.cohort or "",
            before_timestamp=before_ts,
            before_email=before.normalized_email or "",
            before_name=before.display_name or "",
            after_cohort=after.cohort or "",
            after_timestamp=after_ts,
            after_email=after.normalized_email or "",
            after_name=after.display_name or "",
            notes=notes or "",
            created_by=created_by or "",
            created_at=datetime.now(),
        )

        lines = self._read_lines()
        new_lines: List[str] = []
        replaced = False
        for line in lines:
            try:
                kv = _split_line(line)
            except ParseWarning:
                kv = None
            if kv is not None and canonical_key(kv[0]) == entry.key:
                if not replaced:
                    new_lines.append(entry.to_line())
                    replaced = True
                continue
            new_lines.append(line)

        if not replaced:
            if not new_lines:
                new_lines.append(HEADER)
            elif not new_lines[-1].endswith("\n"):
                new_lines[-1] += "\n"
            new_lines.append(entry.to_line())

        self._write_lines(new_lines)
        logger.info(
            "Saved manual override",
            before=entry.before_name,
            after=entry.after_name,
            cohort=entry.before_cohort,
            replaced=replaced,
        )
        return entry

    def find_by_before_key(self, cohort: Optional[str], timestamp: Optional[datetime],
                           normalized_email: Optional[str], name: Optional[str]) -> Optional[ManualOverrideEntry]:
        key = key_for(cohort, timestamp, normalized_email, name)
        value = self._load_properties().get(key)
        if value is None:
            return None
        try:
            return ManualOverrideEntry.from_property(key, value)
        except ParseWarning as e:
            self._warn_unparsable(key, value, e)
            return None

    def all_entries(self) -> List[ManualOverrideEntry]:
        entries = []
        for key, value in self._load_properties().items():
            try:
                entries.append(ManualOverrideEntry.from_property(key, value))
            except ParseWarning as e:
                self._warn_unparsable(key, value, e)
        return entries

    def _load_properties(self) -> Dict[str, str]:
        """Canonical key -> raw value, later duplicates winning. Bad lines are logged."""
        props: Dict[str, str] = {}
        for number, line in enumerate(self._read_lines(), start=1):
            try:
                kv = _split_line(line)
            except ParseWarning as e:
                logger.warning(
                    "Skipping manual override line",
                    path=str(self.path),
                    line=number,
                    reason=str(e),
                )
                logger.record_parse_warning()
                continue
            if kv is not None:
                props[canonical_key(kv[0])] = kv[1]
        return props

    def _warn_unparsable(self, key: str, value: str, error: Exception):
        logger.warning(
            "Failed to parse manual override entry",
            path=str(self.path),
            key=key,
            value=value,
            reason=str(error),
        )
        logger.record_parse_warning()

    def _read_lines(self) -> List[str]:
        if not self.path.exists():
            return []
        try:
            with self.path.open("r", encoding="utf-8", newline="") as f:
                return list(f)
        except OSError as e:
            raise StorageError(f"Failed to read manual overrides file {self.path}: {e}") from e

    def _write_lines(self, lines: List[str]) -> None:
        """Write to a temp file beside the target, then move it into place."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self.path.name}.", suffix=".tmp", dir=str(self.path.parent)
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
                f.writelines(lines)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, self.path)
        except OSError as e:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise StorageError(f"Failed to write manual overrides file {self.path}: {e}") from e
