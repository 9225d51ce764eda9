"""
Baseline store for secret-sieve.

The baseline is the set of fingerprints an operator has reviewed and chosen to
ignore. It is stored as a JSON array of entries sorted by fingerprint so that
the file diffs cleanly under version control:

    [
      {"added_at": "2024-05-01T12:00:00Z", "fingerprint": "...", "note": null}
    ]

Entries are only ever removed by an explicit remove() call. The object form
written by earlier releases (``{"fingerprints": [...], "metadata": {...}}``)
is still accepted on load and rewritten in the array form on the next save.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from .config import BASELINE_FILENAME
from .errors import BaselineError
from .fingerprint import is_fingerprint
from .utils import atomic_write_bytes

logger = logging.getLogger(__name__)


def _utc_now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


@dataclass(frozen=True)
class BaselineEntry:
    """One reviewed fingerprint."""

    fingerprint: str
    added_at: str
    note: str | None = None

    def to_dict(self) -> dict:
        return {
            "added_at": self.added_at,
            "fingerprint": self.fingerprint,
            "note": self.note,
        }

    @classmethod
    def from_dict(cls, data: object, path: Path) -> BaselineEntry:
        if not isinstance(data, dict):
            raise BaselineError(path, "entries must be JSON objects")
        fp = data.get("fingerprint")
        if not isinstance(fp, str) or not is_fingerprint(fp):
            raise BaselineError(path, "entry has a missing or malformed fingerprint")
        added_at = data.get("added_at") or ""
        note = data.get("note")
        if not isinstance(added_at, str):
            raise BaselineError(path, f"entry {fp[:12]} has a non-string added_at")
        if note is not None and not isinstance(note, str):
            raise BaselineError(path, f"entry {fp[:12]} has a non-string note")
        return cls(fingerprint=fp, added_at=added_at, note=note)


class BaselineStore:
    """
    In-memory set of baselined fingerprints.

    A store is loaded once before a scan and treated as read-only while the
    scan runs. add() and remove() are operator actions followed by save().
    """

    def __init__(self, entries: list[BaselineEntry] | None = None):
        self._entries: dict[str, BaselineEntry] = {}
        for entry in entries or []:
            self._entries.setdefault(entry.fingerprint, entry)

    @classmethod
    def load(cls, path: Path | str = BASELINE_FILENAME) -> BaselineStore:
        """
        Load a baseline file.

        A missing file yields an empty store. A file that exists but is not a
        valid baseline raises BaselineError rather than silently baselining
        nothing.
        """
        path = Path(path)
        if not path.exists():
            logger.debug("No baseline at %s, starting empty", path)
            return cls()

        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise BaselineError(path, f"not valid JSON (line {e.lineno}, column {e.colno})") from e
        except (OSError, UnicodeDecodeError) as e:
            raise BaselineError(path, f"cannot be read: {e}") from e

        if isinstance(data, dict):
            store = cls._from_legacy(data, path)
        elif isinstance(data, list):
            store = cls([BaselineEntry.from_dict(item, path) for item in data])
        else:
            raise BaselineError(path, "expected a JSON array of entries")

        logger.debug("Loaded %d baseline entries from %s", len(store), path)
        return store

    @classmethod
    def _from_legacy(cls, data: dict, path: Path) -> BaselineStore:
        fingerprints = data.get("fingerprints")
        if not isinstance(fingerprints, list):
            raise BaselineError(path, "expected a JSON array of entries")

        metadata = data.get("metadata") or {}
        if not isinstance(metadata, dict):
            raise BaselineError(path, "metadata must be an object")
        added_at = data.get("generated_at") if isinstance(data.get("generated_at"), str) else ""

        entries = []
        for fp in fingerprints:
            if not isinstance(fp, str) or not is_fingerprint(fp):
                raise BaselineError(path, "entry has a missing or malformed fingerprint")
            meta = metadata.get(fp)
            note = None
            if isinstance(meta, dict) and meta.get("rule") and meta.get("file"):
                note = f"{meta['rule']} in {meta['file']}"
            entries.append(BaselineEntry(fingerprint=fp, added_at=added_at, note=note))
        return cls(entries)

    def contains(self, fingerprint: str) -> bool:
        return fingerprint in self._entries

    def __contains__(self, fingerprint: object) -> bool:
        return fingerprint in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[BaselineEntry]:
        return iter(self.entries)

    @property
    def entries(self) -> list[BaselineEntry]:
        """Entries sorted by fingerprint."""
        return [self._entries[fp] for fp in sorted(self._entries)]

    @property
    def fingerprints(self) -> set[str]:
        return set(self._entries)

    def get(self, fingerprint: str) -> BaselineEntry | None:
        return self._entries.get(fingerprint)

    def add(self, fingerprint: str, note: str | None = None) -> BaselineStore:
        """Add a fingerprint. Adding one that is already present keeps the original entry."""
        if not is_fingerprint(fingerprint):
            raise ValueError("fingerprint must be a 64-character lowercase hex digest")
        if fingerprint not in self._entries:
            self._entries[fingerprint] = BaselineEntry(
                fingerprint=fingerprint, added_at=_utc_now(), note=note
            )
        return self

    def remove(self, fingerprint: str) -> bool:
        """Remove a fingerprint. Returns False if it was not present."""
        return self._entries.pop(fingerprint, None) is not None

    def to_list(self) -> list[dict]:
        return [entry.to_dict() for entry in self.entries]

    def save(self, path: Path | str = BASELINE_FILENAME) -> None:
        """Write the baseline atomically as a sorted JSON array."""
        path = Path(path)
        content = json.dumps(self.to_list(), indent=2, sort_keys=True) + "\n"
        atomic_write_bytes(path, content.encode("utf-8"))
        logger.debug("Saved %d baseline entries to %s", len(self), path)
