"""Persisted record set: one Excel sheet, read and rewritten wholesale each run."""
from __future__ import annotations

import fcntl
import os
import zipfile
from pathlib import Path
from typing import Iterable

import pandas as pd

from src.log import get_logger
from src.models import Category, ClassifiedRecord, ListingRecord

log = get_logger(__name__)

HEADERS: list[str] = [
    "id", "title", "employer", "location", "summary", "link", "category",
]


def _lock(f, exclusive: bool = True) -> None:
    """Advisory file lock (Unix fcntl)."""
    try:
        op = fcntl.LOCK_EX if exclusive else fcntl.LOCK_SH
        fcntl.flock(f.fileno(), op)
    except (OSError, AttributeError):
        pass


def _unlock(f) -> None:
    try:
        fcntl.flock(f.fileno(), fcntl.LOCK_UN)
    except (OSError, AttributeError):
        pass


def merge(existing: list[ClassifiedRecord], incoming: Iterable[ClassifiedRecord]) -> list[ClassifiedRecord]:
    """Append incoming records whose id is not yet known, in discovery order.

    The identity index grows while merging, so a duplicate inside *incoming*
    is dropped as well. Merging the same input twice gives the same result.
    """
    merged = list(existing)
    known = {r.id for r in merged}
    for record in incoming:
        if record.id in known:
            continue
        known.add(record.id)
        merged.append(record)
    return merged


def _row_to_record(row: dict[str, str]) -> ClassifiedRecord:
    listing = ListingRecord(
        id=row["id"],
        title=row.get("title", ""),
        employer=row.get("employer", ""),
        location=row.get("location", ""),
        summary=row.get("summary", ""),
        link=row.get("link", ""),
    )
    return ClassifiedRecord(listing=listing, category=Category.parse(row.get("category", "")))


class RecordStore:
    """The Store: ordered ClassifiedRecords with unique ids, kept in an .xlsx file."""

    def __init__(self, path: Path, sheet_name: str = "FilteredJobs") -> None:
        self.path = Path(path)
        self.sheet_name = sheet_name

    @property
    def _lock_path(self) -> Path:
        return self.path.with_name(self.path.name + ".lock")

    @property
    def _tmp_path(self) -> Path:
        return self.path.with_name(f".{self.path.stem}.tmp{self.path.suffix}")

    def load(self) -> list[ClassifiedRecord]:
        if not self.path.exists():
            log.info("No existing store at %s, starting empty", self.path)
            return []

        with open(self._lock_path, "a", encoding="utf-8") as lock_file:
            _lock(lock_file, exclusive=False)
            try:
                df = pd.read_excel(
                    self.path,
                    sheet_name=self.sheet_name,
                    dtype=str,
                    keep_default_na=False,
                    engine="openpyxl",
                )
            except zipfile.BadZipFile as exc:
                raise ValueError(f"{self.path} is not a readable workbook: {exc}") from exc
            finally:
                _unlock(lock_file)

        missing = [c for c in HEADERS if c not in df.columns]
        if "id" in missing:
            raise ValueError(f"{self.path} sheet {self.sheet_name!r} has no 'id' column")
        for col in missing:
            df[col] = ""

        records: list[ClassifiedRecord] = []
        seen: set[str] = set()
        dropped = 0
        for row in df[HEADERS].to_dict(orient="records"):
            row = {k: (v or "").strip() for k, v in row.items()}
            if not row["id"] or row["id"] in seen:
                dropped += 1
                continue
            seen.add(row["id"])
            records.append(_row_to_record(row))
        if dropped:
            log.warning("Dropped %d stored row(s) with blank or repeated id", dropped)
        log.info("Loaded %d stored record(s) from %s", len(records), self.path.name)
        return records

    def merge(self, existing: list[ClassifiedRecord], incoming: Iterable[ClassifiedRecord]) -> list[ClassifiedRecord]:
        merged = merge(existing, incoming)
        log.info("Merged store: %d prior + %d new", len(existing), len(merged) - len(existing))
        return merged

    def save(self, records: list[ClassifiedRecord]) -> Path:
        """Write the whole sheet to a sibling temp file, then swap it in.

        The live workbook is only ever replaced by a complete one.
        """
        self.path.parent.mkdir(parents=True, exist_ok=True)
        df = pd.DataFrame([r.to_row() for r in records], columns=HEADERS)
        tmp = self._tmp_path
        with open(self._lock_path, "a", encoding="utf-8") as lock_file:
            _lock(lock_file)
            try:
                try:
                    with pd.ExcelWriter(tmp, engine="openpyxl") as writer:
                        df.to_excel(writer, index=False, sheet_name=self.sheet_name)
                    os.replace(tmp, self.path)
                except BaseException:
                    tmp.unlink(missing_ok=True)
                    raise
            finally:
                _unlock(lock_file)
        log.info("Store written → %s (%d records)", self.path, len(records))
        return self.path
