"""Data models for listings as they move through the harvest."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class Category(str, Enum):
    """Closed set of labels a listing can end up with."""

    JS = "JS"
    PHP = "PHP"
    WORDPRESS = "WORDPRESS"
    OTHER = "OTHER"

    @classmethod
    def parse(cls, label: str) -> "Category":
        """Map a stored or returned label onto the enum; unknown labels are OTHER."""
        key = (label or "").strip().upper()
        for member in cls:
            if member.value == key:
                return member
        return cls.OTHER


@dataclass(frozen=True)
class ListingRecord:
    id: str
    title: str
    employer: str
    location: str
    summary: str
    link: str


@dataclass(frozen=True)
class EnrichedRecord:
    """A listing plus what its detail page revealed.

    Missing detail fields (timeouts, absent containers) are empty, never None.
    """

    listing: ListingRecord
    skill_tags: tuple[str, ...] = ()
    has_restricted_requirement: bool = False
    full_text: str = ""
    detail_employer: str = ""

    @property
    def id(self) -> str:
        return self.listing.id


@dataclass(frozen=True)
class ClassifiedRecord:
    listing: ListingRecord
    category: Category

    @property
    def id(self) -> str:
        return self.listing.id

    def to_row(self) -> dict[str, str]:
        return {
            "id": self.listing.id,
            "title": self.listing.title,
            "employer": self.listing.employer,
            "location": self.listing.location,
            "summary": self.listing.summary,
            "link": self.listing.link,
            "category": self.category.value,
        }


@dataclass(frozen=True)
class Excluded:
    listing: ListingRecord
    reason: str

    @property
    def id(self) -> str:
        return self.listing.id


@dataclass
class RunSummary:
    pages: int = 0
    seen: int = 0
    new: int = 0
    excluded: int = 0
    stored: int = 0
    termination: str = ""
    categories: dict[str, int] = field(default_factory=dict)
