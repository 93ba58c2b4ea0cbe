"""Seeded entities, snapshots and seeding errors."""

import hashlib
import json
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Optional

from ..config import SeedConfig


class SeedingError(Exception):
    """Base exception for test-data seeding errors."""
    pass


class SnapshotNotFoundError(SeedingError):
    def __init__(self, snapshot_id: str):
        self.snapshot_id = snapshot_id
        super().__init__(f"Snapshot {snapshot_id} not found")


class SessionNotFoundError(SeedingError):
    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Session {session_id} not found")


@dataclass(frozen=True)
class SeededCity:
    id: str
    name: str
    country: str
    cost_of_living: Optional[int]
    internet_speed: Optional[float]
    safety_rating: Optional[float]
    walkability: Optional[float]
    featured: bool
    verified: bool

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "SeededCity":
        return cls(**{name: record.get(name) for name in cls.__dataclass_fields__})


@dataclass(frozen=True)
class SeededUser:
    id: str
    email: str
    name: Optional[str]
    role: str

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "SeededUser":
        return cls(**{name: record.get(name) for name in cls.__dataclass_fields__})


@dataclass(frozen=True)
class SeededReview:
    id: str
    rating: int
    title: str
    content: str
    city_id: str
    user_id: str

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "SeededReview":
        return cls(**{name: record.get(name) for name in cls.__dataclass_fields__})


@dataclass(frozen=True)
class SeededData:
    """The entity set produced by one seeding run."""

    cities: tuple[SeededCity, ...] = ()
    users: tuple[SeededUser, ...] = ()
    reviews: tuple[SeededReview, ...] = ()

    def counts(self) -> dict[str, int]:
        return {"cities": len(self.cities), "users": len(self.users), "reviews": len(self.reviews)}

    def to_dict(self) -> dict[str, list[dict[str, Any]]]:
        return {
            "cities": [asdict(c) for c in self.cities],
            "users": [asdict(u) for u in self.users],
            "reviews": [asdict(r) for r in self.reviews],
        }

    def checksum(self) -> str:
        """SHA-256 over the canonical JSON form."""
        canonical = json.dumps(self.to_dict(), sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class SeededDataSnapshot:
    """Immutable record of a seeding run."""

    id: str
    timestamp: datetime
    config: SeedConfig
    data: SeededData
    checksum: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "config": self.config.model_dump(),
            "counts": self.data.counts(),
            "checksum": self.checksum,
        }


@dataclass
class DataSummary:
    counts: dict[str, int]
    snapshot: Optional[SeededDataSnapshot]
    integrity: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "counts": self.counts,
            "snapshot": self.snapshot.to_dict() if self.snapshot else None,
            "integrity": self.integrity,
        }
