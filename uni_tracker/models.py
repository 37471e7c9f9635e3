"""Data models for subjects, evaluations and reminders."""

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional

NO_SUBJECT_LABEL = "Sin ramo"

_FRACTION = re.compile(r"\.(\d+)")

# value -> display label
EVALUATION_TYPES = {
    "prueba": "Prueba",
    "trabajo": "Trabajo",
    "tarea": "Tarea",
    "exposicion": "Exposición",
    "proyecto": "Proyecto",
    "quiz": "Quiz",
}

PRESET_COLORS = [
    "#007AFF",
    "#34C759",
    "#FF9500",
    "#FF3B30",
    "#AF52DE",
    "#5AC8FA",
    "#FF2D55",
    "#FFCC00",
]


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO8601 timestamp coming from the backend.

    Naive values are treated as UTC. Returns None for empty input. Fractional
    seconds of any length are accepted; the backend trims trailing zeros.
    """
    if not value:
        return None
    text = value.replace("Z", "+00:00")
    # fromisoformat before 3.11 only takes 3 or 6 fraction digits
    text = _FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1)
    dt = datetime.fromisoformat(text)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def format_timestamp(dt: datetime) -> str:
    """Serialize a datetime as an ISO8601 UTC string for the backend."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass
class Subject:
    """A user-defined course grouping evaluations."""
    id: str
    name: str
    color: str = PRESET_COLORS[0]
    user_id: Optional[str] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Subject":
        return cls(
            id=str(row["id"]),
            name=row.get("name") or "",
            color=row.get("color") or PRESET_COLORS[0],
            user_id=row.get("user_id"),
            created_at=parse_timestamp(row.get("created_at")),
        )


@dataclass
class Evaluation:
    """A gradable, dated item belonging to a subject."""
    id: str
    title: str
    subject_id: Optional[str]
    due_date: Optional[datetime]
    type: Optional[str] = None
    weight: Optional[float] = None  # percentage 0-100
    grade: Optional[float] = None   # 1.0 - 7.0
    completed: bool = False
    user_id: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Evaluation":
        weight = row.get("weight")
        grade = row.get("grade")
        subject_id = row.get("subject_id")
        return cls(
            id=str(row["id"]),
            title=row.get("title") or "",
            subject_id=str(subject_id) if subject_id is not None else None,
            due_date=parse_timestamp(row.get("due_date")),
            type=row.get("type"),
            weight=float(weight) if weight is not None else None,
            grade=float(grade) if grade is not None else None,
            completed=bool(row.get("completed", False)),
            user_id=row.get("user_id"),
        )

    @property
    def type_label(self) -> str:
        key = (self.type or "").lower().strip()
        return EVALUATION_TYPES.get(key, self.type or "")


@dataclass
class UrgentEvaluation:
    """An evaluation due within the lookahead window, enriched for display."""
    id: str
    title: str
    subject_id: Optional[str]
    due_date: datetime
    type: Optional[str]
    subject_name: str   # falls back to NO_SUBJECT_LABEL
    hours_left: int     # whole hours until due, truncated
    time_str: str       # "HH:MM" in the display timezone


@dataclass
class Session:
    """An authenticated backend session."""
    access_token: str
    refresh_token: Optional[str]
    user_id: str
    email: Optional[str] = None
    expires_at: Optional[int] = None  # epoch seconds

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.expires_at is None:
            return False
        now = now or datetime.now(timezone.utc)
        return now.timestamp() >= self.expires_at

    def to_dict(self) -> Dict[str, Any]:
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "user_id": self.user_id,
            "email": self.email,
            "expires_at": self.expires_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Session":
        return cls(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token"),
            user_id=data["user_id"],
            email=data.get("email"),
            expires_at=data.get("expires_at"),
        )


@dataclass
class SubjectStats:
    """Aggregate numbers for a subject's evaluations."""
    total: int
    completed: int
    pending: int
    avg_grade: Optional[float]
    weighted_avg: Optional[float]
    grade_count: int
    weighted_count: int = 0


@dataclass
class DashboardSummary:
    """Counts and upcoming items shown on the dashboard."""
    total: int
    completed: int
    pending: int
    upcoming: list = field(default_factory=list)    # list[Evaluation]
    subjects: dict = field(default_factory=dict)    # subject id -> Subject
