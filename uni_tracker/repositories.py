"""Backend access for subjects and evaluations."""

import logging
from datetime import datetime, tzinfo
from typing import Dict, List, Optional, Tuple

from .backend import BackendClient, BackendError
from .models import PRESET_COLORS, Evaluation, Subject, format_timestamp
from .validation import (
    ValidationError,
    parse_due_date,
    parse_grade,
    parse_weight,
    validate_subject_name,
    validate_title,
)

logger = logging.getLogger(__name__)


def _one(rows, what: str) -> dict:
    """Unwrap a representation response that should hold exactly one row."""
    if isinstance(rows, dict) and rows:
        return rows
    if isinstance(rows, list) and rows:
        return rows[0]
    raise BackendError(f"{what} not returned by backend")


class SubjectRepository:
    """Subjects owned by one user."""

    def __init__(self, client: BackendClient, user_id: str):
        self.client = client
        self.user_id = user_id

    def list(self) -> List[Subject]:
        """All subjects, newest first."""
        rows = (
            self.client.table("subjects")
            .select("*")
            .eq("user_id", self.user_id)
            .order("created_at", ascending=False)
            .execute()
        )
        return [Subject.from_row(row) for row in rows]

    def lookup(self) -> Dict[str, Subject]:
        """Subject id -> Subject, for joining onto evaluations."""
        rows = (
            self.client.table("subjects")
            .select("id, name, color")
            .eq("user_id", self.user_id)
            .execute()
        )
        return {str(row["id"]): Subject.from_row(row) for row in rows}

    def get(self, subject_id: str) -> Subject:
        row = (
            self.client.table("subjects")
            .select("*")
            .eq("id", subject_id)
            .single()
            .execute()
        )
        return Subject.from_row(row)

    def create(self, name: str, color: Optional[str] = None) -> Subject:
        """
        Create a subject.

        Raises:
            ValidationError: If the name is empty.
        """
        name = validate_subject_name(name)
        rows = (
            self.client.table("subjects")
            .insert([{
                "user_id": self.user_id,
                "name": name,
                "color": color or PRESET_COLORS[0],
            }])
            .execute()
        )
        subject = Subject.from_row(_one(rows, "Created subject"))
        logger.info(f"Created subject {subject.name} ({subject.id})")
        return subject

    def delete(self, subject_id: str) -> None:
        self.client.table("subjects").delete().eq("id", subject_id).execute()
        logger.info(f"Deleted subject {subject_id}")


class EvaluationRepository:
    """Evaluations owned by one user."""

    def __init__(self, client: BackendClient, user_id: str, tz: Optional[tzinfo] = None):
        self.client = client
        self.user_id = user_id
        self.tz = tz

    def for_subject(self, subject_id: str) -> List[Evaluation]:
        rows = (
            self.client.table("evaluations")
            .select("*")
            .eq("subject_id", subject_id)
            .eq("user_id", self.user_id)
            .order("due_date", ascending=True)
            .execute()
        )
        return [Evaluation.from_row(row) for row in rows]

    def pending(self, limit: Optional[int] = None) -> List[Evaluation]:
        query = (
            self.client.table("evaluations")
            .select("*")
            .eq("user_id", self.user_id)
            .eq("completed", False)
            .order("due_date", ascending=True)
        )
        if limit is not None:
            query = query.limit(limit)
        return [Evaluation.from_row(row) for row in query.execute()]

    def pending_between(self, start: datetime, end: datetime) -> List[Evaluation]:
        """Pending evaluations with a due date in [start, end], soonest first."""
        rows = (
            self.client.table("evaluations")
            .select("*")
            .eq("user_id", self.user_id)
            .eq("completed", False)
            .not_is("due_date", None)
            .gte("due_date", format_timestamp(start))
            .lte("due_date", format_timestamp(end))
            .order("due_date", ascending=True)
            .execute()
        )
        return [Evaluation.from_row(row) for row in rows]

    def completion_counts(self) -> Tuple[int, int]:
        """(total, completed) across all of the user's evaluations."""
        rows = (
            self.client.table("evaluations")
            .select("id, completed")
            .eq("user_id", self.user_id)
            .execute()
        )
        completed = sum(1 for row in rows if row.get("completed"))
        return len(rows), completed

    def create(
        self,
        subject_id: str,
        title: str,
        due_date,
        eval_type: str = "prueba",
        weight=None,
        now: Optional[datetime] = None,
    ) -> Evaluation:
        """
        Create a pending, ungraded evaluation.

        Raises:
            ValidationError: If the title, due date or weight is invalid.
        """
        title = validate_title(title)
        due = parse_due_date(due_date, now=now, tz=self.tz)
        weight_value = parse_weight(weight)
        if not subject_id:
            raise ValidationError("La evaluación debe pertenecer a un ramo.")

        payload = {
            "user_id": self.user_id,
            "subject_id": subject_id,
            "title": title,
            "type": eval_type,
            "due_date": format_timestamp(due),
            "weight": weight_value,
            "grade": None,
            "completed": False,
        }
        rows = self.client.table("evaluations").insert([payload]).execute()
        evaluation = Evaluation.from_row(_one(rows, "Created evaluation"))
        logger.info(f"Created evaluation {evaluation.title} ({evaluation.id})")
        return evaluation

    def _update(self, evaluation_id: str, values: dict) -> Optional[Evaluation]:
        rows = (
            self.client.table("evaluations")
            .update(values)
            .eq("id", evaluation_id)
            .execute()
        )
        if rows:
            return Evaluation.from_row(_one(rows, "Updated evaluation"))
        return None

    def set_completed(self, evaluation_id: str, completed: bool = True) -> Optional[Evaluation]:
        return self._update(evaluation_id, {"completed": completed})

    def toggle_completed(self, evaluation: Evaluation) -> Optional[Evaluation]:
        return self.set_completed(evaluation.id, not evaluation.completed)

    def set_grade(self, evaluation_id: str, grade) -> Optional[Evaluation]:
        """
        Set or clear (empty/None) a grade.

        Raises:
            ValidationError: If the grade is outside 1.0-7.0.
        """
        return self._update(evaluation_id, {"grade": parse_grade(grade)})

    def get(self, evaluation_id: str) -> Evaluation:
        row = (
            self.client.table("evaluations")
            .select("*")
            .eq("id", evaluation_id)
            .single()
            .execute()
        )
        return Evaluation.from_row(row)

    def delete(self, evaluation_id: str) -> None:
        self.client.table("evaluations").delete().eq("id", evaluation_id).execute()
        logger.info(f"Deleted evaluation {evaluation_id}")
