"""
Due-date reminders.

Each cycle fetches the user's pending evaluations due within the lookahead
window, attaches subject names, and sends one platform notification per
evaluation not already notified within the dedup window. The full urgent list
is always returned, notified or not, so the caller can show it in-app.
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta, tzinfo
from typing import Callable, Dict, List, Optional

from .backend import BackendClient
from .config import ReminderConfig
from .models import NO_SUBJECT_LABEL, Evaluation, UrgentEvaluation, format_timestamp
from .notifier import NotificationPlatform, ShownNotification
from .scheduler import CheckerHandle
from .state_store import StateRepository
from .time_utils import format_time, hours_between, utc_now

logger = logging.getLogger(__name__)

# CheckResult.reason values
OK = "ok"
NO_USER = "no_user"
NONE_DUE = "none_due"
QUERY_FAILED = "query_failed"
STATE_FAILED = "state_failed"

LESS_THAN_ONE_HOUR = "¡Menos de 1 hora!"


@dataclass
class CheckResult:
    """Urgent evaluations from one cycle, plus why the list may be empty."""
    evaluations: List[UrgentEvaluation] = field(default_factory=list)
    reason: str = OK
    error: Optional[str] = None
    notified_ids: List[str] = field(default_factory=list)

    def __iter__(self):
        return iter(self.evaluations)

    def __len__(self) -> int:
        return len(self.evaluations)

    def __bool__(self) -> bool:
        return bool(self.evaluations)

    def __getitem__(self, index):
        return self.evaluations[index]


def urgency_text(hours_left: int) -> str:
    if hours_left <= 1:
        return LESS_THAN_ONE_HOUR
    return f"Quedan {hours_left}h"


def notification_title(item: UrgentEvaluation) -> str:
    return f"⚠️ {item.title}"


def notification_body(item: UrgentEvaluation) -> str:
    """e.g. "Calculus — Entrega hoy a las 14:00. Quedan 5h"."""
    return f"{item.subject_name} — Entrega hoy a las {item.time_str}. {urgency_text(item.hours_left)}"


def notification_tag(item: UrgentEvaluation) -> str:
    return f"eval-{item.id}"


class NotifiedCache:
    """
    Evaluation ids already notified, with the time they were notified.

    Expired entries are pruned whenever the map is read; there is no separate
    cleanup timer, so an entry can outlive the TTL until the next read.
    """

    def __init__(
        self,
        state: StateRepository,
        ttl_hours: float = 48,
        now: Callable[[], datetime] = utc_now,
    ):
        self.state = state
        self.ttl_ms = int(ttl_hours * 3600 * 1000)
        self.now = now

    def _now_ms(self) -> int:
        return int(self.now().timestamp() * 1000)

    def load(self) -> Dict[str, int]:
        now_ms = self._now_ms()
        return {
            eval_id: timestamp
            for eval_id, timestamp in self.state.get_notified_map().items()
            if now_ms - timestamp < self.ttl_ms
        }

    def was_notified(self, eval_id: str) -> bool:
        return eval_id in self.load()

    def mark(self, eval_id: str) -> None:
        current = self.load()
        current[eval_id] = self._now_ms()
        self.state.put_notified_map(current)


def fetch_urgent_evaluations(
    client: BackendClient,
    user_id: str,
    now: datetime,
    lookahead_hours: float = 24,
    tz: Optional[tzinfo] = None,
) -> List[UrgentEvaluation]:
    """
    Query pending evaluations due in [now, now + lookahead] and join subject names.

    Raises:
        BackendError: If either query fails.
    """
    window_end = now + timedelta(hours=lookahead_hours)
    rows = (
        client.table("evaluations")
        .select("id, title, due_date, subject_id, type")
        .eq("user_id", user_id)
        .eq("completed", False)
        .not_is("due_date", None)
        .lte("due_date", format_timestamp(window_end))
        .gte("due_date", format_timestamp(now))
        .order("due_date", ascending=True)
        .execute()
    )
    evaluations = [Evaluation.from_row(row) for row in rows or []]

    subject_names: Dict[str, str] = {}
    subject_ids = sorted({e.subject_id for e in evaluations if e.subject_id})
    if subject_ids:
        subjects = (
            client.table("subjects")
            .select("id, name")
            .eq("user_id", user_id)
            .in_("id", subject_ids)
            .execute()
        )
        for row in subjects or []:
            subject_names[str(row["id"])] = row.get("name")

    urgent = []
    for evaluation in evaluations:
        due = evaluation.due_date
        urgent.append(UrgentEvaluation(
            id=evaluation.id,
            title=evaluation.title,
            subject_id=evaluation.subject_id,
            due_date=due,
            type=evaluation.type,
            subject_name=subject_names.get(evaluation.subject_id) or NO_SUBJECT_LABEL,
            hours_left=hours_between(due, now),
            time_str=format_time(due, tz),
        ))
    return urgent


class ReminderChecker:
    """
    Checks for urgent evaluations and owns the periodic timer that repeats the check.

    Only one timer is active per checker: `start` replaces any previous one.
    """

    def __init__(
        self,
        client: BackendClient,
        platform: NotificationPlatform,
        state: StateRepository,
        config: Optional[ReminderConfig] = None,
        tz: Optional[tzinfo] = None,
        now: Callable[[], datetime] = utc_now,
        on_focus: Optional[Callable[[], None]] = None,
        timer_factory=threading.Timer,
    ):
        self.client = client
        self.platform = platform
        self.config = config or ReminderConfig()
        self.tz = tz
        self.now = now
        self.on_focus = on_focus
        self.timer_factory = timer_factory
        self.cache = NotifiedCache(state, self.config.notified_ttl_hours, now)
        self._handle: Optional[CheckerHandle] = None
        self._lock = threading.Lock()

    def check_upcoming_evaluations(self, user_id: Optional[str]) -> CheckResult:
        """
        Run one check cycle for a user. Never raises.

        Returns:
            The urgent evaluations; empty with reason "no_user", "none_due" or
            "query_failed" when there is nothing to show, or the full list with
            reason "state_failed" when local dedup state could not be used.
        """
        if not user_id:
            return CheckResult(reason=NO_USER)

        now = self.now()
        try:
            urgent = fetch_urgent_evaluations(
                self.client,
                user_id,
                now,
                lookahead_hours=self.config.lookahead_hours,
                tz=self.tz,
            )
        except Exception as e:
            logger.error(f"Error checking upcoming evaluations: {e}")
            return CheckResult(reason=QUERY_FAILED, error=str(e))

        if not urgent:
            logger.debug(f"No evaluations due in the next {self.config.lookahead_hours}h")
            return CheckResult(reason=NONE_DUE)

        result = CheckResult(evaluations=urgent)
        try:
            for item in urgent:
                if self.cache.was_notified(item.id):
                    continue
                if self._dispatch(item):
                    self.cache.mark(item.id)
                    result.notified_ids.append(item.id)
        except Exception as e:
            # Local state unusable; still hand back the urgent list
            logger.error(f"Error reading or writing notified evaluations: {e}")
            result.reason = STATE_FAILED
            result.error = str(e)
            return result

        logger.info(
            f"Found {len(urgent)} urgent evaluation(s), "
            f"notified {len(result.notified_ids)} new"
        )
        return result

    def _dispatch(self, item: UrgentEvaluation) -> bool:
        """Show the platform notification for one evaluation. Returns False on any failure."""
        try:
            shown = self.platform.show(
                notification_title(item),
                notification_body(item),
                notification_tag(item),
                on_click=self.on_focus,
            )
            self._schedule_close(shown)
        except Exception as e:
            logger.debug(f"Notification for evaluation {item.id} not shown: {e}")
            return False
        return True

    def _schedule_close(self, shown: ShownNotification) -> None:
        timer = self.timer_factory(self.config.auto_close_seconds, shown.close)
        timer.daemon = True
        timer.start()

    def start(
        self,
        user_id: Optional[str],
        on_urgent: Optional[Callable[[List[UrgentEvaluation]], None]] = None,
    ) -> Optional[CheckerHandle]:
        """
        Check now and then every interval, replacing any running timer.

        Non-empty results go to `on_urgent` whether or not a platform
        notification fired.
        """
        if not user_id:
            return None

        def cycle() -> None:
            result = self.check_upcoming_evaluations(user_id)
            if on_urgent and result:
                on_urgent(list(result))

        with self._lock:
            self._stop_locked()
            handle = CheckerHandle(
                name=f"reminders-{user_id}",
                interval_seconds=self.config.interval_minutes * 60,
                cycle=cycle,
            )
            self._handle = handle.start()
        logger.info(f"Reminder checker started for user {user_id} (every {self.config.interval_minutes} min)")
        return handle

    def _stop_locked(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def stop(self) -> None:
        """Cancel the periodic timer, if any. Safe to call when nothing is running."""
        with self._lock:
            self._stop_locked()

    @property
    def handle(self) -> Optional[CheckerHandle]:
        return self._handle
