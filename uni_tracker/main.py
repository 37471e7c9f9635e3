"""Main entry point for the uni-tracker command line client."""

import argparse
import getpass
import logging
import os
import sys
from dataclasses import dataclass
from datetime import tzinfo
from typing import List, Optional

from .auth import SIGNUP_CONFIRM_MESSAGE, AuthError, AuthService
from .backend import BackendClient, BackendError
from .config import AppConfig, load_config
from .grades import is_passing, subject_stats
from .models import EVALUATION_TYPES, NO_SUBJECT_LABEL, UrgentEvaluation
from .notifier import DENIED, GRANTED, NotificationPlatform, create_platform
from .reminders import ReminderChecker, notification_body
from .repositories import EvaluationRepository, SubjectRepository
from .state_store import SQLiteStateRepository
from .time_utils import MONTHS, resolve_timezone, to_local, utc_now
from .validation import ValidationError, default_due_datetime, parse_month
from .views import AGENDA_RANGES, TrackerViews, due_badge, format_due_date, format_time_left

# Configure logging
log_level = os.getenv("LOG_LEVEL", "INFO").upper()
logging.basicConfig(
    level=getattr(logging, log_level, logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)]
)
logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    """Everything a command needs, built once per invocation."""
    config: AppConfig
    state: SQLiteStateRepository
    client: BackendClient
    auth: AuthService
    platform: NotificationPlatform
    tz: Optional[tzinfo]

    def user_id(self) -> str:
        return self.auth.require_session().user_id

    def subjects(self) -> SubjectRepository:
        return SubjectRepository(self.client, self.user_id())

    def evaluations(self) -> EvaluationRepository:
        return EvaluationRepository(self.client, self.user_id(), self.tz)

    def views(self) -> TrackerViews:
        user_id = self.user_id()
        return TrackerViews(
            SubjectRepository(self.client, user_id),
            EvaluationRepository(self.client, user_id, self.tz),
            self.tz,
        )


def _ask_consent() -> str:
    """Interactive consent flow for notifications."""
    answer = input("¿Permitir notificaciones de entregas próximas? [s/N] ").strip().lower()
    return GRANTED if answer in ("s", "si", "sí", "y", "yes") else DENIED


def _build_context(config: AppConfig) -> AppContext:
    state = SQLiteStateRepository.open(config.db_path)
    client = BackendClient(config.backend)
    return AppContext(
        config=config,
        state=state,
        client=client,
        auth=AuthService(client, state),
        platform=create_platform(config.notification, state, consent=_ask_consent),
        tz=resolve_timezone(config.timezone),
    )


# Auth

def cmd_login(ctx: AppContext, args) -> None:
    password = args.password or getpass.getpass("Contraseña: ")
    session = ctx.auth.sign_in(args.email, password)
    print(f"Sesión iniciada como {session.email or session.user_id}")


def cmd_signup(ctx: AppContext, args) -> None:
    password = args.password or getpass.getpass("Contraseña: ")
    session = ctx.auth.sign_up(args.email, password)
    if session is None:
        print(SIGNUP_CONFIRM_MESSAGE)
    else:
        print(f"Cuenta creada. Sesión iniciada como {session.email or session.user_id}")


def cmd_logout(ctx: AppContext, args) -> None:
    ctx.auth.sign_out()
    print("Sesión cerrada.")


def cmd_whoami(ctx: AppContext, args) -> None:
    session = ctx.auth.require_session()
    print(f"Correo:  {session.email or 'Sin correo'}")
    print(f"Usuario: {session.user_id[:12]}…")


# Subjects

def cmd_subjects_list(ctx: AppContext, args) -> None:
    subjects = ctx.subjects().list()
    if not subjects:
        print("Aún no tienes ramos. Agrega uno con `uni-tracker subjects add`.")
        return
    for subject in subjects:
        print(f"{subject.id}  {subject.name}  {subject.color}")


def cmd_subjects_add(ctx: AppContext, args) -> None:
    subject = ctx.subjects().create(args.name, args.color)
    print(f"Ramo creado: {subject.name} ({subject.id})")


def cmd_subjects_delete(ctx: AppContext, args) -> None:
    ctx.subjects().delete(args.subject_id)
    print("Ramo eliminado.")


def cmd_subjects_show(ctx: AppContext, args) -> None:
    now = utc_now()
    subject = ctx.subjects().get(args.subject_id)
    evaluations = ctx.evaluations().for_subject(args.subject_id)
    stats = subject_stats(evaluations)

    print(f"{subject.name}")
    print(f"  Total: {stats.total}  Listas: {stats.completed}  Pendientes: {stats.pending}")
    if stats.avg_grade is not None:
        mark = "aprobado" if is_passing(stats.avg_grade) else "reprobado"
        print(f"  Promedio: {stats.avg_grade:.1f} ({mark}, {stats.grade_count} notas)")
    if stats.weighted_avg is not None:
        mark = "aprobado" if is_passing(stats.weighted_avg) else "reprobado"
        print(f"  Promedio ponderado: {stats.weighted_avg:.1f} ({mark}, {stats.weighted_count} con ponderación)")

    for evaluation in evaluations:
        status = "✓" if evaluation.completed else "·"
        line = f"  {status} {evaluation.id}  {evaluation.title} [{evaluation.type_label}]"
        if evaluation.due_date:
            line += f"  {format_due_date(evaluation.due_date, now, ctx.tz, with_time=True)}"
            if not evaluation.completed:
                line += f"  ({format_time_left(evaluation.due_date, now)})"
        if evaluation.weight:
            line += f"  {evaluation.weight:g}%"
        if evaluation.grade is not None:
            line += f"  Nota: {evaluation.grade:.1f}"
        print(line)


# Evaluations

def cmd_evals_add(ctx: AppContext, args) -> None:
    evaluation = ctx.evaluations().create(
        subject_id=args.subject_id,
        title=args.title,
        due_date=args.due or default_due_datetime(tz=ctx.tz),
        eval_type=args.type,
        weight=args.weight,
    )
    print(f"Evaluación creada: {evaluation.title} ({evaluation.id})")


def cmd_evals_complete(ctx: AppContext, args) -> None:
    ctx.evaluations().set_completed(args.evaluation_id, True)
    print("Evaluación marcada como lista.")


def cmd_evals_toggle(ctx: AppContext, args) -> None:
    repo = ctx.evaluations()
    updated = repo.toggle_completed(repo.get(args.evaluation_id))
    if updated is not None:
        print("Lista." if updated.completed else "Pendiente.")


def cmd_evals_grade(ctx: AppContext, args) -> None:
    updated = ctx.evaluations().set_grade(args.evaluation_id, args.grade)
    if updated is not None and updated.grade is not None:
        print(f"Nota guardada: {updated.grade:.1f}")
    else:
        print("Nota eliminada.")


def cmd_evals_delete(ctx: AppContext, args) -> None:
    ctx.evaluations().delete(args.evaluation_id)
    print("Evaluación eliminada.")


# Views

def cmd_dashboard(ctx: AppContext, args) -> None:
    now = utc_now()
    summary = ctx.views().dashboard()
    noun = "evaluación pendiente" if summary.pending == 1 else "evaluaciones pendientes"
    print(f"¡Hola! Tienes {summary.pending} {noun}.")
    print(f"Total: {summary.total}  Listas: {summary.completed}  Pendientes: {summary.pending}")
    print()
    print("PRÓXIMAS ENTREGAS")
    if not summary.upcoming:
        print("  ¡Todo al día! No tienes evaluaciones pendientes")
        return
    for evaluation in summary.upcoming:
        subject = summary.subjects.get(evaluation.subject_id)
        subject_name = subject.name if subject else NO_SUBJECT_LABEL
        line = f"  {evaluation.title} — {subject_name}"
        if evaluation.due_date:
            line += f"  {format_due_date(evaluation.due_date, now, ctx.tz)}"
            badge = due_badge(evaluation.due_date, now)
            if badge:
                line += f"  [{badge}]"
        print(line)


def cmd_agenda(ctx: AppContext, args) -> None:
    now = utc_now()
    agenda = ctx.views().agenda(args.days, args.subject)
    print(f"{agenda.total_shown} de {agenda.total_pending} pendientes en los próximos {agenda.range_days} días")
    for day in agenda.days:
        print()
        print(f"{day.label.capitalize()} · {day.sub_label}")
        for evaluation in day.evaluations:
            subject = agenda.subjects.get(evaluation.subject_id)
            subject_name = subject.name if subject else NO_SUBJECT_LABEL
            badge = due_badge(evaluation.due_date, now)
            suffix = f"  [{badge}]" if badge else ""
            time_str = to_local(evaluation.due_date, ctx.tz).strftime("%H:%M")
            print(f"  {time_str}  {evaluation.title} — {subject_name}{suffix}")


def cmd_calendar(ctx: AppContext, args) -> None:
    if args.month:
        year, month = args.month
    else:
        today = to_local(utc_now(), ctx.tz)
        year, month = today.year, today.month
    view = ctx.views().calendar(year, month)

    print(f"{MONTHS[month - 1].capitalize()} {year}")
    print(" Lu  Ma  Mi  Ju  Vi  Sá  Do")
    for week in view.weeks():
        cells = []
        for day in week:
            if day is None:
                cells.append("    ")
            else:
                marker = "*" if day in view.by_day else " "
                cells.append(f"{day.day:>3}{marker}")
        print("".join(cells))
    for day, evaluations in view.by_day.items():
        titles = ", ".join(e.title for e in evaluations)
        print(f"  {day.day:>2}: {titles}")


# Reminders and notifications

def _print_urgent(evaluations: List[UrgentEvaluation]) -> None:
    print()
    print(f"⚠️  {len(evaluations)} entrega(s) en las próximas 24 horas")
    for item in evaluations:
        print(f"  {item.title}: {notification_body(item)}")


def _build_checker(ctx: AppContext) -> ReminderChecker:
    return ReminderChecker(
        ctx.client,
        ctx.platform,
        ctx.state,
        config=ctx.config.reminders,
        tz=ctx.tz,
        on_focus=lambda: print("(abre `uni-tracker agenda` para ver el detalle)"),
    )


def _maybe_prompt_permission(ctx: AppContext) -> None:
    if ctx.platform.should_prompt():
        ctx.platform.request_permission()


def cmd_reminders_check(ctx: AppContext, args) -> None:
    user_id = ctx.user_id()
    _maybe_prompt_permission(ctx)
    result = _build_checker(ctx).check_upcoming_evaluations(user_id)
    if result:
        _print_urgent(list(result))
    else:
        logger.info(f"No urgent evaluations ({result.reason})")


def cmd_reminders_watch(ctx: AppContext, args) -> None:
    user_id = ctx.user_id()
    _maybe_prompt_permission(ctx)
    checker = _build_checker(ctx)
    handle = checker.start(user_id, _print_urgent)
    try:
        while handle.is_alive():
            handle.join(1.0)
    except KeyboardInterrupt:
        logger.info("Stopping reminder checker...")
    finally:
        checker.stop()
        # The state store is closed by main once this returns
        handle.join()


def cmd_notifications_status(ctx: AppContext, args) -> None:
    print(f"Canal: {ctx.platform.name}")
    print(f"Permiso: {ctx.platform.permission()}")
    print(f"Aviso descartado: {'sí' if ctx.state.is_prompt_dismissed() else 'no'}")


def cmd_notifications_enable(ctx: AppContext, args) -> None:
    result = ctx.platform.request_permission()
    if result == DENIED:
        print("Las notificaciones están bloqueadas para este canal.")
    else:
        print(f"Permiso: {result}")


def cmd_notifications_dismiss(ctx: AppContext, args) -> None:
    ctx.platform.dismiss_prompt()
    print("No volveremos a preguntar por notificaciones.")


def _month_arg(value: str):
    try:
        return parse_month(value)
    except ValidationError as e:
        raise argparse.ArgumentTypeError(str(e))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="uni-tracker",
        description="Track course evaluations and get reminders before they are due"
    )
    commands = parser.add_subparsers(dest="command", required=True)

    login = commands.add_parser("login", help="Sign in with email and password")
    login.add_argument("email")
    login.add_argument("--password", default=None, help="Prompted when omitted")
    login.set_defaults(func=cmd_login)

    signup = commands.add_parser("signup", help="Create an account")
    signup.add_argument("email")
    signup.add_argument("--password", default=None, help="Prompted when omitted")
    signup.set_defaults(func=cmd_signup)

    commands.add_parser("logout", help="Sign out").set_defaults(func=cmd_logout)
    commands.add_parser("whoami", help="Show the signed-in user").set_defaults(func=cmd_whoami)

    subjects = commands.add_parser("subjects", help="Manage subjects").add_subparsers(dest="action", required=True)
    subjects.add_parser("list").set_defaults(func=cmd_subjects_list)
    add_subject = subjects.add_parser("add")
    add_subject.add_argument("name")
    add_subject.add_argument("--color", default=None)
    add_subject.set_defaults(func=cmd_subjects_add)
    delete_subject = subjects.add_parser("delete")
    delete_subject.add_argument("subject_id")
    delete_subject.set_defaults(func=cmd_subjects_delete)
    show_subject = subjects.add_parser("show")
    show_subject.add_argument("subject_id")
    show_subject.set_defaults(func=cmd_subjects_show)

    evals = commands.add_parser("evals", help="Manage evaluations").add_subparsers(dest="action", required=True)
    add_eval = evals.add_parser("add")
    add_eval.add_argument("subject_id")
    add_eval.add_argument("title")
    add_eval.add_argument("--due", default=None, help="YYYY-MM-DD HH:MM (local time); defaults to a week from now at 23:59")
    add_eval.add_argument("--type", choices=sorted(EVALUATION_TYPES), default="prueba")
    add_eval.add_argument("--weight", default=None, help="Percentage 0-100")
    add_eval.set_defaults(func=cmd_evals_add)
    for name, func in (("complete", cmd_evals_complete), ("toggle", cmd_evals_toggle), ("delete", cmd_evals_delete)):
        action = evals.add_parser(name)
        action.add_argument("evaluation_id")
        action.set_defaults(func=func)
    grade = evals.add_parser("grade")
    grade.add_argument("evaluation_id")
    grade.add_argument("grade", nargs="?", default=None, help="1.0-7.0; omit to clear")
    grade.set_defaults(func=cmd_evals_grade)

    commands.add_parser("dashboard", help="Pending work at a glance").set_defaults(func=cmd_dashboard)

    agenda = commands.add_parser("agenda", help="Upcoming evaluations grouped by day")
    agenda.add_argument("--days", type=int, choices=AGENDA_RANGES, default=30)
    agenda.add_argument("--subject", default=None, help="Only this subject id")
    agenda.set_defaults(func=cmd_agenda)

    cal = commands.add_parser("calendar", help="Month view")
    cal.add_argument("--month", type=_month_arg, default=None, help="YYYY-MM (defaults to this month)")
    cal.set_defaults(func=cmd_calendar)

    reminders = commands.add_parser("reminders", help="Due-date reminders").add_subparsers(dest="action", required=True)
    reminders.add_parser("check", help="Check once").set_defaults(func=cmd_reminders_check)
    reminders.add_parser("watch", help="Check now and every interval until interrupted").set_defaults(func=cmd_reminders_watch)

    notifications = commands.add_parser("notifications", help="Notification permission").add_subparsers(dest="action", required=True)
    notifications.add_parser("status").set_defaults(func=cmd_notifications_status)
    notifications.add_parser("enable").set_defaults(func=cmd_notifications_enable)
    notifications.add_parser("dismiss").set_defaults(func=cmd_notifications_dismiss)

    return parser


def main(argv=None):
    """Main entry point with command-line argument parsing."""
    args = build_parser().parse_args(argv)

    try:
        config = load_config()
    except ValueError as e:
        logger.error(f"Configuration error: {e}")
        sys.exit(1)

    ctx = _build_context(config)
    try:
        args.func(ctx, args)
    except (AuthError, ValidationError) as e:
        print(str(e), file=sys.stderr)
        sys.exit(1)
    except BackendError as e:
        logger.error(f"Backend error: {e.message}")
        sys.exit(1)
    finally:
        ctx.client.close()
        ctx.state.close()


if __name__ == "__main__":
    main()
