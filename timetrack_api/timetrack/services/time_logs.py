from __future__ import annotations

import logging
import uuid
from collections import OrderedDict
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple
from uuid import UUID

import pandas as pd
from sqlalchemy.ext.asyncio import AsyncSession

from timetrack.core.errors import BadRequestError, ForbiddenError, NotFoundError, ServiceError, UnprocessableError
from timetrack.db.models.projects import Project
from timetrack.db.models.tasks import Tag, Task
from timetrack.db.models.time_logs import TimeLog
from timetrack.db.models.users import User
from timetrack.repositories.clients import ClientRepository
from timetrack.repositories.projects import ProjectRepository
from timetrack.repositories.tasks import TagRepository, TaskRepository
from timetrack.repositories.teams import TeamRepository
from timetrack.repositories.time_logs import TimeLogRepository
from timetrack.schemas.time_logs import TimeLogWrite
from timetrack.services.base import BaseService
from timetrack.services.exports import read_spreadsheet, time_log_template
from timetrack.services.github import ClientFactory, GitHubService
from timetrack.services.notifications import NotificationService
from timetrack.services.rates import (
    DEFAULT_CURRENCY,
    amounts_by_currency,
    log_currency,
    member_hourly_rate,
    quantize,
    to_decimal,
)

logger = logging.getLogger(__name__)

EXPORT_COLUMNS = [
    "User Name",
    "Project Name",
    "Task Title",
    "Task Status",
    "Task Priority",
    "Task Due Date",
    "Start Timestamp",
    "End Timestamp",
    "Duration (hours)",
    "Note",
    "Is Paid",
    "Hourly Rate",
    "Paid Amount",
    "Currency",
    "Status",
    "Approver Name",
    "Comment",
]

IMPORT_COLUMNS = ["Project", "Start Timestamp", "End Timestamp", "Note"]
IMPORT_TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"
IMPORT_NOTE_MAX = 255

RateResolver = Callable[[TimeLog], Decimal]


# PUBLIC_INTERFACE
def normalize_interval(
    start: datetime, end: Optional[datetime]
) -> Tuple[datetime, Optional[datetime], Optional[Decimal]]:
    """
    Clamp a log interval to a single day and compute its duration in hours.

    An end falling on another date than the start keeps its time of day but is
    moved onto the start date. Duration is |end - start| in whole minutes / 60,
    rounded to 2 dp; a running log (no end) has no duration.
    """
    if end is None:
        return start, None, None
    if end.date() != start.date():
        end = end.replace(year=start.year, month=start.month, day=start.day)
    minutes = int(abs((end - start).total_seconds()) // 60)
    return start, end, quantize(Decimal(minutes) / Decimal(60))


def _hours(logs: Iterable[TimeLog]) -> float:
    return float(quantize(sum((to_decimal(log.duration) for log in logs), Decimal("0"))))


# PUBLIC_INTERFACE
async def rate_resolver(teams: TeamRepository, logs: Sequence[TimeLog]) -> RateResolver:
    """Price logs at the member's rate on their project, loading team entries in one query."""
    entries = await teams.entries_for_pairs((log.project.user_id, log.user_id) for log in logs)

    def rate_for(log: TimeLog) -> Decimal:
        return member_hourly_rate(log.project, log.user_id, entries.get((log.project.user_id, log.user_id)))

    return rate_for


# PUBLIC_INTERFACE
def compute_stats(logs: Sequence[TimeLog], rate_for: RateResolver) -> Dict[str, Any]:
    """
    Aggregate hours and amounts over the approved logs in `logs`.

    Unpaid figures only count billable time. Amounts are priced with `rate_for`
    and grouped by log currency.
    """
    approved = [log for log in logs if log.status == "approved"]
    unpaid = [log for log in approved if not log.is_paid and not log.non_billable]
    paid = [log for log in approved if log.is_paid]
    total = _hours(approved)
    return {
        "total_duration": total,
        "unpaid_hours": _hours(unpaid),
        "paid_hours": _hours(paid),
        "unbillable_hours": _hours(log for log in approved if log.non_billable),
        "weekly_average": round(total / 7, 2) if total > 0 else 0,
        "unpaid_amount_by_currency": amounts_by_currency(unpaid, rate_for),
        "paid_amount_by_currency": amounts_by_currency(paid, rate_for),
    }


def mark_paid_message(paid_count: int, skipped_count: int) -> str:
    message = f"{paid_count} time logs marked as paid."
    if skipped_count == 1:
        message += (
            " 1 time log entry was skipped because it doesn't have both start and end timestamps,"
            " is not approved or is not yours to pay."
        )
    elif skipped_count > 1:
        message += (
            f" {skipped_count} time log entries were skipped because they don't have both start and end"
            " timestamps, are not approved or are not yours to pay."
        )
    return message


def _format_ts(value: Optional[datetime]) -> str:
    return value.strftime(IMPORT_TIMESTAMP_FORMAT) if value else ""


def _parse_import_ts(value: str) -> datetime:
    return datetime.strptime(value.strip(), IMPORT_TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)


def _log_payload(log: TimeLog, actor: User) -> Dict[str, Any]:
    return {
        "time_log_id": str(log.id),
        "project_id": str(log.project_id),
        "project_name": log.project.name if log.project else None,
        "duration": float(log.duration) if log.duration is not None else None,
        "actor_id": str(actor.id),
        "actor_name": actor.name,
    }


class TimeLogService(BaseService):
    """Record, price, pay, report and import time logs."""

    def __init__(self, session: AsyncSession, github_client_factory: Optional[ClientFactory] = None) -> None:
        super().__init__(session)
        self.repo = TimeLogRepository(session)
        self.projects = ProjectRepository(session)
        self.tasks = TaskRepository(session)
        self.tags = TagRepository(session)
        self.teams = TeamRepository(session)
        self.clients = ClientRepository(session)
        self.notifications = NotificationService(session)
        self.github = GitHubService(session, client_factory=github_client_factory)

    # helpers

    async def _rate_resolver(self, logs: Sequence[TimeLog]) -> RateResolver:
        return await rate_resolver(self.teams, logs)

    async def _member_project(self, user: User, project_id: UUID) -> Project:
        project = await self.projects.get(project_id)
        if project is None:
            raise NotFoundError("Project not found.")
        if project.user_id != user.id and not any(m.member_id == user.id for m in project.members):
            raise ForbiddenError("You are not a member of this project.")
        return project

    async def _project_task(self, project: Project, task_id: Optional[UUID]) -> Optional[Task]:
        if task_id is None:
            return None
        task = await self.tasks.get(task_id)
        if task is None or task.project_id != project.id:
            raise BadRequestError("The selected task does not belong to the selected project.")
        return task

    async def _resolve_tags(self, user: User, names: Sequence[str]) -> List[Tag]:
        return [await self.tags.first_or_create(user.id, name) for name in names]

    async def _owned_log(self, user: User, time_log_id: UUID, action: str) -> TimeLog:
        log = await self.repo.get(time_log_id)
        if log is None:
            raise NotFoundError("Time log not found.")
        if log.user_id != user.id:
            raise ForbiddenError(f"You are not authorized to {action} this time log.")
        if log.is_paid:
            raise ForbiddenError(f"Paid time logs cannot be {action}d.")
        return log

    async def _apply(self, user: User, log: TimeLog, project: Project, task: Optional[Task], payload: TimeLogWrite) -> bool:
        """Copy payload fields onto the log. Returns True when the interval is complete."""
        start, end, duration = normalize_interval(payload.start_timestamp, payload.end_timestamp)
        team_entry = None if project.user_id == user.id else await self.teams.entry(project.user_id, user.id)
        log.project_id = project.id
        log.project = project
        log.task_id = task.id if task else None
        log.task = task
        log.start_timestamp = start
        log.end_timestamp = end
        log.duration = duration
        log.note = payload.note
        log.non_billable = payload.non_billable
        log.currency = log_currency(team_entry, user)
        log.hourly_rate = member_hourly_rate(project, user.id, team_entry)
        log.tags = await self._resolve_tags(user, payload.tags)
        if project.user_id == user.id:
            log.status = "approved"
            log.approved_by = user.id
            log.approved_at = datetime.now(timezone.utc)
        return end is not None

    async def _task_side_effects(self, user: User, project: Project, task: Optional[Task], payload: TimeLogWrite) -> bool:
        """Complete the linked task when asked. Returns True when its GitHub issue should be closed."""
        if task is None:
            return False
        if payload.mark_task_complete and task.status != "completed":
            task.status = "completed"
            if user.id != project.user_id:
                await self.notifications.notify(
                    project.user_id,
                    "task_completed",
                    {
                        "task_id": str(task.id),
                        "task_title": task.title,
                        "project_id": str(project.id),
                        "project_name": project.name,
                        "actor_id": str(user.id),
                        "actor_name": user.name,
                    },
                )
        return payload.close_github_issue

    async def _close_issue(self, project: Project, task: Task) -> None:
        """Close the task's GitHub issue with the project owner's token; failures only warn."""
        try:
            async with self.transaction():
                await self.github.close_task_issue(project.owner, task)
        except ServiceError as exc:
            logger.warning("Could not close GitHub issue for task %s: %s", task.id, exc.message)

    async def _save(self, user: User, log: TimeLog, payload: TimeLogWrite, project: Project, is_new: bool) -> TimeLog:
        task = await self._project_task(project, payload.task_id)
        close_issue = False
        async with self.transaction():
            complete = await self._apply(user, log, project, task, payload)
            if is_new:
                await self.repo.add(log)
            if complete:
                close_issue = await self._task_side_effects(user, project, task, payload)
                if user.id != project.user_id:
                    await self.notifications.notify(project.user_id, "time_log_entry", _log_payload(log, user))
            await self.repo.flush()
        await self.notifications.dispatch()
        if close_issue and task is not None:
            await self._close_issue(project, task)
        await self.repo.refresh(log)
        return log

    # PUBLIC_INTERFACE
    async def get(self, user: User, time_log_id: UUID) -> TimeLog:
        """A log visible to its owner and to whoever may approve it."""
        log = await self.repo.get(time_log_id)
        if log is None:
            raise NotFoundError("Time log not found.")
        if log.user_id != user.id and log.project_id not in await self.projects.approvable_project_ids(user.id):
            raise NotFoundError("Time log not found.")
        return log

    # PUBLIC_INTERFACE
    async def create(self, user: User, payload: TimeLogWrite) -> TimeLog:
        """
        Record a time log for the caller.

        The project owner's own logs are approved immediately. Completing a log
        notifies the team leader when the caller is someone else.
        """
        project = await self._member_project(user, payload.project_id)
        log = TimeLog(id=uuid.uuid4(), user_id=user.id, user=user, status="pending", is_paid=False)
        log = await self._save(user, log, payload, project, is_new=True)
        logger.info("Time log %s created on project %s (duration=%s)", log.id, project.id, log.duration)
        return log

    # PUBLIC_INTERFACE
    async def update(self, user: User, time_log_id: UUID, payload: TimeLogWrite) -> TimeLog:
        """Edit an unpaid log of the caller."""
        log = await self._owned_log(user, time_log_id, "update")
        project = await self._member_project(user, payload.project_id)
        return await self._save(user, log, payload, project, is_new=False)

    # PUBLIC_INTERFACE
    async def delete(self, user: User, time_log_id: UUID) -> None:
        """Delete an unpaid log of the caller."""
        log = await self._owned_log(user, time_log_id, "delete")
        async with self.transaction():
            await self.repo.delete(log)
        logger.info("Time log %s deleted", time_log_id)

    # PUBLIC_INTERFACE
    async def mark_paid(self, user: User, ids: Sequence[UUID]) -> Dict[str, Any]:
        """
        Mark approved, complete logs as paid and add their value to each project's paid amount.

        The caller must own the log or lead its project; other logs are skipped.
        Returns:
            {"paid_count", "skipped_count", "message"}
        """
        if not ids:
            raise BadRequestError("No time logs selected.")
        logs = await self.repo.get_many(ids)
        rate_for = await self._rate_resolver(logs)
        project_amounts: Dict[UUID, Decimal] = {}
        projects: Dict[UUID, Project] = {}
        paid = 0
        skipped = len(set(ids)) - len(logs)

        async with self.transaction():
            for log in logs:
                leader_id = log.project.user_id
                if (
                    not log.is_complete
                    or log.status != "approved"
                    or log.is_paid
                    or user.id not in (leader_id, log.user_id)
                ):
                    skipped += 1
                    continue
                rate = rate_for(log)
                log.is_paid = True
                log.hourly_rate = rate
                projects[log.project_id] = log.project
                project_amounts[log.project_id] = project_amounts.get(log.project_id, Decimal("0")) + (
                    to_decimal(log.duration) * rate
                )
                paid += 1

                data = _log_payload(log, user)
                if user.id == leader_id and user.id != log.user_id:
                    await self.notifications.notify(log.user_id, "time_log_paid", data)
                elif user.id != leader_id and user.id == log.user_id:
                    await self.notifications.notify(leader_id, "time_log_paid", data)

            for project_id, amount in project_amounts.items():
                project = projects[project_id]
                project.paid_amount = quantize(to_decimal(project.paid_amount) + amount)
        await self.notifications.dispatch()
        logger.info("Marked %d time logs as paid (%d skipped)", paid, skipped)
        return {"paid_count": paid, "skipped_count": skipped, "message": mark_paid_message(paid, skipped)}

    # PUBLIC_INTERFACE
    async def list_logs(
        self,
        user: User,
        *,
        member_id: Optional[UUID] = None,
        limit: Optional[int] = None,
        offset: int = 0,
        **filters,
    ) -> Tuple[List[TimeLog], Dict[str, Any]]:
        """
        Logs of the caller (or of one of the caller's team members) plus stats.

        Stats are computed over the whole filtered set, independent of paging.
        """
        owner_id = user.id
        if member_id is not None and member_id != user.id:
            if member_id not in await self.teams.member_ids(user.id):
                raise ForbiddenError("You are not authorized to view this member's time logs.")
            owner_id = member_id
        all_logs = await self.repo.list_time_logs(user_ids=[owner_id], **filters)
        rate_for = await self._rate_resolver(all_logs)
        stats = compute_stats(all_logs, rate_for)
        end = offset + limit if limit is not None else None
        return all_logs[offset:end], stats

    # PUBLIC_INTERFACE
    async def project_logs(self, user: User, project_id: UUID, **filters) -> Tuple[List[TimeLog], Dict[str, Any]]:
        """Project owner and approvers see every log on the project; members see their own."""
        project = await self._member_project(user, project_id)
        user_ids = None
        if project.id not in await self.projects.approvable_project_ids(user.id):
            user_ids = [user.id]
        logs = await self.repo.list_time_logs(user_ids=user_ids, project_id=project.id, **filters)
        return logs, compute_stats(logs, await self._rate_resolver(logs))

    # PUBLIC_INTERFACE
    async def unpaid_by_client(self, user: User, client_id: UUID) -> List[Dict[str, Any]]:
        """
        Approved, unpaid, billable and uninvoiced logs of a client's projects, grouped per project.

        Rate falls back from the client to the user to 0; currency from client to user to USD.
        """
        client = await self.clients.get_owned(client_id, user.id)
        if client is None:
            raise NotFoundError("Client not found.")
        projects = await self.clients.projects(client.id)
        logs = await self.repo.unpaid_uninvoiced([p.id for p in projects])

        hourly_rate = float(to_decimal(client.hourly_rate or user.hourly_rate))
        currency = client.currency or user.currency or DEFAULT_CURRENCY
        groups: "OrderedDict[UUID, Dict[str, Any]]" = OrderedDict()
        for log in logs:
            group = groups.get(log.project_id)
            if group is None:
                group = groups[log.project_id] = {
                    "project_id": log.project_id,
                    "project_name": log.project.name,
                    "total_hours": Decimal("0"),
                    "hourly_rate": hourly_rate,
                    "currency": currency,
                    "time_logs": [],
                }
            group["time_logs"].append(log)
            if not log.non_billable:
                group["total_hours"] += to_decimal(log.duration)
        for group in groups.values():
            group["total_hours"] = float(quantize(group["total_hours"]))
        return list(groups.values())

    async def _team_ids(self, user: User) -> List[UUID]:
        return [user.id, *await self.teams.member_ids(user.id)]

    # PUBLIC_INTERFACE
    async def daily_trend(
        self,
        user: User,
        days: int = 7,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> List[Dict[str, Any]]:
        """Approved hours per day for the caller and for the caller's whole team."""
        if start_date or end_date:
            start_date = start_date or date.today()
            end_date = end_date or date.today()
            if end_date < start_date:
                start_date, end_date = end_date, start_date
        else:
            end_date = date.today()
            start_date = end_date - timedelta(days=max(1, days) - 1)

        logs = await self.repo.list_time_logs(
            user_ids=await self._team_ids(user),
            status="approved",
            start_date=datetime.combine(start_date, time.min, tzinfo=timezone.utc),
            end_date=datetime.combine(end_date, time.max, tzinfo=timezone.utc),
        )
        by_day: Dict[date, List[TimeLog]] = {}
        for log in logs:
            by_day.setdefault(log.start_timestamp.date(), []).append(log)

        trend = []
        for offset in range((end_date - start_date).days + 1):
            day = start_date + timedelta(days=offset)
            day_logs = by_day.get(day, [])
            trend.append(
                {
                    "date": day,
                    "user_hours": _hours(log for log in day_logs if log.user_id == user.id),
                    "team_hours": _hours(day_logs),
                }
            )
        return trend

    # PUBLIC_INTERFACE
    async def recent(self, user: User, limit: int = 5) -> List[TimeLog]:
        """Most recent approved logs across the caller's team."""
        return await self.repo.list_time_logs(user_ids=await self._team_ids(user), status="approved", limit=limit)

    # PUBLIC_INTERFACE
    async def export_frame(self, user: User, **filters) -> pd.DataFrame:
        """The caller's logs as a DataFrame with the export headers."""
        logs = await self.repo.list_time_logs(user_ids=[user.id], **filters)
        rows = []
        for log in logs:
            task = log.task
            duration = to_decimal(log.duration)
            rate = to_decimal(log.hourly_rate)
            rows.append(
                [
                    log.user.name if log.user else "",
                    log.project.name if log.project else "",
                    task.title if task else "No Task",
                    task.status if task else "",
                    task.priority if task else "",
                    task.due_date.isoformat() if task and task.due_date else "",
                    _format_ts(log.start_timestamp),
                    _format_ts(log.end_timestamp),
                    float(duration) if log.duration is not None else "",
                    log.note or "",
                    "Yes" if log.is_paid else "No",
                    float(rate),
                    float(quantize(duration * rate)) if log.is_paid else 0.0,
                    log.currency,
                    log.status,
                    log.approver.name if log.approver else "",
                    log.comment or "",
                ]
            )
        return pd.DataFrame(rows, columns=EXPORT_COLUMNS)

    # PUBLIC_INTERFACE
    async def template(self, user: User):
        """Import template with the caller's projects offered in a dropdown."""
        projects = await self.projects.user_projects(user.id)
        return time_log_template([p.name for p in projects])

    def _validate_row(self, number: int, row: Dict[str, str], projects: Dict[str, Project]) -> Tuple[List[str], Any]:
        prefix = f"Row #{number}: "
        name = (row.get("Project") or "").strip()
        start_raw = (row.get("Start Timestamp") or "").strip()
        end_raw = (row.get("End Timestamp") or "").strip()
        note = (row.get("Note") or "").strip()
        if not name or not start_raw or not note:
            return [prefix + "Missing required fields."], None
        project = projects.get(name)
        if project is None:
            return [prefix + f"Project '{name}' not found or you don't have access to it."], None

        problems = []
        start = end = None
        try:
            start = _parse_import_ts(start_raw)
        except ValueError:
            problems.append(f"The start timestamp must match the format {IMPORT_TIMESTAMP_FORMAT}.")
        if not end_raw:
            problems.append("The end timestamp field is required.")
        else:
            try:
                end = _parse_import_ts(end_raw)
            except ValueError:
                problems.append(f"The end timestamp must match the format {IMPORT_TIMESTAMP_FORMAT}.")
        if start and end and end <= start:
            problems.append("End timestamp must be after to start timestamp.")
        if len(note) > IMPORT_NOTE_MAX:
            problems.append(f"The note may not be greater than {IMPORT_NOTE_MAX} characters.")
        if problems:
            return [prefix + ", ".join(problems)], None
        return [], (project, start, end, note)

    # PUBLIC_INTERFACE
    async def import_file(self, user: User, content: bytes, filename: str) -> Dict[str, Any]:
        """
        Import logs from an uploaded .xlsx or .csv sheet.

        Rows are validated first; if any row is invalid nothing is imported and an
        UnprocessableError lists every problem as "Row #n: ...".
        """
        try:
            df = read_spreadsheet(content, filename)
        except ValueError as exc:
            raise BadRequestError(str(exc)) from exc
        missing = [column for column in IMPORT_COLUMNS if column not in df.columns]
        if missing:
            raise UnprocessableError(
                "Import failed. No records were imported.",
                details={"errors": [f"Missing column: {column}" for column in missing]},
            )

        projects = {p.name: p for p in await self.projects.user_projects(user.id)}
        errors: List[str] = []
        valid = []
        for index, row in enumerate(df.to_dict(orient="records")):
            row_errors, parsed = self._validate_row(index + 2, row, projects)
            errors.extend(row_errors)
            if parsed:
                valid.append(parsed)
        if errors:
            logger.info("Time log import rejected with %d errors", len(errors))
            raise UnprocessableError("Import failed. No records were imported.", details={"errors": errors})

        entries = await self.teams.entries_for_pairs((p.user_id, user.id) for p, _, _, _ in valid)
        async with self.transaction():
            for project, start, end, note in valid:
                start, end, duration = normalize_interval(start, end)
                team_entry = entries.get((project.user_id, user.id))
                is_leader = project.user_id == user.id
                await self.repo.add(
                    TimeLog(
                        user_id=user.id,
                        project_id=project.id,
                        start_timestamp=start,
                        end_timestamp=end,
                        duration=duration,
                        note=note,
                        is_paid=False,
                        currency=log_currency(team_entry, user),
                        hourly_rate=member_hourly_rate(project, user.id, team_entry),
                        status="approved" if is_leader else "pending",
                        approved_by=user.id if is_leader else None,
                        approved_at=datetime.now(timezone.utc) if is_leader else None,
                    )
                )
        logger.info("Imported %d time logs from %s", len(valid), filename)
        return {"imported_count": len(valid), "message": f"{len(valid)} time logs imported successfully."}
