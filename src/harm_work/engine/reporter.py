"""Compliance reporting over archived work sessions and breaks.

Read-only: the reporter only ever reads the monthly archives.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Iterable, TypeVar

from pydantic import BaseModel, Field

from ..clock import format_duration
from ..storage import BreakSessionRecord, StateStore, WorkSessionRecord
from ..timer.policy import UsageError

LOW_RATE = 0.5
HIGH_RATE = 0.8

RecordT = TypeVar("RecordT", WorkSessionRecord, BreakSessionRecord)


@dataclass(slots=True, frozen=True)
class ReportPeriod:
    """Inclusive range of local calendar days."""

    label: str
    since: date
    until: date

    @property
    def months(self) -> list[str]:
        months: list[str] = []
        cursor = self.since.replace(day=1)
        while cursor <= self.until:
            months.append(cursor.strftime("%Y-%m"))
            cursor = (cursor + timedelta(days=32)).replace(day=1)
        return months

    def contains(self, moment: datetime) -> bool:
        return self.since <= moment.astimezone().date() <= self.until

    @classmethod
    def for_month(cls, month: str | None = None, *, today: date | None = None) -> "ReportPeriod":
        if month is None:
            first = (today or date.today()).replace(day=1)
        else:
            try:
                first = datetime.strptime(month, "%Y-%m").date()
            except ValueError as exc:
                raise UsageError(f"Invalid month '{month}' (expected YYYY-MM)") from exc
        last = (first + timedelta(days=32)).replace(day=1) - timedelta(days=1)
        return cls(label=first.strftime("%Y-%m"), since=first, until=last)

    @classmethod
    def between(cls, since: date, until: date) -> "ReportPeriod":
        if until < since:
            raise UsageError("--until must not be earlier than --since")
        return cls(label=f"{since.isoformat()}..{until.isoformat()}", since=since, until=until)

    @classmethod
    def named(cls, name: str, *, today: date | None = None) -> "ReportPeriod":
        today = today or date.today()
        if name == "today":
            return cls(label="today", since=today, until=today)
        if name == "week":
            monday = today - timedelta(days=today.weekday())
            return cls(label="week", since=monday, until=today)
        if name == "month":
            return cls(label="month", since=today.replace(day=1), until=today)
        raise UsageError(f"Invalid period '{name}' (expected today, week or month)")


class ComplianceReport(BaseModel):
    period: str
    since: date
    until: date
    work_sessions: int = 0
    early_stops: int = 0
    breaks_taken: int = 0
    breaks_completed_fully: int = 0
    compliance_rate: float = Field(default=0.0, description="breaks_taken / work_sessions")
    completion_rate: float = Field(default=0.0, description="breaks_completed_fully / breaks_taken")
    average_break_seconds: int = 0
    average_planned_break_seconds: int = 0
    feedback: list[str] = Field(default_factory=list)


class WorkStats(BaseModel):
    period: str
    since: date
    until: date
    sessions: int = 0
    total_seconds: int = 0
    average_seconds: int = 0
    early_stops: int = 0


def _ratio(numerator: int, denominator: int) -> float:
    return numerator / denominator if denominator else 0.0


def compliance_feedback(report: ComplianceReport) -> list[str]:
    if report.work_sessions == 0:
        return ["No work sessions recorded in this period."]
    feedback: list[str] = []
    if report.compliance_rate < LOW_RATE:
        feedback.append(
            "Low break compliance. Consider enabling require_break and block_project_switch "
            "(`harm-work options set require_break true`)."
        )
    if report.breaks_taken and report.completion_rate < LOW_RATE:
        feedback.append("Many breaks stopped early. Try letting the timer run to the end.")
    if report.compliance_rate >= HIGH_RATE and report.completion_rate >= HIGH_RATE:
        feedback.append("Excellent break discipline. Keep it up!")
    return feedback


class ComplianceReporter:
    def __init__(self, store: StateStore) -> None:
        self._store = store

    def _in_period(self, records: Iterable[RecordT], period: ReportPeriod) -> list[RecordT]:
        return [record for record in records if period.contains(record.end_time)]

    def report(self, period: ReportPeriod) -> ComplianceReport:
        sessions = self._in_period(self._store.work_records(period.months), period)
        breaks = self._in_period(self._store.break_records(period.months), period)
        completed = [record for record in breaks if record.completed_fully]

        report = ComplianceReport(
            period=period.label,
            since=period.since,
            until=period.until,
            work_sessions=len(sessions),
            early_stops=sum(1 for record in sessions if record.early_stop),
            breaks_taken=len(breaks),
            breaks_completed_fully=len(completed),
            compliance_rate=_ratio(len(breaks), len(sessions)),
            completion_rate=_ratio(len(completed), len(breaks)),
            average_break_seconds=sum(r.duration_seconds for r in breaks) // len(breaks) if breaks else 0,
            average_planned_break_seconds=(
                sum(r.planned_duration_seconds for r in breaks) // len(breaks) if breaks else 0
            ),
        )
        report.feedback = compliance_feedback(report)
        return report

    def work_stats(self, period: ReportPeriod) -> WorkStats:
        sessions = self._in_period(self._store.work_records(period.months), period)
        total = sum(record.duration_seconds for record in sessions)
        return WorkStats(
            period=period.label,
            since=period.since,
            until=period.until,
            sessions=len(sessions),
            total_seconds=total,
            average_seconds=total // len(sessions) if sessions else 0,
            early_stops=sum(1 for record in sessions if record.early_stop),
        )


def render_report(report: ComplianceReport) -> str:
    lines = [
        f"Break compliance report ({report.period})",
        "",
        f"  Work sessions:          {report.work_sessions}",
        f"  Early stops:            {report.early_stops}",
        f"  Breaks taken:           {report.breaks_taken}",
        f"  Breaks completed fully: {report.breaks_completed_fully}",
        f"  Compliance rate:        {round(report.compliance_rate * 100)}%",
        f"  Completion rate:        {round(report.completion_rate * 100)}%",
    ]
    if report.breaks_taken:
        lines.append(
            f"  Average break:          {format_duration(report.average_break_seconds)} "
            f"(planned {format_duration(report.average_planned_break_seconds)})"
        )
    if report.feedback:
        lines.append("")
        lines.extend(f"  {item}" for item in report.feedback)
    return "\n".join(lines)


def render_stats(stats: WorkStats) -> str:
    return "\n".join(
        [
            f"Work stats ({stats.period}: {stats.since.isoformat()} to {stats.until.isoformat()})",
            f"  Sessions:     {stats.sessions}",
            f"  Total time:   {format_duration(stats.total_seconds)}",
            f"  Average:      {format_duration(stats.average_seconds)}",
            f"  Early stops:  {stats.early_stops}",
        ]
    )


__all__ = [
    "ComplianceReport",
    "ComplianceReporter",
    "ReportPeriod",
    "WorkStats",
    "compliance_feedback",
    "render_report",
    "render_stats",
]
