"""Job registry, recurring runner and the built-in jobs."""

from bugops.jobs.controllers import Controller, ControllerSettings, build_controllers
from bugops.jobs.models import (
    CronSchedule,
    ExecutionMode,
    IntervalSchedule,
    Job,
    JobContext,
    ReportJob,
    RunContext,
    Schedule,
)
from bugops.jobs.registry import JobHandle, JobRegistry, ReportFactory, build_registry
from bugops.jobs.reports import BUILTIN_REPORTS, ReportFunction, ScheduledReport, report_factories
from bugops.jobs.runner import JobRunner

__all__ = [
    "BUILTIN_REPORTS",
    "Controller",
    "ControllerSettings",
    "CronSchedule",
    "ExecutionMode",
    "IntervalSchedule",
    "Job",
    "JobContext",
    "JobHandle",
    "JobRegistry",
    "JobRunner",
    "ReportFactory",
    "ReportFunction",
    "ReportJob",
    "RunContext",
    "Schedule",
    "ScheduledReport",
    "build_controllers",
    "build_registry",
    "report_factories",
]
