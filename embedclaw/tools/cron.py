"""Scheduled jobs that inject messages into the agent, and their tools."""

from __future__ import annotations

import enum
import json
import logging
import os
import secrets
import threading
import time
from dataclasses import dataclass, replace
from typing import Any, Callable

from embedclaw.config import Settings
from embedclaw.tools.base import (
    InvalidArgumentError,
    NotFoundError,
    Tool,
    ToolFailedError,
)

_log = logging.getLogger(__name__)

_DEFAULTS = Settings()
MAX_CRON_JOBS = _DEFAULTS.max_cron_jobs
CHECK_INTERVAL_S = _DEFAULTS.cron_check_interval_s
DEFAULT_CRON_FILE = _DEFAULTS.cron_file()

SYSTEM_CHANNEL = "system"
DEFAULT_CHAT_ID = "cron"

_NAME_MAX = 31
_MESSAGE_MAX = 255
_CHANNEL_MAX = 15
_CHAT_ID_MAX = 31
_JOB_ID_INPUT_MAX = 15

Inbound = Callable[[str, str, str], Any]
RequiresChatId = Callable[[str], bool]
ValidateChatId = Callable[[str, str], bool]

CRON_ADD_DESCRIPTION = (
    "Schedule a recurring or one-shot task. The message will trigger an agent "
    "turn when the job fires."
)
CRON_ADD_SCHEMA = (
    '{"type":"object",'
    '"properties":{'
    '"name":{"type":"string","description":"Short name for the job"},'
    '"schedule_type":{"type":"string","description":"\'every\' for recurring interval '
    'or \'at\' for one-shot at a unix timestamp"},'
    '"interval_s":{"type":"integer","description":"Interval in seconds (required for \'every\')"},'
    '"at_epoch":{"type":"integer","description":"Unix timestamp to fire at (required for \'at\')"},'
    '"message":{"type":"string","description":"Message to inject when the job fires, '
    'triggering an agent turn"},'
    '"channel":{"type":"string","description":"Optional reply channel (e.g. \'feishu\' or '
    '\'qq\'). If omitted, current turn channel is used when available"},'
    '"chat_id":{"type":"string","description":"Optional reply chat_id. Required for channels '
    'that need an explicit destination such as \'feishu\' and \'qq\'"}'
    "},"
    '"required":["name","schedule_type","message"]}'
)
CRON_LIST_DESCRIPTION = "List all scheduled cron jobs with their status, schedule, and IDs."
CRON_LIST_SCHEMA = '{"type":"object","properties":{},"required":[]}'
CRON_REMOVE_DESCRIPTION = "Remove a scheduled cron job by its ID."
CRON_REMOVE_SCHEMA = (
    '{"type":"object",'
    '"properties":{"job_id":{"type":"string","description":"The 8-character job ID to remove"}},'
    '"required":["job_id"]}'
)


def _clip(text: str, limit: int) -> str:
    """Cut ``text`` to at most ``limit`` UTF-8 bytes without splitting a character."""
    data = text.encode("utf-8")
    if len(data) <= limit:
        return text
    return data[:limit].decode("utf-8", "ignore")


def _get_str(root: Any, key: str) -> str | None:
    value = root.get(key) if isinstance(root, dict) else None
    return value if isinstance(value, str) else None


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class CronKind(enum.Enum):
    """How a job is scheduled."""

    EVERY = "every"
    AT = "at"


@dataclass
class CronJob:
    """One scheduled job."""

    id: str = ""
    name: str = ""
    enabled: bool = False
    kind: CronKind = CronKind.EVERY
    interval_s: int = 0
    at_epoch: int = 0
    message: str = ""
    channel: str = ""
    chat_id: str = ""
    last_run: int = 0
    next_run: int = 0
    delete_after_run: bool = False

    def to_dict(self) -> dict[str, Any]:
        """The job as stored in the persisted job list."""
        item: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "enabled": self.enabled,
            "kind": self.kind.value,
        }
        if self.kind is CronKind.EVERY:
            item["interval_s"] = self.interval_s
        else:
            item["at_epoch"] = self.at_epoch
        item.update(
            message=self.message,
            channel=self.channel,
            chat_id=self.chat_id,
            last_run=self.last_run,
            next_run=self.next_run,
            delete_after_run=self.delete_after_run,
        )
        return item


class CronService:
    """Holds the job table, fires due jobs and backs the cron tools."""

    def __init__(
        self,
        path: str = DEFAULT_CRON_FILE,
        inbound: Inbound | None = None,
        requires_chat_id: RequiresChatId | None = None,
        validate_chat_id: ValidateChatId | None = None,
        clock: Callable[[], float] = time.time,
        persist: bool = True,
    ) -> None:
        self.path = path
        self.inbound = inbound
        self.requires_chat_id = requires_chat_id or (lambda channel: False)
        self.validate_chat_id = validate_chat_id or (lambda channel, chat_id: True)
        self.clock = clock
        self.persist = persist
        self.max_jobs = MAX_CRON_JOBS
        self._jobs: list[CronJob] = []
        self._lock = threading.RLock()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def _now(self) -> int:
        return int(self.clock())

    def jobs(self) -> list[CronJob]:
        """A snapshot of the scheduled jobs, in order."""
        with self._lock:
            return list(self._jobs)

    def _sanitize_destination(self, job: CronJob) -> bool:
        changed = False
        if not job.channel:
            job.channel = SYSTEM_CHANNEL
            changed = True
        if self.requires_chat_id(job.channel) and not self.validate_chat_id(
            job.channel, job.chat_id
        ):
            _log.warning(
                "Cron job %s has invalid %s chat_id, fallback to system:cron",
                job.id or "<new>",
                job.channel,
            )
            job.channel = SYSTEM_CHANNEL
            job.chat_id = DEFAULT_CHAT_ID
            changed = True
        elif not job.chat_id:
            job.chat_id = DEFAULT_CHAT_ID
            changed = True
        return changed

    def _compute_initial_next_run(self, job: CronJob) -> None:
        now = self._now()
        if job.kind is CronKind.EVERY:
            job.next_run = now + job.interval_s
        elif job.at_epoch > now:
            job.next_run = job.at_epoch
        else:
            job.next_run = 0
            job.enabled = False

    def add_job(self, job: CronJob) -> CronJob:
        """Assign an id, schedule ``job`` and store a copy; return ``job``."""
        with self._lock:
            if len(self._jobs) >= self.max_jobs:
                _log.warning("Max cron jobs reached (%d)", self.max_jobs)
                raise ToolFailedError(f"Max cron jobs reached ({self.max_jobs})")
            job.id = f"{secrets.randbits(32):08x}"
            self._sanitize_destination(job)
            job.enabled = True
            job.last_run = 0
            self._compute_initial_next_run(job)
            self._jobs.append(replace(job))
            self._save_quietly()
        _log.info(
            "Added cron job: %s (%s) kind=%s next_run=%d",
            job.name,
            job.id,
            job.kind.value,
            job.next_run,
        )
        return job

    def remove_job(self, job_id: str) -> None:
        """Remove the job with ``job_id``; raise NotFoundError if there is none."""
        with self._lock:
            for position, job in enumerate(self._jobs):
                if job.id == job_id:
                    _log.info("Removing cron job: %s (%s)", job.name, job_id)
                    del self._jobs[position]
                    self._save_quietly()
                    return
        _log.warning("Cron job not found: %s", job_id)
        raise NotFoundError(f"Cron job not found: {job_id}")

    def save(self) -> None:
        """Write the job table to ``path`` (a no-op when persistence is off)."""
        if not self.persist:
            return
        with self._lock:
            document = {"jobs": [job.to_dict() for job in self._jobs]}
            count = len(self._jobs)
        text = json.dumps(document, indent="\t", ensure_ascii=False)
        try:
            directory = os.path.dirname(self.path)
            if directory:
                os.makedirs(directory, exist_ok=True)
            with open(self.path, "w", encoding="utf-8") as f:
                f.write(text)
        except OSError as exc:
            _log.error("Failed to open %s for writing", self.path)
            raise ToolFailedError(f"Failed to write {self.path}: {exc}") from exc
        _log.info("Saved %d cron jobs to %s", count, self.path)

    def _save_quietly(self) -> None:
        try:
            self.save()
        except ToolFailedError as exc:
            _log.error("%s", exc)

    def process_due_jobs(self) -> int:
        """Fire every enabled job whose time has come; return how many fired."""
        now = self._now()
        fired = 0
        with self._lock:
            kept: list[CronJob] = []
            for job in self._jobs:
                if not job.enabled or job.next_run <= 0 or job.next_run > now:
                    kept.append(job)
                    continue

                _log.info("Cron job firing: %s (%s)", job.name, job.id)
                self._deliver(job)
                fired += 1
                job.last_run = now

                if job.kind is CronKind.AT:
                    if job.delete_after_run:
                        _log.info("Deleting one-shot job: %s", job.name)
                        continue
                    job.enabled = False
                    job.next_run = 0
                else:
                    job.next_run = now + job.interval_s
                kept.append(job)
            self._jobs = kept
            if fired:
                self._save_quietly()
        return fired

    def _deliver(self, job: CronJob) -> None:
        if self.inbound is None:
            _log.warning("No inbound sink; dropping cron message for %s", job.id)
            return
        try:
            self.inbound(job.channel, job.chat_id, job.message)
        except Exception as exc:  # the sink's failure must not stop the scheduler
            _log.warning("Failed to push cron message: %s", exc)

    def start(self, interval: float | None = None) -> None:
        """Start the background checker, firing due jobs every ``interval`` seconds."""
        with self._lock:
            if self._thread is not None and self._thread.is_alive():
                return
            now = self._now()
            for job in self._jobs:
                if job.enabled and job.next_run <= 0:
                    if job.kind is CronKind.EVERY:
                        job.next_run = now + job.interval_s
                    elif job.at_epoch > now:
                        job.next_run = job.at_epoch
            period = CHECK_INTERVAL_S if interval is None else interval
            self._stop.clear()
            self._thread = threading.Thread(
                target=self._run, args=(period,), name="cron", daemon=True
            )
            self._thread.start()
            count = len(self._jobs)
        _log.info("Cron service started (%d jobs, check every %ss)", count, period)

    def _run(self, period: float) -> None:
        while not self._stop.wait(period):
            self.process_due_jobs()

    def stop(self) -> None:
        """Stop the background checker and wait for it to finish."""
        self._stop.set()
        thread = self._thread
        if thread is not None:
            thread.join()
        self._thread = None

    def add_execute(self, input_json: str) -> str:
        """Tool entry point for ``cron_add``."""
        try:
            root = json.loads(input_json)
        except (TypeError, ValueError) as exc:
            raise InvalidArgumentError("Error: invalid JSON input") from exc

        name = _get_str(root, "name")
        schedule_type = _get_str(root, "schedule_type")
        message = _get_str(root, "message")
        if name is None or schedule_type is None or message is None:
            raise InvalidArgumentError(
                "Error: missing required fields (name, schedule_type, message)"
            )
        if not message:
            raise InvalidArgumentError("Error: message must not be empty")

        job = CronJob(name=_clip(name, _NAME_MAX), message=_clip(message, _MESSAGE_MAX))
        channel = _get_str(root, "channel")
        chat_id = _get_str(root, "chat_id")
        if channel is not None:
            job.channel = _clip(channel, _CHANNEL_MAX)
        if chat_id is not None:
            job.chat_id = _clip(chat_id, _CHAT_ID_MAX)

        if self.requires_chat_id(job.channel) and not self.validate_chat_id(
            job.channel, job.chat_id
        ):
            raise InvalidArgumentError(
                f"Error: cron_add with channel='{job.channel}' requires a valid chat_id"
            )

        if schedule_type == "every":
            job.kind = CronKind.EVERY
            interval = root.get("interval_s")
            if not _is_number(interval) or interval <= 0:
                raise InvalidArgumentError(
                    "Error: 'every' schedule requires positive 'interval_s'"
                )
            job.interval_s = int(interval)
            job.delete_after_run = False
        elif schedule_type == "at":
            job.kind = CronKind.AT
            at_epoch = root.get("at_epoch")
            if not _is_number(at_epoch):
                raise InvalidArgumentError(
                    "Error: 'at' schedule requires 'at_epoch' (unix timestamp)"
                )
            job.at_epoch = int(at_epoch)
            now = self._now()
            if job.at_epoch <= now:
                raise InvalidArgumentError(
                    f"Error: at_epoch {job.at_epoch} is in the past (now={now})"
                )
            job.delete_after_run = root.get("delete_after_run", True) is True
        else:
            raise InvalidArgumentError("Error: schedule_type must be 'every' or 'at'")

        try:
            self.add_job(job)
        except ToolFailedError as exc:
            raise ToolFailedError(f"Error: failed to add job ({exc})") from exc

        if job.kind is CronKind.EVERY:
            output = (
                f"OK: Added recurring job '{job.name}' (id={job.id}), runs every "
                f"{job.interval_s} seconds. Next run at epoch {job.next_run}."
            )
        else:
            suffix = " Will be deleted after firing." if job.delete_after_run else ""
            output = (
                f"OK: Added one-shot job '{job.name}' (id={job.id}), fires at epoch "
                f"{job.at_epoch}.{suffix}"
            )
        _log.info("cron_add: %s", output)
        return output

    def list_execute(self, input_json: str | None = None) -> str:
        """Tool entry point for ``cron_list``."""
        jobs = self.jobs()
        if not jobs:
            return "No cron jobs scheduled."
        lines = [f"Scheduled jobs ({len(jobs)}):\n"]
        for number, job in enumerate(jobs, start=1):
            state = "enabled" if job.enabled else "disabled"
            if job.kind is CronKind.EVERY:
                lines.append(
                    f'  {number}. [{job.id}] "{job.name}" \u2014 every {job.interval_s}s, '
                    f"{state}, next={job.next_run}, last={job.last_run}, "
                    f"ch={job.channel}:{job.chat_id}\n"
                )
            else:
                auto = " (auto-delete)" if job.delete_after_run else ""
                lines.append(
                    f'  {number}. [{job.id}] "{job.name}" \u2014 at {job.at_epoch}, '
                    f"{state}, last={job.last_run}, "
                    f"ch={job.channel}:{job.chat_id}{auto}\n"
                )
        _log.info("cron_list: %d jobs", len(jobs))
        return "".join(lines)

    def remove_execute(self, input_json: str) -> str:
        """Tool entry point for ``cron_remove``."""
        try:
            root = json.loads(input_json)
        except (TypeError, ValueError) as exc:
            raise InvalidArgumentError("Error: invalid JSON input") from exc
        job_id = _get_str(root, "job_id")
        if not job_id:
            raise InvalidArgumentError("Error: missing 'job_id' field")
        job_id = _clip(job_id, _JOB_ID_INPUT_MAX)
        try:
            self.remove_job(job_id)
        except NotFoundError as exc:
            _log.info("cron_remove: %s -> not found", job_id)
            raise NotFoundError(f"Error: job '{job_id}' not found") from exc
        _log.info("cron_remove: %s -> ok", job_id)
        return f"OK: Removed cron job {job_id}"

    def tools(self) -> list[Tool]:
        """The cron_add, cron_list and cron_remove tools bound to this service."""
        return [
            Tool("cron_add", CRON_ADD_DESCRIPTION, CRON_ADD_SCHEMA, self.add_execute),
            Tool("cron_list", CRON_LIST_DESCRIPTION, CRON_LIST_SCHEMA, self.list_execute),
            Tool(
                "cron_remove", CRON_REMOVE_DESCRIPTION, CRON_REMOVE_SCHEMA, self.remove_execute
            ),
        ]