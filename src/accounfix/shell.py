"""Interactive command shell.

The shell renders the dashboard, the record list and the record detail
view, and turns typed commands into Workbench calls. Commands that wait
on the AI service or the ERP (create, chat, sync) run as background
tasks so the prompt stays usable while they are in flight.
"""

from __future__ import annotations

import argparse
import asyncio
import base64
import contextlib
import json
import shlex
import sys
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import TYPE_CHECKING, NoReturn, TextIO

import structlog

from accounfix.core.store import InvalidStatusError
from accounfix.core.workbench import CHAT_BUSY_MESSAGE
from accounfix.models.error import ChatRole, DraftValidationError, ErrorDraft, ErrorRecord
from accounfix.models.stats import DashboardStats
from accounfix.utils.async_helpers import AccountFixError, AIServiceError, IntegrationError
from accounfix.utils.logging import bind_context, unbind_context
from accounfix.utils.metrics import get_metrics
from accounfix.utils.security import sanitize_for_logging

if TYPE_CHECKING:
    from accounfix.core.workbench import Workbench

log = structlog.get_logger()

PROMPT = "accounfix> "

HELP_TEXT = """\
Commands:
  dashboard                     Status counts and the most recent errors
  list [query]                  All errors, or those whose title/description match query
  show <id>                     Error details, AI suggestion and chat history
  back                          Leave the detail view
  create --title T --description D [--amount N] [--voucher V] [--image FILE.jpg]
         [--reporter NAME]      Report a new error; the AI classifies it
  status <id> <status>          Set status: Pending, Processing, Fixed or Rejected
  chat <id> <message>           Ask the AI assistant about an error
  sync <id>                     Push an error to Microsoft Dynamics 365
  export [path]                 Write the CSV report
  metrics [prometheus]          Session metrics as JSON or Prometheus text
  help                          This text
  quit | exit                   Leave (waits for running AI and ERP calls)

Tips for resolving discrepancies:
  - Reconcile bank balances with SUMIFS over the statement export before posting
  - Compare ledgers with XLOOKUP on voucher numbers to find missing entries
  - Use a PivotTable by account and period to locate where a difference starts
"""


class ShellUsageError(Exception):
    """A command was typed with missing or malformed arguments."""


class _CommandParser(argparse.ArgumentParser):
    """ArgumentParser that reports problems instead of exiting the process."""

    def error(self, message: str) -> NoReturn:
        raise ShellUsageError(f"{self.prog}: {message}")


def _build_create_parser() -> _CommandParser:
    parser = _CommandParser(prog="create", add_help=False)
    parser.add_argument("--title", required=True)
    parser.add_argument("--description", required=True)
    parser.add_argument("--amount", type=float)
    parser.add_argument("--voucher")
    parser.add_argument("--image", type=Path, help="JPEG file attached for the AI")
    parser.add_argument("--reporter")
    return parser


def format_stats(stats: DashboardStats) -> str:
    return (
        f"Total: {stats.total}  Pending: {stats.pending}  Processing: {stats.processing}  "
        f"Fixed: {stats.fixed}  Rejected: {stats.rejected}"
    )


def format_record_line(record: ErrorRecord) -> str:
    """One-line summary used by the dashboard and the list view."""
    synced = "  [synced]" if record.is_synced else ""
    return (
        f"#{record.id:<4} {record.status.value:<10} {record.priority.value:<7} "
        f"{record.category.value:<8} {record.title}{synced}"
    )


def format_record_detail(record: ErrorRecord) -> str:
    lines = [
        f"#{record.id} {record.title}",
        f"  Status:   {record.status.value}",
        f"  Priority: {record.priority.value}",
        f"  Category: {record.category.value}",
        f"  Reporter: {record.reporter}",
        f"  Created:  {record.created_at:%Y-%m-%d %H:%M} UTC",
    ]
    if record.amount is not None:
        lines.append(f"  Amount:   {record.amount:,.2f}")
    if record.voucher_no:
        lines.append(f"  Voucher:  {record.voucher_no}")
    if record.image_base64:
        lines.append("  Image:    attached")
    lines.append(f"  ERP:      {record.external_sync_id or 'not synced'}")
    lines += ["", f"  {record.description}"]
    if record.ai_suggestion:
        lines += ["", "AI suggestion:", f"  {record.ai_suggestion}"]
    if record.chat_history:
        lines += ["", "Chat:"]
        for message in record.chat_history:
            speaker = "You" if message.role == ChatRole.USER else "AI"
            lines.append(f"  {speaker}: {message.text}")
    return "\n".join(lines)


class Shell:
    """Line-oriented front end over a Workbench.

    Example:
        shell = Shell(workbench)
        await shell.run()
    """

    def __init__(self, workbench: Workbench, out: TextIO | None = None) -> None:
        self._workbench = workbench
        self._out = out or sys.stdout
        self._create_parser = _build_create_parser()
        self._tasks: set[asyncio.Task[None]] = set()
        self._commands: dict[str, Callable[[list[str]], None]] = {
            "dashboard": self._cmd_dashboard,
            "list": self._cmd_list,
            "show": self._cmd_show,
            "back": self._cmd_back,
            "create": self._cmd_create,
            "status": self._cmd_status,
            "chat": self._cmd_chat,
            "sync": self._cmd_sync,
            "export": self._cmd_export,
            "metrics": self._cmd_metrics,
            "help": self._cmd_help,
        }

    @property
    def has_pending(self) -> bool:
        """True while a create, chat or sync command is still running."""
        return bool(self._tasks)

    def write(self, text: str = "") -> None:
        print(text, file=self._out, flush=True)

    async def run(self) -> None:
        """Read commands from stdin until quit, exit or end of input."""
        self.write("AccounFix - accounting error tracker. Type 'help' for commands.")
        self._cmd_dashboard([])
        while True:
            try:
                line = await asyncio.to_thread(input, PROMPT)
            except EOFError:
                break
            if not await self.execute(line):
                break
        await self.wait_for_pending()

    async def execute(self, line: str) -> bool:
        """Run one command line.

        Returns:
            False when the command asks the shell to stop, True otherwise.
        """
        try:
            argv = shlex.split(line)
        except ValueError as e:
            self.write(f"Could not parse command: {e}")
            return True
        if not argv:
            return True

        name, args = argv[0].lower(), argv[1:]
        log.debug("shell_command", command=sanitize_for_logging(name))
        if name in ("quit", "exit"):
            return False

        handler = self._commands.get(name)
        if handler is None:
            self.write(f"Unknown command: {name}. Type 'help' for commands.")
            return True

        bind_context(command=name)
        try:
            handler(args)
        except ShellUsageError as e:
            self.write(str(e))
        except (AccountFixError, DraftValidationError) as e:
            self.write(f"Error: {e}")
        finally:
            unbind_context("command")
        return True

    async def wait_for_pending(self) -> None:
        """Wait for every background command to finish."""
        while self._tasks:
            await asyncio.gather(*self._tasks)

    def _spawn(self, work: Awaitable[None]) -> None:
        task = asyncio.create_task(self._guard(work))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _guard(self, work: Awaitable[None]) -> None:
        try:
            await work
        except (AccountFixError, DraftValidationError) as e:
            self.write(f"Error: {e}")
        except Exception as e:
            log.exception("background_command_failed", error=str(e))
            self.write(f"Error: unexpected failure: {e}")

    def _record_id(self, args: list[str], usage: str) -> str:
        if not args:
            raise ShellUsageError(f"usage: {usage}")
        return args[0].lstrip("#")

    def _require(self, record_id: str) -> ErrorRecord:
        record = self._workbench.store.get(record_id)
        if record is None:
            raise ShellUsageError(f"No error record with id {record_id}")
        return record

    # Commands

    def _cmd_help(self, args: list[str]) -> None:
        self.write(HELP_TEXT)

    def _cmd_dashboard(self, args: list[str]) -> None:
        stats, recent = self._workbench.dashboard()
        self.write(format_stats(stats))
        if recent:
            self.write("Recent errors:")
            for record in recent:
                self.write(format_record_line(record))

    def _cmd_list(self, args: list[str]) -> None:
        records = self._workbench.store.filter(" ".join(args))
        if not records:
            self.write("No matching errors.")
        for record in records:
            self.write(format_record_line(record))

    def _cmd_show(self, args: list[str]) -> None:
        record_id = self._record_id(args, "show <id>")
        record = self._workbench.store.select(record_id)
        if record is None:
            raise ShellUsageError(f"No error record with id {record_id}")
        self.write(format_record_detail(record))

    def _cmd_back(self, args: list[str]) -> None:
        self._workbench.store.clear_selection()
        self._cmd_list([])

    def _cmd_create(self, args: list[str]) -> None:
        options = self._create_parser.parse_args(args)
        image_base64 = None
        if options.image is not None:
            try:
                image_base64 = base64.b64encode(options.image.read_bytes()).decode("ascii")
            except OSError as e:
                raise ShellUsageError(f"Cannot read image {options.image}: {e}") from e

        draft = ErrorDraft(
            title=options.title,
            description=options.description,
            amount=options.amount,
            voucher_no=options.voucher,
            image_base64=image_base64,
            reporter=options.reporter,
        )
        # Blank fields are reported right away, before any AI call
        draft.validate()
        self.write("Analyzing with AI...")
        self._spawn(self._create(draft))

    async def _create(self, draft: ErrorDraft) -> None:
        record = await self._workbench.submit_error(draft)
        self.write(f"Created error #{record.id}:")
        self.write(format_record_line(record))
        if record.ai_suggestion:
            self.write(f"  AI suggestion: {record.ai_suggestion}")

    def _cmd_status(self, args: list[str]) -> None:
        if len(args) != 2:
            raise ShellUsageError("usage: status <id> <Pending|Processing|Fixed|Rejected>")
        record_id = self._record_id(args, "status <id> <status>")
        try:
            record = self._workbench.store.update_status(record_id, args[1])
        except InvalidStatusError as e:
            raise ShellUsageError(str(e)) from e
        if record is None:
            raise ShellUsageError(f"No error record with id {record_id}")
        self.write(f"#{record.id} is now {record.status.value}.")

    def _cmd_chat(self, args: list[str]) -> None:
        record_id = self._record_id(args, "chat <id> <message>")
        text = " ".join(args[1:])
        if not text.strip():
            raise ShellUsageError("usage: chat <id> <message>")
        self._require(record_id)
        self.write(f"You: {text}")
        self._spawn(self._chat(record_id, text))

    async def _chat(self, record_id: str, text: str) -> None:
        try:
            reply = await self._workbench.send_chat_message(record_id, text)
        except AIServiceError:
            self.write(f"AI (#{record_id}): {CHAT_BUSY_MESSAGE}")
            return
        if reply is not None:
            self.write(f"AI (#{record_id}): {reply.text}")

    def _cmd_sync(self, args: list[str]) -> None:
        record_id = self._record_id(args, "sync <id>")
        self._require(record_id)
        self._spawn(self._sync(record_id))

    async def _sync(self, record_id: str) -> None:
        # Success and failure both reach the user through the workbench notifier
        with contextlib.suppress(IntegrationError):
            await self._workbench.sync_to_erp(record_id)

    def _cmd_export(self, args: list[str]) -> None:
        path = Path(args[0]) if args else None
        try:
            written = self._workbench.export_report(path)
        except OSError as e:
            raise ShellUsageError(f"Cannot write report: {e}") from e
        self.write(f"Report written to {written}")

    def _cmd_metrics(self, args: list[str]) -> None:
        metrics = get_metrics()
        if args and args[0].lower() == "prometheus":
            self.write(metrics.to_prometheus_format())
        else:
            self.write(json.dumps(metrics.get_all_metrics(), indent=2))
