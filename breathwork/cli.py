"""Breathwork command-line interface.

Argparse-based CLI that initializes structured logging early. Exposed via
``python -m breathwork`` and the ``breathwork`` console script.
"""

from __future__ import annotations

import argparse
import json
import logging
import signal
import sys
from datetime import date
from typing import Optional

from .api import ApiError, BreathworkApiClient
from .config import ClientConfig
from .controls import HELP_LINE, SessionControls, attach_stdin
from .history import SessionJournal, summarize, weekly_summary
from .logging_utils import LogMode, get_default_log_path, setup_logging
from .session import (
    BUILTIN_PATTERNS,
    BreathingSessionEngine,
    GoalKind,
    Pattern,
    SessionEvent,
    SessionEventType,
    SessionGoal,
    SessionSummary,
    get_pattern,
    parse_sequence,
)
from .session.guide import format_clock, phase_label

log = logging.getLogger(__name__)


def _add_logging_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="WARNING",
        help="Set log level (default: WARNING)",
    )
    parser.add_argument(
        "--log-mode",
        choices=[mode.value for mode in LogMode],
        default=LogMode.NORMAL.value,
        help="Logging preset: quiet suppresses console info, perf forces DEBUG",
    )
    parser.add_argument(
        "--log-file",
        default=str(get_default_log_path()),
        help="Path to log file (default: per-user Breathwork directory)",
    )
    parser.add_argument(
        "--log-format",
        choices=["plain", "json"],
        default="plain",
        help="Log format (plain or json)",
    )


def _build_logging_parent() -> argparse.ArgumentParser:
    parent = argparse.ArgumentParser(add_help=False)
    _add_logging_args(parent)
    return parent


def _parse_day(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"expected YYYY-MM-DD, got {value!r}") from exc


def _positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"expected a positive integer, got {value!r}") from exc
    if number <= 0:
        raise argparse.ArgumentTypeError(f"expected a positive integer, got {value!r}")
    return number


def build_parser() -> argparse.ArgumentParser:
    logging_parent = _build_logging_parent()
    parser = argparse.ArgumentParser(
        description="Breathwork CLI",
        parents=[logging_parent],
    )
    sub = parser.add_subparsers(dest="command", required=False)

    def add_subparser(name: str, **kwargs: object) -> argparse.ArgumentParser:
        parents = list(kwargs.pop("parents", []))
        parents.insert(0, logging_parent)
        return sub.add_parser(name, parents=parents, **kwargs)

    api_parent = argparse.ArgumentParser(add_help=False)
    api_parent.add_argument("--api-url", type=str, default=None, help="Sessions API base URL (default: http://localhost:$PORT)")
    api_parent.add_argument("--offline", action="store_true", help="Use the local session journal instead of the API")

    p_patterns = add_subparser("patterns", help="List built-in breathing patterns")
    p_patterns.add_argument("--json", action="store_true", help="Print patterns as JSON")

    p_run = add_subparser("run", parents=[api_parent], help="Run a guided session in the terminal (default)")
    p_run.add_argument("--pattern", type=str, default=None, help="Pattern key, name or 4-7-8 style key (default from settings)")
    p_run.add_argument("--sequence", type=str, default=None, help="Custom phase durations, e.g. 4-2-6")
    goal = p_run.add_mutually_exclusive_group()
    goal.add_argument("--breaths", type=_positive_int, default=None, help="End after N breaths")
    goal.add_argument("--duration", type=_positive_int, default=None, help="End after N seconds")
    sound = p_run.add_mutually_exclusive_group()
    sound.add_argument("--sound", dest="sound", action="store_true", default=None, help="Play audio cues")
    sound.add_argument("--no-sound", dest="sound", action="store_false", help="Disable audio cues")

    p_history = add_subparser("history", parents=[api_parent], help="List past sessions")
    p_history.add_argument("--date", type=_parse_day, default=None, help="Only sessions on YYYY-MM-DD")
    p_history.add_argument("--json", action="store_true", help="Print sessions as JSON")

    p_stats = add_subparser("stats", parents=[api_parent], help="Show practice statistics")
    p_stats.add_argument("--week", type=_parse_day, nargs="?", const=date.today(), default=None,
                         help="Weekly overview for the week containing YYYY-MM-DD (default: this week)")
    p_stats.add_argument("--json", action="store_true", help="Print statistics as JSON")

    p_fav = add_subparser("favorites", parents=[api_parent], help="Manage favorite patterns")
    fav_sub = p_fav.add_subparsers(dest="favorites_cmd", required=True)
    fav_sub.add_parser("list", help="List favorite patterns")
    fav_add = fav_sub.add_parser("add", help="Save a favorite pattern")
    fav_add.add_argument("name", help="Display name")
    fav_add.add_argument("sequence", help="Phase durations, e.g. 4-7-8")
    fav_add.add_argument("--quick", action="store_true", help="Mark as quick-save")
    fav_rm = fav_sub.add_parser("remove", help="Delete a favorite pattern")
    fav_rm.add_argument("id", type=int, help="Favorite id")

    add_subparser("selftest", help="Quick environment/import check")
    return parser


def _load_config(args: argparse.Namespace) -> ClientConfig:
    return ClientConfig.load().override(
        api_url=getattr(args, "api_url", None),
        offline=True if getattr(args, "offline", False) else None,
        sound_enabled=getattr(args, "sound", None),
    )


def _store_for(config: ClientConfig):
    if config.offline:
        return SessionJournal()
    return BreathworkApiClient(config)


def _resolve_pattern(args: argparse.Namespace, config: ClientConfig) -> Optional[Pattern]:
    if getattr(args, "sequence", None):
        return parse_sequence(args.sequence)
    identifier = getattr(args, "pattern", None) or config.default_pattern
    pattern = get_pattern(identifier)
    if pattern is None:
        try:
            # Accept ad-hoc keys like "3-3-6" as well as catalog entries.
            return parse_sequence(identifier)
        except ValueError:
            return None
    return pattern


def _print_json(data) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False))


def cmd_patterns(args: argparse.Namespace) -> int:
    if args.json:
        _print_json([p.to_dict() for p in BUILTIN_PATTERNS.values()])
        return 0
    for p in BUILTIN_PATTERNS.values():
        print(f"{p.key:<6} {p.pattern_key:<9} {p.name}")
    return 0


class _ConsoleGuide:
    """Prints phase changes and holds as the engine emits them."""

    def __init__(self, engine: BreathingSessionEngine, out=None):
        self.engine = engine
        self.out = out or sys.stdout
        emitter = engine.event_emitter
        emitter.subscribe(SessionEventType.SESSION_START, self._on_phase)
        emitter.subscribe(SessionEventType.PHASE_CHANGE, self._on_phase)
        emitter.subscribe(SessionEventType.SESSION_RESUME, self._on_phase)
        emitter.subscribe(SessionEventType.SESSION_PAUSE, self._on_pause)
        emitter.subscribe(SessionEventType.HOLD_START, self._on_hold_start)
        emitter.subscribe(SessionEventType.HOLD_END, self._on_hold_end)
        emitter.subscribe(SessionEventType.GOAL_REACHED, self._on_goal)
        emitter.subscribe(SessionEventType.PERSIST_FAILED, self._on_persist_failed)

    def _write(self, text: str) -> None:
        print(text, file=self.out, flush=True)

    def _on_pause(self, event: SessionEvent) -> None:
        self._write(f"[{format_clock(self.engine.elapsed_time)}] Paused")

    def _on_hold_start(self, event: SessionEvent) -> None:
        self._write(f"[{format_clock(self.engine.elapsed_time)}] Holding... (h to release)")

    def _on_hold_end(self, event: SessionEvent) -> None:
        stats = (event.data or {}).get("hold_stats", {})
        self._write(
            f"Hold {format_clock((event.data or {}).get('duration', 0))}  "
            f"(holds {stats.get('holdCount', 0)}, best {format_clock(stats.get('longestHold', 0))})"
        )

    def _on_phase(self, event: SessionEvent) -> None:
        data = event.data or {}
        phase = int(data.get("phase", 0))
        label = phase_label(self.engine.pattern, phase)
        duration = self.engine.pattern.duration_of(phase)
        self._write(
            f"[{format_clock(self.engine.elapsed_time)}] breaths={self.engine.breath_count:<4} "
            f"{label} {duration:g}s"
        )

    def _on_goal(self, event: SessionEvent) -> None:
        data = event.data or {}
        self._write(f"Goal reached: {data.get('target')} {data.get('kind')}")

    def _on_persist_failed(self, event: SessionEvent) -> None:
        self._write(f"Session not saved: {(event.data or {}).get('error')}")


def _print_summary(summary: SessionSummary) -> None:
    print(
        f"Session complete: {summary.pattern}  time {format_clock(summary.duration)}  "
        f"breaths {summary.breath_count}  holds {summary.hold_count} "
        f"(best {format_clock(summary.longest_hold)})"
    )


def cmd_run(args: argparse.Namespace, config: ClientConfig) -> int:
    try:
        pattern = _resolve_pattern(args, config)
    except ValueError as exc:
        print(f"run: {exc}")
        return 2
    if pattern is None:
        print(f"run: unknown pattern {args.pattern!r} (see 'breathwork patterns')")
        return 2

    goal = None
    if args.breaths:
        goal = SessionGoal(GoalKind.BREATHS, args.breaths)
    elif args.duration:
        goal = SessionGoal(GoalKind.DURATION, args.duration)

    from PyQt6.QtCore import QCoreApplication, QTimer
    from .session.clock import QtScheduler

    app = QCoreApplication.instance() or QCoreApplication([])
    engine = BreathingSessionEngine(
        pattern,
        scheduler=QtScheduler(),
        persistence=_store_for(config),
        goal=goal,
    )
    _ConsoleGuide(engine)
    stdin_notifier = attach_stdin(SessionControls(engine))
    chime = None
    if config.sound_enabled:
        from .session.audio import PhaseChime
        chime = PhaseChime(engine)

    result: dict[str, SessionSummary] = {}

    def _on_end(event: SessionEvent) -> None:
        result["summary"] = SessionSummary.from_dict(event.data or {})
        app.quit()

    engine.event_emitter.subscribe(SessionEventType.SESSION_END, _on_end)

    previous_handler = signal.signal(signal.SIGINT, lambda *_: engine.end())
    # Idle timer so SIGINT is delivered while Qt owns the loop.
    wake = QTimer()
    wake.timeout.connect(lambda: None)
    wake.start(200)

    print(f"{pattern.name} ({pattern.pattern_key}) - Ctrl+C to finish")
    if stdin_notifier is not None:
        print(HELP_LINE)
    try:
        engine.start()
        app.exec()
    finally:
        wake.stop()
        if stdin_notifier is not None:
            stdin_notifier.setEnabled(False)
        signal.signal(signal.SIGINT, previous_handler)
        if chime is not None:
            chime.detach()
        engine.close()

    summary = result.get("summary")
    if summary is not None:
        _print_summary(summary)
    return 0


def cmd_history(args: argparse.Namespace, config: ClientConfig) -> int:
    if config.offline:
        journal = SessionJournal()
        records = journal.sessions_on(args.date) if args.date else list(reversed(journal.load()))
        rows = [r.to_dict() for r in records]
    else:
        rows = BreathworkApiClient(config).list_sessions(args.date)

    if args.json:
        _print_json(rows)
        return 0
    if not rows:
        print("No sessions.")
        return 0
    for row in rows:
        when = str(row.get("completedAt", ""))[:16].replace("T", " ")
        print(
            f"{when:<16}  {row.get('pattern', ''):<9} {format_clock(row.get('duration', 0)):>7}  "
            f"breaths {row.get('breathCount', 0)}"
        )
    return 0


def cmd_stats(args: argparse.Namespace, config: ClientConfig) -> int:
    today = date.today()
    if args.week is not None:
        if config.offline:
            records = SessionJournal().load()
        else:
            records = [SessionSummary.from_dict(r) for r in BreathworkApiClient(config).list_sessions()]
        data = weekly_summary(records, args.week)
    elif config.offline:
        data = summarize(SessionJournal().load(), today)
    else:
        data = BreathworkApiClient(config).get_stats()

    if args.json:
        _print_json(data)
        return 0
    if args.week is not None:
        print(f"Active days {data['activeDays']}  sessions {data['totalSessions']}  "
              f"breath time {format_clock(data['totalBreathTime'])}  patterns {data['patternVariety']}")
        for day in data["dailySummaries"]:
            print(f"  {day['date']}  {day['sessions']} session(s)  {format_clock(day['breathTime'])}  "
                  f"{', '.join(day['patterns'])}")
        return 0
    print(f"Sessions {data.get('totalSessions', 0)}  minutes {data.get('totalMinutes', 0)}  "
          f"streak {data.get('currentStreak', 0)} (longest {data.get('longestStreak', 0)})")
    return 0


def cmd_favorites(args: argparse.Namespace, config: ClientConfig) -> int:
    if config.offline:
        print("favorites: not available offline")
        return 2
    client = BreathworkApiClient(config)
    if args.favorites_cmd == "list":
        for fav in client.list_favorites():
            sequence = "-".join(f"{float(d):g}" for d in fav.get("sequence", []))
            print(f"{fav.get('id')!s:>4}  {fav.get('name', '')}  {sequence}")
        return 0
    if args.favorites_cmd == "add":
        try:
            pattern = parse_sequence(args.sequence, name=args.name)
        except ValueError as exc:
            print(f"favorites: {exc}")
            return 2
        created = client.save_favorite(pattern.name, pattern.sequence, is_quick_save=args.quick)
        print(f"Saved favorite {created.get('id', '?')}: {pattern.name} ({pattern.pattern_key})")
        return 0
    client.delete_favorite(args.id)
    print(f"Removed favorite {args.id}")
    return 0


def selftest() -> int:
    """Fast import-and-run smoke test. Returns exit code."""
    try:
        import PyQt6.QtCore  # noqa: F401  # Ensure timer deps import
        import requests  # noqa: F401
        from .session import ManualClock, ManualScheduler

        clock = ManualClock()
        engine = BreathingSessionEngine(BUILTIN_PATTERNS["478"], clock=clock, scheduler=ManualScheduler(clock))
        engine.start()
        engine.scheduler.advance(19.5)
        summary = engine.end()
        if summary is None or summary.breath_count != 3:
            raise RuntimeError(f"unexpected breath count: {summary}")

        msg = "Selftest OK: imports + engine timing"
        log.info(msg)
        print(msg)
        return 0
    except Exception as e:
        log.error("Selftest failed: %s", e)
        print(f"Selftest failed: {e}")
        return 1


_COMMANDS = ("patterns", "run", "history", "stats", "favorites", "selftest")


def _with_default_command(argv: list[str]) -> list[str]:
    """Treat an invocation without a subcommand as ``run``."""
    if any(token in _COMMANDS or token in ("-h", "--help") for token in argv):
        return argv
    return ["run", *argv]


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(_with_default_command(list(sys.argv[1:] if argv is None else argv)))

    setup_logging(
        level=args.log_level,
        log_file=args.log_file,
        json_format=(args.log_format == "json"),
        log_mode=args.log_mode,
        add_console=True,
    )

    cmd = args.command
    if cmd == "patterns":
        return cmd_patterns(args)
    if cmd == "selftest":
        return selftest()

    config = _load_config(args)
    try:
        if cmd == "run":
            return cmd_run(args, config)
        if cmd == "history":
            return cmd_history(args, config)
        if cmd == "stats":
            return cmd_stats(args, config)
        if cmd == "favorites":
            return cmd_favorites(args, config)
    except ApiError as exc:
        print(f"{cmd}: {exc}")
        return 1
    parser.print_help()
    return 2
