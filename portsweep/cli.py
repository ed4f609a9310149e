from __future__ import annotations
import argparse
from pathlib import Path
import json
import logging
import os
import queue
import sys
import time
from typing import Any, Dict, List

import yaml

from .collector import Collector, get_collector
from .config import load_config, validate_config
from .errors import CollectorError
from .export import ExportFormat, export_snapshot, write_snapshot_csv
from .models import PortEvent, PortRecord, PortState
from .scheduler import ControlFlow, Message, PollTick, Poller, dispatch_loop
from .tracker import ChangeTracker
from .utils import C

LOG_DEFAULT_PATH = Path(os.path.expanduser("~/.local/share/portsweep/portsweep.log"))
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def setup_logging(cfg: Dict[str, Any], to_file: bool, verbose: int = 0) -> None:
    level = logging.DEBUG if verbose > 1 else logging.INFO if verbose else cfg["log_level"]
    log_file = cfg.get("log_file")
    if to_file and not log_file:
        log_file = LOG_DEFAULT_PATH
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handler: logging.Handler = logging.FileHandler(log_file, encoding="utf-8")
    else:
        handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root = logging.getLogger("portsweep")
    root.handlers[:] = [handler]
    root.setLevel(level)
    root.propagate = False


def pretty_row(rec: PortRecord) -> str:
    color = C.GREEN if rec.port_state is PortState.HOSTING else C.CYAN
    return (
        f"{rec.port:>6}  {rec.pid:<8} {color}{rec.port_state.value:<8}{C.RESET}"
        f"{rec.process_name[:20]:<21} {C.GRAY}{rec.process_path}{C.RESET}"
    )


def pretty_event(ev: PortEvent) -> str:
    color = C.GREEN if ev.event == "port_opened" else C.RED
    ts = ev.timestamp.strftime("%Y-%m-%dT%H:%M:%S")
    return "\n".join(f"{ts}  {color}{ev.event:<12}{C.RESET} {pretty_row(rec)}" for rec in ev.records())


def fetch_or_exit(collector: Collector) -> List[PortRecord]:
    try:
        return collector.fetch_ports()
    except CollectorError as e:
        print(f"Error fetching ports: {e}", file=sys.stderr)
        sys.exit(1)


def cmd_list(args: argparse.Namespace, cfg: Dict[str, Any]) -> None:
    records = fetch_or_exit(get_collector(cfg))
    if args.hosting:
        records = [r for r in records if r.port_state is PortState.HOSTING]
    records.sort(key=lambda r: (r.port, r.pid))

    if args.format == "json":
        print(json.dumps([r.to_dict() for r in records], indent=2))
    elif args.format == "yaml":
        yaml.safe_dump([r.to_dict() for r in records], sys.stdout, sort_keys=False)
    elif args.format == "csv":
        write_snapshot_csv(sys.stdout, records)
    else:
        header = f"{'PORT':>6}  {'PID':<8} {'STATE':<8}{'NAME':<21} PATH"
        print(header + "\n" + "-" * len(header))
        for rec in records:
            print(pretty_row(rec))


def cmd_export(args: argparse.Namespace, cfg: Dict[str, Any]) -> None:
    records = fetch_or_exit(get_collector(cfg))
    try:
        path = export_snapshot(records, ExportFormat(cfg["export_format"]), cfg["output_dir"])
    except (OSError, ValueError) as e:
        print(f"Export failed: {e}", file=sys.stderr)
        sys.exit(1)
    print(path)


def cmd_watch(args: argparse.Namespace, cfg: Dict[str, Any]) -> None:
    collector = get_collector(cfg)
    tracker = ChangeTracker(ExportFormat(cfg["export_format"]), cfg["output_dir"])
    channel: "queue.Queue[Message]" = queue.Queue()
    poller = Poller(channel, cfg["interval"])
    deadline = time.monotonic() + args.duration if args.duration else None

    def handle(msg: Message) -> ControlFlow:
        if not isinstance(msg, PollTick):
            return ControlFlow.CONTINUE
        if deadline is not None and time.monotonic() >= deadline:
            return ControlFlow.EXIT
        try:
            ports = collector.fetch_ports()
        except CollectorError as e:
            print(f"Error fetching ports: {e}", file=sys.stderr)
            return ControlFlow.CONTINUE
        if not tracker.is_active:
            tracker.start(ports)
            print(f"# Tracking {len(ports)} port(s) every {cfg['interval']:g}s, Ctrl+C to stop", file=sys.stderr)
            return ControlFlow.CONTINUE
        for ev in tracker.track_once(ports):
            print(pretty_event(ev), flush=True)
        return ControlFlow.CONTINUE

    poller.start()
    try:
        dispatch_loop(channel, handle, lambda: None)
    except KeyboardInterrupt:
        print("\nStopping.", file=sys.stderr)
    finally:
        poller.stop()
        if tracker.is_active:
            tracker.stop()
            if tracker.last_export:
                print(f"Changes written to {tracker.last_export}", file=sys.stderr)


def cmd_kill(args: argparse.Namespace, cfg: Dict[str, Any]) -> None:
    result = get_collector(cfg).kill_process(args.pid)
    print(result.message, file=sys.stdout if result.success else sys.stderr)
    sys.exit(0 if result.success else 1)


def cmd_who(args: argparse.Namespace, cfg: Dict[str, Any]) -> None:
    try:
        owner = get_collector(cfg).find_owner(args.port, args.exclude_pid)
    except CollectorError as e:
        print(str(e), file=sys.stderr)
        sys.exit(1)
    if owner.data is None:
        print(f"PID {args.exclude_pid} is hosting port {args.port}")
    else:
        d = owner.data
        print(f"Port {d.port} is hosted by {d.process_name} (PID {d.pid}) {d.process_path}")


def cmd_tui(args: argparse.Namespace, cfg: Dict[str, Any]) -> None:
    from .app import App
    from .keys import raw_terminal, read_key
    from .scheduler import InputReader
    from .ui import Screen

    if not sys.stdin.isatty():
        print("The interactive view needs a terminal; try `portsweep list`.", file=sys.stderr)
        sys.exit(2)

    channel: "queue.Queue[Message]" = queue.Queue()
    poller = Poller(channel, cfg["interval"])
    app = App(
        get_collector(cfg),
        export_format=ExportFormat(cfg["export_format"]),
        output_dir=cfg["output_dir"],
        interval=cfg["interval"],
        set_interval=poller.set_interval,
    )

    with raw_terminal(), Screen() as screen:
        InputReader(channel, read_key).start()
        poller.start()
        screen.draw(app)
        dispatch_loop(channel, app.handle, lambda: screen.draw(app))

    if app.tracker.is_active:
        app.tracker.stop()


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="portsweep - which process owns which port")
    ap.add_argument("--config", type=str, help="Config YAML")
    ap.add_argument("--log-file", type=str, help="Write logs to this file")
    ap.add_argument("-v", "--verbose", action="count", default=0)
    ap.set_defaults(func=cmd_tui)
    sub = ap.add_subparsers(dest="cmd")

    p_tui = sub.add_parser("tui", help="Interactive port view (default)")
    p_tui.add_argument("--interval", type=float, help="Poll interval in seconds (1-60)")
    p_tui.add_argument("--format", choices=[f.value for f in ExportFormat], help="Initial export format")
    p_tui.add_argument("--output", type=str, help="Directory that receives snapshots/")
    p_tui.set_defaults(func=cmd_tui)

    p_list = sub.add_parser("list", help="Print current port bindings once")
    p_list.add_argument("--format", choices=["table", "json", "yaml", "csv"], default="table")
    p_list.add_argument("--hosting", action="store_true", help="Only listening sockets")
    p_list.set_defaults(func=cmd_list)

    p_export = sub.add_parser("export", help="Write a ports snapshot file")
    p_export.add_argument("--format", choices=[f.value for f in ExportFormat])
    p_export.add_argument("--output", type=str, help="Directory that receives snapshots/")
    p_export.set_defaults(func=cmd_export)

    p_watch = sub.add_parser("watch", help="Track port changes without the UI")
    p_watch.add_argument("--interval", type=float, help="Poll interval in seconds (1-60)")
    p_watch.add_argument("--duration", type=float, default=0.0, help="Stop after N seconds (0=until Ctrl+C)")
    p_watch.add_argument("--format", choices=[f.value for f in ExportFormat])
    p_watch.add_argument("--output", type=str, help="Directory that receives snapshots/")
    p_watch.set_defaults(func=cmd_watch)

    p_kill = sub.add_parser("kill", help="Terminate a process")
    p_kill.add_argument("pid", type=int)
    p_kill.set_defaults(func=cmd_kill)

    p_who = sub.add_parser("who", help="Show which process is listening on a port")
    p_who.add_argument("port", type=int)
    p_who.add_argument("--exclude-pid", type=int, default=-1, help="Report HOSTING if this PID is the listener")
    p_who.set_defaults(func=cmd_who)

    return ap


def apply_overrides(cfg: Dict[str, Any], args: argparse.Namespace) -> Dict[str, Any]:
    if getattr(args, "interval", None) is not None:
        cfg["interval"] = args.interval
    fmt = getattr(args, "format", None)
    if fmt in [f.value for f in ExportFormat]:
        cfg["export_format"] = fmt
    if getattr(args, "output", None):
        cfg["output_dir"] = args.output
    if args.log_file:
        cfg["log_file"] = args.log_file
    return validate_config(cfg)


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    # config problems are reported before logging is configured
    logging.basicConfig(level=logging.WARNING, format=LOG_FORMAT)
    try:
        cfg = apply_overrides(load_config(args.config), args)
    except ValueError as e:
        parser.error(str(e))
    setup_logging(cfg, to_file=(args.cmd or "tui") == "tui", verbose=args.verbose)
    args.func(args, cfg)
