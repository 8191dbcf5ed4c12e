"""CLI entry point for component-radar."""

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path

from .errors import RadarError
from .utils import KIND_COLORS, STATUS_COLORS, c, format_duration, format_progress, log, print_box, print_table


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="component-radar",
        description="component-radar: find every instance of a main component across design files",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
examples:
  component-radar select design-export.json --name Button
  component-radar scan design-export.json --name Button
  component-radar scan design-export.json --node 1:23 --scope files --files abc123 def456
  component-radar scan design-export.json --name Button --scope project --project 98765
  component-radar history
  component-radar export --format csv --output usages.csv
  component-radar badge --output scorecard.png
  component-radar config --token figd_... --project 98765
""",
    )
    parser.add_argument("--store", type=str, default=None,
                        help="Store file path (default: .component-radar/store.json)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log scan details to stderr")

    sub = parser.add_subparsers(dest="command", required=True)

    # select: validate and show a component
    p_select = sub.add_parser("select", help="Validate a component selection in a file export")
    _add_target_args(p_select)

    # scan: find instances
    p_scan = sub.add_parser("scan", help="Scan for instances of a main component")
    _add_target_args(p_scan)
    p_scan.add_argument("--scope", choices=["local", "files", "project"], default="local",
                        help="What to scan (default: local, the export itself)")
    p_scan.add_argument("--files", nargs="+", default=None, metavar="KEY",
                        help="File keys to scan with --scope files")
    p_scan.add_argument("--project", type=str, default=None,
                        help="Project id for --scope project (default: configured project)")
    p_scan.add_argument("--batch-size", type=int, default=None, help="Files fetched per batch")
    p_scan.add_argument("--timeout", type=float, default=None, help="Per-file timeout in seconds")
    p_scan.add_argument("--no-name-fallback", action="store_true",
                        help="Never match instances by component name alone")
    p_scan.add_argument("--format", choices=["summary", "json"], default="summary",
                        help="Output format (default: summary)")

    # history: list stored scans
    p_history = sub.add_parser("history", help="List stored scans, newest first")
    p_history.add_argument("--limit", type=int, default=20)

    # show: one stored scan
    p_show = sub.add_parser("show", help="Show a stored scan (default: the last one)")
    p_show.add_argument("session", nargs="?", default=None, help="Session id")
    p_show.add_argument("--kind", choices=["direct", "nested", "remote"], default=None,
                        help="Only show one kind of occurrence")

    # export: render a stored scan
    p_export = sub.add_parser("export", help="Export a stored scan")
    p_export.add_argument("session", nargs="?", default=None, help="Session id (default: the last one)")
    p_export.add_argument("--format", choices=["json", "csv", "html", "markdown"], default="json")
    p_export.add_argument("--output", type=str, default=None,
                          help="Output file or directory (default: stdout)")

    # badge: scorecard image
    p_badge = sub.add_parser("badge", help="Render a PNG scorecard for a stored scan")
    p_badge.add_argument("session", nargs="?", default=None, help="Session id (default: the last one)")
    p_badge.add_argument("--output", type=str, default="scorecard.png")

    # delete / clear: history maintenance
    p_delete = sub.add_parser("delete", help="Delete a stored scan")
    p_delete.add_argument("session", help="Session id")
    sub.add_parser("clear", help="Delete all stored scans")

    # config: API token and default project
    p_config = sub.add_parser("config", help="Show or set the API token and default project")
    p_config.add_argument("--token", type=str, default=None)
    p_config.add_argument("--project", type=str, default=None)

    # locate: where is an occurrence
    p_locate = sub.add_parser("locate", help="Locate an occurrence by file key and node id")
    p_locate.add_argument("file_key")
    p_locate.add_argument("node_id")
    p_locate.add_argument("--file", type=str, default=None,
                          help="Export of the current file, to resolve local nodes")

    return parser


def _add_target_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("file", type=str, help="Path to the current file's JSON export")
    p.add_argument("--file-key", type=str, default="", help="Key of the exported file")
    group = p.add_mutually_exclusive_group()
    group.add_argument("--node", type=str, default=None, help="Main component node id")
    group.add_argument("--name", type=str, default=None, help="Main component name")


class EventPrinter:
    """Listener that prints progress and keeps the last event of each type."""

    def __init__(self, quiet: bool = False):
        self.quiet = quiet
        self.errors: list[str] = []
        self.last: dict[str, object] = {}

    def __call__(self, event) -> None:
        self.last[event.type] = event
        if event.type == "scan-error":
            self.errors.append(event.message)
        elif event.type == "scan-progress" and not self.quiet:
            log(f"  {format_progress(event.progress.to_dict())}")


def _build(args, host=None, quiet: bool = False):
    from .controller import RadarController
    from .events import EventChannel
    from .orchestrator import ScanOrchestrator
    from .settings import ScanSettings
    from .store import JsonFileStorage, ResultStore

    settings = ScanSettings.from_env().with_overrides(
        batch_size=getattr(args, "batch_size", None),
        file_timeout=getattr(args, "timeout", None),
        name_fallback=False if getattr(args, "no_name_fallback", False) else None,
    )
    storage = JsonFileStorage(args.store)
    store = ResultStore(storage, capacity=settings.max_stored_sessions)
    printer = EventPrinter(quiet=quiet)
    channel = EventChannel(printer)
    orchestrator = ScanOrchestrator(host=host, store=store, channel=channel, settings=settings)
    return RadarController(orchestrator, store, storage, channel), printer


def _run(controller, printer, command):
    result = asyncio.run(controller.handle(command))
    if printer.errors:
        raise RadarError(printer.errors[-1])
    return result


def _load_host(args):
    from .scene import load_scene_file

    return load_scene_file(args.file, file_key=args.file_key)


def _select(controller, printer, host, args):
    from .events import SelectComponent
    from .scene import NodeKind

    node_id = args.node
    if args.name:
        matches = host.find_by_name(args.name, NodeKind.COMPONENT)
        if not matches:
            raise RadarError(f"No main component named \"{args.name}\" in {args.file}")
        if len(matches) > 1:
            ids = ", ".join(n.id for n in matches)
            raise RadarError(f"Several components are named \"{args.name}\" ({ids}); pass --node")
        node_id = matches[0].id
    _run(controller, printer, SelectComponent(node_id))
    return controller.target


def _session_id(store, session_id: str | None) -> str:
    sid = session_id or store.last_session_id
    if not sid:
        raise RadarError("No stored scans. Run: component-radar scan <file>")
    return sid


def cmd_select(args):
    """Validate a selection and print the captured identity."""
    host = _load_host(args)
    controller, printer = _build(args, host)
    target = _select(controller, printer, host, args)

    lines = [
        f"Component:  {target.display_name}",
        f"Node id:    {target.stable_id}",
        f"Key:        {target.content_key or '-'}",
        f"Remote:     {'yes' if target.is_remote else 'no'}",
    ]
    if target.library_name:
        lines.append(f"Library:    {target.library_name}")
    if target.variant_properties:
        lines.append("Variants:   " + ", ".join(f"{k}={v}" for k, v in target.variant_properties.items()))
    print_box(lines, width=60)


def _install_cancel_handler(orchestrator) -> bool:
    try:
        asyncio.get_running_loop().add_signal_handler(signal.SIGINT, orchestrator.cancel)
    except (NotImplementedError, ValueError):
        return False
    return True


def cmd_scan(args):
    """Select a component and scan for its instances."""
    from .events import StartScan
    from .formatters import export
    from .models import ScanScope, SessionStatus

    host = _load_host(args)
    controller, printer = _build(args, host, quiet=args.format == "json")
    target = _select(controller, printer, host, args)

    print(c(f"\ncomponent-radar scan: {target.display_name} ({args.scope})\n", "bold"), file=sys.stderr)

    async def scan():
        _install_cancel_handler(controller.orchestrator)
        return await controller.handle(StartScan(ScanScope(args.scope), args.files, args.project))

    session = asyncio.run(scan())
    if session is None or session.status is SessionStatus.FAILED:
        raise RadarError(printer.errors[-1] if printer.errors else "Scan failed")

    if args.format == "json":
        print(export(session, "json"))
    else:
        _print_session_summary(session)


def _print_session_summary(session):
    counts = session.counts_by_kind()
    status = session.status.value
    lines = [
        f"Component:   {session.target.display_name}",
        f"Scope:       {session.scope.value}",
        f"Status:      {status}",
        f"Instances:   {session.total_instances}",
        f"  direct {counts['direct']} / nested {counts['nested']} / remote {counts['remote']}",
        f"Pages:       {session.page_count()}",
        f"Duration:    {format_duration(session.duration_ms)}",
    ]
    if session.file_keys:
        lines.insert(4, f"Files:       {len(session.file_keys)}")
    if session.skipped_count:
        lines.append(f"Skipped:     {session.skipped_count} files")
    print_box(lines, width=50)
    print(c(f"  Session: {session.session_id}", STATUS_COLORS.get(status, "dim")))

    for s in session.skipped:
        print(c(f"  skipped {s.file_key}: {s.reason.value}", "yellow"))
    for e in session.errors:
        if not any(e.startswith(s.file_key + ":") for s in session.skipped):
            print(c(f"  {e}", "red"))
    print()


def cmd_history(args):
    """List stored scans."""
    from .events import GetAllScans

    controller, printer = _build(args)
    _run(controller, printer, GetAllScans())
    sessions = printer.last["all-scans"].sessions

    if not sessions:
        print(c("  No stored scans. Run: component-radar scan <file>", "yellow"))
        return

    from .formatters.report import format_timestamp

    rows = []
    for s in sessions[:args.limit]:
        rows.append([
            s.session_id,
            s.target.display_name[:24],
            s.scope.value,
            s.status.value,
            str(s.total_instances),
            format_timestamp(s.started_at),
        ])
    print(c(f"\n  {len(sessions)} stored scans:\n", "bold"))
    print_table(["Session", "Component", "Scope", "Status", "Found", "Started"], rows)
    print()


def cmd_show(args):
    """Show the records of a stored scan."""
    from .events import GetScanResults

    controller, printer = _build(args)
    _run(controller, printer, GetScanResults(_session_id(controller.store, args.session)))
    session = printer.last["scan-results"].session

    _print_session_summary(session)
    records = session.records
    if args.kind:
        records = [r for r in records if r.kind.value == args.kind]
    if not records:
        print(c("  No instances found.", "yellow"))
        return

    rows = []
    for r in records:
        rows.append([
            c(r.kind.value.ljust(6), KIND_COLORS.get(r.kind.value, "dim")),
            r.file_name[:20],
            r.node_id,
            " > ".join(r.breadcrumb_path)[:70],
        ])
    print_table(["Kind", "File", "Node", "Path"], rows, [6, 20, 12, 70])
    print()


def cmd_export(args):
    """Export a stored scan."""
    from .events import ExportResults
    from .formatters import EXTENSIONS

    controller, printer = _build(args)
    sid = _session_id(controller.store, args.session)
    _run(controller, printer, ExportResults(args.format, sid))
    data = printer.last["export-ready"].data

    if not args.output:
        print(data)
        return
    out = Path(args.output)
    if out.is_dir():
        out = out / f"component-usage-{sid}.{EXTENSIONS[args.format]}"
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(data, encoding="utf-8")
    print(c(f"  Written: {out}", "green"))


def cmd_badge(args):
    """Render a scorecard image for a stored scan."""
    from .badge import render_scorecard
    from .events import GetScanResults

    controller, printer = _build(args)
    _run(controller, printer, GetScanResults(_session_id(controller.store, args.session)))
    path = render_scorecard(printer.last["scan-results"].session, args.output)
    print(c(f"  Written: {path}", "green"))


def cmd_delete(args):
    from .events import DeleteScan

    controller, printer = _build(args)
    _run(controller, printer, DeleteScan(args.session))
    print(c(f"  Deleted {args.session}", "green"))


def cmd_clear(args):
    from .events import ClearHistory

    controller, printer = _build(args)
    _run(controller, printer, ClearHistory())
    print(c("  Scan history cleared", "green"))


def cmd_config(args):
    """Show or update user settings."""
    from .events import GetSettings, SaveSettings

    controller, printer = _build(args)
    if args.token is None and args.project is None:
        _run(controller, printer, GetSettings())
    else:
        _run(controller, printer, SaveSettings(api_token=args.token, default_project_id=args.project))
        print(c("  Settings saved", "green"))
    settings = printer.last["settings-data"].settings
    print(f"  API token:        {settings['api_token'] or c('not set', 'yellow')}")
    print(f"  Default project:  {settings['default_project_id'] or c('not set', 'yellow')}")


def cmd_locate(args):
    """Print where an occurrence lives."""
    from .events import JumpToNode
    from .scene import load_scene_file

    host = load_scene_file(args.file) if args.file else None
    controller, printer = _build(args, host)
    _run(controller, printer, JumpToNode(args.file_key, args.node_id))
    located = printer.last["node-located"]

    if located.breadcrumb:
        print(f"  {' > '.join(located.breadcrumb)}")
    print(f"  {located.url}")


def main():
    parser = create_parser()
    args = parser.parse_args()

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, stream=sys.stderr,
                            format="%(asctime)s %(levelname)s %(name)s: %(message)s")
        logging.getLogger("httpx").setLevel(logging.INFO)

    commands = {
        "select": cmd_select,
        "scan": cmd_scan,
        "history": cmd_history,
        "show": cmd_show,
        "export": cmd_export,
        "badge": cmd_badge,
        "delete": cmd_delete,
        "clear": cmd_clear,
        "config": cmd_config,
        "locate": cmd_locate,
    }

    try:
        commands[args.command](args)
    except KeyboardInterrupt:
        print("\nInterrupted.")
        sys.exit(1)
    except (RadarError, FileNotFoundError) as e:
        print(c(f"  Error: {e}", "red"), file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
