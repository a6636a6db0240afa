"""CLI entry point for the candidate pipeline engine."""

import argparse
import asyncio
import logging
import sys
from typing import Any

from src.backend.client import HttpBackend
from src.core.config import EXPORT_FORMATS, Settings
from src.core.schemas import ALLOWED_PRIORITIES, CandidateRecord
from src.pipeline.actions import BULK_KINDS
from src.pipeline.stages import StageRegistry
from src.workspace.session import WorkspaceSession


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Candidate pipeline - inspect and operate an ATS kanban workspace",
    )
    parser.add_argument(
        "--config",
        default="config/settings.yaml",
        help="Path to settings YAML file (default: config/settings.yaml)",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    # --- stages subcommand ---
    subparsers.add_parser("stages", help="List the configured pipeline stages")

    # --- board subcommand ---
    board_parser = subparsers.add_parser("board", help="Load applications and print the board")
    board_parser.add_argument("--search", default="", help="Free-text search")
    board_parser.add_argument("--status", help="Application status")
    board_parser.add_argument("--priority", choices=ALLOWED_PRIORITIES)
    board_parser.add_argument("--job-id", type=int)
    board_parser.add_argument("--min-rating", type=int, help="Rating floor (0-5)")
    board_parser.add_argument("--has-resume", choices=["any", "with", "without"], default="any")
    board_parser.add_argument("--min-match", type=int, help="Job match score floor (0-100)")
    board_parser.add_argument("--from", dest="date_from", help="Applied on or after (YYYY-MM-DD)")
    board_parser.add_argument("--to", dest="date_to", help="Applied on or before (YYYY-MM-DD)")
    board_parser.add_argument("--tag", action="append", default=[], help="Required tag (repeatable)")
    board_parser.add_argument("--revealed-only", action="store_true",
                              help="Only candidates whose contact details are visible")
    board_parser.add_argument("--stats", action="store_true", help="Print workspace analytics")

    # --- move subcommand ---
    move_parser = subparsers.add_parser("move", help="Move one application to another stage")
    move_parser.add_argument("application_id", type=int)
    move_parser.add_argument("stage")

    # --- bulk subcommand ---
    bulk_parser = subparsers.add_parser("bulk", help="Apply one action to many applications")
    bulk_parser.add_argument("action", choices=BULK_KINDS)
    bulk_parser.add_argument("--ids", type=int, nargs="+", required=True)
    bulk_parser.add_argument("--stage", help="Destination stage (move)")
    bulk_parser.add_argument("--note", help="Note text (note)")
    bulk_parser.add_argument("--priority", help="Priority (priority)")
    bulk_parser.add_argument("--tags", nargs="*", help="Replacement tag list (tag)")

    # --- export subcommand ---
    export_parser = subparsers.add_parser("export", help="Export applications")
    export_parser.add_argument("--ids", type=int, nargs="+", required=True)
    export_parser.add_argument("--format", choices=EXPORT_FORMATS, help="Export format")

    # --- reveal subcommand ---
    reveal_parser = subparsers.add_parser("reveal", help="Reveal an applicant's contact details")
    reveal_parser.add_argument("application_id", type=int)

    return parser.parse_args(argv)


def setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def print_stages(settings: Settings) -> None:
    workspace = settings.workspace
    registry = (
        StageRegistry(workspace.stages)
        if workspace.stages
        else StageRegistry.from_template(workspace.stage_template)
    )
    print(f"{workspace.name}: {len(registry)} stages")
    for stage in registry:
        lock = " [locked]" if stage.is_locked else ""
        print(f"  {stage.id:<22} {stage.name}{lock}")
        for hint in stage.automation_hints:
            print(f"      - {hint}")


def board_filters(args: argparse.Namespace) -> dict[str, Any]:
    """Translate board flags into a filter mapping."""
    filters: dict[str, Any] = {
        "search": args.search,
        "status": args.status,
        "priority": args.priority,
        "job_id": args.job_id,
        "rating": args.min_rating,
        "has_resume": args.has_resume,
        "job_match_min": args.min_match,
        "tags": args.tag,
        "only_revealed_contacts": args.revealed_only,
    }
    if args.date_from or args.date_to:
        filters["date_range"] = {"start": args.date_from, "end": args.date_to}
    return {k: v for k, v in filters.items() if v is not None}


def format_card(record: CandidateRecord) -> str:
    stars = "★" * record.rating + "☆" * (5 - record.rating)
    line = f"#{record.id} {record.applicant.display_name}"
    if record.applicant.email:
        line += f" <{record.applicant.email}>"
    line += f" [{record.priority}] {stars}"
    if record.job_match_score is not None:
        line += f" match {record.job_match_score}%"
    if record.tags:
        line += f" tags: {', '.join(record.tags)}"
    return line


def print_board(session: WorkspaceSession, show_stats: bool) -> None:
    stats = session.column_stats()
    total = sum(s.total for s in stats.values())
    print(f"{session.name}: {total} visible applications")
    for stage in session.registry:
        records = session.groups.get(stage.id, [])
        counters = stats[stage.id]
        extra = f", {counters.urgent} urgent" if counters.urgent else ""
        print(f"\n{stage.name} ({counters.total}{extra})")
        for record in records:
            print(f"  {format_card(record)}")

    if show_stats:
        a = session.analytics()
        print(f"\nTotal: {a.total}  Review rate: {a.review_rate}%  "
              f"Interview rate: {a.interview_rate}%  Hire rate: {a.hire_rate}%")
        for share in a.distribution:
            print(f"  {share.name:<22} {share.count:>4} candidates {share.percentage:>3}%")


def print_notice(session: WorkspaceSession) -> None:
    pending = session.pending
    if pending is None or pending.notice is None:
        return
    notice = pending.notice
    stream = sys.stderr if notice.level == "error" else sys.stdout
    print(f"{notice.title}: {notice.message}", file=stream)
    if notice.url:
        print(f"  {notice.url}", file=stream)


async def run(args: argparse.Namespace, settings: Settings) -> int:
    """Run one workspace command against the application-data service."""
    async with HttpBackend(settings.backend) as backend:
        session = WorkspaceSession(backend, settings)
        ok = True

        if args.command == "board":
            session.update_filters(**board_filters(args))
            ok = await session.reload()
            if ok:
                print_board(session, args.stats)

        elif args.command == "move":
            ok = await session.reload()
            if ok:
                ok = await session.move(args.application_id, args.stage)
                print(f"Move {'confirmed' if ok else 'not applied'}: "
                      f"#{args.application_id} -> {args.stage}")

        elif args.command == "bulk":
            payload: dict[str, Any] = {
                "stage": args.stage,
                "note": args.note,
                "priority": args.priority,
                "tags": args.tags,
            }
            payload = {k: v for k, v in payload.items() if v is not None}
            await session.reload()
            outcome = await session.run_bulk(args.action, payload, args.ids)
            ok = outcome.ok
            if ok:
                print(f"Bulk {args.action}: {outcome.updated_count} applications updated")

        elif args.command == "export":
            outcome = await session.export(args.format, args.ids)
            ok = outcome.ok
            if outcome.path is not None:
                print(f"Export saved to {outcome.path}")

        elif args.command == "reveal":
            ok = await session.reload()
            contact = await session.reveal_contact(args.application_id) if ok else None
            ok = contact is not None
            if contact:
                for key, value in contact.items():
                    if value:
                        print(f"  {key}: {value}")

        print_notice(session)
        return 0 if ok else 1


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    setup_logging(args.verbose)

    try:
        settings = Settings.from_yaml(args.config)
    except (FileNotFoundError, ValueError) as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        sys.exit(1)

    if args.command == "stages":
        print_stages(settings)
        return

    sys.exit(asyncio.run(run(args, settings)))


if __name__ == "__main__":
    main()
