"""Command-line interface for certificate duplicate detection."""

import os
import sys
import json
import argparse
from datetime import datetime
from typing import Any, List, Optional

from dotenv import load_dotenv
from rich import box
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from .config import ConfigManager, PRESETS
from .deduplication import DuplicateDetectionService
from .errors import DuplicateDetectionError, ErrorHandler, ValidationError
from .logging_config import setup_logging
from .models import (
    CertificateCandidate,
    DuplicateAction,
    DuplicateDecision,
    DuplicateReport,
    ExistingCertificateView,
    OverrideRequest,
    OverrideStatus,
)
from .repositories import SQLiteCertificateStore, SQLiteOverrideRequestRepository

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_WARN = 2
EXIT_BLOCK = 3

_ACTION_EXIT_CODES = {
    DuplicateAction.ALLOW: EXIT_OK,
    DuplicateAction.WARN: EXIT_WARN,
    DuplicateAction.BLOCK: EXIT_BLOCK,
}

_ACTION_STYLES = {
    DuplicateAction.ALLOW: "green",
    DuplicateAction.WARN: "yellow",
    DuplicateAction.BLOCK: "red",
}


def _load_json(path: str) -> Any:
    try:
        with open(path, "r") as f:
            return json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ValidationError(f"Cannot read JSON from {path}: {e}", field="path", value=path) from e


def _parse_timestamp(value: str, field: str) -> datetime:
    try:
        return datetime.fromisoformat(value)
    except ValueError as e:
        raise ValidationError(
            f"{field} must be an ISO-8601 timestamp, got '{value}'", field=field, value=value
        ) from e


def _build_service(args) -> DuplicateDetectionService:
    return DuplicateDetectionService(
        SQLiteCertificateStore(args.db),
        SQLiteOverrideRequestRepository(args.db),
        max_workers=getattr(args, "workers", 1),
        use_blocking=getattr(args, "blocking", False),
    )


def _print_json(model) -> None:
    print(json.dumps(model.model_dump(mode="json", by_alias=True), indent=2))


def render_decision(console: Console, decision: DuplicateDecision) -> None:
    """Print a decision as a panel and a table of matches."""
    style = _ACTION_STYLES[decision.action]
    summary = decision.message or "No duplicates found."
    console.print(
        Panel(
            f"[bold]{decision.action.value.upper()}[/bold]  "
            f"confidence {decision.confidence:.0%}\n{summary}",
            title="Duplicate Check",
            border_style=style,
        )
    )

    if not decision.matches:
        return

    table = Table(box=box.ROUNDED, show_header=True, header_style="bold cyan")
    table.add_column("Certificate", style="cyan", no_wrap=True)
    table.add_column("Rule")
    table.add_column("Recipient")
    table.add_column("Title")
    table.add_column("Issued", justify="center")
    table.add_column("Score", justify="right", style="green")
    table.add_column("Type")

    for match in decision.matches:
        table.add_row(
            match.certificate_id,
            match.rule_id or "",
            match.recipient_email or match.recipient_name or "",
            match.title or "",
            match.issued_at.strftime("%Y-%m-%d"),
            f"{match.similarity_score:.0%}",
            match.match_type.value,
        )
    console.print(table)


def render_report(console: Console, report: DuplicateReport) -> None:
    """Print report totals and breakdowns."""
    console.print(
        Panel(
            f"[bold]{report.total_duplicates}[/bold] flagged certificates between "
            f"{report.time_range.start:%Y-%m-%d %H:%M} and {report.time_range.end:%Y-%m-%d %H:%M}",
            title=f"Duplicate Report {report.id}",
            border_style="blue",
        )
    )

    for title, counts in (
        ("By Issuer", report.duplicates_by_issuer),
        ("By Type", report.duplicates_by_type),
    ):
        if not counts:
            continue
        table = Table(title=title, box=box.SIMPLE)
        table.add_column("Key", style="cyan")
        table.add_column("Count", justify="right")
        for key, count in sorted(counts.items()):
            table.add_row(key, str(count))
        console.print(table)


def render_override(console: Console, request: OverrideRequest) -> None:
    reviewer = request.approved_by or request.rejected_by or "-"
    console.print(
        f"[bold]{request.id}[/bold] certificate={request.certificate_id} "
        f"status={request.status.value} requested_by={request.requested_by} "
        f"reviewed_by={reviewer}"
    )


def check_candidate(args, console: Console) -> int:
    """Check a candidate certificate against the store."""
    candidate = CertificateCandidate.model_validate(_load_json(args.candidate))
    config = ConfigManager(config_path=args.config, preset=args.preset).load()

    decision = _build_service(args).check_for_duplicates(candidate, config)

    if args.json:
        _print_json(decision)
    else:
        render_decision(console, decision)
    return _ACTION_EXIT_CODES[decision.action]


def import_certificates(args, console: Console) -> int:
    """Load issued certificates from a JSON array into the store."""
    records = _load_json(args.certificates)
    if not isinstance(records, list):
        raise ValidationError("Certificates file must contain a JSON array", field="certificates")

    store = SQLiteCertificateStore(args.db)
    for record in records:
        store.add(ExistingCertificateView.model_validate(record))

    console.print(f"Imported {len(records)} certificates into {args.db}")
    return EXIT_OK


def generate_report(args, console: Console) -> int:
    """Summarize flagged certificates in a time range."""
    start = _parse_timestamp(args.start, "start")
    end = _parse_timestamp(args.end, "end")

    report = _build_service(args).generate_duplicate_report(start, end)

    if args.json:
        _print_json(report)
    else:
        render_report(console, report)
    return EXIT_OK


def manage_override(args, console: Console) -> int:
    """Create, review or list override requests."""
    service = _build_service(args)

    if args.override_command == "create":
        request = service.create_override_request(args.certificate_id, args.reason, args.user)
    elif args.override_command == "approve":
        request = service.approve_override_request(args.request_id, args.user)
    elif args.override_command == "reject":
        request = service.reject_override_request(args.request_id, args.user)
    else:
        status = OverrideStatus(args.status) if args.status else None
        requests = service.list_override_requests(
            certificate_id=args.certificate_id, status=status
        )
        if args.json:
            print(json.dumps(
                [r.model_dump(mode="json", by_alias=True) for r in requests], indent=2
            ))
        else:
            for request in requests:
                render_override(console, request)
        return EXIT_OK

    if args.json:
        _print_json(request)
    else:
        render_override(console, request)
    return EXIT_OK


def config_template(args, console: Console) -> int:
    """Write an editable configuration file."""
    ConfigManager(preset=args.preset).save_template(args.output)
    console.print(f"Configuration template saved to: {args.output}")
    return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="certdedupe",
        description="Rule-based duplicate detection for certificate issuance",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Load issued certificates
  certdedupe import certificates.json --db certs.db

  # Check a candidate (exit 0 allow, 2 warn, 3 block)
  certdedupe check candidate.json --db certs.db --preset strict

  # Report flagged certificates for January
  certdedupe report --start 2024-01-01 --end 2024-01-31T23:59:59

  # Review an override request
  certdedupe override approve override_abc123 --user admin
""",
    )
    parser.add_argument(
        "--db",
        default=os.getenv("CERTDEDUPE_DB", "certdedupe.db"),
        help="SQLite database path (default: $CERTDEDUPE_DB or certdedupe.db)",
    )
    parser.add_argument("--log-level", default="WARNING", help="Logging level")
    parser.add_argument("--log-format", choices=["json", "text"], default="text")
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose error output")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    check_parser = subparsers.add_parser("check", help="Check a candidate certificate")
    check_parser.add_argument("candidate", help="Path to candidate JSON")
    check_parser.add_argument("-c", "--config", help="Path to configuration JSON")
    check_parser.add_argument(
        "--preset", choices=sorted(PRESETS), default="default", help="Base configuration"
    )
    check_parser.add_argument("--workers", type=int, default=1, help="Rule evaluation threads")
    check_parser.add_argument(
        "--blocking", action="store_true", help="Only score records sharing a blocking key"
    )
    check_parser.add_argument("--json", action="store_true", help="Print the decision as JSON")

    import_parser = subparsers.add_parser("import", help="Import issued certificates")
    import_parser.add_argument("certificates", help="Path to a JSON array of certificates")

    report_parser = subparsers.add_parser("report", help="Report flagged duplicates")
    report_parser.add_argument("--start", required=True, help="Range start (ISO-8601)")
    report_parser.add_argument("--end", required=True, help="Range end (ISO-8601)")
    report_parser.add_argument("--json", action="store_true", help="Print the report as JSON")

    override_parser = subparsers.add_parser("override", help="Manage override requests")
    override_parser.add_argument("--json", action="store_true", help="Print results as JSON")
    override_sub = override_parser.add_subparsers(dest="override_command", required=True)

    create_parser = override_sub.add_parser("create", help="Request an override")
    create_parser.add_argument("certificate_id")
    create_parser.add_argument("--reason", required=True)
    create_parser.add_argument("--user", required=True, help="Requesting user")

    for name in ("approve", "reject"):
        review_parser = override_sub.add_parser(name, help=f"{name.capitalize()} a request")
        review_parser.add_argument("request_id")
        review_parser.add_argument("--user", required=True, help="Reviewing admin")

    list_parser = override_sub.add_parser("list", help="List requests")
    list_parser.add_argument("--certificate-id")
    list_parser.add_argument("--status", choices=[s.value for s in OverrideStatus])

    template_parser = subparsers.add_parser(
        "config-template", help="Write a configuration template"
    )
    template_parser.add_argument("output", help="Destination path")
    template_parser.add_argument("--preset", choices=sorted(PRESETS), default="default")

    return parser


COMMANDS = {
    "check": check_candidate,
    "import": import_certificates,
    "report": generate_report,
    "override": manage_override,
    "config-template": config_template,
}


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    load_dotenv()

    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return EXIT_ERROR

    setup_logging(format=args.log_format, level=args.log_level)
    console = Console()

    try:
        return COMMANDS[args.command](args, console)
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user[/yellow]")
        return EXIT_ERROR
    except DuplicateDetectionError as e:
        console.print(
            f"[red]Error:[/red] {escape(ErrorHandler().create_user_friendly_message(e))}",
            soft_wrap=True,
        )
        if args.verbose:
            console.print_exception()
        return EXIT_ERROR
    except Exception as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}", soft_wrap=True)
        if args.verbose:
            console.print_exception()
        return EXIT_ERROR


if __name__ == "__main__":
    sys.exit(main())
