from __future__ import annotations

import argparse
import json
import sys
from datetime import date
from typing import Any, Dict

from hubrota.audit.auditor import AuditSnapshot, apply_repairs, audit_integrity
from hubrota.engine.assignment import RotaAssignmentEngine
from hubrota.engine.bulk import BulkAssigner
from hubrota.errors import RotaError, StorageError, VersionConflict
from hubrota.io.excel_export import export_roster_to_excel
from hubrota.io.ndjson_store import NdjsonStore
from hubrota.models.config import HubConfig
from hubrota.models.validated import BulkAssignRequest, parse_request
from hubrota.store.repository import Repository
from hubrota.utils.logging_setup import setup_from_config
from hubrota.utils.structured_logging import configure_structlog


def _print_audit(report, json_out: bool) -> None:
    if json_out:
        print(json.dumps(report.as_dict(), ensure_ascii=False, indent=2))
        return
    s = report.summary()
    print("Summary:")
    print(f" - Rotas checked: {s['rotasChecked']}")
    print(f" - Rotas with issues: {s['rotasWithIssues']}")
    print(f" - Total issues: {s['totalIssues']}")
    if report.repair:
        print(f" - Assignees removed: {s['assigneesRemoved']}")
        print(f" - Rotas updated: {s['rotasUpdated']}")
    if report.is_clean:
        print("No orphaned data found. All rotas are clean.")
        return
    for r in report.rota_audits:
        print(f'\nRota: "{r.role}" ({r.rota_id})')
        for issue in r.issues:
            print(f"  {issue.type.value}: {issue.message}")


def _cmd_audit(args: argparse.Namespace, cfg: HubConfig) -> int:
    store = NdjsonStore(args.data_dir or cfg.data_dir)
    report = audit_integrity(AuditSnapshot.from_store(store), repair=args.remove)
    _print_audit(report, args.json_out)
    if args.remove:
        apply_repairs(store, report)
    elif not report.is_clean and not args.json_out:
        print("\nRun with --remove to drop invalid assignees and owners.")
    return 0


def _bulk_payload(args: argparse.Namespace) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "rotaId": args.rota,
        "contactIds": [c for c in (args.contacts or "").split(",") if c.strip()],
        "listId": args.list_id,
        "patternType": args.pattern_type,
        "position": args.position,
        "weekday": args.weekday,
        "weekOfMonth": args.week_of_month,
        "frequency": args.frequency,
        "endDate": args.end_date,
    }
    return {k: v for k, v in payload.items() if v is not None}


def _cmd_bulk_assign(args: argparse.Namespace, cfg: HubConfig) -> int:
    req = parse_request(BulkAssignRequest, _bulk_payload(args))
    store = NdjsonStore(args.data_dir or cfg.data_dir)
    repo = Repository.from_store(store)
    assigner = BulkAssigner(repo, RotaAssignmentEngine(repo, cfg))
    today = date.fromisoformat(args.today) if args.today else None

    if req.contact_ids:
        res = assigner.bulk_assign_by_pattern(
            req.rota_id, req.contact_ids, req.to_pattern(), req.frequency, req.end_date, today=today
        )
    else:
        res = assigner.bulk_assign_by_list(
            req.rota_id, req.list_id, req.to_pattern(), req.frequency, req.end_date, today=today
        )
    repo.save_rotas_to(store, [req.rota_id])

    if args.json_out:
        print(json.dumps(res.as_dict(), ensure_ascii=False, indent=2))
    else:
        print("Summary:")
        for k, v in res.as_dict().items():
            if k != "occurrenceIds":
                print(f" - {k}: {v}")
    return 0


def _cmd_export(args: argparse.Namespace, cfg: HubConfig) -> int:
    repo = Repository.from_store(NdjsonStore(args.data_dir or cfg.data_dir))
    today = date.fromisoformat(args.today) if args.today else None
    n = export_roster_to_excel(repo, args.event, args.output, today=today, include_internal=not args.public_only)
    print(f"Wrote {n} roster rows to {args.output}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="hubrota", description="Volunteer rota tools")
    p.add_argument("--log-level", default=None, help="Log level (default: HUBROTA_LOG_LEVEL or INFO)")
    p.add_argument("--log-file", default=None, help="Also log to this file")
    sub = p.add_subparsers(dest="command", required=True)

    a = sub.add_parser("audit", help="Find rotas pointing at missing events, occurrences or contacts")
    a.add_argument("--data-dir", help="Directory holding the .ndjson collections")
    a.add_argument("--remove", action="store_true", help="Drop invalid assignees and owners")
    a.add_argument("--json", dest="json_out", action="store_true", help="JSON output")
    a.set_defaults(func=_cmd_audit)

    b = sub.add_parser("bulk-assign", help="Assign contacts to every occurrence matching a date pattern")
    b.add_argument("--data-dir")
    b.add_argument("--rota", required=True, help="Rota id")
    b.add_argument("--contacts", help="Comma-separated contact ids")
    b.add_argument("--list", dest="list_id", help="Contact list id (instead of --contacts)")
    b.add_argument("--pattern-type", required=True, choices=["day-of-month", "day-of-week"])
    b.add_argument("--position", choices=["beginning", "middle", "end"])
    b.add_argument("--weekday", choices=["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"])
    b.add_argument("--week-of-month", choices=["first", "second", "third", "fourth", "last", "any"])
    b.add_argument("--frequency", type=int, default=1, help="Dates per month (default: 1)")
    b.add_argument("--end-date", required=True, help="Last date included (YYYY-MM-DD)")
    b.add_argument("--today", help="Override today's date (YYYY-MM-DD)")
    b.add_argument("--json", dest="json_out", action="store_true")
    b.set_defaults(func=_cmd_bulk_assign)

    e = sub.add_parser("export", help="Export an event's roster to Excel")
    e.add_argument("--data-dir")
    e.add_argument("--event", required=True, help="Event id")
    e.add_argument("--output", required=True, help="Output .xlsx path")
    e.add_argument("--today", help="Override today's date (YYYY-MM-DD)")
    e.add_argument("--public-only", action="store_true", help="Skip internal rotas")
    e.set_defaults(func=_cmd_export)
    return p


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    cfg = HubConfig.from_env()
    if args.log_level:
        cfg.log_level = args.log_level
    if args.log_file:
        cfg.log_file = args.log_file
    setup_from_config(cfg, console_level="ERROR", stream=sys.stderr)
    configure_structlog(json_output=cfg.json_logs, level=cfg.log_level)

    try:
        return args.func(args, cfg)
    except RotaError as e:
        print(f"Error [{e.code.value}]: {e.message}", file=sys.stderr)
        return 1
    except StorageError as e:
        print(f"Storage error: {e}", file=sys.stderr)
        return 2
    except VersionConflict as e:
        print(f"Conflict: {e}. Another writer changed the rota; run the command again.", file=sys.stderr)
        return 3


if __name__ == "__main__":
    raise SystemExit(main())
