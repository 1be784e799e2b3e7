"""CLI entry point for the affiliate scout engine."""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv
from pydantic import ValidationError

from affiliate_scout.core.config import Settings
from affiliate_scout.core.db import init_db
from affiliate_scout.core.schemas import (
    CandidateFound,
    CandidateResult,
    Done,
    EnrichmentUpdated,
    Error,
    Platform,
    SearchRequest,
    SearchSummary,
)
from affiliate_scout.pipeline.credit_ledger import CreditLedger
from affiliate_scout.pipeline.location import country_code, language_code
from affiliate_scout.pipeline.orchestrator import (
    END_FRAME,
    SearchOrchestrator,
    apply_enrichment,
    event_to_ndjson,
    export_results_json,
)
from affiliate_scout.pipeline.scorer import score_candidates
from affiliate_scout.platforms.client import JobApiClient, SearchApiClient
from affiliate_scout.platforms.queries import build_site_query
from affiliate_scout.platforms.web import request_queries

DEFAULT_CONFIG = "config/settings.yaml"


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Affiliate scout - find creator affiliates across web and social platforms",
    )
    parser.add_argument(
        "--config",
        default=DEFAULT_CONFIG,
        help=f"Path to settings YAML file (default: {DEFAULT_CONFIG})",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    # --- search subcommand ---
    search_parser = subparsers.add_parser("search", help="Run one search and print results")
    search_parser.add_argument("--keyword", required=True, help="Topic keyword to search for")
    search_parser.add_argument(
        "--platform",
        action="append",
        choices=[p.value for p in Platform],
        help="Platform to search (repeatable, default: Web)",
    )
    search_parser.add_argument("--country", help="Target country name, e.g. Germany")
    search_parser.add_argument("--language", help="Target language name, e.g. German")
    search_parser.add_argument("--brand", help="Your brand domain (excluded from results)")
    search_parser.add_argument(
        "--competitor",
        action="append",
        default=[],
        help="Competitor domain (repeatable)",
    )
    search_parser.add_argument(
        "--exclude",
        action="append",
        default=[],
        help="Domain to exclude from results (repeatable)",
    )
    search_parser.add_argument("--user", default="cli", help="Owner id for storage and credits")
    search_parser.add_argument("--timeout", type=float, help="Overall budget in seconds")
    search_parser.add_argument(
        "--export",
        choices=["json", "ndjson"],
        help="Export format: json (ranked, after enrichment) or ndjson (live events)",
    )
    search_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show the queries that would run without calling any provider",
    )
    search_parser.add_argument(
        "--verbose", "-v", action="store_true", default=argparse.SUPPRESS,
        help="Enable verbose (DEBUG) logging",
    )

    # --- serve subcommand ---
    serve_parser = subparsers.add_parser("serve", help="Run the HTTP API")
    serve_parser.add_argument("--host", help="Bind address (default from settings)")
    serve_parser.add_argument("--port", type=int, help="Bind port (default from settings)")
    serve_parser.add_argument(
        "--verbose", "-v", action="store_true", default=argparse.SUPPRESS,
        help="Enable verbose (DEBUG) logging",
    )

    # --- credits subcommand ---
    credits_parser = subparsers.add_parser("credits", help="Show or grant search credits")
    credits_parser.add_argument("--user", required=True, help="User id")
    credits_parser.add_argument("--grant", type=int, help="Credits to add (-1 for unlimited)")
    credits_parser.add_argument("--kind", help="Credit kind (default from settings)")
    credits_parser.add_argument(
        "--verbose", "-v", action="store_true", default=argparse.SUPPRESS,
        help="Enable verbose (DEBUG) logging",
    )

    return parser.parse_args(argv)


def setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)


def load_settings(path: str) -> Settings:
    """Load settings; the default path may be absent, in which case defaults apply."""
    if path == DEFAULT_CONFIG and not Path(path).exists():
        logging.getLogger(__name__).info("No %s found, using default settings", path)
        return Settings()
    return Settings.from_yaml(path)


def build_request(args: argparse.Namespace, settings: Settings) -> SearchRequest:
    return SearchRequest(
        keyword=args.keyword,
        platforms=args.platform or [Platform.WEB.value],
        country=args.country,
        language=args.language,
        brand_domain=args.brand,
        competitors=args.competitor,
        exclude_domains=args.exclude,
        timeout_s=args.timeout or settings.budget.request_timeout_s,
        owner=args.user,
    )


def dry_run(request: SearchRequest, settings: Settings) -> None:
    """Print what would happen without calling any provider."""
    print(f"[DRY RUN] '{request.keyword}' on {', '.join(p.value for p in request.platforms)}")
    print(f"  Locale: gl={country_code(request.country)} hl={language_code(request.language)}")
    print(f"  Timeout: {request.timeout_s:.0f}s, enrichment budget "
          f"{settings.budget.enrichment_timeout_s:.0f}s")

    for platform in request.platforms:
        if platform is Platform.WEB:
            queries = request_queries(request, settings.search.include_localized)
        else:
            queries = [build_site_query(platform, request.keyword)]
        for q in queries:
            print(f"  {platform.value}: {q}")

    if settings.credits.enforce:
        conn = init_db(settings.database.path)
        ledger = CreditLedger(conn, settings.credits)
        check = ledger.check(request.owner, settings.credits.kind, 1)
        state = "OK" if check.allowed else "BLOCKED"
        print(f"  Credits for '{request.owner}': {check.remaining} ({state})")
        conn.close()

    print("[DRY RUN] No provider calls made")


async def run(request: SearchRequest, settings: Settings, export_format: str | None) -> int:
    """Run one search end to end, printing events as they arrive."""
    conn = init_db(settings.database.path)
    ledger = CreditLedger(conn, settings.credits)
    if ledger.enforced and not ledger.check(request.owner, settings.credits.kind, 1).allowed:
        print(f"Error: '{request.owner}' has no {settings.credits.kind} credits left", file=sys.stderr)
        conn.close()
        return 2

    candidates: list[CandidateResult] = []
    summary: SearchSummary | None = None

    async with SearchApiClient.from_config(settings.providers, settings.retry) as search_client, \
            JobApiClient.from_config(settings.providers, settings.retry) as job_client:
        orchestrator = SearchOrchestrator.from_clients(
            settings, conn, search_client, job_client, ledger,
        )
        async for event in orchestrator.run(request):
            if export_format == "ndjson":
                print(event_to_ndjson(event), flush=True)
            if isinstance(event, CandidateFound):
                candidates.append(event.candidate)
                if export_format is None:
                    c = event.candidate
                    print(f"  [{c.platform.value}] {c.title} - {c.url}")
            elif isinstance(event, EnrichmentUpdated):
                candidates = apply_enrichment(candidates, event)
            elif isinstance(event, Done):
                summary = event.summary
            elif isinstance(event, Error) and export_format is None:
                where = f" ({event.platform.value})" if event.platform else ""
                print(f"  ! {event.message}{where}", file=sys.stderr)
        await orchestrator.wait_background()

    if export_format == "ndjson":
        print(END_FRAME)

    if summary is not None and export_format != "ndjson":
        print(f"\nSearch complete: {summary.total} candidates"
              f"{' (timed out)' if summary.timed_out else ''}.")
        for outcome in summary.outcomes:
            print(f"  {outcome.platform.value}: {outcome.status}, {outcome.raw_count} raw, "
                  f"{outcome.filtered_count} kept")

    if export_format == "json":
        print(export_results_json(score_candidates(candidates, settings.scoring)))

    conn.close()
    return 0


def cmd_serve(args: argparse.Namespace, settings: Settings) -> None:
    import uvicorn

    from affiliate_scout.api.app import create_app

    app = create_app(settings)
    uvicorn.run(
        app,
        host=args.host or settings.api.host,
        port=args.port or settings.api.port,
        log_level="debug" if args.verbose else "info",
    )


def cmd_credits(args: argparse.Namespace, settings: Settings) -> None:
    conn = init_db(settings.database.path)
    ledger = CreditLedger(conn, settings.credits)
    kind = args.kind or settings.credits.kind
    if args.grant is not None:
        balance = ledger.grant(args.user, kind, args.grant)
    else:
        balance = ledger.balance(args.user, kind)
    shown = "unlimited" if balance == -1 else str(balance)
    print(f"{args.user}: {shown} {kind} credits")
    conn.close()


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    setup_logging(args.verbose)
    load_dotenv()

    try:
        settings = load_settings(args.config)
    except (FileNotFoundError, ValueError) as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        sys.exit(1)

    if args.command == "serve":
        cmd_serve(args, settings)
    elif args.command == "credits":
        cmd_credits(args, settings)
    else:
        try:
            request = build_request(args, settings)
        except ValidationError as e:
            print(f"Invalid search: {e}", file=sys.stderr)
            sys.exit(1)
        if args.dry_run:
            dry_run(request, settings)
        else:
            sys.exit(asyncio.run(run(request, settings, args.export)))


if __name__ == "__main__":
    main()
