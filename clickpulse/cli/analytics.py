# ==============================================================================
# Analytics Commands
# ==============================================================================
"""
Analytics commands for the clickpulse CLI.

Reads events from the configured event store (or a JSON-lines file via
--input) and prints engagement metrics, behavior patterns, funnels and
page drop-off.
"""

import json
from pathlib import Path
from typing import Annotated, Optional

import typer

from clickpulse.cli.shared import (
    BOX_WIDTH,
    B,
    C,
    I,
    _box_bottom,
    _box_header,
    _box_line,
    _empty_line,
    _error,
    _section_header,
    get_analytics_service,
)

WindowOption = Annotated[
    Optional[str],
    typer.Option("--window", "-w", help="Time window: 1d, 7d, 30d or all"),
]
SiteOption = Annotated[Optional[str], typer.Option("--site", "-s", help="Only events of this site")]
JsonOption = Annotated[bool, typer.Option("--json", "-j", help="Output as JSON for scripting")]
InputOption = Annotated[
    Optional[Path],
    typer.Option("--input", "-i", help="Read events from a JSON-lines file instead of the store"),
]


def _window_label(window: Optional[str]) -> str:
    return {"1d": "Last Day", "7d": "Last Week", "30d": "Last Month", "all": "All Time"}.get(
        window or "", "Default Window"
    )


# ==============================================================================
# Commands
# ==============================================================================


def show_analytics(
    window: WindowOption = None,
    site: SiteOption = None,
    json_output: JsonOption = False,
    input_file: InputOption = None,
) -> None:
    """Show engagement metrics for a time window.

    Examples:
        clickpulse analytics                     # Formatted output, default window
        clickpulse analytics --window 30d --json # JSON output for scripting
        clickpulse analytics --input events.jsonl
    """
    service = get_analytics_service(input_file)
    try:
        snapshot = service.snapshot(window, site_id=site)
    except ValueError as e:
        _error(str(e))
        raise typer.Exit(1)

    if json_output:
        print(json.dumps(snapshot.model_dump(mode="json"), indent=2))
        return

    W = BOX_WIDTH
    returning = (
        f"{snapshot.return_visitor_rate:>11.2f}%"
        if snapshot.return_visitor_rate_available
        else f"{'n/a':>12}"
    )

    print()
    print(_box_header(f"CLICKPULSE ANALYTICS ({_window_label(window)})", W))
    print(_empty_line(W))
    print(_box_line(f"  {'Sessions':<34}{snapshot.total_sessions:>12,}", W))
    print(_box_line(f"  {'Events':<34}{snapshot.total_events:>12,}", W))
    print(_empty_line(W))
    print(_box_line(f"  {'Engagement Score':<34}{snapshot.engagement_score:>12.0f}", W))
    print(_box_line(f"  {'Bounce Rate':<34}{snapshot.bounce_rate:>11.2f}%", W))
    print(_box_line(f"  {'Conversion Rate':<34}{snapshot.conversion_rate:>11.2f}%", W))
    print(_box_line(f"  {'Avg Session Duration (s)':<34}{snapshot.avg_session_duration:>12.0f}", W))
    print(_box_line(f"  {'Pages per Session':<34}{snapshot.pages_per_session:>12.2f}", W))
    print(_box_line(f"  {'Return Visitor Rate':<34}{returning}", W))
    print(_empty_line(W))
    print(_box_bottom(W))
    print()


def show_patterns(
    window: WindowOption = None,
    site: SiteOption = None,
    json_output: JsonOption = False,
    input_file: InputOption = None,
    per_session: Annotated[
        bool, typer.Option("--per-session", help="Detect patterns per session")
    ] = False,
) -> None:
    """Show detected behavior patterns."""
    service = get_analytics_service(input_file)
    try:
        if per_session:
            grouped = service.session_patterns(window, site_id=site)
        else:
            grouped = {"window": service.patterns(window, site_id=site)}
    except ValueError as e:
        _error(str(e))
        raise typer.Exit(1)

    if json_output:
        print(
            json.dumps(
                {key: [p.model_dump(mode="json") for p in patterns] for key, patterns in grouped.items()},
                indent=2,
            )
        )
        return

    W = BOX_WIDTH
    print()
    print(_box_header("BEHAVIOR PATTERNS", W))
    for key, patterns in grouped.items():
        if per_session:
            print(_section_header(key, W))
        if not patterns:
            print(_box_line(f"  {C.DIM}No patterns detected{C.RESET}", W))
        for pattern in patterns:
            print(
                _box_line(
                    f"  {I.BULLET} {pattern.pattern_type.value:<22}{pattern.confidence:>6.1f}%  "
                    f"{C.DIM}{pattern.description[:28]}{C.RESET}",
                    W,
                )
            )
    print(_box_bottom(W))
    print()


def show_funnel(
    stages: Annotated[list[str], typer.Argument(help="Stage labels, matched against URL or element id")],
    window: WindowOption = None,
    site: SiteOption = None,
    json_output: JsonOption = False,
    input_file: InputOption = None,
) -> None:
    """Show a conversion funnel over the given stages.

    Examples:
        clickpulse funnel /products /cart /checkout
    """
    service = get_analytics_service(input_file)
    try:
        results = service.funnel(stages, window, site_id=site)
    except ValueError as e:
        _error(str(e))
        raise typer.Exit(1)

    if json_output:
        print(json.dumps([r.model_dump(mode="json") for r in results], indent=2))
        return

    W = BOX_WIDTH
    print()
    print(_box_header("CONVERSION FUNNEL", W))
    print(_empty_line(W))
    print(_box_line(f"  {'Stage':<26}{'Visitors':>10}  {'Conversion':>11}  {'Drop-off':>9}", W))
    print(_box_line("  " + B.H * (W - 6), W))
    for index, result in enumerate(results):
        label = result.stage if index == 0 else f"  {I.ARROW} {result.stage}"
        print(
            _box_line(
                f"  {label[:26]:<26}{result.visitor_count:>10,}  "
                f"{result.conversion_rate:>10.2f}%  {result.drop_off_rate:>8.2f}%",
                W,
            )
        )
    print(_empty_line(W))
    print(_box_bottom(W))
    print()


def show_dropoff(
    window: WindowOption = None,
    site: SiteOption = None,
    json_output: JsonOption = False,
    input_file: InputOption = None,
    limit: Annotated[int, typer.Option("--limit", "-n", help="Number of pages to show")] = 10,
) -> None:
    """Show pages ranked by views with drop-off from the previous page."""
    service = get_analytics_service(input_file)
    try:
        pages = service.drop_off(window, site_id=site)
    except ValueError as e:
        _error(str(e))
        raise typer.Exit(1)

    if json_output:
        print(json.dumps([p.model_dump(mode="json") for p in pages], indent=2))
        return

    W = BOX_WIDTH
    print()
    print(_box_header("PAGE DROP-OFF", W))
    print(_empty_line(W))
    for page in pages[:limit]:
        drop = "-" if page.drop_off_rate is None else f"{page.drop_off_rate:.2f}%"
        print(_box_line(f"  {page.page_url[:44]:<44}{page.views:>8,}  {drop:>9}", W))
    if not pages:
        print(_box_line(f"  {C.DIM}No page views in window{C.RESET}", W))
    print(_empty_line(W))
    print(_box_bottom(W))
    print()
