"""
Output rendering for secret-sieve.

Two formats:
- json: an array of finding objects on stdout, for CI and tooling
- human: a rich table with masked previews and a one-line summary

A full report object (findings, errors, stats) can also be written to a file.

Neither format ever contains a raw matched value.
"""

from __future__ import annotations

import json
from collections.abc import Iterable

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .config import Finding, ScanResult, Severity
from .repair import RepairResult

SEVERITY_STYLES = {
    Severity.HIGH: "bold red",
    Severity.MEDIUM: "yellow",
    Severity.LOW: "dim",
}

STATUS_STYLES = {
    "repaired": "green",
    "stale": "yellow",
    "skipped": "dim",
    "error": "red",
}


def findings_to_json(findings: Iterable[Finding]) -> str:
    """Serialize findings as a stable, pretty-printed JSON array."""
    return json.dumps([f.to_dict() for f in findings], indent=2, sort_keys=True)


def repair_results_to_json(results: Iterable[RepairResult]) -> str:
    return json.dumps([r.to_dict() for r in results], indent=2, sort_keys=True)


def scan_result_to_json(result: ScanResult) -> str:
    """Serialize a whole scan (findings, per-file errors and stats) as one JSON object."""
    return json.dumps(result.to_dict(), indent=2, sort_keys=True)


def build_findings_table(findings: list[Finding], show_reason: bool = False) -> Table:
    """Build a rich table of findings, one row each."""
    table = Table(show_header=True, header_style="bold", show_lines=False)
    table.add_column("Severity")
    table.add_column("Score", justify="right")
    table.add_column("Rule")
    table.add_column("Location")
    table.add_column("Preview")
    table.add_column("Fingerprint")
    if show_reason:
        table.add_column("Reason")

    for finding in findings:
        severity = finding.severity
        label = severity.value.upper()
        if finding.baselined:
            label += " (baselined)"
        row = [
            f"[{SEVERITY_STYLES[severity]}]{label}[/]",
            str(finding.score),
            finding.rule_id,
            escape(f"{finding.file_path}:{finding.line_number}:{finding.column_span[0] + 1}"),
            escape(finding.redacted_preview),
            finding.fingerprint[:12],
        ]
        if show_reason:
            row.append(escape(finding.reason))
        table.add_row(*row)

    return table


def render_scan_result(result: ScanResult, console: Console, verbose: bool = False) -> None:
    """Print a scan result for humans."""
    stats = result.stats

    if result.findings:
        console.print(build_findings_table(result.findings, show_reason=verbose))
    else:
        console.print("[green]✓ No secrets found[/green]")

    counts = {s: 0 for s in Severity}
    for finding in result.findings:
        if not finding.baselined:
            counts[finding.severity] += 1

    console.print(
        f"[cyan]{stats.files_scanned} files, {stats.lines_scanned} lines scanned[/cyan] · "
        f"[bold red]{counts[Severity.HIGH]} high[/] · "
        f"[yellow]{counts[Severity.MEDIUM]} medium[/] · "
        f"[dim]{counts[Severity.LOW]} low · {stats.findings_suppressed} baselined[/]"
    )

    for error in result.errors:
        console.print(f"[yellow]Warning: {escape(error.file_path)}: {error.kind} error: {escape(error.message)}[/yellow]")


def render_repair_results(results: list[RepairResult], console: Console, dry_run: bool = False) -> None:
    """Print one line per repaired file."""
    if not results:
        console.print("[green]✓ Nothing to repair[/green]")
        return

    for result in results:
        style = STATUS_STYLES[result.status]
        detail = f"{result.findings_repaired} replaced"
        if result.skipped_stale:
            detail += f", {result.skipped_stale} stale"
        if result.error:
            detail += f", {escape(result.error)}"
        status = result.status
        if dry_run and status == "repaired":
            status = "would repair"
        console.print(f"[{style}]{status:>12}[/] {escape(result.file_path)} ({detail})")
