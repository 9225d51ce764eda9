"""Command-line interface for secret-sieve.

Finds credential-shaped strings in source trees and git change sets, lets the
operator baseline reviewed findings, and redacts confirmed secrets in place.

Commands:
    scan      Scan a tree, the staged changes, a commit range or a diff file
    baseline  Manage the baseline of reviewed findings
    repair    Replace confirmed secrets with a placeholder

Configuration:
    Supports config files: sieve.toml, .sieve.yml, etc.
    CLI flags override config file values.

Exit codes:
    0  nothing at high severity (nothing at medium or above with --strict)
    1  findings at high severity, or a repair that failed for some file
    2  usage, configuration, baseline or git errors
"""

from __future__ import annotations

import json
import logging
import sys
from dataclasses import dataclass
from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
)
from rich.table import Table

from . import __version__
from .baseline import BaselineStore
from .config import BASELINE_FILENAME, Finding, OutputFormat, ScanConfig, ScanResult, Severity
from .config_loader import load_config, merge_cli_with_config
from .engine import ScanEngine, load_baseline
from .errors import SieveError
from .fingerprint import is_fingerprint
from .git import (
    check_git_installed,
    get_repo_root,
    get_since_diff,
    get_staged_diff,
    validate_scan_root,
)
from .logging_config import setup_logging
from .renderer import (
    findings_to_json,
    render_repair_results,
    render_scan_result,
    repair_results_to_json,
    scan_result_to_json,
)
from .repair import repair

EXIT_OK = 0
EXIT_FINDINGS = 1
EXIT_ERROR = 2

# Initialize CLI app
app = typer.Typer(
    name="sieve",
    help="""Find, triage and redact secrets before they reach version control.

Examples:
    sieve scan                      # scan the current directory
    sieve scan --staged             # scan what is about to be committed
    sieve scan --since origin/main  # scan commits not yet on main
    sieve baseline generate         # accept every current finding
    sieve repair --dry-run          # show what would be redacted
""",
    add_completion=False,
    no_args_is_help=True,
)

baseline_app = typer.Typer(
    help="Manage the baseline of reviewed findings.",
    no_args_is_help=True,
)
app.add_typer(baseline_app, name="baseline")

console = Console()
err_console = Console(stderr=True)

logger = logging.getLogger(__name__)


def create_progress() -> Progress:
    """Create a rich progress bar with file scanning columns."""
    return Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(bar_width=30),
        MofNCompleteColumn(),
        TimeElapsedColumn(),
        console=err_console,
        transient=True,
    )


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"sieve version {__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    version: bool = typer.Option(
        False,
        "--version",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
) -> None:
    """Secret-leak detector and remediator."""


def fail(message: str) -> typer.Exit:
    """Report a usage or configuration error; the caller raises the result."""
    err_console.print(f"[red]Error: {escape(message)}[/red]")
    return typer.Exit(EXIT_ERROR)


@dataclass
class ScanSource:
    """Where the text to scan comes from."""

    kind: str  # "tree", "staged", "since" or "diff-file"
    root: Path
    diff_text: str | None = None

    @property
    def is_diff(self) -> bool:
        return self.diff_text is not None


def resolve_source(
    staged: bool,
    since: str | None,
    diff_file: str | None,
    path: Path | None,
) -> ScanSource:
    """
    Work out the scan source from the mutually exclusive source options.

    Raises:
        typer.Exit: on conflicting options
        SieveError: if git fails
        ValueError: if the path is unusable
    """
    chosen = [name for name, value in (
        ("--staged", staged),
        ("--since", since),
        ("--diff-file", diff_file),
        ("--path", path),
    ) if value]
    if len(chosen) > 1:
        raise fail(f"Options {' and '.join(chosen)} cannot be combined.")

    if staged or since:
        logger.debug("Using %s", check_git_installed())

    if staged:
        root = get_repo_root(Path.cwd())
        return ScanSource("staged", root, get_staged_diff(root))
    if since:
        root = get_repo_root(Path.cwd())
        return ScanSource("since", root, get_since_diff(since, root))
    if diff_file:
        if diff_file == "-":
            text = sys.stdin.read()
        else:
            try:
                text = Path(diff_file).read_text(encoding="utf-8", errors="replace")
            except OSError as e:
                raise fail(f"Cannot read diff file {diff_file}: {e.strerror or e}") from None
        return ScanSource("diff-file", Path.cwd(), text)
    return ScanSource("tree", validate_scan_root(path or Path.cwd()))


def run_scan(source: ScanSource, config: ScanConfig, show_progress: bool) -> tuple[ScanEngine, ScanResult]:
    """Load the baseline and scan the source."""
    engine = ScanEngine(config, load_baseline(config.baseline_path))

    if source.is_diff:
        return engine, engine.scan_diff(source.diff_text or "")

    if not show_progress:
        return engine, engine.scan_tree(source.root)

    with create_progress() as progress:
        task = progress.add_task("Scanning files", total=None)

        def on_progress(completed: int, total: int) -> None:
            progress.update(task, completed=completed, total=total)

        result = engine.scan_tree(source.root, progress_callback=on_progress)
    return engine, result


def exit_code_for(findings: list[Finding], strict: bool = False) -> int:
    """Exit status for a list of findings; baselined findings never fail a run."""
    active = [f for f in findings if not f.baselined]
    if any(f.severity is Severity.HIGH for f in active):
        return EXIT_FINDINGS
    if strict and any(f.severity is Severity.MEDIUM for f in active):
        return EXIT_FINDINGS
    return EXIT_OK


def build_config(
    source: ScanSource,
    config_file: Path | None,
    **cli_values,
) -> ScanConfig:
    """Load the project config file and merge CLI values over it."""
    project_config = load_config(source.root, config_file)
    if project_config._config_file:
        logger.info("Using config: %s", project_config._config_file)
        logger.debug("Config file values: %s", project_config.to_dict())
    return merge_cli_with_config(project_config, **cli_values)


# Options shared by every command that scans
STAGED_OPTION = typer.Option(False, "--staged", help="Scan the staged changes (git diff --cached).")
SINCE_OPTION = typer.Option(None, "--since", help="Scan changes committed since REF (REF..HEAD).")
DIFF_FILE_OPTION = typer.Option(
    None, "--diff-file", help="Scan a unified diff read from FILE ('-' for stdin)."
)
PATH_OPTION = typer.Option(
    None,
    "--path",
    "-p",
    help="Directory to scan. [default: current directory]",
    file_okay=False,
    dir_okay=True,
)
CONFIG_OPTION = typer.Option(
    None,
    "--config",
    "-c",
    help="Path to config file (sieve.toml or .sieve.yml).",
    file_okay=True,
    dir_okay=False,
)
BASELINE_OPTION = typer.Option(
    None, "--baseline", "-b", help="Baseline file. [default: .sieve.baseline.json]"
)
WORKERS_OPTION = typer.Option(None, "--workers", "-w", help="Worker threads for tree scans.")
THRESHOLD_OPTION = typer.Option(
    None, "--threshold", help="Minimum score surfaced by default (0-100). [default: 70]"
)
ALL_OPTION = typer.Option(False, "--all", help="Also report informational low-confidence findings.")
EXCLUDE_OPTION = typer.Option(
    None, "--exclude-glob", "-e", help="Exclude paths matching these globs (comma-separated)."
)
NO_GITIGNORE_OPTION = typer.Option(False, "--no-gitignore", help="Ignore .gitignore rules.")
DISABLE_RULE_OPTION = typer.Option(
    None, "--disable-rule", help="Rule ids to disable (comma-separated)."
)
VERBOSE_OPTION = typer.Option(False, "--verbose", "-v", help="Show reasons and debug logging.")
QUIET_OPTION = typer.Option(False, "--quiet", "-q", help="Only log errors.")
LOG_FILE_OPTION = typer.Option(None, "--log-file", help="Also append log records to this file.")


@app.command()
def scan(
    staged: bool = STAGED_OPTION,
    since: str | None = SINCE_OPTION,
    diff_file: str | None = DIFF_FILE_OPTION,
    path: Path | None = PATH_OPTION,
    output_format: OutputFormat = typer.Option(
        OutputFormat.HUMAN, "--format", "-f", help="Output format: 'human' or 'json'."
    ),
    strict: bool = typer.Option(False, "--strict", help="Exit non-zero on medium findings too."),
    show_suppressed: bool = typer.Option(
        False, "--show-suppressed", help="Include baselined findings, marked as such."
    ),
    report: Path | None = typer.Option(
        None,
        "--report",
        help="Also write the full JSON report (findings, file errors, stats) to FILE.",
        file_okay=True,
        dir_okay=False,
    ),
    include_all: bool = ALL_OPTION,
    baseline: Path | None = BASELINE_OPTION,
    config_file: Path | None = CONFIG_OPTION,
    workers: int | None = WORKERS_OPTION,
    threshold: int | None = THRESHOLD_OPTION,
    exclude_glob: str | None = EXCLUDE_OPTION,
    no_gitignore: bool = NO_GITIGNORE_OPTION,
    disable_rule: str | None = DISABLE_RULE_OPTION,
    verbose: bool = VERBOSE_OPTION,
    quiet: bool = QUIET_OPTION,
    log_file: str | None = LOG_FILE_OPTION,
) -> None:
    """Scan for secrets and report ranked findings.

    \b
    EXAMPLES:
      sieve scan -p ./my-project
      sieve scan --staged --strict
      sieve scan --report sieve-report.json
      git diff main | sieve scan --diff-file - --format json
    """
    setup_logging(verbose=verbose, quiet=quiet, log_file=log_file)

    try:
        source = resolve_source(staged, since, diff_file, path)
        config = build_config(
            source,
            config_file,
            high_confidence_threshold=threshold,
            exclude_glob=exclude_glob,
            no_gitignore=no_gitignore,
            max_workers=workers,
            baseline_path=baseline,
            disabled_rules=disable_rule,
            show_suppressed=True if show_suppressed else None,
            include_informational=True if include_all else None,
        )
        show_progress = output_format is OutputFormat.HUMAN and not quiet
        _, result = run_scan(source, config, show_progress)
    except (SieveError, ValueError) as e:
        raise fail(str(e)) from None

    if output_format is OutputFormat.JSON:
        typer.echo(findings_to_json(result.findings))
        for error in result.errors:
            logger.warning("%s: %s error: %s", error.file_path, error.kind, error.message)
    else:
        render_scan_result(result, console, verbose=verbose)

    if report is not None:
        try:
            report.write_text(scan_result_to_json(result) + "\n", encoding="utf-8")
        except OSError as e:
            raise fail(f"Cannot write report {report}: {e}") from None
        logger.info(
            "Report written to %s%s", report, " (some files had errors)" if result.has_errors else ""
        )

    raise typer.Exit(exit_code_for(result.findings, strict=strict))


@baseline_app.command("generate")
def baseline_generate(
    staged: bool = STAGED_OPTION,
    since: str | None = SINCE_OPTION,
    diff_file: str | None = DIFF_FILE_OPTION,
    path: Path | None = PATH_OPTION,
    include_all: bool = ALL_OPTION,
    baseline: Path | None = BASELINE_OPTION,
    config_file: Path | None = CONFIG_OPTION,
    workers: int | None = WORKERS_OPTION,
    threshold: int | None = THRESHOLD_OPTION,
    exclude_glob: str | None = EXCLUDE_OPTION,
    no_gitignore: bool = NO_GITIGNORE_OPTION,
    disable_rule: str | None = DISABLE_RULE_OPTION,
    verbose: bool = VERBOSE_OPTION,
    quiet: bool = QUIET_OPTION,
) -> None:
    """Scan, then add every current finding to the baseline."""
    setup_logging(verbose=verbose, quiet=quiet)

    try:
        source = resolve_source(staged, since, diff_file, path)
        config = build_config(
            source,
            config_file,
            high_confidence_threshold=threshold,
            exclude_glob=exclude_glob,
            no_gitignore=no_gitignore,
            max_workers=workers,
            baseline_path=baseline,
            disabled_rules=disable_rule,
            show_suppressed=False,
            include_informational=True if include_all else None,
        )
        engine, result = run_scan(source, config, show_progress=not quiet)

        store = engine.baseline
        before = len(store)
        for finding in result.findings:
            store.add(finding.fingerprint, note=f"{finding.rule_id} in {finding.file_path}")
        store.save(config.baseline_path)
    except (SieveError, ValueError, OSError) as e:
        raise fail(str(e)) from None

    console.print(
        f"[green]✓ Added {len(store) - before} findings to {config.baseline_path} "
        f"({len(store)} entries)[/green]"
    )


@baseline_app.command("add")
def baseline_add(
    fingerprint: str = typer.Argument(..., help="Fingerprint to accept."),
    note: str | None = typer.Option(None, "--note", "-n", help="Why this finding is accepted."),
    baseline: Path = typer.Option(Path(BASELINE_FILENAME), "--baseline", "-b", help="Baseline file."),
) -> None:
    """Accept a single finding by fingerprint."""
    if not is_fingerprint(fingerprint):
        raise fail("Fingerprint must be a 64-character lowercase hex digest.")
    try:
        store = BaselineStore.load(baseline)
        present = store.contains(fingerprint)
        store.add(fingerprint, note=note)
        store.save(baseline)
    except (SieveError, OSError) as e:
        raise fail(str(e)) from None

    if present:
        console.print(f"[dim]{fingerprint[:12]} is already baselined[/dim]")
    else:
        console.print(f"[green]✓ Baselined {fingerprint[:12]}[/green]")


@baseline_app.command("remove")
def baseline_remove(
    fingerprint: str = typer.Argument(..., help="Fingerprint to remove."),
    baseline: Path = typer.Option(Path(BASELINE_FILENAME), "--baseline", "-b", help="Baseline file."),
) -> None:
    """Stop ignoring a finding."""
    try:
        store = BaselineStore.load(baseline)
        removed = store.remove(fingerprint)
        if removed:
            store.save(baseline)
    except (SieveError, OSError) as e:
        raise fail(str(e)) from None

    if not removed:
        err_console.print(f"[yellow]{fingerprint[:12]} is not in the baseline[/yellow]")
        raise typer.Exit(EXIT_FINDINGS)
    console.print(f"[green]✓ Removed {fingerprint[:12]}[/green]")


@baseline_app.command("list")
def baseline_list(
    baseline: Path = typer.Option(Path(BASELINE_FILENAME), "--baseline", "-b", help="Baseline file."),
    output_format: OutputFormat = typer.Option(
        OutputFormat.HUMAN, "--format", "-f", help="Output format: 'human' or 'json'."
    ),
) -> None:
    """Show the baselined fingerprints."""
    try:
        store = BaselineStore.load(baseline)
    except SieveError as e:
        raise fail(str(e)) from None

    if output_format is OutputFormat.JSON:
        typer.echo(json.dumps(store.to_list(), indent=2, sort_keys=True))
        return

    if not len(store):
        console.print("[dim]Baseline is empty[/dim]")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("Fingerprint")
    table.add_column("Added")
    table.add_column("Note")
    for entry in store:
        table.add_row(entry.fingerprint, entry.added_at or "-", escape(entry.note or ""))
    console.print(table)


@app.command("repair")
def repair_command(
    staged: bool = STAGED_OPTION,
    since: str | None = SINCE_OPTION,
    diff_file: str | None = DIFF_FILE_OPTION,
    path: Path | None = PATH_OPTION,
    fingerprints: list[str] | None = typer.Option(
        None, "--fingerprint", help="Only repair these fingerprints (repeatable)."
    ),
    placeholder: str | None = typer.Option(
        None, "--placeholder", help="Replacement token. [default: REDACTED_SECRET]"
    ),
    dry_run: bool = typer.Option(False, "--dry-run", help="Show what would change without writing."),
    output_format: OutputFormat = typer.Option(
        OutputFormat.HUMAN, "--format", "-f", help="Output format: 'human' or 'json'."
    ),
    include_all: bool = ALL_OPTION,
    baseline: Path | None = BASELINE_OPTION,
    config_file: Path | None = CONFIG_OPTION,
    workers: int | None = WORKERS_OPTION,
    threshold: int | None = THRESHOLD_OPTION,
    exclude_glob: str | None = EXCLUDE_OPTION,
    no_gitignore: bool = NO_GITIGNORE_OPTION,
    disable_rule: str | None = DISABLE_RULE_OPTION,
    verbose: bool = VERBOSE_OPTION,
    quiet: bool = QUIET_OPTION,
) -> None:
    """Scan, then replace surfaced secrets with a placeholder in place.

    Baselined findings are never touched. Files are rewritten atomically, and
    a finding whose text changed since the scan is skipped as stale.

    \b
    EXAMPLES:
      sieve repair --dry-run
      sieve repair --staged
      sieve repair --fingerprint 3f2a... --placeholder '<removed>'
    """
    setup_logging(verbose=verbose, quiet=quiet)

    try:
        source = resolve_source(staged, since, diff_file, path)
        config = build_config(
            source,
            config_file,
            high_confidence_threshold=threshold,
            exclude_glob=exclude_glob,
            no_gitignore=no_gitignore,
            max_workers=workers,
            baseline_path=baseline,
            placeholder=placeholder,
            disabled_rules=disable_rule,
            show_suppressed=False,
            include_informational=True if include_all else None,
        )
        show_progress = output_format is OutputFormat.HUMAN and not quiet
        engine, result = run_scan(source, config, show_progress)
    except (SieveError, ValueError) as e:
        raise fail(str(e)) from None

    targets = result.findings
    if fingerprints:
        wanted = set(fingerprints)
        targets = [f for f in targets if f.fingerprint in wanted]
        for fp in sorted(wanted - {f.fingerprint for f in targets}):
            logger.warning("Fingerprint %s not among current findings", fp[:12])

    if source.is_diff and targets:
        # Diff line numbers are not working-tree positions; find each secret again
        targets, missing = engine.relocate(targets, source.root)
        for fp in sorted(missing):
            logger.warning("Fingerprint %s not found in the working tree", fp[:12])

    results = repair(targets, placeholder=config.placeholder, root=source.root, dry_run=dry_run)

    if output_format is OutputFormat.JSON:
        typer.echo(repair_results_to_json(results))
    else:
        render_repair_results(results, console, dry_run=dry_run)

    if any(r.status == "error" for r in results):
        raise typer.Exit(EXIT_FINDINGS)


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
