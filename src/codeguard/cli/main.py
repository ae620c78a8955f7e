"""AsyncClick CLI for the analysis client.

Provides user-facing commands:
- analyze: Submit source files for security analysis and print results
- health: Probe the analysis service
- clear-cache: Empty the local result cache
"""

from pathlib import Path

import asyncclick as click
import structlog

from codeguard.core.config import Config, load_config
from codeguard.core.errors import AnalysisError
from codeguard.core.models import AnalysisPayload, ProjectFile
from codeguard.core.persistence.cache import ResultCache
from codeguard.orchestration import RequestOrchestrator, RequestState

logger = structlog.get_logger()

LANGUAGES_BY_SUFFIX = {
    ".py": "python",
    ".js": "javascript",
    ".jsx": "javascript",
    ".ts": "typescript",
    ".tsx": "typescript",
    ".java": "java",
    ".php": "php",
    ".go": "go",
    ".rb": "ruby",
    ".cs": "csharp",
    ".c": "c",
    ".cpp": "cpp",
    ".rs": "rust",
}


def detect_language(path: Path) -> str:
    return LANGUAGES_BY_SUFFIX.get(path.suffix.lower(), "")


async def open_cache(config: Config) -> ResultCache:
    """Open the result cache configured for this run. Caller closes it."""
    return await ResultCache.open(config.database_url, ttl=config.cache_ttl_seconds)


def build_orchestrator(config: Config, cache: ResultCache | None) -> RequestOrchestrator:
    return RequestOrchestrator(config, cache=cache)


@click.group()
@click.option("--endpoint", envvar="CODEGUARD_API_ENDPOINT", default=None, help="Analysis service URL")
@click.pass_context
async def cli(ctx, endpoint: str | None):
    """CodeGuard - Resilient security analysis client"""
    ctx.ensure_object(dict)
    overrides = {"api_endpoint": endpoint} if endpoint else {}
    ctx.obj["config"] = load_config(**overrides)


@cli.command()
@click.argument("paths", nargs=-1, required=True, type=click.Path(exists=True, dir_okay=False))
@click.option("--priority", "-p", type=click.Choice(["low", "normal", "high"]), default="normal")
@click.option("--language", "-l", default=None, help="Language override (default: from file suffix)")
@click.option("--mode", "-m", type=click.Choice(["quick", "deep", "full"]), default=None)
@click.option("--project", is_flag=True, help="Submit all files as one project analysis")
@click.option("--cache/--no-cache", "use_cache", default=True, help="Reuse cached results")
@click.pass_context
async def analyze(
    ctx,
    paths: tuple[str, ...],
    priority: str,
    language: str | None,
    mode: str | None,
    project: bool,
    use_cache: bool,
):
    """Analyze source files for security vulnerabilities.

    Examples:
        codeguard analyze app.py
        codeguard analyze src/a.ts src/b.ts --priority high --mode deep
        codeguard analyze *.py --project
    """
    config: Config = ctx.obj["config"]
    options = {"mode": mode} if mode else {}

    payloads: list[tuple[str, AnalysisPayload]] = []
    files = [Path(p) for p in paths]
    if project:
        payloads.append((
            f"project ({len(files)} files)",
            AnalysisPayload(
                files=[
                    ProjectFile(
                        path=str(f),
                        content=f.read_text(encoding="utf-8", errors="replace"),
                        language=language or detect_language(f),
                    )
                    for f in files
                ],
                options=options,
            ),
        ))
    else:
        for f in files:
            payloads.append((
                str(f),
                AnalysisPayload(
                    code=f.read_text(encoding="utf-8", errors="replace"),
                    language=language or detect_language(f),
                    options=options,
                ),
            ))

    cache = await open_cache(config) if use_cache else None
    orchestrator = build_orchestrator(config, cache)
    failed = 0

    try:
        click.echo("[*] CodeGuard Security Analysis")
        click.echo(f"[*] Endpoint: {config.normalized_endpoint or '(not configured)'}")

        submitted = []
        for label, payload in payloads:
            try:
                submitted.append((label, orchestrator.submit(payload, priority)))
            except AnalysisError as e:
                click.echo(f"[-] {label}: {e.user_message}")
                failed += 1

        for label, request_id in submitted:
            request = await orchestrator.wait(request_id)

            if request.state != RequestState.COMPLETED:
                failed += 1
                message = request.error.user_message if isinstance(request.error, AnalysisError) else request.error
                click.echo(f"\n[-] {label}: {request.state.value} after {request.attempts} attempt(s)")
                click.echo(f"    {message}")
                continue

            result = request.result
            summary = result.summary
            click.echo(f"\n[+] {label}: completed" + (" (cached)" if result.cached else ""))
            click.echo(f"    Issues: {summary.get('totalIssues', len(result.prioritized_issues))}")
            for key in ("critical", "high", "medium", "low"):
                click.echo(f"    {key.capitalize()}: {summary.get(f'{key}Issues', 0)}")
            if result.files_analyzed is not None:
                click.echo(f"    Files analyzed: {result.files_analyzed} (skipped: {result.files_skipped})")

            curated = result.curated
            if curated is None:
                continue

            intel = curated.intelligence
            click.echo(f"    Enhanced findings: {intel.total_vulns} "
                       f"(false positives removed: {len(curated.removed)}, flagged: {len(curated.warned)})")
            click.echo(f"    CISA KEV: {intel.cisa_kev_count}  High EPSS: {intel.high_epss_count}  "
                       f"Avg priority: {intel.average_priority_score}")
            for finding in orchestrator.prioritizer.get_top_priority(curated.findings):
                title = finding.primary_issue.title or finding.issue_type or "finding"
                click.echo(f"    - [{finding.priority_level.value}] {title} "
                           f"({round(finding.priority_score)}/100)")
                if finding.urgency_reason:
                    click.echo(f"      {finding.urgency_reason}")

        for endpoint, stats in orchestrator.get_breaker_stats().items():
            if stats.state.value != "CLOSED":
                click.echo(f"\n[!] Circuit {stats.state.value} for {endpoint} ({stats.failures} recent failures)")

    finally:
        await orchestrator.close()
        if cache is not None:
            await cache.close()

    if failed:
        ctx.exit(1)


@cli.command()
@click.pass_context
async def health(ctx):
    """Check that the analysis service is reachable.

    Example:
        codeguard --endpoint https://analysis.example.com health
    """
    orchestrator = build_orchestrator(ctx.obj["config"], None)
    result = await orchestrator.test_connection()

    if result.healthy:
        click.echo(f"[+] {result.message}")
        if result.response_time is not None:
            click.echo(f"    Response time: {result.response_time * 1000:.0f} ms")
        if result.version:
            click.echo(f"    Version: {result.version}")
    else:
        click.echo(f"[-] Unhealthy: {result.message}")
        ctx.exit(1)


@cli.command("clear-cache")
@click.option("--endpoint-only", is_flag=True, help="Only clear entries for the configured endpoint")
@click.pass_context
async def clear_cache(ctx, endpoint_only: bool):
    """Remove cached analysis results.

    Example:
        codeguard clear-cache
    """
    config: Config = ctx.obj["config"]
    cache = await open_cache(config)
    try:
        removed = await cache.clear(config.normalized_endpoint if endpoint_only else None)
        click.echo(f"[+] Removed {removed} cached result(s)")
    finally:
        await cache.close()


if __name__ == "__main__":
    cli()
