"""``loadburst run``: send a batch of requests with live progress output."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

import typer
from rich.console import Console
from rich.panel import Panel
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    TextColumn,
    TimeElapsedColumn,
)
from rich.table import Table

from loadburst._internal.errors import ConfigError, LoadBurstError, RequestError
from loadburst.engine.config import (
    DirectoryBody,
    FileBody,
    HttpMethod,
    LiteralBody,
    ManifestBody,
    Order,
    RunConfig,
    TlsConfig,
    parse_headers,
)
from loadburst.engine.runner import run_debug_request, run_load_test

if TYPE_CHECKING:
    from loadburst.engine.config import BodySpec
    from loadburst.metrics.models import RunResult
    from loadburst.transport.http_client import CapturedResponse

console = Console(stderr=True)


# ---------------------------------------------------------------------------
# Option helpers
# ---------------------------------------------------------------------------


def _build_body(
    data: str | None,
    data_file: Path | None,
    input_dir: Path | None,
    manifest: Path | None,
    random_order: bool,
) -> BodySpec | None:
    """Construct a BodySpec from the mutually exclusive body flags.

    Raises:
        typer.BadParameter: If more than one body flag is given, or --random
            is given without a file set to pick from.
    """
    given = [
        flag
        for flag, value in (
            ("--data", data),
            ("--data-file", data_file),
            ("--input-dir", input_dir),
            ("--manifest", manifest),
        )
        if value is not None
    ]
    if len(given) > 1:
        msg = f"Only one body source may be given, got: {', '.join(given)}"
        raise typer.BadParameter(msg)
    if random_order and input_dir is None and manifest is None:
        msg = "--random only applies to --input-dir or --manifest"
        raise typer.BadParameter(msg)

    order = Order.RANDOM if random_order else Order.SEQUENTIAL
    if data is not None:
        return LiteralBody.from_text(data)
    if data_file is not None:
        return FileBody(data_file)
    if input_dir is not None:
        return DirectoryBody(input_dir, order)
    if manifest is not None:
        return ManifestBody(manifest, order)
    return None


def _format_ms(value: float) -> str:
    if value >= 1000:
        return f"{value / 1000:.2f}s"
    return f"{value:.2f}ms"


# ---------------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------------


def _print_summary(result: RunResult) -> None:
    """Print the final statistics table.

    Args:
        result: Finished run result.
    """
    table = Table(
        title="Load Test Complete",
        show_header=True,
        header_style="bold green",
        expand=True,
    )
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")

    table.add_row("Success", f"[green]{result.success}[/green]")
    table.add_row("Failures", f"[red]{result.failures}[/red]")
    table.add_row("Completed", f"{result.completed}/{result.total_requests}")
    table.add_row("Avg", _format_ms(result.latency_avg))
    table.add_row("Min", _format_ms(result.latency_min))
    table.add_row("Max", _format_ms(result.latency_max))
    table.add_row("P50", _format_ms(result.latency_p50))
    table.add_row("P90", _format_ms(result.latency_p90))
    table.add_row("P95", _format_ms(result.latency_p95))
    table.add_row("Requests/sec", f"{result.requests_per_second:.1f}")
    table.add_row("Elapsed", f"{result.elapsed_seconds:.2f}s")

    console.print(table)


def _print_response(response: CapturedResponse) -> None:
    """Print a raw response the way it came over the wire."""
    typer.echo(f"{response.version} {response.status} {response.reason}".rstrip())
    for name, value in response.headers.items():
        typer.echo(f"{name}: {value}")
    typer.echo()
    if response.body:
        typer.echo(response.body.decode(response.charset or "utf-8", errors="replace"))


# ---------------------------------------------------------------------------
# Command
# ---------------------------------------------------------------------------


def run_cmd(
    url: str = typer.Argument(..., help="Target URL to send requests to."),
    requests: int = typer.Option(
        ...,
        "--requests",
        "-n",
        help="Total number of requests to send.",
    ),
    concurrency: int = typer.Option(
        ...,
        "--concurrency",
        "-c",
        help="Number of requests in flight at a time.",
    ),
    method: str = typer.Option(
        "GET",
        "--method",
        "-X",
        help="HTTP method: GET, HEAD, POST, PUT, PATCH or DELETE.",
    ),
    header: list[str] | None = typer.Option(
        None,
        "--header",
        "-H",
        help="Custom header in 'Name: Value' format. Repeatable.",
    ),
    data: str | None = typer.Option(
        None,
        "--data",
        "-d",
        help="Literal request body.",
    ),
    data_file: Path | None = typer.Option(
        None,
        "--data-file",
        "-D",
        help="File whose contents are sent as the body of every request.",
    ),
    input_dir: Path | None = typer.Option(
        None,
        "--input-dir",
        "-i",
        help="Directory of body files; one file is picked per request.",
    ),
    manifest: Path | None = typer.Option(
        None,
        "--manifest",
        "-m",
        help="File listing one body file path per line.",
    ),
    random_order: bool = typer.Option(
        False,
        "--random",
        "-r",
        help="Pick body files at random instead of in sorted order.",
    ),
    output: Path | None = typer.Option(
        None,
        "--output",
        "-o",
        help="Directory receiving one JSON record per response.",
    ),
    ca_cert: Path | None = typer.Option(
        None,
        "--ca-cert",
        help="Custom CA certificate file (PEM).",
    ),
    cert: Path | None = typer.Option(
        None,
        "--cert",
        help="Client certificate file (PEM) for mutual TLS.",
    ),
    key: Path | None = typer.Option(
        None,
        "--key",
        help="Client private key file (PEM) for mutual TLS.",
    ),
    insecure: bool = typer.Option(
        False,
        "--insecure",
        "-k",
        help="Skip TLS certificate verification.",
    ),
    debug: bool = typer.Option(
        False,
        "--debug",
        help="Send a single request and print the raw response.",
    ),
    fail_on_failure: bool = typer.Option(
        False,
        "--fail-on-failure",
        help="Exit non-zero if any request failed.",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose (DEBUG) logging.",
    ),
    log_json: bool = typer.Option(
        False,
        "--log-json",
        help="Emit logs as JSON lines.",
    ),
) -> None:
    """Send a batch of requests to URL and report latency statistics."""
    body = _build_body(data, data_file, input_dir, manifest, random_order)
    log_level = logging.DEBUG if verbose else logging.WARNING

    try:
        config = RunConfig(
            url=url,
            requests=requests,
            concurrency=concurrency,
            method=HttpMethod.parse(method),
            headers=parse_headers(header or []),
            body=body,
            output_dir=output,
            tls=TlsConfig(ca_cert=ca_cert, cert=cert, key=key, insecure=insecure),
        )
    except ConfigError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(code=1) from exc

    if debug:
        try:
            response = run_debug_request(config, log_level=log_level, json_logs=log_json)
        except ConfigError as exc:
            console.print(f"[red]Error:[/red] {exc}")
            raise typer.Exit(code=1) from exc
        except RequestError as exc:
            console.print(f"[red]Request failed:[/red] {exc}")
            raise typer.Exit(code=1) from exc
        _print_response(response)
        return

    typer.echo(f"Sending {requests} requests to {url} with {concurrency} concurrency")
    console.print(
        Panel(
            f"[bold]Method:[/bold]      {config.method.value}\n"
            f"[bold]Requests:[/bold]    {requests}\n"
            f"[bold]Concurrency:[/bold] {concurrency}",
            title="loadburst",
            border_style="cyan",
        )
    )

    progress = Progress(
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        MofNCompleteColumn(),
        TimeElapsedColumn(),
        console=console,
        transient=True,
    )
    task_id = progress.add_task("Sending", total=requests)

    def _on_progress(result: RunResult) -> None:
        progress.update(
            task_id,
            completed=result.completed,
            description=(
                f"[green]{result.success}[/green] ok "
                f"[red]{result.failures}[/red] failed "
                f"avg {_format_ms(result.latency_avg)}"
            ),
        )

    try:
        with progress:
            result = run_load_test(
                config,
                _on_progress,
                log_level=log_level,
                json_logs=log_json,
            )
    except ConfigError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(code=1) from exc
    except LoadBurstError as exc:
        console.print(f"[red]Load test failed:[/red] {exc}")
        raise typer.Exit(code=1) from exc

    _print_summary(result)

    if fail_on_failure and result.failures > 0:
        console.print(
            f"[red]FAIL:[/red] {result.failures} of {result.completed} requests failed"
        )
        raise typer.Exit(code=1)

    console.print("[green]Load test completed.[/green]")
