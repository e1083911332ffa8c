"""
CLI interface for Transcribomatic.

Provides command-line access to schema setup, token generation, model
signing, usage reports and the HTTP server.
"""

import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

import typer
import yaml
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from transcribomatic.config.loader import AppConfig, load_app_config
from transcribomatic.core.accounts import build_management_url, build_user_url
from transcribomatic.core.tokens import (
    ALLOWED_MODELS,
    DEFAULT_MODEL,
    TokenContext,
    generate_unique_id,
    issue_token,
    sign_model_name,
)
from transcribomatic.services import build_services

app = typer.Typer()
console = Console()

EXIT_CODE_PASS = 0
EXIT_CODE_FAIL = 1

DEFAULT_SIGNED_MODEL_FILE = "public/signedModel.js"

ConfigOption = typer.Option(
    None,
    "--config",
    "-c",
    help="Path to the YAML config (defaults to $TRANSCRIBOMATIC_CONFIG or ./config.yaml)"
)


def _load_config(path: Optional[str]) -> AppConfig:
    try:
        return load_app_config(path)
    except (FileNotFoundError, ValueError, yaml.YAMLError) as e:
        console.print(f"[red]Error loading config:[/] {escape(str(e))}")
        sys.exit(EXIT_CODE_FAIL)


@app.callback(invoke_without_command=True)
def main(ctx: typer.Context):
    """Transcribomatic CLI."""
    if ctx.invoked_subcommand is None:
        console.print("Transcribomatic - Use --help to see available commands")


@app.command()
def init(config: Optional[str] = ConfigOption):
    """Initialize the usage database."""
    app_config = _load_config(config)
    try:
        build_services(app_config).repository.initialize_schema()
        console.print(f"[green]✓[/] Database initialized at {app_config.db_path}")
        sys.exit(EXIT_CODE_PASS)
    except Exception as e:
        console.print(f"[red]Error initializing database:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)


@app.command("generate-tokens")
def generate_tokens(
    count: int = typer.Argument(..., min=1, help="Number of token sets to generate"),
    config: Optional[str] = ConfigOption,
):
    """Generate management tokens for new accounts.

    Share the management URLs; account holders get their user URL from the
    management endpoint.
    """
    app_config = _load_config(config)
    if not app_config.base_url:
        console.print("[red]Error:[/] base_url is not set in the config")
        sys.exit(EXIT_CODE_FAIL)

    console.print(f"Generating {count} management tokens...\n")
    for i in range(1, count + 1):
        unique_id = generate_unique_id(10)
        management_token = issue_token(unique_id, TokenContext.MANAGE, app_config.signing_secret)
        user_token = issue_token(unique_id, TokenContext.USER, app_config.signing_secret)

        console.print(f"[bold]Token Set {i}:[/bold]")
        console.print(f"  User ID: {unique_id}")
        console.print(f"  Management URL: {build_management_url(app_config.base_url, management_token)}",
                      soft_wrap=True)
        console.print(f"  User URL: {build_user_url(app_config.base_url, user_token)}",
                      soft_wrap=True)
        console.print()

    console.print("Done! Share the Management URLs to set up user accounts.")


@app.command("sign-model")
def sign_model(
    model: str = typer.Argument(DEFAULT_MODEL, help="Allow-listed model name to sign"),
    output: Path = typer.Option(
        Path(DEFAULT_SIGNED_MODEL_FILE),
        "--output",
        "-o",
        help="JavaScript file to write"
    ),
    config: Optional[str] = ConfigOption,
):
    """Write a JavaScript file holding a signed model name."""
    app_config = _load_config(config)
    try:
        signed_model = sign_model_name(model, app_config.signing_secret)
    except ValueError as e:
        console.print(f"[red]Error:[/] {str(e)}")
        console.print(f"Allowed models: {', '.join(sorted(ALLOWED_MODELS))}")
        sys.exit(EXIT_CODE_FAIL)

    content = (
        f"// Generated signed model - {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}\n"
        f"// Model: {model}\n"
        f"const SIGNED_MODEL = '{signed_model}';\n"
    )
    try:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(content, encoding="utf-8")
    except OSError as e:
        console.print(f"[red]Failed to write to output file {output}:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    console.print("[green]✓[/] Generated signed model JavaScript file")
    console.print(f"Model: {model}")
    console.print(f"Output: {output}")
    console.print(f"Signed model: {signed_model}", soft_wrap=True)


def _format_currency(amount) -> str:
    return f"${amount:,.4f}"


@app.command()
def usage(
    unique_id: str = typer.Argument(..., help="User ID to report on"),
    config: Optional[str] = ConfigOption,
):
    """Show the trailing 7-day cost breakdown for a user."""
    app_config = _load_config(config)
    services = build_services(app_config)
    breakdown = services.calculator.weekly_breakdown(unique_id)
    words = services.calculator.weekly_word_stats(unique_id)

    table = Table(title=f"Weekly usage for {unique_id}")
    table.add_column("Item")
    table.add_column("Quantity", justify="right")
    table.add_column("Cost", justify="right")

    tokens = breakdown.tokens
    table.add_row("Text input tokens", f"{tokens.input_text_tokens:,}",
                  _format_currency(breakdown.text_input_cost))
    table.add_row("Text cached tokens", f"{tokens.cached_text_tokens:,}",
                  _format_currency(breakdown.text_cached_cost))
    table.add_row("Text output tokens", f"{tokens.output_text_tokens:,}",
                  _format_currency(breakdown.text_output_cost))
    table.add_row("Audio input tokens", f"{tokens.input_audio_tokens:,}",
                  _format_currency(breakdown.audio_input_cost))
    table.add_row("Audio cached tokens", f"{tokens.cached_audio_tokens:,}",
                  _format_currency(breakdown.audio_cached_cost))
    table.add_row("Audio output tokens", f"{tokens.output_audio_tokens:,}",
                  _format_currency(breakdown.audio_output_cost))
    table.add_row("Images", f"{breakdown.image_count:,}", _format_currency(breakdown.image_cost))
    table.add_row("[bold]Total[/bold]", "", f"[bold]{_format_currency(breakdown.total_cost)}[/bold]")
    console.print(table)

    limit = app_config.weekly_cost_limit
    status = "[red]over limit[/]" if breakdown.total_cost >= limit else "[green]within limit[/]"
    console.print(f"Weekly limit: ${limit:.2f} ({status})")
    console.print(
        f"Transcriptions: {words.transcription_count} "
        f"({words.total_words} words, {words.avg_words_per_transcription:.1f} avg)"
    )


@app.command()
def serve(
    host: str = typer.Option("0.0.0.0", help="Interface to bind"),
    port: int = typer.Option(5001, help="Port to listen on"),
    config: Optional[str] = ConfigOption,
):
    """Run the HTTP proxy."""
    import uvicorn

    from transcribomatic.server import create_app

    uvicorn.run(create_app(_load_config(config)), host=host, port=port)


if __name__ == "__main__":
    app()
