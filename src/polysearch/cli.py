import asyncio
import logging
from dataclasses import replace

import typer  # type: ignore
from rich.console import Console  # type: ignore
from rich.table import Table  # type: ignore

# Ensure providers are registered
import polysearch.providers  # noqa: F401
from polysearch.base import AggregateResponse, SearchRequest
from polysearch.config import ProviderSpec, Settings
from polysearch.engine import AggregationEngine
from polysearch.factory import build_engine
from polysearch.registry import get_all_providers, list_providers

app = typer.Typer(help="polysearch multi-provider search CLI")
console = Console()

logging.basicConfig(level=logging.WARNING)


@app.command("list")
def list_commands() -> None:
    """List available search providers."""
    providers = list_providers()
    if not providers:
        console.print("[yellow]No providers found.[/yellow]")
        return

    table = Table(title="Available Providers")
    table.add_column("Name", style="cyan")
    table.add_column("Class", style="green")
    table.add_column("Suggest", style="magenta")

    all_providers = get_all_providers()
    for name in providers:
        provider_cls = all_providers[name]
        supports_suggest = "yes" if hasattr(provider_cls, "suggest") else "no"
        table.add_row(name, provider_cls.__name__, supports_suggest)

    console.print(table)


@app.command("search")
def search(
    query: str = typer.Argument(..., help="Search query"),
    provider: list[str] = typer.Option(
        [],
        "--provider",
        "-p",
        help="Provider as name[:weight[:timeout_ms]]; repeatable. Defaults to POLYSEARCH_PROVIDERS.",
    ),
    page: int = typer.Option(1, "--page", min=1, help="Result page"),
    per_page: int | None = typer.Option(None, "--per-page", min=1, help="Results per page"),
) -> None:
    """Search every configured provider and print the merged results."""
    engine = _build_engine(provider)

    with console.status(f"Searching for '{query}'..."):
        response = asyncio.run(
            _search(engine, SearchRequest(query=query, page=page, per_page=per_page))
        )

    _print_response(query, response)


@app.command("suggest")
def suggest(
    query: str = typer.Argument(..., help="Partial query"),
    provider: list[str] = typer.Option(
        [],
        "--provider",
        "-p",
        help="Provider as name[:weight[:timeout_ms]]; repeatable.",
    ),
) -> None:
    """Collect autocomplete suggestions from providers that support them."""
    engine = _build_engine(provider)
    suggestions = asyncio.run(_suggest(engine, query))

    if not suggestions:
        console.print("[yellow]No suggestions found.[/yellow]")
        return
    for item in suggestions:
        console.print(f"- {item}")


@app.command("serve")
def serve() -> None:
    """Run the HTTP search server configured from the environment."""
    from polysearch.server import main as server_main

    server_main()


def _build_engine(provider_options: list[str]) -> AggregationEngine:
    try:
        settings = Settings.from_env()
        if provider_options:
            settings = replace(
                settings,
                providers=tuple(ProviderSpec.parse(item) for item in provider_options),
            )
        return build_engine(settings)
    except (RuntimeError, ValueError) as e:
        console.print(f"[red]Error:[/red] {e}")
        console.print(f"Available: {', '.join(list_providers())}")
        raise typer.Exit(code=1) from e


async def _search(engine: AggregationEngine, request: SearchRequest) -> AggregateResponse:
    try:
        return await engine.search(request)
    finally:
        await engine.aclose()


async def _suggest(engine: AggregationEngine, query: str) -> list[str]:
    try:
        return await engine.suggest(query)
    finally:
        await engine.aclose()


def _print_response(query: str, response: AggregateResponse) -> None:
    if not response.results:
        console.print("[yellow]No results found.[/yellow]")
        return

    total = response.total_results if response.total_results is not None else "?"
    table = Table(
        title=(
            f"Results for '{query}' (page {response.pagination.page}, "
            f"~{total} total)"
        )
    )
    table.add_column("Title", style="bold cyan")
    table.add_column("Snippet", style="white")
    table.add_column("URL", style="blue underline")
    table.add_column("Sources", style="green")

    for res in response.results:
        snippet = res.snippet or ""
        snippet = snippet[:200] + "..." if len(snippet) > 200 else snippet
        table.add_row(res.title, snippet, res.url, ", ".join(res.sources))

    console.print(table)


if __name__ == "__main__":
    app()
