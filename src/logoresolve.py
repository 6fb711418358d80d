#!/usr/bin/env python3
"""
LogoResolve CLI - Command-line tool for resolving a brand logo image URL.

Usage:
    logoresolve <url> [<url> ...] [options]
    logoresolve --search "<brand> logo" [options]
"""

import argparse
import asyncio
import logging
import sys
from io import BytesIO
from pathlib import Path
from typing import List

from PIL import Image, UnidentifiedImageError
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from logo_resolver import BraveSearchClient, LogoResolver, ResolutionResult
from logo_resolver.validator import CONTENT_TYPE_FORMATS, has_valid_extension, url_extension


def setup_logging(verbose: bool = False) -> None:
    """Set up logging; quiet unless --verbose."""
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(message)s",
            handlers=[RichHandler(show_path=False)],
        )
    else:
        logging.basicConfig(level=logging.WARNING, handlers=[logging.NullHandler()])

    # Suppress all HTTP logging
    logging.getLogger("httpx").setLevel(logging.CRITICAL)
    logging.getLogger("httpcore").setLevel(logging.CRITICAL)


def describe_image(data: bytes) -> tuple[str, str]:
    """Return (format, size) for display. SVG is reported as vector."""
    if b"<svg" in data[:4096].lower():
        return "SVG", "Vector"
    try:
        with Image.open(BytesIO(data)) as img:
            return img.format or "?", f"{img.size[0]}×{img.size[1]}"
    except (UnidentifiedImageError, OSError):
        return "?", f"{len(data)} bytes"


def guess_extension(url: str, content_type: str) -> str:
    if has_valid_extension(url):
        ext = url_extension(url)
        return ".jpg" if ext == ".jpeg" else ext
    image_format = CONTENT_TYPE_FORMATS.get(content_type)
    if image_format is None:
        return ".img"
    return ".jpg" if image_format.value == "jpeg" else f".{image_format.value}"


def display_results(results: List[tuple[str, ResolutionResult]], console: Console) -> None:
    """Show every attempted seed and its outcome."""
    table = Table(title="Resolution attempts", show_lines=False)
    table.add_column("#", justify="right", style="dim")
    table.add_column("Seed", overflow="fold")
    table.add_column("Outcome")
    table.add_column("Detail", overflow="fold")

    for i, (seed, result) in enumerate(results, 1):
        if result.success:
            table.add_row(str(i), seed, "[green]resolved[/green]", result.final_url)
        else:
            table.add_row(str(i), seed or "[dim](empty)[/dim]", "[red]failed[/red]", result.reason)

    console.print(table)


async def resolve_seeds(
    resolver: LogoResolver, seeds: List[str], timeout: float | None, console: Console
) -> List[tuple[str, ResolutionResult]]:
    """Resolve seeds in order, stopping at the first success."""
    results = []
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
        transient=True,
    ) as progress:
        task = progress.add_task("Resolving...", total=None)
        for seed in seeds:
            progress.update(task, description=f"Resolving {seed}...")
            result = await resolver.resolve(seed, timeout=timeout)
            results.append((seed, result))
            if result.success:
                break
    return results


async def show_logo(
    resolver: LogoResolver, result: ResolutionResult, save_dir: str | None, console: Console
) -> None:
    """Fetch the resolved image, show its details and optionally save it."""
    response = await resolver.fetcher.get(result.final_url)

    details_table = Table(show_header=False, box=None, padding=(0, 1))
    details_table.add_row("[cyan]URL:[/cyan]", result.final_url)
    details_table.add_row("[cyan]Source:[/cyan]", result.source_url or "")
    details_table.add_row("[cyan]Validations:[/cyan]", str(result.attempts))

    if response.ok:
        image_format, size = describe_image(response.content)
        details_table.add_row("[cyan]Format:[/cyan]", image_format)
        details_table.add_row("[cyan]Size:[/cyan]", size)

    console.print(Panel(details_table, title="Logo Details", border_style="green"))

    if save_dir is None:
        return
    if not response.ok:
        console.print(f"[red]❌ Could not download logo: {response.describe()}[/red]")
        return

    output_dir = Path(save_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    output_path = output_dir / f"logo{guess_extension(result.final_url, response.content_type)}"
    output_path.write_bytes(response.content)
    console.print(
        f"[bold green]💾 Saved to:[/bold green] [link]{output_path.absolute()}[/link]"
    )


async def main() -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Resolve a validated, directly fetchable logo image URL",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  logoresolve https://www.python.org/
  logoresolve https://example.com/static/logo.png --save
  logoresolve --search "Python programming language logo" --save logos/
        """,
    )

    parser.add_argument(
        "seeds", nargs="*", metavar="URL", help="Image or page URLs, tried in order"
    )

    parser.add_argument(
        "--search",
        metavar="QUERY",
        help="Discover seed pages with Brave Search (needs BRAVE_API_KEY)",
    )

    parser.add_argument(
        "--max-results",
        type=int,
        default=5,
        help="Number of search results to try (default: 5)",
    )

    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        metavar="SECONDS",
        help="Give up on a single seed after this many seconds",
    )

    parser.add_argument(
        "--save",
        nargs="?",
        const=".",
        metavar="DIR",
        help="Save the resolved logo as 'logo.ext' in current directory or specified directory",
    )

    parser.add_argument(
        "--verbose", "-v", action="store_true", help="Show detailed debug information"
    )

    args = parser.parse_args()
    if not args.seeds and not args.search:
        parser.error("give at least one URL or --search QUERY")

    setup_logging(verbose=args.verbose)
    console = Console()

    console.print(
        Panel.fit("[bold blue]LogoResolve[/bold blue]", border_style="blue")
    )

    async with LogoResolver() as resolver:
        seeds = list(args.seeds)
        if args.search:
            response = await BraveSearchClient(resolver.fetcher).search(
                args.search, max_results=args.max_results
            )
            if not response.success:
                console.print(f"[red]❌ Search failed: {response.error}[/red]")
                return 1
            seeds.extend(hit.url for hit in response.results)

        if not seeds:
            console.print("[red]❌ No seed URLs to resolve[/red]")
            return 1

        results = await resolve_seeds(resolver, seeds, args.timeout, console)
        display_results(results, console)

        seed, final = results[-1]
        if not final.success:
            console.print("[red]❌ Could not resolve a logo[/red]")
            return 1

        console.print(f"\n[bold green]✅ Resolved logo from {seed}[/bold green]")
        await show_logo(resolver, final, args.save, console)
    return 0


def cli_entry() -> None:
    """Sync entry point for CLI script."""
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        Console().print("\n[red]❌ Operation cancelled by user[/red]")
        sys.exit(1)


if __name__ == "__main__":
    cli_entry()
