"""CLI entrypoint for mask-guided edits.

Usage:
    python -m maskedit <image> <mask> --prompt "..." [--backend stabilityai|recraft|openai|replicate]
                       [--output <dir>] [--config config.yaml] [--negative-prompt ...]
                       [--samples N] [--seed 42] [--style ...] [--plan] [--json]
    python -m maskedit --list-backends [--config config.yaml] [--json]
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from maskedit.config import MaskEditConfig
from maskedit.errors import MaskEditError
from maskedit.providers.base import EditJob, PreparedRequest
from maskedit.providers.factory import ProviderFactory
from maskedit.storage import DirectorySink
from maskedit.types import EditOptions, EditRequest

console = Console()


def _backends_table(config: MaskEditConfig) -> Table:
    """Build a Rich table of the configured backends."""
    table = Table(title="Configured Backends", show_lines=True)
    table.add_column("Name", style="cyan")
    table.add_column("Backend")
    table.add_column("Adapter", width=10)
    table.add_column("Mask encoding")
    table.add_column("Sizing")
    table.add_column("Max images", justify="right", width=10)
    table.add_column("Credentials", width=11)

    for name, backend in config.backends.items():
        limits = backend.limits
        if limits.supported_sizes:
            sizing = ", ".join(limits.supported_sizes)
        else:
            sizing = f"x{limits.pixel_multiple}, {limits.min_resolution}-{limits.max_resolution or 'unbounded'} px"
        marker = " (default)" if name == config.default_backend else ""
        table.add_row(
            name + marker,
            backend.display_name or name,
            backend.kind.value,
            backend.encoding.value,
            sizing,
            str(backend.max_images),
            "[green]set[/green]" if backend.api_key else "[red]missing[/red]",
        )
    return table


def _backends_to_dict(config: MaskEditConfig) -> dict:
    """Convert the configured backends to a JSON-serializable dict."""
    return {
        "default_backend": config.default_backend,
        "backends": [
            {
                "name": name,
                "display_name": backend.display_name or name,
                "kind": backend.kind.value,
                "mask_encoding": backend.encoding.value,
                "model": backend.model,
                "max_images": backend.max_images,
                "supported_sizes": backend.limits.supported_sizes,
                "has_credentials": backend.api_key is not None,
            }
            for name, backend in config.backends.items()
        ],
    }


def _plan_to_dict(backend: str, prepared: PreparedRequest) -> dict:
    """Convert a prepared request to a JSON-serializable plan."""
    box = prepared.content_box
    return {
        "backend": backend,
        "native_size": list(prepared.native_size),
        "working_size": [prepared.geometry.width, prepared.geometry.height],
        "content_box": [box.x, box.y, box.width, box.height],
        "mask_coverage": round(prepared.mask.coverage, 4),
        "options": prepared.options.model_dump(exclude_none=True),
    }


def _job_to_dict(job: EditJob, sink: DirectorySink | None) -> dict:
    """Convert a finished job to a JSON-serializable summary."""
    return {
        "backend": job.backend,
        "working_size": str(job.geometry) if job.geometry else None,
        "states": [s.value for s in job.history],
        "results": [
            {"sequence_number": r.sequence_number, **r.metadata} for r in job.results
        ],
        "skipped": [f.to_dict() for f in job.failures],
        "sink_failures": job.sink_failures,
        "saved": [str(p) for p in sink.stored] if sink else [],
    }


def _build_summary_panel(job: EditJob, sink: DirectorySink | None) -> Panel:
    """Build a Rich panel summarizing a finished edit."""
    lines = [
        f"[bold]Backend:[/bold] {job.backend}",
        f"[bold]Working size:[/bold] {job.geometry}",
        f"[bold]Results:[/bold] {len(job.results)}",
        f"[bold]Skipped artifacts:[/bold] {len(job.failures)}",
    ]
    for failure in job.failures:
        lines.append(f"  [yellow]{failure.message}[/yellow]")
    if sink is not None:
        lines.append(f"[bold]Output directory:[/bold] {sink.root}")
        for path in sink.stored:
            lines.append(f"  {path.name}")
    return Panel("\n".join(lines), title="Edit Complete", border_style="green")


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Regenerate the masked region of an image with a remote inpainting backend.",
        prog="python -m maskedit",
    )
    parser.add_argument("image", type=Path, nargs="?", help="Original image")
    parser.add_argument("mask", type=Path, nargs="?", help="Mask drawn over the image")
    parser.add_argument("--prompt", "-p", default=None, help="Text prompt for the edited region")
    parser.add_argument("--backend", "-b", default=None, help="Backend name (default: from config)")
    parser.add_argument("--config", type=Path, default=None, help="maskedit config YAML")
    parser.add_argument(
        "--output", "-o", type=Path, default=Path("results"),
        help="Directory for result PNGs (default: results)",
    )
    parser.add_argument("--negative-prompt", default=None, help="What the backend should avoid")
    parser.add_argument("--samples", type=int, default=None, help="Number of images to request")
    parser.add_argument("--seed", type=int, default=None, help="Generation seed")
    parser.add_argument("--style", default=None, help="Style preset, where the backend has them")
    parser.add_argument("--plan", action="store_true", help="Show the negotiated geometry without calling the backend")
    parser.add_argument("--list-backends", action="store_true", help="List configured backends and exit")
    parser.add_argument("--json", action="store_true", help="Output JSON summary")
    args = parser.parse_args(argv)

    if not args.json:
        logging.basicConfig(
            level=logging.INFO,
            format="%(message)s",
            handlers=[RichHandler(console=console, show_time=True, show_path=False)],
        )
    else:
        logging.basicConfig(level=logging.WARNING)

    if args.config and not args.config.is_file():
        console.print(f"[red]Error: {args.config} not found[/red]")
        return 1
    config = MaskEditConfig.from_yaml(args.config) if args.config else MaskEditConfig.default()
    config = config.with_env_credentials()

    if args.list_backends:
        if args.json:
            print(json.dumps(_backends_to_dict(config), indent=2))
        else:
            console.print(_backends_table(config))
        return 0

    if args.image is None or args.mask is None or not args.prompt:
        parser.error("image, mask and --prompt are required unless --list-backends is given")
    for path in (args.image, args.mask):
        if not path.is_file():
            console.print(f"[red]Error: {path} not found[/red]")
            return 1

    options = EditOptions(
        negative_prompt=args.negative_prompt,
        samples=args.samples,
        seed=args.seed,
        style=args.style,
    )
    factory = ProviderFactory(config)
    backend = args.backend or config.default_backend

    try:
        request = EditRequest.from_bytes(
            args.image.read_bytes(), args.mask.read_bytes(), args.prompt, options,
        )
        provider = factory.get_provider(backend, require_credentials=not args.plan)

        if args.plan:
            prepared = provider.plan(request)
            summary = _plan_to_dict(backend, prepared)
            if args.json:
                print(json.dumps(summary, indent=2))
            else:
                console.print(Panel(
                    "\n".join(f"[bold]{k}:[/bold] {v}" for k, v in summary.items()),
                    title="Edit Plan", border_style="cyan",
                ))
            return 0

        sink = DirectorySink(args.output)
        if not args.json:
            console.print(f"[bold]Sending edit to {backend}...[/bold]")
        job = provider.run(request, sink=sink)
    except (MaskEditError, ValueError) as exc:
        if args.json:
            error = exc.to_dict() if isinstance(exc, MaskEditError) else {"error": str(exc)}
            print(json.dumps(error, indent=2))
        else:
            console.print(f"[red]Error: {exc}[/red]")
            hint = getattr(exc, "hint", None)
            if hint:
                console.print(f"[dim]{hint}[/dim]")
        return 1

    if args.json:
        print(json.dumps(_job_to_dict(job, sink), indent=2))
    else:
        console.print()
        console.print(_build_summary_panel(job, sink))
    return 0


if __name__ == "__main__":
    sys.exit(main())
