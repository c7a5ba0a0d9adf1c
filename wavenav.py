import os
import sys
import argparse

try:
    from rich.console import Console
    from rich.table import Table
    from rich.panel import Panel
    from rich.progress import Progress, SpinnerColumn, TextColumn
    from rich import box
except ImportError:
    print("Error: The 'rich' library is required for the CLI but not installed.", file=sys.stderr)
    print("Please install it with: pip install wavenav[cli]", file=sys.stderr)
    sys.exit(1)

from wavenavlib import __version__
from wavenavlib.audio import format_time
from wavenavlib.cache import WaveformCache
from wavenavlib.config import ConfigError, default_config, load_preset, merge_configs, validate_config
from wavenavlib.errors import WaveformError
from wavenavlib.events import EventBus
from wavenavlib.timeline import TimelineViewport
from wavenavlib.worker import AnalysisWorker

console = Console()

_BAR_GLYPHS = " ▁▂▃▄▅▆▇█"


def positive_int(value):
    ivalue = int(value)
    if ivalue <= 0:
        raise argparse.ArgumentTypeError("must be a positive integer")
    return ivalue


def positive_float(value):
    fvalue = float(value)
    if fvalue <= 0:
        raise argparse.ArgumentTypeError("must be a positive number")
    return fvalue


def parse_arguments(argv=None):
    parser = argparse.ArgumentParser(
        description="wavenav: waveform overview and silence finder",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )
    parser.add_argument("--version", action="version",
                        version=f"wavenav {__version__}")

    parser.add_argument("file", type=str,
                        help="Audio file to analyze (.wav, .aif, .flac, ...)")

    # Silence
    parser.add_argument("--silence", action="store_true",
                        help="Detect removable silence ranges")
    parser.add_argument("--threshold", type=float, default=None,
                        help="Silence threshold (dBFS); defaults to the configured value")
    parser.add_argument("--min-duration", type=float, default=None,
                        help="Minimum removable silence (s); defaults to the configured value")

    # Overview
    parser.add_argument("--from", dest="start", type=float, default=0.0,
                        help="Start of the preview range (s)")
    parser.add_argument("--to", dest="end", type=float, default=None,
                        help="End of the preview range (s); defaults to the end of the file")
    parser.add_argument("--bars", type=positive_int, default=80,
                        help="Number of bars in the preview")
    parser.add_argument("--zoom", type=positive_float, default=1.0,
                        help="Zoom factor used to pick a LOD level (1-200)")
    parser.add_argument("--width", type=positive_float, default=800.0,
                        help="View width in points used to pick a LOD level")

    # Cache & config
    parser.add_argument("--cache-dir", type=str, default=None,
                        help="Waveform cache directory (default: platform cache dir)")
    parser.add_argument("--no-disk-cache", action="store_true",
                        help="Do not read or write disk cache artifacts")
    parser.add_argument("--preset", type=str, default=None,
                        help="JSON preset with configuration overrides")

    if argv is None:
        argv = sys.argv[1:]
    if not argv:
        parser.print_help(sys.stderr)
        sys.exit(1)

    args = parser.parse_args(argv)

    if args.start < 0.0:
        parser.error("--from must be >= 0")
    if args.end is not None and args.end <= args.start:
        parser.error("--to must be greater than --from")
    if args.min_duration is not None and args.min_duration < 0.0:
        parser.error("--min-duration must be >= 0")

    return args


# ---------------------------------------------------------------------------
# Rich console rendering (CLI-only, not in the library)
# ---------------------------------------------------------------------------

def render_bars(values) -> str:
    top = len(_BAR_GLYPHS) - 1
    return "".join(_BAR_GLYPHS[int(round(float(v) * top))] for v in values)


def print_lod_table(waveform):
    table = Table(box=box.ROUNDED, title="Level of Detail", title_justify="left")
    table.add_column("Level", justify="right", style="bold cyan")
    table.add_column("Samples", justify="right")
    table.add_column("Samples/s", justify="right", style="dim")
    for level, values in enumerate(waveform.lod_levels):
        table.add_row(str(level), f"{values.size:,}",
                      f"{waveform.samples_per_second(level):.1f}")
    console.print(table)


def print_silence_table(ranges):
    table = Table(box=box.ROUNDED, title="Removable Silence", title_justify="left")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Start", justify="right", style="cyan")
    table.add_column("End", justify="right", style="cyan")
    table.add_column("Duration", justify="right", style="bold green")
    for i, r in enumerate(ranges, start=1):
        table.add_row(str(i), format_time(r.start), format_time(r.end),
                      f"{r.duration:.3f} s")
    console.print(table)
    total = sum(r.duration for r in ranges)
    console.print(f"  [dim]Total removable:[/] [bold]{total:.3f} s[/] "
                  f"in {len(ranges)} range(s)")


# ---------------------------------------------------------------------------
# main() — thin wrapper around wavenavlib
# ---------------------------------------------------------------------------

def main(argv=None) -> int:
    args = parse_arguments(argv)
    path = args.file

    if not os.path.isfile(path):
        console.print(f"[bold red]Error:[/] File '{path}' not found.")
        return 1

    # --- BUILD CONFIG ---
    config = default_config()
    try:
        if args.preset:
            config = merge_configs(config, load_preset(args.preset))
        cli_overrides = {}
        if args.cache_dir:
            cli_overrides["cache_dir"] = args.cache_dir
        if args.no_disk_cache:
            cli_overrides["disk_cache"] = False
        if args.threshold is not None:
            cli_overrides["silence_threshold_db"] = args.threshold
        if args.min_duration is not None:
            cli_overrides["silence_min_duration"] = args.min_duration
        config = merge_configs(config, cli_overrides)
        validate_config(config)
    except ConfigError as e:
        console.print(f"[bold red]Error:[/] {e}")
        return 1

    event_bus = EventBus()
    cache = WaveformCache(config=config, event_bus=event_bus)

    # --- HEADER PANEL ---
    disk_label = cache.cache_dir if cache.disk_cache else "(disabled)"
    console.print(Panel.fit(
        f"[bold]wavenav[/] {__version__}\n"
        f"File: [cyan]{os.path.basename(path)}[/]\n"
        f"LOD: [cyan]{config['lod_level_count']} levels[/] | "
        f"[cyan]{config['base_samples_per_second']} samples/s[/] at level 0\n"
        f"Silence: [cyan]{config['silence_threshold_db']} dBFS[/] | "
        f"min [cyan]{config['silence_min_duration']} s[/]\n"
        f"Cache: [green]{disk_label}[/]",
        title="Configuration"
    ))

    with AnalysisWorker(cache, event_bus) as worker:
        # --- EXTRACT (or load from cache) ---
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
            transient=True,
        ) as progress:
            task_id = progress.add_task("[cyan]Extracting waveform...", total=None)

            def on_cache_hit(**data):
                progress.update(task_id,
                                description=f"[cyan]Loaded from {data['tier']} cache")
            event_bus.subscribe("waveform.cache_hit", on_cache_hit)

            _job, future = worker.submit_waveform(path)
            try:
                waveform = future.result()
            except WaveformError as e:
                console.print(f"[bold red]Error:[/] {e}")
                return 1
            finally:
                event_bus.unsubscribe("waveform.cache_hit", on_cache_hit)

        console.print(f"Duration: [bold]{format_time(waveform.duration)}[/] "
                      f"@ {waveform.samplerate:g} Hz")
        print_lod_table(waveform)

        # --- PREVIEW ---
        end = waveform.duration if args.end is None else args.end
        bars = waveform.samples(args.start, end, args.bars)
        console.print(Panel(
            render_bars(bars),
            title=f"{format_time(args.start)} - {format_time(min(end, waveform.duration))}",
            title_align="left",
        ))

        timeline = TimelineViewport(waveform.duration)
        timeline.zoom(args.zoom, args.start)
        level, values = waveform.lod_level(timeline.zoom_scale, args.width)
        console.print(
            f"Zoom [cyan]{timeline.zoom_scale:g}x[/] @ {args.width:g} pt: "
            f"LOD [bold]{level}[/] ({values.size:,} samples), "
            f"visible {format_time(timeline.visible_start_time)} - "
            f"{format_time(timeline.visible_end_time)}, "
            f"snap {timeline.quantization_step():g} s"
        )

        # --- SILENCE ---
        if args.silence:
            with Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                console=console,
                transient=True,
            ) as progress:
                progress.add_task("[cyan]Detecting silence...", total=None)
                _job, future = worker.submit_silence(
                    path, args.threshold, args.min_duration)
                try:
                    ranges = future.result()
                except WaveformError as e:
                    console.print(f"[bold red]Error:[/] {e}")
                    return 1
            console.print("")
            print_silence_table(ranges)

    return 0


if __name__ == "__main__":
    sys.exit(main())
