# Copyright 2026 Pennyworth Technologies, Inc.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""stacktally CLI - export, diff, merge and inspect aggregation trees."""

import glob
import logging
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from stacktally import __version__
from stacktally.config import (
    ConfigLoadError,
    ConfigValidationError,
    ExportConfig,
    apply_env_overrides,
    load_config_file,
    output_path,
)
from stacktally.errors import StackTallyError, WindowError
from stacktally.events import Trace, find_window, load_trace
from stacktally.lifetime import LifetimeCorrelator, LifetimeRecord, Window
from stacktally.tables import create_tables, select_processes
from stacktally.tree import AggregationTree, CollisionPolicy, read_tree, render_tree, write_tree

logger = logging.getLogger(__name__)

console = Console()

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


def _configure_logging(level: str) -> None:
    """Route stacktally logs to stderr through rich at the given level."""
    pkg_logger = logging.getLogger("stacktally")
    for handler in list(pkg_logger.handlers):
        if isinstance(handler, RichHandler):
            pkg_logger.removeHandler(handler)
    pkg_logger.addHandler(RichHandler(console=Console(stderr=True), show_path=False, show_time=False))
    pkg_logger.setLevel(level.upper())


def _progress(ctx: click.Context, label: str, value: object) -> None:
    if ctx.obj.get("quiet"):
        return
    console.print(f"[green]{label}[/green] {escape(str(value))}", soft_wrap=True, highlight=False)


def _fail(message: object) -> None:
    console.print(f"[red]Error:[/red] {escape(str(message))}", soft_wrap=True, highlight=False)
    raise SystemExit(1)


def _require_files(paths: list[str]) -> None:
    for path in paths:
        if not Path(path).is_file():
            _fail(f"File not found: {path}")


def _expand_inputs(patterns: tuple[str, ...]) -> list[Path]:
    """Expand globs and drop duplicates by resolved path, keeping order."""
    expanded: list[str] = []
    for pattern in patterns:
        if "*" in pattern or "?" in pattern:
            expanded.extend(sorted(glob.glob(pattern)))
        else:
            expanded.append(pattern)

    seen: set[Path] = set()
    unique: list[Path] = []
    for item in expanded:
        path = Path(item)
        resolved = path.resolve()
        if resolved in seen:
            continue
        seen.add(resolved)
        unique.append(path)
    return unique


@click.group()
@click.version_option(__version__, prog_name="stacktally")
@click.option("--quiet", "-q", is_flag=True, help="Suppress progress output")
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default="WARNING",
    envvar="STACKTALLY_LOG_LEVEL",
    show_default=True,
    help="Log level for diagnostics on stderr",
)
@click.pass_context
def main(ctx: click.Context, quiet: bool, log_level: str) -> None:
    """stacktally - attribute resource usage to call stacks.

    Builds path-keyed aggregation trees from heap traces and compares,
    merges and inspects them.
    """
    ctx.ensure_object(dict)
    ctx.obj["quiet"] = quiet
    _configure_logging(log_level)


@main.command()
@click.argument("output")
@click.argument("test")
@click.argument("base")
@click.pass_context
def diff(ctx: click.Context, output: str, test: str, base: str) -> None:
    """Write the three-way diff of TEST against BASE to OUTPUT.

    Each column C of the inputs becomes C Test, C Base and C Diff.
    """
    _require_files([test, base])
    try:
        test_tree = read_tree(test)
        _progress(ctx, "Loaded:", test)
        base_tree = read_tree(base)
        _progress(ctx, "Loaded:", base)

        result = AggregationTree.diff(test_tree, base_tree)
        write_tree(result, output)
    except StackTallyError as e:
        _fail(e)
    _progress(ctx, "Output:", output)


@main.command()
@click.argument("output")
@click.argument("inputs", nargs=-1, required=True)
@click.pass_context
def merge(ctx: click.Context, output: str, inputs: tuple[str, ...]) -> None:
    """Sum two or more trees with identical columns into OUTPUT.

    INPUTS may contain * and ? wildcards.
    """
    paths = _expand_inputs(inputs)
    if len(paths) < 2:
        _fail(f"At least two input files are required, got {len(paths)}")
    _require_files([str(p) for p in paths])

    try:
        merged: AggregationTree | None = None
        for path in paths:
            tree = read_tree(path)
            _progress(ctx, "Loaded:", path)
            if merged is None:
                merged = tree
            else:
                merged.merge(tree)
                _progress(ctx, "Merged:", path)
        write_tree(merged, output)
    except StackTallyError as e:
        _fail(e)
    _progress(ctx, "Output:", output)


@main.command("rename-leaves")
@click.argument("input_path", metavar="INPUT")
@click.argument("output")
@click.option("--name", "new_name", required=True, help="New name for every leaf")
@click.option("--overwrite", is_flag=True, help="On collision keep the last leaf instead of summing")
@click.pass_context
def rename_leaves(ctx: click.Context, input_path: str, output: str, new_name: str, overwrite: bool) -> None:
    """Rename every leaf of INPUT to NAME and write OUTPUT."""
    _require_files([input_path])
    policy = CollisionPolicy.OVERWRITE if overwrite else CollisionPolicy.ACCUMULATE
    try:
        tree = read_tree(input_path)
        _progress(ctx, "Loaded:", input_path)
        collisions = tree.rename_leaves(new_name, policy)
        write_tree(tree, output)
    except StackTallyError as e:
        _fail(e)
    if collisions:
        _progress(ctx, "Collisions:", f"{collisions} ({policy.value})")
    _progress(ctx, "Output:", output)


@main.command()
@click.argument("input_path", metavar="INPUT")
@click.option("--depth", "-d", type=click.IntRange(min=1), help="Maximum depth to show")
@click.option("--column", "-c", help="Column to sort by (default: last column)")
@click.option("--top", "-n", type=click.IntRange(min=1), help="Maximum children per node")
@click.pass_context
def show(ctx: click.Context, input_path: str, depth: int | None, column: str | None, top: int | None) -> None:
    """Print the tree in INPUT, heaviest paths first."""
    _require_files([input_path])
    try:
        tree = read_tree(input_path)
    except StackTallyError as e:
        _fail(e)
    _progress(ctx, "Loaded:", input_path)

    if column is not None and column not in tree.column_names:
        _fail(f"Unknown column '{column}'. Valid columns: {', '.join(tree.column_names)}")
    click.echo(render_tree(tree, column=column, depth=depth, top=top), nl=False)


def _build_configs(
    config_files: tuple[str, ...],
    process_regex: str | None,
    tables: tuple[str, ...],
    skip_existing: bool,
) -> list[ExportConfig]:
    """Load configs and layer environment then CLI overrides on top."""
    if config_files:
        configs = [load_config_file(path) for path in config_files]
    else:
        configs = [ExportConfig()]

    result = []
    for config in configs:
        config = apply_env_overrides(config)
        if process_regex is not None:
            config.process_regex = process_regex
        if tables:
            config.tables = list(tables)
        if skip_existing:
            config.skip_existing = True
        config.validate()
        result.append(config)
    return result


def _correlate(trace: Trace) -> list[LifetimeRecord]:
    correlator = LifetimeCorrelator(resolver=trace.stacks)
    correlator.feed_all(trace.heap_events)
    records = correlator.drain()
    logger.info("Correlator stats: %s", correlator.stats.to_dict())
    return records


def _export_config(
    ctx: click.Context,
    events_path: Path,
    trace: Trace,
    records: list[LifetimeRecord],
    config: ExportConfig,
    window: Window | None,
) -> None:
    """Run every table of one config and write its outputs."""
    description = "default config" if config.is_default else f"config '{config.name}'"
    tables = create_tables(config.tables, heap_api_frames=config.heap_api_frames)
    if not tables:
        logger.warning("No known tables in %s; skipping", description)
        return

    outputs = [output_path(events_path, config.name, table.name) for table in tables]
    if config.skip_existing and all(path.exists() for path in outputs):
        _progress(ctx, "Skipping:", f"{description} - all reports exist")
        return

    if window is None:
        if config.start_marker is None or config.end_marker is None:
            raise ConfigValidationError(
                f"No analysis window for {description}: pass --start-ns/--end-ns "
                "or configure start_marker and end_marker"
            )
        window = find_window(trace, config.start_marker, config.end_marker)

    processes = select_processes(trace.processes, config.process_regex)
    for table, path in zip(tables, outputs):
        table.process(records, processes, window)
        write_tree(table.tree, path)
        _progress(ctx, "Output:", path)


@main.command()
@click.argument("events", nargs=-1, required=True)
@click.option("--config", "config_files", multiple=True, help="Export config file (.json/.yaml), repeatable")
@click.option("--process-regex", help="Regex matched against process command lines")
@click.option("--table", "tables", multiple=True, help="Table to export, repeatable")
@click.option("--start-ns", type=int, help="Window start timestamp")
@click.option("--end-ns", type=int, help="Window end timestamp")
@click.option("--skip-existing", is_flag=True, help="Skip configs whose outputs all exist")
@click.pass_context
def export(
    ctx: click.Context,
    events: tuple[str, ...],
    config_files: tuple[str, ...],
    process_regex: str | None,
    tables: tuple[str, ...],
    start_ns: int | None,
    end_ns: int | None,
    skip_existing: bool,
) -> None:
    """Export aggregation trees from one or more EVENTS files.

    Writes EVENTS.<config>.<Table>.json for every config and table; the
    config part is left out for the default config.
    """
    if (start_ns is None) != (end_ns is None):
        raise click.UsageError("--start-ns and --end-ns must be given together")

    window = None
    if start_ns is not None:
        try:
            window = Window(start_ns, end_ns)
        except WindowError as e:
            _fail(e)

    try:
        configs = _build_configs(config_files, process_regex, tables, skip_existing)
    except (ConfigLoadError, ConfigValidationError) as e:
        _fail(e)

    failed = 0
    for events_path in _expand_inputs(events):
        _progress(ctx, "Processing:", events_path)
        try:
            trace = load_trace(events_path)
        except StackTallyError as e:
            console.print(f"[red]Error:[/red] {escape(str(e))}", soft_wrap=True, highlight=False)
            failed += 1
            continue
        records = _correlate(trace)

        for config in configs:
            try:
                _export_config(ctx, events_path, trace, records, config, window)
            except (StackTallyError, ConfigValidationError) as e:
                description = "default config" if config.is_default else f"config '{config.name}'"
                console.print(
                    f"[red]Error:[/red] processing {escape(description)}: {escape(str(e))}",
                    soft_wrap=True,
                    highlight=False,
                )
                failed += 1

    if failed:
        raise SystemExit(1)


if __name__ == "__main__":
    main()
