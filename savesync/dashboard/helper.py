# Stdlib imports
import datetime
import logging
import pathlib
import sys
import typing

# Vendor imports
import humanize
import mergedeep
import rich
import rich.logging
import rich.markup
import rich.table
import yaml

# Local imports
from . import errors, model, tree


def print(*args, file=None):
    rich.print(*args, file=file)


def print_line(*args, file=None):
    print("-" * 8, *args, file=file)


def print_nested_line(*args):
    print("-" * 12, *args)


def print_warning(message: str):
    print_line(f"[yellow]{message}", file=sys.stderr)


def print_error(message: str):
    print("-" * 8, f"[red]{message}", file=sys.stderr)
    sys.exit(1)


def print_kv(key: str, value: typing.Any = ""):
    print(f"[yellow]{key}[/]: {value}")


def print_config_data(data: typing.Any):
    serialized: str = yaml.dump(data)
    print("\n".join("|  " + line for line in serialized.splitlines()))


def report_error(err: errors.DashboardError):
    """Render a core error for the terminal and exit."""
    if isinstance(err, errors.ValidationError):
        for name, message in err.field_errors.items():
            print_line(f"[red]{name}[/]: {message}", file=sys.stderr)
        print_error("Error: Invalid input")
    elif isinstance(err, errors.AuthenticationError):
        print_error(f"Error: {err}. Log in again with 'savesync-dashboard login'.")
    elif isinstance(err, errors.RegistrationDisabledError):
        print_error(f"Error: Registration is disabled on this server. {err.message}")
    else:
        print_error(f"Error: {err}")


def configure_logging(verbose: bool):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[rich.logging.RichHandler(show_path=False, rich_tracebacks=verbose)],
        force=True,
    )


def human_readable(num: typing.Optional[int]) -> str:
    return "-" if num is None else tree.format_size(num)


def human_time(moment: typing.Optional[datetime.datetime]) -> str:
    if moment is None:
        return "-"
    now = datetime.datetime.now(moment.tzinfo) if moment.tzinfo else datetime.datetime.now()
    return humanize.naturaltime(now - moment)


def human_duration(
    start: typing.Optional[datetime.datetime], end: typing.Optional[datetime.datetime]
) -> str:
    if start is None or end is None:
        return "-"
    return humanize.naturaldelta(end - start)


status_colors = {
    model.Status.PENDING: "yellow",
    model.Status.RUNNING: "blue",
    model.Status.SUCCESS: "green",
    model.Status.FAILED: "red",
}


def status_label(status: model.Status) -> str:
    return f"[{status_colors[status]}]{status.value}[/]"


def table(title: str, *columns: str) -> rich.table.Table:
    result = rich.table.Table(title=title, title_justify="left")
    for column in columns:
        result.add_column(column)
    return result


def render_tree_rows(rows: list[tree.TreeRow]):
    for row in rows:
        node = row.node
        marker = ("v " if row.expanded else "> ") if row.expandable else "  "
        name = rich.markup.escape(node.name)
        if node.is_dir:
            name = f"[bold blue]{name}/[/]"
        detail = ""
        if not node.is_dir and node.size is not None:
            detail = f"  [dim]{tree.format_size(node.size)}[/]"
        print(f"{'  ' * row.depth}{marker}{name}{detail}")


def merge_changes(current: dict, changes: dict) -> dict:
    """Overlay the changed fields on the current record, ignoring unset options."""
    changes = {key: value for key, value in changes.items() if value is not None}
    return mergedeep.merge({}, current, changes, strategy=mergedeep.Strategy.REPLACE)


def parse_fields(pairs: list[str]) -> dict[str, str]:
    """Turn repeated KEY=VALUE options into a mapping."""
    fields = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            raise errors.ValidationError({pair: "Expected KEY=VALUE"})
        fields[key.strip()] = value
    return fields


def fully_qualified_path(path: typing.Union[str, pathlib.Path]) -> pathlib.Path:
    return pathlib.Path(path).expanduser().absolute()
