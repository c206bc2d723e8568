# Stdlib imports
import asyncio
import pathlib
import typing

# Vendor imports
import typer

# Local imports
from . import config as applicationConfig, context, errors, helper, model, resources, tree, variant

T = typing.TypeVar("T")


# Create a subclass of the context with correct typing of the dashboard config object
class DashboardCLIContext(typer.Context):
    obj: model.DashboardConfiguration


# Initialize the typer app and one sub-app per resource collection
cli = typer.Typer()
sources_cli = typer.Typer(help="Manage backup sources.")
targets_cli = typer.Typer(help="Manage storage targets.")
snapshots_cli = typer.Typer(help="Browse and restore snapshots.")
jobs_cli = typer.Typer(help="Inspect backup and restore jobs.")
users_cli = typer.Typer(help="Manage user accounts (admin only).")
settings_cli = typer.Typer(help="Server settings (admin only).")
cli.add_typer(sources_cli, name="sources")
cli.add_typer(targets_cli, name="targets")
cli.add_typer(snapshots_cli, name="snapshots")
cli.add_typer(jobs_cli, name="jobs")
cli.add_typer(users_cli, name="users")
cli.add_typer(settings_cli, name="settings")


def run(
    ctx: DashboardCLIContext,
    action: typing.Callable[[context.Dashboard], typing.Awaitable[T]],
    require_session: bool = True,
) -> T:
    """Open the dashboard, restore the session and run one action against it."""

    async def main():
        async with context.open_dashboard(ctx.obj, restore=require_session) as dashboard:
            if require_session and not dashboard.session.is_authenticated:
                helper.print_error(
                    "Error: Not logged in. Run 'savesync-dashboard login' first."
                )
            return await action(dashboard)

    try:
        return asyncio.run(main())
    except errors.DashboardError as err:
        helper.report_error(err)


# Main method that initializes the configuration and makes it available to all commands
@cli.callback()
def cli_main(
    ctx: DashboardCLIContext,
    config: pathlib.Path = typer.Option(
        applicationConfig.default_config_path,
        "--config",
        "-c",
        envvar="SAVESYNC_DASHBOARD_CONFIG",
        help="Path to dashboard configuration file.",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose/",
        "-v/",
        envvar="SAVESYNC_DASHBOARD_VERBOSE",
        help="Print verbose information when executing commands.",
    ),
):
    helper.configure_logging(verbose)
    # Load the config options and insert it into the context object
    ctx.obj = applicationConfig.load_config_values(config)


### Session ###


@cli.command(name="login", help="Log in and persist the session token.")
def cli_login(
    ctx: DashboardCLIContext,
    email: str = typer.Option(..., "--email", "-e", prompt=True),
    password: str = typer.Option(..., "--password", "-p", prompt=True, hide_input=True),
):
    async def action(dashboard: context.Dashboard):
        return await dashboard.session.login(email, password)

    user = run(ctx, action, require_session=False)
    helper.print_line(f"[green]Logged in[/] as {user.email}")


@cli.command(name="register", help="Create an account, if the server allows it, and log in.")
def cli_register(
    ctx: DashboardCLIContext,
    email: str = typer.Option(..., "--email", "-e", prompt=True),
    password: str = typer.Option(
        ..., "--password", "-p", prompt=True, hide_input=True, confirmation_prompt=True
    ),
):
    async def action(dashboard: context.Dashboard):
        return await dashboard.session.register(email, password)

    user = run(ctx, action, require_session=False)
    helper.print_line(f"[green]Registered[/] and logged in as {user.email}")


@cli.command(name="logout", help="Forget the persisted session token.")
def cli_logout(ctx: DashboardCLIContext):
    async def action(dashboard: context.Dashboard):
        dashboard.session.logout()

    run(ctx, action, require_session=False)
    helper.print_line("Logged out")


@cli.command(name="whoami", help="Show the user of the current session.")
def cli_whoami(ctx: DashboardCLIContext):
    async def action(dashboard: context.Dashboard):
        return dashboard.session.user

    user = run(ctx, action)
    helper.print_kv("Email", user.email)
    helper.print_kv("Admin", "yes" if user.is_admin else "no")
    helper.print_kv("Member since", helper.human_time(user.created_at))


@cli.command(name="browse", help="List a directory on the backup server, to pick source or target paths.")
def cli_browse(
    ctx: DashboardCLIContext,
    path: typing.Optional[str] = typer.Argument(None, help="Directory to list. Defaults to the server user's home."),
):
    async def action(dashboard: context.Dashboard):
        return await dashboard.browse(path)

    listing = run(ctx, action)
    helper.print_line(listing.current_path)
    for entry in listing.entries:
        helper.print(f"  {entry.name}/" if entry.is_dir else f"  {entry.name}")


### Sources ###


@sources_cli.command(name="list", help="List backup sources.")
def cli_sources_list(ctx: DashboardCLIContext):
    async def action(dashboard: context.Dashboard):
        return await asyncio.gather(dashboard.sources.list(), dashboard.targets.list())

    sources, targets = run(ctx, action)
    output = helper.table("Sources", "ID", "Name", "Path", "Target", "Exclusions")
    for source in sources:
        target = model.find_target(targets, source.target_id)
        output.add_row(
            str(source.id),
            source.name,
            source.path,
            target.name if target else "-",
            ", ".join(source.exclusions) or "-",
        )
    helper.print(output)


@sources_cli.command(name="show", help="Show one backup source.")
def cli_sources_show(
    ctx: DashboardCLIContext,
    source_id: int = typer.Argument(..., metavar="ID"),
):
    async def action(dashboard: context.Dashboard):
        return await asyncio.gather(dashboard.sources.get(source_id), dashboard.targets.list())

    source, targets = run(ctx, action)
    # A target deleted elsewhere leaves a dangling id behind, shown as no target
    target = model.find_target(targets, source.target_id)
    helper.print_kv("Name", source.name)
    helper.print_kv("Path", source.path)
    helper.print_kv("Target", f"{target.name} ({target.type.value})" if target else "-")
    helper.print_kv("Exclusions", ", ".join(source.exclusions) or "-")
    helper.print_kv("Created", helper.human_time(source.created_at))
    helper.print_kv("Updated", helper.human_time(source.updated_at))


@sources_cli.command(name="create", help="Create a backup source.")
def cli_sources_create(
    ctx: DashboardCLIContext,
    name: str = typer.Option(..., "--name", "-n"),
    path: str = typer.Option(..., "--path", "-p", help="Directory to back up, on the server."),
    exclusions: typing.Optional[str] = typer.Option(
        None, "--exclude", "-x", help="Comma separated glob patterns to exclude."
    ),
    target_id: typing.Optional[int] = typer.Option(None, "--target", "-t"),
):
    async def action(dashboard: context.Dashboard):
        data = resources.build_source_input(name, path, exclusions, target_id)
        return await dashboard.sources.create(data)

    source = run(ctx, action)
    helper.print_line(f"[green]Created[/] source '{source.name}' (id {source.id})")


@sources_cli.command(name="update", help="Change fields of a backup source. Omitted options keep their value.")
def cli_sources_update(
    ctx: DashboardCLIContext,
    source_id: int = typer.Argument(..., metavar="ID"),
    name: typing.Optional[str] = typer.Option(None, "--name", "-n"),
    path: typing.Optional[str] = typer.Option(None, "--path", "-p"),
    exclusions: typing.Optional[str] = typer.Option(
        None, "--exclude", "-x", help="Comma separated glob patterns, replaces the current list."
    ),
    target_id: typing.Optional[int] = typer.Option(None, "--target", "-t"),
    no_target: bool = typer.Option(False, "--no-target/", help="Detach the source from its target."),
):
    async def action(dashboard: context.Dashboard):
        current = await dashboard.sources.get(source_id, refresh=True)
        merged = helper.merge_changes(
            current.model_dump(include={"name", "path", "exclusions", "target_id", "schedule_id"}),
            {
                "name": name,
                "path": path,
                "exclusions": resources.parse_exclusions(exclusions) if exclusions is not None else None,
                "target_id": target_id,
            },
        )
        if no_target:
            merged["target_id"] = None
        return await dashboard.sources.update(source_id, resources.build_source_input(**merged))

    source = run(ctx, action)
    helper.print_line(f"[green]Updated[/] source '{source.name}'")


@sources_cli.command(name="delete", help="Delete a backup source.")
def cli_sources_delete(
    ctx: DashboardCLIContext,
    source_id: int = typer.Argument(..., metavar="ID"),
    yes: bool = typer.Option(False, "--yes/", "-y/", help="Don't ask for confirmation."),
):
    if not yes:
        typer.confirm(f"Delete source {source_id}?", abort=True)

    async def action(dashboard: context.Dashboard):
        await dashboard.sources.delete(source_id)

    run(ctx, action)
    helper.print_line(f"Deleted source {source_id}")


@sources_cli.command(name="run", help="Trigger a backup of a source now.")
def cli_sources_run(
    ctx: DashboardCLIContext,
    source_id: int = typer.Argument(..., metavar="ID"),
):
    async def action(dashboard: context.Dashboard):
        return await dashboard.sources.run(source_id)

    response = run(ctx, action)
    helper.print_line(
        f"Backup started as job {response.job_id} ({helper.status_label(response.status)})"
    )
    helper.print_nested_line(f"Follow it with 'savesync-dashboard jobs watch {response.job_id}'")


### Targets ###


@targets_cli.command(name="list", help="List storage targets.")
def cli_targets_list(ctx: DashboardCLIContext):
    async def action(dashboard: context.Dashboard):
        return await dashboard.targets.list()

    output = helper.table("Targets", "ID", "Name", "Type", "Created")
    for target in run(ctx, action):
        output.add_row(
            str(target.id), target.name, target.type.value, helper.human_time(target.created_at)
        )
    helper.print(output)


def print_target_config(target: model.Target):
    for key, value in target.config.model_dump(exclude_none=True).items():
        if key in ("secret_key", "password"):
            value = "********"
        helper.print_nested_line(f"{key}: {value}")


@targets_cli.command(name="show", help="Show one storage target.")
def cli_targets_show(
    ctx: DashboardCLIContext,
    target_id: int = typer.Argument(..., metavar="ID"),
):
    async def action(dashboard: context.Dashboard):
        return await dashboard.targets.get(target_id)

    target = run(ctx, action)
    helper.print_kv("Name", target.name)
    helper.print_kv("Type", target.type.value)
    helper.print_kv("Config")
    print_target_config(target)


@targets_cli.command(name="fields", help="List the config fields each target type accepts.")
def cli_targets_fields():
    for target_type in model.TargetType:
        required, optional = variant.field_table(target_type)
        helper.print_kv(target_type.value)
        helper.print_nested_line("required:", ", ".join(required))
        helper.print_nested_line("optional:", ", ".join(optional) or "-")


field_option_help = "Config field as KEY=VALUE, repeat for each field. See 'targets fields'."


@targets_cli.command(name="create", help="Create a storage target.")
def cli_targets_create(
    ctx: DashboardCLIContext,
    name: str = typer.Option(..., "--name", "-n"),
    target_type: model.TargetType = typer.Option(..., "--type", "-t"),
    fields: list[str] = typer.Option([], "--set", "-s", help=field_option_help),
):
    async def action(dashboard: context.Dashboard):
        form = variant.TargetForm(name, target_type)
        for key, value in helper.parse_fields(fields).items():
            form.set_field(key, value)
        return await dashboard.targets.create(form.resolve())

    target = run(ctx, action)
    helper.print_line(f"[green]Created[/] target '{target.name}' (id {target.id})")


@targets_cli.command(
    name="update",
    help="Change a storage target. Switching its type starts over with an empty config.",
)
def cli_targets_update(
    ctx: DashboardCLIContext,
    target_id: int = typer.Argument(..., metavar="ID"),
    name: typing.Optional[str] = typer.Option(None, "--name", "-n"),
    target_type: typing.Optional[model.TargetType] = typer.Option(None, "--type", "-t"),
    fields: list[str] = typer.Option([], "--set", "-s", help=field_option_help),
):
    async def action(dashboard: context.Dashboard):
        form = variant.TargetForm.from_target(await dashboard.targets.get(target_id, refresh=True))
        if name is not None:
            form.name = name
        if target_type is not None and target_type != form.type:
            form.select_type(target_type)
        for key, value in helper.parse_fields(fields).items():
            form.set_field(key, value)
        return await dashboard.targets.update(target_id, form.resolve())

    target = run(ctx, action)
    helper.print_line(f"[green]Updated[/] target '{target.name}'")


@targets_cli.command(name="delete", help="Delete a storage target.")
def cli_targets_delete(
    ctx: DashboardCLIContext,
    target_id: int = typer.Argument(..., metavar="ID"),
    yes: bool = typer.Option(False, "--yes/", "-y/", help="Don't ask for confirmation."),
):
    if not yes:
        typer.confirm(f"Delete target {target_id}?", abort=True)

    async def action(dashboard: context.Dashboard):
        await dashboard.targets.delete(target_id)

    run(ctx, action)
    helper.print_line(f"Deleted target {target_id}")


### Snapshots ###


@snapshots_cli.command(name="list", help="List snapshots.")
def cli_snapshots_list(ctx: DashboardCLIContext):
    async def action(dashboard: context.Dashboard):
        return await dashboard.snapshots.list()

    output = helper.table("Snapshots", "ID", "Source", "Status", "Files", "Size", "New data", "Created")
    for snapshot in run(ctx, action):
        output.add_row(
            str(snapshot.id),
            str(snapshot.source_id),
            helper.status_label(snapshot.status),
            str(snapshot.file_count),
            helper.human_readable(snapshot.total_bytes),
            helper.human_readable(snapshot.delta_bytes),
            helper.human_time(snapshot.created_at),
        )
    helper.print(output)


@snapshots_cli.command(name="show", help="Show one snapshot.")
def cli_snapshots_show(
    ctx: DashboardCLIContext,
    snapshot_id: int = typer.Argument(..., metavar="ID"),
):
    async def action(dashboard: context.Dashboard):
        return await dashboard.snapshots.get(snapshot_id)

    snapshot = run(ctx, action)
    helper.print_kv("Status", helper.status_label(snapshot.status))
    helper.print_kv("Source", snapshot.source_id)
    helper.print_kv("Target", snapshot.target_id)
    helper.print_kv("Files", snapshot.file_count)
    helper.print_kv("Total size", helper.human_readable(snapshot.total_bytes))
    helper.print_kv("New data", helper.human_readable(snapshot.delta_bytes))
    helper.print_kv("Created", helper.human_time(snapshot.created_at))
    helper.print_kv("Duration", helper.human_duration(snapshot.created_at, snapshot.completed_at))
    if snapshot.error:
        helper.print_kv("Error", f"[red]{snapshot.error}")


@snapshots_cli.command(name="files", help="Show the file tree of a snapshot.")
def cli_snapshots_files(
    ctx: DashboardCLIContext,
    snapshot_id: int = typer.Argument(..., metavar="ID"),
    expand: list[str] = typer.Option(
        [], "--expand", "-e", help="Path of a directory to toggle open, repeatable."
    ),
    expand_all: bool = typer.Option(False, "--all/", "-a/", help="Expand every directory."),
):
    async def action(dashboard: context.Dashboard):
        view = tree.FileTreeView(snapshot_id)
        await view.load(dashboard.snapshots.files)
        return view

    view = run(ctx, action)
    if expand_all:
        view.expansion.expand_all(view.root)
    for path in expand:
        view.toggle(path)
    helper.render_tree_rows(view.rows())


@snapshots_cli.command(name="manifest", help="Download the manifest of a snapshot.")
def cli_snapshots_manifest(
    ctx: DashboardCLIContext,
    snapshot_id: int = typer.Argument(..., metavar="ID"),
    output: typing.Optional[pathlib.Path] = typer.Option(
        None, "--output", "-o", help="Destination file. Defaults to manifest-ID.json."
    ),
):
    async def action(dashboard: context.Dashboard):
        snapshot = await dashboard.snapshots.get(snapshot_id, refresh=True)
        if not snapshot.manifest_available:
            helper.print_error("Error: Snapshot is still pending, no manifest yet")
        return await dashboard.snapshots.manifest(snapshot_id)

    content = run(ctx, action)
    destination = helper.fully_qualified_path(output or f"manifest-{snapshot_id}.json")
    destination.write_bytes(content)
    helper.print_line(f"Manifest written to {destination}")


@snapshots_cli.command(name="restore", help="Restore a snapshot to its source path.")
def cli_snapshots_restore(
    ctx: DashboardCLIContext,
    snapshot_id: int = typer.Argument(..., metavar="ID"),
    yes: bool = typer.Option(False, "--yes/", "-y/", help="Don't ask for confirmation."),
):
    if not yes:
        typer.confirm(f"Restore snapshot {snapshot_id}? Existing files may be overwritten.", abort=True)

    async def action(dashboard: context.Dashboard):
        await dashboard.snapshots.restore(snapshot_id)

    run(ctx, action)
    helper.print_line(f"Restore of snapshot {snapshot_id} started")


### Jobs ###


@jobs_cli.command(name="list", help="List jobs.")
def cli_jobs_list(ctx: DashboardCLIContext):
    async def action(dashboard: context.Dashboard):
        return await dashboard.jobs.list()

    output = helper.table("Jobs", "ID", "Type", "Status", "Source", "Snapshot", "Started", "Duration")
    for job in run(ctx, action):
        output.add_row(
            str(job.id),
            job.type.value,
            helper.status_label(job.status),
            str(job.source_id or "-"),
            str(job.snapshot_id or "-"),
            helper.human_time(job.started_at),
            helper.human_duration(job.started_at, job.ended_at),
        )
    helper.print(output)


def print_job(job: model.Job):
    helper.print_kv("Type", job.type.value)
    helper.print_kv("Status", helper.status_label(job.status))
    helper.print_kv("Started", helper.human_time(job.started_at))
    helper.print_kv("Duration", helper.human_duration(job.started_at, job.ended_at))
    if job.error:
        helper.print_kv("Error", f"[red]{job.error}")


@jobs_cli.command(name="show", help="Show one job.")
def cli_jobs_show(
    ctx: DashboardCLIContext,
    job_id: int = typer.Argument(..., metavar="ID"),
):
    async def action(dashboard: context.Dashboard):
        return await dashboard.jobs.get(job_id)

    print_job(run(ctx, action))


@jobs_cli.command(name="watch", help="Poll a job until it succeeds or fails.")
def cli_jobs_watch(
    ctx: DashboardCLIContext,
    job_id: int = typer.Argument(..., metavar="ID"),
    interval: float = typer.Option(2.0, "--interval", "-i", min=0.1, help="Seconds between polls."),
):
    async def action(dashboard: context.Dashboard):
        last_status = None
        while True:
            job = await dashboard.jobs.get(job_id, refresh=True)
            if job.status != last_status:
                helper.print_line(f"Job {job_id}: {helper.status_label(job.status)}")
                last_status = job.status
            if job.status.is_terminal:
                return job
            await asyncio.sleep(interval)

    job = run(ctx, action)
    print_job(job)
    if job.status == model.Status.FAILED:
        raise typer.Exit(1)


### Users ###


@users_cli.command(name="list", help="List user accounts.")
def cli_users_list(ctx: DashboardCLIContext):
    async def action(dashboard: context.Dashboard):
        return dashboard.session.user, await dashboard.users.list()

    current, users = run(ctx, action)
    output = helper.table("Users", "ID", "Email", "Admin", "Created")
    for user in users:
        email = f"{user.email} (you)" if current and current.id == user.id else user.email
        output.add_row(
            str(user.id), email, "yes" if user.is_admin else "no", helper.human_time(user.created_at)
        )
    helper.print(output)


@users_cli.command(name="create", help="Create a user account.")
def cli_users_create(
    ctx: DashboardCLIContext,
    email: str = typer.Option(..., "--email", "-e", prompt=True),
    password: str = typer.Option(
        ..., "--password", "-p", prompt=True, hide_input=True, confirmation_prompt=True
    ),
):
    async def action(dashboard: context.Dashboard):
        return await dashboard.users.create(email, password)

    user = run(ctx, action)
    helper.print_line(f"[green]Created[/] user {user.email} (id {user.id})")


async def find_other_user(dashboard: context.Dashboard, user_id: int) -> model.User:
    user = next((user for user in await dashboard.users.list() if user.id == user_id), None)
    if user is None:
        helper.print_error(f"Error: No user found with id {user_id}")
    # Acting on your own account could lock you out of administration
    if dashboard.session.is_current_user(user):
        helper.print_error("Error: You can't change or delete your own account here")
    return user


def set_admin(ctx: DashboardCLIContext, user_id: int, is_admin: bool):
    async def action(dashboard: context.Dashboard):
        user = await find_other_user(dashboard, user_id)
        await dashboard.users.set_admin(user.id, is_admin)
        return user

    user = run(ctx, action)
    helper.print_line(f"{user.email} is {'now' if is_admin else 'no longer'} an admin")


@users_cli.command(name="promote", help="Grant admin rights to a user.")
def cli_users_promote(ctx: DashboardCLIContext, user_id: int = typer.Argument(..., metavar="ID")):
    set_admin(ctx, user_id, True)


@users_cli.command(name="demote", help="Revoke admin rights from a user.")
def cli_users_demote(ctx: DashboardCLIContext, user_id: int = typer.Argument(..., metavar="ID")):
    set_admin(ctx, user_id, False)


@users_cli.command(name="delete", help="Delete a user account.")
def cli_users_delete(
    ctx: DashboardCLIContext,
    user_id: int = typer.Argument(..., metavar="ID"),
    yes: bool = typer.Option(False, "--yes/", "-y/", help="Don't ask for confirmation."),
):
    if not yes:
        typer.confirm(f"Delete user {user_id}?", abort=True)

    async def action(dashboard: context.Dashboard):
        user = await find_other_user(dashboard, user_id)
        await dashboard.users.delete(user.id)
        return user

    user = run(ctx, action)
    helper.print_line(f"Deleted user {user.email}")


### Settings ###


@settings_cli.command(name="show", help="Show server settings.")
def cli_settings_show(ctx: DashboardCLIContext):
    async def action(dashboard: context.Dashboard):
        return await dashboard.settings.all()

    helper.print_config_data(run(ctx, action))


@settings_cli.command(name="set", help="Change a server setting, e.g. 'registration_enabled false'.")
def cli_settings_set(
    ctx: DashboardCLIContext,
    key: str = typer.Argument(...),
    value: str = typer.Argument(...),
):
    async def action(dashboard: context.Dashboard):
        await dashboard.settings.update(key, value)

    run(ctx, action)
    helper.print_line(f"Setting '{key}' updated")
