# staticsweep/__main__.py
from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable, Optional

from dateutil.parser import isoparse
import questionary
import typer
from rich.console import Console
from rich.table import Table

from staticsweep import core, pipeline
from staticsweep.config import RetentionConfig, settings
from staticsweep.errors import CleanupError
from staticsweep.fleet import get_deployed_app_versions


# Common options for all commands
COMMON_OPTIONS = dict(
    no_prompt=typer.Option(
        False,
        "--yes",
        "-y",
        help="Run non-interactively: auto-accept all prompts and use defaults.",
    ),
    bucket=typer.Option(
        settings.bucket, "--bucket", "-b", help="Bucket holding the web deployments."
    ),
    retain_days=typer.Option(
        settings.retain_days,
        "--retain-days",
        "-r",
        help="Minimum age in days before an unused folder may be deleted.",
    ),
    skip_untagged=typer.Option(
        False,
        "--skip-untagged",
        help="Ignore instances missing their version tag instead of failing; keep those missing only a stack tag.",
    ),
    as_of=typer.Option(
        None,
        "--as-of",
        help="ISO-8601 timestamp to treat as 'now' when computing folder ages.",
    ),
)


# Prompt helpers
def _ask_confirm(ctx: typer.Context, prompt: str, default: bool = False) -> bool:
    if ctx.obj.get("no_prompt"):
        return True
    result: Optional[bool] = questionary.confirm(prompt, default=default).ask()
    return bool(result)  # Cast to bool to avoid NoneType issues


def _parse_as_of(as_of: Optional[str]) -> Optional[datetime]:
    if not as_of:
        return None
    try:
        dt = isoparse(as_of)
    except ValueError:
        console.print(f"[bold red]Error:[/] '{as_of}' is not an ISO-8601 timestamp.")
        raise typer.Exit(1)
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


def _build_config(
    bucket: str, action: str, retain_days: int, skip_untagged: bool
) -> RetentionConfig:
    try:
        return RetentionConfig(
            bucket=bucket,
            action=action,  # type: ignore[arg-type]
            retain_days=retain_days,
            missing_tag_policy="skip" if skip_untagged else "fail",
        )
    except CleanupError as e:
        console.print(f"[bold red]{e}[/]")
        raise typer.Exit(1)


# Initialize Typer app and Rich console
app = typer.Typer(
    name="staticsweep",
    help="Find and remove static web deployment folders no longer used by any instance.",
    add_completion=False,
)
console = Console()


def _render_report(report: pipeline.CleanupReport) -> None:
    table = Table(
        "Folder",
        "Last Modified",
        "Age (days)",
        "Expired",
        title=f"Unreferenced folders in s3://{report.config.bucket}",
    )
    for age in report.ages:
        lookup = age.lookup
        if lookup.status is core.LookupStatus.FOUND and lookup.last_modified:
            modified = lookup.last_modified.isoformat()
        elif lookup.status is core.LookupStatus.EMPTY:
            modified = "[dim](empty)[/]"
        else:
            modified = f"[red]lookup failed: {lookup.error}[/]"
        table.add_row(
            f"[cyan]{age.folder}[/]",
            modified,
            "-" if age.age_days is None else str(age.age_days),
            "✅" if age.expired else "❌",
        )
    console.print(table)
    console.print(
        f"{len(report.expired)} folder(s) older than {report.config.retain_days} day(s)."
    )


def _run_cleanup_logic(
    config: RetentionConfig, now: Optional[datetime]
) -> pipeline.CleanupReport:
    """Runs the pipeline, turning cleanup errors into a clean exit."""
    try:
        return pipeline.run_cleanup(config, now=now)
    except CleanupError as e:
        console.print(f"[bold red]Error:[/] {e}")
        raise typer.Exit(1)


@app.command("list")
def list_folders(
    ctx: typer.Context,
    bucket: str = COMMON_OPTIONS["bucket"],
    retain_days: int = COMMON_OPTIONS["retain_days"],
    skip_untagged: bool = COMMON_OPTIONS["skip_untagged"],
    as_of: Optional[str] = COMMON_OPTIONS["as_of"],
) -> None:
    """Lists unreferenced deployment folders and which of them have expired."""
    config = _build_config(bucket, "list", retain_days, skip_untagged)
    report = _run_cleanup_logic(config, _parse_as_of(as_of))
    _render_report(report)


@app.command()
def delete(
    ctx: typer.Context,
    bucket: str = COMMON_OPTIONS["bucket"],
    retain_days: int = COMMON_OPTIONS["retain_days"],
    skip_untagged: bool = COMMON_OPTIONS["skip_untagged"],
    as_of: Optional[str] = COMMON_OPTIONS["as_of"],
    no_prompt: bool = COMMON_OPTIONS["no_prompt"],
) -> None:
    """Permanently deletes every expired, unreferenced deployment folder."""
    ctx.obj["no_prompt"] = no_prompt or ctx.obj.get("no_prompt")
    now = _parse_as_of(as_of)
    config = _build_config(bucket, "delete", retain_days, skip_untagged)

    preview = _run_cleanup_logic(replace(config, action="list"), now)
    _render_report(preview)
    if not preview.expired:
        console.print("Nothing to delete.")
        return

    console.print(
        "[bold yellow]WARNING:[/] This will [underline]permanently delete[/] "
        f"the {len(preview.expired)} folder(s) above from [cyan]s3://{bucket}[/]."
    )
    if not _ask_confirm(ctx, "Do you want to continue?", default=False):
        console.print("Deletion cancelled.")
        return

    report = _run_cleanup_logic(config, now)
    _render_report(report)
    total = sum(report.deleted.values())
    console.print(
        f"\n[bold green]✅ Deleted {len(report.deleted)} folder(s), {total} object(s).[/]"
    )


@app.command()
def versions(
    ctx: typer.Context,
    skip_untagged: bool = COMMON_OPTIONS["skip_untagged"],
) -> None:
    """Shows the application versions currently deployed on the fleet."""
    try:
        records = get_deployed_app_versions(
            core.get_ec2_client(),
            settings.role_tag_value,
            "skip" if skip_untagged else "fail",
        )
    except CleanupError as e:
        console.print(f"[bold red]Error:[/] {e}")
        raise typer.Exit(1)

    table = Table("Stack", "Application Version", title="In-use versions")
    for record in records:
        table.add_row(record.stack_name, f"[magenta]{record.app_version}[/]")
    console.print(table)


@app.command()
def verify(
    ctx: typer.Context,
    bucket: str = COMMON_OPTIONS["bucket"],
) -> None:
    """Verifies AWS credentials can list the bucket and read instance tags."""
    console.print("🔍 Verifying AWS configuration...")

    results = core.verify_aws_access(bucket)

    table = Table(
        "Target",
        "Status",
        "List",
        "Describe",
        "Delete",
        title="AWS Permissions Report",
    )

    overall_success = True
    for res in results:
        if not res["ok"]:
            overall_success = False
        table.add_row(
            f"[bold cyan]{res['target']}[/]",
            f"{'✅' if res['ok'] else '❌'} {res['message']}",
            "✅" if res["permissions"]["list"] else "❌",
            "✅" if res["permissions"]["describe"] else "❌",
            "✅" if res["permissions"]["delete"] else "❌",
        )

    console.print(table)

    if not overall_success:
        console.print("\n[bold red]One or more critical checks failed.[/]")
        raise typer.Exit(1)
    else:
        console.print("\n[bold green]All checks passed with expected permissions.[/]")


def _list_interactive(ctx: typer.Context) -> None:
    try:
        list_folders(
            ctx,
            bucket=settings.bucket,
            retain_days=settings.retain_days,
            skip_untagged=False,
            as_of=None,
        )
    except typer.Exit:
        pass


def _delete_interactive(ctx: typer.Context) -> None:
    """Guides the user through a deletion run."""
    console.print("\n[bold]Interactive Cleanup[/]")

    bucket = questionary.text("Which bucket?", default=settings.bucket).ask()
    if bucket is None:
        console.print("Deletion cancelled.")
        return

    retain_str = questionary.text(
        "Delete unused folders older than how many days?",
        default=str(settings.retain_days),
        validate=lambda text: text.isdigit()
        and int(text) > 0
        or "Please enter a positive number.",
    ).ask()
    if retain_str is None:
        console.print("Deletion cancelled.")
        return

    try:
        delete(
            ctx,
            bucket=bucket,
            retain_days=int(retain_str),
            skip_untagged=False,
            as_of=None,
            no_prompt=False,
        )
    except typer.Exit:
        pass


def _versions_interactive(ctx: typer.Context) -> None:
    try:
        versions(ctx, skip_untagged=False)
    except typer.Exit:
        pass


def _verify_interactive(ctx: typer.Context) -> None:
    try:
        verify(ctx, bucket=settings.bucket)
    except typer.Exit:
        pass


@app.callback(invoke_without_command=True)
def main(ctx: typer.Context, no_prompt: bool = COMMON_OPTIONS["no_prompt"]) -> None:
    """
    Entrypoint – when no sub-command is given we show a simple menu unless
    --yes is supplied (non-interactive mode).
    """
    ctx.ensure_object(dict)
    ctx.obj["no_prompt"] = no_prompt

    if ctx.invoked_subcommand:
        return

    if no_prompt:
        console.print("[red]--yes supplied but no sub-command given; exiting.[/]")
        raise typer.Exit(code=1)

    console.print("[bold yellow]Welcome to staticsweep![/]")

    actions: dict[str, Callable[[typer.Context], None] | str] = {
        "List expired folders": _list_interactive,
        "Delete expired folders": _delete_interactive,
        "Show in-use versions": _versions_interactive,
        "Verify AWS configuration": _verify_interactive,
        "Exit": "exit",
    }

    choice = questionary.select(
        "What would you like to do?", choices=list(actions.keys())
    ).ask()

    if choice == "Exit" or choice is None:
        console.print("Goodbye!")
        raise typer.Exit()

    action = actions[choice]
    if callable(action):
        action(ctx)
    else:
        raise NotImplementedError(f"Action '{choice}' is not implemented yet.")


if __name__ == "__main__":
    app()
