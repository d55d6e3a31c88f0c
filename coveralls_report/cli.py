"""CLI entry point: command definitions using Click.

Commands:
    init      Generate a template config file
    upload    Translate the Cobertura report and upload it to Coveralls
"""

import functools
import sys
import warnings

import click

from coveralls_report import __version__


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def log_or_fail(fail_build: bool, message: str) -> None:
    """Report *message*; exit non-zero only when the build should fail."""
    click.echo(f"Error: {message}", err=True)
    if fail_build:
        sys.exit(1)


def _load_config(ctx: click.Context):
    """Load config or exit: without a token or job id there is nothing to do."""
    from coveralls_report.config import ConfigurationError, load

    try:
        return load(ctx.obj["config_path"])
    except ConfigurationError as exc:
        click.echo(f"Configuration error: {exc}", err=True)
        sys.exit(1)


def _verbose(ctx: click.Context, message: str) -> None:
    if ctx.obj["verbose"]:
        click.echo(f"[verbose] {message}", err=True)


def _echo_warnings(caught: list[warnings.WarningMessage]) -> None:
    for w in caught:
        click.echo(f"Warning: {w.message}", err=True)


def _handle_pipeline_errors(func):
    """Decorator that routes report errors through the fail-build policy."""

    @functools.wraps(func)
    def wrapper(ctx: click.Context, *args, **kwargs):
        from coveralls_report.config import ConfigurationError
        from coveralls_report.reports.cobertura import MalformedReportError, ReportMissingError
        from coveralls_report.reports.sources import EncodingError

        fail_build = kwargs.get("fail_on_error") or False
        try:
            return func(ctx, *args, **kwargs)
        except ConfigurationError as exc:
            click.echo(f"Configuration error: {exc}", err=True)
            sys.exit(1)
        except ReportMissingError as exc:
            log_or_fail(fail_build, f"{exc}. Did the test run write a Cobertura report?")
        except MalformedReportError as exc:
            log_or_fail(fail_build, f"Report error: {exc}")
        except EncodingError as exc:
            log_or_fail(fail_build, f"Encoding error: {exc}")

    return wrapper


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------

@click.group()
@click.option("--config", "config_path", default="coveralls-config.yaml", show_default=True,
              help="Path to the configuration file.")
@click.option("--verbose", is_flag=True, default=False,
              help="Enable verbose logging.")
@click.version_option(__version__, prog_name="coveralls-report")
@click.pass_context
def cli(ctx: click.Context, config_path: str, verbose: bool) -> None:
    """Upload Cobertura line coverage to Coveralls."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["verbose"] = verbose


# ---------------------------------------------------------------------------
# init
# ---------------------------------------------------------------------------

@cli.command("init")
@click.option("--output", "output_path", default="coveralls-config.yaml", show_default=True,
              help="Path where the template config file will be written.")
def init_command(output_path: str) -> None:
    """Generate a template coveralls-config.yaml file."""
    from coveralls_report.config import ConfigurationError, generate_template
    try:
        generate_template(output_path)
        click.echo(f"Template written to '{output_path}'.")
        click.echo("Edit it with your source roots and, outside CI, your repo token.")
    except ConfigurationError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)


# ---------------------------------------------------------------------------
# upload
# ---------------------------------------------------------------------------

@cli.command("upload")
@click.option("--dry-run", is_flag=True, default=False,
              help="Write the payload file but do not upload it.")
@click.option("--fail-on-error/--no-fail-on-error", "fail_on_error", default=None,
              help="Exit non-zero when the upload fails (overrides config).")
@click.option("--no-git", is_flag=True, default=False,
              help="Do not include git metadata in the payload.")
@click.option("--strict-encoding", is_flag=True, default=False,
              help="Stop on the first source file that cannot be decoded.")
@click.pass_context
def upload_command(ctx: click.Context, dry_run: bool, fail_on_error: bool | None,
                   no_git: bool, strict_encoding: bool) -> None:
    """Translate the Cobertura report and upload it to Coveralls."""
    config = _load_config(ctx)
    if fail_on_error is None:
        fail_on_error = config.fail_build_on_error
    _upload(ctx, config=config, dry_run=dry_run, fail_on_error=fail_on_error,
            no_git=no_git, strict_encoding=strict_encoding)


@_handle_pipeline_errors
def _upload(ctx: click.Context, *, config, dry_run: bool, fail_on_error: bool,
            no_git: bool, strict_encoding: bool) -> None:
    from coveralls_report.client import describe_failure
    from coveralls_report.git import collect_git_info
    from coveralls_report.pipeline import run

    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        git_info = None if no_git else collect_git_info(config.base_dir)
        _verbose(ctx, f"Reading {config.cobertura_file}")
        if not dry_run:
            _verbose(ctx, f"Will upload to {config.endpoint}")
        try:
            summary = run(config, git_info=git_info,
                          strict_encoding=strict_encoding, dry_run=dry_run)
        finally:
            _echo_warnings(caught)

    _verbose(ctx, f"Wrote {summary.files_written} source file(s) to {summary.path}")
    if summary.skipped:
        _verbose(ctx, f"Skipped {len(summary.skipped)} file(s)")

    if dry_run:
        click.echo(f"Dry run: payload written to '{summary.path}', not uploaded.")
        return

    result = summary.upload
    if result.error:
        log_or_fail(fail_on_error, describe_failure(result, config.endpoint))
        return

    click.echo(f"Uploading to {config.endpoint} succeeded: {result.message}")
    if result.url:
        click.echo(result.url)
    click.echo("(results may not appear immediately)")
