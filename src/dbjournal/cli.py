#!/usr/bin/env python3
"""
dbjournal CLI - timestamp-driven change journal command-line interface.

This module provides the `dbjournal` command-line interface. Every command
maps to one DbJournal operation; destructive or time-forced commands ask
for confirmation unless --yes is given.
"""

import asyncio
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional

import click

from dbjournal.core.models import InitAction, TableRunStatus
from dbjournal.core.service import DbJournal
from dbjournal.core.workspace import Workspace
from dbjournal.messages import get_logger, set_global_level
from dbjournal.messages.errors import ErrorFormatter
from dbjournal.utility.timestamps import (
    DB_DATE_FORMAT,
    DB_DATETIME_FORMAT,
    parse_option_timestamp,
)


class TimestampParamType(click.ParamType):
    """`YYYY-MM-DD HH:MM:SS`, or `YYYY-MM-DD` taken as midnight."""

    name = "timestamp"

    def convert(self, value, param, ctx):
        if isinstance(value, datetime):
            return value
        try:
            return parse_option_timestamp(value)
        except ValueError:
            self.fail(
                f"'{value}' is invalid. Use {DB_DATETIME_FORMAT} or {DB_DATE_FORMAT}",
                param,
                ctx,
            )


TIMESTAMP = TimestampParamType()


class CliState:
    """Options shared by every command."""

    def __init__(self, config_path: Optional[str], yes: bool, verbose: bool):
        self.config_path = config_path
        self.yes = yes
        self.verbose = verbose
        self.debug = verbose

    def load(self) -> DbJournal:
        if self.config_path:
            workspace = Workspace.from_path(Path(self.config_path))
        else:
            workspace = Workspace.find()
        config = workspace.load()
        if config.options.debug:
            self.debug = True
            set_global_level(logging.DEBUG)
        return DbJournal.from_config(config, root=workspace.root)

    def confirm(self, question: str) -> None:
        if not self.yes:
            click.confirm(question, abort=True)


def _fail(state: CliState, error: Exception) -> None:
    message, suggestion = ErrorFormatter.format_error(error)
    click.echo(f"Error: {message}", err=True)
    if suggestion:
        click.echo(suggestion, err=True)
    if state.debug:
        click.echo(ErrorFormatter.format_with_stack_trace(error), err=True)
    get_logger("dbjournal.cli").debug(f"{type(error).__name__}: {error}")
    sys.exit(1)


def _execute(
    state: CliState,
    operation: Callable[[DbJournal], Awaitable[Any]],
    connect: bool = True,
    journal: Optional[DbJournal] = None,
) -> Any:
    """
    Load the project (unless an already loaded `journal` is given), run one
    operation, and turn errors into exit code 1.
    """
    try:
        if journal is None:
            journal = state.load()

        async def _run():
            if not connect:
                return await operation(journal)
            async with journal:
                return await operation(journal)

        return asyncio.run(_run())
    except Exception as e:
        _fail(state, e)


@click.group()
@click.version_option(package_name="dbjournal")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False),
    help="Path to dbjournal.yml (default: search upwards from here)",
)
@click.option("--yes", "-y", is_flag=True, help="Answer yes to every confirmation")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
@click.pass_context
def dbjournal(ctx, config_path: Optional[str], yes: bool, verbose: bool):
    """
    dbjournal - timestamp-driven change journal

    Captures rows changed since the last run (by created/updated timestamp
    columns) as replayable SQL statements in an append-only log.
    """
    ctx.obj = CliState(config_path, yes, verbose)
    if verbose:
        set_global_level(logging.DEBUG)


@dbjournal.command()
@click.pass_obj
def setup(state: CliState):
    """Create the watermark table."""
    created = _execute(state, lambda journal: journal.setup())
    if created:
        click.echo("Watermark table created. Next: dbjournal init")
    else:
        click.echo("Watermark table already exists")


@dbjournal.command()
@click.option("--time", "-t", "start_time", type=TIMESTAMP, help="Start time")
@click.option(
    "--force", "-f", is_flag=True, help="Reset existing watermarks to the start time"
)
@click.pass_obj
def init(state: CliState, start_time: Optional[datetime], force: bool):
    """Create watermarks for every table with timestamp columns."""
    if start_time:
        state.confirm(
            f"This starts the journal for every eligible table at {start_time}. "
            f"Continue?"
        )
    if force:
        state.confirm("Existing watermarks will be overwritten. Continue?")

    results = _execute(
        state, lambda journal: journal.init(start_time=start_time, force_reset=force)
    )
    for result in results:
        click.echo(f"{result.action.value:<8} {result.table} @ {result.start}")
    created = sum(1 for r in results if r.action == InitAction.CREATED)
    click.echo(f"{created} watermarks created, {len(results) - created} unchanged or reset")


@dbjournal.command()
@click.option(
    "--time", "-t", "time_override", type=TIMESTAMP, help="Journal up to this time"
)
@click.pass_obj
def update(state: CliState, time_override: Optional[datetime]):
    """Journal every table's changes since its watermark."""
    if time_override:
        state.confirm(
            "WARNING: this journals operations between each table's watermark "
            f"and {time_override} instead of the database's current time. Continue?"
        )

    results = _execute(state, lambda journal: journal.run(time_override))
    failed = [r for r in results if r.status == TableRunStatus.FAIL]
    for result in failed:
        click.echo(f"FAILED {result.table}: {result.error}", err=True)
    if failed:
        sys.exit(1)


@dbjournal.command()
@click.option("--table", help="Only statements for this table")
@click.option("--from", "min_time", type=TIMESTAMP, help="Earliest timestamp (inclusive)")
@click.option("--to", "max_time", type=TIMESTAMP, help="Latest timestamp (inclusive)")
@click.pass_obj
def dump(
    state: CliState,
    table: Optional[str],
    min_time: Optional[datetime],
    max_time: Optional[datetime],
):
    """Print journaled statements."""

    async def _dump(journal: DbJournal):
        return journal.dump(table=table, min_time=min_time, max_time=max_time)

    for statement in _execute(state, _dump, connect=False):
        click.echo(statement)


@dbjournal.command()
@click.pass_obj
def clean(state: CliState):
    """Remove every watermark and archive the journal log."""
    state.confirm("Are you sure you want to truncate the journal table?")
    archived = _execute(state, lambda journal: journal.clean())
    click.echo("Watermarks removed")
    if archived:
        click.echo(f"Journal log archived to {archived}")


@dbjournal.command()
@click.pass_obj
def uninstall(state: CliState):
    """Drop the watermark table and delete the journal log."""
    state.confirm(
        "This drops the watermark table and deletes the journal log and its "
        "archives. Continue?"
    )
    _execute(state, lambda journal: journal.uninstall())
    click.echo("dbjournal uninstalled")


@dbjournal.command()
@click.pass_obj
def schema(state: CliState):
    """Show tables, columns and types."""
    tables = _execute(state, lambda journal: journal.schema())
    for table, columns in tables.items():
        click.echo(table)
        for column, declared in columns.items():
            click.echo(f"  {column}: {declared}")


@dbjournal.command()
@click.pass_obj
def time(state: CliState):
    """Show the database's current time."""
    click.echo(str(_execute(state, lambda journal: journal.time())))


@dbjournal.command()
@click.pass_obj
def status(state: CliState):
    """Show every table's watermark."""
    frame = _execute(state, lambda journal: journal.status())
    if frame.is_empty():
        click.echo("No watermarks. Run 'dbjournal init' first.")
        return
    click.echo(str(frame))


@dbjournal.command()
@click.pass_obj
def debug(state: CliState):
    """Validate configuration and test the database connection."""
    try:
        journal = state.load()
    except Exception as e:
        _fail(state, e)

    config = journal.config
    click.echo("Project configuration is valid")
    click.echo(f"Project: {config.name}")
    click.echo(f"Connection: {config.connection.type}")
    click.echo(f"Journal log: {journal.log.path}")
    click.echo(f"Watermark table: {config.journal.table}")
    click.echo(
        f"Timestamp columns: {config.columns.created_at}, {config.columns.updated_at}"
    )

    async def _check_connection(journal: DbJournal):
        now = await journal.time()
        installed = await journal.store.exists()
        return now, installed

    click.echo("\nTesting connection...")
    now, installed = _execute(state, _check_connection, journal=journal)
    click.echo(f"Connection successful! Database time: {now}")
    click.echo(f"Watermark table installed: {'yes' if installed else 'no'}")


if __name__ == "__main__":
    dbjournal()
