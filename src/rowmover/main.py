"""Command-line entry point for archiving rows of a registered table."""

import asyncio
import sys
import uuid
from pathlib import Path
from typing import Optional

import click

from rowmover.config import RowMoverConfig, load_config
from rowmover.exceptions import RowMoverError
from rowmover.mover import RowMover
from rowmover.registry import ArchiveTarget
from rowmover.statements import StatementBuilder
from utils.logging import configure_logging


def read_ids_file(path: Path) -> list[int]:
    """Read one integer id per line; blank lines and '#' comments are skipped."""
    ids = []
    with open(path, encoding="utf-8") as f:
        for line_number, line in enumerate(f, start=1):
            text = line.split("#", 1)[0].strip()
            if not text:
                continue
            try:
                ids.append(int(text))
            except ValueError:
                raise click.BadParameter(
                    f"line {line_number}: {text!r} is not an integer id",
                    param_hint="--ids-file",
                ) from None
    return ids


def render_plan(
    target: ArchiveTarget,
    ids: list[int],
    chunk_size: int,
) -> list[str]:
    """Describe the statements a move would execute, without touching the database."""
    builder = StatementBuilder()
    if len(ids) == 1:
        statement = builder.single(target)
        return [f"-- 1 id\n{statement.sql};"]

    lines = []
    for start in range(0, len(ids), chunk_size):
        chunk = ids[start : start + chunk_size]
        statement = builder.bulk(target, len(chunk))
        lines.append(f"-- {len(chunk)} id(s), first={chunk[0]}\n{statement.sql};")
    return lines


async def run_move(
    config: RowMoverConfig,
    target: ArchiveTarget,
    ids: list[int],
    audited_by: Optional[str],
    chunk_size: Optional[int],
    logger,
) -> int:
    async with RowMover.from_config(config, logger=logger) as mover:
        if len(ids) == 1:
            return await mover.archive_one(target, ids[0], audited_by)
        return await mover.archive_many(target, ids, audited_by, chunk_size)


@click.command()
@click.option(
    "--config",
    "-c",
    required=True,
    type=click.Path(exists=True, path_type=Path),
    help="Path to configuration file (YAML)",
)
@click.option(
    "--target",
    "-t",
    required=True,
    type=click.Choice(ArchiveTarget.names(), case_sensitive=False),
    help="Registered table mapping to archive from",
)
@click.option(
    "--id",
    "row_ids",
    multiple=True,
    type=int,
    help="Primary key to archive (repeatable)",
)
@click.option(
    "--ids-file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="File with one primary key per line",
)
@click.option(
    "--audited-by",
    default=None,
    help="Auditing value recorded with each archived row (e.g. job or user name)",
)
@click.option(
    "--chunk-size",
    type=int,
    default=None,
    help="Ids per statement (defaults to the configured chunk_size)",
)
@click.option(
    "--dry-run",
    is_flag=True,
    default=False,
    help="Print the statements that would run without connecting",
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    default=False,
    help="Enable verbose output",
)
@click.option(
    "--log-level",
    default="INFO",
    type=click.Choice(["DEBUG", "INFO", "WARN", "ERROR", "CRITICAL"]),
    help="Log level",
)
@click.option(
    "--log-format",
    default="console",
    type=click.Choice(["console", "json"], case_sensitive=False),
    help="Log format: 'console' for human-readable output, 'json' for structured logs",
)
def main(
    config: Path,
    target: str,
    row_ids: tuple[int, ...],
    ids_file: Optional[Path],
    audited_by: Optional[str],
    chunk_size: Optional[int],
    dry_run: bool,
    verbose: bool,
    log_level: str,
    log_format: str,
) -> None:
    """Move rows of a registered table into its archive table.

    Each chunk of ids is moved with a single DELETE ... RETURNING / INSERT
    statement, so a row is never deleted without being archived.
    """
    effective_log_level = "DEBUG" if verbose else log_level
    logger = configure_logging(
        log_level=effective_log_level,
        log_format=log_format,
        correlation_id=str(uuid.uuid4()),
    )
    logger = logger.bind(component="main")

    ids = list(row_ids)
    if ids_file:
        ids.extend(read_ids_file(ids_file))
    if not ids:
        raise click.UsageError("Provide at least one --id or an --ids-file")

    try:
        archive_target = ArchiveTarget.from_name(target)
        mover_config = load_config(config)
        if verbose:
            logger.info("Configuration loaded", config_path=str(config))

        if dry_run:
            size = chunk_size if chunk_size and chunk_size > 0 else mover_config.defaults.chunk_size
            logger.info("DRY RUN MODE - No changes will be made", ids=len(ids))
            for line in render_plan(archive_target, ids, size):
                click.echo(line)
            return

        moved = asyncio.run(
            run_move(mover_config, archive_target, ids, audited_by, chunk_size, logger)
        )
        click.echo(f"Archived {moved} of {len(ids)} row(s) from {archive_target.name.lower()}")

    except RowMoverError as e:
        logger.error(
            "Archive failed",
            error=str(e),
            error_type=type(e).__name__,
        )
        sys.exit(1)


if __name__ == "__main__":
    main()
