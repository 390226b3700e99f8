"""CLI entrypoint for dedup-queue."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import rich_click as click

from dedup_queue import __version__
from dedup_queue.queue.controllers import (
    AddCommand,
    ClearCommand,
    CommandResult,
    ProcessCommand,
    QueueCliController,
    ShowCommand,
)

click.rich_click.USE_MARKDOWN = True
QUEUE_CONTROLLER = QueueCliController()

_ROOT_OPTION_HELP = "Working root holding queue/, processed/ and command_logs/."


class DefaultAddGroup(click.RichGroup):
    """Route ``dedup-queue PATH`` and piped ``dedup-queue`` to ``add``."""

    def parse_args(self, ctx: click.Context, args: list[str]) -> list[str]:
        if not args:
            if click.get_binary_stream("stdin").isatty():
                raise click.UsageError(
                    "No command given and nothing piped on stdin.",
                    ctx=ctx,
                )
            args = ["add"]
        elif args[0] not in self.commands and args[0] not in self._own_options(ctx):
            args = ["add", *args]
        return super().parse_args(ctx, args)

    def _own_options(self, ctx: click.Context) -> set[str]:
        return {option for param in self.get_params(ctx) for option in param.opts}


@click.group(
    cls=DefaultAddGroup,
    context_settings={"help_option_names": ["-h", "--help"]},
)
@click.version_option(version=__version__, prog_name="dedup-queue")
def dedup_queue() -> None:
    """Queue executable actions once and run them later, one pass at a time.

    `dedup-queue PATH` queues an executable file; piping a script into
    `dedup-queue` queues the script itself. An action that is already waiting
    in the queue is not queued again.
    """


@dedup_queue.command("add")
@click.argument("path", type=click.Path(path_type=Path), required=False)
@click.option("--root", type=click.Path(path_type=Path), default=None, help=_ROOT_OPTION_HELP)
def add(path: Path | None, root: Path | None) -> None:
    """Queue an executable file, or the script read from stdin."""

    script: bytes | None = None
    if path is None:
        stdin = click.get_binary_stream("stdin")
        if not stdin.isatty():
            script = stdin.read()

    _finish(lambda: QUEUE_CONTROLLER.add(AddCommand(root=root, path=path, script=script)))


@dedup_queue.command("process")
@click.option("--root", type=click.Path(path_type=Path), default=None, help=_ROOT_OPTION_HELP)
def process(root: Path | None) -> None:
    """Run every queued action once, in key order.

    Exits 0 when at least one action ran, 1 when the queue was empty and 3
    when another pass holds the lock.
    """

    _finish(lambda: QUEUE_CONTROLLER.process(ProcessCommand(root=root)))


@dedup_queue.command("show")
@click.option("--root", type=click.Path(path_type=Path), default=None, help=_ROOT_OPTION_HELP)
def show(root: Path | None) -> None:
    """List queued actions and the lock state."""

    _finish(lambda: QUEUE_CONTROLLER.show(ShowCommand(root=root)))


@dedup_queue.command("clear")
@click.option("--root", type=click.Path(path_type=Path), default=None, help=_ROOT_OPTION_HELP)
def clear(root: Path | None) -> None:
    """Remove every queued action without running it."""

    _finish(lambda: QUEUE_CONTROLLER.clear(ClearCommand(root=root)))


def _finish(run: Callable[[], CommandResult]) -> None:
    try:
        result = run()
    except ValueError as error:
        raise click.ClickException(str(error)) from error

    for line in result.lines:
        click.echo(line)
    for line in result.errors:
        click.echo(line, err=True)
    if result.exit_code:
        click.get_current_context().exit(int(result.exit_code))


if __name__ == "__main__":  # pragma: no cover
    dedup_queue()
