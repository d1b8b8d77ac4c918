"""CLI entrypoint for continuous-claude."""

import logging
from pathlib import Path

import rich_click as click

from continuous_claude import __version__
from continuous_claude.loop.controllers import (
    CheckDependenciesCommand,
    LoopCliController,
    RunLoopCommand,
)
from continuous_claude.loop.git_workflow import MERGE_STRATEGIES

click.rich_click.USE_MARKDOWN = True
LOOP_CONTROLLER = LoopCliController()


@click.group()
@click.version_option(version=__version__, prog_name="continuous-claude")
@click.option("--verbose", "-v", is_flag=True, default=False, help="Enable debug logging.")
def continuous_claude(verbose: bool) -> None:
    """Run an AI coding agent in a loop, one branch and pull request per iteration."""

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@continuous_claude.command("run")
@click.option("--prompt", "-p", required=True, help="Task prompt given to the agent.")
@click.option(
    "--max-runs",
    "-m",
    type=click.IntRange(min=0),
    default=None,
    help="Maximum successful iterations; 0 means unlimited.",
)
@click.option(
    "--max-cost",
    type=click.FloatRange(min=0),
    default=None,
    help="Stop once the accumulated agent cost in USD reaches this value.",
)
@click.option(
    "--max-duration",
    default=None,
    help="Stop starting new iterations after this long, e.g. `90m` or `2h30m`.",
)
@click.option(
    "--completion-signal",
    default=None,
    help="Phrase the agent prints when the whole project is done.",
)
@click.option(
    "--completion-threshold",
    type=click.IntRange(min=1),
    default=None,
    help="Consecutive iterations that must report the completion signal (default: 3).",
)
@click.option(
    "--max-consecutive-failures",
    type=click.IntRange(min=1),
    default=None,
    help="Abort after this many failed iterations in a row (default: 3).",
)
@click.option(
    "--agent-command",
    default=None,
    help="Agent command template; must include `{prompt}`.",
)
@click.option(
    "--notes-file",
    type=click.Path(path_type=Path),
    default=None,
    help="Notes file shared between iterations (default: SHARED_TASK_NOTES.md).",
)
@click.option(
    "--error-log-dir",
    type=click.Path(path_type=Path),
    default=None,
    help="Directory for the per-iteration agent error log (default: a temp dir).",
)
@click.option(
    "--working-dir",
    type=click.Path(path_type=Path, file_okay=False, exists=True),
    default=None,
    help="Repository to run in (default: current directory).",
)
@click.option("--dry-run", is_flag=True, default=False, help="Simulate without side effects.")
@click.option(
    "--disable-commits",
    is_flag=True,
    default=False,
    help="Do not create branches, commits or pull requests.",
)
@click.option("--git-branch-prefix", default=None, help="Prefix for iteration branches.")
@click.option("--base-branch", default=None, help="Branch pull requests target.")
@click.option("--owner", default=None, help="GitHub repository owner.")
@click.option("--repo", default=None, help="GitHub repository name.")
@click.option(
    "--merge-strategy",
    type=click.Choice(MERGE_STRATEGIES, case_sensitive=False),
    default=None,
    help="How pull requests are merged (default: squash).",
)
@click.option(
    "--no-pull-request",
    is_flag=True,
    default=False,
    help="Push iteration branches without opening pull requests.",
)
@click.option(
    "--no-merge",
    is_flag=True,
    default=False,
    help="Open pull requests but leave them unmerged.",
)
def run(  # noqa: PLR0913
    prompt: str,
    max_runs: int | None,
    max_cost: float | None,
    max_duration: str | None,
    completion_signal: str | None,
    completion_threshold: int | None,
    max_consecutive_failures: int | None,
    agent_command: str | None,
    notes_file: Path | None,
    error_log_dir: Path | None,
    working_dir: Path | None,
    dry_run: bool,
    disable_commits: bool,
    git_branch_prefix: str | None,
    base_branch: str | None,
    owner: str | None,
    repo: str | None,
    merge_strategy: str | None,
    no_pull_request: bool,
    no_merge: bool,
) -> None:
    """Run agent iterations until a budget is spent or the project is complete."""

    try:
        summary = LOOP_CONTROLLER.run(
            RunLoopCommand(
                prompt=prompt,
                max_runs=max_runs,
                max_cost=max_cost,
                max_duration=max_duration,
                completion_signal=completion_signal,
                completion_threshold=completion_threshold,
                max_consecutive_failures=max_consecutive_failures,
                agent_command=agent_command,
                notes_file=notes_file,
                error_log_dir=error_log_dir,
                working_dir=working_dir,
                dry_run=dry_run,
                disable_commits=disable_commits,
                branch_prefix=git_branch_prefix,
                base_branch=base_branch,
                owner=owner,
                repo=repo,
                merge_strategy=merge_strategy.lower() if merge_strategy else None,
                no_pull_request=no_pull_request,
                no_merge=no_merge,
            ),
            emit=click.echo,
        )
    except ValueError as error:
        raise click.ClickException(str(error)) from error

    if not summary.success:
        raise click.ClickException("Loop stopped after repeated agent failures.")


@continuous_claude.command("check")
@click.option("--agent-command", default=None, help="Agent command template to check.")
@click.option(
    "--disable-commits",
    is_flag=True,
    default=False,
    help="Skip the git and gh checks.",
)
def check(agent_command: str | None, disable_commits: bool) -> None:
    """Check that the agent, git and gh executables are on PATH."""

    try:
        result = LOOP_CONTROLLER.check(
            CheckDependenciesCommand(
                agent_command=agent_command,
                disable_commits=disable_commits,
            ),
        )
    except ValueError as error:
        raise click.ClickException(str(error)) from error
    _emit_lines(result.lines)
    if not result.success:
        raise click.ClickException("Required commands are missing.")


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    continuous_claude()
