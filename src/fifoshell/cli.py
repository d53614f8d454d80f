"""CLI entry point for fifoshell."""

from __future__ import annotations

import logging

import typer
from pydantic import ValidationError

from fifoshell import __version__
from fifoshell.config import ShellConfig, parse_env
from fifoshell.errors import ShellError
from fifoshell.session import Shell

app = typer.Typer(
    name="fifoshell",
    help="Run commands one at a time in a persistent shell.",
    no_args_is_help=True,
)

# Exit code for session failures, as opposed to a command's own status.
SESSION_ERROR = 2


def setup_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def _load_config(
    config_file: str | None,
    shell: str | None,
    cwd: str | None,
    env: list[str] | None,
    timeout: float | None,
    no_stdout: bool,
    no_stderr: bool,
) -> ShellConfig:
    """Load config and apply command-line overrides on top of it."""
    try:
        config = ShellConfig.load(config_file)
    except (ValueError, ValidationError) as e:
        typer.echo(f"Error: invalid configuration: {e}", err=True)
        raise typer.Exit(SESSION_ERROR)
    if shell:
        config.shell = shell
    if cwd:
        config.cwd = cwd
    if env:
        try:
            config.env = parse_env(env)
        except ValueError as e:
            typer.echo(f"Error: {e}", err=True)
            raise typer.Exit(SESSION_ERROR)
    if timeout is not None:
        if timeout <= 0:
            typer.echo("Error: --timeout must be positive", err=True)
            raise typer.Exit(SESSION_ERROR)
        config.timeout = timeout
    if no_stdout:
        config.capture_stdout = False
    if no_stderr:
        config.capture_stderr = False
    return config


def _open_shell(config: ShellConfig) -> Shell:
    return Shell.from_config(
        config,
        stdout=typer.get_binary_stream("stdout"),
        stderr=typer.get_binary_stream("stderr"),
    )


@app.command()
def run(
    commands: list[str] = typer.Argument(help="Commands to run, in order."),
    shell: str | None = typer.Option(
        None, "--shell", "-s", help="Shell executable (default: from env/config)."
    ),
    cwd: str | None = typer.Option(
        None, "--cwd", "-C", help="Initial working directory."
    ),
    env: list[str] | None = typer.Option(
        None,
        "--env",
        "-e",
        help="KEY=VALUE environment entry; repeat for more. Replaces the inherited environment.",
    ),
    timeout: float | None = typer.Option(
        None, "--timeout", "-t", help="Kill the shell if a command runs longer (seconds)."
    ),
    no_stdout: bool = typer.Option(False, "--no-stdout", help="Discard command stdout."),
    no_stderr: bool = typer.Option(False, "--no-stderr", help="Discard command stderr."),
    keep_going: bool = typer.Option(
        False, "--keep-going", "-k", help="Continue after a command fails."
    ),
    config_file: str | None = typer.Option(
        None, "--config", "-c", help="Config file path."
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable debug logging."
    ),
) -> None:
    """Run COMMANDS in one shell session and exit with the last status."""
    setup_logging(verbose)
    config = _load_config(config_file, shell, cwd, env, timeout, no_stdout, no_stderr)

    status = 0
    try:
        with _open_shell(config) as sh:
            for command in commands:
                status = sh.exec(command)
                if status != 0 and not keep_going:
                    typer.echo(f"[exit {status}] {command}", err=True)
                    break
    except ShellError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(SESSION_ERROR)

    raise typer.Exit(status)


@app.command()
def repl(
    shell: str | None = typer.Option(
        None, "--shell", "-s", help="Shell executable (default: from env/config)."
    ),
    cwd: str | None = typer.Option(
        None, "--cwd", "-C", help="Initial working directory."
    ),
    env: list[str] | None = typer.Option(
        None,
        "--env",
        "-e",
        help="KEY=VALUE environment entry; repeat for more. Replaces the inherited environment.",
    ),
    timeout: float | None = typer.Option(
        None, "--timeout", "-t", help="Kill the shell if a command runs longer (seconds)."
    ),
    no_stdout: bool = typer.Option(False, "--no-stdout", help="Discard command stdout."),
    no_stderr: bool = typer.Option(False, "--no-stderr", help="Discard command stderr."),
    config_file: str | None = typer.Option(
        None, "--config", "-c", help="Config file path."
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable debug logging."
    ),
) -> None:
    """Read command lines from stdin and run each in one shell session."""
    setup_logging(verbose)
    config = _load_config(config_file, shell, cwd, env, timeout, no_stdout, no_stderr)

    status = 0
    stdin = typer.get_text_stream("stdin")
    try:
        with _open_shell(config) as sh:
            for line in iter(stdin.readline, ""):
                command = line.strip()
                if not command:
                    continue
                status = sh.exec(command)
                if status != 0:
                    typer.echo(f"[exit {status}]", err=True)
    except ShellError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(SESSION_ERROR)

    raise typer.Exit(status)


@app.command()
def version() -> None:
    """Show the fifoshell version."""
    typer.echo(f"fifoshell {__version__}")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
