"""Click entry point — all commands."""

import sys

import click
import yaml

from flow_exec import __version__, config, log, process, textutil
from flow_exec.errors import LaunchError, PipeError
from flow_exec.wait import ExitState

EXIT_TIMEOUT = 124
EXIT_LAUNCH_FAILED = 127


def _load(config_path: str | None) -> config.ExecConfig:
    try:
        return config.load_config(config_path)
    except RuntimeError as e:
        log.error(str(e))
        sys.exit(1)


def _exit_code(status) -> int:
    if status.timed_out:
        return EXIT_TIMEOUT
    if status.state is ExitState.SIGNALED:
        return 128 + status.signal
    return status.code


def _echo(result: process.Result, lines: bool) -> None:
    if lines:
        for line in textutil.lines(result.stdout):
            for token in textutil.tokens(line):
                click.echo(token)
    else:
        click.echo(result.stdout, nl=False)
    click.echo(result.stderr, nl=False, err=True)


@click.group()
@click.version_option(version=__version__, prog_name="flow-exec")
def main():
    """Run commands with captured output, deadlines and kill-on-timeout."""


@main.command(name="run", context_settings={"ignore_unknown_options": True})
@click.option("--timeout", type=float, default=None, help="Seconds before the command times out (0 = never)")
@click.option("--kill/--no-kill", default=None, help="Kill the command when it times out")
@click.option("--raise/--no-raise", "raise_", default=None, help="Discard partial output on timeout")
@click.option("--input", "input_text", default=None, help="Text to send to the command's stdin")
@click.option("--input-file", type=click.File("rb"), default=None, help="File to send to the command's stdin")
@click.option("--lines", is_flag=True, help="Print stdout one whitespace-separated token per line")
@click.option("--no-stdin", is_flag=True, help="Let the command inherit stdin instead of a pipe")
@click.option("--config", "config_path", default=None, help="Path to a YAML config file")
@click.argument("command", nargs=-1, type=click.UNPROCESSED)
def run_cmd(timeout, kill, raise_, input_text, input_file, lines, no_stdin, config_path, command):
    """Run COMMAND and echo its captured output."""
    if not command:
        click.echo("Error: No command specified", err=True)
        sys.exit(1)
    if input_text is not None and input_file is not None:
        click.echo("Error: --input and --input-file are mutually exclusive", err=True)
        sys.exit(1)

    cfg = _load(config_path)
    if timeout is not None:
        cfg.timeout = timeout or None
    if kill is not None:
        cfg.kill_on_timeout = kill
    if raise_ is not None:
        cfg.raise_on_timeout = raise_

    problems = config.validate_config(cfg)
    if problems:
        for problem in problems:
            log.error(problem)
        sys.exit(1)

    data = input_file.read() if input_file is not None else input_text

    try:
        proc = process.Subprocess(
            list(command),
            stdin=not no_stdin,
            env=cfg.env or None,
            encoding=cfg.encoding,
            reader=cfg.reader,
            kill_grace=cfg.kill_grace,
            poll_interval=cfg.poll_interval,
        )
    except LaunchError as e:
        log.error(str(e))
        sys.exit(EXIT_LAUNCH_FAILED)

    with proc:
        try:
            result = proc.communicate(
                data,
                timeout=cfg.timeout,
                kill_on_timeout=cfg.kill_on_timeout,
                raise_on_timeout=False,
            )
        except PipeError as e:
            log.error(str(e))
            _echo(process.Result(proc.returncode, proc.stdout, proc.stderr), lines)
            sys.exit(1)

    if result.status.timed_out:
        log.failure(f"{proc.command_string} timed out after {cfg.timeout:g}s ({result.status})")
        if cfg.raise_on_timeout:
            sys.exit(EXIT_TIMEOUT)

    _echo(result, lines)
    sys.exit(_exit_code(result.status))


@main.command(name="config")
@click.option("--config", "config_path", default=None, help="Path to a YAML config file")
def show_config(config_path):
    """Print the effective configuration as YAML."""
    cfg = _load(config_path)
    click.echo(yaml.safe_dump({"x-exec": cfg.to_dict()}, sort_keys=False), nl=False)

    problems = config.validate_config(cfg)
    for problem in problems:
        log.error(problem)
    sys.exit(1 if problems else 0)


if __name__ == "__main__":
    main()
