"""
compose-image-cache CLI

Implements 4 CLI verbs with Operations facade integration:
- run: Restore images from the cache, pull and cache the rest
- images: List the images a run would process
- key: Print cache keys for the images
- platform: Show the host platform used in cache keys
"""
from __future__ import annotations

import logging
from typing import List, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler

from .cli_context import CLIContext
from .operations import Operations, OpsConfig, run_and_exit
from .operations.printers import (
    print_keys, print_platform, print_run_json, print_run_summary, print_targets
)
from .runner import RunRequest

app = typer.Typer(name="compose-image-cache", help="Cache container images referenced by compose files")

_state = {"verbose": False}

_COMPOSE_FILE_HELP = "Compose file to read (repeatable; default: compose.yaml, compose.yml, docker-compose.yaml, docker-compose.yml)"
_EXCLUDE_HELP = "Image name to skip (repeatable, exact match)"


def configure_logging(*, verbose: bool = False, force: bool = False) -> None:
    """
    Initialise the root logger with a Rich handler on stderr.

    INFO by default, DEBUG with --verbose. Pass ``force=True`` to reconfigure
    during tests.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="%H:%M:%S",
        handlers=[RichHandler(console=Console(stderr=True), show_path=verbose, rich_tracebacks=True)],
        force=force,
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("azure").setLevel(logging.WARNING)


@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logs and detailed output"),
) -> None:
    """Cache container images referenced by compose files."""
    _state["verbose"] = verbose
    configure_logging(verbose=verbose)


def _request(compose_file: Optional[List[str]], exclude: Optional[List[str]]) -> RunRequest:
    return RunRequest(compose_files=tuple(compose_file or ()), exclude=tuple(exclude or ()))


@app.command()
def run(
    compose_file: Optional[List[str]] = typer.Option(None, "--compose-file", "-f", help=_COMPOSE_FILE_HELP),
    exclude: Optional[List[str]] = typer.Option(None, "--exclude", "-x", help=_EXCLUDE_HELP),
    cache_key_prefix: Optional[str] = typer.Option(None, "--cache-key-prefix", help="Cache key prefix (env: COMPOSE_CACHE_KEY_PREFIX, default: docker-compose-image)"),
    skip_latest_check: bool = typer.Option(False, "--skip-latest-check", help="Trust restored images without re-checking their digest (env: COMPOSE_CACHE_SKIP_LATEST_CHECK)"),
    strict: bool = typer.Option(False, "--strict", help="Exit with code 5 when any image failed"),
    json_output: bool = typer.Option(False, "--json", help="Print the result as JSON"),
    no_github_outputs: bool = typer.Option(False, "--no-github-outputs", help="Do not write GITHUB_OUTPUT / GITHUB_STEP_SUMMARY"),
) -> None:
    """Restore images from the cache, pull and cache the rest."""

    def _run() -> None:
        context = CLIContext.from_env(
            cache_key_prefix=cache_key_prefix,
            skip_latest_check=skip_latest_check,
        )
        config = OpsConfig(
            strict=strict,
            github_outputs=not no_github_outputs,
            verbose=_state["verbose"],
        )
        ops = Operations(config=config, settings=context.settings, collaborators=context.collaborators)

        report = ops.run(_request(compose_file, exclude))
        if json_output:
            print_run_json(report)
        else:
            print_run_summary(report, verbose=_state["verbose"])
        ops.enforce(report)

    run_and_exit(_run)


@app.command()
def images(
    compose_file: Optional[List[str]] = typer.Option(None, "--compose-file", "-f", help=_COMPOSE_FILE_HELP),
    exclude: Optional[List[str]] = typer.Option(None, "--exclude", "-x", help=_EXCLUDE_HELP),
) -> None:
    """List the images a run would process."""

    def _images() -> None:
        context = CLIContext.from_env()
        ops = Operations(config=OpsConfig(), settings=context.settings)
        print_targets(ops.images(_request(compose_file, exclude)))

    run_and_exit(_images)


@app.command()
def key(
    compose_file: Optional[List[str]] = typer.Option(None, "--compose-file", "-f", help=_COMPOSE_FILE_HELP),
    exclude: Optional[List[str]] = typer.Option(None, "--exclude", "-x", help=_EXCLUDE_HELP),
    image: Optional[List[str]] = typer.Option(None, "--image", "-i", help="Only these images (repeatable)"),
    digest: Optional[str] = typer.Option(None, "--digest", help="Use this digest instead of asking the registry"),
    cache_key_prefix: Optional[str] = typer.Option(None, "--cache-key-prefix", help="Cache key prefix"),
) -> None:
    """Print cache keys for the images."""

    def _key() -> None:
        context = CLIContext.from_env(cache_key_prefix=cache_key_prefix)
        if digest:
            ops = Operations(config=OpsConfig(), settings=context.settings)
        else:
            ops = Operations(config=OpsConfig(), settings=context.settings,
                             collaborators=context.collaborators)
        infos = ops.keys(_request(compose_file, exclude), digest=digest, only=tuple(image or ()))
        print_keys(infos, verbose=_state["verbose"])

    run_and_exit(_key)


@app.command()
def platform() -> None:
    """Show the host platform used in cache keys."""

    def _platform() -> None:
        context = CLIContext.from_env()
        ops = Operations(config=OpsConfig(), settings=context.settings)
        host, host_os = ops.platform()
        print_platform(host, host_os)

    run_and_exit(_platform)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
