"""Unified CLI for az-toolkit.

Provides three subcommands:
    az-toolkit add      - create a new Java function from a template
    az-toolkit package  - stage a Java Functions project for deployment
    az-toolkit show     - look up an Azure resource by its ID
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from functools import wraps
from pathlib import Path
from typing import Any

import click

from az_toolkit import __version__
from az_toolkit.exceptions import AzureToolkitError

_LEVEL_COLOURS = {
    logging.DEBUG: "cyan",
    logging.INFO: "green",
    logging.WARNING: "yellow",
    logging.ERROR: "red",
    logging.CRITICAL: "bright_red",
}


class _LevelPrefixFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        prefix = click.style(f"{record.levelname}:", fg=_LEVEL_COLOURS.get(record.levelno))
        return f"{prefix:<18} {record.getMessage()}"


def _setup_logging(level: int = logging.INFO) -> None:
    """Configure the ``az_toolkit`` logger with coloured level prefixes."""
    handler = logging.StreamHandler()
    handler.setFormatter(_LevelPrefixFormatter())
    app_logger = logging.getLogger("az_toolkit")
    app_logger.handlers = [handler]
    app_logger.setLevel(level)
    app_logger.propagate = False

    # Silence noisy third-party loggers
    logging.getLogger("azure").setLevel(logging.WARNING)


def _handle_errors(fn: Callable[..., Any]) -> Callable[..., Any]:
    @wraps(fn)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return fn(*args, **kwargs)
        except AzureToolkitError as exc:
            raise click.ClickException(str(exc)) from exc

    return wrapper


def _parse_params(values: tuple[str, ...]) -> dict[str, str]:
    params: dict[str, str] = {}
    for item in values:
        key, sep, value = item.partition("=")
        if not sep or not key:
            raise click.BadParameter(f"expected KEY=VALUE, got {item!r}", param_hint="--param")
        params[key.strip()] = value
    return params


@click.group()
@click.version_option(version=__version__, prog_name="az-toolkit")
@click.option("--verbose", "-v", is_flag=True, default=False, help="Enable verbose logging.")
def cli(verbose: bool) -> None:
    """Azure toolkit."""
    _setup_logging(level=logging.DEBUG if verbose else logging.INFO)


@cli.command()
@click.option(
    "--project-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=".",
    show_default=True,
    help="Project base directory.",
)
@click.option(
    "--source-root",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Java source root (default: <project-dir>/src/main/java).",
)
@click.option("--name", "function_name", default=None, help="Name of the new function.")
@click.option("--package", "package_name", default=None, help="Package name of the new function.")
@click.option("--template", default=None, help="Template for the new function.")
@click.option("--batch", is_flag=True, default=False, help="Never prompt; fail on invalid required input.")
@click.option(
    "--param",
    "params",
    multiple=True,
    metavar="KEY=VALUE",
    help="Value for a trigger specific parameter (repeatable).",
)
@_handle_errors
def add(
    project_dir: Path,
    source_root: Path | None,
    function_name: str | None,
    package_name: str | None,
    template: str | None,
    batch: bool,
    params: tuple[str, ...],
) -> None:
    """Create a new Java function from a template."""
    from az_toolkit.functions.add import AddOptions, add_function

    add_function(
        AddOptions(
            basedir=project_dir,
            source_root=source_root,
            function_name=function_name,
            package_name=package_name,
            template=template,
            batch_mode=batch,
            properties=_parse_params(params),
        )
    )


@cli.command()
@click.option(
    "--project-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=".",
    show_default=True,
    help="Project base directory.",
)
@click.option("--app-name", required=True, help="Function App name.")
@click.option("--final-name", required=True, help="Artifact name, without the .jar extension.")
@click.option(
    "--build-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Build output directory (default: <project-dir>/target).",
)
@click.option(
    "--staging-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Staging directory (default: <build-dir>/azure-functions/<app-name>).",
)
@click.option(
    "--source-root",
    "source_roots",
    multiple=True,
    type=click.Path(file_okay=False, path_type=Path),
    help="Java source root to scan (repeatable).",
)
@click.option(
    "--dependency",
    "dependencies",
    multiple=True,
    type=click.Path(dir_okay=False, exists=True, path_type=Path),
    help="Runtime dependency jar (repeatable).",
)
@click.option(
    "--dependency-dir",
    "dependency_dirs",
    multiple=True,
    type=click.Path(file_okay=False, exists=True, path_type=Path),
    help="Directory of runtime dependency jars (repeatable).",
)
@click.option(
    "--skip-install-extensions",
    is_flag=True,
    default=False,
    help="Do not install binding extensions.",
)
@_handle_errors
def package(
    project_dir: Path,
    app_name: str,
    final_name: str,
    build_dir: Path | None,
    staging_dir: Path | None,
    source_roots: tuple[Path, ...],
    dependencies: tuple[Path, ...],
    dependency_dirs: tuple[Path, ...],
    skip_install_extensions: bool,
) -> None:
    """Stage a Java Functions project for deployment."""
    from az_toolkit.functions.package import PackageOptions, collect_jars, package_functions

    staging = package_functions(
        PackageOptions(
            basedir=project_dir,
            app_name=app_name,
            final_name=final_name,
            build_dir=build_dir,
            staging_dir=staging_dir,
            source_roots=list(source_roots),
            dependencies=collect_jars(list(dependencies), list(dependency_dirs)),
            skip_install_extensions=skip_install_extensions,
        )
    )
    if staging is not None:
        click.echo(f"Staged at {click.style(str(staging), fg='cyan', bold=True)}")


@cli.command()
@click.argument("resource_id")
@_handle_errors
def show(resource_id: str) -> None:
    """Look up an Azure resource by ID and print its state."""
    from az_toolkit.azure_api.resource_id import ResourceId
    from az_toolkit.toolkit import AzureToolkit

    try:
        rid = ResourceId.from_string(resource_id)
    except ValueError as exc:
        raise click.BadParameter(str(exc), param_hint="RESOURCE_ID") from exc
    toolkit = AzureToolkit()
    try:
        toolkit.account.login()
        toolkit.account.set_selected_subscriptions([rid.subscription_id])
        resource = toolkit.get_by_id(resource_id)
        if resource is None:
            raise click.ClickException(f"No resource type handles {resource_id}")
        exists = resource.exists()
        click.echo(f"{click.style(resource.kind.type_name, bold=True)} {resource.name}")
        click.echo(f"  status: {resource.status}")
        if not exists:
            return
        for name, reader in resource.kind.fields.items():
            if callable(reader) or name in resource.kind.write_only_fields:
                continue
            click.echo(f"  {name}: {resource.field(name)}")
    finally:
        toolkit.close()
