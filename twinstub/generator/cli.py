"""Command-line interface for twinstub code generation."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from twinstub.generator.builder import Builder, configure
from twinstub.generator.compiler import ProtoCompiler
from twinstub.generator.methods import STREAMING_KINDS
from twinstub.generator.types import FileDescriptorSet

# Environment variables that mark a run from inside a build.
BUILD_ENVIRONMENT = ("CARGO", "TWINSTUB_BUILD")

# Options taking one value per use, named like their builder setter.
_REPEATED = ("boxed", "compiler_arg", "disable_comments")

# Options taking (path, value) pairs, named like their builder setter.
_PAIRS = (
    "extern_path",
    "field_attribute",
    "type_attribute",
    "message_attribute",
    "enum_attribute",
    "server_mod_attribute",
    "server_attribute",
    "client_mod_attribute",
    "client_attribute",
)


def _pair_option(name: str, help_text: str) -> Any:
    return click.option(
        f"--{name.replace('_', '-')}",
        name,
        nargs=2,
        multiple=True,
        metavar="PATH VALUE",
        help=help_text,
    )


@click.group()
@click.option("--verbose", "-v", count=True, help="Log more (-vv for debug output)")
def cli(verbose: int) -> None:
    """twinstub: production and simulated RPC stub generator."""
    level = logging.WARNING if verbose == 0 else logging.INFO if verbose == 1 else logging.DEBUG
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


@cli.command("compile")
@click.argument("protos", nargs=-1, required=True)
@click.option("--include", "-I", "includes", multiple=True, help="Include directory (repeatable)")
@click.option("--out-dir", "-o", default=None, help="Output root, defaults to $OUT_DIR")
@click.option("--client/--no-client", default=True, help="Generate clients")
@click.option("--server/--no-server", default=True, help="Generate servers")
@click.option("--transport/--no-transport", default=True, help="Generate connect/serve helpers")
@click.option("--descriptor-set", default=None, help="Write the compiled descriptor set here")
@click.option("--skip-protoc-run", is_flag=True, help="Read --descriptor-set instead of compiling")
@_pair_option("extern_path", "Map a proto path to an existing Python type")
@_pair_option("field_attribute", "dataclasses.field() argument for matching fields")
@_pair_option("type_attribute", "Decorator for matching messages and enums")
@_pair_option("message_attribute", "Decorator for matching messages")
@_pair_option("enum_attribute", "Decorator for matching enums")
@_pair_option("server_mod_attribute", "Statement for the server section of matching packages")
@_pair_option("server_attribute", "Decorator for matching servers")
@_pair_option("client_mod_attribute", "Statement for the client section of matching packages")
@_pair_option("client_attribute", "Decorator for matching clients")
@click.option("--boxed", multiple=True, help="Field path held by reference")
@click.option("--ordered-map", multiple=True, help="Map field path kept sorted by key")
@click.option("--zero-copy-bytes", multiple=True, help="Bytes field path decoded to memoryview")
@click.option("--proto-path", default=None, help="Prefix of request/response types")
@click.option("--compiler-arg", multiple=True, help="Extra IDL compiler argument")
@click.option("--include-file", default=None, help="Module importing every generated module")
@click.option(
    "--rerun-if-changed/--no-rerun-if-changed",
    default=None,
    help="Print rerun-if-changed lines (default: on inside a build)",
)
@click.option("--disable-comments", multiple=True, help="Path whose comments are not emitted")
@click.option("--shared-self", is_flag=True, help="Look up the servicer on every call")
@click.option("--no-package", is_flag=True, help="Route rpcs without the package name")
@click.option("--compile-well-known-types", is_flag=True, help="Compile google.protobuf types from source")
@click.option("--default-stubs", is_flag=True, help="Servicer methods default to UNIMPLEMENTED")
def compile_(protos: tuple[str, ...], includes: tuple[str, ...], **options: Any) -> None:
    """Generate production and simulated stubs for PROTOS."""
    rerun = options.pop("rerun_if_changed")
    if rerun is None:
        rerun = any(name in os.environ for name in BUILD_ENVIRONMENT)

    builder = _apply_options(configure(emit_rerun_if_changed=rerun), options)
    if not includes:
        includes = tuple(sorted({str(Path(p).parent) for p in protos}))

    try:
        written = builder.compile_protos(list(protos), list(includes))
    except OSError as e:
        raise click.ClickException(str(e)) from e

    logging.getLogger(__name__).info("wrote %d module(s)", len(written))


def _apply_options(builder: Builder, options: dict[str, Any]) -> Builder:
    """Map command-line options onto builder setters."""
    builder = builder.build_client(options["client"])
    builder = builder.build_server(options["server"])
    builder = builder.build_transport(options["transport"])

    if options["out_dir"]:
        builder = builder.out_dir(options["out_dir"])
    if options["descriptor_set"]:
        builder = builder.file_descriptor_set_path(options["descriptor_set"])
    if options["skip_protoc_run"]:
        builder = builder.skip_protoc_run()
    for option in _PAIRS:
        for path, value in options[option]:
            builder = getattr(builder, option)(path, value)
    for option in _REPEATED:
        for value in options[option]:
            builder = getattr(builder, option)(value)
    if options["ordered_map"]:
        builder = builder.ordered_map(options["ordered_map"])
    if options["zero_copy_bytes"]:
        builder = builder.zero_copy_bytes(options["zero_copy_bytes"])
    if options["proto_path"]:
        builder = builder.proto_path(options["proto_path"])
    if options["include_file"]:
        builder = builder.include_file(options["include_file"])
    if options["shared_self"]:
        builder = builder.use_shared_self(True)
    if options["no_package"]:
        builder = builder.disable_package_emission()
    if options["compile_well_known_types"]:
        builder = builder.compile_well_known_types(True)
    if options["default_stubs"]:
        builder = builder.generate_default_stubs(True)
    return builder


@cli.command()
@click.argument("proto")
@click.option("--include", "-I", "includes", multiple=True, help="Include directory (repeatable)")
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
def info(proto: str, includes: tuple[str, ...], output_json: bool) -> None:
    """Display the services of a proto file."""
    try:
        compiler = ProtoCompiler([*includes, Path(proto).parent])
        descriptor_set = compiler.compile([proto])
    except OSError as e:
        raise click.ClickException(str(e)) from e

    if output_json:
        _output_json(descriptor_set)
    else:
        _output_plain(descriptor_set)


def _services(descriptor_set: FileDescriptorSet) -> dict[str, list[dict[str, Any]]]:
    services: dict[str, list[dict[str, Any]]] = {}
    for name in descriptor_set.file_to_generate:
        proto_file = descriptor_set.file(name)
        for service in proto_file.services:
            full_name = f"{proto_file.package}.{service.name}" if proto_file.package else service.name
            services[full_name] = [
                {
                    "name": method.name,
                    "request": method.input_type.lstrip("."),
                    "response": method.output_type.lstrip("."),
                    "kind": STREAMING_KINDS[(method.client_streaming, method.server_streaming)],
                }
                for method in service.methods
            ]
    return services


def _output_json(descriptor_set: FileDescriptorSet) -> None:
    """Output service info as JSON."""
    click.echo(json.dumps({"services": _services(descriptor_set)}, indent=2))


def _output_plain(descriptor_set: FileDescriptorSet) -> None:
    """Output service info using rich text formatting."""
    console = Console()

    for service, methods in _services(descriptor_set).items():
        console.print(f"[bold cyan]{service}[/bold cyan]")

        table = Table(show_header=True, box=None, padding=(0, 2, 0, 0))
        table.add_column("Method", style="white")
        table.add_column("Request", style="yellow")
        table.add_column("Response", style="yellow")
        table.add_column("Kind", style="dim")
        for method in methods:
            table.add_row(method["name"], method["request"], method["response"], method["kind"])

        console.print(table)
        console.print()


def main() -> None:
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()
