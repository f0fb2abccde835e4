"""The generation pipeline shared by the simulated and production passes."""

import logging
from collections.abc import Callable, Sequence
from pathlib import Path

from .codegen import ModuleRenderer
from .compiler import ProtoCompiler
from .config import GenerationConfig
from .errors import BuildError, MissingOutputDirError
from .naming import TypeNamer, service_description
from .service import ServiceGenerator
from .types import FileDescriptorSet, ProtoFile
from .util import module_name

logger = logging.getLogger(__name__)

ServiceGeneratorFactory = Callable[[GenerationConfig], ServiceGenerator]


def write_if_changed(path: Path, text: str) -> bool:
    """Write `text` to `path` unless the file already holds exactly that text."""
    if path.is_file() and path.read_text(encoding="utf-8") == text:
        logger.debug("unchanged %s", path)
        return False
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    logger.debug("wrote %s", path)
    return True


def load_descriptor_set(
    config: GenerationConfig, protos: Sequence[str | Path], includes: Sequence[str | Path]
) -> FileDescriptorSet:
    """Compile the protos, or read a previously written descriptor set.

    The compiled set is written to `config.file_descriptor_set_path` when
    one is configured.
    """
    path = config.file_descriptor_set_path
    if config.skip_protoc_run:
        if path is None:
            raise BuildError("skip_protoc_run requires file_descriptor_set_path")
        logger.debug("loading descriptor set from %s", path)
        text = path.read_text(encoding="utf-8")
        try:
            return FileDescriptorSet.from_json(text)
        except (ValueError, KeyError, TypeError) as e:
            raise BuildError(f"{path} is not a valid descriptor set: {e}") from e

    compiler = ProtoCompiler(includes, config.compiler_args, config.compile_well_known_types)
    descriptor_set = compiler.compile(protos)
    if path is not None:
        write_if_changed(path, descriptor_set.to_json(indent=2) + "\n")
    return descriptor_set


def _by_package(descriptor_set: FileDescriptorSet) -> dict[str, list[ProtoFile]]:
    packages: dict[str, list[ProtoFile]] = {}
    for name in descriptor_set.file_to_generate:
        proto_file = descriptor_set.file(name)
        packages.setdefault(proto_file.package, []).append(proto_file)
    return packages


def generate(
    config: GenerationConfig,
    descriptor_set: FileDescriptorSet,
    service_generator: ServiceGeneratorFactory = ServiceGenerator,
) -> list[Path]:
    """Write one module per proto package into `config.out_dir`.

    Returns:
        The paths of all generated modules, in package order.
    """
    if config.out_dir is None:
        raise MissingOutputDirError("no output directory configured")

    namer = TypeNamer(descriptor_set, config.extern_paths, config.compile_well_known_types)
    packages = _by_package(descriptor_set)
    written: list[Path] = []

    for package in sorted(packages):
        files = packages[package]
        generator = service_generator(config)
        for proto_file in files:
            for service in proto_file.services:
                generator.generate(service_description(service, package, namer))
        section = generator.finalize()

        text = ModuleRenderer(package, config, descriptor_set, namer).render(files, [section] if section else [])
        path = config.out_dir / f"{module_name(package)}.py"
        write_if_changed(path, text)
        written.append(path)

    if config.include_file is not None:
        lines = ["# Generated by twinstub. Do not edit."]
        lines.extend(f"from . import {module_name(package)}" for package in sorted(packages))
        write_if_changed(config.out_dir / config.include_file, "\n".join(lines) + "\n")

    logger.info("generated %d module(s) in %s", len(written), config.out_dir)
    return written


def compile_protos(
    config: GenerationConfig,
    protos: Sequence[str | Path],
    includes: Sequence[str | Path],
    service_generator: ServiceGeneratorFactory = ServiceGenerator,
) -> list[Path]:
    """Compile the protos and generate code for them in one go."""
    return generate(config, load_descriptor_set(config, protos, includes), service_generator)
