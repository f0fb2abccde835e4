"""Builder that generates production and simulated stubs from one configuration.

Example, from a build script:

    from twinstub.generator import configure

    configure().build_server(False).compile_protos(["protos/greeter.proto"], ["protos"])

writes gRPC clients to ``$OUT_DIR`` and the same clients, wired to the
simulated transport, to ``$OUT_DIR/sim``.
"""

import logging
import os
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field, replace
from pathlib import Path

import click

from . import pipeline
from .config import GenerationConfig, Transport, config_drift, derive_config
from .errors import ConfigurationDriftError, MissingOutputDirError
from .production import ProductionBuilder
from .service import ServiceGenerator

logger = logging.getLogger(__name__)

SIM_DIR = "sim"


@dataclass(frozen=True)
class Builder:
    """Immutable generation settings.

    Every setter returns a new builder. Settings that shape the generated
    services are also forwarded to the wrapped production builder, so both
    passes see the same values.
    """

    config: GenerationConfig = field(default_factory=GenerationConfig)
    production: ProductionBuilder = field(default_factory=ProductionBuilder)
    environ: Mapping[str, str] = field(default_factory=dict)
    rerun_if_changed: bool = False

    def _set(self, **changes) -> "Builder":
        return replace(self, config=replace(self.config, **changes))

    def _forward(self, **changes) -> "Builder":
        return replace(
            self,
            config=replace(self.config, **changes),
            production=self.production.with_settings(**changes),
        )

    def build_client(self, enable: bool) -> "Builder":
        """Enable or disable client generation."""
        return self._forward(build_client=enable)

    def build_server(self, enable: bool) -> "Builder":
        """Enable or disable server generation."""
        return self._forward(build_server=enable)

    def build_transport(self, enable: bool) -> "Builder":
        """Enable or disable the `connect`/`serve` convenience methods."""
        return self._forward(build_transport=enable)

    def file_descriptor_set_path(self, path: str | Path) -> "Builder":
        return self._set(file_descriptor_set_path=Path(path))

    def skip_protoc_run(self) -> "Builder":
        """Read the descriptor set from `file_descriptor_set_path` instead of compiling."""
        return self._set(skip_protoc_run=True)

    def out_dir(self, path: str | Path) -> "Builder":
        builder = self._set(out_dir=Path(path))
        return replace(builder, production=builder.production.out_dir(path))

    def extern_path(self, proto_path: str, target: str) -> "Builder":
        """Map a fully-qualified proto path (".pkg.Msg" or ".pkg") to existing Python code.

        A type maps to "module:Qualname" ("geo.types:Point"). A package or
        message scope may also map to a bare module ("geo.types"), and the
        types below it become "geo.types:Rest.Of.Name".
        """
        return self._set(extern_paths=self.config.extern_paths + ((proto_path, target),))

    def field_attribute(self, path: str, attribute: str) -> "Builder":
        return self._set(field_attributes=self.config.field_attributes + ((path, attribute),))

    def type_attribute(self, path: str, attribute: str) -> "Builder":
        return self._set(type_attributes=self.config.type_attributes + ((path, attribute),))

    def message_attribute(self, path: str, attribute: str) -> "Builder":
        return self._set(message_attributes=self.config.message_attributes + ((path, attribute),))

    def enum_attribute(self, path: str, attribute: str) -> "Builder":
        return self._set(enum_attributes=self.config.enum_attributes + ((path, attribute),))

    def boxed(self, path: str) -> "Builder":
        return self._set(boxed=self.config.boxed + (path,))

    def ordered_map(self, paths: Iterable[str]) -> "Builder":
        """Keep the entries of matching map fields sorted. Replaces earlier paths."""
        return self._set(ordered_map=tuple(paths))

    def zero_copy_bytes(self, paths: Iterable[str]) -> "Builder":
        """Decode matching bytes fields to memoryviews. Replaces earlier paths."""
        return self._set(zero_copy_bytes=tuple(paths))

    def server_mod_attribute(self, path: str, attribute: str) -> "Builder":
        return self._forward(server_attributes=self.config.server_attributes.push_mod(path, attribute))

    def server_attribute(self, path: str, attribute: str) -> "Builder":
        return self._forward(server_attributes=self.config.server_attributes.push_struct(path, attribute))

    def client_mod_attribute(self, path: str, attribute: str) -> "Builder":
        return self._forward(client_attributes=self.config.client_attributes.push_mod(path, attribute))

    def client_attribute(self, path: str, attribute: str) -> "Builder":
        return self._forward(client_attributes=self.config.client_attributes.push_struct(path, attribute))

    def proto_path(self, prefix: str) -> "Builder":
        """Prefix for request and response types of the generated package."""
        return self._forward(proto_path=prefix)

    def compiler_arg(self, arg: str) -> "Builder":
        return self._set(compiler_args=self.config.compiler_args + (arg,))

    def include_file(self, path: str | Path) -> "Builder":
        """Also write a module importing every generated module."""
        return self._set(include_file=Path(path))

    def emit_rerun_if_changed(self, enable: bool) -> "Builder":
        return replace(self, rerun_if_changed=enable)

    def disable_comments(self, path: str) -> "Builder":
        return self._forward(disable_comments=self.config.disable_comments | {path})

    def use_shared_self(self, enable: bool) -> "Builder":
        """Look up the servicer on every call instead of binding it once."""
        return self._forward(use_shared_self=enable)

    def disable_package_emission(self) -> "Builder":
        """Route rpcs by "/Service/Method" instead of "/package.Service/Method"."""
        return self._forward(emit_package=False)

    def compile_well_known_types(self, enable: bool) -> "Builder":
        return self._forward(compile_well_known_types=enable)

    def generate_default_stubs(self, enable: bool) -> "Builder":
        """Make servicer methods default to UNIMPLEMENTED instead of abstract."""
        return self._forward(generate_default_stubs=enable)

    def output_root(self) -> Path:
        """The production output directory: the `out_dir` override, else $OUT_DIR."""
        if self.config.out_dir is not None:
            return self.config.out_dir
        if "OUT_DIR" in self.environ:
            return Path(self.environ["OUT_DIR"])
        raise MissingOutputDirError("OUT_DIR is not set and no out_dir was configured")

    def pass_configs(self, root: Path) -> tuple[GenerationConfig, GenerationConfig]:
        """Derive the simulated and production pass configs."""
        sim = derive_config(self.config, root / SIM_DIR, Transport.SIM)
        production = self.production.apply(derive_config(self.config, root, Transport.GRPC))
        return sim, production

    def service_generator(self) -> ServiceGenerator:
        """The service generator of the simulated pass."""
        return ServiceGenerator(replace(self.config, transport=Transport.SIM))

    def compile_protos(self, protos: Sequence[str | Path], includes: Sequence[str | Path]) -> list[Path]:
        """Generate the simulated tree, then the production tree.

        Returns:
            Paths of the generated modules, simulated first.

        Raises:
            MissingOutputDirError: If no output directory is known.
            ConfigurationDriftError: If the two passes would not share their settings.
            ProtoCompileError: If the protos do not compile.
            EmissionError: If generated code is not valid Python.
        """
        root = self.output_root()
        sim_config, production_config = self.pass_configs(root)
        drift = config_drift(sim_config, production_config)
        if drift:
            raise ConfigurationDriftError(f"passes disagree on {', '.join(drift)}")

        (root / SIM_DIR).mkdir(parents=True, exist_ok=True)

        if self.rerun_if_changed:
            for path in [*protos, *includes]:
                click.echo(f"rerun-if-changed={path}")

        descriptor_set = pipeline.load_descriptor_set(sim_config, protos, includes)
        logger.info("simulated pass into %s", sim_config.out_dir)
        written = pipeline.generate(sim_config, descriptor_set, ServiceGenerator)
        logger.info("production pass into %s", production_config.out_dir)
        written += self.production.generate_with_config(production_config, descriptor_set)
        return written


def configure(*, environ: Mapping[str, str] | None = None, emit_rerun_if_changed: bool = False) -> Builder:
    """Create a builder.

    Args:
        environ: Environment to read OUT_DIR from. Defaults to a snapshot of os.environ.
        emit_rerun_if_changed: Print a "rerun-if-changed=<path>" line per input.
    """
    return Builder(
        environ=dict(os.environ if environ is None else environ),
        rerun_if_changed=emit_rerun_if_changed,
    )


def compile_protos(proto: str | Path) -> list[Path]:
    """Compile one proto file, using its directory as the include path."""
    proto = Path(proto)
    return configure().compile_protos([proto], [proto.parent])
