"""Builder for the production (gRPC) pass."""

from collections.abc import Sequence
from dataclasses import dataclass, field, replace
from pathlib import Path

from . import pipeline
from .config import GenerationConfig, Transport
from .types import FileDescriptorSet

# Settings the production builder owns. `apply` copies them onto any config
# it is handed, so they must be forwarded to it whenever they change.
SERVICE_FIELDS = (
    "build_client",
    "build_server",
    "build_transport",
    "server_attributes",
    "client_attributes",
    "proto_path",
    "emit_package",
    "disable_comments",
    "use_shared_self",
    "generate_default_stubs",
    "compile_well_known_types",
)


@dataclass(frozen=True)
class ProductionBuilder:
    """Generates gRPC clients and servers.

    Holds its own service-level settings, which take precedence over the
    settings of any config passed to it.
    """

    config: GenerationConfig = field(default_factory=GenerationConfig)
    output_dir: Path | None = None

    def with_settings(self, **changes) -> "ProductionBuilder":
        return replace(self, config=replace(self.config, **changes))

    def out_dir(self, path: str | Path) -> "ProductionBuilder":
        return replace(self, output_dir=Path(path))

    def apply(self, config: GenerationConfig) -> GenerationConfig:
        """Overwrite the service-level settings of `config` with this builder's."""
        changes = {name: getattr(self.config, name) for name in SERVICE_FIELDS}
        return replace(
            config,
            transport=Transport.GRPC,
            out_dir=self.output_dir or config.out_dir,
            **changes,
        )

    def compile_protos(self, protos: Sequence[str | Path], includes: Sequence[str | Path]) -> list[Path]:
        return self.compile_protos_with_config(self.config, protos, includes)

    def compile_protos_with_config(
        self,
        config: GenerationConfig,
        protos: Sequence[str | Path],
        includes: Sequence[str | Path],
    ) -> list[Path]:
        return pipeline.compile_protos(self.apply(config), protos, includes)

    def generate_with_config(self, config: GenerationConfig, descriptor_set: FileDescriptorSet) -> list[Path]:
        """Run the production pass over an already compiled descriptor set."""
        return pipeline.generate(self.apply(config), descriptor_set)
