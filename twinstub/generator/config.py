"""Generation pass configuration."""

from dataclasses import dataclass, field, fields, replace
from enum import StrEnum, auto
from pathlib import Path

from .attributes import Attributes

DEFAULT_PROTO_PATH = "_pb"

# Fields allowed to differ between the simulated and the production pass.
PASS_FIELDS = frozenset(["out_dir", "transport"])


class Transport(StrEnum):
    """Transport the generated clients and servers are wired to."""

    SIM = auto()
    GRPC = auto()

    @property
    def import_line(self) -> str:
        return TRANSPORT_IMPORTS[self]


TRANSPORT_IMPORTS = {
    Transport.SIM: "from twinstub.runtime import sim as _transport",
    Transport.GRPC: "import grpc as _transport",
}


@dataclass(frozen=True)
class GenerationConfig:
    """Everything one generation pass needs.

    Instances are immutable; a pass config is derived from a builder
    snapshot with `derive_config`, so the simulated and production passes
    can be compared field by field.
    """

    out_dir: Path | None = None
    transport: Transport = Transport.SIM
    build_client: bool = True
    build_server: bool = True
    build_transport: bool = True
    file_descriptor_set_path: Path | None = None
    skip_protoc_run: bool = False
    extern_paths: tuple[tuple[str, str], ...] = ()
    field_attributes: tuple[tuple[str, str], ...] = ()
    type_attributes: tuple[tuple[str, str], ...] = ()
    message_attributes: tuple[tuple[str, str], ...] = ()
    enum_attributes: tuple[tuple[str, str], ...] = ()
    boxed: tuple[str, ...] = ()
    ordered_map: tuple[str, ...] | None = None
    zero_copy_bytes: tuple[str, ...] | None = None
    server_attributes: Attributes = field(default_factory=Attributes)
    client_attributes: Attributes = field(default_factory=Attributes)
    proto_path: str = DEFAULT_PROTO_PATH
    compile_well_known_types: bool = False
    emit_package: bool = True
    compiler_args: tuple[str, ...] = ()
    include_file: Path | None = None
    disable_comments: frozenset[str] = frozenset()
    use_shared_self: bool = False
    generate_default_stubs: bool = False


def derive_config(snapshot: GenerationConfig, out_dir: Path, transport: Transport) -> GenerationConfig:
    """Derive a pass config from a builder snapshot."""
    return replace(snapshot, out_dir=out_dir, transport=transport)


def config_drift(a: GenerationConfig, b: GenerationConfig) -> list[str]:
    """Names of the fields that differ between two pass configs, ignoring pass fields."""
    return [
        f.name
        for f in fields(GenerationConfig)
        if f.name not in PASS_FIELDS and getattr(a, f.name) != getattr(b, f.name)
    ]
