"""Type definitions for proto parsing and service code generation."""

from dataclasses import dataclass, field
from typing import Any

from dataclasses_json import DataClassJsonMixin

from .errors import ProtoCompileError


@dataclass
class ProtoOption(DataClassJsonMixin):
    """Represents an option statement (`option name = value;`)."""

    name: str
    value: Any


@dataclass
class ProtoField(DataClassJsonMixin):
    """Represents a message field.

    `type_name` is the type as written in the file. The compiler fills in
    `resolved_type` with the fully-qualified name (".pkg.Msg") for message
    and enum types and sets `kind` to "scalar", "message" or "enum".
    Map fields carry their key type in `map_key`; `type_name` is then the
    value type.
    """

    name: str
    number: int
    type_name: str
    label: str | None = None
    map_key: str | None = None
    oneof: str | None = None
    options: list[ProtoOption] = field(default_factory=list)
    comments: list[str] = field(default_factory=list)
    resolved_type: str | None = None
    kind: str = "scalar"


@dataclass
class ProtoEnumValue(DataClassJsonMixin):
    """Represents a single enum value."""

    name: str
    number: int
    options: list[ProtoOption] = field(default_factory=list)
    comments: list[str] = field(default_factory=list)


@dataclass
class ProtoEnum(DataClassJsonMixin):
    """Represents an enum definition."""

    name: str
    values: list[ProtoEnumValue] = field(default_factory=list)
    options: list[ProtoOption] = field(default_factory=list)
    comments: list[str] = field(default_factory=list)


@dataclass
class ProtoMessage(DataClassJsonMixin):
    """Represents a message definition, possibly with nested types."""

    name: str
    fields: list[ProtoField] = field(default_factory=list)
    messages: list["ProtoMessage"] = field(default_factory=list)
    enums: list[ProtoEnum] = field(default_factory=list)
    oneofs: list[str] = field(default_factory=list)
    options: list[ProtoOption] = field(default_factory=list)
    comments: list[str] = field(default_factory=list)


@dataclass
class ProtoMethod(DataClassJsonMixin):
    """Represents an rpc declaration inside a service."""

    name: str
    input_type: str
    output_type: str
    client_streaming: bool = False
    server_streaming: bool = False
    options: list[ProtoOption] = field(default_factory=list)
    comments: list[str] = field(default_factory=list)


@dataclass
class ProtoService(DataClassJsonMixin):
    """Represents a service definition."""

    name: str
    methods: list[ProtoMethod] = field(default_factory=list)
    options: list[ProtoOption] = field(default_factory=list)
    comments: list[str] = field(default_factory=list)


@dataclass
class ProtoFile(DataClassJsonMixin):
    """Represents one parsed .proto file.

    `name` is the path relative to the include directory it was found in,
    which is also how other files import it.
    """

    name: str
    package: str = ""
    syntax: str = "proto2"
    imports: list[str] = field(default_factory=list)
    public_imports: list[str] = field(default_factory=list)
    messages: list[ProtoMessage] = field(default_factory=list)
    enums: list[ProtoEnum] = field(default_factory=list)
    services: list[ProtoService] = field(default_factory=list)
    options: list[ProtoOption] = field(default_factory=list)


@dataclass
class FileDescriptorSet(DataClassJsonMixin):
    """All files of one compilation, dependencies first.

    `file_to_generate` lists the files code is generated for; the others
    were only loaded to resolve imports.
    """

    files: list[ProtoFile] = field(default_factory=list)
    file_to_generate: list[str] = field(default_factory=list)

    def file(self, name: str) -> ProtoFile:
        for proto_file in self.files:
            if proto_file.name == name:
                return proto_file
        raise ProtoCompileError(f"descriptor set has no file {name!r}")


@dataclass(frozen=True)
class TypeRef:
    """A request or response type of a method.

    `idl_name` is the fully-qualified proto name (".helloworld.HelloRequest");
    `target_name` is where the class lives on the Python side, after extern
    path mapping. Turning the target name into a usable type path depends
    on the generation pass and is left to the resolver.
    """

    idl_name: str
    target_name: str


@dataclass(frozen=True)
class MethodDescription:
    """The IDL compiler's view of one rpc, ready for code generation."""

    name: str
    identifier: str
    input_type: TypeRef
    output_type: TypeRef
    client_streaming: bool = False
    server_streaming: bool = False
    leading_comments: tuple[str, ...] = ()


@dataclass(frozen=True)
class ServiceDescription:
    """The IDL compiler's view of one service, ready for code generation."""

    name: str
    package: str
    identifier: str
    methods: tuple[MethodDescription, ...] = ()
    leading_comments: tuple[str, ...] = ()


SCALAR_TYPES = frozenset(
    [
        "double",
        "float",
        "int32",
        "int64",
        "uint32",
        "uint64",
        "sint32",
        "sint64",
        "fixed32",
        "fixed64",
        "sfixed32",
        "sfixed64",
        "bool",
        "string",
        "bytes",
    ]
)

MAP_KEY_TYPES = SCALAR_TYPES - {"double", "float", "bytes"}


def is_scalar(type_name: str) -> bool:
    """Check if a type name is a proto scalar type."""
    return type_name in SCALAR_TYPES
