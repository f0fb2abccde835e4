"""IDL compiler: loads .proto files with their imports and links type names."""

import logging
from collections.abc import Iterable
from pathlib import Path

from .errors import ProtoCompileError
from .parser import parse
from .types import (
    MAP_KEY_TYPES,
    FileDescriptorSet,
    ProtoEnum,
    ProtoEnumValue,
    ProtoField,
    ProtoFile,
    ProtoMessage,
    is_scalar,
)

logger = logging.getLogger(__name__)

WELL_KNOWN_PACKAGE = "google.protobuf"

# file -> (python module, messages, enums)
WELL_KNOWN_FILES: dict[str, tuple[str, list[str], list[str]]] = {
    "google/protobuf/any.proto": ("any_pb2", ["Any"], []),
    "google/protobuf/duration.proto": ("duration_pb2", ["Duration"], []),
    "google/protobuf/empty.proto": ("empty_pb2", ["Empty"], []),
    "google/protobuf/field_mask.proto": ("field_mask_pb2", ["FieldMask"], []),
    "google/protobuf/struct.proto": ("struct_pb2", ["Struct", "Value", "ListValue"], ["NullValue"]),
    "google/protobuf/timestamp.proto": ("timestamp_pb2", ["Timestamp"], []),
    "google/protobuf/wrappers.proto": (
        "wrappers_pb2",
        [
            "DoubleValue",
            "FloatValue",
            "Int64Value",
            "UInt64Value",
            "Int32Value",
            "UInt32Value",
            "BoolValue",
            "StringValue",
            "BytesValue",
        ],
        [],
    ),
}

# fully-qualified proto name -> target type name
WELL_KNOWN_TYPES: dict[str, str] = {
    f".{WELL_KNOWN_PACKAGE}.{name}": f"{WELL_KNOWN_PACKAGE}.{module}:{name}"
    for module, messages, enums in WELL_KNOWN_FILES.values()
    for name in messages + enums
}


def _builtin_file(name: str) -> ProtoFile:
    _module, messages, enums = WELL_KNOWN_FILES[name]
    return ProtoFile(
        name=name,
        package=WELL_KNOWN_PACKAGE,
        syntax="proto3",
        messages=[ProtoMessage(name=m) for m in messages],
        enums=[ProtoEnum(name=e, values=[ProtoEnumValue(name="NULL_VALUE", number=0)]) for e in enums],
    )


class ProtoCompiler:
    """Turns .proto files into a linked `FileDescriptorSet`.

    Args:
        includes: Directories imports are looked up in, in order.
        args: Extra compiler arguments. Only include path flags and
            `--experimental_allow_proto3_optional` are understood.
        compile_well_known_types: Load google/protobuf/*.proto from the
            include path instead of using the built-in descriptions.
    """

    def __init__(
        self,
        includes: Iterable[str | Path],
        args: Iterable[str] = (),
        compile_well_known_types: bool = False,
    ) -> None:
        self.includes = [Path(i) for i in includes]
        self.compile_well_known_types = compile_well_known_types
        for arg in args:
            if arg.startswith("-I") and len(arg) > 2:
                self.includes.append(Path(arg[2:]))
            elif arg.startswith("--proto_path="):
                self.includes.append(Path(arg.partition("=")[2]))
            elif arg == "--experimental_allow_proto3_optional":
                pass
            else:
                raise ProtoCompileError(f"unsupported compiler argument: {arg}")

    def compile(self, protos: Iterable[str | Path]) -> FileDescriptorSet:
        names = [self._relative_name(Path(p)) for p in protos]
        loaded: dict[str, ProtoFile] = {}
        order: list[str] = []
        for name in names:
            self._load(name, loaded, order, [])

        files = [loaded[name] for name in order]
        _Linker(files).link()
        logger.debug("compiled %d file(s), %d loaded", len(names), len(files))
        return FileDescriptorSet(files=files, file_to_generate=names)

    def _relative_name(self, proto: Path) -> str:
        for include in self.includes:
            try:
                return proto.resolve().relative_to(include.resolve()).as_posix()
            except ValueError:
                pass
            if not proto.is_absolute() and (include / proto).is_file():
                return proto.as_posix()
        raise ProtoCompileError(f"{proto}: file does not reside within any include path")

    def _find(self, name: str) -> ProtoFile:
        for include in self.includes:
            path = include / name
            if path.is_file():
                logger.debug("loading %s", path)
                return parse(path.read_text(encoding="utf-8"), name)

        if name in WELL_KNOWN_FILES and not self.compile_well_known_types:
            return _builtin_file(name)
        raise ProtoCompileError(f"{name}: file not found")

    def _load(self, name: str, loaded: dict[str, ProtoFile], order: list[str], stack: list[str]) -> None:
        if name in loaded:
            return
        if name in stack:
            cycle = " -> ".join(stack[stack.index(name) :] + [name])
            raise ProtoCompileError(f"import cycle: {cycle}")

        proto_file = self._find(name)
        stack.append(name)
        for dependency in proto_file.imports:
            self._load(dependency, loaded, order, stack)
        stack.pop()

        loaded[name] = proto_file
        order.append(name)


def _scopes(scope: str) -> list[str]:
    """Enclosing scopes of ".a.b.C", innermost first, ending with the root ""."""
    scopes = []
    while scope:
        scopes.append(scope)
        scope = scope.rpartition(".")[0]
    scopes.append("")
    return scopes


class _Linker:
    """Registers every symbol and resolves field and method types in place."""

    def __init__(self, files: list[ProtoFile]) -> None:
        self.files = files
        self.symbols: dict[str, str] = {}

    def link(self) -> None:
        for proto_file in self.files:
            prefix = ""
            for part in proto_file.package.split(".") if proto_file.package else []:
                prefix = f"{prefix}.{part}"
                self.symbols.setdefault(prefix, "package")
            for message in proto_file.messages:
                self._register_message(proto_file, prefix, message)
            for enum in proto_file.enums:
                self._register(proto_file, f"{prefix}.{enum.name}", "enum")
            for service in proto_file.services:
                self._register(proto_file, f"{prefix}.{service.name}", "service")

        for proto_file in self.files:
            prefix = f".{proto_file.package}" if proto_file.package else ""
            for message in proto_file.messages:
                self._link_message(proto_file, f"{prefix}.{message.name}", message)
            for service in proto_file.services:
                scope = f"{prefix}.{service.name}"
                for method in service.methods:
                    method.input_type = self._lookup_message(proto_file, method.input_type, scope)
                    method.output_type = self._lookup_message(proto_file, method.output_type, scope)

    def _register(self, proto_file: ProtoFile, full_name: str, kind: str) -> None:
        if full_name in self.symbols:
            raise ProtoCompileError(f"{proto_file.name}: {full_name[1:]} is already defined")
        self.symbols[full_name] = kind

    def _register_message(self, proto_file: ProtoFile, scope: str, message: ProtoMessage) -> None:
        full_name = f"{scope}.{message.name}"
        self._register(proto_file, full_name, "message")
        for nested in message.messages:
            self._register_message(proto_file, full_name, nested)
        for enum in message.enums:
            self._register(proto_file, f"{full_name}.{enum.name}", "enum")

    def _link_message(self, proto_file: ProtoFile, full_name: str, message: ProtoMessage) -> None:
        numbers: dict[int, str] = {}
        for proto_field in message.fields:
            if proto_field.number in numbers:
                raise ProtoCompileError(
                    f"{proto_file.name}: field number {proto_field.number} of {full_name[1:]} "
                    f"is used by both {numbers[proto_field.number]} and {proto_field.name}"
                )
            numbers[proto_field.number] = proto_field.name
            self._link_field(proto_file, full_name, proto_field)

        for nested in message.messages:
            self._link_message(proto_file, f"{full_name}.{nested.name}", nested)

    def _link_field(self, proto_file: ProtoFile, scope: str, proto_field: ProtoField) -> None:
        if proto_field.map_key is not None and proto_field.map_key not in MAP_KEY_TYPES:
            raise ProtoCompileError(
                f"{proto_file.name}: invalid map key type {proto_field.map_key} for {proto_field.name}"
            )
        if is_scalar(proto_field.type_name):
            proto_field.kind = "scalar"
            return

        full_name = self._lookup(proto_file, proto_field.type_name, scope)
        kind = self.symbols[full_name]
        if kind not in ("message", "enum"):
            raise ProtoCompileError(f"{proto_file.name}: {proto_field.type_name} is not a type")
        proto_field.resolved_type = full_name
        proto_field.kind = kind

    def _lookup_message(self, proto_file: ProtoFile, name: str, scope: str) -> str:
        full_name = self._lookup(proto_file, name, scope)
        if self.symbols[full_name] != "message":
            raise ProtoCompileError(f"{proto_file.name}: {name} is not a message type")
        return full_name

    def _lookup(self, proto_file: ProtoFile, name: str, scope: str) -> str:
        if name.startswith("."):
            if name in self.symbols:
                return name
            raise ProtoCompileError(f"{proto_file.name}: {name} is not defined")

        first = name.split(".")[0]
        for candidate_scope in _scopes(scope):
            if f"{candidate_scope}.{first}" in self.symbols:
                full_name = f"{candidate_scope}.{name}"
                if full_name in self.symbols:
                    return full_name
                raise ProtoCompileError(
                    f'{proto_file.name}: "{name}" resolved to "{full_name[1:]}", which is not defined'
                )
        raise ProtoCompileError(f"{proto_file.name}: {name} is not defined")
