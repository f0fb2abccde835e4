"""Mapping of fully-qualified proto names to target type names."""

from .compiler import WELL_KNOWN_TYPES
from .errors import BuildError, TypeResolutionError
from .types import (
    FileDescriptorSet,
    MethodDescription,
    ProtoMessage,
    ProtoService,
    ServiceDescription,
    TypeRef,
)
from .util import module_name, to_snake_case, to_upper_camel


def _collect(package: str, scope: str, messages: list[ProtoMessage], into: dict[str, str]) -> None:
    for message in messages:
        full_name = f"{scope}.{message.name}"
        into[full_name] = package
        for enum in message.enums:
            into[f"{full_name}.{enum.name}"] = package
        _collect(package, full_name, message.messages, into)


class TypeNamer:
    """Names proto types the way generated code refers to them.

    Extern paths are checked first: the longest matching proto path wins,
    and among equally long matches the first one declared. Well-known types
    that are not compiled from source map to the protobuf runtime modules.
    Types of the referring package are named by their qualified name, all
    others by a reference rooted at the generated package.
    """

    def __init__(
        self,
        descriptor_set: FileDescriptorSet,
        extern_paths: tuple[tuple[str, str], ...] = (),
        compile_well_known_types: bool = False,
    ) -> None:
        for proto_path, _target in extern_paths:
            if not proto_path.startswith("."):
                raise BuildError(f"extern path {proto_path!r} must be fully qualified (start with '.')")
        self.extern_paths = extern_paths
        self.compile_well_known_types = compile_well_known_types
        self.packages: dict[str, str] = {}
        for proto_file in descriptor_set.files:
            scope = f".{proto_file.package}" if proto_file.package else ""
            _collect(proto_file.package, scope, proto_file.messages, self.packages)
            for enum in proto_file.enums:
                self.packages[f"{scope}.{enum.name}"] = proto_file.package

    def _extern(self, full_name: str) -> str | None:
        best: tuple[str, str] | None = None
        for proto_path, target in self.extern_paths:
            if full_name == proto_path or full_name.startswith(proto_path + "."):
                if best is None or len(proto_path) > len(best[0]):
                    best = (proto_path, target)
        if best is None:
            return None

        proto_path, target = best
        remainder = full_name[len(proto_path) + 1 :]
        if not remainder:
            if ":" not in target:
                raise TypeResolutionError(
                    f"extern path {proto_path!r} names a type, so its target {target!r} must be 'module:Qualname'"
                )
            return target
        if ":" in target:
            return f"{target}.{remainder}"
        return f"{target}:{remainder}"

    def target_name(self, full_name: str, package: str) -> str:
        """Target type name of `full_name` as seen from the module of `package`."""
        extern = self._extern(full_name)
        if extern is not None:
            return extern
        if not self.compile_well_known_types and full_name in WELL_KNOWN_TYPES:
            return WELL_KNOWN_TYPES[full_name]

        type_package = self.packages[full_name]
        prefix = f".{type_package}." if type_package else "."
        qualname = full_name[len(prefix) :]
        if type_package == package:
            return qualname
        return f".{module_name(type_package)}:{qualname}"


def service_description(service: ProtoService, package: str, namer: TypeNamer) -> ServiceDescription:
    """Build the code generation record of one service."""
    methods = tuple(
        MethodDescription(
            name=to_snake_case(method.name),
            identifier=method.name,
            input_type=TypeRef(method.input_type, namer.target_name(method.input_type, package)),
            output_type=TypeRef(method.output_type, namer.target_name(method.output_type, package)),
            client_streaming=method.client_streaming,
            server_streaming=method.server_streaming,
            leading_comments=tuple(method.comments),
        )
        for method in service.methods
    )
    return ServiceDescription(
        name=to_upper_camel(service.name),
        package=package,
        identifier=service.name,
        methods=methods,
        leading_comments=tuple(service.comments),
    )
