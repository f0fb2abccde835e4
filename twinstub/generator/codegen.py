"""Python code generator for proto messages and enums."""

import ast
from dataclasses import dataclass, field

from jinja2 import Environment, PackageLoader

from .attributes import fully_qualified, match_path, matching
from .config import DEFAULT_PROTO_PATH, GenerationConfig
from .errors import EmissionError
from .naming import TypeNamer
from .resolver import TypeReference, is_absolute
from .types import FileDescriptorSet, ProtoEnum, ProtoField, ProtoFile, ProtoMessage
from .util import safe_identifier


def docstring(lines: list[str] | tuple[str, ...]) -> str:
    """Render comment lines as a Python string literal."""
    return repr("\n".join(lines))


env = Environment(
    loader=PackageLoader("twinstub.generator", "templates"),
    trim_blocks=True,
    lstrip_blocks=True,
    keep_trailing_newline=True,
    line_comment_prefix="%%",
    line_statement_prefix="%",
)
env.filters["docstring"] = docstring
env.filters["literal"] = repr

template = env.get_template("module.py.j2")

# Map proto scalar types to Python type annotations
PRIMITIVE_TYPE_MAP = {
    "double": "float",
    "float": "float",
    "int32": "int",
    "int64": "int",
    "uint32": "int",
    "uint64": "int",
    "sint32": "int",
    "sint64": "int",
    "fixed32": "int",
    "fixed64": "int",
    "sfixed32": "int",
    "sfixed64": "int",
    "bool": "bool",
    "string": "str",
    "bytes": "bytes",
}

DEFAULT_VALUES = {
    "float": "0.0",
    "int": "0",
    "bool": "False",
    "str": '""',
    "bytes": 'b""',
}


@dataclass
class FieldView:
    name: str
    annotation: str
    spec: str
    comments: list[str] = field(default_factory=list)


@dataclass
class EnumView:
    name: str
    decorators: list[str]
    doc: list[str]
    values: list[tuple[str, int]]


@dataclass
class MessageView:
    name: str
    decorators: list[str]
    doc: list[str]
    fields: list[FieldView] = field(default_factory=list)
    enums: list[EnumView] = field(default_factory=list)
    messages: list["MessageView"] = field(default_factory=list)


class _Index:
    """Messages and enums of a descriptor set by fully-qualified name."""

    def __init__(self, descriptor_set: FileDescriptorSet) -> None:
        self.messages: dict[str, ProtoMessage] = {}
        self.enums: dict[str, ProtoEnum] = {}
        for proto_file in descriptor_set.files:
            self._add(fully_qualified(proto_file.package), proto_file.messages, proto_file.enums)

    def _add(self, scope: str, messages: list[ProtoMessage], enums: list[ProtoEnum]) -> None:
        for enum in enums:
            self.enums[f"{scope}.{enum.name}"] = enum
        for message in messages:
            full_name = f"{scope}.{message.name}"
            self.messages[full_name] = message
            self._add(full_name, message.messages, message.enums)

    def reaches(self, start: str, goal: str) -> bool:
        """Check if message `start` holds `goal` through singular message fields."""
        seen: set[str] = set()
        pending = [start]
        while pending:
            current = pending.pop()
            if current == goal:
                return True
            if current in seen or current not in self.messages:
                continue
            seen.add(current)
            pending.extend(
                f.resolved_type
                for f in self.messages[current].fields
                if f.kind == "message" and f.resolved_type and _is_singular(f)
            )
        return False


def _is_singular(proto_field: ProtoField) -> bool:
    return proto_field.label != "repeated" and proto_field.map_key is None and proto_field.oneof is None


def _is_optional(proto_field: ProtoField) -> bool:
    return proto_field.oneof is not None or proto_field.label == "optional"


class ModuleRenderer:
    """Renders the message module of one proto package."""

    def __init__(
        self,
        package: str,
        config: GenerationConfig,
        descriptor_set: FileDescriptorSet,
        namer: TypeNamer,
    ) -> None:
        self.package = package
        self.config = config
        self.namer = namer
        self.index = _Index(descriptor_set)
        self.imports: set[str] = set()

    def _doc(self, full_name: str, comments: list[str]) -> list[str]:
        if any(match_path(pattern, full_name) for pattern in self.config.disable_comments):
            return []
        return comments

    def _reference(self, full_name: str) -> tuple[TypeReference, bool]:
        target = self.namer.target_name(full_name, self.package)
        reference = TypeReference.parse(target)
        if reference.import_:
            self.imports.add(reference.import_)
        return reference, is_absolute(target)

    def _field(self, message_name: str, proto_field: ProtoField) -> FieldView:
        path = f"{message_name}.{proto_field.name}"
        boxed = any(match_path(p, path) for p in self.config.boxed)
        kind = proto_field.kind if proto_field.kind != "scalar" else proto_field.type_name
        args = [repr(kind), f"number={proto_field.number}"]

        external = False
        if proto_field.kind == "scalar":
            type_name = PRIMITIVE_TYPE_MAP[proto_field.type_name]
            zero_copy = proto_field.type_name == "bytes" and any(
                match_path(p, path) for p in self.config.zero_copy_bytes or ()
            )
            if zero_copy:
                args.append("zero_copy=True")
                type_name = "memoryview"
                default = "default_factory=lambda: memoryview(b\"\")"
            else:
                default = f"default={DEFAULT_VALUES[type_name]}"
        else:
            reference, external = self._reference(proto_field.resolved_type or "")
            type_name = reference.path
            if proto_field.kind == "enum":
                if external:
                    type_name, default = "int", "default=0"
                else:
                    enum = self.index.enums[proto_field.resolved_type or ""]
                    first = enum.values[0].number if enum.values else 0
                    default = f"default_factory=lambda: {type_name}({first})"
            else:
                if external:
                    args.append(f"resolve=lambda: {type_name}")
                recursive = _is_singular(proto_field) and self.index.reaches(
                    proto_field.resolved_type or "", message_name
                )
                if boxed or recursive:
                    boxed = True
                    default = "default=None"
                else:
                    default = f"default_factory=lambda: {type_name}()"

        if proto_field.map_key is not None:
            key_type = PRIMITIVE_TYPE_MAP[proto_field.map_key]
            annotation = f"dict[{key_type}, {type_name}]"
            args.append('shape="map"')
            if any(match_path(p, path) for p in self.config.ordered_map or ()):
                args.append("ordered=True")
            default = "default_factory=dict"
        elif proto_field.label == "repeated":
            annotation = f"list[{type_name}]"
            args.append('shape="repeated"')
            default = "default_factory=list"
        elif boxed or _is_optional(proto_field):
            annotation = f"{type_name} | None"
            default = "default=None"
        else:
            annotation = type_name

        if boxed:
            args.append("boxed=True")
        args.append(default)
        args.extend(matching(self.config.field_attributes, path))
        return FieldView(
            name=safe_identifier(proto_field.name),
            annotation=annotation,
            spec=f"_message.message_field({', '.join(args)})",
            comments=self._doc(path, proto_field.comments),
        )

    def _decorators(self, full_name: str, specific: tuple[tuple[str, str], ...]) -> list[str]:
        attributes = matching(self.config.type_attributes, full_name) + matching(specific, full_name)
        return [a[1:] if a.startswith("@") else a for a in attributes]

    def _enum(self, scope: str, enum: ProtoEnum) -> EnumView:
        full_name = f"{scope}.{enum.name}"
        return EnumView(
            name=enum.name,
            decorators=self._decorators(full_name, self.config.enum_attributes),
            doc=self._doc(full_name, enum.comments),
            values=[(safe_identifier(v.name), v.number) for v in enum.values],
        )

    def _message(self, scope: str, message: ProtoMessage) -> MessageView:
        full_name = f"{scope}.{message.name}"
        return MessageView(
            name=message.name,
            decorators=self._decorators(full_name, self.config.message_attributes),
            doc=self._doc(full_name, message.comments),
            fields=[self._field(full_name, f) for f in message.fields],
            enums=[self._enum(full_name, e) for e in message.enums],
            messages=[self._message(full_name, m) for m in message.messages],
        )

    def render(self, files: list[ProtoFile], sections: list[str]) -> str:
        """Render the module text for `files`, followed by the service sections.

        Raises:
            EmissionError: If the result is not valid Python.
        """
        scope = fully_qualified(self.package)
        enums = [self._enum(scope, e) for f in files for e in f.enums]
        messages = [self._message(scope, m) for f in files for m in f.messages]

        text = template.render(
            sources=[f.name for f in files],
            imports=sorted(self.imports),
            enums=enums,
            messages=messages,
            sections=sections,
            self_alias=DEFAULT_PROTO_PATH,
        )

        try:
            ast.parse(text)
        except SyntaxError as e:
            raise EmissionError(f"generated module for package {self.package!r} is invalid: {e}") from e
        return text
