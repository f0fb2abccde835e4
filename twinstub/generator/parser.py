"""Proto file parser using Lark."""

import os
import re
from dataclasses import dataclass
from typing import Any, TypeVar

from lark import Lark, Token
from lark.exceptions import UnexpectedInput, VisitError
from lark.visitors import Transformer, v_args

from .errors import ProtoCompileError, ProtoSyntaxError
from .types import (
    ProtoEnum,
    ProtoEnumValue,
    ProtoField,
    ProtoFile,
    ProtoMessage,
    ProtoMethod,
    ProtoOption,
    ProtoService,
)

_g_parser: Lark | None = None
_g_comments: list[Token] = []


@dataclass
class _Syntax:
    value: str


@dataclass
class _Import:
    path: str
    kind: str | None


@dataclass
class _Package:
    value: str


@dataclass
class _Label:
    value: str


@dataclass
class _FieldOptions:
    options: list[ProtoOption]


@dataclass
class _Oneof:
    name: str
    fields: list[ProtoField]


@dataclass
class _RpcType:
    name: str
    streaming: bool


@dataclass
class _Ignored:
    """Statements that carry no information for code generation."""


TFilter = TypeVar("TFilter", bound=object)


def _filter(args: list[Any], class_type: type[TFilter]) -> list[TFilter]:
    return [v for v in args if isinstance(v, class_type)]


def _find_one(args: list[Any], class_type: type[object]) -> Any:
    filtered = _filter(args, class_type)
    if len(filtered) == 0:
        return None
    if len(filtered) > 1:
        raise RuntimeError(f"Found more than one {class_type}")
    return filtered[0]


def _tokens(args: list[Any], *types: str) -> list[str]:
    return [str(t) for t in args if isinstance(t, Token) and t.type in types]


_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "\\": "\\", "'": "'", '"': '"', "0": "\0"}


def _unquote(token: str) -> str:
    body = token[1:-1]
    return re.sub(r"\\(.)", lambda m: _ESCAPES.get(m.group(1), m.group(1)), body)


def _number(text: str) -> int | float:
    if re.fullmatch(r"[+-]?0[0-7]+", text):
        return int(text, 8)
    try:
        return int(text, 0)
    except ValueError:
        return float(text)


def _integer(text: str) -> int:
    value = _number(text)
    if not isinstance(value, int):
        raise ProtoCompileError(f"expected an integer, found {text}")
    return value


def _comment_lines(value: str) -> list[str]:
    if value.startswith("//"):
        return [_strip_marker(value[2:])]

    lines = []
    for line in value[2:-2].splitlines():
        line = line.strip()
        if line.startswith("*"):
            line = line[1:]
        lines.append(_strip_marker(line))
    while lines and not lines[0]:
        lines.pop(0)
    while lines and not lines[-1]:
        lines.pop()
    return lines


def _strip_marker(line: str) -> str:
    return (line[1:] if line.startswith(" ") else line).rstrip()


class _CommentIndex:
    """Leading comments by the line of the declaration they precede.

    A comment block is leading when it starts its own line and ends on the
    line right above the declaration, with no blank line in between.
    """

    def __init__(self, text: str, tokens: list[Token]) -> None:
        lines = text.splitlines()
        self._by_end_line: dict[int, Token] = {}
        for tok in tokens:
            if lines[tok.line - 1][: tok.column - 1].strip():
                continue
            self._by_end_line[tok.line + tok.value.count("\n")] = tok

    def leading(self, line: int) -> list[str]:
        block: list[Token] = []
        current = line - 1
        while current in self._by_end_line:
            tok = self._by_end_line[current]
            block.insert(0, tok)
            current = tok.line - 1
        return [text for tok in block for text in _comment_lines(tok.value)]


class TreeTransformer(Transformer):
    """Transform a parse tree into proto descriptor types."""

    def __init__(self, comments: _CommentIndex) -> None:
        super().__init__()
        self._comments = comments

    def syntax(self, args: list[Any]) -> _Syntax:
        return _Syntax(_unquote(args[0]))

    def edition(self, args: list[Any]) -> _Syntax:
        return _Syntax(f"edition-{_unquote(args[0])}")

    def import_kind(self, args: list[Any]) -> str:
        return str(args[0])

    def import_(self, args: list[Any]) -> _Import:
        kind = args[0] if len(args) == 2 else None
        return _Import(path=_unquote(args[-1]), kind=kind)

    def package(self, args: list[Any]) -> _Package:
        name = str(args[0])
        if name.startswith("."):
            raise ProtoCompileError(f"package name {name} must not start with '.'")
        return _Package(name)

    def option(self, args: list[Any]) -> ProtoOption:
        return ProtoOption(name=args[0], value=args[1])

    def extension_name(self, args: list[Any]) -> str:
        return f"({args[0]})"

    def option_name(self, args: list[Any]) -> str:
        return ".".join(str(a) for a in args)

    def ident_constant(self, args: list[Any]) -> Any:
        value = str(args[0])
        return {"true": True, "false": False}.get(value, value)

    def negative_ident_constant(self, args: list[Any]) -> str:
        return f"-{args[0]}"

    def number_constant(self, args: list[Any]) -> int | float:
        return _number(str(args[0]))

    def string_constant(self, args: list[Any]) -> str:
        return "".join(_unquote(a) for a in args)

    def aggregate(self, args: list[Any]) -> dict[str, Any]:
        return dict(args)

    def agg_field(self, args: list[Any]) -> tuple[str, Any]:
        return (str(args[0]), args[1])

    def agg_list(self, args: list[Any]) -> list[Any]:
        return list(args)

    def label(self, args: list[Any]) -> _Label:
        return _Label(str(args[0]))

    def field_option(self, args: list[Any]) -> ProtoOption:
        return ProtoOption(name=args[0], value=args[1])

    def field_options(self, args: list[Any]) -> _FieldOptions:
        return _FieldOptions(list(args))

    def _field_options(self, args: list[Any]) -> list[ProtoOption]:
        options = _find_one(args, _FieldOptions)
        return options.options if options else []

    @v_args(meta=True)
    def field(self, meta: Any, args: list[Any]) -> ProtoField:
        type_name, name = _tokens(args, "TYPE_NAME", "NAME")
        (number,) = _tokens(args, "NUMBER")
        label = _find_one(args, _Label)
        return ProtoField(
            name=name,
            number=_integer(number),
            type_name=type_name,
            label=label.value if label else None,
            options=self._field_options(args),
            comments=self._comments.leading(meta.line),
        )

    @v_args(meta=True)
    def map_field(self, meta: Any, args: list[Any]) -> ProtoField:
        key_type, value_type, name = _tokens(args, "TYPE_NAME", "NAME")
        (number,) = _tokens(args, "NUMBER")
        return ProtoField(
            name=name,
            number=_integer(number),
            type_name=value_type,
            map_key=key_type,
            options=self._field_options(args),
            comments=self._comments.leading(meta.line),
        )

    @v_args(meta=True)
    def oneof_field(self, meta: Any, args: list[Any]) -> ProtoField:
        type_name, name = _tokens(args, "TYPE_NAME", "NAME")
        (number,) = _tokens(args, "NUMBER")
        return ProtoField(
            name=name,
            number=_integer(number),
            type_name=type_name,
            options=self._field_options(args),
            comments=self._comments.leading(meta.line),
        )

    def oneof(self, args: list[Any]) -> _Oneof:
        name = str(args[0])
        fields = _filter(args, ProtoField)
        for oneof_field in fields:
            oneof_field.oneof = name
        return _Oneof(name=name, fields=fields)

    def reserved(self, args: list[Any]) -> _Ignored:
        return _Ignored()

    def extensions(self, args: list[Any]) -> _Ignored:
        return _Ignored()

    def extend(self, args: list[Any]) -> _Ignored:
        return _Ignored()

    @v_args(meta=True)
    def message(self, meta: Any, args: list[Any]) -> ProtoMessage:
        fields: list[ProtoField] = []
        oneofs: list[str] = []
        for item in args:
            if isinstance(item, ProtoField):
                fields.append(item)
            elif isinstance(item, _Oneof):
                oneofs.append(item.name)
                fields.extend(item.fields)
        return ProtoMessage(
            name=str(args[0]),
            fields=fields,
            messages=_filter(args, ProtoMessage),
            enums=_filter(args, ProtoEnum),
            oneofs=oneofs,
            options=_filter(args, ProtoOption),
            comments=self._comments.leading(meta.line),
        )

    @v_args(meta=True)
    def enum_value(self, meta: Any, args: list[Any]) -> ProtoEnumValue:
        return ProtoEnumValue(
            name=str(args[0]),
            number=_integer(str(args[1])),
            options=self._field_options(args),
            comments=self._comments.leading(meta.line),
        )

    @v_args(meta=True)
    def enum(self, meta: Any, args: list[Any]) -> ProtoEnum:
        return ProtoEnum(
            name=str(args[0]),
            values=_filter(args, ProtoEnumValue),
            options=_filter(args, ProtoOption),
            comments=self._comments.leading(meta.line),
        )

    def rpc_type(self, args: list[Any]) -> _RpcType:
        return _RpcType(name=str(args[-1]), streaming=len(args) == 2)

    def rpc_body(self, args: list[Any]) -> list[ProtoOption]:
        return _filter(args, ProtoOption)

    @v_args(meta=True)
    def rpc(self, meta: Any, args: list[Any]) -> ProtoMethod:
        request, response = _filter(args, _RpcType)
        body = [item for item in args if isinstance(item, list)]
        return ProtoMethod(
            name=str(args[0]),
            input_type=request.name,
            output_type=response.name,
            client_streaming=request.streaming,
            server_streaming=response.streaming,
            options=body[0] if body else [],
            comments=self._comments.leading(meta.line),
        )

    @v_args(meta=True)
    def service(self, meta: Any, args: list[Any]) -> ProtoService:
        return ProtoService(
            name=str(args[0]),
            methods=_filter(args, ProtoMethod),
            options=_filter(args, ProtoOption),
            comments=self._comments.leading(meta.line),
        )


def _get_parser() -> Lark:
    global _g_parser

    if not _g_parser:
        with open(f"{os.path.dirname(__file__)}/proto.lark", encoding="utf-8") as f:
            grammar = f.read()

        _g_parser = Lark(
            grammar,
            parser="lalr",
            propagate_positions=True,
            lexer_callbacks={"COMMENT": _g_comments.append},
        )
    return _g_parser


def parse(text: str, name: str = "<string>") -> ProtoFile:
    """Parse the text of one .proto file.

    Raises:
        ProtoSyntaxError: If the text is not valid proto syntax.
        ProtoCompileError: If a statement is malformed, e.g. two package statements.
    """
    parser = _get_parser()
    _g_comments.clear()

    try:
        tree = parser.parse(text)
    except UnexpectedInput as e:
        message = str(e).strip().splitlines()[0]
        raise ProtoSyntaxError(name, e.line, e.column, message) from e

    try:
        items = TreeTransformer(_CommentIndex(text, list(_g_comments))).transform(tree).children
    except VisitError as e:
        if isinstance(e.orig_exc, ProtoCompileError):
            raise ProtoCompileError(f"{name}: {e.orig_exc}") from e.orig_exc
        raise

    packages = _filter(items, _Package)
    if len(packages) > 1:
        raise ProtoCompileError(f"{name}: multiple package definitions")
    syntax = _find_one(items, _Syntax)
    imports = _filter(items, _Import)

    return ProtoFile(
        name=name,
        package=packages[0].value if packages else "",
        syntax=syntax.value if syntax else "proto2",
        imports=[i.path for i in imports],
        public_imports=[i.path for i in imports if i.kind == "public"],
        messages=_filter(items, ProtoMessage),
        enums=_filter(items, ProtoEnum),
        services=_filter(items, ProtoService),
        options=_filter(items, ProtoOption),
    )
