"""Tests for message module generation."""

import ast
from pathlib import Path

import pytest

from twinstub.generator import pipeline
from twinstub.generator.compiler import ProtoCompiler
from twinstub.generator.config import GenerationConfig
from twinstub.generator.errors import BuildError, EmissionError, ProtoCompileError

HERE = Path(__file__).parent


def _render(out_dir, proto="routeguide.proto", includes=(HERE,), **settings):
    config = GenerationConfig(out_dir=out_dir, **settings)
    descriptor_set = ProtoCompiler(includes).compile([Path(includes[0]) / proto])
    (path,) = pipeline.generate(config, descriptor_set)
    return path.read_text()


def _lines(text):
    return [line.strip() for line in text.splitlines()]


def describe_module():
    def names_the_module_after_the_package(out_dir, expect):
        config = GenerationConfig(out_dir=out_dir)
        descriptor_set = ProtoCompiler([HERE]).compile([HERE / "routeguide.proto"])
        expect(pipeline.generate(config, descriptor_set)) == [out_dir / "routeguide.py"]

    def is_valid_python(out_dir, expect):
        tree = ast.parse(_render(out_dir))
        classes = [node.name for node in tree.body if isinstance(node, ast.ClassDef)]
        expect(classes[:5]) == ["Point", "Rectangle", "Feature", "RouteNote", "RouteSummary"]

    def starts_with_a_header(out_dir, expect):
        text = _render(out_dir)
        expect(text.splitlines()[0]) == "# Generated by twinstub from routeguide.proto. Do not edit."
        expect(text).includes("from __future__ import annotations")

    def separates_definitions_with_two_blank_lines(out_dir, expect):
        text = _render(out_dir, proto="greeter.proto")
        expect(text).includes("from twinstub.runtime import message as _message\n\n\n@dataclass\nclass HelloRequest(")
        expect(text).includes("\n\n\n@dataclass\nclass HelloReply(")
        expect(text).includes("\n\n\n_pb = _sys.modules[__name__]\n\n\n")
        expect(text).excludes("\n\n\n\n")
        expect(text.endswith("\n")) == True
        expect(text.endswith("\n\n")) == False

    def binds_the_module_alias_for_services(out_dir, expect):
        expect(_render(out_dir)).includes("_pb = _sys.modules[__name__]")

    def skips_the_alias_without_services(out_dir, expect):
        text = _render(out_dir, build_client=False, build_server=False)
        expect(text).excludes("_pb = ")
        expect(text).excludes("class RouteGuideClient")


def describe_messages():
    def maps_scalar_fields(out_dir, expect):
        lines = _lines(_render(out_dir))
        expect(lines).includes("latitude: int = _message.message_field('int32', number=1, default=0)")
        expect(lines).includes("message: str = _message.message_field('string', number=2, default=\"\")")
        expect(lines).includes("payload: bytes = _message.message_field('bytes', number=3, default=b\"\")")

    def defaults_message_fields_to_fresh_instances(out_dir, expect):
        lines = _lines(_render(out_dir))
        expect(lines).includes(
            "location: Point = _message.message_field('message', number=2, default_factory=lambda: Point())"
        )

    def nests_enums_and_defaults_to_their_first_value(out_dir, expect):
        text = _render(out_dir)
        expect(text).includes("    class Kind(_enum.IntEnum):\n        KIND_UNSPECIFIED = 0\n        KIND_LANDMARK = 1\n")
        expect(_lines(text)).includes(
            "kind: Feature.Kind = _message.message_field('enum', number=3, default_factory=lambda: Feature.Kind(0))"
        )

    def maps_repeated_map_and_oneof_fields(out_dir, expect):
        lines = _lines(_render(out_dir))
        expect(lines).includes(
            "features: list[Feature] = _message.message_field('message', number=2, shape=\"repeated\", default_factory=list)"
        )
        expect(lines).includes(
            "tags: dict[str, int] = _message.message_field('int32', number=4, shape=\"map\", default_factory=dict)"
        )
        expect(lines).includes("note: str | None = _message.message_field('string', number=3, default=None)")

    def emits_comments_as_docstrings(out_dir, expect):
        text = _render(out_dir, proto="greeter.proto")
        expect(text).includes('class HelloRequest(_message.Message):\n    "The request message containing the user\'s name."\n')

    def can_disable_comments(out_dir, expect):
        text = _render(out_dir, proto="greeter.proto", disable_comments=frozenset(["."]))
        expect(text).excludes("The request message")
        expect(text).excludes("Sends a greeting")


def describe_field_settings():
    def boxes_configured_fields(out_dir, expect):
        lines = _lines(_render(out_dir, boxed=(".routeguide.Rectangle.lo",)))
        expect(lines).includes(
            "lo: Point | None = _message.message_field('message', number=1, boxed=True, default=None)"
        )
        expect(lines).includes(
            "hi: Point = _message.message_field('message', number=2, default_factory=lambda: Point())"
        )

    def boxes_recursive_fields(tmp_path, out_dir, expect):
        (tmp_path / "tree.proto").write_text("message Node { Node next = 1; repeated Node children = 2; }")
        lines = _lines(_render(out_dir, proto="tree.proto", includes=(tmp_path,)))
        expect(lines).includes(
            "next: Node | None = _message.message_field('message', number=1, boxed=True, default=None)"
        )
        expect(lines).includes(
            "children: list[Node] = _message.message_field('message', number=2, shape=\"repeated\", default_factory=list)"
        )
        expect((out_dir / "_.py").is_file()) == True

    def orders_configured_maps(out_dir, expect):
        lines = _lines(_render(out_dir, ordered_map=("tags",)))
        expect(lines).includes(
            "tags: dict[str, int] = _message.message_field('int32', number=4, shape=\"map\", ordered=True, default_factory=dict)"
        )

    def decodes_configured_bytes_without_copying(out_dir, expect):
        lines = _lines(_render(out_dir, zero_copy_bytes=(".routeguide.RouteNote.payload",)))
        expect(lines).includes(
            "payload: memoryview = _message.message_field('bytes', number=3, zero_copy=True, default_factory=lambda: memoryview(b\"\"))"
        )

    def appends_field_attributes(out_dir, expect):
        lines = _lines(_render(out_dir, field_attributes=(("Point.latitude", "repr=False"),)))
        expect(lines).includes("latitude: int = _message.message_field('int32', number=1, default=0, repr=False)")
        expect(lines).includes("longitude: int = _message.message_field('int32', number=2, default=0)")

    def decorates_matching_types(out_dir, expect):
        text = _render(
            out_dir,
            type_attributes=((".routeguide.Feature", "@typing.final"),),
            message_attributes=(("Point", "functools.total_ordering"),),
            enum_attributes=(("Kind", "enum.unique"),),
        )
        expect(text).includes("@functools.total_ordering\n@dataclass\nclass Point(")
        expect(text).includes("@typing.final\n@dataclass\nclass Feature(")
        expect(text).includes("    @typing.final\n    @enum.unique\n    class Kind(")

    def rejects_invalid_field_attributes(out_dir):
        with pytest.raises(EmissionError):
            _render(out_dir, field_attributes=(("Point.latitude", "repr="),))


def describe_references():
    def uses_extern_paths(out_dir, expect):
        text = _render(out_dir, extern_paths=((".routeguide.Point", "geo.types:Point"),))
        expect(text).includes("\nimport geo.types\n")
        expect(_lines(text)).includes(
            "lo: geo.types.Point = _message.message_field('message', number=1, "
            "resolve=lambda: geo.types.Point, default_factory=lambda: geo.types.Point())"
        )
        expect(text).includes("request_deserializer=_codec.decoder(geo.types.Point)")

    def maps_external_enums_to_int(out_dir, expect):
        text = _render(out_dir, extern_paths=((".routeguide.Feature.Kind", "geo.types:Kind"),))
        expect(_lines(text)).includes("kind: int = _message.message_field('enum', number=3, default=0)")

    def uses_protobuf_well_known_types(tmp_path, out_dir, expect):
        (tmp_path / "log.proto").write_text(
            'syntax = "proto3";\npackage log;\nimport "google/protobuf/timestamp.proto";\n'
            "message Entry { google.protobuf.Timestamp at = 1; }\n"
        )
        text = _render(out_dir, proto="log.proto", includes=(tmp_path,))
        expect(text).includes("\nimport google.protobuf.timestamp_pb2\n")
        expect(_lines(text)).includes(
            "at: google.protobuf.timestamp_pb2.Timestamp = _message.message_field('message', number=1, "
            "resolve=lambda: google.protobuf.timestamp_pb2.Timestamp, "
            "default_factory=lambda: google.protobuf.timestamp_pb2.Timestamp())"
        )

    def roots_other_packages_at_their_module(tmp_path, out_dir, expect):
        (tmp_path / "common.proto").write_text("package common;\nmessage Status { int32 code = 1; }\n")
        (tmp_path / "api.proto").write_text(
            'package api;\nimport "common.proto";\nmessage Reply { common.Status status = 1; }\n'
        )
        text = _render(out_dir, proto="api.proto", includes=(tmp_path,))
        expect(text).includes("\nfrom . import common\n")
        expect(_lines(text)).includes(
            "status: common.Status = _message.message_field('message', number=1, "
            "default_factory=lambda: common.Status())"
        )


def describe_pipeline():
    def writes_an_include_file(out_dir, expect):
        config = GenerationConfig(out_dir=out_dir, include_file=Path("protos.py"))
        descriptor_set = ProtoCompiler([HERE]).compile([HERE / "greeter.proto", HERE / "routeguide.proto"])
        pipeline.generate(config, descriptor_set)
        expect((out_dir / "protos.py").read_text()) == (
            "# Generated by twinstub. Do not edit.\nfrom . import helloworld\nfrom . import routeguide\n"
        )

    def leaves_unchanged_files_alone(tmp_path, expect):
        path = tmp_path / "x.py"
        expect(pipeline.write_if_changed(path, "x = 1\n")) == True
        expect(pipeline.write_if_changed(path, "x = 1\n")) == False
        expect(pipeline.write_if_changed(path, "x = 2\n")) == True

    def writes_and_reads_descriptor_sets(tmp_path, expect):
        path = tmp_path / "descriptors.json"
        config = GenerationConfig(file_descriptor_set_path=path)
        compiled = pipeline.load_descriptor_set(config, [HERE / "greeter.proto"], [HERE])
        expect(path.is_file()) == True

        skipped = GenerationConfig(file_descriptor_set_path=path, skip_protoc_run=True)
        expect(pipeline.load_descriptor_set(skipped, ["ignored.proto"], [])) == compiled

    def needs_a_path_to_skip_compiling():
        with pytest.raises(BuildError):
            pipeline.load_descriptor_set(GenerationConfig(skip_protoc_run=True), [], [])

    def rejects_corrupt_descriptor_sets(tmp_path, expect):
        path = tmp_path / "descriptors.json"
        path.write_text("not json")
        config = GenerationConfig(file_descriptor_set_path=path, skip_protoc_run=True)
        with pytest.raises(BuildError) as e:
            pipeline.load_descriptor_set(config, [], [])
        expect(isinstance(e.value, OSError)) == True

    def rejects_descriptor_sets_missing_a_generated_file(tmp_path, out_dir):
        path = tmp_path / "descriptors.json"
        path.write_text('{"files": [], "file_to_generate": ["greeter.proto"]}')
        config = GenerationConfig(out_dir=out_dir, file_descriptor_set_path=path, skip_protoc_run=True)
        descriptor_set = pipeline.load_descriptor_set(config, [], [])
        with pytest.raises(ProtoCompileError):
            pipeline.generate(config, descriptor_set)
