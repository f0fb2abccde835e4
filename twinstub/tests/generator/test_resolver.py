"""Tests for request/response type resolution."""

import pytest

from twinstub.generator.errors import TypeResolutionError
from twinstub.generator.resolver import TypeReference, resolve


def describe_resolve():
    def prefixes_local_types(expect):
        ref = resolve(".helloworld.HelloRequest", "HelloRequest", False, "_pb")
        expect(str(ref)) == "_pb.HelloRequest"
        expect(ref.import_) == None

    def prefixes_nested_types(expect):
        ref = resolve(".pkg.Outer.Inner", "Outer.Inner", False, "_pb")
        expect(str(ref)) == "_pb.Outer.Inner"

    def uses_well_known_types_unprefixed(expect):
        ref = resolve(".google.protobuf.Empty", "google.protobuf.empty_pb2:Empty", False, "_pb")
        expect(str(ref)) == "google.protobuf.empty_pb2.Empty"
        expect(ref.import_) == "import google.protobuf.empty_pb2"

    def prefixes_well_known_types_compiled_from_source(expect):
        ref = resolve(".google.protobuf.Empty", "Empty", True, "_pb")
        expect(str(ref)) == "_pb.Empty"

    def uses_absolute_paths_unprefixed(expect):
        ref = resolve(".other.Thing", "other_pkg.models:Thing", True, "_pb")
        expect(str(ref)) == "other_pkg.models.Thing"
        expect(ref.import_) == "import other_pkg.models"

    def uses_root_relative_paths_as_is(expect):
        ref = resolve(".common.Status", ".common:Status", False, "_pb")
        expect(str(ref)) == "common.Status"
        expect(ref.import_) == "from . import common"

    def handles_nested_root_relative_modules(expect):
        ref = resolve(".a.b.Msg", ".a.b:Msg", False, "_pb")
        expect(str(ref)) == "b.Msg"
        expect(ref.import_) == "from .a import b"

    def keeps_unit_type_unprefixed_regardless_of_flags(expect):
        for compile_well_known_types in (False, True):
            for prefix in ("_pb", "generated.protos"):
                ref = resolve(".pkg.Unit", "None", compile_well_known_types, prefix)
                expect(str(ref)) == "None"

    def uses_the_configured_prefix(expect):
        ref = resolve(".pkg.Msg", "Msg", False, "generated.protos")
        expect(str(ref)) == "generated.protos.Msg"

    def is_deterministic(expect):
        args = (".helloworld.HelloRequest", "HelloRequest", False, "_pb")
        expect(resolve(*args)) == resolve(*args)

    def rejects_malformed_type_paths():
        with pytest.raises(TypeResolutionError):
            resolve(".pkg.Msg", "Msg-Name", False, "_pb")

    def rejects_malformed_prefixes():
        with pytest.raises(TypeResolutionError):
            resolve(".pkg.Msg", "Msg", False, "1bad")


def describe_type_reference():
    def parses_dotted_paths(expect):
        expect(TypeReference.parse("a.b.C")) == TypeReference("a.b.C")

    def rejects_calls(expect):
        with pytest.raises(TypeResolutionError):
            TypeReference.parse("make_type()")

    def rejects_empty_qualname():
        with pytest.raises(TypeResolutionError):
            TypeReference.parse("pkg.module:")
