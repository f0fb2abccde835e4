"""Generated simulated stubs, loaded and called over a simulated network."""

import importlib.util
import sys
from pathlib import Path

import pytest

from twinstub.generator import pipeline
from twinstub.generator.compiler import ProtoCompiler
from twinstub.generator.config import GenerationConfig
from twinstub.runtime import sim

PROTOS = Path(__file__).parent.parent / "generator"


def _load(path, name):
    spec = importlib.util.spec_from_file_location(name, path)
    module = importlib.util.module_from_spec(spec)
    sys.modules[name] = module
    spec.loader.exec_module(module)
    return module


@pytest.fixture
def generated(tmp_path):
    """Generate the routeguide module for the simulated transport and import it."""
    config = GenerationConfig(out_dir=tmp_path, ordered_map=("tags",))
    descriptor_set = ProtoCompiler([PROTOS]).compile([PROTOS / "routeguide.proto"])
    (path,) = pipeline.generate(config, descriptor_set)

    name = f"_twinstub_routeguide_{tmp_path.name}"
    yield _load(path, name)
    sys.modules.pop(name, None)


@pytest.fixture
def network():
    return sim.Network(default_latency=0.01)


@pytest.fixture
def client(generated, network):
    rg = generated

    class RouteGuide(rg.RouteGuideServicer):
        def get_feature(self, request, context):
            if request.latitude < 0:
                context.abort(sim.StatusCode.INVALID_ARGUMENT, "latitude out of range")
            return rg.Feature(name="summit", location=request, kind=rg.Feature.Kind.KIND_LANDMARK)

        def list_features(self, request, context):
            yield rg.Feature(name="lo", location=request.lo)
            yield rg.Feature(name="hi", location=request.hi)

        def record_route(self, request_iterator, context):
            points = list(request_iterator)
            return rg.RouteSummary(point_count=len(points), distance=sum(p.latitude for p in points))

        def route_chat(self, request_iterator, context):
            for note in request_iterator:
                yield rg.RouteNote(
                    location=note.location,
                    message=note.message.upper(),
                    payload=note.payload[::-1],
                    tags=note.tags,
                )

    server = sim.server(network=network)
    rg.RouteGuideServer(RouteGuide()).add_to_server(server)
    server.add_insecure_port("routeguide:50051")
    server.start()
    return rg.RouteGuideClient(sim.insecure_channel("routeguide:50051", network=network))


def describe_generated_module():
    def defines_messages_and_services(generated, expect):
        for name in ("Point", "Feature", "RouteGuideClient", "RouteGuideServicer", "RouteGuideServer"):
            expect(hasattr(generated, name)) == True

    def defaults_fields_to_zero_values(generated, expect):
        summary = generated.RouteSummary()
        expect(summary.point_count) == 0
        expect(summary.features) == []
        expect(summary.note) == None
        expect(generated.Feature().kind) == generated.Feature.Kind.KIND_UNSPECIFIED

    def keeps_servicers_abstract(generated):
        with pytest.raises(TypeError):
            generated.RouteGuideServicer()

    def routes_by_package_and_service(generated, expect):
        expect(generated.RouteGuideServer.SERVICE_NAME) == "routeguide.RouteGuide"


def describe_calls():
    def completes_unary_calls(generated, client, expect):
        feature = client.get_feature(generated.Point(latitude=409146138, longitude=-746188906))
        expect(feature.name) == "summit"
        expect(feature.location) == generated.Point(409146138, -746188906)
        expect(feature.kind) == generated.Feature.Kind.KIND_LANDMARK

    def streams_responses(generated, client, expect):
        rectangle = generated.Rectangle(lo=generated.Point(1, 2), hi=generated.Point(3, 4))
        features = list(client.list_features(rectangle))
        expect([f.name for f in features]) == ["lo", "hi"]
        expect(features[1].location) == generated.Point(3, 4)

    def streams_requests(generated, client, expect):
        points = iter([generated.Point(1, 0), generated.Point(2, 0), generated.Point(3, 0)])
        summary = client.record_route(points)
        expect(summary.point_count) == 3
        expect(summary.distance) == 6
        expect(summary.note) == None

    def streams_both_ways(generated, client, expect):
        notes = [
            generated.RouteNote(message="first", payload=b"\x01\x02", tags={"b": 2, "a": 1}),
            generated.RouteNote(message="second"),
        ]
        replies = list(client.route_chat(iter(notes)))
        expect([r.message for r in replies]) == ["FIRST", "SECOND"]
        expect(replies[0].payload) == b"\x02\x01"
        expect(list(replies[0].tags.items())) == [("a", 1), ("b", 2)]

    def reports_aborts_as_rpc_errors(generated, client, expect):
        with pytest.raises(sim.RpcError) as e:
            client.get_feature(generated.Point(latitude=-1))
        expect(e.value.code()) == sim.StatusCode.INVALID_ARGUMENT

    def fails_while_partitioned(generated, client, network, expect):
        network.partition("routeguide:50051")
        with pytest.raises(sim.RpcError) as e:
            client.get_feature(generated.Point())
        expect(e.value.code()) == sim.StatusCode.UNAVAILABLE

        network.heal("routeguide:50051")
        expect(client.get_feature(generated.Point()).name) == "summit"


def describe_transport_helpers():
    def serves_and_connects_on_the_default_network(generated, expect):
        class Stub(generated.RouteGuideServicer):
            def get_feature(self, request, context):
                return generated.Feature(name="default")

            def list_features(self, request, context):
                return iter(())

            def record_route(self, request_iterator, context):
                return generated.RouteSummary()

            def route_chat(self, request_iterator, context):
                return iter(())

        server = generated.RouteGuideServer(Stub()).serve("default-routeguide:1")
        try:
            client = generated.RouteGuideClient.connect("default-routeguide:1")
            expect(client.get_feature(generated.Point()).name) == "default"
        finally:
            server.stop(None)
            sim.default_network().reset()
