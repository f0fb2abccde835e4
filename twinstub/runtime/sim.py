"""Deterministic in-process transport for simulated clients and servers.

The module mirrors the part of the ``grpc`` API that generated code uses,
so a generated module only differs in which transport it imports.
Every call is delivered synchronously through a `Network`, which keeps a
logical clock, an event log, partitions and per-address latency.

Example:
    network = Network()
    server = sim.server(network=network)
    GreeterServer(MyGreeter()).add_to_server(server)
    server.add_insecure_port("greeter:50051")
    server.start()

    client = GreeterClient(sim.insecure_channel("greeter:50051", network=network))
    reply = client.say_hello(HelloRequest(name="world"))
"""

import enum
import logging
import threading
from collections.abc import Callable, Iterable, Iterator, Sequence
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)

Metadata = Sequence[tuple[str, str]]


class StatusCode(enum.Enum):
    """RPC status codes, with the same names and values as gRPC's."""

    OK = (0, "ok")
    CANCELLED = (1, "cancelled")
    UNKNOWN = (2, "unknown")
    INVALID_ARGUMENT = (3, "invalid argument")
    DEADLINE_EXCEEDED = (4, "deadline exceeded")
    NOT_FOUND = (5, "not found")
    ALREADY_EXISTS = (6, "already exists")
    PERMISSION_DENIED = (7, "permission denied")
    RESOURCE_EXHAUSTED = (8, "resource exhausted")
    FAILED_PRECONDITION = (9, "failed precondition")
    ABORTED = (10, "aborted")
    OUT_OF_RANGE = (11, "out of range")
    UNIMPLEMENTED = (12, "unimplemented")
    INTERNAL = (13, "internal")
    UNAVAILABLE = (14, "unavailable")
    DATA_LOSS = (15, "data loss")
    UNAUTHENTICATED = (16, "unauthenticated")


class RpcError(Exception):
    """Raised on the client side when a call does not complete with OK."""

    def __init__(self, code: StatusCode, details: str) -> None:
        super().__init__(f"{code.name}: {details}")
        self._code = code
        self._details = details

    def code(self) -> StatusCode:
        return self._code

    def details(self) -> str:
        return self._details


class _Abort(Exception):
    def __init__(self, code: StatusCode, details: str) -> None:
        super().__init__(details)
        self.code = code
        self.details = details


class ServicerContext:
    """Per-call context handed to servicer methods."""

    def __init__(self, method: str, metadata: Metadata, deadline: float | None, network: "Network") -> None:
        self._method = method
        self._metadata = tuple(metadata)
        self._deadline = deadline
        self._network = network
        self._code = StatusCode.OK
        self._details = ""

    def abort(self, code: StatusCode, details: str) -> None:
        """End the call with a non-OK status."""
        raise _Abort(code, details)

    def set_code(self, code: StatusCode) -> None:
        self._code = code

    def set_details(self, details: str) -> None:
        self._details = details

    def invocation_metadata(self) -> tuple[tuple[str, str], ...]:
        return self._metadata

    def time_remaining(self) -> float | None:
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - self._network.now)

    def peer(self) -> str:
        return "sim:client"

    def method(self) -> str:
        return self._method


@dataclass
class RpcMethodHandler:
    """Server-side handler of one method, shaped like grpc.RpcMethodHandler."""

    request_streaming: bool
    response_streaming: bool
    request_deserializer: Callable[[bytes], Any] | None = None
    response_serializer: Callable[[Any], bytes] | None = None
    unary_unary: Callable | None = None
    unary_stream: Callable | None = None
    stream_unary: Callable | None = None
    stream_stream: Callable | None = None

    @property
    def behavior(self) -> Callable:
        for candidate in (self.unary_unary, self.unary_stream, self.stream_unary, self.stream_stream):
            if candidate is not None:
                return candidate
        raise ValueError("handler has no behavior")


def unary_unary_rpc_method_handler(behavior, request_deserializer=None, response_serializer=None):
    return RpcMethodHandler(False, False, request_deserializer, response_serializer, unary_unary=behavior)


def unary_stream_rpc_method_handler(behavior, request_deserializer=None, response_serializer=None):
    return RpcMethodHandler(False, True, request_deserializer, response_serializer, unary_stream=behavior)


def stream_unary_rpc_method_handler(behavior, request_deserializer=None, response_serializer=None):
    return RpcMethodHandler(True, False, request_deserializer, response_serializer, stream_unary=behavior)


def stream_stream_rpc_method_handler(behavior, request_deserializer=None, response_serializer=None):
    return RpcMethodHandler(True, True, request_deserializer, response_serializer, stream_stream=behavior)


class GenericRpcHandler:
    """The handlers of one service, by method name."""

    def __init__(self, service: str, method_handlers: dict[str, RpcMethodHandler]) -> None:
        self.service_name = service
        self.method_handlers = dict(method_handlers)

    def lookup(self, method: str) -> RpcMethodHandler | None:
        service, _, name = method.lstrip("/").rpartition("/")
        if service != self.service_name:
            return None
        return self.method_handlers.get(name)


def method_handlers_generic_handler(service: str, method_handlers: dict[str, RpcMethodHandler]) -> GenericRpcHandler:
    return GenericRpcHandler(service, method_handlers)


@dataclass(frozen=True)
class Event:
    """One entry of the network's event log."""

    time: float
    kind: str  # "deliver", "reply", "drop" or "fail"
    address: str
    method: str
    code: StatusCode = StatusCode.OK


@dataclass
class Network:
    """A deterministic network connecting simulated channels and servers.

    Time is logical: each delivery advances the clock by the latency of the
    target address, once for the request and once for the response. A
    call whose round trip exceeds its timeout fails with DEADLINE_EXCEEDED.
    """

    now: float = 0.0
    default_latency: float = 0.0
    events: list[Event] = field(default_factory=list)
    _servers: dict[str, "Server"] = field(default_factory=dict)
    _latency: dict[str, float] = field(default_factory=dict)
    _partitioned: set[str] = field(default_factory=set)
    _lock: threading.RLock = field(default_factory=threading.RLock)

    def bind(self, address: str, server: "Server") -> None:
        with self._lock:
            if address in self._servers and self._servers[address] is not server:
                raise RuntimeError(f"address {address} is already in use")
            self._servers[address] = server

    def unbind(self, address: str) -> None:
        with self._lock:
            self._servers.pop(address, None)

    def set_latency(self, address: str, latency: float) -> None:
        self._latency[address] = latency

    def partition(self, *addresses: str) -> None:
        """Make the given server addresses unreachable."""
        self._partitioned.update(addresses)

    def heal(self, *addresses: str) -> None:
        """Reconnect the given addresses, or all of them if none are given."""
        if addresses:
            self._partitioned.difference_update(addresses)
        else:
            self._partitioned.clear()

    def advance(self, delta: float) -> None:
        self.now += delta

    def reset(self) -> None:
        """Unbind every server and forget time, events and faults."""
        with self._lock:
            self.now = 0.0
            self.events.clear()
            self._servers.clear()
            self._latency.clear()
            self._partitioned.clear()

    def _record(self, kind: str, address: str, method: str, code: StatusCode = StatusCode.OK) -> None:
        self.events.append(Event(self.now, kind, address, method, code))

    def _fail(self, address: str, method: str, code: StatusCode, details: str) -> RpcError:
        self._record("fail", address, method, code)
        logger.debug("%s %s failed: %s %s", address, method, code.name, details)
        return RpcError(code, details)

    def invoke(
        self,
        address: str,
        method: str,
        requests: Iterable[bytes],
        *,
        request_streaming: bool,
        response_streaming: bool,
        timeout: float | None = None,
        metadata: Metadata | None = None,
    ) -> list[bytes]:
        """Deliver one call and return the serialized responses.

        Raises:
            RpcError: If the call does not complete with OK.
        """
        with self._lock:
            start = self.now
            deadline = None if timeout is None else start + timeout
            server = self._servers.get(address)
            if server is None or address in self._partitioned:
                self._record("drop", address, method, StatusCode.UNAVAILABLE)
                raise RpcError(StatusCode.UNAVAILABLE, f"failed to connect to {address}")

            latency = self._latency.get(address, self.default_latency)
            self.now += latency
            if deadline is not None and self.now > deadline:
                raise self._fail(address, method, StatusCode.DEADLINE_EXCEEDED, "deadline exceeded")

            handler = server.lookup(method)
            if handler is None:
                raise self._fail(address, method, StatusCode.UNIMPLEMENTED, f"method {method} not found")
            if handler.request_streaming != request_streaming or handler.response_streaming != response_streaming:
                raise self._fail(address, method, StatusCode.INTERNAL, f"streaming mode mismatch for {method}")

            self._record("deliver", address, method)
            context = ServicerContext(method, metadata or (), deadline, self)
            responses = self._run(handler, requests, context, address, method)

            self.now += latency
            if deadline is not None and self.now > deadline:
                raise self._fail(address, method, StatusCode.DEADLINE_EXCEEDED, "deadline exceeded")
            if context._code is not StatusCode.OK:
                raise self._fail(address, method, context._code, context._details)

            self._record("reply", address, method)
            return responses

    def _run(
        self,
        handler: RpcMethodHandler,
        requests: Iterable[bytes],
        context: ServicerContext,
        address: str,
        method: str,
    ) -> list[bytes]:
        deserialize = handler.request_deserializer or (lambda data: data)
        serialize = handler.response_serializer or (lambda message: message)
        decoded = (deserialize(data) for data in requests)
        if not handler.request_streaming:
            decoded = next(iter(decoded))

        try:
            result = handler.behavior(decoded, context)
            if handler.response_streaming:
                return [serialize(response) for response in result]
            return [serialize(result)]
        except _Abort as e:
            raise self._fail(address, method, e.code, e.details) from e
        except Exception as e:
            logger.debug("handler for %s raised", method, exc_info=True)
            raise self._fail(address, method, StatusCode.UNKNOWN, f"exception calling application: {e}") from e


_default_network = Network()


def default_network() -> Network:
    """The network used when no network is passed explicitly."""
    return _default_network


class _MultiCallable:
    def __init__(
        self,
        channel: "Channel",
        method: str,
        request_serializer: Callable[[Any], bytes] | None,
        response_deserializer: Callable[[bytes], Any] | None,
        request_streaming: bool,
        response_streaming: bool,
    ) -> None:
        self._channel = channel
        self._method = method
        self._serialize = request_serializer or (lambda message: message)
        self._deserialize = response_deserializer or (lambda data: data)
        self._request_streaming = request_streaming
        self._response_streaming = response_streaming

    def __call__(self, request, timeout=None, metadata=None, credentials=None, wait_for_ready=None, compression=None):
        requests = request if self._request_streaming else [request]
        responses = self._channel._invoke(
            self._method,
            [self._serialize(r) for r in requests],
            request_streaming=self._request_streaming,
            response_streaming=self._response_streaming,
            timeout=timeout,
            metadata=metadata,
        )
        if self._response_streaming:
            return (self._deserialize(data) for data in responses)
        return self._deserialize(responses[0])


class Channel:
    """A client channel bound to one target address."""

    def __init__(self, target: str, network: Network) -> None:
        self.target = target
        self.network = network
        self._closed = False

    def _invoke(self, method: str, requests: list[bytes], **kwargs: Any) -> list[bytes]:
        if self._closed:
            raise RpcError(StatusCode.CANCELLED, "channel closed")
        return self.network.invoke(self.target, method, requests, **kwargs)

    def unary_unary(self, method, request_serializer=None, response_deserializer=None, _registered_method=False):
        return _MultiCallable(self, method, request_serializer, response_deserializer, False, False)

    def unary_stream(self, method, request_serializer=None, response_deserializer=None, _registered_method=False):
        return _MultiCallable(self, method, request_serializer, response_deserializer, False, True)

    def stream_unary(self, method, request_serializer=None, response_deserializer=None, _registered_method=False):
        return _MultiCallable(self, method, request_serializer, response_deserializer, True, False)

    def stream_stream(self, method, request_serializer=None, response_deserializer=None, _registered_method=False):
        return _MultiCallable(self, method, request_serializer, response_deserializer, True, True)

    def close(self) -> None:
        self._closed = True

    def __enter__(self) -> "Channel":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


def insecure_channel(target: str, options=None, compression=None, *, network: Network | None = None) -> Channel:
    return Channel(target, network or _default_network)


class Server:
    """A simulated server. Calls run inline on the caller's thread."""

    def __init__(self, network: Network) -> None:
        self.network = network
        self._handlers: list[GenericRpcHandler] = []
        self._addresses: list[str] = []
        self._started = False

    def add_generic_rpc_handlers(self, generic_rpc_handlers: Iterable[GenericRpcHandler]) -> None:
        self._handlers.extend(generic_rpc_handlers)

    def add_insecure_port(self, address: str) -> int:
        self._addresses.append(address)
        if self._started:
            self.network.bind(address, self)
        _host, _, port = address.rpartition(":")
        return int(port) if port.isdigit() else 0

    def lookup(self, method: str) -> RpcMethodHandler | None:
        for handler in self._handlers:
            found = handler.lookup(method)
            if found is not None:
                return found
        return None

    def start(self) -> None:
        for address in self._addresses:
            self.network.bind(address, self)
        self._started = True
        logger.debug("server started on %s", ", ".join(self._addresses))

    def stop(self, grace: float | None) -> threading.Event:
        for address in self._addresses:
            self.network.unbind(address)
        self._started = False
        stopped = threading.Event()
        stopped.set()
        return stopped

    def wait_for_termination(self, timeout: float | None = None) -> bool:
        return not self._started


def server(thread_pool=None, handlers=None, *, network: Network | None = None) -> Server:
    """Create a server. `thread_pool` is accepted for API compatibility and unused."""
    result = Server(network or _default_network)
    if handlers:
        result.add_generic_rpc_handlers(handlers)
    return result
