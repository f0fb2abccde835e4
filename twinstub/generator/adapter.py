"""Capability interfaces that keep emission independent of the IDL front end."""

from collections.abc import Sequence
from typing import Protocol

from .resolver import TypeReference, resolve
from .types import MethodDescription, ServiceDescription


class Method(Protocol):
    """What the client and server generators need to know about an rpc."""

    @property
    def name(self) -> str: ...

    @property
    def identifier(self) -> str: ...

    @property
    def client_streaming(self) -> bool: ...

    @property
    def server_streaming(self) -> bool: ...

    @property
    def comment(self) -> Sequence[str]: ...

    def request_response_name(
        self, proto_path: str, compile_well_known_types: bool
    ) -> tuple[TypeReference, TypeReference]: ...


class Service(Protocol):
    """What the client and server generators need to know about a service."""

    @property
    def name(self) -> str: ...

    @property
    def package(self) -> str: ...

    @property
    def identifier(self) -> str: ...

    @property
    def comment(self) -> Sequence[str]: ...

    @property
    def methods(self) -> Sequence[Method]: ...


class DescriptorMethod:
    """Method adapter over a compiled `MethodDescription`."""

    def __init__(self, method: MethodDescription) -> None:
        self._method = method

    @property
    def name(self) -> str:
        return self._method.name

    @property
    def identifier(self) -> str:
        return self._method.identifier

    @property
    def client_streaming(self) -> bool:
        return self._method.client_streaming

    @property
    def server_streaming(self) -> bool:
        return self._method.server_streaming

    @property
    def comment(self) -> Sequence[str]:
        return self._method.leading_comments

    def request_response_name(
        self, proto_path: str, compile_well_known_types: bool
    ) -> tuple[TypeReference, TypeReference]:
        """Resolve the request and response type paths for one pass."""
        request = resolve(
            self._method.input_type.idl_name,
            self._method.input_type.target_name,
            compile_well_known_types,
            proto_path,
        )
        response = resolve(
            self._method.output_type.idl_name,
            self._method.output_type.target_name,
            compile_well_known_types,
            proto_path,
        )
        return request, response


class DescriptorService:
    """Service adapter over a compiled `ServiceDescription`."""

    def __init__(self, service: ServiceDescription) -> None:
        self._service = service
        self._methods = tuple(DescriptorMethod(method) for method in service.methods)

    @property
    def name(self) -> str:
        return self._service.name

    @property
    def package(self) -> str:
        return self._service.package

    @property
    def identifier(self) -> str:
        return self._service.identifier

    @property
    def comment(self) -> Sequence[str]:
        return self._service.leading_comments

    @property
    def methods(self) -> Sequence[Method]:
        return self._methods
