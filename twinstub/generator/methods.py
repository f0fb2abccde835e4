"""Per-method view shared by the client and server generators."""

from dataclasses import dataclass

from .adapter import Method, Service
from .attributes import fully_qualified, match_path
from .config import GenerationConfig
from .util import safe_identifier

STREAMING_KINDS = {
    (False, False): "unary_unary",
    (False, True): "unary_stream",
    (True, False): "stream_unary",
    (True, True): "stream_stream",
}


@dataclass
class ServiceView:
    name: str
    identifier: str
    full_name: str
    doc: list[str]


@dataclass
class MethodView:
    name: str
    identifier: str
    path: str
    kind: str
    request: str
    response: str
    request_arg: str
    request_annotation: str
    response_annotation: str
    doc: list[str]


def full_service_name(service: Service, config: GenerationConfig) -> str:
    """The name the service is routed by: "pkg.Service", or "Service" without package emission."""
    if config.emit_package and service.package:
        return f"{service.package}.{service.identifier}"
    return service.identifier


def qualified_name(service: Service) -> str:
    """Dotted package and service name, matched by attribute patterns."""
    return f"{service.package}.{service.identifier}" if service.package else service.identifier


def _comments(config: GenerationConfig, path: str, comment: list[str] | tuple[str, ...]) -> list[str]:
    if any(match_path(pattern, path) for pattern in config.disable_comments):
        return []
    return list(comment)


def service_view(service: Service, config: GenerationConfig) -> ServiceView:
    path = fully_qualified(service.package, service.identifier)
    return ServiceView(
        name=service.name,
        identifier=service.identifier,
        full_name=full_service_name(service, config),
        doc=_comments(config, path, service.comment),
    )


def method_view(
    service: Service,
    method: Method,
    config: GenerationConfig,
    imports: list[str],
    reserved: frozenset[str] = frozenset(),
) -> MethodView:
    """Describe one method for the templates, collecting the imports its types need."""
    request, response = method.request_response_name(config.proto_path, config.compile_well_known_types)
    for reference in (request, response):
        if reference.import_ and reference.import_ not in imports:
            imports.append(reference.import_)

    request_annotation = f"Iterator[{request}]" if method.client_streaming else str(request)
    response_annotation = f"Iterator[{response}]" if method.server_streaming else str(response)
    return MethodView(
        name=safe_identifier(method.name, reserved),
        identifier=method.identifier,
        path=f"/{full_service_name(service, config)}/{method.identifier}",
        kind=STREAMING_KINDS[(method.client_streaming, method.server_streaming)],
        request=str(request),
        response=str(response),
        request_arg="request_iterator" if method.client_streaming else "request",
        request_annotation=request_annotation,
        response_annotation=response_annotation,
        doc=_comments(
            config,
            fully_qualified(service.package, service.identifier, method.identifier),
            method.comment,
        ),
    )
