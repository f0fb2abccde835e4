"""Client stub generator."""

from .adapter import Service
from .codegen import env
from .config import GenerationConfig
from .methods import method_view, qualified_name, service_view

template = env.get_template("client.py.j2")

# Attribute names of the generated client class itself.
RESERVED_NAMES = frozenset(["channel", "connect"])


def generate(service: Service, config: GenerationConfig, imports: list[str]) -> str:
    """Render the client class of `service`, appending the imports it needs to `imports`."""
    methods = [method_view(service, m, config, imports, RESERVED_NAMES) for m in service.methods]
    return template.render(
        service=service_view(service, config),
        methods=methods,
        decorators=config.client_attributes.for_struct(qualified_name(service)),
        build_transport=config.build_transport,
    )
