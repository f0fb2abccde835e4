"""Server stub generator."""

from .adapter import Service
from .codegen import env
from .config import GenerationConfig
from .methods import method_view, qualified_name, service_view

template = env.get_template("server.py.j2")


def generate(service: Service, config: GenerationConfig, imports: list[str]) -> str:
    """Render the servicer base class and server of `service`.

    Servicer methods are abstract unless default stubs are enabled, in which
    case they abort with UNIMPLEMENTED. With `use_shared_self` the server
    looks up its servicer on every call, so `inner` can be replaced while
    serving.
    """
    methods = [method_view(service, m, config, imports) for m in service.methods]
    return template.render(
        service=service_view(service, config),
        methods=methods,
        decorators=config.server_attributes.for_struct(qualified_name(service)),
        default_stubs=config.generate_default_stubs,
        shared_self=config.use_shared_self,
        build_transport=config.build_transport,
    )
