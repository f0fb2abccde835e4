"""Per-pass service code generation."""

import ast
import logging

from . import client, server
from .adapter import DescriptorService
from .config import GenerationConfig
from .errors import EmissionError
from .types import ServiceDescription

logger = logging.getLogger(__name__)

CLIENT_IMPORTS = [
    "from collections.abc import Iterator",
    "from twinstub.runtime import codec as _codec",
]

SERVER_IMPORTS = [
    "import abc",
    "from collections.abc import Iterator",
    "from twinstub.runtime import codec as _codec",
]


class _Section:
    """Buffered code of one kind (clients or servers) plus what its header needs."""

    def __init__(self, kind: str) -> None:
        self.kind = kind
        self.fragments: list[str] = []
        self.imports: list[str] = []
        self.packages: list[str] = []

    def add(self, package: str, fragment: str) -> None:
        self.fragments.append(fragment)
        if package not in self.packages:
            self.packages.append(package)

    def clear(self) -> None:
        self.fragments.clear()
        self.imports.clear()
        self.packages.clear()


class ServiceGenerator:
    """Collects client and server code for the services of one pass.

    Clients and servers are buffered apart. `finalize` turns each non-empty
    buffer into a complete unit with its own imports, checks that it parses
    and prints it in canonical form.
    """

    def __init__(self, config: GenerationConfig) -> None:
        self.config = config
        self._clients = _Section("client")
        self._servers = _Section("server")

    def generate(self, description: ServiceDescription) -> None:
        service = DescriptorService(description)
        logger.debug("generating %s for %s transport", service.identifier, self.config.transport)

        if self.config.build_server:
            fragment = server.generate(service, self.config, self._servers.imports)
            self._servers.add(service.package, fragment)
        if self.config.build_client:
            fragment = client.generate(service, self.config, self._clients.imports)
            self._clients.add(service.package, fragment)

    def _header(self, section: _Section) -> list[str]:
        attributes = self.config.client_attributes if section.kind == "client" else self.config.server_attributes
        lines = list(CLIENT_IMPORTS if section.kind == "client" else SERVER_IMPORTS)
        if section.kind == "server" and self.config.build_transport:
            lines.append("from concurrent import futures")
        lines.append(self.config.transport.import_line)
        lines.extend(section.imports)
        for package in section.packages:
            for attribute in attributes.for_mod(package):
                if attribute not in lines:
                    lines.append(attribute)
        return lines

    def _emit(self, section: _Section) -> str:
        source = "\n".join(self._header(section)) + "\n\n\n" + "\n\n\n".join(section.fragments)
        try:
            tree = ast.parse(source)
        except SyntaxError as e:
            raise EmissionError(f"generated {section.kind} code is invalid: {e}\n{source}") from e
        section.clear()
        return ast.unparse(tree) + "\n"

    def finalize(self) -> str:
        """Return the canonical text of the buffered clients, then servers, and reset."""
        return "\n\n".join(
            self._emit(section) for section in (self._clients, self._servers) if section.fragments
        )
