"""twinstub - Production and simulated RPC stub generator."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("twinstub")
except PackageNotFoundError:
    __version__ = "(local)"
