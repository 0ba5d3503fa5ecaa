"""Azure toolkit - ARM resource façades and Azure Functions build tooling."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("az-toolkit")
except PackageNotFoundError:
    __version__ = "0.0.0-dev"
