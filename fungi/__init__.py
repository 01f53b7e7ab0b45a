"""fungi — a self-modifying Fediverse dialogue agent that evolves in the open."""

from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("fungi")
except PackageNotFoundError:
    __version__ = "0.1.0"  # fallback for development
