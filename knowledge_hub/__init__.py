"""Video Knowledge Hub - hybrid video search served over FastMCP."""

from importlib.metadata import version

# Package name must match [project].name in pyproject.toml
# This is the single source of truth for versioning
__version__ = version("video-knowledge-hub")

__all__ = ["__version__"]
