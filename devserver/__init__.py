"""Local frontend dev server that splices backend-issued tokens into the local build."""

__version__ = "0.1.0"
