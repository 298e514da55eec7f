"""Submodule bump orchestration for a superproject and its git submodules."""

__version__ = "0.1.0"

__all__ = ["__version__"]
