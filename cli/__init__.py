"""Operator commands for a deployed pipes test stack."""

from importlib import import_module
from types import ModuleType

__all__: list[str] = []


# Resolve ``cli.app`` lazily to the module, not the Typer instance, so that
# ``monkeypatch.setattr("cli.app.<name>", ...)`` reaches module globals.
def __getattr__(name: str) -> ModuleType:
    if name != "app":
        raise AttributeError(f"module 'cli' has no attribute {name!r}")
    return import_module("cli.app")
