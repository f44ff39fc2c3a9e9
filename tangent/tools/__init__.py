"""Baseline tools available to every agent."""

from ..core.config import Settings
from ..core.tools import ToolRegistry
from . import clipboard, device, web


def register_default_loaders(registry: ToolRegistry, settings: Settings | None = None) -> None:
    """Queue the baseline tool groups; each loads independently on first use."""
    registry.register_loader(device.load)
    registry.register_loader(clipboard.load)
    registry.register_loader(web.make_loader(settings))


__all__ = ["register_default_loaders"]
