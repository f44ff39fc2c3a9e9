"""Device tools - host information and battery status."""

import platform
from pathlib import Path
from typing import Any

from ..core.tools import ToolRegistry, ToolSpec

POWER_SUPPLY_DIR = Path("/sys/class/power_supply")


async def get_device_info(args: dict[str, Any]) -> dict[str, Any]:
    """Describe the device the assistant is running on."""
    uname = platform.uname()
    return {
        "os": uname.system,
        "os_version": uname.release,
        "model": uname.machine,
        "name": uname.node,
        "python": platform.python_version(),
    }


async def get_battery_status(args: dict[str, Any]) -> dict[str, Any]:
    """Read battery level and charging state from sysfs."""
    for supply in sorted(POWER_SUPPLY_DIR.glob("*")):
        if _read(supply / "type") != "Battery":
            continue
        capacity = _read(supply / "capacity")
        status = _read(supply / "status") or "Unknown"
        return {
            "level": int(capacity) if capacity and capacity.isdigit() else None,
            "state": status.lower(),
            "charging": status == "Charging",
        }
    raise RuntimeError("No battery found on this device")


def _read(path: Path) -> str | None:
    try:
        return path.read_text().strip()
    except OSError:
        return None


async def load(registry: ToolRegistry) -> None:
    """Register device tools."""
    registry.register(
        "get_device_info",
        ToolSpec(description="Get device brand, model and OS information", executor=get_device_info),
    )
    registry.register(
        "get_battery_status",
        ToolSpec(description="Get battery level and charging state", executor=get_battery_status),
    )
