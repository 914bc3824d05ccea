"""
Device health readings via psutil.

Battery and network values are read on demand; nothing is cached.
Machines without a battery report None from battery().
"""

from __future__ import annotations

import platform

import psutil

from services.protocols import BatteryInfo, NetworkInfo


_WIRELESS_PREFIXES = ("wl", "wlan", "wifi", "en1", "airport")
_CELLULAR_PREFIXES = ("wwan", "ppp", "rmnet")


def _interface_type(name: str) -> str:
    lowered = name.lower()
    if lowered.startswith(_WIRELESS_PREFIXES) or "wi-fi" in lowered:
        return "WiFi"
    if lowered.startswith(_CELLULAR_PREFIXES):
        return "Cellular"
    return "Ethernet"


class PsutilDeviceInfo:
    """DeviceInfo implementation for desktop machines."""

    def battery(self) -> BatteryInfo | None:
        reading = psutil.sensors_battery()
        if reading is None:
            return None
        return BatteryInfo(
            percentage=int(round(reading.percent)),
            is_charging=bool(reading.power_plugged),
            temperature_c=self._battery_temperature(),
        )

    def network(self) -> NetworkInfo:
        stats = psutil.net_if_stats()
        for name, st in stats.items():
            if not st.isup or name.lower().startswith(("lo", "docker", "veth", "br-")):
                continue
            return NetworkInfo(
                type=_interface_type(name),
                is_connected=True,
                speed_mbps=max(int(st.speed), 0),
            )
        return NetworkInfo(type="Disconnected", is_connected=False)

    def summary(self) -> str:
        lines = [f"Device: {platform.node()} ({platform.system()} {platform.release()})"]

        battery = self.battery()
        if battery is None:
            lines.append("Battery: none (mains power)")
        else:
            line = f"Battery: {battery.percentage}%"
            if battery.is_charging:
                line += " (Charging)"
            if battery.temperature_c is not None:
                line += f" | {battery.temperature_c:.1f}°C"
            lines.append(line)

        network = self.network()
        line = f"Network: {network.type}"
        if network.is_connected and network.speed_mbps:
            line += f" | Link: {network.speed_mbps} Mbps"
        lines.append(line)

        lines.append(f"CPU: {psutil.cpu_percent(interval=None):.0f}% | Memory: {psutil.virtual_memory().percent:.0f}%")
        return "\n".join(lines)

    @staticmethod
    def _battery_temperature() -> float | None:
        reader = getattr(psutil, "sensors_temperatures", None)
        if reader is None:
            return None
        readings = reader()
        for label in ("BAT0", "BAT1", "battery"):
            entries = readings.get(label)
            if entries:
                return float(entries[0].current)
        return None
