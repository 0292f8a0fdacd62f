"""Probe result types and their terminal output."""

from __future__ import annotations

import sys
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Mapping, TextIO

from .table import Table, render_plain


class Color(Enum):
    """Terminal colours used in probe output, as ANSI attribute codes."""

    WHITE = "37"
    BOLD_WHITE = "37;1"
    GREEN = "32"
    ITALIC_WHITE = "3;3"
    RED = "31"
    YELLOW = "33"
    BLUE = "34"


def _lookup(data: Mapping[str, Any], name: str) -> Any:
    if name in data:
        return data[name]
    lowered = name.lower()
    for key, value in data.items():
        if isinstance(key, str) and key.lower() == lowered:
            return value
    return None


@dataclass
class DefaultPosture:
    """Default actions for file, capabilities and network access."""

    file_action: str = ""
    capabilities_action: str = ""
    network_action: str = ""

    @classmethod
    def _from_dict(cls, data: Mapping[str, Any] | None) -> DefaultPosture:
        data = data or {}
        return cls(
            file_action=_lookup(data, "FileAction") or "",
            capabilities_action=_lookup(data, "CapabilitiesAction") or "",
            network_action=_lookup(data, "NetworkAction") or "",
        )

    def to_dict(self) -> dict[str, str]:
        """JSON mapping of the posture."""
        return {
            "FileAction": self.file_action,
            "CapabilitiesAction": self.capabilities_action,
            "NetworkAction": self.network_action,
        }


_PROBE_FIELDS = (
    ("os_image", "OSImage", ""),
    ("kernel_version", "KernelVersion", ""),
    ("kubelet_version", "KubeletVersion", ""),
    ("container_runtime", "ContainerRuntime", ""),
    ("active_lsm", "ActiveLSM", ""),
    ("kernel_header_present", "KernelHeaderPresent", False),
    ("host_security", "HostSecurity", False),
    ("container_security", "ContainerSecurity", False),
    ("host_visibility", "HostVisibility", ""),
)


@dataclass
class KubeArmorProbeData:
    """What KubeArmor reports about the node it runs on."""

    os_image: str = ""
    kernel_version: str = ""
    kubelet_version: str = ""
    container_runtime: str = ""
    active_lsm: str = ""
    kernel_header_present: bool = False
    host_security: bool = False
    container_security: bool = False
    container_default_posture: DefaultPosture = field(default_factory=DefaultPosture)
    host_default_posture: DefaultPosture = field(default_factory=DefaultPosture)
    host_visibility: str = ""

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> KubeArmorProbeData:
        """Build from the probe JSON; key names match case-insensitively."""
        values: dict[str, Any] = {}
        for attr, key, default in _PROBE_FIELDS:
            value = _lookup(data, key)
            values[attr] = default if value is None else value
        values["container_default_posture"] = DefaultPosture._from_dict(
            _lookup(data, "ContainerDefaultPosture")
        )
        values["host_default_posture"] = DefaultPosture._from_dict(
            _lookup(data, "HostDefaultPosture")
        )
        return cls(**values)

    def to_dict(self) -> dict[str, Any]:
        """JSON mapping of the probe data."""
        out: dict[str, Any] = {key: getattr(self, attr) for attr, key, _ in _PROBE_FIELDS}
        out["ContainerDefaultPosture"] = self.container_default_posture.to_dict()
        out["HostDefaultPosture"] = self.host_default_posture.to_dict()
        return out


@dataclass
class Status:
    """Desired, ready and available counts of a workload."""

    desired: str = ""
    ready: str = ""
    available: str = ""

    def to_dict(self) -> dict[str, str]:
        """JSON mapping of the status."""
        return {"desired": self.desired, "ready": self.ready, "available": self.available}


@dataclass
class KubeArmorPodSpec:
    """Container count and image of a KubeArmor pod."""

    running: str = ""
    image_version: str = ""

    def to_dict(self) -> dict[str, str]:
        """JSON mapping of the pod spec."""
        return {"running": self.running, "image_version": self.image_version}


@dataclass
class Visibility:
    """Which kinds of events are visible."""

    file: bool = False
    capabilities: bool = False
    process: bool = False
    network: bool = False

    def to_dict(self) -> dict[str, bool]:
        """JSON mapping of the visibility."""
        return {
            "file": self.file,
            "capabilities": self.capabilities,
            "process": self.process,
            "network": self.network,
        }


@dataclass
class PodInfo:
    """A pod and the policy applied to it."""

    pod_name: str = ""
    policy: str = ""

    def to_dict(self) -> dict[str, str]:
        """JSON mapping of the pod info."""
        return {"pod_name": self.pod_name, "policy": self.policy}


@dataclass
class NamespaceData:
    """Posture, visibility and armored pods of a namespace."""

    ns_posture_string: str = ""
    ns_visibility_string: str = ""
    ns_default_posture: DefaultPosture = field(default_factory=DefaultPosture)
    ns_visibility: Visibility = field(default_factory=Visibility)
    ns_pod_list: list[PodInfo] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """JSON mapping; the display strings are left out."""
        return {
            "default_posture": self.ns_default_posture.to_dict(),
            "visibility": self.ns_visibility.to_dict(),
            "pod_list": [p.to_dict() for p in self.ns_pod_list],
        }


class ProbePrinter:
    """Writes probe results, coloured unless the output mode is ``no-color``."""

    def __init__(self, output: str = "", writer: TextIO | None = None) -> None:
        self.output = output
        self.writer = writer

    @property
    def _out(self) -> TextIO:
        return self.writer if self.writer is not None else sys.stdout

    def printable(self, color: Color | None, text: str) -> str:
        """Return the text wrapped in the colour's escape codes when colour is on."""
        if self.output == "no-color" or color is None:
            return text
        return f"\x1b[{color.value}m{text}\x1b[0m"

    def write(self, color: Color | None, text: str) -> None:
        """Write text, coloured when colour is on."""
        self._out.write(self.printable(color, text))

    def _plain(self, rows: Iterable[Iterable[object]]) -> None:
        self._out.write(render_plain(rows))

    def _bordered(self, title: str, header: list[str], rows, merge: list[int]) -> None:
        self.write(Color.BOLD_WHITE, title)
        table = Table(header, row_line=True, merge_columns=merge)
        table.extend(rows)
        self._out.write(table.render())

    def print_daemonset(self, status: Status) -> None:
        """Print the KubeArmor daemonset status."""
        self.write(Color.GREEN, "\nFound KubeArmor running in Kubernetes\n\n")
        self.write(Color.BOLD_WHITE, "Daemonset :\n")
        self._plain(
            [[" ", "kubearmor ", "Desired: " + status.desired, "Ready: " + status.ready,
              "Available: " + status.available]]
        )

    def print_deployments(self, deployments: Mapping[str, Status] | None) -> None:
        """Print the status of each KubeArmor deployment."""
        self.write(Color.BOLD_WHITE, "Deployments : \n")
        self._plain(
            [" ", name, "Desired: " + s.desired, "Ready: " + s.ready, "Available: " + s.available]
            for name, s in (deployments or {}).items()
        )

    def print_containers(self, containers: Mapping[str, KubeArmorPodSpec] | None) -> None:
        """Print the container count and image of each KubeArmor pod."""
        self.write(Color.BOLD_WHITE, "Containers : \n")
        self._plain(
            [" ", name, "Running: " + spec.running, "Image Version: " + spec.image_version]
            for name, spec in (containers or {}).items()
        )

    def print_probe_nodes(self, nodes: Iterable[KubeArmorProbeData]) -> None:
        """Print the probe data of each node, numbered from 1."""
        for number, data in enumerate(nodes, start=1):
            self.write(Color.BOLD_WHITE, f"Node {number} : \n")
            self.print_probe_output(data)

    def _posture_cells(self, posture: DefaultPosture) -> list[str]:
        return [
            self.printable(Color.GREEN, action) + self.printable(Color.ITALIC_WHITE, f"({label})")
            for action, label in (
                (posture.file_action, "File"),
                (posture.capabilities_action, "Capabilities"),
                (posture.network_action, "Network"),
            )
        ]

    def print_probe_output(self, data: KubeArmorProbeData) -> None:
        """Print the probe data of one node or host."""
        green = lambda text: self.printable(Color.GREEN, text)  # noqa: E731
        rows = [
            [" ", "OS Image:", green(data.os_image)],
            [" ", "Kernel Version:", green(data.kernel_version)],
            [" ", "Kubelet Version:", green(data.kubelet_version)],
            [" ", "Container Runtime:", green(data.container_runtime)],
            [" ", "Active LSM:", green(data.active_lsm)],
            [" ", "Host Security:", green(str(data.host_security).lower())],
            [" ", "Container Security:", green(str(data.container_security).lower())],
            [" ", "Container Default Posture:", *self._posture_cells(data.container_default_posture)],
            [" ", "Host Default Posture:", *self._posture_cells(data.host_default_posture)],
            [" ", "Host Visibility:", green(data.host_visibility)],
        ]
        self._plain(rows)

    def print_annotated_pods(self, rows: Iterable[Iterable[str]]) -> None:
        """Print the armored pods table, merging repeated namespace cells."""
        self._bordered(
            "Armored Up pods : \n",
            ["NAMESPACE", "DEFAULT POSTURE", "VISIBILITY", "NAME", "POLICY"],
            rows,
            [0, 1, 2],
        )

    def print_containers_systemd(self, rows: Iterable[Iterable[str]]) -> None:
        """Print the armored containers table of a systemd host."""
        self._bordered("Armored Up Containers : \n", ["CONTAINER NAME", "POLICY"], rows, [0, 1])

    def print_host_policies(self, rows: Iterable[Iterable[str]]) -> None:
        """Print the host policies table."""
        self._bordered("Host Policies : \n", ["HOST NAME ", "POLICY"], rows, [0, 1])