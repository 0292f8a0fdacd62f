"""Collecting and presenting the state of a running KubeArmor installation."""

from __future__ import annotations

import dataclasses
import json
from typing import Any, Iterable, Mapping, Sequence

from .probe_data import armored_container_data, host_policy_data
from .probe_output import (
    Color,
    KubeArmorPodSpec,
    KubeArmorProbeData,
    NamespaceData,
    ProbePrinter,
    Status,
)


def _jsonable(value: Any) -> Any:
    """Turn probe results into plain JSON values."""
    if isinstance(value, NamespaceData):
        return {
            "default_posture": _jsonable(value.ns_default_posture),
            "visibility": _jsonable(value.ns_visibility),
            "pod_list": _jsonable(value.ns_pod_list),
        }
    to_dict = getattr(value, "to_dict", None)
    if callable(to_dict) and not isinstance(value, type):
        return _jsonable(to_dict())
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {
            f.name: _jsonable(getattr(value, f.name)) for f in dataclasses.fields(value)
        }
    if isinstance(value, Mapping):
        return {str(k): _jsonable(v) for k, v in sorted(value.items(), key=lambda kv: str(kv[0]))}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


def _dumps(data: Any) -> str:
    return json.dumps(_jsonable(data), separators=(",", ":"))


def daemonset_status(desired: int, ready: int, available: int) -> Status | None:
    """Status of the KubeArmor daemonset, or ``None`` when it is not running.

    It counts as not running only when no pod is ready and the counts disagree.
    """
    if desired != ready and desired != available and ready == 0:
        return None
    return Status(str(desired), str(ready), str(available))


def deployment_statuses(
    deployments: Iterable[Mapping[str, Any]],
) -> dict[str, Status] | None:
    """Statuses of the KubeArmor deployments that are fully rolled out.

    Each deployment is a mapping with ``name``, ``updatedReplicas``,
    ``readyReplicas`` and ``availableReplicas``. ``None`` when there are none at all.
    """
    items = list(deployments)
    if not items:
        return None
    result: dict[str, Status] = {}
    for item in items:
        desired = int(item.get("updatedReplicas") or 0)
        ready = int(item.get("readyReplicas") or 0)
        available = int(item.get("availableReplicas") or 0)
        if desired == ready == available:
            result[item.get("name", "")] = Status(str(desired), str(ready), str(available))
    return result


def container_specs(
    pods: Iterable[Mapping[str, Any]],
) -> dict[str, KubeArmorPodSpec] | None:
    """Number of containers and first image of each KubeArmor pod; ``None`` when there are none.

    Each pod is a mapping with ``name`` and ``containers``, a list of mappings with ``image``.
    """
    items = list(pods)
    if not items:
        return None
    result: dict[str, KubeArmorPodSpec] = {}
    for pod in items:
        containers: Sequence[Mapping[str, Any]] = pod.get("containers") or []
        if not containers:
            raise ValueError(f"pod {pod.get('name', '')!r} has no containers")
        result[pod.get("name", "")] = KubeArmorPodSpec(
            str(len(containers)), containers[0].get("image", "")
        )
    return result


def systemd_probe_json(
    host: KubeArmorProbeData,
    host_map: Mapping[str, Any],
    container_map: Mapping[str, Sequence[str]],
) -> str:
    """JSON probe result for KubeArmor in systemd mode.

    ``container_map`` holds the policies of each armored container.
    """
    return _dumps(
        {
            "Probe Data": {
                "ArmoredContainers": container_map,
                "Host": host,
                "HostPolicies": host_map,
            }
        }
    )


def kubernetes_probe_json(
    daemonset: Status | None,
    deployments: Mapping[str, Status] | None,
    containers: Mapping[str, KubeArmorPodSpec] | None,
    nodes: Mapping[str, KubeArmorProbeData] | None,
    armored_pods: Mapping[str, Any] | None,
) -> str:
    """JSON probe result for KubeArmor running in Kubernetes."""
    return _dumps(
        {
            "Probe Data": {
                "ArmoredPods": armored_pods,
                "Containers": containers,
                "DaemonsetStatus": daemonset,
                "Deployments": deployments,
                "Nodes": nodes,
            }
        }
    )


def print_systemd_probe(
    printer: ProbePrinter,
    host: KubeArmorProbeData,
    host_map: Mapping[str, Mapping[str, Any]],
    container_list: Iterable[str],
    container_map: Mapping[str, Mapping[str, Any]],
) -> None:
    """Print the probe result for KubeArmor in systemd mode."""
    rows, _ = armored_container_data(container_list, container_map)
    printer.write(Color.GREEN, "\nFound KubeArmor running in Systemd mode \n\n")
    printer.write(Color.BOLD_WHITE, "Host : \n")
    printer.print_probe_output(host)
    if host_map:
        printer.print_host_policies(host_policy_data(host_map))
    printer.print_containers_systemd(rows)


def print_kubernetes_probe(
    printer: ProbePrinter,
    daemonset: Status,
    deployments: Mapping[str, Status] | None,
    containers: Mapping[str, KubeArmorPodSpec] | None,
    nodes: Iterable[KubeArmorProbeData],
    pod_rows: Iterable[Sequence[str]],
) -> None:
    """Print the probe result for KubeArmor running in Kubernetes."""
    printer.print_daemonset(daemonset)
    printer.print_deployments(deployments or {})
    printer.print_containers(containers or {})
    printer.print_probe_nodes(list(nodes))
    printer.print_annotated_pods([list(row) for row in pod_rows])