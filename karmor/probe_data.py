"""Shaping of probe results: postures, armored containers and annotated pods."""

from __future__ import annotations

from typing import Any, Iterable, Mapping, MutableSequence

from .probe_output import (
    DefaultPosture,
    KubeArmorProbeData,
    NamespaceData,
    PodInfo,
    Visibility,
)


def posture_data(probe_data: Iterable[KubeArmorProbeData]) -> dict[str, str]:
    """Default container posture and visibility taken from the first probed node."""
    first = next(iter(probe_data), None)
    if first is None:
        return {}
    posture = first.container_default_posture
    return {
        "filePosture": posture.file_action,
        "capabilitiesPosture": posture.capabilities_action,
        "networkPosture": posture.network_action,
        "visibility": first.host_visibility,
    }


def armored_container_data(
    container_list: Iterable[str],
    container_map: Mapping[str, Mapping[str, Any]],
) -> tuple[list[list[str]], dict[str, list[str]]]:
    """Rows of (container, policy) and the policies grouped by container.

    Containers without an entry in the map get one row with an empty policy;
    those whose entry has ``PolicyEnabled`` other than 1 get none.
    """
    rows: list[list[str]] = []
    for name in container_list:
        entry = container_map.get(name)
        if entry is None:
            rows.append([name, ""])
        elif entry.get("PolicyEnabled") == 1:
            rows.extend([name, policy] for policy in entry.get("PolicyList") or [])
    grouped: dict[str, list[str]] = {}
    for name, policy in rows:
        grouped.setdefault(name, []).append(policy)
    return rows, grouped


def host_policy_data(host_map: Mapping[str, Mapping[str, Any]]) -> list[list[str]]:
    """Rows of (host, policy) for every host policy."""
    return [
        [host, policy]
        for host, entry in host_map.items()
        for policy in entry.get("PolicyList") or []
    ]


def namespace_posture(
    namespaces: Mapping[str, Mapping[str, str] | None],
    posture: Mapping[str, str],
) -> dict[str, NamespaceData]:
    """Posture and visibility of each namespace, its annotations overriding the defaults."""
    result: dict[str, NamespaceData] = {}
    for name, annotations in namespaces.items():
        annotations = annotations or {}
        file_posture = annotations.get("kubearmor-file-posture") or posture.get("filePosture", "")
        cap_posture = annotations.get("kubearmor-capabilities-posture") or posture.get(
            "capabilitiesPosture", ""
        )
        net_posture = annotations.get("kubearmor-network-posture") or posture.get(
            "networkPosture", ""
        )
        visibility = annotations.get("kubearmor-visibility") or posture.get("visibility", "")
        result[name] = NamespaceData(
            ns_posture_string=(
                f"File({file_posture}), Capabilities({cap_posture}), Network ({net_posture})"
            ),
            ns_visibility_string=visibility,
            ns_default_posture=DefaultPosture(file_posture, cap_posture, net_posture),
            ns_visibility=Visibility(
                file="file" in visibility,
                capabilities="capabilities" in visibility,
                process="process" in visibility,
                network="network" in visibility,
            ),
        )
    return result


def add_policy_to_existing_row(
    rows: Iterable[MutableSequence[str]], name: str, policy: str
) -> bool:
    """Add the policy to the first row naming the pod; False if there is none."""
    for row in rows:
        if name in row:
            row[4] = policy if row[4] == "" else row[4] + "\n" + policy
            return True
    return False


def annotated_pods(
    pods: Iterable[Mapping[str, Any]],
    namespaces: Mapping[str, Mapping[str, str] | None],
    policies: Mapping[str, Iterable[str]],
    posture: Mapping[str, str],
) -> tuple[dict[str, dict[str, NamespaceData]], list[list[str]]]:
    """Rows of armored pods with their policies, sorted by namespace, and the same grouped.

    Each pod is a mapping with ``name``, ``namespace``, ``annotations`` and ``labels``;
    ``policies`` maps a policy name to its selector labels as ``key:value`` strings.
    """
    ns_data = namespace_posture(namespaces, posture)
    rows: list[list[str]] = []
    for pod in pods:
        if (pod.get("annotations") or {}).get("kubearmor-policy") != "enabled":
            continue
        namespace = pod.get("namespace", "")
        name = pod.get("name", "")
        data = ns_data.get(namespace)
        if data is None:
            rows.append([namespace, "", "", name, ""])
            data = NamespaceData()
        else:
            rows.append(
                [namespace, data.ns_posture_string, data.ns_visibility_string, name, ""]
            )
        labels = {f"{k}:{v}" for k, v in (pod.get("labels") or {}).items()}
        for policy_name, selector in policies.items():
            if set(selector) <= labels and not add_policy_to_existing_row(
                rows, name, policy_name
            ):
                rows.append(
                    [namespace, data.ns_posture_string, data.ns_visibility_string, name,
                     policy_name]
                )
    rows.sort(key=lambda row: row[0])

    armored: dict[str, NamespaceData] = {}
    for row in rows:
        entry = armored.get(row[0])
        if entry is None:
            source = ns_data.get(row[0], NamespaceData())
            entry = armored[row[0]] = NamespaceData(
                ns_default_posture=source.ns_default_posture,
                ns_visibility=source.ns_visibility,
            )
        entry.ns_pod_list.append(PodInfo(pod_name=row[3], policy=row[4]))
    return {"Namespaces": armored}, rows