"""Checks of the local host for KubeArmor support."""

from __future__ import annotations

import json
import logging
import os
import re
import subprocess

from .probe_output import Color, KubeArmorProbeData, ProbePrinter

log = logging.getLogger(__name__)

LSM_PATH = "/sys/kernel/security/lsm"
BTF_PATH = "/sys/kernel/btf/vmlinux"
PROBE_DATA_PATH = "/tmp/karmorProbeData.cfg"
MIN_KERNEL_VERSION = "4.14"

_SEMVER = re.compile(
    r"v(0|[1-9][0-9]*)(?:\.(0|[1-9][0-9]*)(?:\.(0|[1-9][0-9]*))?)?"
    r"(?:-([0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?"
    r"(?:\+[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*)?"
)


def _parse_semver(version: str) -> tuple[int, int, int, str] | None:
    match = _SEMVER.fullmatch(version)
    if match is None:
        return None
    major, minor, patch, pre = match.groups()
    if (minor is None or patch is None) and pre is not None:
        return None
    return int(major), int(minor or 0), int(patch or 0), pre or ""


def _compare_prerelease(a: str, b: str) -> int:
    if a == b:
        return 0
    if not a:
        return 1
    if not b:
        return -1
    for x, y in zip(a.split("."), b.split(".")):
        if x == y:
            continue
        if x.isdigit() and y.isdigit():
            return -1 if int(x) < int(y) else 1
        if x.isdigit():
            return -1
        if y.isdigit():
            return 1
        return -1 if x < y else 1
    return -1 if len(a.split(".")) < len(b.split(".")) else 1


def _semver_compare(v: str, w: str) -> int:
    """Compare semantic versions; invalid ones sort before valid ones and equal each other."""
    pv, pw = _parse_semver(v), _parse_semver(w)
    if pv is None and pw is None:
        return 0
    if pv is None:
        return -1
    if pw is None:
        return 1
    if pv[:3] != pw[:3]:
        return -1 if pv[:3] < pw[:3] else 1
    return _compare_prerelease(pv[3], pw[3])


def kernel_version_supported(version: str) -> bool:
    """Whether the kernel version compares at or above 4.14 as a semantic version."""
    return _semver_compare(version, MIN_KERNEL_VERSION) >= 0


def check_lsm_support(printer: ProbePrinter, lsm: str) -> None:
    """Report how much enforcement the given active LSMs allow."""
    printer.write(None, "\t Enforcement:\n")
    if "bpf" in lsm:
        printer.write(Color.GREEN, f" Full (Supported LSMs: {lsm})")
    elif "selinux" in lsm:
        printer.write(
            Color.YELLOW,
            f" Partial (Supported LSMs: {lsm}) \n\t To have full enforcement support, "
            "apparmor must be supported",
        )
    elif "apparmor" in lsm:
        printer.write(Color.GREEN, f" Full (Supported LSMs: {lsm})")
    else:
        printer.write(
            Color.RED,
            f" None (Supported LSMs: {lsm}) \n\t To have full enforcement support, "
            "AppArmor or BPFLSM must be supported",
        )


def check_audit_support(printer: ProbePrinter, kernel_version: str, headers_present: bool) -> None:
    """Report whether observability is possible with this kernel."""
    supported = kernel_version_supported(kernel_version)
    if supported and headers_present:
        printer.write(Color.GREEN, f" Supported (Kernel Version {kernel_version})")
    elif supported:
        printer.write(Color.RED, " Not Supported : BTF Information/Kernel Headers must be available")
    else:
        printer.write(
            Color.RED,
            f" Not Supported (Kernel Version {kernel_version} \n\t Kernel version must be "
            "greater than 4.14) and BTF Information/Kernel Headers must be available",
        )


def host_supported_lsm(path: str = LSM_PATH) -> str:
    """The host's active LSMs, or ``none`` when they cannot be read."""
    try:
        with open(path, encoding="utf-8") as fh:
            return fh.read()
    except OSError:
        log.error("an error occured when reading file %s", path)
        return "none"


def _present(path: str) -> bool:
    try:
        os.stat(path)
    except FileNotFoundError:
        return False
    except OSError:
        return True
    return True


def check_btf_support() -> bool:
    """Whether the kernel exposes BTF information."""
    return _present(BTF_PATH)


def check_kernel_header_present(release: str | None = None) -> bool:
    """Whether kernel headers for the given (or running) kernel release are installed."""
    if release is None:
        try:
            release = os.uname().release
        except AttributeError:
            return False
    if _present("/etc/redhat-release"):
        path = f"/usr/src/{release}"
    elif _present(f"/lib/modules/{release}/build/Kconfig"):
        path = f"/lib/modules/{release}/build"
    elif _present(f"/lib/modules/{release}/source/Kconfig"):
        path = f"/lib/modules/{release}/source"
    else:
        path = f"/usr/src/linux-headers-{release}"
    return _present(path)


def check_host_audit_support(printer: ProbePrinter) -> None:
    """Report the host's observability support."""
    printer.write(
        Color.YELLOW,
        "\nDidn't find KubeArmor in systemd or Kubernetes, probing for support for KubeArmor\n\n",
    )
    try:
        release = os.uname().release
    except AttributeError:
        printer.write(Color.RED, " Error")
        return
    kernel_version = release.split("-")[0]
    printer.write(Color.BOLD_WHITE, "Host:")
    printer.write(None, "\t Observability/Audit:")
    check_audit_support(
        printer, kernel_version, check_btf_support() or check_kernel_header_present(release)
    )


def is_systemd_mode() -> bool:
    """Whether KubeArmor runs as a systemd service on this host."""
    try:
        result = subprocess.run(
            ["systemctl", "status", "kubearmor"],
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            check=False,
        )
    except OSError:
        return False
    return result.returncode == 0


def probe_systemd_mode(path: str = PROBE_DATA_PATH) -> KubeArmorProbeData:
    """Read the probe data that KubeArmor in systemd mode leaves on the host."""
    with open(path, encoding="utf-8") as fh:
        data = json.load(fh)
    if not isinstance(data, dict):
        raise ValueError("probe data is not a JSON object")
    return KubeArmorProbeData.from_dict(data)