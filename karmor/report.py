"""Text report of the policies recommended for each container image."""

from __future__ import annotations

import io
import logging
import os

from .common import MatchSpec
from .image import ImageInfo
from .table import Table

log = logging.getLogger(__name__)

_POLICY_NAME_WIDTH = 35
_RECORD_HEADER = ("Policy", "Short Desc", "Severity", "Action", "Tags")


def wrap_policy_name(name: str, limit: int) -> str:
    """Break a dash-separated policy name into lines of at most ``limit`` characters."""
    parts = name.split("-")
    line = ""
    lines: list[str] = []
    for position, part in enumerate(parts, start=1):
        new_line = line + part + ("-" if position != len(parts) else "")
        if len(new_line) <= limit:
            line = new_line
        else:
            lines.append(line)
            line = new_line[len(line):]
    lines.append(line)
    return "\n".join(lines)


class TextReport:
    """Collects one table of recommended policies per image and writes them as text."""

    def __init__(self) -> None:
        self._out = io.StringIO()
        self._table = Table()

    def _write_image_summary(self, img: ImageInfo, out_dir: str, current_version: str) -> None:
        summary = Table(border=False)
        if img.deployment:
            summary.append(["Deployment", f"{img.namespace}/{img.deployment}"])
        summary.append(["Container", img.repo_tags[0]])
        summary.append(["OS", img.os_name])
        summary.append(["Arch", img.arch])
        summary.append(["Distro", img.distro])
        summary.append(["Output Directory", img.policy_dir(out_dir)])
        summary.append(["policy-template version", current_version])
        self._out.write(summary.render())

    def start(self, img: ImageInfo, out_dir: str, current_version: str) -> None:
        """Begin the section for one image with a summary of the image."""
        self._write_image_summary(img, out_dir, current_version)
        table = Table(_RECORD_HEADER, row_line=True, align_left=True)
        table.extend(self._table.rows)
        self._table = table

    def record(self, match_spec: MatchSpec, policy_name: str) -> None:
        """Add one generated policy to the current section."""
        spec = match_spec.spec
        self._table.append(
            [
                wrap_policy_name(policy_name.rsplit("/", 1)[-1], _POLICY_NAME_WIDTH),
                match_spec.description.tldr,
                str(spec.get("severity", 0)),
                str(spec.get("action", "")),
                "\n".join(spec.get("tags") or []),
            ]
        )

    def section_end(self) -> None:
        """Close the current section, writing its table."""
        self._out.write(self._table.render())
        self._table.clear_rows()
        self._out.write("\n")

    def render(self, out: str) -> None:
        """Write the whole report to a file; a failure is logged."""
        try:
            with open(out, "w", encoding="utf-8") as fh:
                fh.write(self._out.getvalue())
            os.chmod(out, 0o600)
        except OSError as exc:
            log.error("failed to write file: %s", exc)


def make_report(filename: str) -> TextReport:
    """Return the report writer for a report file name."""
    if ".html" in filename:
        raise ValueError("HTML reports are not supported")
    return TextReport()