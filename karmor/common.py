"""Types shared by the policy recommendation code."""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from typing import Any


@dataclass
class Ref:
    """A named reference with one or more links."""

    name: str = ""
    url: list[str] = field(default_factory=list)

    @classmethod
    def _from_dict(cls, data: dict[str, Any] | None) -> Ref:
        data = data or {}
        return cls(name=data.get("name") or "", url=list(data.get("url") or []))

    def _to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "url": list(self.url)}


@dataclass
class Description:
    """Short and detailed description of a policy rule."""

    refs: list[Ref] = field(default_factory=list)
    tldr: str = ""
    detailed: str = ""

    @classmethod
    def _from_dict(cls, data: dict[str, Any] | None) -> Description:
        data = data or {}
        return cls(
            refs=[Ref._from_dict(r) for r in data.get("refs") or []],
            tldr=data.get("tldr") or "",
            detailed=data.get("detailed") or "",
        )

    def _to_dict(self) -> dict[str, Any]:
        return {
            "refs": [r._to_dict() for r in self.refs],
            "tldr": self.tldr,
            "detailed": self.detailed,
        }


@dataclass
class MatchSpec:
    """A policy template: preconditions on the image and the policy spec to apply."""

    name: str = ""
    precondition: list[str] = field(default_factory=list)
    description: Description = field(default_factory=Description)
    yaml: str = ""
    spec: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> MatchSpec:
        """Build a spec from its JSON/YAML mapping."""
        data = data or {}
        return cls(
            name=data.get("name") or "",
            precondition=list(data.get("precondition") or []),
            description=Description._from_dict(data.get("description")),
            yaml=data.get("yaml") or "",
            spec=dict(data.get("spec") or {}),
        )

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON/YAML mapping of this spec; an empty spec is left out."""
        out: dict[str, Any] = {
            "name": self.name,
            "precondition": list(self.precondition),
            "description": self.description._to_dict(),
            "yaml": self.yaml,
        }
        if self.spec:
            out["spec"] = dict(self.spec)
        return out


@dataclass
class Options:
    """Options for policy recommendation."""

    images: list[str] = field(default_factory=list)
    labels: list[str] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)
    policy: list[str] = field(default_factory=list)
    namespace: str = ""
    out_dir: str = ""
    report_file: str = ""
    config: str = ""


def user_home() -> str:
    """Return the user's home directory as given by the environment."""
    if sys.platform.startswith("win"):
        home = os.environ.get("HOMEDRIVE", "") + os.environ.get("HOMEPATH", "")
        if not home:
            home = os.environ.get("USERPROFILE", "")
        return home
    return os.environ.get("HOME", "")