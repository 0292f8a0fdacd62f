"""Container image information and policy generation from image contents."""

from __future__ import annotations

import copy
import json
import logging
import os
import re
from dataclasses import dataclass, field
from typing import Any, Iterable

import yaml

from .common import MatchSpec, Options

log = logging.getLogger(__name__)

_TAG_REPLACE = str.maketrans({"/": "-", ":": "-", "\\": "-", ".": "-", "@": "-"})

_RULE_SECTIONS = (
    ("file", ("matchDirectories", "matchPaths")),
    ("process", ("matchDirectories", "matchPaths")),
    ("network", ("matchProtocols",)),
)


@dataclass(frozen=True)
class DistroRule:
    """A distribution, identified by paths that must all exist in the image."""

    name: str
    paths: tuple[str, ...] = ()


def load_distro_rules(text: str) -> list[DistroRule]:
    """Parse distribution rules from a YAML document with a distroRules list."""
    doc = yaml.safe_load(text) or {}
    if not isinstance(doc, dict):
        raise ValueError("distro rules must be a mapping")
    rules = []
    for entry in doc.get("distroRules") or []:
        paths = tuple((m or {}).get("path", "") for m in entry.get("match") or [])
        rules.append(DistroRule(entry.get("name", ""), paths))
    return rules


def check_for_spec(spec: str, names: Iterable[str]) -> list[str]:
    """Return the names matched by the pattern; it is anchored at the end unless it ends in '*'."""
    if not spec.endswith("*"):
        spec = spec + "$"
    pattern = re.compile(spec)
    return [name for name in names if pattern.search(name)]


def mk_path_from_tag(tag: str) -> str:
    """Turn an image tag into a string usable as a file name."""
    return tag.translate(_TAG_REPLACE)


def shorten_image_name_with_sha256(name: str) -> str:
    """Keep only the first 8 characters of a sha256 digest in an image name."""
    if "@sha256:" in name:
        return name[: len(name) - 56]
    return name


def add_policy_rule(policy: dict[str, Any], spec: dict[str, Any]) -> None:
    """Copy the file, process and network rules of a template spec into a policy."""
    target = policy.setdefault("spec", {})
    for section, keys in _RULE_SECTIONS:
        rules = spec.get(section) or {}
        if any(rules.get(key) for key in keys):
            target[section] = copy.deepcopy(rules)


def _read_json(path: str) -> Any:
    with open(path, "rb") as fh:
        return json.load(fh)


@dataclass
class ImageInfo:
    """What is known about one container image."""

    name: str = ""
    namespace: str = ""
    labels: dict[str, str] = field(default_factory=dict)
    deployment: str = ""
    image: str = ""
    repo_tags: list[str] = field(default_factory=list)
    arch: str = ""
    distro: str = ""
    os_name: str = ""
    file_list: list[str] = field(default_factory=list)
    dir_list: list[str] = field(default_factory=list)
    temp_dir: str = ""

    def get_image_info(self, distro_rules: Iterable[DistroRule]) -> None:
        """Read the image manifest and identify the distribution."""
        matches = check_for_spec(os.path.join(self.temp_dir, "manifest.json"), self.file_list)
        if len(matches) != 1:
            raise ValueError(f"expecting one manifest.json, found {len(matches)}: {matches}")
        self.read_manifest(matches[0])
        self.get_distro(distro_rules)

    def get_distro(self, distro_rules: Iterable[DistroRule]) -> None:
        """Set the distribution from the first rule whose paths all exist."""
        for rule in distro_rules:
            if rule.paths and all(
                check_for_spec(os.path.normpath(self.temp_dir + path), self.file_list)
                for path in rule.paths
            ):
                log.info("Distribution %s", rule.name)
                self.distro = rule.name
                return

    def read_manifest(self, manifest: str) -> None:
        """Read architecture, OS and repository tags from an image manifest."""
        entries = _read_json(manifest)
        if not isinstance(entries, list) or not entries:
            raise ValueError("expecting at least one config in manifest")
        chosen = next((e for e in entries if e.get("RepoTags") is not None), entries[-1])
        config_path = os.path.normpath(
            os.path.join(self.temp_dir, chosen["Config"].lstrip("/"))
        )
        config = _read_json(config_path)
        self.arch = config["architecture"]
        self.os_name = config["os"]
        tags = chosen.get("RepoTags")
        if tags is None:
            self.repo_tags.append(shorten_image_name_with_sha256(self.name))
        else:
            self.repo_tags.extend(tags)

    def policy_name(self, spec: str) -> str:
        """Name of the policy generated for a template."""
        tag = mk_path_from_tag(self.repo_tags[0])
        if not self.deployment:
            return f"{tag}-{spec}"
        return f"{self.deployment}-{tag}-{spec}"

    def policy_dir(self, out_dir: str) -> str:
        """Directory that holds the policies for this image."""
        if not self.deployment:
            tag = mk_path_from_tag(self.repo_tags[0])
            sub = tag if not self.namespace else f"{self.namespace}-{tag}"
        else:
            sub = f"{self.namespace}-{self.deployment}"
        return os.path.join(out_dir, sub)

    def policy_file(self, spec: str, out_dir: str) -> str:
        """Path of the policy file generated for a template."""
        if self.deployment:
            fname = f"{mk_path_from_tag(self.repo_tags[0])}-{spec}.yaml"
        else:
            fname = f"{spec}.yaml"
        return os.path.join(self.policy_dir(out_dir), fname)

    def create_policy(self, match_spec: MatchSpec) -> dict[str, Any]:
        """Build a KubeArmorPolicy for this image from a template."""
        spec = match_spec.spec
        metadata: dict[str, Any] = {"name": self.policy_name(match_spec.name)}
        if self.namespace:
            metadata["namespace"] = self.namespace
        policy_spec: dict[str, Any] = {
            "severity": spec.get("severity", 0),
            "selector": {"matchLabels": {}},
        }
        if spec.get("action"):
            policy_spec["action"] = spec["action"]
        if spec.get("message"):
            policy_spec["message"] = spec["message"]
        if spec.get("tags"):
            policy_spec["tags"] = list(spec["tags"])
        if self.labels:
            policy_spec["selector"]["matchLabels"] = dict(self.labels)
        else:
            container = self.repo_tags[0].split(":")[0]
            policy_spec["selector"]["matchLabels"]["kubearmor.io/container.name"] = container
        policy = {
            "apiVersion": "security.kubearmor.com/v1",
            "kind": "KubeArmorPolicy",
            "metadata": metadata,
            "spec": policy_spec,
        }
        add_policy_rule(policy, spec)
        return policy

    def get_policy(self, match_spec: MatchSpec, options: Options) -> tuple[bytes, str]:
        """Create the policy, make an empty file for it, and return its JSON and path."""
        policy = self.create_policy(match_spec)
        data = json.dumps(policy).encode()
        out_file = self.policy_file(match_spec.name, options.out_dir)
        directory = os.path.dirname(out_file)
        if directory:
            os.makedirs(directory, mode=0o750, exist_ok=True)
        with open(out_file, "w"):
            pass
        return data, out_file