"""Policy generation engines."""

from __future__ import annotations

import logging
import os
from abc import ABC, abstractmethod

import requests
import yaml

from .common import MatchSpec, Options
from .image import ImageInfo, check_for_spec
from .report import TextReport
from .templates import PolicyTemplates

log = logging.getLogger(__name__)


class Engine(ABC):
    """A policy generator."""

    @abstractmethod
    def init(self) -> None:
        """Prepare the generator before any image is scanned."""

    @abstractmethod
    def scan(
        self, img: ImageInfo, options: Options
    ) -> tuple[dict[str, bytes], dict[str, MatchSpec]]:
        """Return generated policies and their templates, both keyed by output file."""


def match_tags(spec: MatchSpec, tags: list[str]) -> bool:
    """True when no tags are asked for or the template carries one of them."""
    if not tags:
        return True
    spec_tags = spec.spec.get("tags") or []
    return any(tag in spec_tags for tag in tags)


def check_preconditions(img: ImageInfo, spec: MatchSpec) -> bool:
    """True when the image holds files for every precondition of the template."""
    matches: list[str] = []
    for precondition in spec.precondition:
        matches.extend(check_for_spec(os.path.normpath(precondition), img.file_list))
        if "OPTSCAN" in precondition:
            return True
    return len(matches) >= len(spec.precondition)


def policies_from_image(
    img: ImageInfo,
    options: Options,
    templates: PolicyTemplates,
    report: TextReport | None,
) -> tuple[dict[str, bytes], dict[str, MatchSpec]]:
    """Generate a policy for every template that fits the image."""
    if img.os_name != "linux":
        log.error("non-linux platforms are not supported, yet.")
        return {}, {}
    if report is None:
        raise ValueError("unknown reporter type")
    report.start(img, options.out_dir, templates.current_version)
    policies: dict[str, bytes] = {}
    specs: dict[str, MatchSpec] = {}
    for spec in templates.rules:
        if not match_tags(spec, options.tags):
            continue
        if not check_preconditions(img, spec):
            continue
        data, out_file = img.get_policy(spec, options)
        policies[out_file] = data
        specs[out_file] = spec
    return policies, specs


class GenericPolicy(Engine):
    """Generates policies from the generic policy templates."""

    def __init__(
        self,
        templates: PolicyTemplates | None = None,
        report: TextReport | None = None,
        latest_version: str = "",
        base_url: str = "",
    ) -> None:
        self.templates = templates if templates is not None else PolicyTemplates()
        self.report = report
        self.latest_version = latest_version
        self.base_url = base_url

    def init(self) -> None:
        """Load the templates, updating the cache first when a newer release is known."""
        if not (self.latest_version and self.base_url):
            self.templates.current_release()
            return
        try:
            version = self.templates.download_and_unzip_release(
                self.latest_version, self.base_url
            )
        except (requests.RequestException, OSError, ValueError, yaml.YAMLError) as exc:
            log.error("could not download latest policy-templates version: %s", exc)
        else:
            log.info("policy-templates updated to %s", version)

    def scan(
        self, img: ImageInfo, options: Options
    ) -> tuple[dict[str, bytes], dict[str, MatchSpec]]:
        """Generate policies for an image; failures are logged and give no policies."""
        try:
            return policies_from_image(img, options, self.templates, self.report)
        except (OSError, ValueError) as exc:
            log.error("policy generation from image info failed: %s", exc)
            return {}, {}