"""Policy templates: parsing, caching and updating the rules used for recommendation."""

from __future__ import annotations

import json
import logging
import os
import shutil
import zipfile
from typing import Any

import requests
import yaml

from .common import MatchSpec, user_home

log = logging.getLogger(__name__)

_MIN_RULES_SIZE = 30
_RULES_FILE = "rules.yaml"
_METADATA_FILE = "metadata.yaml"


def _version_string(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip('"')
    return json.dumps(value).strip('"')


def parse_rules(text: str) -> tuple[str, list[MatchSpec]]:
    """Parse a rules document into its version and its list of policy templates."""
    doc = yaml.safe_load(text) if text else None
    if doc is None:
        doc = {}
    if not isinstance(doc, dict):
        raise ValueError("policy rules must be a mapping")
    rules = [MatchSpec.from_dict(entry) for entry in doc.get("policyRules") or []]
    return _version_string(doc.get("version")), rules


def sanitize_archive_path(dest: str, name: str) -> str:
    """Join an archive member name to the destination, refusing paths that escape it."""
    path = os.path.normpath(os.path.join(dest, name.lstrip("/\\")))
    if path.startswith(os.path.normpath(dest)):
        return path
    raise ValueError(f"content filepath is tainted: {name}")


def unzip(source: str, dest: str) -> None:
    """Extract the regular files of a zip archive below ``dest``."""
    with zipfile.ZipFile(source) as archive:
        for member in archive.infolist():
            if member.is_dir():
                continue
            target = sanitize_archive_path(dest, member.filename)
            os.makedirs(os.path.dirname(target), mode=0o750, exist_ok=True)
            with archive.open(member) as src, open(target, "wb") as out:
                shutil.copyfileobj(src, out)


def download_zip(url: str, destination: str) -> None:
    """Download ``url`` into the file ``destination``."""
    with requests.get(url, stream=True) as response:
        with open(destination, "wb") as out:
            for chunk in response.iter_content(chunk_size=65536):
                out.write(chunk)


def default_cache_dir() -> str:
    """Directory where downloaded policy templates are kept."""
    return os.path.join(user_home(), ".cache", "karmor")


def _metadata_files(root: str) -> list[str]:
    found = []
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames.sort()
        found.extend(
            os.path.join(dirpath, name) for name in sorted(filenames) if name == _METADATA_FILE
        )
    return found


def _read_policy_document(name: str, base: str, root: str) -> dict[str, Any]:
    text = ""
    for candidate in (os.path.join(base, name), os.path.join(root, name)):
        try:
            with open(os.path.normpath(candidate), encoding="utf-8") as fh:
                text = fh.read()
            break
        except OSError:
            continue
    doc = yaml.safe_load(text) if text else None
    if not isinstance(doc, dict):
        raise ValueError(f"policy template {name} is not a mapping")
    return doc


class PolicyTemplates:
    """The policy templates in use, backed by a cache directory."""

    def __init__(self, cache_dir: str | None = None, default_rules: str = "") -> None:
        self.cache_dir = cache_dir if cache_dir is not None else default_cache_dir()
        self.default_rules = default_rules
        self.rules: list[MatchSpec] = []
        self.current_version = ""
        self.latest_version = ""

    @property
    def rules_file(self) -> str:
        """Path of the cached rules file."""
        return os.path.join(self.cache_dir, _RULES_FILE)

    def load(self, text: str) -> str:
        """Replace the rules with those in ``text`` (or the defaults if it is too short)."""
        if len(text.encode()) < _MIN_RULES_SIZE:
            text = self.default_rules
        version, self.rules = parse_rules(text)
        return version

    def current_release(self) -> str:
        """Load the cached rules and return their version."""
        try:
            with open(self.rules_file, encoding="utf-8") as fh:
                text = fh.read()
        except OSError:
            text = ""
        self.current_version = self.load(text)
        return self.current_version

    def update_policy_rules(self, root: str) -> None:
        """Collect the templates of every metadata file under ``root`` and cache them."""
        complete: list[MatchSpec] = []
        version = ""
        for meta in _metadata_files(root):
            with open(meta, encoding="utf-8") as fh:
                version = self.load(fh.read())
            base = os.path.dirname(meta)
            for spec in list(self.rules):
                if spec.yaml:
                    doc = _read_policy_document(spec.yaml, base, root)
                    if "kubearmor" not in str(doc.get("apiVersion", "")):
                        continue
                    spec.spec = dict(doc.get("spec") or {})
                    spec.yaml = ""
                complete.append(spec)
        self.rules = complete
        body = (
            yaml.safe_dump([s.to_dict() for s in complete], sort_keys=False)
            if complete
            else ""
        )
        os.makedirs(self.cache_dir, mode=0o750, exist_ok=True)
        try:
            with open(self.rules_file, "w", encoding="utf-8") as fh:
                fh.write(f"version: {version.strip(chr(34))}\npolicyRules:\n{body}")
        except OSError as exc:
            log.error("failed to write %s: %s", self.rules_file, exc)

    def download_and_unzip_release(self, latest_version: str, base_url: str) -> str:
        """Fetch ``base_url + latest_version + '.zip'`` unless the cache is already current."""
        current = self.current_release()
        self.latest_version = latest_version
        if not latest_version or current == latest_version:
            return latest_version
        log.info("Found outdated version of policy-templates: %s", current)
        log.info("Downloading latest version [%s]", latest_version)
        shutil.rmtree(self.cache_dir, ignore_errors=True)
        os.makedirs(self.cache_dir, mode=0o750, exist_ok=True)
        zip_path = os.path.join(self.cache_dir, ".zip")
        try:
            download_zip(f"{base_url}{latest_version}.zip", zip_path)
        except (requests.RequestException, OSError):
            shutil.rmtree(self.cache_dir, ignore_errors=True)
            raise
        unzip(zip_path, self.cache_dir)
        try:
            os.remove(zip_path)
        except OSError as exc:
            log.error("failed to remove cache files: %s", exc)
        try:
            self.update_policy_rules(self.cache_dir)
        except (OSError, ValueError, yaml.YAMLError) as exc:
            log.error("failed to update policy rules: %s", exc)
        return latest_version