import io
import os
import zipfile

import pytest
import requests
import responses

from karmor.templates import (
    PolicyTemplates,
    download_zip,
    parse_rules,
    sanitize_archive_path,
    unzip,
)

RULES = """version: v1.2
policyRules:
- name: bash-block
  precondition:
  - /usr/bin/bash
  description:
    tldr: block bash
"""

METADATA = """version: v2
policyRules:
- name: with-policy
  precondition: []
  yaml: policy.yaml
- name: cilium-one
  yaml: cilium.yaml
- name: plain
  precondition:
  - /bin/sh
"""

POLICY = """apiVersion: security.kubearmor.com/v1
kind: KubeArmorPolicy
spec:
  action: Block
  severity: 3
"""

CILIUM = """apiVersion: cilium.io/v2
kind: CiliumNetworkPolicy
spec: {}
"""


def _templates_zip():
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w") as zf:
        zf.writestr("policy-templates-v2/", "")
        zf.writestr("policy-templates-v2/pkg/metadata.yaml", METADATA)
        zf.writestr("policy-templates-v2/pkg/policy.yaml", POLICY)
        zf.writestr("policy-templates-v2/pkg/cilium.yaml", CILIUM)
    return buf.getvalue()


def test_parse_rules_reads_version_and_rules():
    version, rules = parse_rules(RULES)
    assert version == "v1.2"
    assert [r.name for r in rules] == ["bash-block"]
    assert rules[0].precondition == ["/usr/bin/bash"]


def test_parse_rules_empty_text():
    assert parse_rules("") == ("", [])


def test_sanitize_archive_path_inside(tmp_path):
    dest = str(tmp_path)
    assert sanitize_archive_path(dest, "a/b.txt") == os.path.join(dest, "a", "b.txt")


def test_sanitize_archive_path_rejects_escape(tmp_path):
    with pytest.raises(ValueError):
        sanitize_archive_path(str(tmp_path / "dest"), "../../evil.txt")


def test_unzip_extracts_files(tmp_path):
    archive = tmp_path / "a.zip"
    archive.write_bytes(_templates_zip())
    dest = tmp_path / "out"
    unzip(str(archive), str(dest))
    assert (dest / "policy-templates-v2" / "pkg" / "policy.yaml").read_text() == POLICY


def test_unzip_rejects_traversal(tmp_path):
    archive = tmp_path / "bad.zip"
    with zipfile.ZipFile(archive, "w") as zf:
        zf.writestr("../escape.txt", "x")
    with pytest.raises(ValueError):
        unzip(str(archive), str(tmp_path / "out"))


def test_download_zip_writes_body(tmp_path):
    target = tmp_path / "file.zip"
    with responses.RequestsMock() as rsps:
        rsps.add(responses.GET, "http://templates.example.com/x.zip", body=b"payload")
        download_zip("http://templates.example.com/x.zip", str(target))
    assert target.read_bytes() == b"payload"


def test_load_short_text_uses_defaults(tmp_path):
    templates = PolicyTemplates(cache_dir=str(tmp_path), default_rules=RULES)
    assert templates.load("") == "v1.2"
    assert [r.name for r in templates.rules] == ["bash-block"]


def test_current_release_reads_cache(tmp_path):
    (tmp_path / "rules.yaml").write_text(RULES)
    templates = PolicyTemplates(cache_dir=str(tmp_path))
    assert templates.current_release() == "v1.2"
    assert templates.current_version == "v1.2"
    assert templates.rules[0].description.tldr == "block bash"


def test_update_policy_rules_collects_kubearmor_templates(tmp_path):
    root = tmp_path / "root"
    pkg = root / "pkg"
    pkg.mkdir(parents=True)
    (pkg / "metadata.yaml").write_text(METADATA)
    (pkg / "policy.yaml").write_text(POLICY)
    (pkg / "cilium.yaml").write_text(CILIUM)
    cache = tmp_path / "cache"
    templates = PolicyTemplates(cache_dir=str(cache))
    templates.update_policy_rules(str(root))
    assert [r.name for r in templates.rules] == ["with-policy", "plain"]
    assert templates.rules[0].spec["action"] == "Block"
    assert templates.rules[0].yaml == ""

    reloaded = PolicyTemplates(cache_dir=str(cache))
    assert reloaded.current_release() == "v2"
    assert [r.name for r in reloaded.rules] == ["with-policy", "plain"]
    assert reloaded.rules[0].spec == templates.rules[0].spec


def test_download_skipped_when_current(tmp_path):
    (tmp_path / "rules.yaml").write_text(RULES)
    templates = PolicyTemplates(cache_dir=str(tmp_path))
    with responses.RequestsMock():
        assert templates.download_and_unzip_release("v1.2", "http://templates.example.com/") == "v1.2"
    assert (tmp_path / "rules.yaml").read_text() == RULES


def test_download_skipped_without_latest(tmp_path):
    templates = PolicyTemplates(cache_dir=str(tmp_path / "cache"), default_rules=RULES)
    with responses.RequestsMock():
        assert templates.download_and_unzip_release("", "http://templates.example.com/") == ""
    assert templates.current_version == "v1.2"


def test_download_and_unzip_release_updates_cache(tmp_path):
    cache = tmp_path / "cache"
    templates = PolicyTemplates(cache_dir=str(cache))
    with responses.RequestsMock() as rsps:
        rsps.add(responses.GET, "http://templates.example.com/v2.zip", body=_templates_zip())
        result = templates.download_and_unzip_release("v2", "http://templates.example.com/")
    assert result == "v2"
    assert not (cache / ".zip").exists()
    assert [r.name for r in templates.rules] == ["with-policy", "plain"]
    assert PolicyTemplates(cache_dir=str(cache)).current_release() == "v2"


def test_download_failure_removes_cache(tmp_path):
    cache = tmp_path / "cache"
    templates = PolicyTemplates(cache_dir=str(cache))
    with responses.RequestsMock() as rsps:
        rsps.add(
            responses.GET,
            "http://templates.example.com/v2.zip",
            body=requests.ConnectionError("down"),
        )
        with pytest.raises(requests.ConnectionError):
            templates.download_and_unzip_release("v2", "http://templates.example.com/")
    assert not cache.exists()