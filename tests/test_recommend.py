import json

import pytest
import yaml

from karmor.common import Description, MatchSpec, Options
from karmor.recommend import (
    Deployment,
    create_out_dir,
    final_report,
    label_array_to_label_map,
    match_labels,
    recommend,
    unique,
    write_policy_files,
)
from karmor.report import TextReport


class FakeScanner:
    def __init__(self):
        self.analyzed = []

    def analyze(self, img):
        self.analyzed.append(img.name)
        img.repo_tags.append(img.name)
        img.os_name = "linux"


class FakeEngine:
    def __init__(self):
        self.report = None
        self.inited = False
        self.seen = []

    def init(self):
        self.inited = True

    def scan(self, img, options):
        self.report.start(img, options.out_dir, "v1")
        spec = MatchSpec(
            name="rule",
            description=Description(tldr="Rule"),
            spec={"severity": 3, "action": "Audit"},
        )
        data, path = img.get_policy(spec, options)
        self.seen.append(img)
        return {path: data}, {path: spec}


class RecordingReport:
    def __init__(self):
        self.records = []

    def record(self, spec, name):
        self.records.append((spec.name, name))


def test_label_array_to_label_map():
    labels = ["app=nginx", "tier:web", "bad", "a=b=c", "k==v"]
    assert label_array_to_label_map(labels) == {"app": "nginx", "tier": "web", "k": "v"}


def test_match_labels():
    assert match_labels({"app": "nginx"}, {"app": "nginx", "x": "y"})
    assert not match_labels({"app": "nginx"}, {"app": "db"})
    assert not match_labels({"app": "nginx"}, {})
    assert match_labels({}, {"app": "db"})


def test_unique_strips_and_dedupes():
    assert unique([" a", "b", "a ", "b"]) == ["a", "b"]
    assert unique([]) == []


def test_create_out_dir(tmp_path):
    target = tmp_path / "out"
    create_out_dir(str(target))
    assert target.is_dir()
    create_out_dir(str(target))
    assert target.is_dir()


def test_create_out_dir_missing_parent(tmp_path):
    with pytest.raises(FileNotFoundError):
        create_out_dir(str(tmp_path / "a" / "b"))


def test_write_policy_files(tmp_path, capsys):
    path = tmp_path / "p.yaml"
    path.write_text("")
    policy = {"kind": "KubeArmorPolicy", "spec": {"severity": 2}}
    spec = MatchSpec(name="rule")
    report = RecordingReport()
    written = write_policy_files({str(path): json.dumps(policy).encode()}, {str(path): spec}, report)
    assert written == [str(path)]
    assert yaml.safe_load(path.read_text()) == policy
    assert report.records == [("rule", str(path))]
    assert "created policy" in capsys.readouterr().out


def test_final_report_prints_text(tmp_path, capsys):
    report = TextReport()
    options = Options(out_dir=str(tmp_path), report_file="report.txt")
    final_report(report, options)
    assert (tmp_path / "report.txt").exists()
    assert "output report in" in capsys.readouterr().out


def test_recommend_with_images(tmp_path):
    out = tmp_path / "out"
    options = Options(
        images=["nginx"],
        out_dir=str(out),
        report_file="report.txt",
        namespace="default",
        tags=[" a", "a"],
    )
    engine = FakeEngine()
    scanner = FakeScanner()
    written = recommend(options, [Deployment(name="ignored", images=["other"])], [engine], scanner)
    assert engine.inited
    assert scanner.analyzed == ["nginx"]
    assert engine.seen[0].namespace == "default"
    assert len(written) == 1
    assert yaml.safe_load(open(written[0]).read())["kind"] == "KubeArmorPolicy"
    assert (out / "report.txt").exists()
    assert "Rule" in (out / "report.txt").read_text()


def test_recommend_filters_deployments(tmp_path):
    options = Options(labels=["app=web"], out_dir=str(tmp_path / "out"), report_file="r.txt")
    deployments = [
        Deployment("web", "default", {"app": "web"}, ["nginx"]),
        Deployment("db", "default", {"app": "db"}, ["postgres"]),
    ]
    engine = FakeEngine()
    written = recommend(options, deployments, [engine], FakeScanner())
    assert [img.name for img in engine.seen] == ["nginx"]
    assert engine.seen[0].deployment == "web"
    assert engine.seen[0].labels == {"app": "web"}
    assert written[0].endswith("nginx-rule.yaml")


def test_recommend_no_matching_deployments(tmp_path):
    out = tmp_path / "out"
    options = Options(labels=["app=none"], out_dir=str(out), report_file="r.txt")
    deployments = [Deployment("web", "default", {"app": "web"}, ["nginx"])]
    assert recommend(options, deployments, [FakeEngine()], FakeScanner()) == []
    assert not out.exists()


def test_recommend_without_report_fails(tmp_path):
    class PlainEngine:
        def init(self):
            pass

        def scan(self, img, options):
            return {}, {}

    options = Options(images=["nginx"], out_dir=str(tmp_path / "out"))
    with pytest.raises(ValueError):
        recommend(options, [], [PlainEngine()], FakeScanner())