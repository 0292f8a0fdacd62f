import pytest

from karmor.common import Description, MatchSpec
from karmor.image import ImageInfo
from karmor.report import TextReport, make_report, wrap_policy_name


def _image(**kwargs):
    base = dict(
        name="nginx",
        repo_tags=["nginx:latest"],
        os_name="linux",
        arch="amd64",
        distro="debian",
    )
    base.update(kwargs)
    return ImageInfo(**base)


def _spec():
    return MatchSpec(
        name="rule",
        description=Description(tldr="Short"),
        spec={"severity": 5, "action": "Block", "tags": ["NIST", "MITRE"]},
    )


def test_wrap_short_name_unchanged():
    assert wrap_policy_name("short-name", 35) == "short-name"


@pytest.mark.parametrize(
    "name",
    [
        "a" * 20 + "-" + "b" * 20,
        "nginx-latest-harden-write-etc-dir-and-some-more-words",
        "x" * 40,
    ],
)
def test_wrap_keeps_all_characters(name):
    wrapped = wrap_policy_name(name, 35)
    assert "".join(wrapped.split("\n")) == name


def test_wrap_lines_respect_limit_when_parts_fit():
    name = "alpha-beta-gamma-delta-epsilon-zeta-eta-theta-iota"
    for line in wrap_policy_name(name, 12).split("\n"):
        assert len(line) <= 12


def test_wrap_breaks_after_dash():
    name = "a" * 20 + "-" + "b" * 20
    assert wrap_policy_name(name, 35).split("\n") == ["a" * 20 + "-", "b" * 20]


def test_make_report_rejects_html():
    with pytest.raises(ValueError):
        make_report("report.html")


def test_full_report(tmp_path):
    report = make_report("report.txt")
    report.start(_image(), str(tmp_path), "v0.1")
    report.record(_spec(), "/some/dir/nginx-latest-rule.yaml")
    report.section_end()
    out = tmp_path / "report.txt"
    report.render(str(out))
    text = out.read_text()
    assert "nginx:latest" in text
    assert "Short" in text
    assert "Block" in text
    assert "POLICY" in text
    assert "nginx-latest-rule.yaml" in text
    assert "/some/dir" not in text
    assert "v0.1" in text
    assert text.endswith("\n\n")


def test_deployment_appears_in_summary(tmp_path):
    report = TextReport()
    report.start(_image(namespace="default", deployment="web"), str(tmp_path), "v1")
    report.section_end()
    out = tmp_path / "r.txt"
    report.render(str(out))
    assert "default/web" in out.read_text()


def test_section_end_clears_rows(tmp_path):
    report = TextReport()
    report.start(_image(), str(tmp_path), "v1")
    report.record(_spec(), "rule.yaml")
    report.section_end()
    report.start(_image(), str(tmp_path), "v1")
    report.section_end()
    out = tmp_path / "r.txt"
    report.render(str(out))
    assert out.read_text().count("Short") == 1


def test_render_to_missing_directory_does_not_create_file(tmp_path):
    report = TextReport()
    target = tmp_path / "missing" / "r.txt"
    report.render(str(target))
    assert not target.exists()