import sys

from karmor.common import Description, MatchSpec, Options, Ref, user_home


def _sample():
    return {
        "name": "ksp-block-writes",
        "precondition": ["/bin/sh", "OPTSCAN"],
        "description": {
            "refs": [{"name": "guide", "url": ["https://docs.example.com/a"]}],
            "tldr": "block writes",
            "detailed": "blocks writes to system folders",
        },
        "yaml": "block.yaml",
        "spec": {"severity": 5, "action": "Block", "tags": ["NIST"]},
    }


def test_from_dict_reads_all_fields():
    ms = MatchSpec.from_dict(_sample())
    assert ms.name == "ksp-block-writes"
    assert ms.precondition == ["/bin/sh", "OPTSCAN"]
    assert ms.description.tldr == "block writes"
    assert ms.description.refs == [Ref("guide", ["https://docs.example.com/a"])]
    assert ms.spec["severity"] == 5


def test_round_trip():
    data = _sample()
    assert MatchSpec.from_dict(data).to_dict() == data


def test_from_dict_defaults_and_nulls():
    ms = MatchSpec.from_dict({"name": "x", "precondition": None, "description": None})
    assert ms.precondition == []
    assert ms.description == Description()
    assert ms.spec == {}


def test_to_dict_omits_empty_spec():
    assert "spec" not in MatchSpec(name="x").to_dict()


def test_options_defaults_are_independent():
    a, b = Options(), Options()
    a.tags.append("t")
    assert b.tags == []


def test_user_home_posix(monkeypatch):
    monkeypatch.setattr(sys, "platform", "linux")
    monkeypatch.setenv("HOME", "/home/someone")
    assert user_home() == "/home/someone"


def test_user_home_windows(monkeypatch):
    monkeypatch.setattr(sys, "platform", "win32")
    monkeypatch.setenv("HOMEDRIVE", "C:")
    monkeypatch.setenv("HOMEPATH", "\\Users\\someone")
    assert user_home() == "C:" + "\\Users\\someone"


def test_user_home_windows_fallback(monkeypatch):
    monkeypatch.setattr(sys, "platform", "win32")
    monkeypatch.delenv("HOMEDRIVE", raising=False)
    monkeypatch.delenv("HOMEPATH", raising=False)
    monkeypatch.setenv("USERPROFILE", "D:\\profile")
    assert user_home() == "D:\\profile"