"""Recommend security policies for the images of deployments or given images."""

from __future__ import annotations

import dataclasses
import json
import logging
import os
import re
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

import yaml

from .common import MatchSpec, Options
from .image import ImageInfo
from .report import TextReport, make_report

log = logging.getLogger(__name__)

_LABEL_SEPARATORS = re.compile(r"[:=]")


@dataclass
class Deployment:
    """Brief information about a Kubernetes deployment."""

    name: str = ""
    namespace: str = ""
    labels: dict[str, str] = field(default_factory=dict)
    images: list[str] = field(default_factory=list)


def label_array_to_label_map(labels: Iterable[str]) -> dict[str, str]:
    """Turn ``key=value`` or ``key:value`` strings into a mapping; malformed ones are skipped."""
    result: dict[str, str] = {}
    for label in labels:
        pair = [part for part in _LABEL_SEPARATORS.split(label) if part]
        if len(pair) != 2:
            continue
        result[pair[0]] = pair[1]
    return result


def match_labels(filter_labels: Mapping[str, str], selector: Mapping[str, str]) -> bool:
    """True when every filter label has the same value in the selector."""
    return all(selector.get(key, "") == value for key, value in filter_labels.items())


def unique(items: Iterable[str]) -> list[str]:
    """Strip spaces and drop repeats, keeping the first occurrence order."""
    seen: dict[str, None] = {}
    for item in items:
        seen.setdefault(item.strip(" "), None)
    return list(seen)


def create_out_dir(path: str) -> None:
    """Create the output directory unless it already exists."""
    if not path:
        return
    try:
        os.mkdir(path, 0o750)
    except FileExistsError:
        pass


def write_policy_files(
    policies: Mapping[str, bytes],
    specs: Mapping[str, MatchSpec],
    report: TextReport | None,
) -> list[str]:
    """Write each JSON policy as YAML into its (already created) file and record it."""
    written = []
    for out_file, policy in policies.items():
        document = yaml.safe_dump(json.loads(policy), default_flow_style=False)
        with open(os.path.normpath(out_file), "r+", encoding="utf-8") as fh:
            fh.write(document)
        if report is None:
            log.error("report record failed: unknown reporter type")
        else:
            report.record(specs[out_file], out_file)
        print(f"created policy {out_file} ...")
        written.append(out_file)
    return written


def final_report(report: TextReport | None, options: Options) -> None:
    """Write the report file and print it unless it is HTML."""
    rep_file = os.path.normpath(os.path.join(options.out_dir, options.report_file))
    if report is None:
        log.error("report render failed: unknown reporter type")
    else:
        report.render(rep_file)
    print(f"output report in {rep_file} ...")
    if ".html" in rep_file:
        return
    with open(rep_file, encoding="utf-8") as fh:
        print(fh.read())


def recommend(
    options: Options,
    deployments: Iterable[Deployment],
    engines: Iterable[Any],
    scanner: Any,
) -> list[str]:
    """Generate policies with each engine for the selected images; return the files written.

    Without explicit images the deployments matching the label filter are used.
    Engines with a ``report`` attribute are given the shared report.
    """
    label_map = label_array_to_label_map(options.labels)
    if not options.images:
        targets = [d for d in deployments if match_labels(label_map, d.labels)]
        if not targets:
            log.error(
                "no k8s deployments found in namespace %r, hence nothing to recommend!",
                options.namespace,
            )
            return []
    else:
        targets = [
            Deployment(namespace=options.namespace, labels=label_map, images=list(options.images))
        ]

    options = dataclasses.replace(options, tags=unique(options.tags))
    create_out_dir(options.out_dir)

    written: list[str] = []
    report: TextReport | None = None
    for engine in engines:
        if options.report_file and report is None:
            report = make_report(options.report_file)
        if report is not None and hasattr(engine, "report"):
            engine.report = report
        try:
            engine.init()
        except Exception:
            log.exception("policy generator init failed")
        for deployment in targets:
            for image_name in deployment.images:
                img = ImageInfo(
                    name=image_name,
                    namespace=deployment.namespace,
                    labels=dict(deployment.labels),
                    image=image_name,
                    deployment=deployment.name,
                )
                scanner.analyze(img)
                policies: Mapping[str, bytes] = {}
                specs: Mapping[str, MatchSpec] = {}
                try:
                    policies, specs = engine.scan(img, options)
                except Exception:
                    log.exception("policy generator scan failed")
                written.extend(write_policy_files(policies or {}, specs or {}, report))
                if report is None:
                    raise ValueError("unknown reporter type")
                report.section_end()
        final_report(report, options)
    return written