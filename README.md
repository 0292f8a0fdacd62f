# karmor

Library code for working with KubeArmor from Python. It covers two areas:

- **Probing** – checking whether the local host can run KubeArmor (kernel
  version, BTF / kernel headers, active LSMs, systemd mode) and printing
  the state of a running installation as tables or JSON.
- **Policy recommendation** – matching image contents against the
  policy-templates rule set, writing KubeArmor policies as YAML files and
  producing a text report.

## Modules

| Module | Purpose |
| --- | --- |
| `karmor.common` | `Options`, `MatchSpec`, `Description`, `Ref`, `user_home()` |
| `karmor.image` | `ImageInfo`, `DistroRule`, `load_distro_rules()`, `check_for_spec()`, `mk_path_from_tag()`, policy naming and creation |
| `karmor.table` | `Table` and `render_plain()` for console tables |
| `karmor.report` | `TextReport`, `make_report()`, `wrap_policy_name()` |
| `karmor.recommend` | `recommend()`, `Deployment`, `label_array_to_label_map()`, `match_labels()`, `unique()` |
| `karmor.templates` | `PolicyTemplates`, `parse_rules()`, `unzip()`, `download_zip()`, `default_cache_dir()` |
| `karmor.engine` | `Engine`, `GenericPolicy`, `match_tags()`, `check_preconditions()`, `policies_from_image()` |
| `karmor.probe_output` | probe data types (`KubeArmorProbeData`, `Status`, `NamespaceData`, ...) and `ProbePrinter` |
| `karmor.probe_data` | `posture_data()`, `armored_container_data()`, `host_policy_data()`, `namespace_posture()`, `annotated_pods()` |
| `karmor.probe_checks` | `kernel_version_supported()`, LSM, audit, BTF and kernel header checks, `is_systemd_mode()`, `probe_systemd_mode()` |
| `karmor.probe` | `daemonset_status()`, `deployment_statuses()`, `container_specs()`, JSON output and full probe printing |

## Examples

Turning image tags into file-system friendly names:

```python
from karmor.image import mk_path_from_tag

mk_path_from_tag("nginx:1.25")   # "nginx-1-25"
```

Parsing label selectors given as `key:value` or `key=value`:

```python
from karmor.recommend import label_array_to_label_map, match_labels

wanted = label_array_to_label_map(["app:web", "tier=db"])
# {"app": "web", "tier": "db"}
match_labels(wanted, {"app": "web", "tier": "db", "extra": "x"})  # True
```

Printing probe results to any text stream:

```python
import io
from karmor.probe_output import ProbePrinter, Status

out = io.StringIO()
printer = ProbePrinter(output="no-color", writer=out)
printer.print_daemonset(Status(desired="3", ready="3", available="3"))
print(out.getvalue())
```

Checking the local host:

```python
from karmor.probe_checks import check_host_audit_support, check_lsm_support, host_supported_lsm
from karmor.probe_output import ProbePrinter

printer = ProbePrinter()
check_host_audit_support(printer)
check_lsm_support(printer, host_supported_lsm())
```

Recommending policies: `recommend()` takes the `Options`, a list of
`Deployment`s, the engines (for example `GenericPolicy` with a
`PolicyTemplates` instance) and a scanner object. The scanner is any object
with an `analyze(img)` method that fills in an `ImageInfo` (`file_list`,
`repo_tags`, `os_name`, `arch`, `distro`). When `report_file` is set, a
`TextReport` is shared with the engines and written to the output directory.

## What the package does not do

- There is no command-line program; everything is called as a library.
- It does not talk to a Kubernetes cluster. The probe functions take
  deployments, pods, namespaces and policies as plain mappings that the
  caller has already fetched.
- It does not pull, save or unpack container images. The caller supplies
  the scanner that fills in `ImageInfo`.
- Reports are text only; `make_report()` raises `ValueError` for an HTML
  file name.
- It does not onboard virtual machines, manage their labels or send
  policies to a KVM service.

## Running the tests

The test suite uses pytest and responses, both listed in the `test` extra:

```
pip install -e .[test]
pytest
```