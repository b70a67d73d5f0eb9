"""
Config Sentinel - Quickstart

The smallest possible programmatic audit: one workflow, two built-in probes
and a custom provider, run against this machine.

What's happening:
  The workflow is parsed and validated, then handed to an AuditEngine
  together with the probe providers it may use. Rules without
  dependencies probe concurrently; `home_is_dir` waits for `home_set`.
  Each workflow produces a scored WorkflowResultSet.

Run:
  pip install -e .
  python examples/quickstart/quickstart.py
"""

import asyncio
import platform
import sys

from configsentinel import (
    AuditEngine,
    CancellationToken,
    ProbeProvider,
    ProbeProviderRegistry,
    ProbeResult,
    WorkflowParser,
)


class PythonVersionProbe(ProbeProvider):
    """Report the running interpreter's major.minor version."""

    @property
    def name(self) -> str:
        return "python"

    async def execute(self, parameters, cancellation) -> ProbeResult:
        cancellation.raise_if_cancelled()
        return ProbeResult.ok(sys.version_info[0] * 100 + sys.version_info[1])


WORKFLOW = f"""
name: quickstart
applicability:
  osFamily: {platform.system()}
constraints:
  timeout: 10
rules:
  - name: home_set
    provider: environment
    parameters:
      variable: {"USERPROFILE" if platform.system() == "Windows" else "HOME"}
    condition:
      operator: Exists
    severity: 4
  - name: home_is_dir
    provider: filesystem
    parameters:
      path: "~"
      property: is_dir
    condition:
      operator: Equals
      expected: true
    severity: 6
    executionOptions:
      dependsOn: [home_set]
  - name: modern_python
    provider: python
    condition:
      operator: GreaterThan
      expected: 310
    severity: 3
    failureMessage: Python 3.11 or newer is recommended
"""


async def main() -> int:
    workflow = WorkflowParser.parse_string(WORKFLOW)
    providers = ProbeProviderRegistry.create_all(["environment", "filesystem"])
    engine = AuditEngine([*providers, PythonVersionProbe()])

    results = await engine.run([workflow], CancellationToken())
    for result in results:
        print(f"{result.workflow_name}: success={result.success} "
              f"severity={result.severity_score} risk={result.risk_level.value}")
        for rule in result.results:
            status = "PASS" if rule.success else "FAIL"
            print(f"  [{status}] {rule.rule_name}: {rule.message}")

    return 0 if all(r.success for r in results) else 1


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
