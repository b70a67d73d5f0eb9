"""
Workflow definition parser.

Loads workflow definitions from YAML or JSON files into validated
WorkflowDefinition models. The engine itself never parses files; this is
the loader used by the CLI and by callers that keep workflows on disk.
"""

import json
import logging
from pathlib import Path
from typing import Iterable, List, Union

import yaml

from configsentinel.engine.conditions import ConditionEvaluator
from configsentinel.engine.schema import WorkflowDefinition

logger = logging.getLogger(__name__)


class WorkflowParser:
    """
    Parse and validate workflow definitions.

    Supports:
    - YAML files (.yaml, .yml)
    - JSON files (.json)
    - Direct string parsing

    Example:
        ```python
        # From file
        workflow = WorkflowParser.parse_file("baseline.yaml")

        # From string
        yaml_content = '''
        name: env-baseline
        applicability:
          osFamily: Linux
        rules:
          - name: home_set
            provider: environment
            parameters: {variable: HOME}
            condition: {operator: Exists}
        '''
        workflow = WorkflowParser.parse_string(yaml_content)
        ```
    """

    @staticmethod
    def parse_file(path: Union[str, Path]) -> WorkflowDefinition:
        """
        Parse workflow from file.

        Args:
            path: Path to workflow file (YAML or JSON)

        Returns:
            Validated WorkflowDefinition

        Raises:
            FileNotFoundError: If file doesn't exist
            ValueError: If file format is unsupported
            ValidationError: If workflow is invalid
        """
        path = Path(path)

        if not path.exists():
            raise FileNotFoundError(f"Workflow file not found: {path}")

        content = path.read_text(encoding="utf-8")

        if path.suffix in (".yaml", ".yml"):
            return WorkflowParser.parse_string(content, format="yaml")
        elif path.suffix == ".json":
            return WorkflowParser.parse_string(content, format="json")
        else:
            raise ValueError(f"Unsupported file format: {path.suffix}")

    @staticmethod
    def parse_string(content: str, format: str = "yaml") -> WorkflowDefinition:
        """
        Parse workflow from string content.

        Raises:
            ValueError: If format is unsupported or the document is empty
            ValidationError: If workflow is invalid
        """
        if format == "yaml":
            data = yaml.safe_load(content)
        elif format == "json":
            data = json.loads(content)
        else:
            raise ValueError(f"Unsupported format: {format}")

        if data is None:
            raise ValueError("Empty workflow definition")

        return WorkflowDefinition.model_validate(data)

    @staticmethod
    def parse_dict(data: dict) -> WorkflowDefinition:
        """Parse workflow from dictionary."""
        return WorkflowDefinition.model_validate(data)

    @staticmethod
    def parse_files(paths: Iterable[Union[str, Path]]) -> List[WorkflowDefinition]:
        """Parse several workflow files, preserving order."""
        return [WorkflowParser.parse_file(p) for p in paths]

    @staticmethod
    def validate_file(path: Union[str, Path]) -> tuple[bool, str]:
        """
        Validate a workflow file.

        Besides schema validation, reports unknown condition operators and
        dependencies naming no rule in the workflow. Both are legal (they
        fail closed or deadlock at run time) but almost always mistakes.

        Returns:
            Tuple of (is_valid, message)
        """
        try:
            workflow = WorkflowParser.parse_file(path)
        except FileNotFoundError as e:
            return False, f"File not found: {e}"
        except ValueError as e:
            # pydantic's ValidationError is a ValueError
            return False, f"Invalid workflow: {e}"
        except yaml.YAMLError as e:
            return False, f"Invalid YAML: {e}"

        problems = WorkflowParser.lint(workflow)
        if problems:
            return False, "; ".join(problems)
        return True, f"Valid workflow: {workflow.name} ({len(workflow.rules)} rules)"

    @staticmethod
    def lint(workflow: WorkflowDefinition) -> List[str]:
        """List likely mistakes that schema validation accepts."""
        problems = []
        for rule in workflow.rules:
            if not ConditionEvaluator.is_known_operator(rule.condition.operator):
                problems.append(
                    f"Rule '{rule.name}' uses unknown operator '{rule.condition.operator}'"
                )
        for rule_name, missing in workflow.unknown_dependencies().items():
            problems.append(f"Rule '{rule_name}' depends on unknown rules: {', '.join(missing)}")
        return problems
