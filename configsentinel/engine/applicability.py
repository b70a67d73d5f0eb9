"""
Applicability evaluator.

Decides, once per workflow and before scheduling, whether a workflow targets
the current machine. Consumed by the engine front door, never by the
orchestrator itself.
"""

import logging
import platform
import re
from dataclasses import dataclass
from typing import Optional, Tuple

from configsentinel.engine.schema import Applicability

logger = logging.getLogger(__name__)

# Workflow files name families the way users do. Aliases must equal the
# platform.system() family; other names match as substrings.
_FAMILY_ALIASES = {
    "windows": "windows",
    "win": "windows",
    "macos": "darwin",
    "osx": "darwin",
    "mac": "darwin",
}

_VERSION_RE = re.compile(r"^\s*v?(\d+(?:\.\d+){0,3})")

Version = Tuple[int, ...]


def parse_version(value: Optional[str]) -> Optional[Version]:
    """
    Parse the leading dotted-numeric part of a version string.

    "10.0.19045" -> (10, 0, 19045); "6.1.0-13-amd64" -> (6, 1, 0).
    Returns None for empty or unparseable input.
    """
    if not value:
        return None
    match = _VERSION_RE.match(str(value))
    if not match:
        return None
    return tuple(int(part) for part in match.group(1).split("."))


def _pad(version: Version, length: int) -> Version:
    return version + (0,) * (length - len(version))


def compare_versions(a: Version, b: Version) -> int:
    """Compare versions, treating missing components as zero."""
    length = max(len(a), len(b))
    left, right = _pad(a, length), _pad(b, length)
    return (left > right) - (left < right)


@dataclass(frozen=True)
class PlatformInfo:
    """Facts about the machine that applicability is evaluated against."""

    family: str
    version: str
    product: str = ""

    @classmethod
    def current(cls) -> "PlatformInfo":
        """Detect the running platform."""
        system = platform.system()
        if system == "Windows":
            # platform.version() is "10.0.19045" on Windows
            version = platform.version()
            release, _, _, _ = platform.win32_ver()
            edition = platform.win32_edition() or ""
            product = f"Windows {release} {edition}".strip()
        elif system == "Darwin":
            version = platform.mac_ver()[0] or platform.release()
            product = f"macOS {version}"
        else:
            version = platform.release()
            product = _linux_product() or system
        return cls(family=system, version=version, product=product)


def _linux_product() -> str:
    try:
        info = platform.freedesktop_os_release()
    except OSError:
        return ""
    return info.get("PRETTY_NAME") or info.get("NAME", "")


class ApplicabilityEvaluator:
    """
    Predicate gating whether a whole workflow should run.

    A workflow is applicable when:
    - `os_family` is non-empty and matches the platform family
      (aliases such as "win" or "macos" exactly, other names as a
      case-insensitive substring)
    - the platform version lies within [min_version, max_version]; absent or
      unparseable bounds are open
    - `product` matches; advisory unless `enforce_product` is set

    Example:
        ```python
        evaluator = ApplicabilityEvaluator(PlatformInfo("Windows", "10.0.19045"))
        evaluator.is_applicable(Applicability(os_family="Windows", min_version="10.0"))
        ```
    """

    def __init__(
        self,
        platform_info: Optional[PlatformInfo] = None,
        enforce_product: bool = False,
    ):
        self.platform_info = platform_info or PlatformInfo.current()
        self.enforce_product = enforce_product

    def is_applicable(self, applicability: Applicability) -> bool:
        """Evaluate all applicability clauses against the current platform."""
        family = (applicability.os_family or "").strip()
        if not family:
            logger.debug("Applicability has no OS family; workflow is not applicable")
            return False

        return (
            self.matches_family(family)
            and self.version_in_range(applicability.min_version, applicability.max_version)
            and self.matches_product(applicability.product)
        )

    def matches_family(self, family: str) -> bool:
        wanted = family.strip().lower()
        current = self.platform_info.family.lower()
        if wanted in _FAMILY_ALIASES:
            return _FAMILY_ALIASES[wanted] == current
        return wanted in current

    def version_in_range(self, min_version: Optional[str], max_version: Optional[str]) -> bool:
        current = parse_version(self.platform_info.version)
        lower = parse_version(min_version)
        upper = parse_version(max_version)

        if min_version and lower is None:
            logger.debug(f"Ignoring unparseable minVersion: {min_version!r}")
        if max_version and upper is None:
            logger.debug(f"Ignoring unparseable maxVersion: {max_version!r}")

        if lower is None and upper is None:
            return True
        if current is None:
            logger.warning(
                f"Cannot parse platform version {self.platform_info.version!r}; "
                f"treating version bounds as unsatisfied"
            )
            return False

        if lower is not None and compare_versions(current, lower) < 0:
            return False
        if upper is not None and compare_versions(current, upper) > 0:
            return False
        return True

    def matches_product(self, product: Optional[str]) -> bool:
        if not product or not product.strip():
            return True

        matched = product.strip().lower() in self.platform_info.product.lower()
        if self.enforce_product:
            return matched
        if not matched:
            logger.debug(
                f"Product {product!r} does not match {self.platform_info.product!r}; "
                f"product applicability is advisory, allowing"
            )
        return True
