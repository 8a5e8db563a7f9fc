"""Policy resolver: loads workflow_policy.json and exposes every runtime
setting as a typed method call.

No magic. If a required section is missing from the config, it fails loud.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from sipandai.workflow.units import UnitPartition

POLICY_FILENAME = "workflow_policy.json"


@dataclass(frozen=True)
class RetryPolicy:
    """Resolved retry settings for remote mutations."""
    max_retries: int
    base_delay_seconds: float
    max_delay_seconds: Optional[float]


class PolicyResolver:
    """Loads and resolves workflow policy.

    Usage:
        resolver = PolicyResolver.from_config_dir(Path("config"))
        partition = resolver.unit_partition()
        retry = resolver.retry_policy()
    """

    REQUIRED_SECTIONS = ("workflow", "retry", "autosave", "navigation")

    def __init__(self, policy: dict[str, Any]) -> None:
        self._policy = policy
        self._validate()

    @classmethod
    def from_config_dir(cls, config_dir: Path) -> PolicyResolver:
        """Load from the canonical config directory."""
        return cls(_load_json(config_dir / POLICY_FILENAME))

    def _validate(self) -> None:
        if "version" not in self._policy:
            raise ValueError(f"{POLICY_FILENAME} missing version")
        for section in self.REQUIRED_SECTIONS:
            if section not in self._policy:
                raise ValueError(f"{POLICY_FILENAME} missing section: {section}")

    @property
    def version(self) -> str:
        return str(self._policy["version"])

    # ------------------------------------------------------------------
    # Workflow
    # ------------------------------------------------------------------

    def unit_partition(self) -> UnitPartition:
        """Return the central-approval / unit-only partition."""
        units = self._policy["workflow"]["central_approval_units"]
        return UnitPartition.from_iterable(units)

    def strict_roles(self) -> bool:
        """Whether unknown roles are rejected instead of degraded."""
        return bool(self._policy["workflow"].get("strict_roles", False))

    # ------------------------------------------------------------------
    # Resilience
    # ------------------------------------------------------------------

    def retry_policy(self) -> RetryPolicy:
        r = self._policy["retry"]
        max_retries = r["max_retries"]
        base_delay = r["base_delay_seconds"]
        if max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {max_retries}")
        if base_delay < 0:
            raise ValueError(f"base_delay_seconds must be >= 0, got {base_delay}")
        max_delay = r.get("max_delay_seconds")
        return RetryPolicy(
            max_retries=max_retries,
            base_delay_seconds=float(base_delay),
            max_delay_seconds=float(max_delay) if max_delay is not None else None,
        )

    def autosave_debounce_seconds(self) -> float:
        return float(self._policy["autosave"]["debounce_seconds"])

    def draft_key_prefix(self) -> str:
        return self._policy["autosave"]["draft_key_prefix"]

    # ------------------------------------------------------------------
    # Navigation targets for the role guard
    # ------------------------------------------------------------------

    def fallback_path(self) -> str:
        return self._policy["navigation"]["fallback_path"]

    def auth_path(self) -> str:
        return self._policy["navigation"]["auth_path"]


def _load_json(path: Path) -> dict[str, Any]:
    """Load a JSON file or raise with clear path."""
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")
    with path.open("r", encoding="utf-8") as f:
        return json.load(f)
