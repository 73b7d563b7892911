"""Outcome aggregation for a single scaling operation.

An ``OperationStatus`` is created at the start of an orchestrator call,
handed to every collaborator taking part in it, and dropped when the call
returns. Collaborators record outcomes under well-known step keys; the
orchestrator screens those keys before attempting a dependent stage.

Example:
    >>> status = OperationStatus("enable")
    >>> status.register_step_failed(False, "power-on rejected", key="powerOn")
    >>> status.screen_failures(["powerOn"])
    False
    >>> status.screen_failures(["decomRecomNodes"])
    True
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class StepOutcome:
    """Result of one named sub-step."""

    key: str
    ok: bool
    fatal: bool = False
    message: str = ""


class OperationStatus:
    """Append-only record of step outcomes for one operation.

    Not shared across operations, so no locking is done.
    """

    __slots__ = ("_name", "_outcomes")

    def __init__(self, name: str) -> None:
        self._name = name
        self._outcomes: list[StepOutcome] = []

    @property
    def name(self) -> str:
        return self._name

    @property
    def outcomes(self) -> tuple[StepOutcome, ...]:
        return tuple(self._outcomes)

    def register_step_ok(self, key: str | None = None) -> None:
        self._outcomes.append(StepOutcome(key=key or self._name, ok=True))

    def register_step_failed(self, fatal: bool, message: str, key: str | None = None) -> None:
        """Record a failed step.

        Args:
            fatal: Whether the failure invalidates the whole operation.
            message: Human readable reason.
            key: Step key; defaults to this status' name.
        """
        self._outcomes.append(
            StepOutcome(key=key or self._name, ok=False, fatal=fatal, message=message)
        )

    def merge(self, other: OperationStatus) -> None:
        """Fold a collaborator's sub-status into this one."""
        self._outcomes.extend(other._outcomes)

    def screen_failures(self, keys: Iterable[str]) -> bool:
        """True only if none of ``keys`` has a recorded failure."""
        wanted = set(keys)
        return not any(o.key in wanted for o in self.failures)

    @property
    def failures(self) -> list[StepOutcome]:
        return [o for o in self._outcomes if not o.ok]

    @property
    def failed(self) -> bool:
        return any(not o.ok for o in self._outcomes)

    @property
    def has_fatal_failure(self) -> bool:
        return any(o.fatal for o in self.failures)

    @property
    def first_failure_message(self) -> str | None:
        failures = self.failures
        return failures[0].message if failures else None

    def __repr__(self) -> str:
        return f"OperationStatus({self._name!r}, steps={len(self._outcomes)}, failures={len(self.failures)})"
