"""Project switch guard, consulted by the shell on every directory change."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable

from ..config import WorkSettings, load_settings
from ..storage import StateStore
from .state_machine import EnforcementMachine

logger = logging.getLogger(__name__)

COMPONENT = "guard"


class SwitchAction(str, Enum):
    ALLOW = "allow"
    WARN = "warn"
    DENY = "deny"


@dataclass(slots=True)
class SwitchDecision:
    action: SwitchAction
    destination: str
    bound_project: str
    violations: int
    message: str = ""

    @property
    def allowed(self) -> bool:
        return self.action is not SwitchAction.DENY

    def to_dict(self) -> dict[str, Any]:
        return {
            "action": self.action.value,
            "allowed": self.allowed,
            "destination": self.destination,
            "bound_project": self.bound_project,
            "violations": self.violations,
            "message": self.message,
        }


def _switch_message(decision: SwitchDecision, *, blocking: bool, threshold: int) -> str:
    bound, destination = decision.bound_project, decision.destination
    if decision.action is SwitchAction.DENY:
        lines = [
            f"BLOCKED: cannot switch to '{destination}' during the active '{bound}' work session.",
            f"Stay in '{bound}', or stop the session first with `harm-work work stop`.",
        ]
    else:
        lines = [
            f"WARNING: you are focused on '{bound}' but switched to '{destination}' "
            f"(violation #{decision.violations}).",
            "Stay focused on your goal.",
        ]
    if decision.violations >= threshold:
        lines.append(f"TOO MANY DISTRACTIONS: {decision.violations} project switches this session.")
        if not blocking:
            lines.append(
                "Tip: enable blocking with `harm-work options set block_project_switch true`."
            )
    return "\n".join(lines)


class ProjectSwitchGuard:
    """Decides whether a directory change may leave the bound project.

    The decision is a plain function of the enforcement state and the blocking
    toggle; its only side effects are the violation counter and one audit entry.
    """

    def __init__(
        self,
        store: StateStore,
        *,
        settings_provider: Callable[[], WorkSettings] = load_settings,
    ) -> None:
        self._machine = EnforcementMachine(store)
        self._settings = settings_provider

    def check(self, destination: str, current: str | None = None) -> SwitchDecision:
        destination = destination.strip()
        state = self._machine.store.load_enforcement()
        if not state.project or state.project == destination:
            return SwitchDecision(
                action=SwitchAction.ALLOW,
                destination=destination,
                bound_project=state.project,
                violations=state.violations,
            )

        settings = self._settings()
        updated = self._machine.record_violation(destination)
        if updated is None:
            return SwitchDecision(
                action=SwitchAction.ALLOW,
                destination=destination,
                bound_project="",
                violations=state.violations,
            )

        blocking = settings.block_project_switch
        decision = SwitchDecision(
            action=SwitchAction.DENY if blocking else SwitchAction.WARN,
            destination=destination,
            bound_project=updated.project,
            violations=updated.violations,
        )
        decision.message = _switch_message(
            decision, blocking=blocking, threshold=settings.distraction_threshold
        )
        self._machine.store.events.append(
            "project_switch",
            component=COMPONENT,
            level="warning",
            action=decision.action,
            from_project=current,
            to_project=destination,
            bound_project=decision.bound_project,
            violations=decision.violations,
        )
        logger.info(
            "Project switch violation",
            extra={
                "action": decision.action.value,
                "bound_project": decision.bound_project,
                "destination": destination,
                "violations": decision.violations,
            },
        )
        return decision


__all__ = ["ProjectSwitchGuard", "SwitchAction", "SwitchDecision"]
