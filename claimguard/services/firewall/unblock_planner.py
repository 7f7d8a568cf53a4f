"""
Unblock planner

Turns a blocking decision into ordered, concrete remediation steps. Plans
are advisory: nothing here executes commands.
"""

from __future__ import annotations

from typing import List, Optional

from claimguard.models import (
    PolicyDecision,
    PolicyViolation,
    UnblockAction,
    UnblockPlan,
    UnblockStep,
)

DEFAULT_INSTALL_COMMAND = "npm install {package}"


def estimate_effort(steps: List[UnblockStep]) -> str:
    manual = sum(1 for step in steps if not step.auto_fixable)
    if manual == 0:
        return "trivial"
    if manual <= 2:
        return "minor"
    if manual <= 5:
        return "moderate"
    return "significant"


class UnblockPlanner:
    """
    Builds remediation plans per violated rule.

    ``truthpack_command`` is the shell command that regenerates the truthpack;
    when unset, refresh steps are left for a human and are not auto-fixable.
    """

    def __init__(
        self,
        truthpack_command: Optional[str] = None,
        install_command: str = DEFAULT_INSTALL_COMMAND,
    ) -> None:
        self.truthpack_command = truthpack_command
        self.install_command = install_command

    def plan(self, decision: PolicyDecision) -> UnblockPlan:
        steps: List[UnblockStep] = []
        for violation in decision.violations:
            steps.extend(self._steps_for(violation, len(steps) + 1))

        return UnblockPlan(
            violations=list(decision.violations),
            steps=steps,
            estimated_effort=estimate_effort(steps),
            can_auto_fix=bool(steps) and all(step.auto_fixable for step in steps),
        )

    def _refresh_truthpack(self, order: int, description: str) -> UnblockStep:
        return UnblockStep(
            order=order,
            action=UnblockAction.RUN,
            target="truthpack",
            description=description,
            command=self.truthpack_command,
            auto_fixable=self.truthpack_command is not None,
        )

    def _steps_for(self, violation: PolicyViolation, start: int) -> List[UnblockStep]:
        value = violation.claim.value if violation.claim is not None else "unknown"
        policy = violation.policy

        if policy == "ghost-route":
            return [
                UnblockStep(order=start, action=UnblockAction.VERIFY, target=value,
                            description=f'Check if route "{value}" should exist'),
                UnblockStep(order=start + 1, action=UnblockAction.ADD, target="route handler",
                            description=f'Create route handler for "{value}" if needed'),
                self._refresh_truthpack(start + 2, "Regenerate routes truthpack after creating route"),
            ]

        if policy == "ghost-env":
            return [
                UnblockStep(order=start, action=UnblockAction.ADD, target=".env.example",
                            description=f'Add "{value}" to .env.example with description'),
                UnblockStep(order=start + 1, action=UnblockAction.ADD, target=".env",
                            description=f'Set value for "{value}" in .env'),
                self._refresh_truthpack(start + 2, "Register env var in truthpack"),
            ]

        if policy == "ghost-type":
            return [
                UnblockStep(order=start, action=UnblockAction.VERIFY, target=value,
                            description=f'Check if type "{value}" is imported correctly'),
                UnblockStep(order=start + 1, action=UnblockAction.ADD, target="types file",
                            description=f'Define type "{value}" if it doesn\'t exist'),
            ]

        if policy == "ghost-import":
            if not value.startswith((".", "/")):
                return [
                    UnblockStep(order=start, action=UnblockAction.RUN, target="package.json",
                                description=f"Install missing package: {value}",
                                command=self.install_command.format(package=value), auto_fixable=True),
                ]
            return [
                UnblockStep(order=start, action=UnblockAction.VERIFY, target=value,
                            description=f'Check path: "{value}" - file may not exist'),
                UnblockStep(order=start + 1, action=UnblockAction.ADD, target=value,
                            description=f'Create file at "{value}" if needed'),
            ]

        if policy == "ghost-file":
            return [
                UnblockStep(order=start, action=UnblockAction.VERIFY, target=value,
                            description=f'Verify file path is correct: "{value}"'),
                UnblockStep(order=start + 1, action=UnblockAction.ADD, target=value,
                            description=f'Create file "{value}" if it should exist'),
            ]

        if policy in ("low-confidence", "excessive-claims"):
            return [
                UnblockStep(order=start, action=UnblockAction.VERIFY, target="change scope",
                            description="Review change - consider breaking into smaller, verified pieces"),
                self._refresh_truthpack(start + 1, "Refresh truthpack to ensure it's current"),
            ]

        return [
            UnblockStep(order=start, action=UnblockAction.VERIFY, target=policy,
                        description=violation.suggestion or "Review and fix the violation manually"),
        ]


def format_plan(plan: UnblockPlan) -> str:
    """Markdown rendering of a plan."""
    lines = [
        "## Unblock Plan",
        "",
        f"**Estimated Effort:** {plan.estimated_effort}",
        f"**Can Auto-Fix:** {'Yes' if plan.can_auto_fix else 'Partial/No'}",
        "",
        "### Steps to Resolve:",
        "",
    ]
    for step in plan.steps:
        auto_tag = " [AUTO]" if step.auto_fixable else ""
        lines.append(f"{step.order}. **{step.action.value.upper()}**{auto_tag}: {step.description}")
        if step.command:
            lines += ["   ```bash", f"   {step.command}", "   ```"]
        lines.append("")
    return "\n".join(lines)
