"""Human-in-the-loop approval of generated templates."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path

from terraform_assistant.context import PromptContext
from terraform_assistant.observability import RunTelemetry
from terraform_assistant.output import render_diagnostics
from terraform_assistant.validator import TemplateValidationError

logger = logging.getLogger(__name__)

DEFAULT_REJECTION_MARKER = (
    "Reprompt: the previous template was rejected. Generate a different template."
)
APPLY_ANSWERS = frozenset({"", "apply", "a", "y", "yes"})
ABORT_ANSWERS = frozenset({"dont apply", "don't apply", "abort", "n", "no", "q", "quit"})
REPROMPT_ANSWERS = frozenset({"reprompt", "r", "retry"})


class LoopState(StrEnum):
    """Approval loop states."""

    DRAFTING = "drafting"
    AWAITING_APPROVAL = "awaiting_approval"
    ACCEPTED = "accepted"
    ABORTED = "aborted"


class UserDecision(StrEnum):
    """What the user chose to do with a draft."""

    APPLY = "apply"
    REPROMPT = "reprompt"
    ABORT = "abort"


@dataclass(frozen=True, slots=True)
class ApprovalDecision:
    """A decision plus optional reprompt feedback."""

    action: UserDecision
    feedback: str = ""


@dataclass(frozen=True, slots=True)
class ApprovalOutcome:
    """Terminal result of one approval loop run."""

    state: LoopState
    template: str | None = None
    path: Path | None = None
    drafts: int = 0
    interrupted: bool = False

    @property
    def accepted(self) -> bool:
        return self.state is LoopState.ACCEPTED


DraftFn = Callable[[PromptContext], str]
DecisionSource = Callable[[str], ApprovalDecision]


def parse_decision(answer: str) -> ApprovalDecision:
    """Map a typed answer to a decision; unrecognized text becomes reprompt feedback."""
    normalized = " ".join(answer.strip().lower().split())
    if normalized in APPLY_ANSWERS:
        return ApprovalDecision(UserDecision.APPLY)
    if normalized in ABORT_ANSWERS:
        return ApprovalDecision(UserDecision.ABORT)
    if normalized in REPROMPT_ANSWERS:
        return ApprovalDecision(UserDecision.REPROMPT)
    return ApprovalDecision(UserDecision.REPROMPT, feedback=answer.strip())


class ApprovalLoop:
    """Drafts templates until the user accepts or aborts.

    Every accepted template goes through ``validate`` before ``persist`` and
    ``provision`` run, including when ``decide`` is ``None`` (confirmation
    skipped). There is no retry limit.
    """

    def __init__(
        self,
        *,
        draft: DraftFn,
        validate: Callable[[str], None],
        persist: Callable[[str], Path],
        provision: Callable[[], object],
        decide: DecisionSource | None = None,
        present: Callable[[str, int], None] | None = None,
        notify: Callable[[str], None] | None = None,
        telemetry: RunTelemetry | None = None,
    ) -> None:
        self._draft = draft
        self._validate = validate
        self._persist = persist
        self._provision = provision
        self._decide = decide
        self._present = present or (lambda text, number: logger.info("Draft %d:\n%s", number, text))
        self._notify = notify or logger.warning
        self._telemetry = telemetry
        self._state = LoopState.DRAFTING

    @property
    def state(self) -> LoopState:
        return self._state

    def run(self, prompt: str) -> ApprovalOutcome:
        """Run the loop for one prompt until a terminal state."""
        context = PromptContext([prompt])
        self._state = LoopState.DRAFTING
        drafts = 0

        while True:
            try:
                template = self._draft(context)
            except KeyboardInterrupt:
                return self._interrupted(drafts)

            drafts += 1
            if self._telemetry is not None:
                self._telemetry.drafts += 1
            context.append(template)
            self._present(template, drafts)
            self._state = LoopState.AWAITING_APPROVAL

            try:
                decision = self._next_decision(template)
            except KeyboardInterrupt:
                return self._interrupted(drafts)

            if decision.action is UserDecision.ABORT:
                logger.info("Template rejected; aborting without changes.")
                self._state = LoopState.ABORTED
                return ApprovalOutcome(state=self._state, drafts=drafts)

            if decision.action is UserDecision.REPROMPT:
                if self._telemetry is not None:
                    self._telemetry.rejections += 1
                context.append(decision.feedback or DEFAULT_REJECTION_MARKER)
                self._state = LoopState.DRAFTING
                continue

            try:
                self._validate(template)
            except TemplateValidationError as error:
                if self._telemetry is not None:
                    self._telemetry.validation_failures += 1
                    self._telemetry.warnings.append(str(error))
                if self._decide is None:
                    self._state = LoopState.ABORTED
                    raise
                self._notify(render_diagnostics(error.diagnostics))
                context.append(
                    "The previous template failed HCL validation: " + "; ".join(error.diagnostics)
                )
                self._state = LoopState.DRAFTING
                continue

            path = self._persist(template)
            self._provision()
            self._state = LoopState.ACCEPTED
            return ApprovalOutcome(state=self._state, template=template, path=path, drafts=drafts)

    def _next_decision(self, template: str) -> ApprovalDecision:
        if self._decide is None:
            return ApprovalDecision(UserDecision.APPLY)
        return self._decide(template)

    def _interrupted(self, drafts: int) -> ApprovalOutcome:
        logger.warning("Interrupted; aborting without writing or provisioning.")
        self._state = LoopState.ABORTED
        return ApprovalOutcome(state=self._state, drafts=drafts, interrupted=True)
