"""Operator confirmation prompts."""

from __future__ import annotations

import logging
from typing import Callable

logger = logging.getLogger(__name__)

YES = frozenset({"y", "yes"})
NO = frozenset({"n", "no"})

SECOND_ROUND_PROMPT = "This cannot be undone without a restore. Are you sure?"


class ConfirmationGate:
    """Blocks until the operator answers yes or no for every required round.

    ``assume_yes`` is the headless mode: every question is granted without a
    prompt and logged as a ``confirmation_bypassed`` event. ``dry_run``
    likewise grants without prompting, since nothing will be mutated.
    """

    def __init__(
        self,
        prompt: Callable[[str], str] = input,
        assume_yes: bool = False,
        dry_run: bool = False,
        logger: logging.Logger = logger,
    ) -> None:
        self._prompt = prompt
        self.assume_yes = assume_yes
        self.dry_run = dry_run
        self._logger = logger

    @property
    def unattended(self) -> bool:
        return self.assume_yes

    def _ask(self, question: str) -> bool:
        while True:
            try:
                answer = self._prompt(f"{question} [y/N] ").strip().lower()
            except (EOFError, KeyboardInterrupt):
                return False
            if answer in YES:
                return True
            if answer in NO or answer == "":
                return False
            self._logger.info(f"Please answer 'y' or 'n' (got {answer!r})")

    def confirm(self, question: str, required_confirmations: int = 1) -> bool:
        if required_confirmations not in (1, 2):
            raise ValueError("required_confirmations must be 1 or 2")

        if self.dry_run:
            self._logger.info(
                f"Confirmation skipped for dry run: {question}",
                extra={"event": "confirmation_skipped_dry_run"},
            )
            return True
        if self.assume_yes:
            self._logger.warning(
                f"Confirmation bypassed (unattended run): {question}",
                extra={"event": "confirmation_bypassed"},
            )
            return True

        questions = [question, SECOND_ROUND_PROMPT][:required_confirmations]
        for round_number, text in enumerate(questions, start=1):
            if not self._ask(text):
                self._logger.info(
                    f"Operator declined at confirmation round {round_number}",
                    extra={"event": "confirmation_denied"},
                )
                return False
        self._logger.info(
            "Operator confirmed", extra={"event": "confirmation_granted"}
        )
        return True
