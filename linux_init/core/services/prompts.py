"""
Operator prompts.

Steps never call click directly; they ask a Prompter. The CLI hands
them a ClickPrompter, tests hand them a ScriptedPrompter with canned
answers.
"""

from __future__ import annotations

from collections.abc import Iterable

import click


class Prompter:
    """Interface for interactive questions."""

    def confirm(self, question: str, default: bool = False) -> bool:
        raise NotImplementedError

    def ask(self, question: str, default: str = "") -> str:
        raise NotImplementedError

    def notice(self, text: str) -> None:
        """Show an explanatory line before a question."""


class ClickPrompter(Prompter):
    """Prompts on the controlling terminal."""

    def confirm(self, question: str, default: bool = False) -> bool:
        return click.confirm(question, default=default)

    def ask(self, question: str, default: str = "") -> str:
        answer = click.prompt(question, default=default, show_default=bool(default))
        return str(answer).strip()

    def notice(self, text: str) -> None:
        click.secho(text, fg="yellow")


class ScriptedPrompter(Prompter):
    """Answers questions from a fixed script (tests, unattended runs)."""

    def __init__(self, confirms: Iterable[bool] = (), answers: Iterable[str] = ()):
        self._confirms = list(confirms)
        self._answers = list(answers)
        self.asked: list[str] = []

    def confirm(self, question: str, default: bool = False) -> bool:
        self.asked.append(question)
        return self._confirms.pop(0) if self._confirms else default

    def ask(self, question: str, default: str = "") -> str:
        self.asked.append(question)
        answer = self._answers.pop(0) if self._answers else ""
        return answer.strip() or default
