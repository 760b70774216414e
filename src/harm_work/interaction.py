"""Interactive prompting capability.

One prompter is chosen at startup and handed to the session managers; they ask
it questions without caring whether a human is attached.
"""

from __future__ import annotations

import sys
from typing import Callable, Protocol, Sequence, TextIO


class Prompter(Protocol):
    interactive: bool

    def confirm(self, question: str, default: bool = False) -> bool: ...

    def ask(self, question: str, default: str = "") -> str: ...

    def choose(self, question: str, options: Sequence[str], default: str | None = None) -> str: ...


class NonInteractivePrompter:
    """Answers every question with its default; never blocks automation."""

    interactive = False

    def confirm(self, question: str, default: bool = False) -> bool:
        return default

    def ask(self, question: str, default: str = "") -> str:
        return default

    def choose(self, question: str, options: Sequence[str], default: str | None = None) -> str:
        if default is not None:
            return default
        if not options:
            raise ValueError("choose() needs at least one option")
        return options[0]


class TerminalPrompter:
    """Line-based prompts on a terminal."""

    interactive = True

    def __init__(
        self,
        input_fn: Callable[[str], str] = input,
        output: TextIO | None = None,
    ) -> None:
        self._input = input_fn
        self._output = output or sys.stderr

    def _read(self, prompt: str) -> str | None:
        try:
            return self._input(prompt)
        except EOFError:
            return None

    def confirm(self, question: str, default: bool = False) -> bool:
        suffix = "[Y/n]" if default else "[y/N]"
        while True:
            answer = self._read(f"{question} {suffix} ")
            if answer is None:
                return default
            answer = answer.strip().lower()
            if not answer:
                return default
            if answer in {"y", "yes"}:
                return True
            if answer in {"n", "no"}:
                return False
            print("Please answer 'y' or 'n'.", file=self._output)

    def ask(self, question: str, default: str = "") -> str:
        hint = f" [{default}]" if default else ""
        answer = self._read(f"{question}{hint}: ")
        if answer is None or not answer.strip():
            return default
        return answer.strip()

    def choose(self, question: str, options: Sequence[str], default: str | None = None) -> str:
        if not options:
            raise ValueError("choose() needs at least one option")
        print(question, file=self._output)
        for index, option in enumerate(options, start=1):
            print(f"  {index}) {option}", file=self._output)
        while True:
            answer = self._read("Select a number: ")
            if answer is None or not answer.strip():
                return default if default is not None else options[0]
            try:
                index = int(answer)
            except ValueError:
                index = 0
            if 1 <= index <= len(options):
                return options[index - 1]
            print(f"Enter a number between 1 and {len(options)}.", file=self._output)


def detect_prompter(stdin: TextIO | None = None, stdout: TextIO | None = None) -> Prompter:
    """Pick the interactive prompter only when both ends are attached to a terminal."""

    stdin = stdin or sys.stdin
    stdout = stdout or sys.stdout
    try:
        attached = stdin.isatty() and stdout.isatty()
    except (AttributeError, ValueError):
        attached = False
    if attached:
        return TerminalPrompter()
    return NonInteractivePrompter()


__all__ = ["NonInteractivePrompter", "Prompter", "TerminalPrompter", "detect_prompter"]
