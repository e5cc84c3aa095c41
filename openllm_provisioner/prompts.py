"""Interactive prompts with validation and re-prompting."""

from typing import Callable, Optional, Self

from rich.console import Console
from rich.prompt import Prompt

from .output import console as default_console
from .output import warn

# Returns an error message for invalid answers, None when the answer is accepted.
Validator = Callable[[str], Optional[str]]

YES_ANSWERS = ("y", "yes")


class Prompter:
    """Asks the operator questions on the terminal."""

    def __init__(self: Self, console: Optional[Console] = None) -> None:
        self.console = console or default_console

    def read(self: Self, question: str, default: Optional[str] = None) -> str:
        """Read one raw answer from the operator."""
        answer = Prompt.ask(
            question,
            console=self.console,
            default=default if default is not None else "",
            show_default=bool(default),
        )
        return answer or ""

    def ask(
        self: Self,
        question: str,
        default: Optional[str] = None,
        validate: Optional[Validator] = None,
    ) -> str:
        """Ask until the answer passes validation.

        Args:
            question: Text shown to the operator.
            default: Answer used when the operator just presses enter.
            validate: Optional check returning an error message to show
                before asking again.

        Returns:
            The stripped, accepted answer.
        """
        while True:
            answer = self.read(question, default).strip()
            if not answer and default is not None:
                answer = default
            if validate is not None:
                problem = validate(answer)
                if problem:
                    warn(problem)
                    continue
            return answer

    def confirm(self: Self, question: str, default: bool = False) -> bool:
        """Ask a yes/no question; only ``y`` or ``yes`` count as yes."""
        suffix = "(Y/n)" if default else "(y/N)"
        answer = self.read(f"{question} {suffix}").strip().lower()
        if not answer:
            return default
        return answer in YES_ANSWERS
