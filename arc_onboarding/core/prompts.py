"""Console prompts with an injectable input source.

Every prompt has a default. In non-interactive mode, or when the input
stream is closed, the default is returned without blocking.
"""

import logging
from collections.abc import Callable

logger = logging.getLogger(__name__)


class Prompter:
    """Ask the operator for input, re-prompting on invalid answers.

    Args:
        interactive: If False, every prompt returns its default immediately.
        input_func: Callable used to read a line (defaults to ``input``).
        output_func: Callable used to print messages (defaults to ``print``).
        max_attempts: Optional bound on re-prompts before falling back to
            the default. ``None`` re-prompts until a valid answer is given.
    """

    def __init__(
        self,
        interactive: bool = True,
        input_func: Callable[[str], str] = input,
        output_func: Callable[[str], None] = print,
        max_attempts: int | None = None,
    ):
        self.interactive = interactive
        self._input = input_func
        self._output = output_func
        self.max_attempts = max_attempts

    def say(self, message: str = "") -> None:
        """Print a message to the operator."""
        self._output(message)

    def _read(self, prompt: str) -> str | None:
        """Read one line, returning None when input is unavailable."""
        try:
            return self._input(prompt)
        except EOFError:
            logger.debug("Input stream closed, using default answer")
            return None

    def ask(self, message: str, default: str = "") -> str:
        """Ask a free-text question.

        Returns:
            The stripped answer, or ``default`` for an empty answer.
        """
        if not self.interactive:
            return default

        suffix = f" [{default}]" if default else ""
        raw = self._read(f"{message}{suffix}: ")
        if raw is None:
            return default
        return raw.strip() or default

    def confirm(self, message: str, default: bool = True) -> bool:
        """Ask a yes/no question."""
        if not self.interactive:
            return default

        hint = "Y/n" if default else "y/N"
        attempts = 0
        while self.max_attempts is None or attempts < self.max_attempts:
            attempts += 1
            raw = self._read(f"{message} ({hint}): ")
            if raw is None:
                return default

            answer = raw.strip().lower()
            if not answer:
                return default
            if answer in ("y", "yes"):
                return True
            if answer in ("n", "no"):
                return False
            self.say("Please answer 'y' or 'n'.")

        logger.warning(f"No valid answer after {attempts} attempts, using default")
        return default

    def choose(self, message: str, count: int, default: int = 1) -> int:
        """Ask for a 1-based selection from a numbered list.

        Non-integer and out-of-range answers print a message and re-prompt.

        Args:
            message: Prompt text
            count: Number of options listed (valid answers are 1..count)
            default: Selection used for an empty answer

        Returns:
            The selected 1-based index
        """
        if count < 1:
            raise ValueError("Cannot choose from an empty list")

        if not self.interactive:
            return default

        attempts = 0
        while self.max_attempts is None or attempts < self.max_attempts:
            attempts += 1
            raw = self._read(f"{message} (1-{count}) [{default}]: ")
            if raw is None:
                return default

            answer = raw.strip()
            if not answer:
                return default

            try:
                selection = int(answer)
            except ValueError:
                self.say(f"Invalid selection '{answer}'. Enter a number between 1 and {count}.")
                continue

            if not 1 <= selection <= count:
                self.say(f"Selection {selection} is out of range. Enter a number between 1 and {count}.")
                continue

            return selection

        logger.warning(f"No valid selection after {attempts} attempts, using default {default}")
        return default
