from __future__ import annotations

from typing import Callable

_YES = ("y", "yes")
_NO = ("n", "no")


class Prompter:
    """
    Line-oriented input helpers for the console menu.

    Invalid numeric or yes/no answers are re-asked rather than raised;
    field rules (lengths, formats) stay with the application layer.
    """

    def __init__(self, read_line: Callable[[str], str], write: Callable[[str], None]) -> None:
        self._read_line = read_line
        self._write = write

    def read_text(self, prompt: str) -> str:
        while True:
            value = self._read_line(prompt).strip()
            if value:
                return value
            self._write("A value is required.")

    def read_optional(self, prompt: str) -> str:
        """Return the trimmed answer; an empty string means keep the current value."""

        return self._read_line(prompt).strip()

    def read_int(self, prompt: str) -> int:
        while True:
            raw = self._read_line(prompt).strip()
            try:
                return int(raw)
            except ValueError:
                self._write("Please enter a whole number.")

    def read_bool(self, prompt: str) -> bool:
        while True:
            raw = self._read_line(f"{prompt} (y/n): ").strip().lower()
            if raw in _YES:
                return True
            if raw in _NO:
                return False
            self._write("Please answer y or n.")

    def confirm(self, prompt: str) -> bool:
        return self.read_bool(prompt)
