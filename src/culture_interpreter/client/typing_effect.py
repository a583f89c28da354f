"""Typing animation over a growing target text."""

from __future__ import annotations


class TypingEffect:
    def __init__(self, chars_per_tick: int = 3) -> None:
        if chars_per_tick < 1:
            raise ValueError("chars_per_tick must be at least 1")
        self.chars_per_tick = chars_per_tick
        self.displayed = ""

    def tick(self, target: str) -> str:
        """Reveals up to ``chars_per_tick`` more characters of ``target``.

        A target that no longer extends what is displayed (a new session)
        restarts the animation from empty.
        """
        if not target.startswith(self.displayed):
            self.displayed = ""
        self.displayed = target[: len(self.displayed) + self.chars_per_tick]
        return self.displayed

    def is_typing(self, target: str) -> bool:
        return len(self.displayed) < len(target)
