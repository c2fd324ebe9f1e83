"""Preference collector: the linear weather → mood → pace → final questionnaire."""

import logging
from dataclasses import replace
from typing import Any

from atmosphera.domain.entities import (
    MoodType,
    ReadingPace,
    UserPreferences,
    WeatherType,
    WorldSetting,
)

logger = logging.getLogger(__name__)

STEPS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("weather", ("weather",)),
    ("mood", ("mood",)),
    ("pace", ("pace",)),
    ("final", ("setting", "specific_interest", "language", "age", "preferred_format")),
)

_COERCE = {
    "weather": WeatherType,
    "mood": MoodType,
    "pace": ReadingPace,
    "setting": WorldSetting,
}

FORMATS = ("text", "audio")


class Questionnaire:
    """Collects :class:`UserPreferences` one step at a time.

    Answers only ever add to the draft; nothing is validated until
    :meth:`complete`, which runs the non-empty checks.
    """

    def __init__(self) -> None:
        self.restart()

    def restart(self) -> None:
        self.step = 0
        self._draft = UserPreferences()

    @property
    def current_step(self) -> str:
        return STEPS[self.step][0]

    @property
    def progress(self) -> float:
        return (self.step + 1) / len(STEPS)

    @property
    def is_final(self) -> bool:
        return self.step == len(STEPS) - 1

    @property
    def draft(self) -> UserPreferences:
        return self._draft

    def answer(self, **fields: Any) -> None:
        """Record answers for the current step and advance (the final step stays put)."""
        allowed = STEPS[self.step][1]
        unknown = set(fields) - set(allowed)
        if unknown:
            raise ValueError(
                f"Step '{self.current_step}' does not take {', '.join(sorted(unknown))}"
            )
        updates = {}
        for name, value in fields.items():
            if value is None:
                continue
            if name in _COERCE and not isinstance(value, _COERCE[name]):
                value = _COERCE[name](value)
            if name == "preferred_format" and value not in FORMATS:
                raise ValueError(f"preferred_format must be one of: {', '.join(FORMATS)}")
            updates[name] = value
        self._draft = replace(self._draft, **updates)
        if not self.is_final:
            self.step += 1

    def back(self) -> None:
        if self.step > 0:
            self.step -= 1

    def complete(self) -> UserPreferences:
        if not self.is_final:
            raise ValueError("Questionnaire is not at the final step yet")
        missing = [
            name
            for name in ("weather", "mood", "pace", "setting")
            if getattr(self._draft, name) is None
        ]
        if not (self._draft.language or "").strip():
            missing.append("language")
        if missing:
            raise ValueError(f"Missing answers: {', '.join(missing)}")
        logger.info(
            "Questionnaire complete: %s / %s / %s",
            self._draft.weather.value,
            self._draft.mood.value,
            self._draft.pace.value,
        )
        return self._draft


def preferences_from_answers(**answers: Any) -> UserPreferences:
    """Run a complete set of answers through every step in one go."""
    questionnaire = Questionnaire()
    for _, names in STEPS:
        questionnaire.answer(**{name: answers[name] for name in names if name in answers})
    return questionnaire.complete()
