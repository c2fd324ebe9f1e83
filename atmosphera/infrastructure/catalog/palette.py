"""Deterministic mood colors for books that arrive without one."""

MOOD_PALETTE = (
    "#475569",  # slate
    "#7c3aed",  # violet
    "#0f766e",  # teal
    "#b45309",  # amber
    "#be123c",  # rose
    "#1d4ed8",  # blue
    "#4d7c0f",  # moss
    "#9d174d",  # plum
    "#0e7490",  # cyan
    "#78350f",  # umber
)


def mood_color_for(title: str) -> str:
    """Hash the character codes of *title* into :data:`MOOD_PALETTE`.

    The same title always yields the same color.
    """
    value = 0
    for char in title or "":
        value = (value * 31 + ord(char)) & 0xFFFFFFFF
    return MOOD_PALETTE[value % len(MOOD_PALETTE)]
