"""Linux evdev keycode classification used for word counting."""

# Letter rows of a standard keyboard (q..p, a..l, z..m)
LETTER_KEYCODES = frozenset(range(16, 26)) | frozenset(range(30, 39)) | frozenset(range(44, 51))

# Number row 1..0
DIGIT_KEYCODES = frozenset(range(2, 12))

# Apostrophe, so "don't" counts as one word
APOSTROPHE_KEYCODE = 40

SPACE_KEYCODE = 57
ENTER_KEYCODE = 28
TAB_KEYCODE = 15
KP_ENTER_KEYCODE = 96

WORD_SEPARATOR_KEYCODES = frozenset(
    {SPACE_KEYCODE, ENTER_KEYCODE, TAB_KEYCODE, KP_ENTER_KEYCODE}
)


def is_word_character(keycode: int) -> bool:
    """Whether the key types part of a word."""
    return (
        keycode in LETTER_KEYCODES
        or keycode in DIGIT_KEYCODES
        or keycode == APOSTROPHE_KEYCODE
    )


def is_word_separator(keycode: int) -> bool:
    """Whether the key ends the word being typed."""
    return keycode in WORD_SEPARATOR_KEYCODES


class WordBoundaryTracker:
    """Counts a word each time a separator follows at least one word character."""

    def __init__(self) -> None:
        self.in_word = False

    def process(self, keycode: int) -> bool:
        """Feed one key press.

        Returns:
            True if this press completed a word
        """
        if is_word_character(keycode):
            self.in_word = True
            return False
        if is_word_separator(keycode) and self.in_word:
            self.in_word = False
            return True
        return False

    def reset(self) -> None:
        self.in_word = False
