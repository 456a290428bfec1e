"""tmux-style key encoding for send_keys.

Translates a string that mixes literal text with symbolic key names into the
bytes a terminal would send for those keystrokes:

* literal text is typed as-is
* ``C-x`` is Ctrl+X (``C-c`` -> 0x03, ``C-[`` -> ESC, ...)
* ``M-x`` is Alt/Meta+X (ESC followed by the character)
* ``S-Tab`` is Shift+Tab (back-tab)
* named keys: Enter, Tab, Escape, Space, Backspace, arrows, Home/End,
  PageUp/PageDown, Insert, Delete and F1-F12

A named key only matches when the next character is not alphanumeric, so
``"Entertain"`` is typed literally. Encoding never fails: anything that is not
a recognised token is passed through unchanged.

Example::

    >>> encode_keys("vim notes.txt Enter :wq Enter")
    b'vim notes.txt \\r :wq \\r'
"""

from typing import NamedTuple, Optional

ESC = "\x1b"

SPECIAL_KEYS: dict[str, str] = {
    # Basic keys
    "Enter": "\r",
    "Return": "\r",
    "Tab": "\t",
    "Escape": ESC,
    "Esc": ESC,
    "Space": " ",
    "Backspace": "\x7f",
    "Delete": ESC + "[3~",
    # Arrow keys
    "Up": ESC + "[A",
    "Down": ESC + "[B",
    "Right": ESC + "[C",
    "Left": ESC + "[D",
    # Navigation
    "Home": ESC + "[H",
    "End": ESC + "[F",
    "PageUp": ESC + "[5~",
    "PageDown": ESC + "[6~",
    "Insert": ESC + "[2~",
    # Function keys (xterm)
    "F1": ESC + "OP",
    "F2": ESC + "OQ",
    "F3": ESC + "OR",
    "F4": ESC + "OS",
    "F5": ESC + "[15~",
    "F6": ESC + "[17~",
    "F7": ESC + "[18~",
    "F8": ESC + "[19~",
    "F9": ESC + "[20~",
    "F10": ESC + "[21~",
    "F11": ESC + "[23~",
    "F12": ESC + "[24~",
}

CTRL_SPECIAL: dict[str, str] = {
    "@": "\x00",
    "[": ESC,
    "\\": "\x1c",
    "]": "\x1d",
    "^": "\x1e",
    "_": "\x1f",
    "?": "\x7f",
}

SHIFT_TAB = ESC + "[Z"

# Longest names first so "F10" wins over "F1" and "Escape" over "Esc".
_NAMES_BY_LENGTH = sorted(SPECIAL_KEYS, key=len, reverse=True)


class Token(NamedTuple):
    kind: str  # "literal", "ctrl", "meta", "shift" or "special"
    value: str


def _is_word_char(char: str) -> bool:
    return char.isascii() and char.isalnum()


def ctrl_key(char: str) -> str:
    """Return the control character for Ctrl+``char``."""
    lower = char.lower()
    if "a" <= lower <= "z":
        return chr(ord(lower) - 96)
    return CTRL_SPECIAL.get(char, char)


def _match_special(keys: str, pos: int) -> Optional[str]:
    for name in _NAMES_BY_LENGTH:
        if keys.startswith(name, pos):
            end = pos + len(name)
            if end == len(keys) or not _is_word_char(keys[end]):
                return name
    return None


def tokenize(keys: str) -> list[Token]:
    """Split a send-keys string into tokens with a single left-to-right scan."""
    tokens: list[Token] = []
    i = 0
    n = len(keys)

    while i < n:
        prefix = keys[i:i + 2]
        if prefix in ("C-", "M-") and i + 2 < n:
            tokens.append(Token("ctrl" if prefix == "C-" else "meta", keys[i + 2]))
            i += 3
            continue

        if keys.startswith("S-Tab", i):
            tokens.append(Token("shift", "Tab"))
            i += 5
            continue

        name = _match_special(keys, i)
        if name is not None:
            tokens.append(Token("special", name))
            i += len(name)
            continue

        tokens.append(Token("literal", keys[i]))
        i += 1

    return tokens


def _token_text(token: Token) -> str:
    if token.kind == "ctrl":
        return ctrl_key(token.value)
    if token.kind == "meta":
        return ESC + token.value
    if token.kind == "shift":
        return SHIFT_TAB
    if token.kind == "special":
        return SPECIAL_KEYS[token.value]
    return token.value


def encode_keys(keys: str) -> bytes:
    """Encode a send-keys string into the raw bytes to write to a process."""
    return "".join(_token_text(token) for token in tokenize(keys)).encode("utf-8")


def describe_keys(keys: str) -> str:
    """Describe what a send-keys string will type, e.g. ``"Type: ls, Enter"``."""
    descriptions: list[str] = []
    for token in tokenize(keys):
        if token.kind == "literal":
            # Group consecutive literals
            if descriptions and descriptions[-1].startswith("Type: "):
                descriptions[-1] += token.value
            else:
                descriptions.append(f"Type: {token.value}")
        elif token.kind == "ctrl":
            descriptions.append(f"Ctrl+{token.value.upper()}")
        elif token.kind == "meta":
            descriptions.append(f"Alt+{token.value}")
        elif token.kind == "shift":
            descriptions.append(f"Shift+{token.value}")
        else:
            descriptions.append(token.value)
    return ", ".join(descriptions)
