"""Tests for tmux-style key encoding."""

import pytest

from process_mcp.keys import SPECIAL_KEYS, describe_keys, encode_keys, tokenize


def test_literal_text_passes_through():
    assert encode_keys("ls -la") == b"ls -la"
    assert encode_keys("") == b""


def test_ctrl_c():
    assert encode_keys("C-c") == b"\x03"


@pytest.mark.parametrize(
    "keys, expected",
    [
        ("C-a", b"\x01"),
        ("C-z", b"\x1a"),
        ("C-D", b"\x04"),  # case-insensitive
        ("C-@", b"\x00"),
        ("C-[", b"\x1b"),
        ("C-\\", b"\x1c"),
        ("C-]", b"\x1d"),
        ("C-^", b"\x1e"),
        ("C-_", b"\x1f"),
        ("C-?", b"\x7f"),
        ("C-1", b"1"),  # unknown control char: prefix dropped
    ],
)
def test_ctrl_keys(keys, expected):
    assert encode_keys(keys) == expected


def test_ctrl_prefix_at_end_is_literal():
    assert encode_keys("C-") == b"C-"
    assert encode_keys("M-") == b"M-"


def test_meta_key():
    assert encode_keys("M-f") == b"\x1bf"
    assert encode_keys("M-B") == b"\x1bB"


def test_shift_tab():
    assert encode_keys("S-Tab") == b"\x1b[Z"


def test_enter_is_carriage_return():
    assert encode_keys("Enter") == b"\r"
    assert encode_keys("Return") == b"\r"


def test_named_key_requires_word_boundary():
    """A key name inside a longer word is typed literally."""
    assert encode_keys("Entertain") == b"Entertain"
    assert encode_keys("Tabby") == b"Tabby"
    assert encode_keys("Up2") == b"Up2"


def test_named_key_followed_by_punctuation():
    assert encode_keys("Enter.") == b"\r."
    assert encode_keys("Up,Down") == b"\x1b[A,\x1b[B"


def test_longest_name_wins():
    assert encode_keys("F10") == b"\x1b[21~"
    assert encode_keys("F1") == b"\x1bOP"
    assert encode_keys("Escape") == b"\x1b"
    assert encode_keys("Esc") == b"\x1b"
    assert encode_keys("PageUp") == b"\x1b[5~"


def test_all_named_keys_encode_to_table_value():
    for name, sequence in SPECIAL_KEYS.items():
        assert encode_keys(name) == sequence.encode()


def test_mixed_command_line():
    assert encode_keys("vim file.txt Enter :wq Enter") == b"vim file.txt \r :wq \r"
    assert encode_keys("echo hello C-c") == b"echo hello \x03"


def test_unicode_literal():
    assert encode_keys("echo héllo Enter") == "echo héllo \r".encode("utf-8")


def test_encoding_is_linear_on_long_input():
    keys = "x" * 100_000 + " Enter"
    assert encode_keys(keys).endswith(b" \r")


def test_tokenize_kinds():
    kinds = [token.kind for token in tokenize("a C-c M-x S-Tab Up")]
    assert kinds == [
        "literal", "literal", "ctrl", "literal", "meta", "literal", "shift", "literal", "special",
    ]


def test_describe_keys():
    assert describe_keys("ls -la Enter") == "Type: ls -la , Enter"
    assert describe_keys("C-c") == "Ctrl+C"
    assert describe_keys("M-x") == "Alt+x"
    assert describe_keys("S-Tab") == "Shift+Tab"
