"""Chord Mapper - incremental multi-key command matching

Key tokens are strings: a single printable character ("g", "G", "1"),
or a bracketed name ("<Esc>", "<C-A>", "<S-Tab>").

RESPONSIBILITY:
- Parse key sequences from the key mapping table
- Regulate raw key events into tokens
- Match tokens against a trie, one token at a time

DOES NOT:
- Know which commands exist (keymap validation does)
- Execute commands

INVARIANT:
- The longest completed match wins; there is no lookahead beyond one token
- A terminal command on a node with children is only reported as
  "optional" when the next token fails to extend it
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, NamedTuple, Optional, Tuple


# =========================================================================
# KEY SEQUENCE PARSING
# =========================================================================

_MODIFIER_CHORD = re.compile(r"^<((?:[ACMS]-)+)(\S[^>]*)>")
_NAMED_KEY = re.compile(r"^<\w+>")


class KeySequenceError(ValueError):
    """Raised for a malformed key sequence in the mapping table."""


def parse_key_sequence(sequence: str) -> List[str]:
    """Split a mapping key such as "g<C-A>\\<" into tokens.

    Modifier chords are normalised by sorting their modifiers, so
    "<C-A-x>" and "<A-C-x>" produce the same token.

    Raises:
        KeySequenceError: on an empty sequence or a trailing backslash
    """
    if not sequence:
        raise KeySequenceError("empty key sequence")

    tokens: List[str] = []
    rest = sequence
    while rest:
        match = _MODIFIER_CHORD.match(rest)
        if match:
            modifiers = sorted(match.group(1)[:-1].split("-"))
            tokens.append("<" + "-".join(modifiers) + "-" + match.group(2) + ">")
            rest = rest[match.end():]
            continue

        match = _NAMED_KEY.match(rest)
        if match:
            tokens.append(match.group(0))
            rest = rest[match.end():]
            continue

        if rest[0] == "\\":
            if len(rest) < 2:
                raise KeySequenceError(f"trailing backslash in {sequence!r}")
            tokens.append(rest[1])
            rest = rest[2:]
            continue

        tokens.append(rest[0])
        rest = rest[1:]
    return tokens


# =========================================================================
# KEY REGULATION
# =========================================================================

MODIFIER_KEYS = frozenset({"Shift", "Control", "Alt", "Meta", "AltGraph", "OS"})

KEY_NAME_MAP = {
    "Escape": "Esc",
    " ": "Space",
    "ArrowUp": "Up",
    "ArrowDown": "Down",
    "ArrowLeft": "Left",
    "ArrowRight": "Right",
    "¥": "\\",
}


@dataclass(frozen=True)
class KeyEvent:
    """Raw key event as reported by the host."""
    key: str
    alt: bool = False
    ctrl: bool = False
    meta: bool = False
    shift: bool = False


def regulate_key(event: KeyEvent) -> Optional[str]:
    """Convert a raw key event into a token. Pure modifiers give None."""
    key = event.key
    if not key or key in MODIFIER_KEYS:
        return None

    key = KEY_NAME_MAP.get(key, key)
    is_special = len(key) > 1

    prefix = ""
    if event.alt:
        prefix += "A-"
    if event.ctrl:
        prefix += "C-"
    if event.meta:
        prefix += "M-"
    if event.shift and is_special:
        prefix += "S-"

    if not is_special and prefix:
        key = key.upper()
    if is_special or prefix:
        return f"<{prefix}{key}>"
    return key


# =========================================================================
# TRIE
# =========================================================================

@dataclass
class ChordNode:
    """One trie level: token -> child node (with optional terminal command)."""
    command: Optional[str] = None
    children: Dict[str, "ChordNode"] = field(default_factory=dict)

    def get(self, token: str) -> Optional["ChordNode"]:
        return self.children.get(token)

    def has_children(self) -> bool:
        return bool(self.children)

    def add(self, tokens: List[str], command: str) -> None:
        node = self
        for token in tokens:
            node = node.children.setdefault(token, ChordNode())
        # Last definition of a sequence wins.
        node.command = command

    def __len__(self) -> int:
        return len(self.children)


def build_chord_trie(mapping: Mapping[str, str]) -> ChordNode:
    """Build a trie from a {key sequence: command} table.

    Malformed sequences are skipped with a warning.
    """
    root = ChordNode()
    for sequence, command in mapping.items():
        try:
            tokens = parse_key_sequence(sequence)
        except KeySequenceError as e:
            logging.warning(f"Skipping key mapping {sequence!r}: {e}")
            continue
        root.add(tokens, command)
    return root


# =========================================================================
# MATCHER
# =========================================================================

class ChordResult(NamedTuple):
    """Outcome of feeding one token."""
    consumed: bool
    optional_command: Optional[str]
    command: Optional[str]
    dropped: List[str]


class ChordMapper:
    """Stateful matcher over a ChordNode trie.

    Usage:
        mapper = ChordMapper(build_chord_trie({"gg": "scrollTop"}))
        mapper.feed("g")   # ChordResult(True, None, None, [])
        mapper.feed("g")   # ChordResult(True, None, "scrollTop", [])
    """

    def __init__(self, root: ChordNode):
        self._root = root
        self._state: Optional[Tuple[ChordNode, List[str]]] = None

    @property
    def pending(self) -> List[str]:
        """Tokens consumed by the current partial match."""
        if self._state is None:
            return []
        return list(self._state[1])

    def reset(self) -> None:
        self._state = None

    def feed(self, token: str) -> ChordResult:
        optional_command: Optional[str] = None
        dropped: List[str] = []

        if self._state is not None:
            node, consumed_tokens = self._state
            child = node.get(token)
            if child is not None:
                if child.has_children():
                    self._state = (child, consumed_tokens + [token])
                    return ChordResult(True, None, None, [])
                self._state = None
                return ChordResult(True, None, child.command, [])

            # The partial match cannot be extended: report the prefix's own
            # command (if any) and restart from the top.
            optional_command = node.command
            dropped = consumed_tokens
            self._state = None

        child = self._root.get(token)
        if child is None:
            return ChordResult(False, optional_command, None, dropped)
        if child.has_children():
            self._state = (child, [token])
            return ChordResult(True, optional_command, None, dropped)
        return ChordResult(True, optional_command, child.command, dropped)
