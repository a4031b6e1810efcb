"""Key mapping and hint pattern preparation

Runs once at configuration load (and again on every wholesale option
replacement). Bad entries are dropped with a warning; the rest of the
configuration stays usable.
"""

import logging
from typing import Dict, Mapping, Optional, Set, Tuple

import soupsieve

from .chord_mapper import ChordNode, KeySequenceError, build_chord_trie, parse_key_sequence


CommandCatalog = Mapping[str, Set[str]]


def parse_command(value: str) -> Tuple[str, str]:
    """Split "name|args" into (name, args). args is "" when absent."""
    name, _, args = value.partition("|")
    return name.strip(), args


def prepare_key_mapping(
    key_mapping: Mapping[str, Mapping[str, str]],
    catalog: CommandCatalog,
) -> Dict[str, Dict[str, str]]:
    """Validate a per-mode {sequence: command} table against a catalog.

    Modes missing from the catalog are dropped entirely.
    """
    prepared: Dict[str, Dict[str, str]] = {}
    for mode_name, mapping in key_mapping.items():
        known = catalog.get(mode_name)
        if known is None:
            logging.warning(f"Skipping key mapping for unknown mode {mode_name!r}")
            continue
        if not isinstance(mapping, Mapping):
            logging.warning(f"Key mapping for {mode_name!r} must be a mapping")
            continue

        valid: Dict[str, str] = {}
        for sequence, command in mapping.items():
            if not isinstance(sequence, str) or not isinstance(command, str):
                logging.warning(f"Skipping non-string key mapping {sequence!r}: {command!r}")
                continue
            try:
                parse_key_sequence(sequence)
            except KeySequenceError as e:
                logging.warning(f"Skipping key mapping {sequence!r} in {mode_name}: {e}")
                continue
            name, _ = parse_command(command)
            if name not in known:
                logging.warning(f"Skipping key mapping {sequence!r} in {mode_name}: unknown command {name!r}")
                continue
            valid[sequence] = command
        prepared[mode_name] = valid
    return prepared


def build_tries(key_mapping: Mapping[str, Mapping[str, str]]) -> Dict[str, ChordNode]:
    """One chord trie per mode."""
    return {mode_name: build_chord_trie(mapping) for mode_name, mapping in key_mapping.items()}


# =========================================================================
# HINT PATTERNS
# =========================================================================

HINT_TYPES = ("link", "focus", "media")


def is_valid_selector(pattern: str) -> bool:
    try:
        soupsieve.compile(pattern)
    except (soupsieve.SelectorSyntaxError, TypeError) as e:
        logging.warning(f"Invalid selector {pattern!r}: {e}")
        return False
    return True


def prepare_hint_pattern(hint_pattern: Mapping) -> Dict[str, Dict]:
    """Drop selector patterns that do not compile."""
    global_patterns: Dict[str, str] = {}
    for hint_type, pattern in (hint_pattern.get("global") or {}).items():
        if hint_type not in HINT_TYPES:
            logging.warning(f"Skipping hint pattern for unknown type {hint_type!r}")
            continue
        if is_valid_selector(pattern):
            global_patterns[hint_type] = pattern

    local_patterns: Dict[str, Dict[str, list]] = {}
    for host, per_type in (hint_pattern.get("local") or {}).items():
        for hint_type, entries in (per_type or {}).items():
            kept = []
            for entry in entries or []:
                selector = entry[0] if isinstance(entry, (list, tuple)) and entry else entry
                if isinstance(selector, str) and is_valid_selector(selector):
                    kept.append(list(entry) if isinstance(entry, (list, tuple)) else [entry, ""])
            if kept:
                local_patterns.setdefault(host, {})[hint_type] = kept

    return {"global": global_patterns, "local": local_patterns}


def resolve_hint_pattern(hint_pattern: Mapping, hint_type: str, host: Optional[str] = None) -> Optional[str]:
    """Global selector for the type, extended with host-specific selectors."""
    pattern = (hint_pattern.get("global") or {}).get(hint_type)
    if not pattern:
        return None
    if host:
        local = ((hint_pattern.get("local") or {}).get(host) or {}).get(hint_type) or []
        extra = [entry[0] for entry in local]
        if extra:
            pattern = ", ".join([pattern] + extra)
    return pattern
