"""Options Configuration - Single Authority for User Options

Mirrors HostConfig pattern. The coordinator reads from here and pushes
the result to every frame; frames never read the file themselves.

RESPONSIBILITY:
- Load options.yaml
- Provide get() singleton
- Expose an immutable Options snapshot
- Replace the whole option set on edit

DOES NOT:
- Validate key sequences or command names (keymap.py's job)
- Push options to frames (CoordinatorHub's job)
"""

import copy
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Any, Optional


@dataclass(frozen=True)
class Options:
    """Immutable option snapshot."""
    key_mapping: Dict[str, Dict[str, str]]
    hint_pattern: Dict[str, Any]
    search_engine: Dict[str, Any]
    auto_focus: bool
    overlap_hint_labels: bool
    activate_new_tab: bool
    sweep_interval: float
    stale_policy: str  # "reject" | "drop"
    register_interval: float

    def frame_payload(self) -> Dict[str, Any]:
        """The part of the options every frame needs."""
        return {
            "keyMapping": copy.deepcopy(self.key_mapping),
            "hintPattern": copy.deepcopy(self.hint_pattern),
            "registerInterval": self.register_interval,
            "sweepInterval": self.sweep_interval,
            "stalePolicy": self.stale_policy,
        }


class OptionsConfig:
    """Singleton options authority.

    Usage:
        config = OptionsConfig.get()
        options = config.options
        normal_map = options.key_mapping["normal"]
    """

    _instance: Optional["OptionsConfig"] = None
    _options: Optional[Options] = None

    # Override before first get() to load another file (main.py --config)
    config_path: Path = Path(__file__).parent.parent / "config" / "options.yaml"

    DEFAULTS: Dict[str, Any] = {
        "key_mapping": {
            "normal": {
                ".": "repeatLastCommand",
                "<C-Z>": "toSuspendMode",
                "<Esc>": "toNormalMode",
                "<C-[>": "toNormalMode",
                "f": "toHintMode",
                "F": "toHintFocusMode",
                "t": "toHintMediaMode",
                "i": "toInsertMode",
                "I": "toInsertModeOnFirstElement",
                "A": "toInsertModeOnLastElement",
                "v": "toVisualMode",
                ":": "toConsoleMode",
                "s": "toConsoleMode|open",
                "r": "toConsoleModeWithURL|open",
                "S": "toConsoleMode|tabopen",
                "R": "toConsoleModeWithURL|tabopen",
                "b": "toConsoleMode|buffer",
                "o": "smartOpen",
                "O": "smartOpenInTab",
                "e": "pressEnter",
                "q": "recordMacro",
                "@": "playMacro",
                "gt": "nextTab",
                "gT": "previousTab",
                "J": "nextTab",
                "K": "previousTab",
                "g0": "firstTab",
                "g$": "lastTab",
                "u": "undoCloseTab",
                "dd": "removeCurrentTab",
                "yt": "duplicateTab",
                "<C-L>": "reload",
                "g<C-L>": "reloadSkipCache",
                "<C-O>": "back",
                "<C-I>": "forward",
                "ww": "focusNextFrame",
                "wW": "focusPreviousFrame",
                "<Tab>": "ignore",
                "<S-Tab>": "ignore",
                "<Enter>": "ignore",
            },
            "insert": {
                "<C-Z>": "toSuspendMode",
                "<C-M>": "pressEnter",
                "<C-C>": "toNormalMode",
                "<C-[>": "toNormalMode",
                "<Esc>": "toNormalMode",
            },
            "visual": {
                "<C-[>": "toNormalMode",
                "<C-C>": "toNormalMode",
                "<Esc>": "toNormalMode",
            },
            "hint": {
                "<C-L>": "hint.reconstruct",
                "<Tab>": "hint.nextHint",
                "<S-Tab>": "hint.previousHint",
                ";": "hint.nextHint",
                ",": "hint.previousHint",
                "/": "hint.startFilter",
                "ff": "hint.toggleAutoFocus",
                "fz": "hint.toggleOverlap",
                "fi": "focusin",
                "fo": "focusout",
                "c": "mouseclick",
                "mc": "mouseclick",
                "mC": "hint.invokeCommand|2|mouseclick",
                "md": "mousedown",
                "mu": "mouseup",
                "e": "pressEnter",
                "o": "smartOpen",
                "O": "smartOpenInTab",
                "<C-C>": "toNormalMode",
                "<C-[>": "toNormalMode",
                "<Esc>": "toNormalMode",
            },
            "console": {
                "<Enter>": "console.execute",
                "<C-M>": "console.execute",
                "<C-H>": "console.deleteCharBackward",
                "<Backspace>": "console.deleteCharBackward",
                "<C-X>": "console.deleteWordBackward",
                "<C-U>": "console.deleteToBeginningOfLine",
                "<C-I>": "console.getCandidate",
                "<C-C>": "console.closeConsoleMode",
                "<Esc>": "console.closeConsoleMode",
                "<C-[>": "console.closeConsoleMode",
            },
            "suspend": {
                "<C-Z>": "toNormalMode",
            },
        },
        "hint_pattern": {
            "global": {
                "link": (
                    "*[onmousedown], *[onmouseup], *[onmouseover], *[onmouseout], "
                    "*[onmousemove], *[onclick], *[oncommand], *[role='link'], "
                    "*[role='button'], *[role='checkbox'], *[role='radio'], "
                    "*[role='option'], input:not([type='hidden']):not([disabled]):not([readonly]), "
                    "*[contenteditable='true'], *[contenteditable=''], a, button, select, "
                    "textarea, area, summary, *[tabindex]:not([tabindex='-1'])"
                ),
                "focus": "body *",
                "media": "img, canvas, video, object, embed",
            },
            "local": {},
        },
        "search_engine": {
            "default_engine": "google",
            "engines": {
                "google": {"search_url": "https://www.google.com/search?q=%s"},
                "duckduckgo": {"search_url": "https://duckduckgo.com/?q=%s"},
            },
        },
        "auto_focus": False,
        "overlap_hint_labels": True,
        "activate_new_tab": True,
        "sweep_interval": 20.0,
        "stale_policy": "reject",
        "register_interval": 0.1,
    }

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._load()
        return cls._instance

    @classmethod
    def get(cls) -> "OptionsConfig":
        """Get singleton instance."""
        return cls()

    @property
    def options(self) -> Options:
        """Get current options."""
        if self._options is None:
            self._load()
        return self._options

    def _load(self) -> None:
        """Load configuration from options.yaml."""
        config_path = Path(self.config_path)

        raw_config: Dict[str, Any] = {}

        if config_path.exists():
            try:
                import yaml
                with open(config_path, encoding="utf-8") as f:
                    full_config = yaml.safe_load(f) or {}
                    raw_config = full_config.get("options", {}) or {}
                    logging.info(f"Loaded options from {config_path}")
            except Exception as e:
                logging.warning(f"Failed to load options.yaml: {e}, using defaults")
        else:
            logging.info(f"No options.yaml found at {config_path}, using defaults")

        self._options = self.build(raw_config)
        logging.debug(f"OptionsConfig: {sorted(self._options.key_mapping)} key maps")

    @classmethod
    def build(cls, raw_config: Dict[str, Any]) -> Options:
        """Merge raw options over DEFAULTS into an Options snapshot."""
        if not isinstance(raw_config, dict):
            logging.warning("Options must be a mapping, using defaults")
            raw_config = {}
        merged = _deep_merge(copy.deepcopy(cls.DEFAULTS), raw_config)

        stale_policy = merged["stale_policy"]
        if stale_policy not in ("reject", "drop"):
            logging.warning(f"Unknown stale_policy {stale_policy!r}, using 'reject'")
            stale_policy = "reject"

        return Options(
            key_mapping=merged["key_mapping"],
            hint_pattern=merged["hint_pattern"],
            search_engine=merged["search_engine"],
            auto_focus=bool(merged["auto_focus"]),
            overlap_hint_labels=bool(merged["overlap_hint_labels"]),
            activate_new_tab=bool(merged["activate_new_tab"]),
            sweep_interval=float(merged["sweep_interval"]),
            stale_policy=stale_policy,
            register_interval=float(merged["register_interval"]),
        )

    def replace(self, raw_config: Dict[str, Any]) -> Options:
        """Swap in a whole new option set (user edited the options)."""
        self._options = self.build(raw_config)
        logging.info("Options replaced")
        return self._options

    def reload(self) -> None:
        """Force reload configuration (for testing)."""
        self._load()


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Deep merge two dictionaries."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result
