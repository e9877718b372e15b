"""
Keypad layout and key mapping.
Maps keyboard key names and Linux input keycodes to keypad symbols:
"0".."9", "BACKSPACE", "CLEAR", "ENTER".
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional


# 3x4 grid: 1-9, blank, 0, backspace
KEYPAD_LAYOUT: List[Dict[str, Any]] = [
    *({"value": n, "type": "number"} for n in range(1, 10)),
    {"value": None, "type": "empty"},
    {"value": 0, "type": "number"},
    {"value": "BACKSPACE", "type": "action"},
]

SYMBOLS = frozenset(("0", "1", "2", "3", "4", "5", "6", "7", "8", "9", "BACKSPACE", "CLEAR", "ENTER"))

_MAIN_ROW_NUM = {2: "1", 3: "2", 4: "3", 5: "4", 6: "5", 7: "6", 8: "7", 9: "8", 10: "9", 11: "0"}  # KEY_1..KEY_0
_KP_NUM = {79: "1", 80: "2", 81: "3", 75: "4", 76: "5", 77: "6", 71: "7", 72: "8", 73: "9", 82: "0"}  # KP1..KP0


def map_key_name(name: str) -> Optional[str]:
    if not name:
        return None
    k = name.strip().upper()
    if k.startswith("KEY_"):
        k = k[4:]
    if k in SYMBOLS:
        return k
    if k in ("ENTER", "KPENTER", "RETURN", "HASHTAG"):
        return "ENTER"
    if k in ("BACKSPACE", "DELETE", "DEL"):
        return "BACKSPACE"
    if k in ("ESC", "KPASTERISK", "CLEAR"):
        return "CLEAR"
    if k.startswith("KP") and len(k) == 3 and k[2].isdigit():
        return k[2]
    return None


def map_keycode(code: int) -> Optional[str]:
    if code in _MAIN_ROW_NUM:
        return _MAIN_ROW_NUM[code]
    if code in _KP_NUM:
        return _KP_NUM[code]
    if code in (28, 96):  # Enter, KP_Enter
        return "ENTER"
    if code in (14, 111):  # Backspace, Delete
        return "BACKSPACE"
    if code in (1, 55):  # Esc, KP_Asterisk
        return "CLEAR"
    return None
