# core/hooks/keyboard_listener.py
from __future__ import annotations
from typing import Set, Optional, Tuple
import threading
from queue import Queue
from pynput import keyboard
import structlog

from .events import KeyEvent, KeyAction
from core.utils.queueing import safe_put

log = structlog.get_logger()

MOD_KEYS = {
    keyboard.Key.shift: "shift",
    keyboard.Key.shift_r: "shift",
    keyboard.Key.shift_l: "shift",
    keyboard.Key.ctrl: "ctrl",
    keyboard.Key.ctrl_l: "ctrl",
    keyboard.Key.ctrl_r: "ctrl",
    keyboard.Key.alt: "alt",
    keyboard.Key.alt_l: "alt",
    keyboard.Key.alt_r: "alt",
    keyboard.Key.cmd: "cmd",      # macOS / some Linux
    keyboard.Key.cmd_l: "cmd",
    keyboard.Key.cmd_r: "cmd",
}

# DOM keyCode numbering for the named keys scanners actually send
SPECIAL_CODES = {
    keyboard.Key.backspace: 8,
    keyboard.Key.tab: 9,
    keyboard.Key.enter: 13,
    keyboard.Key.esc: 27,
    keyboard.Key.space: 32,
    keyboard.Key.delete: 46,
}

SPECIAL_CHARS = {
    keyboard.Key.space: " ",
    keyboard.Key.tab: "\t",
}

def key_to_str(k: keyboard.Key | keyboard.KeyCode) -> str:
    if isinstance(k, keyboard.KeyCode):
        return k.char if k.char else f"keycode_{k.vk or 'unknown'}"
    if k in SPECIAL_CHARS:
        return SPECIAL_CHARS[k]
    return k.name

def key_to_code(k: keyboard.Key | keyboard.KeyCode) -> Optional[int]:
    """Normalize a pynput key to a DOM-style keyCode (letters map to their upper-case ASCII)."""
    if isinstance(k, keyboard.Key):
        if k in SPECIAL_CODES:
            return SPECIAL_CODES[k]
        return getattr(k.value, "vk", None)
    if k.char and len(k.char) == 1:
        ch = k.char
        if ch.isascii() and ch.isalpha():
            return ord(ch.upper())
        return ord(ch)
    return k.vk

def describe(k: keyboard.Key | keyboard.KeyCode) -> Tuple[str, Optional[int]]:
    return key_to_str(k), key_to_code(k)

class KeyboardHook:
    """
    Background pynput keyboard listener emitting KeyEvent into a queue.
    Modifier presses only update the modifier set; a scanner's Shift never reaches a buffer.
    """
    def __init__(self, out_q: Queue):
        self.out_q = out_q
        self._mods: Set[str] = set()
        self._listener: Optional[keyboard.Listener] = None
        self._stop_evt = threading.Event()

    @property
    def running(self) -> bool:
        return bool(self._listener and self._listener.running)

    def start(self) -> None:
        if self.running:
            return
        self._stop_evt.clear()
        self._listener = keyboard.Listener(
            on_press=self._on_press,
            on_release=self._on_release,
            suppress=False
        )
        self._listener.daemon = True
        self._listener.start()
        log.info("kbd.start")

    def stop(self) -> None:
        self._stop_evt.set()
        if self._listener:
            self._listener.stop()
            self._listener = None
        log.info("kbd.stop")

    def _on_press(self, key):
        if key is None:  # unmapped on some backends
            return
        if key in MOD_KEYS:
            self._mods.add(MOD_KEYS[key])
            return
        name, code = describe(key)
        safe_put(self.out_q, KeyEvent(key=name, action=KeyAction.DOWN, mods=set(self._mods), key_code=code))

    def _on_release(self, key):
        if key is None:
            return
        if key in MOD_KEYS:
            self._mods.discard(MOD_KEYS[key])
            return
        name, code = describe(key)
        safe_put(self.out_q, KeyEvent(key=name, action=KeyAction.UP, mods=set(self._mods), key_code=code))
