from __future__ import annotations
from typing import Optional
import logging

from .recorder import Recorder

logger = logging.getLogger(__name__)


def key_name(key) -> str:
    """Printable character for character keys, otherwise the pynput key name ("shift", "enter")."""
    char = getattr(key, "char", None)
    if char:
        return str(char)
    name = getattr(key, "name", None)
    if name:
        return str(name)
    return str(key).replace("Key.", "")


class InputHooks:
    """
    Feeds pynput keyboard and mouse listeners into a Recorder.

    Listeners are started once per screen mount and stopped on unmount, so
    they never pile up across navigations. Each listener runs on its own
    thread; keyboard and pointer rolling state are separate, so the two never
    touch the same data.
    """

    def __init__(self, recorder: Recorder, keyboard_enabled: bool = True, pointer_enabled: bool = True):
        self.recorder = recorder
        self.keyboard_enabled = keyboard_enabled
        self.pointer_enabled = pointer_enabled
        self._kb_listener = None
        self._mouse_listener = None

    @property
    def running(self) -> bool:
        return self._kb_listener is not None or self._mouse_listener is not None

    def _on_press(self, key):
        self.recorder.on_key_down(key_name(key))

    def _on_release(self, key):
        self.recorder.on_key_up(key_name(key))

    def _on_move(self, x, y):
        self.recorder.on_pointer_move(float(x), float(y))

    def _on_click(self, x, y, button, pressed):
        if pressed:
            self.recorder.on_click(float(x), float(y))

    def start(self) -> None:
        if self.running:
            return
        # pynput picks its platform backend at import time; keep it out of module import.
        from pynput import keyboard, mouse

        if self.keyboard_enabled:
            self._kb_listener = keyboard.Listener(on_press=self._on_press, on_release=self._on_release)
            self._kb_listener.start()
        if self.pointer_enabled:
            self._mouse_listener = mouse.Listener(on_move=self._on_move, on_click=self._on_click)
            self._mouse_listener.start()
        logger.info("Input listeners started")

    def stop(self) -> None:
        for listener in (self._kb_listener, self._mouse_listener):
            if listener is not None:
                listener.stop()
        self._kb_listener = None
        self._mouse_listener = None
        logger.info("Input listeners stopped")
