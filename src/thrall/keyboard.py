"""
Keyboard - Synthesized key events with held-modifier tracking.
"""
import asyncio
from dataclasses import dataclass
from typing import Dict, Optional

from thrall.cdp.client import CDPSession


@dataclass(frozen=True)
class KeyDefinition:
    key_code: int
    key: str
    code: str
    text: Optional[str] = None


KEY_DEFINITIONS: Dict[str, KeyDefinition] = {
    "Enter": KeyDefinition(13, "Enter", "Enter", "\r"),
    "Tab": KeyDefinition(9, "Tab", "Tab"),
    "Backspace": KeyDefinition(8, "Backspace", "Backspace"),
    "Delete": KeyDefinition(46, "Delete", "Delete"),
    "Escape": KeyDefinition(27, "Escape", "Escape"),
    "ArrowUp": KeyDefinition(38, "ArrowUp", "ArrowUp"),
    "ArrowDown": KeyDefinition(40, "ArrowDown", "ArrowDown"),
    "ArrowLeft": KeyDefinition(37, "ArrowLeft", "ArrowLeft"),
    "ArrowRight": KeyDefinition(39, "ArrowRight", "ArrowRight"),
    "Home": KeyDefinition(36, "Home", "Home"),
    "End": KeyDefinition(35, "End", "End"),
    "PageUp": KeyDefinition(33, "PageUp", "PageUp"),
    "PageDown": KeyDefinition(34, "PageDown", "PageDown"),
    "Space": KeyDefinition(32, " ", "Space"),
    "Control": KeyDefinition(17, "Control", "ControlLeft"),
    "Shift": KeyDefinition(16, "Shift", "ShiftLeft"),
    "Alt": KeyDefinition(18, "Alt", "AltLeft"),
    "Meta": KeyDefinition(91, "Meta", "MetaLeft"),
}
KEY_DEFINITIONS.update({
    f"F{n}": KeyDefinition(111 + n, f"F{n}", f"F{n}") for n in range(1, 13)
})

# Input.dispatchKeyEvent modifier bits.
MODIFIER_BITS = {
    "Alt": 1,
    "Control": 2,
    "Meta": 4,
    "Shift": 8,
}

# Control characters that type() sends as named key presses.
TYPED_KEYS = {
    "\n": "Enter",
    "\r": "Enter",
    "\t": "Tab",
}


class Keyboard:
    """Keyboard bound to one session; remembers which modifiers are held."""

    def __init__(self, session: CDPSession):
        self.session = session
        self.modifiers = 0

    def _key_params(self, key: str) -> Dict[str, object]:
        definition: Optional[KeyDefinition] = KEY_DEFINITIONS.get(key)
        if definition is not None:
            return {
                "key": definition.key,
                "code": definition.code,
                "windowsVirtualKeyCode": definition.key_code,
            }
        return {
            "key": key,
            "code": f"Key{key.upper()}",
            "windowsVirtualKeyCode": ord(key[0].upper()) if key else 0,
        }

    async def down(self, key: str) -> None:
        self.modifiers |= MODIFIER_BITS.get(key, 0)
        params = {"type": "keyDown", "modifiers": self.modifiers}
        params.update(self._key_params(key))
        definition = KEY_DEFINITIONS.get(key)
        if definition is not None and definition.text is not None:
            params["text"] = definition.text
        await self.session.send("Input.dispatchKeyEvent", params)

    async def up(self, key: str) -> None:
        self.modifiers &= ~MODIFIER_BITS.get(key, 0)
        params = {"type": "keyUp", "modifiers": self.modifiers}
        params.update(self._key_params(key))
        await self.session.send("Input.dispatchKeyEvent", params)

    async def press(self, key: str) -> None:
        await self.down(key)
        await self.up(key)

    async def type(self, text: str, *, delay: float = 0.0) -> None:
        """
        Type text one character at a time.

        Args:
            text: Characters to type. Newlines and tabs press Enter and Tab;
                other named keys are not parsed out of it.
            delay: Seconds to wait between characters.
        """
        for char in text:
            if char in TYPED_KEYS:
                await self.press(TYPED_KEYS[char])
            else:
                await self.session.send(
                    "Input.dispatchKeyEvent",
                    {"type": "keyDown", "text": char, "modifiers": self.modifiers},
                )
                await self.session.send(
                    "Input.dispatchKeyEvent",
                    {"type": "keyUp", "text": char, "modifiers": self.modifiers},
                )

            if delay > 0:
                await asyncio.sleep(delay)
