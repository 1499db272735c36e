"""Per-panel text buffers for Input mode."""

from typing import Dict

from .model import INPUT_PANELS, Focus


class TextInput:
    """A single-line text buffer with a character cursor."""

    def __init__(self):
        self.value = ""
        self.cursor = 0

    def enter_char(self, ch: str) -> None:
        self.value = self.value[:self.cursor] + ch + self.value[self.cursor:]
        self.cursor += len(ch)

    def delete_char(self) -> None:
        """Delete the character left of the cursor."""
        if self.cursor == 0:
            return
        self.value = self.value[:self.cursor - 1] + self.value[self.cursor:]
        self.cursor -= 1

    def move_cursor_left(self) -> None:
        self.cursor = max(0, self.cursor - 1)

    def move_cursor_right(self) -> None:
        self.cursor = min(len(self.value), self.cursor + 1)

    def clear(self) -> None:
        self.value = ""
        self.cursor = 0


class Inputs:
    """One TextInput per input-capturing panel."""

    def __init__(self):
        self._buffers: Dict[Focus, TextInput] = {panel: TextInput() for panel in INPUT_PANELS}

    def __getitem__(self, panel: Focus) -> TextInput:
        return self._buffers[panel]

    def get(self, panel: Focus) -> str:
        buffer = self._buffers.get(panel)
        return buffer.value if buffer else ""

    def clear(self, panel: Focus) -> None:
        buffer = self._buffers.get(panel)
        if buffer:
            buffer.clear()
