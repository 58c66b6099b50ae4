"""Single-line health bar."""

from __future__ import annotations

from textual.widgets import Static


class HealthBar(Static):
    def __init__(self, label: str, current: int, maximum: int, **kwargs) -> None:
        super().__init__("", **kwargs)
        self.label = label
        self.maximum = maximum
        self.set_value(current)

    @staticmethod
    def render_bar(current: int, maximum: int, width: int = 20) -> str:
        filled = int(current / maximum * width) if maximum else 0
        color = "green" if current * 2 > maximum else ("yellow" if current * 4 > maximum else "red")
        return f"[{color}]" + "█" * filled + "[/][dim]" + "░" * (width - filled) + "[/]"

    def set_value(self, current: int) -> None:
        self.update(
            f"[bold]{self.label}[/] {self.render_bar(current, self.maximum)} {current}/{self.maximum}"
        )
