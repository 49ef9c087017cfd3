import pytest

pytest.importorskip("PySide6.QtWidgets")

from bdyn import gui
from bdyn.settings import UISettings


def test_every_task_route_has_instructions():
    for route in gui.ROUTES:
        if route == "/dashboard":
            continue
        assert gui._INSTRUCTIONS[route]


def test_instructions_only_ask_for_what_the_screen_offers():
    # task screens are a text box and a "Complete task" button
    for text in gui._INSTRUCTIONS.values():
        assert "tile" not in text.lower()
        assert "scroll" not in text.lower()


def test_known_themes_have_stylesheets():
    assert set(gui._THEMES) == {"light", "dark", "high_contrast"}
    assert gui._THEMES[UISettings().theme] == ""
    assert "QPushButton:checked" in gui._THEMES["dark"]
