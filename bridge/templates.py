"""Head-unit template model.

Templates are plain objects that a head-unit renderer draws. The navigation
state machine builds and mutates them only on the main context.
"""

from typing import Any, Callable, List, Optional

from bridge.logging import get_logger

logger = get_logger(__name__)


class ListItem:
    """One selectable row."""

    def __init__(self, text: str, detail_text: Optional[str] = None,
                 enabled: bool = True, image_name: Optional[str] = None,
                 handler: Optional[Callable[['ListItem'], None]] = None):
        self.text = text
        self.detail_text = detail_text
        self.enabled = enabled
        self.image_name = image_name
        self.image: Any = None
        self.handler = handler

    def select(self) -> bool:
        """Simulate the user choosing this row. Returns whether it reacted."""
        if not self.enabled or self.handler is None:
            return False
        self.handler(self)
        return True

    def __repr__(self) -> str:
        return f"ListItem({self.text!r}, enabled={self.enabled})"


class ListTemplate:
    """A titled list; its items are always replaced as a whole."""

    def __init__(self, title: str, items: Optional[List[ListItem]] = None,
                 tab_title: Optional[str] = None, tab_image_name: Optional[str] = None):
        self.title = title
        self.tab_title = tab_title
        self.tab_image_name = tab_image_name
        self.shows_now_playing_button = False
        self.revision = 0
        self._items: List[ListItem] = list(items or [])

    @property
    def items(self) -> List[ListItem]:
        return list(self._items)

    def update_items(self, items: List[ListItem]) -> None:
        self._items = list(items)
        self.revision += 1

    def item_titled(self, text: str) -> Optional[ListItem]:
        for item in self._items:
            if item.text == text:
                return item
        return None

    def __repr__(self) -> str:
        return f"ListTemplate({self.title!r}, items={len(self._items)})"


class TabBarTemplate:
    def __init__(self, templates: List[ListTemplate]):
        self.templates = list(templates)


class NowPlayingButton:
    def __init__(self, image_name: str, handler: Callable[[], None]):
        self.image_name = image_name
        self.handler = handler

    def press(self) -> None:
        self.handler()


class NowPlayingTemplate:
    """The singleton now-playing view of one head-unit scene.

    ``summary_item`` is the card describing the current track.
    """

    def __init__(self):
        self.buttons: List[NowPlayingButton] = []
        self.summary_item = ListItem("Now Playing", "Tap to open", enabled=False)

    def update_now_playing_buttons(self, buttons: List[NowPlayingButton]) -> None:
        self.buttons = list(buttons)


def set_now_playing_button_visible(template, visible: bool) -> None:
    """Only list templates carry the now-playing shortcut button."""
    if isinstance(template, ListTemplate):
        template.shows_now_playing_button = visible


class InterfaceController:
    """Template stack of one connected head unit.

    ``on_top_changed`` is called with the new top template after the driver
    pops back to it.
    """

    def __init__(self):
        self._stack: List[Any] = []
        self.on_top_changed: Optional[Callable[[Any], None]] = None

    @property
    def root_template(self):
        return self._stack[0] if self._stack else None

    @property
    def top_template(self):
        return self._stack[-1] if self._stack else None

    @property
    def templates(self) -> List[Any]:
        return list(self._stack)

    def set_root_template(self, template) -> None:
        self._stack = [template]

    def push_template(self, template) -> None:
        self._stack.append(template)

    def pop_template(self):
        """Pop the top template (the driver's back button); the root stays."""
        if len(self._stack) <= 1:
            return None
        popped = self._stack.pop()
        if self.on_top_changed is not None:
            self.on_top_changed(self.top_template)
        return popped
