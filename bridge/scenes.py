"""Registry of connected head-unit scenes.

Scenes own their templates; the process-level objects only hold weak handles
to scenes and look them up here. A scene registers on connect and
deregisters on disconnect.
"""

import weakref
from typing import Dict, Optional

from bridge.logging import get_logger

logger = get_logger(__name__)


class SceneRegistry:
    """Non-owning lookup of head-unit scenes keyed by scene identifier."""

    def __init__(self):
        self._scenes: Dict[str, weakref.ref] = {}
        self._active_id: Optional[str] = None

    def register(self, scene_id: str, scene) -> None:
        self._scenes[scene_id] = weakref.ref(scene)
        self._active_id = scene_id
        logger.info("Head-unit scene %s connected", scene_id)

    def unregister(self, scene_id: str, scene=None) -> None:
        """Drop ``scene_id``; when ``scene`` is given, only if it is still the registered one."""
        ref = self._scenes.get(scene_id)
        if ref is None:
            return
        if scene is not None and ref() is not scene:
            return
        del self._scenes[scene_id]
        if self._active_id == scene_id:
            self._active_id = next(reversed(list(self._scenes)), None)
        logger.info("Head-unit scene %s disconnected", scene_id)

    def get(self, scene_id: str):
        ref = self._scenes.get(scene_id)
        return ref() if ref is not None else None

    def active(self):
        """The most recently connected live scene, or None."""
        if self._active_id is None:
            return None
        scene = self.get(self._active_id)
        if scene is None:
            # Collected without an explicit disconnect
            self.unregister(self._active_id)
            return self.active()
        return scene
