"""Artwork Cache - Fetches the current now-playing artwork and list-row images.

Fetches are fire-and-forget on background threads. There is no cancellation:
a result is applied only if its reference is still the desired one when it
arrives back on the main loop, so late responses after rapid track changes
are dropped.
"""

from io import BytesIO
from typing import Callable, Optional

import requests
from PIL import Image

from bridge.exceptions import ArtworkError
from bridge.logging import get_logger

logger = get_logger(__name__)


class ArtworkRef:
    """Identity of a remote artwork image: URL plus optional bearer token."""

    __slots__ = ('url', 'token')

    def __init__(self, url: str, token: Optional[str] = None):
        self.url = url
        self.token = token

    def __eq__(self, other) -> bool:
        return (isinstance(other, ArtworkRef)
                and self.url == other.url and self.token == other.token)

    def __hash__(self) -> int:
        return hash((self.url, self.token))

    def __repr__(self) -> str:
        return f"ArtworkRef({self.url!r}, token={'set' if self.token else None})"


def decode_image(data: bytes) -> Image.Image:
    """Decode an encoded image payload, raising ArtworkError if it is not one."""
    if not data:
        raise ArtworkError("empty artwork payload")
    try:
        image = Image.open(BytesIO(data))
        image.load()
    except (OSError, ValueError, Image.DecompressionBombError) as e:
        raise ArtworkError(f"undecodable artwork: {e}") from e
    return image


class ArtworkCache:
    """Holds the single current artwork and fetches replacements."""

    def __init__(self, main_context, runner,
                 on_loaded: Optional[Callable[[ArtworkRef, Image.Image], None]] = None,
                 session: Optional[requests.Session] = None,
                 timeout: float = 10.0):
        """
        Args:
            main_context: UI-affinity context results are delivered on
            runner: Background runner for HTTP requests
            on_loaded: Called on the main context with each applied image
            session: HTTP session (a new one by default)
            timeout: Per-request timeout in seconds
        """
        self._main = main_context
        self._runner = runner
        self.on_loaded = on_loaded
        self.session = session or requests.Session()
        self.timeout = timeout
        self.desired: Optional[ArtworkRef] = None
        self.current_ref: Optional[ArtworkRef] = None
        self.current_image: Optional[Image.Image] = None
        self._in_flight: set = set()

    def fetch(self, url: str, token: Optional[str] = None) -> None:
        """Make (url, token) the desired artwork and fetch it unless already known.

        Must be called on the main context.
        """
        ref = ArtworkRef(url, token or None)
        self.desired = ref
        if ref == self.current_ref and self.current_image is not None:
            logger.debug("Artwork cache hit for %s", ref)
            if self.on_loaded:
                self.on_loaded(ref, self.current_image)
            return
        if ref in self._in_flight:
            return
        self._in_flight.add(ref)
        self._runner.run(self._download, ref)

    def invalidate(self) -> None:
        """Forget the desired artwork; every in-flight result becomes stale."""
        self.desired = None

    def clear(self) -> None:
        """Drop the desired artwork and the cached image."""
        self.desired = None
        self.current_ref = None
        self.current_image = None

    def fetch_image(self, url: str, token: Optional[str],
                    callback: Callable[[Optional[Image.Image]], None]) -> None:
        """One-off image load; ``callback`` gets the image or None on the main context."""
        def work():
            self._main.call_soon(callback, self._load(ArtworkRef(url, token or None)))
        self._runner.run(work)

    def _load(self, ref: ArtworkRef) -> Optional[Image.Image]:
        headers = {}
        if ref.token:
            headers['Authorization'] = f'Bearer {ref.token}'
        try:
            resp = self.session.get(ref.url, headers=headers, timeout=self.timeout)
            resp.raise_for_status()
            return decode_image(resp.content)
        except (requests.RequestException, ArtworkError) as e:
            logger.debug("Artwork fetch failed for %s: %s", ref.url, e)
            return None

    def _download(self, ref: ArtworkRef) -> None:
        self._main.call_soon(self._complete, ref, self._load(ref))

    def _complete(self, ref: ArtworkRef, image: Optional[Image.Image]) -> None:
        self._in_flight.discard(ref)
        if image is None:
            return
        if ref != self.desired:
            logger.debug("Discarding superseded artwork %s", ref)
            return
        self.current_ref = ref
        self.current_image = image
        if self.on_loaded:
            self.on_loaded(ref, image)
