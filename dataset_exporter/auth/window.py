"""
Authorization window handling.

The coordinator opens exactly one window per handshake and must be able to
tell when the user has closed it.
"""

import logging
import webbrowser
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)

POPUP_WIDTH = 600
POPUP_HEIGHT = 700


@dataclass
class WindowGeometry:
    """Screen position and outer size of the calling window."""
    screen_x: int = 0
    screen_y: int = 0
    outer_width: int = 1280
    outer_height: int = 800


@dataclass
class PopupFeatures:
    width: int
    height: int
    left: int
    top: int

    def to_feature_string(self) -> str:
        return f"width={self.width},height={self.height},left={self.left},top={self.top}"


def popup_features(
    caller: WindowGeometry,
    width: int = POPUP_WIDTH,
    height: int = POPUP_HEIGHT,
) -> PopupFeatures:
    """Size the popup and center it on the caller window."""
    left = caller.screen_x + (caller.outer_width - width) // 2
    top = caller.screen_y + (caller.outer_height - height) // 2
    return PopupFeatures(width=width, height=height, left=left, top=top)


class AuthWindow(ABC):
    """A window showing the provider's authorization page."""

    @property
    @abstractmethod
    def closed(self) -> bool:
        pass

    @abstractmethod
    def close(self) -> None:
        pass


class WindowOpener(ABC):
    """Opens authorization windows."""

    @abstractmethod
    def open(self, url: str, name: str, features: PopupFeatures) -> AuthWindow:
        pass


class BrowserAuthWindow(AuthWindow):
    """
    A system browser tab.

    The browser gives no handle back, so the window counts as closed once the
    redirect target has served its page (or once the coordinator closes it).
    """

    def __init__(self, url: str):
        self.url = url
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        self._closed = True


class BrowserWindowOpener(WindowOpener):
    """Opens the authorization URL in the system web browser."""

    def __init__(self):
        self.current: Optional[BrowserAuthWindow] = None

    def open(self, url: str, name: str, features: PopupFeatures) -> AuthWindow:
        logger.info(f"Opening {name} ({features.to_feature_string()})")
        if not webbrowser.open_new(url):
            logger.warning(f"Could not launch a browser, open this URL manually: {url}")
        self.current = BrowserAuthWindow(url)
        return self.current

    def notify_closed(self) -> None:
        """Called by the redirect target once it has delivered its payload."""
        if self.current is not None:
            self.current.close()
