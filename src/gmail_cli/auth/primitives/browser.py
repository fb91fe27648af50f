"""Best-effort launching of the authorization URL in the user's browser."""

from __future__ import annotations

import logging
import os
import subprocess
import webbrowser

logger = logging.getLogger(__name__)


def open_browser(url: str) -> bool:
    """Try to open url in the user's browser.

    Under WSL the Windows browser is reached through wslview. Failures are
    never raised: the caller always prints the URL as well.

    Returns:
        True if a browser was launched
    """
    if os.environ.get("WSL_DISTRO_NAME"):
        try:
            subprocess.Popen(
                ["wslview", url],
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                start_new_session=True,
            )
            return True
        except OSError as e:
            logger.debug(f"wslview unavailable, falling back to webbrowser: {e}")

    try:
        return webbrowser.open(url)
    except webbrowser.Error as e:
        logger.debug(f"Could not open browser: {e}")
        return False
