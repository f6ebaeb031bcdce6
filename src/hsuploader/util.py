"""Locating the running Hearthstone client and its install directory."""

import logging
import os
import sys
import time
from typing import Callable, Optional

import psutil

from hsuploader.exceptions import InstallNotFoundError

logger = logging.getLogger(__name__)

PROCESS_NAME = "Hearthstone"
EXECUTABLE_NAME = "Hearthstone.exe"

# Bounded search for the install directory: attempts x delay seconds
INSTALL_DIR_MAX_TRIES = 120
INSTALL_DIR_RETRY_DELAY = 0.5


def _matches_process_name(name: Optional[str]) -> bool:
    if not name:
        return False
    stem = os.path.splitext(name)[0]
    return stem.lower() == PROCESS_NAME.lower()


def find_hearthstone_process() -> Optional[psutil.Process]:
    """Return the running Hearthstone process, or None."""
    try:
        for proc in psutil.process_iter(["name"]):
            if _matches_process_name(proc.info.get("name")):
                return proc
    except psutil.Error as e:
        logger.debug(f"Process scan failed: {e}")
    return None


def is_hearthstone_running() -> bool:
    return find_hearthstone_process() is not None


def find_install_dir(
    max_tries: int = INSTALL_DIR_MAX_TRIES,
    retry_delay: float = INSTALL_DIR_RETRY_DELAY,
    find_process: Callable[[], Optional[psutil.Process]] = find_hearthstone_process,
) -> str:
    """Resolve the install directory from the running client's executable.

    Waits for the process to appear and retries failed lookups, up to
    ``max_tries`` attempts in total.

    Args:
        max_tries: Number of attempts before giving up.
        retry_delay: Seconds between attempts.
        find_process: Process lookup, replaceable for testing.

    Returns:
        Absolute path of the directory containing the game executable.

    Raises:
        InstallNotFoundError: If no attempt succeeded.
    """
    last_error: Optional[BaseException] = None
    for attempt in range(max_tries):
        proc = find_process()
        if proc is not None:
            try:
                install_dir = os.path.dirname(os.path.abspath(proc.exe()))
                logger.info(f"Found Hearthstone install directory: {install_dir}")
                return install_dir
            except (psutil.Error, OSError) as e:
                last_error = e
                logger.debug(f"Could not read Hearthstone executable path (attempt {attempt + 1}): {e}")
        if attempt < max_tries - 1:
            time.sleep(retry_delay)

    raise InstallNotFoundError("Could not find Hearthstone install directory.") from last_error


def _read_file_version(path: str) -> Optional[tuple[int, int, int, int]]:
    """Read the fixed file version of a Windows executable via version.dll."""
    if sys.platform != "win32":
        return None

    import ctypes
    import ctypes.wintypes

    version = ctypes.windll.version
    size = version.GetFileVersionInfoSizeW(path, None)
    if not size:
        return None
    buffer = ctypes.create_string_buffer(size)
    if not version.GetFileVersionInfoW(path, 0, size, buffer):
        return None

    info = ctypes.c_void_p()
    length = ctypes.wintypes.UINT()
    if not version.VerQueryValueW(buffer, "\\", ctypes.byref(info), ctypes.byref(length)):
        return None

    # VS_FIXEDFILEINFO: signature, struc version, then MS/LS file version words
    words = ctypes.cast(info, ctypes.POINTER(ctypes.c_uint32 * 4)).contents
    ms, ls = words[2], words[3]
    return ms >> 16, ms & 0xFFFF, ls >> 16, ls & 0xFFFF


def get_hearthstone_build(install_dir: Optional[str]) -> Optional[int]:
    """Build number of the installed client, or None if it cannot be read."""
    if not install_dir:
        return None
    exe = os.path.join(install_dir, EXECUTABLE_NAME)
    if not os.path.isfile(exe):
        return None
    try:
        file_version = _read_file_version(exe)
    except (OSError, AttributeError, ValueError) as e:
        logger.debug(f"Could not read version of {exe}: {e}")
        return None
    return file_version[3] if file_version else None
