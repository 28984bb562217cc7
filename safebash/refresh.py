"""Hourly background refresh of the user patterns document.

The hook process only ever decides *whether* to refresh and, if so, fires
off a detached worker (``python -m safebash.refresh URL TARGET``) without
waiting for it. The marker file is rewritten before the worker starts so
concurrent hook invocations inside the same window don't all fetch.

The worker downloads into a temp file next to the target, checks that it
is a well-formed JSON object, and only then renames it over the live file.
A failed download or a bad document leaves the existing file untouched.
"""

import json
import logging
import os
import subprocess
import sys
import tempfile
import time
from pathlib import Path
from typing import Optional

import httpx

from safebash.config import (
    DEFAULT_PATTERNS_URL,
    DEFAULT_UPDATE_INTERVAL,
    MARKER_FILENAME,
    PATTERNS_FILENAME,
    HookConfig,
)
from safebash.log import setup_hook_logging

logger = logging.getLogger(__name__)

FETCH_TIMEOUT = 10.0
MAX_DOCUMENT_BYTES = 1_000_000


class RefreshError(Exception):
    """The background update could not be started."""


def update_needed(marker: Path, interval: int = DEFAULT_UPDATE_INTERVAL, now: Optional[float] = None) -> bool:
    """True if the marker is missing, unreadable, from the future, or older than interval.

    >>> update_needed(Path("/nonexistent/marker"))
    True
    """
    try:
        mtime = marker.stat().st_mtime
    except OSError:
        return True
    elapsed = (time.time() if now is None else now) - mtime
    if elapsed < 0:
        return True
    return elapsed > interval


def touch_marker(marker: Path) -> None:
    """Record a refresh attempt. Failure is a warning, never an error."""
    try:
        marker.parent.mkdir(parents=True, exist_ok=True)
        marker.write_text(f"{int(time.time())}", encoding="utf-8")
    except OSError as e:
        logger.warning("could not write timestamp %s: %s", marker, e)


def spawn_background_update(target: Path, url: str = DEFAULT_PATTERNS_URL) -> None:
    """Start a detached worker that refreshes target from url.

    Returns as soon as the process is launched; the worker outlives the
    hook. Raises RefreshError if the launch itself fails.
    """
    cmd = [sys.executable, "-m", "safebash.refresh", url, str(target)]
    kwargs = {
        "stdin": subprocess.DEVNULL,
        "stdout": subprocess.DEVNULL,
        "stderr": subprocess.DEVNULL,
        "close_fds": True,
    }
    if sys.platform == "win32":
        kwargs["creationflags"] = subprocess.DETACHED_PROCESS | subprocess.CREATE_NEW_PROCESS_GROUP
    else:
        kwargs["start_new_session"] = True

    try:
        subprocess.Popen(cmd, **kwargs)
    except (OSError, ValueError) as e:
        raise RefreshError(f"could not spawn update: {e}") from e


def maybe_refresh(
    hooks_dir: Path,
    url: str = DEFAULT_PATTERNS_URL,
    interval: int = DEFAULT_UPDATE_INTERVAL,
) -> None:
    """Trigger a background refresh if the marker is stale. Never blocks, never raises."""
    marker = hooks_dir / MARKER_FILENAME
    if not update_needed(marker, interval):
        return

    touch_marker(marker)

    try:
        spawn_background_update(hooks_dir / PATTERNS_FILENAME, url)
    except RefreshError as e:
        logger.warning("%s", e)


def validate_document(path: Path) -> bool:
    """A patterns document must parse as JSON with an object at the top level."""
    try:
        data = json.loads(path.read_bytes().decode("utf-8-sig"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError):
        return False
    return isinstance(data, dict)


def _safe_replace(src: str, dst: str, *, retries: int = 3, delay: float = 0.1):
    """os.replace() with retry for Windows PermissionError.

    On Windows, os.replace() can fail while a hook invocation holds the
    target open for reading. On macOS/Linux this is a single os.replace().
    """
    for attempt in range(retries):
        try:
            os.replace(src, dst)
            return
        except PermissionError:
            if sys.platform != "win32" or attempt == retries - 1:
                raise
            time.sleep(delay * (2 ** attempt))


def _download(client: httpx.Client, url: str, f) -> bool:
    """Stream url into f. False if the body is larger than MAX_DOCUMENT_BYTES."""
    with client.stream("GET", url) as resp:
        resp.raise_for_status()
        size = 0
        for chunk in resp.iter_bytes():
            size += len(chunk)
            if size > MAX_DOCUMENT_BYTES:
                logger.warning("patterns download from %s exceeds %d bytes; keeping existing file",
                               url, MAX_DOCUMENT_BYTES)
                return False
            f.write(chunk)
    return True


def fetch_patterns(
    url: str,
    target: Path,
    timeout: float = FETCH_TIMEOUT,
    client: Optional[httpx.Client] = None,
) -> bool:
    """Download url, validate it, and atomically install it at target.

    Returns True only if target was replaced. Never raises.
    """
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=str(target.parent), prefix=f".{target.name}.", suffix=".tmp")
    except OSError as e:
        logger.warning("could not create temp file for %s: %s", target, e)
        return False

    owns_client = client is None
    if client is None:
        client = httpx.Client(timeout=timeout, follow_redirects=True)

    try:
        with os.fdopen(fd, "wb") as f:
            if not _download(client, url, f):
                return False

        if not validate_document(Path(tmp)):
            logger.warning("downloaded patterns from %s are not a valid JSON object; keeping existing file", url)
            return False

        _safe_replace(tmp, str(target))
        logger.debug("installed patterns from %s at %s", url, target)
        return True
    except (httpx.HTTPError, httpx.InvalidURL, OSError) as e:
        logger.warning("could not update patterns from %s: %s", url, e)
        return False
    finally:
        if owns_client:
            client.close()
        try:
            os.unlink(tmp)
        except OSError:
            pass


def main(argv: Optional[list[str]] = None) -> int:
    """Entry point of the detached worker process."""
    args = sys.argv[1:] if argv is None else argv
    config = HookConfig.from_env()
    setup_hook_logging(config.debug, config.log_path)

    if len(args) != 2:
        logger.warning("usage: python -m safebash.refresh URL TARGET")
        return 1

    url, target = args
    return 0 if fetch_patterns(url, Path(target)) else 1


if __name__ == "__main__":
    sys.exit(main())
