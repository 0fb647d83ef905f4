"""Per-task repository clones."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import shutil
import subprocess
import tempfile
from pathlib import Path
from typing import AsyncIterator

from mentionbot_core.errors import WorkspaceError

logger = logging.getLogger(__name__)

_CLONE_TIMEOUT = 600


def build_clone_url(project_url: str, token: str | None = None) -> str:
    """Normalize a GitLab project URL and embed an oauth2 token for HTTPS auth."""
    url = project_url
    if not url.startswith(("http://", "https://")):
        url = f"https://{url}"
    if not url.endswith(".git"):
        url = f"{url}.git"
    if token:
        url = url.replace("https://", f"https://oauth2:{token}@", 1)
    return url


def _redact(text: str, token: str | None) -> str:
    return text.replace(token, "***") if token else text


def _clone(url: str, dest: str, ref: str | None, shallow: bool) -> None:
    cmd = ["git", "clone"]
    if ref:
        cmd += ["--branch", ref]
    if shallow:
        cmd += ["--depth", "1"]
    cmd += [url, dest]
    result = subprocess.run(
        cmd,
        capture_output=True,
        text=True,
        timeout=_CLONE_TIMEOUT,
        env={**os.environ, "GIT_TERMINAL_PROMPT": "0"},
    )
    if result.returncode != 0:
        raise WorkspaceError(f"git clone failed ({result.returncode}): {result.stderr.strip()}")


@contextlib.asynccontextmanager
async def provision_workspace(
    clone_url: str,
    ref: str | None = None,
    token: str | None = None,
    shallow: bool = False,
    base_dir: str = ".temp",
) -> AsyncIterator[str]:
    """Clone clone_url into a fresh directory under base_dir and yield its path.

    The directory is removed on every exit path, including clone failures
    and cancellation.
    """
    Path(base_dir).mkdir(parents=True, exist_ok=True)
    workdir = tempfile.mkdtemp(prefix="clone-", dir=base_dir)
    url = build_clone_url(clone_url, token)
    try:
        logger.info("Cloning %s%s into %s", clone_url, f" ({ref})" if ref else "", workdir)
        try:
            await asyncio.to_thread(_clone, url, workdir, ref, shallow)
        except subprocess.TimeoutExpired as e:
            raise WorkspaceError(f"git clone timed out after {_CLONE_TIMEOUT}s") from e
        except FileNotFoundError as e:
            raise WorkspaceError("git is not installed") from e
        except WorkspaceError as e:
            raise WorkspaceError(_redact(str(e), token)) from None
        yield os.path.abspath(workdir)
    finally:
        await asyncio.to_thread(shutil.rmtree, workdir, True)
        logger.debug("Removed workspace %s", workdir)
