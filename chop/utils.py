"""Filesystem helpers for chop.

Functions:
    ensure_clean_dir: Ensure a directory exists and is empty.
    write_text_file: Write text, creating parent directories first.
    copy_file: Copy a file, creating parent directories first.
"""

from __future__ import annotations

import shutil
from pathlib import Path


def ensure_clean_dir(path: Path) -> None:
    """Ensure a directory exists and is empty.

    If the directory exists, removes all contents. Creates the
    directory if it doesn't exist.

    Args:
        path: Directory path to clean or create.
    """
    if path.exists():
        shutil.rmtree(str(path))
    path.mkdir(parents=True, exist_ok=True)


def write_text_file(path: Path, content: str) -> None:
    """Write text to a file, creating missing parent directories.

    Args:
        path: Destination file.
        content: Text to write.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        f.write(content)


def copy_file(source: Path, dest: Path) -> None:
    """Copy a file, creating missing parent directories.

    Args:
        source: File to copy.
        dest: Destination path.
    """
    dest.parent.mkdir(parents=True, exist_ok=True)
    shutil.copyfile(source, dest)
