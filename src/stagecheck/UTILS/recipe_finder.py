"""
Utilities for locating recipe files on disk.
"""
import fnmatch
import os
from typing import Iterable, List

SKIP_DIRS = {".git", ".hg", ".svn", "node_modules", ".venv", "venv", "__pycache__", ".tox"}


def is_recipe(filename: str, globs: Iterable[str]) -> bool:
    """
    Checks if a file name matches one of the recipe globs.
    """
    return any(fnmatch.fnmatch(filename, pattern) for pattern in globs)


def find_recipes(paths: Iterable[str], globs: Iterable[str]) -> List[str]:
    """
    Expands directories into the recipe files below them. Paths that are not
    directories are returned as given, so missing files are reported later.
    """
    globs = list(globs)
    found = []
    for path in paths:
        if not os.path.isdir(path):
            found.append(path)
            continue
        for root, dirs, files in os.walk(path):
            dirs[:] = sorted(d for d in dirs if d not in SKIP_DIRS)
            for name in sorted(files):
                if is_recipe(name, globs):
                    found.append(os.path.join(root, name))
    return found
