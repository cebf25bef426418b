"""
TypeWriter - local storage core for a sectioned desktop notes app.

Sections group notes; both live in a single SQLite file under the user's
home directory. The store is exposed to the UI process through a fixed set
of request/response operations, and the UI keeps an in-memory mirror that
writes note edits back on a debounce timer.

This version uses synchronous operations.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("typewriter-notes")
except PackageNotFoundError:
    __version__ = "0.3.0"
