"""HotelConnect: multilingual guest/staff messaging.

Guests and hotel staff chat in real time across a language barrier.  Each
outbound message is machine-translated once, from the sender's language to
the other party's, and stored alongside the original.  Rooms move through
check-in and check-out; on checkout a room's conversation is moved into an
archive namespace.  Staff can follow rooms and watch a merged feed of the
newest messages across many rooms.

Version Management
------------------
``__version__`` is read from the installed package metadata at import time.
The single source of truth is the ``version`` field in ``pyproject.toml``.
"""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version

# ---------------------------------------------------------------------------
# Package version, read from pyproject.toml via importlib.metadata.
#
# If the package is imported without being installed we fall back to the
# last released version so the application can still start.
# ---------------------------------------------------------------------------
try:
    __version__: str = version("hotelconnect")
except PackageNotFoundError:
    __version__ = "0.1.0"
