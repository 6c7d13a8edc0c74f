"""ratio-master - simulated BitTorrent seeding announces."""

from __future__ import annotations

__version__ = "1.0.2"

from ratiomaster.exceptions import RatioMasterError
from ratiomaster.models import InfoHash, SessionIdentity, TorrentMetadata

__all__ = [
    "InfoHash",
    "RatioMasterError",
    "SessionIdentity",
    "TorrentMetadata",
    "__version__",
]
