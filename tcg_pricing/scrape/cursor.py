"""
Persisted harvest cursor: the last card id of the last completed batch.
"""

import logging
import os
from pathlib import Path
from typing import Optional, Union

logger = logging.getLogger(__name__)


class CursorStore:
    """
    Stores a single cursor value in a text file.

    The file is replaced atomically so a crash while saving leaves either the
    old or the new cursor, never a truncated one.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def load(self) -> Optional[str]:
        """Return the saved cursor, or None when there is none yet."""
        try:
            value = self.path.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            return None
        return value or None

    def save(self, card_id: str) -> None:
        """Overwrite the saved cursor."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        tmp_path.write_text(f"{card_id}\n", encoding="utf-8")
        os.replace(tmp_path, self.path)
        logger.debug("Saved cursor %s to %s", card_id, self.path)
