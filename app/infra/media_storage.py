import logging
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Optional

from app.config import get_settings

logger = logging.getLogger(__name__)


@dataclass
class SavedAsset:
    absolute_path: str
    public_url: str


class LocalMediaStorage:
    """
    Stores generated binaries under a local root and serves them from a
    public base URL. Keys are relative POSIX paths.
    """

    def __init__(self, root: Optional[str] = None, public_base_url: Optional[str] = None):
        settings = get_settings()
        self.root = Path(root or settings.media_root).resolve()
        self.public_base_url = (public_base_url or settings.media_public_base_url).rstrip("/")

    def save(self, data: bytes, key: str) -> SavedAsset:
        relative = PurePosixPath(key.replace("\\", "/").lstrip("/"))
        if ".." in relative.parts:
            raise ValueError(f"Invalid storage key: {key}")

        target = self.root.joinpath(*relative.parts)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
        logger.info("Saved %d bytes to %s", len(data), target)

        return SavedAsset(
            absolute_path=str(target),
            public_url=f"{self.public_base_url}/{relative.as_posix()}",
        )
