# app/services/media.py
from __future__ import annotations

import os
import re
import uuid
from typing import Optional, Protocol

import structlog

log = structlog.get_logger(__name__)

_ID_RE = re.compile(r"^[0-9a-f]{32}$")


class MediaStore(Protocol):
    def upload_image(self, owner_id: int, data: bytes) -> str: ...
    def fetch_image(self, image_id: str) -> Optional[bytes]: ...
    def delete_image(self, image_id: str) -> bool: ...


class FileMediaStore:
    """Profile images as flat files under <DATA_DIR>/media/images."""

    def __init__(self, data_dir: str):
        self.root = os.path.join(data_dir, "media", "images")
        os.makedirs(self.root, exist_ok=True)

    def _path(self, image_id: str) -> str:
        if not _ID_RE.match(image_id or ""):
            raise ValueError("Invalid image id")
        return os.path.join(self.root, f"{image_id}.jpg")

    def upload_image(self, owner_id: int, data: bytes) -> str:
        image_id = uuid.uuid4().hex
        with open(self._path(image_id), "wb") as fh:
            fh.write(data)
        log.info("image_stored", owner_id=owner_id, image_id=image_id, size=len(data))
        return image_id

    def fetch_image(self, image_id: str) -> Optional[bytes]:
        try:
            with open(self._path(image_id), "rb") as fh:
                return fh.read()
        except FileNotFoundError:
            return None

    def delete_image(self, image_id: str) -> bool:
        try:
            os.remove(self._path(image_id))
        except FileNotFoundError:
            return False
        log.info("image_deleted", image_id=image_id)
        return True
