import mimetypes
from pathlib import Path
from uuid import uuid4

from recipe_importer.app.services.storage.base import StorageProvider

MEDIA_PREFIX = "/media/"


class LocalStorageProvider(StorageProvider):
    def __init__(self, media_root: Path):
        self.media_root = Path(media_root)
        self.media_root.mkdir(parents=True, exist_ok=True)

    def _path_for(self, url: str) -> Path:
        if not url.startswith(MEDIA_PREFIX):
            raise ValueError(f"Not a local media URL: {url}")
        filename = Path(url[len(MEDIA_PREFIX) :]).name
        return self.media_root / filename

    def save_bytes(self, data: bytes, content_type: str) -> str:
        mime = (content_type or "").split(";")[0].strip().lower()
        extension = mimetypes.guess_extension(mime) or ".bin"
        filename = f"{uuid4().hex}{extension}"
        (self.media_root / filename).write_bytes(data)
        return f"{MEDIA_PREFIX}{filename}"

    def read_bytes(self, url: str) -> bytes:
        return self._path_for(url).read_bytes()

    def delete_image(self, url: str) -> None:
        if not url or not url.startswith(MEDIA_PREFIX):
            return
        path = self._path_for(url)
        if path.exists():
            path.unlink()
