import logging
from pathlib import Path

from flask import current_app, send_from_directory

logger = logging.getLogger(__name__)


class MediaStorage:
    """Files kept under a local directory and published below a URL prefix."""

    def __init__(self, root, url_prefix="/media/"):
        self.root = Path(root).resolve()
        self.url_prefix = url_prefix if url_prefix.endswith("/") else url_prefix + "/"

    def _path(self, object_path: str) -> Path:
        target = (self.root / object_path).resolve()
        if self.root not in target.parents:
            raise ValueError(f"Ongeldig pad: {object_path}")
        return target

    def save(self, object_path: str, data: bytes, overwrite: bool = False) -> str:
        target = self._path(object_path)
        if target.exists() and not overwrite:
            raise FileExistsError(f"Bestand bestaat al: {object_path}")
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
        return object_path

    def read(self, object_path: str) -> bytes:
        return self._path(object_path).read_bytes()

    def exists(self, object_path: str) -> bool:
        return self._path(object_path).is_file()

    def remove(self, object_paths) -> None:
        for object_path in dict.fromkeys(p for p in object_paths if p):
            try:
                self._path(object_path).unlink(missing_ok=True)
            except (OSError, ValueError) as exc:
                logger.error("Kon bestand %s niet verwijderen: %s", object_path, exc)

    def public_url(self, object_path: str) -> str:
        return f"{self.url_prefix}{object_path}"


def get_storage() -> MediaStorage:
    return current_app.extensions["media_storage"]


def init_media(app):
    storage = MediaStorage(app.config["MEDIA_DIR"], app.config["MEDIA_URL_PREFIX"])
    storage.root.mkdir(parents=True, exist_ok=True)
    app.extensions["media_storage"] = storage

    prefix = storage.url_prefix.rstrip("/")
    app.add_url_rule(f"{prefix}/<path:filename>", "media", serve_media)
    return storage


def serve_media(filename):
    return send_from_directory(get_storage().root, filename)
