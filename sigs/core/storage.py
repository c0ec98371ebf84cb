from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

from flask import current_app
from werkzeug.datastructures import FileStorage
from werkzeug.utils import secure_filename


class StorageError(Exception):
    pass


class LocalStorage:
    """Document objects on the local filesystem, addressed by a relative key."""

    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    def _path(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if self.root.resolve() not in path.parents:
            raise StorageError(f"Clave de almacenamiento invalida: {key}")
        return path

    def save(self, prefix: str, file_obj: FileStorage) -> tuple[str, int]:
        stamp = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S%f")
        filename = secure_filename(file_obj.filename or "") or "documento.bin"
        key = f"{prefix}/{stamp}_{filename}"
        absolute = self._path(key)
        absolute.parent.mkdir(parents=True, exist_ok=True)
        try:
            file_obj.save(absolute)
        except OSError as exc:
            raise StorageError(f"No se pudo guardar {key}") from exc
        return key, absolute.stat().st_size

    def read(self, key: str) -> bytes:
        absolute = self._path(key)
        if not absolute.exists():
            raise StorageError(f"Fichero no encontrado: {key}")
        return absolute.read_bytes()

    def remove(self, key: str) -> None:
        absolute = self._path(key)
        try:
            absolute.unlink()
        except FileNotFoundError:
            return
        except OSError as exc:
            raise StorageError(f"No se pudo eliminar {key}") from exc


def get_storage():
    return current_app.extensions["sigs_storage"]
