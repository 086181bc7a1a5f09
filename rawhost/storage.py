import secrets
from pathlib import Path

from fastapi import UploadFile

CHUNK_SIZE = 1024 * 1024


class ContentMissingError(LookupError):
    pass


def new_identifier() -> str:
    return secrets.token_hex(8)


class LocalContentStore:
    def __init__(self, root_dir: str):
        self.root = Path(root_dir)

    def init(self) -> None:
        self.root.mkdir(parents=True, exist_ok=True)

    def _reserve(self, suffix: str) -> tuple[str, str, Path]:
        # "x" mode fails on an existing path, so a colliding id is simply redrawn.
        while True:
            file_id = new_identifier()
            stored_name = f"{file_id}{suffix}"
            target = self.root / stored_name
            try:
                target.open("xb").close()
            except FileExistsError:
                continue
            return file_id, stored_name, target

    def save_upload(self, *, source: UploadFile, max_size_bytes: int) -> tuple[str, str, int]:
        suffix = Path(source.filename or "").suffix
        file_id, stored_name, target = self._reserve(suffix)

        total = 0
        try:
            with target.open("wb") as f:
                while True:
                    chunk = source.file.read(CHUNK_SIZE)
                    if not chunk:
                        break
                    total += len(chunk)
                    if total > max_size_bytes:
                        raise ValueError("File exceeds max upload size")
                    f.write(chunk)
        except BaseException:
            target.unlink(missing_ok=True)
            raise
        return file_id, stored_name, total

    def save_bytes(self, data: bytes, extension: str, *, max_size_bytes: int) -> tuple[str, str, int]:
        if len(data) > max_size_bytes:
            raise ValueError("File exceeds max upload size")
        file_id, stored_name, target = self._reserve(extension)
        try:
            target.write_bytes(data)
        except BaseException:
            target.unlink(missing_ok=True)
            raise
        return file_id, stored_name, len(data)

    def path_for(self, stored_name: str) -> Path:
        target = self.root / Path(stored_name).name
        if not target.is_file():
            raise ContentMissingError(stored_name)
        return target

    def read_bytes(self, stored_name: str) -> bytes:
        return self.path_for(stored_name).read_bytes()
