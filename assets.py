"""
Single-slot file storage for site assets (logo, watermark, profile image).

Every kind keeps at most one file, named `<base_name>.<ext>` inside its
directory under the public root. Uploading replaces every stored variant of
that kind, whatever its extension.
"""
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Tuple

from errors import NotFoundError, UnsupportedMediaTypeError, ValidationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AssetKind:
    name: str
    directory: str
    base_name: str
    mime_types: Dict[str, str]
    extensions: Tuple[str, ...]
    default_url: Optional[str] = None

    def allowed_label(self) -> str:
        labels = [ext.upper() for ext in self.extensions]
        return ", ".join(labels[:-1]) + f" and {labels[-1]}"


ASSET_KINDS = {
    "logo": AssetKind(
        name="logo",
        directory="uploads",
        base_name="logo",
        mime_types={"image/png": "png", "image/jpeg": "jpg", "image/jpg": "jpg", "image/svg+xml": "svg"},
        extensions=("png", "svg", "jpg", "jpeg"),
    ),
    "watermark": AssetKind(
        name="watermark",
        directory="watermarks",
        base_name="default-watermark",
        mime_types={"image/png": "png", "image/jpeg": "jpg", "image/jpg": "jpg"},
        extensions=("png", "jpg", "jpeg"),
    ),
    "profile-image": AssetKind(
        name="profile-image",
        directory="uploads",
        base_name="profile",
        mime_types={"image/png": "png", "image/jpeg": "jpg", "image/jpg": "jpg"},
        extensions=("png", "jpg", "jpeg"),
        default_url="/uploads/profile-placeholder.svg",
    ),
}


class AssetStore:
    def __init__(self, root):
        self.root = Path(root)

    def kind(self, name: str) -> AssetKind:
        try:
            return ASSET_KINDS[name]
        except KeyError:
            raise NotFoundError(f"Unknown asset kind: {name}") from None

    def _path(self, kind: AssetKind, ext: str) -> Path:
        return self.root / kind.directory / f"{kind.base_name}.{ext}"

    @staticmethod
    def _url(kind: AssetKind, ext: str) -> str:
        return f"/{kind.directory}/{kind.base_name}.{ext}"

    def get(self, name: str) -> Optional[str]:
        """URL of the stored asset, or None when only the bundled default exists."""
        kind = self.kind(name)
        for ext in kind.extensions:
            if self._path(kind, ext).is_file():
                return self._url(kind, ext)
        return None

    def upload(self, name: str, data: bytes, mime_type: Optional[str]) -> str:
        kind = self.kind(name)
        ext = kind.mime_types.get((mime_type or "").lower())
        if ext is None:
            raise UnsupportedMediaTypeError(f"Invalid file type. Only {kind.allowed_label()} are allowed.")
        if not data:
            raise ValidationError("No file provided")

        (self.root / kind.directory).mkdir(parents=True, exist_ok=True)
        self._remove_variants(kind)
        self._path(kind, ext).write_bytes(data)
        logger.info(f"Stored {kind.name} as {kind.base_name}.{ext} ({len(data)} bytes)")
        return self._url(kind, ext)

    def remove(self, name: str) -> bool:
        kind = self.kind(name)
        removed = self._remove_variants(kind)
        if removed:
            logger.info(f"Removed custom {kind.name}")
        return removed

    def _remove_variants(self, kind: AssetKind) -> bool:
        removed = False
        for ext in kind.extensions:
            path = self._path(kind, ext)
            if path.is_file():
                path.unlink()
                removed = True
        return removed
