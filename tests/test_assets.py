import pytest

from assets import ASSET_KINDS, AssetStore
from errors import NotFoundError, UnsupportedMediaTypeError, ValidationError

PNG = b"\x89PNG\r\n\x1a\nfake"
SVG = b"<svg xmlns='http://www.w3.org/2000/svg'/>"


@pytest.fixture
def store(tmp_path):
    return AssetStore(tmp_path)


def test_nothing_stored_yet(store):
    assert store.get("logo") is None
    assert store.get("watermark") is None


def test_upload_replaces_other_variants(store, tmp_path):
    assert store.upload("logo", PNG, "image/png") == "/uploads/logo.png"
    assert store.get("logo") == "/uploads/logo.png"

    assert store.upload("logo", SVG, "image/svg+xml") == "/uploads/logo.svg"

    assert store.get("logo") == "/uploads/logo.svg"
    assert not (tmp_path / "uploads" / "logo.png").exists()
    assert (tmp_path / "uploads" / "logo.svg").read_bytes() == SVG


def test_watermark_lives_in_its_own_directory(store, tmp_path):
    url = store.upload("watermark", PNG, "image/jpeg")
    assert url == "/watermarks/default-watermark.jpg"
    assert (tmp_path / "watermarks" / "default-watermark.jpg").is_file()


def test_svg_only_accepted_for_logo(store):
    with pytest.raises(UnsupportedMediaTypeError, match="PNG, JPG and JPEG"):
        store.upload("watermark", SVG, "image/svg+xml")
    with pytest.raises(UnsupportedMediaTypeError):
        store.upload("profile-image", SVG, "image/svg+xml")
    with pytest.raises(UnsupportedMediaTypeError):
        store.upload("logo", b"GIF89a", "image/gif")


def test_empty_upload_rejected(store):
    with pytest.raises(ValidationError, match="No file provided"):
        store.upload("logo", b"", "image/png")


def test_remove(store, tmp_path):
    store.upload("profile-image", PNG, "image/png")

    assert store.remove("profile-image") is True
    assert store.get("profile-image") is None
    assert store.remove("profile-image") is False
    assert not any((tmp_path / "uploads").iterdir())


def test_default_urls():
    assert ASSET_KINDS["profile-image"].default_url == "/uploads/profile-placeholder.svg"
    assert ASSET_KINDS["logo"].default_url is None


def test_unknown_kind(store):
    with pytest.raises(NotFoundError):
        store.get("favicon")
