import io
import zipfile

import pytest

from app.imagehub.errors import NothingToExportError
from app.imagehub.export import build_archive
from app.imagehub.queue import PromptItem


def test_archive_names_entries_after_items():
    ok = PromptItem("a red fox", "a-red-fox.png")
    ok.mark_ok(b"fox-bytes", "image/png")
    other = PromptItem("a red fox", "a-red-fox-copy.png")
    other.mark_ok(b"second-fox", "image/png")

    archive = zipfile.ZipFile(io.BytesIO(build_archive([ok, other])))

    assert archive.namelist() == ["a-red-fox.png", "a-red-fox-copy.png"]
    assert archive.read("a-red-fox.png") == b"fox-bytes"
    assert archive.read("a-red-fox-copy.png") == b"second-fox"


def test_nothing_to_export():
    with pytest.raises(NothingToExportError):
        build_archive([])
