from pathlib import Path
from typing import Dict, Union

import pytest

from plugins.cms_marker.config import CmsMarkerOptions
from plugins.cms_marker.context import BuildContext


def write_tree(root: Path, files: Dict[str, Union[str, bytes]]) -> None:
    for rel, content in files.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, bytes):
            path.write_bytes(content)
        else:
            path.write_text(content, encoding="utf-8")


@pytest.fixture
def write_files(tmp_path):
    """Write `{relative path: content}` under tmp_path."""

    def _write(files):
        write_tree(tmp_path, files)
        return tmp_path

    return _write


@pytest.fixture
def make_context(tmp_path):
    """A BuildContext rooted at tmp_path, after writing the given source files."""

    def _make(files=None, **options):
        write_tree(tmp_path, files or {})
        return BuildContext(tmp_path, CmsMarkerOptions(**options))

    return _make
