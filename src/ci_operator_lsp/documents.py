from __future__ import annotations

from pathlib import Path
from urllib.parse import unquote

from ci_operator_lsp.exceptions import DocumentReadError

FILE_SCHEME_PREFIX = "file://"


def document_path(uri: str) -> Path:
    return Path(unquote(uri).removeprefix(FILE_SCHEME_PREFIX))


def read_document_lines(uri: str) -> list[str]:
    """Read the document behind ``uri`` from disk and split it on newlines.

    Nothing is cached and the editor's unsaved buffer is not consulted; each
    call sees what is currently stored on disk.
    """
    path = document_path(uri)
    try:
        content = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise DocumentReadError(uri, str(path), exc) from exc
    return content.split("\n")
