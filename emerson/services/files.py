"""Reading manuscript files into plain-text ``DroppedFile`` records."""
from __future__ import annotations

import io
import re
import zipfile
from dataclasses import asdict, dataclass
from datetime import datetime
from pathlib import Path, PurePosixPath
from typing import Any, Dict, Iterable, List, Optional

import mammoth
from flask import current_app
from werkzeug.datastructures import FileStorage

TEXT_EXTENSIONS = {"txt", "md", "markdown", "docx", "doc", "rtf", "json", "html", "htm"}
SKIPPED_DIRECTORIES = {"node_modules"}
TRUNCATION_MARKER = "\n\n[... content truncated ...]\n\n"
DEFAULT_ANALYSIS_CHARS = 8000

_DOCX_TEXT_PATTERN = re.compile(r"<w:t[^>]*>([^<]+)</w:t>")
_TAG_PATTERN = re.compile(r"<[^>]+>")
_WHITESPACE_PATTERN = re.compile(r"\s+")


class FileExtractionError(RuntimeError):
    """Raised when a file cannot be turned into text."""


@dataclass(frozen=True)
class DroppedFile:
    name: str
    path: str
    type: str
    size: int
    content: str
    last_modified: datetime

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["last_modified"] = self.last_modified.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DroppedFile":
        return cls(**_dropped_file_fields(data))


def _dropped_file_fields(data: Dict[str, Any]) -> Dict[str, Any]:
    last_modified = data.get("last_modified")
    if isinstance(last_modified, str):
        last_modified = datetime.fromisoformat(last_modified)
    elif not isinstance(last_modified, datetime):
        last_modified = datetime.utcnow()
    return {
        "name": data["name"],
        "path": data.get("path") or data["name"],
        "type": data.get("type") or "unknown",
        "size": int(data.get("size") or 0),
        "content": data.get("content") or "",
        "last_modified": last_modified,
    }


def count_words(text: str) -> int:
    return len((text or "").split())


def truncate_for_analysis(content: str, max_chars: int = DEFAULT_ANALYSIS_CHARS) -> str:
    """Keep the head and tail of ``content`` when it exceeds ``max_chars``."""

    if len(content) <= max_chars:
        return content
    half = max_chars // 2
    return content[:half] + TRUNCATION_MARKER + content[-half:]


def file_extension(name: str) -> str:
    suffix = PurePosixPath(name).suffix
    return suffix[1:].lower() if suffix else ""


def is_supported_file(name: str) -> bool:
    if name.startswith(".") or name.startswith("~"):
        return False
    return file_extension(name) in TEXT_EXTENSIONS


def extract_text(name: str, data: bytes) -> str:
    if file_extension(name) == "docx":
        try:
            result = mammoth.extract_raw_text(io.BytesIO(data))
            return result.value
        except Exception as exc:
            current_app.logger.warning("mammoth could not read %s; using raw XML extraction. Error: %s", name, exc)
            return _extract_docx_fallback(data)
    return data.decode("utf-8", errors="replace")


def _extract_docx_fallback(data: bytes) -> str:
    try:
        with zipfile.ZipFile(io.BytesIO(data)) as archive:
            xml = archive.read("word/document.xml").decode("utf-8", errors="replace")
    except (zipfile.BadZipFile, KeyError):
        xml = data.decode("utf-8", errors="replace")

    runs = _DOCX_TEXT_PATTERN.findall(xml)
    if runs:
        return _WHITESPACE_PATTERN.sub(" ", " ".join(runs)).strip()
    return _WHITESPACE_PATTERN.sub(" ", _TAG_PATTERN.sub(" ", xml)).strip()[:50000]


def read_uploaded_files(uploads: Iterable[FileStorage]) -> List[DroppedFile]:
    """Convert browser uploads into ``DroppedFile`` records.

    Folder uploads carry the relative path in ``filename``; the last path
    segment is the file name. Unsupported and unreadable files are skipped.
    """

    results: List[DroppedFile] = []
    for upload in uploads:
        raw_path = (upload.filename or "").replace("\\", "/").strip("/")
        if not raw_path:
            continue
        parts = PurePosixPath(raw_path).parts
        if any(part.startswith(".") for part in parts[:-1]):
            continue
        name = parts[-1]
        if not is_supported_file(name):
            continue

        try:
            data = upload.read()
            content = extract_text(name, data)
        except (OSError, UnicodeError) as exc:
            current_app.logger.warning("Failed to read %s: %s", raw_path, exc)
            continue

        results.append(
            DroppedFile(
                name=name,
                path=raw_path,
                type=file_extension(name) or "unknown",
                size=len(data),
                content=content,
                last_modified=datetime.utcnow(),
            )
        )
    return results


def read_directory(root: Path, *, _relative: Optional[PurePosixPath] = None) -> List[DroppedFile]:
    """Recursively read supported files below ``root`` in name order."""

    root = Path(root)
    if not root.is_dir():
        raise FileExtractionError(f"Not a directory: {root}")

    results: List[DroppedFile] = []
    for entry in sorted(root.iterdir(), key=lambda item: item.name):
        relative = (_relative / entry.name) if _relative else PurePosixPath(entry.name)
        if entry.is_dir():
            if entry.name.startswith(".") or entry.name in SKIPPED_DIRECTORIES:
                continue
            results.extend(read_directory(entry, _relative=relative))
            continue
        if not is_supported_file(entry.name):
            continue

        try:
            data = entry.read_bytes()
            stat = entry.stat()
        except OSError as exc:
            current_app.logger.warning("Failed to read %s: %s", relative, exc)
            continue

        results.append(
            DroppedFile(
                name=entry.name,
                path=str(relative),
                type=file_extension(entry.name) or "unknown",
                size=stat.st_size,
                content=extract_text(entry.name, data),
                last_modified=datetime.fromtimestamp(stat.st_mtime),
            )
        )
    return results
