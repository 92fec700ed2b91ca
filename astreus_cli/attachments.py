"""Detect file and folder paths in input and turn them into attachments."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
import logging
import os
from pathlib import Path
import re
from typing import Any
from uuid import uuid4

from .commands import looks_like_command

LOGGER = logging.getLogger(__name__)

IMAGE_EXTENSIONS = frozenset({".png", ".jpg", ".jpeg", ".gif", ".webp", ".bmp", ".svg"})

METADATA_MARKERS = ("[Working directory:", "[Attachments:", "[IMPORTANT:", "[Attached files:")

PATH_PATTERNS = (
    re.compile(r"^/"),
    re.compile(r"^~/"),
    re.compile(r"^[A-Za-z]:\\"),
    re.compile(r"^\.\.?/"),
)

MIME_TYPES: dict[str, str] = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".webp": "image/webp",
    ".bmp": "image/bmp",
    ".svg": "image/svg+xml",
    ".pdf": "application/pdf",
    ".txt": "text/plain",
    ".md": "text/markdown",
    ".json": "application/json",
    ".js": "text/javascript",
    ".ts": "text/typescript",
    ".tsx": "text/typescript",
    ".jsx": "text/javascript",
    ".py": "text/x-python",
    ".html": "text/html",
    ".css": "text/css",
}

CODE_LANGUAGES: dict[str, str] = {
    ".py": "python",
    ".js": "javascript",
    ".jsx": "javascript",
    ".ts": "typescript",
    ".tsx": "typescript",
    ".html": "html",
    ".css": "css",
    ".rs": "rust",
    ".go": "go",
    ".java": "java",
    ".sh": "bash",
}

MAX_FILE_CHARS = 100_000
FOLDER_MAX_DEPTH = 3
FOLDER_MAX_FILES = 50


class AttachmentKind(str, Enum):
    FILE = "file"
    FOLDER = "folder"
    IMAGE = "image"


@dataclass(frozen=True)
class Attachment:
    """A file, folder or image queued for the next turn."""

    kind: AttachmentKind
    path: Path
    name: str
    size: int | None = None
    id: str = field(default_factory=lambda: uuid4().hex[:12])


def strip_quotes(text: str) -> str:
    """Remove one layer of matching surrounding quotes."""
    if len(text) >= 2 and text[0] == text[-1] and text[0] in {'"', "'"}:
        return text[1:-1]
    return text


def looks_like_path(text: str) -> bool:
    return any(pattern.match(text) for pattern in PATH_PATTERNS)


def expand_path(raw: str, base: Path | None = None) -> Path:
    """Expand ``~/`` and resolve ``raw`` against ``base`` (process cwd if None)."""
    expanded = Path(raw).expanduser()
    if not expanded.is_absolute():
        expanded = (base or Path.cwd()) / expanded
    return Path(os.path.normpath(expanded))


def parse_path_from_input(text: str, base: Path | None = None) -> Path | None:
    """Return the absolute path named by ``text`` when it exists on disk."""
    candidate = text.strip()
    if not candidate or looks_like_command(candidate):
        return None
    if any(candidate.startswith(marker) for marker in METADATA_MARKERS):
        return None
    candidate = strip_quotes(candidate)
    if not looks_like_path(candidate):
        return None
    resolved = expand_path(candidate, base)
    return resolved if resolved.exists() else None


def classify(path: Path) -> AttachmentKind:
    if path.is_dir():
        return AttachmentKind.FOLDER
    if path.suffix.lower() in IMAGE_EXTENSIONS:
        return AttachmentKind.IMAGE
    return AttachmentKind.FILE


def create_attachment(path: Path) -> Attachment | None:
    """Build an attachment for an existing path, or None if it vanished."""
    try:
        kind = classify(path)
        size = None if kind is AttachmentKind.FOLDER else path.stat().st_size
    except OSError:
        return None
    return Attachment(kind=kind, path=path, name=path.name or str(path), size=size)


def format_size(size: int) -> str:
    if size < 1024:
        return f"{size} B"
    if size < 1024 * 1024:
        return f"{size / 1024:.1f} KB"
    return f"{size / (1024 * 1024):.1f} MB"


def get_mime_type(path: Path) -> str:
    return MIME_TYPES.get(path.suffix.lower(), "application/octet-stream")


def attachment_preview(attachment: Attachment) -> str:
    """One-line description, e.g. ``[File] notes.md (1.2 KB)``."""
    if attachment.kind is AttachmentKind.FOLDER:
        files = folders = 0
        try:
            for entry in attachment.path.iterdir():
                if entry.is_dir():
                    folders += 1
                else:
                    files += 1
        except OSError:
            return f"[Folder] {attachment.name}"
        return f"[Folder] {attachment.name} ({files} files, {folders} folders)"
    label = "Image" if attachment.kind is AttachmentKind.IMAGE else "File"
    size = format_size(attachment.size or 0)
    return f"[{label}] {attachment.name} ({size})"


def read_file_content(path: Path, max_chars: int = MAX_FILE_CHARS) -> str:
    """Read a text file, truncating very large ones with a trailing note."""
    try:
        content = path.read_text(encoding="utf-8", errors="replace")
    except OSError as exc:
        return f"[Error reading file: {exc}]"
    if len(content) > max_chars:
        return content[:max_chars] + f"\n\n... [truncated, {len(content)} total chars]"
    return content


def folder_structure(
    path: Path,
    max_depth: int = FOLDER_MAX_DEPTH,
    max_files: int = FOLDER_MAX_FILES,
) -> str:
    """Render an indented tree, skipping hidden entries and ``node_modules``."""
    lines: list[str] = []
    count = 0

    def walk(directory: Path, prefix: str, depth: int) -> None:
        nonlocal count
        if depth > max_depth or count >= max_files:
            return
        try:
            entries = sorted(directory.iterdir(), key=lambda p: p.name)
        except OSError:
            return
        for entry in entries:
            if count >= max_files:
                lines.append(f"{prefix}...")
                return
            if entry.name.startswith(".") or entry.name == "node_modules":
                continue
            count += 1
            if entry.is_dir():
                lines.append(f"{prefix}{entry.name}/")
                walk(entry, prefix + "  ", depth + 1)
            else:
                lines.append(f"{prefix}{entry.name}")

    walk(path, "", 0)
    return "\n".join(lines)


def _agent_type(path: Path) -> str:
    suffix = path.suffix.lower()
    if suffix == ".pdf":
        return "pdf"
    if suffix == ".md":
        return "markdown"
    if suffix == ".json":
        return "json"
    if suffix == ".txt":
        return "text"
    if suffix in CODE_LANGUAGES:
        return "code"
    return "file"


def attachments_to_agent_format(attachments: list[Attachment]) -> list[dict[str, Any]]:
    """Map attachments onto the typed descriptors the agent runtime expects."""
    descriptors: list[dict[str, Any]] = []
    for attachment in attachments:
        if attachment.kind is AttachmentKind.IMAGE:
            descriptors.append(
                {
                    "type": "image",
                    "path": str(attachment.path),
                    "name": attachment.name,
                    "mime_type": get_mime_type(attachment.path),
                }
            )
        elif attachment.kind is AttachmentKind.FOLDER:
            descriptors.append(
                {
                    "type": "text",
                    "path": str(attachment.path),
                    "name": f"{attachment.name} (folder structure)",
                    "folder": True,
                }
            )
        else:
            kind = _agent_type(attachment.path)
            descriptor: dict[str, Any] = {
                "type": kind,
                "path": str(attachment.path),
                "name": attachment.name,
                "mime_type": get_mime_type(attachment.path),
            }
            if kind == "code":
                descriptor["language"] = CODE_LANGUAGES[attachment.path.suffix.lower()]
            descriptors.append(descriptor)
    return descriptors


def render_attachment_context(descriptors: list[dict[str, Any]]) -> str:
    """Inline the textual content of attachment descriptors for a prompt."""
    sections: list[str] = []
    for descriptor in descriptors:
        path = Path(descriptor["path"])
        if descriptor["type"] == "image":
            continue
        if descriptor.get("folder"):
            body = folder_structure(path) or "(empty folder)"
            sections.append(f"--- Folder: {path} ---\n{body}")
        elif descriptor["type"] == "pdf":
            sections.append(f"--- PDF: {path} (binary content not inlined) ---")
        else:
            sections.append(f"--- File: {path} ---\n{read_file_content(path)}")
    return "\n\n".join(sections)


class AttachmentResolver:
    """Hold the pending attachments for the next turn.

    ``on_working_directory`` is called with the folder path whenever a folder
    attachment is added.
    """

    def __init__(
        self,
        on_working_directory: Callable[[Path], None] | None = None,
    ) -> None:
        self._pending: list[Attachment] = []
        self._on_working_directory = on_working_directory

    @property
    def pending(self) -> list[Attachment]:
        return list(self._pending)

    def __len__(self) -> int:
        return len(self._pending)

    def contains(self, path: Path) -> bool:
        return any(item.path == path for item in self._pending)

    def detect(self, raw_input: str, base: Path | None = None) -> Attachment | None:
        """Return an attachment for a path typed or pasted into the input."""
        text = raw_input.strip()
        if any(text.startswith(marker) for marker in METADATA_MARKERS):
            return None
        path = parse_path_from_input(text, base)
        if path is None:
            return None
        return create_attachment(path)

    def add(self, attachment: Attachment) -> bool:
        """Queue ``attachment`` unless its path is already pending."""
        if self.contains(attachment.path):
            return False
        self._pending.append(attachment)
        LOGGER.info(
            "attachment.added",
            extra={
                "event": "attachment.added",
                "kind": attachment.kind.value,
                "path": str(attachment.path),
            },
        )
        if attachment.kind is AttachmentKind.FOLDER and self._on_working_directory:
            self._on_working_directory(attachment.path)
        return True

    def add_path(self, path: Path) -> Attachment | None:
        """Queue an existing path; returns the attachment or None if missing."""
        attachment = create_attachment(path)
        if attachment is None:
            return None
        self.add(attachment)
        return attachment

    def clear(self) -> None:
        self._pending.clear()

    def take(self) -> list[Attachment]:
        """Snapshot and clear the pending list."""
        snapshot, self._pending = self._pending, []
        return snapshot
