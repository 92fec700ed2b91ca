"""File-system tools exposed to the agent, scoped to a working directory.

Every operation resolves relative paths against ``FileTools.working_directory``
and returns a :class:`ToolOutcome`; none of them raise.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
import shutil

from pydantic import Field

from .agent.plugins import ParamsSchema, PluginTool, ToolOutcome, ToolPlugin

LOGGER = logging.getLogger(__name__)

SEARCH_MAX_DEPTH = 5
SEARCH_MAX_RESULTS = 50
SKIPPED_SEARCH_ENTRIES = frozenset({"node_modules"})


def _fail(exc: BaseException) -> ToolOutcome:
    return ToolOutcome(success=False, error=str(exc))


class FileTools:
    """File operations resolved against an explicit working directory."""

    def __init__(self, working_directory: str | Path | None = None) -> None:
        self.launch_directory = Path.cwd()
        self._working_directory = Path(working_directory or self.launch_directory).resolve()

    @property
    def working_directory(self) -> Path:
        return self._working_directory

    def set_working_directory(self, directory: str | Path) -> bool:
        """Switch the base directory; ignored unless ``directory`` is a folder."""
        candidate = Path(directory).expanduser()
        if not candidate.is_absolute():
            candidate = self._working_directory / candidate
        if not candidate.is_dir():
            return False
        self._working_directory = candidate.resolve()
        LOGGER.info(
            "tools.working_directory.changed",
            extra={
                "event": "tools.working_directory.changed",
                "directory": str(self._working_directory),
            },
        )
        return True

    def reset_working_directory(self) -> None:
        self._working_directory = self.launch_directory.resolve()

    def resolve(self, path: str) -> Path:
        candidate = Path(path).expanduser()
        if candidate.is_absolute():
            return candidate
        return Path(os.path.normpath(self._working_directory / candidate))

    def read_file(self, path: str) -> ToolOutcome:
        try:
            target = self.resolve(path)
            if not target.exists():
                return ToolOutcome(success=False, error=f"File not found: {path}")
            if target.is_dir():
                return ToolOutcome(success=False, error=f"Path is a directory: {path}")
            return ToolOutcome(success=True, data=target.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError) as exc:
            return _fail(exc)

    def write_file(self, path: str, content: str) -> ToolOutcome:
        try:
            target = self.resolve(path)
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content, encoding="utf-8")
            lines = len(content.split("\n"))
            return ToolOutcome(success=True, data=f"Wrote {target} ({lines} lines)")
        except OSError as exc:
            return _fail(exc)

    def edit_file(self, path: str, old_content: str, new_content: str) -> ToolOutcome:
        """Replace the first occurrence of ``old_content``."""
        try:
            target = self.resolve(path)
            if not target.exists():
                return ToolOutcome(success=False, error=f"File not found: {path}")
            content = target.read_text(encoding="utf-8")
            if old_content not in content:
                return ToolOutcome(success=False, error="Content not found in file")
            target.write_text(content.replace(old_content, new_content, 1), encoding="utf-8")
            return ToolOutcome(success=True, data=f"Edited {target}")
        except (OSError, UnicodeDecodeError) as exc:
            return _fail(exc)

    def list_directory(self, path: str = ".") -> ToolOutcome:
        try:
            target = self.resolve(path or ".")
            if not target.exists():
                return ToolOutcome(success=False, error=f"Directory not found: {path}")
            if not target.is_dir():
                return ToolOutcome(success=False, error=f"Path is not a directory: {path}")
            dirs: list[str] = []
            files: list[str] = []
            for entry in target.iterdir():
                if entry.name.startswith("."):
                    continue
                try:
                    is_dir = entry.is_dir()
                except OSError:
                    is_dir = False
                if is_dir:
                    dirs.append(f"{entry.name}/")
                else:
                    files.append(entry.name)
            entries = sorted(dirs) + sorted(files)
            if not entries:
                return ToolOutcome(success=True, data=f"{target} (empty)")
            listing = "\n  ".join(entries)
            return ToolOutcome(success=True, data=f"{target}\n  {listing}")
        except OSError as exc:
            return _fail(exc)

    def create_directory(self, path: str) -> ToolOutcome:
        try:
            target = self.resolve(path)
            if target.exists():
                return ToolOutcome(success=True, data=f"Already exists: {target}")
            target.mkdir(parents=True, exist_ok=True)
            return ToolOutcome(success=True, data=f"Created {target}/")
        except OSError as exc:
            return _fail(exc)

    def delete_file(self, path: str) -> ToolOutcome:
        try:
            target = self.resolve(path)
            if not target.exists():
                return ToolOutcome(success=True, data=f"Already deleted: {path}")
            if target.is_dir():
                shutil.rmtree(target)
                return ToolOutcome(success=True, data=f"Deleted {target}/")
            target.unlink()
            return ToolOutcome(success=True, data=f"Deleted {target}")
        except OSError as exc:
            return _fail(exc)

    def move_file(self, source: str, destination: str) -> ToolOutcome:
        """Rename ``source``; a file falls back to copy+delete across devices."""
        src = self.resolve(source)
        dest = self.resolve(destination)
        try:
            if not src.exists():
                return ToolOutcome(success=False, error=f"Source not found: {source}")
            dest.parent.mkdir(parents=True, exist_ok=True)
            if dest.is_dir():
                nested = dest / src.name
                os.rename(src, nested)
                return ToolOutcome(success=True, data=f"Moved {source} -> {nested}")
            os.rename(src, dest)
            return ToolOutcome(success=True, data=f"Moved {source} -> {destination}")
        except OSError as rename_error:
            LOGGER.debug(
                "tools.move.rename_failed",
                extra={"event": "tools.move.rename_failed", "reason": str(rename_error)},
            )
        try:
            if src.is_dir():
                return ToolOutcome(
                    success=False,
                    error="Cannot move directory across devices. Use copy manually.",
                )
            shutil.copyfile(src, dest)
            src.unlink()
            return ToolOutcome(success=True, data=f"Moved {source} -> {destination}")
        except OSError as exc:
            return _fail(exc)

    def search_files(self, pattern: str, directory: str = ".") -> ToolOutcome:
        """Case-insensitive name search, depth 5, stopping near 50 results."""
        try:
            root = self.resolve(directory or ".")
            needle = pattern.lower()
            results: list[str] = []

            def walk(current: Path, depth: int) -> None:
                if depth > SEARCH_MAX_DEPTH or not current.exists():
                    return
                for entry in sorted(current.iterdir(), key=lambda p: p.name):
                    name = entry.name
                    if name.startswith(".") or name in SKIPPED_SEARCH_ENTRIES:
                        continue
                    try:
                        is_dir = entry.is_dir()
                    except OSError:
                        continue
                    if needle in name.lower():
                        relative = entry.relative_to(root).as_posix()
                        results.append(f"{relative}/" if is_dir else relative)
                    if is_dir and len(results) < SEARCH_MAX_RESULTS:
                        walk(entry, depth + 1)

            walk(root, 0)
            return ToolOutcome(
                success=True,
                data="\n".join(results) if results else "No matches found",
            )
        except OSError as exc:
            return _fail(exc)

    def execute(self, name: str, args: dict[str, str]) -> ToolOutcome:
        """Dispatch a tool call by name."""
        if name == "read_file":
            return self.read_file(args.get("path", ""))
        if name == "write_file":
            return self.write_file(args.get("path", ""), args.get("content", ""))
        if name == "edit_file":
            return self.edit_file(
                args.get("path", ""), args.get("old_content", ""), args.get("new_content", "")
            )
        if name == "list_directory":
            return self.list_directory(args.get("path") or ".")
        if name == "create_directory":
            return self.create_directory(args.get("path", ""))
        if name == "delete_file":
            return self.delete_file(args.get("path", ""))
        if name == "move_file":
            return self.move_file(args.get("source", ""), args.get("destination", ""))
        if name == "search_files":
            return self.search_files(args.get("pattern", ""), args.get("dir") or ".")
        return ToolOutcome(success=False, error=f"Unknown tool: {name}")


class PathParams(ParamsSchema):
    path: str = Field(description="Path relative to the working directory or absolute")


class OptionalPathParams(ParamsSchema):
    path: str = Field(default=".", description="Directory path (default: working directory)")


class WriteParams(ParamsSchema):
    path: str = Field(description="Path of the file to write")
    content: str = Field(description="Content to write to the file")


class EditParams(ParamsSchema):
    path: str = Field(description="Path of the file to edit")
    old_content: str = Field(description="The exact content to replace")
    new_content: str = Field(description="The new content to insert")


class MoveParams(ParamsSchema):
    source: str = Field(description="Path to move")
    destination: str = Field(description="Target path or existing directory")


class SearchParams(ParamsSchema):
    pattern: str = Field(description="Case-insensitive substring of the file name")
    dir: str = Field(default=".", description="Directory to search from")


def build_file_tools_plugin(tools: FileTools) -> ToolPlugin:
    """Wrap ``tools`` as the ``file-tools`` plugin registered with agents."""
    return ToolPlugin(
        name="file-tools",
        version="1.0.0",
        description="File system tools for reading, writing, and managing files",
        tools=[
            PluginTool(
                "read_file",
                "Read the contents of a file",
                PathParams,
                lambda p: tools.read_file(p.path),
            ),
            PluginTool(
                "write_file",
                "Write content to a file (creates directories if needed)",
                WriteParams,
                lambda p: tools.write_file(p.path, p.content),
            ),
            PluginTool(
                "edit_file",
                "Edit a file by replacing specific content",
                EditParams,
                lambda p: tools.edit_file(p.path, p.old_content, p.new_content),
            ),
            PluginTool(
                "list_directory",
                "List contents of a directory. Shows current working directory.",
                OptionalPathParams,
                lambda p: tools.list_directory(p.path or "."),
            ),
            PluginTool(
                "create_directory",
                "Create a new directory",
                PathParams,
                lambda p: tools.create_directory(p.path),
            ),
            PluginTool(
                "delete_file",
                "Delete a file or directory",
                PathParams,
                lambda p: tools.delete_file(p.path),
            ),
            PluginTool(
                "move_file",
                "Move or rename a file or directory",
                MoveParams,
                lambda p: tools.move_file(p.source, p.destination),
            ),
            PluginTool(
                "search_files",
                "Search for files by name pattern",
                SearchParams,
                lambda p: tools.search_files(p.pattern, p.dir or "."),
            ),
        ],
    )
