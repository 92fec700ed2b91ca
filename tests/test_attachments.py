"""Tests for path detection, attachment previews and the resolver."""

from __future__ import annotations

from pathlib import Path
import tempfile
import unittest
from unittest.mock import patch

from astreus_cli.attachments import (
    Attachment,
    AttachmentKind,
    AttachmentResolver,
    attachment_preview,
    attachments_to_agent_format,
    create_attachment,
    expand_path,
    folder_structure,
    format_size,
    looks_like_path,
    parse_path_from_input,
    read_file_content,
    render_attachment_context,
    strip_quotes,
)


class PathDetectionTests(unittest.TestCase):
    """Validate the path-candidate rules."""

    def test_path_patterns(self) -> None:
        for candidate in ("/etc/hosts", "~/notes.md", "C:\\Users\\me", "./a", "../b"):
            with self.subTest(candidate=candidate):
                self.assertTrue(looks_like_path(candidate))
        for candidate in ("notes.md", "hello world", "http://x"):
            with self.subTest(candidate=candidate):
                self.assertFalse(looks_like_path(candidate))

    def test_strip_quotes_removes_one_matching_layer(self) -> None:
        self.assertEqual(strip_quotes("'/tmp/a b'"), "/tmp/a b")
        self.assertEqual(strip_quotes('"\'x\'"'), "'x'")
        self.assertEqual(strip_quotes("'unbalanced"), "'unbalanced")

    def test_expand_path_handles_home_and_relative(self) -> None:
        with patch.dict("os.environ", {"HOME": "/home/tester"}):
            self.assertEqual(expand_path("~/docs"), Path("/home/tester/docs"))
        self.assertEqual(expand_path("./a/../b", Path("/base")), Path("/base/b"))

    def test_parse_path_requires_existing_path(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            target = Path(temp_dir) / "notes.txt"
            target.write_text("hi", encoding="utf-8")
            self.assertEqual(parse_path_from_input(f'"{target}"'), target)
            self.assertIsNone(parse_path_from_input(f"{temp_dir}/missing.txt"))
            self.assertEqual(parse_path_from_input("./notes.txt", Path(temp_dir)), target)

    def test_parse_path_ignores_commands_and_markers(self) -> None:
        self.assertIsNone(parse_path_from_input("/help"))
        self.assertIsNone(parse_path_from_input("[Attached files:\n- a (text)]"))
        self.assertIsNone(parse_path_from_input("just text"))

    def test_root_level_directory_is_still_a_path(self) -> None:
        self.assertEqual(parse_path_from_input("/tmp"), Path("/tmp"))


class AttachmentFormattingTests(unittest.TestCase):
    def test_format_size_units(self) -> None:
        self.assertEqual(format_size(512), "512 B")
        self.assertEqual(format_size(2048), "2.0 KB")
        self.assertEqual(format_size(3 * 1024 * 1024), "3.0 MB")

    def test_classification_and_previews(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            root = Path(temp_dir)
            (root / "a.txt").write_text("x" * 10, encoding="utf-8")
            (root / "pic.PNG").write_bytes(b"\x89PNG")
            (root / "sub").mkdir()

            text = create_attachment(root / "a.txt")
            image = create_attachment(root / "pic.PNG")
            folder = create_attachment(root)
            assert text is not None and image is not None and folder is not None

            self.assertIs(text.kind, AttachmentKind.FILE)
            self.assertEqual(text.size, 10)
            self.assertIs(image.kind, AttachmentKind.IMAGE)
            self.assertIs(folder.kind, AttachmentKind.FOLDER)
            self.assertIsNone(folder.size)

            self.assertEqual(attachment_preview(text), "[File] a.txt (10 B)")
            self.assertEqual(attachment_preview(image), "[Image] pic.PNG (4 B)")
            self.assertEqual(
                attachment_preview(folder), f"[Folder] {root.name} (2 files, 1 folders)"
            )

    def test_missing_path_creates_nothing(self) -> None:
        self.assertIsNone(create_attachment(Path("/definitely/not/here.txt")))

    def test_agent_format_types(self) -> None:
        attachments = [
            Attachment(AttachmentKind.IMAGE, Path("/x/p.jpg"), "p.jpg", 1),
            Attachment(AttachmentKind.FOLDER, Path("/x/proj"), "proj"),
            Attachment(AttachmentKind.FILE, Path("/x/main.py"), "main.py", 1),
            Attachment(AttachmentKind.FILE, Path("/x/README.md"), "README.md", 1),
            Attachment(AttachmentKind.FILE, Path("/x/data.bin"), "data.bin", 1),
        ]
        descriptors = attachments_to_agent_format(attachments)
        self.assertEqual(
            [d["type"] for d in descriptors], ["image", "text", "code", "markdown", "file"]
        )
        self.assertEqual(descriptors[0]["mime_type"], "image/jpeg")
        self.assertEqual(descriptors[1]["name"], "proj (folder structure)")
        self.assertEqual(descriptors[2]["language"], "python")

    def test_read_file_content_truncates(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            target = Path(temp_dir) / "big.txt"
            target.write_text("a" * 30, encoding="utf-8")
            content = read_file_content(target, max_chars=10)
            self.assertTrue(content.startswith("a" * 10 + "\n\n... [truncated"))
            self.assertIn("30 total chars", content)

    def test_folder_structure_skips_hidden_and_node_modules(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            root = Path(temp_dir)
            (root / ".git").mkdir()
            (root / "node_modules").mkdir()
            (root / "src").mkdir()
            (root / "src" / "app.py").write_text("", encoding="utf-8")
            self.assertEqual(folder_structure(root), "src/\n  app.py")

    def test_render_context_inlines_text_and_skips_images(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            root = Path(temp_dir)
            (root / "n.txt").write_text("note body", encoding="utf-8")
            context = render_attachment_context(
                [
                    {"type": "text", "path": str(root / "n.txt"), "name": "n.txt"},
                    {"type": "image", "path": str(root / "p.png"), "name": "p.png"},
                ]
            )
            self.assertIn("--- File: ", context)
            self.assertIn("note body", context)
            self.assertNotIn("p.png", context)


class AttachmentResolverTests(unittest.TestCase):
    """Validate detection, de-duplication and the working-directory signal."""

    def test_detect_and_deduplicate(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            target = Path(temp_dir) / "a.txt"
            target.write_text("x", encoding="utf-8")
            resolver = AttachmentResolver()
            attachment = resolver.detect(str(target))
            assert attachment is not None
            self.assertTrue(resolver.add(attachment))
            again = resolver.detect(f"'{target}'")
            assert again is not None
            self.assertFalse(resolver.add(again))
            self.assertEqual(len(resolver), 1)

    def test_folder_signals_working_directory(self) -> None:
        seen: list[Path] = []
        with tempfile.TemporaryDirectory() as temp_dir:
            resolver = AttachmentResolver(on_working_directory=seen.append)
            attachment = resolver.add_path(Path(temp_dir))
            assert attachment is not None
            self.assertIs(attachment.kind, AttachmentKind.FOLDER)
            self.assertEqual(seen, [Path(temp_dir)])

    def test_file_does_not_signal_working_directory(self) -> None:
        seen: list[Path] = []
        with tempfile.TemporaryDirectory() as temp_dir:
            target = Path(temp_dir) / "a.txt"
            target.write_text("x", encoding="utf-8")
            resolver = AttachmentResolver(on_working_directory=seen.append)
            resolver.add_path(target)
            self.assertEqual(seen, [])

    def test_take_snapshots_and_clears(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            resolver = AttachmentResolver()
            resolver.add_path(Path(temp_dir))
            taken = resolver.take()
            self.assertEqual(len(taken), 1)
            self.assertEqual(resolver.pending, [])

    def test_detect_ignores_metadata_markers(self) -> None:
        resolver = AttachmentResolver()
        self.assertIsNone(resolver.detect("[IMPORTANT: Working directory is set to: /tmp.]"))


if __name__ == "__main__":
    unittest.main()
