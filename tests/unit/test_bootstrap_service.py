import hashlib
import io
import os
import stat
import sys
import tarfile
import tempfile
import unittest
from pathlib import Path

ROOT = Path(__file__).resolve().parents[2]
sys.path.insert(0, str(ROOT / "installers" / "bootstrap"))
sys.path.insert(0, str(ROOT / "packages" / "core"))

from lazytrack_bootstrap.errors import ChecksumMismatchError, ExtractionError, SmokeTestError
from lazytrack_bootstrap.service import install_binary, sha256_bytes, smoke_test, verify_checksum


def _archive(entries, symlinks=()):
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w:gz") as tf:
        for name, payload in entries.items():
            info = tarfile.TarInfo(name=name)
            info.size = len(payload)
            info.mode = 0o644
            tf.addfile(info, io.BytesIO(payload))
        for name, target in symlinks:
            info = tarfile.TarInfo(name=name)
            info.type = tarfile.SYMTYPE
            info.linkname = target
            tf.addfile(info)
    return buf.getvalue()


class ChecksumTests(unittest.TestCase):
    def test_matching_digest_passes(self):
        payload = b"synthetic release payload"
        digest = hashlib.sha256(payload).hexdigest()
        self.assertEqual(sha256_bytes(payload), digest)
        self.assertEqual(verify_checksum(payload, digest), digest)

    def test_uppercase_declared_digest_passes(self):
        payload = b"synthetic release payload"
        self.assertTrue(verify_checksum(payload, hashlib.sha256(payload).hexdigest().upper()))

    def test_single_bit_corruption_fails(self):
        payload = bytearray(b"synthetic release payload")
        digest = hashlib.sha256(bytes(payload)).hexdigest()
        payload[3] ^= 0x01

        with self.assertRaises(ChecksumMismatchError) as ctx:
            verify_checksum(bytes(payload), digest, url="https://example/a.tar.gz")
        self.assertEqual(ctx.exception.expected, digest)
        self.assertEqual(ctx.exception.actual, hashlib.sha256(bytes(payload)).hexdigest())
        self.assertIn("https://example/a.tar.gz", str(ctx.exception))

    def test_prefix_of_digest_is_not_accepted(self):
        payload = b"synthetic release payload"
        digest = hashlib.sha256(payload).hexdigest()
        with self.assertRaises(ChecksumMismatchError):
            verify_checksum(payload, digest[:16])

    def test_placeholder_digest_never_matches(self):
        with self.assertRaises(ChecksumMismatchError):
            verify_checksum(b"anything", "0" * 64)


class InstallBinaryTests(unittest.TestCase):
    def test_places_single_executable(self):
        archive = _archive({"lazytrack": b"#!/bin/sh\nexit 0\n", "README.md": b"docs", "LICENSE": b"MIT"})
        with tempfile.TemporaryDirectory() as tmp:
            target = Path(tmp) / "bin"
            installed = install_binary(archive, target, "lazytrack")

            self.assertEqual(installed, target / "lazytrack")
            self.assertEqual([p.name for p in target.iterdir()], ["lazytrack"])
            self.assertTrue(os.access(installed, os.X_OK))
            self.assertTrue(installed.stat().st_mode & stat.S_IXUSR)
            self.assertEqual(installed.read_bytes(), b"#!/bin/sh\nexit 0\n")

    def test_finds_binary_in_nested_directory(self):
        archive = _archive({"lazytrack_1.0.0/lazytrack": b"bin"})
        with tempfile.TemporaryDirectory() as tmp:
            installed = install_binary(archive, Path(tmp), "lazytrack")
            self.assertEqual(installed.read_bytes(), b"bin")

    def test_replaces_existing_binary(self):
        archive = _archive({"lazytrack": b"new"})
        with tempfile.TemporaryDirectory() as tmp:
            (Path(tmp) / "lazytrack").write_bytes(b"old")
            installed = install_binary(archive, Path(tmp), "lazytrack")
            self.assertEqual(installed.read_bytes(), b"new")
            self.assertEqual(len(list(Path(tmp).iterdir())), 1)

    def test_missing_entry_fails(self):
        archive = _archive({"README.md": b"docs"}, symlinks=[("lazytrack", "/bin/sh")])
        with tempfile.TemporaryDirectory() as tmp:
            with self.assertRaises(ExtractionError):
                install_binary(archive, Path(tmp), "lazytrack")
            self.assertEqual(list(Path(tmp).iterdir()), [])

    def test_ambiguous_entry_fails(self):
        archive = _archive({"a/lazytrack": b"1", "b/lazytrack": b"2"})
        with tempfile.TemporaryDirectory() as tmp:
            with self.assertRaises(ExtractionError):
                install_binary(archive, Path(tmp), "lazytrack")

    def test_target_dir_that_is_a_file_fails(self):
        archive = _archive({"lazytrack": b"bin"})
        with tempfile.TemporaryDirectory() as tmp:
            blocker = Path(tmp) / "bin"
            blocker.write_bytes(b"")
            with self.assertRaises(ExtractionError):
                install_binary(archive, blocker, "lazytrack")
            self.assertEqual([p.name for p in Path(tmp).iterdir()], ["bin"])

    def test_malformed_archive_fails(self):
        with tempfile.TemporaryDirectory() as tmp:
            with self.assertRaises(ExtractionError):
                install_binary(b"definitely not a tarball", Path(tmp), "lazytrack")
            truncated = _archive({"lazytrack": b"x" * 4096})[:40]
            with self.assertRaises(ExtractionError):
                install_binary(truncated, Path(tmp), "lazytrack")


class SmokeTestTests(unittest.TestCase):
    def _script(self, root: Path, body: str) -> Path:
        path = root / "lazytrack"
        path.write_text(f"#!/bin/sh\n{body}\n", encoding="utf-8")
        path.chmod(0o755)
        return path

    def test_zero_exit_passes(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = self._script(Path(tmp), '[ "$1" = "--help" ] || exit 9\necho usage')
            self.assertTrue(smoke_test(path))

    def test_non_zero_exit_fails(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = self._script(Path(tmp), "exit 3")
            with self.assertRaises(SmokeTestError) as ctx:
                smoke_test(path)
            self.assertEqual(ctx.exception.exit_code, 3)

    def test_missing_binary_fails(self):
        with tempfile.TemporaryDirectory() as tmp:
            with self.assertRaises(SmokeTestError) as ctx:
                smoke_test(Path(tmp) / "absent")
            self.assertIsNone(ctx.exception.exit_code)

    def test_hanging_binary_times_out(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = self._script(Path(tmp), "exec sleep 5")
            with self.assertRaises(SmokeTestError):
                smoke_test(path, timeout=0.5)


if __name__ == "__main__":
    unittest.main()
