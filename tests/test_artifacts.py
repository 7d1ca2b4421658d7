"""Tests for source artifact inspection."""

import hashlib
import os
import tempfile
from pathlib import Path

import pytest

from sysmon_updater.engine import decide
from sysmon_updater.errors import HashAlgorithmMismatch, NotFound, UpdaterError
from sysmon_updater.inspectors.artifacts import HASH_ALGORITHMS, ArtifactInspector
from sysmon_updater.models import ActionKind, ConfigHashRecord, InstalledAgentState

CONFIG_XML = b'<Sysmon schemaversion="4.90"><EventFiltering/></Sysmon>\n'


def _write(root: Path, name: str, data: bytes, mtime: float | None = None) -> Path:
    path = root / name
    path.write_bytes(data)
    if mtime is not None:
        os.utime(path, (mtime, mtime))
    return path


def test_executable_modified_reads_mtime():
    with tempfile.TemporaryDirectory() as tmpdir:
        exe = _write(Path(tmpdir), "Sysmon64.exe", b"MZ", mtime=1_600_000_000)
        assert ArtifactInspector().executable_modified(exe) == 1_600_000_000


def test_executable_modified_missing_raises_not_found():
    with tempfile.TemporaryDirectory() as tmpdir:
        with pytest.raises(NotFound):
            ArtifactInspector().executable_modified(Path(tmpdir) / "missing.exe")


def test_config_hash_is_uppercase_hex():
    with tempfile.TemporaryDirectory() as tmpdir:
        cfg = _write(Path(tmpdir), "sysmonconfig.xml", CONFIG_XML)
        expected = hashlib.sha256(CONFIG_XML).hexdigest().upper()
        assert ArtifactInspector().config_hash(cfg, "SHA256") == expected


def test_config_hash_honours_each_algorithm():
    with tempfile.TemporaryDirectory() as tmpdir:
        cfg = _write(Path(tmpdir), "sysmonconfig.xml", CONFIG_XML)
        inspector = ArtifactInspector()
        for agent_name, hashlib_name in HASH_ALGORITHMS.items():
            expected = hashlib.new(hashlib_name, CONFIG_XML).hexdigest().upper()
            assert inspector.config_hash(cfg, agent_name) == expected


def test_config_hash_algorithm_name_is_case_insensitive():
    with tempfile.TemporaryDirectory() as tmpdir:
        cfg = _write(Path(tmpdir), "sysmonconfig.xml", CONFIG_XML)
        inspector = ArtifactInspector()
        assert inspector.config_hash(cfg, "sha1") == inspector.config_hash(cfg, "SHA1")


def test_config_hash_unknown_algorithm_fails_loudly():
    with tempfile.TemporaryDirectory() as tmpdir:
        cfg = _write(Path(tmpdir), "sysmonconfig.xml", CONFIG_XML)
        with pytest.raises(HashAlgorithmMismatch):
            ArtifactInspector().config_hash(cfg, "IMPHASH")


def test_config_hash_missing_file_raises_not_found():
    with tempfile.TemporaryDirectory() as tmpdir:
        with pytest.raises(NotFound):
            ArtifactInspector().config_hash(Path(tmpdir) / "gone.xml", "SHA256")


def test_inspect_sources_requires_both_files():
    with tempfile.TemporaryDirectory() as tmpdir:
        root = Path(tmpdir)
        exe = _write(root, "Sysmon64.exe", b"MZ")
        with pytest.raises(NotFound):
            ArtifactInspector().inspect_sources(exe, root / "sysmonconfig.xml")


def test_inspect_sources_hashes_lazily():
    with tempfile.TemporaryDirectory() as tmpdir:
        root = Path(tmpdir)
        exe = _write(root, "Sysmon64.exe", b"MZ", mtime=1_650_000_000)
        cfg = _write(root, "sysmonconfig.xml", CONFIG_XML)

        sources = ArtifactInspector().inspect_sources(exe, cfg)
        assert sources.executable_modified == 1_650_000_000
        assert sources.config_hash("MD5") == hashlib.md5(CONFIG_XML).hexdigest().upper()


def test_recorded_hash_against_real_config():
    with tempfile.TemporaryDirectory() as tmpdir:
        root = Path(tmpdir)
        exe = _write(root, "Sysmon64.exe", b"MZ", mtime=1_650_000_000)
        cfg = _write(root, "sysmonconfig.xml", CONFIG_XML)
        sources = ArtifactInspector().inspect_sources(exe, cfg)
        digest = hashlib.sha256(CONFIG_XML).hexdigest().upper()

        def installed(recorded: str) -> InstalledAgentState:
            return InstalledAgentState(
                exists=True,
                image_path="Sysmon64.exe",
                image_modified=1_650_000_000,
                config_hash_record=ConfigHashRecord("SHA256", recorded),
            )

        assert decide(installed(digest), sources).kind == ActionKind.NOOP
        assert decide(installed("DEF456"), sources).kind == ActionKind.UPDATE_CONFIG


def test_executable_modified_rejects_directory():
    with tempfile.TemporaryDirectory() as tmpdir:
        folder = Path(tmpdir) / "Sysmon64.exe"
        folder.mkdir()
        with pytest.raises(NotFound):
            ArtifactInspector().executable_modified(folder)


def test_inspect_sources_rejects_directory_executable():
    with tempfile.TemporaryDirectory() as tmpdir:
        root = Path(tmpdir)
        (root / "Sysmon64.exe").mkdir()
        cfg = _write(root, "sysmonconfig.xml", CONFIG_XML)
        with pytest.raises(NotFound):
            ArtifactInspector().inspect_sources(root / "Sysmon64.exe", cfg)


def test_config_hash_unreadable_path_stays_in_error_taxonomy():
    with tempfile.TemporaryDirectory() as tmpdir:
        folder = Path(tmpdir) / "sysmonconfig.xml"
        folder.mkdir()
        with pytest.raises(UpdaterError) as exc:
            ArtifactInspector().config_hash(folder, "SHA256")
        assert str(folder) in str(exc.value)
