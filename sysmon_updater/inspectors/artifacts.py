"""Source artifact inspection — timestamps for the binary, content hashes for the config.

The asymmetry is deliberate: hashing a large binary on every scheduled run is
wasteful, so the executable is compared by modification time only.
"""

from __future__ import annotations

import hashlib
import logging
import os
from pathlib import Path

from sysmon_updater.errors import HashAlgorithmMismatch, NotFound, Unreadable
from sysmon_updater.models import SourceArtifacts

logger = logging.getLogger(__name__)

# Algorithm names as the agent publishes them, mapped to hashlib
HASH_ALGORITHMS = {
    "MD5": "md5",
    "SHA1": "sha1",
    "SHA256": "sha256",
    "SHA384": "sha384",
    "SHA512": "sha512",
}

CHUNK_SIZE = 64 * 1024


class ArtifactInspector:
    """Reads modification times and content hashes from the filesystem."""

    def executable_modified(self, path: str | Path) -> float:
        """Return the modification time of the executable at ``path``.

        A directory at ``path`` counts as missing.
        """
        if not Path(path).is_file():
            raise NotFound(str(path))
        try:
            return os.stat(path).st_mtime
        except FileNotFoundError:
            raise NotFound(str(path)) from None
        except OSError as e:
            raise Unreadable(str(path), e) from e

    def config_hash(self, path: str | Path, algorithm: str) -> str:
        """Hash the file at ``path`` under exactly ``algorithm``.

        The digest is upper-case hex, the form the agent records. An algorithm
        we cannot compute raises HashAlgorithmMismatch; there is no fallback.
        """
        name = HASH_ALGORITHMS.get((algorithm or "").strip().upper())
        if name is None:
            raise HashAlgorithmMismatch(algorithm, sorted(HASH_ALGORITHMS))

        digest = hashlib.new(name)
        try:
            with open(path, "rb") as f:
                for chunk in iter(lambda: f.read(CHUNK_SIZE), b""):
                    digest.update(chunk)
        except FileNotFoundError:
            raise NotFound(str(path)) from None
        except OSError as e:
            raise Unreadable(str(path), e) from e

        value = digest.hexdigest().upper()
        logger.debug("%s of %s is %s", algorithm, path, value)
        return value

    def inspect_sources(
        self, executable_path: str | Path, config_path: str | Path
    ) -> SourceArtifacts:
        """Snapshot both source artifacts.

        Both files must exist now; the config is only hashed later, on demand.
        """
        modified = self.executable_modified(executable_path)
        if not Path(config_path).is_file():
            raise NotFound(str(config_path))

        return SourceArtifacts(
            executable_path=str(executable_path),
            executable_modified=modified,
            config_path=str(config_path),
            hasher=self.config_hash,
        )
