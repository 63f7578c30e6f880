"""Bundle tools - fetch, unpack, digest, sign and verify plugin bundles."""

import asyncio
import hashlib
import hmac
import json
import logging
import shutil
import zipfile
from pathlib import Path
from typing import Any, Dict, Optional

import aiohttp

from aics.constants import (
    DEFAULT_NETWORK_TIMEOUT,
    INSTALL_RECORD_FILE,
    MANIFEST_FILE,
    SIGNATURE_FILE,
)
from aics.plugins.errors import InstallError

logger = logging.getLogger(__name__)

SIGNATURE_ALGO = "hmac-sha256"
_DIGEST_EXCLUDED_FILES = {SIGNATURE_FILE, INSTALL_RECORD_FILE}
_DIGEST_EXCLUDED_DIRS = {"__pycache__"}


def is_url(source: str) -> bool:
    return source.startswith("http://") or source.startswith("https://")


async def fetch_bundle(
    source: str, staging_dir: Path, timeout: float = DEFAULT_NETWORK_TIMEOUT
) -> Path:
    """Bring a bundle into ``staging_dir`` and return its root directory.

    Args:
        source: Local bundle directory, local .zip archive, or http(s) URL of a zip
        staging_dir: Empty directory owned by the caller
        timeout: Download timeout in seconds

    Raises:
        InstallError: If the source cannot be fetched or unpacked, or holds no manifest
    """
    unpacked = staging_dir / "bundle"

    if is_url(source):
        archive = staging_dir / "download.zip"
        await download_archive(source, archive, timeout)
        await asyncio.to_thread(extract_zip, archive, unpacked)
    else:
        path = Path(source).expanduser()
        if path.is_dir():
            await asyncio.to_thread(_copy_bundle_dir, path, unpacked)
        elif path.is_file() and zipfile.is_zipfile(path):
            await asyncio.to_thread(extract_zip, path, unpacked)
        else:
            raise InstallError(f"Not a bundle directory or zip archive: {source}")

    return find_bundle_root(unpacked)


async def download_archive(url: str, dest: Path, timeout: float) -> None:
    """Download ``url`` to ``dest``."""
    logger.info(f"Downloading plugin bundle from {url}")
    try:
        async with aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=timeout)
        ) as session:
            async with session.get(url) as resp:
                if resp.status != 200:
                    raise InstallError(f"Download failed: HTTP {resp.status} for {url}")
                data = await resp.read()
    except aiohttp.ClientError as e:
        raise InstallError(f"Download failed for {url}: {e}") from e
    await asyncio.to_thread(dest.write_bytes, data)
    logger.debug(f"Downloaded {len(data)} bytes to {dest}")


def _copy_bundle_dir(src: Path, dest: Path) -> None:
    try:
        shutil.copytree(src, dest, ignore=shutil.ignore_patterns("__pycache__", INSTALL_RECORD_FILE))
    except OSError as e:
        raise InstallError(f"Failed to copy bundle {src}: {e}") from e


def extract_zip(archive: Path, dest: Path) -> None:
    """Extract ``archive`` into ``dest``, rejecting members that escape it.

    Raises:
        InstallError: On a corrupt archive or an unsafe member path
    """
    dest.mkdir(parents=True, exist_ok=True)
    root = dest.resolve()
    try:
        with zipfile.ZipFile(archive) as zf:
            for member in zf.infolist():
                target = (root / member.filename).resolve()
                if target != root and root not in target.parents:
                    raise InstallError(f"Unsafe path in archive: {member.filename}")
            zf.extractall(root)
    except zipfile.BadZipFile as e:
        raise InstallError(f"Corrupt archive {archive}: {e}") from e
    except OSError as e:
        raise InstallError(f"Failed to extract {archive}: {e}") from e


def find_bundle_root(path: Path) -> Path:
    """Locate the directory holding manifest.json: ``path`` itself or its only subdirectory."""
    if (path / MANIFEST_FILE).is_file():
        return path
    children = [c for c in path.iterdir() if c.name != "__MACOSX"] if path.is_dir() else []
    if len(children) == 1 and children[0].is_dir() and (children[0] / MANIFEST_FILE).is_file():
        return children[0]
    raise InstallError(f"No {MANIFEST_FILE} found in bundle")


def compute_bundle_digest(bundle_root: Path) -> str:
    """SHA-256 over sorted relative paths and file contents."""
    h = hashlib.sha256()
    files = []
    for item in bundle_root.rglob("*"):
        rel = item.relative_to(bundle_root)
        if not item.is_file():
            continue
        if rel.name in _DIGEST_EXCLUDED_FILES and len(rel.parts) == 1:
            continue
        if any(part in _DIGEST_EXCLUDED_DIRS for part in rel.parts):
            continue
        files.append((rel.as_posix(), item))

    for rel_name, item in sorted(files):
        h.update(rel_name.encode("utf-8"))
        h.update(b"\0")
        with open(item, "rb") as f:
            for chunk in iter(lambda: f.read(8192), b""):
                h.update(chunk)
        h.update(b"\0")
    return h.hexdigest()


class BundleVerifier:
    """Checks and writes ``signature.json`` for bundles."""

    def __init__(self, signing_key: Optional[str] = None, require_signatures: bool = False):
        self._key = signing_key.encode("utf-8") if signing_key else None
        self.require_signatures = require_signatures

    def _sign_digest(self, digest: str) -> str:
        return hmac.new(self._key, digest.encode("utf-8"), hashlib.sha256).hexdigest()

    def sign(self, bundle_root: Path) -> Dict[str, Any]:
        """Write signature.json for ``bundle_root`` and return its contents."""
        if self._key is None:
            raise InstallError("No signing key configured (set AICS_PLUGIN_SIGNING_KEY)")
        digest = compute_bundle_digest(bundle_root)
        payload = {
            "algo": SIGNATURE_ALGO,
            "bundle_sha256": digest,
            "signature_hex": self._sign_digest(digest),
        }
        (bundle_root / SIGNATURE_FILE).write_text(
            json.dumps(payload, indent=2, sort_keys=True), encoding="utf-8"
        )
        logger.info(f"Signed bundle {bundle_root}")
        return payload

    def verify(self, bundle_root: Path, plugin_id: Optional[str] = None) -> str:
        """Verify the bundle signature and return the bundle digest.

        Unsigned bundles pass only when signatures are not required.

        Raises:
            InstallError: On digest or signature mismatch, an unsupported algorithm,
                or a missing signature when one is required
        """
        digest = compute_bundle_digest(bundle_root)
        sig_file = bundle_root / SIGNATURE_FILE

        if not sig_file.exists():
            if self.require_signatures:
                raise InstallError("Bundle is not signed", plugin_id)
            logger.debug(f"Bundle {bundle_root} is unsigned, accepting")
            return digest

        try:
            sig = json.loads(sig_file.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as e:
            raise InstallError(f"Unreadable {SIGNATURE_FILE}: {e}", plugin_id) from e
        if not isinstance(sig, dict):
            raise InstallError(f"Malformed {SIGNATURE_FILE}", plugin_id)

        if sig.get("algo") != SIGNATURE_ALGO:
            raise InstallError(f"Unsupported signature algorithm: {sig.get('algo')!r}", plugin_id)
        if str(sig.get("bundle_sha256") or "") != digest:
            raise InstallError("Bundle contents do not match signature digest", plugin_id)

        if self._key is None:
            if self.require_signatures:
                raise InstallError("Cannot verify signature: no signing key configured", plugin_id)
            logger.warning(f"No signing key configured, accepting digest-only check for {bundle_root}")
            return digest

        expected = self._sign_digest(digest)
        if not hmac.compare_digest(expected, str(sig.get("signature_hex") or "")):
            raise InstallError("Bundle signature mismatch", plugin_id)
        return digest
