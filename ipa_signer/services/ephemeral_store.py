"""Ephemeral store: suffix-keyed working paths and their deletion.

All files a request touches live in five category directories under the
configured work dir. Every file name embeds the request suffix, so
concurrent requests never contend for a path and no locking is needed.

Two disjoint deletion paths exist:
- staging files (package, certificate, profile) are removed synchronously
  when the request ends, via :meth:`EphemeralStore.staging`;
- published files (signed package, manifest, install record) are removed
  after the retention window via :meth:`EphemeralStore.schedule_expiry`,
  backed by the periodic sweep in ``ipa_signer.scheduler``.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from pathlib import Path

from ipa_signer.config import SignerConfig
from ipa_signer.enums import StoreCategory
from ipa_signer.services.resource_namer import extract_suffix, sanitize_filename

logger = logging.getLogger(__name__)


_FILENAME_TEMPLATES: dict[StoreCategory, str] = {
    StoreCategory.CERTIFICATE: "cert_{suffix}.p12",
    StoreCategory.PROFILE: "app_{suffix}.mobileprovision",
    StoreCategory.TEMP: "input_{suffix}.ipa",
    StoreCategory.SIGNED: "signed_{suffix}.ipa",
    StoreCategory.MANIFEST: "{name}_{suffix}.plist",
}


class StagedFiles:
    """Single-use input files of one request.

    Paths registered here are deleted exactly once, when the enclosing
    :meth:`EphemeralStore.staging` block exits.
    """

    def __init__(self) -> None:
        self._paths: list[Path] = []

    def add(self, path: Path) -> Path:
        if path not in self._paths:
            self._paths.append(path)
        return path

    @property
    def paths(self) -> list[Path]:
        return list(self._paths)


class EphemeralStore:
    """Owns the category directories and the deletion of their files."""

    def __init__(self, config: SignerConfig) -> None:
        """Initialize the store.

        Args:
            config: Service configuration (work dir, retention window).
        """
        self.config = config
        self.root = config.work_root
        self._pending: set[asyncio.TimerHandle] = set()

    def ensure_directories(self) -> None:
        """Create all category directories (idempotent, run at startup)."""
        for category in StoreCategory:
            self.category_dir(category).mkdir(parents=True, exist_ok=True)
        logger.info("Ephemeral store ready at %s", self.root)

    def category_dir(self, category: StoreCategory) -> Path:
        return self.root / category.value

    def allocate(
        self,
        category: StoreCategory,
        suffix: str,
        *,
        name: str | None = None,
    ) -> Path:
        """Compose the path for ``suffix`` in ``category``.

        Pure path composition, nothing is created on disk. ``name`` is the
        untrusted display name used for manifest files; it is sanitized here.
        """
        template = _FILENAME_TEMPLATES[category]
        filename = template.format(suffix=suffix, name=sanitize_filename(name or ""))
        return self.category_dir(category) / filename

    def record_path(self, suffix: str) -> Path:
        """Path of the install metadata record for ``suffix``."""
        return self.category_dir(StoreCategory.TEMP) / f"{suffix}.json"

    @contextmanager
    def staging(self) -> Iterator[StagedFiles]:
        """Scope for single-use input files.

        Whatever happens inside the block (success, validation failure or
        exception), every registered path is removed on exit.
        """
        staged = StagedFiles()
        try:
            yield staged
        finally:
            self.cleanup_now(staged.paths)

    def cleanup_now(self, paths: Iterable[Path | None]) -> int:
        """Delete ``paths`` immediately.

        Missing files are not an error and failures are logged, never raised.

        Returns:
            Number of files actually removed.
        """
        removed = 0
        for path in paths:
            if path is None:
                continue
            try:
                if path.exists():
                    path.unlink()
                    removed += 1
            except FileNotFoundError:
                pass
            except OSError as e:
                logger.warning("Failed to delete %s: %s", path, e)
        return removed

    def schedule_expiry(self, paths: Iterable[Path], ttl: float) -> asyncio.TimerHandle:
        """Delete ``paths`` after ``ttl`` seconds.

        Must be called from a running event loop. Deletion is best-effort and
        idempotent; the periodic sweep covers timers lost to a restart.
        """
        targets = tuple(paths)
        loop = asyncio.get_running_loop()

        def _expire() -> None:
            self._pending.discard(handle)
            removed = self.cleanup_now(targets)
            logger.info(
                "Expired %d of %d published files: %s",
                removed,
                len(targets),
                ", ".join(p.name for p in targets),
            )

        handle = loop.call_later(max(0.0, ttl), _expire)
        self._pending.add(handle)
        return handle

    @property
    def pending_expiries(self) -> int:
        return len(self._pending)

    def cancel_pending(self) -> int:
        """Cancel all in-process expiry timers (shutdown)."""
        count = len(self._pending)
        for handle in self._pending:
            handle.cancel()
        self._pending.clear()
        return count

    def remove_stale_files(
        self,
        max_age_seconds: float,
        *,
        keep_suffixes: set[str] | frozenset[str] = frozenset(),
        now: float | None = None,
    ) -> int:
        """Delete files older than ``max_age_seconds`` across all categories.

        Files whose embedded suffix belongs to a live request are kept. This
        collects staging leftovers of crashed requests and outputs of failed
        signings, which no timer ever owned.
        """
        current = time.time() if now is None else now
        deleted = 0
        for category in StoreCategory:
            directory = self.category_dir(category)
            if not directory.is_dir():
                continue
            for file_path in directory.iterdir():
                if not file_path.is_file():
                    continue
                suffix = extract_suffix(file_path.name)
                if suffix is not None and suffix in keep_suffixes:
                    continue
                try:
                    age = current - file_path.stat().st_mtime
                except FileNotFoundError:
                    continue
                if age > max_age_seconds:
                    deleted += self.cleanup_now([file_path])
        return deleted
