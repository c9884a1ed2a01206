"""Tests for the ephemeral store."""

import asyncio
import os
import time

import pytest

from ipa_signer.enums import StoreCategory

SUFFIX = "1700000000000_abc123"
OTHER = "1700000000001_zzz999"


class TestAllocate:
    def test_paths_follow_naming_scheme(self, store):
        assert store.allocate(StoreCategory.TEMP, SUFFIX).name == f"input_{SUFFIX}.ipa"
        assert store.allocate(StoreCategory.CERTIFICATE, SUFFIX).name == f"cert_{SUFFIX}.p12"
        assert (
            store.allocate(StoreCategory.PROFILE, SUFFIX).name
            == f"app_{SUFFIX}.mobileprovision"
        )
        assert store.allocate(StoreCategory.SIGNED, SUFFIX).name == f"signed_{SUFFIX}.ipa"

    def test_paths_live_in_category_dirs(self, store, config):
        path = store.allocate(StoreCategory.SIGNED, SUFFIX)
        assert path.parent == config.work_root / "signed"

    def test_manifest_name_is_sanitized(self, store):
        path = store.allocate(StoreCategory.MANIFEST, SUFFIX, name="../My App")
        assert path.name == f"MyApp_{SUFFIX}.plist"
        assert path.parent.name == "plist"

    def test_allocate_creates_nothing(self, store):
        assert not store.allocate(StoreCategory.TEMP, SUFFIX).exists()

    def test_record_path(self, store, config):
        assert store.record_path(SUFFIX) == config.work_root / "temp" / f"{SUFFIX}.json"


def test_ensure_directories_creates_all_categories(store, config):
    for name in ("p12", "mp", "temp", "signed", "plist"):
        assert (config.work_root / name).is_dir()


class TestStaging:
    def test_removes_files_on_success(self, store):
        path = store.allocate(StoreCategory.TEMP, SUFFIX)
        with store.staging() as staged:
            staged.add(path).write_bytes(b"x")
        assert not path.exists()

    def test_removes_files_on_error(self, store):
        path = store.allocate(StoreCategory.CERTIFICATE, SUFFIX)
        with pytest.raises(RuntimeError):
            with store.staging() as staged:
                staged.add(path).write_bytes(b"x")
                raise RuntimeError("boom")
        assert not path.exists()

    def test_registered_but_never_written_is_fine(self, store):
        with store.staging() as staged:
            staged.add(store.allocate(StoreCategory.PROFILE, SUFFIX))

    def test_add_is_deduplicated(self, store):
        path = store.allocate(StoreCategory.TEMP, SUFFIX)
        with store.staging() as staged:
            staged.add(path)
            staged.add(path)
            assert staged.paths == [path]


class TestCleanupNow:
    def test_counts_removed_files(self, store):
        a = store.allocate(StoreCategory.SIGNED, SUFFIX)
        b = store.allocate(StoreCategory.TEMP, SUFFIX)
        a.write_bytes(b"a")
        assert store.cleanup_now([a, b, None]) == 1
        assert not a.exists()

    def test_is_idempotent(self, store):
        a = store.allocate(StoreCategory.SIGNED, SUFFIX)
        a.write_bytes(b"a")
        assert store.cleanup_now([a]) == 1
        assert store.cleanup_now([a]) == 0


class TestScheduleExpiry:
    async def test_deletes_after_ttl(self, store):
        path = store.allocate(StoreCategory.SIGNED, SUFFIX)
        path.write_bytes(b"x")

        store.schedule_expiry([path], 0.05)
        assert store.pending_expiries == 1
        await asyncio.sleep(0.2)

        assert not path.exists()
        assert store.pending_expiries == 0

    async def test_missing_files_do_not_fail(self, store):
        path = store.allocate(StoreCategory.SIGNED, SUFFIX)
        store.schedule_expiry([path], 0)
        await asyncio.sleep(0.05)
        assert store.pending_expiries == 0

    async def test_cancel_pending(self, store):
        path = store.allocate(StoreCategory.SIGNED, SUFFIX)
        path.write_bytes(b"x")

        store.schedule_expiry([path], 0.05)
        assert store.cancel_pending() == 1
        await asyncio.sleep(0.15)

        assert path.exists()
        assert store.pending_expiries == 0


class TestRemoveStaleFiles:
    def _age(self, path, seconds):
        old = time.time() - seconds
        os.utime(path, (old, old))

    def test_removes_old_orphans_only(self, store):
        old = store.allocate(StoreCategory.SIGNED, SUFFIX)
        fresh = store.allocate(StoreCategory.SIGNED, OTHER)
        old.write_bytes(b"x")
        fresh.write_bytes(b"x")
        self._age(old, 7200)

        assert store.remove_stale_files(3600) == 1
        assert not old.exists()
        assert fresh.exists()

    def test_keeps_live_suffixes(self, store):
        old = store.allocate(StoreCategory.SIGNED, SUFFIX)
        old.write_bytes(b"x")
        self._age(old, 7200)

        assert store.remove_stale_files(3600, keep_suffixes={SUFFIX}) == 0
        assert old.exists()

    def test_removes_old_files_without_suffix(self, store, config):
        stray = config.work_root / "temp" / "stray.bin"
        stray.write_bytes(b"x")
        self._age(stray, 7200)

        assert store.remove_stale_files(3600) == 1
