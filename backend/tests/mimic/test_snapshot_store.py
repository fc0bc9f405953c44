"""
Unit tests for the snapshot store and models.

Tests saving and merging, failure bookkeeping, the replay decision and
reading files written by older versions.
"""

import json

import pytest

from mimic.errors import SnapshotError
from mimic.snapshot.models import (
    ClickRecord,
    FormRecord,
    NavigationRecord,
    Snapshot,
    StepExecutionResult,
    TargetReference,
    fingerprint_text,
)
from mimic.snapshot.store import LEGACY_SNAPSHOT_DIR, SnapshotStore, snapshot_file_stem
from mimic.selector.types import RoleSelector


TEST_TEXT = "open the login page\nclick Login"


def executed_steps():
    return [
        StepExecutionResult(
            step_index=0,
            step_text="open the login page",
            action_kind="navigation",
            action_record=NavigationRecord(type="openPage", url="https://shop.test/login"),
        ),
        StepExecutionResult(
            step_index=1,
            step_text="click Login",
            action_kind="click",
            action_record=ClickRecord(click_type="left"),
            target_reference=TargetReference.build(
                RoleSelector(role="button", name="Login", exact=True), marker_id=3
            ),
        ),
    ]


@pytest.fixture
def store(test_file):
    return SnapshotStore(test_file)


@pytest.fixture
def fingerprint():
    return fingerprint_text(TEST_TEXT)


class TestFingerprint:
    """Test text fingerprints."""

    def test_trimmed(self):
        assert fingerprint_text("  click Login \n") == fingerprint_text("click Login")

    def test_length(self):
        assert len(fingerprint_text("click Login")) == 16

    def test_file_stem(self):
        assert snapshot_file_stem("tests/login.spec.txt") == "login"
        assert snapshot_file_stem("checkout.mimic.txt") == "checkout"
        assert snapshot_file_stem("cart.txt") == "cart"

    def test_file_location(self, store, test_file):
        assert store.file_path == test_file.parent / "__mimic__" / "login.mimic.json"


class TestSaveSnapshot:
    """Test saving and merging."""

    @pytest.mark.asyncio
    async def test_save_and_load(self, store, fingerprint):
        saved = await store.save_snapshot(fingerprint, TEST_TEXT, executed_steps(), 2)

        snapshot = await store.get_snapshot(fingerprint)

        assert saved is True
        assert snapshot.test_text == TEST_TEXT
        assert set(snapshot.steps_by_fingerprint) == {
            fingerprint_text("open the login page"),
            fingerprint_text("click Login"),
        }
        assert snapshot.flags.created_at is not None
        assert snapshot.flags.last_passed_at is not None
        assert snapshot.get_step("click Login").target_reference.descriptor == \
            RoleSelector(role="button", name="Login", exact=True)

    @pytest.mark.asyncio
    async def test_file_format(self, store, fingerprint):
        """Test the on-disk layout uses camelCase and an ordered step list."""
        await store.save_snapshot(fingerprint, TEST_TEXT, executed_steps(), 2)

        data = json.loads(store.file_path.read_text(encoding="utf-8"))

        assert data["version"] == 2
        raw = data["tests"][0]
        assert raw["testFingerprint"] == fingerprint
        assert [s["stepIndex"] for s in raw["steps"]] == [0, 1]
        assert raw["steps"][1]["actionRecord"]["kind"] == "click"
        assert raw["steps"][1]["targetReference"]["markerId"] == 3

    @pytest.mark.asyncio
    async def test_partial_run_not_saved(self, store, fingerprint):
        saved = await store.save_snapshot(fingerprint, TEST_TEXT, executed_steps()[:1], 2)

        assert saved is False
        assert not store.file_path.exists()

    @pytest.mark.asyncio
    async def test_resave_is_idempotent(self, store, fingerprint):
        """Test saving the same run twice keeps one entry per step."""
        await store.save_snapshot(fingerprint, TEST_TEXT, executed_steps(), 2)
        first = await store.get_snapshot(fingerprint)

        await store.save_snapshot(fingerprint, TEST_TEXT, executed_steps(), 2)
        second = await store.get_snapshot(fingerprint)

        assert len(second.steps_by_fingerprint) == 2
        assert len(await store.list_snapshots()) == 1
        assert second.flags.created_at == first.flags.created_at
        # lastPassedAt only moves after a failure
        assert second.flags.last_passed_at == first.flags.last_passed_at

    @pytest.mark.asyncio
    async def test_merge_keeps_other_steps(self, store, fingerprint):
        """Test a later save overwrites matching steps and keeps the rest."""
        await store.save_snapshot(fingerprint, TEST_TEXT, executed_steps(), 2)
        fill = StepExecutionResult(
            step_index=1,
            step_text="click Login",
            action_kind="form update",
            action_record=FormRecord(type="keypress", value="Enter"),
        )

        await store.save_snapshot(fingerprint, TEST_TEXT, [executed_steps()[0], fill], 2)
        snapshot = await store.get_snapshot(fingerprint)

        assert snapshot.get_step("click Login").action_kind == "form update"
        assert snapshot.get_step("open the login page").action_record.url == "https://shop.test/login"

    @pytest.mark.asyncio
    async def test_several_tests_per_file(self, store):
        await store.save_snapshot(fingerprint_text(TEST_TEXT), TEST_TEXT, executed_steps(), 2)
        other_text = "open the login page"
        await store.save_snapshot(fingerprint_text(other_text), other_text, executed_steps()[:1], 1)

        assert len(await store.list_snapshots()) == 2

    @pytest.mark.asyncio
    async def test_write_failure(self, tmp_path, fingerprint):
        """Test SnapshotError when the snapshot directory cannot be created."""
        (tmp_path / "__mimic__").write_text("not a directory", encoding="utf-8")
        store = SnapshotStore(tmp_path / "login.txt")

        with pytest.raises(SnapshotError):
            await store.save_snapshot(fingerprint, TEST_TEXT, executed_steps(), 2)


class TestTestNames:
    """Test lookups by test name."""

    @pytest.mark.asyncio
    async def test_find_by_name(self, store, fingerprint):
        await store.save_snapshot(fingerprint, TEST_TEXT, executed_steps(), 2, test_name="login")

        snapshot = await store.find_by_name("login")

        assert snapshot.test_fingerprint == fingerprint
        assert await store.find_by_name("checkout") is None
        assert await store.find_by_name("") is None

    @pytest.mark.asyncio
    async def test_named_save_replaces_old_version(self, store, fingerprint):
        """Test an edited test replaces the snapshot of its previous text."""
        await store.save_snapshot(fingerprint, TEST_TEXT, executed_steps(), 2, test_name="login")
        edited = "open the login page"

        await store.save_snapshot(fingerprint_text(edited), edited, executed_steps()[:1], 1, test_name="login")

        snapshots = await store.list_snapshots()
        assert [s.test_text for s in snapshots] == [edited]

    @pytest.mark.asyncio
    async def test_name_kept_on_resave(self, store, fingerprint):
        await store.save_snapshot(fingerprint, TEST_TEXT, executed_steps(), 2, test_name="login")
        await store.save_snapshot(fingerprint, TEST_TEXT, executed_steps(), 2)

        assert (await store.get_snapshot(fingerprint)).test_name == "login"


class TestRecordFailure:
    """Test failure bookkeeping."""

    @pytest.mark.asyncio
    async def test_failure_keeps_steps(self, store, fingerprint):
        await store.save_snapshot(fingerprint, TEST_TEXT, executed_steps(), 2)

        await store.record_failure(fingerprint, "Replay failed", failed_step_index=1, failed_step_text="click Login")
        snapshot = await store.get_snapshot(fingerprint)

        assert len(snapshot.steps_by_fingerprint) == 2
        assert snapshot.flags.needs_retry is True
        assert snapshot.flags.has_errors is True
        assert snapshot.flags.last_failed_at is not None
        assert snapshot.flags.failure_details.failed_step_index == 1
        assert snapshot.flags.failure_details.error == "Replay failed"

    @pytest.mark.asyncio
    async def test_failure_without_snapshot(self, store, fingerprint):
        await store.record_failure(fingerprint, "boom", test_text=TEST_TEXT)
        snapshot = await store.get_snapshot(fingerprint)

        assert snapshot.steps_by_fingerprint == {}
        assert snapshot.flags.created_at is not None
        assert await store.should_use_snapshot(fingerprint, 2) is False

    @pytest.mark.asyncio
    async def test_save_after_failure_clears_flags(self, store, fingerprint):
        await store.save_snapshot(fingerprint, TEST_TEXT, executed_steps(), 2)
        await store.record_failure(fingerprint, "boom")

        await store.save_snapshot(fingerprint, TEST_TEXT, executed_steps(), 2)
        flags = (await store.get_snapshot(fingerprint)).flags

        assert flags.last_failed_at is None
        assert flags.needs_retry is False
        assert flags.has_errors is False
        assert flags.failure_details is None


class TestShouldUseSnapshot:
    """Test the whole-test replay decision."""

    @pytest.mark.asyncio
    async def test_missing(self, store, fingerprint):
        assert await store.should_use_snapshot(fingerprint, 2) is False

    @pytest.mark.asyncio
    async def test_complete_snapshot(self, store, fingerprint):
        await store.save_snapshot(fingerprint, TEST_TEXT, executed_steps(), 2)

        assert await store.should_use_snapshot(fingerprint, 2) is True

    @pytest.mark.asyncio
    async def test_troubleshoot_mode_still_uses_cache(self, store, fingerprint):
        await store.save_snapshot(fingerprint, TEST_TEXT, executed_steps(), 2)

        assert await store.should_use_snapshot(fingerprint, 2, troubleshoot_mode=True) is True

    @pytest.mark.asyncio
    async def test_too_few_steps(self, store, fingerprint):
        await store.save_snapshot(fingerprint, TEST_TEXT, executed_steps(), 2)

        assert await store.should_use_snapshot(fingerprint, 3) is False

    @pytest.mark.asyncio
    @pytest.mark.parametrize("flag", ["forceRegenerate", "skipSnapshot"])
    async def test_disabled_by_flag(self, store, fingerprint, flag):
        """Test hand-set flags in the file disable replay."""
        await store.save_snapshot(fingerprint, TEST_TEXT, executed_steps(), 2)
        data = json.loads(store.file_path.read_text(encoding="utf-8"))
        data["tests"][0]["flags"][flag] = True
        store.file_path.write_text(json.dumps(data), encoding="utf-8")

        assert await store.should_use_snapshot(fingerprint, 2) is False


class TestReadingFiles:
    """Test tolerant reads."""

    @pytest.mark.asyncio
    async def test_corrupt_file(self, store, fingerprint):
        store.snapshot_dir.mkdir()
        store.file_path.write_text("{not json", encoding="utf-8")

        assert await store.get_snapshot(fingerprint) is None
        assert await store.list_snapshots() == []

        assert await store.save_snapshot(fingerprint, TEST_TEXT, executed_steps(), 2) is True
        assert await store.get_snapshot(fingerprint) is not None

    @pytest.mark.asyncio
    async def test_legacy_keys(self, store, fingerprint):
        """Test files written with the older key names."""
        step_fp = fingerprint_text("click Login")
        store.snapshot_dir.mkdir()
        store.file_path.write_text(json.dumps({
            "version": 1,
            "tests": [{
                "testHash": fingerprint,
                "testText": TEST_TEXT,
                "stepsByHash": {
                    step_fp: {
                        "stepHash": step_fp,
                        "stepIndex": 1,
                        "stepText": "click Login",
                        "actionKind": "click",
                        "actionDetails": {"clickType": "double", "params": {"modifiers": ["none", "Shift"]}},
                        "targetElement": {
                            "selector": {"type": "role", "role": "button", "name": "Login"},
                            "mimicId": 3,
                        },
                    },
                },
                "flags": {"lastPassedAt": "2024-05-01T10:00:00+00:00"},
            }],
        }), encoding="utf-8")

        snapshot = await store.get_snapshot(fingerprint)
        step = snapshot.get_step("click Login")

        assert step.action_record.click_type == "double"
        assert step.action_record.modifiers == ["Shift"]
        assert step.target_reference.marker_id == 3
        assert step.target_reference.descriptor == RoleSelector(role="button", name="Login")

    @pytest.mark.asyncio
    async def test_legacy_directory(self, store, fingerprint, test_file):
        """Test the per-test files of the older layout are still read."""
        legacy_dir = test_file.parent / LEGACY_SNAPSHOT_DIR
        legacy_dir.mkdir()
        snapshot = Snapshot(
            test_fingerprint=fingerprint,
            test_text=TEST_TEXT,
            steps=[s.to_snapshot_step() for s in executed_steps()],
        )
        (legacy_dir / f"{fingerprint}.json").write_text(json.dumps(snapshot.to_json()), encoding="utf-8")

        loaded = await store.get_snapshot(fingerprint)

        assert loaded.unique_step_count() == 2

    def test_steps_list_synthesizes_map(self):
        snapshot = Snapshot.model_validate({
            "testFingerprint": "abc",
            "steps": [s.to_snapshot_step().model_dump(by_alias=True) for s in executed_steps()],
        })

        assert [s.step_index for s in snapshot.ordered_steps()] == [0, 1]
