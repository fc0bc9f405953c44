"""
Snapshot Store

Persists executed steps per test so later runs can replay them without the
model. One JSON file per test file:

    <test dir>/__mimic__/<test name>.mimic.json
    {"version": 2, "tests": [Snapshot, ...]}

Snapshots inside the file are keyed by test fingerprint. Writes are
serialized per store; the last writer wins for a given snapshot.
"""

import asyncio
import json
import logging
import re
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from ..errors import SnapshotError
from .models import (
    SNAPSHOT_FILE_VERSION,
    FailureDetails,
    Snapshot,
    SnapshotFlags,
    StepExecutionResult,
    utc_now,
)

# Configure logging
logger = logging.getLogger(__name__)


LEGACY_SNAPSHOT_DIR = ".mimic-snapshots"

_TEST_SUFFIX = re.compile(r"\.(spec|test|mimic)$")


def snapshot_file_stem(test_file_path) -> str:
    """login.spec.txt -> login"""
    return _TEST_SUFFIX.sub("", Path(test_file_path).stem)


class SnapshotStore:
    """
    Snapshot cache for one test file.

    All public methods are coroutines; file I/O runs in a worker thread
    under a per-store lock.
    """

    def __init__(self, test_file_path, snapshot_dir_name: str = "__mimic__"):
        self.test_file_path = Path(test_file_path)
        self.snapshot_dir = self.test_file_path.parent / snapshot_dir_name
        self.file_path = self.snapshot_dir / f"{snapshot_file_stem(self.test_file_path)}.mimic.json"
        self._lock = threading.Lock()

    # ==================== File I/O ====================

    def _read_file(self) -> Dict[str, Any]:
        """Read the snapshot file; a missing or corrupt file reads as empty"""
        if not self.file_path.exists():
            return {"version": SNAPSHOT_FILE_VERSION, "tests": []}

        try:
            data = json.loads(self.file_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning(f"[SNAPSHOT] Failed to read {self.file_path}: {e}")
            return {"version": SNAPSHOT_FILE_VERSION, "tests": []}

        if not isinstance(data, dict) or not isinstance(data.get("tests"), list):
            logger.warning(f"[SNAPSHOT] Ignoring malformed snapshot file {self.file_path}")
            return {"version": SNAPSHOT_FILE_VERSION, "tests": []}
        return data

    def _write_file(self, data: Dict[str, Any]):
        try:
            self.snapshot_dir.mkdir(parents=True, exist_ok=True)
            self.file_path.write_text(json.dumps(data, indent=2), encoding="utf-8")
        except OSError as e:
            raise SnapshotError(f"Could not write {self.file_path}: {e}") from e

    @staticmethod
    def _raw_fingerprint(raw: Dict[str, Any]) -> Optional[str]:
        return raw.get("testFingerprint") or raw.get("testHash")

    def _find_raw(self, data: Dict[str, Any], fingerprint: str) -> Optional[Dict[str, Any]]:
        for raw in data["tests"]:
            if isinstance(raw, dict) and self._raw_fingerprint(raw) == fingerprint:
                return raw
        return None

    def _parse(self, raw: Dict[str, Any]) -> Optional[Snapshot]:
        try:
            return Snapshot.model_validate(raw)
        except ValidationError as e:
            logger.warning(f"[SNAPSHOT] Unreadable snapshot {self._raw_fingerprint(raw)}: {e}")
            return None

    def _read_legacy(self, fingerprint: str) -> Optional[Snapshot]:
        legacy_path = self.test_file_path.parent / LEGACY_SNAPSHOT_DIR / f"{fingerprint}.json"
        if not legacy_path.exists():
            return None
        try:
            return self._parse(json.loads(legacy_path.read_text(encoding="utf-8")))
        except (OSError, ValueError) as e:
            logger.warning(f"[SNAPSHOT] Failed to read legacy snapshot {legacy_path}: {e}")
            return None

    def _load(self, fingerprint: str) -> Optional[Snapshot]:
        if not self.file_path.exists():
            return self._read_legacy(fingerprint)
        raw = self._find_raw(self._read_file(), fingerprint)
        return self._parse(raw) if raw is not None else None

    def _store(self, snapshot: Snapshot):
        """
        Replace (or append) one snapshot in the file. Caller holds the lock.

        A named snapshot also replaces older snapshots of the same test name.
        """
        data = self._read_file()
        data["version"] = SNAPSHOT_FILE_VERSION
        serialized = snapshot.to_json()

        def superseded(raw) -> bool:
            if not isinstance(raw, dict):
                return False
            if self._raw_fingerprint(raw) == snapshot.test_fingerprint:
                return True
            return snapshot.test_name is not None and raw.get("testName") == snapshot.test_name

        tests = [raw for raw in data["tests"] if not superseded(raw)]
        tests.append(serialized)
        data["tests"] = tests
        self._write_file(data)

    # ==================== Queries ====================

    async def get_snapshot(self, fingerprint: str) -> Optional[Snapshot]:
        """Load a snapshot by test fingerprint (None if absent or unreadable)"""
        return await asyncio.to_thread(self._load, fingerprint)

    async def list_snapshots(self) -> List[Snapshot]:
        data = await asyncio.to_thread(self._read_file)
        snapshots = []
        for raw in data["tests"]:
            if isinstance(raw, dict):
                snapshot = self._parse(raw)
                if snapshot is not None:
                    snapshots.append(snapshot)
        return snapshots

    async def find_by_name(self, test_name: str) -> Optional[Snapshot]:
        """Most recent snapshot stored under a test name, whatever its text"""
        if not test_name:
            return None
        matches = [s for s in await self.list_snapshots() if s.test_name == test_name]
        return matches[-1] if matches else None

    async def should_use_snapshot(
        self,
        fingerprint: str,
        step_count: int,
        troubleshoot_mode: bool = False
    ) -> bool:
        """
        Decide whether the whole test can be replayed from cache.

        Troubleshoot mode does not change the answer: the cache is still
        tried first and regeneration only happens when replay fails.
        """
        snapshot = await self.get_snapshot(fingerprint)
        if snapshot is None:
            return False

        flags = snapshot.flags
        if flags.skip_snapshot or flags.force_regenerate:
            logger.info(f"[SNAPSHOT] {fingerprint}: snapshot disabled by flags")
            return False

        if snapshot.unique_step_count() < step_count:
            logger.info(
                f"[SNAPSHOT] {fingerprint}: snapshot has {snapshot.unique_step_count()} steps, "
                f"test has {step_count}"
            )
            return False

        if not flags.last_passed_at:
            return False

        if troubleshoot_mode:
            logger.info(f"[SNAPSHOT] {fingerprint}: troubleshoot mode, replaying cache first")
        return True

    # ==================== Updates ====================

    def _save_sync(
        self,
        fingerprint: str,
        test_text: str,
        executed_steps: List[StepExecutionResult],
        expected_step_count: int,
        troubleshoot_mode: bool,
        test_name: Optional[str] = None
    ) -> bool:
        unique_indices = {step.step_index for step in executed_steps}
        if len(unique_indices) < expected_step_count:
            logger.warning(
                f"[SNAPSHOT] Not saving {fingerprint}: executed {len(unique_indices)} of "
                f"{expected_step_count} steps"
            )
            return False

        with self._lock:
            existing = self._load(fingerprint)
            now = utc_now()

            if existing is None:
                flags = SnapshotFlags(created_at=now, last_passed_at=now)
                steps = {}
            else:
                flags = existing.flags.model_copy()
                if not flags.created_at:
                    flags.created_at = now
                # Only a recovery moves lastPassedAt forward
                if not flags.last_passed_at or flags.last_failed_at:
                    flags.last_passed_at = now
                steps = dict(existing.steps_by_fingerprint)

            flags.last_failed_at = None
            flags.needs_retry = False
            flags.has_errors = False
            flags.failure_details = None
            flags.troubleshooting_enabled = troubleshoot_mode

            for result in executed_steps:
                step = result.to_snapshot_step(executed_at=now)
                steps[step.step_fingerprint] = step

            snapshot = Snapshot(
                test_fingerprint=fingerprint,
                test_text=test_text,
                test_name=test_name or (existing.test_name if existing else None),
                steps_by_fingerprint=steps,
                flags=flags,
            )
            self._store(snapshot)

        logger.info(f"[SNAPSHOT] Saved {fingerprint} ({len(steps)} steps) to {self.file_path}")
        return True

    async def save_snapshot(
        self,
        fingerprint: str,
        test_text: str,
        executed_steps: List[StepExecutionResult],
        expected_step_count: int,
        troubleshoot_mode: bool = False,
        test_name: Optional[str] = None
    ) -> bool:
        """
        Merge executed steps into the stored snapshot.

        Args:
            fingerprint: Test fingerprint
            test_text: Full test text
            executed_steps: Steps executed in this run
            expected_step_count: Number of steps in the test
            troubleshoot_mode: Recorded in the flags
            test_name: Name of the test block, if it has one

        Returns:
            False if the run was partial and nothing was written
        """
        return await asyncio.to_thread(
            self._save_sync,
            fingerprint,
            test_text,
            executed_steps,
            expected_step_count,
            troubleshoot_mode,
            test_name,
        )

    def _record_failure_sync(
        self,
        fingerprint: str,
        reason: str,
        failed_step_index: Optional[int],
        failed_step_text: Optional[str],
        test_text: Optional[str]
    ):
        with self._lock:
            existing = self._load(fingerprint)
            now = utc_now()
            details = FailureDetails(
                failed_step_index=failed_step_index,
                failed_step_text=failed_step_text,
                error=reason,
            )

            if existing is None:
                snapshot = Snapshot(
                    test_fingerprint=fingerprint,
                    test_text=test_text or "",
                    flags=SnapshotFlags(
                        needs_retry=True,
                        has_errors=True,
                        created_at=now,
                        last_failed_at=now,
                        failure_details=details,
                    ),
                )
            else:
                snapshot = existing
                snapshot.flags.last_failed_at = now
                snapshot.flags.needs_retry = True
                snapshot.flags.has_errors = True
                snapshot.flags.failure_details = details
                if not snapshot.flags.created_at:
                    snapshot.flags.created_at = now

            self._store(snapshot)

        logger.info(f"[SNAPSHOT] Recorded failure for {fingerprint}: {reason}")

    async def record_failure(
        self,
        fingerprint: str,
        reason: str,
        failed_step_index: Optional[int] = None,
        failed_step_text: Optional[str] = None,
        test_text: Optional[str] = None
    ):
        """Stamp lastFailedAt and failure details, keeping the stored steps"""
        await asyncio.to_thread(
            self._record_failure_sync,
            fingerprint,
            reason,
            failed_step_index,
            failed_step_text,
            test_text,
        )
