"""
Mimic Runner

Entry points for running natural-language tests: run_mimic() for a single
test against a page, and helpers to split a test file into named tests.

Test file format:

    test: Login works
    navigate to /login
    type "standard_user" into the username field
    click Login

    test: Logout works
    ...

Lines starting with '#' are comments. A file without 'test:' headers is a
single test named after the file.
"""

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from .brain import LLMGateway, ModelBrain
from .config import MimicConfig
from .core.state_machine import MimicEngine, MimicRunResult, parse_steps
from .snapshot.store import SnapshotStore, snapshot_file_stem

# Configure logging
logger = logging.getLogger(__name__)


_TEST_HEADER = re.compile(r"^test\s*:\s*(.+)$", re.IGNORECASE)


@dataclass
class TestBlock:
    """One named test inside a test file"""
    __test__ = False

    name: str
    text: str

    @property
    def steps(self) -> List[str]:
        return parse_steps(self.text)


def split_tests(file_text: str, default_name: str = "test") -> List[TestBlock]:
    """
    Split a test file into named tests.

    Args:
        file_text: Contents of the test file
        default_name: Name used when the file has no 'test:' headers

    Returns:
        Tests in file order; tests without steps are dropped
    """
    blocks: List[TestBlock] = []
    name = default_name
    lines: List[str] = []

    def flush():
        text = "\n".join(lines).strip()
        if text:
            blocks.append(TestBlock(name=name, text=text))

    for raw_line in file_text.splitlines():
        line = raw_line.strip()
        if line.startswith("#"):
            continue
        header = _TEST_HEADER.match(line)
        if header:
            flush()
            name = header.group(1).strip()
            lines = []
            continue
        lines.append(line)
    flush()
    return blocks


def load_test_file(test_file_path) -> List[TestBlock]:
    path = Path(test_file_path)
    return split_tests(path.read_text(encoding="utf-8"), default_name=snapshot_file_stem(path))


def create_brain(config: MimicConfig) -> ModelBrain:
    return ModelBrain(LLMGateway(config.llm))


async def run_mimic(
    page,
    test_text: str,
    test_file_path=None,
    brain=None,
    config: Optional[MimicConfig] = None,
    test_name: Optional[str] = None,
    base_url: Optional[str] = None
) -> MimicRunResult:
    """
    Run one natural-language test against a Playwright page.

    Args:
        page: Playwright page (or PlaywrightDriver)
        test_text: Steps, one per line
        test_file_path: Test file the snapshot is stored next to; None disables the cache
        brain: Model brain (built from config when omitted)
        config: Run configuration (MimicConfig.from_env() when omitted)
        test_name: Name of the test inside its file
        base_url: Prefix for relative navigation URLs

    Returns:
        MimicRunResult
    """
    config = config or MimicConfig.from_env()
    brain = brain or create_brain(config)
    store = SnapshotStore(test_file_path, config.snapshot_dir_name) if test_file_path else None

    engine = MimicEngine(page, brain, store=store, config=config, base_url=base_url)
    result = await engine.run(test_text, test_name=test_name)

    logger.info(
        f"[MIMIC] Done {result.test_fingerprint}: {result.steps_executed} steps, "
        f"{'snapshot' if result.snapshot_used else 'regenerated'}, "
        f"{result.model_calls} model calls, {result.driver_actions} driver actions"
    )
    return result
