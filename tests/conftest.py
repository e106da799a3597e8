import os
import sys
import tempfile
import textwrap
from pathlib import Path
from typing import AsyncGenerator, Callable

import pytest

# The service reads its settings at import time; point everything at a
# throwaway directory and a fake processor before importing the app.
_TEST_ROOT = Path(tempfile.mkdtemp(prefix="bgbatch-tests-"))

FAKE_PROCESSOR_SOURCE = """
import shutil
import sys
from pathlib import Path

input_dir, output_dir = Path(sys.argv[1]), Path(sys.argv[2])
count = 0
for item in sorted(input_dir.iterdir()):
    shutil.copyfile(item, output_dir / (item.stem + ".png"))
    count += 1
print(f"processed {count} file(s)")
"""

FAKE_PROCESSOR = _TEST_ROOT / "fake_remove_bg.py"
FAKE_PROCESSOR.write_text(FAKE_PROCESSOR_SOURCE)

os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TEST_ROOT / 'ledger.db'}"
os.environ["UPLOAD_ROOT"] = str(_TEST_ROOT / "uploads")
os.environ["OUTPUT_ROOT"] = str(_TEST_ROOT / "outputs")
os.environ["PROCESSOR_COMMAND"] = f'"{sys.executable}" "{FAKE_PROCESSOR}"'
os.environ["LOG_FORMAT_JSON"] = "false"
os.environ["JOB_TTL_HOURS"] = "0"

from httpx import AsyncClient, ASGITransport  # noqa: E402

from bgbatch.core.storage import JobWorkspace  # noqa: E402
from bgbatch.main import app  # noqa: E402


@pytest.fixture
async def client() -> AsyncGenerator[AsyncClient, None]:
    # Trigger lifespan events (startup/shutdown)
    async with app.router.lifespan_context(app):
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def workspace(tmp_path) -> JobWorkspace:
    return JobWorkspace(str(tmp_path / "uploads"), str(tmp_path / "outputs"))


@pytest.fixture
def write_script(tmp_path) -> Callable[[str, str], Path]:
    """Write a small Python script usable as an external processor."""
    def _write(name: str, source: str) -> Path:
        path = tmp_path / name
        path.write_text(textwrap.dedent(source))
        return path
    return _write
