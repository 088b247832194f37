"""Pytest configuration and shared fixtures."""

from pathlib import Path
from typing import Callable, List, Optional

import pytest
from fakeredis import FakeStrictRedis
from rq import SimpleWorker

from preview_orchestrator.core.config import Settings
from preview_orchestrator.schemas.preview import PreviewStatus
from preview_orchestrator.services.generator import CodeGenerator
from preview_orchestrator.services.netlify import DeploymentTarget
from preview_orchestrator.services.previews import PreviewService
from preview_orchestrator.services.store import PreviewStore
from preview_orchestrator.workers.base import Backoff, GenerationError, RetryPolicy
from preview_orchestrator.workers.pipeline import Pipeline
from preview_orchestrator.workers.queue import JobQueue
from preview_orchestrator.workers.tasks import install_pipeline


class RecordingStore(PreviewStore):
    """PreviewStore that remembers every accepted status write."""

    def __init__(self, session_factory):
        super().__init__(session_factory)
        self.history: List[tuple] = []

    def transition(self, preview_id: str, status: PreviewStatus, **values) -> bool:
        changed = super().transition(preview_id, status, **values)
        if changed:
            self.history.append((preview_id, status))
        return changed

    def statuses(self, preview_id: str) -> List[PreviewStatus]:
        return [status for pid, status in self.history if pid == preview_id]


class FakeGenerator(CodeGenerator):
    """Creates an empty artifact directory; can fail the first N calls or every call."""

    def __init__(self, root: Path, failures: int = 0, always_fail: bool = False):
        self.root = root
        self.failures = failures
        self.always_fail = always_fail
        self.calls = 0
        self.artifacts: List[Path] = []

    async def generate(self, prompt: str) -> Path:
        self.calls += 1
        if self.always_fail or self.calls <= self.failures:
            raise GenerationError("template copy failed")
        path = self.root / f"artifact_{self.calls}"
        path.mkdir(parents=True)
        (path / "index.html").write_text(prompt, encoding="utf-8")
        self.artifacts.append(path)
        return path


class FakeDeployer(DeploymentTarget):
    """Returns a fixed URL, raises a fixed error, and can run a hook mid-deploy."""

    def __init__(self, url: str = "https://preview.netlify.app", error: Optional[Exception] = None):
        self.url = url
        self.error = error
        self.calls: List[tuple] = []
        self.during_deploy: Optional[Callable[[], None]] = None

    async def deploy(self, artifact: Path, name: str) -> str:
        self.calls.append((artifact, name))
        if self.during_deploy is not None:
            self.during_deploy()
        if self.error is not None:
            raise self.error
        return self.url


def make_large_template(root: Path) -> Path:
    """A template big enough that copying it outlasts a millisecond deadline."""
    template = root / "large-template"
    for i in range(30):
        folder = template / f"part_{i}"
        folder.mkdir(parents=True)
        for j in range(100):
            (folder / f"file_{j}.txt").write_text("x" * 64, encoding="utf-8")
    return template


@pytest.fixture
def settings(tmp_path):
    return Settings(
        DATABASE_URL=f"sqlite:///{tmp_path / 'previews.db'}",
        REDIS_URL="redis://localhost:6379/0",
        QUEUE_NAME="test-previews",
        JOB_BACKOFF_DELAY=0,
        GENERATION_RETRY_DELAY=0,
        PREVIEW_OUTPUT_DIR=str(tmp_path / "out"),
    )


@pytest.fixture
def store(settings):
    from preview_orchestrator.core.database import create_db_engine, create_session_factory

    s = RecordingStore(create_session_factory(create_db_engine(settings.DATABASE_URL)))
    s.init_db()
    return s


@pytest.fixture
def redis_conn():
    return FakeStrictRedis()


@pytest.fixture
def job_queue(settings, redis_conn):
    return JobQueue.from_settings(settings, connection=redis_conn)


@pytest.fixture
def generator(tmp_path):
    return FakeGenerator(tmp_path / "artifacts")


@pytest.fixture
def deployer():
    return FakeDeployer()


@pytest.fixture
def generation_policy():
    return RetryPolicy(name="generation", max_attempts=3, base_delay=0, backoff=Backoff.LINEAR)


@pytest.fixture
def pipeline(store, generator, deployer, generation_policy):
    return Pipeline(store, generator, deployer, generation_policy=generation_policy, timeout=5)


@pytest.fixture
def service(store, job_queue):
    return PreviewService(store, job_queue)


@pytest.fixture
def drain(job_queue, pipeline):
    """Run queued entries in-process until the queue is empty (or max_jobs ran)."""
    install_pipeline(pipeline)

    def _drain(max_jobs: Optional[int] = None) -> None:
        worker = SimpleWorker([job_queue.queue], connection=job_queue.connection)
        worker.work(burst=True, max_jobs=max_jobs)

    yield _drain
    install_pipeline(None)
