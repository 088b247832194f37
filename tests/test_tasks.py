"""Tests for the RQ task: attempt accounting and outer retries through a real worker."""

from types import SimpleNamespace

from preview_orchestrator.workers.base import ConfigurationError
from preview_orchestrator.workers.tasks import attempt_info


def test_attempt_info_without_job():
    assert attempt_info(None) == (1, True)


def test_attempt_info_counts_down_retries():
    assert attempt_info(SimpleNamespace(meta={"max_attempts": 3}, retries_left=2)) == (1, False)
    assert attempt_info(SimpleNamespace(meta={"max_attempts": 3}, retries_left=1)) == (2, False)
    assert attempt_info(SimpleNamespace(meta={"max_attempts": 3}, retries_left=0)) == (3, True)


def test_attempt_info_single_attempt():
    assert attempt_info(SimpleNamespace(meta={"max_attempts": 1}, retries_left=None)) == (1, True)


def test_always_failing_generation_exhausts_both_retry_layers(service, store, job_queue, generator, deployer, drain):
    """Three queue attempts, each retrying generation three times, then failed."""
    generator.always_fail = True
    job_id = service.submit("A todo app", "user-1").job_id

    drain()

    assert generator.calls == 9
    assert deployer.calls == []
    record = store.get(job_id)
    assert record.status == "failed"
    assert record.error == "template copy failed"
    assert record.attempts == 3
    assert record.live_url is None
    # Failures are retained for inspection
    assert job_queue.counts()["failed"] == 1


def test_transient_failure_recovers_on_second_attempt(service, store, generator, drain):
    # First queue attempt burns its three generation tries, the second succeeds
    generator.failures = 3
    job_id = service.submit("A todo app", "user-1").job_id

    drain()

    record = store.get(job_id)
    assert record.status == "live"
    assert record.attempts == 2
    assert record.last_error == "template copy failed"
    assert record.error is None
    assert store.statuses(job_id) == ["generating", "generating", "deploying", "live"]


def test_empty_deploy_url_fails_after_all_attempts(service, store, deployer, drain):
    deployer.url = ""
    job_id = service.submit("A todo app", "user-1").job_id

    drain()

    assert len(deployer.calls) == 3
    record = store.get(job_id)
    assert record.status == "failed"
    assert "deployment URL" in record.error


def test_missing_credential_is_not_retried(service, store, deployer, generator, drain):
    deployer.error = ConfigurationError("NETLIFY_TOKEN environment variable is not set")
    job_id = service.submit("A todo app", "user-1").job_id

    drain()

    assert len(deployer.calls) == 1
    assert generator.calls == 1
    record = store.get(job_id)
    assert record.status == "failed"
    assert record.error == "NETLIFY_TOKEN environment variable is not set"


def test_cancel_while_running_discards_result(service, store, job_queue, deployer, drain):
    job_id = service.submit("A todo app", "user-1").job_id
    outcomes = []
    deployer.during_deploy = lambda: outcomes.append(service.cancel(job_id))

    drain()

    assert outcomes[0].cancelled
    assert outcomes[0].queue_result.value == "running"
    record = store.get(job_id)
    assert record.status == "failed"
    assert record.error == "Cancelled by user"
    assert record.live_url is None
