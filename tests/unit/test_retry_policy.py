from datetime import timedelta
from pathlib import Path

import pytest

from postflow.domain.retry_policy import DEFAULT_RETRY_POLICIES, RetryPolicy, load_retry_policies


@pytest.mark.unit
def test_default_policies_cover_every_job_type() -> None:
    assert DEFAULT_RETRY_POLICIES["publish"] == RetryPolicy(max_attempts=5, backoff="exponential", delay_ms=5000)
    assert DEFAULT_RETRY_POLICIES["delete_remote"] == RetryPolicy(max_attempts=5, backoff="exponential", delay_ms=5000)
    assert DEFAULT_RETRY_POLICIES["sync_comments"] == RetryPolicy(max_attempts=3, backoff="fixed", delay_ms=60000)


@pytest.mark.unit
def test_exponential_backoff_doubles_per_attempt() -> None:
    policy = RetryPolicy(max_attempts=5, backoff="exponential", delay_ms=5000)

    assert policy.delay_for(1) == timedelta(seconds=5)
    assert policy.delay_for(2) == timedelta(seconds=10)
    assert policy.delay_for(4) == timedelta(seconds=40)
    assert policy.delay_for(0) == timedelta(seconds=5)


@pytest.mark.unit
def test_fixed_backoff_ignores_attempt() -> None:
    policy = RetryPolicy(max_attempts=3, backoff="fixed", delay_ms=60000)
    assert policy.delay_for(1) == policy.delay_for(3) == timedelta(minutes=1)


@pytest.mark.unit
def test_yaml_overrides_merge_on_top_of_defaults(tmp_path: Path) -> None:
    path = tmp_path / "retry.yaml"
    path.write_text(
        "queues:\n"
        "  publish:\n"
        "    max_attempts: 2\n"
        "  sync_comments:\n"
        "    backoff: exponential\n"
        "    delay_ms: 100\n",
        encoding="utf-8",
    )

    policies = load_retry_policies(path)

    assert policies["publish"] == RetryPolicy(max_attempts=2, backoff="exponential", delay_ms=5000)
    assert policies["sync_comments"] == RetryPolicy(max_attempts=3, backoff="exponential", delay_ms=100)
    assert policies["delete_remote"] == DEFAULT_RETRY_POLICIES["delete_remote"]


@pytest.mark.unit
def test_empty_yaml_keeps_defaults(tmp_path: Path) -> None:
    path = tmp_path / "retry.yaml"
    path.write_text("", encoding="utf-8")
    assert load_retry_policies(path) == DEFAULT_RETRY_POLICIES


@pytest.mark.unit
def test_bundled_policy_file_matches_defaults() -> None:
    path = Path(__file__).resolve().parents[2] / "config" / "retry_policies.yaml"
    assert load_retry_policies(path) == DEFAULT_RETRY_POLICIES


@pytest.mark.unit
@pytest.mark.parametrize(
    ("body", "message"),
    [
        ("- publish\n", "must contain a mapping"),
        ("queues: [publish]\n", "must be a mapping of job type"),
        ("queues:\n  send_email: {max_attempts: 1}\n", "unsupported job type"),
        ("queues:\n  publish: 3\n", "must be a mapping"),
        ("queues:\n  publish: {max_attempts: 0}\n", "max_attempts"),
        ("queues:\n  publish: {delay_ms: -1}\n", "delay_ms"),
        ("queues:\n  publish: {backoff: linear}\n", "unsupported backoff"),
    ],
)
def test_invalid_policy_files_are_rejected(tmp_path: Path, body: str, message: str) -> None:
    path = tmp_path / "retry.yaml"
    path.write_text(body, encoding="utf-8")

    with pytest.raises(ValueError, match=message):
        load_retry_policies(path)
