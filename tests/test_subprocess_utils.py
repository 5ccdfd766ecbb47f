import subprocess

import pytest

from foundation_kit import subprocess_utils
from foundation_kit.subprocess_utils import (
    CommandError,
    StepExecutionFailure,
    execute,
    execute_create,
    run_command,
)


def _fake_run(returncode: int = 0, stdout: str = "", stderr: str = ""):
    def run(cmd, check=False, **kwargs):  # noqa: ANN001, ANN003
        if check and returncode != 0:
            raise subprocess.CalledProcessError(returncode, cmd, output=stdout, stderr=stderr)
        return subprocess.CompletedProcess(cmd, returncode, stdout=stdout, stderr=stderr)

    return run


def test_run_command_wraps_missing_binary(monkeypatch: pytest.MonkeyPatch) -> None:
    def missing(cmd, **kwargs):  # noqa: ANN001, ANN003
        raise FileNotFoundError(cmd[0])

    monkeypatch.setattr(subprocess_utils.subprocess, "run", missing)

    with pytest.raises(CommandError) as excinfo:
        run_command(["gcloud", "version"])

    assert excinfo.value.returncode is None
    assert "gcloud" in str(excinfo.value)


def test_run_command_wraps_timeout(monkeypatch: pytest.MonkeyPatch) -> None:
    def slow(cmd, timeout=None, **kwargs):  # noqa: ANN001, ANN003
        raise subprocess.TimeoutExpired(cmd, timeout)

    monkeypatch.setattr(subprocess_utils.subprocess, "run", slow)

    with pytest.raises(CommandError) as excinfo:
        run_command(["gcloud", "projects", "list"], timeout=3)

    assert excinfo.value.returncode is None
    assert "3" in str(excinfo.value)


def test_execute_returns_trimmed_stdout(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(subprocess_utils.subprocess, "run", _fake_run(stdout="  123456789012\n"))

    assert execute(["gcloud", "projects", "describe", "p"], "Get Project Number") == "123456789012"


def test_execute_failure_carries_label_command_and_cause(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(
        subprocess_utils.subprocess,
        "run",
        _fake_run(returncode=1, stderr="ERROR: PERMISSION_DENIED: caller lacks permission"),
    )

    with pytest.raises(StepExecutionFailure) as excinfo:
        execute(["gcloud", "services", "enable", "iam.googleapis.com"], "Enable API: iam.googleapis.com")

    err = excinfo.value
    assert err.label == "Enable API: iam.googleapis.com"
    assert err.command == "gcloud services enable iam.googleapis.com"
    assert "PERMISSION_DENIED" in err.cause
    assert isinstance(err.__cause__, CommandError)


def test_execute_required_output_must_not_be_empty(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(subprocess_utils.subprocess, "run", _fake_run(stdout="\n"))

    with pytest.raises(StepExecutionFailure) as excinfo:
        execute(["gcloud", "projects", "describe", "p"], "Get Project Number", require_output=True)

    assert excinfo.value.label == "Get Project Number"


def test_execute_stderr_on_success_is_only_logged(monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture) -> None:
    monkeypatch.setattr(subprocess_utils.subprocess, "run", _fake_run(stdout="ok", stderr="Updated property [core/project]."))

    with caplog.at_level("WARNING"):
        assert execute(["gcloud", "config", "set", "project", "p"], "Set Project") == "ok"

    assert "Updated property" in caplog.text


def test_execute_create_tolerates_already_exists_only_when_asked(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(
        subprocess_utils.subprocess,
        "run",
        _fake_run(returncode=1, stderr="ERROR: (gcloud) ALREADY_EXISTS: Requested entity already exists"),
    )
    cmd = ["gcloud", "iam", "service-accounts", "create", "my-app-sa"]

    assert execute_create(cmd, "Create Service Account", tolerate_existing=True) is False
    with pytest.raises(StepExecutionFailure):
        execute_create(cmd, "Create Service Account")


def test_execute_create_does_not_hide_other_errors(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(subprocess_utils.subprocess, "run", _fake_run(returncode=1, stderr="ERROR: PERMISSION_DENIED"))

    with pytest.raises(StepExecutionFailure):
        execute_create(["gcloud", "storage", "buckets", "create", "gs://b"], "Create GCS Bucket", tolerate_existing=True)


def test_input_text_is_passed_on_stdin(monkeypatch: pytest.MonkeyPatch) -> None:
    seen = {}

    def run(cmd, input=None, **kwargs):  # noqa: A002, ANN001, ANN003
        seen["input"] = input
        return subprocess.CompletedProcess(cmd, 0, stdout="", stderr="")

    monkeypatch.setattr(subprocess_utils.subprocess, "run", run)

    execute(["gh", "secret", "set", "X", "--repo", "o/r"], "Set Secret: X", input_text="s3cret")

    assert seen["input"] == "s3cret"


def test_already_exists_ignores_digits_in_resource_names(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(
        subprocess_utils.subprocess,
        "run",
        _fake_run(returncode=1, stderr="ERROR: PERMISSION_DENIED on projects/my-app-fdn-1740900000"),
    )

    with pytest.raises(StepExecutionFailure):
        execute_create(["gcloud", "iam", "service-accounts", "create", "my-app-sa"], "Create Service Account", tolerate_existing=True)


def test_already_exists_accepts_http_409(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(
        subprocess_utils.subprocess,
        "run",
        _fake_run(returncode=1, stderr="ERROR: (gcloud.storage.buckets.create) HTTPError 409: you already own it."),
    )

    assert execute_create(["gcloud", "storage", "buckets", "create", "gs://b"], "Create GCS Bucket", tolerate_existing=True) is False
