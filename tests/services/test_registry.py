import pytest

import bluegreen.services.registry as registry_module
from bluegreen.errors import PreflightError, PullError, RuntimeClientError
from bluegreen.services.registry import RegistryAuthenticator
from bluegreen.services.secrets import SecretsService


class DummyLogger:
    def info(self, *_args, **_kwargs):
        return None

    def warning(self, *_args, **_kwargs):
        return None


class DummyConsole:
    def print(self, *_args, **_kwargs):
        return None


class StubRuntime:
    def __init__(self, pull_failures=0, login_error=False):
        self.pull_failures = pull_failures
        self.login_error = login_error
        self.pulls = 0
        self.logins = []

    def login(self, registry, username, password):
        self.logins.append((registry, username, password))
        if self.login_error:
            raise RuntimeClientError("unauthorized")

    def pull(self, _image):
        self.pulls += 1
        if self.pulls <= self.pull_failures:
            raise RuntimeClientError("timeout")


def _authenticator(runtime, environ):
    return RegistryAuthenticator(
        runtime=runtime,
        secrets=SecretsService(environ=environ),
        logger=DummyLogger(),
        console=DummyConsole(),
        registry="ghcr.io",
    )


def test_authenticate_uses_stored_credentials():
    runtime = StubRuntime()

    _authenticator(runtime, {"DOCKER_USERNAME": "deployer", "DOCKER_TOKEN": "s3cret"}).authenticate()

    assert runtime.logins == [("ghcr.io", "deployer", "s3cret")]


def test_authenticate_reports_missing_credential():
    runtime = StubRuntime()

    with pytest.raises(PreflightError, match="DOCKER_TOKEN"):
        _authenticator(runtime, {"DOCKER_USERNAME": "deployer"}).authenticate()

    assert runtime.logins == []


def test_authenticate_reports_rejected_login():
    runtime = StubRuntime(login_error=True)

    with pytest.raises(PullError, match="rejected"):
        _authenticator(runtime, {"DOCKER_USERNAME": "deployer", "DOCKER_TOKEN": "bad"}).authenticate()


def test_pull_retries_with_backoff(monkeypatch):
    sleeps = []
    monkeypatch.setattr(registry_module.time, "sleep", lambda seconds: sleeps.append(seconds))
    runtime = StubRuntime(pull_failures=2)

    _authenticator(runtime, {}).pull("app:v2", attempts=3, backoff_seconds=5.0)

    assert runtime.pulls == 3
    assert sleeps == [5.0, 5.0]


def test_pull_raises_after_last_attempt(monkeypatch):
    monkeypatch.setattr(registry_module.time, "sleep", lambda *_args: None)
    runtime = StubRuntime(pull_failures=10)

    with pytest.raises(PullError, match="after 3 attempts"):
        _authenticator(runtime, {}).pull("app:v2", attempts=3, backoff_seconds=5.0)

    assert runtime.pulls == 3
