import pytest

from bluegreen.errors import CredentialNotFound, PreflightError
from bluegreen.services.secrets import SecretsService


def test_environment_takes_precedence_over_file(tmp_path):
    secrets_file = tmp_path / ".secrets.env"
    secrets_file.write_text("DOCKER_TOKEN=from-file\nDOCKER_USERNAME=file-user\n", encoding="utf-8")

    secrets = SecretsService(secrets_file=str(secrets_file), environ={"DOCKER_TOKEN": "from-env"})

    assert secrets.get_credential("DOCKER_TOKEN") == "from-env"
    assert secrets.get_credential("DOCKER_USERNAME") == "file-user"


def test_missing_credential_raises():
    with pytest.raises(CredentialNotFound) as exc_info:
        SecretsService(environ={}).get_credential("DOCKER_TOKEN")

    assert exc_info.value.name == "DOCKER_TOKEN"


def test_find_credential_returns_none_when_absent():
    assert SecretsService(environ={}).find_credential("SLACK_WEBHOOK_URL") is None


def test_missing_secrets_file_is_preflight_error(tmp_path):
    secrets = SecretsService(secrets_file=str(tmp_path / "missing.env"), environ={})

    with pytest.raises(PreflightError, match="Secrets file not found"):
        secrets.get_credential("DOCKER_TOKEN")
