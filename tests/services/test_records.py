import json

import pytest

from bluegreen.errors import PreflightError
from bluegreen.models import DeploymentRecord, Outcome, Stage
from bluegreen.services.records import DeploymentRecordService


class DummyLogger:
    def warning(self, *_args, **_kwargs):
        return None


def test_records_append_without_modifying_earlier_entries(tmp_path):
    history_file = tmp_path / "app-container" / "deployments.json"

    first_service = DeploymentRecordService(str(history_file), DummyLogger())
    first = DeploymentRecord(release_id="1", service="app-container", image="app:v1")
    first_service.begin(first)
    first.outcome = Outcome.SUCCESS
    first.add_transition(Stage.DONE)
    first_service.save(first)

    second_service = DeploymentRecordService(str(history_file), DummyLogger())
    second = DeploymentRecord(release_id="2", service="app-container", image="app:v2")
    second_service.begin(second)
    second.outcome = Outcome.FAILED
    second_service.save(second)

    history = json.loads(history_file.read_text(encoding="utf-8"))
    assert [entry["release_id"] for entry in history] == ["1", "2"]
    assert history[0]["outcome"] == "success"
    assert history[0]["transitions"][0]["stage"] == "done"
    assert history[1]["outcome"] == "failed"
    assert second_service.last_successful()["release_id"] == "1"
    assert not [path for path in history_file.parent.iterdir() if path.name.startswith("deployments-")]


def test_corrupt_history_is_preflight_error(tmp_path):
    history_file = tmp_path / "deployments.json"
    history_file.write_text("{not json", encoding="utf-8")

    with pytest.raises(PreflightError, match="Could not read deployment history"):
        DeploymentRecordService(str(history_file), DummyLogger()).load()


def test_record_stage_follows_last_transition():
    record = DeploymentRecord(release_id="1", service="app-container", image="app:v1")

    assert record.stage == Stage.IDLE
    record.add_transition(Stage.PULLING)
    assert record.stage == Stage.PULLING
