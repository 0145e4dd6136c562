# @TASK P3-T3.3 - Training launch / polling tests
# @TEST tests/test_training_service.py

import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from aitelier.constants import TrainingStatus
from aitelier.errors import Conflict, NotFound, PreconditionFailed
from aitelier.models import Project, TrainingRun
from aitelier.providers import ProviderError
from aitelier.providers.schemas import JobStatus
from aitelier.services import training_service


def _project():
    return SimpleNamespace(
        id=1,
        provider="together",
        base_model="meta-llama/base",
        system_prompt=None,
        provider_config={"api_key": "k"},
        training_config={"epochs": 5},
    )


def _example(id_, split, rewrite=None):
    return SimpleNamespace(id=id_, input=f"in {id_}", output=f"out {id_}", rewrite=rewrite, split=split)


def _scalars_result(rows):
    result = MagicMock()
    result.scalars.return_value.all.return_value = rows
    return result


def _provider():
    provider = AsyncMock()
    provider.upload_file = AsyncMock(side_effect=["file-train", "file-val"])
    provider.create_fine_tune_job = AsyncMock(return_value="ft-job-1")
    return provider


def _get_by_model(project=None, run=None):
    """Helper: ``db.get`` side effect dispatching on the mapped class."""

    def _get(model, _id):
        return {Project: project, TrainingRun: run}[model]

    return _get


class TestLaunchTraining:
    @pytest.mark.asyncio
    async def test_requires_train_examples(self, mock_db):
        mock_db.get = AsyncMock(return_value=_project())
        mock_db.execute = AsyncMock(return_value=_scalars_result([_example(1, "val")]))

        with pytest.raises(PreconditionFailed):
            await training_service.launch_training(mock_db, 1, provider=_provider())

        mock_db.add.assert_not_called()

    @pytest.mark.asyncio
    async def test_uploads_splits_and_queues_run(self, mock_db):
        provider = _provider()
        mock_db.get = AsyncMock(return_value=_project())
        mock_db.execute = AsyncMock(
            return_value=_scalars_result([_example(1, "train", rewrite="better"), _example(2, "val")])
        )

        run = await training_service.launch_training(mock_db, 1, created_by="u1", provider=provider)

        assert run.status == TrainingStatus.QUEUED
        assert run.provider_job_id == "ft-job-1"
        assert (run.train_count, run.val_count, run.example_count) == (1, 1, 2)
        assert run.config["epochs"] == 5
        assert run.config["lora_r"] == 16
        assert run.started_at is not None

        train_content = provider.upload_file.await_args_list[0].args[0]
        assert json.loads(train_content)["messages"][-1] == {"role": "assistant", "content": "better"}

        config = provider.create_fine_tune_job.await_args.args[0]
        assert config.training_file == "file-train"
        assert config.validation_file == "file-val"
        assert config.epochs == 5

    @pytest.mark.asyncio
    async def test_provider_failure_marks_run_failed(self, mock_db):
        provider = _provider()
        provider.create_fine_tune_job = AsyncMock(side_effect=ProviderError("together", "bad model", 400))
        mock_db.get = AsyncMock(return_value=_project())
        mock_db.execute = AsyncMock(return_value=_scalars_result([_example(1, "train")]))

        with pytest.raises(ProviderError):
            await training_service.launch_training(mock_db, 1, provider=provider)

        run = mock_db.add.call_args.args[0]
        assert run.status == TrainingStatus.FAILED
        assert run.error == "bad model"
        assert provider.upload_file.await_count == 1


class TestRefreshStatus:
    @pytest.mark.asyncio
    async def test_unknown_run(self, mock_db):
        mock_db.get = AsyncMock(return_value=None)

        with pytest.raises(NotFound):
            await training_service.refresh_training_status(mock_db, 9, provider=_provider())

    @pytest.mark.asyncio
    async def test_terminal_run_is_not_polled(self, mock_db):
        provider = _provider()
        run = SimpleNamespace(id=3, project_id=1, status="completed", provider_job_id="ft-job-1")
        mock_db.get = AsyncMock(return_value=run)

        assert await training_service.refresh_training_status(mock_db, 3, provider=provider) is run
        provider.get_job_status.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_completion_records_model_id(self, mock_db):
        provider = _provider()
        provider.get_job_status = AsyncMock(
            return_value=JobStatus(
                id="ft-job-1", status=TrainingStatus.COMPLETED, raw_status="completed", model_id="acct/ft-1"
            )
        )
        run = SimpleNamespace(
            id=3, project_id=1, status="training", provider_job_id="ft-job-1", model_id=None, completed_at=None
        )
        mock_db.get = AsyncMock(side_effect=_get_by_model(project=_project(), run=run))

        await training_service.refresh_training_status(mock_db, 3, provider=provider)

        assert run.status == TrainingStatus.COMPLETED
        assert run.model_id == "acct/ft-1"
        assert run.completed_at is not None

    @pytest.mark.asyncio
    async def test_failure_records_error(self, mock_db):
        provider = _provider()
        provider.get_job_status = AsyncMock(
            return_value=JobStatus(id="j", status=TrainingStatus.FAILED, raw_status="error", error="OOM")
        )
        run = SimpleNamespace(id=3, project_id=1, status="queued", provider_job_id="j", error=None, completed_at=None)
        mock_db.get = AsyncMock(side_effect=_get_by_model(project=_project(), run=run))

        await training_service.refresh_training_status(mock_db, 3, provider=provider)

        assert run.status == TrainingStatus.FAILED
        assert run.error == "OOM"


class TestProviderChecks:
    @pytest.mark.asyncio
    async def test_list_base_models(self, mock_db):
        provider = _provider()
        provider.list_models = AsyncMock(return_value=["m1"])
        mock_db.get = AsyncMock(return_value=_project())

        assert await training_service.list_base_models(mock_db, 1, provider=provider) == ["m1"]

    @pytest.mark.asyncio
    async def test_missing_key_is_invalid(self, mock_db, monkeypatch):
        from aitelier.config import get_settings

        monkeypatch.setattr(get_settings(), "TOGETHER_API_KEY", "")
        project = _project()
        project.provider_config = {}
        mock_db.get = AsyncMock(return_value=project)

        assert await training_service.check_provider_key(mock_db, 1) is False


class TestCancel:
    @pytest.mark.asyncio
    async def test_terminal_run_conflicts(self, mock_db):
        mock_db.get = AsyncMock(return_value=SimpleNamespace(id=3, status="failed"))

        with pytest.raises(Conflict):
            await training_service.cancel_training(mock_db, 3, provider=_provider())

    @pytest.mark.asyncio
    async def test_cancels_at_provider(self, mock_db):
        provider = _provider()
        run = SimpleNamespace(id=3, project_id=1, status="training", provider_job_id="j", completed_at=None)
        mock_db.get = AsyncMock(side_effect=_get_by_model(project=_project(), run=run))

        await training_service.cancel_training(mock_db, 3, provider=provider)

        provider.cancel_job.assert_awaited_once_with("j")
        assert run.status == TrainingStatus.CANCELLED
