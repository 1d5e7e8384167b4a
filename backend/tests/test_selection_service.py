"""
Tests for the best model selection service.
"""

import math
from types import SimpleNamespace

import pytest
from sqlalchemy.orm import Session

from agriflow.core.exceptions import EntityNotFoundError
from agriflow.models.dataset import DatasetStatus
from agriflow.models.instance import InstanceKind
from agriflow.models.selection import BestModelSelection, SelectionMetric, SelectionOutcome
from agriflow.services.instance_service import TaskSpec
from agriflow.services.selection_service import SelectionService, choose_best, metric_value

MAP50 = "metrics/mAP50(B)"


def fake_task(position: int, results: dict | None, status: str = "COMPLETED") -> SimpleNamespace:
    return SimpleNamespace(id=10 + position, queue_position=position, status=status, results=results)


class TestChooseBest:
    """Tests for the ranking helpers."""

    def test_highest_value_wins(self):
        tasks = [fake_task(0, {MAP50: 0.4}), fake_task(1, {MAP50: 0.8}), fake_task(2, {MAP50: 0.6})]

        task, score = choose_best(tasks, SelectionMetric.MAP50)

        assert task.queue_position == 1
        assert score == 0.8

    def test_tie_goes_to_lowest_position(self):
        tasks = [fake_task(2, {MAP50: 0.7}), fake_task(0, {MAP50: 0.7}), fake_task(1, {MAP50: 0.5})]

        task, _ = choose_best(tasks, SelectionMetric.MAP50)

        assert task.queue_position == 0

    def test_nan_and_missing_never_win(self):
        tasks = [
            fake_task(0, {MAP50: math.nan}),
            fake_task(1, {"metrics/recall(B)": 0.99}),
            fake_task(2, None),
            fake_task(3, {MAP50: "0.9"}),
            fake_task(4, {MAP50: 0.1}),
        ]

        task, score = choose_best(tasks, SelectionMetric.MAP50)

        assert task.queue_position == 4
        assert score == 0.1

    def test_failed_tasks_are_ignored(self):
        tasks = [fake_task(0, {MAP50: 0.9}, status="FAILED"), fake_task(1, {MAP50: 0.2})]

        task, _ = choose_best(tasks, SelectionMetric.MAP50)

        assert task.queue_position == 1

    def test_no_eligible_task(self):
        assert choose_best([fake_task(0, {MAP50: math.inf})], SelectionMetric.MAP50) is None
        assert choose_best([], SelectionMetric.MAP50) is None

    def test_metric_value_reads_registry_key(self):
        task = fake_task(0, {"metrics/mAP50-95(B)": 0.45, "metrics/precision(B)": True})

        assert metric_value(task, SelectionMetric.MAP50_95) == 0.45
        assert metric_value(task, SelectionMetric.PRECISION) is None


class TestSelectionService:
    """Tests for SelectionService."""

    @pytest.fixture
    def service(self, test_db_session: Session) -> SelectionService:
        return SelectionService(test_db_session)

    @pytest.fixture
    def tested_dataset(self, make_dataset, make_instance, finish_task):
        """Dataset with a completed training instance and a three-task testing instance."""
        dataset = make_dataset(DatasetStatus.VALIDATED)
        training = make_instance(dataset)
        for position, task_id in enumerate(training.task_ids):
            finish_task(task_id, {MAP50: 0.5}, f"runs/{position}/best.pt")

        testing = make_instance(
            dataset,
            kind=InstanceKind.TESTING,
            specs=[
                TaskSpec(
                    hyperparameters=task.hyperparameters,
                    source_task_id=task.id,
                    model_path=task.model_path,
                )
                for task in training.tasks
            ],
        )
        return SimpleNamespace(dataset=dataset, training=training, testing=testing)

    def test_select_best(self, service: SelectionService, tested_dataset, finish_task):
        testing = tested_dataset.testing
        finish_task(testing.task_ids[0], {MAP50: 0.61, "metrics/recall(B)": 0.9})
        finish_task(testing.task_ids[1], {MAP50: 0.74, "metrics/recall(B)": 0.5})
        finish_task(testing.task_ids[2], error="test crashed")

        outcome, selection = service.select_best(tested_dataset.dataset.id, SelectionMetric.MAP50)

        assert outcome == SelectionOutcome.SELECTED
        assert selection.test_task_id == testing.task_ids[1]
        assert selection.training_task_id == tested_dataset.training.task_ids[1]
        assert selection.testing_instance_id == testing.id
        assert selection.score == 0.74
        assert selection.model_path == "runs/1/best.pt"
        assert selection.hyperparameters == {"epochs": 20, "lr0": 0.01}

    def test_reselect_upserts_single_row(
        self,
        service: SelectionService,
        tested_dataset,
        finish_task,
        test_db_session: Session,
    ):
        testing = tested_dataset.testing
        finish_task(testing.task_ids[0], {MAP50: 0.61, "metrics/recall(B)": 0.9})
        finish_task(testing.task_ids[1], {MAP50: 0.74, "metrics/recall(B)": 0.5})
        finish_task(testing.task_ids[2], {MAP50: 0.2, "metrics/recall(B)": 0.1})

        service.select_best(tested_dataset.dataset.id, SelectionMetric.MAP50)
        _, selection = service.select_best(tested_dataset.dataset.id, SelectionMetric.RECALL)

        assert test_db_session.query(BestModelSelection).count() == 1
        assert selection.metric == "recall"
        assert selection.test_task_id == testing.task_ids[0]

    def test_no_testing_instance(self, service: SelectionService, make_dataset, test_db_session: Session):
        dataset = make_dataset(DatasetStatus.VALIDATED)

        outcome, selection = service.select_best(dataset.id)

        assert outcome == SelectionOutcome.NO_TESTING_INSTANCE
        assert selection is None
        assert test_db_session.query(BestModelSelection).count() == 0

    def test_tests_still_running(self, service: SelectionService, tested_dataset, finish_task, test_db_session):
        finish_task(tested_dataset.testing.task_ids[0], error="boom")

        outcome, selection = service.select_best(tested_dataset.dataset.id)

        assert outcome == SelectionOutcome.NO_COMPLETED_TASKS
        assert selection is None
        assert test_db_session.query(BestModelSelection).count() == 0

    def test_all_tests_failed(self, service: SelectionService, tested_dataset, finish_task, test_db_session):
        for task_id in tested_dataset.testing.task_ids:
            finish_task(task_id, error="boom")

        outcome, selection = service.select_best(tested_dataset.dataset.id)

        assert outcome == SelectionOutcome.ALL_TASKS_FAILED
        assert selection is None
        assert test_db_session.query(BestModelSelection).count() == 0

    def test_no_eligible_metric(self, service: SelectionService, tested_dataset, finish_task):
        for task_id in tested_dataset.testing.task_ids:
            finish_task(task_id, {"metrics/recall(B)": 0.4})

        outcome, selection = service.select_best(tested_dataset.dataset.id, SelectionMetric.MAP50)

        assert outcome == SelectionOutcome.NO_ELIGIBLE_METRIC
        assert selection is None

    def test_unknown_dataset(self, service: SelectionService):
        with pytest.raises(EntityNotFoundError):
            service.select_best(999)

    def test_verify_selection(self, service: SelectionService, tested_dataset, finish_task, make_instance):
        dataset = tested_dataset.dataset
        assert service.verify_selection(dataset.id) is None

        for score, task_id in zip([0.3, 0.9, 0.5], tested_dataset.testing.task_ids):
            finish_task(task_id, {MAP50: score})
        service.select_best(dataset.id)
        assert service.verify_selection(dataset.id) is True

        # A newer testing instance takes over the recomputation
        make_instance(dataset, kind=InstanceKind.TESTING, specs=[{"epochs": 1}])
        assert service.verify_selection(dataset.id) is False
        assert service.get_current_selection(dataset.id).test_task_id == tested_dataset.testing.task_ids[1]
