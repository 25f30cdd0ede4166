from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from kombu.exceptions import OperationalError as KombuOperationalError

from bulk_export.core.celery_app import PROCESS_UNIT_TASK
from bulk_export.core.exceptions import DispatchError
from bulk_export.schemas.job import UnitOfWork
from bulk_export.services.dispatch_service import CeleryWorkQueue, WorkDispatcher

from conftest import ORG_ID, USER_ID, InMemoryWorkQueue


def _unit(job_id: int = 7, index: int = 0) -> UnitOfWork:
    return UnitOfWork(
        job_id=job_id,
        organization_id=ORG_ID,
        user_id=USER_ID,
        beneficiary_ids=["a", "b"],
        resource_type="ExplanationOfBenefit",
        encrypt=True,
        unit_index=index,
    )


def test_dispatch_publishes_every_unit(work_queue):
    units = [_unit(index=i) for i in range(3)]

    assert WorkDispatcher(work_queue).dispatch(7, units) == 3
    assert [u.unit_index for u in work_queue.published] == [0, 1, 2]


def test_missing_queue_is_a_dispatch_error():
    with pytest.raises(DispatchError) as exc_info:
        WorkDispatcher(None).dispatch(7, [_unit()])
    assert exc_info.value.code == "Queue error"


def test_publish_failure_is_a_dispatch_error():
    queue = InMemoryWorkQueue(fail_after=1)

    with pytest.raises(DispatchError, match="unit 1 of job 7"):
        WorkDispatcher(queue).dispatch(7, [_unit(index=0), _unit(index=1)])


def test_broker_error_is_a_dispatch_error():
    queue = MagicMock()
    queue.publish.side_effect = KombuOperationalError("connection refused")

    with pytest.raises(DispatchError):
        WorkDispatcher(queue).dispatch(7, [_unit()])


def test_unit_for_another_job_is_rejected(work_queue):
    with pytest.raises(DispatchError):
        WorkDispatcher(work_queue).dispatch(8, [_unit(job_id=7)])
    assert work_queue.published == []


def test_celery_queue_sends_named_task():
    app = MagicMock()
    unit = _unit()

    CeleryWorkQueue(app, "q.export_units").publish(unit)

    app.send_task.assert_called_once()
    args, kwargs = app.send_task.call_args
    assert args == (PROCESS_UNIT_TASK,)
    assert kwargs["queue"] == "q.export_units"
    assert kwargs["kwargs"]["unit"]["job_id"] == 7
    assert kwargs["kwargs"]["unit"]["beneficiary_ids"] == ["a", "b"]
    assert UnitOfWork.model_validate(kwargs["kwargs"]["unit"]) == unit
