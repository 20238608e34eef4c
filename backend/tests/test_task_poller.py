import asyncio

import httpx
import pytest

from conftest import EHR_BASE
from sdoh_exchange.fhir.client import FhirClient
from sdoh_exchange.schemas.request import NewTaskRequest, UpdateTaskRequest
from sdoh_exchange.services.converters import result_output
from sdoh_exchange.services.task_poller import TaskPoller, reconcile
from sdoh_exchange.services.task_service import TaskService


def test_reconcile_copies_cbro_fields():
    ehr_task = {"status": "requested", "note": [{"text": "From EHR", "time": "2024-01-01T00:00:00Z"}]}
    cbro_task = {
        "status": "completed",
        "statusReason": {"text": "Services delivered"},
        "output": [result_output("Enrolled")],
        "note": [
            {"text": "From EHR", "time": "2024-01-01T00:00:00Z"},
            {"text": "Called patient", "time": "2024-01-02T00:00:00Z"},
        ],
    }

    assert reconcile(ehr_task, cbro_task) is True
    assert ehr_task["status"] == "completed"
    assert ehr_task["statusReason"] == {"text": "Services delivered"}
    assert ehr_task["output"] == cbro_task["output"]
    assert [n["text"] for n in ehr_task["note"]] == ["From EHR", "Called patient"]
    assert "lastModified" in ehr_task


def test_reconcile_without_differences():
    task = {"status": "accepted", "note": [{"text": "x", "time": "2024-01-01T00:00:00Z"}]}
    assert reconcile(dict(task), dict(task)) is False


def test_reconcile_drops_fields_removed_in_cbro():
    ehr_task = {"status": "in-progress", "statusReason": {"text": "Waiting"}}
    assert reconcile(ehr_task, {"status": "in-progress"}) is True
    assert "statusReason" not in ehr_task


@pytest.fixture
def task_id(ehr_server, cbro_factory):
    service = TaskService(ehr_server.client(), identifier_system=EHR_BASE, cbro_client_factory=cbro_factory)
    return service.create_task("p1", "Practitioner/pr1", NewTaskRequest.model_validate({
        "name": "Food pantry referral",
        "category": "food-insecurity",
        "request": "710925007",
        "occurrence": {"end": "2030-01-31T17:00:00"},
        "performerId": "cbro-1",
    }))


@pytest.fixture
def poller(ehr_server, cbro_factory):
    return TaskPoller(
        ehr_client_factory=ehr_server.client,
        cbro_client_factory=cbro_factory,
        identifier_system=EHR_BASE,
        delay=0,
    )


def _cbro_copy(cbro_server):
    return cbro_server.all("Task")[0]


class TestPollOnce:

    def test_completed_cbro_task_completes_service_request(self, poller, task_id, ehr_server, cbro_server):
        _cbro_copy(cbro_server)["status"] = "completed"
        _cbro_copy(cbro_server)["output"] = [result_output("Enrolled in weekly deliveries")]

        summary = poller.poll_once()

        assert (summary.checked, summary.updated, summary.failed) == (1, 1, 0)
        task = ehr_server.get("Task", task_id)
        assert task["status"] == "completed"
        assert task["output"][0]["valueString"] == "Enrolled in weekly deliveries"
        service_request_id = task["focus"]["reference"].split("/")[1]
        assert ehr_server.get("ServiceRequest", service_request_id)["status"] == "completed"

    def test_rejected_cbro_task_revokes_service_request(self, poller, task_id, ehr_server, cbro_server):
        _cbro_copy(cbro_server)["status"] = "rejected"

        poller.poll_once()

        task = ehr_server.get("Task", task_id)
        assert task["status"] == "rejected"
        assert ehr_server.get("ServiceRequest", task["focus"]["reference"].split("/")[1])["status"] == "revoked"

    def test_accepted_keeps_service_request_active(self, poller, task_id, ehr_server, cbro_server):
        _cbro_copy(cbro_server)["status"] = "accepted"

        poller.poll_once()

        task = ehr_server.get("Task", task_id)
        assert task["status"] == "accepted"
        assert ehr_server.get("ServiceRequest", task["focus"]["reference"].split("/")[1])["status"] == "active"

    def test_unchanged_tasks_are_skipped(self, poller, task_id, ehr_server):
        transactions = len(ehr_server.transactions)

        summary = poller.poll_once()

        assert (summary.checked, summary.updated, summary.skipped) == (1, 0, 1)
        assert len(ehr_server.transactions) == transactions

    def test_terminal_ehr_tasks_are_not_polled(self, poller, task_id, ehr_server):
        ehr_server.get("Task", task_id)["status"] = "cancelled"
        assert poller.poll_once().checked == 0

    def test_failures_are_counted_not_raised(self, poller, task_id, ehr_server, cbro_server):
        """A failing task does not stop the cycle."""
        _cbro_copy(cbro_server)["status"] = "accepted"
        ehr_server.fail_transactions = True

        summary = poller.poll_once()

        assert summary.failed == 1
        assert ehr_server.get("Task", task_id)["status"] == "requested"

    def test_comment_saved_during_cycle_is_kept(self, ehr_server, cbro_server, cbro_factory, task_id):
        """A clinician comments while the poller is talking to the CBRO."""
        _cbro_copy(cbro_server)["status"] = "accepted"
        service = TaskService(ehr_server.client(), identifier_system=EHR_BASE, cbro_client_factory=cbro_factory)
        commented = []

        def cbro_client_factory(address):
            if not commented:
                commented.append(True)
                service.update_task("p1", "Practitioner/pr1", task_id,
                                    UpdateTaskRequest(comment="Call the patient first"))
            return cbro_factory(address)

        poller = TaskPoller(ehr_client_factory=ehr_server.client, cbro_client_factory=cbro_client_factory,
                            identifier_system=EHR_BASE, delay=0)
        summary = poller.poll_once()

        assert summary.updated == 1
        task = ehr_server.get("Task", task_id)
        assert task["status"] == "accepted"
        assert any(n["text"] == "Call the patient first" for n in task["note"])

    def test_cancel_during_cycle_is_not_undone(self, ehr_server, cbro_server, cbro_factory, task_id):
        _cbro_copy(cbro_server)["status"] = "accepted"
        service = TaskService(ehr_server.client(), identifier_system=EHR_BASE, cbro_client_factory=cbro_factory)
        cancelled = []

        def cbro_client_factory(address):
            if not cancelled:
                cancelled.append(True)
                service.update_task("p1", "Practitioner/pr1", task_id, UpdateTaskRequest(status="cancelled"))
            return cbro_factory(address)

        poller = TaskPoller(ehr_client_factory=ehr_server.client, cbro_client_factory=cbro_client_factory,
                            identifier_system=EHR_BASE, delay=0)
        summary = poller.poll_once()

        assert (summary.updated, summary.skipped) == (0, 1)
        task = ehr_server.get("Task", task_id)
        assert task["status"] == "cancelled"
        assert ehr_server.get("ServiceRequest", task["focus"]["reference"].split("/")[1])["status"] == "revoked"

    def test_task_changed_before_save_is_retried_next_cycle(self, ehr_server, cbro_server, cbro_factory, task_id):
        """The EHR refuses the stale version; the next cycle merges the CBRO status."""
        _cbro_copy(cbro_server)["status"] = "accepted"
        interleaved = []

        def handle(request):
            if not interleaved and request.method == "POST":
                interleaved.append(True)
                task = ehr_server.get("Task", task_id)
                ehr_server.add(dict(task, note=[{"text": "Call the patient first"}]))
            return ehr_server.handle(request)

        poller = TaskPoller(
            ehr_client_factory=lambda: FhirClient(EHR_BASE, transport=httpx.MockTransport(handle)),
            cbro_client_factory=cbro_factory,
            identifier_system=EHR_BASE,
            delay=0,
        )

        first = poller.poll_once()
        assert (first.updated, first.skipped, first.failed) == (0, 1, 0)
        assert ehr_server.get("Task", task_id)["status"] == "requested"

        second = poller.poll_once()
        assert second.updated == 1
        task = ehr_server.get("Task", task_id)
        assert task["status"] == "accepted"
        assert [n["text"] for n in task["note"]] == ["Call the patient first"]


def test_run_stops_when_asked(poller, task_id):
    async def run_briefly():
        task = asyncio.create_task(poller.run())
        await asyncio.sleep(0.05)
        poller.stop()
        await asyncio.wait_for(task, timeout=5)

    asyncio.run(run_briefly())
