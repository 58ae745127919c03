"""End-to-end tests for the workflow engine facade."""

import pytest

from autoflow import WorkflowEngine
from autoflow.components import BaseAction
from autoflow.config import EngineConfig, RetryConfig, SchedulerConfig
from autoflow.contracts import ExecutionStatus
from autoflow.errors import NotFoundError, ValidationError


class SendEmailAction(BaseAction):
    def __init__(self):
        self.sent = []

    async def execute(self, parameters, context):
        self.sent.append(parameters)
        return {"message_id": f"msg-{len(self.sent)}", "to": parameters["to"]}


def make_engine():
    config = EngineConfig(
        scheduler=SchedulerConfig(retry=RetryConfig(max_attempts=1, base_delay=0.01))
    )
    return WorkflowEngine(config)


def onboarding_definition(**fields):
    return {
        "id": "onboarding",
        "name": "Customer onboarding",
        "trigger": {"type": "event", "parameters": {"event": "customer.signup"}},
        "steps": [
            {
                "id": "welcome",
                "type": "action",
                "action_type": "send_email",
                "parameters": {"to": "{{ customer.email }}", "template": "welcome"},
                "output_variable": "welcome_email",
            },
            {
                "id": "is_vip",
                "type": "condition",
                "condition_type": "compare",
                "parameters": {"path": "customer.spend", "operator": ">=", "expected": 1000},
                "true_step": "vip_note",
                "false_step": "done",
            },
            {
                "id": "vip_note",
                "type": "action",
                "action_type": "send_email",
                "parameters": {"to": "sales@example.com", "ref": "{{ welcome_email.message_id }}"},
                "output_variable": "vip_email",
            },
            {
                "id": "done",
                "type": "action",
                "action_type": "log",
                "parameters": {"message": "onboarding finished"},
            },
        ],
        **fields,
    }


@pytest.mark.asyncio
async def test_event_driven_workflow_chains_outputs():
    engine = make_engine()
    email = SendEmailAction()
    engine.register_action("send_email", email)
    engine.create_workflow(onboarding_definition())
    signups = engine.registry.get_trigger("event")

    async with engine:
        [vip_id] = signups.emit(
            "customer.signup", {"customer": {"email": "vip@example.com", "spend": 5000}}
        )
        [basic_id] = signups.emit(
            "customer.signup", {"customer": {"email": "new@example.com", "spend": 10}}
        )
        vip = await engine.wait_for_execution(vip_id, timeout=2)
        basic = await engine.wait_for_execution(basic_id, timeout=2)

    assert vip.status is ExecutionStatus.COMPLETED
    assert [r.step_id for r in vip.steps] == ["welcome", "is_vip", "vip_note", "done"]
    assert vip.context["vip_email"]["to"] == "sales@example.com"
    assert email.sent[0] == {"to": "vip@example.com", "template": "welcome"}
    assert {"to": "sales@example.com", "ref": vip.context["welcome_email"]["message_id"]} in email.sent

    assert [r.step_id for r in basic.steps] == ["welcome", "is_vip", "done"]
    assert "vip_email" not in basic.context


@pytest.mark.asyncio
async def test_lifecycle_events_are_published_in_order():
    engine = make_engine()
    engine.register_action("send_email", SendEmailAction())
    names = []
    unsubscribe = engine.subscribe(lambda event: names.append(event.name))

    engine.create_workflow(onboarding_definition())
    async with engine:
        execution_id = engine.execute_workflow(
            "onboarding", {"customer": {"email": "a@b.c", "spend": 0}}
        )
        await engine.wait_for_execution(execution_id, timeout=2)
    engine.toggle_workflow("onboarding", False)
    unsubscribe()
    engine.delete_workflow("onboarding")

    assert names == [
        "workflow.created",
        "execution.queued",
        "execution.started",
        "execution.completed",
        "workflow.toggled",
    ]


@pytest.mark.asyncio
async def test_failing_listener_does_not_break_execution():
    engine = make_engine()
    engine.register_action("send_email", SendEmailAction())

    def broken(event):
        raise RuntimeError("listener exploded")

    engine.subscribe(broken)
    engine.create_workflow(onboarding_definition())
    async with engine:
        execution = await engine.wait_for_execution(
            engine.execute_workflow("onboarding", {"customer": {"email": "a@b.c"}}),
            timeout=2,
        )
    assert execution.status is ExecutionStatus.COMPLETED


@pytest.mark.asyncio
async def test_get_metrics_reports_engine_totals():
    engine = make_engine()
    engine.register_action("send_email", SendEmailAction())
    engine.create_workflow(onboarding_definition())
    engine.create_workflow(
        onboarding_definition(id="paused", name="Paused onboarding", settings={"enabled": False})
    )

    async with engine:
        await engine.wait_for_execution(
            engine.execute_workflow("onboarding", {"customer": {"email": "a@b.c"}}),
            timeout=2,
        )
        queued_id = engine.execute_workflow("onboarding")
        await engine.wait_for_execution(queued_id, timeout=2)

    metrics = engine.get_metrics()
    assert metrics["total_workflows"] == 2
    assert metrics["active_workflows"] == 1
    assert metrics["total_executions"] == 2
    assert metrics["successful_executions"] == 2
    assert metrics["failed_executions"] == 0
    assert metrics["running_executions"] == 0
    assert metrics["queued_executions"] == 0
    assert metrics["average_execution_time_ms"] >= 0
    assert len(engine.list_executions("onboarding")) == 2
    assert engine.list_executions("paused") == []


@pytest.mark.asyncio
async def test_management_operations_raise_for_unknown_ids():
    engine = make_engine()
    with pytest.raises(NotFoundError):
        engine.get_workflow("missing")
    with pytest.raises(NotFoundError):
        engine.delete_workflow("missing")
    with pytest.raises(NotFoundError):
        engine.update_workflow("missing", {"name": "Whatever"})
    with pytest.raises(NotFoundError):
        engine.get_execution("missing")


@pytest.mark.asyncio
async def test_invalid_update_leaves_binding_and_version_untouched():
    engine = make_engine()
    engine.register_action("send_email", SendEmailAction())
    engine.create_workflow(onboarding_definition())

    with pytest.raises(ValidationError):
        engine.update_workflow("onboarding", {"steps": []})

    workflow = engine.get_workflow("onboarding")
    assert workflow.metadata.version == 1
    assert len(workflow.steps) == 4
    assert engine.triggers.is_bound("onboarding")


@pytest.mark.asyncio
async def test_engine_can_run_without_builtin_components():
    engine = WorkflowEngine(register_builtin_components=False)
    assert engine.registry.action_types() == []
    assert engine.list_workflows() == []
