"""Built-in trigger, action and condition tests."""

from datetime import datetime

import pytest

from autoflow.components.builtin import (
    CompareCondition,
    DelayAction,
    EqualsCondition,
    EventTrigger,
    LogAction,
    SetVariableAction,
    TimeRangeCondition,
)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "operator, expected, outcome",
    [
        (">", 10, True),
        ("<", 10, False),
        (">=", 12, True),
        ("<=", 11, False),
        ("==", 12, True),
        ("!=", 12, False),
        ("~", 12, False),
    ],
)
async def test_compare_condition(operator, expected, outcome):
    condition = CompareCondition()
    context = {"metrics": {"ctr": 12}}
    parameters = {"path": "metrics.ctr", "operator": operator, "expected": expected}
    assert await condition.evaluate(parameters, context) is outcome


@pytest.mark.asyncio
async def test_compare_condition_missing_or_incomparable_value_is_false():
    condition = CompareCondition()
    assert await condition.evaluate({"path": "metrics.ctr", "operator": ">", "expected": 1}, {}) is False
    assert (
        await condition.evaluate(
            {"path": "name", "operator": ">", "expected": 1}, {"name": "ada"}
        )
        is False
    )


@pytest.mark.asyncio
async def test_equals_condition():
    condition = EqualsCondition()
    context = {"user": {"tier": "gold"}}
    assert await condition.evaluate({"path": "user.tier", "value": "gold"}, context)
    assert not await condition.evaluate({"path": "user.tier", "value": "free"}, context)


@pytest.mark.asyncio
async def test_time_range_condition_uses_clock():
    condition = TimeRangeCondition(clock=lambda: datetime(2024, 1, 1, 9, 30))
    assert await condition.evaluate({"start_hour": 9, "end_hour": 17}, {})
    assert not await condition.evaluate({"start_hour": 10, "end_hour": 17}, {})
    assert not await condition.evaluate({"start_hour": 0, "end_hour": 9}, {})


@pytest.mark.asyncio
async def test_actions_return_results():
    assert await SetVariableAction().execute({"value": [1, 2]}, {}) == [1, 2]
    assert await LogAction().execute({"message": "hello"}, {}) == {
        "logged": True,
        "message": "hello",
    }
    assert await DelayAction().execute({"delay_ms": 1}, {}) == {
        "delayed": True,
        "duration_ms": 1,
    }


def test_event_trigger_emit_and_cleanup():
    trigger = EventTrigger()
    fired = []
    first_params = {"event": "signup"}
    second_params = {"event": "signup"}
    trigger.setup(first_params, lambda ctx: fired.append(("first", ctx)) or "e1")
    trigger.setup(second_params, lambda ctx: fired.append(("second", ctx)) or "e2")

    assert trigger.emit("signup", {"user": "ada"}) == ["e1", "e2"]
    assert fired[0] == ("first", {"event": "signup", "user": "ada"})

    trigger.cleanup(first_params)
    assert trigger.emit("signup") == ["e2"]
    assert trigger.emit("other") == []


def test_event_trigger_requires_event_name():
    with pytest.raises(ValueError):
        EventTrigger().setup({}, lambda ctx: None)
