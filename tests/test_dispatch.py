import asyncio

from custom_components.iport_sm_buttons.lib.dispatch import (
    ActionDispatcher,
    ActionType,
    ButtonMapping,
    ReadinessQueue,
    select_mapping,
)


class _RecordingExecutor:
    def __init__(self, fail_on=None) -> None:
        self.calls: list[tuple[str, ButtonMapping]] = []
        self._fail_on = fail_on

    async def _record(self, kind: str, mapping: ButtonMapping) -> None:
        self.calls.append((kind, mapping))
        if self._fail_on == kind:
            raise RuntimeError(f"{kind} broke")

    async def async_bulb_action(self, mapping):
        await self._record("bulb", mapping)

    async def async_accessory_action(self, mapping):
        await self._record("accessory", mapping)

    async def async_scene_action(self, mapping):
        await self._record("scene", mapping)

    async def async_led_action(self, mapping):
        await self._record("led", mapping)


def _mapping(button, mode, action_type=ActionType.BULB, action="on", target=("light.desk",)):
    return ButtonMapping(button, mode, action_type, action, tuple(target))


RED_ON = _mapping(1, "red")
ANY_OFF = _mapping(1, "any", action="off")
BLUE_SCENE = _mapping(1, "blue", ActionType.SCENE, "on", ("scene.movie",))


def test_select_prefers_exact_mode():
    assert select_mapping([ANY_OFF, RED_ON], 1, "red") is RED_ON


def test_select_falls_back_to_any():
    assert select_mapping([RED_ON, ANY_OFF], 1, "green") is ANY_OFF


def test_select_nothing_without_match():
    assert select_mapping([RED_ON, BLUE_SCENE], 1, "green") is None
    assert select_mapping([RED_ON], 2, "red") is None


def test_select_first_exact_wins():
    second = _mapping(1, "red", action="off")
    assert select_mapping([RED_ON, second], 1, "red") is RED_ON


def _dispatcher(mappings, mode="red", executor=None):
    executor = executor or _RecordingExecutor()
    cycles = []
    dispatcher = ActionDispatcher(
        mappings,
        executor,
        current_mode=lambda: mode,
        cycle_mode=lambda: cycles.append(True),
    )
    return dispatcher, executor, cycles


def test_execute_runs_single_selected_mapping():
    dispatcher, executor, _ = _dispatcher([ANY_OFF, RED_ON, BLUE_SCENE], mode="blue")
    ran = asyncio.run(dispatcher.async_execute_button_action(1))
    assert ran is BLUE_SCENE
    assert executor.calls == [("scene", BLUE_SCENE)]


def test_execute_button_10_cycles_without_mappings():
    dispatcher, executor, cycles = _dispatcher([RED_ON])
    assert asyncio.run(dispatcher.async_execute_button_action(10)) is None
    assert cycles == [True]
    assert executor.calls == []


def test_execute_unmapped_button_is_noop():
    dispatcher, executor, cycles = _dispatcher([RED_ON])
    assert asyncio.run(dispatcher.async_execute_button_action(5)) is None
    assert executor.calls == []
    assert cycles == []


def test_execute_no_mode_match_is_noop():
    dispatcher, executor, _ = _dispatcher([RED_ON], mode="white")
    assert asyncio.run(dispatcher.async_execute_button_action(1)) is None
    assert executor.calls == []


def test_execute_routes_each_action_type():
    mappings = [
        _mapping(1, "any", ActionType.BULB),
        _mapping(2, "any", ActionType.ACCESSORY, "toggle", ("switch.fan",)),
        _mapping(3, "any", ActionType.SCENE, "on", ("scene.night",)),
        _mapping(4, "any", ActionType.LED, "blue", ()),
    ]
    dispatcher, executor, _ = _dispatcher(mappings)
    for number in (1, 2, 3, 4):
        asyncio.run(dispatcher.async_execute_button_action(number))
    assert [kind for kind, _ in executor.calls] == ["bulb", "accessory", "scene", "led"]


def test_execute_survives_handler_failure():
    dispatcher, executor, _ = _dispatcher([RED_ON], executor=_RecordingExecutor(fail_on="bulb"))
    assert asyncio.run(dispatcher.async_execute_button_action(1)) is RED_ON
    assert executor.calls == [("bulb", RED_ON)]


def test_mappings_for_filters_by_button():
    dispatcher, _, _ = _dispatcher([RED_ON, _mapping(2, "any"), ANY_OFF])
    assert dispatcher.mappings_for(1) == [RED_ON, ANY_OFF]


def test_mapping_key_and_dict():
    mapping = _mapping(3, "green", ActionType.BULB, "brightness", ("light.a", "light.b"))
    assert mapping.key == "btn3-green-brightness-light.a_light.b"
    assert mapping.as_dict()["action_type"] == "bulb"
    assert mapping.as_dict()["target"] == ["light.a", "light.b"]


def test_readiness_queue_replays_in_order_once():
    seen = []
    queue = ReadinessQueue(seen.append)
    for item in [(2, 1), (2, 0), (5, 1), (5, 0)]:
        assert queue.submit(item) is False
    assert seen == []
    assert queue.pending == ((2, 1), (2, 0), (5, 1), (5, 0))

    assert queue.mark_ready() == 4
    assert seen == [(2, 1), (2, 0), (5, 1), (5, 0)]
    assert queue.ready is True
    assert queue.pending == ()

    assert queue.mark_ready() == 0
    assert queue.submit((7, 1)) is True
    assert seen[-1] == (7, 1)
    assert len(seen) == 5


def test_readiness_queue_consumer_failure_does_not_stop_replay():
    seen = []

    def _consume(item):
        if item == "bad":
            raise ValueError(item)
        seen.append(item)

    queue = ReadinessQueue(_consume)
    for item in ("a", "bad", "b"):
        queue.submit(item)
    assert queue.mark_ready() == 3
    assert seen == ["a", "b"]
