from __future__ import annotations

import asyncio

import pytest

from companion_client.state.ai_state import AgentState, AiStateMachine


@pytest.mark.asyncio
async def test_initial_state_is_loading() -> None:
    machine = AiStateMachine()
    assert machine.state is AgentState.LOADING
    assert machine.is_loading and not machine.is_idle


@pytest.mark.asyncio
async def test_last_target_wins() -> None:
    machine = AiStateMachine()
    for target in (AgentState.IDLE, AgentState.LISTENING, AgentState.THINKING_SPEAKING, AgentState.INTERRUPTED):
        machine.set_state(target)
        assert machine.state is target
    machine.close()


@pytest.mark.asyncio
async def test_waiting_ignored_while_speaking() -> None:
    machine = AiStateMachine()
    machine.set_state(AgentState.THINKING_SPEAKING)
    machine.set_state(AgentState.WAITING)
    assert machine.state is AgentState.THINKING_SPEAKING
    assert not machine.waiting_timer_pending


@pytest.mark.asyncio
async def test_waiting_arms_a_two_second_timer() -> None:
    machine = AiStateMachine()
    machine.set_state(AgentState.IDLE)
    machine.set_state(AgentState.WAITING)
    loop = asyncio.get_running_loop()
    assert machine.is_waiting
    assert machine._timer is not None
    assert machine._timer.when() - loop.time() == pytest.approx(2.0, abs=0.05)
    machine.close()
    assert not machine.waiting_timer_pending


@pytest.mark.asyncio
async def test_waiting_reverts_to_idle() -> None:
    machine = AiStateMachine(waiting_timeout=0.05)
    machine.set_state(AgentState.IDLE)
    machine.set_state(AgentState.WAITING)
    await asyncio.sleep(0.02)
    assert machine.is_waiting
    await asyncio.sleep(0.06)
    assert machine.is_idle
    assert not machine.waiting_timer_pending


@pytest.mark.asyncio
async def test_explicit_transition_cancels_revert() -> None:
    machine = AiStateMachine(waiting_timeout=0.05)
    machine.set_state(AgentState.WAITING)
    machine.set_state(AgentState.LISTENING)
    await asyncio.sleep(0.08)
    assert machine.is_listening


@pytest.mark.asyncio
async def test_rearming_waiting_restarts_the_timer() -> None:
    machine = AiStateMachine(waiting_timeout=0.06)
    machine.set_state(AgentState.WAITING)
    await asyncio.sleep(0.04)
    machine.set_state(AgentState.WAITING)
    await asyncio.sleep(0.04)
    assert machine.is_waiting
    await asyncio.sleep(0.04)
    assert machine.is_idle


@pytest.mark.asyncio
async def test_updater_and_compare_and_set() -> None:
    machine = AiStateMachine()
    machine.set_state(AgentState.LISTENING)
    assert not machine.compare_and_set(AgentState.THINKING_SPEAKING, AgentState.IDLE)
    assert machine.is_listening

    machine.set_state(lambda current: AgentState.IDLE if current is AgentState.LISTENING else current)
    assert machine.is_idle

    machine.set_state(AgentState.THINKING_SPEAKING)
    assert machine.compare_and_set(AgentState.THINKING_SPEAKING, AgentState.IDLE)
    assert machine.is_idle


@pytest.mark.asyncio
async def test_updater_returning_waiting_respects_speaking_guard() -> None:
    machine = AiStateMachine()
    machine.set_state(AgentState.THINKING_SPEAKING)
    machine.set_state(lambda _current: AgentState.WAITING)
    assert machine.is_thinking_speaking


@pytest.mark.asyncio
async def test_reset_and_listeners() -> None:
    machine = AiStateMachine(waiting_timeout=0.05)
    seen: list[tuple[AgentState, AgentState]] = []
    unsubscribe = machine.subscribe(lambda previous, current: seen.append((previous, current)))

    machine.set_state(AgentState.WAITING)
    machine.reset()
    assert machine.is_idle
    assert not machine.waiting_timer_pending
    machine.set_state(AgentState.IDLE)
    unsubscribe()
    machine.set_state(AgentState.LISTENING)

    assert seen == [
        (AgentState.LOADING, AgentState.WAITING),
        (AgentState.WAITING, AgentState.IDLE),
    ]
