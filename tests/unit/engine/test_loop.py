"""Tests for the spellbook action loop."""

from __future__ import annotations

from collections.abc import AsyncIterator

import pytest

from factories import spell_uuid
from spellbook.engine import (
    ActionResult,
    ActionStatus,
    Commit,
    DeleteLoadout,
    FilterSpells,
    LearnSpell,
    Render,
    SaveLoadout,
    SpellbookLoop,
    SpellbookState,
    ToggleLevel,
    TogglePrepare,
)
from spellbook.filters import FilterState
from spellbook.models import EnforcementBehavior, NotificationLevel


@pytest.fixture
async def loop(wizard_state: SpellbookState) -> AsyncIterator[SpellbookLoop]:
    """A started loop over the wizard session."""
    spellbook_loop = SpellbookLoop(wizard_state)
    await spellbook_loop.start()
    yield spellbook_loop
    await spellbook_loop.stop()


class TestLifecycle:
    """Tests for starting and stopping the worker."""

    async def test_start_stop(self, wizard_state: SpellbookState) -> None:
        spellbook_loop = SpellbookLoop(wizard_state)
        assert not spellbook_loop.is_running

        await spellbook_loop.start()
        assert spellbook_loop.is_running

        await spellbook_loop.stop()
        assert not spellbook_loop.is_running

    async def test_stop_drains_queue(self, wizard_state: SpellbookState) -> None:
        """Test queued actions finish before the worker stops."""
        spellbook_loop = SpellbookLoop(wizard_state)
        await spellbook_loop.start()
        future = spellbook_loop.submit(TogglePrepare("wizard", spell_uuid("fireball"), True))

        await spellbook_loop.stop()

        assert future.done()
        assert future.result().status == ActionStatus.COMPLETED


class TestToggleActions:
    """Tests for preparation toggles."""

    async def test_toggle(self, loop: SpellbookLoop) -> None:
        result = await loop.submit(TogglePrepare("wizard", spell_uuid("fireball"), True))

        assert result.status == ActionStatus.COMPLETED
        assert result.value.changed
        assert loop.state.is_dirty

    async def test_reentrant_toggle_rejected(self, loop: SpellbookLoop) -> None:
        """Test a second toggle of a spell still being handled is refused."""
        first = loop.submit(TogglePrepare("wizard", spell_uuid("fireball"), True))
        second = loop.submit(TogglePrepare("wizard", spell_uuid("fireball"), False))

        assert (await second).status == ActionStatus.REJECTED
        assert (await second).message == "Change already being handled."
        assert (await first).status == ActionStatus.COMPLETED

    async def test_toggle_after_handled(self, loop: SpellbookLoop) -> None:
        """Test the gate opens once the toggle is done."""
        await loop.submit(TogglePrepare("wizard", spell_uuid("fireball"), True))

        result = await loop.submit(TogglePrepare("wizard", spell_uuid("fireball"), False))

        assert result.status == ActionStatus.COMPLETED
        assert not loop.state.is_dirty

    async def test_rule_rejection(self, loop: SpellbookLoop) -> None:
        """Test enforced rejections are reported and shown to the user."""
        await loop.state.set_enforcement(EnforcementBehavior.ENFORCED)

        result = await loop.submit(TogglePrepare("wizard", spell_uuid("magic-missile"), False))

        assert result.status == ActionStatus.REJECTED
        assert loop.state.env.messages(NotificationLevel.WARN) == [result.message]

    async def test_invalid_toggle(self, loop: SpellbookLoop) -> None:
        """Test engine errors resolve to an error result."""
        result = await loop.submit(TogglePrepare("wizard", spell_uuid("teleport"), True))

        assert result.status == ActionStatus.ERROR
        assert result.message == "Spell is not shown for this class"


class TestOtherActions:
    """Tests for the remaining actions."""

    async def test_commit(self, loop: SpellbookLoop) -> None:
        await loop.submit(TogglePrepare("wizard", spell_uuid("fireball"), True))

        result = await loop.submit(Commit())

        assert result.status == ActionStatus.COMPLETED
        assert result.value.committed == ["wizard"]

    async def test_failed_commit(self, loop: SpellbookLoop) -> None:
        """Test a partially failed save is an error result."""
        await loop.submit(TogglePrepare("wizard", spell_uuid("fireball"), True))
        loop.state.env.fail_next("create", times=3)

        result = await loop.submit(Commit())

        assert result.status == ActionStatus.ERROR
        assert result.message == "Some classes could not be saved."

    async def test_learn_spell(self, loop: SpellbookLoop) -> None:
        learned = await loop.submit(LearnSpell("wizard", spell_uuid("identify")))
        again = await loop.submit(LearnSpell("wizard", spell_uuid("fire-bolt")))

        assert learned.status == ActionStatus.COMPLETED
        assert again.status == ActionStatus.SKIPPED

    async def test_learn_without_spellbook(self, loop: SpellbookLoop) -> None:
        result = await loop.submit(LearnSpell("cleric", spell_uuid("bless")))
        assert result.status == ActionStatus.ERROR

    async def test_loadout_actions(self, loop: SpellbookLoop) -> None:
        """Test saving and deleting loadouts."""
        saved = await loop.submit(SaveLoadout("wizard", "Default"))
        deleted = await loop.submit(DeleteLoadout(saved.value.id))
        missing = await loop.submit(DeleteLoadout(saved.value.id))

        assert saved.status == ActionStatus.COMPLETED
        assert deleted.status == ActionStatus.COMPLETED
        assert missing.status == ActionStatus.SKIPPED

    async def test_toggle_level_and_filter(self, loop: SpellbookLoop) -> None:
        collapsed = await loop.submit(ToggleLevel(2))
        filtered = await loop.submit(FilterSpells("wizard", FilterState(level=2)))

        assert collapsed.value is True
        assert {view.name for view in filtered.value} == {"Misty Step", "Web"}

    async def test_render_reloads(self, loop: SpellbookLoop) -> None:
        result = await loop.submit(Render())
        assert result.status == ActionStatus.COMPLETED

    async def test_unknown_action(self, loop: SpellbookLoop) -> None:
        """Test actions the loop does not know raise."""
        with pytest.raises(TypeError):
            await loop.dispatch(object())  # type: ignore[arg-type]


class TestCallbacks:
    """Tests for result callbacks."""

    async def test_callbacks_receive_results(self, loop: SpellbookLoop) -> None:
        """Test every result reaches the callbacks, even after one fails."""
        seen: list[ActionResult] = []

        def broken(result: ActionResult) -> None:
            raise RuntimeError("callback failure")

        loop.add_callback(broken)
        loop.add_callback(seen.append)

        await loop.submit(ToggleLevel(1))
        await loop.submit(ToggleLevel(1))

        assert [result.value for result in seen] == [True, False]
