import asyncio

from crowns_host.actor import GameActor, GameRegistry


def test_new_timer_replaces_pending_one():
    fired: list[str] = []

    async def scenario():
        actor = GameActor("G-1", "T-1")

        async def record(label):
            fired.append(label)

        actor.schedule(10, "first", lambda: record("first"))
        actor.schedule(10, "second", lambda: record("second"))
        assert actor.timer_label == "second"
        await asyncio.sleep(0.05)
        assert not actor.has_pending_timer

    asyncio.run(scenario())

    assert fired == ["second"]


def test_halted_or_closed_actor_schedules_nothing():
    fired: list[str] = []

    async def scenario():
        actor = GameActor("G-1", "T-1")

        async def record():
            fired.append("late")

        actor.schedule(10, "pending", record)
        actor.halt()
        actor.schedule(0, "after-halt", record)
        assert not actor.has_pending_timer
        await asyncio.sleep(0.03)

        other = GameActor("G-2", "T-1")
        other.close()
        other.schedule(0, "after-close", record)
        assert not other.has_pending_timer
        await other.wait_closed(timeout=1)

    asyncio.run(scenario())

    assert fired == []


def test_registry_destroy_closes_actor():
    async def scenario():
        registry = GameRegistry()
        actor = registry.get_or_create("G-1", "T-1")
        assert registry.get_or_create("G-1", "T-1") is actor
        actor.connected.add("U-1")
        assert registry.for_user("U-1") == [actor]

        registry.destroy("G-1")

        assert actor.closed
        assert "G-1" not in registry
        assert len(registry) == 0
        assert registry.for_user("U-1") == []

    asyncio.run(scenario())
