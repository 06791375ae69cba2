import asyncio
from datetime import datetime, timezone

from stampchat.models.models import Vote
from stampchat.services.interactions import Composer
from stampchat.services.live_view import LiveViewProjector, RoomView, tally_vote

T0 = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def make_vote(votes, options=None):
    options = options or [f"option {i}" for i in range(len(votes))]
    return Vote(id="v1", question="q", options=options, created_at=T0, votes=votes)


def test_tally_percentages():
    tally = tally_vote(make_vote([1, 2, 1]))
    assert tally.total == 4
    assert [o.percent for o in tally.options] == [25, 50, 25]
    assert [o.count for o in tally.options] == [1, 2, 1]


def test_tally_rounds_each_option():
    tally = tally_vote(make_vote([1, 1, 1]))
    assert [o.percent for o in tally.options] == [33, 33, 33]


def test_tally_without_votes_is_all_zero():
    tally = tally_vote(make_vote([0, 0]))
    assert tally.total == 0
    assert [o.percent for o in tally.options] == [0, 0]


def test_concurrent_sends_all_show_up_newest_first(repository, interactions):
    n = 8

    async def scenario():
        view = await RoomView(repository, "abc").open()
        composers = [Composer(username=f"user{i}", text=f"message {i}") for i in range(n)]
        await asyncio.gather(*(interactions.send_message("abc", c) for c in composers))
        shown = view.display_messages()
        view.close()
        return shown

    shown = asyncio.run(scenario())
    assert len(shown) == n
    times = [m.created_at for m in shown]
    assert times == sorted(times, reverse=True)
    assert len({m.id for m in shown}) == n


def test_view_replaces_lists_and_notifies(repository, interactions):
    events = []

    async def scenario():
        view = await RoomView(repository, "abc").open()
        view.add_listener(lambda kind, v: events.append((kind, len(v.messages), len(v.votes))))
        await interactions.send_message("abc", Composer(username="u", text="hi"))
        await interactions.create_vote("abc", "Lunch?", ["yes", "no"])
        view.close()
        return view

    view = asyncio.run(scenario())
    assert events == [("messages", 1, 0), ("votes", 1, 1)]
    assert view.display_votes()[0].total == 0


def test_close_stops_further_snapshots(store, repository, interactions):
    async def scenario():
        view = await RoomView(repository, "abc").open()
        view.close()
        await interactions.send_message("abc", Composer(username="u", text="after close"))
        return view, store.subscriptions

    view, subscriptions = asyncio.run(scenario())
    assert view.messages == []
    assert all(not entries for entries in subscriptions.values())


def test_projector_shares_views_and_closes_with_last_holder(repository):
    async def scenario():
        projector = LiveViewProjector(repository)
        first = await projector.open_room("abc")
        second = await projector.open_room("abc")
        projector.close_room("abc")
        still_open = projector.get("abc")
        projector.close_room("abc")
        return first, second, still_open, projector.get("abc")

    first, second, still_open, after = asyncio.run(scenario())
    assert first is second
    assert still_open is first
    assert after is None
    assert first.closed
