import threading

import pytest

from chat_shared.network import ConnectionState, ConnectionTracker, InvalidTransition

_RANK = {
    ConnectionState.CONNECTING: 0,
    ConnectionState.CONNECTED: 1,
    ConnectionState.DISCONNECTED: 2,
}


def test_tracker_walks_lifecycle_once():
    tracker = ConnectionTracker()
    assert tracker.state is ConnectionState.CONNECTING

    assert tracker.transition(ConnectionState.CONNECTED) is ConnectionState.CONNECTING
    assert tracker.connected

    assert tracker.mark_disconnected() is True
    assert tracker.disconnected
    assert tracker.mark_disconnected() is False


def test_disconnected_is_terminal():
    tracker = ConnectionTracker()
    tracker.mark_disconnected()

    with pytest.raises(InvalidTransition):
        tracker.transition(ConnectionState.CONNECTED)
    with pytest.raises(InvalidTransition):
        tracker.transition(ConnectionState.CONNECTING)
    assert tracker.try_transition(ConnectionState.CONNECTED) is False
    assert tracker.state is ConnectionState.DISCONNECTED


def test_connected_cannot_go_back_to_connecting():
    tracker = ConnectionTracker()
    tracker.transition(ConnectionState.CONNECTED)

    with pytest.raises(InvalidTransition):
        tracker.transition(ConnectionState.CONNECTING)


def test_transition_updates_timestamp():
    tracker = ConnectionTracker()
    before = tracker.last_transition_at

    tracker.transition(ConnectionState.CONNECTED)

    assert tracker.last_transition_at >= before


def test_concurrent_disconnect_with_reader_sees_valid_states():
    trackers = [ConnectionTracker() for _ in range(1000)]
    for tracker in trackers:
        tracker.transition(ConnectionState.CONNECTED)
    wins = [0, 0]
    last_seen = [_RANK[ConnectionState.CONNECTED]] * len(trackers)
    violations = []
    start = threading.Barrier(3)
    writers_done = threading.Event()

    def _race(slot: int) -> None:
        start.wait()
        for tracker in trackers:
            if tracker.mark_disconnected():
                wins[slot] += 1

    def _read() -> None:
        start.wait()
        while True:
            finished = writers_done.is_set()
            for index, tracker in enumerate(trackers):
                state = tracker.state
                if state not in _RANK:
                    violations.append((index, state))
                    continue
                if _RANK[state] < last_seen[index]:
                    violations.append((index, state))
                last_seen[index] = _RANK[state]
            if finished:
                return

    writers = [threading.Thread(target=_race, args=(slot,)) for slot in range(2)]
    reader = threading.Thread(target=_read)
    for thread in (*writers, reader):
        thread.start()
    for thread in writers:
        thread.join(timeout=10)
    writers_done.set()
    reader.join(timeout=10)

    assert not reader.is_alive()
    assert violations == []
    assert sum(wins) == len(trackers)
    assert last_seen == [_RANK[ConnectionState.DISCONNECTED]] * len(trackers)
    assert all(isinstance(tracker.state, ConnectionState) for tracker in trackers)



def test_foreign_thread_observes_transition():
    tracker = ConnectionTracker()
    observed = []
    ready = threading.Event()

    def _observe() -> None:
        ready.wait(timeout=5)
        observed.append(tracker.state)

    thread = threading.Thread(target=_observe)
    thread.start()
    tracker.transition(ConnectionState.CONNECTED)
    ready.set()
    thread.join(timeout=5)

    assert observed == [ConnectionState.CONNECTED]
