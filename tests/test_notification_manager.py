import threading

from pulsetrade.notification_manager import NotificationManager


def test_room_events_reach_only_that_user(notifications, make_recorder):
    alice, bob, anonymous = make_recorder(), make_recorder(), make_recorder()
    notifications.subscribe(alice, user_id=1)
    notifications.subscribe(bob, user_id=2)
    notifications.subscribe(anonymous)

    notifications.notify_balance_update(1, "10.00")
    notifications.flush()

    assert alice.events == [("balance-update", {"balance": "10.00"})]
    assert bob.events == []
    assert anonymous.events == []


def test_broadcast_reaches_everyone(notifications, make_recorder):
    alice, anonymous = make_recorder(), make_recorder()
    notifications.subscribe(alice, user_id=1)
    notifications.subscribe(anonymous)

    notifications.notify_trade_completed(7, 1, "win", "completed")
    notifications.flush()

    expected = [("trade-completed", {"tradeId": 7, "userId": 1, "result": "win", "status": "completed"})]
    assert alice.events == expected
    assert anonymous.events == expected


def test_join_room_and_unsubscribe(notifications, make_recorder):
    recorder = make_recorder()
    subscription_id = notifications.subscribe(recorder)

    notifications.join_room(subscription_id, 5)
    notifications.notify_trade_update(5, {"id": 1})
    notifications.flush()
    notifications.unsubscribe(subscription_id)
    notifications.notify_trade_update(5, {"id": 2})
    notifications.flush()

    assert recorder.events == [("trade-update", {"id": 1})]


def test_failing_subscriber_does_not_block_others(notifications, make_recorder):
    def broken(event, payload):
        raise RuntimeError("socket closed")

    recorder = make_recorder()
    notifications.subscribe(broken, user_id=1)
    notifications.subscribe(recorder, user_id=1)

    notifications.notify_balance_update(1, "1.00")

    assert notifications.flush() == 1
    assert recorder.names() == ["balance-update"]


def test_background_thread_delivers():
    manager = NotificationManager()
    delivered = threading.Event()
    manager.subscribe(lambda event, payload: delivered.set(), user_id=1)

    manager.start()
    try:
        manager.notify_balance_update(1, "5.00")
        assert delivered.wait(timeout=5)
    finally:
        manager.stop()
    assert not manager.running
