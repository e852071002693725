import threading
from lutbatch.infrastructure.event_bus import EventBus
from lutbatch.domain.events import Event


class MockEvent(Event):
    message: str


class OtherEvent(Event):
    pass


def test_event_bus_subscribe_publish():
    bus = EventBus()
    received_events = []

    bus.subscribe(MockEvent, received_events.append)
    bus.publish(MockEvent(message="hello"))

    assert len(received_events) == 1
    assert received_events[0].message == "hello"


def test_event_bus_multiple_subscribers():
    bus = EventBus()
    results = {"a": False, "b": False}

    bus.subscribe(MockEvent, lambda e: results.update({"a": True}))
    bus.subscribe(MockEvent, lambda e: results.update({"b": True}))

    bus.publish(MockEvent(message="test"))

    assert results["a"] is True
    assert results["b"] is True


def test_event_bus_decorator_subscribe():
    bus = EventBus()
    received = []

    @bus.subscribe(MockEvent)
    def on_event(event: MockEvent):
        received.append(event.message)

    bus.publish(MockEvent(message="decorated"))

    assert received == ["decorated"]
    assert callable(on_event)


def test_event_bus_dispatches_by_exact_type():
    bus = EventBus()
    received = []
    bus.subscribe(OtherEvent, received.append)

    bus.publish(MockEvent(message="ignored"))

    assert received == []


def test_event_bus_subscribe_during_publish():
    bus = EventBus()
    late = []

    def first(event):
        bus.subscribe(MockEvent, late.append)

    bus.subscribe(MockEvent, first)
    bus.publish(MockEvent(message="one"))
    assert late == []

    bus.publish(MockEvent(message="two"))
    assert [e.message for e in late] == ["two"]


def test_event_bus_publish_from_threads():
    bus = EventBus()
    received = []
    lock = threading.Lock()

    def on_event(event):
        with lock:
            received.append(event.message)

    bus.subscribe(MockEvent, on_event)
    threads = [threading.Thread(target=bus.publish, args=(MockEvent(message=str(i)),)) for i in range(20)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted(received, key=int) == [str(i) for i in range(20)]
