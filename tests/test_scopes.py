import threading
import unittest

import pytest

from wirebind import Injector, MapScopeHandler, ThreadLocalScopeHandler, inject, pre_destroy, scoped, singleton


REQUEST = "request"
SESSION = object()


@singleton
class Clock:
    destroyed = 0

    @pre_destroy
    def stop(self) -> None:
        Clock.destroyed += 1


class SubClock(Clock): ...


@scoped(REQUEST)
class RequestContext:
    closed = 0

    @pre_destroy
    def close(self) -> None:
        RequestContext.closed += 1


@scoped(SESSION)
class Session: ...


@scoped("unregistered")
class Floating: ...


class UsesClock:
    @inject
    def __init__(self, clock: Clock, context: RequestContext) -> None:
        self.clock = clock
        self.context = context


class TestSingletonScope(unittest.TestCase):
    injector: Injector

    def setUp(self):
        Clock.destroyed = 0
        self.injector = Injector()

    def test_singleton_returns_same_instance(self):
        assert self.injector.inject(Clock) is self.injector.inject(Clock)

    def test_singleton_is_shared_between_dependents(self):
        self.injector.register_scope(REQUEST, MapScopeHandler())
        a = self.injector.inject(UsesClock)
        b = self.injector.inject(UsesClock)
        assert a is not b
        assert a.clock is b.clock

    def test_singleton_marker_is_not_inherited(self):
        assert self.injector.inject(SubClock) is not self.injector.inject(SubClock)

    def test_shutdown_destroys_singletons_and_starts_over(self):
        first = self.injector.inject(Clock)
        self.injector.shutdown()
        assert Clock.destroyed == 1
        assert self.injector.inject(Clock) is not first

    def test_shutdown_is_idempotent(self):
        self.injector.inject(Clock)
        self.injector.shutdown()
        self.injector.shutdown()
        assert Clock.destroyed == 1

    def test_context_manager_shuts_down(self):
        with Injector() as injector:
            injector.inject(Clock)
        assert Clock.destroyed == 1


class TestCustomScopes(unittest.TestCase):
    injector: Injector

    def setUp(self):
        RequestContext.closed = 0
        self.injector = Injector()

    def test_registered_handler_decides_identity(self):
        handler = MapScopeHandler()
        self.injector.register_scope(REQUEST, handler)
        a = self.injector.inject(RequestContext)
        assert self.injector.inject(RequestContext) is a
        assert handler.instances[RequestContext] is a

    def test_cleared_handler_gives_new_instance(self):
        handler = MapScopeHandler()
        self.injector.register_scope(REQUEST, handler)
        a = self.injector.inject(RequestContext)
        handler.clear()
        assert self.injector.inject(RequestContext) is not a

    def test_replaced_handler_no_longer_used(self):
        first = MapScopeHandler()
        second = MapScopeHandler()
        self.injector.register_scope(REQUEST, first)
        self.injector.inject(RequestContext)
        self.injector.register_scope(REQUEST, second)
        self.injector.inject(RequestContext)
        self.injector.inject(RequestContext)
        assert len(first.instances) == 1
        assert len(second.instances) == 1
        assert first.instances[RequestContext] is not second.instances[RequestContext]

    def test_unregistered_scope_gives_new_instances(self):
        assert self.injector.inject(Floating) is not self.injector.inject(Floating)

    def test_any_hashable_marker(self):
        self.injector.register_scope(SESSION, MapScopeHandler())
        assert self.injector.inject(Session) is self.injector.inject(Session)

    def test_shutdown_closes_handlers_and_destroys_their_instances(self):
        handler = MapScopeHandler(self.injector.destroy)
        self.injector.register_scope(REQUEST, handler)
        self.injector.inject(RequestContext)
        self.injector.shutdown()
        assert RequestContext.closed == 1
        assert handler.instances == {}

    def test_handler_failure_does_not_stop_shutdown(self):
        class Broken:
            def get(self, cls, supplier):
                return supplier()

            def close(self):
                raise RuntimeError("broken")

        good = MapScopeHandler(self.injector.destroy)
        self.injector.register_scope("broken", Broken())
        self.injector.register_scope(REQUEST, good)
        self.injector.inject(RequestContext)
        self.injector.shutdown()
        assert RequestContext.closed == 1

    def test_register_scope_validation(self):
        with pytest.raises(ValueError):
            self.injector.register_scope(None, MapScopeHandler())
        with pytest.raises(TypeError):
            self.injector.register_scope(REQUEST, object())  # type: ignore[arg-type]

    def test_scoped_requires_marker(self):
        with pytest.raises(ValueError):
            scoped(None)


def test_thread_local_handler_gives_one_instance_per_thread():
    injector = Injector()
    injector.register_scope(REQUEST, ThreadLocalScopeHandler())
    main = injector.inject(RequestContext)
    assert injector.inject(RequestContext) is main

    seen = []

    def worker():
        seen.append(injector.inject(RequestContext))
        seen.append(injector.inject(RequestContext))

    t = threading.Thread(target=worker)
    t.start()
    t.join()
    assert seen[0] is seen[1]
    assert seen[0] is not main


def test_thread_local_close_destroys_calling_thread_instances():
    RequestContext.closed = 0
    injector = Injector()
    handler = ThreadLocalScopeHandler(injector.destroy)
    injector.register_scope(REQUEST, handler)
    first = injector.inject(RequestContext)
    handler.close()
    assert RequestContext.closed == 1
    assert injector.inject(RequestContext) is not first
