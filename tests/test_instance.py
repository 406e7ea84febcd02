import abc
import gc
import unittest

import pytest

from wirebind import (
    ANY,
    DEFAULT,
    Injector,
    Instance,
    InstanceHandle,
    ResolutionError,
    UnsatisfiedResolutionError,
    named,
    pre_destroy,
    qualified,
    qualifier,
    singleton,
)


DESTROYED: list[object] = []


class Codec(abc.ABC):
    @abc.abstractmethod
    def encode(self, value: str) -> bytes: ...

    @pre_destroy
    def release(self) -> None:
        DESTROYED.append(self)


class Utf8(Codec):
    def encode(self, value: str) -> bytes:
        return value.encode("utf-8")


@qualified(named("latin"))
class Latin1(Codec):
    def encode(self, value: str) -> bytes:
        return value.encode("latin-1")


@qualified(named("ascii"), qualifier("strict"))
class Ascii(Codec):
    def encode(self, value: str) -> bytes:
        return value.encode("ascii")


class Missing(abc.ABC): ...


@singleton
class Registry:
    @pre_destroy
    def release(self) -> None:
        DESTROYED.append(self)


class Unhashable:
    __hash__ = None  # type: ignore[assignment]

    @pre_destroy
    def release(self) -> None:
        DESTROYED.append(self)


class Slotted:
    __slots__ = ()

    @pre_destroy
    def release(self) -> None:
        DESTROYED.append(self)


UNIVERSE = (Codec, Utf8, Latin1, Ascii, Missing, Registry, Unhashable, Slotted)


class TestInstance(unittest.TestCase):
    injector: Injector

    def setUp(self):
        DESTROYED.clear()
        self.injector = Injector(classes=UNIVERSE)

    def test_get_resolves_lazily(self):
        codecs = self.injector.instance(Codec)
        assert isinstance(codecs.get(), Utf8)
        assert codecs.get() is not codecs.get()

    def test_zero_candidates(self):
        missing = self.injector.instance(Missing)
        assert missing.is_unsatisfied()
        assert not missing.is_ambiguous()
        assert list(missing) == []
        with pytest.raises(UnsatisfiedResolutionError):
            missing.get()

    def test_any_iterates_every_candidate(self):
        codecs = self.injector.instance(Codec, ANY)
        assert not codecs.is_unsatisfied()
        assert codecs.is_ambiguous()
        assert {type(c) for c in codecs} == {Utf8, Latin1, Ascii}

    def test_iteration_builds_instances_lazily(self):
        iterator = iter(self.injector.instance(Codec, ANY))
        first = next(iterator)
        assert isinstance(first, Codec)

    def test_default_iterates_unqualified_candidates(self):
        assert [type(c) for c in self.injector.instance(Codec)] == [Utf8]

    def test_select_returns_a_new_handle(self):
        codecs = self.injector.instance(Codec)
        latin = codecs.select(named("latin"))
        assert latin is not codecs
        assert codecs.qualifiers == {DEFAULT}
        assert latin.qualifiers == {named("latin")}
        assert isinstance(latin.get(), Latin1)
        assert isinstance(codecs.get(), Utf8)

    def test_select_replaces_qualifier_with_same_tag(self):
        latin = self.injector.instance(Codec).select(named("latin"))
        ascii_ = latin.select(named("ascii"))
        assert ascii_.qualifiers == {named("ascii")}
        strict = ascii_.select(qualifier("strict"))
        assert strict.qualifiers == {named("ascii"), qualifier("strict")}
        assert isinstance(strict.get(), Ascii)

    def test_select_subtype(self):
        latin = self.injector.instance(Codec, ANY).select(Latin1)
        assert latin.type is Latin1
        assert isinstance(latin.get(), Latin1)

    def test_select_unrelated_type_raises(self):
        with pytest.raises(ValueError):
            self.injector.instance(Codec).select(Registry)

    def test_select_rejects_non_qualifiers(self):
        with pytest.raises(TypeError):
            self.injector.instance(Codec).select(Utf8, "latin")

    def test_destroy_runs_hooks_once(self):
        codecs = self.injector.instance(Codec)
        codec = codecs.get()
        codecs.destroy(codec)
        codecs.destroy(codec)
        codecs.destroy(None)
        assert DESTROYED == [codec]

    def test_destroy_handles_unhashable_instances(self):
        handle = self.injector.instance(Unhashable)
        obj = handle.get()
        handle.destroy(obj)
        handle.destroy(obj)
        assert DESTROYED == [obj]

    def test_destroyed_instances_are_not_kept_alive(self):
        codecs = self.injector.instance(Codec)
        codec = codecs.get()
        codecs.destroy(codec)
        assert len(codecs._destroyed) == 1  # noqa: SLF001
        DESTROYED.clear()
        del codec
        gc.collect()
        assert codecs._destroyed == {}  # noqa: SLF001

    def test_destroy_without_weak_references_is_not_tracked(self):
        slotted = self.injector.instance(Slotted)
        obj = slotted.get()
        slotted.destroy(obj)
        slotted.destroy(obj)
        assert DESTROYED == [obj, obj]
        assert slotted._destroyed == {}  # noqa: SLF001

    def test_destroy_leaves_singletons_alone(self):
        registry = self.injector.instance(Registry)
        instance = registry.get()
        registry.destroy(instance)
        assert DESTROYED == []
        assert registry.get() is instance

    def test_get_wraps_unexpected_errors(self):
        class Boom(Exception): ...

        def explode(*_):
            raise Boom("boom")

        codecs = self.injector.instance(Codec)
        self.injector.inject = explode  # type: ignore[method-assign]
        with pytest.raises(ResolutionError) as ctx:
            codecs.get()
        assert isinstance(ctx.value.__cause__, Boom)

    def test_repr(self):
        assert repr(self.injector.instance(Codec, named("latin"))) == "Instance[Codec](@named(value='latin'))"

    def test_requires_a_type(self):
        with pytest.raises(TypeError):
            Instance(self.injector, "Codec")


class TestInstanceHandle(unittest.TestCase):
    injector: Injector

    def setUp(self):
        DESTROYED.clear()
        self.injector = Injector(classes=UNIVERSE)

    def test_get_handle_constructs_on_first_get(self):
        handle = self.injector.instance(Codec, named("latin")).get_handle()
        assert isinstance(handle, InstanceHandle)
        assert handle.bean_class is Latin1
        first = handle.get()
        assert handle.get() is first

    def test_get_handle_of_unsatisfied_type_raises(self):
        with pytest.raises(UnsatisfiedResolutionError):
            self.injector.instance(Missing).get_handle()

    def test_handles_cover_every_candidate(self):
        handles = self.injector.instance(Codec, ANY).handles()
        assert {h.bean_class for h in handles} == {Utf8, Latin1, Ascii}
        assert DESTROYED == []

    def test_destroy_is_idempotent_and_final(self):
        handle = self.injector.instance(Codec).get_handle()
        codec = handle.get()
        handle.destroy()
        handle.destroy()
        assert DESTROYED == [codec]
        with pytest.raises(ResolutionError):
            handle.get()

    def test_destroy_before_get_runs_no_hook(self):
        handle = self.injector.instance(Codec).get_handle()
        handle.destroy()
        assert DESTROYED == []

    def test_handle_is_a_context_manager(self):
        with self.injector.instance(Codec).get_handle() as handle:
            codec = handle.get()
        assert DESTROYED == [codec]

    def test_singleton_handle_leaves_instance_alive(self):
        handle = self.injector.instance(Registry).get_handle()
        registry = handle.get()
        handle.destroy()
        assert DESTROYED == []
        assert self.injector.inject(Registry) is registry
