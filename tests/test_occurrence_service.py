"""
Occurrence Service Tests
========================
Numbering, first-occurrence bookkeeping, resolution with default and
override tables, truncation and redirection, all against the in-memory store.
"""
import threading
from datetime import datetime, timedelta, timezone

import pytest

from crashlog.core.errors import BugNotFound, OccurrenceNotFound, SequenceContentionError
from crashlog.models.backtrace import Thread
from crashlog.models.bug import Bug
from crashlog.models.frames import (
    ResolvedJavaFrame,
    ResolvedJSFrame,
    ResolvedNativeFrame,
    SourceFrame,
    UnresolvedJavaFrame,
    UnresolvedJSFrame,
    UnresolvedNativeFrame,
)
from crashlog.models.obfuscation_map import ObfuscationMap
from crashlog.models.occurrence import OccurrenceState
from crashlog.models.source_map import SourceMap, SourceMapping
from crashlog.models.symbolication import SymbolRange, Symbolication
from crashlog.services.occurrence_service import OccurrenceService
from crashlog.services.sequencer import NumberSequencer
from crashlog.services.store import InMemoryStore

T0 = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def service(store):
    return OccurrenceService(store, resolve_on_create=False)


def _bug(store, **fields):
    fields.setdefault("class_name", "NoMethodError")
    fields.setdefault("file", "app/models/user.rb")
    fields.setdefault("line", 10)
    return store.add_bug(Bug(**fields))


def _create(service, bug, minutes=0, **payload):
    return service.create(bug.id, occurred_at=T0 + timedelta(minutes=minutes), **payload)


def _native_threads(*addresses):
    return [Thread(name="main", faulted=True, frames=[UnresolvedNativeFrame(address=a) for a in addresses])]


# ===========================================================================
# 1. Numbering
# ===========================================================================
class TestNumbering:

    def test_numbers_are_one_to_n(self, store, service):
        bug = _bug(store)
        numbers = [_create(service, bug, minutes=i).number for i in range(5)]
        assert numbers == [1, 2, 3, 4, 5]

    def test_deleted_number_not_reused(self, store, service):
        bug = _bug(store)
        _create(service, bug)
        second = _create(service, bug)
        _create(service, bug)
        service.delete(second.id)

        assert _create(service, bug).number == 4

    def test_bugs_are_numbered_independently(self, store, service):
        first, second = _bug(store), _bug(store, line=99)
        _create(service, first)
        _create(service, first)
        assert _create(service, second).number == 1

    def test_concurrent_creation_never_duplicates(self, store, service):
        bug = _bug(store)
        numbers = []
        guard = threading.Lock()

        def worker():
            for _ in range(10):
                occurrence = _create(service, bug)
                with guard:
                    numbers.append(occurrence.number)

        workers = [threading.Thread(target=worker) for _ in range(8)]
        for w in workers:
            w.start()
        for w in workers:
            w.join()

        assert sorted(numbers) == list(range(1, 81))

    def test_sequencer_gives_up_after_max_retries(self, store):
        sequencer = NumberSequencer(store, max_retries=3)
        store.compare_and_set_counter = lambda *args: False
        with pytest.raises(SequenceContentionError) as info:
            sequencer.next_number(1)
        assert info.value.attempts == 3

    def test_lost_races_are_retried_until_success(self, store):
        sequencer = NumberSequencer(store, max_retries=0)
        real_cas = store.compare_and_set_counter
        losses = iter(range(75))

        def flaky_cas(bug_id, expected, new):
            if next(losses, None) is not None:
                return False
            return real_cas(bug_id, expected, new)

        store.compare_and_set_counter = flaky_cas
        assert sequencer.next_number(1) == 1
        assert store.read_counter(1) == 1

    def test_allocation_always_runs_inside_a_transaction(self, store):
        sequencer = NumberSequencer(store)
        real_read = store.read_counter
        seen = []

        def recording_read(bug_id):
            seen.append(store._current() is not None)
            return real_read(bug_id)

        store.read_counter = recording_read
        sequencer.next_number(1)
        assert seen == [True]

    def test_mixed_callers_outside_a_transaction(self, store, service):
        bug = _bug(store)
        numbers = []
        guard = threading.Lock()

        def via_service():
            for _ in range(10):
                occurrence = service.create_in_transaction(bug.id, occurred_at=T0)
                with guard:
                    numbers.append(occurrence.number)

        def via_sequencer():
            for _ in range(10):
                number = service.sequencer.next_number(bug.id)
                with guard:
                    numbers.append(number)

        workers = [threading.Thread(target=fn) for fn in (via_service, via_sequencer) * 4]
        for w in workers:
            w.start()
        for w in workers:
            w.join(timeout=10)

        assert not any(w.is_alive() for w in workers)
        assert sorted(numbers) == list(range(1, 81))
        assert store.get_bug(bug.id).first_occurrence == T0

    def test_unknown_bug(self, service):
        with pytest.raises(BugNotFound):
            service.create(404, occurred_at=T0)


# ===========================================================================
# 2. First occurrence
# ===========================================================================
class TestFirstOccurrence:

    def test_set_on_first_only(self, store, service):
        bug = _bug(store)
        _create(service, bug, minutes=0)
        _create(service, bug, minutes=30)
        assert store.get_bug(bug.id).first_occurrence == T0

    def test_naive_timestamp_treated_as_utc(self, store, service):
        bug = _bug(store)
        occurrence = service.create(bug.id, occurred_at=datetime(2024, 3, 1, 12, 0))
        assert occurrence.occurred_at == T0


# ===========================================================================
# 3. Resolution
# ===========================================================================
class TestResolution:

    def test_symbolicate_with_default_table(self, store, service):
        table = store.add_symbolication(Symbolication(ranges=[
            SymbolRange(start=1, end=10, file="foo.rb", line=15, symbol="bar"),
        ]))
        bug = _bug(store)
        occurrence = _create(service, bug, backtraces=_native_threads(1), symbolication_id=table.id)

        resolved = service.symbolicate(occurrence.id)

        assert resolved.faulted_backtrace() == [ResolvedNativeFrame(file="foo.rb", line=15, symbol="bar")]
        assert store.get_occurrence(occurrence.id).is_symbolicated()

    def test_symbolicate_with_override_table(self, store, service):
        bug = _bug(store)
        occurrence = _create(service, bug, backtraces=_native_threads(5))
        override = Symbolication(ranges=[SymbolRange(start=0, end=100, file="x.c", line=1, symbol="main")])

        resolved = service.symbolicate(occurrence.id, override)

        assert resolved.faulted_backtrace()[0].symbol == "main"

    def test_no_table_is_a_noop(self, store, service):
        bug = _bug(store)
        occurrence = _create(service, bug, backtraces=_native_threads(5))
        assert service.symbolicate(occurrence.id).backtraces == occurrence.backtraces

    def test_sourcemap_by_environment_and_revision(self, store, service):
        bug = _bug(store, environment_id=7)
        store.add_source_map(SourceMap(mappings=[SourceMapping(
            asset_url="app.min.js", line=1, column=3, source_file="src/a.js", source_line=9,
        )]), environment_id=7, revision="abc123")
        frame = UnresolvedJSFrame(asset_url="app.min.js", line=1, column=3)
        occurrence = _create(
            service, bug, revision="abc123",
            backtraces=[Thread(name="main", faulted=True, frames=[frame])],
        )

        resolved = service.sourcemap(occurrence.id)

        assert resolved.faulted_backtrace() == [ResolvedJSFrame(file="src/a.js", line=9)]
        assert resolved.is_sourcemapped()

    def test_deobfuscate_by_deploy(self, store, service):
        namespace = ObfuscationMap(deploy_id="d1")
        namespace.add_package_alias("com.foo", "A")
        namespace.add_class_alias("com.foo.Bar", "B", path="src/foo/Bar.java")
        namespace.add_method_alias("com.foo.Bar", "int baz(String)", "a")
        store.add_obfuscation_map(namespace)
        bug = _bug(store, deploy_id="d1")
        frame = UnresolvedJavaFrame(
            obfuscated_file="B.java", line=15,
            obfuscated_signature="int a(String)", obfuscated_class="com.A.B",
        )
        occurrence = _create(service, bug, backtraces=[Thread(name="main", faulted=True, frames=[frame])])

        resolved = service.deobfuscate(occurrence.id)

        assert resolved.faulted_backtrace() == [
            ResolvedJavaFrame(file="src/foo/Bar.java", line=15, signature="int baz(String)")
        ]

    def test_resolve_on_create_hook(self, store):
        service = OccurrenceService(store, resolve_on_create=True)
        table = store.add_symbolication(Symbolication(ranges=[
            SymbolRange(start=1, end=10, file="foo.rb", line=15, symbol="bar"),
        ]))
        bug = _bug(store)

        occurrence = _create(service, bug, backtraces=_native_threads(2), symbolication_id=table.id)

        assert occurrence.is_symbolicated()
        assert occurrence.faulted_backtrace()[0].file == "foo.rb"

    def test_resolution_only_touches_backtraces(self, store, service):
        table = store.add_symbolication(Symbolication(ranges=[
            SymbolRange(start=1, end=10, file="foo.rb", line=15, symbol="bar"),
        ]))
        bug = _bug(store)
        before = _create(
            service, bug, message="boom", client="ios 1.2", revision="r1",
            metadata={"user": 3}, backtraces=_native_threads(1), symbolication_id=table.id,
        )
        after = service.symbolicate(before.id)

        assert after.model_dump(exclude={"backtraces"}) == before.model_dump(exclude={"backtraces"})


# ===========================================================================
# 3b. Re-running a resolver
# ===========================================================================
def _symbol_table():
    return Symbolication(ranges=[SymbolRange(start=1, end=10, file="foo.rb", line=15, symbol="bar")])


def _js_table():
    return SourceMap(mappings=[SourceMapping(
        asset_url="app.min.js", line=1, column=3, source_file="src/a.js", source_line=9,
    )])


def _java_table():
    namespace = ObfuscationMap()
    namespace.add_package_alias("com.foo", "A")
    namespace.add_class_alias("com.foo.Bar", "B", path="src/foo/Bar.java")
    namespace.add_method_alias("com.foo.Bar", "int baz(String)", "a")
    return namespace


# (method name on both service and occurrence, table factory, unresolved frame)
DOMAINS = [
    ("symbolicate", _symbol_table, UnresolvedNativeFrame(address=2)),
    ("sourcemap", _js_table, UnresolvedJSFrame(asset_url="app.min.js", line=1, column=3)),
    ("deobfuscate", _java_table, UnresolvedJavaFrame(
        obfuscated_file="B.java", line=15,
        obfuscated_signature="int a(String)", obfuscated_class="com.A.B",
    )),
]

READABLE = [Thread(name="Thread 0", faulted=True, frames=[
    SourceFrame(file="/usr/bin/gist", line=313, symbol="<main>"),
    SourceFrame(file="_JAVA_", line=87, symbol="timeout"),
    ResolvedNativeFrame(file="foo.rb", line=15, symbol="bar"),
    ResolvedJSFrame(file="src/a.js", line=9),
    ResolvedJavaFrame(file="src/foo/Bar.java", line=15, signature="int baz(String)"),
])]


class TestRepeatedResolution:

    @pytest.mark.parametrize("method,make_table,frame", DOMAINS)
    def test_second_pass_changes_nothing(self, store, service, method, make_table, frame):
        table = make_table()
        occurrence = _create(service, _bug(store), backtraces=[Thread(name="main", faulted=True, frames=[frame])])

        first = getattr(service, method)(occurrence.id, table)
        assert first.backtraces != occurrence.backtraces

        stored = store.get_occurrence(occurrence.id)
        assert getattr(stored, method)(table) is False
        assert stored == first

        getattr(service, method)(occurrence.id, table)
        assert store.get_occurrence(occurrence.id) == first

    @pytest.mark.parametrize("method,make_table,frame", DOMAINS)
    def test_readable_trace_is_left_alone(self, store, service, method, make_table, frame):
        occurrence = _create(service, _bug(store), backtraces=READABLE)

        assert getattr(store.get_occurrence(occurrence.id), method)(make_table()) is False
        assert getattr(service, method)(occurrence.id, make_table()).backtraces == READABLE
        assert store.get_occurrence(occurrence.id) == occurrence


# ===========================================================================
# 4. Truncation / redirection
# ===========================================================================
class TestTruncation:

    def test_truncate_drops_payload_keeps_provenance(self, store, service):
        bug = _bug(store)
        occurrence = _create(service, bug, message="boom", client="web", metadata={"k": 1},
                             backtraces=_native_threads(1))

        truncated = service.truncate(occurrence.id)

        assert truncated.truncated
        assert truncated.state is OccurrenceState.TRUNCATED
        assert truncated.backtraces is None and truncated.metadata is None
        assert (truncated.message, truncated.client, truncated.number) == ("boom", "web", 1)

    def test_resolvers_are_noops_after_truncate(self, store, service):
        table = store.add_symbolication(Symbolication(ranges=[
            SymbolRange(start=1, end=10, file="foo.rb", line=15, symbol="bar"),
        ]))
        bug = _bug(store)
        occurrence = _create(service, bug, backtraces=_native_threads(1), symbolication_id=table.id)
        before = service.truncate(occurrence.id)

        service.symbolicate(occurrence.id)
        service.sourcemap(occurrence.id)
        service.deobfuscate(occurrence.id)

        assert store.get_occurrence(occurrence.id) == before

    def test_truncate_is_idempotent(self, store, service):
        occurrence = _create(service, _bug(store))
        first = service.truncate(occurrence.id)
        assert service.truncate(occurrence.id) == first

    def test_batch_truncate(self, store, service):
        bug = _bug(store)
        ids = [_create(service, bug).id for _ in range(3)]
        service.truncate(ids[0])

        assert service.truncate_many(ids + [ids[1]]) == 2
        assert all(store.get_occurrence(i).truncated for i in ids)

    def test_batch_truncate_is_all_or_nothing(self, store, service):
        occurrence = _create(service, _bug(store))
        with pytest.raises(OccurrenceNotFound):
            service.truncate_many([occurrence.id, 999])
        assert not store.get_occurrence(occurrence.id).truncated

    def test_redirect(self, store, service):
        bug = _bug(store)
        first, second = _create(service, bug), _create(service, bug)

        redirected = service.redirect(first.id, second.id)

        assert redirected.truncated
        assert redirected.redirect_target_id == second.id
        assert service.resolve_redirect_chain(first.id).id == second.id

    def test_redirect_to_self_rejected(self, store, service):
        occurrence = _create(service, _bug(store))
        with pytest.raises(ValueError):
            service.redirect(occurrence.id, occurrence.id)
        assert not store.get_occurrence(occurrence.id).truncated

    def test_redirect_chain_is_followed_to_the_end(self, store, service):
        bug = _bug(store)
        a, b, c = (_create(service, bug) for _ in range(3))
        service.redirect(a.id, b.id)
        service.redirect(b.id, c.id)
        assert service.resolve_redirect_chain(a.id).id == c.id
