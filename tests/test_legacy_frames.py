"""
Unit Tests: Legacy Frame Decoder and Frame Union
=================================================
Array-encoded backtraces from older clients, and the tagged JSON shape the
API accepts.
"""
import pytest
from pydantic import TypeAdapter

from crashlog.models.backtrace import Thread, is_deobfuscated, is_sourcemapped, is_symbolicated
from crashlog.models.frames import (
    Frame,
    ResolvedNativeFrame,
    SourceFrame,
    UnresolvedJavaFrame,
    UnresolvedJSFrame,
    UnresolvedNativeFrame,
    needs_symbolication,
)
from crashlog.parser.legacy_frames import parse_legacy_backtraces, parse_legacy_frame


# ===========================================================================
# 1. Single frames
# ===========================================================================
class TestParseLegacyFrame:

    def test_native_without_symbol(self):
        frame = parse_legacy_frame(["_RETURN_ADDRESS_", 12])
        assert frame == UnresolvedNativeFrame(address=12)
        assert frame.raw_symbol is None

    def test_native_with_symbol(self):
        frame = parse_legacy_frame(["_RETURN_ADDRESS_", 10, "timeout"])
        assert frame.address == 10
        assert frame.raw_symbol == "timeout"

    def test_js_asset(self):
        frame = parse_legacy_frame(["_JS_ASSET_", "https://cdn/app.min.js", 1, 2042, "e", "a.b()"])
        assert isinstance(frame, UnresolvedJSFrame)
        assert frame.asset_url == "https://cdn/app.min.js"
        assert (frame.line, frame.column) == (1, 2042)
        assert frame.raw_symbol == "e"
        assert frame.source_text == "a.b()"

    def test_js_asset_minimal(self):
        frame = parse_legacy_frame(["_JS_ASSET_", "app.js", 3, 4])
        assert frame.raw_symbol is None
        assert frame.source_text is None

    def test_java(self):
        frame = parse_legacy_frame(["_JAVA_", "B.java", 15, "int a(String)", "com.A.B"])
        assert frame == UnresolvedJavaFrame(
            obfuscated_file="B.java", line=15,
            obfuscated_signature="int a(String)", obfuscated_class="com.A.B",
        )

    def test_source(self):
        frame = parse_legacy_frame(["app/models/user.rb", 42, "save"])
        assert frame == SourceFrame(file="app/models/user.rb", line=42, symbol="save")

    def test_numeric_strings_are_accepted(self):
        assert parse_legacy_frame(["_RETURN_ADDRESS_", "7"]).address == 7

    def test_marker_with_foreign_shape_is_source_frame(self):
        assert parse_legacy_frame(["_JAVA_", 87, "timeout"]) == SourceFrame(file="_JAVA_", line=87, symbol="timeout")
        assert parse_legacy_frame(["_JS_ASSET_", 4, "go"]) == SourceFrame(file="_JS_ASSET_", line=4, symbol="go")

    @pytest.mark.parametrize("raw", [
        [],
        "not-a-frame",
        ["_RETURN_ADDRESS_"],
        ["_RETURN_ADDRESS_", "zero"],
        ["_RETURN_ADDRESS_", True],
        ["_JS_ASSET_", "app.js", 1],
        ["_JAVA_", "B.java", 15, "a()"],
        ["only-a-file"],
    ])
    def test_malformed_frames_raise(self, raw):
        with pytest.raises(ValueError):
            parse_legacy_frame(raw)

    def test_negative_address_rejected(self):
        with pytest.raises(ValueError):
            parse_legacy_frame(["_RETURN_ADDRESS_", -1])


# ===========================================================================
# 2. Whole backtraces
# ===========================================================================
class TestParseLegacyBacktraces:

    def test_threads_and_faulted_flag(self):
        threads = parse_legacy_backtraces([
            ["main", True, [["_RETURN_ADDRESS_", 1], ["lib.rb", 3]]],
            ["worker", False, []],
        ])
        assert [t.name for t in threads] == ["main", "worker"]
        assert threads[0].faulted and not threads[1].faulted
        assert len(threads[0].frames) == 2

    def test_error_names_position(self):
        with pytest.raises(ValueError, match=r"Thread #0, frame #1"):
            parse_legacy_backtraces([["main", True, [["lib.rb", 3], ["_JAVA_"]]]])

    def test_thread_shape_enforced(self):
        with pytest.raises(ValueError, match="Thread #0"):
            parse_legacy_backtraces([["main", True]])

    def test_readable_trace_with_marker_lookalike(self):
        threads = parse_legacy_backtraces([["Thread 0", True, [
            ["/usr/bin/gist", 313, "<main>"],
            ["/usr/lib/ruby/1.9.1/net/http.rb", 644, "connect"],
            ["_JAVA_", 87, "timeout"],
            ["/usr/lib/ruby/1.9.1/timeout.rb", 44, "timeout"],
        ]]])
        assert all(isinstance(f, SourceFrame) for f in threads[0].frames)
        assert is_deobfuscated(threads)
        assert is_sourcemapped(threads)
        assert is_symbolicated(threads)

    def test_empty_payload(self):
        assert parse_legacy_backtraces([]) == []
        assert parse_legacy_backtraces(None) == []


# ===========================================================================
# 3. Tagged union
# ===========================================================================
class TestFrameUnion:

    def test_discriminator_selects_variant(self):
        adapter = TypeAdapter(Frame)
        frame = adapter.validate_python({"kind": "symbolicated", "file": "foo.rb", "line": 15, "symbol": "bar"})
        assert frame == ResolvedNativeFrame(file="foo.rb", line=15, symbol="bar")

    def test_unknown_kind_rejected(self):
        with pytest.raises(ValueError):
            TypeAdapter(Frame).validate_python({"kind": "cobol", "file": "x"})

    def test_thread_round_trips_through_json(self):
        thread = Thread(name="main", faulted=True, frames=[
            UnresolvedNativeFrame(address=1),
            SourceFrame(file="a.rb", line=1),
        ])
        assert Thread.model_validate_json(thread.model_dump_json()) == thread

    def test_frames_are_hashable(self):
        assert len({UnresolvedNativeFrame(address=5), UnresolvedNativeFrame(address=5)}) == 1

    def test_raw_symbol_blocks_symbolication_by_default(self):
        frame = UnresolvedNativeFrame(address=10, raw_symbol="timeout")
        assert not needs_symbolication(frame)
        assert needs_symbolication(frame, include_symbolized=True)
