"""
Frame Models
============
Tagged union of every stack-frame shape an occurrence can carry.

Each variant is a frozen pydantic model discriminated by ``kind``. A frame is
either unresolved for one domain (native, JavaScript, Java), resolved for that
domain, or a plain source frame that no resolver ever touches.

    native        → symbolicated    (Symbolication lookup by address)
    js_asset      → sourcemapped    (SourceMap lookup by asset/line/column)
    java          → deobfuscated    (ObfuscationMap lookup by class/method)
    source                          (already human-readable)

Frames are hashable, so resolvers can memoize by frame within one pass.
"""
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from crashlog.core.constants import (
    KIND_DEOBFUSCATED,
    KIND_JAVA,
    KIND_JS_ASSET,
    KIND_NATIVE,
    KIND_SOURCE,
    KIND_SOURCEMAPPED,
    KIND_SYMBOLICATED,
)


class _Frame(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class UnresolvedNativeFrame(_Frame):
    kind: Literal["native"] = KIND_NATIVE
    address: int = Field(ge=0)
    raw_symbol: Optional[str] = None


class ResolvedNativeFrame(_Frame):
    kind: Literal["symbolicated"] = KIND_SYMBOLICATED
    file: str
    line: int
    symbol: str


class UnresolvedJSFrame(_Frame):
    kind: Literal["js_asset"] = KIND_JS_ASSET
    asset_url: str
    line: int
    column: int
    raw_symbol: Optional[str] = None
    source_text: Optional[str] = None


class ResolvedJSFrame(_Frame):
    kind: Literal["sourcemapped"] = KIND_SOURCEMAPPED
    file: str
    line: int
    symbol: Optional[str] = None


class UnresolvedJavaFrame(_Frame):
    kind: Literal["java"] = KIND_JAVA
    obfuscated_file: str
    line: int
    obfuscated_signature: str
    obfuscated_class: str


class ResolvedJavaFrame(_Frame):
    kind: Literal["deobfuscated"] = KIND_DEOBFUSCATED
    file: str
    line: int
    signature: str


class SourceFrame(_Frame):
    kind: Literal["source"] = KIND_SOURCE
    file: str
    line: int
    symbol: Optional[str] = None


Frame = Annotated[
    Union[
        UnresolvedNativeFrame,
        ResolvedNativeFrame,
        UnresolvedJSFrame,
        ResolvedJSFrame,
        UnresolvedJavaFrame,
        ResolvedJavaFrame,
        SourceFrame,
    ],
    Field(discriminator="kind"),
]


# ---------------------------------------------------------------------------
# Eligibility
# ---------------------------------------------------------------------------
def needs_symbolication(frame: _Frame, include_symbolized: bool = False) -> bool:
    """
    True if a native resolver should try to map this frame.

    A native frame that arrived with a raw symbol was already symbolized on
    the client; it is only re-resolved when ``include_symbolized`` is set.
    """
    if not isinstance(frame, UnresolvedNativeFrame):
        return False
    return include_symbolized or frame.raw_symbol is None


def needs_sourcemapping(frame: _Frame) -> bool:
    return isinstance(frame, UnresolvedJSFrame)


def needs_deobfuscation(frame: _Frame) -> bool:
    return isinstance(frame, UnresolvedJavaFrame)
