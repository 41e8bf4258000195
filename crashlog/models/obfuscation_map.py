"""
Obfuscation Map Model
=====================
ProGuard-style namespace describing how a Java/Android build renamed its
packages, classes and methods.

Three alias tables compose during deobfuscation:

    package alias   com.foo            → alias segment "A"   (so com.A == com.foo)
    class alias     com.foo.Bar        → alias "B", source path src/foo/Bar.java
    method alias    (com.foo.Bar, "int baz(java.lang.String)") → alias "a"

Resolving ``com.A.B`` walks the obfuscated package segment by segment, then
looks the short class name up under the real package. Aliases may be added in
any order; nothing is precomputed from an earlier alias.
"""
import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, PrivateAttr

from crashlog.core.errors import MalformedTableError

_PRIMITIVES = frozenset({
    "void", "boolean", "byte", "char", "short", "int", "long", "float", "double",
})

# [modifiers...] [return-type] name(args)
_SIGNATURE = re.compile(
    r"^\s*(?:(?P<prefix>.*\S)\s+)?(?P<name>[\w$<>]+)\s*\((?P<args>[^()]*)\)\s*$"
)


@dataclass(frozen=True)
class MethodSignature:
    """Parsed ``return name(args)``; ``return_type`` is None for bare names."""
    name: str
    return_type: Optional[str] = None
    arguments: Optional[Tuple[str, ...]] = None


def parse_signature(text: str) -> MethodSignature:
    """
    Parse a Java method signature.

    A string without parentheses is treated as a bare method name. Raises
    ValueError on anything else that does not look like a signature.
    """
    text = text.strip()
    if "(" not in text and ")" not in text:
        if not text or " " in text:
            raise ValueError(f"Unparseable method signature: {text!r}")
        return MethodSignature(name=text)

    match = _SIGNATURE.match(text)
    if not match:
        raise ValueError(f"Unparseable method signature: {text!r}")

    prefix = match.group("prefix")
    return_type = prefix.split()[-1] if prefix else None
    raw_args = match.group("args").strip()
    arguments = tuple(a.strip() for a in raw_args.split(",")) if raw_args else ()
    return MethodSignature(name=match.group("name"), return_type=return_type, arguments=arguments)


def _split_qualified(name: str) -> Tuple[str, str]:
    package, _, short = name.rpartition(".")
    return package, short


class PackageAlias(BaseModel):
    model_config = ConfigDict(frozen=True)

    real_name: str
    alias: str


class ClassAlias(BaseModel):
    model_config = ConfigDict(frozen=True)

    real_name: str
    alias: str
    path: Optional[str] = None

    @property
    def package(self) -> str:
        return _split_qualified(self.real_name)[0]


class MethodAlias(BaseModel):
    model_config = ConfigDict(frozen=True)

    class_name: str
    signature: str
    alias: str


class ObfuscationMap(BaseModel):
    id: Optional[int] = None
    deploy_id: Optional[str] = None
    packages: List[PackageAlias] = []
    classes: List[ClassAlias] = []
    methods: List[MethodAlias] = []

    # (real parent package, alias segment) → real package
    _package_children: Dict[Tuple[str, str], str] = PrivateAttr(default_factory=dict)
    # (real package, alias short name) → class alias
    _classes: Dict[Tuple[str, str], ClassAlias] = PrivateAttr(default_factory=dict)
    # real class → [(alias, parsed real signature, real signature text)]
    _methods: Dict[str, List[Tuple[str, MethodSignature, str]]] = PrivateAttr(default_factory=dict)

    def model_post_init(self, __context) -> None:
        self._package_children = {}
        self._classes = {}
        self._methods = {}
        for package in self.packages:
            self._index_package(package)
        for klass in self.classes:
            self._index_class(klass)
        for method in self.methods:
            self._index_method(method)

    # -- indexing ----------------------------------------------------------
    def _index_package(self, package: PackageAlias) -> None:
        parent, segment = _split_qualified(package.real_name)
        if not segment or not package.alias or "." in package.alias:
            raise MalformedTableError(f"Invalid package alias {package.alias!r} for {package.real_name!r}")
        self._package_children[(parent, package.alias)] = package.real_name

    def _index_class(self, klass: ClassAlias) -> None:
        package, short = _split_qualified(klass.real_name)
        if not short or not klass.alias or "." in klass.alias:
            raise MalformedTableError(f"Invalid class alias {klass.alias!r} for {klass.real_name!r}")
        self._classes[(package, klass.alias)] = klass

    def _index_method(self, method: MethodAlias) -> None:
        try:
            parsed = parse_signature(method.signature)
        except ValueError as e:
            raise MalformedTableError(str(e)) from e
        if parsed.arguments is None:
            raise MalformedTableError(f"Method alias needs a full signature: {method.signature!r}")
        self._methods.setdefault(method.class_name, []).append(
            (method.alias, parsed, method.signature)
        )

    # -- building ----------------------------------------------------------
    def add_package_alias(self, real_name: str, alias: str) -> PackageAlias:
        package = PackageAlias(real_name=real_name, alias=alias)
        self._index_package(package)
        self.packages.append(package)
        return package

    def add_class_alias(self, real_name: str, alias: str, path: Optional[str] = None) -> ClassAlias:
        klass = ClassAlias(real_name=real_name, alias=alias, path=path)
        self._index_class(klass)
        self.classes.append(klass)
        return klass

    def add_method_alias(self, class_name: str, signature: str, alias: str) -> MethodAlias:
        method = MethodAlias(class_name=class_name, signature=signature, alias=alias)
        self._index_method(method)
        self.methods.append(method)
        return method

    # -- lookups -----------------------------------------------------------
    def deobfuscate_package(self, obfuscated: str) -> str:
        """Real package name; unaliased segments pass through unchanged."""
        real = ""
        for segment in obfuscated.split("."):
            aliased = self._package_children.get((real, segment))
            if aliased is not None:
                real = aliased
            else:
                real = f"{real}.{segment}" if real else segment
        return real

    def find_class(self, obfuscated_class: str) -> Optional[ClassAlias]:
        """Class alias for a fully-qualified obfuscated class name, or None."""
        package, short = _split_qualified(obfuscated_class)
        if not short:
            return None
        return self._classes.get((self.deobfuscate_package(package), short))

    def deobfuscate_type(self, type_name: str) -> str:
        """Real name for a type used in a signature (arrays and primitives kept)."""
        base = type_name.strip()
        suffix = ""
        while base.endswith("[]"):
            base, suffix = base[:-2].rstrip(), suffix + "[]"
        if base in _PRIMITIVES or "." not in base:
            return base + suffix
        klass = self.find_class(base)
        return (klass.real_name if klass else base) + suffix

    def find_method(self, real_class: str, obfuscated: MethodSignature) -> Optional[str]:
        """
        Real signature text of the aliased method matching ``obfuscated``.

        Argument and return types are deobfuscated before comparison. A bare
        name matches only when exactly one method of the class has that alias.
        """
        candidates = [c for c in self._methods.get(real_class, []) if c[0] == obfuscated.name]
        if obfuscated.arguments is None:
            return candidates[0][2] if len(candidates) == 1 else None

        arguments = tuple(self.deobfuscate_type(a) for a in obfuscated.arguments)
        return_type = self.deobfuscate_type(obfuscated.return_type) if obfuscated.return_type else None
        for _, real, text in candidates:
            if real.arguments != arguments:
                continue
            if return_type is not None and real.return_type != return_type:
                continue
            return text
        return None
