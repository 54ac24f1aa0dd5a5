"""Catalog object models: identities, edges and captured objects."""
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional, Tuple, Union

from .errors import MalformedIdentity


class CatalogKind(Enum):
    """Kinds of catalog objects."""
    TABLE = "table"
    VIEW = "view"
    SEQUENCE = "sequence"
    FUNCTION_OR_PROCEDURE = "function_or_procedure"
    TRIGGER = "trigger"
    CONSTRAINT = "constraint"
    INDEX = "index"
    TYPE = "type"
    POLICY = "policy"
    EXTENSION = "extension"
    NAMESPACE = "namespace"

    @property
    def catalog(self) -> str:
        """System catalog holding objects of this kind."""
        return _KIND_CATALOGS[self]

    @property
    def priority(self) -> int:
        """Natural creation precedence, lowest first."""
        return CREATION_PRIORITY[self]

    @classmethod
    def parse(cls, value: Union[str, "CatalogKind"]) -> "CatalogKind":
        """Resolve a kind name, an alias or a system catalog name.

        Raises:
            ValueError: if the value names no known kind
        """
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            raise ValueError(f"{value!r} is not a catalog kind")
        name = value.strip().lower()
        try:
            return cls(name)
        except ValueError:
            pass
        if name in _KIND_ALIASES:
            return _KIND_ALIASES[name]
        if name in _CATALOG_KINDS:
            return _CATALOG_KINDS[name]
        raise ValueError(f"{value!r} is not a catalog kind")


_KIND_CATALOGS = {
    CatalogKind.TABLE: "pg_class",
    CatalogKind.VIEW: "pg_class",
    CatalogKind.SEQUENCE: "pg_class",
    CatalogKind.INDEX: "pg_class",
    CatalogKind.FUNCTION_OR_PROCEDURE: "pg_proc",
    CatalogKind.TYPE: "pg_type",
    CatalogKind.CONSTRAINT: "pg_constraint",
    CatalogKind.TRIGGER: "pg_trigger",
    CatalogKind.POLICY: "pg_policy",
    CatalogKind.EXTENSION: "pg_extension",
    CatalogKind.NAMESPACE: "pg_namespace",
}

# A reference by catalog name resolves to the catalog's first kind; identity
# equality only looks at the catalog, so pg_class references still match views.
_CATALOG_KINDS = {}
for _kind, _catalog in _KIND_CATALOGS.items():
    _CATALOG_KINDS.setdefault(_catalog, _kind)

_KIND_ALIASES = {
    "function": CatalogKind.FUNCTION_OR_PROCEDURE,
    "procedure": CatalogKind.FUNCTION_OR_PROCEDURE,
    "routine": CatalogKind.FUNCTION_OR_PROCEDURE,
    "materialized_view": CatalogKind.VIEW,
    "udt": CatalogKind.TYPE,
    "schema": CatalogKind.NAMESPACE,
}

CREATION_PRIORITY = {
    CatalogKind.NAMESPACE: 0,
    CatalogKind.EXTENSION: 0,
    CatalogKind.TYPE: 1,
    CatalogKind.SEQUENCE: 2,
    CatalogKind.TABLE: 3,
    CatalogKind.INDEX: 4,
    CatalogKind.CONSTRAINT: 5,
    CatalogKind.VIEW: 6,
    CatalogKind.FUNCTION_OR_PROCEDURE: 7,
    CatalogKind.TRIGGER: 8,
    CatalogKind.POLICY: 9,
}


class EdgeClass(Enum):
    """Why one object depends on another."""
    STRUCTURAL = "structural"
    REFERENTIAL = "referential"
    OWNERSHIP = "ownership"

    @property
    def deferrable(self) -> bool:
        return self is EdgeClass.REFERENTIAL

    @property
    def binding(self) -> int:
        """Strength used when one pair is declared with several classes."""
        return _EDGE_BINDING[self]


_EDGE_BINDING = {
    EdgeClass.REFERENTIAL: 0,
    EdgeClass.STRUCTURAL: 1,
    EdgeClass.OWNERSHIP: 2,
}


_PLAIN_IDENTIFIER = re.compile(r"^[a-z_][a-z0-9_$]*$")


def _split_signature(text: str) -> Tuple[str, Optional[str]]:
    """Split ``name(args)`` into the name and the argument list."""
    quoted = False
    for position, char in enumerate(text):
        if char == '"':
            quoted = not quoted
        elif char == "(" and not quoted:
            if not text.endswith(")"):
                raise ValueError(f"unbalanced argument list in {text!r}")
            return text[:position], text[position + 1:-1]
    return text, None


def split_identifier(text: str) -> List[str]:
    """Split a dotted SQL name into parts, folding unquoted parts to lower case."""
    parts = []
    current = []
    quoted = False
    position = 0
    while position < len(text):
        char = text[position]
        if quoted:
            if char == '"':
                if text[position + 1:position + 2] == '"':
                    current.append('"')
                    position += 1
                else:
                    quoted = False
            else:
                current.append(char)
        elif char == '"':
            quoted = True
        elif char == ".":
            parts.append("".join(current))
            current = []
        elif not char.isspace():
            current.append(char.lower())
        position += 1
    if quoted:
        raise ValueError(f"unterminated quoted identifier in {text!r}")
    parts.append("".join(current))
    if any(not part for part in parts):
        raise ValueError(f"empty name part in {text!r}")
    return parts


def quote_part(part: str) -> str:
    if _PLAIN_IDENTIFIER.match(part):
        return part
    return '"' + part.replace('"', '""') + '"'


def normalize_name(*names: str) -> str:
    """Build the canonical dotted key from one or more (possibly dotted) names.

    Only the last name may carry a routine argument list.
    """
    parts = []
    arguments = None
    for name in names:
        if arguments is not None:
            raise ValueError("argument list must come last")
        name, arguments = _split_signature(name.strip())
        parts.extend(split_identifier(name))
    key = ".".join(quote_part(part) for part in parts)
    if arguments is not None:
        arguments = re.sub(r"\s*,\s*", ", ", re.sub(r"\s+", " ", arguments.strip()))
        key += f"({arguments.lower()})"
    return key


@dataclass(frozen=True, eq=False)
class Identity:
    """Canonical identity of a catalog object.

    ``key`` is the canonical schema-qualified name, or a snapshot-local oid
    until the graph builder resolves it. Equality only looks at the kind's
    catalog, so a table and a view with the same name are the same object.
    """
    kind: CatalogKind
    key: Union[str, int]

    @classmethod
    def from_name(cls, kind: Union[str, CatalogKind], qualified_name: str) -> "Identity":
        return normalize(RawIdentity(catalog_kind=kind, local_name=qualified_name))

    @property
    def is_numeric(self) -> bool:
        return isinstance(self.key, int)

    @property
    def sort_key(self) -> Tuple[str, str]:
        return (str(self.key), self.kind.catalog)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Identity):
            return NotImplemented
        return self.kind.catalog == other.kind.catalog and self.key == other.key

    def __hash__(self) -> int:
        return hash((self.kind.catalog, self.key))

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.key}"


@dataclass(frozen=True)
class RawIdentity:
    """Identity exactly as a catalog reader reported it."""
    catalog_kind: Any
    oid: Optional[int] = None
    schema_name: Optional[str] = ""
    local_name: Optional[str] = ""

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "RawIdentity":
        """Read ``{catalog_kind|catalog, oid, schema_name, local_name}``.

        The name may also be nested as ``{"name": {"schema_name", "local_name"}}``,
        which is how the catalog queries serialize schema-qualified names.
        """
        if not isinstance(data, Mapping):
            raise MalformedIdentity(data, "identity must be a mapping")
        name = data.get("name")
        if isinstance(name, Mapping):
            schema_name = name.get("schema_name") or ""
            local_name = name.get("local_name") or ""
        else:
            schema_name = data.get("schema_name") or ""
            local_name = data.get("local_name") or name or ""
        return cls(
            catalog_kind=data.get("catalog_kind", data.get("catalog")),
            oid=data.get("oid"),
            schema_name=schema_name,
            local_name=local_name,
        )


def normalize(raw: RawIdentity) -> Identity:
    """Normalize a reader identity into its canonical form.

    Args:
        raw: Identity as reported by the catalog reader

    Returns:
        Identity keyed by canonical name, by oid when no name is known, or a
        namespace identity when only the schema name is set

    Raises:
        MalformedIdentity: if the kind is unknown or every key field is empty
    """
    try:
        kind = CatalogKind.parse(raw.catalog_kind)
    except ValueError:
        raise MalformedIdentity(raw, f"unrecognized catalog kind {raw.catalog_kind!r}") from None

    schema_name = (raw.schema_name or "").strip()
    local_name = (raw.local_name or "").strip()
    try:
        if local_name:
            names = (schema_name, local_name) if schema_name else (local_name,)
            return Identity(kind, normalize_name(*names))
        if schema_name:
            return Identity(CatalogKind.NAMESPACE, normalize_name(schema_name))
    except ValueError as exc:
        raise MalformedIdentity(raw, str(exc)) from None

    if raw.oid is None:
        raise MalformedIdentity(raw, "neither an oid nor a name was given")
    try:
        return Identity(kind, int(raw.oid))
    except (TypeError, ValueError):
        raise MalformedIdentity(raw, f"oid {raw.oid!r} is not numeric") from None


@dataclass(frozen=True)
class Dependency:
    """A raw reference from one object to another.

    ``edge_class`` is None when the reader did not classify the reference.
    """
    target: Identity
    edge_class: Optional[EdgeClass] = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "Dependency":
        target = normalize(RawIdentity.from_mapping(data))
        edge_class = data.get("edge_class")
        if edge_class is None:
            return cls(target)
        try:
            return cls(target, EdgeClass(edge_class))
        except ValueError:
            raise MalformedIdentity(data, f"unknown edge class {edge_class!r}") from None


@dataclass(frozen=True)
class Edge:
    """Directed dependency: ``source`` cannot exist before ``target``."""
    source: Identity
    target: Identity
    edge_class: EdgeClass

    @property
    def sort_key(self) -> Tuple[Tuple[str, str], Tuple[str, str]]:
        return (self.source.sort_key, self.target.sort_key)

    def as_dict(self) -> Dict[str, str]:
        return {
            "source": str(self.source),
            "target": str(self.target),
            "edge_class": self.edge_class.value,
        }

    def __str__(self) -> str:
        return f"{self.source} -> {self.target} ({self.edge_class.value})"


@dataclass(frozen=True, eq=False)
class SchemaObject:
    """One captured catalog object with its outgoing references."""
    identity: Identity
    payload: Mapping[str, Any] = field(default_factory=dict)
    dependencies: FrozenSet[Dependency] = frozenset()
    oid: Optional[int] = None

    def __post_init__(self):
        # Self references are dropped; an object never waits on itself.
        dependencies = frozenset(
            dependency for dependency in self.dependencies
            if dependency.target != self.identity
        )
        object.__setattr__(self, "dependencies", dependencies)

    @property
    def kind(self) -> CatalogKind:
        return self.identity.kind

    @classmethod
    def create(cls, identity: Identity, payload: Optional[Mapping[str, Any]] = None,
               dependencies: Iterable[Union[Dependency, Identity]] = (),
               oid: Optional[int] = None) -> "SchemaObject":
        """Build an object, accepting bare identities as unclassified dependencies."""
        deps = frozenset(
            dependency if isinstance(dependency, Dependency) else Dependency(dependency)
            for dependency in dependencies
        )
        return cls(identity=identity, payload=dict(payload or {}), dependencies=deps, oid=oid)

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "SchemaObject":
        """Build an object from a reader record.

        Args:
            record: ``{identity, kind, payload, dependencies}`` as returned by a
                catalog query

        Returns:
            SchemaObject with normalized identity and dependencies

        Raises:
            MalformedIdentity: if any identity is malformed or the record kind
                disagrees with the identity kind
        """
        raw = RawIdentity.from_mapping(record.get("identity") or {})
        identity = normalize(raw)
        kind = record.get("kind")
        if kind is not None:
            try:
                record_kind = CatalogKind.parse(kind)
            except ValueError:
                raise MalformedIdentity(raw, f"unrecognized record kind {kind!r}") from None
            if record_kind.catalog != identity.kind.catalog:
                raise MalformedIdentity(
                    raw, f"record kind {record_kind.value} does not match {identity.kind.value}"
                )
            # A pg_class identity becomes the concrete relation kind.
            identity = Identity(record_kind, identity.key)
        try:
            oid = None if raw.oid is None else int(raw.oid)
        except (TypeError, ValueError):
            raise MalformedIdentity(raw, f"oid {raw.oid!r} is not numeric") from None
        dependencies = [Dependency.from_mapping(dep) for dep in record.get("dependencies") or ()]
        return cls.create(
            identity,
            payload=record.get("payload") or {},
            dependencies=dependencies,
            oid=oid,
        )
