"""
Routine body parsing and extra dependency extraction
"""
import logging
from typing import Dict, Iterable, List, Mapping, Optional, Set, Tuple

import sqlparse
from sqlparse import sql
from sqlparse import tokens as T

from .models import (CatalogKind, Dependency, EdgeClass, Identity, SchemaObject,
                     normalize_name, quote_part, split_identifier)

logger = logging.getLogger(__name__)

RELATION_KINDS = (CatalogKind.TABLE, CatalogKind.VIEW, CatalogKind.SEQUENCE)

# Keywords after which the next identifier names a relation
_RELATION_KEYWORDS = {"FROM", "INTO", "UPDATE", "TABLE", "USING"}

QualifiedName = Tuple[Optional[str], str]


class SqlParser:
    @staticmethod
    def parse_sql(sql_text: str) -> List[sql.Statement]:
        """Parse SQL text"""
        return list(sqlparse.parse(sql_text))

    @staticmethod
    def extract_references(sql_text: str) -> Tuple[Set[QualifiedName], Set[QualifiedName]]:
        """
        Extract the relations and functions referenced by SQL text.
        Returns two sets of (schema or None, name) pairs: relations, functions
        """
        relations: Set[QualifiedName] = set()
        functions: Set[QualifiedName] = set()
        for statement in SqlParser.parse_sql(sql_text):
            SqlParser._walk(statement, relations, functions)
        return relations, functions

    @staticmethod
    def _walk(token_list: sql.TokenList, relations: Set[QualifiedName],
              functions: Set[QualifiedName]):
        expect_relation = False
        for token in token_list.tokens:
            if token.is_whitespace or token.ttype in T.Comment or token.ttype in T.Punctuation:
                continue
            if token.is_keyword:
                keyword = token.normalized.upper()
                expect_relation = keyword in _RELATION_KEYWORDS or keyword.endswith("JOIN")
                continue

            if expect_relation:
                expect_relation = False
                if isinstance(token, sql.IdentifierList):
                    for identifier in token.get_identifiers():
                        SqlParser._add_relation(identifier, relations, functions)
                    continue
                if isinstance(token, (sql.Identifier, sql.Function)):
                    SqlParser._add_relation(token, relations, functions)
                    continue

            if isinstance(token, sql.Function):
                functions.add((None, token.get_real_name()))
            elif isinstance(token, sql.Identifier):
                call = next((t for t in token.tokens if isinstance(t, sql.Function)), None)
                if call is not None:
                    functions.add((token.get_parent_name(), call.get_real_name()))
                    SqlParser._walk(call, relations, functions)
                    continue
            if token.is_group:
                SqlParser._walk(token, relations, functions)

    @staticmethod
    def _add_relation(token: sql.Token, relations: Set[QualifiedName],
                      functions: Set[QualifiedName]):
        if any(isinstance(t, sql.Parenthesis) for t in token.tokens) \
                and not isinstance(token, sql.Function):
            # Subquery in FROM
            SqlParser._walk(token, relations, functions)
            return
        name = token.get_real_name()
        if name:
            relations.add((token.get_parent_name(), name))


def _base_name(identity: Identity) -> str:
    return str(identity.key).split("(", 1)[0]


def _lookup(index: Mapping[str, List[Identity]], name: QualifiedName,
            default_schemas: Iterable[str]) -> List[Identity]:
    schema, local = name
    try:
        if schema:
            candidates = [normalize_name(schema, local)]
        else:
            candidates = [normalize_name(s, local) for s in default_schemas]
    except ValueError:
        logger.debug(f"Cannot normalize {name} found in routine body, ignoring")
        return []
    for candidate in candidates:
        if candidate in index:
            return index[candidate]
    return []


def extract_routine_references(source: str, relations: Mapping[str, List[Identity]],
                               routines: Mapping[str, List[Identity]],
                               default_schemas: Iterable[str] = ("public",)) -> Set[Identity]:
    """Find the known relations and routines a SQL routine body refers to.

    Args:
        source: Body of a SQL-language routine
        relations: Canonical relation name -> identities
        routines: Canonical routine name without arguments -> identities of
            every overload
        default_schemas: Schemas tried, in order, for unqualified names

    Returns:
        Identities referenced by the body; unknown names are ignored
    """
    default_schemas = list(default_schemas)
    relation_names, function_names = SqlParser.extract_references(source)
    found: Set[Identity] = set()
    for name in sorted(relation_names, key=lambda n: (n[0] or "", n[1])):
        matches = _lookup(relations, name, default_schemas)
        if not matches:
            logger.debug(f"Relation {name} referenced in routine body is not captured, ignoring")
        found.update(matches)
    for name in sorted(function_names, key=lambda n: (n[0] or "", n[1])):
        found.update(_lookup(routines, name, default_schemas))
    return found


def augment_routine_dependencies(
        batches: Mapping[CatalogKind, Iterable[SchemaObject]]) -> Dict[CatalogKind, List[SchemaObject]]:
    """Add referential dependencies found in SQL routine bodies.

    Routines are augmented when their payload has ``language == "sql"`` and a
    ``source``; C-language and ``is_pre_parsed`` routines are left alone.
    Every other batch is passed through unchanged.
    """
    batches = {kind: list(objects) for kind, objects in batches.items()}
    relations: Dict[str, List[Identity]] = {}
    routines: Dict[str, List[Identity]] = {}
    for objects in batches.values():
        for obj in objects:
            if obj.kind in RELATION_KINDS:
                relations.setdefault(str(obj.identity.key), []).append(obj.identity)
            elif obj.kind is CatalogKind.FUNCTION_OR_PROCEDURE:
                routines.setdefault(_base_name(obj.identity), []).append(obj.identity)

    for kind, objects in batches.items():
        augmented = []
        for obj in objects:
            payload = obj.payload
            if obj.kind is not CatalogKind.FUNCTION_OR_PROCEDURE \
                    or payload.get("language") != "sql" \
                    or payload.get("is_pre_parsed") \
                    or not payload.get("source"):
                augmented.append(obj)
                continue
            parts = split_identifier(_base_name(obj.identity))
            schemas = [quote_part(parts[0])] if len(parts) > 1 else []
            found = extract_routine_references(
                payload["source"], relations, routines, default_schemas=schemas + ["public"],
            )
            extra = {Dependency(target, EdgeClass.REFERENTIAL) for target in found}
            if extra - obj.dependencies:
                logger.debug(f"Adding {len(extra - obj.dependencies)} body references to {obj.identity}")
            augmented.append(SchemaObject(
                identity=obj.identity,
                payload=obj.payload,
                dependencies=obj.dependencies | extra,
                oid=obj.oid,
            ))
        batches[kind] = augmented
    return batches
