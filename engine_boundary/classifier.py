"""Decide whether a tree node refers to a protected engine at all."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from .policy import PolicyStore
from .tree import CLASS, CONST, HASH, MODULE, NAMESPACE_SEPARATOR, PAIR, SEND, STR, SYM
from .tree import Node, ReferenceTree


MAIN_APP_NAME = "MainApp::EngineApi"
API_SEGMENT = "Api"
MAX_NAMESPACE_DEPTH = 5


class RelationKind(str, Enum):
    """Relationship declarations that name another model by class name."""

    BELONGS_TO = "belongs_to"
    HAS_ONE = "has_one"
    HAS_MANY = "has_many"


_RELATION_METHODS = frozenset(kind.value for kind in RelationKind)


@dataclass(frozen=True, slots=True)
class ClassifiedReference:
    """A use-site that reaches into ``accessed_engine``.

    ``lineage`` lists the qualified names matched against allow-lists and
    overrides, innermost first.  ``model_name`` is the constant handed to the
    model-access oracle; associations have none because they are checked
    whether or not their target is persistence-backed.
    """

    node: Node
    accessed_engine: str
    lineage: tuple[str, ...]
    through_api: bool
    model_name: str | None = None


def strip_leading_separator(name: str) -> str:
    return name.lstrip(":")


class ReferenceClassifier:
    """Classify bare constant references."""

    def __init__(self, policy: PolicyStore, *, max_depth: int = MAX_NAMESPACE_DEPTH) -> None:
        self._policy = policy
        self._max_depth = max_depth

    def classify(
        self, tree: ReferenceTree, node: Node, current_engine: str | None
    ) -> ClassifiedReference | None:
        if node.type != CONST:
            return None
        if self.in_module_or_class_declaration(tree, node):
            return None
        # Value objects may share an engine's name (``Warehouse.new``); a const
        # used as a message receiver is not a namespace traversal.
        if self.sending_method_to_namespace_itself(tree, node):
            return None

        accessed_engine = self.extract_accessed_engine(tree, node, current_engine)
        if accessed_engine is None:
            return None

        lineage = tree.const_lineage(node, self._max_depth)
        outermost = tree.outermost_const(node)
        return ClassifiedReference(
            node=node,
            accessed_engine=accessed_engine,
            lineage=tuple(strip_leading_separator(item.source) for item in lineage),
            through_api=self.through_api(tree, node),
            model_name=tree.const_name(outermost),
        )

    def extract_accessed_engine(
        self, tree: ReferenceTree, node: Node, current_engine: str | None
    ) -> str | None:
        name = tree.const_name(node)
        if name is None:
            return None
        if name.startswith(MAIN_APP_NAME) and self._policy.is_strongly_protected(current_engine):
            return MAIN_APP_NAME
        if self._policy.is_protected(name):
            return name
        return None

    @staticmethod
    def in_module_or_class_declaration(tree: ReferenceTree, node: Node) -> bool:
        outermost = tree.outermost_const(node)
        declaration = tree.parent(outermost)
        if declaration is None or declaration.type not in (MODULE, CLASS):
            return False
        return bool(declaration.children) and declaration.children[0] == outermost.index

    @staticmethod
    def sending_method_to_namespace_itself(tree: ReferenceTree, node: Node) -> bool:
        parent = tree.parent(node)
        if parent is None or parent.type != SEND:
            return False
        return bool(parent.children) and parent.children[0] == node.index

    @staticmethod
    def through_api(tree: ReferenceTree, node: Node) -> bool:
        parent = tree.parent(node)
        return parent is not None and parent.type == CONST and parent.value == API_SEGMENT


class AssociationInspector:
    """Classify ``belongs_to``/``has_one``/``has_many`` declarations.

    Only a literal string ``class_name:`` is inspected.  A constant holding the
    class name (``class_name: TYPE_CLIENT``) is skipped; resolving it from the
    source would be brittle.
    """

    def __init__(self, policy: PolicyStore) -> None:
        self._policy = policy

    def relation_kind(self, node: Node) -> RelationKind | None:
        if node.type != SEND or node.value not in _RELATION_METHODS:
            return None
        return RelationKind(node.value)

    def class_name_node(self, tree: ReferenceTree, node: Node) -> Node | None:
        if self.relation_kind(node) is None:
            return None
        arguments = [tree.child(node, slot) for slot in range(1, len(node.children))]
        if len(arguments) != 2:
            return None
        name, options = arguments
        if name is None or name.type != SYM or options is None or options.type != HASH:
            return None
        for pair in tree.present_children(options):
            if pair.type != PAIR:
                continue
            key = tree.child(pair, 0)
            value = tree.child(pair, 1)
            if key is None or value is None:
                continue
            if key.type == SYM and key.value == "class_name":
                return value if value.type == STR else None
        return None

    def inspect(self, tree: ReferenceTree, node: Node) -> ClassifiedReference | None:
        class_name_node = self.class_name_node(tree, node)
        if class_name_node is None or not class_name_node.value:
            return None

        class_name = strip_leading_separator(class_name_node.value)
        segments = class_name.split(NAMESPACE_SEPARATOR)
        prefix = segments[0]
        if not prefix or not self._policy.is_protected(prefix):
            return None
        return ClassifiedReference(
            node=class_name_node,
            accessed_engine=prefix,
            lineage=(class_name,),
            through_api=len(segments) > 1 and segments[1] == API_SEGMENT,
        )


__all__ = [
    "API_SEGMENT",
    "MAIN_APP_NAME",
    "MAX_NAMESPACE_DEPTH",
    "AssociationInspector",
    "ClassifiedReference",
    "ReferenceClassifier",
    "RelationKind",
    "strip_leading_separator",
]
