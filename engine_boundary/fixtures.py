"""Index of test-fixture factories and the model classes they build.

Factory definition files declare factories such as::

    factory :invoice, class: "Billing::Invoice", aliases: [:bill] do
      factory :paid_invoice
    end
    factory :overdue_invoice, parent: :invoice

:class:`FactoryIndex` walks the reference trees of those files and maps every
factory name (and alias) to a model class name.  The class comes from an
explicit ``class:`` option, else from the enclosing factory block, else from
the camelized factory name.  Factories that only name a ``parent:`` are
resolved through the parent chain once every file has been read.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Iterator
from pathlib import Path

from .inflector import camelize
from .models import Factory
from .tree import ARRAY, BLOCK, CONST, HASH, PAIR, SEND, STR, SYM, Node, ReferenceTree, load_tree

LOGGER = logging.getLogger(__name__)

FACTORY_METHODS = frozenset(
    {
        "attributes_for",
        "attributes_for_list",
        "build",
        "build_list",
        "build_pair",
        "build_stubbed",
        "build_stubbed_list",
        "create",
        "create_list",
        "create_pair",
    }
)

FACTORY_DIR = "spec/factories"


def is_spec_file(path: str | None) -> bool:
    return bool(path) and str(path).endswith("_spec.rb")


def factory_usage(tree: ReferenceTree, node: Node) -> str | None:
    """Factory name used by a ``create(:name, ...)``-style call, if any."""

    if node.type != SEND or node.value not in FACTORY_METHODS:
        return None
    name = tree.child(node, 1)
    if name is None or name.type != SYM:
        return None
    return name.value


def discover_factory_trees(
    root: Path | str, engines_path: str, *, suffix: str = ".json"
) -> list[Path]:
    """Tree documents for the app's and every engine's factory definitions."""

    base = Path(root)
    paths = set((base / FACTORY_DIR).rglob(f"*{suffix}"))
    engines_dir = base / engines_path
    if engines_dir.is_dir():
        for engine_dir in engines_dir.iterdir():
            paths.update((engine_dir / FACTORY_DIR).rglob(f"*{suffix}"))
    return sorted(path for path in paths if path.is_file())


class FactoryIndex:
    """Lazily built mapping of factory names to model class names."""

    def __init__(
        self, trees: Iterable[ReferenceTree] | Callable[[], Iterable[ReferenceTree]]
    ) -> None:
        self._source = trees
        self._factories: dict[str, dict[str, str]] | None = None
        self._parents: dict[str, dict[str, str]] = {}

    @classmethod
    def from_paths(cls, paths: Iterable[Path | str]) -> FactoryIndex:
        materialized = list(paths)
        return cls(lambda: (load_tree(path) for path in materialized))

    def factories(self) -> dict[str, dict[str, str]]:
        """Factory -> model class name, grouped by definition file."""

        if self._factories is None:
            self._factories = {}
            self._parents = {}
            for tree in self._trees():
                self._factories[tree.path] = {}
                self._parents[tree.path] = {}
                if tree.root is not None:
                    self._traverse(tree, tree.root, tree.path, None, None)
            self._resolve_parents()
            LOGGER.debug(
                "Indexed %d factories from %d files",
                sum(len(entries) for entries in self._factories.values()),
                len(self._factories),
            )
        return self._factories

    def model_class_name(self, factory_name: str) -> str | None:
        for entries in self.factories().values():
            if factory_name in entries:
                return entries[factory_name]
        return None

    def _trees(self) -> Iterable[ReferenceTree]:
        if callable(self._source):
            return self._source()
        return self._source

    # ------------------------------------------------------------------
    # Traversal
    # ------------------------------------------------------------------
    def _traverse(
        self,
        tree: ReferenceTree,
        node: Node,
        path: str,
        parent: str | None,
        model_class_name: str | None,
    ) -> None:
        factory_node = _extract_factory_node(tree, node)
        if factory_node is not None:
            factory = parse_factory_node(tree, factory_node)
            if factory is not None:
                parent = _determine_parent(factory, parent)
                model_class_name = _determine_model_class_name(factory, model_class_name)
                if _is_factory_node(node):
                    self._register(path, factory, parent, model_class_name)
                    return

        for child in tree.present_children(node):
            self._traverse(tree, child, path, parent, model_class_name)

    def _register(
        self, path: str, factory: Factory, parent: str | None, model_class_name: str
    ) -> None:
        for name in (factory.name, *factory.aliases):
            if parent:
                self._parents[path][name] = parent
            else:
                self._factories[path][name] = model_class_name  # type: ignore[index]

    def _resolve_parents(self) -> None:
        assert self._factories is not None
        all_factories: dict[str, str] = {}
        for entries in self._factories.values():
            all_factories.update(entries)
        all_parents: dict[str, str] = {}
        for entries in self._parents.values():
            all_parents.update(entries)

        for path, parents in self._parents.items():
            for factory, parent in parents.items():
                for ancestor in _parent_chain(parent, all_parents):
                    parent = ancestor
                model_class_name = all_factories.get(parent)
                if model_class_name is None:
                    LOGGER.debug("Factory %s in %s has unresolved parent %s", factory, path, parent)
                    continue
                self._factories[path][factory] = model_class_name


def parse_factory_node(tree: ReferenceTree, node: Node) -> Factory | None:
    name_node = tree.child(node, 1)
    if name_node is None or name_node.type not in (SYM, STR) or not name_node.value:
        return None
    config = tree.child(node, 2)
    return Factory(
        name=name_node.value,
        aliases=_extract_aliases(tree, config),
        parent=_extract_parent(tree, config),
        model_class_name=_extract_model_class_name(tree, config),
    )


def _parent_chain(parent: str, all_parents: dict[str, str]) -> Iterator[str]:
    seen = {parent}
    while parent in all_parents:
        parent = all_parents[parent]
        if parent in seen:
            LOGGER.debug("Cycle in factory parents at %s", parent)
            return
        seen.add(parent)
        yield parent


def _extract_factory_node(tree: ReferenceTree, node: Node) -> Node | None:
    if _is_factory_block(tree, node):
        return tree.child(node, 0)
    if _is_factory_node(node):
        return node
    return None


def _is_factory_block(tree: ReferenceTree, node: Node) -> bool:
    if node.type != BLOCK:
        return False
    call = tree.child(node, 0)
    return call is not None and _is_factory_node(call)


def _is_factory_node(node: Node) -> bool:
    return node.type == SEND and node.value == "factory"


def _extract_hash_value(tree: ReferenceTree, node: Node | None, key: str) -> Node | None:
    if node is None or node.type != HASH:
        return None
    for pair in tree.present_children(node):
        if pair.type != PAIR:
            continue
        key_node = tree.child(pair, 0)
        if key_node is not None and key_node.value == key:
            return tree.child(pair, 1)
    return None


def _extract_aliases(tree: ReferenceTree, config: Node | None) -> tuple[str, ...]:
    aliases = _extract_hash_value(tree, config, "aliases")
    if aliases is None or aliases.type != ARRAY:
        return ()
    return tuple(item.value for item in tree.present_children(aliases) if item.value)


def _extract_parent(tree: ReferenceTree, config: Node | None) -> str | None:
    parent = _extract_hash_value(tree, config, "parent")
    return parent.value if parent is not None else None


def _extract_model_class_name(tree: ReferenceTree, config: Node | None) -> str | None:
    model = _extract_hash_value(tree, config, "class")
    if model is None:
        return None
    if model.type == CONST:
        return model.source.lstrip(":")
    if model.type == STR and model.value:
        return model.value.lstrip(":")
    return None


def _determine_parent(factory: Factory, parent_from_surrounding_block: str | None) -> str | None:
    # An explicit class makes the parent irrelevant for the model lookup.
    if factory.model_class_name:
        return None
    return factory.parent or parent_from_surrounding_block


def _determine_model_class_name(
    factory: Factory, model_class_name_from_surrounding_block: str | None
) -> str:
    return (
        factory.model_class_name
        or model_class_name_from_surrounding_block
        or camelize(factory.name)
    )


__all__ = [
    "FACTORY_METHODS",
    "FactoryIndex",
    "discover_factory_trees",
    "factory_usage",
    "is_spec_file",
    "parse_factory_node",
]
