from __future__ import annotations

from pathlib import Path

import pytest

from engine_boundary.api_metadata import ApiMetadataReader
from engine_boundary.classifier import ClassifiedReference, ReferenceClassifier
from engine_boundary.policy import PolicyStore
from engine_boundary.validator import (
    ALLOWLISTED,
    LEGACY_DEPENDENT,
    NO_API_ACCESS,
    OVERRIDE,
    SAME_ENGINE,
    STRONGLY_PROTECTED_ACCESSED,
    STRONGLY_PROTECTED_CURRENT,
    THROUGH_API,
    AccessValidator,
)
from tests.helpers.engines import (
    make_engines,
    policy_config,
    write_allowlist,
    write_legacy_dependents,
)
from tests.helpers.trees import const, tree

MAIN_FILE = "app/services/checkout.rb"
WAREHOUSE_FILE = "engines/warehouse/app/services/warehouse/restock.rb"
SHIPPING_FILE = "engines/shipping/app/services/shipping/label.rb"


def _setup(tmp_path: Path, **policy) -> tuple[PolicyStore, AccessValidator]:
    make_engines(tmp_path, "billing", "shipping", "warehouse")
    store = PolicyStore(policy_config(**policy), root=tmp_path)
    metadata = ApiMetadataReader(store.engines_dir)
    return store, AccessValidator(store, metadata)


def _reference(store: PolicyStore, name: str, path: str) -> ClassifiedReference:
    parsed = tree(path, const(name))
    current = store.current_engine(path)
    classifier = ReferenceClassifier(store)
    for node in parsed:
        reference = classifier.classify(parsed, node, current)
        if reference is not None:
            return reference
    raise AssertionError(f"{name} was not classified")


def _decide(store: PolicyStore, validator: AccessValidator, name: str, path: str):
    reference = _reference(store, name, path)
    return validator.decide(reference, store.current_engine(path), path)


def test_same_engine_access_is_always_valid(tmp_path: Path) -> None:
    store, validator = _setup(tmp_path, strongly_protected=["warehouse"])
    decision = _decide(store, validator, "Warehouse::Bin", WAREHOUSE_FILE)
    assert decision.allowed
    assert decision.reason == SAME_ENGINE


def test_unlisted_access_is_rejected(tmp_path: Path) -> None:
    store, validator = _setup(tmp_path)
    decision = _decide(store, validator, "Billing::Invoice", MAIN_FILE)
    assert not decision.allowed
    assert decision.reason == NO_API_ACCESS
    assert decision.accessed_engine == "Billing"
    assert decision.current_engine is None


def test_access_through_api_is_valid(tmp_path: Path) -> None:
    store, validator = _setup(tmp_path)
    decision = _decide(store, validator, "Billing::Api::Charge", MAIN_FILE)
    assert decision.allowed
    assert decision.reason == THROUGH_API


def test_allowlisted_module_is_valid(tmp_path: Path) -> None:
    store, validator = _setup(tmp_path)
    write_allowlist(tmp_path, "billing", ["Billing::InvoiceService"])

    decision = _decide(store, validator, "Billing::InvoiceService::Result", MAIN_FILE)
    assert decision.allowed
    assert decision.reason == ALLOWLISTED
    assert decision.matched == "Billing::InvoiceService"

    assert not _decide(store, validator, "Billing::Invoice", MAIN_FILE).allowed


def test_allowlist_matches_only_within_namespace_depth(tmp_path: Path) -> None:
    store, validator = _setup(tmp_path)
    write_allowlist(tmp_path, "billing", ["Billing::A::B::C::D"])
    assert _decide(store, validator, "Billing::A::B::C::D::E", MAIN_FILE).allowed

    write_allowlist(tmp_path, "billing", ["Billing::A::B::C::D::E"])
    store, validator = _setup(tmp_path)
    assert not _decide(store, validator, "Billing::A::B::C::D::E", MAIN_FILE).allowed


def test_legacy_dependent_file_may_access_anything(tmp_path: Path) -> None:
    store, validator = _setup(tmp_path)
    write_legacy_dependents(tmp_path, "billing", ["services/checkout.rb"])

    decision = _decide(store, validator, "Billing::Invoice", MAIN_FILE)
    assert decision.allowed
    assert decision.reason == LEGACY_DEPENDENT
    assert decision.matched == "services/checkout.rb"

    assert not _decide(store, validator, "Billing::Invoice", "app/services/refund.rb").allowed


def test_strongly_protected_accessed_engine_ignores_api_surface(tmp_path: Path) -> None:
    store, validator = _setup(tmp_path, strongly_protected=["billing"])
    write_allowlist(tmp_path, "billing", ["Billing::InvoiceService"])
    write_legacy_dependents(tmp_path, "billing", [MAIN_FILE])

    for name in ("Billing::Api::Charge", "Billing::InvoiceService", "Billing::Invoice"):
        decision = _decide(store, validator, name, MAIN_FILE)
        assert not decision.allowed
        assert decision.reason == STRONGLY_PROTECTED_ACCESSED


def test_strongly_protected_current_engine_may_not_reach_out(tmp_path: Path) -> None:
    store, validator = _setup(tmp_path, strongly_protected=["shipping"])
    write_allowlist(tmp_path, "billing", ["Billing::InvoiceService"])

    for name in ("Billing::Api::Charge", "Billing::InvoiceService"):
        decision = _decide(store, validator, name, SHIPPING_FILE)
        assert not decision.allowed
        assert decision.reason == STRONGLY_PROTECTED_CURRENT


@pytest.mark.parametrize("allowed", ["Billing::InternalHelper", "Billing"])
def test_override_beats_strong_protection(tmp_path: Path, allowed: str) -> None:
    store, validator = _setup(
        tmp_path,
        strongly_protected=["shipping", "billing"],
        overrides={"shipping": [allowed]},
    )

    decision = _decide(store, validator, "Billing::InternalHelper", SHIPPING_FILE)
    assert decision.allowed
    assert decision.reason == OVERRIDE
    assert decision.matched == allowed


def test_override_applies_only_to_its_own_engine(tmp_path: Path) -> None:
    store, validator = _setup(tmp_path, overrides={"shipping": ["Billing::InternalHelper"]})
    assert _decide(store, validator, "Billing::InternalHelper", SHIPPING_FILE).allowed
    assert not _decide(store, validator, "Billing::InternalHelper", WAREHOUSE_FILE).allowed
    assert not _decide(store, validator, "Billing::Other", SHIPPING_FILE).allowed


def test_is_valid_mirrors_decision(tmp_path: Path) -> None:
    store, validator = _setup(tmp_path)
    reference = _reference(store, "Billing::Api::Charge", MAIN_FILE)
    assert validator.is_valid(reference, None, MAIN_FILE)
