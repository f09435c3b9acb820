from __future__ import annotations

import json
from pathlib import Path

import pytest

from engine_boundary.analyzer import EngineApiBoundary
from engine_boundary.oracle import CachedModelOracle, StaticModelOracle
from engine_boundary.trace import TraceEventEmitter
from engine_boundary.tree import TreeFormatError
from tests.helpers.engines import make_engines, policy_config, write_allowlist
from tests.helpers.trees import const, document, hash_, send, string, sym, tree

MODELS = [
    "Billing::InvoiceService",
    "Billing::Invoice",
    "Billing::Api::Charge",
    "Billing::InternalHelper",
    "MainApp::EngineApi::Orders",
]


class CountingOracle:
    def __init__(self, models: list[str]) -> None:
        self.models = set(models)
        self.calls: list[str] = []

    def is_persistence_model(self, name: str) -> bool:
        self.calls.append(name)
        return name in self.models


def _analyzer(tmp_path: Path, *, oracle=None, trace=None, **policy) -> EngineApiBoundary:
    make_engines(tmp_path, "billing", "shipping", "warehouse")
    return EngineApiBoundary(
        policy_config(**policy),
        root=tmp_path,
        oracle=oracle if oracle is not None else StaticModelOracle(MODELS),
        trace=trace,
    )


def test_direct_access_from_main_app_is_reported(tmp_path: Path) -> None:
    analyzer = _analyzer(tmp_path)
    parsed = tree("app/services/checkout.rb", const("Billing::InvoiceService", line=7, column=4))

    (offense,) = analyzer.inspect(parsed)

    assert offense.message == (
        "Direct access of Billing engine. Only access engine via Billing::Api."
    )
    assert offense.path == "app/services/checkout.rb"
    assert str(offense.location) == "7:4"
    assert offense.accessed_engine == "Billing"
    assert offense.current_engine is None


def test_allowlisted_reference_is_accepted(tmp_path: Path) -> None:
    analyzer = _analyzer(tmp_path)
    write_allowlist(tmp_path, "billing", ["Billing::InvoiceService"])
    parsed = tree("app/services/checkout.rb", const("Billing::InvoiceService"))
    assert analyzer.inspect(parsed) == []


def test_strongly_protected_engine_may_not_reach_out_even_through_api(tmp_path: Path) -> None:
    analyzer = _analyzer(tmp_path, strongly_protected=["shipping"])
    parsed = tree("engines/shipping/app/services/shipping/label.rb", const("Billing::Api::Charge"))

    (offense,) = analyzer.inspect(parsed)

    assert offense.message == (
        "Direct access of Billing is disallowed in this file because it's in the "
        "Shipping engine, which is in the StronglyProtectedEngines list."
    )
    assert offense.current_engine == "Shipping"


def test_strongly_protected_engine_may_not_be_reached_into(tmp_path: Path) -> None:
    analyzer = _analyzer(tmp_path, strongly_protected=["billing"])
    write_allowlist(tmp_path, "billing", ["Billing::InvoiceService"])
    parsed = tree("app/services/checkout.rb", const("Billing::InvoiceService"))

    (offense,) = analyzer.inspect(parsed)

    assert offense.message == (
        "All direct access of Billing engine disallowed because it is in "
        "StronglyProtectedEngines list."
    )


def test_override_lifts_strong_protection(tmp_path: Path) -> None:
    analyzer = _analyzer(
        tmp_path,
        strongly_protected=["shipping"],
        overrides={"shipping": ["Billing::InternalHelper"]},
    )
    parsed = tree(
        "engines/shipping/app/services/shipping/label.rb", const("Billing::InternalHelper")
    )
    assert analyzer.inspect(parsed) == []


def test_association_class_name_is_reported_at_string(tmp_path: Path) -> None:
    oracle = CountingOracle([])
    analyzer = _analyzer(tmp_path, oracle=oracle)
    parsed = tree(
        "app/models/customer.rb",
        send(
            None,
            "has_many",
            sym("invoices", line=3),
            hash_(class_name=string("Billing::Invoice", line=3, column=32)),
            line=3,
        ),
    )

    (offense,) = analyzer.inspect(parsed)

    assert str(offense.location) == "3:32"
    assert offense.message == (
        "Direct access of Billing engine. Only access engine via Billing::Api."
    )
    assert oracle.calls == []


def test_non_model_constants_are_not_reported(tmp_path: Path) -> None:
    oracle = CountingOracle([])
    trace = TraceEventEmitter()
    analyzer = _analyzer(tmp_path, oracle=oracle, trace=trace)
    parsed = tree("app/services/checkout.rb", const("Billing::Constants::CURRENCY"))

    assert analyzer.inspect(parsed) == []
    assert oracle.calls == ["Billing::Constants::CURRENCY"]
    assert [event.event for event in trace.events] == ["reference_checked", "non_model_skipped"]


def test_oracle_is_consulted_only_after_rejection_and_memoized(tmp_path: Path) -> None:
    oracle = CountingOracle(MODELS)
    analyzer = _analyzer(tmp_path, oracle=oracle)
    parsed = tree(
        "app/services/checkout.rb",
        const("Billing::Api::Charge"),
        const("Billing::Invoice", line=2),
        const("Billing::Invoice", line=3),
    )

    offenses = analyzer.inspect(parsed)

    assert [offense.location.line for offense in offenses] == [2, 3]
    assert oracle.calls == ["Billing::Invoice"]


def test_cached_oracle_is_not_wrapped_twice(tmp_path: Path) -> None:
    cached = CachedModelOracle(StaticModelOracle(MODELS))
    analyzer = _analyzer(tmp_path, oracle=cached)
    parsed = tree("app/x.rb", const("Billing::Invoice"))
    assert len(analyzer.inspect(parsed)) == 1


def test_main_app_access_from_strongly_protected_engine(tmp_path: Path) -> None:
    analyzer = _analyzer(tmp_path, strongly_protected=["shipping"])
    parsed = tree(
        "engines/shipping/app/services/shipping/label.rb",
        const("MainApp::EngineApi::Orders", line=4),
    )

    offenses = analyzer.inspect(parsed)

    assert len(offenses) == 2
    assert {offense.accessed_engine for offense in offenses} == {"MainApp::EngineApi"}
    assert all("Shipping engine" in offense.message for offense in offenses)

    relaxed = _analyzer(tmp_path / "relaxed")
    assert relaxed.inspect(
        tree("engines/shipping/app/x.rb", const("MainApp::EngineApi::Orders"))
    ) == []


def test_main_app_prefix_is_reported_once(tmp_path: Path) -> None:
    analyzer = _analyzer(
        tmp_path,
        oracle=StaticModelOracle(["MainApp::EngineApiOrders"]),
        strongly_protected=["shipping"],
    )
    parsed = tree(
        "engines/shipping/app/services/shipping/label.rb",
        const("MainApp::EngineApiOrders"),
    )

    (offense,) = analyzer.inspect(parsed)
    assert offense.accessed_engine == "MainApp::EngineApi"


def test_expression_scoped_constant_is_not_reported(tmp_path: Path) -> None:
    analyzer = _analyzer(tmp_path, oracle=StaticModelOracle(["Billing"]))
    scoped = {"type": "const", "value": "Billing", "children": [send(None, "foo")]}
    assert analyzer.inspect(tree("app/services/checkout.rb", scoped)) == []


def test_engine_directory_name_locates_api_artifacts(tmp_path: Path) -> None:
    make_engines(tmp_path, "a_b")
    write_allowlist(tmp_path, "a_b", ["AB::Service"])
    analyzer = _analyzer(tmp_path, oracle=StaticModelOracle(["AB::Service", "AB::Record"]))

    assert analyzer.policy.is_protected("AB")
    assert analyzer.inspect(tree("app/services/checkout.rb", const("AB::Service"))) == []
    (offense,) = analyzer.inspect(tree("app/services/checkout.rb", const("AB::Record")))
    assert offense.accessed_engine == "AB"


def test_trace_records_every_decision(tmp_path: Path) -> None:
    trace = TraceEventEmitter()
    analyzer = _analyzer(tmp_path, trace=trace)
    parsed = tree(
        "app/services/checkout.rb",
        const("Billing::Api::Charge", line=1),
        const("Billing::Invoice", line=2),
    )
    analyzer.inspect(parsed)

    checked = [event.as_dict() for event in trace.events]
    assert checked[0] == {
        "event": "reference_checked",
        "path": "app/services/checkout.rb",
        "line": 1,
        "kind": "const",
        "reference": "Billing",
        "accessed_engine": "Billing",
        "current_engine": None,
        "allowed": True,
        "reason": "through_api",
        "matched": None,
    }
    assert checked[1]["allowed"] is False
    assert checked[1]["reason"] == "no_api_access"


def test_api_changes_are_picked_up_between_files(tmp_path: Path) -> None:
    analyzer = _analyzer(tmp_path)
    parsed = tree("app/services/checkout.rb", const("Billing::InvoiceService"))
    assert len(analyzer.inspect(parsed)) == 1

    write_allowlist(tmp_path, "billing", ["Billing::InvoiceService"])
    assert analyzer.inspect(parsed) == []


def test_external_dependency_checksum_changes_with_api_files(tmp_path: Path) -> None:
    analyzer = _analyzer(tmp_path)
    before = analyzer.external_dependency_checksum()
    write_allowlist(tmp_path, "billing", ["Billing::InvoiceService"])
    assert analyzer.external_dependency_checksum() != before


def test_inspect_file_reads_tree_documents(tmp_path: Path) -> None:
    analyzer = _analyzer(tmp_path)
    path = tmp_path / "checkout.json"
    path.write_text(
        json.dumps(document("app/services/checkout.rb", const("Billing::Invoice"))),
        encoding="utf-8",
    )
    (offense,) = analyzer.inspect_file(path)
    assert offense.path == "app/services/checkout.rb"

    with pytest.raises(TreeFormatError):
        analyzer.inspect_file(tmp_path / "missing.json")
