"""End-to-end tests for the reconciliation pipeline."""
from __future__ import annotations

import json
from datetime import datetime, timezone

import pytest

from models.report import ReconcileOptions, ReconciliationReport
from models.shared import ImplementationStatus, ReconciliationStatus, WarningKind
from nodes.ssp_writer import build_merged_document
from reconciler import Reconciler, flatten, flatten_with_warnings, reconcile
from utils.error_handler import MalformedCatalogError, MalformedDocumentError

NOW = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)


def by_id(report: ReconciliationReport) -> dict:
    return {e.control_id: e for e in report.entries}


class TestScenarios:
    """Catalog refresh against a prior SSP with user edits."""

    def test_changed_control_keeps_user_data(self, catalog, prior_document):
        """AC-1 statement reworded: catalog text refreshed, status and description kept."""
        entry = by_id(reconcile(catalog, prior_document))["ac-1"]

        assert entry.status == ReconciliationStatus.CHANGED
        merged = entry.merged_control
        assert merged.status == ImplementationStatus.EFFECTIVE
        assert merged.description == "Acme maintains an access control policy reviewed annually."
        assert merged.responsible_party == "CISO"
        assert merged.uuid == "req-ac-1"
        assert merged.parts[0].prose.startswith("Develop, document, and disseminate")
        assert len(merged.history) == 2
        assert {"parts", "props"} <= set(entry.changed_fields)

    def test_new_control_not_assessed(self, catalog, prior_document):
        """AU-2 is new: seeded from the catalog, status not-assessed."""
        entry = by_id(reconcile(catalog, prior_document))["au-2"]

        assert entry.status == ReconciliationStatus.NEW
        assert entry.merged_control.status == ImplementationStatus.NOT_ASSESSED
        assert entry.merged_control.title == "Event Logging"
        assert entry.prior_fingerprint is None

    def test_removed_control_last(self, catalog, prior_document):
        """SC-99 is removed: appended after catalog controls, inactive by default."""
        report = reconcile(catalog, prior_document, ReconcileOptions(keep_removed=False))

        assert report.entries[-1].control_id == "sc-99"
        assert report.entries[-1].status == ReconciliationStatus.REMOVED
        assert report.entries[-1].merged_control is None
        assert report.entries[-1].prior_control.description == "Legacy control no longer in the framework."
        assert "sc-99" not in [c.control_id for c in report.merged_controls()]
        assert report.merged_controls(keep_removed=True)[-1].control_id == "sc-99"

    def test_removed_control_kept(self, catalog, prior_document):
        """With keep_removed, SC-99 stays in the active set untouched."""
        report = reconcile(catalog, prior_document, ReconcileOptions(keep_removed=True))

        kept = report.merged_controls()[-1]
        assert kept.control_id == "sc-99"
        assert kept.status == ImplementationStatus.NOT_IMPLEMENTED
        assert report.keep_removed is True

    def test_unchanged_control(self, catalog, prior_document):
        """AC-2 cache matches the catalog exactly."""
        entry = by_id(reconcile(catalog, prior_document))["ac-2"]

        assert entry.status == ReconciliationStatus.UNCHANGED
        assert entry.merged_control.status == ImplementationStatus.INEFFECTIVE

    def test_counts_and_order(self, catalog, prior_document):
        """Entries follow catalog order, removed ones last; counts add up."""
        report = reconcile(catalog, prior_document)

        assert [e.control_id for e in report.entries] == ["ac-1", "ac-2", "ac-2.1", "au-2", "sc-99"]
        assert report.counts == {"new": 2, "changed": 1, "unchanged": 1, "removed": 1}

    def test_metadata_preserved(self, catalog, prior_document):
        """Catalog metadata wins; document-only metadata is carried."""
        report = reconcile(catalog, prior_document, now=NOW)

        assert report.preserved_metadata["version"] == "5.1.1"
        assert report.preserved_metadata["title"] == "Acme Payments SSP"
        assert report.preserved_metadata["responsible-parties"][0]["role-id"] == "system-owner"
        assert report.preserved_metadata["last-modified"] == NOW.isoformat()
        assert report.reconciled_at == NOW.isoformat()


class TestProperties:
    """Whole-pipeline guarantees."""

    def test_fresh_start(self, catalog):
        """No prior document: every control is new."""
        report = reconcile(catalog, None)

        assert report.counts["new"] == 4
        assert all(e.merged_control.status == ImplementationStatus.NOT_ASSESSED for e in report.entries)

    def test_identical_refetch_all_unchanged(self, catalog, prior_document):
        """Re-running against the merged document reports nothing changed."""
        first = reconcile(catalog, prior_document, ReconcileOptions(keep_removed=False))
        merged_document = build_merged_document(first, prior_document)

        second = reconcile(catalog, merged_document)

        assert second.counts == {"new": 0, "changed": 0, "unchanged": 4, "removed": 0}

    def test_idempotent_merge(self, catalog, prior_document):
        """A second reconciliation reproduces the same merged controls."""
        first = reconcile(catalog, prior_document)
        second = reconcile(catalog, build_merged_document(first, prior_document))

        assert [c.model_dump() for c in second.merged_controls()] == [c.model_dump() for c in first.merged_controls()]

    def test_completeness(self, catalog, prior_document):
        """Every catalog control and every prior requirement is accounted for once."""
        report = reconcile(catalog, prior_document)
        ids = [e.control_id for e in report.entries]

        assert sorted(ids) == sorted({"ac-1", "ac-2", "ac-2.1", "au-2", "sc-99"})
        assert len(ids) == len(set(ids))
        active = report.counts["new"] + report.counts["changed"] + report.counts["unchanged"]
        assert active == len(flatten(catalog))

    def test_deterministic_output(self, catalog, prior_document, make_uuid_factory):
        """Identical inputs with pinned time and uuids give byte-identical JSON."""
        def run() -> str:
            report = reconcile(
                catalog,
                prior_document,
                ReconcileOptions(uuid_factory=make_uuid_factory()),
                now=NOW,
            )
            return json.dumps(report.model_dump(mode="json", by_alias=True), sort_keys=True)

        assert run() == run()

    def test_inputs_not_mutated(self, catalog, prior_document, snapshot):
        """The caller's catalog and document are not modified."""
        catalog_before, prior_before = snapshot(catalog), snapshot(prior_document)

        reconcile(catalog, prior_document)

        assert catalog == catalog_before
        assert prior_document == prior_before

    def test_parallel_fingerprinting_same_report(self, catalog, prior_document, make_uuid_factory):
        """A graph forced onto the thread pool produces the same report."""
        sequential = Reconciler(parallel_threshold=10_000).reconcile(
            catalog, prior_document, ReconcileOptions(uuid_factory=make_uuid_factory()), now=NOW
        )
        parallel = Reconciler(parallel_threshold=1).reconcile(
            catalog, prior_document, ReconcileOptions(uuid_factory=make_uuid_factory(), max_workers=4), now=NOW
        )

        assert parallel.model_dump() == sequential.model_dump()


FEDRAMP_NS = "https://fedramp.gov/ns/oscal"


def product_exported_ssp() -> dict:
    """Prior SSP in the export layout: catalog props, then status, then un-namespaced user props."""
    return {
        "system-security-plan": {
            "uuid": "ssp-export-1",
            "metadata": {"title": "Acme Payments SSP"},
            "control-implementation": {
                "description": "Exported controls.",
                "implemented-requirements": [
                    {
                        "uuid": "req-ac-1",
                        "control-id": "ac-1",
                        "props": [
                            {"name": "label", "value": "AC-1"},
                            {"name": "implementation-status", "value": "effective"},
                            {"name": "catalog-control-title", "value": "Policy and Procedures"},
                            {"name": "catalog-control-description", "value": "Develop a policy."},
                            {"name": "responsible-party", "value": "CISO"},
                            {"name": "control-owner", "value": "Security Engineering"},
                            {"name": "api-url", "value": "https://evidence.example.com/ac-1"},
                            {"name": "api-credential-id", "value": "cred-7"},
                            {"name": "api-response-data", "value": json.dumps({"mfa_enabled": True})},
                            {"name": "risk-rating", "value": "low"},
                            {"name": "frameworks", "value": "PCI-DSS, SOC 2"},
                            {"name": "control-origination", "ns": FEDRAMP_NS, "value": "sp-system"},
                        ],
                        "parts": [{"id": "ac-1_smt", "name": "statement", "prose": "Develop a policy."}],
                        "description": "Acme maintains an access control policy.",
                    }
                ],
            },
        }
    }


class TestNoDataLoss:
    """User data written by the product's own export survives reconciliation."""

    def test_exported_user_props_carried(self, catalog):
        """frameworks, api credential/response and third-party props reach the merged control."""
        merged = by_id(reconcile(catalog, product_exported_ssp()))["ac-1"].merged_control

        assert merged.frameworks == "PCI-DSS, SOC 2"
        assert merged.api_credential_id == "cred-7"
        assert merged.api_response_data == {"mfa_enabled": True}
        assert merged.control_owner == "Security Engineering"
        assert merged.risk_rating == "low"
        assert [(p.name, p.ns, p.value) for p in merged.extra_props] == [
            ("control-origination", FEDRAMP_NS, "sp-system"),
        ]
        assert [p.name for p in merged.props] == ["label"]

    def test_exported_user_props_written_back(self, catalog):
        """The merged document carries every user prop, and a second run keeps them."""
        prior = product_exported_ssp()
        first = reconcile(catalog, prior)
        document = json.loads(json.dumps(build_merged_document(first, prior)))

        ac1 = document["system-security-plan"]["control-implementation"]["implemented-requirements"][0]
        names = [p["name"] for p in ac1["props"]]
        assert {"frameworks", "api-credential-id", "api-response-data", "control-origination"} <= set(names)
        assert names.count("control-origination") == 1

        second = by_id(reconcile(catalog, document))["ac-1"]
        assert second.status == ReconciliationStatus.UNCHANGED
        assert second.merged_control.user_fields() == by_id(first)["ac-1"].merged_control.user_fields()


class TestWarningsAndErrors:
    """Recoverable problems surface as warnings; unusable input raises."""

    def test_warnings_aggregated(self, catalog, prior_document, make_raw_control):
        """Flatten, read and match warnings all reach the report."""
        catalog["catalog"]["groups"][1]["controls"].append({"title": "No id"})
        requirements = prior_document["system-security-plan"]["control-implementation"]["implemented-requirements"]
        requirements.append({"uuid": "dup", "control-id": "ac-2"})
        requirements.append({"uuid": "no-id"})

        report = reconcile(catalog, prior_document)

        codes = {w.code for w in report.warnings}
        assert {"missing_control_id", "duplicate_requirement_id"} <= codes
        assert any(w.kind == WarningKind.AMBIGUOUS_MATCH for w in report.warnings)
        assert by_id(report)["ac-2"].merged_control.uuid == "req-ac-2"

    def test_malformed_catalog(self, prior_document):
        """A catalog that cannot be walked raises."""
        with pytest.raises(MalformedCatalogError):
            reconcile({"catalog": {"groups": "ac"}}, prior_document)

    def test_malformed_document(self, catalog):
        """A prior document without a usable container raises."""
        with pytest.raises(MalformedDocumentError):
            reconcile(catalog, {"system-security-plan": "none"})


class TestFlattenApi:
    """Fresh-start flatten entry points."""

    def test_flatten_returns_controls(self, catalog):
        """flatten gives the ordered control list."""
        assert [c.id for c in flatten(catalog)] == ["ac-1", "ac-2", "ac-2.1", "au-2"]

    def test_flatten_with_warnings(self, make_raw_control):
        """flatten_with_warnings keeps the structural warnings."""
        result = flatten_with_warnings({"controls": [make_raw_control("a-1"), make_raw_control("a-1")]})

        assert len(result.controls) == 1
        assert result.warnings[0].code == "duplicate_control_id"


class TestReportViews:
    """Report helpers for review screens."""

    def test_summary_itemizes_ids(self, catalog, prior_document):
        """The summary lists control ids per status."""
        summary = reconcile(catalog, prior_document, now=NOW).to_summary()

        assert summary["items"]["new"] == ["ac-2.1", "au-2"]
        assert summary["items"]["removed"] == ["sc-99"]
        assert summary["counts"]["changed"] == 1
        assert summary["reconciled_at"] == NOW.isoformat()
