from __future__ import annotations

import copy
import itertools
import json
import sys
from pathlib import Path
from typing import Any, Callable

# Add src directory to path immediately on import - MUST be before any other imports
_src_dir = Path(__file__).resolve().parents[1] / "src"
_src_str = str(_src_dir)
if _src_str not in sys.path:
    sys.path.insert(0, _src_str)

import pytest


def pytest_configure(config: pytest.Config) -> None:
    """Ensure src directory is on sys.path so tests can import modules."""
    src_dir = Path(__file__).resolve().parents[1] / "src"
    src_str = str(src_dir)
    if src_str not in sys.path:
        sys.path.insert(0, src_str)


NS = "https://ssp-reconcile.dev/ns/oscal"

AC1_OLD_PROSE = "Develop and document an access control policy."
AC1_NEW_PROSE = "Develop, document, and disseminate an access control policy to organization-defined personnel."


def raw_control(
    control_id: str,
    title: str = "",
    prose: str | None = None,
    params: list[dict[str, Any]] | None = None,
    props: list[dict[str, Any]] | None = None,
    enhancements: list[dict[str, Any]] | None = None,
    **extra: Any,
) -> dict[str, Any]:
    """Build a raw OSCAL control dict."""
    control: dict[str, Any] = {"id": control_id, "title": title or control_id.upper()}
    if params:
        control["params"] = params
    if props:
        control["props"] = props
    if prose is not None:
        control["parts"] = [{"id": f"{control_id}_smt", "name": "statement", "prose": prose}]
    if enhancements:
        control["controls"] = enhancements
    control.update(extra)
    return control


def fresh_catalog() -> dict[str, Any]:
    """Refreshed catalog: AC-1 reworded, AC-2 untouched, AC-2(1) and AU-2 added, SC-99 gone."""
    return {
        "catalog": {
            "uuid": "cat-uuid-2",
            "metadata": {
                "title": "Test Security Catalog",
                "last-modified": "2024-06-01T00:00:00+00:00",
                "version": "5.1.1",
                "oscal-version": "1.1.2",
                "props": [{"name": "resolution-tool", "value": "catalog-builder"}],
            },
            "groups": [
                {
                    "id": "ac",
                    "title": "Access Control",
                    "controls": [
                        raw_control(
                            "ac-1",
                            title="Policy and Procedures",
                            prose=AC1_NEW_PROSE,
                            props=[{"name": "label", "value": "AC-1"}],
                        ),
                        raw_control(
                            "ac-2",
                            title="Account Management",
                            prose="Define and document the types of accounts allowed.",
                            params=[{"id": "ac-02_odp.01", "label": "account types"}],
                            enhancements=[
                                raw_control(
                                    "ac-2.1",
                                    title="Automated System Account Management",
                                    prose="Support the management of system accounts using automated mechanisms.",
                                ),
                            ],
                        ),
                    ],
                },
                {
                    "id": "au",
                    "title": "Audit and Accountability",
                    "controls": [
                        raw_control("au-2", title="Event Logging", prose="Identify the types of events to log."),
                    ],
                },
            ],
        }
    }


def history_entries() -> list[dict[str, Any]]:
    return [
        {
            "timestamp": "2024-05-02T09:30:00+00:00",
            "success": True,
            "status": 200,
            "data": {"mfa_enabled": True},
            "error": None,
        },
        {
            "timestamp": "2024-05-01T09:30:00+00:00",
            "success": False,
            "status": 503,
            "data": None,
            "error": "upstream unavailable",
        },
    ]


def prior_ssp() -> dict[str, Any]:
    """Prior SSP built from the previous catalog revision, with user edits."""
    return {
        "system-security-plan": {
            "uuid": "ssp-uuid-1",
            "metadata": {
                "title": "Acme Payments SSP",
                "last-modified": "2024-05-02T10:00:00+00:00",
                "version": "5.1.0",
                "responsible-parties": [{"role-id": "system-owner", "party-uuids": ["p-1"]}],
                "props": [{"name": "system-owner-note", "value": "keep me"}],
            },
            "import-profile": {"href": "#profile"},
            "system-characteristics": {"system-name": "Acme Payments"},
            "system-implementation": {"users": []},
            "control-implementation": {
                "description": "Controls implemented by Acme Payments.",
                "implemented-requirements": [
                    {
                        "uuid": "req-ac-1",
                        "control-id": "ac-1",
                        "props": [
                            {"name": "catalog-control-title", "value": "Policy and Procedures"},
                            {"name": "implementation-status", "value": "effective"},
                            {"name": "responsible-party", "value": "CISO"},
                            {"name": "risk-rating", "value": "low"},
                            {"name": "api-data-history", "value": json.dumps(history_entries())},
                        ],
                        "parts": [{"id": "ac-1_smt", "name": "statement", "prose": AC1_OLD_PROSE}],
                        "description": "Acme maintains an access control policy reviewed annually.",
                    },
                    {
                        "uuid": "req-ac-2",
                        "control-id": "ac-2",
                        "props": [
                            {"name": "catalog-control-title", "value": "Account Management"},
                            {"name": "implementation-status", "value": "ineffective"},
                        ],
                        "params": [{"id": "ac-02_odp.01", "label": "account types"}],
                        "parts": [
                            {
                                "id": "ac-2_smt",
                                "name": "statement",
                                "prose": "Define and document the types of accounts allowed.",
                            }
                        ],
                        "description": "Accounts are reviewed quarterly.",
                    },
                    {
                        "uuid": "req-sc-99",
                        "control-id": "sc-99",
                        "props": [
                            {"name": "catalog-control-title", "value": "Legacy Control"},
                            {"name": "implementation-status", "value": "not-implemented"},
                        ],
                        "description": "Legacy control no longer in the framework.",
                    },
                ],
            },
        }
    }


def counting_uuids() -> Callable[[], str]:
    """Deterministic uuid factory: new-0001, new-0002, ..."""
    counter = itertools.count(1)
    return lambda: f"new-{next(counter):04d}"


@pytest.fixture
def catalog() -> dict[str, Any]:
    return fresh_catalog()


@pytest.fixture
def prior_document() -> dict[str, Any]:
    return prior_ssp()


@pytest.fixture
def make_raw_control() -> Callable[..., dict[str, Any]]:
    return raw_control


@pytest.fixture
def uuid_factory() -> Callable[[], str]:
    return counting_uuids()


@pytest.fixture
def make_uuid_factory() -> Callable[[], Callable[[], str]]:
    return counting_uuids


@pytest.fixture
def snapshot() -> Callable[[Any], Any]:
    """Deep copy helper for asserting inputs are not mutated."""
    return copy.deepcopy
