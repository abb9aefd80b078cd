"""
Declaration API Test

Validates the FastAPI surface:
1. Health probes
2. JSON and XML declaration endpoints
3. Fatal input errors map to 422 with the error type
4. Summary table endpoint
"""

import pytest
from fastapi.testclient import TestClient

from api.server import create_app


@pytest.fixture
def client():
    """Create test client."""
    with TestClient(create_app()) as c:
        yield c


def make_payload(**overrides) -> dict:
    payload = {
        "subject": {"nip": "PL 526-025-02-74", "full_name": "Hurtownia \"Kowalski\" & Syn", "tax_office_code": "1471"},
        "period": "2024-03",
        "generated_at": "2024-04-05T10:30:00Z",
        "transactions": [
            {
                "id": "S1",
                "kind": "sale",
                "document_number": "FV/2024/03/001",
                "issue_date": "10.03.2024",
                "counterparty_tax_id": "1234563218",
                "line_items": [
                    {"net_value": "1 000,00", "vat_rate": "23%"},
                    {"net_value": "500", "vat_rate": "8"},
                ],
                "total_net": "1500.00",
                "total_vat": "270.00",
            },
            {
                "id": "P1",
                "kind": "purchase",
                "document_number": "ZK/77",
                "issue_date": "2024-03-20",
                "line_items": [{"net_value": "300", "vat_rate": "23"}],
            },
        ],
    }
    payload.update(overrides)
    return payload


class TestHealthEndpoints:
    """Probes."""

    def test_health(self, client):
        """Health reports version and registered schema versions."""
        data = client.get("/health").json()
        assert data["status"] == "healthy"
        assert data["schema_versions"] == ["3"]
        assert data["services"]["api"] == "up"

    def test_ready_and_live(self, client):
        """Kubernetes probes answer."""
        assert client.get("/ready").json() == {"status": "ready"}
        assert client.get("/live").json() == {"status": "alive"}


class TestCreateDeclaration:
    """POST /declarations."""

    def test_returns_declaration_and_checks(self, client):
        """The response carries the declaration, diagnostics and check results."""
        resp = client.post("/declarations", json=make_payload())
        assert resp.status_code == 200

        data = resp.json()
        assert data["declaration_id"] == "5260250274-2024-03"
        assert data["filename"] == "JPK_V7M_2024-03.xml"
        assert data["declaration"]["sale_control"] == {"section": "sale", "row_count": 1, "total_vat": "270.00"}
        assert data["declaration"]["summary"]["fields"]["P_40"] == "270.00"
        assert data["declaration"]["summary"]["fields"]["P_54"] == "69.00"
        assert data["declaration"]["summary"]["fields"]["P_60"] == "201.00"
        assert data["diagnostics"] == []
        assert data["validation"]["status"] == "PASS"

    def test_diagnostics_are_typed(self, client):
        """Row diagnostics are returned with their kind."""
        payload = make_payload()
        payload["transactions"][0]["total_vat"] = "300.00"
        payload["transactions"][1]["line_items"][0]["vat_rate"] = "7"

        kinds = sorted(d["kind"] for d in client.post("/declarations", json=payload).json()["diagnostics"])
        assert kinds == ["row_total_mismatch", "unclassified_rate"]

    def test_missing_tax_id_is_422(self, client):
        """A subject without NIP is a domain error."""
        resp = client.post("/declarations", json=make_payload(subject={"full_name": "Bez NIP"}))
        assert resp.status_code == 422
        assert resp.json() == {
            "error": "MissingRequiredSubjectDataError",
            "detail": resp.json()["detail"],
            "field": "tax_id",
        }

    def test_invalid_period_is_422(self, client):
        """Malformed periods are rejected."""
        resp = client.post("/declarations", json=make_payload(period="2024-13"))
        assert resp.status_code == 422
        assert resp.json()["error"] == "InvalidPeriodError"

    def test_malformed_document_is_422(self, client):
        """Request validation errors keep FastAPI's own shape."""
        payload = make_payload()
        del payload["transactions"][0]["document_number"]
        resp = client.post("/declarations", json=payload)
        assert resp.status_code == 422
        assert "detail" in resp.json()


class TestCreateDeclarationXml:
    """POST /declarations/xml."""

    def test_returns_xml_attachment(self, client):
        """The document is returned as an XML attachment."""
        resp = client.post("/declarations/xml", json=make_payload())
        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("application/xml")
        assert resp.headers["content-disposition"] == 'attachment; filename="JPK_V7M_2024-03.xml"'
        assert resp.headers["x-diagnostics-count"] == "0"

        body = resp.text
        assert body.startswith('<?xml version="1.0" encoding="UTF-8"?>')
        assert "<PelnaNazwa>Hurtownia &quot;Kowalski&quot; &amp; Syn</PelnaNazwa>" in body
        assert "<K_10>1000.00</K_10>" in body
        assert "<DataWystawienia>2024-03-10</DataWystawienia>" in body

    def test_exempt_subject_is_422(self, client):
        """Exempt subjects cannot file."""
        payload = make_payload()
        payload["subject"]["vat_status"] = "exempt"
        resp = client.post("/declarations/xml", json=payload)
        assert resp.status_code == 422
        assert resp.json()["error"] == "SubjectNotEligibleError"


class TestSummaryTable:
    """GET /declarations/schemas/{version}/summary."""

    def test_summary_table(self, client):
        """The P_ table is published per schema version."""
        data = client.get("/declarations/schemas/3/summary").json()
        assert data["schema_version"] == "3"
        assert data["fields"]["P_54"] == ["K_41", "K_43", "K_45", "K_50"]
        assert data["settlement"] == ["P_40", "P_54", "P_60", "P_61"]

    def test_unknown_version(self, client):
        """Unknown versions are a domain error."""
        resp = client.get("/declarations/schemas/7/summary")
        assert resp.status_code == 422
        assert resp.json()["error"] == "UnsupportedSchemaVersionError"
