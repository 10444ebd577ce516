"""
Tests for the cabinet stock report HTTP endpoints and renderers.
"""

from __future__ import annotations

from io import BytesIO

import pytest
from fastapi.testclient import TestClient
from openpyxl import load_workbook

from medsupply.core.database import get_db
from medsupply.main import app
from medsupply.services.cabinet_stock_service import CabinetStockReportError

from conftest import AS_OF

DATA_URL = "/api/v1/reports/cabinet-stock/data"
EXCEL_URL = "/api/v1/reports/cabinet-stock/excel"
PDF_URL = "/api/v1/reports/cabinet-stock/pdf"


@pytest.fixture
def seeded(session, world):
    world.item("A001", "Syringe 5 ml")
    world.item("B001", "IV set & extension")
    icu = world.department("ICU")
    c1 = world.cabinet(1, code="CAB-ICU", name="ICU Cabinet 1")
    world.assign(c1, icu)
    world.units(c1, "A001", 3)
    world.units(c1, "B001", 12)
    world.threshold(c1, "A001", stock_min=5, stock_max=10)
    world.threshold(c1, "B001", stock_min=2, stock_max=10)
    world.usage(icu, "A001", 2)
    world.returned(c1, "A001", 1)
    session.commit()
    return icu


@pytest.fixture
def client(session):
    def override_get_db():
        yield session

    app.dependency_overrides[get_db] = override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.pop(get_db, None)


def body(**filters):
    return {"reportDate": AS_OF.isoformat(), **filters}


class TestHealth:

    def test_health(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}


class TestRouting:

    @pytest.mark.parametrize("path", [DATA_URL, EXCEL_URL, PDF_URL])
    def test_report_routes_tagged_once(self, path):
        schema = TestClient(app).get("/openapi.json").json()
        assert schema["paths"][path]["post"]["tags"] == ["reports"]


class TestCabinetStockData:

    def test_cabinet_report(self, client, seeded):
        resp = client.post(DATA_URL, json=body(cabinetId=1))

        assert resp.status_code == 200
        payload = resp.json()
        assert payload["success"] is True

        report = payload["data"]
        assert report["report_date"] == "2026-10-19"
        assert report["filters"]["cabinetName"] == "ICU Cabinet 1"
        assert report["summary"] == {"total_rows": 2, "total_qty": 15, "total_refill_qty": 1}

        rows = report["data"]
        assert [r["item_code"] for r in rows] == ["A001", "B001"]
        assert rows[0] == {
            "seq": 1,
            "department_name": "ICU",
            "item_code": "A001",
            "item_name": "Syringe 5 ml",
            "balance_qty": 3,
            "qty_in_use": 2,
            "damaged_qty": 1,
            "stock_max": 10,
            "stock_min": 5,
            "refill_qty": 3,
        }
        assert rows[1]["refill_qty"] == -2

    def test_department_report_has_no_thresholds(self, client, seeded):
        resp = client.post(DATA_URL, json=body(departmentId=seeded.id))

        assert resp.status_code == 200
        report = resp.json()["data"]
        assert report["filters"]["departmentName"] == "ICU"
        assert all(r["stock_max"] == 0 for r in report["data"])
        assert all(r["stock_min"] is None for r in report["data"])

    def test_snake_case_body_accepted(self, client, seeded):
        resp = client.post(DATA_URL, json={"cabinet_code": "CAB-ICU", "report_date": "2026-10-19"})
        assert resp.status_code == 200
        assert resp.json()["data"]["filters"]["cabinetCode"] == "CAB-ICU"

    def test_empty_filters_unscoped(self, client, seeded):
        resp = client.post(DATA_URL, json=body())
        assert resp.status_code == 200
        assert resp.json()["data"]["summary"]["total_rows"] == 2

    @pytest.mark.parametrize(
        "payload",
        [
            {"cabinetId": 0},
            {"departmentId": -1},
            {"reportDate": "not-a-date"},
            {"unknown": 1},
        ],
    )
    def test_invalid_body_rejected(self, client, payload):
        resp = client.post(DATA_URL, json=payload)
        assert resp.status_code == 422

    def test_upstream_failure_returns_500(self, client, monkeypatch):
        def fail(*args, **kwargs):
            raise CabinetStockReportError("Failed to get cabinet stock report data: db down")

        monkeypatch.setattr(
            "medsupply.api.v1.endpoints.reports.compute_cabinet_stock_report", fail
        )

        resp = client.post(DATA_URL, json=body())

        assert resp.status_code == 500
        assert resp.json() == {"detail": "Failed to get cabinet stock report data"}
        assert "db down" not in resp.text


class TestCabinetStockExports:

    def test_excel_export(self, client, seeded):
        resp = client.post(EXCEL_URL, json=body(cabinetId=1))

        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith(
            "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
        )
        assert 'filename="cabinet_stock_report_2026-10-19.xlsx"' in resp.headers["content-disposition"]

        wb = load_workbook(BytesIO(resp.content))
        ws = wb.active
        values = [row for row in ws.iter_rows(values_only=True)]
        header_index = next(i for i, row in enumerate(values) if row and row[0] == "Seq")
        first = values[header_index + 1]
        assert first[:5] == (1, "ICU", "A001", "Syringe 5 ml", 3)
        assert first[9] == 3

    def test_pdf_export(self, client, seeded):
        resp = client.post(PDF_URL, json=body(cabinetId=1))

        assert resp.status_code == 200
        assert resp.headers["content-type"] == "application/pdf"
        assert 'filename="cabinet_stock_report_2026-10-19.pdf"' in resp.headers["content-disposition"]
        assert resp.content.startswith(b"%PDF")

    def test_pdf_export_empty_report(self, client):
        resp = client.post(PDF_URL, json=body(cabinetCode="NONE"))
        assert resp.status_code == 200
        assert resp.content.startswith(b"%PDF")
