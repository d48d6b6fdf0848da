import io
from typing import Any

import openpyxl
import pytest
from reportlab.lib.pagesizes import letter
from reportlab.pdfgen import canvas


@pytest.fixture()
def sample_pdf_bytes() -> bytes:
    """Generate a minimal single-page statement PDF with known text content."""
    buf = io.BytesIO()
    c = canvas.Canvas(buf, pagesize=letter)
    c.drawString(72, 720, "Acme Brokerage Statement")
    c.drawString(72, 700, "Account ending 1234")
    c.save()
    return buf.getvalue()


@pytest.fixture()
def multi_page_pdf_bytes() -> bytes:
    """Generate a two-page PDF with known text on each page."""
    buf = io.BytesIO()
    c = canvas.Canvas(buf, pagesize=letter)
    c.drawString(72, 720, "Page one content")
    c.showPage()
    c.drawString(72, 720, "Page two content")
    c.save()
    return buf.getvalue()


@pytest.fixture()
def empty_pdf_bytes() -> bytes:
    """Generate a valid PDF with no text content (blank page), like a scan."""
    buf = io.BytesIO()
    c = canvas.Canvas(buf, pagesize=letter)
    c.showPage()
    c.save()
    return buf.getvalue()


@pytest.fixture()
def sample_xlsx_bytes() -> bytes:
    """Generate a two-sheet workbook of transactions and holdings."""
    workbook = openpyxl.Workbook()
    sheet = workbook.active
    sheet.title = "Activity"
    sheet.append(["Date", "Description", "Amount"])
    sheet.append(["2024-01-05", "Dividend VTI", 12.5])
    sheet.append([None, None, None])
    sheet.append(["2024-01-09", "Buy AAPL", -1850])
    holdings = workbook.create_sheet("Holdings")
    holdings.append(["Symbol", "Quantity"])
    holdings.append(["AAPL", 10])
    buf = io.BytesIO()
    workbook.save(buf)
    return buf.getvalue()


@pytest.fixture()
def sample_csv_bytes() -> bytes:
    return (
        "Date,Description,Amount\n"
        "2024-01-05,Dividend VTI,12.50\n"
        ",,\n"
        "2024-01-09,Buy AAPL,-1850.00\n"
    ).encode("utf-8")


@pytest.fixture()
def extraction_payload() -> dict[str, Any]:
    """A well-formed oracle response for a one-month brokerage statement."""
    return {
        "account_info": {
            "institution_name": "Acme Brokerage",
            "account_type": "individual",
            "account_number_hint": "...1234",
            "account_nickname": "Acme Taxable",
            "account_group": None,
            "owner_name": "Jordan Lee",
        },
        "statement_start_date": "2024-01-01",
        "statement_end_date": "2024-01-31",
        "transactions": [
            {
                "transaction_date": "2024-01-05",
                "settlement_date": None,
                "symbol": "VTI",
                "description": "Dividend VTI",
                "action": "dividend",
                "quantity": None,
                "price_per_share": None,
                "total_amount": 12.5,
                "fees": None,
                "commission": None,
            },
            {
                "transaction_date": "2024-01-09",
                "settlement_date": "2024-01-11",
                "symbol": "AAPL",
                "description": "Buy AAPL",
                "action": "buy",
                "quantity": 10,
                "price_per_share": 185,
                "total_amount": -1850,
                "fees": 0,
                "commission": 0,
            },
        ],
        "positions": [
            {
                "symbol": "AAPL",
                "description": "Apple Inc",
                "quantity": 10,
                "cost_basis": 1850,
                "market_value": 1900,
                "snapshot_date": "2024-01-31",
            },
            {
                "symbol": "VTI",
                "description": "Vanguard Total Stock Market",
                "quantity": 20,
                "cost_basis": 4000,
                "market_value": 4100,
                "snapshot_date": "2024-01-31",
            },
        ],
        "balances": [
            {
                "snapshot_date": "2024-01-31",
                "liquidation_value": 10000,
                "cash_balance": 4000,
                "equity": 6000,
                "buying_power": 4000,
            }
        ],
        "confidence": "high",
        "notes": [],
    }
