from __future__ import annotations

import io
import logging
from datetime import date, datetime, timedelta, timezone
from typing import List, Sequence
from xml.sax.saxutils import escape

import pandas as pd
from fastapi.responses import StreamingResponse

logger = logging.getLogger(__name__)

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def dated_filename(prefix: str) -> str:
    """e.g. invoices_2024-05-01"""
    return f"{prefix}_{date.today().isoformat()}"


def _attachment(filename: str) -> dict:
    return {"Content-Disposition": f'attachment; filename="{filename}"'}


def _csv_response(df: pd.DataFrame, filename_base: str) -> StreamingResponse:
    buffer = io.StringIO()
    df.to_csv(buffer, index=False)
    buffer.seek(0)
    return StreamingResponse(buffer, media_type="text/csv", headers=_attachment(f"{filename_base}.csv"))


# PUBLIC_INTERFACE
def export_dataframe(
    df: pd.DataFrame,
    filename_base: str,
    export_format: str,
) -> StreamingResponse:
    """
    Convert DataFrame to the requested format and return a StreamingResponse.

    Supported formats:
      - csv: text/csv
      - xlsx: application/vnd.openxmlformats-officedocument.spreadsheetml.sheet
      - pdf: application/pdf (simple tabular rendering)
    Unknown formats fall back to CSV.
    """
    export_format = (export_format or "csv").lower()
    if export_format in ("xlsx", "excel", "xls"):
        buffer = io.BytesIO()
        with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
            df.to_excel(writer, index=False, sheet_name="Export")
        buffer.seek(0)
        return StreamingResponse(buffer, media_type=XLSX_MEDIA_TYPE, headers=_attachment(f"{filename_base}.xlsx"))

    if export_format == "pdf":
        from reportlab.lib import colors
        from reportlab.lib.pagesizes import landscape, letter
        from reportlab.lib.styles import getSampleStyleSheet
        from reportlab.platypus import Paragraph, SimpleDocTemplate, Table, TableStyle

        buffer = io.BytesIO()
        doc = SimpleDocTemplate(
            buffer, pagesize=landscape(letter), leftMargin=18, rightMargin=18, topMargin=18, bottomMargin=18
        )
        styles = getSampleStyleSheet()
        generated = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M UTC")
        elements: list = [Paragraph(f"{filename_base.replace('_', ' ').title()} ({generated})", styles["Title"])]

        data = [list(df.columns)] + df.astype(str).values.tolist()
        table = Table(data, repeatRows=1)
        table.setStyle(
            TableStyle(
                [
                    ("BACKGROUND", (0, 0), (-1, 0), colors.lightgrey),
                    ("TEXTCOLOR", (0, 0), (-1, 0), colors.black),
                    ("ALIGN", (0, 0), (-1, -1), "LEFT"),
                    ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
                    ("FONTSIZE", (0, 0), (-1, -1), 8),
                    ("BOTTOMPADDING", (0, 0), (-1, 0), 6),
                    ("GRID", (0, 0), (-1, -1), 0.25, colors.grey),
                ]
            )
        )
        elements.append(table)
        doc.build(elements)
        buffer.seek(0)
        return StreamingResponse(buffer, media_type="application/pdf", headers=_attachment(f"{filename_base}.pdf"))

    return _csv_response(df, filename_base)


# PUBLIC_INTERFACE
def read_spreadsheet(content: bytes, filename: str) -> pd.DataFrame:
    """Load an uploaded .csv or .xlsx/.xls file into a DataFrame of strings."""
    name = (filename or "").lower()
    if name.endswith(".csv"):
        df = pd.read_csv(io.BytesIO(content), dtype=str, keep_default_na=False)
    elif name.endswith((".xlsx", ".xls")):
        df = pd.read_excel(io.BytesIO(content), dtype=str, engine="openpyxl")
        df = df.fillna("")
    else:
        raise ValueError("Unsupported file type; upload a .csv or .xlsx file.")
    df.columns = [str(c).strip() for c in df.columns]
    return df


# PUBLIC_INTERFACE
def time_log_template(project_names: Sequence[str]) -> StreamingResponse:
    """
    Excel template for time log imports with a project dropdown on column A.
    """
    from openpyxl.worksheet.datavalidation import DataValidation

    now = datetime.now()
    sample = pd.DataFrame(
        [
            {
                "Project": project_names[0] if project_names else "",
                "Start Timestamp": now.strftime("%Y-%m-%d %H:%M:%S"),
                "End Timestamp": (now + timedelta(hours=2)).strftime("%Y-%m-%d %H:%M:%S"),
                "Note": "Example note",
            }
        ]
    )
    buffer = io.BytesIO()
    with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
        sample.to_excel(writer, index=False, sheet_name="Time Logs")
        sheet = writer.sheets["Time Logs"]
        if project_names:
            validation = DataValidation(
                type="list",
                formula1='"' + ",".join(project_names) + '"',
                allow_blank=False,
                showDropDown=False,
            )
            sheet.add_data_validation(validation)
            validation.add("A2:A100")
        for column in ("A", "B", "C", "D"):
            sheet.column_dimensions[column].width = 24
    buffer.seek(0)
    filename = f"time_log_template_{date.today().isoformat()}.xlsx"
    return StreamingResponse(buffer, media_type=XLSX_MEDIA_TYPE, headers=_attachment(filename))


# PUBLIC_INTERFACE
def invoice_pdf(invoice) -> StreamingResponse:
    """Render a single invoice (header, items, totals) as a PDF download."""
    from reportlab.lib import colors
    from reportlab.lib.pagesizes import A4
    from reportlab.lib.styles import getSampleStyleSheet
    from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

    buffer = io.BytesIO()
    doc = SimpleDocTemplate(buffer, pagesize=A4, leftMargin=36, rightMargin=36, topMargin=36, bottomMargin=36)
    styles = getSampleStyleSheet()
    currency = invoice.currency
    client = invoice.client

    elements: List = [
        Paragraph(f"Invoice {escape(invoice.invoice_number)}", styles["Title"]),
        Paragraph(f"Issue date: {invoice.issue_date.isoformat()}", styles["Normal"]),
        Paragraph(f"Due date: {invoice.due_date.isoformat()}", styles["Normal"]),
        Paragraph(f"Status: {invoice.status.replace('_', ' ').title()}", styles["Normal"]),
        Spacer(1, 12),
    ]
    if client is not None:
        elements.append(Paragraph("Bill to", styles["Heading3"]))
        for line in (client.name, client.contact_person, client.email, client.address):
            if line:
                elements.append(Paragraph(escape(str(line)), styles["Normal"]))
        elements.append(Spacer(1, 12))

    rows = [["Description", "Quantity", "Unit Price", "Amount"]]
    for item in invoice.items:
        rows.append(
            [
                Paragraph(escape(item.description), styles["Normal"]),
                f"{item.quantity:.2f}",
                f"{item.unit_price:.2f} {currency}",
                f"{item.amount:.2f} {currency}",
            ]
        )
    rows.append(["", "", "Subtotal", f"{invoice.subtotal:.2f} {currency}"])
    if invoice.discount_amount:
        rows.append(["", "", "Discount", f"-{invoice.discount_amount:.2f} {currency}"])
    if invoice.tax_amount:
        rows.append(["", "", "Tax", f"{invoice.tax_amount:.2f} {currency}"])
    rows.append(["", "", "Total", f"{invoice.total_amount:.2f} {currency}"])

    table = Table(rows, colWidths=[260, 60, 90, 90], repeatRows=1)
    table.setStyle(
        TableStyle(
            [
                ("BACKGROUND", (0, 0), (-1, 0), colors.lightgrey),
                ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
                ("FONTNAME", (2, -1), (-1, -1), "Helvetica-Bold"),
                ("ALIGN", (1, 0), (-1, -1), "RIGHT"),
                ("VALIGN", (0, 0), (-1, -1), "TOP"),
                ("FONTSIZE", (0, 0), (-1, -1), 9),
                ("GRID", (0, 0), (-1, len(invoice.items)), 0.25, colors.grey),
            ]
        )
    )
    elements.append(table)
    if invoice.notes:
        elements.extend([Spacer(1, 12), Paragraph("Notes", styles["Heading3"]), Paragraph(escape(invoice.notes), styles["Normal"])])
    doc.build(elements)
    buffer.seek(0)
    logger.info("Rendered PDF for invoice %s", invoice.invoice_number)
    return StreamingResponse(
        buffer, media_type="application/pdf", headers=_attachment(f"Invoice_{invoice.invoice_number}.pdf")
    )
