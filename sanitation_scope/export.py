"""Excel and PDF export of the coverage breakdown for a resolved scope key"""
from datetime import datetime
from typing import Any, Dict, List, Optional
import io

from openpyxl import Workbook
from openpyxl.styles import Font, Alignment, PatternFill, Border, Side
from openpyxl.utils import get_column_letter
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.platypus import SimpleDocTemplate, Table, TableStyle, Paragraph, Spacer

from sanitation_scope.models.geography import FetchKey, ScopeTier

# Breakdown collection one tier below the key's tier
BREAKDOWN_FIELDS = {
    ScopeTier.STATE: ("district_wise_coverage", "District"),
    ScopeTier.DISTRICT: ("block_wise_coverage", "Block"),
    ScopeTier.BLOCK: ("gp_wise_coverage", "GP"),
}

NOT_AVAILABLE = "Not Available"

# Excel styling
HEADER_FILL = PatternFill(start_color="1E3A5F", end_color="1E3A5F", fill_type="solid")
HEADER_FONT = Font(bold=True, color="FFFFFF", size=11)
DATA_FONT = Font(size=10)
THIN_BORDER = Border(
    left=Side(style='thin'),
    right=Side(style='thin'),
    top=Side(style='thin'),
    bottom=Side(style='thin')
)


def breakdown_label(key: FetchKey) -> Optional[str]:
    """'District' / 'Block' / 'GP' for the rows a key's report breaks down into."""
    field = BREAKDOWN_FIELDS.get(key.tier)
    return field[1] if field else None


def coverage_headers(key: FetchKey) -> List[str]:
    label = breakdown_label(key) or "Geography"
    headers = ["Sr. No.", f"{label} Name"]
    # GP rows carry no GP counts of their own
    if key.tier != ScopeTier.BLOCK:
        headers += ["Total GPs", "GPs with Data", "Coverage %"]
    headers.append("Status")
    return headers


def coverage_rows(key: FetchKey, report: Optional[Dict[str, Any]]) -> List[List[Any]]:
    """Flatten the report's breakdown collection into table rows."""
    field = BREAKDOWN_FIELDS.get(key.tier)
    if field is None or not report:
        return []
    rows = []
    for index, item in enumerate(report.get(field[0]) or [], 1):
        row = [index, item.get("geography_name") or ""]
        if key.tier != ScopeTier.BLOCK:
            row += [
                item.get("total_gps") or 0,
                item.get("gps_with_data") or 0,
                f"{item.get('coverage_percentage') or 0}%",
            ]
        row.append(item.get("master_data_status") or NOT_AVAILABLE)
        rows.append(row)
    return rows


def export_filename(key: FetchKey, extension: str) -> str:
    label = breakdown_label(key) or "GP"
    return f"{label}_Wise_Coverage_Report.{extension}"


def style_excel_sheet(ws, headers, start_row=1):
    """Apply styling to Excel sheet"""
    # Set headers
    for col, header in enumerate(headers, 1):
        cell = ws.cell(row=start_row, column=col, value=header)
        cell.fill = HEADER_FILL
        cell.font = HEADER_FONT
        cell.alignment = Alignment(horizontal='center', vertical='center')
        cell.border = THIN_BORDER

    # Auto-adjust column widths
    for col in range(1, len(headers) + 1):
        max_length = len(str(headers[col-1]))
        for row in range(start_row + 1, ws.max_row + 1):
            cell_value = ws.cell(row=row, column=col).value
            if cell_value is not None:
                max_length = max(max_length, len(str(cell_value)))
        ws.column_dimensions[get_column_letter(col)].width = min(max_length + 2, 50)


def add_data_rows(ws, data, start_row=2):
    """Add data rows to Excel sheet"""
    for row_idx, row_data in enumerate(data, start_row):
        for col_idx, value in enumerate(row_data, 1):
            cell = ws.cell(row=row_idx, column=col_idx, value=value)
            cell.font = DATA_FONT
            cell.border = THIN_BORDER
            cell.alignment = Alignment(horizontal='center' if isinstance(value, (int, float)) else 'left')


def build_coverage_workbook(key: FetchKey, report: Optional[Dict[str, Any]], scope_label: str) -> bytes:
    """Coverage breakdown of ``report`` as .xlsx bytes"""
    wb = Workbook()
    ws = wb.active
    ws.title = "Coverage Report"

    headers = coverage_headers(key)
    ws['A1'] = f"{scope_label} - Coverage Report"
    ws['A1'].font = Font(bold=True, size=14)
    ws['A2'] = f"Generated: {datetime.now().strftime('%Y-%m-%d %H:%M')}"

    add_data_rows(ws, coverage_rows(key, report), start_row=5)
    style_excel_sheet(ws, headers, start_row=4)

    output = io.BytesIO()
    wb.save(output)
    return output.getvalue()


def build_coverage_pdf(key: FetchKey, report: Optional[Dict[str, Any]], scope_label: str) -> bytes:
    """Coverage breakdown of ``report`` as PDF bytes"""
    buffer = io.BytesIO()
    doc = SimpleDocTemplate(buffer, pagesize=landscape(A4), rightMargin=30, leftMargin=30, topMargin=30, bottomMargin=30)

    styles = getSampleStyleSheet()
    title_style = ParagraphStyle('Title', parent=styles['Heading1'], fontSize=18, alignment=1, spaceAfter=20)
    subtitle_style = ParagraphStyle('Subtitle', parent=styles['Normal'], fontSize=10, alignment=1, textColor=colors.grey)

    elements = [
        Paragraph(f"{breakdown_label(key) or 'GP'} Wise Coverage Report", title_style),
        Paragraph(scope_label, subtitle_style),
        Paragraph(f"Generated: {datetime.now().strftime('%Y-%m-%d %H:%M')}", subtitle_style),
        Spacer(1, 20),
    ]

    rows = coverage_rows(key, report)
    if not rows:
        elements.append(Paragraph("No data available", styles['Normal']))
    else:
        table_data = [coverage_headers(key)] + [[str(v) for v in row] for row in rows]
        table = Table(table_data, repeatRows=1)
        table.setStyle(TableStyle([
            ('BACKGROUND', (0, 0), (-1, 0), colors.HexColor("#1E3A5F")),
            ('TEXTCOLOR', (0, 0), (-1, 0), colors.whitesmoke),
            ('ALIGN', (0, 0), (-1, -1), 'CENTER'),
            ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
            ('FONTSIZE', (0, 0), (-1, -1), 9),
            ('GRID', (0, 0), (-1, -1), 1, colors.grey),
            ('ROWBACKGROUNDS', (0, 1), (-1, -1), [colors.white, colors.HexColor("#F5F5F5")]),
        ]))
        elements.append(table)

    doc.build(elements)
    return buffer.getvalue()
