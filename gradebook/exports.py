"""
Excel export of a class-term broadsheet.
"""
import openpyxl
from openpyxl.styles import Font, Alignment, PatternFill, Border, Side
from openpyxl.utils import get_column_letter

from . import config

XLSX_CONTENT_TYPE = 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet'


def _number(value):
    return float(value) if value is not None else None


def build_class_results_workbook(class_name, term_name, subjects, results):
    """
    Build the broadsheet workbook for a class-term.

    Args:
        class_name: shown in the sheet title row
        term_name: shown in the sheet title row
        subjects: list of {'id', 'name', 'code'} in column order
        results: rows from get_class_term_results, already in position order

    Returns:
        openpyxl.Workbook
    """
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = "Results"

    header_font = Font(bold=True, color="FFFFFF")
    header_fill = PatternFill(start_color=config.EXCEL_HEADER_COLOR, end_color=config.EXCEL_HEADER_COLOR, fill_type="solid")
    thin_border = Border(
        left=Side(style='thin'),
        right=Side(style='thin'),
        top=Side(style='thin'),
        bottom=Side(style='thin')
    )

    ws.cell(row=1, column=1, value=f"{class_name} - {term_name}").font = Font(bold=True, size=14)

    headers = ["Position", "Admission No", "Student Name"]
    headers += [subject['code'] or subject['name'] for subject in subjects]
    headers += ["Total", "Average", "Grade"]

    for col, header in enumerate(headers, 1):
        cell = ws.cell(row=3, column=col, value=header)
        cell.font = header_font
        cell.fill = header_fill
        cell.alignment = Alignment(horizontal='center', wrap_text=True)
        cell.border = thin_border

    for row, result in enumerate(results, 4):
        values = [result['position'], result['admission_no'], result['student_name']]
        for subject in subjects:
            entry = result['subjects'].get(subject['id']) or {}
            values.append(_number(entry.get('score')))
        values += [
            _number(result['total_score']),
            _number(result['average_score']),
            result['grade'],
        ]

        for col, value in enumerate(values, 1):
            cell = ws.cell(row=row, column=col, value=value)
            cell.border = thin_border
            if col != 3:
                cell.alignment = Alignment(horizontal='center')

    ws.column_dimensions['A'].width = 10
    ws.column_dimensions['B'].width = 15
    ws.column_dimensions['C'].width = 28
    for col in range(4, len(headers) + 1):
        ws.column_dimensions[get_column_letter(col)].width = 12
    ws.freeze_panes = 'D4'

    return wb
