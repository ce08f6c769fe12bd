import io
from typing import Any, Dict, List
import pandas as pd
from openpyxl.utils import get_column_letter

CSV_MEDIA_TYPE = "text/csv"
XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

# Column order and headers of the participant roster spreadsheet
ROSTER_XLSX_COLUMNS = {
    "full_name": "ФИО",
    "email": "Email",
    "status": "Статус",
    "confirmed_at": "Подтверждено",
    "cancelled_at": "Отменено",
}
ROSTER_CSV_COLUMNS = {"full_name": "fullName", "email": "email"}
EVENTS_COLUMNS = {
    "id": "id",
    "title": "title",
    "status": "status",
    "start_at": "startAt",
    "end_at": "endAt",
    "participants": "participants",
}


def _frame(rows: List[Dict[str, Any]], columns: Dict[str, str]) -> pd.DataFrame:
    """Build a DataFrame with a fixed column order, renamed to display headers."""
    df = pd.DataFrame(rows, columns=list(columns.keys()))
    return df.rename(columns=columns)


def dataframe_to_csv(df: pd.DataFrame) -> bytes:
    # Semicolon-separated, as Excel expects for Cyrillic locales
    return df.to_csv(sep=";", index=False, lineterminator="\n").encode("utf-8")


def dataframe_to_xlsx(df: pd.DataFrame, sheet_name: str) -> bytes:
    output = io.BytesIO()
    with pd.ExcelWriter(output, engine="openpyxl") as writer:
        df.to_excel(writer, sheet_name=sheet_name, index=False)
        worksheet = writer.sheets[sheet_name]
        # Rough auto-size: widest cell in each column
        for idx, column in enumerate(df.columns, start=1):
            values = [str(column)] + [str(v) for v in df[column].tolist() if v is not None]
            width = min(max(len(v) for v in values) + 2, 60)
            worksheet.column_dimensions[get_column_letter(idx)].width = width
    output.seek(0)
    return output.read()


def roster_to_csv(rows: List[Dict[str, Any]]) -> bytes:
    return dataframe_to_csv(_frame(rows, ROSTER_CSV_COLUMNS))


def roster_to_xlsx(rows: List[Dict[str, Any]]) -> bytes:
    return dataframe_to_xlsx(_frame(rows, ROSTER_XLSX_COLUMNS), "Participants")


def events_to_csv(rows: List[Dict[str, Any]]) -> bytes:
    return dataframe_to_csv(_frame(rows, EVENTS_COLUMNS))


def events_to_xlsx(rows: List[Dict[str, Any]]) -> bytes:
    return dataframe_to_xlsx(_frame(rows, EVENTS_COLUMNS), "Events")
