import csv
import re
from io import StringIO
from typing import Sequence

from insights import UNCATEGORIZED_LABEL
from models import Transaction
from money import format_cents

EXPORT_COLUMNS = ["Date", "Type", "Amount", "Category", "Method", "Description", "Tag"]


def sanitize_csv_value(value: str) -> str:
    """
    Prefix values a spreadsheet would evaluate as formulas with a tab.
    """
    if not value or value.strip() == "":
        return ""

    value = value.strip()

    if value.startswith(("=", "+", "-", "@", "\t", "\r")):
        return "\t" + value

    for pattern in (r"^cmd\s*", r"^powershell\s*", r"^https?://"):
        if re.match(pattern, value, re.IGNORECASE):
            return "\t" + value

    return value


def export_transactions(transactions: Sequence[Transaction]) -> str:
    output = StringIO()
    writer = csv.writer(output)
    writer.writerow(EXPORT_COLUMNS)
    for txn in transactions:
        category = txn.category.name if txn.category else UNCATEGORIZED_LABEL
        writer.writerow(
            [
                txn.date.date().isoformat(),
                txn.type.value,
                format_cents(txn.amount_cents),
                sanitize_csv_value(category),
                txn.method.value,
                sanitize_csv_value(txn.description or ""),
                sanitize_csv_value(txn.tag or ""),
            ]
        )
    return output.getvalue()
