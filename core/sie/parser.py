"""SIE file parser.

Parses decoded SIE text (see core.sie.encoding) into accounts, balances,
dimensions and flattened transactions.

Handles format differences between exporters:
- Fortnox: empty #TRANS fields, quantity in field 6
- Visma: explicit dates and text in #TRANS rows
"""

import re
from decimal import Decimal, InvalidOperation
from typing import Dict, List, Optional, Tuple

from core.models.sie import (
    SIEAccount,
    SIEBalance,
    SIEDimension,
    SIEMetadata,
    SIEParseResult,
    SIETransaction,
)


ACCOUNT_GROUPS: Dict[str, str] = {
    "1": "1 - Tillgångar",
    "2": "2 - Eget kapital och skulder",
    "3": "3 - Rörelsens inkomster och intäkter",
    "4": "4 - Utgifter och kostnader förädling",
    "5": "5 - Övriga externa rörelseutgifter och kostnader",
    "6": "6 - Övriga externa rörelseutgifter och kostnader",
    "7": "7 - Utgifter och kostnader för personal",
    "8": "8 - Finansiella och andra inkomster/utgifter",
}

UNKNOWN_COMPANY = "Okänd"

# Dimension numbers in #TRANS object lists
COST_CENTER_DIMENSION = "1"
PROJECT_DIMENSION = "6"

_DATE_RE = re.compile(r"^\d{8}$")
_SMALL_INT_RE = re.compile(r"^\d+$")


def parse_amount(value: Optional[str]) -> Decimal:
    """Parse a SIE amount. Empty or malformed values are zero; -0 becomes 0."""
    if not value:
        return Decimal("0")
    try:
        amount = Decimal(value)
    except InvalidOperation:
        return Decimal("0")
    if amount.is_nan():
        return Decimal("0")
    if amount == 0:
        return abs(amount)
    return amount


def _format_date(value: str) -> str:
    """YYYYMMDD -> YYYY-MM-DD"""
    return f"{value[0:4]}-{value[4:6]}-{value[6:8]}"


def parse_line(line: str) -> Optional[Tuple[str, List[str]]]:
    """Split one SIE line into its label and fields.

    Quoted strings are one field (with "" as an escaped quote) and a {...}
    group is one field holding the trimmed group contents.

    Returns:
        (label, fields) with the label upper-cased and without '#', or None
        for lines that are not SIE records
    """
    trimmed = line.strip()
    if not trimmed.startswith("#"):
        return None

    parts: List[str] = []
    current = ""
    in_quotes = False
    in_braces = False
    brace_content = ""

    i = 0
    while i < len(trimmed):
        char = trimmed[i]

        if char == "{" and not in_quotes:
            in_braces = True
            brace_content = ""
        elif char == "}" and not in_quotes and in_braces:
            in_braces = False
            parts.append(brace_content.strip())
        elif in_braces:
            brace_content += char
        elif char == '"':
            if in_quotes and i + 1 < len(trimmed) and trimmed[i + 1] == '"':
                current += '"'
                i += 1
            else:
                in_quotes = not in_quotes
        elif char in (" ", "\t") and not in_quotes:
            if current:
                parts.append(current)
                current = ""
        else:
            current += char
        i += 1

    if current:
        parts.append(current)
    if not parts:
        return None

    return parts[0][1:].upper(), parts[1:]


def _field(parts: List[str], index: int) -> str:
    return parts[index] if index < len(parts) else ""


def _parse_verification_block(
    lines: List[str],
    start_index: int,
    default_text: str,
    default_date: str,
    ver_series: str,
    ver_number: str,
    registration_date: Optional[str],
) -> Tuple[int, List[SIETransaction]]:
    """Parse the { ... } block following a #VER line.

    Returns:
        (index of the closing brace line, transactions)
    """
    transactions: List[SIETransaction] = []
    i = start_index

    if i + 1 >= len(lines) or lines[i + 1].strip() != "{":
        return i, transactions

    i += 2
    while i < len(lines) and lines[i].strip() != "}":
        parsed = parse_line(lines[i])
        i += 1
        if parsed is None:
            continue

        label, parts = parsed
        # #BTRANS/#RTRANS rows are removed/added corrections, not booked rows
        if label != "TRANS":
            continue

        account = _field(parts, 0)
        dim_string = _field(parts, 1)
        amount = parse_amount(_field(parts, 2))

        cost_center = ""
        project = ""
        if dim_string:
            dim_parts = dim_string.split()
            for d in range(0, len(dim_parts) - 1, 2):
                if dim_parts[d] == COST_CENTER_DIMENSION:
                    cost_center = dim_parts[d + 1]
                elif dim_parts[d] == PROJECT_DIMENSION:
                    project = dim_parts[d + 1]

        date_str = default_date
        text_str = default_text

        # Skip empty fields and small integers (quantities) when looking for date/text
        meaningful = [
            p for p in parts[3:]
            if p and not (_SMALL_INT_RE.match(p) and int(p) <= 100)
        ]
        if meaningful:
            first = meaningful[0]
            if _DATE_RE.match(first):
                date_str = first
                if len(meaningful) > 1:
                    text_str = meaningful[1]
            else:
                text_str = first

        quantity = parse_amount(parts[5]) if len(parts) > 5 and parts[5] else None

        transactions.append(SIETransaction(
            verification_series=ver_series,
            verification_number=ver_number,
            verification_date=date_str,
            verification_text=text_str,
            account_number=account,
            amount=amount,
            cost_center=cost_center,
            project=project,
            row_text=text_str,
            quantity=quantity if quantity else None,
            registration_date=registration_date or None,
        ))

    return i, transactions


def parse_sie(content: str) -> SIEParseResult:
    """Parse decoded SIE content into structured data."""
    lines = content.replace("\r\n", "\n").split("\n")

    metadata = SIEMetadata(company_name=UNKNOWN_COMPANY)
    accounts: List[SIEAccount] = []
    account_tax_codes: Dict[str, str] = {}
    dimensions: List[SIEDimension] = []
    transactions: List[SIETransaction] = []
    balances: List[SIEBalance] = []

    i = 0
    while i < len(lines):
        parsed = parse_line(lines[i])
        if parsed is None:
            i += 1
            continue

        label, parts = parsed
        first = _field(parts, 0)

        if label == "SIETYP":
            metadata.sie_type = first or None

        elif label == "FNAMN":
            metadata.company_name = first or UNKNOWN_COMPANY

        elif label == "VALUTA":
            metadata.currency = first or "SEK"

        elif label == "GEN":
            if first:
                metadata.generated_date = _format_date(first)

        elif label == "ORGNR":
            metadata.org_number = first or None

        elif label == "RAR":
            # Only the current year: #RAR 0 20230101 20231231
            if first == "0" and _field(parts, 1) and _field(parts, 2):
                metadata.fiscal_year_start = _format_date(parts[1])
                metadata.fiscal_year_end = _format_date(parts[2])

        elif label == "OMFATTN":
            if first:
                metadata.omfattn_date = _format_date(first)

        elif label == "KONTO":
            if first and _field(parts, 1):
                accounts.append(SIEAccount(
                    account_number=first,
                    account_name=parts[1],
                    account_group=ACCOUNT_GROUPS.get(first[0], ""),
                    tax_code=account_tax_codes.get(first),
                ))

        elif label == "SRU":
            if first and _field(parts, 1):
                account_tax_codes[first] = parts[1]

        elif label in ("IB", "UB", "RES"):
            if first and _field(parts, 1) and _field(parts, 2):
                balances.append(SIEBalance(
                    account_number=parts[1],
                    balance_type=label,
                    year_index=int(first),
                    amount=parse_amount(parts[2]),
                    quantity=parse_amount(parts[3]) if _field(parts, 3) else None,
                ))

        elif label == "OBJEKT":
            if first and _field(parts, 1):
                dimensions.append(SIEDimension(
                    dimension_type=int(first),
                    code=parts[1],
                    name=_field(parts, 2) or parts[1],
                ))

        elif label == "VER":
            end_index, ver_transactions = _parse_verification_block(
                lines,
                i,
                default_text=_field(parts, 3),
                default_date=_field(parts, 2),
                ver_series=_field(parts, 0),
                ver_number=_field(parts, 1),
                registration_date=_field(parts, 4) or None,
            )
            transactions.extend(ver_transactions)
            i = end_index

        i += 1

    # SRU lines may follow the KONTO lines they annotate
    for account in accounts:
        if not account.tax_code and account.account_number in account_tax_codes:
            account.tax_code = account_tax_codes[account.account_number]

    return SIEParseResult(
        metadata=metadata,
        accounts=accounts,
        dimensions=dimensions,
        transactions=transactions,
        balances=balances,
    )
