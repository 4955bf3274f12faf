"""
CSV ingestion for OpenAI usage exports.

Normalizes the historical export layouts into canonical usage rows:

- legacy: ``model, tokens_used, cost``
- line items: ``line_item`` encoded as ``model:input+output[+thinking]``
- current: explicit ``prompt_tokens, completion_tokens, reasoning_tokens``

Every logical field is resolved by an ordered list of resolvers, each a
pure function of the record; the first one that finds a value wins.
"""

import csv
import io
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, Iterator, List, NamedTuple, Optional, Sequence, Tuple

from .catalog import ModelCatalog, normalize_model_id
from .models import UNKNOWN_MODEL, CostSource, UsageRow
from .token_counter import TokenUsage

logger = logging.getLogger(__name__)

Record = Dict[str, str]

SNIFF_DELIMITERS = ",;\t|"

# Declared cost must differ from the catalog cost by both margins to count
MISMATCH_ABS_TOLERANCE = 0.0001
MISMATCH_REL_TOLERANCE = 0.01

LINE_ITEM_PATTERN = re.compile(r"^(.*?):(\d+)\+(\d+)(?:\+(\d+))?$")


class MalformedCsvError(ValueError):
    """Raised when the file cannot be read as delimited records with a header."""


class _InvalidRow(ValueError):
    """A single record could not be converted; counted, never raised out."""


@dataclass(frozen=True)
class ParseDiagnostics:
    """Row-level problems absorbed while parsing a file.

    Lines holding only delimiters (``,,,``) are spreadsheet padding, not
    records: they are skipped without being counted, so a file made only
    of such lines reports zero total rows rather than all rows invalid.
    """
    total_rows: int = 0
    valid_rows: int = 0
    invalid_rows: int = 0
    unknown_model_rows: int = 0
    cost_mismatch_rows: int = 0

    def to_record(self) -> Dict[str, int]:
        return {
            "total_rows": self.total_rows,
            "valid_rows": self.valid_rows,
            "invalid_rows": self.invalid_rows,
            "unknown_model_rows": self.unknown_model_rows,
            "cost_mismatch_rows": self.cost_mismatch_rows,
        }


@dataclass(frozen=True)
class ParsedUsage:
    """Canonical rows of one file plus the diagnostics gathered on the way."""
    rows: Tuple[UsageRow, ...] = ()
    diagnostics: ParseDiagnostics = field(default_factory=ParseDiagnostics)

    def __iter__(self) -> Iterator[UsageRow]:
        return iter(self.rows)

    def __len__(self) -> int:
        return len(self.rows)

    def __getitem__(self, index: int) -> UsageRow:
        return self.rows[index]


class LineItem(NamedTuple):
    model_id: str
    input_tokens: int
    output_tokens: int
    thinking_tokens: int


# ---------------------------------------------------------------------------
# Value conversion
# ---------------------------------------------------------------------------

def _to_number(value: str) -> float:
    cleaned = value.strip().replace("$", "").replace(",", "")
    try:
        return float(cleaned)
    except ValueError:
        raise _InvalidRow(f"not a number: {value!r}")


def _to_tokens(value: str) -> int:
    number = _to_number(value)
    if number < 0:
        raise _InvalidRow(f"negative token count: {value!r}")
    if not number.is_integer():
        raise _InvalidRow(f"fractional token count: {value!r}")
    return int(number)


def _to_cost(value: str) -> float:
    number = _to_number(value)
    if number < 0:
        raise _InvalidRow(f"negative cost: {value!r}")
    return number


def _to_model_id(value: str) -> Optional[str]:
    model_id = normalize_model_id(value)
    return model_id or None


def _to_timestamp(value: str) -> str:
    # "2026-01-15 10:30:00" -> "2026-01-15T10:30:00"
    if len(value) > 10 and value[10] == " ":
        return f"{value[:10]}T{value[11:]}"
    return value


def _epoch_to_timestamp(value: str) -> str:
    try:
        seconds = float(value)
    except ValueError:
        return _to_timestamp(value)
    try:
        return datetime.fromtimestamp(seconds, tz=timezone.utc).isoformat()
    except (OverflowError, OSError, ValueError):
        raise _InvalidRow(f"not an epoch timestamp: {value!r}")


# ---------------------------------------------------------------------------
# Resolvers
# ---------------------------------------------------------------------------

def _column(names: Sequence[str], convert: Callable[[str], object]) -> Callable[[Record], Optional[object]]:
    """Resolver reading the first non-empty column among ``names``."""
    def resolve(record: Record) -> Optional[object]:
        for name in names:
            value = record.get(name)
            if value:
                return convert(value)
        return None
    return resolve


def parse_line_item(value: str) -> Optional[LineItem]:
    """Decode the ``model:input+output[+thinking]`` line item encoding."""
    match = LINE_ITEM_PATTERN.match(value.strip())
    if not match:
        return None
    model, input_tokens, output_tokens, thinking_tokens = match.groups()
    return LineItem(
        model_id=normalize_model_id(model),
        input_tokens=int(input_tokens),
        output_tokens=int(output_tokens),
        thinking_tokens=int(thinking_tokens) if thinking_tokens else 0,
    )


def _line_item_model(record: Record) -> Optional[str]:
    value = record.get("line_item")
    if not value:
        return None
    # Cost exports use "gpt-4o-2024-08-06, input" instead of the colon form
    separator = ":" if ":" in value else ","
    return _to_model_id(value.split(separator, 1)[0])


def _line_item_tokens(attribute: str) -> Callable[[Record], Optional[int]]:
    def resolve(record: Record) -> Optional[int]:
        value = record.get("line_item")
        if not value:
            return None
        item = parse_line_item(value)
        return getattr(item, attribute) if item else None
    return resolve


MODEL_COLUMNS = ("model", "model_id", "model name", "snapshot_id")
INPUT_TOKEN_COLUMNS = ("prompt_tokens", "input_tokens", "n_context_tokens_total")
OUTPUT_TOKEN_COLUMNS = ("completion_tokens", "output_tokens", "n_generated_tokens_total")
THINKING_TOKEN_COLUMNS = ("reasoning_tokens", "thinking_tokens")
TOTAL_TOKEN_COLUMNS = ("tokens_used", "tokens", "total_tokens")
COST_COLUMNS = ("amount_value", "cost", "total cost", "total_cost")
TIMESTAMP_COLUMNS = ("timestamp", "start_time_iso", "date")
EPOCH_COLUMNS = ("start_time",)
REQUEST_TYPE_COLUMNS = ("request_type", "request type", "operation")

MODEL_RESOLVERS = (
    _column(MODEL_COLUMNS, _to_model_id),
    _line_item_model,
)
INPUT_TOKEN_RESOLVERS = (
    _column(INPUT_TOKEN_COLUMNS, _to_tokens),
    _line_item_tokens("input_tokens"),
    # Legacy exports only carry a single total; it is booked as input
    _column(TOTAL_TOKEN_COLUMNS, _to_tokens),
)
OUTPUT_TOKEN_RESOLVERS = (
    _column(OUTPUT_TOKEN_COLUMNS, _to_tokens),
    _line_item_tokens("output_tokens"),
)
THINKING_TOKEN_RESOLVERS = (
    _column(THINKING_TOKEN_COLUMNS, _to_tokens),
    _line_item_tokens("thinking_tokens"),
)
COST_RESOLVERS = (
    _column(COST_COLUMNS, _to_cost),
)
TIMESTAMP_RESOLVERS = (
    _column(TIMESTAMP_COLUMNS, _to_timestamp),
    _column(EPOCH_COLUMNS, _epoch_to_timestamp),
)
REQUEST_TYPE_RESOLVERS = (
    _column(REQUEST_TYPE_COLUMNS, str),
)

NUMERIC_COLUMNS = frozenset(
    INPUT_TOKEN_COLUMNS + OUTPUT_TOKEN_COLUMNS + THINKING_TOKEN_COLUMNS
    + TOTAL_TOKEN_COLUMNS + COST_COLUMNS + EPOCH_COLUMNS
)

KNOWN_COLUMNS = frozenset(
    MODEL_COLUMNS + INPUT_TOKEN_COLUMNS + OUTPUT_TOKEN_COLUMNS + THINKING_TOKEN_COLUMNS
    + TOTAL_TOKEN_COLUMNS + COST_COLUMNS + ("line_item",)
)


def _first_match(resolvers, record: Record):
    for resolver in resolvers:
        value = resolver(record)
        if value is not None:
            return value
    return None


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

def decode_csv_bytes(data: bytes) -> str:
    """Decode uploaded file content as UTF-8.

    Raises:
        MalformedCsvError: If the content is not valid UTF-8
    """
    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise MalformedCsvError(f"File is not valid UTF-8 text: {e}")


def _sniff_dialect(header_line: str):
    try:
        return csv.Sniffer().sniff(header_line, delimiters=SNIFF_DELIMITERS)
    except csv.Error:
        return csv.excel


def _decimal_comma_to_point(value: str) -> str:
    # "1.234,56" -> "1234.56", "0,01" -> "0.01"
    if "," not in value:
        return value
    if "." in value and value.rindex(".") > value.rindex(","):
        return value  # "1,234.50": the comma groups thousands
    return value.replace(".", "").replace(",", ".")


def _localize_numbers(record: Record, delimiter: str) -> Record:
    """Rewrite decimal-comma numbers when the file is not comma-delimited.

    Semicolon and tab exports come from locales that write ``0,01`` for
    one cent; there a comma can only be the decimal mark.
    """
    if delimiter == ",":
        return record
    return {
        key: _decimal_comma_to_point(value) if key in NUMERIC_COLUMNS and isinstance(value, str) else value
        for key, value in record.items()
    }


def _open_records(csv_text: str) -> Tuple[str, Iterator[Record]]:
    """Validate the header and return the delimiter with a record iterator."""
    text = csv_text.lstrip("\ufeff\r\n")
    lines = text.splitlines()
    header_line = lines[0] if lines else ""
    dialect = _sniff_dialect(header_line)
    reader = csv.DictReader(io.StringIO(text), dialect=dialect)
    try:
        fieldnames = reader.fieldnames
    except csv.Error as e:
        raise MalformedCsvError(f"Could not parse CSV header: {e}")
    if not fieldnames or not any(name and name.strip() for name in fieldnames):
        raise MalformedCsvError("CSV file has no header row")
    headers = [(name or "").strip().lower() for name in fieldnames]
    if not KNOWN_COLUMNS.intersection(headers):
        raise MalformedCsvError(
            f"CSV header has no recognizable usage columns: {', '.join(h for h in headers if h)}"
        )
    reader.fieldnames = headers
    return dialect.delimiter, _iter_records(reader)


def _iter_records(reader: csv.DictReader) -> Iterator[Record]:
    try:
        for raw in reader:
            yield raw
    except csv.Error as e:
        raise MalformedCsvError(f"Could not parse CSV at line {reader.line_num}: {e}")


class _NormalizedRow(NamedTuple):
    row: UsageRow
    known_model: bool
    cost_mismatch: bool


def _costs_disagree(declared: float, derived: float) -> bool:
    difference = abs(declared - derived)
    return (difference > MISMATCH_ABS_TOLERANCE
            and difference > MISMATCH_REL_TOLERANCE * max(declared, derived))


def _normalize_record(record: Record, catalog: ModelCatalog) -> Optional[_NormalizedRow]:
    """Turn one raw record into a canonical row.

    Returns:
        The normalized row, or None if the record has no model, no cost
        and no tokens

    Raises:
        _InvalidRow: If a field cannot be converted
    """
    if None in record:
        raise _InvalidRow("row has more fields than the header")

    model_id = _first_match(MODEL_RESOLVERS, record)
    declared_cost = _first_match(COST_RESOLVERS, record)
    usage = TokenUsage(
        input_tokens=_first_match(INPUT_TOKEN_RESOLVERS, record) or 0,
        output_tokens=_first_match(OUTPUT_TOKEN_RESOLVERS, record) or 0,
        thinking_tokens=_first_match(THINKING_TOKEN_RESOLVERS, record) or 0,
    )

    if model_id is None and declared_cost is None and usage.is_empty:
        return None

    spec = catalog.resolve(model_id) if model_id else None
    declared = declared_cost or 0.0
    cost_mismatch = False

    if spec is not None and not usage.is_empty:
        costs = spec.cost_for(usage)
        cost_source = CostSource.CATALOG
        if declared_cost is not None and declared_cost > 0:
            cost_mismatch = _costs_disagree(declared_cost, costs.total_cost)
            if cost_mismatch:
                logger.debug(
                    "Declared cost $%.6f for %s differs from catalog cost $%.6f",
                    declared_cost, spec.model_id, costs.total_cost,
                )
        input_cost, output_cost, thinking_cost = costs.input_cost, costs.output_cost, costs.thinking_cost
    else:
        cost_source = CostSource.DECLARED
        input_cost, output_cost, thinking_cost = declared, 0.0, 0.0

    row = UsageRow(
        model_id=spec.model_id if spec else (model_id or UNKNOWN_MODEL),
        input_tokens=usage.input_tokens,
        output_tokens=usage.output_tokens,
        thinking_tokens=usage.thinking_tokens,
        is_reasoning_model=spec.has_thinking if spec else False,
        input_cost=input_cost,
        output_cost=output_cost,
        thinking_cost=thinking_cost,
        total_cost=input_cost + output_cost + thinking_cost,
        timestamp=_first_match(TIMESTAMP_RESOLVERS, record) or "",
        request_type=_first_match(REQUEST_TYPE_RESOLVERS, record) or "unknown",
        cost_source=cost_source,
    )
    return _NormalizedRow(row=row, known_model=spec is not None, cost_mismatch=cost_mismatch)


def parse_usage_csv(csv_text: str, catalog: ModelCatalog) -> ParsedUsage:
    """Parse an OpenAI usage export into canonical usage rows.

    Row-level problems never abort the file: records that cannot be
    converted or that carry no model, cost or tokens are dropped and
    counted as invalid, and models missing from the catalog keep their
    declared cost and are counted as unknown.

    Args:
        csv_text: Full CSV file content with a header row
        catalog: Model catalog used to price token counts

    Returns:
        ParsedUsage with the rows in file order and parse diagnostics

    Raises:
        MalformedCsvError: If the text cannot be read as delimited records
    """
    if not csv_text.lstrip("\ufeff").strip():
        return ParsedUsage()

    rows: List[UsageRow] = []
    total = invalid = unknown = mismatched = 0

    delimiter, records = _open_records(csv_text)
    for line_number, record in enumerate(records, start=2):
        values = [value for key, value in record.items() if key is not None]
        if not any(value and value.strip() for value in values) and None not in record:
            continue  # blank line
        total += 1
        cleaned = _localize_numbers(
            {key: value.strip() if isinstance(value, str) else value
             for key, value in record.items()},
            delimiter,
        )
        try:
            normalized = _normalize_record(cleaned, catalog)
        except _InvalidRow as e:
            logger.debug("Skipping row %d: %s", line_number, e)
            invalid += 1
            continue
        if normalized is None:
            logger.debug("Skipping row %d: no model, cost or tokens", line_number)
            invalid += 1
            continue
        if not normalized.known_model:
            unknown += 1
        if normalized.cost_mismatch:
            mismatched += 1
        rows.append(normalized.row)

    if unknown:
        logger.info("%d rows reference models missing from the catalog", unknown)
    if mismatched:
        logger.info("%d rows declare a cost that disagrees with catalog pricing", mismatched)

    return ParsedUsage(
        rows=tuple(rows),
        diagnostics=ParseDiagnostics(
            total_rows=total,
            valid_rows=len(rows),
            invalid_rows=invalid,
            unknown_model_rows=unknown,
            cost_mismatch_rows=mismatched,
        ),
    )
