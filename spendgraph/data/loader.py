"""
Data loading for the SpendGraph dashboard.

All data-access concerns are isolated here so that the graph engine can treat
query results as an opaque list of :class:`~spendgraph.graph.model.FlowRow`.

* SQL templates over the ``despesas`` expenses table (Brazilian Chamber of
  Deputies expense records).  Every template aliases its entity columns to
  ``source`` / ``mid`` / ``target`` and its aggregates to ``value`` /
  ``count``, which is the row shape the graph builder reads.
* :class:`DuckDBQueryRunner`, the query collaborator: a DuckDB connection
  whose results are read through pandas.  :meth:`DuckDBQueryRunner.run` is
  awaitable and executes in a worker thread so the event loop stays free.

String values interpolated into SQL go through :func:`escape_sql_string`.
"""

from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable

import duckdb
import pandas as pd

from spendgraph.config import DATABASE_PATH, EXPENSES_TABLE, SANKEY_TOP_SUPPLIERS
from spendgraph.graph.model import FlowRow

logger = logging.getLogger(__name__)


# ============================================================================
# QUERY TEMPLATES
# ============================================================================


def escape_sql_string(value: str) -> str:
    """Double single quotes for use inside a SQL string literal."""
    return str(value).replace("'", "''")


def _sql_literal(value: str) -> str:
    return f"'{escape_sql_string(value)}'"


def build_filter_clause(
    min_value: float = 0.0,
    party: str | None = None,
    category: str | None = None,
    search: str | None = None,
) -> str:
    """
    ``WHERE`` clause for the expense filters.

    Always returns a clause (``WHERE 1=1`` when no filter is set) so that
    templates can append further ``AND`` conditions.
    """
    conditions = ["1=1"]

    if min_value and min_value > 0:
        conditions.append(f"CAST(valor_liquido AS DOUBLE) >= {float(min_value)}")
    if party and party.strip():
        conditions.append(f"sigla_partido = {_sql_literal(party.strip())}")
    if category and category.strip():
        conditions.append(f"categoria_despesa = {_sql_literal(category.strip())}")
    if search and search.strip():
        term = escape_sql_string(search.strip())
        conditions.append(
            f"(nome_parlamentar ILIKE '%{term}%' OR "
            f"fornecedor ILIKE '%{term}%' OR "
            f"categoria_despesa ILIKE '%{term}%')"
        )

    return "WHERE " + " AND ".join(conditions)


def top_suppliers_query(limit: int = SANKEY_TOP_SUPPLIERS, table: str = EXPENSES_TABLE) -> str:
    """Suppliers ranked by total amount received."""
    return f"""
        SELECT fornecedor, SUM(CAST(valor_liquido AS DOUBLE)) AS total_received
        FROM {table}
        WHERE fornecedor IS NOT NULL
          AND valor_liquido IS NOT NULL
        GROUP BY fornecedor
        ORDER BY total_received DESC
        LIMIT {int(limit)}
    """


def sankey_flow_query(
    suppliers: Iterable[str] | None = None,
    limit: int = SANKEY_TOP_SUPPLIERS,
    table: str = EXPENSES_TABLE,
) -> str:
    """
    Party -> category -> supplier flows.

    Restricted to *suppliers* when given, otherwise to the top *limit*
    suppliers by total received (as a subquery).
    """
    if suppliers is not None:
        names = [_sql_literal(s) for s in suppliers]
        if not names:
            # IN () is a syntax error
            supplier_filter = "FALSE"
        else:
            supplier_filter = f"fornecedor IN ({', '.join(names)})"
    else:
        supplier_filter = (
            f"fornecedor IN (SELECT fornecedor FROM ({top_suppliers_query(limit, table)}))"
        )

    return f"""
        SELECT
            sigla_partido AS source,
            categoria_despesa AS mid,
            fornecedor AS target,
            SUM(CAST(valor_liquido AS DOUBLE)) AS value,
            COUNT(*) AS count
        FROM {table}
        WHERE {supplier_filter}
          AND sigla_partido IS NOT NULL
          AND categoria_despesa IS NOT NULL
          AND valor_liquido IS NOT NULL
        GROUP BY sigla_partido, categoria_despesa, fornecedor
        ORDER BY value DESC
    """


def network_query(
    min_value: float = 0.0,
    party: str | None = None,
    category: str | None = None,
    search: str | None = None,
    table: str = EXPENSES_TABLE,
) -> str:
    """
    Deputy -> supplier flows, one row per (deputy, supplier, category).

    Party and category are kept as extra columns; the graph builder
    consolidates the per-category rows of a pair into one edge.
    """
    where = build_filter_clause(min_value, party, category, search)
    return f"""
        SELECT
            nome_parlamentar AS source,
            fornecedor AS target,
            sigla_partido,
            categoria_despesa,
            SUM(CAST(valor_liquido AS DOUBLE)) AS value,
            COUNT(*) AS count
        FROM {table}
        {where}
          AND nome_parlamentar IS NOT NULL
          AND sigla_partido IS NOT NULL
          AND fornecedor IS NOT NULL
          AND categoria_despesa IS NOT NULL
          AND CAST(valor_liquido AS DOUBLE) > 0
        GROUP BY nome_parlamentar, sigla_partido, fornecedor, categoria_despesa
        HAVING SUM(CAST(valor_liquido AS DOUBLE)) > {float(min_value or 0.0)}
        ORDER BY value DESC
    """


def filter_options_query(column: str, table: str = EXPENSES_TABLE) -> str:
    """Distinct non-null values of *column* (``sigla_partido`` or ``categoria_despesa``)."""
    if column not in ("sigla_partido", "categoria_despesa"):
        raise ValueError(f"No filter options for column {column!r}")
    return f"""
        SELECT DISTINCT {column} AS option
        FROM {table}
        WHERE {column} IS NOT NULL
        ORDER BY option
    """


def value_range_query(table: str = EXPENSES_TABLE) -> str:
    return f"""
        SELECT
            MIN(CAST(valor_liquido AS DOUBLE)) AS min_value,
            MAX(CAST(valor_liquido AS DOUBLE)) AS max_value
        FROM {table}
        WHERE valor_liquido IS NOT NULL
    """


# ============================================================================
# RESULTS
# ============================================================================


def _clean(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, float) and math.isnan(value):
        return None
    if value is pd.NaT or value is pd.NA:
        return None
    return value


@dataclass(frozen=True)
class QueryResult:
    rows: list[dict] = field(default_factory=list)
    columns: list[str] = field(default_factory=list)

    @classmethod
    def from_frame(cls, frame: pd.DataFrame) -> "QueryResult":
        rows = [{k: _clean(v) for k, v in r.items()} for r in frame.to_dict(orient="records")]
        return cls(rows=rows, columns=[str(c) for c in frame.columns])

    def frame(self) -> pd.DataFrame:
        return pd.DataFrame(self.rows, columns=self.columns)

    def flow_rows(self) -> list[FlowRow]:
        return [FlowRow.from_mapping(row) for row in self.rows]

    def __len__(self) -> int:
        return len(self.rows)


# ============================================================================
# QUERY COLLABORATOR
# ============================================================================


class DuckDBQueryRunner:
    """
    Execute SQL against a DuckDB database.

    Parameters
    ----------
    database : str or Path
        Database file, or ``":memory:"``.
    read_only : bool
        Open the file read-only (the dashboard never writes).
    """

    def __init__(self, database: str | Path = DATABASE_PATH, read_only: bool = False) -> None:
        self.database = database
        self.read_only = read_only
        self._connection: duckdb.DuckDBPyConnection | None = None

    def connect(self) -> duckdb.DuckDBPyConnection:
        if self._connection is None:
            logger.info("Opening DuckDB database %s", self.database)
            self._connection = duckdb.connect(str(self.database), read_only=self.read_only)
        return self._connection

    def execute(self, sql: str) -> QueryResult:
        """Run *sql* synchronously.  DuckDB errors propagate."""
        # a cursor per call keeps worker threads off the shared connection
        cursor = self.connect().cursor()
        try:
            frame = cursor.execute(sql).df()
        finally:
            cursor.close()
        logger.debug("Query returned %d rows", len(frame))
        return QueryResult.from_frame(frame)

    async def run(self, sql: str) -> QueryResult:
        return await asyncio.to_thread(self.execute, sql)

    def close(self) -> None:
        if self._connection is not None:
            self._connection.close()
            self._connection = None

    def __enter__(self) -> "DuckDBQueryRunner":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
