"""
Render a spending graph from a DuckDB database to a standalone HTML file.

Pipeline flow
-------------
1.  Open the expenses database with
    :class:`~spendgraph.data.loader.DuckDBQueryRunner`.
2.  Run the flow (party -> category -> supplier) or network
    (deputy -> supplier) query.
3.  Build the snapshot and apply the requested filters through a
    :class:`~spendgraph.view.GraphView`.
4.  Lay it out, print a summary and write the plotly figure as HTML.
5.  Optionally export the consolidated edges as CSV (``--edges-csv``).

Usage
-----
Run from the project root::

    python scripts/render_graph.py --mode network --min-value 1000 -o rede.html

Database location and log level default to ``spendgraph/config.py``
(``SPENDGRAPH_DB_PATH`` / ``SPENDGRAPH_LOG_LEVEL``).
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

import networkx as nx

# ---------------------------------------------------------------------------
# Path bootstrap: make ``spendgraph`` importable when the script is run
# directly from the project root or from within the ``scripts/`` directory.
# ---------------------------------------------------------------------------
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(_PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(_PROJECT_ROOT))

# ---------------------------------------------------------------------------
# Project imports
# ---------------------------------------------------------------------------
from spendgraph.config import (
    DATABASE_PATH,
    DEFAULT_FORCE_STRENGTH,
    LOG_LEVEL,
    SANKEY_TOP_SUPPLIERS,
)
from spendgraph.data.loader import DuckDBQueryRunner, network_query, sankey_flow_query
from spendgraph.formatting import format_currency, format_number
from spendgraph.graph.model import NETWORK_SCHEMA, SANKEY_SCHEMA
from spendgraph.layout.flow import FlowLayoutAdapter
from spendgraph.layout.network import NetworkLayoutAdapter
from spendgraph.view import GraphView

logger = logging.getLogger(__name__)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Render a SpendGraph visualization to HTML.")
    parser.add_argument("--db", type=Path, default=DATABASE_PATH, help="DuckDB database file.")
    parser.add_argument("--mode", choices=["flow", "network"], default="flow")
    parser.add_argument("--min-value", type=float, default=0.0, help="Minimum value (R$).")
    parser.add_argument("--party", default=None, help="Party filter (network mode).")
    parser.add_argument("--category", default=None, help="Category filter (network mode).")
    parser.add_argument("--top", type=int, default=SANKEY_TOP_SUPPLIERS, help="Top suppliers (flow mode).")
    parser.add_argument("--search", default="", help="Highlight nodes whose label contains this text.")
    parser.add_argument("--theme", choices=["dark", "light"], default="dark")
    parser.add_argument("--labels", action="store_true", help="Show every node label.")
    parser.add_argument("--amounts", action="store_true", help="Show edge amounts.")
    parser.add_argument("--force", type=int, default=DEFAULT_FORCE_STRENGTH, help="Repulsion strength (network mode).")
    parser.add_argument("--density", action="store_true", help="Keep only the most connected nodes.")
    parser.add_argument("--top-expenses", action="store_true", help="Keep only the largest spenders.")
    parser.add_argument("-o", "--output", type=Path, default=Path("spendgraph.html"))
    parser.add_argument("--edges-csv", type=Path, default=None, help="Also write the consolidated edges to this CSV file.")
    return parser.parse_args(argv)


def print_summary(view: GraphView) -> None:
    summary = view.snapshot.summary()
    print("\n" + "=" * 60)
    print("Graph Summary")
    print("=" * 60)
    print(f"Nodes:              {format_number(summary['nodes'])}")
    for entity_type, count in summary["per_type"].items():
        if count:
            print(f"  {entity_type:<16}  {format_number(count)}")
    print(f"Edges:              {format_number(summary['edges'])}")
    print(f"Total value:        {format_currency(summary['total_value'])}")
    print(f"Transactions:       {format_number(summary['total_transactions'])}")
    print(f"Average value:      {format_currency(summary['avg_transaction_value'])}")
    G = view.snapshot.to_networkx()
    if G.number_of_nodes():
        print(f"Components:         {format_number(nx.number_weakly_connected_components(G))}")
    if view.snapshot.skipped_rows:
        print(f"Skipped rows:       {format_number(view.snapshot.skipped_rows)}")

    top = view.snapshot.stats_frame().nlargest(10, "total_value")
    if not top.empty:
        print("\n[Top 10 entities by total value]")
        print("-" * 60)
        for _, row in top.iterrows():
            print(f"{row['label'][:40]:<42} {format_currency(row['total_value'], abbreviated=True):>12}")


def main(argv=None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=LOG_LEVEL,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    if args.mode == "flow":
        adapter, schema = FlowLayoutAdapter(), SANKEY_SCHEMA
        sql = sankey_flow_query(limit=args.top)
    else:
        adapter, schema = NetworkLayoutAdapter(), NETWORK_SCHEMA
        sql = network_query(min_value=args.min_value, party=args.party, category=args.category)

    print("=" * 60)
    print("SpendGraph Renderer")
    print(f"Database: {args.db}")
    print(f"Mode:     {args.mode}")
    print("=" * 60)

    with DuckDBQueryRunner(args.db, read_only=True) as runner:
        view = GraphView(adapter, schema, runner=runner, theme=args.theme)
        view.update_controls(
            min_value=args.min_value if args.mode == "flow" else 0.0,
            search=args.search,
            show_labels=args.labels,
            show_edge_amounts=args.amounts,
            force_strength=args.force,
            density_mode=args.density,
            top_expenses_mode=args.top_expenses,
        )
        asyncio.run(view.load(sql))

    print_summary(view)

    result = view.render()
    if not result.ok:
        logger.error("Visualization unavailable: %s", result.error)
        return 1

    fig = adapter.figure(result.plan)
    fig.write_html(str(args.output))
    print(f"\nSaved {args.mode} graph to {args.output}")
    if args.edges_csv:
        view.snapshot.edges_frame().to_csv(args.edges_csv, index=False)
        print(f"Saved {len(view.snapshot.edges)} edges to {args.edges_csv}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
