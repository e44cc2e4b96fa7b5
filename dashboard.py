import asyncio
import logging

import duckdb
import pandas as pd
import streamlit as st

from spendgraph.config import (
    DATABASE_PATH,
    DEFAULT_FORCE_STRENGTH,
    DEFAULT_MAX_VALUE,
    DEFAULT_THEME,
    LOG_LEVEL,
    SANKEY_TOP_SUPPLIERS,
)
from spendgraph.data.loader import (
    DuckDBQueryRunner,
    filter_options_query,
    network_query,
    sankey_flow_query,
    value_range_query,
)
from spendgraph.formatting import format_currency, format_number
from spendgraph.graph.keys import EntityType
from spendgraph.graph.model import NETWORK_SCHEMA, SANKEY_SCHEMA
from spendgraph.layout.flow import FlowLayoutAdapter
from spendgraph.layout.network import NetworkLayoutAdapter
from spendgraph.view import GraphView

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# --- Page Configuration ---
st.set_page_config(
    page_title="SpendGraph - Despesas da Câmara",
    page_icon="💸",
    layout="wide",
)

# --- Data Access ---
@st.cache_resource
def get_runner():
    return DuckDBQueryRunner(DATABASE_PATH, read_only=True)


@st.cache_data
def load_options(column):
    frame = get_runner().execute(filter_options_query(column)).frame()
    return frame["option"].tolist()


@st.cache_data
def load_value_range():
    frame = get_runner().execute(value_range_query()).frame()
    if frame.empty or pd.isna(frame.loc[0, "max_value"]):
        return 0.0, DEFAULT_MAX_VALUE
    return float(frame.loc[0, "min_value"]), float(frame.loc[0, "max_value"])


def get_view(name, adapter_factory, schema):
    if name not in st.session_state:
        st.session_state[name] = GraphView(adapter_factory(), schema, runner=get_runner(), theme=DEFAULT_THEME)
    return st.session_state[name]


def load_view(name, view, sql):
    """Run the view's query when it differs from the one already loaded."""
    sql_key = f"{name}_sql"
    if st.session_state.get(sql_key) == sql:
        return True
    try:
        asyncio.run(view.load(sql))
    except duckdb.Error as exc:
        logger.exception("Query failed for %s", name)
        st.error(f"Falha ao consultar o banco de dados: {exc}")
        return False
    st.session_state[sql_key] = sql
    return True


def render_summary(view):
    summary = view.snapshot.summary()
    col1, col2, col3, col4 = st.columns(4)
    col1.metric("Nós", format_number(summary["nodes"]))
    col2.metric("Conexões", format_number(summary["edges"]))
    col3.metric("Valor Total", format_currency(summary["total_value"], abbreviated=True))
    col4.metric("Valor Médio", format_currency(summary["avg_transaction_value"]))


def render_info_panel(view):
    panel = view.info_panel()
    if panel is None:
        st.caption("Selecione um elemento para ver os detalhes.")
        return
    st.subheader(panel.title)
    st.caption(panel.subtitle)
    for label, value in panel.rows:
        st.markdown(f"**{label}:** {value}")
    if st.button("Fechar", key=f"close_{id(view)}"):
        view.controller.close()
        st.rerun()


def selected_slug(key):
    """Node slug picked in the plotly chart stored under *key*, if any."""
    event = st.session_state.get(key)
    if not event or not event.get("selection"):
        return None
    for point in event["selection"].get("points", []):
        if point.get("customdata"):
            return point["customdata"]
    return None


def render_chart(view, key):
    result = view.render()
    if not result.ok:
        st.warning("Visualização indisponível no momento.")
    fig = view.adapter.figure(result.plan)
    st.plotly_chart(
        fig,
        use_container_width=True,
        key=key,
        on_select="rerun",
        selection_mode="points",
    )


# --- UI Rendering ---
st.title("💸 SpendGraph: Despesas da Câmara dos Deputados")

if not DATABASE_PATH.exists():
    st.error(f"`{DATABASE_PATH}` not found. Set SPENDGRAPH_DB_PATH to a DuckDB file with the `despesas` table.")
    st.stop()

# --- Sidebar Controls ---
with st.sidebar:
    st.header("Filtros")
    min_available, max_available = load_value_range()
    min_value = st.slider(
        "Valor mínimo (R$)",
        min_value=0.0,
        max_value=max(max_available, DEFAULT_MAX_VALUE),
        value=0.0,
        step=100.0,
    )
    st.caption(f"Faixa dos dados: {format_currency(min_available)} a {format_currency(max_available)}")
    party = st.selectbox("Partido", options=[""] + load_options("sigla_partido"))
    category = st.selectbox("Categoria", options=[""] + load_options("categoria_despesa"))
    search = st.text_input("Buscar", help="Filtra por nome de deputado, fornecedor ou categoria.")

    st.header("Exibição")
    theme = st.radio("Tema", options=["dark", "light"], index=0 if DEFAULT_THEME == "dark" else 1, horizontal=True)
    show_labels = st.checkbox("Mostrar nomes das empresas")
    show_amounts = st.checkbox("Mostrar valores nas conexões")
    force_strength = st.slider("Força de repulsão", min_value=1, max_value=20, value=DEFAULT_FORCE_STRENGTH)
    density_mode = st.checkbox("Modo densidade (20% mais conectados)")
    top_mode = st.checkbox("Maiores despesas (top 15)")
    type_names = {t.display_name: t for t in (EntityType.DEPUTY, EntityType.SUPPLIER)}
    selected_types = st.multiselect("Tipos de entidade", options=list(type_names), default=list(type_names))

sankey_view = get_view("sankey_view", FlowLayoutAdapter, SANKEY_SCHEMA)
network_view = get_view("network_view", NetworkLayoutAdapter, NETWORK_SCHEMA)

for view in (sankey_view, network_view):
    view.set_theme(theme)
    view.update_controls(
        search=search,
        show_labels=show_labels,
        show_edge_amounts=show_amounts,
    )

network_view.update_controls(
    force_strength=force_strength,
    density_mode=density_mode,
    top_expenses_mode=top_mode,
    entity_types=None if len(selected_types) == len(type_names) else [type_names[n] for n in selected_types],
)

tab1, tab2 = st.tabs(["🔀 Fluxo (Sankey)", "🕸️ Rede de Entidades"])

with tab1:
    st.header("Partido → Categoria → Fornecedor")
    st.caption(f"Fluxo de despesas para os {SANKEY_TOP_SUPPLIERS} fornecedores que mais receberam.")

    if load_view("sankey_view", sankey_view, sankey_flow_query()):
        render_summary(sankey_view)
        chart_col, panel_col = st.columns([3, 1])
        with panel_col:
            labels = {
                f"{node.type.display_name}: {node.display_label}": key.slug
                for key, node in sankey_view.snapshot.nodes.items()
            }
            choice = st.selectbox("Inspecionar", options=[""] + sorted(labels), key="sankey_focus")
            sankey_view.select(labels.get(choice))
            render_info_panel(sankey_view)
        with chart_col:
            render_chart(sankey_view, key="sankey_chart")

with tab2:
    st.header("Deputados e Fornecedores")
    sql = network_query(min_value=min_value, party=party, category=category)
    if load_view("network_view", network_view, sql):
        render_summary(network_view)
        network_view.select(selected_slug("network_chart"))
        chart_col, panel_col = st.columns([3, 1])
        with chart_col:
            render_chart(network_view, key="network_chart")
        with panel_col:
            render_info_panel(network_view)

        with st.expander("Tabela de entidades"):
            st.dataframe(
                network_view.snapshot.stats_frame().sort_values("total_value", ascending=False),
                use_container_width=True,
                hide_index=True,
            )
