import asyncio
import unittest
from unittest.mock import MagicMock

from spendgraph.controls import ViewControls
from spendgraph.data.loader import QueryResult
from spendgraph.graph.keys import EntityType, key_for
from spendgraph.graph.model import NETWORK_SCHEMA, SANKEY_SCHEMA
from spendgraph.interaction.controller import FOCUS_CLEARED
from spendgraph.layout.engines import ForceLayoutEngine, SankeyLayoutEngine
from spendgraph.layout.flow import FlowLayoutAdapter
from spendgraph.layout.network import NetworkLayoutAdapter
from spendgraph.theme import SELECTION_GOLD, Theme
from spendgraph.view import GraphView

FLOW_ROWS = [
    {"source": "PT", "mid": "SAUDE", "target": "X", "value": 100.0, "count": 2},
    {"source": "PT", "mid": "SAUDE", "target": "Y", "value": 50.0, "count": 1},
]
NETWORK_ROWS = [
    {"source": "Ana", "target": "Posto Central", "value": 100.0, "count": 2},
    {"source": "Ana", "target": "Gráfica Brasil", "value": 10.0, "count": 1},
    {"source": "Bruno", "target": "Posto Central", "value": 50.0, "count": 1},
]

PT = key_for(EntityType.PARTY, "PT")
X = key_for(EntityType.SUPPLIER, "X")
ANA = key_for(EntityType.DEPUTY, "Ana")
POSTO = key_for(EntityType.SUPPLIER, "Posto Central")


class GatedRunner:
    """Query runner whose results are released by the test."""

    def __init__(self, results):
        self.results = results
        self.gates = {sql: asyncio.Event() for sql in results}

    async def run(self, sql):
        await self.gates[sql].wait()
        result = self.results[sql]
        if isinstance(result, Exception):
            raise result
        return result


class GridEngine(ForceLayoutEngine):

    def simulate(self, node_ids, links, params, positions=None, pinned=None, on_tick=None):
        return {node_id: (50.0 * n, 10.0 * n) for n, node_id in enumerate(node_ids)}


def flow_view(**kwargs):
    return GraphView(FlowLayoutAdapter(**kwargs), SANKEY_SCHEMA, theme="dark")


def network_view():
    return GraphView(NetworkLayoutAdapter(engine=GridEngine()), NETWORK_SCHEMA, theme="dark")


class TestGraphViewLoading(unittest.IsolatedAsyncioTestCase):

    async def test_stale_result_is_discarded(self):
        runner = GatedRunner({
            "old": QueryResult(rows=FLOW_ROWS[:1], columns=["source", "mid", "target", "value", "count"]),
            "new": QueryResult(rows=FLOW_ROWS, columns=["source", "mid", "target", "value", "count"]),
        })
        view = GraphView(FlowLayoutAdapter(), SANKEY_SCHEMA, runner=runner)

        old = asyncio.create_task(view.load("old"))
        await asyncio.sleep(0)
        new = asyncio.create_task(view.load("new"))
        await asyncio.sleep(0)

        runner.gates["new"].set()
        self.assertTrue(await new)
        self.assertEqual(len(view.snapshot.nodes), 4)

        with self.assertLogs('spendgraph.view', level='DEBUG') as logs:
            runner.gates["old"].set()
            self.assertFalse(await old)
        self.assertIn("Discarding stale query result", logs.output[0])
        self.assertEqual(len(view.snapshot.nodes), 4)
        self.assertEqual(view.generation, 2)

    async def test_stale_failure_is_discarded(self):
        runner = GatedRunner({
            "old": RuntimeError("slow query timed out"),
            "new": QueryResult(rows=FLOW_ROWS, columns=["source", "mid", "target", "value", "count"]),
        })
        view = GraphView(FlowLayoutAdapter(), SANKEY_SCHEMA, runner=runner)

        old = asyncio.create_task(view.load("old"))
        await asyncio.sleep(0)
        new = asyncio.create_task(view.load("new"))
        await asyncio.sleep(0)

        runner.gates["new"].set()
        self.assertTrue(await new)

        with self.assertLogs('spendgraph.view', level='DEBUG') as logs:
            runner.gates["old"].set()
            self.assertFalse(await old)
        self.assertIn("Discarding stale query failure", logs.output[0])
        self.assertEqual(len(view.snapshot.nodes), 4)

    async def test_query_error_keeps_previous_snapshot(self):
        runner = GatedRunner({
            "good": QueryResult(rows=FLOW_ROWS, columns=[]),
            "bad": RuntimeError("connection lost"),
        })
        for gate in runner.gates.values():
            gate.set()
        view = GraphView(FlowLayoutAdapter(), SANKEY_SCHEMA, runner=runner)

        await view.load("good")
        snapshot = view.snapshot
        with self.assertRaises(RuntimeError):
            await view.load("bad")
        self.assertIs(view.snapshot, snapshot)

    async def test_load_without_runner(self):
        with self.assertRaises(RuntimeError):
            await flow_view().load("SELECT 1")


class TestGraphViewRendering(unittest.TestCase):

    def test_render_applies_highlight(self):
        view = flow_view()
        view.set_rows(FLOW_ROWS)
        view.focus_slug(X.slug)

        result = view.render()
        self.assertTrue(result.ok)
        self.assertEqual(result.plan.node(X).opacity, 1.0)
        self.assertEqual(result.plan.node(PT).opacity, 0.3)

        view.focus_slug(None)
        self.assertEqual(view.render().plan.node(PT).opacity, 1.0)

    def test_focused_node_gets_selection_stroke(self):
        view = network_view()
        view.set_rows(NETWORK_ROWS)
        view.focus_slug(ANA.slug)

        plan = view.render().plan
        self.assertEqual(plan.node(ANA).stroke_color, SELECTION_GOLD)
        self.assertEqual(plan.node(ANA).stroke_width, 3.0)
        self.assertEqual(plan.node(POSTO).stroke_color, "#FFFFFF")

        view.controller.close()
        self.assertEqual(view.render().plan.node(ANA).stroke_color, "#FFFFFF")

    def test_layout_failure_warns_once_and_keeps_last_plan(self):
        engine = MagicMock(wraps=SankeyLayoutEngine())
        view = flow_view(engine=engine)
        view.set_rows(FLOW_ROWS)
        good = view.render()
        self.assertTrue(good.ok)

        engine.layout.side_effect = RuntimeError("renderer missing")
        view.update_controls(show_edge_amounts=True)

        with self.assertLogs('spendgraph.view', level='WARNING') as logs:
            first = view.render()
            second = view.render()

        self.assertEqual(len(logs.output), 1)
        self.assertIn("Visualization unavailable", logs.output[0])
        self.assertFalse(first.ok)
        self.assertIn("renderer missing", first.error)
        self.assertEqual(second.error, first.error)
        self.assertEqual([n.id for n in first.plan.nodes], [n.id for n in good.plan.nodes])

    def test_layout_failure_without_previous_plan(self):
        engine = MagicMock()
        engine.layout.side_effect = RuntimeError("renderer missing")
        view = flow_view(engine=engine)
        view.set_rows(FLOW_ROWS)

        with self.assertLogs('spendgraph.view', level='WARNING'):
            result = view.render()
        self.assertTrue(result.plan.placeholder)
        self.assertEqual(len(view.figure().data), 0)

    def test_network_layout_failure_shows_placeholder(self):
        engine = MagicMock()
        engine.simulate.side_effect = RuntimeError("no solver")
        adapter = NetworkLayoutAdapter(engine=engine)
        view = GraphView(adapter, NETWORK_SCHEMA)
        view.set_rows(NETWORK_ROWS[:1])

        with self.assertLogs('spendgraph.view', level='WARNING'):
            result = view.render()
        self.assertFalse(result.ok)
        self.assertTrue(result.plan.placeholder)
        self.assertEqual(result.plan.width, adapter.width)

        fig = view.figure()
        self.assertEqual(len(fig.data), 0)
        self.assertEqual(fig.layout.annotations[0].text, "Sem dados para exibir")

    def test_theme_switch_keeps_geometry(self):
        view = network_view()
        view.set_rows(NETWORK_ROWS)
        dark = view.render().plan

        view.set_theme("light")
        light = view.render().plan

        self.assertEqual([(n.x0, n.y0) for n in dark.nodes], [(n.x0, n.y0) for n in light.nodes])
        self.assertEqual(light.theme, Theme.LIGHT)
        self.assertEqual(light.edge(ANA, POSTO).color, Theme.LIGHT.border)
        self.assertNotEqual(light.node(ANA).color, dark.node(ANA).color)

    def test_theme_switch_keeps_focus(self):
        view = network_view()
        view.set_rows(NETWORK_ROWS)
        view.focus_slug(ANA.slug)
        view.set_theme(Theme.LIGHT)
        self.assertEqual(view.controller.state, "FOCUSED")
        self.assertEqual(view.info_panel().title, "Deputado: Ana")

    def test_filter_controls_rebuild_snapshot(self):
        view = network_view()
        view.set_rows(NETWORK_ROWS)
        view.focus_slug(ANA.slug)
        cleared = MagicMock()
        view.controller.subscribe(FOCUS_CLEARED, cleared)

        view.update_controls(min_value=50)

        self.assertEqual(len(view.snapshot.edges), 2)
        self.assertEqual(len(view.render().plan.nodes), 3)
        cleared.assert_called_once_with()
        self.assertIsNone(view.info_panel())

    def test_search_survives_refilter(self):
        view = network_view()
        view.set_rows(NETWORK_ROWS)
        view.search("posto")
        self.assertEqual(view.controller.search_state.matched_ids, frozenset({POSTO}))

        view.update_controls(min_value=50)
        self.assertEqual(view.controller.search_state.query, "posto")
        self.assertEqual(view.render().plan.node(ANA).opacity, 0.3)

        view.search("")
        self.assertTrue(view.controller.partition().is_uniform)

    def test_layout_controls_replan(self):
        view = network_view()
        view.set_rows(NETWORK_ROWS)
        self.assertIsNone(view.render().plan.node(ANA).label)

        view.update_controls(show_labels=True)
        self.assertEqual(view.render().plan.node(ANA).label, "Ana")

    def test_empty_rows_render_placeholder(self):
        view = flow_view()
        view.set_rows([])
        result = view.render()
        self.assertTrue(result.ok)
        self.assertTrue(result.plan.placeholder)

    def test_skipped_rows_are_logged(self):
        view = flow_view()
        with self.assertLogs('spendgraph.view', level='INFO'):
            view.set_rows(FLOW_ROWS + [{"source": None, "target": "X", "value": 1.0, "count": 1}])
        self.assertEqual(view.snapshot.skipped_rows, 1)

    def test_find_and_edge_panel(self):
        view = flow_view()
        view.set_rows(FLOW_ROWS)
        self.assertEqual(view.find("party:pt"), PT)
        self.assertIsNone(view.find("party:psol"))

        view.controller.pointer_enter(view.snapshot.edges[0])
        self.assertEqual(view.info_panel().title, "Fluxo: PT → SAUDE")

    def test_repeated_selection_does_not_undo_close(self):
        view = network_view()
        view.set_rows(NETWORK_ROWS)

        self.assertTrue(view.select(ANA.slug))
        self.assertEqual(view.controller.state, "FOCUSED")

        view.controller.close()
        self.assertFalse(view.select(ANA.slug))
        self.assertIsNone(view.info_panel())

        self.assertTrue(view.select(POSTO.slug))
        self.assertEqual(view.info_panel().title, "Fornecedor: Posto Central")

    def test_empty_selection_clears_focus(self):
        view = network_view()
        view.set_rows(NETWORK_ROWS)
        view.select(ANA.slug)

        self.assertTrue(view.select(None))
        self.assertEqual(view.controller.state, "IDLE")
        self.assertFalse(view.select(None))

    def test_selection_reapplies_after_refilter(self):
        view = network_view()
        view.set_rows(NETWORK_ROWS)
        view.select(POSTO.slug)

        view.update_controls(min_value=50)
        self.assertEqual(view.controller.state, "IDLE")
        self.assertTrue(view.select(POSTO.slug))
        self.assertEqual(view.controller.state, "FOCUSED")

    def test_initial_controls(self):
        view = GraphView(
            NetworkLayoutAdapter(engine=GridEngine()),
            NETWORK_SCHEMA,
            controls=ViewControls(top_expenses_mode=True),
        )
        view.set_rows(NETWORK_ROWS)
        self.assertEqual(len(view.snapshot.nodes), 4)
        self.assertTrue(view.controls.top_expenses_mode)


if __name__ == '__main__':
    unittest.main()
