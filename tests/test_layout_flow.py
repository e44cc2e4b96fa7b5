import unittest
from unittest.mock import MagicMock

import plotly.graph_objects as go

from spendgraph.controls import ViewControls
from spendgraph.graph.builder import build_snapshot
from spendgraph.graph.keys import EntityType, key_for
from spendgraph.graph.model import SANKEY_SCHEMA, FlowSchema
from spendgraph.layout.base import LayoutUnavailableError, RenderPlan
from spendgraph.layout.engines import SankeyLayoutEngine, link_path
from spendgraph.layout.flow import FlowLayoutAdapter, flow_columns
from spendgraph.theme import Theme

PT = key_for(EntityType.PARTY, "PT")
SAUDE = key_for(EntityType.CATEGORY, "SAUDE")
X = key_for(EntityType.SUPPLIER, "X")
Y = key_for(EntityType.SUPPLIER, "Y")


class TestSankeyLayoutEngine(unittest.TestCase):

    def setUp(self):
        self.engine = SankeyLayoutEngine(width=1000, height=600, margin=10, node_width=20, node_padding=15)

    def test_heights_follow_throughput(self):
        result = self.engine.layout(
            [{"id": "a", "column": 0}, {"id": "b", "column": 0}, {"id": "c", "column": 1}],
            [{"source": "a", "target": "c", "value": 30}, {"source": "b", "target": "c", "value": 10}],
        )
        boxes = result["nodes"]
        height = {i: box["y1"] - box["y0"] for i, box in boxes.items()}

        self.assertAlmostEqual(height["a"], 3 * height["b"])
        self.assertAlmostEqual(height["c"], height["a"] + height["b"])
        self.assertEqual(boxes["a"]["x0"], 10)
        self.assertEqual(boxes["c"]["x1"], 990)
        # stacked top to bottom in input order, padding in between
        self.assertAlmostEqual(boxes["b"]["y0"], boxes["a"]["y1"] + 15)

    def test_links_keep_input_order(self):
        result = self.engine.layout(
            [{"id": "a", "column": 0}, {"id": "b", "column": 1}, {"id": "c", "column": 1}],
            [{"source": "a", "target": "c", "value": 1}, {"source": "a", "target": "b", "value": 3}],
        )
        self.assertEqual([(l["source"], l["target"]) for l in result["links"]], [("a", "c"), ("a", "b")])
        self.assertGreater(result["links"][1]["width"], result["links"][0]["width"])

    def test_zero_and_negative_values(self):
        result = self.engine.layout(
            [{"id": "a", "column": 0}, {"id": "b", "column": 1}],
            [{"source": "a", "target": "b", "value": -5}],
        )
        self.assertEqual(result["links"][0]["width"], 0.0)
        self.assertEqual(result["nodes"]["a"]["y1"] - result["nodes"]["a"]["y0"], 1.0)

    def test_invalid_input(self):
        with self.assertRaises(ValueError):
            self.engine.layout([{"id": "a", "column": 0}, {"id": "a", "column": 1}], [])
        with self.assertRaises(ValueError):
            self.engine.layout([{"id": "a", "column": 0}], [{"source": "a", "target": "z", "value": 1}])

    def test_link_path(self):
        self.assertEqual(link_path(0, 0, 10, 20), "M0.00,0.00C5.00,0.00 5.00,20.00 10.00,20.00")


class TestFlowLayoutAdapter(unittest.TestCase):

    def setUp(self):
        self.snapshot = build_snapshot(
            [
                {"source": "PT", "mid": "SAUDE", "target": "X", "value": 100.0, "count": 2},
                {"source": "PT", "mid": "SAUDE", "target": "Y", "value": 50.0, "count": 1},
            ],
            SANKEY_SCHEMA,
        )
        self.adapter = FlowLayoutAdapter(width=1000, height=600)

    def test_plan_columns_and_order(self):
        plan = self.adapter.plan(self.snapshot, ViewControls(), Theme.DARK)

        self.assertEqual(plan.kind, "flow")
        self.assertEqual([n.id for n in plan.nodes], [PT, SAUDE, X, Y])
        self.assertLess(plan.node(PT).x0, plan.node(SAUDE).x0)
        self.assertLess(plan.node(SAUDE).x0, plan.node(X).x0)
        self.assertEqual(plan.node(X).x0, plan.node(Y).x0)
        # larger supplier on top
        self.assertLess(plan.node(X).y0, plan.node(Y).y0)

    def test_label_anchor_and_colors(self):
        plan = self.adapter.plan(self.snapshot, ViewControls(), Theme.LIGHT)

        self.assertEqual(plan.node(PT).label_anchor, "start")
        self.assertEqual(plan.node(X).label_anchor, "end")
        self.assertEqual(plan.node(PT).label_color, Theme.LIGHT.text)
        self.assertEqual(plan.edge(PT, SAUDE).color, Theme.LIGHT.border)
        self.assertEqual(self.adapter.label_colors(self.snapshot, Theme.DARK)[X], Theme.DARK.text)

    def test_edges(self):
        plan = self.adapter.plan(self.snapshot, ViewControls(), Theme.DARK)

        self.assertEqual(len(plan.edges), 3)
        edge = plan.edge(PT, SAUDE)
        self.assertEqual(edge.value, 75.0)
        self.assertTrue(edge.path.startswith("M"))
        self.assertIn("C", edge.path)
        self.assertIsNone(edge.label)
        self.assertIn("PT → SAUDE", edge.hover)

        plan = self.adapter.plan(self.snapshot, ViewControls(show_edge_amounts=True), Theme.DARK)
        self.assertEqual(plan.edge(PT, SAUDE).label, "R$ 75,00")

    def test_long_labels_are_truncated(self):
        name = "Companhia Brasileira de Distribuição Ltda"
        snapshot = build_snapshot(
            [{"source": "PT", "mid": "SAUDE", "target": name, "value": 10.0, "count": 1}],
            SANKEY_SCHEMA,
        )
        plan = self.adapter.plan(snapshot, ViewControls(), Theme.DARK)
        label = plan.node(key_for(EntityType.SUPPLIER, name)).label

        self.assertEqual(label, name[:30] + "...")
        self.assertEqual(plan.node(PT).label, "PT")

    def test_missing_tiers_are_compressed(self):
        snapshot = build_snapshot(
            [{"source": "PT", "target": "X", "value": 10.0, "count": 1}],
            FlowSchema(EntityType.PARTY, EntityType.SUPPLIER),
        )
        self.assertEqual(flow_columns(snapshot), {PT: 0, X: 1})

        plan = self.adapter.plan(snapshot, ViewControls(), Theme.DARK)
        self.assertEqual(plan.node(X).x1, 990)

    def test_plan_is_deterministic(self):
        first = self.adapter.plan(self.snapshot, ViewControls(), Theme.DARK)
        second = self.adapter.plan(self.snapshot, ViewControls(), Theme.DARK)
        self.assertEqual(first, second)

    def test_empty_snapshot_gives_placeholder(self):
        plan = self.adapter.plan(build_snapshot([], SANKEY_SCHEMA), ViewControls(), Theme.DARK)
        self.assertTrue(plan.placeholder)
        self.assertEqual(plan.nodes, ())

    def test_engine_failure(self):
        engine = MagicMock()
        engine.layout.side_effect = RuntimeError("engine crashed")
        adapter = FlowLayoutAdapter(engine=engine)

        with self.assertRaises(LayoutUnavailableError) as ctx:
            adapter.plan(self.snapshot, ViewControls(), Theme.DARK)
        self.assertIn("engine crashed", str(ctx.exception))

    def test_incomplete_engine_result(self):
        engine = MagicMock()
        engine.layout.return_value = {"nodes": {}, "links": [{}, {}, {}]}
        with self.assertRaises(LayoutUnavailableError):
            FlowLayoutAdapter(engine=engine).plan(self.snapshot, ViewControls(), Theme.DARK)

        engine.layout.return_value = {"nodes": {}, "links": []}
        with self.assertRaises(LayoutUnavailableError):
            FlowLayoutAdapter(engine=engine).plan(self.snapshot, ViewControls(), Theme.DARK)

    def test_figure(self):
        plan = self.adapter.plan(self.snapshot, ViewControls(), Theme.DARK)
        fig = self.adapter.figure(plan)

        self.assertIsInstance(fig, go.Figure)
        trace = fig.data[0]
        self.assertEqual(trace.type, "sankey")
        self.assertEqual(trace.arrangement, "fixed")
        self.assertEqual(list(trace.node.label), ["PT", "SAUDE", "X", "Y"])
        self.assertEqual(list(trace.link.source), [0, 1, 1])
        self.assertEqual(fig.layout.paper_bgcolor, Theme.DARK.background)

    def test_placeholder_figure(self):
        fig = self.adapter.figure(RenderPlan.empty("flow", theme=Theme.LIGHT))
        self.assertEqual(len(fig.data), 0)
        self.assertEqual(fig.layout.annotations[0].text, "Sem dados para exibir")


if __name__ == '__main__':
    unittest.main()
