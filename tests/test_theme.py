import unittest

from spendgraph.graph.builder import build_snapshot
from spendgraph.graph.keys import EntityType, key_for
from spendgraph.graph.model import NETWORK_SCHEMA, SANKEY_SCHEMA, Node
from spendgraph.theme import (
    FLOW_PALETTES,
    Theme,
    ThemeAdapter,
    adjust_brightness,
    contrast_color,
    edge_color,
    hex_to_rgba,
    label_color,
)


class TestColorHelpers(unittest.TestCase):

    def test_adjust_brightness(self):
        self.assertEqual(adjust_brightness("#000000", 10), "#1a1a1a")
        self.assertEqual(adjust_brightness("#ffffff", 10), "#ffffff")
        self.assertEqual(adjust_brightness("#101010", -15), "#000000")

    def test_contrast_color(self):
        self.assertEqual(contrast_color("#FFFFFF"), "#000000")
        self.assertEqual(contrast_color("#000000"), "#FFFFFF")
        self.assertEqual(contrast_color("#FFD700"), "#000000")

    def test_hex_to_rgba(self):
        self.assertEqual(hex_to_rgba("#ff0080", 0.5), "rgba(255, 0, 128, 0.5)")

    def test_theme_lookup(self):
        self.assertIs(Theme.from_name("LIGHT"), Theme.LIGHT)
        self.assertIs(Theme.from_name(Theme.DARK), Theme.DARK)
        with self.assertRaises(ValueError):
            Theme.from_name("sepia")

    def test_edge_and_label_colors(self):
        self.assertEqual(edge_color("dark"), "#374151")
        self.assertEqual(edge_color(Theme.LIGHT), "#e5e7eb")
        self.assertEqual(label_color(None, Theme.LIGHT), "#000000")
        self.assertEqual(label_color(None, "dark"), "#FFFFFF")

        node = Node(key_for(EntityType.PARTY, "PT"), "PT", EntityType.PARTY, "#FFFFFF")
        self.assertEqual(label_color(node, Theme.DARK), "#000000")


class TestThemeAdapter(unittest.TestCase):

    def setUp(self):
        self.snapshot = build_snapshot(
            [
                {"source": "Ana", "target": "Posto Central", "value": 100.0, "count": 2},
                {"source": "Bruno", "target": "Posto Central", "value": 50.0, "count": 1},
            ],
            NETWORK_SCHEMA,
        )

    def test_network_colors_by_type(self):
        adapter = ThemeAdapter()
        adapter.recolor(self.snapshot.nodes.values(), Theme.DARK)
        ana = self.snapshot.node(key_for(EntityType.DEPUTY, "Ana"))
        self.assertEqual(ana.color, EntityType.DEPUTY.base_color)

        adapter.recolor(self.snapshot.nodes.values(), "light")
        self.assertEqual(ana.color, adjust_brightness(EntityType.DEPUTY.base_color, -15))

    def test_recolor_is_idempotent(self):
        adapter = ThemeAdapter()
        adapter.recolor(self.snapshot.nodes.values(), Theme.LIGHT)
        once = {key: node.color for key, node in self.snapshot.nodes.items()}
        adapter.recolor(self.snapshot.nodes.values(), Theme.LIGHT)
        twice = {key: node.color for key, node in self.snapshot.nodes.items()}
        self.assertEqual(once, twice)

    def test_recolor_leaves_graph_alone(self):
        edges_before = [(e.key, e.value, e.count) for e in self.snapshot.edges]
        stats_before = {k: s.total_value for k, s in self.snapshot.stats.items()}

        ThemeAdapter(ordinal=True).recolor(self.snapshot.nodes.values(), Theme.LIGHT)

        self.assertEqual([(e.key, e.value, e.count) for e in self.snapshot.edges], edges_before)
        self.assertEqual({k: s.total_value for k, s in self.snapshot.stats.items()}, stats_before)

    def test_ordinal_colors_are_stable(self):
        adapter = ThemeAdapter(ordinal=True)
        first = build_snapshot([{"source": "PT", "mid": "Saúde", "target": "X", "value": 1.0, "count": 1}], SANKEY_SCHEMA)
        second = build_snapshot([{"source": "pt ", "mid": "Transporte", "target": "X", "value": 1.0, "count": 1}], SANKEY_SCHEMA)
        adapter.recolor(first.nodes.values(), Theme.DARK)
        adapter.recolor(second.nodes.values(), Theme.DARK)

        pt = key_for(EntityType.PARTY, "PT")
        self.assertEqual(first.node(pt).color, second.node(pt).color)

        category = first.node(key_for(EntityType.CATEGORY, "Saúde")).color
        self.assertTrue(category.startswith("#"))
        self.assertEqual(len(category), 7)
        self.assertEqual(len(FLOW_PALETTES[EntityType.CATEGORY]), 12)


if __name__ == '__main__':
    unittest.main()
