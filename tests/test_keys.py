import unittest

from spendgraph.graph.keys import (
    EntityKey,
    EntityKeyRegistry,
    EntityType,
    is_blank,
    key_for,
    normalize_label,
)


class TestEntityKeys(unittest.TestCase):

    def test_labels_match_after_normalization(self):
        """Whitespace and case differences map to the same key."""
        self.assertEqual(key_for(EntityType.CATEGORY, "Saúde "), key_for(EntityType.CATEGORY, "SAÚDE"))
        self.assertEqual(key_for(EntityType.SUPPLIER, "Posto  Central"), key_for(EntityType.SUPPLIER, "posto central"))
        self.assertEqual(
            hash(key_for(EntityType.PARTY, " pt")),
            hash(key_for(EntityType.PARTY, "PT")),
        )

    def test_type_is_part_of_identity(self):
        """A category and a supplier with the same label are different entities."""
        self.assertNotEqual(key_for(EntityType.CATEGORY, "Locação"), key_for(EntityType.SUPPLIER, "Locação"))

    def test_raw_label_is_kept_but_not_compared(self):
        key = key_for(EntityType.DEPUTY, "Ana Souza")
        self.assertEqual(key.raw_label, "Ana Souza")
        self.assertEqual(key.normalized, "ana souza")
        self.assertEqual(key.slug, "deputy:ana souza")
        self.assertEqual(str(key), key.slug)

    def test_keys_are_immutable(self):
        key = EntityKey(EntityType.PARTY, "PT")
        with self.assertRaises(AttributeError):
            key.raw_label = "PL"

    def test_normalize_label(self):
        self.assertEqual(normalize_label("  Gráfica \t Brasil\n"), "gráfica brasil")

    def test_is_blank(self):
        self.assertTrue(is_blank(None))
        self.assertTrue(is_blank(""))
        self.assertTrue(is_blank("   "))
        self.assertFalse(is_blank("PT"))
        self.assertFalse(is_blank(0))

    def test_entity_type_policy(self):
        self.assertEqual(EntityType.from_slug("supplier"), EntityType.SUPPLIER)
        self.assertEqual(EntityType.SUPPLIER.display_name, "Fornecedor")
        self.assertEqual(EntityType.DEPUTY.label_limit, 15)
        self.assertIsNone(EntityType.PARTY.label_limit)
        with self.assertRaises(ValueError):
            EntityType.from_slug("company")


class TestEntityKeyRegistry(unittest.TestCase):

    def test_first_spelling_wins(self):
        """The display label is the first spelling seen, stripped."""
        registry = EntityKeyRegistry()
        first = registry.key_for(EntityType.PARTY, " PT ")
        second = registry.key_for(EntityType.PARTY, "pt")

        self.assertIs(first, second)
        self.assertEqual(registry.display_label(second), "PT")
        self.assertEqual(len(registry), 1)
        self.assertIn(key_for(EntityType.PARTY, "Pt"), registry)

    def test_distinct_entities(self):
        registry = EntityKeyRegistry()
        registry.key_for(EntityType.PARTY, "PT")
        registry.key_for(EntityType.PARTY, "PL")
        registry.key_for(EntityType.CATEGORY, "PT")
        self.assertEqual(len(registry), 3)
        self.assertEqual({k.slug for k in registry}, {"party:pt", "party:pl", "category:pt"})


if __name__ == '__main__':
    unittest.main()
