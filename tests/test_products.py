from __future__ import annotations

from pathlib import Path
import sys
import unittest

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from skin_analyzer.services.products import normalize_products, select_products_for_range


class TestProducts(unittest.TestCase):
    def test_maps_loose_fields(self) -> None:
        products = normalize_products(
            [
                {"name": "Gel Sebocylique", "product_type": "Nettoyant", "short_benefit": "Purifie", "price": 24.9, "handle": "gel-sebocylique"},
                {"title": "Crème Hydramelon", "category": "Crème", "description": "Hydrate", "price": "19,90 €"},
                {"price": 10},
                "not a product",
            ]
        )
        self.assertEqual(len(products), 2)
        self.assertEqual(products[0].title, "Gel Sebocylique")
        self.assertEqual(products[0].type, "Nettoyant")
        self.assertEqual(products[0].benefit, "Purifie")
        self.assertEqual(products[0].price, "24,90 €")
        self.assertEqual(products[0].handle, "gel-sebocylique")
        self.assertEqual(products[1].type, "Crème")
        self.assertEqual(products[1].price, "19,90 €")
        self.assertEqual(products[1].handle, "")

    def test_none_yields_empty_list(self) -> None:
        self.assertEqual(normalize_products(None), [])

    def test_range_filter_keeps_matching_products(self) -> None:
        products = normalize_products([{"title": "Gel Sebocylique"}, {"title": "Sérum Retilift"}])
        selected = select_products_for_range(products, "Sebocylique")
        self.assertEqual([p.title for p in selected], ["Gel Sebocylique"])

    def test_range_filter_falls_back_to_all(self) -> None:
        products = normalize_products([{"title": "Gel"}, {"title": "Crème"}])
        self.assertEqual(select_products_for_range(products, "Vitalight"), products)
        self.assertEqual(select_products_for_range(products, ""), products)
