"""Tests for the requirement matcher — direct, fallback and specification matching."""

from app.services.requirement_matcher import find_line_item, match_items


class TestFindLineItem:
    def test_contains_either_direction(self):
        lines = [{"item": "Dell Laptop 15", "quantity": 20}]
        assert find_line_item("laptop", lines) is lines[0]
        assert find_line_item("dell laptop 15 inch", lines) is lines[0]

    def test_accepts_name_key(self):
        lines = [{"name": "Monitor", "quantity": 2}]
        assert find_line_item("monitor", lines) is lines[0]

    def test_no_match(self):
        assert find_line_item("printer", [{"item": "Laptop"}]) is None
        assert find_line_item("printer", None) is None

    def test_known_imprecision(self):
        assert find_line_item("laptop", [{"item": "Laptop Bag"}]) is not None


class TestMatchItems:
    def test_direct_match(self):
        [b] = match_items([{"name": "Laptop", "quantity": 20}], [{"item": "Laptop", "quantity": 20}], None, None)
        assert b.matched is True
        assert b.reasoning == "Item matches requirements"
        assert b.proposed_quantity == 20

    def test_quantity_mismatch(self):
        [b] = match_items([{"name": "Laptop", "quantity": 20}], [{"item": "Laptop", "quantity": 10}], None, None)
        assert b.matched is False
        assert b.matches_quantity is False
        assert b.reasoning == "Quantity mismatch (required: 20, proposed: 10)"

    def test_no_required_quantity_always_matches(self):
        [b] = match_items([{"name": "Laptop"}], [{"item": "Laptop", "quantity": 3}], None, None)
        assert b.matches_quantity is True

    def test_fallback_to_notes(self):
        [b] = match_items(
            [{"name": "Laptop", "quantity": 20}], None, "We can ship the laptops next week", None
        )
        assert b.matched is True
        assert b.matches_quantity is True
        assert b.proposed_quantity is None

    def test_fallback_to_raw_reply(self):
        [b] = match_items([{"name": "Monitor"}], [], None, "Monitor pricing attached")
        assert b.matched is True

    def test_not_found(self):
        [b] = match_items([{"name": "Printer", "quantity": 2}], [{"item": "Laptop"}], "n/a", None)
        assert b.matched is False
        assert b.reasoning == "Item not found in proposal"

    def test_specifications_keyword(self):
        [b] = match_items(
            [{"name": "Laptop", "specifications": "16GB RAM"}],
            [{"item": "Laptop"}],
            None,
            "All units ship with 16gb memory",
        )
        assert b.specifications_match is True
        assert b.matched is True

    def test_specifications_missing(self):
        [b] = match_items(
            [{"name": "Laptop", "specifications": "Retina display"}],
            [{"item": "Laptop"}],
            None,
            None,
        )
        assert b.specifications_match is False
        assert b.matched is False
        assert b.reasoning == "Specifications may not match"

    def test_one_breakdown_per_item(self):
        result = match_items([{"name": "A1"}, {"name": "B2"}, {"name": "C3"}], None, None, None)
        assert [b.item_name for b in result] == ["A1", "B2", "C3"]
