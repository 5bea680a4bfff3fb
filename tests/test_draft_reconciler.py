"""
test_draft_reconciler.py — Tests for RFP draft merging and materialization

Covers: idempotent merge, case-insensitive item dedup, placeholder title
regeneration, malformed/legacy fragments, and create/update payloads.

Called by: pytest
Depends on: app/services/draft_reconciler.py
"""

import copy
from datetime import datetime, timezone

from app.services.draft_reconciler import (
    DEFAULT_PLACEHOLDER_TITLE,
    build_rfp_create,
    build_rfp_update,
    dedupe_items,
    is_materializable,
    normalize_rfp_draft,
    parse_deadline,
    resolve_title,
    sanitize_fragment,
    title_from_description,
)


class TestMerge:
    def test_empty_fragment_is_noop(self):
        a = {"title": "Laptops", "requirements": {"items": [{"name": "Laptop", "quantity": 20}]}}
        b = {"budget": "$10,000", "requirements": {"delivery_days": "30 days"}}
        merged = normalize_rfp_draft(a, b)
        assert normalize_rfp_draft(merged, {}) == merged

    def test_scalars_override(self):
        merged = normalize_rfp_draft({"title": "Old", "budget": 100}, {"title": "New"})
        assert merged == {"title": "New", "budget": 100.0}

    def test_blank_does_not_clear(self):
        merged = normalize_rfp_draft({"title": "Keep", "description": "Desc"}, {"title": "  ", "description": None})
        assert merged["title"] == "Keep"
        assert merged["description"] == "Desc"

    def test_requirements_merge_keywise(self):
        merged = normalize_rfp_draft(
            {"requirements": {"items": [{"name": "Laptop"}], "warranty": "1 year"}},
            {"requirements": {"payment_terms": "Net 30", "warranty": "2 years"}},
        )
        assert merged["requirements"] == {
            "items": [{"name": "Laptop"}],
            "warranty": "2 years",
            "payment_terms": "Net 30",
        }

    def test_case_insensitive_dedup_keeps_existing(self):
        merged = normalize_rfp_draft(
            {"requirements": {"items": [{"name": "Laptop", "quantity": 20}]}},
            {"requirements": {"items": [{"name": "laptop", "quantity": 5}, {"name": "Mouse"}]}},
        )
        assert merged["requirements"]["items"] == [
            {"name": "Laptop", "quantity": 20},
            {"name": "Mouse"},
        ]

    def test_no_requirements_anywhere(self):
        assert "requirements" not in normalize_rfp_draft({"title": "A"}, {"budget": 5})

    def test_inputs_not_mutated(self):
        existing = {"title": "A", "requirements": {"items": [{"name": "Desk"}]}}
        incoming = {"requirements": {"items": [{"name": "Chair"}]}}
        before = (copy.deepcopy(existing), copy.deepcopy(incoming))
        normalize_rfp_draft(existing, incoming)
        assert (existing, incoming) == before

    def test_non_dict_inputs(self):
        assert normalize_rfp_draft(None, None) == {}
        assert normalize_rfp_draft("junk", {"title": "T"}) == {"title": "T"}


class TestPlaceholderChairs:
    def test_dedup_and_title_regeneration(self):
        existing = {"title": DEFAULT_PLACEHOLDER_TITLE, "requirements": {"items": [{"name": "Chair"}]}}
        incoming = {
            "description": "40 ergonomic chairs for office",
            "requirements": {"items": [{"name": "chair", "quantity": 40}]},
        }
        merged = normalize_rfp_draft(existing, incoming)
        assert merged["requirements"]["items"] == [{"name": "Chair"}]

        values = build_rfp_create(merged)
        assert values["title"] == "40 ergonomic chairs for office"
        assert values["requirements"]["items"] == [{"name": "Chair"}]


class TestMalformedFragments:
    def test_unparseable_requirements_string_dropped(self):
        merged = normalize_rfp_draft({}, {"title": "Desks", "requirements": "{not json"})
        assert merged == {"title": "Desks"}

    def test_requirements_as_json_string(self):
        merged = normalize_rfp_draft({}, {"requirements": '{"items": [{"name": "Desk", "quantity": "4 units"}]}'})
        assert merged["requirements"]["items"] == [{"name": "Desk", "quantity": 4}]

    def test_items_as_json_string(self):
        merged = normalize_rfp_draft({}, {"requirements": {"items": '[{"name": "Lamp"}]'}})
        assert merged["requirements"]["items"] == [{"name": "Lamp"}]

    def test_legacy_top_level_items_text(self):
        merged = normalize_rfp_draft({}, {"items": "10 standing desks"})
        assert merged["requirements"]["items"] == [{"name": "10 standing desks"}]

    def test_legacy_delivery_requirements(self):
        merged = normalize_rfp_draft({}, {"deliveryRequirements": "14 days"})
        assert merged["requirements"]["delivery_days"] == 14

    def test_camel_case_requirement_keys(self):
        merged = normalize_rfp_draft({}, {"requirements": {"paymentTerms": "Net 45", "deliveryDays": 10}})
        assert merged["requirements"]["payment_terms"] == "Net 45"
        assert merged["requirements"]["delivery_days"] == 10

    def test_bad_budget_and_items_dropped(self):
        merged = normalize_rfp_draft(
            {"budget": 500},
            {"budget": "ask finance", "requirements": {"items": [42, {"quantity": 3}, {"name": "Pen", "quantity": -1}]}},
        )
        assert merged["budget"] == 500.0
        assert merged["requirements"]["items"] == [{"name": "Pen"}]

    def test_unknown_keys_dropped(self):
        assert sanitize_fragment({"title": "T", "color": "blue"}) == {"title": "T"}

    def test_infinite_delivery_days_dropped(self):
        # json.loads turns 1e999 into inf
        merged = normalize_rfp_draft({"title": "Keep"}, {"title": "T", "requirements": '{"deliveryDays": 1e999}'})
        assert merged["title"] == "T"
        assert "requirements" not in merged or "delivery_days" not in merged["requirements"]

    def test_nan_quantity_dropped(self):
        merged = normalize_rfp_draft({}, {"requirements": {"items": [{"name": "Desk", "quantity": float("nan")}]}})
        assert merged["requirements"]["items"] == [{"name": "Desk"}]

    def test_non_finite_legacy_delivery_and_budget(self):
        merged = normalize_rfp_draft(
            {"budget": 500},
            {"deliveryRequirements": float("-inf"), "budget": float("inf")},
        )
        assert merged["budget"] == 500.0
        assert "requirements" not in merged or "delivery_days" not in merged["requirements"]

    def test_nan_from_json_string(self):
        merged = normalize_rfp_draft({}, {"requirements": '{"items": [{"name": "Chair", "quantity": NaN}], "delivery_days": NaN}'})
        assert merged["requirements"]["items"] == [{"name": "Chair"}]
        assert "delivery_days" not in merged["requirements"]


class TestDedupeItems:
    def test_first_wins(self):
        items = [{"name": " Desk "}, {"name": "desk", "quantity": 2}, {"name": "Chair"}]
        assert dedupe_items(items) == [{"name": " Desk "}, {"name": "Chair"}]


class TestMaterialization:
    def test_is_materializable(self):
        assert is_materializable({"title": "T", "description": "D"})
        assert is_materializable({"title": "T", "requirements": {"items": [{"name": "X"}]}})
        assert not is_materializable({"title": "T"})
        assert not is_materializable({"description": "D"})

    def test_title_truncation(self):
        desc = "Replacement ergonomic office chairs for the third floor open plan area"
        title = title_from_description(desc, 50)
        assert title == desc[:50].strip() + "..."
        assert title_from_description("Short one") == "Short one"

    def test_resolve_title_keeps_real_title(self):
        assert resolve_title({"title": "Chairs", "description": "Lots of chairs"}) == "Chairs"

    def test_create_payload(self):
        draft = {
            "title": "Laptops",
            "budget": 10000.0,
            "deadline": "2030-06-30",
            "requirements": {"items": [{"name": "Laptop", "quantity": 20}]},
        }
        values = build_rfp_create(draft)
        assert values["description"] == "Laptops"
        assert values["deadline"] == datetime(2030, 6, 30, tzinfo=timezone.utc)
        assert values["requirements"] == {
            "items": [{"name": "Laptop", "quantity": 20}],
            "delivery_days": None,
            "payment_terms": None,
            "warranty": None,
            "other_requirements": [],
        }

    def test_create_not_ready(self):
        assert build_rfp_create({"title": "Only a title"}) is None

    def test_parse_deadline(self):
        assert parse_deadline("2030-01-02T10:00:00Z") == datetime(2030, 1, 2, 10, tzinfo=timezone.utc)
        assert parse_deadline("next tuesday") is None
        assert parse_deadline(None) is None


class TestBuildUpdate:
    CURRENT = {
        "title": "Laptops",
        "description": "Laptops for staff",
        "budget": 10000.0,
        "deadline": datetime(2030, 6, 30, tzinfo=timezone.utc),
        "requirements": {
            "items": [{"name": "Laptop", "quantity": 20}],
            "delivery_days": None,
            "payment_terms": None,
            "warranty": None,
            "other_requirements": [],
        },
    }

    def test_unchanged_draft_yields_nothing(self):
        draft = {
            "title": "Laptops",
            "description": "Laptops for staff",
            "budget": 10000.0,
            "deadline": "2030-06-30",
            "requirements": {"items": [{"name": "Laptop", "quantity": 20}]},
        }
        assert build_rfp_update(self.CURRENT, draft) == {}

    def test_budget_change(self):
        assert build_rfp_update(self.CURRENT, {"budget": 12000.0}) == {"budget": 12000.0}

    def test_requirements_change(self):
        changes = build_rfp_update(self.CURRENT, {"requirements": {"warranty": "2 years"}})
        assert changes["requirements"]["warranty"] == "2 years"

    def test_placeholder_title_replaced_from_description(self):
        current = {**self.CURRENT, "title": DEFAULT_PLACEHOLDER_TITLE}
        desc = "Forty ergonomic chairs with lumbar support for HQ"
        changes = build_rfp_update(current, {"description": desc})
        assert changes["title"] == desc[:40].strip() + "..."
        assert changes["description"] == desc

    def test_placeholder_never_overwrites_real_title(self):
        assert "title" not in build_rfp_update(self.CURRENT, {"title": DEFAULT_PLACEHOLDER_TITLE})
