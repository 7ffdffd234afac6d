"""Unit tests for the patch applier.

Covers:
- Root replacement and put/patch equivalence
- Sibling preservation and null deletion
- Materialization through dynamic, optional and map-typed cells
- Record field resolution and defaults
- Atomic application and rollback on failure
"""

import json
from types import MappingProxyType
from typing import Dict, Optional

import pytest

from docsync import (
    DecodeError,
    NavigationError,
    Slot,
    UnwritableTargetError,
    apply_patch,
    apply_put,
    encode_document,
    ordered_keys,
)
from docsync.patch import ChangeRecord, apply_change

from tests.fixtures.schemas import (
    DESTINATION_FACTORIES,
    DataEmbedded,
    DataModel,
    DataWithOptionals,
    Envelope,
    FrozenModel,
    HoldsFrozen,
    Inner,
    Profile,
    Required,
    TwoNames,
)

EXPECTED = {"outer": {"inner": {"a": 1, "b": 1}}}


def _document(value):
    return json.loads(encode_document(value, exclude_none=True))


# =============================================================================
# Document scenarios
# =============================================================================


@pytest.mark.parametrize("factory", list(DESTINATION_FACTORIES.values()), ids=list(DESTINATION_FACTORIES))
class TestDocumentScenarios:
    """Each scenario ends at {"outer": {"inner": {"a": 1, "b": 1}}}."""

    def test_put_root(self, factory):
        dest = factory()
        apply_put(dest, "/", {"outer": {"inner": {"a": 1, "b": 1}}})
        assert _document(dest) == EXPECTED

    def test_put_new_key(self, factory):
        dest = factory()
        apply_put(dest, "/outer", {"inner": {"a": 1, "b": 1}})
        assert _document(dest) == EXPECTED

    def test_put_below_missing_parents(self, factory):
        dest = factory()
        apply_put(dest, "/", {})
        apply_put(dest, "/outer/inner", {"a": 1, "b": 1})
        assert _document(dest) == EXPECTED

    def test_put_existing_key(self, factory):
        dest = factory()
        apply_put(dest, "/", {"outer": {"inner": {"a": 0, "b": 1}}})
        apply_put(dest, "/outer/inner/a", 1)
        assert _document(dest) == EXPECTED

    def test_put_null_removes_key(self, factory):
        dest = factory()
        apply_put(dest, "/", {"outer": {"inner": {"a": 1, "b": 1, "c": 1}}})
        apply_put(dest, "/outer/inner/c", None)
        assert _document(dest) == EXPECTED

    def test_patch_merges_sibling(self, factory):
        dest = factory()
        apply_put(dest, "/", {"outer": {"inner": {"a": 1}}})
        apply_patch(dest, "/outer/inner", {"b": 1})
        assert _document(dest) == EXPECTED


# =============================================================================
# Root replacement
# =============================================================================


class TestRootReplacement:
    def test_root_put_discards_previous_content(self):
        dest = {"stale": True, "outer": {"old": 1}}
        apply_put(dest, "/", {"outer": {"new": 2}})
        assert dest == {"outer": {"new": 2}}

    def test_root_put_mutates_dict_in_place(self):
        dest = {"a": 1}
        same = dest
        apply_put(dest, "/", {"b": 2})
        assert same is dest
        assert dest == {"b": 2}

    def test_root_put_null_clears_dict(self):
        dest = {"a": 1}
        apply_put(dest, "/", None)
        assert dest == {}

    def test_root_put_null_empties_slot(self):
        slot = Slot(value={"a": 1})
        apply_put(slot, "/", None)
        assert slot.value is None

    def test_root_put_null_resets_record(self):
        record = DataEmbedded()
        record.outer.inner.a = 5
        apply_put(record, "/", None)
        assert record == DataEmbedded()

    def test_root_put_scalar_into_dict_is_decode_error(self):
        with pytest.raises(DecodeError):
            apply_put({}, "/", 42)

    def test_root_put_replaces_record_fields(self):
        record = DataModel()
        apply_put(record, "/", {"outer": {"inner": {"a": 3}}})
        assert record.outer.inner.a == 3
        assert record.outer.inner.b == 0

    def test_root_put_into_slot_decodes_declared_type(self):
        slot = Slot(Optional[DataWithOptionals])
        apply_put(slot, "/", {"outer": {"inner": {"a": 1}}})
        assert isinstance(slot.value, DataWithOptionals)
        assert slot.value.outer.inner == Inner(a=1)


# =============================================================================
# Put / patch semantics
# =============================================================================


class TestPutPatchEquivalence:
    @pytest.mark.parametrize(
        "path,data",
        [
            ("/outer/inner/a", 7),
            ("/outer/inner", {"z": 1}),
            ("/outer/inner/b", None),
            ("/fresh/branch/leaf", [1, 2]),
        ],
    )
    def test_put_at_leaf_equals_patch_of_parent(self, path, data):
        via_put = {"outer": {"inner": {"a": 1, "b": 1}}}
        via_patch = {"outer": {"inner": {"a": 1, "b": 1}}}

        parent, last = path.rsplit("/", 1)
        apply_put(via_put, path, data)
        apply_patch(via_patch, parent or "/", {last: data})

        assert via_put == via_patch

    def test_patch_leaves_unnamed_siblings(self):
        dest = {"outer": {"inner": {"a": 1, "keep": {"deep": True}}, "other": 2}}
        apply_patch(dest, "/outer/inner", {"b": 1})
        assert dest == {"outer": {"inner": {"a": 1, "keep": {"deep": True}, "b": 1}, "other": 2}}

    def test_patch_at_root(self):
        dest = {"a": 1}
        apply_patch(dest, "/", {"b": 2})
        assert dest == {"a": 1, "b": 2}

    def test_put_replaces_whole_subtree(self):
        dest = {"outer": {"inner": {"a": 1, "b": 1}}}
        apply_put(dest, "/outer/inner", {"c": 3})
        assert dest == {"outer": {"inner": {"c": 3}}}

    def test_path_accepts_key_sequence(self):
        dest = {}
        apply_put(dest, ["x", "y"], 1)
        assert dest == {"x": {"y": 1}}

    def test_apply_change_record(self):
        dest = {}
        apply_change(dest, ChangeRecord(kind="put", keys=["a"], data=1))
        apply_change(dest, ChangeRecord(kind="patch", keys=[], fields={"b": 2}))
        apply_change(dest, None)
        assert dest == {"a": 1, "b": 2}


class TestNullSentinel:
    def test_delete_is_idempotent_for_maps(self):
        dest = {"a": 1, "b": 2}
        apply_put(dest, "/a", None)
        once = dict(dest)
        apply_put(dest, "/a", None)
        assert dest == once == {"b": 2}

    def test_delete_missing_key_is_noop(self):
        dest = {"a": 1}
        apply_patch(dest, "/", {"missing": None})
        assert dest == {"a": 1}

    def test_null_resets_record_field_to_default(self):
        record = Inner(a=4, b=4, c=4)
        apply_patch(record, "/", {"a": None, "c": None})
        apply_patch(record, "/", {"a": None, "c": None})
        assert record == Inner(a=0, b=4, c=None)

    def test_null_resets_record_field_to_factory_default(self):
        record = DataEmbedded()
        record.outer.inner.a = 9
        apply_put(record, "/outer", None)
        assert record.outer == DataEmbedded().outer

    def test_null_for_required_field_uses_zero_value(self):
        record = Required(ident="x", size=3)
        apply_patch(record, "/", {"ident": None, "size": None})
        assert record == Required(ident="", size=0)


# =============================================================================
# Materialization
# =============================================================================


class TestMaterialization:
    def test_creates_minimal_chain_in_maps(self):
        dest = {"sibling": 1}
        apply_patch(dest, "/a/b/c", {"d": 1})
        assert dest == {"sibling": 1, "a": {"b": {"c": {"d": 1}}}}

    def test_unset_dynamic_slot_becomes_map(self):
        slot = Slot()
        apply_put(slot, "/a", 1)
        assert slot.value == {"a": 1}

    def test_unset_dynamic_field_becomes_map(self):
        envelope = Envelope()
        apply_put(envelope, "/body/greeting", "hi")
        assert envelope.body == {"greeting": "hi"}
        assert envelope.tags is None

    def test_unset_optional_map_field_is_allocated(self):
        envelope = Envelope()
        apply_put(envelope, "/tags/color", "red")
        assert envelope.tags == {"color": "red"}

    def test_map_value_type_is_enforced(self):
        envelope = Envelope()
        apply_put(envelope, "/counts/apples", 3)
        assert envelope.counts == {"apples": 3}
        with pytest.raises(DecodeError):
            apply_put(envelope, "/counts/pears", {"not": "an int"})

    def test_unset_optional_record_is_allocated(self):
        record = DataWithOptionals()
        apply_put(record, "/outer/inner/a", 1)
        assert record.outer is not None
        assert record.outer.inner == Inner(a=1)

    def test_optional_record_with_required_fields(self):
        slot = Slot(Optional[Required])
        apply_put(slot, "/label", "x")
        assert slot.value == Required(ident="", size=0, label="x")

    def test_unset_pydantic_optional_is_allocated(self):
        model = DataModel()
        apply_patch(model, "/outer/inner", {"b": 2})
        assert model.outer.inner.b == 2
        assert model.outer.inner.a == 0

    def test_typed_map_entries_are_records(self):
        slot = Slot(Dict[str, Inner])
        apply_put(slot, "/first/a", 5)
        assert slot.value == {"first": Inner(a=5)}

    def test_existing_null_in_map_is_replaced_by_container(self):
        dest = {"a": None}
        apply_put(dest, "/a/b", 1)
        assert dest == {"a": {"b": 1}}


# =============================================================================
# Record field resolution
# =============================================================================


class TestRecordFields:
    def test_case_insensitive_fallback(self):
        profile = Profile()
        apply_patch(profile, "/", {"displayname": "Al", "EMAIL": "al@example.com"})
        assert profile == Profile(DisplayName="Al", email="al@example.com")

    def test_exact_match_wins(self):
        record = TwoNames()
        apply_patch(record, "/", {"Name": "upper"})
        assert record == TwoNames(name="", Name="upper")

    def test_unknown_fields_are_ignored(self):
        profile = Profile()
        apply_patch(profile, "/", {"email": "x@example.com", "nickname": "x", "gone": None})
        assert profile == Profile(email="x@example.com")

    def test_navigation_into_unknown_field_fails(self):
        with pytest.raises(NavigationError) as exc_info:
            apply_put(Profile(), "/nickname/first", "x")
        assert exc_info.value.path == ("nickname",)

    def test_field_payload_is_decoded(self):
        record = DataEmbedded()
        apply_put(record, "/outer/inner", {"a": 2, "b": 3})
        assert isinstance(record.outer.inner, Inner)
        assert record.outer.inner == Inner(a=2, b=3)

    def test_root_put_matches_fields_like_leaf_put(self):
        via_root = Profile()
        via_leaf = Profile()

        apply_put(via_root, "/", {"displayname": "Ann", "EMAIL": "a@x", "nickname": "an"})
        apply_put(via_leaf, "/displayname", "Ann")
        apply_put(via_leaf, "/EMAIL", "a@x")

        assert via_root == via_leaf == Profile(DisplayName="Ann", email="a@x")

    def test_root_put_defaults_missing_required_fields(self):
        record = Required(ident="x", size=1)
        apply_put(record, "/", {"label": "y"})
        assert record == Required(ident="", size=0, label="y")

    def test_nested_payload_keys_fold_case(self):
        record = DataEmbedded()
        apply_put(record, "/", {"Outer": {"INNER": {"A": 4}}})
        assert record.outer.inner == Inner(a=4)

    def test_slot_record_keys_fold_case(self):
        slot = Slot(Optional[Profile])
        apply_put(slot, "/", {"displayName": "Bo"})
        assert slot.value == Profile(DisplayName="Bo")

    def test_typed_map_of_records_folds_case(self):
        slot = Slot(Dict[str, Profile], {})
        apply_put(slot, "/", {"u1": {"Email": "u1@x"}})
        assert slot.value == {"u1": Profile(email="u1@x")}


# =============================================================================
# Failures and atomicity
# =============================================================================


class TestFailures:
    def test_descending_into_scalar_names_type(self):
        dest = {"a": 5}
        with pytest.raises(NavigationError, match="int") as exc_info:
            apply_put(dest, "/a/b", 1)
        assert exc_info.value.path == ("a",)
        assert dest == {"a": 5}

    def test_decode_failure_commits_nothing(self):
        record = Inner(a=1, b=1)
        with pytest.raises(DecodeError):
            apply_patch(record, "/", {"a": 5, "b": "not a number"})
        assert record == Inner(a=1, b=1)

    def test_decode_failure_in_typed_map_commits_nothing(self):
        slot = Slot(Dict[str, int], {"x": 1})
        with pytest.raises(DecodeError):
            apply_patch(slot, "/", {"y": 2, "z": [1]})
        assert slot.value == {"x": 1}

    def test_rollback_removes_materialized_optionals(self):
        record = DataWithOptionals()
        with pytest.raises(NavigationError):
            apply_patch(record, "/outer/inner/a", {"x": 1})
        assert record.outer is None

    def test_rollback_removes_materialized_entries(self):
        slot = Slot(Dict[str, Inner], {})
        with pytest.raises(NavigationError):
            apply_patch(slot, "/k/missing", {"x": 1})
        assert slot.value == {}

    def test_decode_failure_rolls_back_created_path(self):
        envelope = Envelope()
        with pytest.raises(DecodeError):
            apply_put(envelope, "/tags/color", {"nested": True})
        assert envelope.tags is None

    def test_frozen_record_is_unwritable(self):
        holder = HoldsFrozen()
        with pytest.raises(UnwritableTargetError):
            apply_put(holder, "/inner/a", 1)
        assert holder.inner.a == 0

    def test_frozen_model_root_is_unwritable(self):
        with pytest.raises(UnwritableTargetError):
            apply_put(FrozenModel(), "/", {"a": 1})

    def test_read_only_mapping_is_unwritable(self):
        proxy = MappingProxyType({"a": 1})
        with pytest.raises(UnwritableTargetError):
            apply_put(proxy, "/b", 2)

    def test_scalar_root_is_navigation_error(self):
        with pytest.raises(NavigationError):
            apply_put(5, "/a", 1)


# =============================================================================
# Helpers
# =============================================================================


class TestHelpers:
    def test_ordered_keys(self):
        assert ordered_keys({"b": 1, "a": 2, "c": 3}) == ["a", "b", "c"]

    def test_ordered_keys_empty(self):
        assert ordered_keys({}) == []

    def test_encode_document_unwraps_slot(self):
        assert encode_document(Slot(value={"a": [1, 2]})) == '{"a":[1,2]}'

    def test_encode_document_keeps_none_by_default(self):
        assert encode_document(Inner()) == '{"a":0,"b":0,"c":null}'
