import pytest

from flatten import (
    EXCEL_MAX_LEN,
    TRUNCATION_MARKER,
    FallbackFlattener,
    ModelFlattener,
    PlainItem,
    RawFlattener,
    ResponseRecord,
    clip_text,
    flatten_plain_items,
    flatten_response_data,
    serialize_value,
)
from schema import normalize


def _raw(data):
    return flatten_response_data(data, {})


# -------------------------------------------------
# serialize_value
# -------------------------------------------------

def test_serialize_scalars():
    assert serialize_value(None) == ""
    assert serialize_value(True) == "Yes"
    assert serialize_value(False) == "No"
    assert serialize_value(3) == "3"
    assert serialize_value(2.0) == "2"
    assert serialize_value(2.5) == "2.5"
    assert serialize_value("plain") == "plain"


def test_serialize_lists_recursively():
    assert serialize_value(["a", 1, True, None]) == "a, 1, Yes, "
    assert serialize_value([{"text": "Red"}, {"value": "g"}]) == "Red, g"


def test_serialize_labeled_choice_prefers_text():
    assert serialize_value({"text": "Red", "value": "r"}) == "Red"
    assert serialize_value({"text": "   ", "value": "r"}) == "r"
    assert serialize_value({"text": "", "value": "fallback"}) == "fallback"
    assert serialize_value({"value": 0}) == "0"


def test_serialize_labeled_choice_without_usable_parts_flattens():
    assert serialize_value({"text": None, "value": None}) == "text: ; value: "


def test_serialize_mapping_pairs():
    assert serialize_value({"street": "Main", "no": 4, "flags": [True, False]}) == "street: Main; no: 4; flags: Yes, No"
    assert serialize_value({}) == ""


def test_serialize_self_referencing_mapping_does_not_raise():
    loop = {"a": 1}
    loop["self"] = loop
    assert isinstance(serialize_value(loop), str)


def test_serialize_is_idempotent_on_strings():
    for s in ["", "abc", "a, b", "x" * (EXCEL_MAX_LEN + 10)]:
        once = serialize_value(s)
        assert serialize_value(once) == once


def test_clip_boundary():
    exact = "x" * EXCEL_MAX_LEN
    assert clip_text(exact) == exact

    over = "x" * (EXCEL_MAX_LEN + 1)
    clipped = clip_text(over)
    assert clipped.endswith(TRUNCATION_MARKER)
    assert len(clipped) <= EXCEL_MAX_LEN


def test_long_lists_are_clipped():
    out = serialize_value(["y" * 20000, "z" * 20000])
    assert len(out) <= EXCEL_MAX_LEN
    assert out.endswith(TRUNCATION_MARKER)


# -------------------------------------------------
# raw flattening
# -------------------------------------------------

def test_flat_object():
    assert _raw({"q1": "Ann"}) == {"q1": "Ann"}


def test_primitive_array_is_one_cell():
    assert _raw({"choices": ["a", "b", "c"]}) == {"choices": "a, b, c"}


def test_object_array_is_indexed_from_one():
    assert _raw({"panel": [{"x": 1}, {"x": 2}]}) == {"panel[1] - x": "1", "panel[2] - x": "2"}


def test_mixed_array_indexes_every_element():
    assert _raw({"m": ["a", {"b": 1}]}) == {"m[1]": "a", "m[2] - b": "1"}


def test_nested_objects_join_with_separator():
    data = {"matrix": {"row1": {"col1": "v"}}, "agree": False}
    assert _raw(data) == {"matrix - row1 - col1": "v", "agree": "No"}


def test_nothing_from_empty_and_null():
    assert _raw({"a": None, "b": [], "c": {}}) == {}
    assert _raw(None) == {}


def test_bare_scalar_root_contributes_nothing():
    assert _raw("just text") == {}
    assert _raw(42) == {}


def test_null_inside_primitive_array_serializes_empty():
    assert _raw({"a": ["x", None]}) == {"a": "x, "}


# -------------------------------------------------
# plain items
# -------------------------------------------------

def test_flatten_plain_items_uses_display_value():
    items = [
        PlainItem(name="q1", value="r", display_value="Red"),
        PlainItem(
            name="matrix",
            children=[PlainItem(name="row1", value=1, display_value=None)],
        ),
        PlainItem(name="", children=[PlainItem(name="kids[1]", children=[PlainItem(name="age", value=4)])]),
    ]
    assert flatten_plain_items(items, {}) == {
        "q1": "Red",
        "matrix - row1": "1",
        "kids[1] - age": "4",
    }


# -------------------------------------------------
# strategies
# -------------------------------------------------

@pytest.fixture
def full_answer():
    return ResponseRecord(
        response_id="r1",
        data={
            "q1": "Ann",
            "colors": ["r", "blue"],
            "kids": [{"age": 3}, {"age": 7}],
            "agree": True,
            "quality": {"service": 5, "food": 1},
            "calculated": "hidden",
            "empty": "",
        },
    )


def test_model_flattener_renders_choice_texts(feedback_survey, full_answer):
    roots = normalize(feedback_survey)
    flat = ModelFlattener().flatten(full_answer, roots)
    assert flat == {
        "q1": "Ann",
        "colors": "Red, blue",
        "kids[1] - age": "3",
        "kids[2] - age": "7",
        "agree": "Yes",
        "quality - food": "Poor",
        "quality - service": "Great",
    }


def test_model_and_raw_paths_are_compatible(feedback_survey, full_answer):
    roots = normalize(feedback_survey)
    model_paths = set(ModelFlattener().flatten(full_answer, roots))
    raw_paths = set(RawFlattener().flatten(full_answer, roots))
    assert model_paths <= raw_paths
    assert raw_paths - model_paths == {"calculated", "empty"}


def test_model_flattener_refuses_without_questions():
    with pytest.raises(ValueError):
        ModelFlattener().flatten(ResponseRecord("r", {"a": 1}), ())


def test_model_flattener_refuses_non_object_data(feedback_survey):
    with pytest.raises(ValueError):
        ModelFlattener().flatten(ResponseRecord("r", ["a"]), normalize(feedback_survey))


def test_fallback_uses_raw_for_failing_response(caplog):
    flattener = FallbackFlattener(ModelFlattener(), RawFlattener())
    with caplog.at_level("WARNING"):
        flat = flattener.flatten(ResponseRecord("r9", {"a": {"b": 1}}), ())
    assert flat == {"a - b": "1"}
    assert "r9" in caplog.text


def test_raw_flattener_ignores_scalar_data():
    assert RawFlattener().flatten(ResponseRecord("r", "text")) == {}


def test_dynamic_panel_with_primitive_entries_is_kept(feedback_survey):
    roots = normalize(feedback_survey)
    record = ResponseRecord("r1", {"kids": ["a", "b"]})
    assert ModelFlattener().flatten(record, roots) == {"kids": "a, b"}
    assert RawFlattener().flatten(record, roots) == {"kids": "a, b"}
