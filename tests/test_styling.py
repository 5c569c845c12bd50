import pytest

from store_assistant.assistant.styling import (
    apply_relative_size,
    element_kind_for,
    normalize_size,
    relative_step,
    resolve_property,
    resolve_style,
)


def test_bigger_font_is_a_quarter_larger():
    resolution = resolve_style("font-size", "bigger", current_value="16px")

    assert resolution.property == "fontSize"
    assert resolution.value == "20px"
    assert resolution.source == "relative"


def test_relative_size_without_current_value_uses_baseline():
    resolution = resolve_style("font size", "much bigger")

    assert resolution.value == "24px"


def test_relative_size_is_worked_out_by_classifier_from_current_value(fake_completer):
    fake_completer.queue('{"value": "30px"}')

    resolution = resolve_style("font size", "much bigger", current_value="16px", completer=fake_completer)

    assert resolution.value == "30px"
    assert resolution.source == "classifier"
    assert len(fake_completer.prompts) == 1
    assert "currently 16px" in fake_completer.prompts[0]


def test_unparseable_classifier_size_falls_back_to_step_table(fake_completer):
    fake_completer.queue("no idea, sorry")

    resolution = resolve_style("font size", "a bit smaller", current_value="20px", completer=fake_completer)

    assert resolution.value == "18px"
    assert resolution.source == "relative"


def test_relative_size_asks_classifier_when_current_value_unknown(fake_completer):
    fake_completer.queue('{"value": "2rem"}')

    resolution = resolve_style("padding", "larger", completer=fake_completer)

    assert resolution.value == "2rem"
    assert resolution.source == "classifier"


def test_explicit_values_are_idempotent():
    first = resolve_style("font size", "18")
    second = resolve_style(first.property, first.value)

    assert first.value == "18px"
    assert second == first


@pytest.mark.parametrize(
    ("raw", "expected"),
    [("18", "18px"), ("1.5rem", "1.5rem"), ("0", "0"), ("12PX", "12px"), ("huge", None)],
)
def test_normalize_size(raw, expected):
    assert normalize_size(raw) == expected


def test_named_color_maps_to_hex():
    resolution = resolve_style("text color", "Navy")

    assert resolution.property == "color"
    assert resolution.value == "#1e3a8a"


def test_button_color_means_background():
    assert element_kind_for("add_to_cart_button") == "button"
    resolution = resolve_style("color", "red", "button")

    assert resolution.property == "backgroundColor"
    assert resolution.value == "#ef4444"


def test_color_classifier_result_is_validated(fake_completer):
    fake_completer.queue('{"hex": "#1E90FF", "name": "dodger blue"}')
    resolution = resolve_style("background", "ocean blue", completer=fake_completer)
    assert resolution.value == "#1e90ff"
    assert resolution.source == "classifier"

    fake_completer.queue('{"hex": "blue-ish", "name": "blue"}')
    fallback = resolve_style("background", "ocean blue", completer=fake_completer)
    assert fallback.value == "ocean blue"
    assert fallback.source == "raw"


def test_unknown_property_goes_through_classifier(fake_completer):
    fake_completer.queue('```json\n{"property": "box-shadow", "value": "0 2px 4px #0003"}\n```')

    resolution = resolve_style("shadow", "soft", completer=fake_completer)

    assert resolution.property == "boxShadow"
    assert resolution.value == "0 2px 4px #0003"


def test_unknown_property_without_classifier_is_not_applied():
    assert resolve_style("sparkle", "lots") is None


def test_resolve_property_aliases():
    assert resolve_property("Background Color") == "backgroundColor"
    assert resolve_property("rounded corners") == "borderRadius"
    assert resolve_property("color", "text") == "color"


def test_relative_step_sizes():
    assert relative_step("slightly bigger") == pytest.approx(0.10)
    assert relative_step("smaller") == pytest.approx(-0.25)
    assert relative_step("much larger") == pytest.approx(0.50)
    assert relative_step("blue") is None
    assert apply_relative_size("1.2rem", 0.25) == "1.5rem"
