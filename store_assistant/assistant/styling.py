from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Optional

from store_assistant.assistant.json_extract import extract_first_json_value
from store_assistant.llm.client import TextCompleter


logger = logging.getLogger(__name__)

HEX_COLOR_RE = re.compile(r"^#[0-9a-fA-F]{6}$")
_SHORT_OR_LONG_HEX_RE = re.compile(r"^#(?:[0-9a-fA-F]{3}|[0-9a-fA-F]{4}|[0-9a-fA-F]{6}|[0-9a-fA-F]{8})$")
_FUNCTIONAL_COLOR_RE = re.compile(r"^(?:rgb|rgba|hsl|hsla)\(\s*[^)]*\)$", re.IGNORECASE)
_NUMBER_RE = re.compile(r"^-?\d+(?:\.\d+)?$")
_NUMBER_WITH_UNIT_RE = re.compile(r"^(-?\d+(?:\.\d+)?)(px|rem|em|%|vh|vw|pt)$", re.IGNORECASE)
_CSS_PROPERTY_RE = re.compile(r"^[a-z][a-zA-Z]*$")

PROPERTY_ALIASES: dict[str, str] = {
    "color": "color",
    "colour": "color",
    "text color": "color",
    "text colour": "color",
    "font color": "color",
    "background": "backgroundColor",
    "background color": "backgroundColor",
    "background colour": "backgroundColor",
    "bg": "backgroundColor",
    "bg color": "backgroundColor",
    "size": "fontSize",
    "font size": "fontSize",
    "text size": "fontSize",
    "font weight": "fontWeight",
    "weight": "fontWeight",
    "boldness": "fontWeight",
    "font": "fontFamily",
    "font family": "fontFamily",
    "typeface": "fontFamily",
    "alignment": "textAlign",
    "align": "textAlign",
    "text align": "textAlign",
    "corners": "borderRadius",
    "rounded corners": "borderRadius",
    "radius": "borderRadius",
    "border radius": "borderRadius",
    "border color": "borderColor",
    "border width": "borderWidth",
    "spacing": "letterSpacing",
    "letter spacing": "letterSpacing",
    "line height": "lineHeight",
    "padding": "padding",
    "margin": "margin",
    "width": "width",
    "height": "height",
    "opacity": "opacity",
    "transparency": "opacity",
    "gap": "gap",
    "border": "border",
    "text transform": "textTransform",
    "case": "textTransform",
    "decoration": "textDecoration",
    "text decoration": "textDecoration",
    "display": "display",
}

COLOR_PROPERTIES = {"color", "backgroundColor", "borderColor"}
SIZE_PROPERTIES = {
    "fontSize",
    "padding",
    "margin",
    "width",
    "height",
    "borderRadius",
    "borderWidth",
    "letterSpacing",
    "gap",
}
KNOWN_PROPERTIES = set(PROPERTY_ALIASES.values())

# Storefront theme palette; plain names map to the 500 shade.
NAMED_COLORS: dict[str, str] = {
    "black": "#000000",
    "white": "#ffffff",
    "red": "#ef4444",
    "dark red": "#b91c1c",
    "light red": "#fca5a5",
    "green": "#22c55e",
    "dark green": "#15803d",
    "light green": "#86efac",
    "lime": "#84cc16",
    "blue": "#3b82f6",
    "dark blue": "#1d4ed8",
    "light blue": "#93c5fd",
    "navy": "#1e3a8a",
    "sky blue": "#0ea5e9",
    "teal": "#14b8a6",
    "cyan": "#06b6d4",
    "yellow": "#eab308",
    "gold": "#f59e0b",
    "amber": "#f59e0b",
    "orange": "#f97316",
    "purple": "#a855f7",
    "violet": "#8b5cf6",
    "pink": "#ec4899",
    "hot pink": "#db2777",
    "magenta": "#d946ef",
    "fuchsia": "#d946ef",
    "rose": "#f43f5e",
    "brown": "#92400e",
    "beige": "#f5f5dc",
    "gray": "#6b7280",
    "grey": "#6b7280",
    "light gray": "#d1d5db",
    "light grey": "#d1d5db",
    "dark gray": "#374151",
    "dark grey": "#374151",
    "silver": "#c0c0c0",
    "maroon": "#7f1d1d",
    "olive": "#4d7c0f",
    "coral": "#fb7185",
    "salmon": "#fda4af",
    "turquoise": "#2dd4bf",
    "indigo": "#6366f1",
    "emerald": "#10b981",
}

_INCREASE_WORDS = ("bigger", "larger", "increase", "grow", "wider", "taller", "more")
_DECREASE_WORDS = ("smaller", "decrease", "shrink", "reduce", "narrower", "shorter", "less", "tinier")
_SMALL_STEP_WORDS = ("slightly", "a bit", "a little", "little", "bit", "tad", "somewhat")
_LARGE_STEP_WORDS = ("much", "a lot", "way", "lot", "significantly", "huge", "really", "very")

DEFAULT_SIZES = {"fontSize": "16px"}


@dataclass(frozen=True)
class StyleResolution:
    property: str
    value: str
    source: str = "direct"


def element_kind_for(slot_id: str) -> str:
    if slot_id.endswith("_button"):
        return "button"
    if slot_id.endswith(("_container", "_area", "_layout", "_section")):
        return "container"
    return "text"


def _camel_case(text: str) -> str:
    parts = [part for part in re.split(r"[\s_-]+", text.strip()) if part]
    if not parts:
        return ""
    head, *tail = parts
    return head[:1].lower() + head[1:] + "".join(part[:1].upper() + part[1:] for part in tail)


def resolve_property(raw_property: str, element_kind: Optional[str] = None) -> str:
    phrase = re.sub(r"[\s_-]+", " ", (raw_property or "").strip().lower())
    if element_kind == "button" and phrase in ("color", "colour"):
        return "backgroundColor"
    if phrase in PROPERTY_ALIASES:
        return PROPERTY_ALIASES[phrase]
    camel = _camel_case(raw_property or "")
    return camel


def _format_number(value: float) -> str:
    rounded = round(value, 1)
    if rounded == int(rounded):
        return str(int(rounded))
    return f"{rounded:g}"


def relative_step(raw_value: str) -> Optional[float]:
    """Signed multiplier delta for phrases like "a bit smaller" (-0.10) or "much bigger" (+0.50)."""
    phrase = raw_value.strip().lower()
    if any(word in phrase for word in _INCREASE_WORDS):
        sign = 1.0
    elif any(word in phrase for word in _DECREASE_WORDS):
        sign = -1.0
    else:
        return None
    if any(word in phrase for word in _SMALL_STEP_WORDS):
        return sign * 0.10
    if any(word in phrase for word in _LARGE_STEP_WORDS):
        return sign * 0.50
    return sign * 0.25


def apply_relative_size(current_value: str, step: float) -> Optional[str]:
    match = _NUMBER_WITH_UNIT_RE.match(current_value.strip())
    if match:
        number, unit = float(match.group(1)), match.group(2)
    elif _NUMBER_RE.match(current_value.strip()):
        number, unit = float(current_value), "px"
    else:
        return None
    return f"{_format_number(number * (1 + step))}{unit}"


def normalize_size(raw_value: str) -> Optional[str]:
    value = raw_value.strip()
    if _NUMBER_RE.match(value):
        return f"{_format_number(float(value))}px" if float(value) != 0 else "0"
    if _NUMBER_WITH_UNIT_RE.match(value):
        return value.lower()
    return None


def normalize_color(raw_value: str) -> Optional[str]:
    value = raw_value.strip()
    if _SHORT_OR_LONG_HEX_RE.match(value) or _FUNCTIONAL_COLOR_RE.match(value):
        return value
    named = NAMED_COLORS.get(re.sub(r"\s+", " ", value.lower()))
    if named:
        return named
    return None


def _classify_color(raw_value: str, completer: TextCompleter) -> Optional[str]:
    prompt = (
        f"Convert the color description \"{raw_value}\" to a CSS hex color.\n"
        'Reply with JSON only: {"hex": "#rrggbb", "name": "<short name>"}'
    )
    try:
        parsed = extract_first_json_value(completer.generate_text(prompt))
    except ValueError:
        logger.info("Color classifier returned no JSON", extra={"value": raw_value})
        return None
    hex_value = parsed.get("hex") if isinstance(parsed, dict) else None
    if isinstance(hex_value, str) and HEX_COLOR_RE.match(hex_value.strip()):
        return hex_value.strip().lower()
    logger.info("Color classifier returned an invalid hex", extra={"value": raw_value, "hex": hex_value})
    return None


def _classify_relative_size(
    prop: str, raw_value: str, current_value: Optional[str], completer: TextCompleter
) -> Optional[str]:
    prompt = (
        f"A CSS property {prop} is currently {current_value or 'unset'}. "
        f"The user asked to make it \"{raw_value}\". "
        'Reply with JSON only: {"value": "<css value with unit>"}'
    )
    try:
        parsed = extract_first_json_value(completer.generate_text(prompt))
    except ValueError:
        return None
    value = parsed.get("value") if isinstance(parsed, dict) else None
    if isinstance(value, str):
        return normalize_size(value)
    return None


def _classify_generic(raw_property: str, raw_value: str, completer: TextCompleter) -> Optional[StyleResolution]:
    prompt = (
        f"Translate this styling request into one inline CSS declaration: \"{raw_property}: {raw_value}\".\n"
        'Reply with JSON only: {"property": "<camelCase css property>", "value": "<css value>"}'
    )
    try:
        parsed = extract_first_json_value(completer.generate_text(prompt))
    except ValueError:
        return None
    if not isinstance(parsed, dict):
        return None
    prop = parsed.get("property")
    value = parsed.get("value")
    if not isinstance(prop, str) or not isinstance(value, str) or not value.strip():
        return None
    prop = _camel_case(prop)
    if not _CSS_PROPERTY_RE.match(prop):
        return None
    return StyleResolution(property=prop, value=value.strip(), source="classifier")


def resolve_style(
    raw_property: str,
    raw_value: str,
    element_kind: Optional[str] = None,
    *,
    current_value: Optional[str] = None,
    completer: Optional[TextCompleter] = None,
) -> Optional[StyleResolution]:
    """
    Turn a loose (property, value) request into one inline CSS declaration.

    Returns None only when nothing sensible can be derived; callers report that as "not applied".
    """
    raw_value = str(raw_value or "").strip()
    prop = resolve_property(raw_property, element_kind)
    if not prop or not raw_value:
        return None

    if prop in COLOR_PROPERTIES:
        color = normalize_color(raw_value)
        if color:
            return StyleResolution(property=prop, value=color, source="direct")
        if completer is not None:
            color = _classify_color(raw_value, completer)
            if color:
                return StyleResolution(property=prop, value=color, source="classifier")
        return StyleResolution(property=prop, value=raw_value, source="raw")

    if prop in SIZE_PROPERTIES:
        size = normalize_size(raw_value)
        if size:
            return StyleResolution(property=prop, value=size, source="direct")
        step = relative_step(raw_value)
        if step is not None:
            if completer is not None:
                resized = _classify_relative_size(
                    prop, raw_value, current_value or DEFAULT_SIZES.get(prop), completer
                )
                if resized:
                    return StyleResolution(property=prop, value=resized, source="classifier")
            for base in filter(None, (current_value, DEFAULT_SIZES.get(prop))):
                resized = apply_relative_size(base, step)
                if resized:
                    return StyleResolution(property=prop, value=resized, source="relative")
            return None
        return StyleResolution(property=prop, value=raw_value, source="direct")

    if prop in KNOWN_PROPERTIES:
        return StyleResolution(property=prop, value=raw_value, source="direct")

    if completer is not None:
        return _classify_generic(raw_property, raw_value, completer)
    return None
