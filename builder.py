"""
Form builder and public form renderer.

``FormBuilder`` keeps an ordered list of field edits and produces the full
payload sent to ``POST /api/forms`` or ``PUT /api/forms/{id}``; saving always
replaces the whole field list. ``render_form`` and ``collect_responses`` are the
public side: one HTML control per field, and the posted values turned back into
a field-id keyed submission.
"""
import uuid
from typing import Any, Dict, List, Mapping, Optional

from jinja2 import DictLoader, Environment, select_autoescape

from models.schemas import FIELD_TYPES, now_iso

_TEMPLATES = {
    "form.html": """<!doctype html>
<html>
<head><meta charset="utf-8"><title>{{ form.title }}</title></head>
<body>
<h1>{{ form.title }}</h1>
{% if form.description %}<p>{{ form.description }}</p>{% endif %}
{% if error %}<p class="error">{{ error }}</p>{% endif %}
<form method="post" action="{{ action }}">
{% for field in fields %}
<div class="field">
{% if field.type == "checkbox" %}
<label><input type="checkbox" name="{{ field.id }}" id="{{ field.id }}"{% if field.required %} required{% endif %}> {{ field.label }}</label>
{% else %}
<label for="{{ field.id }}">{{ field.label }}{% if field.required %} *{% endif %}</label>
{% if field.type == "textarea" %}
<textarea name="{{ field.id }}" id="{{ field.id }}"{% if field.required %} required{% endif %}></textarea>
{% elif field.type == "select" %}
<select name="{{ field.id }}" id="{{ field.id }}"{% if field.required %} required{% endif %}>
<option value=""></option>
{% for option in field.options or [] %}<option value="{{ option }}">{{ option }}</option>
{% endfor %}</select>
{% else %}
<input type="{{ field.type }}" name="{{ field.id }}" id="{{ field.id }}"{% if field.required %} required{% endif %}>
{% endif %}
{% endif %}
</div>
{% endfor %}
<button type="submit">Send</button>
</form>
</body>
</html>
""",
    "submitted.html": """<!doctype html>
<html>
<head><meta charset="utf-8"><title>{{ form.title }}</title></head>
<body>
<h1>{{ form.title }}</h1>
<p>Thank you, your response has been recorded.</p>
</body>
</html>
""",
}

_ENV = Environment(
    loader=DictLoader(_TEMPLATES),
    autoescape=select_autoescape(default=True),
    trim_blocks=True,
    lstrip_blocks=True,
)


def _get(obj, name, default=None):
    if isinstance(obj, Mapping):
        return obj.get(name, default)
    return getattr(obj, name, default)


def _field_dict(field) -> Dict[str, Any]:
    return {
        "id": _get(field, "id"),
        "type": _get(field, "type", "text"),
        "label": _get(field, "label", "") or "",
        "required": bool(_get(field, "required", False)),
        "options": list(_get(field, "options") or []) or None,
    }


def parse_options(value) -> Optional[List[str]]:
    """Accept a list or a comma separated string."""
    if value is None:
        return None
    if isinstance(value, str):
        return [option.strip() for option in value.split(",") if option.strip()]
    return list(value)


class FormBuilder:
    def __init__(self, form=None):
        self.title = _get(form, "title", "") if form is not None else ""
        self.description = _get(form, "description") if form is not None else None
        created_at = None
        if form is not None:
            created_at = _get(form, "created_at") or _get(form, "createdAt")
        self.created_at = created_at
        fields = _get(form, "fields", []) if form is not None else []
        self.fields = [_field_dict(field) for field in fields or []]

    def add_field(self, type: str = "text", label: str = "", required: bool = False, options=None):
        if type not in FIELD_TYPES:
            raise ValueError(f"unsupported field type '{type}'")
        field = {
            "id": str(uuid.uuid4()),
            "type": type,
            "label": label,
            "required": required,
            "options": parse_options(options),
        }
        self.fields.append(field)
        return field

    def remove_field(self, field_id: str) -> None:
        self.fields = [field for field in self.fields if field["id"] != field_id]

    def update_field(self, field_id: str, **changes):
        if "type" in changes and changes["type"] not in FIELD_TYPES:
            raise ValueError(f"unsupported field type '{changes['type']}'")
        if "options" in changes:
            changes["options"] = parse_options(changes["options"])
        changes.pop("id", None)
        for field in self.fields:
            if field["id"] == field_id:
                field.update(changes)
                return field
        return None

    def to_payload(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "description": self.description,
            "fields": [dict(field) for field in self.fields],
            "createdAt": self.created_at or now_iso(),
        }


def render_form(form, action: str = None, error: str = None) -> str:
    fields = [_field_dict(field) for field in _get(form, "fields", [])]
    if action is None:
        action = f"/f/{_get(form, 'id')}"
    return _ENV.get_template("form.html").render(form=form, fields=fields, action=action, error=error)


def render_submitted(form) -> str:
    return _ENV.get_template("submitted.html").render(form=form)


def collect_responses(form, values: Mapping[str, Any]) -> Dict[str, Any]:
    """Map each field id to its control value: bool for checkboxes, str otherwise."""
    data = {}
    for field in _get(form, "fields", []):
        field_id = _get(field, "id")
        raw = values.get(field_id)
        if _get(field, "type") == "checkbox":
            data[field_id] = raw is not None and str(raw).lower() not in ("", "false", "off", "0")
        else:
            data[field_id] = "" if raw is None else str(raw)
    return data
