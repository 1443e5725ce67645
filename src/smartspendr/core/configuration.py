import os
from dataclasses import dataclass
from typing import Any, Literal

from smartspendr.core import settings
from smartspendr.logger import get_logger

ValueType = Literal["string", "int"]

logger = get_logger(__name__)


@dataclass(frozen=True)
class ConfigField:
    key: str
    label: str
    description: str
    placeholder: str
    category: str
    value_type: ValueType = "string"
    sensitive: bool = False
    options: tuple[str, ...] | None = None
    min_value: int | None = None
    restart_required: bool = False


CONFIG_FIELDS: tuple[ConfigField, ...] = (
    ConfigField(
        key="STORE_URL",
        label="Document Store URL",
        description="Base URL of the remote expense store. Empty keeps expenses in DATA_DIR.",
        placeholder="https://store.example.com/v1",
        category="Storage",
        restart_required=True,
    ),
    ConfigField(
        key="STORE_TOKEN",
        label="Document Store Token",
        description="Bearer token sent to the document store.",
        placeholder="ey...",
        category="Storage",
        sensitive=True,
    ),
    ConfigField(
        key="EXPENSE_LIMIT",
        label="Expense Fetch Limit",
        description="Most recent expenses loaded per refresh.",
        placeholder="50",
        category="Storage",
        value_type="int",
        min_value=1,
    ),
    ConfigField(
        key="OPENAI_API_KEY",
        label="Advice API Key",
        description="Key for the OpenAI-compatible advice endpoint. Empty uses canned advice.",
        placeholder="sk-...",
        category="Advice",
        sensitive=True,
    ),
    ConfigField(
        key="OPENAI_MODEL",
        label="Advice Model",
        description="Model name for the advice endpoint.",
        placeholder="gpt-3.5-turbo",
        category="Advice",
    ),
    ConfigField(
        key="OPENAI_BASE_URL",
        label="Advice Base URL",
        description="Override the base URL for OpenAI-compatible providers.",
        placeholder="https://generativelanguage.googleapis.com/v1beta/openai/",
        category="Advice",
    ),
    ConfigField(
        key="DEFAULT_CURRENCY",
        label="Currency",
        description="Currency symbol used when formatting amounts.",
        placeholder="USD",
        category="Display",
        options=("USD", "EUR", "GBP", "JPY", "INR", "CAD", "AUD"),
    ),
    ConfigField(
        key="CACHE_VERSION",
        label="Cache Version",
        description="Offline cache generation. Changing it evicts the previous cache.",
        placeholder="v1",
        category="Offline",
        restart_required=True,
    ),
    ConfigField(
        key="LOG_LEVEL",
        label="Log Level",
        description="Logging verbosity for the application.",
        placeholder="INFO",
        category="Logging",
        options=("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"),
        restart_required=True,
    ),
)

CONFIG_TEMPLATE = """# SmartSpendr configuration
# These settings only take effect when the same environment variable is not set.
# Remove the leading "#" to enable a setting here.

# Remote document store (empty keeps expenses in DATA_DIR/expenses.json)
# STORE_URL:
# STORE_TOKEN:
# EXPENSE_LIMIT:

# OpenAI-compatible advice endpoint (optional)
# OPENAI_API_KEY:
# OPENAI_MODEL:
# OPENAI_BASE_URL:

# Display currency (USD, EUR, GBP, JPY, INR, CAD, AUD)
# DEFAULT_CURRENCY:

# Offline cache generation
# CACHE_VERSION:

# Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
# LOG_LEVEL:
"""


def get_config_path() -> str:
    config_path = settings.get_config_path()
    if config_path:
        return config_path
    return os.path.join(os.getcwd(), "config", settings.CONFIG_FILENAME)


def build_config_context(
    *,
    field_errors: dict[str, str] | None = None,
) -> dict[str, object]:
    config_path = get_config_path()
    config_values = settings.read_config_file(config_path)
    sections: dict[str, list[dict[str, object]]] = {}
    env_override_count = 0

    for field in CONFIG_FIELDS:
        env_override = settings.is_env_override(field.key)
        if env_override:
            env_override_count += 1
            value = "" if field.sensitive else os.getenv(field.key, "")
        else:
            value = config_values.get(field.key, "")
        if field.sensitive and value:
            value = settings.mask_env_value(field.key, value)

        sections.setdefault(field.category, []).append(
            {
                "key": field.key,
                "label": field.label,
                "description": field.description,
                "placeholder": "Set via environment variable" if env_override else field.placeholder,
                "value": value,
                "options": field.options,
                "env_override": env_override,
                "sensitive": field.sensitive,
                "restart_required": field.restart_required,
                "error": (field_errors or {}).get(field.key),
            }
        )

    return {
        "config_path": config_path,
        "sections": [{"name": name, "fields": fields} for name, fields in sections.items()],
        "env_override_count": env_override_count,
    }


def _validate_value(field: ConfigField, raw_value: str) -> tuple[str, str | None]:
    value = raw_value.strip()
    if not value:
        return "", None

    if "\n" in value or "\r" in value:
        return value, "Value must be a single line."

    if field.options:
        normalized = value.upper()
        if normalized not in field.options:
            return value, f"Must be one of: {', '.join(field.options)}."
        return normalized, None

    if field.value_type == "int":
        try:
            parsed = int(value)
        except ValueError:
            return value, "Must be a whole number."
        if field.min_value is not None and parsed < field.min_value:
            return value, f"Must be at least {field.min_value}."
        return str(parsed), None

    return value, None


def apply_config_updates(form_values: dict[str, str]) -> tuple[dict[str, str], dict[str, str]]:
    errors: dict[str, str] = {}
    updates: dict[str, str] = {}

    for field in CONFIG_FIELDS:
        if settings.is_env_override(field.key):
            continue
        raw_value = form_values.get(field.key)
        if raw_value is None:
            continue
        cleaned, error = _validate_value(field, raw_value)
        if error:
            errors[field.key] = error
            continue
        updates[field.key] = cleaned

    if errors:
        return errors, {}

    _write_config_file(updates)
    _apply_runtime_overrides(updates)
    return {}, updates


def _write_config_file(updates: dict[str, str]) -> None:
    config_path = get_config_path()
    config_dir = os.path.dirname(config_path)
    if config_dir:
        os.makedirs(config_dir, exist_ok=True)

    if os.path.exists(config_path):
        with open(config_path, encoding="utf-8") as handle:
            lines = handle.read().splitlines()
    else:
        lines = CONFIG_TEMPLATE.splitlines()

    key_indexes: dict[str, int] = {}
    for index, line in enumerate(lines):
        candidate = line.strip().lstrip("#").lstrip()
        if ":" not in candidate:
            continue
        key = candidate.split(":", 1)[0].strip()
        if key in updates and key not in key_indexes:
            key_indexes[key] = index

    for key, value in updates.items():
        new_line = f"{key}: {_format_yaml_value(value)}" if value else f"# {key}:"
        if key in key_indexes:
            lines[key_indexes[key]] = new_line
        else:
            lines.append(new_line)

    with open(config_path, "w", encoding="utf-8") as handle:
        handle.write("\n".join(lines).rstrip("\n") + "\n")


def _apply_runtime_overrides(updates: dict[str, str]) -> None:
    for key, value in updates.items():
        if value:
            os.environ[key] = value
        else:
            os.environ.pop(key, None)


def apply_runtime_updates(app: Any, updates: dict[str, str]) -> None:
    state = getattr(app, "state", None)
    if not updates or state is None:
        return

    if {"STORE_URL", "STORE_TOKEN"} & updates.keys():
        _refresh_store(getattr(state, "store", None))

    if {"OPENAI_API_KEY", "OPENAI_MODEL", "OPENAI_BASE_URL"} & updates.keys():
        _refresh_advice(getattr(state, "advice", None))

    if "DEFAULT_CURRENCY" in updates:
        _refresh_currency(getattr(state, "app_state", None), updates["DEFAULT_CURRENCY"])


def _refresh_store(store: Any) -> None:
    from smartspendr.integration.store import RestExpenseStore

    if not isinstance(store, RestExpenseStore):
        return
    store.refresh()
    logger.info("[CONFIG] Document store client refreshed.")


def _refresh_advice(client: Any) -> None:
    from smartspendr.integration.advice import AdviceClient

    if not isinstance(client, AdviceClient):
        return
    client.refresh()
    logger.info("[CONFIG] Advice client refreshed.")


def _refresh_currency(app_state: Any, currency: str) -> None:
    from smartspendr.state import AppState

    if not isinstance(app_state, AppState):
        return
    app_state.update_preferences(currency=currency or settings.DEFAULT_CURRENCY)
    logger.info("[CONFIG] Display currency set to %s.", currency or settings.DEFAULT_CURRENCY)


def _format_yaml_value(value: str) -> str:
    if not value:
        return ""
    needs_quotes = value[:1].isspace() or value[-1:].isspace()
    if any(marker in value for marker in (":", "#", '"', "'")):
        needs_quotes = True
    if not needs_quotes:
        return value
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f"\"{escaped}\""
