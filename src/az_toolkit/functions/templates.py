"""Function templates, binding templates and their display resources."""

from __future__ import annotations

import json
import logging
from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from az_toolkit.exceptions import AzureExecutionError

logger = logging.getLogger(__name__)

_RESOURCES_DIR = Path(__file__).resolve().parent / "resources"


class _Model(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class TemplateMetadata(_Model):
    name: str
    default_function_name: str | None = Field(default=None, alias="defaultFunctionName")
    description: str | None = None
    category: list[str] = Field(default_factory=list)
    user_prompt: list[str] = Field(default_factory=list, alias="userPrompt")


class FunctionTemplate(_Model):
    metadata: TemplateMetadata
    files: dict[str, str] = Field(default_factory=dict)
    function: dict[str, Any] = Field(default_factory=dict)
    supported_extension_versions: list[int] | None = Field(default=None, alias="supportedExtensionVersions")

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def binding_type(self) -> str | None:
        """Type of the template's first (trigger) binding."""
        bindings = self.function.get("bindings") or []
        return bindings[0].get("type") if bindings else None

    def supports(self, bundle_version: int | None) -> bool:
        if bundle_version is None or self.supported_extension_versions is None:
            return True
        return bundle_version in self.supported_extension_versions


class SettingTemplate(_Model):
    name: str
    value: str | None = None
    default_value: str | None = Field(default=None, alias="defaultValue")
    help: str | None = None
    setting_regex: str | None = Field(default=None, alias="settingRegex")
    error_text: str | None = Field(default=None, alias="errorText")
    enum: list[dict[str, Any]] | None = None


class BindingTemplate(_Model):
    type: str
    display_name: str | None = Field(default=None, alias="displayName")
    direction: str | None = None
    settings: list[SettingTemplate] = Field(default_factory=list)

    def get_setting(self, name: str) -> SettingTemplate | None:
        for setting in self.settings:
            if setting.name.lower() == name.lower():
                return setting
        return None


def _load_json(name: str) -> Any:
    path = _RESOURCES_DIR / name
    try:
        with path.open(encoding="utf-8") as f:
            return json.load(f)
    except (OSError, ValueError) as exc:
        raise AzureExecutionError(f"Failed to load {name}: {exc}") from exc


@lru_cache(maxsize=1)
def _function_templates() -> tuple[FunctionTemplate, ...]:
    data = _load_json("templates.json")
    return tuple(FunctionTemplate.model_validate(t) for t in data.get("templates", []))


@lru_cache(maxsize=1)
def _binding_templates() -> tuple[BindingTemplate, ...]:
    data = _load_json("bindings.json")
    return tuple(BindingTemplate.model_validate(b) for b in data.get("bindings", []))


@lru_cache(maxsize=1)
def _resources() -> dict[str, str]:
    return dict(_load_json("resources.json"))


def load_function_templates() -> list[FunctionTemplate]:
    templates = list(_function_templates())
    logger.debug("Loaded %d function templates", len(templates))
    return templates


def load_binding_template(binding_type: str | None) -> BindingTemplate | None:
    if not binding_type:
        return None
    for template in _binding_templates():
        if template.type.lower() == binding_type.lower():
            return template
    return None


def get_resource(key: str | None) -> str:
    """Resolve a ``$key`` display string; other text is returned as is."""
    if not key:
        return ""
    if key.startswith("$"):
        return _resources().get(key, key)
    return key


def substitute(text: str, params: dict[str, str]) -> str:
    """Replace every ``$name$`` token with its parameter value.

    Plain textual replacement in parameter order. A value that itself
    contains ``$other$`` may be replaced again by a later parameter, and
    tokens with no parameter are left untouched.
    """
    for key, value in params.items():
        text = text.replace(f"${key}$", value)
    return text
