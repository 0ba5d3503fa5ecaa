"""``function.json`` model."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from az_toolkit.exceptions import AzureExecutionError
from az_toolkit.functions.bindings import BindingEnum


class Binding(BaseModel):
    """One binding entry; annotation attributes are kept as extra fields."""

    model_config = ConfigDict(extra="allow")

    type: str
    direction: str
    name: str | None = None

    @property
    def is_trigger(self) -> bool:
        return self.type.lower().endswith("trigger")

    @property
    def binding_enum(self) -> BindingEnum | None:
        return BindingEnum.from_type(self.type, self.direction)

    @property
    def attributes(self) -> dict[str, Any]:
        return dict(self.model_extra or {})


class Retry(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    strategy: str
    max_retry_count: int | None = Field(default=None, alias="maxRetryCount")
    delay_interval: str | None = Field(default=None, alias="delayInterval")
    minimum_interval: str | None = Field(default=None, alias="minimumInterval")
    maximum_interval: str | None = Field(default=None, alias="maximumInterval")


class FunctionConfiguration(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    script_file: str | None = Field(default=None, alias="scriptFile")
    entry_point: str | None = Field(default=None, alias="entryPoint")
    bindings: list[Binding] = Field(default_factory=list)
    retry: Retry | None = None

    def ensure_valid(self) -> None:
        """Raise :class:`AzureExecutionError` if the configuration cannot run."""
        if not self.entry_point:
            raise AzureExecutionError("Azure Functions entry point is missing.")
        if not self.bindings:
            raise AzureExecutionError(f"Required bindings are missing for {self.entry_point}.")
        triggers = [b for b in self.bindings if b.is_trigger]
        if not triggers:
            raise AzureExecutionError(f"Missing required trigger binding on {self.entry_point}.")
        if len(triggers) > 1:
            raise AzureExecutionError(
                "Only one trigger is allowed for each Azure Function. "
                f"Multiple triggers found on method: {self.entry_point}"
            )
        for binding in self.bindings:
            if not binding.name:
                raise AzureExecutionError(
                    f"Binding name is missing for binding of type '{binding.type}' on {self.entry_point}."
                )

    def to_json(self) -> str:
        data = self.model_dump(by_alias=True, exclude_none=True)
        return json.dumps(data, indent=2) + "\n"

    def write(self, path: Path) -> None:
        """Write pretty-printed JSON using the platform's line endings."""
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("w", encoding="utf-8") as f:
            f.write(self.to_json())
