"""Collect goal parameters from flags (batch mode) or the terminal."""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Sequence

import click

from az_toolkit.exceptions import InvalidInputError
from az_toolkit.functions.templates import SettingTemplate, get_resource

logger = logging.getLogger(__name__)

FOUND_VALID_VALUE = "Found valid value. Skip user input."
DEFAULT_INPUT_ERROR_MESSAGE = "Invalid input, please check and try again."
PROMPT_WITH_DEFAULT_VALUE = "Enter value for %s(Default: %s): "
PROMPT_WITHOUT_DEFAULT_VALUE = "Enter value for %s: "
INVALID_INDEX = "Invalid index."
MISSING_VALUE = "<missing>"

Validator = Callable[[str | None], bool]


def _click_reader(prompt: str) -> str:
    return click.prompt(prompt, default="", show_default=False, prompt_suffix="")


def not_empty(value: str | None) -> bool:
    return bool(value)


def regex_validator(regex: str | None) -> Validator:
    if regex is None:
        return not_empty
    pattern = re.compile(regex)
    return lambda value: bool(value) and pattern.fullmatch(value) is not None


def find_option(options: Sequence[str], value: str | None) -> str | None:
    """Case-insensitive match of *value* among *options*."""
    if value is None:
        return None
    for option in options:
        if option is not None and option.lower() == value.lower():
            return option
    return None


class InputCollector:
    """Validates supplied values and prompts for the rest.

    In batch mode nothing is read: an invalid required value raises
    :class:`InvalidInputError` and an invalid optional one becomes ``""``.
    """

    def __init__(
        self,
        batch_mode: bool = False,
        reader: Callable[[str], str] | None = None,
        writer: Callable[[str], None] | None = None,
    ) -> None:
        self.batch_mode = batch_mode
        self._read = reader or _click_reader
        self._echo = writer or click.echo

    def batch(self, value: str | None, validator: Validator, required: bool) -> str:
        if validator(value):
            logger.info(FOUND_VALID_VALUE)
            return value  # type: ignore[return-value]
        if required:
            raise InvalidInputError(f"invalid input: {value if value is not None else MISSING_VALUE}")
        self._echo("The input is invalid. Use empty string.")
        return ""

    def ask(self, prompt: str, value: str | None, validator: Validator, error_message: str) -> str:
        """Keep prompting until *validator* accepts the input."""
        if validator(value):
            logger.info(FOUND_VALID_VALUE)
            return value  # type: ignore[return-value]
        while True:
            entered = self._read(prompt)
            if validator(entered):
                return entered
            logger.warning(error_message)

    def ask_string(self, attribute: str, value: str | None, setting: SettingTemplate | None) -> str:
        """Prompt for a template setting; empty input accepts the default."""
        default = setting.default_value if setting else None
        validator = regex_validator(setting.setting_regex if setting else None)
        if validator(value):
            logger.info(FOUND_VALID_VALUE)
            return value  # type: ignore[return-value]
        if default and default.strip():
            prompt = PROMPT_WITH_DEFAULT_VALUE % (attribute, default)
        else:
            prompt = PROMPT_WITHOUT_DEFAULT_VALUE % attribute
        error_message = DEFAULT_INPUT_ERROR_MESSAGE
        if setting and setting.error_text:
            error_message = get_resource(setting.error_text)
        while True:
            entered = self._read(prompt)
            if validator(entered):
                return entered
            if default and not entered:
                return default
            logger.warning(error_message)

    def choose(self, prompt: str, value: str | None, options: Sequence[str]) -> str:
        """Numbered menu over *options*, indexed from 0."""
        found = find_option(options, value)
        if found is not None:
            logger.info(FOUND_VALID_VALUE)
            return found

        self._echo(f"Choose from below options as {prompt} ")
        for i, option in enumerate(options):
            self._echo(f"{i}. {option}")

        def _valid_index(entered: str | None) -> bool:
            try:
                return 0 <= int(entered or "") < len(options)
            except ValueError:
                return False

        index = self.ask("Enter index to use: ", None, _valid_index, INVALID_INDEX)
        return options[int(index)]
