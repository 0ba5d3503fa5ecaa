"""``add`` goal: create a new Java function from a template."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path

from az_toolkit.exceptions import AzureExecutionError, InvalidInputError
from az_toolkit.functions.prompt import InputCollector, find_option, not_empty
from az_toolkit.functions.templates import (
    BindingTemplate,
    FunctionTemplate,
    get_resource,
    load_binding_template,
    load_function_templates,
    substitute,
)

logger = logging.getLogger(__name__)

LOAD_TEMPLATES = "Step 1 of 4: Load all function templates"
LOAD_TEMPLATES_DONE = "Successfully loaded all function templates"
FIND_TEMPLATE = "Step 2 of 4: Select function template"
FIND_TEMPLATE_DONE = "Successfully found function template: "
FIND_TEMPLATE_FAIL = "Function template not found: "
PREPARE_PARAMS = "Step 3 of 4: Prepare required parameters"
SAVE_FILE = "Step 4 of 4: Saving function to file"
SAVE_FILE_DONE = "Successfully saved new function at "
FILE_EXIST = "Function already exists at %s. Please specify a different function name."
ADD_FAILED = "Cannot add new java functions."

FUNCTION_NAME_REGEXP = re.compile(r"^[a-zA-Z][a-zA-Z\d_\-]*$")
_JAVA_IDENTIFIER = re.compile(r"^[A-Za-z_$][\w$]*$")
_JAVA_KEYWORDS = frozenset(
    """abstract assert boolean break byte case catch char class const continue default do double
    else enum extends final finally float for goto if implements import instanceof int interface
    long native new package private protected public return short static strictfp super switch
    synchronized this throw throws transient try void volatile while true false null _""".split()
)

_PROMPT_OPTIONS = {
    "authlevel": ["ANONYMOUS", "FUNCTION", "ADMIN"],
    "createleasecollectionifnotexists": ["true", "false"],
    "createleasecontainerifnotexists": ["true", "false"],
    "protocol": ["NOTSET", "PLAINTEXT", "SSL", "SASLPLAINTEXT", "SASLSSL"],
    "authenticationmode": ["NOTSET", "GSSAPI", "PLAIN", "SCRAMSHA256", "SCRAMSHA512"],
}


def is_java_package_name(name: str | None) -> bool:
    if not name:
        return False
    return all(_JAVA_IDENTIFIER.match(part) and part not in _JAVA_KEYWORDS for part in name.split("."))


def is_function_name(name: str | None) -> bool:
    return bool(name) and FUNCTION_NAME_REGEXP.match(name) is not None  # type: ignore[arg-type]


def options_for_prompt(prompt_name: str) -> list[str] | None:
    return _PROMPT_OPTIONS.get(prompt_name.strip().lower())


def bundle_version(basedir: Path) -> int | None:
    """Major version of the project's extension bundle range (``[4.*, 5.0.0)`` -> 4)."""
    host_json = basedir / "host.json"
    if not host_json.is_file():
        return None
    try:
        data = json.loads(host_json.read_text(encoding="utf-8"))
    except ValueError:
        logger.warning("Failed to parse %s, extension bundle version ignored", host_json)
        return None
    version = ((data.get("extensionBundle") or {}).get("version")) or ""
    match = re.search(r"\d+", version)
    return int(match.group()) if match else None


@dataclass
class AddOptions:
    basedir: Path
    source_root: Path | None = None
    function_name: str | None = None
    package_name: str | None = None
    template: str | None = None
    batch_mode: bool = False
    # values for trigger specific prompts, keyed by prompt name
    properties: dict[str, str] = field(default_factory=dict)


class FunctionAdder:
    def __init__(self, options: AddOptions, collector: InputCollector | None = None) -> None:
        self.options = options
        self.collector = collector or InputCollector(batch_mode=options.batch_mode)
        self.function_name = options.function_name
        self.package_name = options.package_name
        self.template_name = options.template

    @property
    def batch_mode(self) -> bool:
        return self.collector.batch_mode

    @property
    def class_name(self) -> str:
        return (self.function_name or "").replace("-", "_")

    @property
    def source_root(self) -> Path:
        return self.options.source_root or self.options.basedir / "src" / "main" / "java"

    def run(self) -> Path:
        try:
            templates = self.load_templates(bundle_version(self.options.basedir))
            template = self.select_template(templates)
            binding_template = load_binding_template(template.binding_type)
            params = self.prepare_parameters(template, binding_template)
            content = substitute(template.files.get("function.java", ""), params)
            return self.save(content)
        except InvalidInputError as exc:
            raise InvalidInputError(f"{ADD_FAILED} {exc}") from exc
        except (AzureExecutionError, OSError) as exc:
            raise AzureExecutionError(f"{ADD_FAILED} {exc}") from exc

    # Step 1
    def load_templates(self, version: int | None) -> list[FunctionTemplate]:
        logger.info("")
        logger.info(LOAD_TEMPLATES)
        templates = [t for t in load_function_templates() if t.supports(version)]
        logger.info(LOAD_TEMPLATES_DONE)
        return templates

    # Step 2
    def select_template(self, templates: list[FunctionTemplate]) -> FunctionTemplate:
        logger.info("")
        logger.info(FIND_TEMPLATE)
        names = [t.name for t in templates]
        if self.batch_mode:
            self.template_name = self.collector.batch(
                self.template_name, lambda s: find_option(names, s) is not None, required=True
            )
        else:
            self.template_name = self.collector.choose("template for new function", self.template_name, names)
        return self.find_template(templates, self.template_name)

    def find_template(self, templates: list[FunctionTemplate], name: str) -> FunctionTemplate:
        logger.info("Selected function template: %s", name)
        for template in templates:
            if template.name.lower() == name.lower():
                logger.info(FIND_TEMPLATE_DONE + name)
                return template
        raise AzureExecutionError(FIND_TEMPLATE_FAIL + name)

    # Step 3
    def prepare_parameters(
        self, template: FunctionTemplate, binding_template: BindingTemplate | None
    ) -> dict[str, str]:
        logger.info("")
        logger.info(PREPARE_PARAMS)
        self.prepare_function_name()
        self.prepare_package_name()

        params = {
            "functionName": self.function_name or "",
            "className": self.class_name,
            "packageName": self.package_name or "",
        }
        self.prepare_template_parameters(template, binding_template, params)

        logger.info("")
        logger.info("Summary of parameters for function template:")
        for key, value in params.items():
            logger.info("%s: %s", key, value)
        return params

    def prepare_function_name(self) -> None:
        logger.info("Common parameter [Function Name]: name for both the new function and Java class")
        if self.batch_mode:
            name = self.collector.batch(self.function_name, is_function_name, required=True)
        else:
            name = self.collector.ask(
                "Enter value for Function Name: ",
                self.function_name,
                is_function_name,
                "Function name must start with a letter and can contain letters, digits, '_' and '-'",
            )
        self.function_name = name[:1].upper() + name[1:]

    def prepare_package_name(self) -> None:
        logger.info("Common parameter [Package Name]: package name of the new Java class")
        if self.batch_mode:
            name = self.collector.batch(self.package_name, is_java_package_name, required=True)
        else:
            name = self.collector.ask(
                "Enter value for Package Name: ",
                self.package_name,
                is_java_package_name,
                "Input should be a valid Java package name.",
            )
        self.package_name = name.lower()

    def prepare_template_parameters(
        self,
        template: FunctionTemplate,
        binding_template: BindingTemplate | None,
        params: dict[str, str],
    ) -> dict[str, str]:
        for prop in template.metadata.user_prompt:
            value = self.options.properties.get(prop)
            options = options_for_prompt(prop)
            setting = binding_template.get_setting(prop) if binding_template else None
            help_message = setting.help if setting and setting.help else ""
            logger.info("Trigger specific parameter [%s]:%s", prop, get_resource(help_message))
            if self.batch_mode:
                if options:
                    value = find_option(options, value) or options[0]
                params[prop] = self.collector.batch(value, not_empty, required=False)
            elif options is None:
                params[prop] = self.collector.ask_string(prop, value, setting)
            else:
                params[prop] = self.collector.choose(f"the value for {prop}: ", value, options)
        return params

    # Step 4
    def save(self, content: str) -> Path:
        logger.info("")
        logger.info(SAVE_FILE)
        package_dir = self.source_root.joinpath(*(self.package_name or "").split("."))
        target = package_dir / f"{self.class_name}.java"
        if target.exists():
            raise AzureExecutionError(FILE_EXIST % target.resolve())
        package_dir.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")
        logger.info(SAVE_FILE_DONE + str(target.resolve()))
        return target


def add_function(options: AddOptions, collector: InputCollector | None = None) -> Path:
    """Run the ``add`` goal and return the path of the new Java file."""
    return FunctionAdder(options, collector).run()
