"""``package`` goal: stage a Java Functions project for deployment.

Staging layout::

    <staging>/host.json
    <staging>/local.settings.json
    <staging>/<finalName>.jar
    <staging>/lib/*.jar
    <staging>/<FunctionName>/function.json
"""

from __future__ import annotations

import json
import logging
import os
import re
import shutil
import struct
import zipfile
from dataclasses import dataclass, field
from pathlib import Path

from az_toolkit.exceptions import AzureExecutionError
from az_toolkit.functions.annotations import find_functions, generate_configurations
from az_toolkit.functions.bindings import BINDINGS_WITHOUT_EXTENSION, BindingEnum
from az_toolkit.functions.configuration import FunctionConfiguration
from az_toolkit.functions.core_tools import install_extension

logger = logging.getLogger(__name__)

SEARCH_FUNCTIONS = "Step 1 of 8: Searching for Azure Functions entry points"
FOUND_FUNCTIONS = " Azure Functions entry point(s) found."
NO_FUNCTIONS = "Azure Functions entry point not found, plugin will exit."
GENERATE_CONFIG = "Step 2 of 8: Generating Azure Functions configurations"
GENERATE_SKIP = "No Azure Functions found. Skip configuration generation."
GENERATE_DONE = "Generation done."
VALIDATE_CONFIG = "Step 3 of 8: Validating generated configurations"
VALIDATE_SKIP = "No configurations found. Skip validation."
VALIDATE_DONE = "Validation done."
SAVING_HOST_JSON = "Step 4 of 8: Copying/creating host.json"
SAVING_LOCAL_SETTINGS_JSON = "Step 5 of 8: Copying/creating local.settings.json"
SAVE_FUNCTION_JSONS = "Step 6 of 8: Saving configurations to function.json"
SAVE_SKIP = "No configurations found. Skip save."
SAVE_FUNCTION_JSON = "Starting processing function: "
SAVE_SUCCESS = "Successfully saved to "
COPY_JARS = "Step 7 of 8: Copying JARs to staging directory "
COPY_SUCCESS = "Copied successfully."
INSTALL_EXTENSIONS = "Step 8 of 8: Installing function extensions if needed"
SKIP_INSTALL_EXTENSIONS_HTTP = "Skip install Function extension for HTTP Trigger Functions"
SKIP_INSTALL_EXTENSIONS_FLAG = "skipInstallExtensions flag is set, skip install extension"
SKIP_INSTALL_EXTENSIONS_BUNDLE = "Extension bundle specified, skip install extension"
INSTALL_EXTENSIONS_FINISH = "Function extension installation done."
BUILD_SUCCESS = "Successfully built Azure Functions."
CAN_NOT_FIND_ARTIFACT = "Cannot find the artifact jar, please build the project first."

HOST_JSON = "host.json"
LOCAL_SETTINGS_JSON = "local.settings.json"
FUNCTION_JSON = "function.json"
AZURE_FUNCTIONS_JAVA_LIBRARY = "azure-functions-java-library"
AZURE_FUNCTIONS_JAVA_CORE_LIBRARY = "azure-functions-java-core-library"
EXTENSION_BUNDLE_IDS = (
    "microsoft.azure.functions.extensionbundle",
    "microsoft.azure.functions.extensionbundle.preview",
)
DEFAULT_LOCAL_SETTINGS_JSON = '{ "IsEncrypted": false, "Values": { "FUNCTIONS_WORKER_RUNTIME": "java" } }'
DEFAULT_HOST_JSON = (
    '{"version":"2.0","extensionBundle":'
    '{"id":"Microsoft.Azure.Functions.ExtensionBundle","version":"[4.*, 5.0.0)"}}\n'
)

APP_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9][a-zA-Z0-9\-]{0,58}[a-zA-Z0-9]$")
EMPTY_APP_NAME = "Please config the app name."
INVALID_APP_NAME = (
    "The app name only allow alphanumeric characters, hyphens and cannot start or end in a hyphen."
)

_JAR_VERSION_SUFFIX = re.compile(r"-\d[\w.\-]*$")


def validate_app_name(app_name: str | None) -> None:
    if not app_name:
        raise AzureExecutionError(EMPTY_APP_NAME)
    if not APP_NAME_PATTERN.match(app_name):
        raise AzureExecutionError(INVALID_APP_NAME)


def artifact_id(jar: Path) -> str:
    """``azure-functions-java-library-3.0.0.jar`` -> ``azure-functions-java-library``."""
    return _JAR_VERSION_SUFFIX.sub("", jar.stem)


def artifact_compile_version(jar: Path) -> int | None:
    """Java release the first class in *jar* was compiled for."""
    with zipfile.ZipFile(jar) as archive:
        for entry in archive.namelist():
            if entry.endswith(".class"):
                header = archive.read(entry)[:8]
                if len(header) < 8 or header[:4] != b"\xca\xfe\xba\xbe":
                    return None
                (major,) = struct.unpack(">H", header[6:8])
                return major - 44
    return None


@dataclass
class PackageOptions:
    basedir: Path
    app_name: str
    final_name: str
    build_dir: Path | None = None
    staging_dir: Path | None = None
    source_roots: list[Path] = field(default_factory=list)
    artifact: Path | None = None
    dependencies: list[Path] = field(default_factory=list)
    host_json: Path | None = None
    local_settings_json: Path | None = None
    skip_install_extensions: bool = False

    def __post_init__(self) -> None:
        self.basedir = Path(self.basedir)
        self.build_dir = Path(self.build_dir) if self.build_dir else self.basedir / "target"
        if not self.staging_dir:
            self.staging_dir = self.build_dir / "azure-functions" / self.app_name
        if not self.source_roots:
            self.source_roots = [self.basedir / "src" / "main" / "java"]
        if not self.artifact:
            self.artifact = self.build_dir / f"{self.final_name}.jar"
        self.host_json = self.host_json or self.basedir / HOST_JSON
        self.local_settings_json = self.local_settings_json or self.basedir / LOCAL_SETTINGS_JSON


class FunctionPackager:
    def __init__(self, options: PackageOptions) -> None:
        self.options = options

    @property
    def staging_dir(self) -> Path:
        return self.options.staging_dir  # type: ignore[return-value]

    @property
    def script_file(self) -> str:
        return f"../{self.options.final_name}.jar"

    def run(self) -> Path | None:
        """Stage the project; ``None`` when no function was found."""
        validate_app_name(self.options.app_name)
        self.prompt_compile_info()

        methods = self.find_functions()
        if not methods:
            logger.info(NO_FUNCTIONS)
            return None

        configs = self.generate_configurations(methods)
        self.validate_configurations(configs)
        try:
            self.copy_host_json()
            self.copy_local_settings_json()
            self.write_function_json_files(configs)
            self.copy_jars()
        except OSError as exc:
            raise AzureExecutionError(f"Cannot perform IO operations due to error:{exc}") from exc

        self.install_extensions(self.binding_enums(configs))
        logger.info(BUILD_SUCCESS)
        return self.staging_dir

    def prompt_compile_info(self) -> None:
        logger.info("Java home : %s", os.environ.get("JAVA_HOME"))
        artifact = self.options.artifact
        if artifact is None or not artifact.is_file():
            return
        try:
            logger.info("Artifact compile version : %s", artifact_compile_version(artifact))
        except (OSError, zipfile.BadZipFile, struct.error) as exc:
            logger.debug("Failed to read the artifact compile version: %s", exc)

    # Step 1
    def find_functions(self) -> list:
        logger.info("")
        logger.info(SEARCH_FUNCTIONS)
        logger.debug("Source roots to scan: %s", self.options.source_roots)
        methods = find_functions(self.options.source_roots)
        logger.info("%d%s", len(methods), FOUND_FUNCTIONS)
        return methods

    # Step 2
    def generate_configurations(self, methods: list) -> dict[str, FunctionConfiguration]:
        logger.info("")
        logger.info(GENERATE_CONFIG)
        configs = generate_configurations(methods)
        if not configs:
            logger.info(GENERATE_SKIP)
            return configs
        for config in configs.values():
            config.script_file = self.script_file
        logger.info(GENERATE_DONE)
        return configs

    # Step 3
    def validate_configurations(self, configs: dict[str, FunctionConfiguration]) -> None:
        logger.info("")
        logger.info(VALIDATE_CONFIG)
        if not configs:
            logger.info(VALIDATE_SKIP)
            return
        for config in configs.values():
            config.ensure_valid()
        logger.info(VALIDATE_DONE)

    # Steps 4 and 5
    @staticmethod
    def _copy_or_default(source: Path | None, dest: Path, default_content: str) -> None:
        dest.parent.mkdir(parents=True, exist_ok=True)
        if source is not None and source.is_file():
            shutil.copyfile(source, dest)
        else:
            dest.write_text(default_content, encoding="utf-8")

    def copy_host_json(self) -> None:
        logger.info("")
        logger.info(SAVING_HOST_JSON)
        dest = self.staging_dir / HOST_JSON
        self._copy_or_default(self.options.host_json, dest, DEFAULT_HOST_JSON)
        logger.info(SAVE_SUCCESS + str(dest.resolve()))

    def copy_local_settings_json(self) -> None:
        logger.info("")
        logger.info(SAVING_LOCAL_SETTINGS_JSON)
        dest = self.staging_dir / LOCAL_SETTINGS_JSON
        self._copy_or_default(self.options.local_settings_json, dest, DEFAULT_LOCAL_SETTINGS_JSON)
        logger.info(SAVE_SUCCESS + str(dest.resolve()))

    # Step 6
    def write_function_json_files(self, configs: dict[str, FunctionConfiguration]) -> None:
        logger.info("")
        logger.info(SAVE_FUNCTION_JSONS)
        if not configs:
            logger.info(SAVE_SKIP)
            return
        for name, config in configs.items():
            logger.info(SAVE_FUNCTION_JSON + name)
            target = self.staging_dir / name / FUNCTION_JSON
            config.write(target)
            logger.info(SAVE_SUCCESS + str(target.resolve()))

    # Step 7
    def copy_jars(self) -> None:
        logger.info("")
        logger.info(COPY_JARS + str(self.staging_dir))
        lib = self.staging_dir / "lib"
        if lib.exists():
            shutil.rmtree(lib)
        lib.mkdir(parents=True)

        dependencies = list(self.options.dependencies)
        ids = {artifact_id(jar).lower() for jar in dependencies}
        excluded = (
            AZURE_FUNCTIONS_JAVA_CORE_LIBRARY
            if AZURE_FUNCTIONS_JAVA_CORE_LIBRARY in ids
            else AZURE_FUNCTIONS_JAVA_LIBRARY
        )
        for jar in dependencies:
            if artifact_id(jar).lower() != excluded:
                shutil.copy2(jar, lib)

        artifact = self.options.artifact
        if artifact is None or not artifact.is_file():
            raise AzureExecutionError(CAN_NOT_FIND_ARTIFACT)
        if artifact.resolve().parent != self.staging_dir.resolve():
            shutil.copy2(artifact, self.staging_dir)
        logger.info(COPY_SUCCESS)

    # Step 8
    @staticmethod
    def binding_enums(configs: dict[str, FunctionConfiguration]) -> set[BindingEnum | None]:
        return {binding.binding_enum for config in configs.values() for binding in config.bindings}

    def _staged_bundle_id(self) -> str | None:
        host_json = self.staging_dir / HOST_JSON
        if not host_json.is_file():
            return None
        try:
            data = json.loads(host_json.read_text(encoding="utf-8"))
        except ValueError:
            logger.warning("Failed to parse %s", host_json)
            return None
        bundle = data.get("extensionBundle") if isinstance(data, dict) else None
        return bundle.get("id") if isinstance(bundle, dict) else None

    def is_installing_extension_needed(self, binding_enums: set[BindingEnum | None]) -> bool:
        if self.options.skip_install_extensions:
            logger.info(SKIP_INSTALL_EXTENSIONS_FLAG)
            return False
        bundle_id = self._staged_bundle_id()
        if bundle_id and bundle_id.lower() in EXTENSION_BUNDLE_IDS:
            logger.info(SKIP_INSTALL_EXTENSIONS_BUNDLE)
            return False
        if all(b in BINDINGS_WITHOUT_EXTENSION for b in binding_enums):
            logger.info(SKIP_INSTALL_EXTENSIONS_HTTP)
            return False
        return True

    def install_extensions(self, binding_enums: set[BindingEnum | None]) -> None:
        logger.info(INSTALL_EXTENSIONS)
        if not self.is_installing_extension_needed(binding_enums):
            return
        install_extension(self.staging_dir, self.options.basedir)
        logger.info(INSTALL_EXTENSIONS_FINISH)


def collect_jars(dependencies: list[Path], dependency_dirs: list[Path]) -> list[Path]:
    """Explicit jars plus every ``*.jar`` directly inside *dependency_dirs*."""
    jars = [Path(d) for d in dependencies]
    for directory in dependency_dirs:
        jars.extend(sorted(Path(directory).glob("*.jar")))
    return jars


def package_functions(options: PackageOptions) -> Path | None:
    """Run the ``package`` goal; returns the staging directory."""
    return FunctionPackager(options).run()
