"""appgen configuration.

Centralised, typed configuration for a batch run. All settings use Pydantic v2
models so they can be validated at construction time and loaded from a YAML
or JSON catalogue file without boiler-plate. Keys may be written either in
snake_case or in the camelCase used by Maven plugin configuration
(``generatedApps``, ``groupId``, ``packageName``, ``generatedProjectHome``,
``javaVersion``).
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Literal, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from appgen.merge import DEFAULT_PLACEHOLDER_TEST_PATTERNS
from appgen.models import AppDescriptor


class BomConfig(BaseModel):
    """The bill of materials every generated app is pinned against."""
    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(..., min_length=1)
    group_id: str = Field(..., alias="groupId", min_length=1)
    artifact_id: str = Field(..., alias="artifactId", min_length=1)
    version: str = Field(..., min_length=1)


class Config(BaseModel):
    """Global appgen configuration.

    Holds the catalogue of apps to generate plus every shared setting of the
    run. Instances are typically created once by the CLI entry point and then
    passed to ``BatchPipeline``.
    """
    model_config = ConfigDict(populate_by_name=True)

    apps: dict[str, AppDescriptor] = Field(default_factory=dict, alias="generatedApps")
    bom: BomConfig
    java_version: str = Field(default="1.8", alias="javaVersion")
    generated_project_home: Optional[Path] = Field(
        default=None,
        alias="generatedProjectHome",
        description="Container directory for every app; wins over per-app overrides",
    )
    tmp_dir: Optional[Path] = Field(
        default=None, alias="tmpDir", description="Scratch directory for the generator"
    )
    descriptor_format: Literal["xml", "json"] = Field(default="xml", alias="descriptorFormat")
    placeholder_test_patterns: list[str] = Field(
        default_factory=lambda: list(DEFAULT_PLACEHOLDER_TEST_PATTERNS),
        alias="placeholderTestPatterns",
    )

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    @model_validator(mode="before")
    @classmethod
    def _inject_app_keys(cls, data: Any) -> Any:
        """Fill each app's ``key`` from its catalogue mapping key."""
        if not isinstance(data, dict):
            return data
        field_name = "generatedApps" if "generatedApps" in data else "apps"
        apps = data.get(field_name)
        if not isinstance(apps, dict):
            return data

        injected: dict[str, Any] = {}
        for key, value in apps.items():
            if isinstance(value, dict):
                declared = value.get("key", key)
                if declared != key:
                    raise ValueError(f"app {key!r} declares a different key {declared!r}")
                value = {**value, "key": key}
            elif value is None:
                raise ValueError(f"app {key!r} has no settings")
            injected[key] = value
        return {**data, field_name: injected}

    @field_validator("generated_project_home", "tmp_dir", mode="before")
    @classmethod
    def _blank_path_is_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    # ------------------------------------------------------------------
    # Derived values
    # ------------------------------------------------------------------

    def destination_for(self, app: AppDescriptor) -> Optional[Path]:
        """Effective container directory for *app*: global, then per-app, then none."""
        return self.generated_project_home or app.destination_override

    # ------------------------------------------------------------------
    # Serialisation helpers
    # ------------------------------------------------------------------

    def save(self, path: Path) -> Path:
        """Persist the configuration to a JSON file.

        Returns:
            The path where the file was written.
        """
        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(
            self.model_dump_json(indent=2, by_alias=True, exclude_none=True), encoding="utf-8"
        )
        return target

    @classmethod
    def load(cls, path: str | Path) -> "Config":
        """Load a catalogue file (``.yml``/``.yaml`` or ``.json``).

        Raises:
            FileNotFoundError: If *path* does not exist.
            yaml.YAMLError / json.JSONDecodeError: If the file cannot be parsed.
            pydantic.ValidationError: If the content is not a valid configuration.
        """
        path = Path(path)
        raw = path.read_text(encoding="utf-8")
        if path.suffix.lower() in (".yml", ".yaml"):
            data = yaml.safe_load(raw)
        else:
            data = json.loads(raw)
        if not isinstance(data, dict):
            raise ValueError(f"{path}: expected a mapping at the top level")
        return cls.model_validate(data)

    def with_env_overrides(self) -> "Config":
        """Return a copy with environment variable overrides applied.

        Recognised variables (all optional):
            APPGEN_GENERATED_PROJECT_HOME, APPGEN_JAVA_VERSION,
            APPGEN_TMP_DIR, APPGEN_DESCRIPTOR_FORMAT.
        """
        update: dict[str, Any] = {}
        if os.environ.get("APPGEN_GENERATED_PROJECT_HOME"):
            update["generated_project_home"] = Path(os.environ["APPGEN_GENERATED_PROJECT_HOME"])
        if os.environ.get("APPGEN_JAVA_VERSION"):
            update["java_version"] = os.environ["APPGEN_JAVA_VERSION"]
        if os.environ.get("APPGEN_TMP_DIR"):
            update["tmp_dir"] = Path(os.environ["APPGEN_TMP_DIR"])
        if os.environ.get("APPGEN_DESCRIPTOR_FORMAT"):
            update["descriptor_format"] = os.environ["APPGEN_DESCRIPTOR_FORMAT"]
        if not update:
            return self
        return type(self).model_validate({**self.model_dump(), **update})
