"""Tests for the template-based project generator (appgen.generator.generator).

Covers:
- Generated tree layout (pom, main class, properties, placeholder test)
- POM content: coordinates, BOM import, BOM-managed vs explicit versions
- Request validation against the metadata catalogue
- Scratch directory handling and write failures
"""

from __future__ import annotations

import xml.etree.ElementTree as ET
from pathlib import Path
from unittest.mock import patch

import pytest

from appgen.generator import GeneratorError, TemplateProjectGenerator
from appgen.metadata import MetadataBuilder
from appgen.models import DependencyRef, GenerationRequest

pytestmark = pytest.mark.unit

NS = {"m": "http://maven.apache.org/POM/4.0.0"}


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def generator(tmp_path) -> TemplateProjectGenerator:
    return TemplateProjectGenerator(tmp_dir=tmp_path / "scratch")


@pytest.fixture
def request_for(app_factory, bom):
    def _make(key: str = "time-source", java_version: str | None = "1.8", **app_overrides):
        app = app_factory(key, **app_overrides)
        return GenerationRequest.for_app(app, bom.name, java_version)

    return _make


@pytest.fixture
def metadata_for(bom):
    def _make(request: GenerationRequest, with_bom: bool = True, java_version: str | None = "1.8"):
        builder = MetadataBuilder.with_defaults()
        if with_bom:
            builder.add_bom(bom.name, bom.group_id, bom.artifact_id, bom.version)
        return (
            builder.add_java_version(java_version)
            .add_dependency_group(request.artifact_id, request.dependencies)
            .build()
        )

    return _make


# ---------------------------------------------------------------------------
# Layout
# ---------------------------------------------------------------------------


class TestGeneratedLayout:
    def test_tree(self, generator, request_for, metadata_for):
        request = request_for()
        root = generator.generate(request, metadata_for(request))

        module = root / "time-source"
        pkg = Path("com", "example", "time", "source")
        assert sorted(p.name for p in root.iterdir()) == ["time-source"]
        assert (module / "pom.xml").is_file()
        assert (module / "src" / "main" / "java" / pkg / "TimeSourceApplication.java").is_file()
        assert (module / "src" / "main" / "resources" / "application.properties").is_file()
        assert (module / "src" / "test" / "java" / pkg / "TimeSourceApplicationTests.java").is_file()

    def test_root_under_tmp_dir(self, generator, request_for, metadata_for, tmp_path):
        request = request_for()
        root = generator.generate(request, metadata_for(request))
        assert root.parent == tmp_path / "scratch"
        assert root.name.startswith("time-source-")

    def test_each_call_gets_fresh_root(self, generator, request_for, metadata_for):
        request = request_for()
        metadata = metadata_for(request)
        assert generator.generate(request, metadata) != generator.generate(request, metadata)

    def test_main_class(self, generator, request_for, metadata_for):
        request = request_for()
        root = generator.generate(request, metadata_for(request))
        source = next((root / "time-source" / "src" / "main" / "java").rglob("*.java"))
        text = source.read_text(encoding="utf-8")
        assert text.startswith("package com.example.time.source;")
        assert "public class TimeSourceApplication {" in text

    def test_application_properties(self, generator, request_for, metadata_for):
        request = request_for()
        root = generator.generate(request, metadata_for(request))
        props = root / "time-source" / "src" / "main" / "resources" / "application.properties"
        assert props.read_text(encoding="utf-8").strip() == "spring.application.name=time-source"


# ---------------------------------------------------------------------------
# POM content
# ---------------------------------------------------------------------------


class TestGeneratedPom:
    def _pom(self, root: Path, key: str = "time-source") -> ET.Element:
        return ET.parse(root / key / "pom.xml").getroot()

    def test_coordinates(self, generator, request_for, metadata_for):
        request = request_for()
        pom = self._pom(generator.generate(request, metadata_for(request)))
        assert pom.findtext("m:groupId", namespaces=NS) == "com.example"
        assert pom.findtext("m:artifactId", namespaces=NS) == "time-source"
        assert pom.findtext("m:packaging", namespaces=NS) == "jar"
        assert pom.findtext("m:properties/m:java.version", namespaces=NS) == "1.8"
        assert pom.findtext("m:parent/m:version", namespaces=NS) == "1.3.5.RELEASE"

    def test_bom_import_and_managed_dependency(self, generator, request_for, metadata_for, bom):
        request = request_for()
        pom = self._pom(generator.generate(request, metadata_for(request)))

        imports = pom.findall("m:dependencyManagement/m:dependencies/m:dependency", NS)
        assert len(imports) == 1
        assert imports[0].findtext("m:artifactId", namespaces=NS) == bom.artifact_id
        assert imports[0].findtext("m:version", namespaces=NS) == bom.version
        assert imports[0].findtext("m:scope", namespaces=NS) == "import"

        deps = pom.findall("m:dependencies/m:dependency", NS)
        starter = [d for d in deps if d.findtext("m:artifactId", namespaces=NS) == "spring-cloud-starter-stream-time-source"]
        assert len(starter) == 1
        assert starter[0].find("m:version", NS) is None

    def test_explicit_version_without_bom(self, generator, app_factory, metadata_for):
        app = app_factory(
            "time-source",
            dependencies=(DependencyRef(artifact_id="lib", group_id="g", version="2.1"),),
        )
        request = GenerationRequest.for_app(app, None, "1.8")
        pom = self._pom(generator.generate(request, metadata_for(request, with_bom=False)))

        assert pom.find("m:dependencyManagement", NS) is None
        lib = [d for d in pom.findall("m:dependencies/m:dependency", NS) if d.findtext("m:artifactId", namespaces=NS) == "lib"]
        assert lib[0].findtext("m:version", namespaces=NS) == "2.1"

    def test_java_version_defaults_to_metadata(self, generator, request_for, metadata_for):
        request = request_for(java_version=None)
        root = generator.generate(request, metadata_for(request, java_version="17"))
        assert self._pom(root).findtext("m:properties/m:java.version", namespaces=NS) == "17"


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class TestValidation:
    def test_unknown_dependency(self, generator, request_for):
        request = request_for()
        metadata = MetadataBuilder.with_defaults().build()
        with pytest.raises(GeneratorError, match="unknown dependency"):
            generator.generate(request, metadata)

    def test_unknown_bom(self, generator, request_for, metadata_for):
        request = request_for()
        with pytest.raises(GeneratorError, match="unknown BOM"):
            generator.generate(request, metadata_for(request, with_bom=False))

    def test_neither_version_nor_bom(self, generator, request_for, metadata_for):
        app_request = request_for()
        request = app_request.model_copy(
            update={"dependencies": tuple(d.model_copy(update={"bom": None}) for d in app_request.dependencies)}
        )
        with pytest.raises(GeneratorError, match="neither a version nor a BOM"):
            generator.generate(request, metadata_for(request))

    def test_unsupported_java_version(self, generator, request_for, metadata_for):
        request = request_for(java_version="9")
        with pytest.raises(GeneratorError, match="unsupported Java version"):
            generator.generate(request, metadata_for(request))

    def test_unsafe_base_dir(self, generator, request_for, metadata_for):
        request = request_for().model_copy(update={"base_dir": "../escape"})
        with pytest.raises(GeneratorError, match="unsafe base directory"):
            generator.generate(request, metadata_for(request))

    def test_validation_failure_writes_nothing(self, generator, request_for, tmp_path):
        with pytest.raises(GeneratorError):
            generator.generate(request_for(), MetadataBuilder.with_defaults().build())
        assert not (tmp_path / "scratch").exists()

    def test_error_carries_artifact_id(self, generator, request_for):
        with pytest.raises(GeneratorError) as exc_info:
            generator.generate(request_for(), MetadataBuilder.with_defaults().build())
        assert exc_info.value.artifact_id == "time-source"


# ---------------------------------------------------------------------------
# Failures while writing
# ---------------------------------------------------------------------------


class TestWriteFailures:
    def test_write_failure_removes_scratch_root(self, generator, request_for, metadata_for, tmp_path):
        request = request_for()
        with patch.object(generator.renderer, "render_to_file", side_effect=OSError("disk full")):
            with pytest.raises(GeneratorError, match="cannot write project files"):
                generator.generate(request, metadata_for(request))
        assert list((tmp_path / "scratch").iterdir()) == []

    def test_scratch_dir_failure(self, tmp_path, request_for, metadata_for):
        blocker = tmp_path / "blocker"
        blocker.write_text("file", encoding="utf-8")
        generator = TemplateProjectGenerator(tmp_dir=blocker / "scratch")
        request = request_for()
        with pytest.raises(GeneratorError, match="cannot create scratch directory"):
            generator.generate(request, metadata_for(request))
