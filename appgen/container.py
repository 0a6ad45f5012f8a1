"""Container descriptor store.

A container project is a multi-module project whose descriptor enumerates the
module directories it aggregates. This module loads (or synthesizes) that
descriptor, registers new modules in it, and writes it back.

The descriptor itself is format-agnostic: an ordered, duplicate-free list of
module names plus the container's coordinates. Reading and writing a concrete
document is delegated to a ``DescriptorFormat``:

* ``XmlDescriptorFormat`` -- a Maven ``pom.xml``. Existing documents are edited
  in place, so comments, unknown elements and formatting survive untouched.
* ``JsonDescriptorFormat`` -- a ``container.json`` document, also edited in
  place so unknown keys and layout survive.
"""

from __future__ import annotations

import json
import logging
import os
import re
import xml.etree.ElementTree as ET
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional
from xml.sax.saxutils import escape

from appgen.generator.templates import TemplateRenderer

logger = logging.getLogger(__name__)

DEFAULT_GROUP_ID = "org.springframework.cloud.stream.apps"
DEFAULT_VERSION = "1.0.0.BUILD-SNAPSHOT"


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class MalformedDescriptor(Exception):
    """Raised when an existing container descriptor cannot be understood."""

    def __init__(self, path: str | Path, message: str) -> None:
        self.path = Path(path)
        super().__init__(f"Malformed container descriptor {self.path}: {message}")


class ContainerError(Exception):
    """Raised when the container directory or its descriptor cannot be accessed."""

    def __init__(self, path: str | Path, message: str) -> None:
        self.path = Path(path)
        super().__init__(f"Container {self.path}: {message}")


# ---------------------------------------------------------------------------
# Descriptor model
# ---------------------------------------------------------------------------


@dataclass
class ContainerDescriptor:
    """In-memory container descriptor.

    ``source`` holds the document text the descriptor was parsed from, or
    ``None`` for a freshly synthesized descriptor. Serializers use it to make
    a minimal edit instead of regenerating the whole document.
    """

    group_id: str
    artifact_id: str
    version: str
    modules: list[str] = field(default_factory=list)
    source: Optional[str] = None
    _persisted_modules: tuple[str, ...] = field(default=(), init=False, repr=False)

    def __post_init__(self) -> None:
        self.modules = list(dict.fromkeys(self.modules))
        if self.source is not None:
            self._persisted_modules = tuple(self.modules)

    @property
    def is_new(self) -> bool:
        return self.source is None

    @property
    def pending_modules(self) -> list[str]:
        """Modules added since the descriptor was loaded or last persisted."""
        return [m for m in self.modules if m not in self._persisted_modules]

    def has_module(self, name: str) -> bool:
        return name in self.modules

    def add_module(self, name: str) -> bool:
        """Append *name* unless already present. Returns whether anything changed."""
        if self.has_module(name):
            return False
        self.modules.append(name)
        return True

    def mark_persisted(self, text: str) -> None:
        self.source = text
        self._persisted_modules = tuple(self.modules)


# ---------------------------------------------------------------------------
# Formats
# ---------------------------------------------------------------------------


class DescriptorFormat(ABC):
    """Reads and writes one concrete container document format."""

    filename: str = ""

    @abstractmethod
    def parse(self, text: str, path: Path) -> ContainerDescriptor:
        """Parse *text* (read from *path*) into a descriptor.

        Raises:
            MalformedDescriptor: If *text* is not a valid container document.
        """

    @abstractmethod
    def render(self, descriptor: ContainerDescriptor) -> str:
        """Serialize *descriptor*, preserving unrelated content of ``descriptor.source``."""


# -- XML (Maven POM) --------------------------------------------------------

# Regions whose contents must never be mistaken for markup.
_OPAQUE_RE = re.compile(
    r"<!--.*?-->|<!\[CDATA\[.*?\]\]>|<\?.*?\?>|<!DOCTYPE(?:[^\[>]|\[.*?\])*>",
    re.DOTALL,
)
_TAG_RE = re.compile(r"<(/?)([A-Za-z_][\w:.\-]*)([^>]*?)(/?)>")


def _mask_opaque(text: str) -> str:
    """Blank out comments, CDATA, PIs and DOCTYPE, keeping offsets intact."""
    return _OPAQUE_RE.sub(lambda m: re.sub(r"[^\n]", " ", m.group(0)), text)


def _local(tag: str) -> str:
    return tag.rsplit("}", 1)[-1].rsplit(":", 1)[-1]


def _prefix(tag: str) -> str:
    """``"p:"`` for ``"p:modules"``, ``""`` for an unprefixed tag."""
    return tag.rsplit(":", 1)[0] + ":" if ":" in tag else ""


@dataclass
class _Element:
    open: re.Match
    close: Optional[re.Match]


def _find_top_level(masked: str, local_name: str) -> Optional[_Element]:
    """Locate the first direct child of the root element called *local_name*."""
    depth = 0
    start: Optional[re.Match] = None
    for match in _TAG_RE.finditer(masked):
        closing, name, _, self_closing = match.groups()
        if closing:
            depth -= 1
            if depth == 1 and start is not None and _local(name) == local_name:
                return _Element(start, match)
            continue
        if depth == 1 and start is None and _local(name) == local_name:
            if self_closing:
                return _Element(match, None)
            start = match
        if not self_closing:
            depth += 1
    return None


def _line_indent(text: str, pos: int) -> str:
    """Whitespace between the start of the line and *pos*, or ``""`` if not blank."""
    line_start = text.rfind("\n", 0, pos) + 1
    prefix = text[line_start:pos]
    return prefix if not prefix.strip() else ""


def _rewind_whitespace(text: str, pos: int, floor: int) -> int:
    while pos > floor and text[pos - 1] in " \t\r\n":
        pos -= 1
    return pos


class XmlDescriptorFormat(DescriptorFormat):
    """Maven ``pom.xml`` container descriptor."""

    filename = "pom.xml"

    def __init__(self, renderer: TemplateRenderer | None = None) -> None:
        self.renderer = renderer or TemplateRenderer()

    # -- Parsing -----------------------------------------------------------

    def parse(self, text: str, path: Path) -> ContainerDescriptor:
        try:
            root = ET.fromstring(text.lstrip("\ufeff"))
        except (ET.ParseError, ValueError) as exc:
            raise MalformedDescriptor(path, f"not well-formed XML ({exc})") from exc

        if _local(root.tag) != "project":
            raise MalformedDescriptor(
                path, f"expected a <project> root element, found <{_local(root.tag)}>"
            )

        ns = root.tag[: root.tag.index("}") + 1] if root.tag.startswith("{") else ""

        def child_text(elem: ET.Element | None, name: str) -> str:
            if elem is None:
                return ""
            found = elem.find(f"{ns}{name}")
            return (found.text or "").strip() if found is not None else ""

        parent = root.find(f"{ns}parent")
        artifact_id = child_text(root, "artifactId")
        if not artifact_id:
            raise MalformedDescriptor(path, "missing <artifactId>")

        modules_elem = root.find(f"{ns}modules")
        modules: list[str] = []
        if modules_elem is not None:
            for module in modules_elem:
                if not isinstance(module.tag, str) or _local(module.tag) != "module":
                    continue
                name = (module.text or "").strip()
                if not name:
                    raise MalformedDescriptor(path, "empty <module> entry")
                modules.append(name)

        return ContainerDescriptor(
            group_id=child_text(root, "groupId") or child_text(parent, "groupId"),
            artifact_id=artifact_id,
            version=child_text(root, "version") or child_text(parent, "version"),
            modules=modules,
            source=text,
        )

    # -- Rendering ---------------------------------------------------------

    def render(self, descriptor: ContainerDescriptor) -> str:
        if descriptor.source is None:
            return self.renderer.render(
                "container-pom.xml.j2",
                {
                    "group_id": descriptor.group_id,
                    "artifact_id": descriptor.artifact_id,
                    "version": descriptor.version,
                    "modules": descriptor.modules,
                },
            )
        pending = descriptor.pending_modules
        if not pending:
            return descriptor.source
        return self._insert_modules(descriptor.source, pending)

    def _insert_modules(self, text: str, names: list[str]) -> str:
        masked = _mask_opaque(text)
        nl = "\r\n" if "\r\n" in text else "\n"

        modules = _find_top_level(masked, "modules")
        if modules is not None:
            tag = modules.open.group(2)
            prefix = _prefix(tag)
            modules_indent = _line_indent(text, modules.open.start())
            child_indent = modules_indent * 2 if modules_indent else "    "

            if modules.close is None:
                block = (
                    f"<{tag}>"
                    + self._module_lines(names, child_indent, nl, prefix)
                    + f"{nl}{modules_indent}</{tag}>"
                )
                return text[: modules.open.start()] + block + text[modules.open.end():]

            first_child = _TAG_RE.search(masked, modules.open.end(), modules.close.start())
            if first_child is not None:
                child_indent = _line_indent(text, first_child.start()) or child_indent

            insert_at = _rewind_whitespace(text, modules.close.start(), modules.open.end())
            snippet = self._module_lines(names, child_indent, nl, prefix)
            if "\n" not in text[insert_at: modules.close.start()]:
                snippet += nl + modules_indent
            return text[:insert_at] + snippet + text[insert_at:]

        root = _TAG_RE.search(masked)
        root_close = masked.rfind("</")
        if root is None or root_close < 0:
            raise ValueError("descriptor has no closing root tag")

        prefix = _prefix(root.group(2))
        anchor = _find_top_level(masked, "artifactId")
        unit = (_line_indent(text, anchor.open.start()) if anchor else "") or "    "
        insert_at = _rewind_whitespace(text, root_close, 0)
        block = (
            f"{nl}{nl}{unit}<{prefix}modules>"
            + self._module_lines(names, unit * 2, nl, prefix)
            + f"{nl}{unit}</{prefix}modules>"
        )
        if "\n" not in text[insert_at:root_close]:
            block += nl
        return text[:insert_at] + block + text[insert_at:]

    @staticmethod
    def _module_lines(names: list[str], indent: str, nl: str, prefix: str = "") -> str:
        return "".join(
            f"{nl}{indent}<{prefix}module>{escape(name)}</{prefix}module>" for name in names
        )


# -- JSON -------------------------------------------------------------------

_JSON_WS_RE = re.compile(r"[ \t\r\n]*")
_json_decoder = json.JSONDecoder()


@dataclass
class _JsonMember:
    key: Optional[str]
    start: int
    value_start: int
    value_end: int


def _skip_json_ws(text: str, pos: int) -> int:
    return _JSON_WS_RE.match(text, pos).end()


def _json_members(text: str, open_pos: int) -> tuple[list[_JsonMember], int]:
    """Locate the members of the object or array opening at *open_pos*.

    Returns the members (``key`` is ``None`` for array items) and the offset
    of the closing bracket. *text* must already be known to be valid JSON.
    """
    is_object = text[open_pos] == "{"
    members: list[_JsonMember] = []
    pos = _skip_json_ws(text, open_pos + 1)
    if text[pos] in "}]":
        return members, pos
    while True:
        start = pos
        key = None
        if is_object:
            key, pos = _json_decoder.raw_decode(text, pos)
            pos = _skip_json_ws(text, _skip_json_ws(text, pos) + 1)
        _, end = _json_decoder.raw_decode(text, pos)
        members.append(_JsonMember(key, start, pos, end))
        pos = _skip_json_ws(text, end)
        if text[pos] != ",":
            return members, pos
        pos = _skip_json_ws(text, pos + 1)


class JsonDescriptorFormat(DescriptorFormat):
    """``container.json`` descriptor: ``{"groupId", "artifactId", "version", "modules"}``.

    Existing documents are edited in place: new names are appended to the
    top-level ``"modules"`` array in the style of its current items, and the
    rest of the text is left untouched.
    """

    filename = "container.json"

    def parse(self, text: str, path: Path) -> ContainerDescriptor:
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise MalformedDescriptor(path, f"not valid JSON ({exc})") from exc
        if not isinstance(data, dict):
            raise MalformedDescriptor(path, "expected a JSON object at the top level")

        artifact_id = data.get("artifactId")
        if not isinstance(artifact_id, str) or not artifact_id:
            raise MalformedDescriptor(path, "missing 'artifactId'")
        modules = data.get("modules", [])
        if not isinstance(modules, list) or not all(isinstance(m, str) and m for m in modules):
            raise MalformedDescriptor(path, "'modules' must be a list of non-empty strings")

        return ContainerDescriptor(
            group_id=str(data.get("groupId", "")),
            artifact_id=artifact_id,
            version=str(data.get("version", "")),
            modules=modules,
            source=text,
        )

    def render(self, descriptor: ContainerDescriptor) -> str:
        if descriptor.source is None:
            data = {
                "groupId": descriptor.group_id,
                "artifactId": descriptor.artifact_id,
                "version": descriptor.version,
                "modules": list(descriptor.modules),
            }
            return json.dumps(data, indent=2, ensure_ascii=False) + "\n"
        pending = descriptor.pending_modules
        if not pending:
            return descriptor.source
        return self._insert_modules(descriptor.source, pending)

    def _insert_modules(self, text: str, names: list[str]) -> str:
        nl = "\r\n" if "\r\n" in text else "\n"
        encoded = [json.dumps(name, ensure_ascii=False) for name in names]
        open_pos = _skip_json_ws(text, 0)
        members, close = _json_members(text, open_pos)

        found = [m for m in members if m.key == "modules"]
        if found:
            array = found[-1]
            items, _ = _json_members(text, array.value_start)
            if not items:
                value = "[" + ", ".join(encoded) + "]"
                return text[: array.value_start] + value + text[array.value_end:]

            first = items[0]
            if "\n" in text[array.value_start: first.start]:
                separator = "," + nl + _line_indent(text, first.start)
            elif len(items) > 1:
                separator = text[first.value_end: items[1].start]
            else:
                separator = ", "
            insert_at = items[-1].value_end
            return text[:insert_at] + "".join(separator + e for e in encoded) + text[insert_at:]

        entry = '"modules": [' + ", ".join(encoded) + "]"
        if members:
            if "\n" in text[open_pos: members[0].start]:
                entry = "," + nl + _line_indent(text, members[0].start) + entry
            else:
                entry = ", " + entry
        insert_at = _rewind_whitespace(text, close, open_pos + 1)
        return text[:insert_at] + entry + text[insert_at:]


FORMATS: dict[str, type[DescriptorFormat]] = {
    "xml": XmlDescriptorFormat,
    "json": JsonDescriptorFormat,
}


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


class DescriptorStore:
    """Loads, mutates and persists the descriptor of a container directory."""

    def __init__(self, descriptor_format: DescriptorFormat | None = None) -> None:
        self.format = descriptor_format or XmlDescriptorFormat()

    def descriptor_path(self, container_dir: str | Path) -> Path:
        return Path(container_dir) / self.format.filename

    def load_or_create(self, container_dir: str | Path, new_module_name: str) -> ContainerDescriptor:
        """Return the descriptor of *container_dir*, creating the directory if needed.

        A missing directory (or an existing directory without a descriptor
        file) yields a synthesized descriptor with the default coordinates and
        the directory's base name as artifact id. Nothing is written here.

        Raises:
            ContainerError: If the directory cannot be created or read.
            MalformedDescriptor: If the existing descriptor cannot be parsed.
        """
        container_dir = Path(container_dir)
        if not container_dir.exists():
            try:
                container_dir.mkdir(parents=True)
            except OSError as exc:
                raise ContainerError(container_dir, f"cannot create directory ({exc})") from exc
            logger.info("Created container %s for module %s", container_dir, new_module_name)
            return self._synthesize(container_dir)

        if not container_dir.is_dir():
            raise ContainerError(container_dir, "exists but is not a directory")

        path = self.descriptor_path(container_dir)
        if not path.exists():
            logger.info("Container %s has no %s yet; synthesizing one", container_dir, path.name)
            return self._synthesize(container_dir)

        try:
            raw = path.read_bytes()
        except OSError as exc:
            raise ContainerError(container_dir, f"cannot read {path.name} ({exc})") from exc
        try:
            text = raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise MalformedDescriptor(path, f"not UTF-8 ({exc})") from exc

        descriptor = self.format.parse(text, path)
        logger.debug(
            "Loaded %s with %d module(s) before adding %s",
            path, len(descriptor.modules), new_module_name,
        )
        return descriptor

    def add_module(self, descriptor: ContainerDescriptor, module_name: str) -> bool:
        changed = descriptor.add_module(module_name)
        if not changed:
            logger.debug("Module %s already registered in %s", module_name, descriptor.artifact_id)
        return changed

    def persist(self, descriptor: ContainerDescriptor, container_dir: str | Path) -> Path:
        """Write *descriptor* to the container's descriptor file.

        The new content goes to a sibling temporary file first and is then
        renamed over the descriptor, so a failed write leaves the previous
        file intact.

        Raises:
            ContainerError: If the file cannot be written.
        """
        path = self.descriptor_path(container_dir)
        text = self.format.render(descriptor)
        tmp = path.with_name(f".{path.name}.tmp")
        try:
            tmp.write_bytes(text.encode("utf-8"))
            os.replace(tmp, path)
        except OSError as exc:
            tmp.unlink(missing_ok=True)
            raise ContainerError(Path(container_dir), f"cannot write {path.name} ({exc})") from exc
        descriptor.mark_persisted(text)
        logger.info("Updated %s (modules: %s)", path, ", ".join(descriptor.modules))
        return path

    @staticmethod
    def _synthesize(container_dir: Path) -> ContainerDescriptor:
        return ContainerDescriptor(
            group_id=DEFAULT_GROUP_ID,
            artifact_id=container_dir.resolve().name,
            version=DEFAULT_VERSION,
        )
