"""Renders a buildable Android project from the bundled template.

Placeholders are substituted across the whole tree with escaping chosen by the
destination file's syntax, the placeholder package folder is moved to the real
package path, and an optional custom icon replaces the bundled default.
"""
import logging
import os
import re
import shutil
from dataclasses import dataclass
from typing import Dict, Optional
from forge.build.icons import IconLoader, IconRenderer, IconResult, IconSourceError
from forge.errors import MaterializeError
from forge.schemas.build import TOKEN_RE, ProjectConfig

logger = logging.getLogger(__name__)

TEMPLATE_DIR = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "templates", "android")

PACKAGE_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9_]*(\.[a-zA-Z][a-zA-Z0-9_]*)+$")
HEX_COLOR_RE = re.compile(r"^#[0-9a-fA-F]{6}([0-9a-fA-F]{2})?$")

DEFAULT_COLOR = "#2563EB"
PACKAGE_PATH_TOKEN = "__PACKAGE_PATH__"

SOURCE_SUFFIXES = {".kt", ".java"}
XML_SUFFIXES = {".xml"}
RAW_SUFFIXES = {".gradle", ".pro", ".properties", ".txt", ".json"}

# Reserved words that cannot appear as a package segment
KOTLIN_KEYWORDS = {
    "as", "break", "class", "continue", "do", "else", "false", "for", "fun", "if", "in",
    "interface", "is", "null", "object", "package", "return", "super", "this", "throw",
    "true", "try", "typealias", "typeof", "val", "var", "when", "while",
}

def sanitize_hex_color(value: Optional[str], default: str = DEFAULT_COLOR) -> str:
    v = (value or "").strip()
    return v if HEX_COLOR_RE.match(v) else default

def sanitize_for_file_name(value: str) -> str:
    out = re.sub(r"[^a-zA-Z0-9_.-]+", "-", value)
    out = re.sub(r"-+", "-", out).strip("-")
    return out or "project"

def escape_xml(value: str) -> str:
    return (
        value.replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
        .replace("'", "&apos;")
    )

def escape_android_string(value: str) -> str:
    """Escaping for string resources: aapt rules first, then XML."""
    out = value.replace("\\", "\\\\").replace("'", "\\'").replace('"', '\\"').replace("\n", "\\n")
    if out[:1] in ("@", "?"):
        out = "\\" + out
    return out.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")

def escape_kotlin_string(value: str) -> str:
    return (
        value.replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("$", "\\$")
        .replace("\r", "\\r")
        .replace("\n", "\\n")
    )

def validate_package_name(package_name: str) -> None:
    if not PACKAGE_RE.match(package_name or ""):
        raise MaterializeError(f"Invalid package name: {package_name!r}")
    bad = [seg for seg in package_name.split(".") if seg in KOTLIN_KEYWORDS]
    if bad:
        raise MaterializeError(f"Invalid package name {package_name!r}: reserved word {bad[0]!r}")

@dataclass
class MaterializedProject:
    project_dir: str
    icon: IconResult

class ProjectMaterializer:
    def __init__(
        self,
        template_dir: str = TEMPLATE_DIR,
        icon_renderer: Optional[IconRenderer] = None,
        icon_loader: Optional[IconLoader] = None,
    ):
        self.template_dir = template_dir
        self.icon_renderer = icon_renderer
        self.icon_loader = icon_loader or IconLoader()

    def materialize(self, config: ProjectConfig, work_dir: str) -> MaterializedProject:
        validate_package_name(config.package_name)
        if not os.path.isdir(self.template_dir):
            raise MaterializeError(f"Android template not found at {self.template_dir}")

        project_dir = os.path.join(work_dir, sanitize_for_file_name(config.app_id))
        if os.path.exists(project_dir):
            raise MaterializeError(f"Project directory already exists: {project_dir}")
        shutil.copytree(self.template_dir, project_dir)

        package_path = config.package_name.replace(".", os.sep)
        self._move_package_dir(project_dir, package_path)
        self._substitute_tree(project_dir, self._replacements(config, package_path))

        icon = self._apply_icon(config, project_dir)
        if icon.rendered:
            logger.info("Rendered custom icon for app %s (%d files)", config.app_id, len(icon.files))
        elif config.icon_url:
            logger.warning("Keeping default icon for app %s: %s", config.app_id, icon.reason)

        self._check_no_tokens(project_dir)
        return MaterializedProject(project_dir=project_dir, icon=icon)

    @staticmethod
    def _replacements(config: ProjectConfig, package_path: str) -> Dict[str, Dict[str, str]]:
        primary = sanitize_hex_color(config.primary_color)
        background = sanitize_hex_color(config.icon_color, default=primary)
        features = config.features

        common = {
            "__PACKAGE_NAME__": config.package_name,
            PACKAGE_PATH_TOKEN: package_path,
            "__VERSION_CODE__": str(config.version_code),
            "__VERSION_NAME__": f"1.0.{config.version_code}",
            "__PRIMARY_COLOR__": primary,
            "__ICON_BACKGROUND__": background,
            "__PULL_TO_REFRESH__": str(features.pull_to_refresh).lower(),
            "__OFFLINE_SCREEN__": str(features.offline_screen).lower(),
            "__BOTTOM_NAV__": str(features.bottom_nav).lower(),
        }
        return {
            "xml": {**common, "__APP_NAME__": escape_xml(config.app_name), "__START_URL__": escape_xml(config.start_url)},
            "string_res": {
                **common,
                "__APP_NAME__": escape_android_string(config.app_name),
                "__START_URL__": escape_android_string(config.start_url),
            },
            "source": {
                **common,
                "__APP_NAME__": escape_kotlin_string(config.app_name),
                "__START_URL__": escape_kotlin_string(config.start_url),
            },
            "raw": {**common, "__APP_NAME__": config.app_name, "__START_URL__": config.start_url},
        }

    @staticmethod
    def _move_package_dir(project_dir: str, package_path: str) -> None:
        java_root = os.path.join(project_dir, "app", "src", "main", "java")
        placeholder = os.path.join(java_root, PACKAGE_PATH_TOKEN)
        if not os.path.isdir(placeholder):
            raise MaterializeError(f"Template is missing {placeholder}")
        target = os.path.join(java_root, package_path)
        os.makedirs(target, exist_ok=True)
        for name in os.listdir(placeholder):
            os.replace(os.path.join(placeholder, name), os.path.join(target, name))
        os.rmdir(placeholder)

    @staticmethod
    def _flavor(path: str) -> Optional[str]:
        suffix = os.path.splitext(path)[1].lower()
        if suffix in XML_SUFFIXES:
            parent = os.path.basename(os.path.dirname(path))
            return "string_res" if parent.startswith("values") else "xml"
        if suffix in SOURCE_SUFFIXES:
            return "source"
        if suffix in RAW_SUFFIXES:
            return "raw"
        return None

    def _substitute_tree(self, project_dir: str, replacements: Dict[str, Dict[str, str]]) -> None:
        for root, _dirs, files in os.walk(project_dir):
            for name in files:
                path = os.path.join(root, name)
                flavor = self._flavor(path)
                if flavor is None:
                    continue
                with open(path, "r", encoding="utf-8") as f:
                    content = f.read()
                mapping = replacements[flavor]
                # Single pass: substituted values are never rescanned
                updated = TOKEN_RE.sub(lambda m: mapping.get(m.group(0), m.group(0)), content)
                if updated != content:
                    with open(path, "w", encoding="utf-8") as f:
                        f.write(updated)

    def _apply_icon(self, config: ProjectConfig, project_dir: str) -> IconResult:
        if not config.icon_url:
            return IconResult.skipped("no custom icon")
        if self.icon_renderer is None:
            return IconResult.skipped("icon rendering disabled")
        try:
            data = self.icon_loader.load(config.icon_url)
        except IconSourceError as e:
            return IconResult.failed(str(e))

        res_dir = os.path.join(project_dir, "app", "src", "main", "res")
        background = sanitize_hex_color(config.icon_color, default=sanitize_hex_color(config.primary_color))
        return self.icon_renderer.render(data, res_dir, background)

    def _check_no_tokens(self, project_dir: str) -> None:
        """Fail if any template placeholder survived substitution."""
        for root, dirs, files in os.walk(project_dir):
            for name in dirs + files:
                if TOKEN_RE.search(name):
                    raise MaterializeError(f"Unresolved placeholder in path {os.path.join(root, name)}")
            for name in files:
                path = os.path.join(root, name)
                if self._flavor(path) is None:
                    continue
                with open(path, "r", encoding="utf-8") as f:
                    leftover = set(TOKEN_RE.findall(f.read()))
                if leftover:
                    rel = os.path.relpath(path, project_dir)
                    raise MaterializeError(f"Unresolved placeholder {sorted(leftover)[0]} in {rel}")
