from __future__ import annotations

import os
import re
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Mapping

import tomllib

CONFIG_FILENAME = "site.toml"
DEFAULT_LANGUAGE = "vi"
SUPPORTED_LANGUAGES = ("vi", "en")
LANGUAGE_PATH = "/lang/"
STORAGE_KEY = "userPreferredLanguage_v3"

_LANGUAGE_CODE_RE = re.compile(r"^[a-z]{2}$")


class ConfigError(ValueError):
    """Raised when the site configuration is malformed."""


@dataclass(frozen=True, slots=True)
class ComponentSpec:
    name: str
    url: str
    placeholder: str


DEFAULT_COMPONENTS = (
    ComponentSpec("Header", "/components/header.html", "#header-placeholder"),
    ComponentSpec("Footer", "/components/footer.html", "#footer-placeholder"),
    ComponentSpec("FABs", "/components/fab-container.html", "#fab-container-placeholder"),
)


@dataclass(slots=True)
class SiteConfig:
    root: Path
    default_language: str = DEFAULT_LANGUAGE
    supported_languages: tuple[str, ...] = SUPPORTED_LANGUAGES
    language_path: str = LANGUAGE_PATH
    storage_key: str = STORAGE_KEY
    components: tuple[ComponentSpec, ...] = field(default_factory=lambda: DEFAULT_COMPONENTS)
    base_url: str | None = None
    debug: bool = False

    def __post_init__(self) -> None:
        self.default_language = _normalize_code(self.default_language, "default_language")
        codes: list[str] = []
        for code in self.supported_languages:
            normalized = _normalize_code(code, "supported_languages")
            if normalized not in codes:
                codes.append(normalized)
        if self.default_language not in codes:
            codes.insert(0, self.default_language)
        self.supported_languages = tuple(codes)
        if not self.language_path.endswith("/"):
            self.language_path += "/"

    def translation_url(self, code: str) -> str:
        return f"{self.language_path}{code}.json"


def _normalize_code(value: object, field_name: str) -> str:
    if not isinstance(value, str):
        raise ConfigError(f"{field_name} must contain language codes, got {value!r}")
    normalized = value.strip().lower()
    if not _LANGUAGE_CODE_RE.match(normalized):
        raise ConfigError(f"Invalid language code in {field_name}: {value!r}")
    return normalized


def _parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in {"1", "true", "yes", "on"}:
        return True
    if lowered in {"0", "false", "no", "off", ""}:
        return False
    raise ConfigError(f"Invalid boolean value: {value!r}")


def _components_from_table(entries: object) -> tuple[ComponentSpec, ...]:
    if not isinstance(entries, list):
        raise ConfigError("site.components must be an array of tables")
    specs: list[ComponentSpec] = []
    for entry in entries:
        if not isinstance(entry, dict):
            raise ConfigError("site.components entries must be tables")
        try:
            specs.append(
                ComponentSpec(
                    name=str(entry["name"]),
                    url=str(entry["url"]),
                    placeholder=str(entry["placeholder"]),
                )
            )
        except KeyError as exc:
            raise ConfigError(f"site.components entry is missing {exc.args[0]!r}") from exc
    return tuple(specs)


def _read_config_file(path: Path) -> dict[str, object]:
    try:
        with path.open("rb") as fh:
            data = tomllib.load(fh)
    except FileNotFoundError:
        return {}
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Invalid {path.name}: {exc}") from exc
    section = data.get("site", {})
    if not isinstance(section, dict):
        raise ConfigError(f"[site] in {path.name} must be a table")
    return section


def load_config(
    root: Path,
    path: Path | None = None,
    *,
    environ: Mapping[str, str] | None = None,
) -> SiteConfig:
    """Build a SiteConfig from ``site.toml`` in ``root`` plus ``IVS_*`` overrides."""
    root = root.expanduser().resolve()
    env = os.environ if environ is None else environ
    section = _read_config_file(path or root / CONFIG_FILENAME)

    config = SiteConfig(root=root)
    overrides: dict[str, object] = {}
    if "default_language" in section:
        overrides["default_language"] = section["default_language"]
    if "languages" in section:
        languages = section["languages"]
        if not isinstance(languages, list):
            raise ConfigError("site.languages must be an array of language codes")
        overrides["supported_languages"] = tuple(languages)
    if "language_path" in section:
        overrides["language_path"] = str(section["language_path"])
    if "storage_key" in section:
        overrides["storage_key"] = str(section["storage_key"])
    if "components" in section:
        overrides["components"] = _components_from_table(section["components"])
    if "base_url" in section:
        overrides["base_url"] = str(section["base_url"]) or None
    if "debug" in section:
        overrides["debug"] = bool(section["debug"])

    if env.get("IVS_DEFAULT_LANGUAGE"):
        overrides["default_language"] = env["IVS_DEFAULT_LANGUAGE"]
    if env.get("IVS_LANGUAGES"):
        overrides["supported_languages"] = tuple(
            part for part in env["IVS_LANGUAGES"].split(",") if part.strip()
        )
    if env.get("IVS_BASE_URL"):
        overrides["base_url"] = env["IVS_BASE_URL"]
    if "IVS_DEBUG" in env:
        overrides["debug"] = _parse_bool(env["IVS_DEBUG"])

    if not overrides:
        return config
    return replace(config, **overrides)


__all__ = [
    "CONFIG_FILENAME",
    "ComponentSpec",
    "ConfigError",
    "DEFAULT_COMPONENTS",
    "SiteConfig",
    "load_config",
]
