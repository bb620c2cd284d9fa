from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path
from typing import Any

import yaml
from dotenv import dotenv_values

from tupelo_integration.runner import constants
from tupelo_integration.runner.errors import ConfigError
from tupelo_integration.runner.models import ContainerSpec, HarnessConfig

# Newest schema first; the loader falls back to older shapes in order.
_V2_BACKENDS_KEY = "tupelos"
_V2_TESTERS_KEY = "testers"
_V1_IMAGES_KEY = "tupeloImages"
_V1_TESTER_KEY = "tester"


def load_config(path: str | Path) -> HarnessConfig:
    config_path = Path(path).resolve()
    if not config_path.exists():
        raise ConfigError(f"Error getting config file at {config_path}: file not found")
    try:
        raw = config_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Error getting config file at {config_path}: {exc}") from exc
    try:
        document = yaml.safe_load(raw)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Error parsing yaml config file at {config_path}: {exc}") from exc

    return parse_config(document, base_dir=config_path.parent)


def parse_config(document: Any, *, base_dir: Path | None = None) -> HarnessConfig:
    if document is None:
        document = {}
    if not isinstance(document, dict):
        raise ConfigError("config document must be a mapping")

    if document.get(_V2_BACKENDS_KEY):
        config = _parse_v2(document, base_dir)
    elif _V1_IMAGES_KEY in document or _V1_TESTER_KEY in document:
        config = _parse_v1(document, base_dir)
    else:
        raise ConfigError(
            f"config must define '{_V2_BACKENDS_KEY}' and '{_V2_TESTERS_KEY}' "
            f"(or legacy '{_V1_IMAGES_KEY}' and '{_V1_TESTER_KEY}')"
        )
    validate_backends(config.backends)
    return config


def validate_backends(backends: Iterable[ContainerSpec]) -> None:
    for backend in backends:
        if backend.compose and backend.image:
            raise ConfigError(f"Error in {backend}: docker-compose and image are mutually exclusive")


def _parse_v2(document: dict, base_dir: Path | None) -> HarnessConfig:
    backends = [
        _container_spec(name, entry, base_dir=base_dir, backend=True)
        for name, entry in _named_entries(document, _V2_BACKENDS_KEY)
    ]
    testers = [
        _container_spec(name, entry, base_dir=base_dir, backend=False)
        for name, entry in _named_entries(document, _V2_TESTERS_KEY)
    ]
    return HarnessConfig(backends=backends, testers=testers)


def _parse_v1(document: dict, base_dir: Path | None) -> HarnessConfig:
    images = document.get(_V1_IMAGES_KEY) or []
    if not isinstance(images, list):
        raise ConfigError(f"'{_V1_IMAGES_KEY}' must be a list of image strings")
    backends: list[ContainerSpec] = []
    for raw in images:
        image_and_command = str(raw).split()
        if not image_and_command:
            raise ConfigError(f"'{_V1_IMAGES_KEY}' entries must be non-empty")
        command = image_and_command[1:] or list(constants.DEFAULT_BACKEND_COMMAND)
        backends.append(ContainerSpec(image=image_and_command[0], command=command))

    tester_entry = document.get(_V1_TESTER_KEY) or {}
    tester_name = ""
    if isinstance(tester_entry, dict):
        tester_name = str(tester_entry.get("name") or "")
    tester = _container_spec(tester_name, tester_entry, base_dir=base_dir, backend=False)
    return HarnessConfig(backends=backends, testers=[tester])


def _named_entries(document: dict, key: str) -> list[tuple[str, Any]]:
    section = document.get(key) or {}
    if not isinstance(section, dict):
        raise ConfigError(f"'{key}' must be a mapping of name to container config")
    return [(str(name), entry) for name, entry in section.items()]


def _container_spec(
    name: str,
    entry: Any,
    *,
    base_dir: Path | None,
    backend: bool,
) -> ContainerSpec:
    if entry is None:
        entry = {}
    if not isinstance(entry, dict):
        raise ConfigError(f"config entry '{name}' must be a mapping")

    compose = bool(entry.get("docker-compose", False)) if backend else False
    command = _string_list(entry.get("command"), field=f"{name}.command")
    if backend and not command and not compose:
        command = list(constants.DEFAULT_BACKEND_COMMAND)

    env_file = str(entry.get("env-file") or "")
    env: dict[str, str] = {}
    if env_file:
        env.update(_read_env_file(env_file, base_dir=base_dir))
    env.update(_string_map(entry.get("env"), field=f"{name}.env"))

    return ContainerSpec(
        name=name,
        build=str(entry.get("build") or ""),
        image=str(entry.get("image") or ""),
        command=command,
        env=env,
        compose=compose,
        compose_project=str(entry.get("compose-project") or constants.DEFAULT_COMPOSE_PROJECT),
        network=str(entry.get("network") or ""),
    )


def _string_list(value: Any, *, field: str) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return value.split()
    if not isinstance(value, list):
        raise ConfigError(f"'{field}' must be a list or a string")
    return [str(item) for item in value]


def _string_map(value: Any, *, field: str) -> dict[str, str]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f"'{field}' must be a mapping")
    return {str(key): "" if item is None else str(item) for key, item in value.items()}


def _read_env_file(env_file: str, *, base_dir: Path | None) -> dict[str, str]:
    path = Path(env_file)
    if not path.is_absolute() and base_dir is not None:
        path = base_dir / path
    if not path.exists():
        raise ConfigError(f"env-file not found: {path}")
    return {key: value or "" for key, value in dotenv_values(path).items()}
