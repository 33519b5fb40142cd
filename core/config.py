"""
Configuration Loading

Settings live in config.yaml at the project root. The file is parsed once
and cached; every module reads its own section through the getters below.

Usage:
    from core.config import get_config, get_session_config

    config = get_config()
    interval_ms = get_session_config()["tick_interval_ms"]
"""

import logging
import yaml
from pathlib import Path
from typing import Any, Dict, Optional


CONFIG_FILENAME = "config.yaml"

# Parsed config.yaml, cached on first access
_config_instance: Optional[Dict[str, Any]] = None


def get_project_root() -> Path:
    """
    Locate the directory holding config.yaml.

    Starts next to this module and moves up one parent at a time, so it
    works both from a source checkout and from an editable install.

    Raises:
        FileNotFoundError: If no parent directory contains config.yaml.
    """
    here = Path(__file__).resolve().parent

    for candidate in (here, *here.parents):
        if (candidate / CONFIG_FILENAME).exists():
            return candidate

    raise FileNotFoundError(
        f"{CONFIG_FILENAME} not found above {here}. "
        "Run from inside the project directory."
    )


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Parse a YAML configuration file.

    Args:
        config_path: File to read. Defaults to config.yaml at the project root.

    Returns:
        The parsed mapping; an empty file gives an empty dict.

    Raises:
        FileNotFoundError: If the file doesn't exist.
        yaml.YAMLError: If the file is not valid YAML.
    """
    path = Path(config_path) if config_path is not None else get_project_root() / CONFIG_FILENAME

    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}")

    with open(path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def get_config(reload: bool = False) -> Dict[str, Any]:
    """
    Return the cached configuration, parsing config.yaml on first use.

    Args:
        reload: Parse the file again even if it is cached.
    """
    global _config_instance

    if reload or _config_instance is None:
        _config_instance = load_config()

    return _config_instance


def get_section(section_name: str) -> Dict[str, Any]:
    """
    Return one top-level section of the configuration.

    Raises:
        KeyError: If config.yaml has no such section.
    """
    config = get_config()
    try:
        return config[section_name]
    except KeyError:
        raise KeyError(
            f"No '{section_name}' section in {CONFIG_FILENAME} "
            f"(sections: {', '.join(config)})"
        ) from None


def get_camera_config() -> Dict[str, Any]:
    """device_id, width, height, fps."""
    return get_section("camera")


def get_detection_config() -> Dict[str, Any]:
    """YuNet/SFace model files and detector thresholds."""
    return get_section("detection")


def get_verification_config() -> Dict[str, Any]:
    """score_scale and the threshold range."""
    return get_section("verification")


def get_session_config() -> Dict[str, Any]:
    return get_section("session")


def get_storage_config() -> Dict[str, Any]:
    return get_section("storage")


def get_api_config() -> Dict[str, Any]:
    return get_section("api")


def get_server_config() -> Dict[str, Any]:
    """
    Host and port the API server binds to, derived from api.base_url.

    "localhost" binds every interface; a missing or unparsable port falls
    back to 8000.
    """
    base_url = get_api_config().get("base_url", "http://localhost:8000")
    netloc = base_url.split("//")[-1].split("/")[0]
    host_part, _, port_part = netloc.partition(":")

    host = "0.0.0.0" if host_part in ("", "localhost") or not port_part else host_part
    try:
        port = int(port_part) if port_part else 8000
    except ValueError:
        port = 8000

    return {"host": host, "port": port}


def resolve_path(path: str) -> Path:
    """Resolve a config path relative to the project root."""
    p = Path(path)
    if p.is_absolute():
        return p
    return get_project_root() / p


def setup_logging() -> None:
    """Configure root logging from the "logging" section."""
    log_config = get_config().get("logging", {})
    logging.basicConfig(
        level=getattr(logging, str(log_config.get("level", "INFO")).upper(), logging.INFO),
        format=log_config.get("format", "%(asctime)s - %(name)s - %(levelname)s - %(message)s"),
    )


if __name__ == "__main__":
    config = get_config()
    print(f"Loaded {CONFIG_FILENAME} from {get_project_root()}")
    print(f"Sections: {', '.join(config)}")

    verification = get_verification_config()
    print(
        f"Threshold {verification['default_threshold']} "
        f"in [{verification['min_threshold']}, {verification['max_threshold']}], "
        f"score scale {verification['score_scale']}"
    )
    print(f"Server: {get_server_config()}")
