# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/clusterboot/config/loader.py

import copy
import logging
import os
from pathlib import Path

import yaml
from pydantic import ValidationError

from ..bootstrap.planner import validate as validate_graph
from ..errors import ConfigurationError
from .models import NodeRegistry

log = logging.getLogger("clusterboot")

_CERT_KEYS = ("ca", "cert", "key", "client_cert", "client_key")


def _deep_merge(base: dict, override: dict) -> dict:
    """
    Recursively merge *override* into *base* (mutates base).
    Only overwrites when the override value is non-empty.
    """
    for key, value in override.items():
        if (
            key in base
            and isinstance(base[key], dict)
            and isinstance(value, dict)
        ):
            _deep_merge(base[key], value)
        else:
            if value not in (None, ""):
                base[key] = value
    return base


def _load_yaml(path: Path) -> dict:
    """Load a YAML file, expanding ${ENV_VAR} references."""
    raw = path.read_text()
    expanded = os.path.expandvars(raw)
    try:
        data = yaml.safe_load(expanded) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"{path} is not valid YAML: {e}") from e
    if not isinstance(data, dict):
        raise ConfigurationError(f"{path} must contain a mapping at the top level")
    return data


def _resolve(base_dir: Path, value) -> str:
    p = Path(value).expanduser()
    return str(p if p.is_absolute() else base_dir / p)


def _apply_defaults(data: dict, base_dir: Path) -> dict:
    """
    Merge ``defaults`` into every node and anchor relative paths (secret
    directory, certificate paths, ssh key path) to the config file's
    directory. ``~`` is expanded first.
    """
    defaults = data.pop("defaults", None) or {}
    if not isinstance(defaults, dict):
        raise ConfigurationError("'defaults' must be a mapping of node settings")

    secret_dir = os.environ.get("CLUSTERBOOT_SECRET_DIR") or data.get("secret_directory") or "secrets"
    data["secret_directory"] = _resolve(base_dir, secret_dir)

    nodes = data.get("nodes") or {}
    if not isinstance(nodes, dict):
        raise ConfigurationError("'nodes' must be a mapping of node name to node settings")

    merged = {}
    for name, spec in nodes.items():
        if spec is not None and not isinstance(spec, dict):
            raise ConfigurationError(f"node '{name}' must be a mapping of settings, got: {spec!r}")
        node = _deep_merge(copy.deepcopy(defaults), spec or {})
        ssh = node.get("ssh")
        if isinstance(ssh, dict) and ssh.get("key_path"):
            ssh["key_path"] = _resolve(base_dir, ssh["key_path"])
        for certs_key in ("certs", "certPaths"):
            certs = node.get(certs_key)
            if isinstance(certs, dict):
                for k in _CERT_KEYS:
                    if certs.get(k):
                        certs[k] = _resolve(base_dir, certs[k])
        merged[name] = node
    data["nodes"] = merged
    return data


def parse_registry(data: dict, base_dir: Path) -> NodeRegistry:
    """
    Validate raw registry data. Besides the per-node model checks, the
    dependency graph must be complete and acyclic and the seed and joiner
    roles consistent, so every command rejects a registry ``plan`` would.
    """
    data = _apply_defaults(copy.deepcopy(data), base_dir)
    try:
        registry = NodeRegistry.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(f"invalid node registry:\n{e}") from e
    validate_graph(registry)
    return registry


def load_registry(path: str | Path) -> NodeRegistry:
    """
    Load and validate a node registry YAML file.

    ``defaults`` is deep-merged under every node (node values win), so shared
    ssh settings or certificate paths only need to be written once.
    The secret directory is taken from, in order:
      1. ``CLUSTERBOOT_SECRET_DIR`` env var
      2. ``secret_directory`` in the file
      3. ``secrets`` next to the file
    Relative paths are resolved against the file's directory.
    """
    path = Path(path)
    if not path.is_file():
        raise ConfigurationError(f"registry file not found: {path}")

    log.debug("Loading node registry from %s", path)
    registry = parse_registry(_load_yaml(path), path.resolve().parent)
    log.debug(
        "Loaded %d node(s) for cluster '%s': %s",
        len(registry.nodes), registry.cluster, ", ".join(registry.names()),
    )
    return registry
