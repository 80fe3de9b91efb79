import json
from pathlib import Path

from kasama_ai.core.config.env import load_env_from_path
from kasama_ai.core.config.models import OrchestratorConfig
from kasama_ai.core.exceptions import ConfigError


def load_orchestrator_config(config_path: str | Path, project_root: Path | None = None) -> OrchestratorConfig:
    root = project_root or Path.cwd()
    path = Path(config_path) if not isinstance(config_path, Path) else config_path
    if not path.is_absolute():
        path = root / path
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")
    try:
        raw = path.read_text(encoding="utf-8")
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in {path}: {e}") from e
    try:
        config = OrchestratorConfig.model_validate(data)
    except Exception as e:
        raise ConfigError(f"Invalid config schema in {path}: {e}") from e
    _check_references(config, path)
    load_env_from_path(config.env_file_path, root)
    return config


def _check_references(config: OrchestratorConfig, path: Path) -> None:
    known = {p.name for p in config.providers}
    for agent in config.agents:
        for name in agent.providers + agent.low_priority_providers:
            if name not in known:
                raise ConfigError(f"Agent {agent.name} references unknown provider {name!r} in {path}")
    for name in config.default_providers:
        if name not in known:
            raise ConfigError(f"Default provider {name!r} not defined in {path}")
    for p in config.providers:
        if p.mode not in ("sync", "callback"):
            raise ConfigError(f"Provider {p.name} has invalid mode {p.mode!r} in {path}")
