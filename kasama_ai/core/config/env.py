import os
from pathlib import Path

from dotenv import load_dotenv


def load_env_from_path(env_file_path: str | None, project_root: Path | None = None) -> bool:
    """Apply a dotenv file relative to the project root. Existing variables win. Returns True if a file was read."""
    if not env_file_path:
        return False
    path = (project_root or Path.cwd()) / env_file_path
    if not path.is_file():
        return False
    return load_dotenv(path, override=False)


def get_secret(env_name: str | None, env: dict[str, str] | None = None) -> str | None:
    """Read a secret from the environment by variable name; empty values count as unset."""
    if not env_name:
        return None
    source = env if env is not None else os.environ
    return source.get(env_name) or None
