import os
from typing import List, Optional
from . import config


def _recent_file(config_dir: Optional[str]) -> str:
    return os.path.join(config_dir or config.CONFIG_DIR, config.RECENT_VAULTS_FILE)


def get_recent_vault_paths(config_dir: Optional[str] = None) -> List[str]:
    """
    Loads the list of recent vault paths from the configuration directory.
    Filters out paths that no longer exist.
    """
    recent_file = _recent_file(config_dir)

    recent_paths = []
    if os.path.exists(recent_file):
        with open(recent_file, 'r', encoding='utf-8') as f:
            for line in f:
                path = line.strip()
                if path and os.path.exists(path) and path not in recent_paths:
                    recent_paths.append(path)
    return recent_paths


def save_recent_vault_path(path: str, config_dir: Optional[str] = None) -> None:
    """
    Saves a vault path to the list of recent vaults.
    Ensures uniqueness and keeps the list limited to the last MAX_RECENT_VAULTS.
    """
    recent_file = _recent_file(config_dir)
    os.makedirs(os.path.dirname(recent_file), exist_ok=True)

    path = os.path.abspath(path)
    recent = get_recent_vault_paths(config_dir)

    # Newest first
    if path in recent:
        recent.remove(path)
    recent.insert(0, path)
    recent = recent[:config.MAX_RECENT_VAULTS]

    with open(recent_file, 'w', encoding='utf-8') as f:
        for p in recent:
            f.write(p + '\n')
