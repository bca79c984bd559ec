from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any

from .models import OAuthTokenResult, RuntimeConfig

CONFIG_PATH_ENV = "CLAW_GATEWAY_CONFIG_PATH"
WORKSPACE_ROOT_ENV = "CLAW_GATEWAY_WORKSPACE_ROOT"
ALLOW_WORKSPACE_PATH_ENV = "CLAW_GATEWAY_ALLOW_WORKSPACE_PATH"


class FileConfigStore:
    """
    JSON file of RuntimeConfig profiles, keyed by profile name.

    The file holds API keys and OAuth tokens. An explicitly chosen path must
    live outside the workspace (unless allowed); the per-user default is
    trusted. The file is only ever readable by the owner: directory 0700,
    file 0600.
    """

    def __init__(
        self,
        path: str | None = None,
        *,
        workspace_root: str | None = None,
        allow_workspace_path: bool = False,
    ) -> None:
        explicit = path or os.getenv(CONFIG_PATH_ENV)
        self.path = Path(explicit).expanduser().resolve() if explicit else _home_config_path()
        # the per-user default under ~/.config is never part of a workspace
        if explicit and not (allow_workspace_path or os.getenv(ALLOW_WORKSPACE_PATH_ENV, "0") == "1"):
            _ensure_outside_workspace(self.path, _workspace_root(workspace_root))

        self.path.parent.mkdir(parents=True, exist_ok=True)
        _chmod_private(self.path.parent, 0o700)
        if self.path.exists():
            _chmod_private(self.path, 0o600)

    def _profiles(self) -> dict[str, dict[str, Any]]:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        if not raw.strip():
            return {}
        data = json.loads(raw)
        if not isinstance(data, dict):
            raise ValueError(f"config file must hold a JSON object of profiles: {self.path}")
        return data

    def _replace_profiles(self, profiles: dict[str, dict[str, Any]]) -> None:
        # write next to the target and swap, so readers never see a partial file
        fd, tmp_name = tempfile.mkstemp(prefix=".runtime_config.", dir=self.path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(profiles, handle, ensure_ascii=True, indent=2)
            _chmod_private(Path(tmp_name), 0o600)
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def save_config(self, config: RuntimeConfig, profile: str = "default") -> None:
        profiles = self._profiles()
        profiles[profile] = config.model_dump(mode="json")
        self._replace_profiles(profiles)

    def load_config(self, profile: str = "default") -> RuntimeConfig:
        """Stored config for ``profile``, or the built-in defaults when absent."""
        data = self._profiles().get(profile)
        if not data:
            return RuntimeConfig()
        return RuntimeConfig.model_validate(data)

    def has_config(self, profile: str = "default") -> bool:
        return bool(self._profiles().get(profile))

    def apply_token_result(
        self,
        result: OAuthTokenResult,
        profile: str = "default",
        *,
        provider: str | None = None,
    ) -> RuntimeConfig:
        """Merge a completed device-flow login into ``profile`` and persist it."""
        updated = self.load_config(profile).with_token_result(result)
        if provider and updated.normalized_provider != provider:
            # the old endpoint belongs to the old provider; adapters fall back to their defaults
            updated = updated.model_copy(update={"provider": provider, "api_url": ""})
        self.save_config(updated, profile)
        return updated


def default_config_path() -> Path:
    explicit = os.getenv(CONFIG_PATH_ENV)
    if explicit:
        return Path(explicit).expanduser().resolve()
    return _home_config_path()


def _home_config_path() -> Path:
    return (_real_user_home() / ".config" / "claw_gateway" / "runtime_config.json").resolve()


def _workspace_root(explicit: str | None) -> Path:
    root = explicit or os.getenv(WORKSPACE_ROOT_ENV) or os.getcwd()
    return Path(root).expanduser().resolve()


def _ensure_outside_workspace(path: Path, workspace: Path) -> None:
    if path.is_relative_to(workspace):
        raise ValueError(f"config path must be outside workspace: {path} (workspace: {workspace})")


def _real_user_home() -> Path:
    if os.name == "nt":
        return Path.home()
    try:
        import pwd

        return Path(pwd.getpwuid(os.getuid()).pw_dir)
    except (ImportError, KeyError):
        return Path.home()


def _chmod_private(path: Path, mode: int) -> None:
    try:
        path.chmod(mode)
    except OSError:
        # filesystems without POSIX modes
        pass
