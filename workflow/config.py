from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Mapping, Optional

import yaml
from dotenv import dotenv_values

from workflow.errors import ConfigurationError

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent.parent / "configs" / "workflow.yaml"
ENV_FILE_NAME = ".env.local"


@dataclass
class LinearConfig:
    api_url: str = "https://api.linear.app/graphql"
    api_key_env: str = "LINEAR_API_TOKEN"
    timeout_sec: float = 30.0
    done_state_name: str = "Done"


@dataclass
class GitHubConfig:
    api_url: str = "https://api.github.com"
    web_url: str = "https://github.com"
    token_env: str = "GITHUB_TOKEN"
    repo_env: str = "GITHUB_REPO"
    repo: str = ""
    default_base_branch: str = "main"
    timeout_sec: float = 30.0
    icon_url: str = "https://github.com/favicon.ico"


@dataclass
class StoreConfig:
    data_dir: Path = Path(".workflow-data")
    unset_policy: str = "zero"

    @property
    def sessions_dir(self) -> Path:
        return self.data_dir / "sessions"

    @property
    def ab_tests_dir(self) -> Path:
        return self.data_dir / "ab_tests"

    @property
    def templates_path(self) -> Path:
        return self.data_dir / "templates" / "adaptive_prompts.json"

    @property
    def insights_path(self) -> Path:
        return self.data_dir / "training" / "pattern_insights.md"


@dataclass
class SelectionConfig:
    default_template: str = "linear_task_v1"
    tech_min_success: float = 0.7
    tech_min_usage: int = 3
    mapped_min_success: float = 0.6
    mapped_min_usage: int = 2
    tech_priority: List[List[str]] = field(
        default_factory=lambda: [["react", "react_specific"], ["typescript", "typescript_specific"]]
    )


@dataclass
class AssistantConfig:
    command: List[str] = field(default_factory=lambda: ["claude"])
    install_hint: str = "Install from: https://claude.ai/code"


@dataclass
class WorkflowConfig:
    linear: LinearConfig = field(default_factory=LinearConfig)
    github: GitHubConfig = field(default_factory=GitHubConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    selection: SelectionConfig = field(default_factory=SelectionConfig)
    assistant: AssistantConfig = field(default_factory=AssistantConfig)
    env: Dict[str, str] = field(default_factory=dict)

    def secret(self, name: str) -> Optional[str]:
        value = self.env.get(name)
        if not value or value == f"your_{name.lower()}_here":
            return None
        return value

    def require_secret(self, name: str, hint: str = "") -> str:
        value = self.secret(name)
        if value is None:
            raise ConfigurationError(f"{name} not set. Please set it in {ENV_FILE_NAME}.", hint)
        return value

    def linear_token(self) -> str:
        return self.require_secret(
            self.linear.api_key_env, "Get your token from: https://linear.app/settings/api"
        )

    def github_token(self) -> str:
        return self.require_secret(
            self.github.token_env, "Get your token from: https://github.com/settings/tokens"
        )

    def github_repo(self) -> str:
        if self.github.repo:
            return self.github.repo
        return self.require_secret(self.github.repo_env, "Format: owner/repository-name")


def deep_merge_dicts(base: dict, overlay: dict) -> dict:
    merged = dict(base)
    for key, value in overlay.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge_dicts(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_raw_config(path: Path) -> dict:
    if not path.exists():
        return {}
    raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    if not isinstance(raw, dict):
        return {}
    defaults = raw.get("defaults") if isinstance(raw.get("defaults"), dict) else {}
    profiles = raw.get("profiles") if isinstance(raw.get("profiles"), dict) else {}
    active_profile = os.environ.get("WORKFLOW_PROFILE") or raw.get("active_profile")
    if isinstance(active_profile, str) and active_profile:
        profile_cfg = profiles.get(active_profile)
        if isinstance(profile_cfg, dict):
            return deep_merge_dicts(defaults or {}, profile_cfg)
    return defaults or {}


def load_env(search_dirs: List[Path], base_env: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
    """Process environment overlaid on the first .env.local found; process values win."""
    env: Dict[str, str] = {}
    for directory in search_dirs:
        env_path = directory / ENV_FILE_NAME
        if env_path.exists():
            for key, value in dotenv_values(env_path).items():
                if key and value is not None:
                    env[key] = value
            break
    env.update(dict(os.environ if base_env is None else base_env))
    return env


def _section(raw: dict, name: str) -> dict:
    value = raw.get(name)
    return value if isinstance(value, dict) else {}


def build_config(raw: dict, env: Dict[str, str], root: Path) -> WorkflowConfig:
    linear_raw = _section(raw, "linear")
    github_raw = _section(raw, "github")
    store_raw = _section(raw, "store")
    selection_raw = _section(raw, "selection")
    assistant_raw = _section(raw, "assistant")

    linear = LinearConfig(
        api_url=str(linear_raw.get("api_url", LinearConfig.api_url)),
        api_key_env=str(linear_raw.get("api_key_env", LinearConfig.api_key_env)),
        timeout_sec=float(linear_raw.get("timeout_sec", LinearConfig.timeout_sec)),
        done_state_name=str(linear_raw.get("done_state_name", LinearConfig.done_state_name)),
    )
    github = GitHubConfig(
        api_url=str(github_raw.get("api_url", GitHubConfig.api_url)).rstrip("/"),
        web_url=str(github_raw.get("web_url", GitHubConfig.web_url)).rstrip("/"),
        token_env=str(github_raw.get("token_env", GitHubConfig.token_env)),
        repo_env=str(github_raw.get("repo_env", GitHubConfig.repo_env)),
        repo=str(github_raw.get("repo") or ""),
        default_base_branch=str(
            github_raw.get("default_base_branch", GitHubConfig.default_base_branch)
        ),
        timeout_sec=float(github_raw.get("timeout_sec", GitHubConfig.timeout_sec)),
        icon_url=str(github_raw.get("icon_url", GitHubConfig.icon_url)),
    )

    data_dir = Path(str(env.get("WORKFLOW_DATA_DIR") or store_raw.get("data_dir") or ".workflow-data"))
    if not data_dir.is_absolute():
        data_dir = root / data_dir
    unset_policy = str(store_raw.get("unset_policy", "zero"))
    if unset_policy not in ("zero", "exclude"):
        raise ConfigurationError(
            f"Unknown store.unset_policy: {unset_policy}", "Use 'zero' or 'exclude'."
        )
    store = StoreConfig(data_dir=data_dir, unset_policy=unset_policy)

    selection = SelectionConfig()
    for name in ("default_template",):
        if selection_raw.get(name):
            setattr(selection, name, str(selection_raw[name]))
    for name in ("tech_min_success", "mapped_min_success"):
        if name in selection_raw:
            setattr(selection, name, float(selection_raw[name]))
    for name in ("tech_min_usage", "mapped_min_usage"):
        if name in selection_raw:
            setattr(selection, name, int(selection_raw[name]))
    priority = selection_raw.get("tech_priority")
    if isinstance(priority, list):
        selection.tech_priority = [
            [str(item[0]), str(item[1])]
            for item in priority
            if isinstance(item, (list, tuple)) and len(item) == 2
        ]

    assistant = AssistantConfig()
    command = assistant_raw.get("command")
    if isinstance(command, str) and command:
        assistant.command = command.split()
    elif isinstance(command, list) and command:
        assistant.command = [str(part) for part in command]

    return WorkflowConfig(
        linear=linear,
        github=github,
        store=store,
        selection=selection,
        assistant=assistant,
        env=env,
    )


def load_config(
    path: Optional[Path] = None,
    cwd: Optional[Path] = None,
    base_env: Optional[Mapping[str, str]] = None,
) -> WorkflowConfig:
    cwd = cwd or Path.cwd()
    config_path = path or DEFAULT_CONFIG_PATH
    raw = load_raw_config(config_path)
    env = load_env([cwd, config_path.parent], base_env)
    return build_config(raw, env, cwd)
