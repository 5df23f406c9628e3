"""
Workspace manages dbjournal project discovery and configuration loading.

The workspace is responsible for:
1. Finding dbjournal.yml by walking up directories
2. Expanding environment variables in it
3. Filling the connection from DB_* environment variables when the file
   has no connection section (or when there is no file at all); a `.env`
   file in the project root supplies variables the environment lacks
4. Returning a validated ProjectConfig
"""
import os
import re
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml
from dotenv import dotenv_values
from pydantic import ValidationError

from dbjournal.messages import get_logger
from dbjournal.utility.exceptions import ConfigError

from .configs import ProjectConfig

PROJECT_FILE = "dbjournal.yml"
ENV_FILE = ".env"

# DB_DRIVER values understood for the environment-only setup
_DRIVER_ALIASES = {
    "sqlite": "sqlite",
    "sqlite3": "sqlite",
    "pdo_sqlite": "sqlite",
    "mssql": "mssql",
    "sqlsrv": "mssql",
    "pdo_sqlsrv": "mssql",
}


class Workspace:
    """
    A dbjournal project: where its config lives and what it says.

    Example:
        ```python
        workspace = Workspace.find()
        config = workspace.load()
        log_path = config.journal.resolve_path(workspace.root)
        ```
    """

    def __init__(self, project_file: Optional[Path], root: Optional[Path] = None):
        self.project_file = project_file
        self.root = root or (project_file.parent if project_file else Path.cwd())
        self.config: Dict[str, Any] = {}
        self.logger = get_logger("dbjournal.workspace")

    @staticmethod
    def find(start_path: Optional[Path] = None) -> "Workspace":
        """
        Find dbjournal.yml by walking up directories from start_path.

        Without a project file, DB_DRIVER in the environment (or in a `.env`
        in the start directory) selects an environment-only workspace rooted
        at the start directory.

        Raises:
            ConfigError: If neither a project file nor DB_DRIVER is found
        """
        if start_path is None:
            start_path = Path.cwd()

        current = Path(start_path).resolve()
        searched_paths = []

        while True:
            project_file = current / PROJECT_FILE
            searched_paths.append(str(project_file))
            if project_file.exists():
                return Workspace.from_path(project_file)
            if current == current.parent:
                break
            current = current.parent

        root = Path(start_path).resolve()
        if Workspace.environment(root).get("DB_DRIVER"):
            return Workspace(None, root=root)

        error_msg = f"""
No {PROJECT_FILE} found in current path: {Path(start_path).resolve()}

Searched locations:
{chr(10).join(f"  - {path}" for path in searched_paths)}

Create a {PROJECT_FILE} or set DB_DRIVER, DB_HOST, DB_DATABASE,
DB_USERNAME and DB_PASSWORD in the environment or in {ENV_FILE}.
"""
        raise ConfigError(error_msg)

    @classmethod
    def from_path(cls, project_file: Path) -> "Workspace":
        """
        Raises:
            ConfigError: If the file does not exist
        """
        project_file = Path(project_file)
        if not project_file.exists():
            raise ConfigError(f"Config file not found: {project_file}")
        return cls(project_file.resolve())

    @staticmethod
    def environment(root: Path) -> Dict[str, str]:
        """
        Process environment over the variables of `<root>/.env`.

        Exported variables win; `.env` only fills in what is missing.
        """
        env_file = Path(root) / ENV_FILE
        values: Dict[str, str] = {}
        if env_file.is_file():
            values = {
                key: value
                for key, value in dotenv_values(env_file).items()
                if value is not None
            }
        values.update(os.environ)
        return values

    def _read_project_file(self) -> None:
        if self.project_file is None:
            self.config = {}
            return
        try:
            with open(self.project_file, "r") as f:
                raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {self.project_file}: {str(e)}") from e

        if raw_config is not None and not isinstance(raw_config, dict):
            raise ConfigError(f"{self.project_file} must contain a mapping")
        self.config = self._expand_env_vars(raw_config or {})
        self.logger.debug(f"Raw project config: {self.config}")

    def _expand_env_vars(self, data: Any) -> Any:
        """
        Recursively expand ${VAR_NAME} and ${VAR_NAME:-default}.

        Raises:
            ConfigError: If a variable is not set and has no default
        """
        if isinstance(data, str):
            pattern = r"\$\{([^:}]+)(?::-([^}]*))?\}"

            def replace_env_var(match):
                var_name = match.group(1)
                default_value = match.group(2)
                env_value = os.getenv(var_name)
                if env_value is not None:
                    return env_value
                if default_value is not None:
                    return default_value
                raise ConfigError(
                    f"Environment variable '{var_name}' is not set and no default"
                )

            return re.sub(pattern, replace_env_var, data)
        if isinstance(data, dict):
            return {key: self._expand_env_vars(value) for key, value in data.items()}
        if isinstance(data, list):
            return [self._expand_env_vars(item) for item in data]
        return data

    @staticmethod
    def connection_from_env(
        environ: Optional[Mapping[str, str]] = None,
    ) -> Dict[str, Any]:
        """
        Build a connection section from DB_* environment variables.

        Raises:
            ConfigError: Naming every missing required variable
        """
        env = os.environ if environ is None else environ
        driver = env.get("DB_DRIVER")
        if not driver:
            raise ConfigError(
                "DB configuration not found. Set these environment variables: "
                "DB_DRIVER, DB_HOST, DB_DATABASE, DB_USERNAME, DB_PASSWORD"
            )
        kind = _DRIVER_ALIASES.get(driver.strip().lower())
        if kind is None:
            raise ConfigError(
                f"Unsupported DB_DRIVER '{driver}'. "
                f"Supported: {', '.join(sorted(_DRIVER_ALIASES))}"
            )

        if kind == "sqlite":
            required = ["DB_DATABASE"]
        else:
            required = ["DB_HOST", "DB_DATABASE", "DB_USERNAME", "DB_PASSWORD"]
        missing: List[str] = [var for var in required if env.get(var) is None]
        if missing:
            raise ConfigError(
                f"DB configuration not found. Missing environment variables: "
                f"{', '.join(missing)}"
            )

        if kind == "sqlite":
            return {"type": "sqlite", "path": env["DB_DATABASE"]}

        connection: Dict[str, Any] = {
            "type": "mssql",
            "server": env["DB_HOST"],
            "database": env["DB_DATABASE"],
            "username": env["DB_USERNAME"],
            "password": env["DB_PASSWORD"],
        }
        if env.get("DB_PORT"):
            connection["port"] = env["DB_PORT"]
        return connection

    def load(self) -> ProjectConfig:
        """
        Read, expand and validate the project configuration.

        Raises:
            ConfigError: If the configuration is missing or invalid
        """
        self._read_project_file()
        env = self.environment(self.root)
        data = dict(self.config)
        if not data.get("connection"):
            data["connection"] = self.connection_from_env(env)

        options = dict(data.get("options") or {})
        if "debug" not in options and _is_truthy(env.get("APP_DEBUG")):
            options["debug"] = True
        data["options"] = options
        data.setdefault("name", self.root.name)

        connection = data["connection"]
        if connection.get("type", "sqlite") == "sqlite" and connection.get("path"):
            path = Path(connection["path"])
            if connection["path"] != ":memory:" and not path.is_absolute():
                connection = {**connection, "path": str(self.root / path)}
                data["connection"] = connection

        try:
            project = ProjectConfig(**data)
        except ValidationError as e:
            source = self.project_file or "environment"
            raise ConfigError(f"Invalid configuration in {source}: {str(e)}") from e

        self.logger.debug(f"Loaded project config: {project.name}")
        return project


def _is_truthy(value: Optional[str]) -> bool:
    return bool(value) and value.strip().lower() not in ("0", "false", "no", "off", "")
