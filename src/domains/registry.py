"""Domain Registry.

Static list of the domain servers the router can reach. The built-in
domains are launched as Node.js subprocesses from ``domains_root``; YAML
files in ``domains_path`` override a built-in entry with the same name or
add new ones.
"""

from pathlib import Path
from typing import Any, Iterator, Optional

from pydantic import ValidationError

from shared.config import RouterSettings, get_domain_configs
from shared.logging import get_logger
from shared.models import DomainInfo

logger = get_logger(__name__)


class DomainConfigError(ValueError):
    """A domain definition could not be loaded."""
    pass


BUILTIN_DOMAINS: list[dict[str, Any]] = [
    {
        "name": "developer",
        "description": "Software development context with entities like projects, components, and tasks",
        "entity_types": ["project", "component", "task", "issue", "commit"],
    },
    {
        "name": "project",
        "description": "Project management context with entities like projects, tasks, and resources",
        "entity_types": ["project", "task", "resource", "milestone", "risk"],
    },
    {
        "name": "student",
        "description": "Educational context with entities like courses, assignments, and exams",
        "entity_types": ["course", "assignment", "exam", "note", "grade"],
    },
    {
        "name": "qualitativeresearch",
        "description": "Qualitative research context with entities like studies, participants, and interviews",
        "entity_types": ["study", "participant", "interview", "code", "theme"],
    },
    {
        "name": "quantitativeresearch",
        "description": "Quantitative research context with entities like datasets, variables, and analyses",
        "entity_types": ["dataset", "variable", "analysis", "model", "result"],
    },
]


class DomainRegistry:
    """
    Immutable, ordered collection of DomainInfo entries.

    Lookups are case-insensitive and always hand back the canonical entry.
    """

    def __init__(self, domains: list[DomainInfo]) -> None:
        self._domains: dict[str, DomainInfo] = {}
        for domain in domains:
            key = domain.name.lower()
            if key in self._domains:
                raise DomainConfigError(f"Domain '{domain.name}' is defined twice")
            self._domains[key] = domain

    def __iter__(self) -> Iterator[DomainInfo]:
        return iter(self._domains.values())

    def __len__(self) -> int:
        return len(self._domains)

    def __contains__(self, name: str) -> bool:
        return self.find(name) is not None

    def find(self, name: str) -> Optional[DomainInfo]:
        """Case-insensitive lookup."""
        if not name:
            return None
        return self._domains.get(name.strip().lower())

    def names(self) -> list[str]:
        return [d.name for d in self._domains.values()]

    def to_public_list(self) -> list[dict[str, Any]]:
        return [d.to_public_dict() for d in self._domains.values()]


def _builtin_entry(entry: dict[str, Any], domains_root: str) -> dict[str, Any]:
    root = Path(domains_root).expanduser().resolve()
    return {
        **entry,
        "command": "node",
        "args": [str(root / entry["name"] / "index.js")],
    }


def _with_data_env(domain: DomainInfo, data_dir: Optional[str]) -> DomainInfo:
    """Point a subprocess domain at its graph and session files."""
    if not data_dir or domain.is_network:
        return domain

    base = Path(data_dir).expanduser()
    env = {
        "MEMORY_FILE_PATH": str(base / f"{domain.name}-memory.json"),
        "SESSIONS_FILE_PATH": str(base / f"{domain.name}-sessions.json"),
        **(domain.env or {}),
    }
    return domain.model_copy(update={"env": env})


def build_domain(data: dict[str, Any], source: str = "config") -> DomainInfo:
    """Validate one domain definition."""
    try:
        return DomainInfo.model_validate(data)
    except ValidationError as e:
        raise DomainConfigError(f"Invalid domain definition in {source}: {e}") from e


def load_domain_registry(settings: RouterSettings) -> DomainRegistry:
    """
    Build the registry from built-ins, YAML overrides and the enabled subset.

    Args:
        settings: Router settings

    Returns:
        DomainRegistry in built-in order, followed by YAML-only domains

    Raises:
        DomainConfigError: If a definition is invalid or an enabled domain
            does not exist
    """
    entries: dict[str, dict[str, Any]] = {
        entry["name"]: _builtin_entry(entry, settings.domains_root)
        for entry in BUILTIN_DOMAINS
    }

    for stem, data in get_domain_configs(settings.domains_path).items():
        data = {"name": stem, **data}
        name = data["name"]
        existing = next((k for k in entries if k.lower() == name.lower()), None)
        if existing is not None:
            # An override replaces the recipe entirely, but keeps metadata it omits
            base = {"description": entries[existing]["description"]}
            if "entity_types" not in data and "entityTypes" not in data:
                base["entity_types"] = entries[existing]["entity_types"]
            merged = {**base, **data}
            entries = {
                (name if key == existing else key): (merged if key == existing else value)
                for key, value in entries.items()
            }
        else:
            entries[name] = data
        logger.info("Domain configuration loaded", domain=name, source=stem)

    domains = [
        _with_data_env(build_domain(data, source=name), settings.data_dir)
        for name, data in entries.items()
    ]

    if settings.enabled_domains:
        wanted = [n.strip().lower() for n in settings.enabled_domains if n.strip()]
        known = {d.name.lower() for d in domains}
        unknown = [n for n in wanted if n not in known]
        if unknown:
            raise DomainConfigError(
                f"Unknown domains requested: {', '.join(unknown)}. "
                f"Available domains: {', '.join(d.name for d in domains)}"
            )
        domains = [d for d in domains if d.name.lower() in wanted]

    registry = DomainRegistry(domains)
    logger.info("Domain registry ready", domains=registry.names())
    return registry
