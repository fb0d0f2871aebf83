"""Cross-domain relation observations.

Domain servers have no notion of an entity in another domain, so a
cross-domain relation is written as one free-text observation on each side.
All knowledge of that text format lives here.

The router only writes these observations. ``parse_observation`` is the
reading side of the same format, for callers that inspect the observations
a domain returns from loadcontext; nothing in the router reads them back.
"""

import re
from typing import Any, Optional

from shared.models import CrossDomainReference

_OBSERVATION = re.compile(
    r"^Related (?P<direction>to|from) (?P<entity>.+) \((?P<domain>[^()]+) domain\) via (?P<relation>.+)$"
)


def outbound_observation(to_entity: str, to_domain: str, relation_type: str) -> str:
    """Observation recorded on the source entity."""
    return f"Related to {to_entity} ({to_domain} domain) via {relation_type}"


def inbound_observation(from_entity: str, from_domain: str, relation_type: str) -> str:
    """Observation recorded on the target entity."""
    return f"Related from {from_entity} ({from_domain} domain) via {relation_type}"


def observation_payload(entity_name: str, observation: str) -> dict[str, Any]:
    """buildcontext arguments appending one observation to one entity."""
    return {
        "type": "observations",
        "data": {
            "observations": [
                {
                    "entityName": entity_name,
                    "contents": [observation],
                }
            ]
        },
    }


def parse_observation(text: str) -> Optional[CrossDomainReference]:
    """
    Recover a cross-domain reference from an observation string.

    Returns:
        The reference, or None when the text is not a cross-domain observation
    """
    match = _OBSERVATION.match(text.strip())
    if not match:
        return None
    return CrossDomainReference(
        direction=match.group("direction"),
        entity=match.group("entity"),
        domain=match.group("domain"),
        relation_type=match.group("relation"),
    )
