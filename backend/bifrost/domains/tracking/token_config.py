"""Token templates for markers that are not tied to a player actor."""

from dataclasses import dataclass
from typing import Any

from bifrost.models.host import Disposition, DisplayMode
from bifrost.models.tracking import MarkerType


@dataclass(frozen=True)
class TokenTemplate:
    image: str
    size: float
    disposition: Disposition
    vision: bool = False


TOKEN_TEMPLATES: dict[str, TokenTemplate] = {
    MarkerType.ENEMY.value: TokenTemplate("icons/svg/mystery-man-red.svg", 1, Disposition.HOSTILE),
    MarkerType.ITEM.value: TokenTemplate("icons/svg/item-bag.svg", 0.5, Disposition.NEUTRAL),
    MarkerType.NPC.value: TokenTemplate("icons/svg/mystery-man.svg", 1, Disposition.NEUTRAL),
    MarkerType.UNKNOWN.value: TokenTemplate("icons/svg/hazard.svg", 1, Disposition.NEUTRAL),
}


def template_for(marker_type: str) -> TokenTemplate:
    """Template for ``marker_type``; unlisted types use the ``unknown`` one."""
    return TOKEN_TEMPLATES.get(marker_type, TOKEN_TEMPLATES[MarkerType.UNKNOWN.value])


def physical_state(metadata: dict[str, Any]) -> dict[str, Any]:
    """Rotation, visibility and elevation of a new token."""
    return {
        "rotation": metadata.get("rotation") or 0,
        "hidden": bool(metadata.get("hidden") or False),
        "elevation": metadata.get("elevation") or 0,
    }


def standalone_descriptor(
    name: str,
    x: float,
    y: float,
    marker_type: str,
    metadata: dict[str, Any],
) -> dict[str, Any]:
    """Descriptor for an unlinked token; ``metadata`` may override image, size and alpha."""
    template = template_for(marker_type)
    size = metadata.get("size") or template.size
    return {
        "name": name,
        "img": metadata.get("image") or template.image,
        "x": x,
        "y": y,
        "width": size,
        "height": size,
        "disposition": int(template.disposition),
        "vision": template.vision,
        **physical_state(metadata),
        "alpha": metadata.get("alpha") or 1.0,
        "display_name": int(DisplayMode.HOVER),
        "display_bars": int(DisplayMode.NONE),
        "flags": {
            "bifrost": {
                "type": marker_type,
                "standalone": True,
                "physicalToken": True,
            }
        },
    }


def player_descriptor(
    actor_id: str,
    actor_name: str,
    prototype: dict[str, Any],
    x: float,
    y: float,
    metadata: dict[str, Any],
) -> dict[str, Any]:
    """Descriptor for a token linked to a player actor, built on its prototype."""
    descriptor = dict(prototype)
    descriptor.update(
        {
            "name": actor_name,
            "actor_id": actor_id,
            "actor_link": True,
            "x": x,
            "y": y,
            "disposition": int(Disposition.FRIENDLY),
            "vision": True,
            "display_name": int(DisplayMode.OWNER_HOVER),
            "display_bars": int(DisplayMode.OWNER_HOVER),
            **physical_state(metadata),
        }
    )
    return descriptor
