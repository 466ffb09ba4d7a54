"""
Channel Naming.

Displays and terminals subscribe per outlet, per floor, per station
or per staff role.
"""

from __future__ import annotations


def _validate_positive_id(id_value: int, name: str) -> None:
    if not isinstance(id_value, int) or id_value <= 0:
        raise ValueError(f"{name} must be a positive integer, got {id_value}")


def channel_outlet(outlet_id: int) -> str:
    """Channel for every event of an outlet."""
    _validate_positive_id(outlet_id, "outlet_id")
    return f"outlet:{outlet_id}"


def channel_floor(outlet_id: int, floor_id: int) -> str:
    """Channel for the table map of one floor."""
    _validate_positive_id(outlet_id, "outlet_id")
    _validate_positive_id(floor_id, "floor_id")
    return f"floor:{outlet_id}:{floor_id}"


def channel_station(outlet_id: int, station: str) -> str:
    """Channel for a preparation station's ticket queue."""
    _validate_positive_id(outlet_id, "outlet_id")
    if not station:
        raise ValueError("station must be a non-empty string")
    return f"station:{outlet_id}:{station}"


def channel_role(outlet_id: int, role: str) -> str:
    """Channel for every terminal logged in with a given staff role."""
    _validate_positive_id(outlet_id, "outlet_id")
    if not role:
        raise ValueError("role must be a non-empty string")
    return f"role:{outlet_id}:{role.upper()}"
