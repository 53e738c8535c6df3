"""
Docker Engine API endpoint definitions
"""

from __future__ import annotations

from urllib.parse import quote


def _flag(value: bool) -> str:
    return "true" if value else "false"


def _segment(value: str, safe: str = "") -> str:
    return quote(value, safe=safe)


class EngineEndpoints:
    """
    Engine API paths, relative to ``http://localhost`` on the unix socket
    """

    PING = "/_ping"
    INFO = "/info"
    VERSION = "/version"

    CONTAINERS_LIST = "/containers/json?all=true"
    IMAGES_LIST = "/images/json"
    VOLUMES_LIST = "/volumes"
    VOLUMES_PRUNE = "/volumes/prune"
    NETWORKS_LIST = "/networks"

    @staticmethod
    def container_inspect(container_id: str) -> str:
        return f"/containers/{_segment(container_id)}/json"

    @staticmethod
    def container_action(container_id: str, action: str) -> str:
        return f"/containers/{_segment(container_id)}/{action}"

    @staticmethod
    def container_remove(container_id: str, force: bool) -> str:
        return f"/containers/{_segment(container_id)}?force={_flag(force)}"

    @staticmethod
    def container_logs(container_id: str, follow: bool, tail: int, timestamps: bool) -> str:
        return (
            f"/containers/{_segment(container_id)}/logs"
            f"?stdout=true&stderr=true&follow={_flag(follow)}&tail={max(0, tail)}&timestamps={_flag(timestamps)}"
        )

    @staticmethod
    def image_remove(image_id: str, force: bool) -> str:
        return f"/images/{_segment(image_id, safe=':/@')}?force={_flag(force)}"

    @staticmethod
    def volume_remove(name: str) -> str:
        return f"/volumes/{_segment(name)}"

    @staticmethod
    def network_remove(network_id: str) -> str:
        return f"/networks/{_segment(network_id)}"
