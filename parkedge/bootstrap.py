"""Start-up checks and the server destination file."""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Optional

from .types import (
    SYSTEM_FOLDER_CORE,
    SYSTEM_FOLDER_LOG,
    HttpRequestType,
    ServerDestination,
)

logger = logging.getLogger(__name__)

DEFAULT_SERVER_ADDRESS = "192.168.64.83"


def system_check(core_folder=SYSTEM_FOLDER_CORE, log_folder=SYSTEM_FOLDER_LOG) -> bool:
    """Make sure the core and log folders exist; False if one cannot be made."""
    for folder in (core_folder, log_folder):
        try:
            Path(folder).mkdir(parents=True, exist_ok=True)
        except OSError:
            logger.error("Failed to create the system folder: %s", folder)
            return False
    return True


def default_destinations() -> dict[int, ServerDestination]:
    """The standard server path and method for each request type."""
    table = (
        (HttpRequestType.SYNC_GENERAL, "PUT", "/parksync/sync"),
        (HttpRequestType.UPDATE_ENTER, "POST", "/parkstatus/enter"),
        (HttpRequestType.UPDATE_EXIT, "POST", "/parkstatus/exit"),
        (HttpRequestType.UPDATE_OVER, "POST", "/parkstatus/overtime"),
    )
    return {
        int(kind): ServerDestination(int(kind), path, method)
        for kind, method, path in table
    }


def write_destinations_file(path, server_address=DEFAULT_SERVER_ADDRESS) -> None:
    """Write the server address and default destinations as XML."""
    root = ET.Element("ServerSettings")
    ET.SubElement(root, "ServerAddress").text = server_address
    for dest in default_destinations().values():
        node = ET.SubElement(root, "Request")
        ET.SubElement(node, "RequestType").text = str(dest.request_type)
        ET.SubElement(node, "HTTPRequestMethod").text = dest.http_method
        ET.SubElement(node, "TargetPath").text = dest.target_path
    ET.indent(root, space="\t")
    body = ET.tostring(root, encoding="unicode")
    Path(path).write_text(
        '<?xml version="1.0" encoding="utf-8"?>\n' + body + "\n", encoding="utf-8"
    )


def _child_text(node: ET.Element, tag: str) -> str:
    child = node.find(tag)
    if child is None:
        raise ValueError(f"missing element {tag!r} in request")
    return (child.text or "").strip()


def load_destinations_file(path) -> tuple[Optional[str], dict[int, ServerDestination]]:
    """Read the server address and destinations written by write_destinations_file."""
    try:
        root = ET.parse(path).getroot()
    except ET.ParseError as error:
        raise ValueError(f"malformed server settings {path}: {error}") from error
    if root.tag != "ServerSettings":
        root = root.find("ServerSettings")
        if root is None:
            raise ValueError(f"no ServerSettings in {path}")

    address: Optional[str] = None
    destinations: dict[int, ServerDestination] = {}
    for node in root:
        if node.tag == "ServerAddress":
            address = (node.text or "").strip()
        elif node.tag == "Request":
            try:
                request_type = int(_child_text(node, "RequestType"))
            except ValueError as error:
                raise ValueError(f"invalid request in {path}: {error}") from error
            destinations[request_type] = ServerDestination(
                request_type,
                _child_text(node, "TargetPath"),
                _child_text(node, "HTTPRequestMethod"),
            )
    for dest in destinations.values():
        logger.info("(%d) %s, %s", dest.request_type, dest.http_method, dest.target_path)
    return address, destinations