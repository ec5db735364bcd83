"""Upload of queued messages to the parking server over HTTP."""

from __future__ import annotations

import json
import logging
import queue
import socket
import ssl
import threading
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Any, Optional, Union

from .types import ServerDestination

logger = logging.getLogger(__name__)

SERVER_PORT = 20180


class UploadError(Exception):
    """Raised when a message cannot be prepared or delivered to the server."""


def parse_status_line(line: Union[str, bytes]) -> tuple[str, int, str]:
    """Split an HTTP status line into (version, status code, reason)."""
    if isinstance(line, bytes):
        line = line.decode("latin-1")
    parts = line.strip().split(None, 2)
    if len(parts) < 2 or not parts[0].startswith("HTTP/") or not parts[1].isdigit():
        raise UploadError(f"invalid response: {line!r}")
    reason = parts[2] if len(parts) == 3 else ""
    return parts[0], int(parts[1]), reason


def _child_text(node: ET.Element, tag: str) -> str:
    child = node.find(tag)
    if child is None:
        raise ValueError(f"missing element {tag!r} in request")
    return (child.text or "").strip()


class ServerNetworkHandler:
    """Takes messages from a queue and uploads them to the server.

    Each message must provide ``to_dict()`` whose ``httpRequest`` entry
    selects the destination path and method read from the settings file.
    Used as a context manager, the upload thread is started on entry, and
    stopped and the settings written back on exit.
    """

    wait_seconds = 2.0
    destroy_seconds = 3.0
    retry_seconds = 3.0
    poll_seconds = 0.2
    timeout_seconds = 10.0

    def __init__(self, message_queue: Any, settings_path, sensor_id: str = "",
                 time_zone: str = "+00") -> None:
        if message_queue is None:
            raise ValueError("a message queue is required")
        self.message_queue = message_queue
        self.settings_path = Path(settings_path)
        self.sensor_id = sensor_id
        self.time_zone = time_zone
        self.server_address = ""
        self.secure_connection = ""
        self.port = SERVER_PORT
        self.destinations: dict[int, ServerDestination] = {}
        self.dump_path: Optional[Path] = None
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.load_settings(self.settings_path)

    def __enter__(self) -> "ServerNetworkHandler":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.destroy()
        self.write_settings()

    @property
    def running(self) -> bool:
        """True while the upload thread is alive."""
        return self._thread is not None and self._thread.is_alive()

    def load_settings(self, path) -> None:
        """Read the server address, secure mode and destinations from XML."""
        path = Path(path)
        try:
            root = ET.parse(path).getroot()
        except ET.ParseError as error:
            raise ValueError(f"malformed server settings {path}: {error}") from error
        if root.tag != "ServerSettings":
            found = root.find("ServerSettings")
            if found is None:
                raise ValueError(f"no ServerSettings in {path}")
            root = found

        for node in root:
            if node.tag == "ServerAddress":
                self.server_address = (node.text or "").strip()
            elif node.tag == "SecureConnection":
                self.secure_connection = (node.text or "").strip()
            elif node.tag == "Request":
                try:
                    request_type = int(_child_text(node, "RequestType"))
                except ValueError as error:
                    raise ValueError(f"invalid request in {path}: {error}") from error
                self.destinations[request_type] = ServerDestination(
                    request_type,
                    _child_text(node, "TargetPath"),
                    _child_text(node, "HTTPRequestMethod"),
                )

    def write_settings(self) -> None:
        """Write the current server settings back to the settings file."""
        root = ET.Element("ServerSettings")
        ET.SubElement(root, "ServerAddress").text = self.server_address
        ET.SubElement(root, "SecureConnection").text = self.secure_connection
        for dest in self.destinations.values():
            node = ET.SubElement(root, "Request")
            ET.SubElement(node, "RequestType").text = str(dest.request_type)
            ET.SubElement(node, "HTTPRequestMethod").text = dest.http_method
            ET.SubElement(node, "TargetPath").text = dest.target_path
        ET.indent(root, space="\t")
        body = ET.tostring(root, encoding="unicode")
        self.settings_path.write_text(
            '<?xml version="1.0" encoding="utf-8"?>\n' + body + "\n", encoding="utf-8"
        )

    def make_http_message(self, method: str, target: str, contents: str) -> str:
        """Build the full HTTP request text carrying a JSON body."""
        length = len(contents.encode("utf-8"))
        return (
            f"{method} {target} HTTP/1.1\r\n"
            f"Host: {self.server_address}\r\n"
            "User-Agent: C/1.0\r\n"
            "Content-Type: application/json; charset=utf-8 \r\n"
            "Accept: */*\r\n"
            f"Content-Length: {length}\r\n"
            f"sensorid: {self.sensor_id}\r\n"
            "Connection: close\r\n\r\n"
            f"{contents}"
        )

    def prepare_upload(self, message: Any) -> tuple[ServerDestination, str]:
        """Find the destination of a message and render its JSON body."""
        root = dict(message.to_dict())
        request = root.pop("httpRequest", -1)
        try:
            request = int(request)
        except (TypeError, ValueError) as error:
            raise UploadError(f"message has an invalid request type: {request!r}") from error
        if request < 0:
            raise UploadError(f"message has negative request type: {request}")
        dest = self.destinations.get(request)
        if dest is None:
            raise UploadError(f"message has wrong request type: {request}")
        root["timeZone"] = self.time_zone
        body = json.dumps(root, indent=4)
        if self.dump_path is not None:
            Path(self.dump_path).write_text(body + "\n", encoding="utf-8")
        return dest, body

    def upload(self, message: Any) -> bytes:
        """Send one message to its destination; return the response body."""
        dest, body = self.prepare_upload(message)
        return self.send_http(dest.http_method, body, dest.target_path)

    def send_http(self, method: str, body: str, target: str) -> bytes:
        """Send a request in plain HTTP and return the response body."""
        request = self.make_http_message(method, target, body).encode("utf-8")
        try:
            with socket.create_connection(
                (self.server_address, self.port), timeout=self.timeout_seconds
            ) as sock:
                sock.sendall(request)
                with sock.makefile("rb") as stream:
                    return self._read_response(stream)
        except OSError as error:
            raise UploadError(f"HTTP request failed: {error}") from error

    def send_secure_http(self, method: str, body: str, target: str) -> str:
        """Send a request over TLS without certificate checks; return the reply line."""
        request = self.make_http_message(method, target, body).encode("utf-8")
        context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
        try:
            with socket.create_connection(
                (self.server_address, self.port), timeout=self.timeout_seconds
            ) as raw:
                logger.info("Connection OK!")
                with context.wrap_socket(raw, server_hostname=self.server_address) as sock:
                    logger.info("Sending request")
                    sock.sendall(request)
                    logger.info("Sending request OK!")
                    reply = b""
                    while b"\r\n" not in reply:
                        chunk = sock.recv(4096)
                        if not chunk:
                            break
                        reply += chunk
        except OSError as error:
            raise UploadError(f"secure HTTP request failed: {error}") from error
        line = reply.split(b"\r\n", 1)[0].decode("latin-1")
        logger.info("Reply: %s", line)
        return line

    @staticmethod
    def _read_response(stream) -> bytes:
        _, status, reason = parse_status_line(stream.readline())
        if status != 200:
            raise UploadError(f"response returned with status code {status}: {reason}")
        while True:
            header = stream.readline()
            if header in (b"\r\n", b"\n", b""):
                break
            logger.debug("%s", header.decode("latin-1").rstrip())
        return stream.read()

    def start(self) -> None:
        """Start the upload thread."""
        if self.running:
            raise RuntimeError("the upload handler is already running")
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="server-upload", daemon=True)
        self._thread.start()

    def _run(self) -> None:
        logger.info("Starting the HTTP message uploading handler")
        while not self._stop.is_set():
            try:
                message = self.message_queue.get(timeout=self.poll_seconds)
            except queue.Empty:
                continue
            logger.debug("%s", message.to_string())
            try:
                dest, body = self.prepare_upload(message)
            except UploadError as error:
                logger.error("Dropping message: %s", error)
                continue
            while not self._stop.is_set():
                try:
                    self.send_http(dest.http_method, body, dest.target_path)
                    break
                except UploadError as error:
                    logger.warning("Upload failed (%s). Trying again in %s seconds.",
                                   error, self.retry_seconds)
                    self._stop.wait(self.retry_seconds)
        logger.info("The HTTP message uploading handler has stopped")

    def destroy(self) -> None:
        """Stop the upload thread."""
        logger.info("Destroying the HTTP message uploading handler")
        self._stop.set()
        if self._thread is not None:
            self._thread.join(self.wait_seconds)
            if self._thread.is_alive():
                self._thread.join(self.destroy_seconds)
            if self._thread.is_alive():
                logger.error("The upload thread did not stop in time")
        logger.info("The HTTP message uploading handler has been destroyed")