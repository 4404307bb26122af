"""Starting and stopping docker containers for running tests."""

from __future__ import annotations

import contextlib
import json
import subprocess
import time
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Optional


class DockerError(Exception):
    """Raised when a docker command fails or returns unusable output."""


@dataclass(frozen=True)
class Container:
    """A container started for tests and the host address of its port."""

    name: str
    host_port: str


def _docker(*args: str, stderr: int = subprocess.DEVNULL) -> bytes:
    result = subprocess.run(
        ["docker", *args], stdout=subprocess.PIPE, stderr=stderr, check=True
    )
    return result.stdout


def _join_host_port(host: str, port: str) -> str:
    if ":" in host:
        return f"[{host}]:{port}"
    return f"{host}:{port}"


def start_container(
    image: str,
    name: str,
    port: str,
    docker_args: Sequence[str] = (),
    app_args: Sequence[str] = (),
) -> Container:
    """Start image as name, or reuse a running container of that name.

    Tests may run in separate processes, so a failed start is retried in
    case another process is bringing the same container up.
    """
    for attempt in range(2):
        try:
            return _start_container(image, name, port, docker_args, app_args)
        except DockerError:
            time.sleep((attempt + 1) * 0.1)
    return _start_container(image, name, port, docker_args, app_args)


def stop_container(container_id: str) -> None:
    """Stop and remove a container with its volumes."""
    try:
        _docker("stop", container_id)
    except (OSError, subprocess.CalledProcessError) as exc:
        raise DockerError(f"could not stop container: {exc}") from exc
    try:
        _docker("rm", container_id, "-v")
    except (OSError, subprocess.CalledProcessError) as exc:
        raise DockerError(f"could not remove container: {exc}") from exc


def dump_container_logs(container_id: str) -> Optional[bytes]:
    """Return the combined output logs of a container, or None on failure."""
    try:
        return _docker("logs", container_id, stderr=subprocess.STDOUT)
    except (OSError, subprocess.CalledProcessError):
        return None


def _start_container(
    image: str,
    name: str,
    port: str,
    docker_args: Sequence[str],
    app_args: Sequence[str],
) -> Container:
    with contextlib.suppress(DockerError):
        return _existing(name, port)

    args = ["run", "-P", "-d", "--name", name, *docker_args, image, *app_args]
    try:
        out = _docker(*args)
    except (OSError, subprocess.CalledProcessError) as exc:
        raise DockerError(f"could not start container {image}: {exc}") from exc

    container_id = out.decode("utf-8", "replace")[:12]
    try:
        host_ip, host_port = extract_ip_port(container_id, port)
    except DockerError as exc:
        with contextlib.suppress(DockerError):
            stop_container(container_id)
        raise DockerError(f"could not extract ip/port: {exc}") from exc

    return Container(name, _join_host_port(host_ip, host_port))


def _existing(name: str, port: str) -> Container:
    try:
        host_ip, host_port = extract_ip_port(name, port)
    except DockerError:
        raise DockerError("container not running") from None
    return Container(name, _join_host_port(host_ip, host_port))


def extract_ip_port(name: str, port: str) -> tuple[str, str]:
    """Return the host IP and host port bound to port/tcp of a container.

    IPv6 bindings are skipped; an empty host IP, as some runtimes report,
    becomes localhost.
    """
    # Joins the bindings with commas so both IPv4 and IPv6 entries form a
    # valid JSON list.
    template = (
        '[{{range $i,$v := (index .NetworkSettings.Ports "%s/tcp")}}'
        "{{if $i}},{{end}}{{json $v}}{{end}}]" % port
    )

    try:
        out = _docker("inspect", "-f", template, name)
    except (OSError, subprocess.CalledProcessError) as exc:
        raise DockerError(f"could not inspect container {name}: {exc}") from exc

    try:
        docs = json.loads(out)
    except ValueError as exc:
        raise DockerError(f"could not decode json: {exc}") from exc
    if docs is None:
        docs = []
    if not isinstance(docs, list) or not all(isinstance(doc, dict) for doc in docs):
        raise DockerError("could not decode json: expected a list of bindings")

    for doc in docs:
        host_ip = doc.get("HostIp") or ""
        host_port = doc.get("HostPort") or ""
        if host_ip == "::":
            continue
        if host_ip == "":
            return "localhost", host_port
        return host_ip, host_port

    raise DockerError("could not locate ip/port")