"""In-memory store of RSA keys for signing and verifying tokens."""

from __future__ import annotations

import json
import os
from collections.abc import Iterator
from dataclasses import dataclass
from typing import Union

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

# A limit that fits any reasonable PEM file and guards against reading
# endless special files.
_MAX_PEM_SIZE = 1024 * 1024

_INVALID_KEY = "invalid key: Key must be a PEM encoded PKCS1 or PKCS8 key"


@dataclass(frozen=True)
class _Key:
    private_pem: str
    public_pem: str


def to_public_pem(private_pem: str) -> str:
    """Return the PEM encoded public key for a PEM encoded RSA private key."""
    data = private_pem.encode("utf-8")
    if b"-----BEGIN" not in data:
        raise ValueError(_INVALID_KEY)

    try:
        key = serialization.load_pem_private_key(data, password=None)
    except (ValueError, TypeError, UnsupportedAlgorithm) as exc:
        raise ValueError(str(exc) or _INVALID_KEY) from exc

    if not isinstance(key, rsa.RSAPrivateKey):
        raise ValueError("key is not a valid RSA private key")

    public = key.public_key().public_bytes(
        serialization.Encoding.PEM,
        serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    return public.decode("ascii")


def _walk(directory: Union[str, "os.PathLike[str]"]) -> Iterator[os.DirEntry]:
    """Yield every non-directory entry below directory in lexical order."""
    with os.scandir(directory) as it:
        entries = sorted(it, key=lambda entry: entry.name)
    for entry in entries:
        if entry.is_dir(follow_symlinks=False):
            yield from _walk(entry.path)
        else:
            yield entry


def _extension(name: str) -> str:
    dot = name.rfind(".")
    return name[dot:] if dot >= 0 else ""


class KeyStore:
    """Keys held in memory, looked up by key id."""

    def __init__(self) -> None:
        self._store: dict[str, _Key] = {}

    def __len__(self) -> int:
        return len(self._store)

    def _add(self, kid: str, private_pem: str) -> None:
        try:
            public_pem = to_public_pem(private_pem)
        except ValueError as exc:
            raise ValueError(f"converting private PEM to public: {exc}") from exc
        self._store[kid] = _Key(private_pem, public_pem)

    def load_by_json(self, document: str) -> int:
        """Load one key from a JSON document with "key" and "pem" fields.

        Returns the number of keys in the store; an empty document loads nothing.
        """
        if document == "":
            return 0

        try:
            doc = json.loads(document)
        except json.JSONDecodeError as exc:
            raise ValueError(f"unable to marshal document: {exc}") from exc
        if doc is None:
            doc = {}
        if not isinstance(doc, dict):
            raise ValueError("unable to marshal document: expected a JSON object")

        kid = doc.get("key", "")
        private_pem = doc.get("pem", "")
        if not isinstance(kid, str) or not isinstance(private_pem, str):
            raise ValueError("unable to marshal document: key and pem must be strings")

        self._add(kid, private_pem)
        return len(self._store)

    def load_by_file_system(self, root: Union[str, "os.PathLike[str]"]) -> int:
        """Load every .pem file below root, using its name without .pem as key id.

        Returns the number of keys in the store.
        """
        for entry in _walk(root):
            if _extension(entry.name) != ".pem":
                continue
            with open(entry.path, "rb") as file:
                data = file.read(_MAX_PEM_SIZE)
            kid = entry.name[: -len(".pem")]
            self._add(kid, data.decode("utf-8", "replace"))
        return len(self._store)

    def private_key(self, kid: str) -> str:
        """Return the private PEM for kid, or raise KeyError."""
        try:
            return self._store[kid].private_pem
        except KeyError:
            raise KeyError("kid lookup failed") from None

    def public_key(self, kid: str) -> str:
        """Return the public PEM for kid, or raise KeyError."""
        try:
            return self._store[kid].public_pem
        except KeyError:
            raise KeyError("kid lookup failed") from None