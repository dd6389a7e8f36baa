# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/graph_connect

"""
File-backed X.509 certificate stores, looked up by SHA-1 thumbprint.

A store is a directory of PEM files laid out as `<root>/<store name>/*.pem`.
Each file holds one certificate and, for client certificates, its private key.
"""

import re
from datetime import datetime
from enum import StrEnum
from pathlib import Path
from typing import Any

from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.serialization import Encoding
from pydantic import BaseModel, ConfigDict, SecretStr

from graph_connect.exceptions import CertificateStoreError
from graph_connect.utils.logger import logger

_PEM_BLOCK = re.compile(r"-----BEGIN ([A-Z0-9 ]+)-----.+?-----END \1-----", re.DOTALL)


class StoreName(StrEnum):
    MY = "My"
    ROOT = "Root"
    CERTIFICATE_AUTHORITY = "CertificateAuthority"
    TRUSTED_PEOPLE = "TrustedPeople"


class StoreLocation(StrEnum):
    CURRENT_USER = "CurrentUser"
    LOCAL_MACHINE = "LocalMachine"


DEFAULT_STORE_ROOTS: dict[StoreLocation, Path] = {
    StoreLocation.CURRENT_USER: Path.home() / ".graph_connect" / "certs",
    StoreLocation.LOCAL_MACHINE: Path("/etc/graph_connect/certs"),
}


def normalize_thumbprint(thumbprint: str) -> str:
    """Strips spaces and colons and upper-cases a hex thumbprint."""
    return re.sub(r"[\s:]", "", thumbprint).upper()


class StoreCertificate(BaseModel):
    """
    A certificate read from a store.

    Attributes:
        thumbprint (str): Upper-case hex SHA-1 digest of the DER encoded certificate.
        subject (str): RFC 4514 subject name.
        not_valid_after (datetime): End of the validity period (UTC).
        certificate_pem (str): The certificate in PEM format.
        private_key_pem (SecretStr | None): The private key in PEM format, if the file carried a usable one.
    """

    model_config = ConfigDict(frozen=True)

    thumbprint: str
    subject: str
    not_valid_after: datetime
    certificate_pem: str
    private_key_pem: SecretStr | None = None

    @property
    def has_private_key(self) -> bool:
        return self.private_key_pem is not None

    def to_client_credential(self) -> dict[str, Any]:
        """
        Returns the certificate credential in the shape MSAL's ConfidentialClientApplication expects.

        Raises:
            CertificateStoreError: If the certificate has no private key.
        """
        if self.private_key_pem is None:
            raise CertificateStoreError(f"Certificate {self.thumbprint} has no private key.")
        return {
            "private_key": self.private_key_pem.get_secret_value(),
            "thumbprint": self.thumbprint,
            "public_certificate": self.certificate_pem,
        }


def _matching_private_key(key_pem: str, cert: x509.Certificate) -> bool:
    """
    Checks that an unencrypted PEM private key parses and belongs to the certificate.
    """
    try:
        key = serialization.load_pem_private_key(key_pem.encode("ascii"), password=None)
    except (TypeError, ValueError, UnsupportedAlgorithm) as e:
        logger.warning(f"Ignoring unusable private key for {cert.subject.rfc4514_string()}: {e}")
        return False

    spki = serialization.PublicFormat.SubjectPublicKeyInfo
    if key.public_key().public_bytes(Encoding.DER, spki) != cert.public_key().public_bytes(Encoding.DER, spki):
        logger.warning(f"Ignoring private key that does not match {cert.subject.rfc4514_string()}")
        return False
    return True


def load_pem_certificate(data: str) -> StoreCertificate:
    """
    Parses the first certificate (and the first private key, if any) from PEM text.

    The private key must be unencrypted and belong to the certificate. Any other key is
    ignored and the certificate is returned without one.

    Args:
        data: PEM text containing at least one CERTIFICATE block.

    Returns:
        StoreCertificate: The parsed certificate.

    Raises:
        ValueError: If the text holds no parseable certificate.
    """
    cert_pem: str | None = None
    key_pem: str | None = None
    for match in _PEM_BLOCK.finditer(data):
        label = match.group(1)
        if label == "CERTIFICATE" and cert_pem is None:
            cert_pem = match.group(0)
        elif label.endswith("PRIVATE KEY") and key_pem is None:
            key_pem = match.group(0)

    if cert_pem is None:
        raise ValueError("No CERTIFICATE block found.")

    cert = x509.load_pem_x509_certificate(cert_pem.encode("ascii"))
    if key_pem is not None and not _matching_private_key(key_pem, cert):
        key_pem = None

    return StoreCertificate(
        thumbprint=cert.fingerprint(hashes.SHA1()).hex().upper(),
        subject=cert.subject.rfc4514_string(),
        not_valid_after=cert.not_valid_after_utc,
        certificate_pem=cert.public_bytes(Encoding.PEM).decode("ascii"),
        private_key_pem=SecretStr(key_pem) if key_pem else None,
    )


class CertificateStore:
    """
    A named certificate store at a given location, opened read-only.

    Attributes:
        store_name (StoreName): The store to read (e.g. My).
        store_location (StoreLocation): CurrentUser or LocalMachine.
        path (Path): The directory backing the store.
    """

    def __init__(
        self,
        store_name: StoreName = StoreName.MY,
        store_location: StoreLocation = StoreLocation.CURRENT_USER,
        root: Path | None = None,
    ) -> None:
        """
        Initialize the CertificateStore.

        Args:
            store_name: The store to read.
            store_location: The location of the store. Selects the default root directory.
            root: Directory holding the store folders. Overrides the location default.
        """
        self.store_name = store_name
        self.store_location = store_location
        self.path = (root or DEFAULT_STORE_ROOTS[store_location]) / store_name.value
        self._certificates: list[StoreCertificate] | None = None

    @property
    def is_open(self) -> bool:
        return self._certificates is not None

    def open(self) -> None:
        """
        Reads every PEM file in the store directory.
        A missing directory is an empty store. Files that cannot be parsed are skipped.
        """
        certificates: list[StoreCertificate] = []
        if not self.path.is_dir():
            logger.debug(f"Certificate store {self.path} does not exist; treating it as empty.")
            self._certificates = certificates
            return

        for pem_file in sorted(self.path.glob("*.pem")):
            try:
                certificates.append(load_pem_certificate(pem_file.read_text(encoding="ascii")))
            except (OSError, ValueError) as e:
                logger.warning(f"Skipping unreadable certificate file {pem_file.name}: {e}")

        logger.debug(f"Opened certificate store {self.path} with {len(certificates)} certificate(s).")
        self._certificates = certificates

    def close(self) -> None:
        self._certificates = None

    @property
    def certificates(self) -> list[StoreCertificate]:
        """
        The certificates loaded by `open`.

        Raises:
            CertificateStoreError: If the store is not open.
        """
        if self._certificates is None:
            raise CertificateStoreError(f"Certificate store {self.path} is not open.")
        return list(self._certificates)

    def find_by_thumbprint(self, thumbprint: str) -> list[StoreCertificate]:
        """
        Finds certificates whose thumbprint matches, ignoring case, spaces and colons.

        Args:
            thumbprint: The SHA-1 thumbprint to look for.

        Returns:
            list[StoreCertificate]: All matches in store order. Empty if none match.
        """
        wanted = normalize_thumbprint(thumbprint)
        return [cert for cert in self.certificates if cert.thumbprint == wanted]

    def __enter__(self) -> "CertificateStore":
        self.open()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()


def get_certificate(
    thumbprint: str,
    store_name: StoreName = StoreName.MY,
    store_location: StoreLocation = StoreLocation.CURRENT_USER,
    root: Path | None = None,
) -> StoreCertificate | None:
    """
    Looks a certificate up by thumbprint. The store is closed whatever the outcome.

    Args:
        thumbprint: The SHA-1 thumbprint of the certificate.
        store_name: The store to search.
        store_location: The location of the store.
        root: Optional override for the store root directory.

    Returns:
        StoreCertificate | None: The first matching certificate, or None if there is no match.
    """
    store = CertificateStore(store_name, store_location, root)
    try:
        store.open()
        matches = store.find_by_thumbprint(thumbprint)
        if not matches:
            return None
        return matches[0]
    finally:
        store.close()
