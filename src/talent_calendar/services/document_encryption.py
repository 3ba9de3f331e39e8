"""
Identity document encryption

Passports and visas are stored AES-256-GCM encrypted in the document bucket.
The per-document key is derived from the service secret and the
``subject:category`` pair on every call and never persisted; the 96-bit IV is
handed back to the caller, who must present it again to decrypt.
"""

import base64
import binascii
import logging
import os
from typing import Dict, List, Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from talent_calendar.services.document_storage import DocumentStore
from talent_calendar.utils.config import settings
from talent_calendar.utils.errors import (
    DecryptionError,
    DocumentNotFoundError,
    EncryptionError,
)

# Set up logging
logger = logging.getLogger(__name__)

DOCUMENT_CATEGORIES = ("passport", "visa")
IV_SIZE = 12
KEY_SIZE = 32

MIME_TYPES = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "pdf": "application/pdf",
}
DEFAULT_MIME_TYPE = "application/octet-stream"
FALLBACK_EXTENSIONS = ("jpg", "jpeg", "png", "pdf")


def derive_key(secret: str, subject_id: str, category: str) -> bytes:
    """256-bit key for one subject's document of one category"""
    material = secret.encode("utf-8").ljust(KEY_SIZE, b"0")[:KEY_SIZE]
    hkdf = HKDF(
        algorithm=hashes.SHA256(),
        length=KEY_SIZE,
        salt=None,
        info=f"{subject_id}:{category}".encode("utf-8"),
    )
    return hkdf.derive(material)


def encode_base64(data: bytes, chunk_size: int) -> str:
    """Base64 over fixed-size chunks; ``chunk_size`` must be a multiple of 3"""
    return "".join(
        base64.b64encode(data[i:i + chunk_size]).decode("ascii")
        for i in range(0, len(data), chunk_size)
    )


def decode_base64(text: str, chunk_size: int) -> bytes:
    """Inverse of ``encode_base64``; ``chunk_size`` must be a multiple of 4"""
    text = "".join(text.split())
    return b"".join(
        base64.b64decode(text[i:i + chunk_size], validate=True)
        for i in range(0, len(text), chunk_size)
    )


def file_extension(file_name: str) -> str:
    return file_name.rsplit(".", 1)[-1].lower() if "." in file_name else "bin"


def mime_type_for(file_name: str) -> str:
    return MIME_TYPES.get(file_extension(file_name), DEFAULT_MIME_TYPE)


def sanitize_file_name(file_name: str) -> str:
    """Strip query strings and path or URL prefixes from a caller supplied name"""
    return file_name.split("?", 1)[0].split("#", 1)[0].rstrip("/").rsplit("/", 1)[-1]


def object_prefix(category: str, subject_id: str) -> str:
    return f"encrypted_{category}_{subject_id}."


class DocumentEncryptionService:
    def __init__(self, store: Optional[DocumentStore] = None, secret_key: Optional[str] = None,
                 chunk_size: Optional[int] = None):
        self.store = store or DocumentStore()
        self.secret_key = secret_key if secret_key is not None else settings.ENCRYPTION_SECRET_KEY
        self.chunk_size = chunk_size or settings.BASE64_CHUNK_SIZE
        if self.chunk_size % 12:
            raise ValueError("chunk_size must be a multiple of 3 and 4")

    def _key(self, subject_id: str, category: str) -> bytes:
        if not self.secret_key:
            raise EncryptionError("Document encryption secret is not configured")
        return derive_key(self.secret_key, subject_id, category)

    @staticmethod
    def _check_category(category: str, error_cls) -> None:
        if category not in DOCUMENT_CATEGORIES:
            raise error_cls(f"Unsupported document type: {category}", 400)

    async def encrypt(self, file_data: str, file_name: str, subject_id: str, category: str) -> Dict:
        """
        Encrypt a base64 payload (raw or data URL) and store it, replacing
        any earlier document of the same category for the subject.

        Returns:
            ``{success, fileUrl, iv, encrypted}`` with a base64 IV
        """
        self._check_category(category, EncryptionError)
        if not subject_id:
            raise EncryptionError("Missing subject id", 400)

        if file_data.startswith("data:"):
            if "," not in file_data:
                raise EncryptionError("Malformed data URL", 400)
            file_data = file_data.split(",", 1)[1]

        try:
            plaintext = decode_base64(file_data, self.chunk_size)
        except (binascii.Error, ValueError):
            raise EncryptionError("File data is not valid base64", 400)

        iv = os.urandom(IV_SIZE)
        ciphertext = AESGCM(self._key(subject_id, category)).encrypt(iv, plaintext, None)

        prefix = object_prefix(category, subject_id)
        object_name = prefix + file_extension(sanitize_file_name(file_name))

        previous = [name for name in await self.store.list_prefix(prefix) if name != object_name]
        file_url = await self.store.upload(object_name, ciphertext)
        # Older extensions go only once the new object is stored
        if previous:
            await self.store.remove(previous)
        logger.info(f"Encrypted {category} for subject {subject_id} as {object_name}")

        return {
            "success": True,
            "fileUrl": file_url,
            "iv": encode_base64(iv, self.chunk_size),
            "encrypted": True,
        }

    async def resolve_object(self, file_name: str, subject_id: str, category: str) -> str:
        """
        Find the stored object for a document: the expected name first, then
        any object with the subject's prefix, then the common extensions.
        """
        prefix = object_prefix(category, subject_id)
        expected = prefix + file_extension(sanitize_file_name(file_name))
        if await self.store.exists(expected):
            return expected

        matches: List[str] = await self.store.list_prefix(prefix)
        if matches:
            logger.info(f"Resolved {file_name} to {matches[0]} by prefix")
            return matches[0]

        for extension in FALLBACK_EXTENSIONS:
            candidate = prefix + extension
            if await self.store.exists(candidate):
                return candidate

        raise DocumentNotFoundError(f"No stored {category} document for subject {subject_id}")

    async def decrypt(self, file_name: str, subject_id: str, category: str, iv: str) -> Dict:
        """Decrypt a stored document and return it as a data URL"""
        self._check_category(category, DecryptionError)

        try:
            iv_bytes = base64.b64decode(iv or "", validate=True)
        except (binascii.Error, ValueError):
            raise DecryptionError("IV is not valid base64")
        if len(iv_bytes) != IV_SIZE:
            raise DecryptionError("IV must be 12 bytes")

        object_name = await self.resolve_object(file_name, subject_id, category)
        ciphertext = await self.store.download(object_name)

        try:
            plaintext = AESGCM(self._key(subject_id, category)).decrypt(iv_bytes, ciphertext, None)
        except InvalidTag:
            logger.warning(f"Authentication failed decrypting {object_name}")
            raise DecryptionError("Document could not be decrypted; wrong key, IV or corrupted data")

        data_url = f"data:{mime_type_for(object_name)};base64,{encode_base64(plaintext, self.chunk_size)}"
        return {"success": True, "decryptedDataUrl": data_url}
