"""
Certification coordinator.

The coordinator composes the stamper, hasher, storage and registry into
the registration, resolution, verification and revocation flows.

Registration order is fixed and strictly sequential:

    received → stamped → hashed → stored → recorded → completed

Hashing before stamping, or recording before storing, is a correctness
bug. Every step failure aborts the flow and surfaces a typed error; the
only failure that is swallowed is the best-effort deletion of a
temporary upload, which runs as a separate side task after the
registration has completed.

If the registry rejects a record after its blob was saved, the orphaned
blob is left in place. It is unreferenced and harmless; the caller still
receives the failure.
"""

from __future__ import annotations

import functools
import hmac
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, TypeVar

import anyio

from sigillum.app.config import Settings
from sigillum.app.coordinator.cleanup import delete_temp_upload
from sigillum.app.errors import (
    AlreadyRevoked,
    Conflict,
    DataIntegrityError,
    InternalError,
    NoStoredHash,
    NotFound,
    NotRegistered,
    PayloadTooLarge,
    SigillumError,
    UnsupportedMediaType,
    ValidationError,
)
from sigillum.app.events import (
    CertificationEvent,
    CertificationEventEmitter,
    CertificationEventType,
    LoggingEventEmitter,
)
from sigillum.app.registry import DocumentRegistry, build_registry
from sigillum.app.schemas.document import (
    DocumentRecord,
    NewDocumentRecord,
    RegistrationResult,
    ResolvedDocument,
    RevocationResult,
    UploadTicket,
    VerificationResult,
)
from sigillum.app.services.qr_stamp import (
    SafeModePolicy,
    StampOptions,
    stamp_pdf,
)
from sigillum.app.storage import (
    PresignedStorageService,
    StorageService,
    build_storage,
    permanent_key,
    temp_upload_key,
)
from sigillum.app.utils.doc_code import generate_doc_code, is_valid_doc_code
from sigillum.app.utils.hashing import Hasher, iter_chunks

logger = logging.getLogger(__name__)

T = TypeVar("T")

PDF_CONTENT_TYPE = "application/pdf"
GENERIC_CONTENT_TYPES = {"", "application/octet-stream"}


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds")


class CertificationCoordinator:
    """
    Orchestrates the certification pipeline.

    All public operations are coroutines. Blocking work (PDF parsing,
    disk, object store, SQL) runs in a worker thread one step at a time,
    so the surrounding event loop is never blocked and step order is
    preserved.
    """

    def __init__(
        self,
        settings: Settings,
        storage: StorageService,
        registry: DocumentRegistry,
        hasher: Optional[Hasher] = None,
        events: Optional[CertificationEventEmitter] = None,
        code_generator: Callable[[], str] = generate_doc_code,
    ) -> None:
        """
        Direct constructor.

        Intended for tests and explicit wiring; nothing is constructed
        implicitly except the hasher and the logging emitter.
        """
        self._settings = settings
        self._storage = storage
        self._registry = registry
        self._hasher = hasher or Hasher(settings.hash_algorithm)
        self._events = events or LoggingEventEmitter()
        self._generate_code = code_generator

        self._safe_mode = SafeModePolicy(
            enabled=settings.stamp_safe_mode,
            max_bytes=settings.safe_mode_max_bytes,
            max_pages=settings.safe_mode_max_pages,
        )

    # ------------------------------------------------------------------
    # Integration constructor (composition root)
    # ------------------------------------------------------------------

    @classmethod
    def from_config(cls, settings: Settings) -> "CertificationCoordinator":
        """Build storage and registry backends from runtime configuration."""
        return cls(
            settings=settings,
            storage=build_storage(settings),
            registry=build_registry(settings),
        )

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def storage(self) -> StorageService:
        return self._storage

    @property
    def registry(self) -> DocumentRegistry:
        return self._registry

    @property
    def hasher(self) -> Hasher:
        return self._hasher

    @property
    def presigned_mode(self) -> bool:
        return isinstance(self._storage, PresignedStorageService)

    def close(self) -> None:
        self._registry.close()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _run(self, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        return await anyio.to_thread.run_sync(
            functools.partial(func, *args, **kwargs)
        )

    def _emit(
        self,
        doc_code: str,
        event_type: CertificationEventType,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        try:
            self._events.emit(
                CertificationEvent(
                    doc_code=doc_code,
                    event_type=event_type,
                    details=details,
                )
            )
        except Exception:
            logger.debug("event_emission_failed", exc_info=True)

    def _default_options(self) -> StampOptions:
        return StampOptions(
            size=self._settings.qr_size,
            position=self._settings.qr_position,
        )

    def _validate_upload(
        self,
        data: bytes,
        filename: Optional[str],
        content_type: Optional[str],
    ) -> None:
        media_type = (content_type or "").split(";")[0].strip().lower()
        has_pdf_ext = (filename or "").lower().endswith(".pdf")

        # Generic or missing media types fall back to the file extension.
        if media_type in GENERIC_CONTENT_TYPES:
            accepted = has_pdf_ext
        else:
            accepted = media_type == PDF_CONTENT_TYPE
        if not accepted:
            raise UnsupportedMediaType(
                f"Invalid file type '{content_type}'. Only PDF is accepted."
            )

        if not data:
            raise ValidationError("Uploaded file is empty.")

        max_bytes = self._settings.max_upload_size_bytes
        if len(data) > max_bytes:
            raise PayloadTooLarge(
                f"File too large ({len(data)} bytes). "
                f"Maximum is {self._settings.max_upload_size_mb} MB."
            )

    async def _certify(
        self,
        doc_code: str,
        raw: bytes,
        options: Optional[StampOptions],
    ) -> RegistrationResult:
        """Stamp → hash → guard → store → record, strictly in that order."""
        options = options or self._default_options()
        verify_url = self._settings.verification_url(doc_code)
        target_key = permanent_key(doc_code)

        self._emit(
            doc_code,
            CertificationEventType.RECEIVED,
            {"size": len(raw)},
        )

        try:
            stamped = await self._run(
                stamp_pdf,
                raw,
                verify_url,
                options,
                safe_mode=self._safe_mode,
                on_safe_mode=lambda details: self._emit(
                    doc_code,
                    CertificationEventType.STAMP_SAFE_MODE_APPLIED,
                    details,
                ),
            )
            self._emit(
                doc_code,
                CertificationEventType.STAMPED,
                {
                    "size": len(stamped),
                    "qr_size": options.size,
                    "qr_position": options.position,
                },
            )

            file_hash = await self._run(
                self._hasher.digest_stream, iter_chunks(stamped)
            )
            self._emit(
                doc_code,
                CertificationEventType.HASHED,
                {"algorithm": self._hasher.algorithm},
            )

            if await self._run(self._storage.exists, target_key):
                raise Conflict(
                    f"Storage key for '{doc_code}' is already occupied. "
                    "Retry with a fresh code."
                )
            stored_key = await self._run(self._storage.save, stamped, target_key)
            self._emit(doc_code, CertificationEventType.STORED, {"key": stored_key})

            record = await self._run(
                self._registry.create,
                NewDocumentRecord(
                    doc_code=doc_code,
                    file_path=stored_key,
                    file_hash=file_hash,
                    uploaded_at=_utc_timestamp(),
                ),
            )
            self._emit(doc_code, CertificationEventType.RECORDED, {"id": record.id})

        except SigillumError as exc:
            self._emit(doc_code, CertificationEventType.FAILED, {"error": exc.kind})
            raise
        except Exception as exc:
            logger.exception("certification_failed", extra={"doc_code": doc_code})
            self._emit(
                doc_code,
                CertificationEventType.FAILED,
                {"error": InternalError.kind},
            )
            raise InternalError("Document certification failed.") from exc

        self._emit(doc_code, CertificationEventType.COMPLETED)
        logger.info(
            "document_registered",
            extra={"doc_code": record.doc_code, "file_path": record.file_path},
        )

        return RegistrationResult(
            doc_code=record.doc_code,
            verify_url=verify_url,
            file_path=record.file_path,
            file_hash=record.file_hash,
        )

    async def _require_record(self, doc_code: str) -> DocumentRecord:
        record = await self._run(self._registry.get_by_code, doc_code)
        if record is None:
            raise NotFound("Document not found.")
        return record

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    async def register_upload(
        self,
        data: bytes,
        *,
        filename: Optional[str] = None,
        content_type: Optional[str] = None,
        options: Optional[StampOptions] = None,
    ) -> RegistrationResult:
        """Direct path: the caller supplies the complete PDF in one request."""
        self._validate_upload(data, filename, content_type)
        doc_code = self._generate_code()
        return await self._certify(doc_code, data, options)

    async def request_upload_url(self) -> UploadTicket:
        """Phase one of the presigned path: issue a code and a signed PUT URL."""
        storage = self._storage
        if not isinstance(storage, PresignedStorageService):
            raise ValidationError(
                "Presigned uploads require object storage; use direct upload."
            )

        doc_code = self._generate_code()
        temp_key = temp_upload_key(doc_code)
        upload_url = await self._run(
            storage.signed_upload_url,
            temp_key,
            self._settings.upload_url_ttl_seconds,
        )
        logger.info("upload_url_issued", extra={"doc_code": doc_code})

        return UploadTicket(doc_code=doc_code, upload_url=upload_url, temp_key=temp_key)

    async def process_upload(
        self,
        doc_code: str,
        options: Optional[StampOptions] = None,
    ) -> RegistrationResult:
        """
        Phase two of the presigned path.

        Reads the temporary object, runs the standard certification
        sequence, then deletes the temporary object on a best-effort
        basis.
        """
        if not is_valid_doc_code(doc_code):
            raise ValidationError("Missing or invalid field: doc_code.")

        temp_key = temp_upload_key(doc_code)
        if not await self._run(self._storage.exists, temp_key):
            raise NotFound(
                "Uploaded file not found in temp storage. "
                "Upload may have failed or expired."
            )

        raw = await self._run(self._storage.read, temp_key)
        if not raw:
            raise ValidationError("Uploaded file is empty.")

        result = await self._certify(doc_code, raw, options)

        await self._run(
            delete_temp_upload,
            self._storage,
            temp_key,
            on_failure=lambda details: self._emit(
                doc_code,
                CertificationEventType.TEMP_CLEANUP_FAILED,
                details,
            ),
        )
        return result

    # ------------------------------------------------------------------
    # Resolution and verification
    # ------------------------------------------------------------------

    async def get_document(self, doc_code: str) -> Optional[DocumentRecord]:
        return await self._run(self._registry.get_by_code, doc_code)

    async def resolve(self, doc_code: str) -> ResolvedDocument:
        """
        Deliver the certified copy.

        Object-store deployments get a short-lived signed download URL;
        local deployments get the bytes. Revoked documents stay
        resolvable; ``record.revoked`` tells the caller.
        """
        record = await self._require_record(doc_code)
        logger.info("document_resolved", extra={"doc_code": doc_code})

        storage = self._storage
        if isinstance(storage, PresignedStorageService):
            url = await self._run(
                storage.signed_download_url,
                record.file_path,
                self._settings.download_url_ttl_seconds,
            )
            return ResolvedDocument(record=record, redirect_url=url)

        try:
            if not await self._run(storage.exists, record.file_path):
                raise NotFound(record.file_path)
            content = await self._run(storage.read, record.file_path)
        except NotFound as exc:
            logger.error(
                "document_file_missing",
                extra={"doc_code": doc_code, "file_path": record.file_path},
            )
            self._emit(
                doc_code,
                CertificationEventType.INTEGRITY_ALARM,
                {"file_path": record.file_path},
            )
            raise DataIntegrityError(
                "Document record exists but file is missing from storage."
            ) from exc

        return ResolvedDocument(record=record, content=content)

    async def verify(self, doc_code: str, candidate: bytes) -> VerificationResult:
        """
        Compare a presented file against the registered hash.

        The candidate bytes are hashed in memory and discarded.
        """
        record = await self._run(self._registry.get_by_code, doc_code)
        if record is None:
            raise NotRegistered("Document not registered.")
        if not record.file_hash:
            raise NoStoredHash(
                "Stored document has no hash on record. Cannot verify."
            )

        uploaded_hash = await self._run(
            self._hasher.digest_stream, iter_chunks(candidate)
        )
        match = hmac.compare_digest(uploaded_hash, record.file_hash)

        return VerificationResult(
            doc_code=record.doc_code,
            uploaded_hash=uploaded_hash,
            stored_hash=record.file_hash,
            match=match,
        )

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    async def list_documents(self) -> List[DocumentRecord]:
        return await self._run(self._registry.list)

    async def revoke(self, doc_code: str) -> RevocationResult:
        record = await self._require_record(doc_code)
        if record.revoked:
            raise AlreadyRevoked("Document is already revoked.")

        if not await self._run(self._registry.revoke, doc_code):
            # Lost a race with a concurrent revocation.
            raise AlreadyRevoked("Document is already revoked.")

        self._emit(doc_code, CertificationEventType.DOCUMENT_REVOKED)
        logger.info("document_revoked", extra={"doc_code": doc_code})
        return RevocationResult(doc_code=doc_code, revoked=True)
