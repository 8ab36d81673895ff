"""
Shared test doubles and builders.
"""

import io
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import pikepdf
import zxingcpp
from PIL import Image

from sigillum.app.config import Settings
from sigillum.app.coordinator import CertificationCoordinator
from sigillum.app.errors import Conflict, NotFound
from sigillum.app.events import CertificationEvent, CertificationEventType
from sigillum.app.registry import SQLiteDocumentRegistry
from sigillum.app.storage import LocalStorageService


ADMIN_TOKEN = "test-admin-token"


# ----------------------------------------------------------------------
# Events
# ----------------------------------------------------------------------

class RecordingEventEmitter:
    def __init__(self) -> None:
        self.events: List[CertificationEvent] = []

    def emit(self, event: CertificationEvent) -> None:
        self.events.append(event)

    def types(self, doc_code: Optional[str] = None) -> List[CertificationEventType]:
        return [
            e.event_type
            for e in self.events
            if doc_code is None or e.doc_code == doc_code
        ]


# ----------------------------------------------------------------------
# Storage
# ----------------------------------------------------------------------

class InMemoryObjectStore:
    """Presigned-capable storage double; URLs are fake but well-formed."""

    def __init__(self, fail_delete: bool = False) -> None:
        self.objects: Dict[str, bytes] = {}
        self.fail_delete = fail_delete
        self.deleted: List[str] = []
        self.signed: List[Tuple[str, str, int]] = []

    def save(self, data: bytes, key: str) -> str:
        if key in self.objects:
            raise Conflict(f"Storage key '{key}' is already taken.")
        self.objects[key] = bytes(data)
        return key

    def read(self, key: str) -> bytes:
        try:
            return self.objects[key]
        except KeyError as exc:
            raise NotFound(f"No stored object for key '{key}'.") from exc

    def exists(self, key: str) -> bool:
        return key in self.objects

    def signed_upload_url(self, key: str, ttl: int = 300) -> str:
        self.signed.append(("PUT", key, ttl))
        return f"https://objects.test/{key}?X-Amz-Expires={ttl}&op=put"

    def signed_download_url(self, key: str, ttl: int = 60) -> str:
        self.signed.append(("GET", key, ttl))
        return f"https://objects.test/{key}?X-Amz-Expires={ttl}&op=get"

    def delete(self, key: str) -> None:
        if self.fail_delete:
            raise ConnectionError("object store unreachable")
        self.objects.pop(key, None)
        self.deleted.append(key)


# ----------------------------------------------------------------------
# Wiring
# ----------------------------------------------------------------------

def make_settings(tmp_path: Path, **overrides) -> Settings:
    values = dict(
        storage_root=tmp_path / "storage",
        sqlite_path=tmp_path / "data" / "app.db",
        app_base_url="https://host",
        admin_token=ADMIN_TOKEN,
    )
    values.update(overrides)
    return Settings(**values)


@dataclass
class Harness:
    coordinator: CertificationCoordinator
    storage: object
    registry: SQLiteDocumentRegistry
    events: RecordingEventEmitter


def make_harness(
    tmp_path: Path,
    storage=None,
    code_generator=None,
    **settings_overrides,
) -> Harness:
    settings = make_settings(tmp_path, **settings_overrides)
    storage = storage if storage is not None else LocalStorageService(settings.storage_root)
    registry = SQLiteDocumentRegistry(settings.sqlite_path)
    events = RecordingEventEmitter()

    kwargs = {}
    if code_generator is not None:
        kwargs["code_generator"] = code_generator

    coordinator = CertificationCoordinator(
        settings=settings,
        storage=storage,
        registry=registry,
        events=events,
        **kwargs,
    )
    return Harness(coordinator, storage, registry, events)


def fixed_codes(*codes: str):
    """Code generator yielding the given codes in order."""
    iterator = iter(codes)
    return lambda: next(iterator)


# ----------------------------------------------------------------------
# PDF inspection
# ----------------------------------------------------------------------

@dataclass
class QrDraw:
    page_index: int
    x: float
    y: float
    width: float
    height: float
    image: Image.Image


def find_qr_draws(pdf_bytes: bytes) -> List[QrDraw]:
    """Locate every stamped QR image and the matrix it is drawn with."""
    draws: List[QrDraw] = []
    with pikepdf.open(io.BytesIO(pdf_bytes)) as pdf:
        for index, page in enumerate(pdf.pages):
            resources = page.obj.get("/Resources")
            xobjects = resources.get("/XObject") if resources is not None else None
            last_cm = None
            for instruction in pikepdf.parse_content_stream(page):
                operator = str(instruction.operator)
                if operator == "cm":
                    last_cm = [float(v) for v in instruction.operands]
                elif operator == "Do" and xobjects is not None:
                    name = instruction.operands[0]
                    if not str(name).startswith("/SigQr"):
                        continue
                    image = pikepdf.PdfImage(xobjects[name]).as_pil_image()
                    a, _, _, d, e, f = last_cm
                    draws.append(QrDraw(index, e, f, a, d, image))
    return draws


def decode_qr(image: Image.Image) -> List[str]:
    """Decode every QR code found in ``image``."""
    return [
        result.text
        for result in zxingcpp.read_barcodes(image.convert("L"))
        if result.format == zxingcpp.BarcodeFormat.QRCode
    ]


def page_count(pdf_bytes: bytes) -> int:
    with pikepdf.open(io.BytesIO(pdf_bytes)) as pdf:
        return len(pdf.pages)
