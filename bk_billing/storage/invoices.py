from __future__ import annotations

import io
import logging
from pathlib import Path

from minio import Minio
from minio.error import S3Error

from bk_billing.core.config import get_settings
from bk_billing.domain.errors import StorageError
from bk_billing.domain.invoices.numbering import is_valid_invoice_number

logger = logging.getLogger(__name__)


def _object_key(invoice_number: str) -> str:
    # Invoice numbers become file names; reject anything that could escape the root.
    if not is_valid_invoice_number(invoice_number):
        raise StorageError(f"invalid invoice number: {invoice_number!r}")
    return f"{invoice_number}.pdf"


class InvoiceStore:
    backend = "abstract"

    def __init__(self, url_prefix: str = "/invoices"):
        self.url_prefix = url_prefix.rstrip("/")

    def public_url(self, invoice_number: str) -> str:
        return f"{self.url_prefix}/{_object_key(invoice_number)}"

    def get_pdf_path(self, invoice_number: str) -> Path | None:
        return None

    def save_pdf(self, data: bytes, invoice_number: str) -> str:  # pragma: no cover - interface
        raise NotImplementedError

    def read_pdf(self, invoice_number: str) -> bytes:  # pragma: no cover - interface
        raise NotImplementedError

    def pdf_exists(self, invoice_number: str) -> bool:  # pragma: no cover - interface
        raise NotImplementedError

    def delete_pdf(self, invoice_number: str) -> None:  # pragma: no cover - interface
        raise NotImplementedError


class LocalInvoiceStore(InvoiceStore):
    backend = "local"

    def __init__(self, root: Path, url_prefix: str = "/invoices"):
        super().__init__(url_prefix)
        self.root = Path(root)

    def get_pdf_path(self, invoice_number: str) -> Path:
        return self.root / _object_key(invoice_number)

    def save_pdf(self, data: bytes, invoice_number: str) -> str:
        path = self.get_pdf_path(invoice_number)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except OSError as exc:
            raise StorageError(f"Failed to save PDF: {exc}") from exc
        return self.public_url(invoice_number)

    def read_pdf(self, invoice_number: str) -> bytes:
        path = self.get_pdf_path(invoice_number)
        try:
            return path.read_bytes()
        except OSError as exc:
            raise StorageError(f"Failed to read PDF: {exc}") from exc

    def pdf_exists(self, invoice_number: str) -> bool:
        return self.get_pdf_path(invoice_number).is_file()

    def delete_pdf(self, invoice_number: str) -> None:
        path = self.get_pdf_path(invoice_number)
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            raise StorageError(f"Failed to delete PDF: {exc}") from exc


class MinioInvoiceStore(InvoiceStore):
    backend = "minio"

    def __init__(
        self,
        endpoint: str,
        access_key: str,
        secret_key: str,
        bucket: str,
        secure: bool = False,
        url_prefix: str = "/invoices",
    ):
        super().__init__(url_prefix)
        self.client = Minio(endpoint, access_key=access_key, secret_key=secret_key, secure=secure)
        self.bucket = bucket
        self._ensure_bucket()

    def _ensure_bucket(self) -> None:
        found = self.client.bucket_exists(self.bucket)
        if not found:
            self.client.make_bucket(self.bucket)

    def save_pdf(self, data: bytes, invoice_number: str) -> str:
        key = _object_key(invoice_number)
        try:
            self.client.put_object(
                bucket_name=self.bucket,
                object_name=key,
                data=io.BytesIO(data),
                length=len(data),
                content_type="application/pdf",
            )
        except S3Error as exc:
            raise StorageError(f"Failed to save PDF: {exc}") from exc
        return self.public_url(invoice_number)

    def read_pdf(self, invoice_number: str) -> bytes:
        key = _object_key(invoice_number)
        try:
            response = self.client.get_object(self.bucket, key)
        except S3Error as exc:
            raise StorageError(f"Failed to read PDF: {exc}") from exc
        try:
            return response.read()
        finally:
            response.close()
            response.release_conn()

    def pdf_exists(self, invoice_number: str) -> bool:
        try:
            self.client.stat_object(self.bucket, _object_key(invoice_number))
        except S3Error as exc:
            if exc.code in {"NoSuchKey", "NoSuchObject"}:
                return False
            raise StorageError(f"Failed to stat PDF: {exc}") from exc
        return True

    def delete_pdf(self, invoice_number: str) -> None:
        try:
            self.client.remove_object(self.bucket, _object_key(invoice_number))
        except S3Error as exc:
            raise StorageError(f"Failed to delete PDF: {exc}") from exc


def build_invoice_store() -> InvoiceStore:
    settings = get_settings()
    if settings.invoice_backend == "minio":
        try:
            return MinioInvoiceStore(
                endpoint=settings.minio_endpoint,
                access_key=settings.minio_access_key,
                secret_key=settings.minio_secret_key,
                bucket=settings.minio_bucket,
                secure=settings.minio_secure,
                url_prefix=settings.invoices_url_prefix,
            )
        except Exception:
            # MinIO unreachable (local dev, tests): degrade to local storage.
            logger.warning("MinIO invoice store unavailable, using local storage", exc_info=True)
    return LocalInvoiceStore(settings.invoices_dir, url_prefix=settings.invoices_url_prefix)
