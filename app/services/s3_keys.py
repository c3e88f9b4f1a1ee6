# app/services/s3_keys.py
import re
import uuid

_UNSAFE = re.compile(r"[^a-z0-9.\-]+")
_DASHES = re.compile(r"-+")


def s3_key_join(*parts: str) -> str:
    cleaned = [str(p).strip("/ ") for p in parts if p is not None and str(p).strip("/ ")]
    return "/".join(cleaned)


def sanitize_file_name(file_name: str, fallback: str = "upload") -> str:
    """Lowercase, anything outside [a-z0-9.-] collapsed to single dashes."""
    normalized = _UNSAFE.sub("-", file_name.strip().lower())
    normalized = _DASHES.sub("-", normalized).strip("-")
    return normalized or fallback


def build_temp_photo_key(contractor_slug: str, lead_temp_id: str, file_name: str) -> str:
    # contractors/{slug}/temp/{leadTempId}/{uuid}-{name}
    safe = sanitize_file_name(file_name, "upload")
    return s3_key_join("contractors", contractor_slug, "temp", lead_temp_id, f"{uuid.uuid4()}-{safe}")


def build_temp_document_key(contractor_slug: str, lead_temp_id: str, file_name: str) -> str:
    # contractors/{slug}/temp/{leadTempId}/documents/{uuid}-{name}
    safe = sanitize_file_name(file_name, "document")
    return s3_key_join(
        "contractors", contractor_slug, "temp", lead_temp_id, "documents", f"{uuid.uuid4()}-{safe}"
    )


def build_lead_upload_key(contractor_slug: str, lead_id: str, file_name: str) -> str:
    # contractors/{slug}/leads/{leadId}/{uuid}-{name}
    safe = sanitize_file_name(file_name, "upload")
    return s3_key_join("contractors", contractor_slug, "leads", lead_id, f"{uuid.uuid4()}-{safe}")
