"""OCR-based checks on uploaded identity and licence documents.

Text extraction is delegated to a ``TextExtractor``; this module only looks
for Aadhaar numbers, drug-licence keywords and licence-number candidates in
the extracted text.
"""

import json
import logging
import re
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

# 12 digits, spaces or dashes allowed between groups
AADHAAR_PATTERN = re.compile(r"(?:\b|^)(?:\d[ -]*?){12}(?:\b|$)")

# Permissive: letters, digits, slashes and dashes
DRUG_LICENSE_PATTERN = re.compile(r"[A-Z0-9/-]{6,25}", re.IGNORECASE)

DRUG_KEYWORDS = [
    r"drug license",
    r"license no",
    r"licence no",
    r"lic no",
    r"drug licence",
    r"license number",
    r"lic no\.?",
]


class TextExtractor(ABC):
    """OCR backend."""

    @abstractmethod
    def extract_text(self, data: bytes, filename: str) -> str:
        """Return the text recognized in an image."""

    def decode_qr(self, data: bytes, filename: str) -> Optional[str]:
        """Return the payload of a QR code in the image, if the backend can read one."""
        return None


def find_aadhaar_candidates(text: str) -> List[str]:
    """Digit-only normalized Aadhaar-like numbers, in order of appearance."""
    return [re.sub(r"\D", "", m.group(0)) for m in AADHAAR_PATTERN.finditer(text or "")]


def find_drug_license_keywords(text: str) -> List[str]:
    return [kw for kw in DRUG_KEYWORDS if re.search(kw, text or "", re.IGNORECASE)]


def find_drug_license_candidates(text: str) -> List[str]:
    return [m.group(0).strip() for m in DRUG_LICENSE_PATTERN.finditer(text or "")]


def parse_qr_payload(raw: Optional[str]) -> Optional[Dict[str, Any]]:
    if raw is None:
        return None
    result: Dict[str, Any] = {"raw": raw}
    try:
        result["json"] = json.loads(raw)
    except ValueError:
        pass  # plain-text payload
    return result


class DocumentVerifier:
    """Runs the document checks over an injected extractor."""

    def __init__(self, extractor: TextExtractor):
        self.extractor = extractor

    @staticmethod
    def _quality(data: bytes, content_type: Optional[str], url: Optional[str]) -> Dict[str, Any]:
        return {"size_bytes": len(data), "mime": content_type, "url": url}

    def verify_document(
        self,
        data: bytes,
        filename: str,
        content_type: Optional[str] = None,
        url: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Look for Aadhaar numbers in an identity document."""
        text = self.extractor.extract_text(data, filename) or ""
        candidates = find_aadhaar_candidates(text)
        if candidates:
            logger.info(f"Aadhaar candidate found in {filename}")
        else:
            logger.info(f"No Aadhaar-like candidate detected in {filename}")
        return {
            "success": True,
            "ocr_text": text,
            "aadhar_candidates": candidates,
            "quality": self._quality(data, content_type, url),
            "message": (
                "Possible Aadhaar number(s) found"
                if candidates
                else "No Aadhaar-like number found in OCR"
            ),
        }

    def verify_drug_license(
        self,
        data: bytes,
        filename: str,
        content_type: Optional[str] = None,
        url: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Look for drug-licence keywords, number candidates and a QR payload."""
        qr = None
        try:
            qr = parse_qr_payload(self.extractor.decode_qr(data, filename))
        except Exception:
            logger.warning(f"QR decode failed for {filename}", exc_info=True)

        text = self.extractor.extract_text(data, filename) or ""
        keywords = find_drug_license_keywords(text)
        candidates = find_drug_license_candidates(text)

        best = (qr or {}).get("raw") or (candidates[0] if candidates else None)
        if best:
            logger.info(f"Top licence candidate for {filename}: {best}")
        return {
            "success": True,
            "ocr_text": text,
            "qr": qr,
            "keywords_found": keywords,
            "license_candidates": candidates,
            "quality": self._quality(data, content_type, url),
            "message": (
                "Document contains drug-license related keywords"
                if keywords
                else "No obvious drug-license keywords detected"
            ),
        }
