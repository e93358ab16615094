"""Property document slots and persisted document records"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

ADDITIONAL_TYPE_CODE = "adicional"

# Required slots as (type_code, display_name), in the order the editor lists them
PROJECT_REQUIRED_DOCUMENTS: Tuple[Tuple[str, str], ...] = (
    ("hoja_captacion", "Hoja de Captación"),
)
PROPERTY_REQUIRED_DOCUMENTS: Tuple[Tuple[str, str], ...] = (
    ("cedula_propietarios", "Cédula Propietarios"),
    ("formulario_captacion", "Formulario de Captación"),
    ("copia_titulo", "Copia de Título"),
)


def required_document_slots(is_project: bool) -> Tuple[Tuple[str, str], ...]:
    return PROJECT_REQUIRED_DOCUMENTS if is_project else PROPERTY_REQUIRED_DOCUMENTS


def is_required_type(type_code: str, is_project: bool) -> bool:
    return any(code == type_code for code, _ in required_document_slots(is_project))


@dataclass(frozen=True)
class DocumentRecord:
    """A durable document entry as sent in the property payload"""
    id: str
    type_code: str
    display_name: str
    url: str
    committed_at: datetime

    def to_payload(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "typeCode": self.type_code,
            "displayName": self.display_name,
            "url": self.url,
            "committedAt": self.committed_at.isoformat(),
        }

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "DocumentRecord":
        committed_at = _parse_timestamp(data.get("committedAt"))
        return cls(
            id=str(data["id"]),
            type_code=str(data.get("typeCode") or ADDITIONAL_TYPE_CODE),
            display_name=str(data.get("displayName") or ""),
            url=str(data["url"]),
            committed_at=committed_at,
        )


def _parse_timestamp(value: Optional[str]) -> datetime:
    if not value:
        return datetime.now(timezone.utc)
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return datetime.now(timezone.utc)


def records_to_payload(records: List[DocumentRecord]) -> List[Dict[str, Any]]:
    return [record.to_payload() for record in records]
