"""VectorPoint model: the part of an index point the reconciliation core reads."""

from pydantic import BaseModel


class VectorPoint(BaseModel):
    """A point of the vector index as seen by reconciliation.

    The indexing pipeline writes one point per chunk, with a payload carrying
    the owning document and its partition. Vectors and chunk text are never
    read here.

    Attributes:
        id:          Point id (UUID string, or an integer id on legacy points).
        document_id: Owning document, or None on points without that payload field.
        db:          Partition key of the owning document.
    """

    id: str
    document_id: str | None = None
    db: str | None = None

    @classmethod
    def from_raw(cls, raw: dict) -> "VectorPoint":
        payload = raw.get("payload") or {}
        document_id = payload.get("document_id")
        return cls(
            id=str(raw.get("id")),
            document_id=str(document_id) if document_id is not None else None,
            db=payload.get("db"),
        )
