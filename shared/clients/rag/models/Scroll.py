from pydantic import BaseModel


class ScrollResult(BaseModel):
    """Structured output of a single scroll page.

    Attributes:
        result:           List of point dicts ({"id": ..., "payload": {...}}).
        status:           Backend status string (e.g. "ok").
        time:             Time taken by the backend to execute the request.
        next_page_offset: Cursor for the next page, or None when the last page
                          has been returned.
    """

    result: list[dict]
    status: str = "ok"
    time: float = 0
    next_page_offset: str | int | None = None
