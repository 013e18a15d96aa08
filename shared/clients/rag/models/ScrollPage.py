from pydantic import BaseModel, Field


class ScrollPage(BaseModel):
    """One page of points read sequentially from a collection.

    next_offset is the backend's cursor for the following page; None on the last page.
    """

    points: list[dict] = Field(default_factory=list)
    next_offset: str | int | None = None
