from typing import Optional

from pydantic import BaseModel, ConfigDict


class HALLink(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str           # relation: "self", "next", "accounts", ...
    href: str           # may hold {param} tokens
    templated: bool = False
    title: Optional[str] = None

    def to_hal(self) -> dict:
        link = {"href": self.href}
        if self.templated:
            link["templated"] = True
        if self.title:
            link["title"] = self.title
        return link


class Pagination(BaseModel):
    total_count: int
    number_of_pages: int
    page: int
    page_count: int
