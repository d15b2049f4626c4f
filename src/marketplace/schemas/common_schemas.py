from math import ceil

from pydantic import BaseModel, ConfigDict, Field


class PaginationResponse(BaseModel):
    """Page-number pagination metadata for list responses"""
    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "currentPage": 2,
                "totalPages": 5,
                "totalItems": 42,
                "itemsPerPage": 10,
            }
        },
    )

    current_page: int = Field(ge=1, alias="currentPage", description="Page being returned")
    total_pages: int = Field(ge=0, alias="totalPages", description="Number of pages available")
    total_items: int = Field(ge=0, alias="totalItems", description="Number of matching rows")
    items_per_page: int = Field(ge=1, alias="itemsPerPage", description="Page size requested")

    @classmethod
    def build(cls, page: int, limit: int, total: int) -> "PaginationResponse":
        return cls(
            current_page=page,
            total_pages=ceil(total / limit) if total else 0,
            total_items=total,
            items_per_page=limit,
        )

    def to_dict(self) -> dict:
        return self.model_dump(by_alias=True)
